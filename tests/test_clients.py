"""Tests for the identity provider client, bearer parsing and the event producer."""
import json

import pika
import pytest
import requests

from checkout_service.config import Settings
from checkout_service.errors import IdentityProviderError, Unauthenticated
from checkout_service.identity import HttpIdentityProvider, bearer_token
from checkout_service.messaging import producer
from checkout_service.messaging.producer import NullPublisher, RabbitMQProducer, build_publisher

from conftest import FakeResponse, FakeSession


def _settings(**overrides):
    values = dict(
        database_url="sqlite://",
        auth_url="http://auth.local",
        auth_api_key="anon",
        razorpay_key_id="",
        razorpay_key_secret="",
        razorpay_api_url="https://api.razorpay.com/v1",
        currency="INR",
        allow_backorder=False,
        http_timeout_seconds=10,
        rabbitmq_host=None,
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.mark.parametrize(
    "header, token",
    [
        ("Bearer abc.def", "abc.def"),
        ("bearer abc", "abc"),
        ("Basic abc", ""),
        ("", ""),
        (None, ""),
        ("Bearer", ""),
    ],
)
def test_bearer_token(header, token):
    assert bearer_token(header) == token


def test_identity_provider_resolves_user():
    session = FakeSession(FakeResponse(200, {"id": "user-1", "email": "a@example.com", "aud": "authenticated"}))
    provider = HttpIdentityProvider("http://auth.local/", "anon", timeout=3, session=session)

    identity = provider.resolve("jwt-token")

    assert identity.identity_id == "user-1"
    assert identity.email == "a@example.com"
    url, kwargs = session.calls[0]
    assert url == "http://auth.local/auth/v1/user"
    assert kwargs["headers"] == {"apikey": "anon", "Authorization": "Bearer jwt-token"}
    assert kwargs["timeout"] == 3


def test_identity_provider_rejects_empty_credential_without_calling_out():
    session = FakeSession()

    with pytest.raises(Unauthenticated):
        HttpIdentityProvider("http://auth.local", "anon", session=session).resolve("")
    assert session.calls == []


@pytest.mark.parametrize("status", [401, 403])
def test_identity_provider_rejected_token(status):
    provider = HttpIdentityProvider("http://auth.local", "anon", session=FakeSession(FakeResponse(status, {})))

    with pytest.raises(Unauthenticated):
        provider.resolve("expired")


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=requests.exceptions.Timeout("slow")),
        FakeSession(FakeResponse(503, {})),
        FakeSession(FakeResponse(200, None)),
    ],
)
def test_identity_provider_outage(session):
    with pytest.raises(IdentityProviderError):
        HttpIdentityProvider("http://auth.local", "anon", session=session).resolve("token")


def test_build_publisher_without_broker_is_null():
    publisher = build_publisher(_settings())

    assert isinstance(publisher, NullPublisher)
    publisher.publish("order.paid", {"order_id": "o1"})


def test_build_publisher_with_broker():
    publisher = build_publisher(_settings(rabbitmq_host="rabbitmq"))

    assert isinstance(publisher, RabbitMQProducer)
    assert publisher.connection is None  # connects on first publish


class FakeChannel:
    def __init__(self):
        self.published = []
        self.exchanges = []

    def exchange_declare(self, **kwargs):
        self.exchanges.append(kwargs)

    def basic_publish(self, **kwargs):
        self.published.append(kwargs)


class FakeConnection:
    def __init__(self, parameters):
        self.parameters = parameters
        self.is_closed = False
        self._channel = FakeChannel()

    def channel(self):
        return self._channel

    def close(self):
        self.is_closed = True


def test_producer_publishes_persistent_json(monkeypatch):
    monkeypatch.setattr(producer.pika, "BlockingConnection", FakeConnection)
    rabbit = RabbitMQProducer("rabbitmq")

    rabbit.publish("order.paid", {"order_id": "o1", "payment_id": "pay_1"})

    channel = rabbit.connection.channel()
    assert channel.exchanges == [{"exchange": "events", "exchange_type": "topic", "durable": True}]
    sent = channel.published[0]
    assert sent["routing_key"] == "order.paid"
    assert json.loads(sent["body"]) == {"order_id": "o1", "payment_id": "pay_1"}
    assert sent["properties"].delivery_mode == 2

    rabbit.close()
    assert rabbit.connection.is_closed


def test_producer_swallows_broker_outage(monkeypatch):
    def _refuse(parameters):
        raise pika.exceptions.AMQPConnectionError("refused")

    monkeypatch.setattr(producer.pika, "BlockingConnection", _refuse)
    rabbit = RabbitMQProducer("rabbitmq")

    rabbit.publish("order.created", {"order_id": "o1"})

    assert rabbit.connection is None


class RefusingChannel(FakeChannel):
    def basic_publish(self, **kwargs):
        raise pika.exceptions.AMQPChannelError("PRECONDITION_FAILED")


def test_producer_closes_connection_after_failed_publish(monkeypatch):
    opened = []

    def _connect(parameters):
        connection = FakeConnection(parameters)
        connection._channel = RefusingChannel()
        opened.append(connection)
        return connection

    monkeypatch.setattr(producer.pika, "BlockingConnection", _connect)
    rabbit = RabbitMQProducer("rabbitmq")

    for _ in range(3):
        rabbit.publish("order.paid", {"order_id": "o1"})

    assert len(opened) == 3
    assert all(connection.is_closed for connection in opened)
    assert rabbit.connection is None
