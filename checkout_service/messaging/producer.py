import json
import logging
import threading

import pika

from ..config import Settings

logger = logging.getLogger(__name__)


class RabbitMQProducer:
    """
    Publishes checkout lifecycle events to a topic exchange.

    The connection is opened lazily with a bounded number of attempts. Publish
    failures are logged and dropped; the next publish reconnects.
    """

    def __init__(self, host, exchange_name="events", exchange_type="topic", connection_attempts=3):
        self.host = host
        self.exchange_name = exchange_name
        self.exchange_type = exchange_type
        self.connection_attempts = connection_attempts
        self.connection = None
        self.channel = None
        # BlockingConnection is not thread-safe and routes run in a threadpool.
        self._lock = threading.Lock()

    def connect(self):
        """Establishes a connection to RabbitMQ and declares the exchange."""
        parameters = pika.ConnectionParameters(
            host=self.host,
            connection_attempts=self.connection_attempts,
            retry_delay=1,
            heartbeat=600,
            blocked_connection_timeout=300,
        )
        self.connection = pika.BlockingConnection(parameters)
        self.channel = self.connection.channel()

        # Declare the exchange (durable ensures it survives restarts)
        self.channel.exchange_declare(
            exchange=self.exchange_name,
            exchange_type=self.exchange_type,
            durable=True,
        )
        logger.info("Connected to RabbitMQ exchange %s", self.exchange_name)

    def publish(self, routing_key, message):
        """
        Publishes a message to the exchange with a specific routing key.

        Args:
            routing_key (str): The topic key (e.g., 'order.created', 'order.paid').
            message (dict): The data payload to send.
        """
        with self._lock:
            try:
                # Reconnect if the connection was lost
                if not self.connection or self.connection.is_closed:
                    self.connect()
                self.channel.basic_publish(
                    exchange=self.exchange_name,
                    routing_key=routing_key,
                    body=json.dumps(message, default=str),
                    properties=pika.BasicProperties(
                        delivery_mode=2,  # Make message persistent
                        content_type="application/json",
                    ),
                )
                logger.info("Sent event '%s' for order %s", routing_key, message.get("order_id"))
            except pika.exceptions.AMQPError as e:
                logger.error("Failed to publish '%s': %s", routing_key, e)
                self.close()
                self.connection = None
                self.channel = None

    def close(self):
        """Closes the connection cleanly."""
        if self.connection and not self.connection.is_closed:
            try:
                self.connection.close()
            except pika.exceptions.AMQPError as e:
                logger.warning("Error closing RabbitMQ connection: %s", e)


class NullPublisher:
    """Stands in when no broker is configured."""

    def publish(self, routing_key, message):
        logger.debug("Event '%s' not published, no broker configured", routing_key)

    def close(self):
        pass


def build_publisher(settings: Settings):
    if settings.rabbitmq_host:
        return RabbitMQProducer(settings.rabbitmq_host)
    return NullPublisher()
