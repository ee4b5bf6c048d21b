from __future__ import annotations

import hashlib
import hmac
import logging

import requests

from .config import Settings
from .errors import PaymentGatewayError
from .ports import RemoteOrder

logger = logging.getLogger(__name__)


def payment_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    """Lowercase hex HMAC-SHA256 of ``"<order id>|<payment id>"`` keyed by the gateway secret."""
    payload = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class RazorpayGateway:
    """Talks to the Razorpay orders API and checks checkout signatures."""

    def __init__(self, key_id: str, key_secret: str, api_url: str, timeout: float = 10, session=None):
        self.key_id = key_id
        self._key_secret = key_secret
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RazorpayGateway":
        return cls(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            api_url=settings.razorpay_api_url,
            timeout=settings.http_timeout_seconds,
        )

    def close(self):
        self.session.close()

    def create_remote_order(
        self, *, amount_minor_units: int, currency: str, receipt: str, metadata: dict[str, str]
    ) -> RemoteOrder:
        if not self.key_id or not self._key_secret:
            logger.error("Payment gateway credentials are not configured")
            raise PaymentGatewayError()

        try:
            response = self.session.post(
                f"{self.api_url}/orders",
                auth=(self.key_id, self._key_secret),
                json={
                    "amount": amount_minor_units,
                    "currency": currency,
                    "receipt": receipt,
                    "notes": metadata,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()  # Raises an exception for 4xx/5xx status codes
            data = response.json()
            remote = RemoteOrder(
                gateway_order_id=data["id"],
                amount_minor_units=int(data["amount"]),
                currency=data["currency"],
            )
        except requests.exceptions.RequestException as e:
            logger.error("Gateway order creation failed for %s: %s", receipt, e)
            raise PaymentGatewayError() from e
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Gateway returned an unusable order for %s: %s", receipt, e)
            raise PaymentGatewayError() from e

        logger.info("Gateway order %s created for %s", remote.gateway_order_id, receipt)
        return remote

    def verify_payment_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        if not self._key_secret:
            return False
        expected = payment_signature(self._key_secret, gateway_order_id, gateway_payment_id)
        return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))
