# storefront/services/payment_gateway.py
"""
Payment gateway adapters.

Every provider, synchronous or not, is reduced to a PaymentResult so the order
ledger has one settlement path:

- cash on delivery settles at initiation, always successfully
- network providers (bank transfer, e-wallet) acknowledge initiation as
  pending and settle later through a signed callback, or through polling
  when the callback never arrives
"""
import hashlib
import hmac
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

import redis
import requests
from requests import RequestException

from storefront.domain.errors import GatewayError, InvalidInput
from storefront.domain.states import BANK_TRANSFER, CASH_ON_DELIVERY, E_WALLET_B, PAYMENT_METHODS
from storefront.utils.retry import http_retry, redis_retry
from storefront.utils.settings import (
    BANK_TRANSFER_URL,
    CALLBACK_DEDUP_TTL_SECONDS,
    CURRENCY,
    E_WALLET_B_URL,
    PAYMENT_CALLBACK_BASE_URL,
    PAYMENT_WEBHOOK_SECRET,
    REDIS_URL,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SUCCESS_STATUSES = ("succeeded", "success", "completed", "paid")
FAILURE_STATUSES = ("failed", "declined", "cancelled", "expired")
PENDING_STATUSES = ("pending", "accepted", "processing")


@dataclass(frozen=True)
class PaymentResult:
    payment_id: str
    success: bool
    transaction_id: Optional[str] = None
    provider_response: Dict[str, Any] = field(default_factory=dict)
    #kwota zgloszona przez providera, None gdy jej nie podal
    amount: Optional[Decimal] = None

    def settlement_key(self) -> str:
        """Hash identifying the logical outcome, provider payload excluded."""
        raw = f"{self.payment_id}|{int(self.success)}|{self.transaction_id or ''}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class InitiationAck:
    """What a provider said when asked to start a payment. `result` is set when it settled on the spot."""

    payment_id: str
    result: Optional[PaymentResult] = None
    redirect_url: Optional[str] = None
    provider_response: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    method: str

    @abstractmethod
    def initiate(self, payment_id: str, order_id: str, amount: Decimal) -> InitiationAck:
        ...

    @abstractmethod
    def parse_callback(self, payload: Dict[str, Any]) -> PaymentResult:
        ...

    @abstractmethod
    def poll(self, payment_id: str) -> Optional[PaymentResult]:
        """Final result if the provider has one, None while it is still pending."""
        ...

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        return False


class CashOnDeliveryGateway(PaymentGateway):
    method = CASH_ON_DELIVERY

    def initiate(self, payment_id: str, order_id: str, amount: Decimal) -> InitiationAck:
        response = {"method": self.method, "settled": "on_initiation"}
        return InitiationAck(
            payment_id=payment_id,
            result=PaymentResult(payment_id=payment_id, success=True, provider_response=response),
            provider_response=response,
        )

    def parse_callback(self, payload: Dict[str, Any]) -> PaymentResult:
        raise GatewayError("Cash on delivery does not receive callbacks")

    def poll(self, payment_id: str) -> Optional[PaymentResult]:
        return None


class ProviderGateway(PaymentGateway):
    """HTTP provider with a REST initiation call, signed webhooks and a status endpoint."""

    def __init__(
        self,
        method: str,
        base_url: str,
        webhook_secret: str = PAYMENT_WEBHOOK_SECRET,
        callback_base_url: str = PAYMENT_CALLBACK_BASE_URL,
        currency: str = CURRENCY,
        timeout: int = 5,
    ):
        self.method = method
        self.base_url = base_url.rstrip("/")
        self.webhook_secret = webhook_secret
        self.callback_url = f"{callback_base_url.rstrip('/')}/payments/callbacks/{method}"
        self.currency = currency
        self.timeout = timeout

    @http_retry()
    def _post(self, path: str, body: dict) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"{self.method} POST {url}")
        resp = requests.post(url, json=body, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    @http_retry()
    def _get(self, path: str) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"{self.method} GET {url}")
        resp = requests.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _call(self, fn: Callable[..., dict], *args) -> dict:
        try:
            data = fn(*args)
        except (RequestException, ValueError) as e:
            #ValueError: odpowiedz nie jest jsonem
            logger.error(f"{self.method} provider call failed: {e}")
            raise GatewayError(f"Payment provider {self.method} unavailable: {e}")
        if not isinstance(data, dict):
            raise GatewayError(f"Payment provider {self.method} returned unrecognized response")
        return data

    def _amount(self, data: Dict[str, Any]) -> Optional[Decimal]:
        raw = data.get("amount")
        if raw is None:
            return None
        try:
            amount = Decimal(str(raw))
        except InvalidOperation:
            raise GatewayError(f"Payment provider {self.method} returned invalid amount '{raw}'")
        if not amount.is_finite():
            raise GatewayError(f"Payment provider {self.method} returned invalid amount '{raw}'")
        return amount

    def _to_result(self, payment_id: str, data: Dict[str, Any]) -> Optional[PaymentResult]:
        status = str(data.get("status", "")).lower()
        if status in SUCCESS_STATUSES:
            return PaymentResult(
                payment_id=payment_id,
                success=True,
                transaction_id=data.get("transaction_id"),
                provider_response=data,
                amount=self._amount(data),
            )
        if status in FAILURE_STATUSES:
            return PaymentResult(
                payment_id=payment_id,
                success=False,
                transaction_id=data.get("transaction_id"),
                provider_response=data,
                amount=self._amount(data),
            )
        if status in PENDING_STATUSES:
            return None
        raise GatewayError(f"Payment provider {self.method} returned unknown status '{status}'")

    def initiate(self, payment_id: str, order_id: str, amount: Decimal) -> InitiationAck:
        data = self._call(
            self._post,
            "/payments",
            {
                "payment_id": payment_id,
                "order_id": order_id,
                "amount": str(amount),
                "currency": self.currency,
                "callback_url": self.callback_url,
            },
        )
        return InitiationAck(
            payment_id=payment_id,
            result=self._to_result(payment_id, data),
            redirect_url=data.get("redirect_url"),
            provider_response=data,
        )

    def parse_callback(self, payload: Dict[str, Any]) -> PaymentResult:
        payment_id = payload.get("payment_id")
        if not payment_id:
            raise GatewayError(f"{self.method} callback without payment_id")
        result = self._to_result(str(payment_id), payload)
        if result is None:
            raise GatewayError(f"{self.method} callback does not carry a final status")
        return result

    def poll(self, payment_id: str) -> Optional[PaymentResult]:
        data = self._call(self._get, f"/payments/{payment_id}")
        return self._to_result(payment_id, data)

    def sign(self, body: bytes) -> str:
        return hmac.new(self.webhook_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.sign(body), signature)


class GatewayRegistry:
    def __init__(self, gateways: Dict[str, PaymentGateway]):
        self._gateways = dict(gateways)

    def for_method(self, method: str) -> PaymentGateway:
        gateway = self._gateways.get(method)
        if gateway is None:
            raise InvalidInput({"method": f"unsupported payment method, use one of {', '.join(PAYMENT_METHODS)}"})
        return gateway


def default_registry() -> GatewayRegistry:
    return GatewayRegistry(
        {
            CASH_ON_DELIVERY: CashOnDeliveryGateway(),
            BANK_TRANSFER: ProviderGateway(BANK_TRANSFER, BANK_TRANSFER_URL),
            E_WALLET_B: ProviderGateway(E_WALLET_B, E_WALLET_B_URL),
        }
    )


class CallbackDeduplicator:
    """At most one forwarding per (payment_id, transaction_id), shared by all processes through redis."""

    def __init__(self, url: str | None = None, client: redis.Redis | None = None, ttl: int = CALLBACK_DEDUP_TTL_SECONDS):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.ttl = ttl

    @staticmethod
    def _key(payment_id: str, transaction_id: Optional[str]) -> str:
        return f"payment:{payment_id}:callback:{transaction_id or '-'}"

    @redis_retry()
    def claim(self, payment_id: str, transaction_id: Optional[str]) -> bool:
        return bool(self.redis.set(self._key(payment_id, transaction_id), "1", nx=True, ex=self.ttl))

    @redis_retry()
    def release(self, payment_id: str, transaction_id: Optional[str]):
        self.redis.delete(self._key(payment_id, transaction_id))


class CallbackForwarder:
    """
    Verifies, normalizes and deduplicates a provider callback, then forwards
    the result to `settle`. Returns (result, forwarded); forwarded is False for
    a redelivery that was already handed to the ledger.
    """

    def __init__(self, registry: GatewayRegistry, deduplicator: CallbackDeduplicator):
        self.registry = registry
        self.deduplicator = deduplicator

    def handle(
        self,
        method: str,
        body: bytes,
        signature: Optional[str],
        settle: Callable[[PaymentResult], Any],
    ):
        gateway = self.registry.for_method(method)
        if not gateway.verify_signature(body, signature):
            logger.warning(f"Rejected {method} callback with bad signature")
            raise PermissionError("Invalid callback signature")

        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            raise GatewayError(f"{method} callback body is not JSON")
        if not isinstance(payload, dict):
            raise GatewayError(f"{method} callback body is not an object")

        result = gateway.parse_callback(payload)

        if not self.deduplicator.claim(result.payment_id, result.transaction_id):
            logger.info(f"Duplicate {method} callback for payment {result.payment_id} ignored")
            return result, False

        try:
            settle(result)
        except Exception:
            #ledger odrzucil, nastepna proba providera ma przejsc
            self.deduplicator.release(result.payment_id, result.transaction_id)
            raise
        return result, True
