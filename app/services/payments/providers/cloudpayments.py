"""
CloudPayments provider: hosted checkout (orders/create) + Pay notification webhook.
"""
import base64
import hashlib
import hmac
import logging
from collections.abc import Mapping
from typing import Any

import httpx
import pybreaker

from app.core.errors import (
    AuthenticationFailed,
    MalformedCorrelation,
    PaymentGatewayError,
    SubscriptionBotError,
)
from app.services.payments.base import (
    PaymentLink,
    PaymentNotification,
    PaymentOrder,
    PaymentProvider,
    ProviderResponse,
    parse_amount,
)
from app.utils.metrics import payment_gateway_requests_total

logger = logging.getLogger(__name__)

HMAC_HEADERS = ("content-hmac", "x-content-hmac")
COMPLETED_STATUS = "Completed"

# Pay приходит по уже списанному платежу: для него определён только {"code": 0}.
# Коды 10/11/13 относятся к уведомлению Check (до списания), здесь не используются.
# Отказ по Pay (битый заказ, неизвестный пользователь) подтверждаем кодом 0:
# повтор того же тела ничего не исправит. Отказ логируется и считается в метриках.
CODE_OK = 0


class CloudPaymentsProvider(PaymentProvider):
    """CloudPayments hosted checkout."""

    name = "cloudpayments"

    def __init__(self, config: dict):
        super().__init__(config)
        self.public_id = config.get("public_id", "")
        self.api_secret = config.get("api_secret", "")
        self.api_url = config.get("api_url", "https://api.cloudpayments.ru").rstrip("/")
        self.verify_hmac = config.get("verify_hmac", True)
        self.trusted_ips: set[str] = set(config.get("trusted_ips") or ())
        self.timeout = config.get("timeout", 10.0)
        self.breaker: pybreaker.CircuitBreaker | None = config.get("breaker")

    def is_available(self) -> bool:
        return bool(self.public_id and self.api_secret)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create_payment(self, order: PaymentOrder) -> PaymentLink:
        if not self.is_available():
            raise PaymentGatewayError("CloudPayments provider not configured")
        payload = {
            "Amount": float(order.amount),
            "Currency": order.currency,
            "Description": order.description,
            "RequireConfirmation": False,
        }
        if order.email:
            payload["Email"] = order.email
        try:
            if self.breaker is not None:
                data = self.breaker.call(self._post, "/orders/create", payload)
            else:
                data = self._post("/orders/create", payload)
        except pybreaker.CircuitBreakerError as e:
            payment_gateway_requests_total.labels(provider=self.name, status="circuit_open").inc()
            raise PaymentGatewayError("CloudPayments temporarily unavailable") from e

        if not data.get("Success"):
            payment_gateway_requests_total.labels(provider=self.name, status="rejected").inc()
            raise PaymentGatewayError(
                "CloudPayments rejected order",
                detail={"message": data.get("Message")},
            )
        model = data.get("Model") or {}
        url = model.get("Url")
        if not url:
            raise PaymentGatewayError("CloudPayments response has no payment URL")
        payment_gateway_requests_total.labels(provider=self.name, status="success").inc()
        return PaymentLink(url=url, provider=self.name, order_id=model.get("Id"))

    def _post(self, path: str, payload: dict) -> dict:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    f"{self.api_url}{path}",
                    json=payload,
                    auth=(self.public_id, self.api_secret),
                )
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            payment_gateway_requests_total.labels(provider=self.name, status="error").inc()
            logger.warning("cloudpayments_request_failed", extra={"error": str(e), "path": path})
            raise PaymentGatewayError(f"CloudPayments request failed: {type(e).__name__}") from e

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def parse_notification(
        self,
        fields: Mapping[str, Any],
        headers: Mapping[str, str],
        raw_body: bytes,
        client_host: str | None = None,
    ) -> PaymentNotification:
        self._authenticate(headers, raw_body, client_host)

        transaction_id = str(fields.get("TransactionId") or "").strip()
        if not transaction_id:
            raise MalformedCorrelation("missing TransactionId")
        status = str(fields.get("Status") or "")
        return PaymentNotification(
            provider=self.name,
            transaction_id=transaction_id,
            status=status,
            amount=parse_amount(fields.get("Amount")),
            currency=str(fields.get("Currency") or ""),
            description=str(fields.get("Description") or fields.get("InvoiceId") or ""),
            is_successful=status == COMPLETED_STATUS,
            raw=dict(fields),
        )

    def expected_hmac(self, raw_body: bytes) -> str:
        digest = hmac.new(self.api_secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def _authenticate(self, headers: Mapping[str, str], raw_body: bytes, client_host: str | None) -> None:
        if self.verify_hmac:
            if not self.api_secret:
                raise AuthenticationFailed("HMAC verification enabled without api secret")
            lowered = {k.lower(): v for k, v in headers.items()}
            provided = [lowered[h] for h in HMAC_HEADERS if lowered.get(h)]
            if not provided:
                raise AuthenticationFailed("missing Content-HMAC header")
            expected = self.expected_hmac(raw_body)
            if not any(hmac.compare_digest(p, expected) for p in provided):
                raise AuthenticationFailed("Content-HMAC mismatch")
            return

        # Без подписи остаётся только проверка источника: слабее, чем HMAC.
        if self.trusted_ips:
            if client_host not in self.trusted_ips:
                raise AuthenticationFailed("untrusted source", detail={"client_host": client_host})
            return
        logger.warning("payment_notification_unauthenticated", extra={"provider": self.name})

    def acknowledgement(self) -> ProviderResponse:
        return ProviderResponse(status_code=200, content={"code": CODE_OK})

    def rejection(self, error: SubscriptionBotError) -> ProviderResponse:
        if isinstance(error, AuthenticationFailed):
            return ProviderResponse(status_code=401, content={"detail": "Unauthorized"})
        return ProviderResponse(status_code=200, content={"code": CODE_OK})
