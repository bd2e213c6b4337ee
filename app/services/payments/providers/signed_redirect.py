"""
Signed redirect gateway: payment URL is built and signed locally,
the gateway calls back with the same signature scheme (see app.services.payments.signature).
"""
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from app.core.errors import (
    AuthenticationFailed,
    MalformedCorrelation,
    PaymentGatewayError,
    SubscriptionBotError,
)
from app.services.payments import signature
from app.services.payments.base import (
    PaymentLink,
    PaymentNotification,
    PaymentOrder,
    PaymentProvider,
    ProviderResponse,
    parse_amount,
)

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({"success", "paid", "completed"})


class SignedRedirectProvider(PaymentProvider):
    """Redirect gateway with sorted key:value + secret signature."""

    name = "signed_redirect"

    def __init__(self, config: dict):
        super().__init__(config)
        self.gateway_url = config.get("gateway_url", "")
        self.merchant_id = config.get("merchant_id", "")
        self.secret = config.get("secret", "")

    def is_available(self) -> bool:
        return bool(self.gateway_url and self.merchant_id and self.secret)

    def create_payment(self, order: PaymentOrder) -> PaymentLink:
        if not self.is_available():
            raise PaymentGatewayError("Signed redirect provider not configured")
        fields = {
            "merchant_id": self.merchant_id,
            "order_id": order.description,
            "amount": f"{order.amount:.2f}",
            "currency": order.currency,
        }
        if order.email:
            fields["email"] = order.email
        fields[signature.SIGNATURE_FIELD] = signature.sign(fields, self.secret)
        return PaymentLink(
            url=f"{self.gateway_url}?{urlencode(fields)}",
            provider=self.name,
            order_id=order.description,
        )

    def parse_notification(
        self,
        fields: Mapping[str, Any],
        headers: Mapping[str, str],
        raw_body: bytes,
        client_host: str | None = None,
    ) -> PaymentNotification:
        if not signature.verify(fields, self.secret):
            raise AuthenticationFailed("signature mismatch")
        if str(fields.get("merchant_id") or "") != self.merchant_id:
            raise AuthenticationFailed("foreign merchant_id")

        transaction_id = str(fields.get("transaction_id") or "").strip()
        if not transaction_id:
            raise MalformedCorrelation("missing transaction_id")
        status = str(fields.get("status") or "")
        return PaymentNotification(
            provider=self.name,
            transaction_id=transaction_id,
            status=status,
            amount=parse_amount(fields.get("amount")),
            currency=str(fields.get("currency") or ""),
            description=str(fields.get("order_id") or ""),
            is_successful=status.lower() in SUCCESS_STATUSES,
            raw=dict(fields),
        )

    def acknowledgement(self) -> ProviderResponse:
        return ProviderResponse(status_code=200, content="OK", media_type="text/plain")

    def rejection(self, error: SubscriptionBotError) -> ProviderResponse:
        if isinstance(error, AuthenticationFailed):
            return ProviderResponse(status_code=401, content="Unauthorized", media_type="text/plain")
        return ProviderResponse(status_code=400, content="Rejected", media_type="text/plain")
