"""
Base classes and types for payment providers.
Used by factory, reconciliation service and both providers (cloudpayments, signed_redirect).
"""
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from app.core.errors import SubscriptionBotError


@dataclass
class PaymentOrder:
    """What the user is about to pay for. description carries the correlation string."""
    amount: Decimal
    currency: str
    description: str
    email: str | None = None


@dataclass
class PaymentLink:
    """Where to send the user to pay."""
    url: str
    provider: str
    order_id: str | None = None


@dataclass
class PaymentNotification:
    """Authenticated, provider-neutral payment callback."""
    provider: str
    transaction_id: str
    status: str
    amount: Decimal
    currency: str
    description: str
    is_successful: bool
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResponse:
    """Exact body the provider expects in reply; anything else triggers retries."""
    status_code: int
    content: Any
    media_type: str = "application/json"


def parse_amount(value: Any) -> Decimal:
    """Gateway amounts arrive as strings or numbers; invalid -> Decimal(0)."""
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal(0)


class PaymentProvider(ABC):
    """Base class for payment providers."""

    name: str = ""

    def __init__(self, config: dict) -> None:
        self.config = config

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider is configured (credentials present)."""
        pass

    @abstractmethod
    def create_payment(self, order: PaymentOrder) -> PaymentLink:
        """Create a payment link. Raises PaymentGatewayError on gateway failure."""
        pass

    @abstractmethod
    def parse_notification(
        self,
        fields: Mapping[str, Any],
        headers: Mapping[str, str],
        raw_body: bytes,
        client_host: str | None = None,
    ) -> PaymentNotification:
        """Authenticate and normalize a callback. Raises AuthenticationFailed."""
        pass

    @abstractmethod
    def acknowledgement(self) -> ProviderResponse:
        """Reply that stops provider retries."""
        pass

    @abstractmethod
    def rejection(self, error: SubscriptionBotError) -> ProviderResponse:
        """Reply for a notification that will never be applied."""
        pass
