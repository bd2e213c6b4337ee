"""
Error taxonomy shared by the entitlement, payment and messaging layers.
"""
from typing import Any


class SubscriptionBotError(Exception):
    """Base error; detail holds structured fields for logging, never for users."""

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


class AuthenticationFailed(SubscriptionBotError):
    """Payment notification signature is missing, wrong, or the source is untrusted."""


class MalformedCorrelation(SubscriptionBotError):
    """Order identifier does not decode to user/tier/duration."""


class PlanMismatch(MalformedCorrelation):
    """Correlation decodes, but duration or paid amount does not match a sold plan."""


class UnknownUser(SubscriptionBotError):
    """Payment references a user id that has no record."""


class SubscriptionNotFound(SubscriptionBotError):
    """User has never subscribed. Callers treat it as "no active entitlement"."""


class DuplicateTransaction(SubscriptionBotError):
    """Transaction already applied. Not a failure: the caller answers success."""


class TransientIOError(SubscriptionBotError):
    """Downstream call failed or timed out; safe to log and retry later."""


class TelegramAPIError(TransientIOError):
    def __init__(self, message: str, error_code: int = 0, detail: dict[str, Any] | None = None):
        super().__init__(message, detail)
        self.error_code = error_code


class PaymentGatewayError(TransientIOError):
    """Hosted checkout API returned an error or could not be reached."""
