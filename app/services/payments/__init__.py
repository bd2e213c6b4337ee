from .base import (
    PaymentLink,
    PaymentNotification,
    PaymentOrder,
    PaymentProvider,
    ProviderResponse,
)
from .factory import PaymentProviderFactory
from .hooks import Grant, run_post_commit_hooks
from .service import (
    PaymentReconciliationService,
    ReconciliationResult,
    create_payment_link,
)

__all__ = [
    "Grant",
    "PaymentLink",
    "PaymentNotification",
    "PaymentOrder",
    "PaymentProvider",
    "PaymentProviderFactory",
    "PaymentReconciliationService",
    "ProviderResponse",
    "ReconciliationResult",
    "create_payment_link",
    "run_post_commit_hooks",
]
