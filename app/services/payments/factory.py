"""
Factory for creating payment providers based on configuration.
"""
import logging
from typing import Optional

from app.services.circuit_breaker import get_circuit_breaker
from app.services.payments.base import PaymentProvider
from app.services.payments.providers.cloudpayments import CloudPaymentsProvider
from app.services.payments.providers.signed_redirect import SignedRedirectProvider

logger = logging.getLogger(__name__)


class PaymentProviderFactory:
    """Factory for creating payment providers."""

    PROVIDERS = {
        "cloudpayments": CloudPaymentsProvider,
        "signed_redirect": SignedRedirectProvider,
    }

    @classmethod
    def create(cls, provider_name: str, config: dict) -> PaymentProvider:
        """
        Create provider instance by name.

        Raises:
            ValueError: If provider name is unknown
        """
        provider_class = cls.PROVIDERS.get(provider_name.strip().lower())
        if not provider_class:
            available = ", ".join(cls.PROVIDERS.keys())
            raise ValueError(
                f"Unknown payment provider: {provider_name}. "
                f"Available providers: {available}"
            )

        provider = provider_class(config)
        if not provider.is_available():
            logger.warning("payment_provider_not_configured", extra={"provider": provider_name})
        return provider

    @classmethod
    def create_from_settings(cls, settings, provider_override: Optional[str] = None) -> PaymentProvider:
        """
        Create provider from application settings.

        Args:
            settings: Application settings object
            provider_override: Use this provider instead of settings.payment_provider
                (each webhook route is bound to its own provider)
        """
        provider_name = (provider_override or "").strip().lower() or settings.payment_provider

        if provider_name == "cloudpayments":
            config = {
                "public_id": settings.cloudpayments_public_id,
                "api_secret": settings.cloudpayments_api_secret,
                "api_url": settings.cloudpayments_api_url,
                "verify_hmac": settings.cloudpayments_verify_hmac,
                "trusted_ips": settings.trusted_payment_ips_set,
                "timeout": settings.http_client_timeout,
                "breaker": get_circuit_breaker("payments:cloudpayments"),
            }
        elif provider_name == "signed_redirect":
            config = {
                "gateway_url": settings.signed_gateway_url,
                "merchant_id": settings.signed_gateway_merchant_id,
                "secret": settings.signed_gateway_secret,
            }
        else:
            raise ValueError(f"Provider {provider_name} not supported in settings")

        return cls.create(provider_name, config)
