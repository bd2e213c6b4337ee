"""CloudPayments and signed redirect providers: auth, parsing, acks, checkout."""
import base64
import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pybreaker
import pytest

from app.core.errors import AuthenticationFailed, MalformedCorrelation, PaymentGatewayError, UnknownUser
from app.services.payments import signature
from app.services.payments.base import PaymentOrder
from app.services.payments.factory import PaymentProviderFactory
from app.services.payments.providers.cloudpayments import CloudPaymentsProvider
from app.services.payments.providers.signed_redirect import SignedRedirectProvider

CP_SECRET = "cp_secret"


def _cp(**overrides) -> CloudPaymentsProvider:
    config = {"public_id": "pk_test", "api_secret": CP_SECRET, "api_url": "https://cp.test"}
    config.update(overrides)
    return CloudPaymentsProvider(config)


def _hmac(body: bytes, secret: str = CP_SECRET) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


CP_FIELDS = {
    "TransactionId": 1001,
    "Status": "Completed",
    "Amount": 1490,
    "Currency": "RUB",
    "Description": "42_1_1",
}


class TestCloudPaymentsNotification:
    def test_valid_hmac(self):
        body = json.dumps(CP_FIELDS).encode()
        n = _cp().parse_notification(CP_FIELDS, {"Content-HMAC": _hmac(body)}, body)
        assert n.transaction_id == "1001"
        assert n.is_successful is True
        assert n.amount == Decimal("1490")
        assert n.description == "42_1_1"
        assert n.provider == "cloudpayments"

    def test_x_content_hmac_header_accepted(self):
        body = b"TransactionId=1001&Status=Completed"
        n = _cp().parse_notification(
            {"TransactionId": "1001", "Status": "Completed"},
            {"x-content-hmac": _hmac(body)},
            body,
        )
        assert n.transaction_id == "1001"

    def test_wrong_hmac_rejected(self):
        body = json.dumps(CP_FIELDS).encode()
        with pytest.raises(AuthenticationFailed):
            _cp().parse_notification(CP_FIELDS, {"Content-HMAC": _hmac(body, "other")}, body)

    def test_tampered_body_rejected(self):
        body = json.dumps(CP_FIELDS).encode()
        signed = _hmac(body)
        tampered = json.dumps(dict(CP_FIELDS, Amount=1)).encode()
        with pytest.raises(AuthenticationFailed):
            _cp().parse_notification(dict(CP_FIELDS, Amount=1), {"Content-HMAC": signed}, tampered)

    def test_missing_hmac_rejected(self):
        with pytest.raises(AuthenticationFailed):
            _cp().parse_notification(CP_FIELDS, {}, b"{}")

    def test_ip_allow_list_when_hmac_disabled(self):
        provider = _cp(verify_hmac=False, trusted_ips={"10.0.0.1"})
        assert provider.parse_notification(CP_FIELDS, {}, b"", client_host="10.0.0.1").transaction_id == "1001"
        with pytest.raises(AuthenticationFailed):
            provider.parse_notification(CP_FIELDS, {}, b"", client_host="10.0.0.2")

    def test_non_completed_status_is_not_successful(self):
        body = b"x"
        fields = dict(CP_FIELDS, Status="Declined")
        n = _cp().parse_notification(fields, {"Content-HMAC": _hmac(body)}, body)
        assert n.is_successful is False

    def test_missing_transaction_id(self):
        body = b"x"
        fields = {k: v for k, v in CP_FIELDS.items() if k != "TransactionId"}
        with pytest.raises(MalformedCorrelation):
            _cp().parse_notification(fields, {"Content-HMAC": _hmac(body)}, body)

    def test_acknowledgement_and_rejections(self):
        provider = _cp()
        assert provider.acknowledgement().content == {"code": 0}
        # Pay notifications only define code 0
        assert provider.rejection(MalformedCorrelation("x")).content == {"code": 0}
        assert provider.rejection(UnknownUser("x")).content == {"code": 0}
        assert provider.rejection(AuthenticationFailed("x")).status_code == 401


class TestCloudPaymentsCheckout:
    ORDER = PaymentOrder(amount=Decimal("1490"), currency="RUB", description="42_1_1", email="a@b.c")

    def test_returns_model_url(self):
        provider = _cp()
        response = {"Success": True, "Model": {"Id": "ord-1", "Url": "https://pay.cp/ord-1"}}
        with patch.object(provider, "_post", return_value=response) as post:
            link = provider.create_payment(self.ORDER)
        assert link.url == "https://pay.cp/ord-1"
        assert link.order_id == "ord-1"
        path, payload = post.call_args.args
        assert path == "/orders/create"
        assert payload["Description"] == "42_1_1"
        assert payload["Amount"] == 1490.0
        assert payload["Email"] == "a@b.c"
        assert payload["RequireConfirmation"] is False

    def test_unsuccessful_response(self):
        provider = _cp()
        with patch.object(provider, "_post", return_value={"Success": False, "Message": "bad"}):
            with pytest.raises(PaymentGatewayError):
                provider.create_payment(self.ORDER)

    def test_open_breaker_is_gateway_error(self):
        breaker = MagicMock()
        breaker.call.side_effect = pybreaker.CircuitBreakerError("open")
        with pytest.raises(PaymentGatewayError):
            _cp(breaker=breaker).create_payment(self.ORDER)

    def test_not_configured(self):
        with pytest.raises(PaymentGatewayError):
            _cp(public_id="").create_payment(self.ORDER)


def _redirect() -> SignedRedirectProvider:
    return SignedRedirectProvider(
        {"gateway_url": "https://gw.test/pay", "merchant_id": "m-1", "secret": "gw_secret"}
    )


def _callback(**overrides) -> dict:
    fields = {
        "merchant_id": "m-1",
        "order_id": "42_2_3",
        "amount": "13390.00",
        "currency": "RUB",
        "transaction_id": "tx-9",
        "status": "success",
    }
    fields.update(overrides)
    fields["signature"] = signature.sign(fields, "gw_secret")
    return fields


class TestSignedRedirect:
    def test_payment_url_is_signed(self):
        link = _redirect().create_payment(
            PaymentOrder(amount=Decimal("1490"), currency="RUB", description="42_1_1")
        )
        query = {k: v[0] for k, v in parse_qs(urlparse(link.url).query).items()}
        assert link.url.startswith("https://gw.test/pay?")
        assert query["amount"] == "1490.00"
        assert query["order_id"] == "42_1_1"
        assert signature.verify(query, "gw_secret")

    def test_valid_callback(self):
        n = _redirect().parse_notification(_callback(), {}, b"")
        assert n.transaction_id == "tx-9"
        assert n.description == "42_2_3"
        assert n.amount == Decimal("13390.00")
        assert n.is_successful is True

    def test_altered_amount_rejected(self):
        fields = _callback()
        fields["amount"] = "1.00"
        with pytest.raises(AuthenticationFailed):
            _redirect().parse_notification(fields, {}, b"")

    def test_altered_order_id_rejected(self):
        fields = _callback()
        fields["order_id"] = "43_2_3"
        with pytest.raises(AuthenticationFailed):
            _redirect().parse_notification(fields, {}, b"")

    def test_foreign_merchant_rejected(self):
        with pytest.raises(AuthenticationFailed):
            _redirect().parse_notification(_callback(merchant_id="m-2"), {}, b"")

    def test_failed_status(self):
        assert _redirect().parse_notification(_callback(status="fail"), {}, b"").is_successful is False

    def test_ack_is_plain_ok(self):
        ack = _redirect().acknowledgement()
        assert (ack.status_code, ack.content, ack.media_type) == (200, "OK", "text/plain")
        assert _redirect().rejection(MalformedCorrelation("x")).status_code == 400


class TestFactory:
    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            PaymentProviderFactory.create("paypal", {})

    def test_from_settings_signed_redirect(self):
        from app.core.config import settings

        provider = PaymentProviderFactory.create_from_settings(settings, "signed_redirect")
        assert isinstance(provider, SignedRedirectProvider)
        assert provider.is_available()

    def test_from_settings_cloudpayments_gets_breaker(self):
        from app.core.config import settings

        with patch("app.services.payments.factory.get_circuit_breaker") as get_breaker:
            provider = PaymentProviderFactory.create_from_settings(settings, "cloudpayments")
        assert isinstance(provider, CloudPaymentsProvider)
        assert provider.breaker is get_breaker.return_value
        get_breaker.assert_called_once_with("payments:cloudpayments")
