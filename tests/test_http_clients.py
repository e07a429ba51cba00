from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import httpx
import pytest

from ledenbeheer.errors import MailerError, PaymentProviderError
from ledenbeheer.services.mailer import ResendMailer
from ledenbeheer.services.payment_provider import MolliePaymentProvider

MOLLIE_BASE = "https://api.mollie.test/v2"

PAYMENT_BODY = {
    "id": "tr_abc",
    "status": "paid",
    "amount": {"currency": "EUR", "value": "12.50"},
    "paidAt": "2026-03-14T09:30:00+00:00",
    "metadata": {"donation_id": "4"},
    "_links": {"checkout": {"href": "https://checkout.example/tr_abc"}},
}


def _response(method, url, status_code=200, body=None):
    return httpx.Response(status_code, json=body or {}, request=httpx.Request(method, url))


def test_mollie_create_payment_sends_payload():
    provider = MolliePaymentProvider("test_key", MOLLIE_BASE + "/")
    with patch(
        "httpx.post",
        return_value=_response("POST", MOLLIE_BASE + "/payments", body=PAYMENT_BODY),
    ) as post:
        payment = provider.create_payment(
            amount=Decimal("12.5"),
            description="Donatie",
            redirect_url="https://leden.example/donate/success?donation_id=4",
            webhook_url="https://leden.example/webhooks/mollie",
            metadata={"donation_id": "4"},
        )

    args, kwargs = post.call_args
    assert args[0] == MOLLIE_BASE + "/payments"
    assert kwargs["headers"] == {"Authorization": "Bearer test_key"}
    assert kwargs["json"]["amount"] == {"currency": "EUR", "value": "12.50"}
    assert kwargs["json"]["webhookUrl"] == "https://leden.example/webhooks/mollie"
    assert payment.checkout_url == "https://checkout.example/tr_abc"
    assert payment.amount == Decimal("12.50")


def test_mollie_get_payment_parses_resource():
    provider = MolliePaymentProvider("test_key", MOLLIE_BASE)
    with patch(
        "httpx.get",
        return_value=_response("GET", MOLLIE_BASE + "/payments/tr_abc", body=PAYMENT_BODY),
    ):
        payment = provider.get_payment("tr_abc")

    assert payment.status == "paid"
    assert payment.metadata == {"donation_id": "4"}
    assert payment.paid_at == datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def test_mollie_http_error_is_wrapped():
    provider = MolliePaymentProvider("test_key", MOLLIE_BASE)
    with patch(
        "httpx.get",
        return_value=_response("GET", MOLLIE_BASE + "/payments/tr_x", status_code=404),
    ):
        with pytest.raises(PaymentProviderError):
            provider.get_payment("tr_x")


def test_mollie_without_key_does_not_call_api():
    provider = MolliePaymentProvider("", MOLLIE_BASE)
    with patch("httpx.get") as get:
        with pytest.raises(PaymentProviderError):
            provider.get_payment("tr_x")

    get.assert_not_called()


def test_resend_send_posts_email():
    mailer = ResendMailer("re_key", "Vereniging <info@voorbeeld.be>", "https://api.resend.test")
    with patch(
        "httpx.post",
        return_value=_response("POST", "https://api.resend.test/emails", body={"id": "m1"}),
    ) as post:
        mailer.send("jan@voorbeeld.be", "Hallo", "<p>x</p>")

    args, kwargs = post.call_args
    assert args[0] == "https://api.resend.test/emails"
    assert kwargs["json"] == {
        "from": "Vereniging <info@voorbeeld.be>",
        "to": ["jan@voorbeeld.be"],
        "subject": "Hallo",
        "html": "<p>x</p>",
    }


def test_resend_connection_error_is_wrapped():
    mailer = ResendMailer("re_key", "info@voorbeeld.be", "https://api.resend.test")
    with patch("httpx.post", side_effect=httpx.ConnectError("down")):
        with pytest.raises(MailerError):
            mailer.send("jan@voorbeeld.be", "Hallo", "<p>x</p>")


def test_resend_without_key_is_unconfigured():
    mailer = ResendMailer("", "info@voorbeeld.be", "https://api.resend.test")

    assert mailer.is_configured() is False
    with pytest.raises(MailerError):
        mailer.send("jan@voorbeeld.be", "Hallo", "<p>x</p>")


@pytest.mark.parametrize("payment_id", ["../customers", "tr_x/refunds", "tr_x\n", "", "ord_123"])
def test_mollie_rejects_malformed_payment_id(payment_id):
    provider = MolliePaymentProvider("test_key", MOLLIE_BASE)
    with patch("httpx.get") as get:
        with pytest.raises(PaymentProviderError):
            provider.get_payment(payment_id)

    get.assert_not_called()
