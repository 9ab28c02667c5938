from __future__ import annotations

import pytest

from checkout.clients.qpay_client import parse_invoice_response, parse_payment_response
from checkout.errors import GatewayInvoiceError
from checkout.utils.fields import extract_short_url, is_paid_response, paid_amount_from_response


@pytest.mark.parametrize(
    "payload",
    [
        {"status": "PAID"},
        {"payment_status": "paid"},
        {"paid": True},
        {"paid_amount": 500},
        {"paidAmount": "500"},
        {"rows": [{"payment_status": "NEW"}, {"payment_status": "PAID"}]},
        {"count": 1, "payments": [{"status": "PAID"}]},
    ],
)
def test_paid_signals(payload: dict) -> None:
    assert is_paid_response(payload) is True


@pytest.mark.parametrize(
    "payload",
    [
        {"status": "PENDING"},
        {},
        {"paid": "yes"},
        {"paid_amount": 0},
        {"rows": []},
        {"rows": [{"payment_status": "FAILED"}]},
    ],
)
def test_unpaid_signals(payload: dict) -> None:
    assert is_paid_response(payload) is False


def test_paid_amount_sums_paid_rows() -> None:
    payload = {
        "rows": [
            {"payment_status": "PAID", "payment_amount": "30000"},
            {"payment_status": "PAID", "payment_amount": 20000},
            {"payment_status": "FAILED", "payment_amount": 99999},
        ]
    }
    assert paid_amount_from_response(payload) == 50000
    assert parse_payment_response(payload).paid is True


def test_invoice_response_with_only_deep_links() -> None:
    invoice = parse_invoice_response(
        {
            "invoiceId": 987654,
            "urls": [
                {"name": "Khan bank", "link": "khanbank://q?qPay_QRcode=xyz"},
                {"name": "qPay wallet", "link": "https://s.qpay.mn/XyZ12"},
                {"name": "broken"},
            ],
        }
    )

    assert invoice.invoice_id == "987654"
    assert invoice.qr_text is None
    assert invoice.qr_image is None
    assert invoice.short_url == "https://s.qpay.mn/XyZ12"
    assert [link["name"] for link in invoice.deep_links] == ["Khan bank", "qPay wallet"]


def test_invoice_response_prefers_first_matching_key() -> None:
    invoice = parse_invoice_response(
        {
            "invoice_id": "primary",
            "id": "secondary",
            "qr_text": "",
            "qrString": "fallback-qr",
            "qPay_shortUrl": "https://s.qpay.mn/explicit",
        }
    )
    assert invoice.invoice_id == "primary"
    assert invoice.qr_text == "fallback-qr"
    assert invoice.short_url == "https://s.qpay.mn/explicit"


def test_short_url_falls_back_to_first_deep_link() -> None:
    links = [{"link": "bank://pay?id=1"}, {"link": "other://pay"}]
    assert extract_short_url({}, links) == "bank://pay?id=1"
    assert extract_short_url({}, []) is None


@pytest.mark.parametrize("payload", [None, [], "ok", {"qr_text": "abc"}])
def test_invoice_response_without_id_is_gateway_error(payload) -> None:
    with pytest.raises(GatewayInvoiceError):
        parse_invoice_response(payload)
