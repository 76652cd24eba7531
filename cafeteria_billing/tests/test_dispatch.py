"""Tests for invoice dispatch to the email endpoint."""

from __future__ import annotations

import base64
from unittest.mock import MagicMock

import httpx
import pytest

from cafeteria_billing.core.billing.dispatch import build_dispatch_payload, send_invoice
from cafeteria_billing.core.billing.invoice import create_invoice
from cafeteria_billing.core.billing.metering import compute_invoice
from cafeteria_billing.core.errors import DispatchError
from cafeteria_billing.tests.conftest import meals

URL = "https://mail.example.test/send-invoice"


@pytest.fixture
def acme_invoice(acme):
    return create_invoice(compute_invoice(acme, meals("acme", 2, 250), "2026-03"))


class TestPayload:
    def test_totals_come_from_invoice(self, acme, acme_invoice):
        payload = build_dispatch_payload(acme_invoice, acme)
        assert payload["invoice_id"] == acme_invoice.invoice_id
        assert payload["billing_email"] == "facturas@acme.example"
        assert payload["total_meals"] == 18 * 300
        assert payload["actual_meals"] == 250
        assert payload["total_amount"] == "432000.00"
        assert payload["currency"] == "MXN"
        assert "pdf_base64" not in payload

    def test_pdf_attached(self, acme, acme_invoice):
        payload = build_dispatch_payload(acme_invoice, acme, pdf_bytes=b"%PDF-1.4")
        assert base64.b64decode(payload["pdf_base64"]) == b"%PDF-1.4"
        assert payload["filename"] == "factura-acme-foods-2026-03.pdf"


class TestSend:
    def test_success(self, acme, acme_invoice):
        client = MagicMock()
        client.post.return_value = MagicMock(status_code=200)
        result = send_invoice(acme_invoice, acme, URL, http_client=client, timeout=3.0)
        assert result == {
            "invoice_id": acme_invoice.invoice_id,
            "billing_email": "facturas@acme.example",
            "status_code": 200,
        }
        args, kwargs = client.post.call_args
        assert args[0] == URL
        assert kwargs["json"]["period"] == "2026-03"
        assert kwargs["timeout"] == 3.0
        client.close.assert_not_called()

    def test_missing_url(self, acme, acme_invoice):
        with pytest.raises(DispatchError):
            send_invoice(acme_invoice, acme, "", http_client=MagicMock())

    def test_missing_email(self, globex):
        inv = create_invoice(compute_invoice(globex, meals("globex", 2, 1), "2026-03"))
        client = MagicMock()
        with pytest.raises(DispatchError, match="billing email"):
            send_invoice(inv, globex, URL, http_client=client)
        client.post.assert_not_called()

    def test_endpoint_error_status(self, acme, acme_invoice):
        request = httpx.Request("POST", URL)
        response = httpx.Response(500, request=request)
        client = MagicMock()
        client.post.return_value = response
        with pytest.raises(DispatchError, match="500"):
            send_invoice(acme_invoice, acme, URL, http_client=client)

    def test_transport_error(self, acme, acme_invoice):
        client = MagicMock()
        client.post.side_effect = httpx.ConnectError("refused")
        with pytest.raises(DispatchError, match="ConnectError"):
            send_invoice(acme_invoice, acme, URL, http_client=client)
