"""Invoice dispatch -- POST a rendered account statement to the email endpoint.

The endpoint (a mail-sending function) receives the totals already computed
by the engine plus the PDF as base64; it never recomputes amounts.
Never logs the payload or the endpoint URL.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional

import httpx

from cafeteria_billing.core.billing.invoice import Invoice, invoice_filename
from cafeteria_billing.core.billing.models import Company
from cafeteria_billing.core.errors import DispatchError

logger = logging.getLogger("cafeteria.billing")


def build_dispatch_payload(
    invoice: Invoice,
    company: Company,
    pdf_bytes: Optional[bytes] = None,
) -> Dict[str, Any]:
    """JSON body for the email endpoint."""
    inv = invoice.invoice
    payload: Dict[str, Any] = {
        "invoice_id": invoice.invoice_id,
        "company_id": company.id,
        "company_name": company.name,
        "billing_email": company.billing_email,
        "period": inv.period,
        "total_meals": inv.billed_meals,
        "actual_meals": inv.actual_meals,
        "total_amount": str(inv.total),
        "currency": "MXN",
    }
    if pdf_bytes is not None:
        payload["pdf_base64"] = base64.b64encode(pdf_bytes).decode("ascii")
        payload["filename"] = invoice_filename(invoice, "pdf")
    return payload


def send_invoice(
    invoice: Invoice,
    company: Company,
    url: str,
    pdf_bytes: Optional[bytes] = None,
    http_client: Optional[Any] = None,
    timeout: float = 10.0,
) -> Dict[str, Any]:
    """Send one invoice. Raises DispatchError on any failure.

    Returns {"invoice_id", "billing_email", "status_code"} on success.
    """
    if not url:
        raise DispatchError("Invoice dispatch endpoint is not configured.")
    if not company.billing_email:
        raise DispatchError(f"Company {company.id} has no billing email configured.")

    payload = build_dispatch_payload(invoice, company, pdf_bytes)
    client = http_client or httpx.Client(timeout=timeout)
    try:
        resp = client.post(url, json=payload, timeout=timeout)
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.warning(
            "dispatch: endpoint rejected invoice=%s status=%s",
            invoice.invoice_id, e.response.status_code,
        )
        raise DispatchError(
            f"Email endpoint returned {e.response.status_code} for {invoice.invoice_id}."
        ) from e
    except httpx.HTTPError as e:
        logger.warning("dispatch: transport error invoice=%s: %s", invoice.invoice_id, type(e).__name__)
        raise DispatchError(f"Could not reach the email endpoint: {type(e).__name__}.") from e
    finally:
        if http_client is None:
            client.close()

    logger.info(
        "dispatch: sent invoice=%s company=%s period=%s",
        invoice.invoice_id, company.id, invoice.invoice.period,
    )
    return {
        "invoice_id": invoice.invoice_id,
        "billing_email": company.billing_email,
        "status_code": getattr(resp, "status_code", 200),
    }
