"""Invoice artifact generation -- JSON, CSV, optional PDF.

Deterministic invoice IDs: SHA256(company_id + period).
Artifacts print MonthlyInvoice rows verbatim; nothing here recomputes billing.
"""

from __future__ import annotations

import csv
import hashlib
import io
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from cafeteria_billing.core.billing.models import MonthlyInvoice
from cafeteria_billing.core.billing.pricing import cents_to_decimal, format_cents

CSV_COLUMNS = ["date", "actual_meals", "billed_meals", "unit_price", "subtotal"]

_WEEKDAY_LABELS = ["Dom", "Lun", "Mar", "Mié", "Jue", "Vie", "Sáb"]


@dataclass
class Invoice:
    """A MonthlyInvoice with an ID and generation metadata."""

    invoice_id: str
    customer: str  # company_id
    generated_at: float
    invoice: MonthlyInvoice

    def to_dict(self) -> Dict[str, Any]:
        d = self.invoice.to_dict()
        d["invoice_id"] = self.invoice_id
        d["customer"] = self.customer
        d["generated_at"] = self.generated_at
        return d


def deterministic_invoice_id(company_id: str, period: str) -> str:
    """SHA256-based deterministic invoice ID."""
    raw = f"{company_id}:{period}"
    h = hashlib.sha256(raw.encode()).hexdigest()[:16]
    return f"inv-{h}"


def create_invoice(monthly: MonthlyInvoice) -> Invoice:
    """Create an Invoice from a computed MonthlyInvoice."""
    return Invoice(
        invoice_id=deterministic_invoice_id(monthly.company_id, monthly.period),
        customer=monthly.company_id,
        generated_at=time.time(),
        invoice=monthly,
    )


def invoice_filename(invoice: Invoice, ext: str) -> str:
    """Human-friendly file name, e.g. ``factura-acme-foods-2026-03.pdf``."""
    slug = "-".join(invoice.invoice.company_name.lower().split()) or invoice.customer
    return f"factura-{slug}-{invoice.invoice.period}.{ext}"


def render_invoice_csv(invoice: Invoice) -> str:
    """Invoice line items as a CSV string with a trailing TOTAL row."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_COLUMNS)
    for row in invoice.invoice.rows:
        writer.writerow([
            row.date.isoformat(),
            row.actual_count,
            row.billed_count,
            str(cents_to_decimal(row.unit_price_cents)),
            str(row.subtotal),
        ])
    writer.writerow([
        "TOTAL",
        invoice.invoice.actual_meals,
        invoice.invoice.billed_meals,
        "",
        str(invoice.invoice.total),
    ])
    return buf.getvalue()


def write_invoice_json(invoice: Invoice, out_dir: str) -> str:
    """Write invoice as JSON. Returns file path."""
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)
    path = p / f"{invoice.invoice_id}.json"
    path.write_text(json.dumps(invoice.to_dict(), indent=2, default=str))
    return str(path)


def write_invoice_csv(invoice: Invoice, out_dir: str) -> str:
    """Write invoice line items as CSV. Returns file path."""
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)
    path = p / f"{invoice.invoice_id}.csv"
    path.write_text(render_invoice_csv(invoice))
    return str(path)


def render_invoice_pdf(invoice: Invoice) -> Optional[bytes]:
    """Render the account statement as PDF bytes if reportlab is available, else None."""
    try:
        from reportlab.lib.pagesizes import A4
        from reportlab.pdfgen import canvas as pdf_canvas
    except ImportError:
        return None

    inv = invoice.invoice
    buf = io.BytesIO()
    c = pdf_canvas.Canvas(buf, pagesize=A4)
    w, h = A4
    y = h - 50

    c.setFont("Helvetica-Bold", 16)
    c.drawCentredString(w / 2, y, "ESTADO DE CUENTA")
    y -= 30
    c.setFont("Helvetica", 10)
    c.drawString(50, y, f"Empresa: {inv.company_name}")
    y -= 15
    c.drawString(50, y, f"Período: {inv.period}")
    y -= 15
    c.drawString(50, y, f"Factura: {invoice.invoice_id}")
    y -= 15
    if inv.note:
        c.drawString(50, y, f"Nota: {inv.note}")
        y -= 15
    y -= 15

    c.setFont("Helvetica-Bold", 9)
    c.drawString(50, y, "Fecha")
    c.drawString(150, y, "Servidas")
    c.drawString(230, y, "Facturadas")
    c.drawString(320, y, "Precio")
    c.drawString(410, y, "Subtotal")
    y -= 15
    c.setFont("Helvetica", 9)
    for row in inv.rows:
        if y < 60:
            c.showPage()
            c.setFont("Helvetica", 9)
            y = h - 50
        c.drawString(50, y, f"{row.date.isoformat()} {_WEEKDAY_LABELS[row.weekday]}")
        c.drawString(150, y, str(row.actual_count))
        c.drawString(230, y, str(row.billed_count))
        c.drawString(320, y, format_cents(row.unit_price_cents))
        c.drawString(410, y, format_cents(row.subtotal_cents))
        y -= 13

    y -= 10
    c.setFont("Helvetica-Bold", 11)
    c.drawString(320, y, f"Total: {format_cents(inv.total_cents)} MXN")
    c.save()
    return buf.getvalue()


def write_invoice_pdf(invoice: Invoice, out_dir: str) -> Optional[str]:
    """Write invoice as PDF if reportlab is available. Returns path or None."""
    data = render_invoice_pdf(invoice)
    if data is None:
        return None
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)
    path = p / f"{invoice.invoice_id}.pdf"
    path.write_bytes(data)
    return str(path)
