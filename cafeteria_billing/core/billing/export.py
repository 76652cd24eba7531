"""Billing export helpers -- CSV and JSONL output.

Daily exports print DailyBillingRow values as computed by the engine; the
detail export lists the individual consumptions behind an invoice.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, Iterable, List

from cafeteria_billing.core.billing.metering import is_billable
from cafeteria_billing.core.billing.models import Company, ConsumptionEvent, DailyBillingRow
from cafeteria_billing.core.billing.periods import DEFAULT_TIMEZONE, TimeZoneLike, resolve_timezone
from cafeteria_billing.core.billing.pricing import cents_to_decimal

# CSV header order -- stable across versions.
DAILY_COLUMNS = [
    "date",
    "weekday",
    "chargeable",
    "actual_count",
    "billed_count",
    "unit_price",
    "subtotal",
]

DETAIL_COLUMNS = [
    "employee_number",
    "name",
    "timestamp",
    "local_time",
    "company",
    "unit_price",
]


def _daily_record(row: DailyBillingRow) -> Dict[str, Any]:
    return {
        "date": row.date.isoformat(),
        "weekday": row.weekday,
        "chargeable": row.chargeable,
        "actual_count": row.actual_count,
        "billed_count": row.billed_count,
        "unit_price": str(cents_to_decimal(row.unit_price_cents)),
        "subtotal": str(row.subtotal),
    }


def export_daily_csv(rows: Iterable[DailyBillingRow]) -> str:
    """Return daily billing rows as a CSV string (header + data rows)."""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=DAILY_COLUMNS)
    writer.writeheader()
    for row in rows:
        writer.writerow(_daily_record(row))
    return buf.getvalue()


def export_daily_jsonl(rows: Iterable[DailyBillingRow]) -> str:
    """Return daily billing rows as newline-delimited JSON."""
    lines = [json.dumps(_daily_record(r), separators=(",", ":")) for r in rows]
    return "\n".join(lines) + "\n" if lines else ""


def export_consumptions_csv(
    company: Company,
    events: Iterable[ConsumptionEvent],
    tz: TimeZoneLike = DEFAULT_TIMEZONE,
) -> str:
    """One row per billable consumption, ordered by timestamp."""
    zone = resolve_timezone(tz)
    billable: List[ConsumptionEvent] = sorted(
        (e for e in events if e.company_id == company.id and is_billable(e, company.billing)),
        key=lambda e: e.timestamp,
    )
    price = str(company.billing.meal_price)
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=DETAIL_COLUMNS)
    writer.writeheader()
    for evt in billable:
        writer.writerow({
            "employee_number": evt.employee_number,
            "name": evt.name,
            "timestamp": evt.timestamp.isoformat(),
            "local_time": evt.timestamp.astimezone(zone).strftime("%Y-%m-%d %H:%M"),
            "company": company.name,
            "unit_price": price,
        })
    return buf.getvalue()
