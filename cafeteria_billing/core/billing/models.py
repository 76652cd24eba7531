"""Billing data models -- companies, consumptions, daily rows, monthly invoices.

All models are plain dataclasses with to_dict() for serialization.
No Pydantic here (API Pydantic models live in core/api/models.py).
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from cafeteria_billing.core.billing.pricing import (
    ANONYMOUS_EMPLOYEE_ID,
    BillingConfig,
    cents_to_decimal,
)
from cafeteria_billing.core.errors import InvalidConfiguration


def parse_timestamp(value: Any) -> datetime.datetime:
    """Parse an ISO-8601 string, epoch seconds or datetime into an aware UTC-based datetime.

    Naive values are taken as UTC, which is how consumptions are recorded.
    """
    if isinstance(value, datetime.datetime):
        dt = value
    elif isinstance(value, (int, float)):
        return datetime.datetime.fromtimestamp(value, tz=datetime.timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.datetime.fromisoformat(text)
        except ValueError:
            raise InvalidConfiguration(f"Invalid timestamp: {value!r}")
    else:
        raise InvalidConfiguration(f"Invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt


class BillingStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    PAID = "PAID"


@dataclass
class Company:
    """A tenant: one cafeteria customer with its own pricing rules."""

    id: str
    name: str
    billing: BillingConfig = field(default_factory=BillingConfig)
    billing_email: Optional[str] = None
    billing_note: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any], include_anonymous: bool = False) -> "Company":
        if not d.get("id"):
            raise InvalidConfiguration(f"Company record without id: {d!r}")
        return cls(
            id=str(d["id"]),
            name=str(d.get("name") or d["id"]),
            billing=BillingConfig.from_dict(d, include_anonymous=include_anonymous),
            billing_email=d.get("billingEmail", d.get("billing_email")),
            billing_note=d.get("billingNote", d.get("billing_note")),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"id": self.id, "name": self.name}
        d.update(self.billing.to_dict())
        d["billing_email"] = self.billing_email
        d["billing_note"] = self.billing_note
        return d


@dataclass
class ConsumptionEvent:
    """A single meal registration (cafeteria, kiosk or point of sale).

    Never mutated after creation except for the ``voided`` soft-delete flag.
    """

    company_id: str
    timestamp: datetime.datetime
    id: str = ""
    voided: bool = False
    employee_id: str = ""
    employee_number: str = ""
    name: str = ""

    @property
    def is_anonymous(self) -> bool:
        return self.employee_id == ANONYMOUS_EMPLOYEE_ID

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ConsumptionEvent":
        company_id = d.get("companyId", d.get("company_id"))
        if not company_id:
            raise InvalidConfiguration(f"Consumption record without company id: {d!r}")
        ts = d.get("timestamp", d.get("ts"))
        return cls(
            id=str(d.get("id", "")),
            company_id=str(company_id),
            timestamp=parse_timestamp(ts),
            voided=bool(d.get("voided", False)),
            employee_id=str(d.get("employeeId", d.get("employee_id", "")) or ""),
            employee_number=str(d.get("employeeNumber", d.get("employee_number", "")) or ""),
            name=str(d.get("name", "") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "timestamp": self.timestamp.isoformat(),
            "voided": self.voided,
            "employee_id": self.employee_id,
            "employee_number": self.employee_number,
            "name": self.name,
        }


@dataclass(frozen=True)
class DailyBillingRow:
    """One invoice line: a calendar day with its actual and billed meals."""

    date: datetime.date
    weekday: int  # 0 = Sunday
    chargeable: bool
    actual_count: int
    billed_count: int
    unit_price_cents: int
    subtotal_cents: int

    @property
    def subtotal(self) -> Decimal:
        return cents_to_decimal(self.subtotal_cents)

    @property
    def minimum_applied(self) -> bool:
        return self.billed_count > self.actual_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "weekday": self.weekday,
            "chargeable": self.chargeable,
            "actual_count": self.actual_count,
            "billed_count": self.billed_count,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "subtotal": str(self.subtotal),
        }


@dataclass
class MonthlyInvoice:
    """Computed invoice for one company and one YYYY-MM period."""

    company_id: str
    company_name: str
    period: str
    timezone: str
    rows: List[DailyBillingRow]
    meal_price_cents: int
    daily_target: int
    actual_meals: int
    billed_meals: int
    total_cents: int
    through: Optional[datetime.date] = None
    note: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return cents_to_decimal(self.total_cents)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company_id": self.company_id,
            "company_name": self.company_name,
            "period": self.period,
            "timezone": self.timezone,
            "through": self.through.isoformat() if self.through else None,
            "rows": [r.to_dict() for r in self.rows],
            "meal_price_cents": self.meal_price_cents,
            "daily_target": self.daily_target,
            "actual_meals": self.actual_meals,
            "billed_meals": self.billed_meals,
            "total_cents": self.total_cents,
            "total": str(self.total),
            "note": self.note,
        }
