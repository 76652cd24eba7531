"""Shared test fixtures for cafeteria billing tests.

March 2026 is the reference month throughout: the 1st is a Sunday, so
Mondays fall on 2, 9, 16, 23, 30 and there are 18 Mon-Thu days.
"""

from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo

import pytest
import yaml

from cafeteria_billing.core.billing.models import Company, ConsumptionEvent
from cafeteria_billing.core.billing.pricing import BillingConfig
from cafeteria_billing.core.billing.store import billing_store

MX = ZoneInfo("America/Mexico_City")


def local_ts(day: int, hour: int = 12, minute: int = 0, year: int = 2026, month: int = 3) -> datetime.datetime:
    """UTC instant for a Mexico City wall-clock time."""
    return datetime.datetime(year, month, day, hour, minute, tzinfo=MX).astimezone(datetime.timezone.utc)


def meals(
    company_id: str,
    day: int,
    count: int,
    *,
    hour: int = 12,
    month: int = 3,
    employee_id: str = "emp",
    prefix: Optional[str] = None,
) -> List[ConsumptionEvent]:
    """`count` consumptions for one company on one local day."""
    tag = prefix or f"{company_id}-{month:02d}{day:02d}"
    return [
        ConsumptionEvent(
            id=f"{tag}-{i}",
            company_id=company_id,
            timestamp=local_ts(day, hour, month=month),
            employee_id=f"{employee_id}-{i}" if employee_id != "anonymous" else "anonymous",
            employee_number=str(1000 + i),
            name=f"Empleado {i}",
        )
        for i in range(count)
    ]


@pytest.fixture
def acme() -> Company:
    """Minimum-guarantee company: 300 meals Mon-Thu at $80.00."""
    return Company(
        id="acme",
        name="ACME Foods",
        billing=BillingConfig(meal_price_cents=8000, daily_target=300),
        billing_email="facturas@acme.example",
    )


@pytest.fixture
def globex() -> Company:
    """Pay-per-meal company at $65.50."""
    return Company(
        id="globex",
        name="Globex",
        billing=BillingConfig(meal_price_cents=6550, daily_target=0),
    )


@pytest.fixture
def data_files(tmp_path: Path):
    """Companies YAML + consumptions JSONL on disk for CLI/loader tests."""
    companies = tmp_path / "companies.yaml"
    companies.write_text(yaml.safe_dump({
        "companies": [
            {"id": "acme", "name": "ACME Foods", "mealPrice": "80.00", "dailyTarget": 300,
             "targetDays": [1, 2, 3, 4], "billingEmail": "facturas@acme.example"},
            {"id": "globex", "name": "Globex", "mealPrice": 65.5, "dailyTarget": 0},
        ],
    }))
    events = tmp_path / "consumptions.jsonl"
    lines = []
    for evt in meals("acme", 2, 250) + meals("acme", 6, 120) + meals("globex", 10, 42):
        lines.append(evt.to_dict())
    lines.append({
        "id": "pos-1", "companyId": "globex", "timestamp": local_ts(10).isoformat(),
        "employeeId": "anonymous",
    })
    events.write_text("\n".join(json.dumps(d) for d in lines) + "\n")
    return companies, events


@pytest.fixture(autouse=True)
def _clean_store():
    billing_store.reset()
    yield
    billing_store.reset()
