"""Billed-revenue computation -- pure functions, no side effects.

Turns raw consumption events plus a company's BillingConfig into per-day
invoice rows and a monthly total. On chargeable weekdays a company is billed
at least ``daily_target`` meals; every other day is pay-per-meal.

Deterministic: same inputs always produce the same output. Amounts are
integer cents throughout.
"""

from __future__ import annotations

import datetime
from collections import Counter
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from cafeteria_billing.core.billing.models import (
    Company,
    ConsumptionEvent,
    DailyBillingRow,
    MonthlyInvoice,
)
from cafeteria_billing.core.billing.periods import (
    DEFAULT_TIMEZONE,
    TimeZoneLike,
    is_valid_month,
    local_date,
    month_days,
    parse_period,
    previous_periods,
    resolve_timezone,
    timezone_name,
    weekday_index,
)
from cafeteria_billing.core.billing.pricing import BillingConfig, cents_to_decimal


def is_billable(event: ConsumptionEvent, config: BillingConfig) -> bool:
    """Voided events never bill; anonymous POS sales only if the company opts in."""
    if event.voided:
        return False
    if event.is_anonymous and not config.include_anonymous:
        return False
    return True


def count_by_day(
    events: Iterable[ConsumptionEvent],
    config: BillingConfig,
    tz: TimeZoneLike = DEFAULT_TIMEZONE,
) -> Dict[datetime.date, int]:
    """Bucket billable events by local calendar date."""
    zone = resolve_timezone(tz)
    counts: Counter = Counter()
    for evt in events:
        if is_billable(evt, config):
            counts[local_date(evt.timestamp, zone)] += 1
    return dict(counts)


def billed_meals(actual: int, config: BillingConfig, chargeable: bool) -> int:
    """Meals invoiced for one day: the target floor applies only on chargeable days."""
    if config.daily_target > 0 and chargeable:
        return max(actual, config.daily_target)
    return actual


def compute_daily_billing(
    config: BillingConfig,
    events: Iterable[ConsumptionEvent],
    year: int,
    month: int,
    tz: TimeZoneLike = DEFAULT_TIMEZONE,
    through: Optional[datetime.date] = None,
) -> List[DailyBillingRow]:
    """Per-day invoice rows for one company and one calendar month.

    Every day of the month is visited, not only days with activity, so an
    idle chargeable day still bills ``daily_target`` meals. Rows with
    ``billed_count == 0`` are dropped. ``through`` cuts the month short for
    month-to-date figures.

    A malformed (year, month) yields ``[]``; validate periods upstream with
    ``parse_period`` / ``check_period``.
    """
    if not is_valid_month(year, month):
        return []

    counts = count_by_day(events, config, tz)
    rows: List[DailyBillingRow] = []
    for day in month_days(year, month):
        if through is not None and day > through:
            break
        dow = weekday_index(day)
        chargeable = dow in config.chargeable_weekdays
        actual = counts.get(day, 0)
        billed = billed_meals(actual, config, chargeable)
        if billed <= 0:
            continue
        rows.append(DailyBillingRow(
            date=day,
            weekday=dow,
            chargeable=chargeable,
            actual_count=actual,
            billed_count=billed,
            unit_price_cents=config.meal_price_cents,
            subtotal_cents=billed * config.meal_price_cents,
        ))
    return rows


def compute_monthly_total_cents(rows: Iterable[DailyBillingRow]) -> int:
    return sum(row.subtotal_cents for row in rows)


def compute_monthly_total(rows: Iterable[DailyBillingRow]) -> Decimal:
    """Invoice total as a 2-place Decimal (summed in integer cents)."""
    return cents_to_decimal(compute_monthly_total_cents(rows))


def compute_revenue_across_companies_cents(
    configs: Mapping[str, BillingConfig],
    events_by_company: Mapping[str, Iterable[ConsumptionEvent]],
    year: int,
    month: int,
    tz: TimeZoneLike = DEFAULT_TIMEZONE,
    through: Optional[datetime.date] = None,
) -> int:
    total = 0
    for company_id, config in configs.items():
        # a record filed under the wrong company is never billed twice
        events = [
            e for e in events_by_company.get(company_id, ())
            if e.company_id == company_id
        ]
        rows = compute_daily_billing(config, events, year, month, tz, through)
        total += compute_monthly_total_cents(rows)
    return total


def compute_revenue_across_companies(
    configs: Mapping[str, BillingConfig],
    events_by_company: Mapping[str, Iterable[ConsumptionEvent]],
    year: int,
    month: int,
    tz: TimeZoneLike = DEFAULT_TIMEZONE,
    through: Optional[datetime.date] = None,
) -> Decimal:
    """Fleet-wide billed revenue: sum of every company's monthly total.

    Companies without events still contribute their chargeable-day minimum.
    Event buckets with no matching config are ignored.
    """
    return cents_to_decimal(compute_revenue_across_companies_cents(
        configs, events_by_company, year, month, tz, through,
    ))


def build_invoice(
    company: Company,
    rows: Sequence[DailyBillingRow],
    period: str,
    tz: TimeZoneLike = DEFAULT_TIMEZONE,
    through: Optional[datetime.date] = None,
) -> MonthlyInvoice:
    """Wrap already-computed rows into a MonthlyInvoice."""
    return MonthlyInvoice(
        company_id=company.id,
        company_name=company.name,
        period=period,
        timezone=timezone_name(tz),
        rows=list(rows),
        meal_price_cents=company.billing.meal_price_cents,
        daily_target=company.billing.daily_target,
        actual_meals=sum(r.actual_count for r in rows),
        billed_meals=sum(r.billed_count for r in rows),
        total_cents=compute_monthly_total_cents(rows),
        through=through,
        note=company.billing_note,
    )


def compute_invoice(
    company: Company,
    events: Iterable[ConsumptionEvent],
    period: str,
    tz: TimeZoneLike = DEFAULT_TIMEZONE,
    through: Optional[datetime.date] = None,
) -> MonthlyInvoice:
    """Validating entry point: raises InvalidPeriod for a bad 'YYYY-MM'."""
    year, month = parse_period(period)
    events = [e for e in events if e.company_id == company.id]
    rows = compute_daily_billing(company.billing, events, year, month, tz, through)
    return build_invoice(company, rows, period, tz, through)


def revenue_trend(
    companies: Sequence[Company],
    events: Iterable[ConsumptionEvent],
    end_period: str,
    months: int = 6,
    tz: TimeZoneLike = DEFAULT_TIMEZONE,
) -> List[Dict[str, object]]:
    """Fleet revenue for the last `months` periods ending at `end_period`, oldest first."""
    periods = previous_periods(end_period, months)
    configs = {c.id: c.billing for c in companies}
    by_company: Dict[str, List[ConsumptionEvent]] = {}
    for evt in events:
        by_company.setdefault(evt.company_id, []).append(evt)

    trend: List[Dict[str, object]] = []
    for period in periods:
        year, month = int(period[:4]), int(period[5:7])
        cents = compute_revenue_across_companies_cents(configs, by_company, year, month, tz)
        trend.append({"period": period, "total_cents": cents, "total": str(cents_to_decimal(cents))})
    return trend
