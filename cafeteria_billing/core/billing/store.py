"""BillingStore -- thread-safe store of companies, consumptions and invoice status.

Persistence pattern:
  - configure_persistence(path) -> _replay(path) on boot
  - Append-only JSONL records: company, consumption, void, status
  - Thread-safe with threading.Lock()
  - reset() for test isolation

This is the data-access side of billing: it hands the engine already-fetched
events and never computes amounts itself.
"""

from __future__ import annotations

import datetime
import json
import logging
import threading
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from cafeteria_billing.core.billing.models import (
    BillingStatus,
    Company,
    ConsumptionEvent,
    parse_timestamp,
)
from cafeteria_billing.core.billing.periods import DEFAULT_TIMEZONE, TimeZoneLike, period_bounds
from cafeteria_billing.core.errors import NotFoundError

logger = logging.getLogger("cafeteria.billing")


class BillingStore:
    """Thread-safe in-memory billing store with optional JSONL persistence."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._companies: Dict[str, Company] = {}
        self._events: Dict[str, ConsumptionEvent] = {}
        self._statuses: Dict[str, Dict[str, BillingStatus]] = {}
        self._invoices: Dict[str, Dict[str, Any]] = {}
        self._persist_path: Optional[str] = None

    # ── Persistence ──────────────────────────────────────────────

    def configure_persistence(self, path: Optional[str]) -> None:
        with self._lock:
            self._persist_path = path
        if path:
            self._replay(path)

    def _replay(self, path: str) -> None:
        p = Path(path)
        if not p.exists():
            return
        try:
            with open(p) as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    self._apply(json.loads(line))
        except Exception:
            logger.warning("billing_store: replay failed for %s", path, exc_info=True)

    def _apply(self, record: Dict[str, Any]) -> None:
        kind = record.get("kind")
        data = record.get("data", {})
        with self._lock:
            if kind == "company":
                company = Company.from_dict(data)
                self._companies[company.id] = company
            elif kind == "consumption":
                evt = ConsumptionEvent.from_dict(data)
                self._events[evt.id] = evt
            elif kind == "void":
                evt = self._events.get(data.get("id", ""))
                if evt is not None:
                    evt.voided = True
            elif kind == "status":
                self._statuses.setdefault(data["period"], {})[data["company_id"]] = (
                    BillingStatus(data["status"])
                )
            else:
                logger.warning("billing_store: unknown record kind %r", kind)

    def _persist(self, kind: str, data: Dict[str, Any]) -> None:
        path = self._persist_path
        if not path:
            return
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a") as f:
                f.write(json.dumps({"kind": kind, "data": data}, separators=(",", ":")) + "\n")
                f.flush()
        except Exception:
            logger.warning("billing_store: persist failed", exc_info=True)

    # ── Companies ────────────────────────────────────────────────

    def upsert_company(self, company: Company) -> Company:
        with self._lock:
            self._companies[company.id] = company
        self._persist("company", {
            "id": company.id,
            "name": company.name,
            "meal_price_cents": company.billing.meal_price_cents,
            "daily_target": company.billing.daily_target,
            "chargeable_weekdays": sorted(company.billing.chargeable_weekdays),
            "include_anonymous": company.billing.include_anonymous,
            "billing_email": company.billing_email,
            "billing_note": company.billing_note,
        })
        return company

    def get_company(self, company_id: str) -> Company:
        with self._lock:
            company = self._companies.get(company_id)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found.")
        return company

    def has_company(self, company_id: str) -> bool:
        with self._lock:
            return company_id in self._companies

    def list_companies(self) -> List[Company]:
        with self._lock:
            return sorted(self._companies.values(), key=lambda c: c.id)

    # ── Consumptions ─────────────────────────────────────────────

    def record_consumption(
        self,
        *,
        company_id: str,
        employee_id: str = "",
        employee_number: str = "",
        name: str = "",
        timestamp: Optional[Any] = None,
        consumption_id: Optional[str] = None,
    ) -> ConsumptionEvent:
        ts = (
            parse_timestamp(timestamp) if timestamp is not None
            else datetime.datetime.now(datetime.timezone.utc)
        )
        evt = ConsumptionEvent(
            id=consumption_id or uuid.uuid4().hex[:12],
            company_id=company_id,
            timestamp=ts,
            employee_id=employee_id,
            employee_number=employee_number,
            name=name,
        )
        with self._lock:
            self._events[evt.id] = evt
        self._persist("consumption", evt.to_dict())
        return evt

    def void_consumption(self, consumption_id: str) -> ConsumptionEvent:
        """Soft-delete a consumption. Voiding twice is a no-op."""
        with self._lock:
            evt = self._events.get(consumption_id)
            if evt is None:
                raise NotFoundError(f"Consumption {consumption_id} not found.")
            already = evt.voided
            evt.voided = True
        if not already:
            self._persist("void", {"id": consumption_id})
            logger.info("billing_store: voided consumption=%s company=%s", consumption_id, evt.company_id)
        return evt

    def get_consumption(self, consumption_id: str) -> ConsumptionEvent:
        with self._lock:
            evt = self._events.get(consumption_id)
        if evt is None:
            raise NotFoundError(f"Consumption {consumption_id} not found.")
        return evt

    def events_for_period(
        self,
        company_id: Optional[str],
        period: str,
        tz: TimeZoneLike = DEFAULT_TIMEZONE,
    ) -> List[ConsumptionEvent]:
        """Events whose instant falls in the local month, voided included.

        Returns copies so callers never see a later void mid-computation.
        """
        start, end = period_bounds(period, tz)
        with self._lock:
            out = [
                replace(e) for e in self._events.values()
                if start <= e.timestamp < end
                and (company_id is None or e.company_id == company_id)
            ]
        out.sort(key=lambda e: (e.timestamp, e.id))
        return out

    def events_by_company(
        self, period: str, tz: TimeZoneLike = DEFAULT_TIMEZONE,
    ) -> Dict[str, List[ConsumptionEvent]]:
        grouped: Dict[str, List[ConsumptionEvent]] = {}
        for evt in self.events_for_period(None, period, tz):
            grouped.setdefault(evt.company_id, []).append(evt)
        return grouped

    def all_events(self) -> List[ConsumptionEvent]:
        with self._lock:
            out = [replace(e) for e in self._events.values()]
        out.sort(key=lambda e: (e.timestamp, e.id))
        return out

    # ── Billing status ───────────────────────────────────────────

    def set_status(self, company_id: str, period: str, status: BillingStatus) -> None:
        with self._lock:
            self._statuses.setdefault(period, {})[company_id] = status
        self._persist("status", {
            "company_id": company_id, "period": period, "status": status.value,
        })

    def get_status(self, company_id: str, period: str) -> BillingStatus:
        with self._lock:
            return self._statuses.get(period, {}).get(company_id, BillingStatus.PENDING)

    def statuses_for_period(self, period: str) -> Dict[str, BillingStatus]:
        """Status of every known company for a period (PENDING when unset)."""
        with self._lock:
            recorded = dict(self._statuses.get(period, {}))
            ids = list(self._companies)
        return {cid: recorded.get(cid, BillingStatus.PENDING) for cid in sorted(ids)}

    # ── Invoices ─────────────────────────────────────────────────

    def store_invoice(self, invoice_id: str, invoice_data: Dict[str, Any]) -> None:
        """Store a generated invoice in memory for later retrieval."""
        with self._lock:
            self._invoices[invoice_id] = invoice_data

    def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        with self._lock:
            inv = self._invoices.get(invoice_id)
        if inv is None:
            raise NotFoundError(f"Invoice {invoice_id} not found.")
        return inv

    def reset(self) -> None:
        with self._lock:
            self._companies.clear()
            self._events.clear()
            self._statuses.clear()
            self._invoices.clear()
            self._persist_path = None


billing_store = BillingStore()
