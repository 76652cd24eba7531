"""BillingCache -- memoized daily billing rows per (company, month, inputs).

Dashboards recompute billing on every live update; the engine is pure, so a
result can be reused as long as its inputs are identical. The key carries a
SHA-256 fingerprint of the config and every event's identity, timestamp and
flags, so any change to the data produces a new key and never a stale hit.
"""

from __future__ import annotations

import datetime
import hashlib
import logging
import threading
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple

from cachetools import LRUCache

from cafeteria_billing.core.billing.metering import compute_daily_billing
from cafeteria_billing.core.billing.models import ConsumptionEvent, DailyBillingRow
from cafeteria_billing.core.billing.periods import DEFAULT_TIMEZONE, TimeZoneLike, timezone_name
from cafeteria_billing.core.billing.pricing import BillingConfig

logger = logging.getLogger("cafeteria.billing")


def fingerprint(config: BillingConfig, events: Iterable[ConsumptionEvent]) -> str:
    """Order-independent digest of everything the engine reads."""
    parts = sorted(
        f"{e.id}|{e.company_id}|{e.timestamp.isoformat()}|{int(e.voided)}|{e.employee_id}"
        for e in events
    )
    h = hashlib.sha256()
    h.update(
        f"{config.meal_price_cents}:{config.daily_target}:"
        f"{sorted(config.chargeable_weekdays)}:{int(config.include_anonymous)}".encode()
    )
    for p in parts:
        h.update(b"\n")
        h.update(p.encode())
    return h.hexdigest()


class BillingCache:
    """Thread-safe LRU memo of compute_daily_billing results."""

    def __init__(self, maxsize: int = 1024) -> None:
        self._lock = threading.Lock()
        self._cache: LRUCache = LRUCache(maxsize=max(1, maxsize))
        self._hits = 0
        self._misses = 0

    def daily_rows(
        self,
        company_id: str,
        config: BillingConfig,
        events: Iterable[ConsumptionEvent],
        year: int,
        month: int,
        tz: TimeZoneLike = DEFAULT_TIMEZONE,
        through: Optional[datetime.date] = None,
    ) -> List[DailyBillingRow]:
        events = list(events)
        key: Tuple[Hashable, ...] = (
            company_id, year, month, through, timezone_name(tz), fingerprint(config, events),
        )
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._hits += 1
                return list(cached)
            self._misses += 1

        rows = compute_daily_billing(config, events, year, month, tz, through)
        with self._lock:
            self._cache[key] = tuple(rows)
        logger.debug(
            "billing_cache: computed company=%s period=%04d-%02d rows=%d",
            company_id, year, month, len(rows),
        )
        return rows

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._cache),
                "maxsize": self._cache.maxsize,
            }

    def reset(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0
