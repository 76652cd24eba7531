"""Company billing configuration and integer-cents money helpers.

All amounts are held in cents (1/100 MXN). Decimal is used only to parse
prices coming in and to present totals going out; arithmetic in between is
integer-only, so repeated computations are bit-identical.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, Iterable, Optional, Union

from cafeteria_billing.core.errors import InvalidConfiguration

# 0 = Sunday ... 6 = Saturday
DEFAULT_CHARGEABLE_WEEKDAYS: FrozenSet[int] = frozenset({1, 2, 3, 4})

ANONYMOUS_EMPLOYEE_ID = "anonymous"

_CENT = Decimal("0.01")

Amount = Union[Decimal, int, float, str]


def to_cents(amount: Amount) -> int:
    """Convert a decimal amount (e.g. ``"65.50"``) to integer cents, half-up."""
    try:
        if isinstance(amount, float):
            # go through repr so 65.5 stays 65.50 instead of its binary expansion
            value = Decimal(repr(amount))
        else:
            value = Decimal(amount)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidConfiguration(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise InvalidConfiguration(f"Invalid amount: {amount!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_decimal(cents: int) -> Decimal:
    """Integer cents to a 2-place Decimal."""
    return (Decimal(cents) / 100).quantize(_CENT)


def format_cents(cents: int, symbol: str = "$") -> str:
    """Display string for an amount in cents, e.g. ``$24,000.00``."""
    sign = "-" if cents < 0 else ""
    return f"{sign}{symbol}{cents_to_decimal(abs(cents)):,.2f}"


def _normalize_weekdays(days: Optional[Iterable[int]]) -> FrozenSet[int]:
    if days is None:
        return DEFAULT_CHARGEABLE_WEEKDAYS
    try:
        out = frozenset(int(d) for d in days)
    except (TypeError, ValueError):
        raise InvalidConfiguration(f"Invalid chargeable weekdays: {days!r}")
    bad = sorted(d for d in out if d < 0 or d > 6)
    if bad:
        raise InvalidConfiguration(
            f"Chargeable weekdays must be within 0..6 (0=Sunday), got {bad}"
        )
    return out


@dataclass(frozen=True)
class BillingConfig:
    """Immutable per-company billing rules.

    ``daily_target`` is the minimum number of meals billed on a chargeable
    weekday; 0 means pure pay-per-meal. ``include_anonymous`` decides whether
    point-of-sale walk-in sales (employee id ``"anonymous"``) are billed to the
    company.
    """

    meal_price_cents: int = 0
    daily_target: int = 0
    chargeable_weekdays: FrozenSet[int] = field(default=DEFAULT_CHARGEABLE_WEEKDAYS)
    include_anonymous: bool = False

    def __post_init__(self) -> None:
        if self.meal_price_cents < 0:
            raise InvalidConfiguration(
                f"mealPrice must be >= 0, got {cents_to_decimal(self.meal_price_cents)}"
            )
        if self.daily_target < 0:
            raise InvalidConfiguration(f"dailyTarget must be >= 0, got {self.daily_target}")
        # frozen: normalize through object.__setattr__
        object.__setattr__(
            self, "chargeable_weekdays", _normalize_weekdays(self.chargeable_weekdays)
        )

    @property
    def meal_price(self) -> Decimal:
        return cents_to_decimal(self.meal_price_cents)

    @property
    def has_minimum(self) -> bool:
        return self.daily_target > 0

    @classmethod
    def from_dict(cls, d: Dict[str, Any], include_anonymous: bool = False) -> "BillingConfig":
        """Build from a company record; accepts camelCase and snake_case keys."""
        price = d.get("mealPrice", d.get("meal_price"))
        if price is None and "meal_price_cents" in d:
            price_cents = int(d["meal_price_cents"])
        else:
            price_cents = to_cents(price if price is not None else 0)
        target = d.get("dailyTarget", d.get("daily_target"))
        days = d.get("targetDays", d.get("chargeable_weekdays"))
        anon = d.get("includeAnonymous", d.get("include_anonymous"))
        try:
            daily_target = int(target or 0)
        except (TypeError, ValueError):
            raise InvalidConfiguration(f"Invalid dailyTarget: {target!r}")
        return cls(
            meal_price_cents=price_cents,
            daily_target=daily_target,
            chargeable_weekdays=days,
            include_anonymous=include_anonymous if anon is None else bool(anon),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meal_price": str(self.meal_price),
            "meal_price_cents": self.meal_price_cents,
            "daily_target": self.daily_target,
            "chargeable_weekdays": sorted(self.chargeable_weekdays),
            "include_anonymous": self.include_anonymous,
        }
