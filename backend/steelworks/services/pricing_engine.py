"""
PricingEngine — quote line pricing and margin policy.

Covers:
  - Cost total (unit cost × quantity; line unit costs are held to pence)
  - Sell price from a target margin, rounded half-up to the nearest £25
  - Unit sell rate for the quote's rate column
  - Minimum-margin floor (soft gate, bypassed by an explicit override)
  - Advisory cost deviation against the catalogue guide cost
  - Quote rollup over non-optional lines

Request bodies frequently carry numbers as strings, so every public method
coerces its inputs with ``parse_number_or`` instead of rejecting them.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Union

from steelworks.config import (
    COST_DEVIATION_THRESHOLD,
    MARGIN_LIMIT,
    MINIMUM_MARGIN_FLOOR,
    MONEY_LIMIT,
    QUANTITY_LIMIT,
    SELL_PRICE_ROUNDING,
)
from steelworks.services.errors import InvalidValueError, MarginBelowFloorError

Number = Union[Decimal, int, float, str, None]

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_PENNY = Decimal("0.01")

# Leading numeric prefix, e.g. "12.5 hrs" -> 12.5
_LEADING_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


# ---------------------------------------------------------------------------
# Input coercion
# ---------------------------------------------------------------------------

def parse_number_or(value: Any, fallback: Number) -> Decimal:
    """
    Total numeric parse. Returns ``fallback`` (as Decimal) for None, blank,
    unparseable, NaN or infinite input; never raises.

    Strings are read up to their first non-numeric character after thousands
    separators are dropped, so "1,250.00" -> 1250.00 and "40 hrs" -> 40.
    """
    default = Decimal(str(fallback)) if fallback is not None else _ZERO

    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        match = _LEADING_NUMBER.match(text)
        if not match:
            return default
        try:
            number = Decimal(match.group(0))
        except InvalidOperation:
            return default
    else:
        return default

    if not number.is_finite():
        return default
    return number


def parse_quantity(value: Any) -> int:
    """
    Whole-unit quantity; anything below 1 or unparseable becomes 1. Quantities
    too large for an INTEGER column raise InvalidValueError.
    """
    number = parse_number_or(value, 1)
    if number < 1:
        return 1
    ensure_within("quantity", number, QUANTITY_LIMIT)
    return int(number)


def bounded_int(field: str, value: Any, fallback: int, limit: Number = QUANTITY_LIMIT) -> int:
    """Lenient integer parse that rejects values too large to store."""
    number = parse_number_or(value, fallback)
    ensure_within(field, number, limit)
    return int(number)


def to_pennies(value: Decimal) -> Decimal:
    """Quantize to two decimal places, half-up: 10.005 -> 10.01."""
    return value.quantize(_PENNY, rounding=ROUND_HALF_UP)


def ensure_within(field: str, value: Any, limit: Number) -> None:
    """Raise InvalidValueError when ``|value|`` reaches the exclusive ``limit``."""
    if Decimal(value).copy_abs() >= Decimal(str(limit)):
        raise InvalidValueError(
            f"{field} is out of range",
            extra={"field": field, "limit": float(limit)},
        )


def bounded_pennies(field: str, value: Decimal, limit: Number) -> Decimal:
    """
    ``to_pennies`` for a value headed into a two-place column. The range is
    checked before quantizing (huge exponents cannot be quantized) and again
    after, since 9999999999.995 rounds up onto the limit.
    """
    ensure_within(field, value, limit)
    pennies = to_pennies(value)
    ensure_within(field, pennies, limit)
    return pennies


def _get(line: Any, name: str, default: Any = None) -> Any:
    if isinstance(line, dict):
        return line.get(name, default)
    return getattr(line, name, default)


class PricingEngine:
    """
    Margin-based pricing for quote lines.

    All monetary values are GBP Decimals. Margin is a percentage of sell
    price (gross margin), not a markup on cost.
    """

    def __init__(
        self,
        margin_floor: Number = MINIMUM_MARGIN_FLOOR,
        rounding_unit: Number = SELL_PRICE_ROUNDING,
        deviation_threshold: Number = COST_DEVIATION_THRESHOLD,
    ) -> None:
        self.margin_floor: Decimal = Decimal(str(margin_floor))
        self.rounding_unit: Decimal = Decimal(str(rounding_unit))
        self.deviation_threshold: Decimal = Decimal(str(deviation_threshold))

    # ------------------------------------------------------------------
    # 1. Line arithmetic
    # ------------------------------------------------------------------

    def compute_cost_total(self, unit_cost: Any, quantity: Any) -> Decimal:
        """unit_cost × quantity with no rounding."""
        return parse_number_or(unit_cost, 0) * parse_quantity(quantity)

    def _round_to_unit(self, raw: Decimal) -> Decimal:
        steps = (raw / self.rounding_unit).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return steps * self.rounding_unit

    def compute_sell_price(self, cost_total: Any, margin_percent: Any) -> Decimal:
        """
        Sell price for a target margin:

            raw  = cost_total / (1 - margin/100)
            sell = round_half_up(raw / 25) * 25

        Margins ≥ 100 and zero cost return the cost unchanged. Rounding moves
        the realised margin slightly off target; that is accepted policy.
        """
        cost = parse_number_or(cost_total, 0)
        margin = parse_number_or(margin_percent, 0)
        if margin >= _HUNDRED or cost == _ZERO:
            return cost
        raw = cost / (1 - margin / _HUNDRED)
        return self._round_to_unit(raw)

    def compute_unit_sell_price(self, unit_cost: Any, margin_percent: Any) -> Decimal:
        """Per-unit sell rate shown in the quote's rate column."""
        return self.compute_sell_price(unit_cost, margin_percent)

    @staticmethod
    def compute_overall_margin(total_cost: Any, total_sell: Any) -> Decimal:
        cost = parse_number_or(total_cost, 0)
        sell = parse_number_or(total_sell, 0)
        if sell <= _ZERO:
            return _ZERO
        return (sell - cost) / sell * _HUNDRED

    def price_line(self, unit_cost: Any, quantity: Any, margin_percent: Any) -> Dict[str, Any]:
        """
        Coerce raw request values and derive cost_total / sell_price.

        unit_cost and margin_percent are held to pence / hundredths before
        anything is derived, so the returned values are exactly what gets
        stored and cost_total == unit_cost × quantity still holds on re-read:

            10.005 × 3  →  10.01 × 3 = 30.03

        Values too large to store raise InvalidValueError.
        """
        qty = parse_quantity(quantity)
        cost = bounded_pennies("unit_cost", parse_number_or(unit_cost, 0), MONEY_LIMIT)
        margin = bounded_pennies("margin_percent", parse_number_or(margin_percent, 0), MARGIN_LIMIT)

        cost_total = self.compute_cost_total(cost, qty)
        ensure_within("cost_total", cost_total, MONEY_LIMIT)
        sell_price = self.compute_sell_price(cost_total, margin)
        ensure_within("sell_price", sell_price, MONEY_LIMIT)
        return {
            "quantity": qty,
            "unit_cost": cost,
            "margin_percent": margin,
            "cost_total": cost_total,
            "sell_price": sell_price,
        }

    # ------------------------------------------------------------------
    # 2. Policy checks
    # ------------------------------------------------------------------

    def check_margin_floor(self, margin_percent: Any) -> Dict[str, Any]:
        """Floor is inclusive: exactly 25 % is not below it."""
        margin = parse_number_or(margin_percent, 0)
        return {
            "below_floor": margin < self.margin_floor,
            "floor": float(self.margin_floor),
        }

    def enforce_margin_floor(self, margin_percent: Any, override: bool = False) -> None:
        """Raise MarginBelowFloorError unless the margin clears the floor or is overridden."""
        check = self.check_margin_floor(margin_percent)
        if check["below_floor"] and not override:
            raise MarginBelowFloorError(parse_number_or(margin_percent, 0), check["floor"])

    def check_cost_deviation(self, unit_cost: Any, guide_unit_cost: Any) -> Dict[str, Any]:
        """
        Compare an entered unit cost with the catalogue guide cost.

        Advisory only: the result is shown next to the line, it never blocks
        a write.
        """
        guide = parse_number_or(guide_unit_cost, 0)
        if guide == _ZERO:
            return {"deviates": False, "percentage": 0, "direction": "none"}

        cost = parse_number_or(unit_cost, 0)
        diff = cost - guide
        pct = abs(diff) / guide
        if diff > 0:
            direction = "above"
        elif diff < 0:
            direction = "below"
        else:
            direction = "none"
        return {
            "deviates": pct > self.deviation_threshold,
            "percentage": int((pct * _HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
            "direction": direction,
        }

    # ------------------------------------------------------------------
    # 3. Quote rollup
    # ------------------------------------------------------------------

    def summarize_lines(self, lines: Iterable[Any]) -> Dict[str, Decimal]:
        """
        Quote aggregates over non-optional lines. Lines may be ORM rows or
        dicts carrying cost_total, sell_price and is_optional.
        """
        total_cost = _ZERO
        total_sell = _ZERO
        for line in lines:
            if _get(line, "is_optional", False):
                continue
            total_cost += parse_number_or(_get(line, "cost_total"), 0)
            total_sell += parse_number_or(_get(line, "sell_price"), 0)

        return {
            "total_cost": total_cost,
            "total_sell": total_sell,
            "overall_margin": self.compute_overall_margin(total_cost, total_sell),
        }


default_pricing_engine = PricingEngine()
