"""
capacity_engine.py — Rough-cut capacity planning.

Covers:
  - Monday-aligned weekly windows from a reference date
  - Even spread of each product's per-department estimated hours across the
    weeks between planned start and target date
  - Department/week load buckets with the contributing products
  - Utilisation against a flat weekly department capacity
  - Next-4-weeks rollup for the status cards
  - "Needs estimation" list (dated products without any hours)
  - RAG schedule status from a target date

The spread is deliberately crude: no working-day weighting, no holidays, no
partial-week proration. It is an early-warning view, not a scheduler.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from steelworks.config import RAG_AMBER_DAYS, SUMMARY_WEEKS


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Department:
    key: str
    label: str
    prefix: str      # column prefix on Product, e.g. "install"

    @property
    def hours_field(self) -> str:
        return f"{self.prefix}_estimated_hours"

    @property
    def start_field(self) -> str:
        return f"{self.prefix}_planned_start"

    @property
    def end_field(self) -> str:
        return f"{self.prefix}_target_date"

    @property
    def done_field(self) -> str:
        return f"{self.prefix}_completion_date"


DEPARTMENTS: tuple = (
    Department("DESIGN", "Design", "design"),
    Department("OPS", "Ops", "ops"),
    Department("PRODUCTION", "Production", "production"),
    Department("INSTALLATION", "Installation", "install"),
)

DEPARTMENT_KEYS = tuple(d.key for d in DEPARTMENTS)


# ---------------------------------------------------------------------------
# Field helpers (ORM rows and plain dicts are both accepted)
# ---------------------------------------------------------------------------

def _get(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _to_hours(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        hours = float(value)
    except (TypeError, ValueError):
        return 0.0
    return hours if math.isfinite(hours) else 0.0


def product_label(product: Any) -> str:
    """Tooltip label "<project_number>/<part_code>"."""
    project = _get(product, "project")
    number = _get(project, "project_number", "") if project is not None else ""
    part = _get(product, "part_code", "") or ""
    return f"{number}/{part}" if number else part


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------

def week_start(d: date) -> date:
    """Monday of the week containing ``d``."""
    d = _to_date(d)
    return d - timedelta(days=d.weekday())


def weeks_between(start: date, end: date) -> int:
    """Elapsed weeks, rounded up, never less than one."""
    return max(1, math.ceil((end - start).days / 7))


def schedule_rag(target_date: Any, today: Optional[date] = None) -> Optional[str]:
    """RED when overdue, AMBER inside the warning window, GREEN otherwise."""
    target = _to_date(target_date)
    if target is None:
        return None
    today = today or date.today()
    diff_days = (target - today).days
    if diff_days < 0:
        return "RED"
    if diff_days <= RAG_AMBER_DAYS:
        return "AMBER"
    return "GREEN"


# ---------------------------------------------------------------------------
# Effort entries
# ---------------------------------------------------------------------------

@dataclass
class EffortEntry:
    """One department's slice of a product's schedule."""
    hours: float
    start: Optional[date]
    end: Optional[date]
    completion_date: Optional[date] = None

    @property
    def counts_towards_load(self) -> bool:
        # Completed work no longer consumes capacity, even if dates still overlap
        if self.completion_date is not None:
            return False
        return bool(self.hours) and self.start is not None and self.end is not None

    @property
    def hours_per_week(self) -> float:
        return self.hours / weeks_between(self.start, self.end)


def effort_for(product: Any, department: Department) -> EffortEntry:
    return EffortEntry(
        hours=_to_hours(_get(product, department.hours_field)),
        start=_to_date(_get(product, department.start_field)),
        end=_to_date(_get(product, department.end_field)),
        completion_date=_to_date(_get(product, department.done_field)),
    )


class CapacityAggregator:
    """Department load vs capacity over a rolling window of weeks."""

    def __init__(
        self,
        departments: Iterable[Department] = DEPARTMENTS,
        summary_weeks: int = SUMMARY_WEEKS,
    ) -> None:
        self.departments: List[Department] = list(departments)
        self.summary_weeks: int = summary_weeks

    # ------------------------------------------------------------------
    # 1. Windows and spreading
    # ------------------------------------------------------------------

    @staticmethod
    def week_window(reference_date: Any, weeks: int) -> List[date]:
        """
        ``weeks`` consecutive Monday dates starting at the Monday of the week
        containing ``reference_date``. Week i covers [ws, ws + 7 days).
        """
        first = week_start(reference_date)
        return [first + timedelta(weeks=i) for i in range(max(0, int(weeks)))]

    @staticmethod
    def distribute_load(effort: EffortEntry, week_starts: List[date]) -> List[float]:
        """
        Hours this effort puts into each week.

        hours_per_week = hours / max(1, ceil(days / 7)), added to every week
        whose window overlaps [start, end). Inactive entries yield all zeros.
        """
        if not effort.counts_towards_load:
            return [0.0] * len(week_starts)

        per_week = effort.hours_per_week
        spread: List[float] = []
        for ws in week_starts:
            we = ws + timedelta(days=7)
            spread.append(per_week if effort.start < we and effort.end > ws else 0.0)
        return spread

    def aggregate(
        self,
        products: Iterable[Any],
        week_starts: List[date],
        label_fn: Callable[[Any], str] = product_label,
    ) -> Dict[str, List[Dict[str, Any]]]:
        """
        Per department, one bucket per week:
            {"hours": float, "products": [label, ...], "product_ids": [id, ...]}
        Products are de-duplicated per bucket.
        """
        buckets: Dict[str, List[Dict[str, Any]]] = {
            dept.key: [{"hours": 0.0, "products": [], "product_ids": []} for _ in week_starts]
            for dept in self.departments
        }

        for product in products:
            label = label_fn(product)
            product_id = _get(product, "id")
            for dept in self.departments:
                spread = self.distribute_load(effort_for(product, dept), week_starts)
                for i, hours in enumerate(spread):
                    if not hours:
                        continue
                    bucket = buckets[dept.key][i]
                    bucket["hours"] += hours
                    if label not in bucket["products"]:
                        bucket["products"].append(label)
                    if product_id is not None and product_id not in bucket["product_ids"]:
                        bucket["product_ids"].append(product_id)
        return buckets

    # ------------------------------------------------------------------
    # 2. Utilisation
    # ------------------------------------------------------------------

    @staticmethod
    def utilisation(load_hours: float, capacity_hours_per_week: float) -> float:
        capacity = float(capacity_hours_per_week or 0)
        if capacity == 0:
            return 0.0
        return float(load_hours) / capacity * 100.0

    @staticmethod
    def is_overloaded(utilisation_pct: float) -> bool:
        return utilisation_pct > 100.0

    def summarize_next_4_weeks(
        self, buckets: List[Dict[str, Any]], weekly_capacity: float
    ) -> Dict[str, Any]:
        load = sum(b["hours"] for b in buckets[: self.summary_weeks])
        capacity = float(weekly_capacity or 0) * self.summary_weeks
        pct = self.utilisation(load, capacity)
        return {
            "load_hours": round(load, 2),
            "capacity_hours": round(capacity, 2),
            "utilisation": round(pct, 1),
            "overloaded": self.is_overloaded(pct),
        }

    # ------------------------------------------------------------------
    # 3. Unestimated products
    # ------------------------------------------------------------------

    def has_estimate(self, product: Any) -> bool:
        """Zero hours is treated the same as no estimate."""
        return any(_to_hours(_get(product, d.hours_field)) > 0 for d in self.departments)

    def find_unestimated(self, products: Iterable[Any]) -> List[Any]:
        """
        Products with a planned start in some department but no estimated
        hours anywhere. They are surfaced as warnings, never counted as load.
        """
        flagged = []
        for product in products:
            has_hours = self.has_estimate(product)
            has_dates = any(_get(product, d.start_field) is not None for d in self.departments)
            if has_dates and not has_hours:
                flagged.append(product)
        return flagged

    # ------------------------------------------------------------------
    # 4. Full heatmap payload
    # ------------------------------------------------------------------

    def build_report(
        self,
        products: List[Any],
        capacities: Iterable[Any],
        reference_date: Any,
        weeks: int,
        label_fn: Callable[[Any], str] = product_label,
    ) -> Dict[str, Any]:
        week_starts = self.week_window(reference_date, weeks)
        estimated = [
            p for p in products
            if self.has_estimate(p)
        ]
        buckets = self.aggregate(estimated, week_starts, label_fn=label_fn)

        capacity_map: Dict[str, Any] = {_get(c, "department"): c for c in capacities}

        departments_out = []
        for dept in self.departments:
            cap_row = capacity_map.get(dept.key)
            weekly_cap = _to_hours(_get(cap_row, "hours_per_week"))
            weeks_out = []
            for ws, bucket in zip(week_starts, buckets[dept.key]):
                pct = self.utilisation(bucket["hours"], weekly_cap)
                weeks_out.append({
                    "week_start": ws.isoformat(),
                    "hours": round(bucket["hours"], 2),
                    "capacity": weekly_cap,
                    "utilisation": round(pct, 1),
                    "overloaded": self.is_overloaded(pct),
                    "products": list(bucket["products"]),
                    "product_ids": list(bucket["product_ids"]),
                })
            departments_out.append({
                "department": dept.key,
                "label": _get(cap_row, "display_name") or dept.label,
                "hours_per_week": weekly_cap,
                "headcount": _get(cap_row, "headcount"),
                "weeks": weeks_out,
                "summary": self.summarize_next_4_weeks(buckets[dept.key], weekly_cap),
            })

        total_hours = sum(
            _to_hours(_get(p, d.hours_field)) for p in estimated for d in self.departments
        )

        return {
            "start": week_starts[0].isoformat() if week_starts else None,
            "weeks": [ws.isoformat() for ws in week_starts],
            "departments": departments_out,
            "total_estimated_hours": round(total_hours, 2),
            "estimated_product_count": len(estimated),
            "unestimated": [
                {
                    "id": _get(p, "id"),
                    "label": label_fn(p),
                    "part_code": _get(p, "part_code"),
                    "description": _get(p, "description"),
                    "current_department": _get(p, "current_department"),
                }
                for p in self.find_unestimated(products)
            ],
        }
