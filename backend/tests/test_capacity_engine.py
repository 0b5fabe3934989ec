"""
test_capacity_engine.py — Unit tests for the rough-cut capacity aggregator.

Tests cover:
  - Monday alignment and weekly windows
  - Even spread of hours over max(1, ceil(days / 7)) weeks
  - Half-open overlap (start < week_end and end > week_start)
  - Completed work excluded from load
  - Utilisation / overload thresholds and the next-4-weeks rollup
  - Unestimated products (dated, no hours) kept out of the load
  - RAG schedule status
"""

from datetime import date, datetime

import pytest

from steelworks.services.capacity_engine import (
    DEPARTMENTS,
    EffortEntry,
    effort_for,
    product_label,
    schedule_rag,
    week_start,
    weeks_between,
)

PRODUCTION = next(d for d in DEPARTMENTS if d.key == "PRODUCTION")


# ===========================================================================
# Class 1: Calendar helpers
# ===========================================================================

class TestWeekHelpers:

    @pytest.mark.parametrize("day", [
        date(2025, 1, 6), date(2025, 1, 8), date(2025, 1, 11), date(2025, 1, 12),
    ])
    def test_week_start_is_the_monday(self, day):
        assert week_start(day) == date(2025, 1, 6)
        assert week_start(day).weekday() == 0

    def test_week_start_accepts_datetime_and_string(self):
        assert week_start(datetime(2025, 3, 5, 14, 30)) == date(2025, 3, 3)
        assert week_start("2025-03-05") == date(2025, 3, 3)

    def test_week_window_is_consecutive_mondays(self, capacity_aggregator):
        window = capacity_aggregator.week_window(date(2025, 1, 8), 3)
        assert window == [date(2025, 1, 6), date(2025, 1, 13), date(2025, 1, 20)]

    def test_week_window_crosses_year_end(self, capacity_aggregator):
        window = capacity_aggregator.week_window(date(2024, 12, 31), 2)
        assert window == [date(2024, 12, 30), date(2025, 1, 6)]

    @pytest.mark.parametrize("start, end, expected", [
        (date(2025, 1, 6), date(2025, 1, 6), 1),    # same day
        (date(2025, 1, 6), date(2025, 1, 8), 1),    # 2 days
        (date(2025, 1, 6), date(2025, 1, 13), 1),   # exactly a week
        (date(2025, 1, 6), date(2025, 1, 14), 2),   # 8 days rounds up
        (date(2025, 1, 6), date(2025, 2, 3), 4),    # 28 days
        (date(2025, 1, 10), date(2025, 1, 6), 1),   # reversed dates
    ])
    def test_weeks_between(self, start, end, expected):
        assert weeks_between(start, end) == expected


# ===========================================================================
# Class 2: Spreading effort
# ===========================================================================

class TestDistributeLoad:

    def test_even_spread_over_four_weeks(self, capacity_aggregator, effort_product):
        """
        400 h from Mon 6 Jan to Mon 3 Feb: 28 days → 4 weeks → 100 h/week.
        The fifth week starts on the end date, so end > ws fails and it gets 0.
        """
        weeks = capacity_aggregator.week_window(date(2025, 1, 6), 5)
        spread = capacity_aggregator.distribute_load(effort_for(effort_product, PRODUCTION), weeks)
        assert spread == [100.0, 100.0, 100.0, 100.0, 0.0]

    def test_week_before_start_gets_nothing(self, capacity_aggregator, effort_product):
        weeks = capacity_aggregator.week_window(date(2024, 12, 30), 2)
        spread = capacity_aggregator.distribute_load(effort_for(effort_product, PRODUCTION), weeks)
        assert spread == [0.0, 100.0]

    def test_same_day_effort_lands_in_its_week(self, capacity_aggregator):
        """Zero elapsed days still divides by one week; Wed is inside [Mon, Mon + 7)."""
        effort = EffortEntry(hours=10, start=date(2025, 1, 8), end=date(2025, 1, 8))
        weeks = capacity_aggregator.week_window(date(2025, 1, 6), 1)
        assert capacity_aggregator.distribute_load(effort, weeks) == [10.0]

    def test_mid_week_span_touches_two_weeks(self, capacity_aggregator):
        """Thu → following Tue is 5 days: one week of divisor, two overlapping windows."""
        effort = EffortEntry(hours=30, start=date(2025, 1, 9), end=date(2025, 1, 14))
        weeks = capacity_aggregator.week_window(date(2025, 1, 6), 3)
        assert capacity_aggregator.distribute_load(effort, weeks) == [30.0, 30.0, 0.0]

    def test_completed_effort_contributes_nothing(self, capacity_aggregator, effort_product):
        effort_product["production_completion_date"] = "2025-01-20"
        weeks = capacity_aggregator.week_window(date(2025, 1, 6), 4)
        spread = capacity_aggregator.distribute_load(effort_for(effort_product, PRODUCTION), weeks)
        assert spread == [0.0, 0.0, 0.0, 0.0]

    @pytest.mark.parametrize("field, value", [
        ("production_estimated_hours", None),
        ("production_estimated_hours", 0),
        ("production_planned_start", None),
        ("production_target_date", None),
    ])
    def test_incomplete_effort_contributes_nothing(self, capacity_aggregator, effort_product, field, value):
        effort_product[field] = value
        weeks = capacity_aggregator.week_window(date(2025, 1, 6), 4)
        spread = capacity_aggregator.distribute_load(effort_for(effort_product, PRODUCTION), weeks)
        assert spread == [0.0] * 4

    def test_empty_window(self, capacity_aggregator, effort_product):
        assert capacity_aggregator.distribute_load(effort_for(effort_product, PRODUCTION), []) == []


# ===========================================================================
# Class 3: Aggregation
# ===========================================================================

class TestAggregate:

    def test_buckets_sum_products_and_list_labels(self, capacity_aggregator, effort_product):
        second = dict(effort_product, id="p-2", part_code="COL-07",
                      production_estimated_hours=50,
                      production_planned_start="2025-01-13",
                      production_target_date="2025-01-20")
        weeks = capacity_aggregator.week_window(date(2025, 1, 6), 3)
        buckets = capacity_aggregator.aggregate([effort_product, second], weeks)

        production = buckets["PRODUCTION"]
        assert [b["hours"] for b in production] == [100.0, 150.0, 100.0]
        assert production[0]["products"] == ["100001/BEAM-01"]
        assert production[1]["products"] == ["100001/BEAM-01", "100001/COL-07"]
        assert production[1]["product_ids"] == ["p-1", "p-2"]

    def test_other_departments_untouched(self, capacity_aggregator, effort_product):
        weeks = capacity_aggregator.week_window(date(2025, 1, 6), 2)
        buckets = capacity_aggregator.aggregate([effort_product], weeks)
        for key in ("DESIGN", "OPS", "INSTALLATION"):
            assert all(b["hours"] == 0 and b["products"] == [] for b in buckets[key])

    def test_product_label(self, effort_product):
        assert product_label(effort_product) == "100001/BEAM-01"
        assert product_label({"part_code": "LOOSE"}) == "LOOSE"


# ===========================================================================
# Class 4: Utilisation
# ===========================================================================

class TestUtilisation:

    def test_zero_capacity_is_zero_percent(self, capacity_aggregator):
        assert capacity_aggregator.utilisation(120, 0) == 0.0
        assert capacity_aggregator.utilisation(120, None) == 0.0

    def test_over_capacity(self, capacity_aggregator):
        pct = capacity_aggregator.utilisation(150, 100)
        assert pct == 150.0
        assert capacity_aggregator.is_overloaded(pct) is True

    def test_exactly_full_is_not_overloaded(self, capacity_aggregator):
        pct = capacity_aggregator.utilisation(200, 200)
        assert pct == 100.0
        assert capacity_aggregator.is_overloaded(pct) is False

    def test_next_4_weeks_summary(self, capacity_aggregator):
        """
        Weeks 1–4 carry 100 + 100 + 100 + 100 = 400 h against 4 × 80 = 320 h
        → 125 %. The fifth week's 500 h is outside the summary.
        """
        buckets = [{"hours": h} for h in (100, 100, 100, 100, 500)]
        summary = capacity_aggregator.summarize_next_4_weeks(buckets, 80)
        assert summary == {
            "load_hours": 400,
            "capacity_hours": 320,
            "utilisation": 125.0,
            "overloaded": True,
        }

    def test_summary_with_no_capacity(self, capacity_aggregator):
        summary = capacity_aggregator.summarize_next_4_weeks([{"hours": 40}], 0)
        assert summary["utilisation"] == 0
        assert summary["overloaded"] is False


# ===========================================================================
# Class 5: Unestimated products and the full report
# ===========================================================================

class TestUnestimatedAndReport:

    def _unestimated(self):
        return {
            "id": "p-9",
            "part_code": "STAIR-02",
            "description": "Feature stair",
            "current_department": "DESIGN",
            "project": {"project_number": "100002"},
            "design_planned_start": "2025-01-06",
            "design_target_date": "2025-01-20",
        }

    def test_dated_product_without_hours_is_flagged(self, capacity_aggregator, effort_product):
        flagged = capacity_aggregator.find_unestimated([effort_product, self._unestimated()])
        assert [p["id"] for p in flagged] == ["p-9"]

    def test_zero_hours_counts_as_unestimated(self, capacity_aggregator):
        product = dict(self._unestimated(), design_estimated_hours=0)
        assert capacity_aggregator.find_unestimated([product]) == [product]

    def test_undated_product_is_not_flagged(self, capacity_aggregator):
        assert capacity_aggregator.find_unestimated([{"id": "p-0", "part_code": "X"}]) == []

    def test_build_report(self, capacity_aggregator, effort_product):
        capacities = [
            {"department": "PRODUCTION", "display_name": "Fab Shop", "hours_per_week": 80, "headcount": 2},
        ]
        report = capacity_aggregator.build_report(
            [effort_product, self._unestimated()], capacities, date(2025, 1, 8), 5,
        )

        assert report["start"] == "2025-01-06"
        assert report["weeks"][-1] == "2025-02-03"
        assert report["total_estimated_hours"] == 400
        assert report["estimated_product_count"] == 1
        assert [u["label"] for u in report["unestimated"]] == ["100002/STAIR-02"]

        by_key = {d["department"]: d for d in report["departments"]}
        production = by_key["PRODUCTION"]
        assert production["label"] == "Fab Shop"
        assert production["hours_per_week"] == 80.0
        assert [w["hours"] for w in production["weeks"]] == [100.0, 100.0, 100.0, 100.0, 0.0]
        assert production["weeks"][0]["utilisation"] == 125.0
        assert production["weeks"][0]["overloaded"] is True
        assert production["weeks"][0]["products"] == ["100001/BEAM-01"]
        assert production["summary"]["utilisation"] == 125.0

        # No capacity row: label falls back, utilisation reads 0
        design = by_key["DESIGN"]
        assert design["label"] == "Design"
        assert all(w["utilisation"] == 0 for w in design["weeks"])

    def test_report_departments_in_fixed_order(self, capacity_aggregator):
        report = capacity_aggregator.build_report([], [], date(2025, 1, 6), 1)
        assert [d["department"] for d in report["departments"]] == [
            "DESIGN", "OPS", "PRODUCTION", "INSTALLATION",
        ]
        assert report["unestimated"] == []


# ===========================================================================
# Class 6: RAG
# ===========================================================================

class TestScheduleRag:

    TODAY = date(2025, 3, 10)

    @pytest.mark.parametrize("target, expected", [
        (date(2025, 3, 9), "RED"),
        (date(2025, 3, 10), "AMBER"),
        (date(2025, 3, 17), "AMBER"),
        (date(2025, 3, 18), "GREEN"),
        ("2025-06-01", "GREEN"),
        (None, None),
        ("not-a-date", None),
    ])
    def test_rag(self, target, expected):
        assert schedule_rag(target, today=self.TODAY) == expected
