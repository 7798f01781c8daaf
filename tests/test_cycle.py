"""
Tests for on-call rotation math and slot assignment lookup
"""

from datetime import date, timedelta

import pytest

from conftest import MONDAY, rotation
from rota import models as rm
from rota.cycle import (
    CycleDefinition,
    clinician_for_slot,
    oncall_clinician_for_date,
    safe_oncall_clinician_for_date,
)
from rota.dates import week_of_month
from rota.errors import ConstraintViolation, CycleConfigError
from rota.validate import check_assignment_interval, find_overlapping_assignment


def _slots(n):
    return tuple(rm.Slot(id=i, position=i, name=f"Slot {i}") for i in range(1, n + 1))


FORTNIGHT = tuple((d, 1 if d <= 7 else 2) for d in range(1, 15))


class TestConsultantCycle:
    """Weekly round-robin over slot positions"""

    @pytest.fixture
    def cycle(self):
        return CycleDefinition("consultant", date(2024, 1, 1), _slots(3))

    def test_derived_length_and_unit(self, cycle):
        assert cycle.cycle_length == 3
        assert cycle.unit_type == "week"

    def test_week_zero_is_slot_one(self, cycle):
        assert cycle.slot_position_for_date(date(2024, 1, 1)) == 1
        assert cycle.slot_position_for_date(date(2024, 1, 7)) == 1

    def test_weeks_advance_and_wrap(self, cycle):
        assert cycle.slot_position_for_date(date(2024, 1, 8)) == 2
        assert cycle.slot_position_for_date(date(2024, 1, 15)) == 3
        # week 3 -> back to slot 1 (3-week period)
        assert cycle.slot_position_for_date(date(2024, 1, 22)) == 1

    def test_before_start_is_config_error(self, cycle):
        with pytest.raises(CycleConfigError):
            cycle.slot_position_for_date(date(2023, 12, 31))

    def test_pattern_is_rejected(self):
        cycle = CycleDefinition("consultant", MONDAY, _slots(2), pattern=((1, 1),))
        assert any("no pattern" in p for p in cycle.issues())


class TestRegistrarCycle:
    """Day-of-cycle lookup through the pattern table"""

    def test_derived_length_and_unit(self):
        cycle = CycleDefinition("registrar", MONDAY, _slots(2), FORTNIGHT)
        assert cycle.cycle_length == 14
        assert cycle.unit_type == "day"
        assert cycle.issues() == []

    def test_day_fifteen_wraps_to_day_one(self):
        cycle = CycleDefinition("registrar", MONDAY, _slots(2), FORTNIGHT)
        day_one = cycle.slot_position_for_date(MONDAY)
        day_fifteen = cycle.slot_position_for_date(MONDAY + timedelta(days=14))
        assert day_fifteen == day_one == 1
        assert cycle.slot_position_for_date(MONDAY + timedelta(days=7)) == 2

    def test_empty_pattern_is_round_robin(self):
        cycle = CycleDefinition("registrar", MONDAY, _slots(3))
        positions = [cycle.slot_position_for_date(MONDAY + timedelta(days=i)) for i in range(7)]
        assert positions == [1, 2, 3, 1, 2, 3, 1]

    def test_short_pattern_is_reported_not_defaulted(self):
        cycle = CycleDefinition("registrar", MONDAY, _slots(2), FORTNIGHT[:10])
        assert any("covers 10 days" in p for p in cycle.issues())
        assert cycle.slot_position_for_date(MONDAY + timedelta(days=3)) == 1
        with pytest.raises(CycleConfigError):
            cycle.slot_position_for_date(MONDAY + timedelta(days=12))

    def test_slot_count_change_invalidates_pattern(self):
        cycle = CycleDefinition("registrar", MONDAY, _slots(3), FORTNIGHT)
        problems = cycle.issues()
        assert any("21 days" in p for p in problems)
        with pytest.raises(CycleConfigError):
            cycle.validate()

    def test_unknown_position_reported(self):
        pattern = tuple((d, 3 if d == 5 else 1) for d in range(1, 15))
        cycle = CycleDefinition("registrar", MONDAY, _slots(2), pattern)
        assert any("[3]" in p for p in cycle.issues())

    def test_missing_start_and_slots(self):
        cycle = CycleDefinition("registrar", None, ())
        problems = cycle.issues()
        assert any("no active slots" in p for p in problems)
        assert any("no start date" in p for p in problems)
        with pytest.raises(CycleConfigError):
            cycle.slot_position_for_date(MONDAY)


class TestSlotResolver:
    """Effective-dated slot ownership"""

    @pytest.fixture
    def spans(self):
        return [
            rm.SlotAssignmentSpan(1, slot_id=7, clinician_id=50, effective_from=date(2024, 1, 1), effective_to=date(2024, 1, 31)),
            rm.SlotAssignmentSpan(2, slot_id=7, clinician_id=51, effective_from=date(2024, 2, 1)),
            rm.SlotAssignmentSpan(3, slot_id=8, clinician_id=52, effective_from=date(2024, 1, 1)),
        ]

    def test_interval_bounds_inclusive(self, spans):
        assert clinician_for_slot(spans, 7, date(2024, 1, 1)) == 50
        assert clinician_for_slot(spans, 7, date(2024, 1, 31)) == 50
        assert clinician_for_slot(spans, 7, date(2024, 2, 1)) == 51

    def test_open_ended_covers_future(self, spans):
        assert clinician_for_slot(spans, 7, date(2030, 6, 1)) == 51

    def test_vacant_is_none(self, spans):
        assert clinician_for_slot(spans, 7, date(2023, 12, 31)) is None
        assert clinician_for_slot(spans, 9, date(2024, 1, 5)) is None

    def test_overlap_detection(self, spans):
        clash = find_overlapping_assignment(spans, 7, date(2024, 1, 20), date(2024, 1, 25))
        assert clash.id == 1
        assert find_overlapping_assignment(spans, 7, date(2024, 1, 20), None, exclude_id=1).id == 2
        with pytest.raises(ConstraintViolation):
            check_assignment_interval(spans, 7, date(2024, 3, 1), None)
        with pytest.raises(ConstraintViolation):
            check_assignment_interval(spans, 8, date(2024, 3, 1), date(2024, 2, 1))

    def test_non_overlapping_interval_accepted(self, spans):
        check_assignment_interval(spans, 7, date(2024, 2, 1), None, exclude_id=2)


class TestOncallResolution:
    def test_consultant_holder_by_week(self):
        cycle, spans = rotation("consultant", [1, 2])
        assert oncall_clinician_for_date(cycle, spans, MONDAY) == 1
        assert oncall_clinician_for_date(cycle, spans, MONDAY + timedelta(days=7)) == 2

    def test_no_cycle_is_none(self):
        assert oncall_clinician_for_date(None, [], MONDAY) is None

    def test_safe_resolution_collects_issue(self):
        cycle, spans = rotation("registrar", [3, 4])
        issues = []
        assert safe_oncall_clinician_for_date(cycle, spans, MONDAY - timedelta(days=1), issues) is None
        assert len(issues) == 1
        assert "before the registrar cycle start" in issues[0]


class TestWeekOfMonth:
    def test_month_starting_monday(self):
        assert week_of_month(date(2024, 1, 1)) == 1
        assert week_of_month(date(2024, 1, 6)) == 1
        # weeks tick over on Sunday
        assert week_of_month(date(2024, 1, 7)) == 2
        assert week_of_month(date(2024, 1, 29)) == 5

    def test_month_starting_saturday(self):
        # June 2024 starts on a Saturday: one-day week 1
        assert week_of_month(date(2024, 6, 1)) == 1
        assert week_of_month(date(2024, 6, 3)) == 2

    def test_capped_at_five(self):
        # March 2024 starts Friday; the 31st falls in a sixth Sunday-week
        assert week_of_month(date(2024, 3, 31)) == 5
