"""
Write-boundary checks and post-composition validation.
"""

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import ConstraintViolation
from .models import ScheduleEntry, SlotAssignmentSpan


def find_overlapping_assignment(
    assignments: Iterable[SlotAssignmentSpan],
    slot_id: int,
    effective_from: date,
    effective_to: Optional[date],
    exclude_id: Optional[int] = None,
) -> Optional[SlotAssignmentSpan]:
    """First other interval on `slot_id` that shares a day with [from, to]."""
    for span in sorted(assignments, key=lambda a: (a.effective_from, a.id)):
        if span.slot_id != slot_id or span.id == exclude_id:
            continue
        if span.overlaps(effective_from, effective_to):
            return span
    return None


def check_assignment_interval(
    assignments: Iterable[SlotAssignmentSpan],
    slot_id: int,
    effective_from: date,
    effective_to: Optional[date],
    exclude_id: Optional[int] = None,
) -> None:
    """Raise ConstraintViolation for a backwards interval or one overlapping another holder."""
    if effective_to is not None and effective_to < effective_from:
        raise ConstraintViolation(
            f"effective_to {effective_to.isoformat()} is before effective_from {effective_from.isoformat()}"
        )
    clash = find_overlapping_assignment(assignments, slot_id, effective_from, effective_to, exclude_id)
    if clash is not None:
        until = clash.effective_to.isoformat() if clash.effective_to else "open-ended"
        raise ConstraintViolation(
            f"Slot {slot_id} is already assigned to clinician {clash.clinician_id} "
            f"from {clash.effective_from.isoformat()} to {until}"
        )


def validate_schedule(entries: List[ScheduleEntry]) -> Tuple[bool, List[str]]:
    """
    Check a composed schedule against the rota invariants.
    Returns (is_valid, list_of_violation_messages).
    """
    violations = []

    oncall: Dict[Tuple[date, str, str], List[str]] = defaultdict(list)
    seen = set()
    for e in entries:
        key = (e.date, e.clinician_id, e.session)
        if key in seen:
            violations.append(f"{e.clinician_name}: two cells for {e.date.isoformat()} {e.session}")
        seen.add(key)

        if e.is_oncall:
            oncall[(e.date, e.clinician_role, e.session)].append(e.clinician_name)

        if e.source == "leave" and (e.duty_id is not None or e.is_oncall):
            violations.append(f"{e.clinician_name}: leave cell on {e.date.isoformat()} {e.session} carries a duty")

        if e.source is None and (e.duty_id is not None or e.is_oncall or e.is_leave):
            violations.append(f"{e.clinician_name}: blank cell on {e.date.isoformat()} {e.session} has content")

    for (day, role, session), names in sorted(oncall.items()):
        if len(names) > 1:
            violations.append(f"{day.isoformat()} {session}: {len(names)} {role}s on call ({', '.join(names)})")

    return len(violations) == 0, violations
