"""
On-call rotation math.

A cycle definition (start date + active slots + registrar pattern) is one
immutable value, validated as a unit. Resolving a date is two steps:

  date  --cycle-->  slot position  --assignment history-->  clinician

Consultants rotate weekly: week k after the start is slot (k mod N) + 1.
Registrars rotate daily over N x 7 days: day-of-cycle d maps to a slot
position through the explicit pattern table, or round-robin when no
pattern has been configured at all.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import CycleConfigError
from .models import Slot, SlotAssignmentSpan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleDefinition:
    role: str
    start_date: Optional[date]
    slots: Tuple[Slot, ...]
    pattern: Tuple[Tuple[int, int], ...] = ()     # (day_of_cycle, slot_position)

    @property
    def slot_count(self) -> int:
        return len(self.slots)

    @property
    def cycle_length(self) -> int:
        """Derived, never stored: N weeks for consultants, N x 7 days for registrars."""
        if self.role == "consultant":
            return self.slot_count
        return self.slot_count * 7

    @property
    def unit_type(self) -> str:
        return "week" if self.role == "consultant" else "day"

    def _pattern_map(self) -> Dict[int, int]:
        return {day: position for day, position in self.pattern}

    def issues(self) -> List[str]:
        """Every configuration problem, without raising."""
        problems: List[str] = []
        if not self.slots:
            problems.append(f"{self.role} cycle has no active slots")
        if self.start_date is None:
            problems.append(f"{self.role} cycle has no start date")

        positions = sorted(s.position for s in self.slots)
        if len(set(positions)) != len(positions):
            problems.append(f"{self.role} cycle has duplicate slot positions {positions}")
        elif positions and positions != list(range(1, len(positions) + 1)):
            problems.append(
                f"{self.role} slot positions {positions} are not contiguous 1..{len(positions)}"
            )

        if self.role == "consultant":
            if self.pattern:
                problems.append("consultant cycles rotate weekly and take no pattern")
            return problems

        if not self.pattern:
            return problems

        days = [day for day, _ in self.pattern]
        if len(set(days)) != len(days):
            problems.append("registrar pattern lists the same day of cycle more than once")
        if len(set(days)) != self.cycle_length:
            problems.append(
                f"registrar pattern covers {len(set(days))} days but the cycle is "
                f"{self.cycle_length} days ({self.slot_count} slots x 7)"
            )
        out_of_range = sorted(d for d in set(days) if d < 1 or d > self.cycle_length)
        if out_of_range:
            problems.append(f"registrar pattern days out of range 1..{self.cycle_length}: {out_of_range}")
        known = set(positions)
        unknown = sorted({p for _, p in self.pattern if p not in known})
        if unknown:
            problems.append(f"registrar pattern references slot positions with no active slot: {unknown}")
        return problems

    def validate(self) -> "CycleDefinition":
        problems = self.issues()
        if problems:
            raise CycleConfigError("; ".join(problems))
        return self

    def slot_position_for_date(self, day: date) -> int:
        if not self.slots:
            raise CycleConfigError(f"{self.role} cycle has no active slots")
        if self.start_date is None:
            raise CycleConfigError(f"{self.role} cycle has no start date")
        if day < self.start_date:
            raise CycleConfigError(
                f"{day.isoformat()} is before the {self.role} cycle start {self.start_date.isoformat()}"
            )

        days_since_start = (day - self.start_date).days
        if self.role == "consultant":
            return (days_since_start // 7) % self.cycle_length + 1

        day_of_cycle = days_since_start % self.cycle_length + 1
        if not self.pattern:
            return (day_of_cycle - 1) % self.slot_count + 1
        position = self._pattern_map().get(day_of_cycle)
        if position is None:
            raise CycleConfigError(
                f"registrar pattern has no entry for day {day_of_cycle} of {self.cycle_length}"
            )
        return position

    def slot_for_position(self, position: int) -> Slot:
        for slot in self.slots:
            if slot.position == position:
                return slot
        raise CycleConfigError(f"{self.role} cycle has no active slot at position {position}")


def clinician_for_slot(
    assignments: Iterable[SlotAssignmentSpan],
    slot_id: int,
    day: date,
) -> Optional[int]:
    """Holder of `slot_id` on `day`, or None when the slot is vacant."""
    spans = sorted(
        (a for a in assignments if a.slot_id == slot_id),
        key=lambda a: (a.effective_from, a.id),
    )
    for span in spans:
        if span.contains(day):
            return span.clinician_id
    return None


def oncall_clinician_for_date(
    cycle: Optional[CycleDefinition],
    assignments: Iterable[SlotAssignmentSpan],
    day: date,
) -> Optional[int]:
    """
    Rotation on-call clinician for `day`.

    Raises CycleConfigError for misconfiguration; a vacant slot or a role
    with no cycle at all resolves to None.
    """
    if cycle is None:
        return None
    position = cycle.slot_position_for_date(day)
    slot = cycle.slot_for_position(position)
    return clinician_for_slot(assignments, slot.id, day)


def safe_oncall_clinician_for_date(
    cycle: Optional[CycleDefinition],
    assignments: Iterable[SlotAssignmentSpan],
    day: date,
    issues: Optional[List[str]] = None,
) -> Optional[int]:
    """Like oncall_clinician_for_date but degrades to None, collecting the error message."""
    try:
        return oncall_clinician_for_date(cycle, assignments, day)
    except CycleConfigError as e:
        logger.debug(f"No on-call for {day.isoformat()}: {e}")
        if issues is not None and str(e) not in issues:
            issues.append(str(e))
        return None
