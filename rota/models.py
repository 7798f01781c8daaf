"""
Data records for the rota engine.

Everything here is a plain dataclass filled from the persistence layer
(see webapp/backend/snapshot.py). The engine never talks to the database.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

ROLES = ("consultant", "registrar")
GRADES = ("junior", "senior")
SESSIONS = ("AM", "PM")
LEAVE_SESSIONS = ("AM", "PM", "FULL")
LEAVE_TYPES = ("annual", "study", "sick", "professional")

COVERAGE_TYPES = ("registrar", "consultant")
COVERAGE_REASONS = ("leave", "oncall_conflict", "manual")
COVERAGE_STATUSES = ("pending", "assigned", "cancelled")

# ScheduleEntry.source values, highest precedence first. None = blank cell.
SOURCES = ("manual", "leave", "oncall", "cascade", "jobplan")

ORIGIN_TYPES = ("leave", "oncall")


def sessions_for(session: str) -> Tuple[str, ...]:
    """Expand a leave/override session tag into the half-day sessions it covers."""
    if session == "FULL":
        return SESSIONS
    if session not in SESSIONS:
        raise ValueError(f"Unknown session: {session!r}")
    return (session,)


# ---------------------------------------------------------------------------
# Persisted inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Clinician:
    id: int
    name: str
    role: str                      # consultant | registrar
    grade: Optional[str] = None    # registrar only: junior | senior
    active: bool = True


@dataclass(frozen=True)
class Duty:
    id: int
    name: str
    color: Optional[str] = None
    requires_registrar: bool = False
    requires_coverage: bool = True
    preferred_grade: Optional[str] = None


@dataclass(frozen=True)
class JobPlanDay:
    """Base schedule for one (clinician, week-of-month, weekday)."""
    clinician_id: int
    week_no: int                   # 1..5
    day_of_week: int               # 1=Mon .. 5=Fri
    am_duty_id: Optional[int] = None
    pm_duty_id: Optional[int] = None
    am_supporting_id: Optional[int] = None
    pm_supporting_id: Optional[int] = None

    def duty_for(self, session: str) -> Optional[int]:
        return self.am_duty_id if session == "AM" else self.pm_duty_id

    def supporting_for(self, session: str) -> Optional[int]:
        return self.am_supporting_id if session == "AM" else self.pm_supporting_id


@dataclass(frozen=True)
class Leave:
    id: int
    clinician_id: int
    date: date
    session: str                   # AM | PM | FULL
    type: str
    note: Optional[str] = None

    def covers(self, session: str) -> bool:
        return self.session == "FULL" or self.session == session


@dataclass(frozen=True)
class ManualOverride:
    id: int
    clinician_id: int
    date: date
    session: str                   # AM | PM
    duty_id: Optional[int] = None
    is_oncall: bool = False
    note: Optional[str] = None
    supporting_clinician_id: Optional[int] = None


@dataclass(frozen=True)
class CascadeRelease:
    """A registrar freed from supporting an absent consultant (derived override layer)."""
    registrar_id: int
    date: date
    session: str
    consultant_id: int
    duty_id: Optional[int]
    origin_type: str               # leave | oncall
    origin_id: int


@dataclass(frozen=True)
class CoverageAssignment:
    """An assigned coverage request, shown in the covering clinician's cell."""
    request_id: int
    clinician_id: int
    date: date
    session: str
    duty_id: int
    consultant_id: Optional[int] = None
    absent_clinician_id: Optional[int] = None


@dataclass(frozen=True)
class Slot:
    id: int
    position: int
    name: str = ""


@dataclass(frozen=True)
class SlotAssignmentSpan:
    """Effective-dated ownership of a slot. effective_to=None means open-ended."""
    id: int
    slot_id: int
    clinician_id: int
    effective_from: date
    effective_to: Optional[date] = None

    def contains(self, day: date) -> bool:
        if day < self.effective_from:
            return False
        return self.effective_to is None or day <= self.effective_to

    def overlaps(self, start: date, end: Optional[date]) -> bool:
        if end is not None and end < self.effective_from:
            return False
        if self.effective_to is not None and self.effective_to < start:
            return False
        return True


# ---------------------------------------------------------------------------
# Engine outputs
# ---------------------------------------------------------------------------

@dataclass
class ScheduleEntry:
    date: date
    clinician_id: int
    clinician_name: str
    clinician_role: str
    session: str
    source: Optional[str] = None
    duty_id: Optional[int] = None
    duty_name: Optional[str] = None
    duty_color: Optional[str] = None
    is_oncall: bool = False
    is_leave: bool = False
    leave_type: Optional[str] = None
    note: Optional[str] = None
    manual_override_id: Optional[int] = None
    coverage_request_id: Optional[int] = None
    supporting_clinician_id: Optional[int] = None
    supporting_clinician_name: Optional[str] = None
    is_freed: bool = False
    is_rest: bool = False
    is_rest_off: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["date"] = self.date.isoformat()
        return out


@dataclass(frozen=True)
class CoverageNeed:
    date: date
    session: str
    duty_id: int
    type: str                      # registrar | consultant
    reason: str
    absent_clinician_id: int
    consultant_id: Optional[int] = None


@dataclass(frozen=True)
class FreedRegistrar:
    date: date
    session: str
    registrar_id: int
    registrar_name: str
    consultant_id: int
    duty_id: Optional[int]
    duty_name: Optional[str]


@dataclass(frozen=True)
class CandidateFacts:
    """What the scorer needs to know about one eligible clinician."""
    clinician_id: int
    clinician_name: str
    grade: Optional[str] = None
    last_coverage_date: Optional[date] = None
    duty_count: int = 0
    oncall_count: int = 0
    coverage_count: int = 0
    resting: bool = False

    @property
    def workload(self) -> int:
        return self.duty_count + self.oncall_count + self.coverage_count


@dataclass(frozen=True)
class RankedCandidate:
    clinician_id: int
    clinician_name: str
    grade: Optional[str]
    score: float
    reasons: List[str]
    workload_count: int
    last_coverage_date: Optional[date]


@dataclass(frozen=True)
class UnavailableCandidate:
    clinician_id: int
    clinician_name: str
    reason: str                    # on_leave | on_call | already_assigned | resting


@dataclass
class Suggestions:
    available: List[RankedCandidate] = field(default_factory=list)
    unavailable: List[UnavailableCandidate] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RestRule:
    """Rest session granted `offset_days` after an on-call day."""
    offset_days: int
    session: str
    off: bool = True               # False = rest session with SPA duty kept


# day_of_week of the on-call (1=Mon .. 7=Sun) -> rest sessions
DEFAULT_REST_RULES: Dict[int, Tuple[RestRule, ...]] = {
    1: (RestRule(1, "AM", off=False), RestRule(1, "PM")),
    2: (RestRule(1, "AM", off=False), RestRule(1, "PM")),
    3: (RestRule(1, "AM", off=False), RestRule(1, "PM")),
    4: (RestRule(1, "AM", off=False), RestRule(1, "PM")),
    6: (
        RestRule(-1, "AM"), RestRule(-1, "PM"),
        RestRule(2, "AM"), RestRule(2, "PM"),
        RestRule(3, "AM"), RestRule(3, "PM"),
    ),
}


@dataclass(frozen=True)
class EngineConfig:
    workload_window_days: int = 30
    recency_saturation_days: int = 28
    recency_weight: float = 40.0
    workload_weight: float = 45.0
    grade_weight: float = 15.0
    rest_rules: Dict[int, Tuple[RestRule, ...]] = field(default_factory=lambda: dict(DEFAULT_REST_RULES))
    rest_blocks_eligibility: bool = False
    max_bulk_leave_days: int = 60
    oncall_horizon_days: int = 90
    max_week_of_month: int = 5


@dataclass
class RotaSnapshot:
    """Persisted state for one date window, as the compositor consumes it."""
    clinicians: List[Clinician]
    duties: Dict[int, Duty] = field(default_factory=dict)
    job_plans: Dict[Tuple[int, int, int], JobPlanDay] = field(default_factory=dict)
    leaves: List[Leave] = field(default_factory=list)
    overrides: List[ManualOverride] = field(default_factory=list)
    releases: List[CascadeRelease] = field(default_factory=list)
    coverage: List[CoverageAssignment] = field(default_factory=list)
    cycles: Dict[str, Any] = field(default_factory=dict)   # role -> CycleDefinition
    assignments: Dict[str, List[SlotAssignmentSpan]] = field(default_factory=dict)  # role -> spans
