"""
Schedule compositor: one resolved cell per (date, clinician, session).

Layers, highest precedence first; the first one that yields something
defines the cell and nothing from lower layers is blended in:

  manual override > leave > coverage > on-call > cascade release > job plan

Rest flags are computed afterwards and only annotate the cell.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from .cycle import safe_oncall_clinician_for_date
from .dates import date_range, day_of_week, is_weekday, week_of_month
from .models import (
    ROLES,
    SESSIONS,
    CascadeRelease,
    Clinician,
    CoverageAssignment,
    EngineConfig,
    Leave,
    ManualOverride,
    RotaSnapshot,
    ScheduleEntry,
)

logger = logging.getLogger(__name__)

CellKey = Tuple[int, date, str]


def clinician_sort_key(c: Clinician):
    role_rank = ROLES.index(c.role) if c.role in ROLES else len(ROLES)
    return (role_rank, c.name.lower(), c.id)


class _Resolver:
    """Per-call indexes over a snapshot. Never cached across calls."""

    def __init__(self, snapshot: RotaSnapshot, config: EngineConfig, issues: List[str]):
        self.snapshot = snapshot
        self.config = config
        self.issues = issues
        self.names = {c.id: c.name for c in snapshot.clinicians}
        self.roles = {c.id: c.role for c in snapshot.clinicians}

        self.overrides: Dict[CellKey, ManualOverride] = {}
        self.manual_oncall: Dict[Tuple[str, date, str], int] = {}
        for o in sorted(snapshot.overrides, key=lambda o: o.id):
            self.overrides.setdefault((o.clinician_id, o.date, o.session), o)
            role = self.roles.get(o.clinician_id)
            if o.is_oncall and role:
                self.manual_oncall.setdefault((role, o.date, o.session), o.clinician_id)

        self.leaves: Dict[Tuple[int, date], List[Leave]] = defaultdict(list)
        for lv in sorted(snapshot.leaves, key=lambda lv: lv.id):
            self.leaves[(lv.clinician_id, lv.date)].append(lv)

        self.releases: Dict[CellKey, CascadeRelease] = {}
        for r in sorted(snapshot.releases, key=lambda r: (r.origin_type, r.origin_id, r.consultant_id)):
            self.releases.setdefault((r.registrar_id, r.date, r.session), r)

        self.coverage: Dict[CellKey, CoverageAssignment] = {}
        for c in sorted(snapshot.coverage, key=lambda c: c.request_id):
            self.coverage.setdefault((c.clinician_id, c.date, c.session), c)

        self._rotation: Dict[Tuple[str, date], Tuple[Optional[int], List[str]]] = {}

    def rotation_oncall(self, role: str, day: date, record: bool = True) -> Optional[int]:
        """Rotation holder for `day`. Problems are only reported when `record` is set."""
        key = (role, day)
        if key not in self._rotation:
            problems: List[str] = []
            holder = safe_oncall_clinician_for_date(
                self.snapshot.cycles.get(role),
                self.snapshot.assignments.get(role, ()),
                day,
                problems,
            )
            self._rotation[key] = (holder, problems)
        holder, problems = self._rotation[key]
        if record:
            for p in problems:
                if p not in self.issues:
                    self.issues.append(p)
        return holder

    def oncall_holder(self, role: str, day: date, session: str) -> Optional[int]:
        """A manual on-call for the role and session displaces the rotation holder."""
        manual = self.manual_oncall.get((role, day, session))
        if manual is not None:
            return manual
        return self.rotation_oncall(role, day)

    def leave_for(self, clinician_id: int, day: date, session: str) -> Optional[Leave]:
        for lv in self.leaves.get((clinician_id, day), ()):
            if lv.covers(session):
                return lv
        return None

    def rest_flags(self, clinician: Clinician, day: date, session: str) -> Tuple[bool, bool]:
        """(is_rest, is_rest_off) for a registrar following a rotation on-call."""
        if clinician.role != "registrar":
            return False, False
        is_rest = is_rest_off = False
        for oncall_dow, rules in self.config.rest_rules.items():
            for rule in rules:
                if rule.session != session:
                    continue
                oncall_day = day - timedelta(days=rule.offset_days)
                if day_of_week(oncall_day) != oncall_dow:
                    continue
                # on-call days outside the composed range are looked up, not reported
                if self.rotation_oncall("registrar", oncall_day, record=False) == clinician.id:
                    is_rest = True
                    is_rest_off = is_rest_off or rule.off
        return is_rest, is_rest_off

    def fill_duty(self, entry: ScheduleEntry, duty_id: Optional[int]) -> None:
        if duty_id is None:
            return
        entry.duty_id = duty_id
        duty = self.snapshot.duties.get(duty_id)
        if duty is not None:
            entry.duty_name = duty.name
            entry.duty_color = duty.color

    def fill_supporting(self, entry: ScheduleEntry, clinician_id: Optional[int]) -> None:
        if clinician_id is None:
            return
        entry.supporting_clinician_id = clinician_id
        entry.supporting_clinician_name = self.names.get(clinician_id)

    def resolve(self, clinician: Clinician, day: date, session: str) -> ScheduleEntry:
        entry = ScheduleEntry(
            date=day,
            clinician_id=clinician.id,
            clinician_name=clinician.name,
            clinician_role=clinician.role,
            session=session,
        )

        override = self.overrides.get((clinician.id, day, session))
        if override is not None:
            entry.source = "manual"
            entry.manual_override_id = override.id
            entry.is_oncall = override.is_oncall
            entry.note = override.note
            self.fill_duty(entry, override.duty_id)
            self.fill_supporting(entry, override.supporting_clinician_id)
            return entry

        leave = self.leave_for(clinician.id, day, session)
        if leave is not None:
            entry.source = "leave"
            entry.is_leave = True
            entry.leave_type = leave.type
            entry.note = leave.note
            return entry

        cover = self.coverage.get((clinician.id, day, session))
        if cover is not None:
            entry.source = "coverage"
            entry.coverage_request_id = cover.request_id
            if cover.absent_clinician_id is not None:
                entry.note = f"Covering {self.names.get(cover.absent_clinician_id, 'absent clinician')}"
            self.fill_duty(entry, cover.duty_id)
            self.fill_supporting(entry, cover.consultant_id)
            return entry

        if self.oncall_holder(clinician.role, day, session) == clinician.id:
            entry.source = "oncall"
            entry.is_oncall = True
            return entry

        release = self.releases.get((clinician.id, day, session))
        if release is not None:
            entry.source = "cascade"
            entry.is_freed = True
            entry.note = f"Freed: {self.names.get(release.consultant_id, 'consultant')} absent"
            self.fill_supporting(entry, release.consultant_id)
            return entry

        if is_weekday(day):
            plan = self.snapshot.job_plans.get(
                (clinician.id, week_of_month(day, self.config.max_week_of_month), day_of_week(day))
            )
            if plan is not None and plan.duty_for(session) is not None:
                entry.source = "jobplan"
                self.fill_duty(entry, plan.duty_for(session))
                self.fill_supporting(entry, plan.supporting_for(session))
        return entry


def compose_schedule(
    snapshot: RotaSnapshot,
    start: date,
    end: date,
    config: Optional[EngineConfig] = None,
    issues: Optional[List[str]] = None,
) -> List[ScheduleEntry]:
    """
    Resolve every (date, active clinician, session) cell in [start, end].

    Output is ordered by date, then clinician (role, name, id), then AM
    before PM, and depends only on the snapshot. Cycle misconfiguration
    never fails the range: affected cells simply show no rotation on-call
    and the problems are appended to `issues`.
    """
    config = config or EngineConfig()
    collected: List[str] = [] if issues is None else issues
    resolver = _Resolver(snapshot, config, collected)
    clinicians = sorted((c for c in snapshot.clinicians if c.active), key=clinician_sort_key)

    entries = []
    for day in date_range(start, end):
        for clinician in clinicians:
            for session in SESSIONS:
                entry = resolver.resolve(clinician, day, session)
                entry.is_rest, entry.is_rest_off = resolver.rest_flags(clinician, day, session)
                entries.append(entry)

    for msg in collected:
        logger.warning(f"On-call not shown: {msg}")
    logger.debug(f"Composed {len(entries)} cells for {start.isoformat()}..{end.isoformat()}")
    return entries


def oncall_for_date(
    snapshot: RotaSnapshot,
    day: date,
    session: str = "AM",
    issues: Optional[List[str]] = None,
) -> Dict[str, Optional[int]]:
    """Effective on-call clinician id per role for one date and session."""
    resolver = _Resolver(snapshot, EngineConfig(), [] if issues is None else issues)
    return {role: resolver.oncall_holder(role, day, session) for role in ROLES}


def rotation_oncall_dates(
    snapshot: RotaSnapshot,
    role: str,
    clinician_id: int,
    start: date,
    end: date,
) -> List[date]:
    """Dates in [start, end] on which the rotation puts `clinician_id` on call."""
    resolver = _Resolver(snapshot, EngineConfig(), [])
    return [d for d in date_range(start, end) if resolver.rotation_oncall(role, d) == clinician_id]
