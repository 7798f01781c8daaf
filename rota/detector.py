"""
Coverage need detection over a snapshot.

A registrar's absence uncovers their planned duty when that duty needs a
registrar, or when they were supporting a consultant who is still there.
A consultant's absence uncovers their own duty (if it requires coverage)
and frees every registrar whose job plan pairs them with that consultant;
the freed registrars raise no need of their own.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional, Tuple

from .dates import day_of_week, is_weekday, week_of_month
from .models import (
    Clinician,
    CoverageNeed,
    EngineConfig,
    FreedRegistrar,
    JobPlanDay,
    RotaSnapshot,
)

logger = logging.getLogger(__name__)


@dataclass
class Detection:
    needs: List[CoverageNeed] = field(default_factory=list)
    freed: List[FreedRegistrar] = field(default_factory=list)

    def extend(self, other: "Detection") -> None:
        self.needs.extend(other.needs)
        self.freed.extend(other.freed)


def job_plan_for(
    snapshot: RotaSnapshot,
    clinician_id: int,
    day: date,
    config: EngineConfig,
) -> Optional[JobPlanDay]:
    if not is_weekday(day):
        return None
    return snapshot.job_plans.get((clinician_id, week_of_month(day, config.max_week_of_month), day_of_week(day)))


def planned_cell(
    snapshot: RotaSnapshot,
    clinician_id: int,
    day: date,
    session: str,
    config: EngineConfig,
) -> Tuple[Optional[int], Optional[int]]:
    """(duty_id, supporting_consultant_id) the clinician was due to work, ignoring absences."""
    for o in snapshot.overrides:
        if o.clinician_id == clinician_id and o.date == day and o.session == session:
            return o.duty_id, o.supporting_clinician_id
    plan = job_plan_for(snapshot, clinician_id, day, config)
    if plan is None:
        return None, None
    return plan.duty_for(session), plan.supporting_for(session)


def is_on_leave(snapshot: RotaSnapshot, clinician_id: int, day: date, session: str) -> bool:
    return any(
        lv.clinician_id == clinician_id and lv.date == day and lv.covers(session)
        for lv in snapshot.leaves
    )


def is_released(snapshot: RotaSnapshot, registrar_id: int, day: date, session: str) -> bool:
    return any(
        r.registrar_id == registrar_id and r.date == day and r.session == session
        for r in snapshot.releases
    )


def registrar_needs(
    snapshot: RotaSnapshot,
    registrar: Clinician,
    day: date,
    sessions: Iterable[str],
    reason: str,
    config: Optional[EngineConfig] = None,
) -> Detection:
    config = config or EngineConfig()
    result = Detection()
    for session in sessions:
        if is_released(snapshot, registrar.id, day, session):
            logger.debug(f"{registrar.name} {day.isoformat()} {session}: freed, nothing to cover")
            continue
        duty_id, consultant_id = planned_cell(snapshot, registrar.id, day, session, config)
        if duty_id is None:
            continue
        duty = snapshot.duties.get(duty_id)
        if consultant_id is not None:
            if is_on_leave(snapshot, consultant_id, day, session):
                continue
        elif duty is None or not duty.requires_registrar:
            continue
        result.needs.append(CoverageNeed(
            date=day,
            session=session,
            duty_id=duty_id,
            type="registrar",
            reason=reason,
            absent_clinician_id=registrar.id,
            consultant_id=consultant_id,
        ))
    return result


def consultant_impact(
    snapshot: RotaSnapshot,
    consultant: Clinician,
    day: date,
    sessions: Iterable[str],
    reason: str,
    config: Optional[EngineConfig] = None,
) -> Detection:
    """The consultant's own uncovered duty plus every registrar their absence frees."""
    config = config or EngineConfig()
    result = Detection()
    registrars = sorted(
        (c for c in snapshot.clinicians if c.role == "registrar" and c.active),
        key=lambda c: c.id,
    )
    overridden = {(o.clinician_id, o.date, o.session) for o in snapshot.overrides}

    for session in sessions:
        duty_id, _ = planned_cell(snapshot, consultant.id, day, session, config)
        duty = snapshot.duties.get(duty_id) if duty_id is not None else None
        if duty is not None and duty.requires_coverage:
            result.needs.append(CoverageNeed(
                date=day,
                session=session,
                duty_id=duty_id,
                type="consultant",
                reason=reason,
                absent_clinician_id=consultant.id,
            ))

        for registrar in registrars:
            if (registrar.id, day, session) in overridden:
                continue
            plan = job_plan_for(snapshot, registrar.id, day, config)
            if plan is None or plan.supporting_for(session) != consultant.id:
                continue
            reg_duty_id = plan.duty_for(session)
            reg_duty = snapshot.duties.get(reg_duty_id) if reg_duty_id is not None else None
            result.freed.append(FreedRegistrar(
                date=day,
                session=session,
                registrar_id=registrar.id,
                registrar_name=registrar.name,
                consultant_id=consultant.id,
                duty_id=reg_duty_id,
                duty_name=reg_duty.name if reg_duty else None,
            ))
    return result


def detect_for_clinician(
    snapshot: RotaSnapshot,
    clinician: Clinician,
    day: date,
    sessions: Iterable[str],
    reason: str,
    config: Optional[EngineConfig] = None,
) -> Detection:
    sessions = tuple(sessions)
    if clinician.role == "consultant":
        return consultant_impact(snapshot, clinician, day, sessions, reason, config)
    return registrar_needs(snapshot, clinician, day, sessions, reason, config)
