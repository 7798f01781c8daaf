"""Load persisted rows into the engine's in-memory records."""
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from models import (
    Clinician, Duty, JobPlanWeek, OnCallConfig, OnCallSlot, OnCallPattern,
    SlotAssignment, Leave, RotaEntry, CascadeRelease, CoverageRequest,
)
from rota import models as rm
from rota.cycle import CycleDefinition


def to_clinician(c: Clinician) -> rm.Clinician:
    return rm.Clinician(id=c.id, name=c.name, role=c.role, grade=c.grade, active=bool(c.active))


def to_duty(d: Duty) -> rm.Duty:
    return rm.Duty(
        id=d.id,
        name=d.name,
        color=d.color,
        requires_registrar=bool(d.requires_registrar),
        requires_coverage=bool(d.requires_coverage),
        preferred_grade=d.preferred_grade,
    )


def to_job_plan(j: JobPlanWeek) -> rm.JobPlanDay:
    return rm.JobPlanDay(
        clinician_id=j.clinician_id,
        week_no=j.week_no,
        day_of_week=j.day_of_week,
        am_duty_id=j.am_duty_id,
        pm_duty_id=j.pm_duty_id,
        am_supporting_id=j.am_supporting_clinician_id,
        pm_supporting_id=j.pm_supporting_clinician_id,
    )


def to_leave(lv: Leave) -> rm.Leave:
    return rm.Leave(id=lv.id, clinician_id=lv.clinician_id, date=lv.date, session=lv.session, type=lv.type, note=lv.note)


def to_override(o: RotaEntry) -> rm.ManualOverride:
    return rm.ManualOverride(
        id=o.id,
        clinician_id=o.clinician_id,
        date=o.date,
        session=o.session,
        duty_id=o.duty_id,
        is_oncall=bool(o.is_oncall),
        note=o.note,
        supporting_clinician_id=o.supporting_clinician_id,
    )


def to_release(r: CascadeRelease) -> rm.CascadeRelease:
    return rm.CascadeRelease(
        registrar_id=r.registrar_id,
        date=r.date,
        session=r.session,
        consultant_id=r.consultant_id,
        duty_id=r.duty_id,
        origin_type=r.origin_type,
        origin_id=r.origin_id,
    )


def to_coverage(r: CoverageRequest) -> rm.CoverageAssignment:
    return rm.CoverageAssignment(
        request_id=r.id,
        clinician_id=r.assigned_clinician_id,
        date=r.date,
        session=r.session,
        duty_id=r.duty_id,
        consultant_id=r.consultant_id,
        absent_clinician_id=r.absent_clinician_id,
    )


def to_span(a: SlotAssignment) -> rm.SlotAssignmentSpan:
    return rm.SlotAssignmentSpan(
        id=a.id,
        slot_id=a.slot_id,
        clinician_id=a.clinician_id,
        effective_from=a.effective_from,
        effective_to=a.effective_to,
    )


def load_cycle(db: Session, role: str) -> Optional[CycleDefinition]:
    """Cycle definition for a role, or None when the role has no rotation at all."""
    config = db.query(OnCallConfig).filter(OnCallConfig.role == role).first()
    slots = (
        db.query(OnCallSlot)
        .filter(OnCallSlot.role == role, OnCallSlot.active == True)  # noqa: E712
        .order_by(OnCallSlot.position, OnCallSlot.id)
        .all()
    )
    if config is None and not slots:
        return None
    pattern = (
        db.query(OnCallPattern)
        .filter(OnCallPattern.role == role)
        .order_by(OnCallPattern.day_of_cycle)
        .all()
    )
    return CycleDefinition(
        role=role,
        start_date=config.start_date if config else None,
        slots=tuple(rm.Slot(id=s.id, position=s.position, name=s.name) for s in slots),
        pattern=tuple((p.day_of_cycle, p.slot_position) for p in pattern),
    )


def load_assignments(db: Session, role: str) -> List[rm.SlotAssignmentSpan]:
    rows = (
        db.query(SlotAssignment)
        .join(OnCallSlot, SlotAssignment.slot_id == OnCallSlot.id)
        .filter(OnCallSlot.role == role)
        .order_by(SlotAssignment.effective_from, SlotAssignment.id)
        .all()
    )
    return [to_span(a) for a in rows]


def load_duties(db: Session) -> Dict[int, rm.Duty]:
    return {d.id: to_duty(d) for d in db.query(Duty).all()}


def load_snapshot(db: Session, start: date, end: date) -> rm.RotaSnapshot:
    """Everything the compositor needs for [start, end]."""
    clinicians = [to_clinician(c) for c in db.query(Clinician).order_by(Clinician.id).all()]
    job_plans = {}
    for j in db.query(JobPlanWeek).all():
        plan = to_job_plan(j)
        job_plans[(plan.clinician_id, plan.week_no, plan.day_of_week)] = plan

    leaves = db.query(Leave).filter(Leave.date >= start, Leave.date <= end).all()
    overrides = db.query(RotaEntry).filter(RotaEntry.date >= start, RotaEntry.date <= end).all()
    releases = db.query(CascadeRelease).filter(CascadeRelease.date >= start, CascadeRelease.date <= end).all()
    coverage = (
        db.query(CoverageRequest)
        .filter(
            CoverageRequest.date >= start,
            CoverageRequest.date <= end,
            CoverageRequest.status == "assigned",
            CoverageRequest.assigned_clinician_id.isnot(None),
        )
        .all()
    )

    cycles = {}
    assignments = {}
    for role in rm.ROLES:
        cycle = load_cycle(db, role)
        if cycle is not None:
            cycles[role] = cycle
        assignments[role] = load_assignments(db, role)

    return rm.RotaSnapshot(
        clinicians=clinicians,
        duties=load_duties(db),
        job_plans=job_plans,
        leaves=[to_leave(lv) for lv in leaves],
        overrides=[to_override(o) for o in overrides],
        releases=[to_release(r) for r in releases],
        coverage=[to_coverage(r) for r in coverage],
        cycles=cycles,
        assignments=assignments,
    )
