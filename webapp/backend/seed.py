#!/usr/bin/env python3
"""Seed database with duties, clinicians, job plans, on-call slots, assignments and a registrar pattern."""
import sys
from datetime import date
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent))
sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from sqlalchemy.orm import Session

from database import engine, SessionLocal, Base
from models import (
    Clinician, Duty, JobPlanWeek, OnCallConfig, OnCallSlot, OnCallPattern, SlotAssignment,
)

CYCLE_START = date(2025, 1, 6)  # a Monday

DUTIES = [
    # name, color, requires_registrar, requires_coverage, preferred_grade
    ("Clinic", "#93C5FD", False, True, None),
    ("Theatre", "#86EFAC", True, True, "senior"),
    ("Ward Round", "#FDBA74", True, True, None),
    ("Endoscopy", "#C4B5FD", False, True, None),
    ("SPA", "#E2E8F0", False, False, None),
]

CONSULTANTS = ["Dr Adeyemi", "Dr Brennan", "Dr Chowdhury"]
REGISTRARS = [("Dr Dlamini", "senior"), ("Dr Evans", "junior"), ("Dr Fischer", "senior"), ("Dr Gupta", "junior")]


def registrar_pattern(slot_count: int):
    """Week k: weekdays on slot k+1, the weekend handed to the next slot."""
    rows = []
    for day in range(1, slot_count * 7 + 1):
        week = (day - 1) // 7
        weekday = (day - 1) % 7 + 1  # cycle starts on a Monday
        position = week + 1 if weekday <= 5 else (week + 1) % slot_count + 1
        rows.append((day, position))
    return rows


def seed(db: Session) -> None:
    duties = {}
    for name, color, req_reg, req_cov, grade in DUTIES:
        d = db.query(Duty).filter(Duty.name == name).first()
        if not d:
            d = Duty(name=name, color=color, requires_registrar=req_reg, requires_coverage=req_cov, preferred_grade=grade)
            db.add(d)
        duties[name] = d
    db.commit()

    consultants = []
    for name in CONSULTANTS:
        c = db.query(Clinician).filter(Clinician.name == name).first()
        if not c:
            c = Clinician(name=name, role="consultant", active=True)
            db.add(c)
        consultants.append(c)
    registrars = []
    for name, grade in REGISTRARS:
        c = db.query(Clinician).filter(Clinician.name == name).first()
        if not c:
            c = Clinician(name=name, role="registrar", grade=grade, active=True)
            db.add(c)
        registrars.append(c)
    db.commit()

    # Job plans: consultants alternate clinic and theatre; registrar i supports consultant i in the AM
    if not db.query(JobPlanWeek).first():
        for week_no in range(1, 6):
            for dow in range(1, 6):
                for i, c in enumerate(consultants):
                    am = duties["Clinic"] if (dow + i) % 2 else duties["Theatre"]
                    pm = duties["Endoscopy"] if dow == 3 else duties["SPA"]
                    db.add(JobPlanWeek(clinician_id=c.id, week_no=week_no, day_of_week=dow,
                                       am_duty_id=am.id, pm_duty_id=pm.id))
                for i, r in enumerate(registrars):
                    supported = consultants[i] if i < len(consultants) else None
                    db.add(JobPlanWeek(
                        clinician_id=r.id, week_no=week_no, day_of_week=dow,
                        am_duty_id=duties["Clinic"].id if supported else duties["Ward Round"].id,
                        pm_duty_id=duties["Ward Round"].id,
                        am_supporting_clinician_id=supported.id if supported else None,
                    ))
        db.commit()

    # On-call: one slot per clinician, open-ended from the cycle start
    for role, people in (("consultant", consultants), ("registrar", registrars)):
        cfg = db.query(OnCallConfig).filter(OnCallConfig.role == role).first()
        if not cfg:
            db.add(OnCallConfig(role=role, start_date=CYCLE_START))
        if db.query(OnCallSlot).filter(OnCallSlot.role == role).first():
            continue
        for position, person in enumerate(people, 1):
            slot = OnCallSlot(role=role, position=position, name=f"{role.title()} {position}", active=True)
            db.add(slot)
            db.flush()
            db.add(SlotAssignment(slot_id=slot.id, clinician_id=person.id, effective_from=CYCLE_START))
    db.commit()

    if not db.query(OnCallPattern).first():
        for day, position in registrar_pattern(len(registrars)):
            db.add(OnCallPattern(role="registrar", day_of_cycle=day, slot_position=position))
        db.commit()


if __name__ == "__main__":
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed(db)
        print("Seeded duties, clinicians, job plans and on-call rotation.")
    finally:
        db.close()
