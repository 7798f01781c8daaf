"""
Shared fixtures: in-memory database per test, API client, snapshot builders.
"""

import os
import sys
from datetime import date
from pathlib import Path
from types import SimpleNamespace

import pytest

# Must be set before the backend's database module is imported
os.environ["ROTA_DATABASE_URL"] = "sqlite://"

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(PROJECT_ROOT / "webapp" / "backend"))

from fastapi.testclient import TestClient

from database import Base, SessionLocal, engine
import models as orm
from main import app
from rota import models as rm
from rota.cycle import CycleDefinition

# 2024-01-01 is a Monday
MONDAY = date(2024, 1, 1)


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    return TestClient(app)


# ---------------------------------------------------------------------------
# Persisted data helpers
# ---------------------------------------------------------------------------

def add_duty(db, name, requires_registrar=False, requires_coverage=True, preferred_grade=None, color="#93C5FD"):
    d = orm.Duty(
        name=name, color=color, requires_registrar=requires_registrar,
        requires_coverage=requires_coverage, preferred_grade=preferred_grade,
    )
    db.add(d)
    db.commit()
    return d


def add_clinician(db, name, role="registrar", grade=None, active=True):
    c = orm.Clinician(name=name, role=role, grade=grade, active=active)
    db.add(c)
    db.commit()
    return c


def add_job_plan(db, clinician, am_duty=None, pm_duty=None, am_supporting=None, pm_supporting=None):
    """Same plan every weekday of every week of the month."""
    for week_no in range(1, 6):
        for dow in range(1, 6):
            db.add(orm.JobPlanWeek(
                clinician_id=clinician.id, week_no=week_no, day_of_week=dow,
                am_duty_id=am_duty.id if am_duty else None,
                pm_duty_id=pm_duty.id if pm_duty else None,
                am_supporting_clinician_id=am_supporting.id if am_supporting else None,
                pm_supporting_clinician_id=pm_supporting.id if pm_supporting else None,
            ))
    db.commit()


def add_rotation(db, role, clinicians, start=MONDAY, pattern=None):
    """One slot per clinician, each held open-ended from `start`."""
    db.add(orm.OnCallConfig(role=role, start_date=start))
    slots = []
    for position, c in enumerate(clinicians, 1):
        slot = orm.OnCallSlot(role=role, position=position, name=f"{role} {position}", active=True)
        db.add(slot)
        db.flush()
        db.add(orm.SlotAssignment(slot_id=slot.id, clinician_id=c.id, effective_from=start))
        slots.append(slot)
    for day, position in pattern or ():
        db.add(orm.OnCallPattern(role=role, day_of_cycle=day, slot_position=position))
    db.commit()
    return slots


@pytest.fixture
def helpers():
    class H:
        duty = staticmethod(add_duty)
        clinician = staticmethod(add_clinician)
        job_plan = staticmethod(add_job_plan)
        rotation = staticmethod(add_rotation)
    return H


@pytest.fixture
def ward_db(db):
    """The `ward` department persisted; returns the row ids by short name."""
    clinic = add_duty(db, "Clinic")
    ward_round = add_duty(db, "Ward Round", requires_registrar=True, color="#FDBA74")
    spa = add_duty(db, "SPA", requires_coverage=False, color="#E2E8F0")
    theatre = add_duty(db, "Theatre", requires_registrar=True, preferred_grade="senior", color="#86EFAC")

    con_x = add_clinician(db, "Con X", "consultant")
    con_y = add_clinician(db, "Con Y", "consultant")
    reg_a = add_clinician(db, "Reg A", "registrar", "senior")
    reg_b = add_clinician(db, "Reg B", "registrar", "junior")
    reg_c = add_clinician(db, "Reg C", "registrar", "senior")

    add_job_plan(db, con_x, clinic, clinic)
    add_job_plan(db, con_y, spa, spa)
    add_job_plan(db, reg_a, clinic, ward_round, am_supporting=con_x)
    add_job_plan(db, reg_b, ward_round, clinic, pm_supporting=con_x)
    add_job_plan(db, reg_c, ward_round, ward_round)

    return SimpleNamespace(
        clinic=clinic.id, ward_round=ward_round.id, spa=spa.id, theatre=theatre.id,
        con_x=con_x.id, con_y=con_y.id, reg_a=reg_a.id, reg_b=reg_b.id, reg_c=reg_c.id,
    )


# ---------------------------------------------------------------------------
# Pure snapshot builders
# ---------------------------------------------------------------------------

def plan_every_weekday(clinician_id, am=None, pm=None, am_supporting=None, pm_supporting=None):
    return {
        (clinician_id, week_no, dow): rm.JobPlanDay(
            clinician_id=clinician_id, week_no=week_no, day_of_week=dow,
            am_duty_id=am, pm_duty_id=pm, am_supporting_id=am_supporting, pm_supporting_id=pm_supporting,
        )
        for week_no in range(1, 6)
        for dow in range(1, 6)
    }


def rotation(role, clinician_ids, start=MONDAY, pattern=()):
    slots = tuple(rm.Slot(id=100 + i, position=i, name=f"{role} {i}") for i in range(1, len(clinician_ids) + 1))
    spans = [
        rm.SlotAssignmentSpan(id=200 + i, slot_id=100 + i, clinician_id=cid, effective_from=start)
        for i, cid in enumerate(clinician_ids, 1)
    ]
    return CycleDefinition(role=role, start_date=start, slots=slots, pattern=tuple(pattern)), spans


@pytest.fixture
def ward():
    """
    Two consultants, three registrars.
      Reg A supports Con X (AM clinic), Reg B supports Con X (PM clinic),
      Reg C does a ward round every session.
    """
    clinicians = [
        rm.Clinician(1, "Con X", "consultant"),
        rm.Clinician(2, "Con Y", "consultant"),
        rm.Clinician(3, "Reg A", "registrar", "senior"),
        rm.Clinician(4, "Reg B", "registrar", "junior"),
        rm.Clinician(5, "Reg C", "registrar", "senior"),
    ]
    duties = {
        10: rm.Duty(10, "Clinic", "#93C5FD"),
        11: rm.Duty(11, "Ward Round", "#FDBA74", requires_registrar=True),
        12: rm.Duty(12, "SPA", requires_coverage=False),
        13: rm.Duty(13, "Theatre", requires_registrar=True, preferred_grade="senior"),
    }
    job_plans = {}
    job_plans.update(plan_every_weekday(1, am=10, pm=10))
    job_plans.update(plan_every_weekday(2, am=12, pm=12))
    job_plans.update(plan_every_weekday(3, am=10, pm=11, am_supporting=1))
    job_plans.update(plan_every_weekday(4, am=11, pm=10, pm_supporting=1))
    job_plans.update(plan_every_weekday(5, am=11, pm=11))
    return rm.RotaSnapshot(clinicians=clinicians, duties=duties, job_plans=job_plans)
