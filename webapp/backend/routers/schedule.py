from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from database import get_db
from models import Clinician
from rota.compositor import compose_schedule, oncall_for_date
from schemas import ClinicianRef, OnCallTodayOut, ScheduleEntryOut, ScheduleOut
from settings import ENGINE_CONFIG
from snapshot import load_snapshot

router = APIRouter()

MAX_RANGE_DAYS = 366


@router.get("/", response_model=ScheduleOut)
def get_schedule(
    from_date: date = Query(..., alias="from"),
    to_date: date = Query(..., alias="to"),
    db: Session = Depends(get_db),
):
    """Resolved rota for every active clinician, both sessions, every date in range."""
    if to_date < from_date:
        raise HTTPException(400, "'to' must not be before 'from'")
    if (to_date - from_date).days >= MAX_RANGE_DAYS:
        raise HTTPException(400, f"Range is limited to {MAX_RANGE_DAYS} days")
    issues = []
    entries = compose_schedule(load_snapshot(db, from_date, to_date), from_date, to_date, ENGINE_CONFIG, issues)
    return ScheduleOut(
        from_date=from_date,
        to_date=to_date,
        entries=[ScheduleEntryOut.model_validate(e) for e in entries],
        issues=issues,
    )


@router.get("/oncall-today", response_model=OnCallTodayOut)
def get_today_oncall(on: Optional[date] = None, db: Session = Depends(get_db)):
    day = on or date.today()
    holders = oncall_for_date(load_snapshot(db, day, day), day)
    out = {"date": day}
    for role, clinician_id in holders.items():
        c = db.query(Clinician).filter(Clinician.id == clinician_id).first() if clinician_id else None
        out[role] = ClinicianRef.model_validate(c) if c else None
    return OnCallTodayOut(**out)
