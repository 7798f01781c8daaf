from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from models import Leave
from coverage_service import delete_leave, record_bulk_leave, record_leave
from schemas import LeaveBulkCreate, LeaveBulkResult, LeaveCreate, LeaveCreateResult, LeaveOut

router = APIRouter()


@router.get("/", response_model=list[LeaveOut])
def list_leaves(
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    clinician_id: int = None,
    db: Session = Depends(get_db),
):
    q = db.query(Leave)
    if from_date:
        q = q.filter(Leave.date >= from_date)
    if to_date:
        q = q.filter(Leave.date <= to_date)
    if clinician_id:
        q = q.filter(Leave.clinician_id == clinician_id)
    return [LeaveOut.model_validate(lv) for lv in q.order_by(Leave.date, Leave.id).all()]


@router.post("/", response_model=LeaveCreateResult)
def create_leave(data: LeaveCreate, db: Session = Depends(get_db)):
    """Record leave, then raise the coverage requests and registrar releases it causes."""
    leave, requests, releases = record_leave(db, data.clinician_id, data.date, data.session, data.type, data.note)
    db.commit()
    db.refresh(leave)
    return LeaveCreateResult(
        leave=LeaveOut.model_validate(leave),
        coverage_requests=len(requests),
        freed_registrars=len(releases),
    )


@router.post("/bulk", response_model=LeaveBulkResult)
def create_bulk_leave(data: LeaveBulkCreate, db: Session = Depends(get_db)):
    """One leave per day in range. Days that already have leave are skipped."""
    result = record_bulk_leave(
        db, data.clinician_id, data.from_date, data.to_date, data.session, data.type, data.note,
    )
    db.commit()
    return LeaveBulkResult(
        created=[LeaveOut.model_validate(lv) for lv in result["created"]],
        count=result["count"],
        skipped=result["skipped"],
        coverage_requests=result["coverage_requests"],
    )


@router.delete("/{leave_id}")
def remove_leave(leave_id: int, db: Session = Depends(get_db)):
    result = delete_leave(db, leave_id)
    db.commit()
    return result
