from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from models import CoverageRequest
from coverage_service import (
    assign_request, cancel_request, cleanup_orphaned_requests, create_manual_request,
    delete_request_permanently, detect_coverage_needs, get_request, pending_coverage_count,
    unassign_request,
)
from schemas import (
    AssignBody, AutoAssignResult, BulkAutoAssignResult, CancelBody, CoverageCreate,
    CoverageRequestOut, DetectRange, RankedCandidateOut, SuggestionsOut, UnavailableCandidateOut,
)
from suggest import auto_assign, bulk_auto_assign, suggest

router = APIRouter()


@router.get("/", response_model=list[CoverageRequestOut])
def list_coverage(
    status: str = None,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
):
    q = db.query(CoverageRequest)
    if status:
        q = q.filter(CoverageRequest.status == status)
    if from_date:
        q = q.filter(CoverageRequest.date >= from_date)
    if to_date:
        q = q.filter(CoverageRequest.date <= to_date)
    rows = q.order_by(CoverageRequest.date, CoverageRequest.session, CoverageRequest.id).all()
    return [CoverageRequestOut.model_validate(r) for r in rows]


@router.get("/pending-count")
def get_pending_count(db: Session = Depends(get_db)):
    return {"count": pending_coverage_count(db)}


@router.post("/", response_model=CoverageRequestOut)
def create_coverage(data: CoverageCreate, db: Session = Depends(get_db)):
    r = create_manual_request(
        db, data.date, data.session, data.duty_id, data.type,
        data.absent_clinician_id, data.consultant_id, data.note,
    )
    db.commit()
    db.refresh(r)
    return CoverageRequestOut.model_validate(r)


@router.post("/detect")
def detect(data: DetectRange, db: Session = Depends(get_db)):
    """Re-run detection for everyone with leave in range; only new needs are persisted."""
    created, freed = detect_coverage_needs(db, data.from_date, data.to_date)
    db.commit()
    return {"created": len(created), "freed_registrars": freed}


@router.post("/bulk-auto-assign", response_model=BulkAutoAssignResult)
def post_bulk_auto_assign(db: Session = Depends(get_db)):
    result = bulk_auto_assign(db)
    db.commit()
    return BulkAutoAssignResult(**result)


@router.post("/cleanup-orphaned")
def post_cleanup_orphaned(db: Session = Depends(get_db)):
    cancelled = cleanup_orphaned_requests(db)
    db.commit()
    return {"cancelled": cancelled}


@router.get("/{request_id}/suggestions", response_model=SuggestionsOut)
def get_suggestions(request_id: int, db: Session = Depends(get_db)):
    result = suggest(db, request_id)
    return SuggestionsOut(
        available=[RankedCandidateOut.model_validate(c) for c in result.available],
        unavailable=[UnavailableCandidateOut.model_validate(c) for c in result.unavailable],
    )


@router.post("/{request_id}/assign", response_model=CoverageRequestOut)
def post_assign(request_id: int, data: AssignBody, db: Session = Depends(get_db)):
    r = assign_request(db, request_id, data.clinician_id)
    db.commit()
    db.refresh(r)
    return CoverageRequestOut.model_validate(r)


@router.post("/{request_id}/unassign", response_model=CoverageRequestOut)
def post_unassign(request_id: int, db: Session = Depends(get_db)):
    r = unassign_request(db, request_id)
    db.commit()
    db.refresh(r)
    return CoverageRequestOut.model_validate(r)


@router.post("/{request_id}/cancel", response_model=CoverageRequestOut)
def post_cancel(request_id: int, data: CancelBody = None, db: Session = Depends(get_db)):
    r = cancel_request(db, request_id, data.note if data else None)
    db.commit()
    db.refresh(r)
    return CoverageRequestOut.model_validate(r)


@router.delete("/{request_id}/permanent")
def delete_permanent(request_id: int, db: Session = Depends(get_db)):
    delete_request_permanently(db, request_id)
    db.commit()
    return {"ok": True}


@router.post("/{request_id}/auto-assign", response_model=AutoAssignResult)
def post_auto_assign(request_id: int, db: Session = Depends(get_db)):
    best = auto_assign(db, request_id)
    db.commit()
    r = get_request(db, request_id)
    return AutoAssignResult(
        success=best is not None,
        request=CoverageRequestOut.model_validate(r),
        assigned_to=RankedCandidateOut.model_validate(best) if best else None,
    )
