from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from database import get_db
from models import OnCallSlot, SlotAssignment
from oncall_service import (
    add_slot, create_assignment, cycle_issues, delete_assignment, end_assignment,
    quick_assign, remove_slot, replace_cycle, replace_pattern,
)
from rota.models import ROLES
from schemas import (
    AssignmentCreate, AssignmentEnd, AssignmentOut, CycleOut, CycleReplace,
    PatternReplace, PatternRow, QuickAssign, SlotCreate, SlotOut,
)
from snapshot import load_cycle

router = APIRouter()


def _check_role(role: str) -> None:
    if role not in ROLES:
        raise HTTPException(404, f"Unknown role {role}")


def _cycle_out(db: Session, role: str) -> CycleOut:
    cycle = load_cycle(db, role)
    slots = (
        db.query(OnCallSlot)
        .filter(OnCallSlot.role == role, OnCallSlot.active == True)  # noqa: E712
        .order_by(OnCallSlot.position)
        .all()
    )
    return CycleOut(
        role=role,
        start_date=cycle.start_date if cycle else None,
        cycle_length=cycle.cycle_length if cycle else 0,
        unit_type=cycle.unit_type if cycle else ("week" if role == "consultant" else "day"),
        slots=[SlotOut.model_validate(s) for s in slots],
        pattern=[PatternRow(day_of_cycle=d, slot_position=p) for d, p in (cycle.pattern if cycle else ())],
        issues=cycle_issues(db, role),
    )


@router.get("/{role}/cycle", response_model=CycleOut)
def get_cycle(role: str, db: Session = Depends(get_db)):
    """Cycle definition with derived length and unit. Problems are listed, not raised."""
    _check_role(role)
    return _cycle_out(db, role)


@router.put("/{role}/cycle", response_model=CycleOut)
def put_cycle(role: str, data: CycleReplace, db: Session = Depends(get_db)):
    _check_role(role)
    replace_cycle(
        db, role, data.start_date, data.slot_names,
        [(row.day_of_cycle, row.slot_position) for row in data.pattern],
    )
    db.commit()
    return _cycle_out(db, role)


@router.get("/{role}/issues", response_model=list[str])
def get_cycle_issues(role: str, db: Session = Depends(get_db)):
    _check_role(role)
    return cycle_issues(db, role)


@router.post("/slots", response_model=SlotOut)
def create_slot(data: SlotCreate, db: Session = Depends(get_db)):
    slot = add_slot(db, data.role, data.name)
    db.commit()
    db.refresh(slot)
    return SlotOut.model_validate(slot)


@router.delete("/slots/{slot_id}")
def delete_slot(slot_id: int, db: Session = Depends(get_db)):
    remove_slot(db, slot_id)
    db.commit()
    return {"ok": True}


@router.put("/pattern", response_model=CycleOut)
def put_pattern(data: PatternReplace, db: Session = Depends(get_db)):
    replace_pattern(db, [(row.day_of_cycle, row.slot_position) for row in data.pattern])
    db.commit()
    return _cycle_out(db, "registrar")


@router.get("/assignments", response_model=list[AssignmentOut])
def list_assignments(role: str = None, slot_id: int = None, db: Session = Depends(get_db)):
    q = db.query(SlotAssignment).join(OnCallSlot, SlotAssignment.slot_id == OnCallSlot.id)
    if role:
        q = q.filter(OnCallSlot.role == role)
    if slot_id:
        q = q.filter(SlotAssignment.slot_id == slot_id)
    rows = q.order_by(OnCallSlot.position, SlotAssignment.effective_from).all()
    return [AssignmentOut.model_validate(a) for a in rows]


@router.post("/assignments", response_model=AssignmentOut)
def post_assignment(data: AssignmentCreate, db: Session = Depends(get_db)):
    a = create_assignment(db, data.slot_id, data.clinician_id, data.effective_from, data.effective_to)
    db.commit()
    db.refresh(a)
    return AssignmentOut.model_validate(a)


@router.put("/assignments/{assignment_id}/end", response_model=AssignmentOut)
def put_assignment_end(assignment_id: int, data: AssignmentEnd, db: Session = Depends(get_db)):
    a = end_assignment(db, assignment_id, data.effective_to)
    db.commit()
    db.refresh(a)
    return AssignmentOut.model_validate(a)


@router.delete("/assignments/{assignment_id}")
def remove_assignment(assignment_id: int, db: Session = Depends(get_db)):
    delete_assignment(db, assignment_id)
    db.commit()
    return {"ok": True}


@router.post("/quick-assign", response_model=AssignmentOut)
def post_quick_assign(data: QuickAssign, db: Session = Depends(get_db)):
    """Hand a slot to a new clinician from a date, closing the current holder's interval."""
    a = quick_assign(db, data.slot_id, data.clinician_id, data.effective_from)
    db.commit()
    db.refresh(a)
    return AssignmentOut.model_validate(a)
