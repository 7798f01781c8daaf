"""
On-call cycle configuration and slot assignment writes.

Every write that moves an on-call placement resyncs the on-call-conflict
coverage requests for the clinicians it touches.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from models import Clinician, OnCallConfig, OnCallSlot, OnCallPattern, SlotAssignment
from coverage_service import (
    assignment_window, get_clinician, restore_registrar_entries_for_consultant,
    sync_oncall_conflicts, sync_role_oncall_conflicts,
)
from rota import models as rm
from rota.cycle import CycleDefinition
from rota.errors import ConstraintViolation, CycleConfigError, NotFoundError
from rota.validate import check_assignment_interval
from settings import ENGINE_CONFIG
from snapshot import load_cycle, to_span

logger = logging.getLogger(__name__)


def active_slots(db: Session, role: str) -> List[OnCallSlot]:
    return (
        db.query(OnCallSlot)
        .filter(OnCallSlot.role == role, OnCallSlot.active == True)  # noqa: E712
        .order_by(OnCallSlot.position, OnCallSlot.id)
        .all()
    )


def get_slot(db: Session, slot_id: int) -> OnCallSlot:
    slot = db.query(OnCallSlot).filter(OnCallSlot.id == slot_id).first()
    if not slot:
        raise NotFoundError(f"On-call slot {slot_id} not found")
    return slot


def get_assignment(db: Session, assignment_id: int) -> SlotAssignment:
    a = db.query(SlotAssignment).filter(SlotAssignment.id == assignment_id).first()
    if not a:
        raise NotFoundError(f"Slot assignment {assignment_id} not found")
    return a


def cycle_issues(db: Session, role: str) -> List[str]:
    cycle = load_cycle(db, role)
    if cycle is None:
        return [f"{role} has no on-call cycle configured"]
    return cycle.issues()


def slot_has_future_assignments(db: Session, slot_id: int, today: date) -> bool:
    return db.query(SlotAssignment).filter(
        SlotAssignment.slot_id == slot_id,
        (SlotAssignment.effective_to == None) | (SlotAssignment.effective_to >= today),  # noqa: E711
    ).first() is not None


# ---------------------------------------------------------------------------
# Slots and pattern
# ---------------------------------------------------------------------------

def add_slot(db: Session, role: str, name: Optional[str] = None) -> OnCallSlot:
    """New slot at the lowest free position."""
    taken = {s.position for s in active_slots(db, role)}
    position = 1
    while position in taken:
        position += 1
    slot = OnCallSlot(role=role, position=position, name=name or f"{role.title()} {position}", active=True)
    db.add(slot)
    db.flush()
    logger.info(f"Added {role} slot {slot.name} at position {position}")
    return slot


def remove_slot(db: Session, slot_id: int, today: Optional[date] = None) -> OnCallSlot:
    """Soft delete. Refused while anyone holds the slot now or later."""
    slot = get_slot(db, slot_id)
    if slot_has_future_assignments(db, slot.id, today or date.today()):
        raise ConstraintViolation(f"Slot {slot.name} has current or future assignments; end them first")
    slot.active = False
    db.flush()
    return slot


def replace_pattern(db: Session, rows: List[Tuple[int, int]], role: str = "registrar") -> CycleDefinition:
    """Swap the whole registrar pattern. The resulting cycle must validate."""
    if role != "registrar":
        raise CycleConfigError("Only registrar cycles use a pattern")
    current = load_cycle(db, role)
    slots = current.slots if current else ()
    candidate = CycleDefinition(
        role=role,
        start_date=current.start_date if current else None,
        slots=slots,
        pattern=tuple(sorted(rows)),
    )
    problems = [p for p in candidate.issues() if "start date" not in p]
    if problems:
        raise CycleConfigError("; ".join(problems))

    db.query(OnCallPattern).filter(OnCallPattern.role == role).delete()
    for day_of_cycle, position in sorted(rows):
        db.add(OnCallPattern(role=role, day_of_cycle=day_of_cycle, slot_position=position))
    db.flush()
    logger.info(f"Replaced {role} pattern ({len(rows)} days)")
    return candidate


def replace_cycle(
    db: Session,
    role: str,
    start_date: date,
    slot_names: List[str],
    pattern: List[Tuple[int, int]],
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> CycleDefinition:
    """
    Replace start date, slots and pattern as one unit.
    Validated before anything is written; slots keep their ids by position.
    """
    proposed = CycleDefinition(
        role=role,
        start_date=start_date,
        slots=tuple(rm.Slot(id=i, position=i, name=n) for i, n in enumerate(slot_names, 1)),
        pattern=tuple(sorted(pattern)),
    )
    proposed.validate()

    existing = {s.position: s for s in active_slots(db, role)}
    for position, name in enumerate(slot_names, 1):
        slot = existing.pop(position, None)
        if slot is None:
            db.add(OnCallSlot(role=role, position=position, name=name, active=True))
        else:
            slot.name = name
    for slot in existing.values():
        if slot_has_future_assignments(db, slot.id, start_date):
            raise ConstraintViolation(f"Slot {slot.name} has current or future assignments; end them first")
        slot.active = False

    cfg = db.query(OnCallConfig).filter(OnCallConfig.role == role).first()
    if cfg is None:
        cfg = OnCallConfig(role=role)
        db.add(cfg)
    cfg.start_date = start_date

    db.query(OnCallPattern).filter(OnCallPattern.role == role).delete()
    for day_of_cycle, position in sorted(pattern):
        db.add(OnCallPattern(role=role, day_of_cycle=day_of_cycle, slot_position=position))
    db.flush()

    sync_role_oncall_conflicts(db, role, start_date, start_date + timedelta(days=config.oncall_horizon_days), config)
    logger.info(f"Replaced {role} cycle: {len(slot_names)} slots from {start_date.isoformat()}")
    return load_cycle(db, role)


# ---------------------------------------------------------------------------
# Slot assignments
# ---------------------------------------------------------------------------

def _spans_for_slot(db: Session, slot_id: int) -> List[rm.SlotAssignmentSpan]:
    return [to_span(a) for a in db.query(SlotAssignment).filter(SlotAssignment.slot_id == slot_id).all()]


def create_assignment(
    db: Session,
    slot_id: int,
    clinician_id: int,
    effective_from: date,
    effective_to: Optional[date] = None,
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> SlotAssignment:
    slot = get_slot(db, slot_id)
    if not slot.active:
        raise ConstraintViolation(f"Slot {slot.name} has been removed")
    clinician = get_clinician(db, clinician_id)
    if clinician.role != slot.role:
        raise ConstraintViolation(f"{clinician.name} is a {clinician.role}; slot {slot.name} is for {slot.role}s")
    check_assignment_interval(_spans_for_slot(db, slot_id), slot_id, effective_from, effective_to)

    a = SlotAssignment(slot_id=slot_id, clinician_id=clinician_id, effective_from=effective_from, effective_to=effective_to)
    db.add(a)
    db.flush()
    _resync(db, [clinician_id], *assignment_window(a, config), config=config)
    logger.info(f"{clinician.name} assigned to {slot.name} from {effective_from.isoformat()}")
    return a


def end_assignment(
    db: Session,
    assignment_id: int,
    effective_to: date,
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> SlotAssignment:
    a = get_assignment(db, assignment_id)
    check_assignment_interval(_spans_for_slot(db, a.slot_id), a.slot_id, a.effective_from, effective_to, exclude_id=a.id)
    window = assignment_window(a, config)
    a.effective_to = effective_to
    db.flush()
    restore_registrar_entries_for_consultant(db, "oncall", a.id, after=effective_to)
    _resync_assignment(db, a, window, config)
    return a


def delete_assignment(db: Session, assignment_id: int, config: rm.EngineConfig = ENGINE_CONFIG) -> None:
    a = get_assignment(db, assignment_id)
    window = assignment_window(a, config)
    clinician_id, slot_id = a.clinician_id, a.slot_id
    db.delete(a)
    db.flush()
    restore_registrar_entries_for_consultant(db, "oncall", assignment_id)
    _resync(db, [clinician_id] + _other_holders(db, slot_id), *window, config=config)


def quick_assign(
    db: Session,
    slot_id: int,
    clinician_id: int,
    effective_from: date,
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> SlotAssignment:
    """Hand a slot over: close the open interval the day before, open a new one."""
    get_slot(db, slot_id)
    current = db.query(SlotAssignment).filter(
        SlotAssignment.slot_id == slot_id,
        SlotAssignment.effective_to == None,  # noqa: E711
    ).first()
    previous_holder = None
    if current is not None:
        if current.effective_from >= effective_from:
            raise ConstraintViolation(
                f"Slot {slot_id} already has an open assignment starting {current.effective_from.isoformat()}"
            )
        previous_holder = current.clinician_id
        end_assignment(db, current.id, effective_from - timedelta(days=1), config)
    a = create_assignment(db, slot_id, clinician_id, effective_from, None, config)
    if previous_holder is not None and previous_holder != clinician_id:
        _resync(db, [previous_holder], *assignment_window(a, config), config=config)
    return a


def _other_holders(db: Session, slot_id: int) -> List[int]:
    return sorted({
        cid for (cid,) in db.query(SlotAssignment.clinician_id).filter(SlotAssignment.slot_id == slot_id).all()
    })


def _resync_assignment(db: Session, a: SlotAssignment, window: Tuple[date, date], config: rm.EngineConfig) -> None:
    _resync(db, [a.clinician_id] + _other_holders(db, a.slot_id), *window, config=config)


def _resync(db: Session, clinician_ids: List[int], start: date, end: date, config: rm.EngineConfig) -> None:
    """A changed holder can shift every date of the slot, so the other holders are rechecked too."""
    seen = set()
    for cid in clinician_ids:
        if cid in seen:
            continue
        seen.add(cid)
        if db.query(Clinician).filter(Clinician.id == cid).first() is not None:
            sync_oncall_conflicts(db, cid, start, end, config)
