"""
Coverage need detection and coverage request lifecycle, bound to the DB.

Service functions flush but never commit; the calling router owns the
transaction, so a failure anywhere leaves nothing half-written.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import (
    Clinician, Duty, Leave, CascadeRelease, CoverageRequest, SlotAssignment,
)
from rota import models as rm
from rota.compositor import rotation_oncall_dates
from rota.dates import date_range, is_weekday
from rota.detector import Detection, detect_for_clinician, registrar_needs
from rota.errors import ConstraintViolation, InvalidTransition, NotFoundError
from settings import ENGINE_CONFIG
from snapshot import load_snapshot, to_clinician

logger = logging.getLogger(__name__)


def get_clinician(db: Session, clinician_id: int) -> Clinician:
    c = db.query(Clinician).filter(Clinician.id == clinician_id).first()
    if not c:
        raise NotFoundError(f"Clinician {clinician_id} not found")
    return c


def get_request(db: Session, request_id: int) -> CoverageRequest:
    r = db.query(CoverageRequest).filter(CoverageRequest.id == request_id).first()
    if not r:
        raise NotFoundError(f"Coverage request {request_id} not found")
    return r


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def detect_coverage_needs_for_clinician(
    db: Session,
    clinician_id: int,
    from_date: date,
    to_date: date,
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> Detection:
    """Needs raised by every leave the clinician has in [from_date, to_date]."""
    db.flush()
    clinician = to_clinician(get_clinician(db, clinician_id))
    snapshot = load_snapshot(db, from_date, to_date)
    result = Detection()
    for lv in sorted(snapshot.leaves, key=lambda lv: (lv.date, lv.id)):
        if lv.clinician_id != clinician_id:
            continue
        result.extend(detect_for_clinician(snapshot, clinician, lv.date, rm.sessions_for(lv.session), "leave", config))
    return result


def detect_coverage_needs_for_leave(
    db: Session,
    clinician_id: int,
    day: date,
    session: str,
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> Detection:
    """Needs raised by one leave alone: its date and its own sessions, nothing else recorded that day."""
    db.flush()
    clinician = to_clinician(get_clinician(db, clinician_id))
    snapshot = load_snapshot(db, day, day)
    return detect_for_clinician(snapshot, clinician, day, rm.sessions_for(session), "leave", config)


def detect_consultant_impact(
    db: Session,
    consultant_id: int,
    day: date,
    session: str,
    reason: str = "leave",
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> Detection:
    return detect_consultant_impact_for_range(db, consultant_id, day, day, session, reason, config)


def detect_consultant_impact_for_range(
    db: Session,
    consultant_id: int,
    from_date: date,
    to_date: date,
    session: str = "FULL",
    reason: str = "leave",
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> Detection:
    db.flush()
    consultant = to_clinician(get_clinician(db, consultant_id))
    if consultant.role != "consultant":
        raise ConstraintViolation(f"{consultant.name} is not a consultant")
    snapshot = load_snapshot(db, from_date, to_date)
    result = Detection()
    for day in date_range(from_date, to_date):
        result.extend(detect_for_clinician(snapshot, consultant, day, rm.sessions_for(session), reason, config))
    return result


def detect_coverage_needs(
    db: Session,
    from_date: date,
    to_date: date,
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> Tuple[List[CoverageRequest], int]:
    """Range regeneration: detect for every active clinician with leave in range, persist what is new."""
    clinician_ids = sorted({
        cid for (cid,) in db.query(Leave.clinician_id)
        .join(Clinician, Leave.clinician_id == Clinician.id)
        .filter(Leave.date >= from_date, Leave.date <= to_date, Clinician.active == True)  # noqa: E712
        .all()
    })
    created = []
    freed = 0
    for cid in clinician_ids:
        detection = detect_coverage_needs_for_clinician(db, cid, from_date, to_date, config)
        created.extend(create_coverage_requests(db, detection.needs))
        freed += len(apply_consultant_cascade(db, detection, "leave", leave_origins(db, cid, from_date, to_date)))
    logger.info(f"Range detection {from_date}..{to_date}: {len(created)} new requests, {freed} registrars freed")
    return created, freed


def leave_origins(db: Session, clinician_id: int, from_date: date, to_date: date) -> Dict[Tuple[date, str], int]:
    """(date, session) -> id of the leave row that covers it."""
    origins = {}
    for lv in db.query(Leave).filter(
        Leave.clinician_id == clinician_id, Leave.date >= from_date, Leave.date <= to_date,
    ).order_by(Leave.id).all():
        for session in rm.sessions_for(lv.session):
            origins.setdefault((lv.date, session), lv.id)
    return origins


# ---------------------------------------------------------------------------
# Persisting needs and cascade releases
# ---------------------------------------------------------------------------

def find_open_request(
    db: Session,
    day: date,
    session: str,
    duty_id: int,
    absent_clinician_id: Optional[int],
) -> Optional[CoverageRequest]:
    q = db.query(CoverageRequest).filter(
        CoverageRequest.date == day,
        CoverageRequest.session == session,
        CoverageRequest.duty_id == duty_id,
        CoverageRequest.status != "cancelled",
    )
    if absent_clinician_id is None:
        q = q.filter(CoverageRequest.absent_clinician_id.is_(None))
    else:
        q = q.filter(CoverageRequest.absent_clinician_id == absent_clinician_id)
    return q.first()


def create_coverage_requests(db: Session, needs: Iterable[rm.CoverageNeed]) -> List[CoverageRequest]:
    """Persist needs as pending requests. A need with an open request already is skipped."""
    created = []
    seen = set()
    for need in needs:
        key = (need.date, need.session, need.duty_id, need.absent_clinician_id)
        if key in seen:
            continue
        seen.add(key)
        if find_open_request(db, *key) is not None:
            continue
        r = CoverageRequest(
            date=need.date,
            session=need.session,
            duty_id=need.duty_id,
            type=need.type,
            reason=need.reason,
            status="pending",
            absent_clinician_id=need.absent_clinician_id,
            consultant_id=need.consultant_id,
        )
        db.add(r)
        created.append(r)
    if created:
        db.flush()
        logger.info(f"Created {len(created)} coverage request(s)")
    return created


def apply_consultant_cascade(
    db: Session,
    detection: Detection,
    origin_type: str,
    origins,
) -> List[CascadeRelease]:
    """
    Record freed registrars as releases attributed to their origin and cancel
    the pending registrar requests they no longer need.

    `origins` is either a single origin id or a mapping (date, session) -> id.
    """
    written = []
    for f in detection.freed:
        origin_id = origins.get((f.date, f.session)) if isinstance(origins, dict) else origins
        if origin_id is None:
            continue
        exists = db.query(CascadeRelease).filter(
            CascadeRelease.registrar_id == f.registrar_id,
            CascadeRelease.date == f.date,
            CascadeRelease.session == f.session,
            CascadeRelease.origin_type == origin_type,
            CascadeRelease.origin_id == origin_id,
        ).first()
        if exists:
            continue
        release = CascadeRelease(
            registrar_id=f.registrar_id,
            date=f.date,
            session=f.session,
            consultant_id=f.consultant_id,
            duty_id=f.duty_id,
            origin_type=origin_type,
            origin_id=origin_id,
        )
        db.add(release)
        written.append(release)

        stale = db.query(CoverageRequest).filter(
            CoverageRequest.absent_clinician_id == f.registrar_id,
            CoverageRequest.consultant_id == f.consultant_id,
            CoverageRequest.date == f.date,
            CoverageRequest.session == f.session,
            CoverageRequest.type == "registrar",
            CoverageRequest.status == "pending",
        ).all()
        for r in stale:
            r.status = "cancelled"
            r.note = _append_note(r.note, "Consultant absent; registrar freed")
        logger.info(
            f"Registrar {f.registrar_name} freed on {f.date.isoformat()} {f.session} "
            f"({origin_type} {origin_id})"
        )
    if written:
        db.flush()
    return written


def restore_registrar_entries_for_consultant(
    db: Session,
    origin_type: str,
    origin_id: int,
    after: Optional[date] = None,
) -> List[rm.CascadeRelease]:
    """Undo the cascade of one origin. Restoring twice is a no-op."""
    q = db.query(CascadeRelease).filter(
        CascadeRelease.origin_type == origin_type,
        CascadeRelease.origin_id == origin_id,
    )
    if after is not None:
        q = q.filter(CascadeRelease.date > after)
    rows = q.all()
    restored = [
        rm.CascadeRelease(
            registrar_id=r.registrar_id, date=r.date, session=r.session, consultant_id=r.consultant_id,
            duty_id=r.duty_id, origin_type=r.origin_type, origin_id=r.origin_id,
        )
        for r in rows
    ]
    for r in rows:
        db.delete(r)
    if rows:
        db.flush()
        logger.info(f"Restored {len(rows)} registrar entr{'y' if len(rows) == 1 else 'ies'} ({origin_type} {origin_id})")
    return restored


def cancel_coverage_requests_for_leave(db: Session, clinician_id: int, day: date, session: str) -> int:
    """Soft-cancel the open leave requests for this clinician, date and session(s)."""
    rows = db.query(CoverageRequest).filter(
        CoverageRequest.absent_clinician_id == clinician_id,
        CoverageRequest.date == day,
        CoverageRequest.session.in_(rm.sessions_for(session)),
        CoverageRequest.reason == "leave",
        CoverageRequest.status != "cancelled",
    ).all()
    for r in rows:
        r.status = "cancelled"
        r.note = _append_note(r.note, "Leave removed")
    if rows:
        db.flush()
    return len(rows)


def redetect_restored_registrars(
    db: Session,
    restored: List[rm.CascadeRelease],
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> List[CoverageRequest]:
    """Registrars back on a consultant's clinic who are themselves on leave need cover again."""
    if not restored:
        return []
    db.flush()
    start = min(r.date for r in restored)
    end = max(r.date for r in restored)
    snapshot = load_snapshot(db, start, end)
    by_id = {c.id: c for c in snapshot.clinicians}
    needs = []
    for r in sorted(restored, key=lambda r: (r.date, r.session, r.registrar_id)):
        registrar = by_id.get(r.registrar_id)
        if registrar is None:
            continue
        on_leave = any(
            lv.clinician_id == registrar.id and lv.date == r.date and lv.covers(r.session)
            for lv in snapshot.leaves
        )
        if on_leave:
            needs.extend(registrar_needs(snapshot, registrar, r.date, (r.session,), "leave", config).needs)
    return create_coverage_requests(db, needs)


# ---------------------------------------------------------------------------
# Leave writes
# ---------------------------------------------------------------------------

def check_leave_overlap(db: Session, clinician_id: int, day: date, session: str) -> None:
    wanted = set(rm.sessions_for(session))
    for lv in db.query(Leave).filter(Leave.clinician_id == clinician_id, Leave.date == day).all():
        if wanted & set(rm.sessions_for(lv.session)):
            raise ConstraintViolation(
                f"Leave already recorded for clinician {clinician_id} on {day.isoformat()} ({lv.session})"
            )


def record_leave(
    db: Session,
    clinician_id: int,
    day: date,
    session: str,
    leave_type: str = "annual",
    note: Optional[str] = None,
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> Tuple[Leave, List[CoverageRequest], List[CascadeRelease]]:
    """Insert one leave row, then raise its coverage requests and cascade."""
    get_clinician(db, clinician_id)
    check_leave_overlap(db, clinician_id, day, session)
    leave = Leave(clinician_id=clinician_id, date=day, session=session, type=leave_type, note=note)
    db.add(leave)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConstraintViolation(f"Leave already recorded for clinician {clinician_id} on {day.isoformat()}")

    detection = detect_coverage_needs_for_leave(db, clinician_id, day, session, config)
    created = create_coverage_requests(db, detection.needs)
    releases = apply_consultant_cascade(db, detection, "leave", leave.id)
    logger.info(
        f"Leave {leave.id} for clinician {clinician_id} on {day.isoformat()} {session}: "
        f"{len(created)} request(s), {len(releases)} registrar(s) freed"
    )
    return leave, created, releases


def record_bulk_leave(
    db: Session,
    clinician_id: int,
    from_date: date,
    to_date: date,
    session: str,
    leave_type: str = "annual",
    note: Optional[str] = None,
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> dict:
    """
    One leave per date in [from_date, to_date], each committed on its own.
    Dates that already have leave are skipped, not fatal.
    """
    if to_date < from_date:
        return {"created": [], "count": 0, "skipped": [], "coverage_requests": 0}
    days = list(date_range(from_date, to_date))
    if len(days) > config.max_bulk_leave_days:
        raise ConstraintViolation(f"Cannot create more than {config.max_bulk_leave_days} days of leave at once")
    get_clinician(db, clinician_id)

    created, skipped = [], []
    requests = 0
    for day in days:
        try:
            leave, reqs, _ = record_leave(db, clinician_id, day, session, leave_type, note, config)
            db.commit()
        except ConstraintViolation as e:
            db.rollback()
            logger.info(f"Bulk leave: skipped {day.isoformat()} ({e})")
            skipped.append(day)
            continue
        created.append(leave)
        requests += len(reqs)
    return {"created": created, "count": len(created), "skipped": skipped, "coverage_requests": requests}


def delete_leave(db: Session, leave_id: int, config: rm.EngineConfig = ENGINE_CONFIG) -> dict:
    """Remove a leave and reverse everything it caused."""
    leave = db.query(Leave).filter(Leave.id == leave_id).first()
    if not leave:
        raise NotFoundError(f"Leave {leave_id} not found")
    clinician_id, day, session = leave.clinician_id, leave.date, leave.session

    cancelled = cancel_coverage_requests_for_leave(db, clinician_id, day, session)
    db.delete(leave)
    db.flush()
    restored = restore_registrar_entries_for_consultant(db, "leave", leave_id)
    recreated = redetect_restored_registrars(db, restored, config)
    logger.info(
        f"Leave {leave_id} deleted: {cancelled} request(s) cancelled, {len(restored)} registrar(s) restored"
    )
    return {"ok": True, "cancelled": cancelled, "restored": len(restored), "recreated": len(recreated)}


# ---------------------------------------------------------------------------
# On-call conflicts
# ---------------------------------------------------------------------------

def sync_oncall_conflicts(
    db: Session,
    clinician_id: int,
    from_date: date,
    to_date: date,
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> Tuple[List[CoverageRequest], int]:
    """
    Bring on-call-conflict requests and on-call cascade releases for one
    clinician in line with the rotation over [from_date, to_date].
    Returns (new requests, stale requests cancelled).
    """
    db.flush()
    clinician = get_clinician(db, clinician_id)
    snapshot = load_snapshot(db, from_date, to_date)
    oncall_days = set(rotation_oncall_dates(snapshot, clinician.role, clinician_id, from_date, to_date))

    stale = db.query(CoverageRequest).filter(
        CoverageRequest.absent_clinician_id == clinician_id,
        CoverageRequest.reason == "oncall_conflict",
        CoverageRequest.status == "pending",
        CoverageRequest.date >= from_date,
        CoverageRequest.date <= to_date,
    ).all()
    cancelled = 0
    for r in stale:
        if r.date not in oncall_days:
            r.status = "cancelled"
            r.note = _append_note(r.note, "No longer on call")
            cancelled += 1
    for release in db.query(CascadeRelease).filter(
        CascadeRelease.consultant_id == clinician_id,
        CascadeRelease.origin_type == "oncall",
        CascadeRelease.date >= from_date,
        CascadeRelease.date <= to_date,
    ).all():
        if release.date not in oncall_days:
            db.delete(release)
    db.flush()

    spans = snapshot.assignments.get(clinician.role, [])
    me = to_clinician(clinician)
    created = []
    for day in sorted(oncall_days):
        if not is_weekday(day):
            continue
        detection = detect_for_clinician(snapshot, me, day, rm.SESSIONS, "oncall_conflict", config)
        created.extend(create_coverage_requests(db, detection.needs))
        origin = next((s.id for s in spans if s.clinician_id == clinician_id and s.contains(day)), None)
        if origin is not None:
            apply_consultant_cascade(db, detection, "oncall", origin)
    if created or cancelled:
        logger.info(
            f"On-call conflicts for clinician {clinician_id} {from_date}..{to_date}: "
            f"{len(created)} new, {cancelled} cancelled"
        )
    return created, cancelled


def assignment_window(a: SlotAssignment, config: rm.EngineConfig = ENGINE_CONFIG) -> Tuple[date, date]:
    end = a.effective_to or (a.effective_from + timedelta(days=config.oncall_horizon_days))
    return a.effective_from, end


def sync_role_oncall_conflicts(
    db: Session,
    role: str,
    from_date: date,
    to_date: date,
    config: rm.EngineConfig = ENGINE_CONFIG,
) -> Tuple[int, int]:
    """Resync every clinician of a role after a slot or cycle change."""
    created = cancelled = 0
    ids = [cid for (cid,) in db.query(Clinician.id).filter(Clinician.role == role).order_by(Clinician.id).all()]
    for cid in ids:
        new, gone = sync_oncall_conflicts(db, cid, from_date, to_date, config)
        created += len(new)
        cancelled += gone
    return created, cancelled


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def pending_coverage_count(db: Session) -> int:
    return db.query(CoverageRequest).filter(CoverageRequest.status == "pending").count()


def create_manual_request(
    db: Session,
    day: date,
    session: str,
    duty_id: int,
    request_type: str,
    absent_clinician_id: Optional[int] = None,
    consultant_id: Optional[int] = None,
    note: Optional[str] = None,
) -> CoverageRequest:
    if not db.query(Duty).filter(Duty.id == duty_id).first():
        raise NotFoundError(f"Duty {duty_id} not found")
    if absent_clinician_id is not None:
        get_clinician(db, absent_clinician_id)
    if find_open_request(db, day, session, duty_id, absent_clinician_id) is not None:
        raise ConstraintViolation("An open coverage request already exists for this duty and session")
    r = CoverageRequest(
        date=day,
        session=session,
        duty_id=duty_id,
        type=request_type,
        reason="manual",
        status="pending",
        absent_clinician_id=absent_clinician_id,
        consultant_id=consultant_id,
        note=note,
    )
    db.add(r)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConstraintViolation("An open coverage request already exists for this duty and session")
    return r


def assign_request(db: Session, request_id: int, clinician_id: int) -> CoverageRequest:
    r = get_request(db, request_id)
    if r.status == "cancelled":
        raise InvalidTransition(f"Coverage request {request_id} is cancelled")
    c = get_clinician(db, clinician_id)
    if not c.active:
        raise ConstraintViolation(f"{c.name} is not active")
    if c.role != r.type:
        raise ConstraintViolation(f"{c.name} is a {c.role}; this request needs a {r.type}")
    if c.id == r.absent_clinician_id:
        raise ConstraintViolation(f"{c.name} is the absent clinician")
    r.assigned_clinician_id = c.id
    r.assigned_at = datetime.utcnow()
    r.status = "assigned"
    db.flush()
    logger.info(f"Coverage request {r.id} assigned to {c.name}")
    return r


def unassign_request(db: Session, request_id: int) -> CoverageRequest:
    r = get_request(db, request_id)
    if r.status != "assigned":
        raise InvalidTransition(f"Coverage request {request_id} is {r.status}, not assigned")
    r.assigned_clinician_id = None
    r.assigned_at = None
    r.status = "pending"
    db.flush()
    return r


def cancel_request(db: Session, request_id: int, note: Optional[str] = None) -> CoverageRequest:
    r = get_request(db, request_id)
    if r.status == "cancelled":
        return r
    r.status = "cancelled"
    if note:
        r.note = _append_note(r.note, note)
    db.flush()
    return r


def delete_request_permanently(db: Session, request_id: int) -> None:
    r = get_request(db, request_id)
    if r.status != "cancelled":
        raise InvalidTransition("Only cancelled coverage requests can be permanently deleted")
    db.delete(r)
    db.flush()


def cleanup_orphaned_requests(db: Session) -> int:
    """Cancel pending leave requests whose leave no longer exists."""
    pending = db.query(CoverageRequest).filter(
        CoverageRequest.status == "pending",
        CoverageRequest.reason == "leave",
    ).all()
    cancelled = 0
    for r in pending:
        if r.absent_clinician_id is None:
            continue
        leaves = db.query(Leave).filter(Leave.clinician_id == r.absent_clinician_id, Leave.date == r.date).all()
        if not any(r.session in rm.sessions_for(lv.session) for lv in leaves):
            r.status = "cancelled"
            r.note = _append_note(r.note, "Orphaned: leave no longer exists")
            cancelled += 1
    if cancelled:
        db.flush()
        logger.info(f"Cancelled {cancelled} orphaned coverage request(s)")
    return cancelled


def _append_note(existing: Optional[str], text: str) -> str:
    return f"{existing}; {text}" if existing else text
