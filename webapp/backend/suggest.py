"""Coverage suggestions and auto-assignment."""
import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from models import Clinician, CoverageRequest
from coverage_service import assign_request, get_request
from rota import models as rm
from rota.compositor import compose_schedule
from rota.errors import InvalidTransition
from rota.scoring import rank_candidates
from settings import ENGINE_CONFIG
from snapshot import load_snapshot

logger = logging.getLogger(__name__)


def suggest(db: Session, request_id: int, config: rm.EngineConfig = ENGINE_CONFIG) -> rm.Suggestions:
    """
    Rank the clinicians who could cover a request.

    The pool is every active clinician of the request's type except the
    absent one. Anyone on leave, on call, or already covering something
    that date and session goes to `unavailable` with the reason; everyone
    else is scored. An empty `available` list is a normal answer.
    """
    db.flush()
    request = get_request(db, request_id)
    on, session = request.date, request.session
    window_start = on - timedelta(days=config.workload_window_days)

    pool = (
        db.query(Clinician)
        .filter(Clinician.role == request.type, Clinician.active == True)  # noqa: E712
        .order_by(Clinician.id)
        .all()
    )
    pool = [c for c in pool if c.id != request.absent_clinician_id]
    if not pool:
        return rm.Suggestions()
    pool_ids = {c.id for c in pool}

    snapshot = load_snapshot(db, window_start, on)
    entries = compose_schedule(snapshot, window_start, on, config)

    duty_sessions: Dict[int, int] = defaultdict(int)
    oncall_days: Dict[int, set] = defaultdict(set)
    today: Dict[int, rm.ScheduleEntry] = {}
    for e in entries:
        if e.clinician_id not in pool_ids:
            continue
        if e.date == on:
            if e.session == session:
                today[e.clinician_id] = e
            continue
        if e.is_oncall:
            oncall_days[e.clinician_id].add(e.date)
        # covered sessions count as coverages below
        elif e.duty_id is not None and e.source != "coverage":
            duty_sessions[e.clinician_id] += 1

    assigned = (
        db.query(CoverageRequest)
        .filter(
            CoverageRequest.assigned_clinician_id.in_(pool_ids),
            CoverageRequest.status == "assigned",
            CoverageRequest.date <= on,
        )
        .all()
    )
    busy_ids = set()
    coverage_count: Dict[int, int] = defaultdict(int)
    last_coverage = {}
    for r in assigned:
        cid = r.assigned_clinician_id
        if r.date == on and r.session == session and r.id != request.id:
            busy_ids.add(cid)
        if r.date < on:
            if r.date >= window_start:
                coverage_count[cid] += 1
            if cid not in last_coverage or r.date > last_coverage[cid]:
                last_coverage[cid] = r.date

    on_leave_ids = {lv.clinician_id for lv in snapshot.leaves if lv.date == on and lv.covers(session)}

    facts = []
    unavailable = []
    for c in pool:
        cell = today.get(c.id)
        if c.id in on_leave_ids:
            unavailable.append(rm.UnavailableCandidate(c.id, c.name, "on_leave"))
        elif cell is not None and cell.is_oncall:
            unavailable.append(rm.UnavailableCandidate(c.id, c.name, "on_call"))
        elif c.id in busy_ids:
            unavailable.append(rm.UnavailableCandidate(c.id, c.name, "already_assigned"))
        elif cell is not None and cell.is_rest and config.rest_blocks_eligibility:
            unavailable.append(rm.UnavailableCandidate(c.id, c.name, "resting"))
        else:
            facts.append(rm.CandidateFacts(
                clinician_id=c.id,
                clinician_name=c.name,
                grade=c.grade,
                last_coverage_date=last_coverage.get(c.id),
                duty_count=duty_sessions[c.id],
                oncall_count=len(oncall_days[c.id]),
                coverage_count=coverage_count[c.id],
                resting=bool(cell is not None and cell.is_rest),
            ))

    duty = snapshot.duties.get(request.duty_id)
    return rm.Suggestions(available=rank_candidates(facts, duty, on, config), unavailable=unavailable)


def auto_assign(db: Session, request_id: int, config: rm.EngineConfig = ENGINE_CONFIG) -> Optional[rm.RankedCandidate]:
    """Give a pending request to its top-ranked candidate. None when nobody is available."""
    request = get_request(db, request_id)
    if request.status != "pending":
        raise InvalidTransition(f"Coverage request {request_id} is {request.status}, not pending")
    suggestions = suggest(db, request_id, config)
    if not suggestions.available:
        logger.info(f"Coverage request {request_id}: no one available")
        return None
    best = suggestions.available[0]
    assign_request(db, request_id, best.clinician_id)
    return best


def bulk_auto_assign(db: Session, config: rm.EngineConfig = ENGINE_CONFIG) -> dict:
    """
    Auto-assign every pending request, oldest date first.
    Each assignment is flushed before the next request is scored.
    """
    pending = (
        db.query(CoverageRequest)
        .filter(CoverageRequest.status == "pending")
        .order_by(CoverageRequest.date, CoverageRequest.session, CoverageRequest.id)
        .all()
    )
    assigned = failed = 0
    for r in pending:
        if auto_assign(db, r.id, config) is None:
            failed += 1
        else:
            assigned += 1
    logger.info(f"Bulk auto-assign: {assigned} assigned, {failed} failed")
    return {"assigned": assigned, "failed": failed}
