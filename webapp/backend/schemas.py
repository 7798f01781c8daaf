"""Pydantic schemas for API."""
import datetime as dt
from typing import Optional, List, Literal
from pydantic import BaseModel

Role = Literal["consultant", "registrar"]
Session = Literal["AM", "PM"]
LeaveSession = Literal["AM", "PM", "FULL"]
LeaveType = Literal["annual", "study", "sick", "professional"]


class ClinicianRef(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class ScheduleEntryOut(BaseModel):
    date: dt.date
    clinician_id: int
    clinician_name: str
    clinician_role: str
    session: str
    source: Optional[str] = None
    duty_id: Optional[int] = None
    duty_name: Optional[str] = None
    duty_color: Optional[str] = None
    is_oncall: bool = False
    is_leave: bool = False
    leave_type: Optional[str] = None
    note: Optional[str] = None
    manual_override_id: Optional[int] = None
    coverage_request_id: Optional[int] = None
    supporting_clinician_id: Optional[int] = None
    supporting_clinician_name: Optional[str] = None
    is_freed: bool = False
    is_rest: bool = False
    is_rest_off: bool = False

    class Config:
        from_attributes = True


class ScheduleOut(BaseModel):
    from_date: dt.date
    to_date: dt.date
    entries: List[ScheduleEntryOut]
    issues: List[str] = []


class OnCallTodayOut(BaseModel):
    date: dt.date
    consultant: Optional[ClinicianRef] = None
    registrar: Optional[ClinicianRef] = None


# Leave

class LeaveCreate(BaseModel):
    clinician_id: int
    date: dt.date
    session: LeaveSession = "FULL"
    type: LeaveType = "annual"
    note: Optional[str] = None


class LeaveBulkCreate(BaseModel):
    clinician_id: int
    from_date: dt.date
    to_date: dt.date
    session: LeaveSession = "FULL"
    type: LeaveType = "annual"
    note: Optional[str] = None


class LeaveOut(BaseModel):
    id: int
    clinician_id: int
    date: dt.date
    session: str
    type: str
    note: Optional[str] = None

    class Config:
        from_attributes = True


class LeaveCreateResult(BaseModel):
    leave: LeaveOut
    coverage_requests: int
    freed_registrars: int


class LeaveBulkResult(BaseModel):
    created: List[LeaveOut]
    count: int
    skipped: List[dt.date] = []
    coverage_requests: int = 0


# Manual overrides

class OverrideUpsert(BaseModel):
    clinician_id: int
    date: dt.date
    session: Session
    duty_id: Optional[int] = None
    is_oncall: bool = False
    note: Optional[str] = None
    supporting_clinician_id: Optional[int] = None


class RotaEntryOut(BaseModel):
    id: int
    clinician_id: int
    date: dt.date
    session: str
    duty_id: Optional[int] = None
    is_oncall: bool = False
    note: Optional[str] = None
    supporting_clinician_id: Optional[int] = None

    class Config:
        from_attributes = True


# On-call configuration

class SlotCreate(BaseModel):
    role: Role
    name: Optional[str] = None


class SlotOut(BaseModel):
    id: int
    role: str
    position: int
    name: str
    active: bool = True

    class Config:
        from_attributes = True


class PatternRow(BaseModel):
    day_of_cycle: int
    slot_position: int


class PatternReplace(BaseModel):
    pattern: List[PatternRow]


class CycleOut(BaseModel):
    role: str
    start_date: Optional[dt.date] = None
    cycle_length: int
    unit_type: str
    slots: List[SlotOut]
    pattern: List[PatternRow] = []
    issues: List[str] = []


class CycleReplace(BaseModel):
    start_date: dt.date
    slot_names: List[str]
    pattern: List[PatternRow] = []


class AssignmentCreate(BaseModel):
    slot_id: int
    clinician_id: int
    effective_from: dt.date
    effective_to: Optional[dt.date] = None


class AssignmentEnd(BaseModel):
    effective_to: dt.date


class QuickAssign(BaseModel):
    slot_id: int
    clinician_id: int
    effective_from: dt.date


class AssignmentOut(BaseModel):
    id: int
    slot_id: int
    clinician_id: int
    effective_from: dt.date
    effective_to: Optional[dt.date] = None

    class Config:
        from_attributes = True


# Coverage

class CoverageCreate(BaseModel):
    date: dt.date
    session: Session
    duty_id: int
    type: Role = "registrar"
    absent_clinician_id: Optional[int] = None
    consultant_id: Optional[int] = None
    note: Optional[str] = None


class CoverageRequestOut(BaseModel):
    id: int
    date: dt.date
    session: str
    duty_id: int
    duty_name: Optional[str] = None
    type: str
    reason: str
    status: str
    absent_clinician_id: Optional[int] = None
    absent_clinician_name: Optional[str] = None
    consultant_id: Optional[int] = None
    consultant_name: Optional[str] = None
    assigned_clinician_id: Optional[int] = None
    assigned_clinician_name: Optional[str] = None
    assigned_at: Optional[dt.datetime] = None
    note: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class DetectRange(BaseModel):
    from_date: dt.date
    to_date: dt.date


class AssignBody(BaseModel):
    clinician_id: int


class CancelBody(BaseModel):
    note: Optional[str] = None


class RankedCandidateOut(BaseModel):
    clinician_id: int
    clinician_name: str
    grade: Optional[str] = None
    score: float
    reasons: List[str]
    workload_count: int
    last_coverage_date: Optional[dt.date] = None

    class Config:
        from_attributes = True


class UnavailableCandidateOut(BaseModel):
    clinician_id: int
    clinician_name: str
    reason: str

    class Config:
        from_attributes = True


class SuggestionsOut(BaseModel):
    available: List[RankedCandidateOut]
    unavailable: List[UnavailableCandidateOut]


class AutoAssignResult(BaseModel):
    success: bool
    request: CoverageRequestOut
    assigned_to: Optional[RankedCandidateOut] = None


class BulkAutoAssignResult(BaseModel):
    assigned: int
    failed: int
