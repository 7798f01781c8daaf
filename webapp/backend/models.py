"""SQLAlchemy models for the rota DB."""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, ForeignKey, Text,
    Index, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship

from database import Base


class Clinician(Base):
    __tablename__ = "clinicians"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    email = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False)  # consultant, registrar
    grade = Column(String(20), nullable=True)  # registrar only: junior, senior
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    leaves = relationship("Leave", back_populates="clinician")


class Duty(Base):
    __tablename__ = "duties"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    color = Column(String(20), nullable=True)  # "#86EFAC"
    requires_registrar = Column(Boolean, default=False, nullable=False)
    requires_coverage = Column(Boolean, default=True, nullable=False)
    preferred_grade = Column(String(20), nullable=True)
    active = Column(Boolean, default=True, nullable=False)


class JobPlanWeek(Base):
    __tablename__ = "job_plan_weeks"
    id = Column(Integer, primary_key=True, index=True)
    clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=False)
    week_no = Column(Integer, nullable=False)  # 1-5, week of month
    day_of_week = Column(Integer, nullable=False)  # 1=Mon .. 5=Fri
    am_duty_id = Column(Integer, ForeignKey("duties.id"), nullable=True)
    pm_duty_id = Column(Integer, ForeignKey("duties.id"), nullable=True)
    am_supporting_clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=True)
    pm_supporting_clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=True)

    __table_args__ = (UniqueConstraint("clinician_id", "week_no", "day_of_week"),)


class OnCallConfig(Base):
    __tablename__ = "oncall_configs"
    id = Column(Integer, primary_key=True, index=True)
    role = Column(String(20), unique=True, nullable=False)
    start_date = Column(Date, nullable=True)  # cycle epoch


class OnCallSlot(Base):
    __tablename__ = "oncall_slots"
    id = Column(Integer, primary_key=True, index=True)
    role = Column(String(20), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # 1..N among active slots
    name = Column(String(50), nullable=False)
    active = Column(Boolean, default=True, nullable=False)  # soft delete

    assignments = relationship("SlotAssignment", back_populates="slot")


class OnCallPattern(Base):
    __tablename__ = "oncall_patterns"
    id = Column(Integer, primary_key=True, index=True)
    role = Column(String(20), nullable=False, default="registrar")
    day_of_cycle = Column(Integer, nullable=False)  # 1..cycle_length
    slot_position = Column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("role", "day_of_cycle"),)


class SlotAssignment(Base):
    __tablename__ = "slot_assignments"
    id = Column(Integer, primary_key=True, index=True)
    slot_id = Column(Integer, ForeignKey("oncall_slots.id"), nullable=False, index=True)
    clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=False)
    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)  # inclusive; null = open-ended
    created_at = Column(DateTime, default=datetime.utcnow)

    slot = relationship("OnCallSlot", back_populates="assignments")
    clinician = relationship("Clinician")


class Leave(Base):
    __tablename__ = "leaves"
    id = Column(Integer, primary_key=True, index=True)
    clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    session = Column(String(4), nullable=False)  # AM, PM, FULL
    type = Column(String(20), nullable=False, default="annual")
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    clinician = relationship("Clinician", back_populates="leaves")

    __table_args__ = (UniqueConstraint("clinician_id", "date", "session"),)


class RotaEntry(Base):
    """Manual override of one (clinician, date, session) cell."""
    __tablename__ = "rota_entries"
    id = Column(Integer, primary_key=True, index=True)
    clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    session = Column(String(2), nullable=False)  # AM, PM
    duty_id = Column(Integer, ForeignKey("duties.id"), nullable=True)
    is_oncall = Column(Boolean, default=False, nullable=False)
    note = Column(Text, nullable=True)
    supporting_clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (UniqueConstraint("clinician_id", "date", "session"),)


class CascadeRelease(Base):
    """Registrar freed because the consultant they support is absent."""
    __tablename__ = "cascade_releases"
    id = Column(Integer, primary_key=True, index=True)
    registrar_id = Column(Integer, ForeignKey("clinicians.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    session = Column(String(2), nullable=False)
    consultant_id = Column(Integer, ForeignKey("clinicians.id"), nullable=False)
    duty_id = Column(Integer, ForeignKey("duties.id"), nullable=True)
    origin_type = Column(String(20), nullable=False)  # leave, oncall
    origin_id = Column(Integer, nullable=False)  # leaves.id or slot_assignments.id
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("registrar_id", "date", "session", "origin_type", "origin_id"),
    )


class CoverageRequest(Base):
    __tablename__ = "coverage_requests"
    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    session = Column(String(2), nullable=False)  # AM, PM
    duty_id = Column(Integer, ForeignKey("duties.id"), nullable=False)
    type = Column(String(20), nullable=False)  # registrar, consultant
    reason = Column(String(20), nullable=False)  # leave, oncall_conflict, manual
    status = Column(String(20), nullable=False, default="pending")  # pending, assigned, cancelled
    absent_clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=True)
    consultant_id = Column(Integer, ForeignKey("clinicians.id"), nullable=True)
    assigned_clinician_id = Column(Integer, ForeignKey("clinicians.id"), nullable=True)
    assigned_at = Column(DateTime, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    duty = relationship("Duty")
    absent_clinician = relationship("Clinician", foreign_keys=[absent_clinician_id])
    consultant = relationship("Clinician", foreign_keys=[consultant_id])
    assigned_clinician = relationship("Clinician", foreign_keys=[assigned_clinician_id])

    __table_args__ = (
        Index(
            "uq_coverage_open",
            "date", "session", "duty_id", "absent_clinician_id",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    @property
    def duty_name(self):
        return self.duty.name if self.duty else None

    @property
    def absent_clinician_name(self):
        return self.absent_clinician.name if self.absent_clinician else None

    @property
    def consultant_name(self):
        return self.consultant.name if self.consultant else None

    @property
    def assigned_clinician_name(self):
        return self.assigned_clinician.name if self.assigned_clinician else None
