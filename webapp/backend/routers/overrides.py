"""Manual overrides: the highest-precedence layer of the rota."""
import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import get_db
from models import Clinician, Duty, RotaEntry
from rota.errors import ConstraintViolation, NotFoundError
from schemas import OverrideUpsert, RotaEntryOut

router = APIRouter()
logger = logging.getLogger(__name__)


@router.put("/override", response_model=RotaEntryOut)
def upsert_override(data: OverrideUpsert, db: Session = Depends(get_db)):
    clinician = db.query(Clinician).filter(Clinician.id == data.clinician_id).first()
    if not clinician:
        raise NotFoundError(f"Clinician {data.clinician_id} not found")
    if data.duty_id is not None and not db.query(Duty).filter(Duty.id == data.duty_id).first():
        raise NotFoundError(f"Duty {data.duty_id} not found")
    if data.duty_id is None and not data.is_oncall and not data.note:
        raise HTTPException(400, "An override needs a duty, on-call or a note")

    if data.is_oncall:
        clash = (
            db.query(RotaEntry)
            .join(Clinician, RotaEntry.clinician_id == Clinician.id)
            .filter(
                RotaEntry.date == data.date,
                RotaEntry.session == data.session,
                RotaEntry.is_oncall == True,  # noqa: E712
                RotaEntry.clinician_id != data.clinician_id,
                Clinician.role == clinician.role,
            )
            .first()
        )
        if clash:
            raise ConstraintViolation(
                f"Another {clinician.role} is already manually on call for {data.date.isoformat()} {data.session}"
            )

    entry = db.query(RotaEntry).filter(
        RotaEntry.clinician_id == data.clinician_id,
        RotaEntry.date == data.date,
        RotaEntry.session == data.session,
    ).first()
    if entry is None:
        entry = RotaEntry(clinician_id=data.clinician_id, date=data.date, session=data.session)
        db.add(entry)
    entry.duty_id = data.duty_id
    entry.is_oncall = data.is_oncall
    entry.note = data.note
    entry.supporting_clinician_id = data.supporting_clinician_id
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConstraintViolation("Override for this cell was written concurrently; retry")
    db.refresh(entry)
    logger.info(f"Override saved for {clinician.name} {data.date.isoformat()} {data.session}")
    return RotaEntryOut.model_validate(entry)


@router.delete("/override")
def delete_override(clinician_id: int, date: date, session: str, db: Session = Depends(get_db)):
    """Revert a cell to whatever the lower layers say."""
    entry = db.query(RotaEntry).filter(
        RotaEntry.clinician_id == clinician_id,
        RotaEntry.date == date,
        RotaEntry.session == session,
    ).first()
    if not entry:
        raise HTTPException(404, "Override not found")
    db.delete(entry)
    db.commit()
    return {"ok": True}
