"""Export the composed rota to Excel."""
import io
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from database import get_db
from rota.compositor import compose_schedule
from rota.write_schedule import build_workbook
from settings import ENGINE_CONFIG
from snapshot import load_snapshot

router = APIRouter()

MAX_EXPORT_DAYS = 93


@router.get("/excel")
def export_excel(
    from_date: date = Query(..., alias="from"),
    to_date: date = Query(..., alias="to"),
    db: Session = Depends(get_db),
):
    """Grid: rows=clinicians, two columns (AM/PM) per date."""
    if to_date < from_date:
        raise HTTPException(400, "'to' must not be before 'from'")
    if (to_date - from_date).days >= MAX_EXPORT_DAYS:
        raise HTTPException(400, f"Export is limited to {MAX_EXPORT_DAYS} days")

    issues = []
    entries = compose_schedule(load_snapshot(db, from_date, to_date), from_date, to_date, ENGINE_CONFIG, issues)
    wb = build_workbook(entries, issues)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    filename = f"rota_{from_date.isoformat()}_{to_date.isoformat()}.xlsx"
    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
