"""
Write a composed schedule to an Excel workbook.
Grid: one row per clinician, two columns (AM/PM) per date.
Adds an ISSUES sheet when on-call could not be resolved for some dates.
"""

from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .models import SESSIONS, ScheduleEntry

LEAVE_COLOR = "FFFCA5A5"
ONCALL_COLOR = "FFC4B5FD"
FREED_COLOR = "FFE2E8F0"
REST_COLOR = "FFFEF08A"
HEADER_COLOR = "FFF8FAFC"
WEEKEND_COLOR = "FFCBD5E1"


def cell_label(e: ScheduleEntry) -> str:
    """Text shown in the grid for one resolved cell."""
    if e.is_leave:
        label = f"LEAVE ({e.leave_type})" if e.leave_type else "LEAVE"
    elif e.is_oncall:
        label = "ON CALL"
    elif e.is_freed:
        label = "FREED"
    else:
        label = e.duty_name or ""
        if e.supporting_clinician_name:
            label = f"{label} / {e.supporting_clinician_name}" if label else e.supporting_clinician_name
        if e.source == "coverage":
            label = f"{label} (cover)".strip()
    if e.is_rest_off:
        label = f"{label} OFF".strip()
    elif e.is_rest:
        label = f"{label} REST".strip()
    return label


def _argb(color: Optional[str]) -> Optional[str]:
    if not color:
        return None
    hex_part = color.lstrip("#").upper()
    if len(hex_part) == 6:
        return "FF" + hex_part
    if len(hex_part) == 8:
        return hex_part
    return None


def cell_fill(e: ScheduleEntry) -> Optional[str]:
    if e.is_leave:
        return LEAVE_COLOR
    if e.is_oncall:
        return ONCALL_COLOR
    if e.is_freed:
        return FREED_COLOR
    if e.is_rest_off:
        return REST_COLOR
    return _argb(e.duty_color)


def build_workbook(
    entries: List[ScheduleEntry],
    issues: Optional[List[str]] = None,
) -> openpyxl.Workbook:
    """Lay the composed cells out as a rota grid. Row and column order follow `entries`."""
    dates: List[date] = []
    rows: List[Tuple[int, str, str]] = []
    cells: Dict[Tuple[int, date, str], ScheduleEntry] = {}
    for e in entries:
        if not dates or dates[-1] != e.date:
            dates.append(e.date)
        key = (e.clinician_id, e.clinician_name, e.clinician_role)
        if key not in rows:
            rows.append(key)
        cells[(e.clinician_id, e.date, e.session)] = e

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Rota"

    thin_side = Side(border_style="thin", color="cbd5e1")
    thick_side = Side(border_style="medium", color="64748b")
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    bold_font = Font(bold=True, size=11, name="Arial")
    header_fill = PatternFill(start_color=HEADER_COLOR, end_color=HEADER_COLOR, fill_type="solid")
    weekend_fill = PatternFill(start_color=WEEKEND_COLOR, end_color=WEEKEND_COLOR, fill_type="solid")

    for col, title in ((1, "Clinician"), (2, "Role")):
        c = ws.cell(1, col, title)
        c.font = bold_font
        c.alignment = center
        c.fill = header_fill
        c.border = Border(bottom=thin_side, right=thin_side)
        ws.merge_cells(start_row=1, start_column=col, end_row=2, end_column=col)

    first_col = 3
    for i, d in enumerate(dates):
        col = first_col + i * len(SESSIONS)
        ws.merge_cells(start_row=1, start_column=col, end_row=1, end_column=col + len(SESSIONS) - 1)
        c = ws.cell(1, col, d.strftime("%a %d %b"))
        c.font = bold_font
        c.alignment = center
        c.fill = weekend_fill if d.isoweekday() > 5 else header_fill
        for j, session in enumerate(SESSIONS):
            s = ws.cell(2, col + j, session)
            s.font = Font(bold=True, size=9)
            s.alignment = center
            s.fill = header_fill
            s.border = Border(bottom=thin_side, right=thick_side if j == len(SESSIONS) - 1 else thin_side)

    for r, (clinician_id, name, role) in enumerate(rows, 3):
        ws.cell(r, 1, name).font = Font(bold=True)
        ws.cell(r, 2, role.title()).alignment = center
        for col in (1, 2):
            ws.cell(r, col).border = Border(bottom=thin_side, right=thin_side)
        for i, d in enumerate(dates):
            for j, session in enumerate(SESSIONS):
                e = cells.get((clinician_id, d, session))
                cell = ws.cell(r, first_col + i * len(SESSIONS) + j, cell_label(e) if e else "")
                cell.alignment = center
                cell.border = Border(bottom=thin_side, right=thick_side if j == len(SESSIONS) - 1 else thin_side)
                fill = cell_fill(e) if e else None
                if fill:
                    cell.fill = PatternFill(start_color=fill, end_color=fill, fill_type="solid")

    ws.freeze_panes = "C3"
    ws.column_dimensions["A"].width = 25
    ws.column_dimensions["B"].width = 12
    for col in range(first_col, first_col + len(dates) * len(SESSIONS)):
        ws.column_dimensions[get_column_letter(col)].width = 14

    if issues:
        add_issues_sheet(wb, issues)
    return wb


def add_issues_sheet(wb: openpyxl.Workbook, issues: List[str]) -> None:
    """Add an ISSUES sheet listing on-call configuration problems."""
    if "ISSUES" in wb.sheetnames:
        del wb["ISSUES"]
    ws = wb.create_sheet("ISSUES")
    ws.cell(1, 1, "On-call configuration issue").font = Font(bold=True)
    for i, msg in enumerate(issues, 2):
        ws.cell(i, 1, msg)
    ws.column_dimensions["A"].width = 90


def write_schedule(
    output_path: str,
    entries: List[ScheduleEntry],
    issues: Optional[List[str]] = None,
) -> str:
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    wb = build_workbook(entries, issues)
    wb.save(output)
    return str(output)
