"""
Workbook export, CLI and demo seed
"""

import io
from datetime import date

import openpyxl
import pytest

import models as orm
import run_rota
from rota.models import ScheduleEntry
from rota.write_schedule import build_workbook, cell_fill, cell_label, write_schedule
from seed import CYCLE_START, registrar_pattern, seed
from snapshot import load_cycle


def entry(**kw):
    base = dict(date=date(2024, 1, 2), clinician_id=1, clinician_name="Reg A", clinician_role="registrar", session="AM")
    base.update(kw)
    return ScheduleEntry(**base)


class TestCellRendering:

    def test_labels(self):
        assert cell_label(entry(is_leave=True, leave_type="annual", source="leave")) == "LEAVE (annual)"
        assert cell_label(entry(is_oncall=True, source="oncall")) == "ON CALL"
        assert cell_label(entry(is_freed=True, source="cascade")) == "FREED"
        assert cell_label(entry(duty_name="Clinic", supporting_clinician_name="Con X")) == "Clinic / Con X"
        assert cell_label(entry()) == ""
        assert cell_label(entry(source="coverage", duty_name="Clinic", supporting_clinician_name="Con X")) == "Clinic / Con X (cover)"

    def test_rest_markers(self):
        assert cell_label(entry(duty_name="SPA", is_rest=True)) == "SPA REST"
        assert cell_label(entry(is_rest=True, is_rest_off=True)) == "OFF"

    def test_fill_from_duty_colour(self):
        assert cell_fill(entry(duty_color="#93c5fd")) == "FF93C5FD"
        assert cell_fill(entry(duty_color="blue")) is None
        assert cell_fill(entry(is_leave=True, duty_color="#93C5FD")) == "FFFCA5A5"


class TestWorkbook:

    def test_grid_layout(self):
        entries = [
            entry(session="AM", duty_name="Clinic"),
            entry(session="PM", is_oncall=True),
            entry(date=date(2024, 1, 3), session="AM"),
            entry(date=date(2024, 1, 3), session="PM", is_leave=True),
        ]
        wb = build_workbook(entries)
        ws = wb["Rota"]
        assert wb.sheetnames == ["Rota"]
        assert ws.cell(1, 3).value == "Tue 02 Jan"
        assert ws.cell(1, 5).value == "Wed 03 Jan"
        assert [ws.cell(2, c).value for c in range(3, 7)] == ["AM", "PM", "AM", "PM"]
        assert [ws.cell(3, c).value for c in range(1, 7)] == ["Reg A", "Registrar", "Clinic", "ON CALL", "", "LEAVE"]
        assert ws.freeze_panes == "C3"

    def test_issues_sheet(self, tmp_path):
        path = write_schedule(str(tmp_path / "out" / "rota.xlsx"), [entry()], ["bad pattern"])
        wb = openpyxl.load_workbook(path)
        assert wb.sheetnames == ["Rota", "ISSUES"]
        assert wb["ISSUES"].cell(2, 1).value == "bad pattern"


class TestExportEndpoint:

    def test_download(self, client, ward_db):
        resp = client.get("/api/export/excel", params={"from": "2024-01-01", "to": "2024-01-07"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/vnd.openxmlformats")
        assert "rota_2024-01-01_2024-01-07.xlsx" in resp.headers["content-disposition"]
        wb = openpyxl.load_workbook(io.BytesIO(resp.content))
        ws = wb["Rota"]
        assert ws.cell(3, 1).value == "Con X"
        assert ws.max_row == 2 + 5

    def test_range_limit(self, client, ward_db):
        resp = client.get("/api/export/excel", params={"from": "2024-01-01", "to": "2024-06-01"})
        assert resp.status_code == 400
        # 93 days inclusive is the widest workbook
        assert client.get("/api/export/excel", params={"from": "2024-01-01", "to": "2024-04-02"}).status_code == 200
        assert client.get("/api/export/excel", params={"from": "2024-01-01", "to": "2024-04-03"}).status_code == 400


class TestSeed:

    def test_registrar_pattern_covers_cycle(self):
        rows = registrar_pattern(4)
        assert [d for d, _ in rows] == list(range(1, 29))
        assert rows[0] == (1, 1)
        assert rows[5] == (6, 2)   # first Saturday handed to the next slot
        assert rows[27] == (28, 1)

    def test_seed_is_idempotent(self, db):
        seed(db)
        seed(db)
        assert db.query(orm.Clinician).count() == 7
        assert db.query(orm.Duty).count() == 5
        assert db.query(orm.SlotAssignment).count() == 7

    def test_seeded_cycles_validate(self, db):
        seed(db)
        for role in ("consultant", "registrar"):
            cycle = load_cycle(db, role)
            assert cycle.issues() == []
            assert cycle.start_date == CYCLE_START


class TestCli:

    def test_validate_cycles(self, db, capsys):
        assert run_rota.main(["validate-cycles"]) == 1
        seed(db)
        assert run_rota.main(["validate-cycles"]) == 0
        assert "registrar: OK" in capsys.readouterr().out

    def test_export(self, db, tmp_path, capsys):
        seed(db)
        out = tmp_path / "week.xlsx"
        code = run_rota.main(["export", "--from", "2025-01-06", "--to", "2025-01-12", "--out", str(out)])
        assert code == 0
        assert out.exists()
        assert "Wrote 98 cells" in capsys.readouterr().out
        ws = openpyxl.load_workbook(out)["Rota"]
        assert ws.cell(1, 3).value == "Mon 06 Jan"
        assert ws.cell(3, 1).value == "Dr Adeyemi"

    def test_export_reversed_range(self, db, tmp_path):
        code = run_rota.main(["export", "--from", "2025-01-12", "--to", "2025-01-06", "--out", str(tmp_path / "x.xlsx")])
        assert code == 2

    def test_detect_and_auto_assign(self, db, capsys):
        seed(db)
        registrar = db.query(orm.Clinician).filter(orm.Clinician.name == "Dr Gupta").one()
        db.add(orm.Leave(clinician_id=registrar.id, date=date(2025, 1, 7), session="FULL", type="annual"))
        db.commit()
        assert run_rota.main(["detect", "--from", "2025-01-06", "--to", "2025-01-12"]) == 0
        assert "Coverage requests created: 2" in capsys.readouterr().out
        assert run_rota.main(["auto-assign"]) == 0
        out = capsys.readouterr().out
        assert "Assigned: 2" in out
        assert "Still pending: 0" in out

    def test_no_command(self, db):
        assert run_rota.main([]) == 1

    @pytest.mark.parametrize("argv", [["export"], ["detect", "--from", "2025-01-01"]])
    def test_missing_arguments(self, db, argv):
        with pytest.raises(SystemExit):
            run_rota.main(argv)
