"""
On-call cycle configuration, slot assignments and on-call conflict detection
"""

import pytest

FORTNIGHT = [{"day_of_cycle": d, "slot_position": 1 if d <= 7 else 2} for d in range(1, 15)]


def put_cycle(client, role, slot_names, pattern=(), start="2024-01-01"):
    return client.put(f"/api/oncall/{role}/cycle", json={
        "start_date": start, "slot_names": list(slot_names), "pattern": list(pattern),
    })


def assign(client, slot_id, clinician_id, start="2024-01-01", end=None):
    return client.post("/api/oncall/assignments", json={
        "slot_id": slot_id, "clinician_id": clinician_id, "effective_from": start, "effective_to": end,
    })


def pending(client):
    return client.get("/api/coverage/", params={"status": "pending"}).json()


@pytest.fixture
def solo_registrar_slot(client, ward_db):
    """A one-slot registrar rotation: whoever holds the slot is on call every day."""
    resp = put_cycle(client, "registrar", ["Solo"])
    assert resp.status_code == 200
    return resp.json()["slots"][0]["id"]


@pytest.fixture
def solo_consultant_slot(client, ward_db):
    resp = put_cycle(client, "consultant", ["Solo"])
    assert resp.status_code == 200
    return resp.json()["slots"][0]["id"]


class TestCycleDefinition:

    def test_replace_registrar_cycle(self, client, ward_db):
        resp = put_cycle(client, "registrar", ["Reg 1", "Reg 2"], FORTNIGHT)
        assert resp.status_code == 200
        body = resp.json()
        assert body["cycle_length"] == 14
        assert body["unit_type"] == "day"
        assert [s["position"] for s in body["slots"]] == [1, 2]
        assert len(body["pattern"]) == 14
        assert body["issues"] == []
        assert client.get("/api/oncall/registrar/issues").json() == []

    def test_consultant_cycle_is_weekly(self, client, ward_db):
        body = put_cycle(client, "consultant", ["A", "B", "C"]).json()
        assert body["cycle_length"] == 3
        assert body["unit_type"] == "week"

    def test_invalid_cycle_writes_nothing(self, client, ward_db):
        resp = put_cycle(client, "registrar", ["Reg 1", "Reg 2"], FORTNIGHT[:10])
        assert resp.status_code == 422
        assert resp.json()["error"] == "CycleConfigError"
        body = client.get("/api/oncall/registrar/cycle").json()
        assert body["slots"] == []
        assert body["cycle_length"] == 0
        assert body["issues"] == ["registrar has no on-call cycle configured"]

    def test_consultant_pattern_rejected(self, client, ward_db):
        resp = put_cycle(client, "consultant", ["A"], [{"day_of_cycle": 1, "slot_position": 1}])
        assert resp.status_code == 422

    def test_unknown_role(self, client, ward_db):
        assert client.get("/api/oncall/nurse/cycle").status_code == 404

    def test_replace_keeps_slots_by_position(self, client, ward_db):
        first = put_cycle(client, "registrar", ["Reg 1", "Reg 2"], FORTNIGHT).json()
        second = put_cycle(client, "registrar", ["North", "South"], FORTNIGHT).json()
        assert [s["id"] for s in first["slots"]] == [s["id"] for s in second["slots"]]
        assert [s["name"] for s in second["slots"]] == ["North", "South"]

    def test_pattern_replace(self, client, ward_db):
        put_cycle(client, "registrar", ["Reg 1", "Reg 2"], FORTNIGHT)
        flipped = [{"day_of_cycle": d, "slot_position": 2 if d <= 7 else 1} for d in range(1, 15)]
        body = client.put("/api/oncall/pattern", json={"pattern": flipped}).json()
        assert body["pattern"][0] == {"day_of_cycle": 1, "slot_position": 2}

        resp = client.put("/api/oncall/pattern", json={"pattern": flipped[:7]})
        assert resp.status_code == 422
        # The stored pattern is untouched
        assert len(client.get("/api/oncall/registrar/cycle").json()["pattern"]) == 14

    def test_slot_count_change_flags_pattern(self, client, ward_db):
        put_cycle(client, "registrar", ["Reg 1", "Reg 2"], FORTNIGHT)
        client.post("/api/oncall/slots", json={"role": "registrar"})
        issues = client.get("/api/oncall/registrar/issues").json()
        assert any("21 days" in i for i in issues)


class TestSlots:

    def test_add_uses_lowest_free_position(self, client, ward_db):
        first = client.post("/api/oncall/slots", json={"role": "consultant"}).json()
        second = client.post("/api/oncall/slots", json={"role": "consultant", "name": "Late"}).json()
        assert (first["position"], first["name"]) == (1, "Consultant 1")
        assert (second["position"], second["name"]) == (2, "Late")

        assert client.delete(f"/api/oncall/slots/{second['id']}").json() == {"ok": True}
        third = client.post("/api/oncall/slots", json={"role": "consultant"}).json()
        assert third["position"] == 2
        assert third["id"] != second["id"]

    def test_remove_held_slot_rejected(self, client, ward_db, solo_registrar_slot):
        assign(client, solo_registrar_slot, ward_db.reg_a)
        assert client.delete(f"/api/oncall/slots/{solo_registrar_slot}").status_code == 409

    def test_remove_unknown_slot(self, client, ward_db):
        assert client.delete("/api/oncall/slots/999").status_code == 404


class TestAssignments:

    def test_create_and_list(self, client, ward_db, solo_registrar_slot):
        resp = assign(client, solo_registrar_slot, ward_db.reg_a, end="2024-01-31")
        assert resp.status_code == 200
        listed = client.get("/api/oncall/assignments", params={"role": "registrar"}).json()
        assert [(a["clinician_id"], a["effective_from"], a["effective_to"]) for a in listed] == [
            (ward_db.reg_a, "2024-01-01", "2024-01-31"),
        ]

    def test_overlap_rejected(self, client, ward_db, solo_registrar_slot):
        assign(client, solo_registrar_slot, ward_db.reg_a, end="2024-01-31")
        resp = assign(client, solo_registrar_slot, ward_db.reg_b, start="2024-01-31")
        assert resp.status_code == 409
        assert assign(client, solo_registrar_slot, ward_db.reg_b, start="2024-02-01").status_code == 200

    def test_backwards_interval_rejected(self, client, ward_db, solo_registrar_slot):
        resp = assign(client, solo_registrar_slot, ward_db.reg_a, start="2024-02-01", end="2024-01-01")
        assert resp.status_code == 409

    def test_role_mismatch_rejected(self, client, ward_db, solo_registrar_slot):
        assert assign(client, solo_registrar_slot, ward_db.con_x).status_code == 409

    def test_unknown_slot_or_clinician(self, client, ward_db, solo_registrar_slot):
        assert assign(client, 999, ward_db.reg_a).status_code == 404
        assert assign(client, solo_registrar_slot, 999).status_code == 404

    def test_end_unknown_assignment(self, client, ward_db):
        resp = client.put("/api/oncall/assignments/999/end", json={"effective_to": "2024-01-10"})
        assert resp.status_code == 404

    def test_quick_assign_hands_over(self, client, ward_db, solo_registrar_slot):
        assign(client, solo_registrar_slot, ward_db.reg_a)
        resp = client.post("/api/oncall/quick-assign", json={
            "slot_id": solo_registrar_slot, "clinician_id": ward_db.reg_b, "effective_from": "2024-01-15",
        })
        assert resp.status_code == 200
        listed = client.get("/api/oncall/assignments", params={"slot_id": solo_registrar_slot}).json()
        assert [(a["clinician_id"], a["effective_from"], a["effective_to"]) for a in listed] == [
            (ward_db.reg_a, "2024-01-01", "2024-01-14"),
            (ward_db.reg_b, "2024-01-15", None),
        ]

    def test_quick_assign_before_open_interval(self, client, ward_db, solo_registrar_slot):
        assign(client, solo_registrar_slot, ward_db.reg_a, start="2024-01-15")
        resp = client.post("/api/oncall/quick-assign", json={
            "slot_id": solo_registrar_slot, "clinician_id": ward_db.reg_b, "effective_from": "2024-01-15",
        })
        assert resp.status_code == 409

    def test_quick_assign_empty_slot(self, client, ward_db, solo_registrar_slot):
        resp = client.post("/api/oncall/quick-assign", json={
            "slot_id": solo_registrar_slot, "clinician_id": ward_db.reg_b, "effective_from": "2024-01-15",
        })
        assert resp.json()["effective_to"] is None


class TestOncallConflicts:

    def test_registrar_duties_need_cover(self, client, ward_db, solo_registrar_slot):
        assign(client, solo_registrar_slot, ward_db.reg_c, end="2024-01-05")
        requests = pending(client)
        assert len(requests) == 10
        assert {r["reason"] for r in requests} == {"oncall_conflict"}
        assert {r["duty_name"] for r in requests} == {"Ward Round"}
        assert {r["absent_clinician_id"] for r in requests} == {ward_db.reg_c}

    def test_weekends_raise_nothing(self, client, ward_db, solo_registrar_slot):
        assign(client, solo_registrar_slot, ward_db.reg_c, start="2024-01-06", end="2024-01-07")
        assert pending(client) == []

    def test_ending_assignment_cancels_later_conflicts(self, client, ward_db, solo_registrar_slot):
        a = assign(client, solo_registrar_slot, ward_db.reg_c, end="2024-01-05").json()
        resp = client.put(f"/api/oncall/assignments/{a['id']}/end", json={"effective_to": "2024-01-02"})
        assert resp.status_code == 200
        assert sorted({r["date"] for r in pending(client)}) == ["2024-01-01", "2024-01-02"]
        cancelled = client.get("/api/coverage/", params={"status": "cancelled"}).json()
        assert len(cancelled) == 6
        assert all(r["note"] == "No longer on call" for r in cancelled)

    def test_delete_assignment_cancels_all(self, client, ward_db, solo_registrar_slot):
        a = assign(client, solo_registrar_slot, ward_db.reg_c, end="2024-01-05").json()
        assert client.delete(f"/api/oncall/assignments/{a['id']}").json() == {"ok": True}
        assert pending(client) == []

    def test_handover_moves_conflicts(self, client, ward_db, solo_registrar_slot):
        assign(client, solo_registrar_slot, ward_db.reg_c, end="2024-01-05")
        a = client.get("/api/oncall/assignments").json()[0]
        client.put(f"/api/oncall/assignments/{a['id']}/end", json={"effective_to": "2024-01-03"})
        assign(client, solo_registrar_slot, ward_db.reg_a, start="2024-01-04", end="2024-01-05")
        by_clinician = {}
        for r in pending(client):
            by_clinician.setdefault(r["absent_clinician_id"], set()).add(r["date"])
        assert by_clinician[ward_db.reg_c] == {"2024-01-01", "2024-01-02", "2024-01-03"}
        assert by_clinician[ward_db.reg_a] == {"2024-01-04", "2024-01-05"}

    def test_consultant_oncall_cascades(self, client, ward_db, solo_consultant_slot):
        a = assign(client, solo_consultant_slot, ward_db.con_x, end="2024-01-05").json()
        requests = pending(client)
        assert len(requests) == 10
        assert {r["type"] for r in requests} == {"consultant"}

        day = client.get("/api/schedule/", params={"from": "2024-01-02", "to": "2024-01-02"}).json()["entries"]
        cells = {(e["clinician_id"], e["session"]): e for e in day}
        assert cells[(ward_db.con_x, "AM")]["is_oncall"]
        assert cells[(ward_db.reg_a, "AM")]["source"] == "cascade"
        assert cells[(ward_db.reg_b, "PM")]["source"] == "cascade"

        client.delete(f"/api/oncall/assignments/{a['id']}")
        assert pending(client) == []
        day = client.get("/api/schedule/", params={"from": "2024-01-02", "to": "2024-01-02"}).json()["entries"]
        cells = {(e["clinician_id"], e["session"]): e for e in day}
        assert cells[(ward_db.reg_a, "AM")]["source"] == "jobplan"

    def test_ending_consultant_assignment_restores_registrars(self, client, ward_db, solo_consultant_slot):
        a = assign(client, solo_consultant_slot, ward_db.con_x, end="2024-01-05").json()
        client.put(f"/api/oncall/assignments/{a['id']}/end", json={"effective_to": "2024-01-02"})
        entries = client.get("/api/schedule/", params={"from": "2024-01-02", "to": "2024-01-03"}).json()["entries"]
        reg_a_am = {e["date"]: e["source"] for e in entries if e["clinician_id"] == ward_db.reg_a and e["session"] == "AM"}
        assert reg_a_am == {"2024-01-02": "cascade", "2024-01-03": "jobplan"}
