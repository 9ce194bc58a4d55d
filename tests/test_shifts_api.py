from datetime import date

from roster_api.models.department import Department
from roster_api.models.notification import NotificationJob
from roster_api.models.shift import EmployeeShift
from roster_api.models.shift_change_log import ShiftChangeLog


def _seed_march(session, juan):
    session.add(EmployeeShift(employee_id=juan.id, date=date(2025, 3, 15), shift="M", comments=""))
    session.commit()


def test_health(app):
    r = app.test_client().get("/api/health")
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "ok"


def test_login_returns_tokens(app, supervisor):
    c = app.test_client()
    r = c.post("/api/v1/auth/login", json={"email": "supervisor@test.local", "password": "4445"})
    assert r.status_code == 200
    body = r.get_json()
    assert body["user"]["roles"] == ["supervisor"]

    me = c.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access']}"})
    assert me.get_json()["data"]["email"] == "supervisor@test.local"

    bad = c.post("/api/v1/auth/login", json={"email": "supervisor@test.local", "password": "nope"})
    assert bad.status_code == 401


def test_grid_and_codes(app, session, juan, supervisor, auth_headers):
    _seed_march(session, juan)
    c = app.test_client()
    h = auth_headers(supervisor, ["supervisor"])

    r = c.get("/api/v1/shifts/grid?year=2025&month=3", headers=h)
    body = r.get_json()
    assert body["meta"]["days"] == 31
    row = body["data"][0]
    assert row["name"] == "Juan Pérez"
    assert row["days"]["15"] == "M"
    assert row["days"]["16"] == ""

    codes = {i["code"]: i for i in c.get("/api/v1/shifts/codes", headers=h).get_json()["data"]}
    assert codes[""]["notifiable"] is False
    assert codes["N"]["description"] == "Noche"
    assert codes["N"]["notifiable"] is True


def test_editing_session_flow(app, session, juan, supervisor, auth_headers):
    _seed_march(session, juan)
    c = app.test_client()
    h = auth_headers(supervisor, ["supervisor"])

    r = c.post("/api/v1/shifts/sessions", json={"year": 2025, "month": 3}, headers=h)
    assert r.status_code == 201
    sid = r.get_json()["data"]["id"]
    base = f"/api/v1/shifts/sessions/{sid}"

    r = c.post(f"{base}/edits", json={"employee_id": juan.id, "day": 15, "value": "t"}, headers=h)
    assert r.get_json()["data"]["change"]["old_value"] == "M"
    c.post(f"{base}/edits", json={"employee_id": juan.id, "day": 16, "value": "N"}, headers=h)
    r = c.post(f"{base}/edits", json={"employee_id": juan.id, "day": 17, "value": "F"}, headers=h)
    extra_id = r.get_json()["data"]["change"]["id"]

    r = c.delete(f"{base}/changes/{extra_id}", headers=h)
    assert len(r.get_json()["data"]["pending"]) == 2

    r = c.post(f"{base}/edits", json={"employee_id": juan.id, "day": 40, "value": "N"}, headers=h)
    assert r.status_code == 422
    r = c.post(f"{base}/edits", json={"employee_id": juan.id, "day": 3, "value": "XX"}, headers=h)
    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "VALIDATION_ERROR"

    r = c.post(f"{base}/commit", json={"comment": "ajuste semanal"}, headers=h)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["logged"] == 2
    assert data["notifiable"] == 2
    assert data["queued_notifications"] == 2   # two configured recipients

    rows = ShiftChangeLog.query.order_by(ShiftChangeLog.shift_date).all()
    assert [(r.old_shift, r.new_shift) for r in rows] == [("M", "T"), ("", "N")]
    assert all(r.changed_by == supervisor.id and r.comment == "ajuste semanal" for r in rows)
    assert NotificationJob.query.count() == 2

    state = c.get(base, headers=h).get_json()["data"]
    assert state["pending"] == []

    assert c.delete(base, headers=h).status_code == 200
    assert c.get(base, headers=h).status_code == 404


def test_undo_and_clear_endpoints(app, session, juan, supervisor, auth_headers):
    c = app.test_client()
    h = auth_headers(supervisor, ["supervisor"])
    sid = c.post("/api/v1/shifts/sessions", json={"year": 2025, "month": 3}, headers=h).get_json()["data"]["id"]
    base = f"/api/v1/shifts/sessions/{sid}"

    c.post(f"{base}/edits", json={"employee_id": juan.id, "day": 1, "value": "M"}, headers=h)
    c.post(f"{base}/edits", json={"employee_id": juan.id, "day": 2, "value": "T"}, headers=h)
    r = c.post(f"{base}/undo", headers=h)
    assert r.get_json()["data"]["undone"]["day"] == 2

    c.post(f"{base}/edits", json={"employee_id": juan.id, "day": 5, "value": "N"}, headers=h)
    r = c.post(f"{base}/clear", headers=h)
    assert r.get_json()["data"]["reverted"] == 2

    grid = c.get(f"{base}?grid=1", headers=h).get_json()["data"]["grid"][0]["days"]
    assert grid["1"] == grid["2"] == grid["5"] == ""

    r = c.post(f"{base}/commit", json={}, headers=h)
    assert r.status_code == 422
    assert ShiftChangeLog.query.count() == 0


def test_one_shot_commit(app, session, juan, maria, supervisor, auth_headers):
    _seed_march(session, juan)
    c = app.test_client()
    h = auth_headers(supervisor, ["supervisor"])
    r = c.post("/api/v1/shifts/changes", json={
        "year": 2025, "month": 3,
        "changes": [
            {"employee_id": juan.id, "day": 15, "value": "N"},
            {"employee_id": juan.id, "day": 15, "value": "T"},   # same cell, last wins
            {"employee_id": maria.id, "day": 2, "value": ""},    # already empty -> dropped
        ],
    }, headers=h)
    assert r.status_code == 201
    assert r.get_json()["data"]["logged"] == 1
    assert EmployeeShift.query.filter_by(employee_id=juan.id).one().shift == "T"

    r = c.get(f"/api/v1/shifts/change-log?employee_id={juan.id}", headers=h)
    body = r.get_json()
    assert body["meta"]["total"] == 1
    assert body["data"][0]["old_shift"] == "M"
    assert body["data"][0]["employee_name"] == "Juan Pérez"

    shift_id = body["data"][0]["employee_shift_id"]
    hist = c.get(f"/api/v1/shifts/{shift_id}/history", headers=h).get_json()["data"]
    assert len(hist) == 1

    per_emp = c.get(f"/api/v1/shifts/change-log/employee/{juan.id}", headers=h).get_json()["data"]
    assert len(per_emp) == 1


def test_viewer_cannot_edit(app, viewer, auth_headers):
    c = app.test_client()
    h = auth_headers(viewer, ["viewer"])
    r = c.post("/api/v1/shifts/sessions", json={"year": 2025, "month": 3}, headers=h)
    assert r.status_code == 403
    r = c.get("/api/v1/shifts/grid?year=2025&month=3", headers=h)
    assert r.status_code == 200




def test_grid_and_session_filter_by_department(app, session, juan, maria, supervisor, auth_headers):
    patrullaje = Department(name="Patrullaje")
    fisca = Department(name="Fiscalización")
    session.add_all([patrullaje, fisca]); session.commit()
    juan.department_id = patrullaje.id
    maria.department_id = fisca.id
    session.commit()

    c = app.test_client()
    h = auth_headers(supervisor, ["supervisor"])

    depts = c.get("/api/v1/shifts/departments", headers=h).get_json()["data"]
    assert [d["name"] for d in depts] == ["Fiscalización", "Patrullaje"]

    rows = c.get(f"/api/v1/shifts/grid?year=2025&month=3&department_id={patrullaje.id}", headers=h).get_json()["data"]
    assert [r["employee_id"] for r in rows] == [juan.id]

    # rol_id is the legacy name of the same filter
    rows = c.get(f"/api/v1/shifts/grid?year=2025&month=3&rol_id={fisca.id}", headers=h).get_json()["data"]
    assert [r["employee_id"] for r in rows] == [maria.id]

    all_rows = c.get("/api/v1/shifts/grid?year=2025&month=3", headers=h).get_json()["data"]
    assert len(all_rows) == 2

    r = c.post("/api/v1/shifts/sessions", json={"year": 2025, "month": 3, "department_id": patrullaje.id}, headers=h)
    data = r.get_json()["data"]
    assert data["department_id"] == patrullaje.id
    assert [row["employee_id"] for row in data["grid"]] == [juan.id]

    # maria is not part of this grid
    r = c.post(f"/api/v1/shifts/sessions/{data['id']}/edits",
               json={"employee_id": maria.id, "day": 3, "value": "M"}, headers=h)
    assert r.status_code == 422

    r = c.get("/api/v1/shifts/grid?year=2025&month=3&department_id=999", headers=h)
    assert r.status_code == 404


def test_employee_name_in_message_comes_from_roster(app, session, juan, supervisor, auth_headers):
    c = app.test_client()
    h = auth_headers(supervisor, ["supervisor"])
    sid = c.post("/api/v1/shifts/sessions", json={"year": 2025, "month": 3}, headers=h).get_json()["data"]["id"]
    base = f"/api/v1/shifts/sessions/{sid}"

    r = c.post(f"{base}/edits", json={
        "employee_id": juan.id, "day": 4, "value": "N",
        "employee_name": "Otra Persona", "employee_rut": "99999999-9",
    }, headers=h)
    change = r.get_json()["data"]["change"]
    assert change["employee_name"] == "Juan Pérez"
    assert change["employee_rut"] == "11111111-1"

    c.post(f"{base}/commit", json={}, headers=h)
    messages = [j.message for j in NotificationJob.query.all()]
    assert messages and all("*Juan Pérez*" in m for m in messages)
    assert not any("Otra Persona" in m for m in messages)

    r = c.post("/api/v1/shifts/changes", json={
        "year": 2025, "month": 3,
        "changes": [{"employee_id": juan.id, "day": 5, "value": "M", "employee_name": "Otra Persona"}],
    }, headers=h)
    assert r.status_code == 201
    assert not any("Otra Persona" in j.message for j in NotificationJob.query.all())
