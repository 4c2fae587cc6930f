import pytest

from conftest import add_student, add_user, login
from institute_compass.db import connect
from institute_compass.errors import AppError
from institute_compass.fees.ledger import record_payment
from institute_compass.records.students import update_student


class TestStudents:
    def test_create_student_over_http(self, client, admin_headers):
        r = client.post(
            "/students",
            json={
                "enrollment_number": "ENR-100",
                "full_name": "Ravi Kumar",
                "email": "Ravi@Example.com",
                "total_fee": "25000.50",
            },
            headers=admin_headers,
        )
        assert r.status_code == 201
        s = r.json()
        assert s["email"] == "ravi@example.com"
        assert s["total_fee"] == "25000.50"
        assert s["paid_fee"] == "0.00"
        assert s["balance"] == "25000.50"
        assert s["fee_status"] == "pending"
        assert s["status"] == "active"

    def test_create_requires_identity_fields(self, client, admin_headers):
        r = client.post("/students", json={"full_name": "No Number"}, headers=admin_headers)
        assert r.status_code == 400
        assert r.json() == {"detail": "enrollment_name_email_required"}

    def test_duplicate_enrollment_number_is_conflict(self, client, cfg, admin_headers):
        add_student(cfg.DB_DSN, enrollment_number="ENR-7")
        r = client.post(
            "/students",
            json={"enrollment_number": "ENR-7", "full_name": "Other", "email": "o@example.com"},
            headers=admin_headers,
        )
        assert r.status_code == 409

    def test_paid_fee_is_read_only(self, client, cfg, admin_headers):
        s = add_student(cfg.DB_DSN)
        r = client.put(f"/students/{s['student_id']}", json={"paid_fee": "100"}, headers=admin_headers)
        # The request model has no paid_fee field, so it never reaches the store.
        assert r.status_code == 200
        assert r.json()["paid_fee"] == "0.00"

    def test_raising_total_fee_recomputes_status(self, client, cfg, admin_headers):
        s = add_student(cfg.DB_DSN, total_fee="100")
        with connect(cfg.DB_DSN) as conn:
            record_payment(conn, student_id=s["student_id"], amount=100)

        r = client.put(f"/students/{s['student_id']}", json={"total_fee": "150"}, headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["fee_status"] == "partial"
        assert r.json()["balance"] == "50.00"

    def test_overdue_is_manual_and_cleared_by_recompute(self, client, cfg, admin_headers):
        s = add_student(cfg.DB_DSN, total_fee="100")
        sid = s["student_id"]

        r = client.put(f"/students/{sid}", json={"fee_status": "overdue"}, headers=admin_headers)
        assert r.json()["fee_status"] == "overdue"

        r = client.put(f"/students/{sid}", json={"fee_status": "bogus"}, headers=admin_headers)
        assert r.status_code == 400

        r = client.put(f"/students/{sid}", json={"phone": "123"}, headers=admin_headers)
        assert r.json()["fee_status"] == "pending"

    def test_update_unknown_student(self, client, admin_headers):
        r = client.put("/students/999", json={"phone": "1"}, headers=admin_headers)
        assert r.status_code == 404

    def test_list_filters_and_pagination(self, client, cfg, admin_headers):
        add_student(cfg.DB_DSN, enrollment_number="A-1", full_name="Meera Nair", email="m@example.com")
        add_student(cfg.DB_DSN, enrollment_number="A-2", full_name="Karan Shah", email="k@example.com")
        add_student(cfg.DB_DSN, enrollment_number="A-3", full_name="Meena Iyer", email="mi@example.com", status="inactive")

        r = client.get("/students?search=Mee", headers=admin_headers)
        assert {s["full_name"] for s in r.json()["data"]} == {"Meera Nair", "Meena Iyer"}

        r = client.get("/students?status=inactive", headers=admin_headers)
        assert [s["enrollment_number"] for s in r.json()["data"]] == ["A-3"]

        r = client.get("/students?limit=2&page=2", headers=admin_headers)
        body = r.json()
        assert body["total"] == 3
        assert body["total_pages"] == 2
        assert len(body["data"]) == 1

        assert client.get("/students?fee_status=nope", headers=admin_headers).status_code == 400

    def test_student_sees_own_record_only(self, client, cfg):
        me = add_user(cfg.DB_DSN, "own@example.com")
        mine = add_student(cfg.DB_DSN, enrollment_number="S-1", user_id=me["user_id"])
        other = add_student(cfg.DB_DSN, enrollment_number="S-2", email="other@example.com")
        headers = login(client, "own@example.com")

        assert client.get(f"/students/{mine['student_id']}", headers=headers).status_code == 200
        r = client.get(f"/students/{other['student_id']}", headers=headers)
        assert r.status_code == 403
        assert client.get("/students", headers=headers).status_code == 403

    def test_delete_student_removes_payments(self, client, cfg, admin_headers):
        s = add_student(cfg.DB_DSN)
        with connect(cfg.DB_DSN) as conn:
            record_payment(conn, student_id=s["student_id"], amount=10)
        assert client.delete(f"/students/{s['student_id']}", headers=admin_headers).status_code == 200
        with connect(cfg.DB_DSN) as conn:
            assert conn.execute("SELECT COUNT(*) AS n FROM fee_payments").fetchone()["n"] == 0
        assert client.delete(f"/students/{s['student_id']}", headers=admin_headers).status_code == 404


class TestCourses:
    def test_course_crud(self, client, admin_headers):
        r = client.post(
            "/courses",
            json={"name": "NEET Crash", "duration_months": 6, "fee_amount": "30000"},
            headers=admin_headers,
        )
        assert r.status_code == 201
        course = r.json()
        assert course["fee_amount"] == "30000.00"
        assert course["is_active"] is True

        cid = course["course_id"]
        r = client.put(f"/courses/{cid}", json={"fee_amount": 32000.5}, headers=admin_headers)
        assert r.json()["fee_amount"] == "32000.50"

        assert client.get(f"/courses/{cid}").status_code == 200
        assert client.delete(f"/courses/{cid}", headers=admin_headers).status_code == 200
        assert client.get(f"/courses/{cid}").status_code == 404

    def test_course_requires_name(self, client, admin_headers):
        r = client.post("/courses", json={"fee_amount": 10}, headers=admin_headers)
        assert r.status_code == 400

    def test_students_cannot_edit_courses(self, client, student_headers):
        r = client.post("/courses", json={"name": "Sneaky"}, headers=student_headers)
        assert r.status_code == 403

    def test_deleting_course_unlinks_students(self, client, cfg, admin_headers):
        cid = client.post("/courses", json={"name": "Gone"}, headers=admin_headers).json()["course_id"]
        s = add_student(cfg.DB_DSN, course_id=cid)
        assert s["course"] == {"course_id": cid, "name": "Gone"}

        client.delete(f"/courses/{cid}", headers=admin_headers)
        after = client.get(f"/students/{s['student_id']}", headers=admin_headers).json()
        assert after["course_id"] is None
        assert after["course"] is None


class TestSettings:
    def test_settings_roundtrip(self, client, admin_headers):
        r = client.put(
            "/settings/fees",
            json={"value": {"late_fee_percentage": 5, "grace_period_days": 7}, "description": "Fee policy"},
            headers=admin_headers,
        )
        assert r.status_code == 200
        assert r.json()["value"] == {"late_fee_percentage": 5, "grace_period_days": 7}

        r = client.put("/settings/fees", json={"value": {"late_fee_percentage": 2}}, headers=admin_headers)
        assert r.json()["description"] == "Fee policy"

        listing = client.get("/settings").json()
        assert listing["data"] == {"fees": {"late_fee_percentage": 2}}

        assert client.get("/settings/fees").json()["value"] == {"late_fee_percentage": 2}
        assert client.get("/settings/missing").status_code == 404

    def test_setting_requires_value(self, client, admin_headers):
        r = client.put("/settings/x", json={"description": "only"}, headers=admin_headers)
        assert r.status_code == 400
        assert r.json() == {"detail": "value_required"}

    def test_students_cannot_change_settings(self, client, student_headers):
        r = client.put("/settings/x", json={"value": 1}, headers=student_headers)
        assert r.status_code == 403


def test_update_student_rejects_paid_fee(db_dsn):
    s = add_student(db_dsn)
    with pytest.raises(AppError) as ei:
        with connect(db_dsn) as conn:
            update_student(conn, s["student_id"], {"paid_fee": "100"})
    assert ei.value.detail == "paid_fee_read_only"
