from conftest import add_student, add_user, login, staff_user
from institute_compass.db import connect
from institute_compass.records.assessments import create_assessment, list_marks, record_mark
from institute_compass.records.batches import create_batch
from institute_compass.records.faculty import create_faculty


class TestBatches:
    def test_anonymous_listing_shows_active_only(self, client, cfg, admin_headers):
        with connect(cfg.DB_DSN) as conn:
            create_batch(conn, {"name": "Morning"})
            create_batch(conn, {"name": "Closed", "is_active": False})

        r = client.get("/batches")
        assert r.status_code == 200
        assert [b["name"] for b in r.json()["data"]] == ["Morning"]

        r = client.get("/batches", headers=admin_headers)
        assert {b["name"] for b in r.json()["data"]} == {"Morning", "Closed"}

    def test_writes_need_staff(self, client, student_headers, admin_headers):
        assert client.post("/batches", json={"name": "X"}).status_code == 401
        assert client.post("/batches", json={"name": "X"}, headers=student_headers).status_code == 403

        r = client.post("/batches", json={"name": "Evening"}, headers=admin_headers)
        assert r.status_code == 201
        assert r.json()["capacity"] == 30
        assert r.json()["is_active"] is True

    def test_student_batch_link_clears_on_batch_delete(self, client, cfg, admin_headers):
        with connect(cfg.DB_DSN) as conn:
            b = create_batch(conn, {"name": "Weekend"})
        s = add_student(cfg.DB_DSN, batch_id=b["batch_id"])
        assert s["batch"] == {"batch_id": b["batch_id"], "name": "Weekend"}

        r = client.get(f"/students?batch_id={b['batch_id']}", headers=admin_headers)
        assert r.json()["total"] == 1

        r = client.delete(f"/batches/{b['batch_id']}", headers=admin_headers)
        assert r.status_code == 200
        r = client.get(f"/students/{s['student_id']}", headers=admin_headers)
        assert r.json()["batch_id"] is None
        assert r.json()["batch"] is None

    def test_unknown_batch_on_student_is_rejected(self, client, admin_headers):
        r = client.post(
            "/students",
            json={"enrollment_number": "E-1", "full_name": "A", "email": "a@example.com", "batch_id": 999},
            headers=admin_headers,
        )
        assert r.status_code == 400
        assert r.json() == {"detail": "invalid_reference"}


class TestFaculty:
    def test_public_view_hides_private_fields(self, client, cfg, admin_headers):
        with connect(cfg.DB_DSN) as conn:
            f = create_faculty(
                conn,
                {
                    "full_name": "Meera Iyer",
                    "email": "meera@example.com",
                    "phone": "98000",
                    "address": "Pune",
                    "salary": "45000.5",
                },
            )
        assert f["salary"] == "45000.50"

        r = client.get("/faculty")
        assert r.status_code == 200
        member = r.json()["data"][0]
        assert member["full_name"] == "Meera Iyer"
        assert "salary" not in member and "address" not in member and "phone" not in member

        r = client.get(f"/faculty/{f['faculty_id']}")
        assert "salary" not in r.json()

        r = client.get(f"/faculty/{f['faculty_id']}", headers=admin_headers)
        assert r.json()["salary"] == "45000.50"
        assert r.json()["address"] == "Pune"

    def test_create_needs_name_and_email(self, client, admin_headers):
        r = client.post("/faculty", json={"full_name": "Only Name"}, headers=admin_headers)
        assert r.status_code == 400
        assert r.json() == {"detail": "name_and_email_required"}

    def test_student_cannot_write(self, client, student_headers):
        r = client.post("/faculty", json={"full_name": "A", "email": "a@example.com"}, headers=student_headers)
        assert r.status_code == 403

    def test_invalid_salary(self, client, admin_headers):
        r = client.post(
            "/faculty",
            json={"full_name": "A", "email": "a@example.com", "salary": "-5"},
            headers=admin_headers,
        )
        assert r.status_code == 400
        assert r.json() == {"detail": "salary_not_positive"}


class TestMarks:
    def _setup(self, cfg):
        owner = add_user(cfg.DB_DSN, "kid@example.com")
        mine = add_student(cfg.DB_DSN, user_id=owner["user_id"])
        other = add_student(cfg.DB_DSN, enrollment_number="ENR-002", email="b@example.com")
        with connect(cfg.DB_DSN) as conn:
            t = create_assessment(conn, {"name": "Unit 1", "max_marks": 50, "passing_marks": 20})
            record_mark(conn, t["assessment_id"], student_id=mine["student_id"], marks_obtained=41)
            record_mark(conn, t["assessment_id"], student_id=other["student_id"], marks_obtained=12)
        return t, mine, other

    def test_listing_requires_a_token(self, client):
        assert client.get("/tests").status_code == 401

    def test_student_sees_only_own_marks(self, client, cfg):
        t, mine, _other = self._setup(cfg)
        headers = login(client, "kid@example.com")

        r = client.get(f"/tests/{t['assessment_id']}/marks", headers=headers)
        assert r.status_code == 200
        rows = r.json()["data"]
        assert [m["student_id"] for m in rows] == [mine["student_id"]]
        assert rows[0]["marks_obtained"] == 41

    def test_staff_sees_every_mark(self, client, cfg):
        t, _mine, _other = self._setup(cfg)
        _u, headers = staff_user(client, cfg, "teach@example.com", "faculty")

        r = client.get(f"/tests/{t['assessment_id']}/marks", headers=headers)
        assert len(r.json()["data"]) == 2

    def test_student_cannot_enter_marks(self, client, cfg):
        t, mine, _other = self._setup(cfg)
        headers = login(client, "kid@example.com")
        r = client.post(
            f"/tests/{t['assessment_id']}/marks",
            json={"student_id": mine["student_id"], "marks_obtained": 50},
            headers=headers,
        )
        assert r.status_code == 403

    def test_mark_entry_overwrites(self, client, cfg, admin_headers):
        t, mine, _other = self._setup(cfg)
        r = client.post(
            f"/tests/{t['assessment_id']}/marks",
            json={"student_id": mine["student_id"], "marks_obtained": "45.5", "remarks": "rechecked"},
            headers=admin_headers,
        )
        assert r.status_code == 200
        with connect(cfg.DB_DSN) as conn:
            rows = list_marks(conn, t["assessment_id"])
        assert len(rows) == 2
        assert {m["student_id"]: m["marks_obtained"] for m in rows}[mine["student_id"]] == 45.5

    def test_marks_out_of_range(self, client, cfg, admin_headers):
        t, mine, _other = self._setup(cfg)
        url = f"/tests/{t['assessment_id']}/marks"
        for score, detail in ((51, "marks_exceed_max"), (-1, "marks_obtained_invalid"), ("abc", "marks_obtained_not_numeric")):
            r = client.post(url, json={"student_id": mine["student_id"], "marks_obtained": score}, headers=admin_headers)
            assert r.status_code == 400
            assert r.json() == {"detail": detail}

        r = client.post("/tests/999/marks", json={"student_id": mine["student_id"], "marks_obtained": 1}, headers=admin_headers)
        assert r.status_code == 404

    def test_inactive_tests_hidden_from_students(self, client, cfg, student_headers, admin_headers):
        with connect(cfg.DB_DSN) as conn:
            create_assessment(conn, {"name": "Live"})
            create_assessment(conn, {"name": "Draft", "is_active": False})
        r = client.get("/tests", headers=student_headers)
        assert [t["name"] for t in r.json()["data"]] == ["Live"]
        r = client.get("/tests", headers=admin_headers)
        assert len(r.json()["data"]) == 2

    def test_passing_above_max_is_rejected(self, client, admin_headers):
        r = client.post("/tests", json={"name": "T", "max_marks": 10, "passing_marks": 20}, headers=admin_headers)
        assert r.status_code == 400
        assert r.json() == {"detail": "marks_range_invalid"}


class TestEnquiries:
    def test_anyone_can_submit(self, client):
        r = client.post("/enquiries", json={"name": "Parent", "email": "P@Example.com", "course_interest": "JEE"})
        assert r.status_code == 201
        assert r.json()["message"] == "enquiry_submitted"
        assert r.json()["enquiry_id"] > 0

    def test_submit_needs_name_and_email(self, client):
        r = client.post("/enquiries", json={"name": "No Email"})
        assert r.status_code == 400
        assert r.json() == {"detail": "name_and_email_required"}

    def test_management_is_staff_only(self, client, student_headers):
        eid = client.post("/enquiries", json={"name": "P", "email": "p@example.com"}).json()["enquiry_id"]
        assert client.get("/enquiries").status_code == 401
        assert client.get("/enquiries", headers=student_headers).status_code == 403
        assert client.put(f"/enquiries/{eid}", json={"status": "closed"}, headers=student_headers).status_code == 403
        assert client.delete(f"/enquiries/{eid}", headers=student_headers).status_code == 403

    def test_status_workflow(self, client, admin_headers):
        eid = client.post("/enquiries", json={"name": "P", "email": "p@example.com"}).json()["enquiry_id"]
        client.post("/enquiries", json={"name": "Q", "email": "q@example.com"})

        r = client.put(f"/enquiries/{eid}", json={"status": "contacted"}, headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["status"] == "contacted"

        r = client.get("/enquiries?status=new", headers=admin_headers)
        assert r.json()["total"] == 1
        assert r.json()["data"][0]["email"] == "q@example.com"

        r = client.put(f"/enquiries/{eid}", json={"status": "lost"}, headers=admin_headers)
        assert r.status_code == 400
        assert r.json() == {"detail": "invalid_status"}

        assert client.delete(f"/enquiries/{eid}", headers=admin_headers).status_code == 200
        assert client.delete(f"/enquiries/{eid}", headers=admin_headers).status_code == 404
