from datetime import datetime, timezone

from coursehub_backend.model.course import CourseSession, CourseSignup, SessionAttendance
from coursehub_backend.tests.fixtures import assign_instructor, authenticate, enroll, make_course, make_user


def add_session(db, course, title="Week 1", display_order=0) -> CourseSession:
    course_session = CourseSession(
        course_id=course.id,
        title=title,
        session_date=datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc),
        display_order=display_order,
    )
    db.add(course_session)
    db.commit()
    db.refresh(course_session)
    return course_session


def set_status(db, signup: CourseSignup, status: str):
    signup.status = status
    db.commit()


class AttendanceSetup:

    def setup_course(self, test_db):
        self.course = make_course(test_db)
        self.instructor = make_user(test_db, "instructor@example.com", roles=["instructor"])
        assign_instructor(test_db, self.course, self.instructor)
        self.ada = make_user(test_db, "ada@example.com", first_name="Ada", last_name="Lovelace")
        self.alan = make_user(test_db, "alan@example.com", first_name="Alan", last_name="Turing")
        self.ada_signup = enroll(test_db, self.course, self.ada)
        self.alan_signup = enroll(test_db, self.course, self.alan)
        self.session = add_session(test_db, self.course)

    def base(self) -> str:
        return f"/courses/{self.course.id}/attendance"


class TestMarkAttendance(AttendanceSetup):
    """Assigned instructors record who attended a session"""

    def test_unmarked_students_read_absent(self, client, test_db):
        self.setup_course(test_db)
        authenticate(client, self.instructor, "instructor")

        response = client.get(f"{self.base()}/sessions/{self.session.id}")

        assert response.status_code == 200
        records = response.json()["attendance"]
        assert [r["lastName"] for r in records] == ["Lovelace", "Turing"]
        assert all(r["attendanceStatus"] == "absent" and r["id"] is None for r in records)

    def test_mark_one_student(self, client, test_db):
        self.setup_course(test_db)
        headers = authenticate(client, self.instructor, "instructor")

        response = client.put(
            f"{self.base()}/sessions/{self.session.id}/students/{self.ada.id}",
            json={"status": "present", "notes": "Arrived late"},
            headers=headers
        )

        assert response.status_code == 200
        record = response.json()["attendance"]
        assert record["attendanceStatus"] == "present"
        assert record["notes"] == "Arrived late"
        assert record["markedBy"] == self.instructor.id

        response = client.put(
            f"{self.base()}/sessions/{self.session.id}/students/{self.ada.id}",
            json={"status": "absent"},
            headers=headers
        )

        assert response.status_code == 200
        assert test_db.query(SessionAttendance).count() == 1
        assert test_db.query(SessionAttendance).one().attendance_status == "absent"

    def test_bulk_mark_skips_inactive_signups(self, client, test_db):
        self.setup_course(test_db)
        set_status(test_db, self.alan_signup, "cancelled")
        headers = authenticate(client, self.instructor, "instructor")

        response = client.put(f"{self.base()}/sessions/{self.session.id}", json={"status": "present"}, headers=headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "count": 1}
        (record,) = test_db.query(SessionAttendance).all()
        assert record.student_id == self.ada.id
        assert record.attendance_status == "present"

    def test_student_without_signup(self, client, test_db):
        self.setup_course(test_db)
        stranger = make_user(test_db, "stranger@example.com")
        headers = authenticate(client, self.instructor, "instructor")

        response = client.put(
            f"{self.base()}/sessions/{self.session.id}/students/{stranger.id}",
            json={"status": "present"},
            headers=headers
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Student not enrolled in this course"}

    def test_session_of_another_course(self, client, test_db):
        self.setup_course(test_db)
        other = make_course(test_db, slug="other-course")
        foreign = add_session(test_db, other)
        headers = authenticate(client, self.instructor, "instructor")

        response = client.put(f"{self.base()}/sessions/{foreign.id}", json={"status": "present"}, headers=headers)

        assert response.status_code == 404
        assert response.json() == {"error": "Session not found"}
        assert test_db.query(SessionAttendance).count() == 0

    def test_invalid_status(self, client, test_db):
        self.setup_course(test_db)
        headers = authenticate(client, self.instructor, "instructor")

        response = client.put(f"{self.base()}/sessions/{self.session.id}", json={"status": "late"}, headers=headers)

        assert response.status_code == 400

    def test_unassigned_instructor(self, client, test_db):
        self.setup_course(test_db)
        other = make_user(test_db, "other@example.com", roles=["instructor"])
        headers = authenticate(client, other, "instructor")

        response = client.put(f"{self.base()}/sessions/{self.session.id}", json={"status": "present"}, headers=headers)

        assert response.status_code == 403
        assert client.get(self.base()).status_code == 403

    def test_student_view_is_rejected(self, client, test_db):
        self.setup_course(test_db)
        headers = authenticate(client, self.ada, "student")

        response = client.put(
            f"{self.base()}/sessions/{self.session.id}/students/{self.ada.id}",
            json={"status": "present"},
            headers=headers
        )

        assert response.status_code == 403

    def test_requires_csrf(self, client, test_db):
        self.setup_course(test_db)
        authenticate(client, self.instructor, "instructor")

        response = client.put(f"{self.base()}/sessions/{self.session.id}", json={"status": "present"})

        assert response.status_code == 403
        assert test_db.query(SessionAttendance).count() == 0


class TestAttendanceReports(AttendanceSetup):

    def test_course_summary(self, client, test_db):
        self.setup_course(test_db)
        second = add_session(test_db, self.course, title="Week 2", display_order=1)
        headers = authenticate(client, self.instructor, "instructor")
        client.put(
            f"{self.base()}/sessions/{self.session.id}/students/{self.ada.id}",
            json={"status": "present"},
            headers=headers
        )

        response = client.get(self.base())

        assert response.status_code == 200
        first_summary, second_summary = response.json()["sessions"]
        assert first_summary["sessionId"] == self.session.id
        assert first_summary["totalStudents"] == 2
        assert first_summary["presentCount"] == 1
        assert first_summary["absentCount"] == 1
        assert first_summary["attendancePercentage"] == 50.0
        assert second_summary["sessionId"] == second.id
        assert second_summary["presentCount"] == 0
        assert second_summary["attendancePercentage"] == 0.0

    def test_summary_without_students(self, client, test_db):
        course = make_course(test_db)
        admin = make_user(test_db, "admin@example.com", roles=["instructor"], instructor_role="admin")
        add_session(test_db, course)
        authenticate(client, admin, "instructor")

        response = client.get(f"/courses/{course.id}/attendance")

        assert response.status_code == 200
        (summary,) = response.json()["sessions"]
        assert summary["totalStudents"] == 0
        assert summary["attendancePercentage"] == 0.0

    def test_student_history(self, client, test_db):
        self.setup_course(test_db)
        add_session(test_db, self.course, title="Week 2", display_order=1)
        headers = authenticate(client, self.instructor, "instructor")
        client.put(
            f"{self.base()}/sessions/{self.session.id}/students/{self.alan.id}",
            json={"status": "present", "notes": "Asked good questions"},
            headers=headers
        )

        response = client.get(f"{self.base()}/students/{self.alan.id}")

        assert response.status_code == 200
        history = response.json()["attendance"]
        assert [h["sessionTitle"] for h in history] == ["Week 1", "Week 2"]
        assert [h["attendanceStatus"] for h in history] == ["present", "absent"]
        assert history[0]["notes"] == "Asked good questions"

    def test_history_for_cancelled_signup(self, client, test_db):
        self.setup_course(test_db)
        set_status(test_db, self.ada_signup, "cancelled")
        authenticate(client, self.instructor, "instructor")

        response = client.get(f"{self.base()}/students/{self.ada.id}")

        assert response.status_code == 404

    def test_unknown_course(self, client, test_db):
        admin = make_user(test_db, "admin@example.com", roles=["instructor"], instructor_role="admin")
        authenticate(client, admin, "instructor")

        assert client.get("/courses/missing/attendance").status_code == 404
