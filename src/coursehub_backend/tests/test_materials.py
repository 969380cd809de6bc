import re

import pytest

from coursehub_backend.model.course import CourseMaterial, CourseSession
from coursehub_backend.model.base import utcnow
from coursehub_backend.server import app
from coursehub_backend.services.google_drive import get_google_drive_service
from coursehub_backend.settings import settings
from coursehub_backend.tests.fixtures import (
    EXE_BYTES,
    FakeDriveService,
    PDF_BYTES,
    assign_instructor,
    authenticate,
    enroll,
    make_course,
    make_user,
)


def make_material(db, course, uploader, display_filename="Week 1.pdf") -> CourseMaterial:
    material = CourseMaterial(
        course_id=course.id,
        original_filename="week1.pdf",
        display_filename=display_filename,
        file_url=f"http://storage.test/test-bucket/course-materials/{course.id}/1-week1.pdf",
        storage_path=f"course-materials/{course.id}/1-week1.pdf",
        file_type="pdf",
        file_size_bytes=len(PDF_BYTES),
        mime_type="application/pdf",
        uploaded_by=uploader.id,
    )
    db.add(material)
    db.commit()
    db.refresh(material)
    return material


class TestMaterialAccess:

    def test_cross_course_patch_is_forbidden_without_mutation(self, client, test_db):
        course = make_course(test_db, slug="course-a")
        other_course = make_course(test_db, slug="course-b")
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        intruder = make_user(test_db, "intruder@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        assign_instructor(test_db, other_course, intruder)
        material = make_material(test_db, course, owner)
        headers = authenticate(client, intruder, "instructor")

        response = client.patch(
            f"/courses/{course.id}/materials/{material.id}",
            json={"displayFilename": "Hijacked.pdf"},
            headers=headers
        )

        assert response.status_code == 403
        assert response.json() == {"error": "You do not have access to this course"}
        test_db.refresh(material)
        assert material.display_filename == "Week 1.pdf"

    def test_assigned_instructor_can_rename(self, client, test_db):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        material = make_material(test_db, course, owner)
        headers = authenticate(client, owner, "instructor")

        response = client.patch(
            f"/courses/{course.id}/materials/{material.id}",
            json={"displayFilename": "  Lecture notes.pdf "},
            headers=headers
        )

        assert response.status_code == 200
        assert response.json()["material"]["displayFilename"] == "Lecture notes.pdf"

    def test_blank_display_name(self, client, test_db):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        material = make_material(test_db, course, owner)
        headers = authenticate(client, owner, "instructor")

        response = client.patch(
            f"/courses/{course.id}/materials/{material.id}",
            json={"displayFilename": "   "},
            headers=headers
        )

        assert response.status_code == 400

    def test_public_list_requires_enrollment(self, client, test_db):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        make_material(test_db, course, owner)
        student = make_user(test_db, "student@example.com", roles=["student"])
        authenticate(client, student, "student")

        response = client.get(f"/courses/{course.id}/materials/public")

        assert response.status_code == 403
        assert response.json() == {"error": "You must be enrolled in this course to access materials"}

        enroll(test_db, course, student)
        response = client.get(f"/courses/{course.id}/materials/public")

        assert response.status_code == 200
        assert [m["displayFilename"] for m in response.json()["materials"]] == ["Week 1.pdf"]

    def test_student_cannot_use_instructor_list(self, client, test_db):
        course = make_course(test_db)
        student = make_user(test_db, "student@example.com", roles=["student"])
        enroll(test_db, course, student)
        authenticate(client, student, "student")

        response = client.get(f"/courses/{course.id}/materials")

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden: Invalid user type"}

    def test_unknown_course(self, client, test_db):
        instructor = make_user(test_db, "owner@example.com", roles=["instructor"])
        authenticate(client, instructor, "instructor")

        assert client.get("/courses/missing/materials").status_code == 404


class TestMaterialUpload:

    def test_upload_pdf(self, client, test_db, storage):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        headers = authenticate(client, owner, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials",
            files={"file": ("Week 1 notes.pdf", PDF_BYTES, "application/pdf")},
            headers=headers
        )

        assert response.status_code == 201
        material = response.json()["material"]
        assert material["displayFilename"] == "Week 1 notes.pdf"
        assert material["mimeType"] == "application/pdf"
        assert material["fileSizeBytes"] == len(PDF_BYTES)

        (key,) = storage.objects
        assert re.fullmatch(rf"course-materials/{course.id}/\d+-Week_1_notes\.pdf", key)
        assert storage.objects[key] == PDF_BYTES
        assert test_db.query(CourseMaterial).filter(CourseMaterial.course_id == course.id).count() == 1

    def test_upload_into_session_with_form_csrf_field(self, client, test_db, storage):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        course_session = CourseSession(course_id=course.id, title="Week 1", session_date=utcnow())
        test_db.add(course_session)
        test_db.commit()
        headers = authenticate(client, owner, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials",
            data={
                "sessionId": course_session.id,
                "displayFilename": "Slides",
                "csrf_token": headers[settings.CSRF_HEADER_NAME],
            },
            files={"file": ("slides.pdf", PDF_BYTES, "application/octet-stream")},
        )

        assert response.status_code == 201
        assert response.json()["material"]["sessionId"] == course_session.id
        assert response.json()["material"]["displayFilename"] == "Slides"
        (key,) = storage.objects
        assert key.startswith(f"course-materials/{course.id}/sessions/{course_session.id}/")

    def test_session_from_another_course(self, client, test_db, storage):
        course = make_course(test_db, slug="course-a")
        other_course = make_course(test_db, slug="course-b")
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        foreign_session = CourseSession(course_id=other_course.id, title="Week 1", session_date=utcnow())
        test_db.add(foreign_session)
        test_db.commit()
        headers = authenticate(client, owner, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials",
            data={"sessionId": foreign_session.id},
            files={"file": ("slides.pdf", PDF_BYTES, "application/pdf")},
            headers=headers
        )

        assert response.status_code == 400
        assert storage.objects == {}

    def test_executable_disguised_as_pdf(self, client, test_db, storage):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        headers = authenticate(client, owner, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials",
            files={"file": ("notes.pdf", EXE_BYTES, "application/pdf")},
            headers=headers
        )

        assert response.status_code == 400
        assert response.json() == {"error": "File type not allowed: Windows executable"}
        assert storage.objects == {}

    def test_disallowed_extension(self, client, test_db, storage):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        headers = authenticate(client, owner, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials",
            files={"file": ("script.sh", b"#!/bin/sh\necho hi\n", "text/plain")},
            headers=headers
        )

        assert response.status_code == 400
        assert storage.objects == {}

    def test_unassigned_instructor_cannot_upload(self, client, test_db, storage):
        course = make_course(test_db)
        instructor = make_user(test_db, "other@example.com", roles=["instructor"])
        headers = authenticate(client, instructor, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials",
            files={"file": ("notes.pdf", PDF_BYTES, "application/pdf")},
            headers=headers
        )

        assert response.status_code == 403
        assert storage.objects == {}

    def test_upload_requires_csrf(self, client, test_db, storage):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        authenticate(client, owner, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials",
            files={"file": ("notes.pdf", PDF_BYTES, "application/pdf")},
        )

        assert response.status_code == 403
        assert storage.objects == {}

    def test_delete_removes_object_and_row(self, client, test_db, storage):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        material = make_material(test_db, course, owner)
        material_id, storage_path = material.id, material.storage_path
        headers = authenticate(client, owner, "instructor")

        response = client.delete(f"/courses/{course.id}/materials/{material_id}", headers=headers)

        assert response.status_code == 200
        assert storage.deleted == [storage_path]
        assert test_db.query(CourseMaterial).filter(CourseMaterial.id == material_id).count() == 0


DRIVE_URL = "https://drive.google.com/file/d/abc123XYZ/view?usp=sharing"


@pytest.fixture
def drive(client):
    fake = FakeDriveService({"abc123XYZ": "Week 1 Slides.pdf", "untitled99": None})
    app.dependency_overrides[get_google_drive_service] = lambda: fake
    return fake


class TestMaterialLinks:

    def test_add_drive_link(self, client, test_db, storage, drive):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        headers = authenticate(client, owner, "instructor")

        response = client.post(f"/courses/{course.id}/materials/links", json={"url": DRIVE_URL}, headers=headers)

        assert response.status_code == 201
        material = response.json()["material"]
        assert material["resourceType"] == "link"
        assert material["displayFilename"] == "Week 1 Slides.pdf"
        assert material["fileType"] == "pdf"
        assert material["externalLinkUrl"] == DRIVE_URL
        assert material["fileSizeBytes"] is None
        assert storage.objects == {}
        assert drive.requested == [DRIVE_URL]

    def test_display_name_and_session(self, client, test_db, drive):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        course_session = CourseSession(course_id=course.id, title="Week 1", session_date=utcnow())
        test_db.add(course_session)
        test_db.commit()
        headers = authenticate(client, owner, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials/links",
            json={"url": DRIVE_URL, "displayName": " Reading ", "sessionId": course_session.id},
            headers=headers
        )

        assert response.status_code == 201
        material = response.json()["material"]
        assert material["displayFilename"] == "Reading"
        assert material["sessionId"] == course_session.id

    def test_unnamed_file_gets_placeholder(self, client, test_db, drive):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        headers = authenticate(client, owner, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials/links",
            json={"url": "https://docs.google.com/document/d/untitled99/edit"},
            headers=headers
        )

        assert response.status_code == 201
        material = response.json()["material"]
        assert material["displayFilename"] == "Google Drive File (untitled)"
        assert material["fileType"] == "docx"

    def test_non_drive_url(self, client, test_db, drive):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        headers = authenticate(client, owner, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials/links",
            json={"url": "https://example.com/file/d/abc123XYZ/view"},
            headers=headers
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Only Google Drive links are supported"}
        assert drive.requested == []

    def test_private_file(self, client, test_db, drive):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        headers = authenticate(client, owner, "instructor")

        response = client.post(
            f"/courses/{course.id}/materials/links",
            json={"url": "https://drive.google.com/file/d/private1/view"},
            headers=headers
        )

        assert response.status_code == 400
        assert "not publicly accessible" in response.json()["error"]
        assert test_db.query(CourseMaterial).count() == 0

    def test_unassigned_instructor(self, client, test_db, drive):
        course = make_course(test_db)
        instructor = make_user(test_db, "instructor@example.com", roles=["instructor"])
        headers = authenticate(client, instructor, "instructor")

        response = client.post(f"/courses/{course.id}/materials/links", json={"url": DRIVE_URL}, headers=headers)

        assert response.status_code == 403
        assert drive.requested == []

    def test_delete_link_skips_storage(self, client, test_db, storage, drive):
        course = make_course(test_db)
        owner = make_user(test_db, "owner@example.com", roles=["instructor"])
        assign_instructor(test_db, course, owner)
        headers = authenticate(client, owner, "instructor")
        material_id = client.post(
            f"/courses/{course.id}/materials/links", json={"url": DRIVE_URL}, headers=headers
        ).json()["material"]["id"]

        response = client.delete(f"/courses/{course.id}/materials/{material_id}", headers=headers)

        assert response.status_code == 200
        assert storage.deleted == []
        assert test_db.query(CourseMaterial).count() == 0
