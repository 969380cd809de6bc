"""
Test fixtures for the test suite.

Provides in-process stand-ins for object storage and mail delivery, and
factories for users, courses and sessions.
"""

import secrets
from typing import BinaryIO, Iterable, List, Optional

from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import BadRequestException, ConflictException
from coursehub_backend.model.auth import InstructorProfile, StudentProfile, User, UserRole
from coursehub_backend.model.course import Course, CourseInstructor, CourseSignup
from coursehub_backend.permissions import tokens
from coursehub_backend.permissions.auth import build_session_claims, hash_password
from coursehub_backend.services.google_drive import DriveFileMetadata, detect_file_type, extract_file_id
from coursehub_backend.services.storage_service import StoredObject
from coursehub_backend.settings import settings

DEFAULT_PASSWORD = "Str0ng!Pass"

PDF_BYTES = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 32
EXE_BYTES = b"MZ\x90\x00\x03\x00\x00\x00\x04\x00\x00\x00\xff\xff\x00\x00" + b"\x00" * 32


class FakeStorageService:
    """Keeps uploaded objects in a dict"""

    def __init__(self, bucket: str = "test-bucket"):
        self.bucket = bucket
        self.objects = {}
        self.deleted: List[str] = []

    async def upload_file(
        self,
        file_data: BinaryIO,
        object_key: str,
        content_type: str,
        bucket_name: Optional[str] = None,
        upsert: bool = False
    ) -> StoredObject:
        if object_key in self.objects and not upsert:
            raise ConflictException("A file with this name already exists")

        file_data.seek(0)
        data = file_data.read()
        self.objects[object_key] = data

        return StoredObject(
            bucket=self.bucket,
            object_key=object_key,
            public_url=f"http://storage.test/{self.bucket}/{object_key}",
            size=len(data),
            content_type=content_type
        )

    async def delete_file(self, object_key: str, bucket_name: Optional[str] = None) -> bool:
        self.deleted.append(object_key)
        return self.objects.pop(object_key, None) is not None


class FakeDriveService:
    """Answers Drive metadata lookups from a dict keyed by file id"""

    def __init__(self, names: Optional[dict] = None):
        self.names = names or {}
        self.requested: List[str] = []

    async def fetch_metadata(self, url: str) -> DriveFileMetadata:
        self.requested.append(url)
        file_id = extract_file_id(url)
        if not file_id:
            raise BadRequestException("Invalid Google Drive URL format")
        if file_id not in self.names:
            raise BadRequestException("This file is not publicly accessible. Please check sharing settings.")
        file_name = self.names[file_id]
        return DriveFileMetadata(file_id=file_id, file_name=file_name, file_type=detect_file_type(url, file_name))


class FakeMailService:
    """Records password reset messages instead of sending them"""

    def __init__(self):
        self.sent: List[dict] = []

    async def send_password_reset(self, to_email: str, first_name: Optional[str], reset_url: str) -> bool:
        self.sent.append({"to": to_email, "first_name": first_name, "reset_url": reset_url})
        return True


def make_user(
    db: Session,
    email: str,
    roles: Iterable[str] = ("student",),
    password: str = DEFAULT_PASSWORD,
    instructor_role: Optional[str] = None,
    is_active: bool = True,
    first_name: str = "Test",
    last_name: str = "User",
) -> User:
    """Create a user with role tags and the profiles those tags imply."""
    roles = set(roles)

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        is_active=is_active
    )
    db.add(user)
    db.flush()

    for role in sorted(roles):
        db.add(UserRole(user_id=user.id, role=role))

    if "student" in roles:
        db.add(StudentProfile(user_id=user.id))

    if instructor_role is None:
        if roles & {"super_admin", "billing_admin"}:
            instructor_role = "admin"
        elif "instructor" in roles:
            instructor_role = "instructor"

    if instructor_role is not None:
        db.add(InstructorProfile(user_id=user.id, role=instructor_role))

    db.commit()
    db.refresh(user)
    return user


def make_course(db: Session, slug: str = "intro-python", status: str = "published", title: str = "Intro to Python") -> Course:
    course = Course(slug=slug, title=title, status=status)
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


def assign_instructor(db: Session, course: Course, user: User) -> CourseInstructor:
    assignment = CourseInstructor(course_id=course.id, instructor_id=user.id)
    db.add(assignment)
    db.commit()
    return assignment


def enroll(db: Session, course: Course, user: User) -> CourseSignup:
    signup = CourseSignup(course_id=course.id, student_id=user.id)
    db.add(signup)
    db.commit()
    return signup


def authenticate(client, user: User, user_type: str = "student", current_view: Optional[str] = None) -> dict:
    """Put a signed session and a CSRF cookie on the client; returns the CSRF header."""
    token = tokens.mint(build_session_claims(user, user_type, current_view))
    csrf_token = secrets.token_hex(32)

    client.cookies.set(settings.AUTH_COOKIE_NAME, token)
    client.cookies.set(settings.CSRF_COOKIE_NAME, csrf_token)

    return {settings.CSRF_HEADER_NAME: csrf_token}


def login(client, email: str, password: str = DEFAULT_PASSWORD, user_type: Optional[str] = None):
    body = {"email": email, "password": password}
    if user_type is not None:
        body["userType"] = user_type
    return client.post("/auth/session", json=body)
