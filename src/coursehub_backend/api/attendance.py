"""
Per-session attendance for course sessions.

Only signups in an attending status are listed and counted. A student with no
attendance row for a session reads as absent.
"""

import logging
from typing import Annotated, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import NotFoundException
from coursehub_backend.database import get_db, transaction
from coursehub_backend.interface.attendance import (
    AttendanceMark,
    AttendanceRecordGet,
    BulkAttendanceMark,
    SessionAttendanceSummary,
    StudentAttendanceGet,
)
from coursehub_backend.model.auth import User
from coursehub_backend.model.base import utcnow
from coursehub_backend.model.course import (
    ATTENDING_SIGNUP_STATUSES,
    CourseSession,
    CourseSignup,
    SessionAttendance,
)
from coursehub_backend.permissions.auth import require_instructor
from coursehub_backend.permissions.course_access import get_course_or_404, require_course_instructor_or_admin
from coursehub_backend.permissions.csrf import csrf_protect
from coursehub_backend.permissions.principal import SessionUser
from coursehub_backend.permissions.roles import Permission

logger = logging.getLogger(__name__)

attendance_router = APIRouter(dependencies=[Depends(csrf_protect)])

CONCURRENT_MARK = "Attendance was marked concurrently, please retry"


def _require_attendance_viewer(db: Session, course_id: str, session_user: SessionUser):
    get_course_or_404(db, course_id)
    require_course_instructor_or_admin(
        db, course_id, session_user, Permission.COURSES_VIEW_OWN, Permission.COURSES_VIEW_ALL
    )


def _require_attendance_manager(db: Session, course_id: str, session_user: SessionUser):
    get_course_or_404(db, course_id)
    require_course_instructor_or_admin(
        db, course_id, session_user, Permission.COURSES_EDIT_OWN, Permission.COURSES_EDIT_ALL
    )


def _get_session_or_404(db: Session, course_id: str, session_id: str) -> CourseSession:
    course_session = db.query(CourseSession).filter(
        CourseSession.id == session_id,
        CourseSession.course_id == course_id
    ).first()
    if course_session is None:
        raise NotFoundException("Session not found")
    return course_session


def _attending_signups(db: Session, course_id: str) -> List[Tuple[CourseSignup, User]]:
    return (
        db.query(CourseSignup, User)
        .join(User, User.id == CourseSignup.student_id)
        .filter(
            CourseSignup.course_id == course_id,
            CourseSignup.status.in_(ATTENDING_SIGNUP_STATUSES)
        )
        .order_by(User.last_name, User.first_name)
        .all()
    )


def _get_attending_signup_or_404(db: Session, course_id: str, student_id: str) -> CourseSignup:
    signup = db.query(CourseSignup).filter(
        CourseSignup.course_id == course_id,
        CourseSignup.student_id == student_id,
        CourseSignup.status.in_(ATTENDING_SIGNUP_STATUSES)
    ).first()
    if signup is None:
        raise NotFoundException("Student not enrolled in this course")
    return signup


def _records_by_student(db: Session, session_id: str) -> Dict[str, SessionAttendance]:
    return {
        record.student_id: record
        for record in db.query(SessionAttendance).filter(SessionAttendance.session_id == session_id)
    }


def _mark(
    db: Session,
    session_id: str,
    signup: CourseSignup,
    status: str,
    marked_by: str,
    existing: Optional[SessionAttendance],
) -> SessionAttendance:
    record = existing
    if record is None:
        record = SessionAttendance(session_id=session_id, student_id=signup.student_id, signup_id=signup.id)
        db.add(record)
    record.attendance_status = status
    record.marked_by = marked_by
    record.marked_at = utcnow()
    return record


def _record_response(
    session_id: str,
    signup: CourseSignup,
    user: User,
    record: Optional[SessionAttendance],
) -> dict:
    return AttendanceRecordGet(
        id=record.id if record else None,
        session_id=session_id,
        student_id=user.id,
        signup_id=signup.id,
        attendance_status=record.attendance_status if record else "absent",
        marked_by=record.marked_by if record else None,
        marked_at=record.marked_at if record else None,
        notes=record.notes if record else None,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
    ).model_dump(by_alias=True, mode="json")


@attendance_router.get("")
async def get_course_attendance_summary(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_attendance_viewer(db, course_id, session_user)

    total_students = db.query(func.count(CourseSignup.id)).filter(
        CourseSignup.course_id == course_id,
        CourseSignup.status.in_(ATTENDING_SIGNUP_STATUSES)
    ).scalar() or 0

    sessions = (
        db.query(CourseSession)
        .filter(CourseSession.course_id == course_id)
        .order_by(CourseSession.display_order, CourseSession.session_date)
        .all()
    )

    present_by_session = dict(
        db.query(SessionAttendance.session_id, func.count(SessionAttendance.id))
        .join(CourseSignup, CourseSignup.id == SessionAttendance.signup_id)
        .filter(
            SessionAttendance.session_id.in_([s.id for s in sessions]),
            SessionAttendance.attendance_status == "present",
            CourseSignup.status.in_(ATTENDING_SIGNUP_STATUSES)
        )
        .group_by(SessionAttendance.session_id)
        .all()
    )

    summaries = []
    for course_session in sessions:
        present = present_by_session.get(course_session.id, 0)
        summaries.append(SessionAttendanceSummary(
            session_id=course_session.id,
            session_title=course_session.title,
            session_date=course_session.session_date,
            total_students=total_students,
            present_count=present,
            absent_count=total_students - present,
            attendance_percentage=round(present * 100 / total_students, 1) if total_students else 0.0,
        ).model_dump(by_alias=True, mode="json"))

    return {"success": True, "sessions": summaries}


@attendance_router.get("/sessions/{session_id}")
async def get_session_attendance(
    course_id: str,
    session_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_attendance_viewer(db, course_id, session_user)
    _get_session_or_404(db, course_id, session_id)

    records = _records_by_student(db, session_id)
    return {
        "success": True,
        "attendance": [
            _record_response(session_id, signup, user, records.get(user.id))
            for signup, user in _attending_signups(db, course_id)
        ]
    }


@attendance_router.put("/sessions/{session_id}")
async def bulk_mark_attendance(
    course_id: str,
    session_id: str,
    payload: BulkAttendanceMark,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    """Mark every attending student of the session with the same status."""
    _require_attendance_manager(db, course_id, session_user)
    _get_session_or_404(db, course_id, session_id)

    signups = _attending_signups(db, course_id)
    records = _records_by_student(db, session_id)

    with transaction(db, conflict=CONCURRENT_MARK):
        for signup, user in signups:
            _mark(db, session_id, signup, payload.status, session_user.id, records.get(user.id))

    logger.info(f"Marked {len(signups)} students {payload.status} in session {session_id} by {session_user.id}")
    return {"success": True, "count": len(signups)}


@attendance_router.put("/sessions/{session_id}/students/{student_id}")
async def mark_attendance(
    course_id: str,
    session_id: str,
    student_id: str,
    payload: AttendanceMark,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_attendance_manager(db, course_id, session_user)
    _get_session_or_404(db, course_id, session_id)
    signup = _get_attending_signup_or_404(db, course_id, student_id)

    existing = db.query(SessionAttendance).filter(
        SessionAttendance.session_id == session_id,
        SessionAttendance.student_id == student_id
    ).first()

    with transaction(db, conflict=CONCURRENT_MARK):
        record = _mark(db, session_id, signup, payload.status, session_user.id, existing)
        record.notes = payload.notes

    user = db.query(User).filter(User.id == student_id).first()
    return {"success": True, "attendance": _record_response(session_id, signup, user, record)}


@attendance_router.get("/students/{student_id}")
async def get_student_attendance(
    course_id: str,
    student_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_attendance_viewer(db, course_id, session_user)
    _get_attending_signup_or_404(db, course_id, student_id)

    rows = (
        db.query(CourseSession, SessionAttendance)
        .outerjoin(
            SessionAttendance,
            (SessionAttendance.session_id == CourseSession.id) & (SessionAttendance.student_id == student_id)
        )
        .filter(CourseSession.course_id == course_id)
        .order_by(CourseSession.display_order, CourseSession.session_date)
        .all()
    )

    return {
        "success": True,
        "attendance": [
            StudentAttendanceGet(
                session_id=course_session.id,
                session_title=course_session.title,
                session_date=course_session.session_date,
                attendance_status=record.attendance_status if record else "absent",
                notes=record.notes if record else None,
            ).model_dump(by_alias=True, mode="json")
            for course_session, record in rows
        ]
    }
