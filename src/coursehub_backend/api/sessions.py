import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import BadRequestException, ForbiddenException, NotFoundException
from coursehub_backend.database import get_db, transaction
from coursehub_backend.interface.sessions import SessionCreate, SessionGet, SessionReorder, SessionUpdate
from coursehub_backend.model.course import CourseMaterial, CourseSession, SessionAttendance
from coursehub_backend.permissions.auth import require_instructor, require_session
from coursehub_backend.permissions.course_access import (
    can_manage_course,
    get_course_or_404,
    is_enrolled,
    require_course_instructor_or_admin,
)
from coursehub_backend.permissions.csrf import csrf_protect
from coursehub_backend.permissions.principal import SessionUser
from coursehub_backend.permissions.roles import Permission

logger = logging.getLogger(__name__)

sessions_router = APIRouter(dependencies=[Depends(csrf_protect)])


def session_response(course_session: CourseSession) -> dict:
    return SessionGet.model_validate(course_session).model_dump(by_alias=True, mode="json")


def _require_session_manager(db: Session, course_id: str, session_user: SessionUser):
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


@sessions_router.get("")
async def list_sessions(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    get_course_or_404(db, course_id)

    allowed = can_manage_course(db, course_id, session_user, Permission.COURSES_VIEW_OWN, Permission.COURSES_VIEW_ALL)
    if not allowed and not is_enrolled(db, course_id, session_user.id):
        raise ForbiddenException("You do not have access to this course")

    sessions = (
        db.query(CourseSession)
        .filter(CourseSession.course_id == course_id)
        .order_by(CourseSession.display_order, CourseSession.session_date)
        .all()
    )
    return {"success": True, "sessions": [session_response(s) for s in sessions]}


@sessions_router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    course_id: str,
    payload: SessionCreate,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_session_manager(db, course_id, session_user)

    course_session = CourseSession(course_id=course_id, **payload.model_dump())
    db.add(course_session)
    db.commit()
    db.refresh(course_session)

    logger.info(f"Session {course_session.id} created in course {course_id}")
    return {"success": True, "session": session_response(course_session)}


@sessions_router.post("/reorder")
async def reorder_sessions(
    course_id: str,
    payload: SessionReorder,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_session_manager(db, course_id, session_user)

    sessions = {
        s.id: s for s in db.query(CourseSession).filter(
            CourseSession.course_id == course_id,
            CourseSession.id.in_([order.id for order in payload.sessions])
        )
    }
    if any(order.id not in sessions for order in payload.sessions):
        raise BadRequestException("Session does not belong to this course")

    with transaction(db):
        for order in payload.sessions:
            sessions[order.id].display_order = order.display_order

    ordered = (
        db.query(CourseSession)
        .filter(CourseSession.course_id == course_id)
        .order_by(CourseSession.display_order, CourseSession.session_date)
        .all()
    )
    logger.info(f"Sessions of course {course_id} reordered by {session_user.id}")
    return {"success": True, "sessions": [session_response(s) for s in ordered]}


@sessions_router.patch("/{session_id}")
async def update_session(
    course_id: str,
    session_id: str,
    payload: SessionUpdate,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_session_manager(db, course_id, session_user)
    course_session = _get_session_or_404(db, course_id, session_id)

    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(course_session, key, value)

    db.commit()
    db.refresh(course_session)

    return {"success": True, "session": session_response(course_session)}


@sessions_router.delete("/{session_id}")
async def delete_session(
    course_id: str,
    session_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_session_manager(db, course_id, session_user)
    course_session = _get_session_or_404(db, course_id, session_id)

    with transaction(db):
        db.query(SessionAttendance).filter(SessionAttendance.session_id == session_id).delete(synchronize_session=False)
        # Materials stay with the course
        db.query(CourseMaterial).filter(CourseMaterial.session_id == session_id).update(
            {CourseMaterial.session_id: None}, synchronize_session=False
        )
        db.delete(course_session)

    logger.info(f"Session {session_id} deleted from course {course_id}")
    return {"success": True}
