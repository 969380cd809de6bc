"""
Ownership checks for course scoped routes.

The role table only says whether a role may act on its *own* courses. These
helpers look up the ``course_instructors`` and ``course_signups`` rows that
decide whether a given course is one of them.
"""

from typing import Optional

from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import ForbiddenException, NotFoundException
from coursehub_backend.model.course import Course, CourseInstructor, CourseSignup
from coursehub_backend.permissions.principal import SessionUser
from coursehub_backend.permissions.roles import Permission, PermissionLike


def get_course_or_404(db: Session, course_id: str) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if course is None:
        raise NotFoundException("Course not found")
    return course


def is_course_instructor(db: Session, course_id: str, user_id: str) -> bool:
    return db.query(CourseInstructor.id).filter(
        CourseInstructor.course_id == course_id,
        CourseInstructor.instructor_id == user_id,
    ).first() is not None


def is_enrolled(db: Session, course_id: str, user_id: str) -> bool:
    return db.query(CourseSignup.id).filter(
        CourseSignup.course_id == course_id,
        CourseSignup.student_id == user_id,
    ).first() is not None


def can_manage_course(
    db: Session,
    course_id: str,
    session_user: SessionUser,
    own_permission: PermissionLike = Permission.COURSES_VIEW_OWN,
    all_permission: Optional[PermissionLike] = None,
) -> bool:
    """Admins (or holders of ``all_permission``) always; others need the own-scope permission and an assignment."""
    if session_user.is_admin:
        return True
    if all_permission is not None and session_user.user_type == "instructor" and session_user.permitted(all_permission):
        return True
    if session_user.user_type != "instructor" or not session_user.permitted(own_permission):
        return False
    return is_course_instructor(db, course_id, session_user.id)


def require_course_instructor_or_admin(
    db: Session,
    course_id: str,
    session_user: SessionUser,
    own_permission: PermissionLike = Permission.COURSES_VIEW_OWN,
    all_permission: Optional[PermissionLike] = None,
) -> None:
    if not can_manage_course(db, course_id, session_user, own_permission, all_permission):
        raise ForbiddenException("You do not have access to this course")


def can_access_forum(db: Session, course_id: str, session_user: SessionUser) -> bool:
    """Enrolled students and assigned instructors (or admins) may use the course forum."""
    if session_user.is_admin:
        return True
    if is_enrolled(db, course_id, session_user.id):
        return True
    return is_course_instructor(db, course_id, session_user.id)


def require_forum_access(db: Session, course_id: str, session_user: SessionUser) -> None:
    if not can_access_forum(db, course_id, session_user):
        raise ForbiddenException("You do not have access to this course forum")
