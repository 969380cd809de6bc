import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ServiceUnavailableException,
)
from coursehub_backend.database import get_db, transaction
from coursehub_backend.interface.courses import (
    CourseCreate,
    CourseGet,
    CourseInstructorGet,
    CourseUpdate,
    EnrolledStudentGet,
    InstructorAssign,
    InstructorAssignmentUpdate,
    SignupStatusUpdate,
    StudentCourseGet,
)
from coursehub_backend.model.auth import User, UserRole
from coursehub_backend.model.course import (
    Course,
    CourseChecklist,
    CourseInstructor,
    CourseMaterial,
    CourseSession,
    CourseSignup,
    SessionAttendance,
    StudentChecklist,
)
from coursehub_backend.model.forum import ForumAnswer, ForumPost
from coursehub_backend.permissions.auth import (
    get_session_user,
    require_admin,
    require_instructor,
    require_session,
    require_student,
)
from coursehub_backend.permissions.course_access import (
    can_manage_course,
    get_course_or_404,
    is_course_instructor,
    is_enrolled,
    require_course_instructor_or_admin,
)
from coursehub_backend.permissions.csrf import csrf_protect
from coursehub_backend.permissions.principal import SessionUser
from coursehub_backend.permissions.roles import INSTRUCTOR_FAMILY_TAGS, Permission
from coursehub_backend.services.storage_service import StorageService, get_storage_service

logger = logging.getLogger(__name__)

course_router = APIRouter(dependencies=[Depends(csrf_protect)])

PUBLISHED = "published"
SLUG_CONFLICT = "A course with this slug already exists"


def course_response(course: Course) -> dict:
    return CourseGet.model_validate(course).model_dump(by_alias=True, mode="json")


def _is_instructor_account(db: Session, user_id: str) -> bool:
    return db.query(UserRole.id).filter(
        UserRole.user_id == user_id,
        UserRole.role.in_(sorted(INSTRUCTOR_FAMILY_TAGS))
    ).first() is not None


def _slug_taken(db: Session, slug: str, exclude_course_id: Optional[str] = None) -> bool:
    query = db.query(Course.id).filter(Course.slug == slug)
    if exclude_course_id is not None:
        query = query.filter(Course.id != exclude_course_id)
    return query.first() is not None


def _delete_course_dependents(db: Session, course_id: str) -> List[str]:
    """Delete every row hanging off a course; returns the storage keys of its uploaded materials."""
    storage_paths = [
        path for (path,) in db.query(CourseMaterial.storage_path).filter(
            CourseMaterial.course_id == course_id,
            CourseMaterial.storage_path.isnot(None)
        ).all()
    ]

    session_ids = db.query(CourseSession.id).filter(CourseSession.course_id == course_id)
    post_ids = db.query(ForumPost.id).filter(ForumPost.course_id == course_id)

    db.query(SessionAttendance).filter(SessionAttendance.session_id.in_(session_ids)).delete(synchronize_session=False)
    db.query(CourseMaterial).filter(CourseMaterial.course_id == course_id).delete(synchronize_session=False)
    db.query(CourseSession).filter(CourseSession.course_id == course_id).delete(synchronize_session=False)
    db.query(ForumAnswer).filter(ForumAnswer.post_id.in_(post_ids)).delete(synchronize_session=False)
    db.query(ForumPost).filter(ForumPost.course_id == course_id).delete(synchronize_session=False)
    db.query(CourseChecklist).filter(CourseChecklist.course_id == course_id).delete(synchronize_session=False)
    db.query(StudentChecklist).filter(StudentChecklist.course_id == course_id).delete(synchronize_session=False)
    db.query(CourseInstructor).filter(CourseInstructor.course_id == course_id).delete(synchronize_session=False)
    db.query(CourseSignup).filter(CourseSignup.course_id == course_id).delete(synchronize_session=False)

    return storage_paths


def _get_signup_or_404(db: Session, course_id: str, student_id: str) -> CourseSignup:
    signup = db.query(CourseSignup).filter(
        CourseSignup.course_id == course_id,
        CourseSignup.student_id == student_id
    ).first()
    if signup is None:
        raise NotFoundException("Student not enrolled in this course")
    return signup


def _require_roster_manager(db: Session, course_id: str, session_user: SessionUser):
    get_course_or_404(db, course_id)
    require_course_instructor_or_admin(
        db, course_id, session_user, Permission.COURSES_EDIT_OWN, Permission.STUDENTS_MANAGE
    )


@course_router.get("")
async def list_courses(
    session_user: Annotated[Optional[SessionUser], Depends(get_session_user)],
    db: Session = Depends(get_db),
):
    query = db.query(Course)
    if session_user is None or not session_user.is_admin:
        query = query.filter(Course.status == PUBLISHED)
    return {"success": True, "courses": [course_response(c) for c in query.order_by(Course.title).all()]}


@course_router.get("/mine")
async def list_my_courses(
    session_user: Annotated[SessionUser, Depends(require_student)],
    db: Session = Depends(get_db),
):
    """Published courses the student is signed up for, most recent signup first."""
    rows = (
        db.query(CourseSignup, Course)
        .join(Course, Course.id == CourseSignup.course_id)
        .filter(CourseSignup.student_id == session_user.id, Course.status == PUBLISHED)
        .order_by(CourseSignup.created_at.desc())
        .all()
    )

    return {
        "success": True,
        "courses": [
            StudentCourseGet(
                course=CourseGet.model_validate(course),
                signup_id=signup.id,
                signup_status=signup.status,
                enrolled_at=signup.created_at,
            ).model_dump(by_alias=True, mode="json")
            for signup, course in rows
        ]
    }


@course_router.get("/by-slug/{slug}")
async def get_course_by_slug(
    slug: str,
    session_user: Annotated[Optional[SessionUser], Depends(get_session_user)],
    db: Session = Depends(get_db),
):
    course = db.query(Course).filter(Course.slug == slug).first()
    if course is None:
        raise NotFoundException("Course not found")

    if course.status != PUBLISHED and (session_user is None or not can_manage_course(db, course.id, session_user)):
        raise NotFoundException("Course not found")

    return {"success": True, "course": course_response(course)}


@course_router.post("", status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseCreate,
    session_user: Annotated[SessionUser, Depends(require_admin)],
    db: Session = Depends(get_db),
):
    if not session_user.permitted(Permission.COURSES_CREATE):
        raise ForbiddenException()

    if _slug_taken(db, payload.slug):
        raise ConflictException(SLUG_CONFLICT)

    course = Course(**payload.model_dump())
    with transaction(db, conflict=SLUG_CONFLICT):
        db.add(course)
    db.refresh(course)

    logger.info(f"Course {course.id} created by {session_user.id}")
    return {"success": True, "course": course_response(course)}


@course_router.patch("/{course_id}")
async def update_course(
    course_id: str,
    payload: CourseUpdate,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    course = get_course_or_404(db, course_id)
    require_course_instructor_or_admin(
        db, course_id, session_user, Permission.COURSES_EDIT_OWN, Permission.COURSES_EDIT_ALL
    )

    changes = payload.model_dump(exclude_unset=True)

    if "slug" in changes and changes["slug"] != course.slug:
        if _slug_taken(db, changes["slug"], exclude_course_id=course_id):
            raise ConflictException(SLUG_CONFLICT)

    with transaction(db, conflict=SLUG_CONFLICT):
        for key, value in changes.items():
            setattr(course, key, value)
    db.refresh(course)

    return {"success": True, "course": course_response(course)}


@course_router.delete("/{course_id}")
async def delete_course(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_admin)],
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
):
    course = get_course_or_404(db, course_id)

    with transaction(db):
        storage_paths = _delete_course_dependents(db, course_id)
        db.delete(course)

    # Objects go only once the rows referencing them are gone
    for path in storage_paths:
        try:
            await storage.delete_file(path)
        except ServiceUnavailableException:
            logger.error(f"Could not remove storage object {path} of deleted course {course_id}")

    logger.info(f"Course {course_id} deleted by {session_user.id}")
    return {"success": True}


@course_router.get("/{course_id}/instructor-access")
async def check_instructor_access(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    has_access = session_user.is_admin or is_course_instructor(db, course_id, session_user.id)
    return {"success": True, "hasAccess": has_access}


@course_router.get("/{course_id}/instructors")
async def list_course_instructors(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    get_course_or_404(db, course_id)
    require_course_instructor_or_admin(
        db, course_id, session_user, Permission.COURSES_VIEW_OWN, Permission.INSTRUCTORS_VIEW_ALL
    )

    rows = (
        db.query(CourseInstructor, User)
        .join(User, User.id == CourseInstructor.instructor_id)
        .filter(CourseInstructor.course_id == course_id)
        .order_by(CourseInstructor.display_order)
        .all()
    )

    return {
        "success": True,
        "instructors": [
            CourseInstructorGet(
                id=ci.id,
                course_id=ci.course_id,
                instructor_id=ci.instructor_id,
                instructor_role=ci.instructor_role,
                display_order=ci.display_order,
                first_name=user.first_name,
                last_name=user.last_name,
                email=user.email,
            ).model_dump(by_alias=True)
            for ci, user in rows
        ]
    }


@course_router.post("/{course_id}/instructors", status_code=status.HTTP_201_CREATED)
async def assign_instructor(
    course_id: str,
    payload: InstructorAssign,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    if not session_user.permitted(Permission.INSTRUCTORS_ASSIGN):
        raise ForbiddenException("You do not have permission to assign instructors")

    get_course_or_404(db, course_id)

    instructor = db.query(User).filter(User.id == payload.instructor_id).first()
    if instructor is None or not instructor.is_active or not _is_instructor_account(db, instructor.id):
        raise NotFoundException("Instructor not found or inactive")

    if is_course_instructor(db, course_id, instructor.id):
        raise ConflictException("Instructor is already assigned to this course")

    assignment = CourseInstructor(
        course_id=course_id,
        instructor_id=instructor.id,
        instructor_role=payload.instructor_role,
        display_order=payload.display_order,
    )
    with transaction(db, conflict="Instructor is already assigned to this course"):
        db.add(assignment)

    logger.info(f"Instructor {instructor.id} assigned to course {course_id} by {session_user.id}")
    return {"success": True, "assignmentId": assignment.id}


@course_router.patch("/{course_id}/instructors/{instructor_id}")
async def update_instructor_assignment(
    course_id: str,
    instructor_id: str,
    payload: InstructorAssignmentUpdate,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    if not session_user.permitted(Permission.INSTRUCTORS_ASSIGN):
        raise ForbiddenException("Admin access required to update instructor roles")

    assignment = db.query(CourseInstructor).filter(
        CourseInstructor.course_id == course_id,
        CourseInstructor.instructor_id == instructor_id
    ).first()
    if assignment is None:
        raise NotFoundException("Instructor assignment not found")

    assignment.instructor_role = payload.instructor_role
    if payload.display_order is not None:
        assignment.display_order = payload.display_order
    db.commit()

    logger.info(f"Instructor {instructor_id} on course {course_id} updated by {session_user.id}")
    return {
        "success": True,
        "assignment": {
            "id": assignment.id,
            "courseId": assignment.course_id,
            "instructorId": assignment.instructor_id,
            "instructorRole": assignment.instructor_role,
            "displayOrder": assignment.display_order,
        }
    }


@course_router.delete("/{course_id}/instructors/{instructor_id}")
async def remove_instructor(
    course_id: str,
    instructor_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    if not session_user.permitted(Permission.INSTRUCTORS_REMOVE):
        raise ForbiddenException("You do not have permission to remove instructors")

    deleted = db.query(CourseInstructor).filter(
        CourseInstructor.course_id == course_id,
        CourseInstructor.instructor_id == instructor_id
    ).delete(synchronize_session=False)

    if not deleted:
        db.rollback()
        raise NotFoundException("Instructor assignment not found")

    db.commit()
    logger.info(f"Instructor {instructor_id} removed from course {course_id} by {session_user.id}")
    return {"success": True}


@course_router.post("/{course_id}/signup", status_code=status.HTTP_201_CREATED)
async def enroll_in_course(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_student)],
    db: Session = Depends(get_db),
):
    course = get_course_or_404(db, course_id)
    if course.status != PUBLISHED:
        raise NotFoundException("Course not found")

    if is_enrolled(db, course_id, session_user.id):
        raise ConflictException("You are already enrolled in this course")

    signup = CourseSignup(course_id=course_id, student_id=session_user.id)
    with transaction(db, conflict="You are already enrolled in this course"):
        db.add(signup)

    logger.info(f"Student {session_user.id} enrolled in course {course_id}")
    return {"success": True, "signupId": signup.id}


@course_router.get("/{course_id}/students")
async def list_enrolled_students(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    get_course_or_404(db, course_id)
    require_course_instructor_or_admin(
        db, course_id, session_user, Permission.STUDENTS_VIEW_OWN, Permission.STUDENTS_VIEW_ALL
    )

    rows = (
        db.query(CourseSignup, User)
        .join(User, User.id == CourseSignup.student_id)
        .filter(CourseSignup.course_id == course_id)
        .order_by(CourseSignup.created_at)
        .all()
    )

    return {
        "success": True,
        "students": [
            EnrolledStudentGet(
                signup_id=signup.id,
                student_id=user.id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                status=signup.status,
                enrolled_at=signup.created_at,
            ).model_dump(by_alias=True, mode="json")
            for signup, user in rows
        ]
    }


@course_router.patch("/{course_id}/students/{student_id}")
async def update_student_status(
    course_id: str,
    student_id: str,
    payload: SignupStatusUpdate,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_roster_manager(db, course_id, session_user)
    signup = _get_signup_or_404(db, course_id, student_id)

    signup.status = payload.status
    db.commit()

    logger.info(f"Signup {signup.id} set to {payload.status} by {session_user.id}")
    return {"success": True, "signupId": signup.id, "status": signup.status}


@course_router.delete("/{course_id}/students/{student_id}")
async def remove_student(
    course_id: str,
    student_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_roster_manager(db, course_id, session_user)
    signup = _get_signup_or_404(db, course_id, student_id)

    with transaction(db):
        db.query(SessionAttendance).filter(SessionAttendance.signup_id == signup.id).delete(synchronize_session=False)
        db.delete(signup)

    logger.info(f"Student {student_id} removed from course {course_id} by {session_user.id}")
    return {"success": True}
