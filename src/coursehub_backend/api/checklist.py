import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import BadRequestException, ForbiddenException
from coursehub_backend.database import get_db
from coursehub_backend.interface.checklist import (
    ChecklistUpdate,
    ProgressUpdate,
    StudentChecklistGet,
)
from coursehub_backend.model.base import utcnow
from coursehub_backend.model.course import CourseChecklist, StudentChecklist
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

checklist_router = APIRouter(dependencies=[Depends(csrf_protect)])


def checklist_status(item_ids: List[str], items_progress: List[dict]) -> str:
    if not item_ids:
        return "pending"
    completed = {p["item_id"] for p in items_progress if p.get("completed")} & set(item_ids)
    if not completed:
        return "pending"
    if len(completed) == len(set(item_ids)):
        return "completed"
    return "in_progress"


def _get_checklist(db: Session, course_id: str) -> Optional[CourseChecklist]:
    return db.query(CourseChecklist).filter(CourseChecklist.course_id == course_id).first()


def _get_progress(db: Session, course_id: str, student_id: str) -> Optional[StudentChecklist]:
    return db.query(StudentChecklist).filter(
        StudentChecklist.course_id == course_id,
        StudentChecklist.student_id == student_id
    ).first()


@checklist_router.get("")
async def get_checklist(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    get_course_or_404(db, course_id)
    checklist = _get_checklist(db, course_id)
    items = checklist.items if checklist else []

    if can_manage_course(db, course_id, session_user):
        return {"success": True, "items": items}

    if not is_enrolled(db, course_id, session_user.id):
        raise ForbiddenException("You must be enrolled in this course to access the checklist")

    progress = _get_progress(db, course_id, session_user.id)
    items_progress = progress.items_progress if progress else []
    item_ids = [item["id"] for item in items]

    result = StudentChecklistGet(
        course_id=course_id,
        items=items,
        items_progress=[p for p in items_progress if p["item_id"] in item_ids],
        status=checklist_status(item_ids, items_progress),
    )
    return {"success": True, "checklist": result.model_dump(by_alias=True, mode="json")}


@checklist_router.put("")
async def replace_checklist(
    course_id: str,
    payload: ChecklistUpdate,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    get_course_or_404(db, course_id)
    require_course_instructor_or_admin(
        db, course_id, session_user, Permission.COURSES_EDIT_OWN, Permission.COURSES_EDIT_ALL
    )

    items = [item.model_dump() for item in payload.items]
    checklist = _get_checklist(db, course_id)

    if checklist is None:
        checklist = CourseChecklist(course_id=course_id, items=items)
        db.add(checklist)
    else:
        checklist.items = items

    db.commit()
    logger.info(f"Checklist for course {course_id} replaced by {session_user.id}")
    return {"success": True, "items": items}


@checklist_router.post("/progress")
async def update_progress(
    course_id: str,
    payload: ProgressUpdate,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    get_course_or_404(db, course_id)

    if not is_enrolled(db, course_id, session_user.id):
        raise ForbiddenException("You must be enrolled in this course to access the checklist")

    checklist = _get_checklist(db, course_id)
    item_ids = [item["id"] for item in checklist.items] if checklist else []
    if payload.item_id not in item_ids:
        raise BadRequestException("Unknown checklist item")

    progress = _get_progress(db, course_id, session_user.id)
    if progress is None:
        progress = StudentChecklist(course_id=course_id, student_id=session_user.id, items_progress=[])
        db.add(progress)

    entries = [dict(p) for p in (progress.items_progress or []) if p["item_id"] != payload.item_id]
    entries.append({
        "item_id": payload.item_id,
        "completed": payload.completed,
        "completed_at": utcnow().isoformat() if payload.completed else None,
        "notes": payload.notes,
    })

    # JSON columns are only flushed when reassigned
    progress.items_progress = entries
    progress.status = checklist_status(item_ids, entries)
    progress.is_completed = progress.status == "completed"
    db.commit()

    return {"success": True, "status": progress.status, "itemsProgress": entries}
