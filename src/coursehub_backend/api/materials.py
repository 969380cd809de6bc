import io
import logging
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import BadRequestException, ForbiddenException, NotFoundException
from coursehub_backend.database import get_db
from coursehub_backend.interface.materials import MaterialGet, MaterialLinkCreate, MaterialUpdate
from coursehub_backend.model.course import CourseMaterial, CourseSession
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
from coursehub_backend.services.google_drive import (
    GoogleDriveService,
    get_google_drive_service,
    is_google_drive_url,
    sanitize_display_filename,
)
from coursehub_backend.services.storage_service import StorageService, get_storage_service
from coursehub_backend.storage_config import STORAGE_PATH_PATTERNS
from coursehub_backend.storage_security import get_extension, sanitize_filename, validate_material_upload

logger = logging.getLogger(__name__)

materials_router = APIRouter(dependencies=[Depends(csrf_protect)])


def material_response(material: CourseMaterial) -> dict:
    return MaterialGet.model_validate(material).model_dump(by_alias=True, mode="json")


def build_material_path(course_id: str, session_id: Optional[str], filename: str) -> str:
    timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    stored_name = f"{timestamp}-{sanitize_filename(filename)}"
    if session_id:
        return STORAGE_PATH_PATTERNS['session_material'].format(
            course_id=course_id, session_id=session_id, filename=stored_name
        )
    return STORAGE_PATH_PATTERNS['course_material'].format(course_id=course_id, filename=stored_name)


def _require_material_manager(db: Session, course_id: str, session_user: SessionUser):
    get_course_or_404(db, course_id)
    require_course_instructor_or_admin(
        db, course_id, session_user, Permission.COURSES_EDIT_OWN, Permission.COURSES_EDIT_ALL
    )


def _require_session_in_course(db: Session, course_id: str, session_id: Optional[str]):
    if not session_id:
        return
    session = db.query(CourseSession.id).filter(
        CourseSession.id == session_id,
        CourseSession.course_id == course_id
    ).first()
    if session is None:
        raise BadRequestException("Session does not belong to this course")


def _get_material_or_404(db: Session, course_id: str, material_id: str) -> CourseMaterial:
    material = db.query(CourseMaterial).filter(
        CourseMaterial.id == material_id,
        CourseMaterial.course_id == course_id
    ).first()
    if material is None:
        raise NotFoundException("Material not found")
    return material


@materials_router.get("")
async def list_materials(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    get_course_or_404(db, course_id)
    require_course_instructor_or_admin(db, course_id, session_user, Permission.COURSES_VIEW_OWN, Permission.COURSES_VIEW_ALL)

    materials = (
        db.query(CourseMaterial)
        .filter(CourseMaterial.course_id == course_id)
        .order_by(CourseMaterial.created_at.desc())
        .all()
    )
    return {"success": True, "materials": [material_response(m) for m in materials]}


@materials_router.get("/public")
async def list_public_materials(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    get_course_or_404(db, course_id)

    if not is_enrolled(db, course_id, session_user.id) and not can_manage_course(db, course_id, session_user):
        raise ForbiddenException("You must be enrolled in this course to access materials")

    materials = (
        db.query(CourseMaterial)
        .filter(CourseMaterial.course_id == course_id)
        .order_by(CourseMaterial.created_at.desc())
        .all()
    )
    return {"success": True, "materials": [material_response(m) for m in materials]}


@materials_router.post("", status_code=status.HTTP_201_CREATED)
async def upload_material(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    file: UploadFile = File(...),
    session_id: Optional[str] = Form(None, alias="sessionId"),
    display_filename: Optional[str] = Form(None, alias="displayFilename"),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
):
    _require_material_manager(db, course_id, session_user)
    _require_session_in_course(db, course_id, session_id)

    original_filename = file.filename or ""
    contents = await file.read()
    file_data = io.BytesIO(contents)

    mime_type = validate_material_upload(original_filename, file.content_type, len(contents), file_data)

    object_key = build_material_path(course_id, session_id, original_filename)
    stored = await storage.upload_file(file_data, object_key, mime_type, upsert=False)

    material = CourseMaterial(
        course_id=course_id,
        session_id=session_id or None,
        original_filename=original_filename,
        display_filename=(display_filename or "").strip() or original_filename,
        file_url=stored.public_url,
        storage_path=stored.object_key,
        file_type=get_extension(original_filename).lstrip('.'),
        file_size_bytes=len(contents),
        mime_type=mime_type,
        uploaded_by=session_user.id,
    )

    try:
        db.add(material)
        db.commit()
    except Exception:
        db.rollback()
        # Do not leave an orphaned object behind
        await storage.delete_file(stored.object_key)
        raise

    db.refresh(material)
    logger.info(f"Material {material.id} uploaded to course {course_id} by {session_user.id}")
    return {"success": True, "material": material_response(material)}


@materials_router.post("/links", status_code=status.HTTP_201_CREATED)
async def add_material_link(
    course_id: str,
    payload: MaterialLinkCreate,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
    drive: GoogleDriveService = Depends(get_google_drive_service),
):
    """Attach a publicly shared Google Drive file without copying it into storage."""
    _require_material_manager(db, course_id, session_user)

    if not is_google_drive_url(payload.url):
        raise BadRequestException("Only Google Drive links are supported")

    _require_session_in_course(db, course_id, payload.session_id)

    metadata = await drive.fetch_metadata(payload.url)

    display_name = (payload.display_name or "").strip()
    if not display_name and metadata.file_name:
        display_name = sanitize_display_filename(metadata.file_name)
    if not display_name:
        display_name = f"Google Drive File ({metadata.file_id[:8]})"

    material = CourseMaterial(
        course_id=course_id,
        session_id=payload.session_id or None,
        original_filename=metadata.file_name or display_name,
        display_filename=display_name,
        resource_type="link",
        file_url=payload.url,
        external_link_url=payload.url,
        file_type=metadata.file_type,
        uploaded_by=session_user.id,
    )
    db.add(material)
    db.commit()
    db.refresh(material)

    logger.info(f"Drive link {material.id} added to course {course_id} by {session_user.id}")
    return {"success": True, "material": material_response(material)}


@materials_router.patch("/{material_id}")
async def rename_material(
    course_id: str,
    material_id: str,
    payload: MaterialUpdate,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
):
    _require_material_manager(db, course_id, session_user)
    material = _get_material_or_404(db, course_id, material_id)

    material.display_filename = payload.display_filename
    db.commit()
    db.refresh(material)

    return {"success": True, "material": material_response(material)}


@materials_router.delete("/{material_id}")
async def delete_material(
    course_id: str,
    material_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
):
    _require_material_manager(db, course_id, session_user)
    material = _get_material_or_404(db, course_id, material_id)

    # Links have no stored object
    if material.storage_path:
        await storage.delete_file(material.storage_path)

    db.delete(material)
    db.commit()

    logger.info(f"Material {material_id} deleted from course {course_id} by {session_user.id}")
    return {"success": True}
