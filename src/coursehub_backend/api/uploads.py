import io
import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from coursehub_backend.database import get_db
from coursehub_backend.model.auth import User
from coursehub_backend.permissions.auth import require_instructor, require_session
from coursehub_backend.permissions.course_access import get_course_or_404, require_course_instructor_or_admin
from coursehub_backend.permissions.csrf import csrf_protect
from coursehub_backend.permissions.principal import SessionUser
from coursehub_backend.permissions.roles import Permission
from coursehub_backend.services.storage_service import StorageService, StoredObject, get_storage_service
from coursehub_backend.storage_config import STORAGE_PATH_PATTERNS
from coursehub_backend.storage_security import sanitize_filename, validate_image_upload

logger = logging.getLogger(__name__)

uploads_router = APIRouter(dependencies=[Depends(csrf_protect)])


async def _store_image(file: UploadFile, pattern: str, storage: StorageService, **path_args) -> StoredObject:
    filename = file.filename or ""
    contents = await file.read()
    file_data = io.BytesIO(contents)

    mime_type = validate_image_upload(filename, file.content_type, len(contents), file_data)

    timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    object_key = STORAGE_PATH_PATTERNS[pattern].format(
        filename=f"{timestamp}-{sanitize_filename(filename)}", **path_args
    )
    return await storage.upload_file(file_data, object_key, mime_type, upsert=False)


@uploads_router.post("/profile-picture")
async def upload_profile_picture(
    session_user: Annotated[SessionUser, Depends(require_session)],
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
):
    stored = await _store_image(file, 'profile_picture', storage, user_id=session_user.id)

    user = db.query(User).filter(User.id == session_user.id).first()
    user.profile_picture_url = stored.public_url
    db.commit()

    logger.info(f"Profile picture updated for user {session_user.id}")
    return {"success": True, "url": stored.public_url}


@uploads_router.post("/course-cover/{course_id}")
async def upload_course_cover(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_instructor)],
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
):
    course = get_course_or_404(db, course_id)
    require_course_instructor_or_admin(
        db, course_id, session_user, Permission.COURSES_EDIT_OWN, Permission.COURSES_EDIT_ALL
    )

    stored = await _store_image(file, 'course_cover', storage, course_id=course_id)

    course.cover_image_url = stored.public_url
    db.commit()

    logger.info(f"Cover image updated for course {course_id}")
    return {"success": True, "url": stored.public_url}
