import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from coursehub_backend.api.admin_users import admin_users_router
from coursehub_backend.api.attendance import attendance_router
from coursehub_backend.api.auth import auth_router
from coursehub_backend.api.checklist import checklist_router
from coursehub_backend.api.courses import course_router
from coursehub_backend.api.forum import forum_router
from coursehub_backend.api.materials import materials_router
from coursehub_backend.api.sessions import sessions_router
from coursehub_backend.api.uploads import uploads_router
from coursehub_backend.database import get_db, transaction
from coursehub_backend.model.auth import User, UserRole
from coursehub_backend.permissions.auth import hash_password, normalize_email, sync_role_profiles
from coursehub_backend.settings import settings

logger = logging.getLogger(__name__)


async def init_admin_user(db: Session):

    email = normalize_email(settings.ADMIN_EMAIL or "")
    password = settings.ADMIN_PASSWORD

    if not email or not password:
        logger.warning("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping admin bootstrap")
        return

    if db.query(User.id).filter(User.email == email).first() is not None:
        return

    admin_user = User(
        email=email,
        first_name="Admin",
        last_name="System",
        password_hash=hash_password(password),
        is_active=True
    )

    with transaction(db):
        db.add(admin_user)
        db.flush()
        db.add(UserRole(user_id=admin_user.id, role="super_admin"))
        sync_role_profiles(db, admin_user.id, ["super_admin"])

    logger.info(f"Created bootstrap super admin {admin_user.id}")


async def startup_logic():

    db_gen = get_db()
    db = next(db_gen)
    try:
        await init_admin_user(db)
    finally:
        db_gen.close()


@asynccontextmanager
async def lifespan(app: FastAPI):

    if settings.DEBUG_MODE == "production":
        await startup_logic()

    yield


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = next((str(part) for part in reversed(first.get("loc", ())) if isinstance(part, str)), None)
        text = str(first.get("msg", message)).replace("Value error, ", "")
        message = f"{field}: {text}" if field and field != "body" else text
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(
    auth_router,
    prefix="/auth",
    tags=["auth"]
)

app.include_router(
    admin_users_router,
    prefix="/admin/users",
    tags=["admin", "users"]
)

app.include_router(
    course_router,
    prefix="/courses",
    tags=["courses"]
)

app.include_router(
    materials_router,
    prefix="/courses/{course_id}/materials",
    tags=["courses", "materials"]
)

app.include_router(
    sessions_router,
    prefix="/courses/{course_id}/sessions",
    tags=["courses", "sessions"]
)

app.include_router(
    attendance_router,
    prefix="/courses/{course_id}/attendance",
    tags=["courses", "attendance"]
)

app.include_router(
    forum_router,
    prefix="/courses/{course_id}/forum",
    tags=["courses", "forum"]
)

app.include_router(
    checklist_router,
    prefix="/courses/{course_id}/checklist",
    tags=["courses", "checklist"]
)

app.include_router(
    uploads_router,
    prefix="/uploads",
    tags=["uploads"]
)

@app.head("/", status_code=204)
def get_status_head():
    return
