import os
import logging
from contextlib import contextmanager
from typing import Generator, Optional
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker, Session

from coursehub_backend.api.exceptions import ConflictException

logger = logging.getLogger(__name__)

POSTGRES_URL = os.environ.get("POSTGRES_URL", "localhost:5432")
POSTGRES_USER = os.environ.get("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD = os.environ.get("POSTGRES_PASSWORD", "postgres")
POSTGRES_DB = os.environ.get("POSTGRES_DB", "coursehub")

DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    f"postgresql://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_URL}/{POSTGRES_DB}"
)

_database_options = {} if DATABASE_URL.startswith("sqlite") else {
    "pool_pre_ping": True,
    "pool_size": 10,
    "max_overflow": 5,
    "pool_timeout": 30,
    "pool_recycle": 300
}

# Engine creation is lazy: the driver only connects on first checkout
_engine = create_engine(DATABASE_URL, **_database_options)
_SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

def get_db() -> Generator[Session, None, None]:

    db = _SessionLocal()

    try:
        yield db
    except OperationalError:
        logger.error("Database connection failed")
        db.rollback()
        raise
    finally:
        db.close()

@contextmanager
def transaction(db: Session, conflict: Optional[str] = None):
    """Run several statements as one unit; roll back everything on error.

    With ``conflict`` set, an integrity violation raised by a flush or the
    commit is reported as a 409 carrying that message.
    """
    try:
        yield db
        db.commit()
    except IntegrityError:
        db.rollback()
        if conflict is None:
            raise
        logger.info(f"Rejected duplicate write: {conflict}")
        raise ConflictException(conflict)
    except Exception:
        db.rollback()
        raise
