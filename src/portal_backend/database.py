import logging
from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker, Session

from portal_backend.settings import settings

logger = logging.getLogger(__name__)

_database_options = {
    "pool_pre_ping": True,
    "pool_size": settings.DATABASE_POOL_SIZE,
    "max_overflow": settings.DATABASE_MAX_OVERFLOW,
    "pool_timeout": 30,
    "pool_recycle": 300
}

# engine creation is lazy so importing models never requires a database driver
_engine = None
_SessionLocal = sessionmaker(autocommit=False, autoflush=False)

def get_engine():
    global _engine
    if _engine is None:
        _engine = create_engine(settings.database_url, **_database_options)
        _SessionLocal.configure(bind=_engine)
    return _engine

def get_db() -> Generator[Session, None, None]:

    get_engine()
    db = _SessionLocal()

    try:
        yield db
    except OperationalError:
        logger.error("Database connection failed")
        db.rollback()
        raise
    finally:
        db.close()
