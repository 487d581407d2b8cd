"""
Database engine, session management, and base model.

Every model inherits from Base. Every request gets its own
session from get_db(), and that session is the unit of work:
the API layer commits it when an operation succeeds and rolls
it back otherwise, so a posting and its derived entries, or a
settlement and its links, land together or not at all.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from party_ledger.config import get_settings

settings = get_settings()

# SQLite connections are bound to the creating thread by default;
# the request thread pool needs them shared.
_connect_args = (
    {"check_same_thread": False}
    if settings.DATABASE_URL.startswith("sqlite")
    else {}
)

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

# autocommit=False: services only flush, the caller decides
# when the batch is committed.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


def get_db():
    """
    Provide a database session for a single request.

    The session is always closed when the request finishes,
    even if the endpoint raised.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
