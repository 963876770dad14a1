"""
Database session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from hr_leave.core.config import settings
from hr_leave.db.base import Base

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    echo=False,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_sqlite_schema() -> None:
    """Create all tables for SQLite databases (other backends use Alembic)"""
    if "sqlite" in settings.DATABASE_URL:
        import hr_leave.models  # noqa: F401  registers every table on Base.metadata
        Base.metadata.create_all(bind=engine)
