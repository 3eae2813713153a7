"""
Shared test database and fixed dates.

Kept outside conftest so test modules can import the same engine the
fixtures use.
"""

from datetime import date, datetime, timezone

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TODAY = date(2024, 3, 15)
FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


def file_engine(path):
    """Engine on a database file; each session gets its own connection."""
    return create_async_engine(f"sqlite+aiosqlite:///{path}")
