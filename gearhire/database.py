# GearHire - Event Equipment Rental and Booking Engine
# Copyright (C) 2025 The GearHire Authors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""Database setup, connection management and transaction boundaries."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from gearhire.config import get_settings

logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> str:
    """Get the database URL from settings."""
    settings = get_settings()
    if settings.database.url:
        return settings.database.url

    db_path = settings.database.path

    # Ensure directory exists
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    return f"sqlite:///{db_path}"


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine with the locking behaviour the services rely on.

    On SQLite, pysqlite's own transaction handling is switched off and every
    transaction is opened with ``BEGIN IMMEDIATE``. The write lock is then
    taken before the first validation read, which serializes concurrent
    writers the way ``SELECT ... FOR UPDATE`` does on server databases.

    Args:
        database_url: SQLAlchemy database URL.
        echo: Log emitted SQL.

    Returns:
        Configured engine.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    kwargs = {"connect_args": {"check_same_thread": False}}  # Needed for SQLite
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory databases live and die with a single connection
        kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    """Session factory used by requests, jobs and tests."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_engine(database_url: Optional[str] = None):
    """Initialize the database engine."""
    global _engine, _SessionLocal

    _engine = build_engine(database_url or get_database_url(), echo=get_settings().app.debug)
    _SessionLocal = make_session_factory(_engine)

    return _engine


def get_engine():
    """Get the database engine, initializing if needed."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_local():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Dependency to get database session."""
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Run one top-level operation as a single transaction.

    Commits when the block exits normally and rolls back on any exception,
    so a failed operation never leaves partial state behind.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def create_tables(engine: Optional[Engine] = None):
    """Create all database tables."""
    # Import all models to ensure they're registered
    from gearhire.models import (  # noqa: F401
        audit,
        client,
        equipment,
        event,
        finance,
        maintenance,
        notification,
        transactions,
        user,
    )

    Base.metadata.create_all(bind=engine or get_engine())


def init_database():
    """Initialize database with tables and seed data."""
    from gearhire.models.audit import CronJob
    from gearhire.models.enums import UserRole
    from gearhire.models.user import User

    create_tables()

    settings = get_settings()
    SessionLocal = get_session_local()
    db = SessionLocal()

    try:
        # Create admin user if doesn't exist
        admin_email = settings.admin.email
        admin_user = db.query(User).filter(User.email == admin_email).first()

        if not admin_user:
            admin_user = User(
                email=admin_email,
                first_name=settings.admin.first_name,
                last_name=settings.admin.last_name,
                role=UserRole.ADMIN,
                is_active=True,
            )
            db.add(admin_user)
            db.commit()
            logger.info("Created admin user: %s", admin_email)

        # Seed default cron jobs
        cron_jobs_data = [
            (
                "finance_housekeeping",
                "Finance Housekeeping",
                "Mark past-due invoices overdue and expire stale quotes",
                settings.scheduler.housekeeping_cron,
            ),
            (
                "event_reminders",
                "Event Reminders",
                "Notify admins of events starting in 14, 7, 3, 2 and 1 days",
                settings.scheduler.reminders_cron,
            ),
        ]

        for job_key, job_name, description, cron_schedule in cron_jobs_data:
            existing = db.query(CronJob).filter(CronJob.job_key == job_key).first()
            if not existing:
                job = CronJob(
                    job_key=job_key,
                    job_name=job_name,
                    description=description,
                    cron_schedule=cron_schedule,
                    is_enabled=True,
                )
                db.add(job)

        db.commit()
        logger.info("Database initialized successfully")

    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
