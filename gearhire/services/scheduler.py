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

"""Scheduler service using APScheduler."""

import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gearhire.config import get_settings
from gearhire.database import get_session_local
from gearhire.models.audit import CronJob
from gearhire.utils.helpers import utcnow

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get the global scheduler instance."""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler()
    return scheduler


def _record_run(db: Session, job_key: str, status: str, started: float, result=None) -> None:
    try:
        job = db.query(CronJob).filter(CronJob.job_key == job_key).first()
        if job:
            job.last_run_at = utcnow()
            job.last_run_status = status
            job.last_run_duration_ms = int((time.time() - started) * 1000)
            job.last_run_result = result
            if status == "success":
                job.total_runs += 1
            else:
                job.total_errors += 1
            db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not record run of job %s", job_key, exc_info=True)


async def run_cron_job(job_key: str, db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Run a cron job by key.

    Args:
        job_key: The job identifier
        db: Database session
        now: Reference time, defaults to the current UTC time

    Returns:
        Result of the job execution.
    """
    start_time = time.time()

    try:
        if job_key == "finance_housekeeping":
            result = _run_finance_housekeeping(db, now or utcnow())
        elif job_key == "event_reminders":
            result = _run_event_reminders(db, now or utcnow())
        else:
            raise ValueError(f"Unknown job key: {job_key}")
    except Exception as e:
        _record_run(db, job_key, "error", start_time, {"error": str(e)})
        logger.error("Job %s failed: %s", job_key, e)
        raise

    _record_run(db, job_key, "success", start_time, result)
    logger.info("Job %s finished: %s", job_key, result)
    return result


def _run_finance_housekeeping(db: Session, now: datetime) -> Dict[str, Any]:
    """Flag overdue invoices, expire stale quotes and count late returns."""
    from gearhire.services.finance import FinanceService
    from gearhire.services.transactions import TransactionProcessor

    finance = FinanceService(db)
    results = {
        "invoices_marked_overdue": finance.mark_overdue_invoices(now),
        "quotes_expired": finance.expire_quotes(now),
    }

    overdue = TransactionProcessor(db).get_overdue_check_ins(now)
    results["overdue_check_ins"] = overdue["total_overdue"]
    if overdue["total_overdue"]:
        logger.warning("%s checked-out items are past their event end", overdue["total_overdue"])

    return results


def _run_event_reminders(db: Session, now: datetime) -> Dict[str, Any]:
    from gearhire.services.notifications import NotificationService

    return {"events_reminded": NotificationService(db).check_upcoming_events(now)}


async def run_job(job_key: str):
    """Run a job in its own session, honouring the enabled flag."""
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        # Check if job is enabled
        job = db.query(CronJob).filter(CronJob.job_key == job_key).first()
        if job and job.is_enabled:
            await run_cron_job(job_key, db)
        else:
            logger.debug("Skipping disabled job %s", job_key)
    except Exception:
        logger.exception("Scheduled job %s raised", job_key)
    finally:
        db.close()


def setup_scheduler():
    """Set up the scheduler with cron jobs."""
    settings = get_settings()
    sched = get_scheduler()

    jobs = {
        "finance_housekeeping": settings.scheduler.housekeeping_cron,
        "event_reminders": settings.scheduler.reminders_cron,
    }
    for job_key, crontab in jobs.items():
        sched.add_job(
            run_job,
            CronTrigger.from_crontab(crontab),
            args=[job_key],
            id=job_key,
            replace_existing=True,
        )

    return sched


def start_scheduler():
    """Start the scheduler."""
    sched = setup_scheduler()
    if not sched.running:
        sched.start()
        logger.info("Scheduler started")
    return sched


def stop_scheduler():
    """Stop the scheduler."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
