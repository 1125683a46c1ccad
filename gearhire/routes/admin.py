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

"""Admin routes for scheduled jobs and the action log."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gearhire.database import get_db
from gearhire.errors import NotFoundError, ValidationError
from gearhire.middleware.auth import require_admin
from gearhire.models.audit import CronJob
from gearhire.models.user import User
from gearhire.services.audit import list_actions
from gearhire.services.scheduler import run_cron_job

router = APIRouter(prefix="/api/admin")


class CronJobUpdate(BaseModel):
    """Cron job update request."""

    is_enabled: Optional[bool] = None


def _require_job(db: Session, job_id: int) -> CronJob:
    job = db.query(CronJob).filter(CronJob.id == job_id).first()
    if not job:
        raise NotFoundError("Cron job not found")
    return job


@router.get("/users")
async def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """List staff users."""
    users = db.query(User).order_by(User.last_name, User.first_name).all()
    return [u.to_dict() for u in users]


@router.get("/cron-jobs")
async def list_cron_jobs(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """List all cron jobs."""
    jobs = db.query(CronJob).order_by(CronJob.job_key).all()
    return {"jobs": [j.to_dict() for j in jobs]}


@router.put("/cron-jobs/{job_id}")
async def update_cron_job(
    job_id: int,
    data: CronJobUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Enable or disable a cron job."""
    job = _require_job(db, job_id)
    if data.is_enabled is not None:
        job.is_enabled = data.is_enabled

    db.commit()
    db.refresh(job)

    return {
        "job": job.to_dict(),
        "message": f"Cron job '{job.job_name}' {'enabled' if job.is_enabled else 'disabled'}",
    }


@router.post("/cron-jobs/{job_id}/trigger")
async def trigger_cron_job(
    job_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Manually trigger a cron job."""
    job = _require_job(db, job_id)
    if not job.is_enabled:
        raise ValidationError("Cannot trigger disabled cron job")

    result = await run_cron_job(job.job_key, db)
    return {"message": f"Cron job '{job.job_name}' triggered successfully", "result": result}


@router.get("/action-log")
async def get_action_log(
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Most recent action log entries, optionally for one entity."""
    entries = list_actions(db, entity_type=entity_type, entity_id=entity_id, limit=limit)
    return {"entries": [e.to_dict() for e in entries], "limit": limit}
