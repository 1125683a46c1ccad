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

"""Action log and scheduled job models."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text

from gearhire.database import Base
from gearhire.utils.helpers import isoformat, utcnow


class ActionLog(Base):
    """Who did what to which entity."""

    __tablename__ = "action_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(100), nullable=False, index=True)
    entity_id = Column(Integer, nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "ip_address": self.ip_address,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<ActionLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"


class CronJob(Base):
    """Cron job configuration and status tracking."""

    __tablename__ = "cron_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_key = Column(String(100), unique=True, nullable=False)
    job_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    cron_schedule = Column(String(50), nullable=False)  # e.g., "0 6 * * *"
    is_enabled = Column(Boolean, nullable=False, default=True)
    last_run_at = Column(DateTime, nullable=True)
    last_run_status = Column(String(50), nullable=True)  # success, error
    last_run_duration_ms = Column(Integer, nullable=True)
    last_run_result = Column(JSON, nullable=True)
    total_runs = Column(Integer, nullable=False, default=0)
    total_errors = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "job_key": self.job_key,
            "job_name": self.job_name,
            "description": self.description,
            "cron_schedule": self.cron_schedule,
            "is_enabled": self.is_enabled,
            "last_run_at": isoformat(self.last_run_at),
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "total_runs": self.total_runs,
            "total_errors": self.total_errors,
        }

    def __repr__(self):
        return f"<CronJob(id={self.id}, key='{self.job_key}', enabled={self.is_enabled})>"
