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

"""API routes package."""

from fastapi import APIRouter

from gearhire.routes import (
    admin,
    equipment,
    events,
    finance,
    maintenance,
    notifications,
    transactions,
)

# Create main API router
api_router = APIRouter()

# Include all API routes
api_router.include_router(equipment.router, tags=["Equipment"])
api_router.include_router(events.router, tags=["Events"])
api_router.include_router(transactions.router, tags=["Transactions"])
api_router.include_router(maintenance.router, tags=["Maintenance"])
api_router.include_router(finance.router, tags=["Finance"])
api_router.include_router(notifications.router, tags=["Notifications"])
api_router.include_router(admin.router, tags=["Admin"])

__all__ = ["api_router"]
