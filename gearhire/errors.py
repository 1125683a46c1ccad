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

"""Domain errors raised by the service layer.

Each error carries the HTTP status code the API layer answers with, so
routes never translate them by hand.
"""

from fastapi import status


class GearHireError(Exception):
    """Base class for all domain errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(GearHireError):
    """A referenced event, item, booking, ticket or invoice does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class ValidationError(GearHireError):
    """The requested transition is not valid for the current state."""

    status_code = status.HTTP_400_BAD_REQUEST
    kind = "validation"


class ConflictError(GearHireError):
    """Uniqueness violation or overlapping reservation."""

    status_code = status.HTTP_409_CONFLICT
    kind = "conflict"


class ForbiddenError(GearHireError):
    """Caller is not allowed to perform the operation."""

    status_code = status.HTTP_403_FORBIDDEN
    kind = "forbidden"
