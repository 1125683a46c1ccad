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

"""Read-only client and user lookups used for validation."""

from sqlalchemy.orm import Session

from gearhire.errors import NotFoundError, ValidationError
from gearhire.models.client import Client
from gearhire.models.user import User


class Directory:
    def __init__(self, db: Session):
        self.db = db

    def find_client(self, client_id: int) -> Client:
        client = self.db.query(Client).filter(Client.id == client_id).first()
        if client is None:
            raise NotFoundError(f"Client {client_id} not found")
        return client

    def find_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def require_active_client(self, client_id: int) -> Client:
        client = self.find_client(client_id)
        if not client.is_active:
            raise ValidationError(f"Client {client.name} is inactive")
        return client

    def require_active_user(self, user_id: int) -> User:
        user = self.find_user(user_id)
        if not user.is_active:
            raise ValidationError(f"User {user.full_name} is inactive")
        return user
