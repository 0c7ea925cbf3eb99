"""
User Storage

Read-only access to the users directory (role and specialization).
"""
import logging
from typing import Optional, List
from uuid import UUID

from .base import BaseStorage
from ..models.user import User, UserRole

logger = logging.getLogger("chatcore.storage.user")

USER_COLUMNS = "id, full_name, email, role, specialization, avatar_url, is_active"


class UserStorage(BaseStorage):
    """Storage for User entities (directory)"""

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Get user by ID"""
        query = f"SELECT {USER_COLUMNS} FROM users WHERE id = $1"
        row = await self.fetchrow(query, user_id)
        return self._row_to_user(row) if row else None

    async def get_many(self, user_ids: List[UUID]) -> List[User]:
        """Get several users by ID"""
        if not user_ids:
            return []
        query = f"SELECT {USER_COLUMNS} FROM users WHERE id = ANY($1::uuid[])"
        rows = await self.fetch(query, list(user_ids))
        return [self._row_to_user(row) for row in rows]

    async def list_by_role(self, role: UserRole, active_only: bool = True) -> List[User]:
        """List users holding a role"""
        query = f"""
            SELECT {USER_COLUMNS} FROM users
            WHERE role = $1 AND ($2 = false OR is_active = true)
            ORDER BY full_name
        """
        rows = await self.fetch(query, role.value, active_only)
        return [self._row_to_user(row) for row in rows]

    async def list_active(self, exclude_id: Optional[UUID] = None) -> List[User]:
        """List active users, optionally excluding one"""
        query = f"""
            SELECT {USER_COLUMNS} FROM users
            WHERE is_active = true AND ($1::uuid IS NULL OR id <> $1)
            ORDER BY full_name
        """
        rows = await self.fetch(query, exclude_id)
        return [self._row_to_user(row) for row in rows]

    def _row_to_user(self, row) -> User:
        """Convert database row to User"""
        return User.from_dict(dict(row))
