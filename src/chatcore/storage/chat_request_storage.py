"""
Chat Request Storage

PostgreSQL storage for direct-chat approval requests.
"""
import logging
from typing import Optional, List
from uuid import UUID

from .base import BaseStorage
from ..models.chat_request import ChatRequest, RequestStatus

logger = logging.getLogger("chatcore.storage.chat_request")


class ChatRequestStorage(BaseStorage):
    """Storage for ChatRequest entities"""

    async def create(self, request: ChatRequest) -> ChatRequest:
        """Create a new request"""
        query = """
            INSERT INTO chat_requests (
                id, requester_id, target_user_id, request_type, reason,
                status, created_at, resolved_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING *
        """
        row = await self.fetchrow(
            query,
            request.id, request.requester_id, request.target_user_id,
            request.request_type, request.reason, request.status.value,
            request.created_at, request.resolved_at,
        )
        return self._row_to_request(row)

    async def get_by_id(self, request_id: UUID) -> Optional[ChatRequest]:
        """Get request by ID"""
        row = await self.fetchrow("SELECT * FROM chat_requests WHERE id = $1", request_id)
        return self._row_to_request(row) if row else None

    async def find_latest(
        self,
        requester_id: UUID,
        target_user_id: UUID,
        status: Optional[RequestStatus] = None,
    ) -> Optional[ChatRequest]:
        """Most recent request for a requester/target pair"""
        query = """
            SELECT * FROM chat_requests
            WHERE requester_id = $1 AND target_user_id = $2
              AND ($3::text IS NULL OR status = $3)
            ORDER BY created_at DESC
            LIMIT 1
        """
        row = await self.fetchrow(
            query, requester_id, target_user_id, status.value if status else None
        )
        return self._row_to_request(row) if row else None

    async def list_by_requester(self, requester_id: UUID) -> List[ChatRequest]:
        """List requests made by a user, newest first"""
        query = """
            SELECT * FROM chat_requests
            WHERE requester_id = $1
            ORDER BY created_at DESC
        """
        rows = await self.fetch(query, requester_id)
        return [self._row_to_request(row) for row in rows]

    def _row_to_request(self, row) -> ChatRequest:
        """Convert database row to ChatRequest"""
        return ChatRequest(
            id=row["id"],
            requester_id=row["requester_id"],
            target_user_id=row["target_user_id"],
            reason=row["reason"] or "",
            request_type=row["request_type"],
            status=RequestStatus(row["status"]),
            created_at=row["created_at"],
            resolved_at=row["resolved_at"],
        )
