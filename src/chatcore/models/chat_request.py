"""
Chat Request Model

Approval request for a direct chat that a rule does not allow immediately.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


class RequestStatus(str, Enum):
    """Request lifecycle; approved/denied are terminal"""
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


@dataclass
class ChatRequest:
    """
    Chat request entity.

    The core only creates PENDING requests. The transition to APPROVED or
    DENIED is an administrative action performed outside the core.
    """
    id: UUID = field(default_factory=uuid4)
    requester_id: UUID = field(default_factory=uuid4)
    target_user_id: UUID = field(default_factory=uuid4)
    reason: str = ""
    request_type: str = "direct_chat"
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime = field(default_factory=datetime.utcnow)
    resolved_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.status != RequestStatus.PENDING

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "requester_id": str(self.requester_id),
            "target_user_id": str(self.target_user_id),
            "reason": self.reason,
            "request_type": self.request_type,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }
