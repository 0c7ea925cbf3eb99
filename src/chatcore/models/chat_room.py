"""
Chat Room Model

Represents a conversation room (direct or group).
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional
from uuid import UUID, uuid4


class RoomKind(str, Enum):
    """Room shapes"""
    DIRECT = "direct"     # Exactly two participants
    GROUP = "group"       # Any number of participants


class ChatCategory(str, Enum):
    """Closed set of room categories"""
    ANNOUNCEMENT = "announcement"        # Official announcements (read-only)
    COORDINATION = "coordination"        # Development coordination group
    TRAINING_TEAM = "training_team"      # Trainers and supervisors
    AUTO_DIRECT = "auto_direct"          # Direct room created without approval
    APPROVED_DIRECT = "approved_direct"  # Direct room opened after approval
    CUSTOM = "custom"                    # Ad-hoc room created by a user


def direct_room_key(user_a: UUID, user_b: UUID) -> str:
    """Order-independent idempotency key for a direct room"""
    low, high = sorted((str(user_a), str(user_b)))
    return f"direct:{low}:{high}"


def group_room_key(category: ChatCategory) -> str:
    """Idempotency key for a provisioned group room"""
    return f"group:{category.value}"


def unique_ids(ids: Iterable[UUID]) -> List[UUID]:
    """Drop duplicate ids, keeping first-seen order"""
    seen = set()
    result = []
    for item in ids:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


@dataclass
class ChatRoom:
    """
    Chat room entity.

    participant_ids is append-mostly and never holds duplicates.
    room_key is set for direct rooms and provisioned groups; the unique
    constraint on it is what makes find-or-create idempotent.
    Rooms are archived (archived_at) rather than deleted.
    """
    id: UUID = field(default_factory=uuid4)
    name: str = ""
    kind: RoomKind = RoomKind.GROUP
    chat_category: ChatCategory = ChatCategory.CUSTOM
    participant_ids: List[UUID] = field(default_factory=list)
    description: Optional[str] = None
    is_read_only: bool = False
    auto_created: bool = False
    created_by: Optional[UUID] = None
    room_key: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    archived_at: Optional[datetime] = None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def has_participant(self, user_id: UUID) -> bool:
        return user_id in self.participant_ids

    def is_direct_between(self, user_a: UUID, user_b: UUID) -> bool:
        """Exact two-participant match"""
        return (
            self.kind == RoomKind.DIRECT
            and len(self.participant_ids) == 2
            and set(self.participant_ids) == {user_a, user_b}
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "name": self.name,
            "kind": self.kind.value,
            "chat_category": self.chat_category.value,
            "participant_ids": [str(p) for p in self.participant_ids],
            "description": self.description,
            "is_read_only": self.is_read_only,
            "auto_created": self.auto_created,
            "created_by": str(self.created_by) if self.created_by else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
        }
