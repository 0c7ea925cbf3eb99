"""
User Model

Represents a directory user as seen by the chat core.
Users are owned by the hosted auth/profile tables; the core only reads them.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple
from uuid import UUID, uuid4


class UserRole(str, Enum):
    """Workforce roles (codes match the users.role column)"""
    PROVINCIAL_OFFICER = "DV"      # Provincial development officer
    COORDINATION_OFFICER = "CC"    # Development management / coordination officer
    PROJECT_MANAGER = "PM"         # Trainer preparation project manager
    SUPERVISOR = "SV"              # Program supervisor
    TRAINER = "TR"                 # Trainer
    BOARD_MEMBER = "MB"            # Board member
    ANY = "*"                      # Wildcard, only valid inside rule tables


def parse_specializations(value: Any) -> Tuple[str, ...]:
    """
    Normalize a specialization column into a tuple of tags.

    Accepts a list/tuple, a JSON array string (single quotes tolerated),
    or a bare string naming one specialization.
    """
    if not value:
        return ()

    if isinstance(value, (list, tuple)):
        items = value
    elif isinstance(value, str):
        try:
            parsed = json.loads(value.replace("'", '"'))
        except ValueError:
            parsed = value
        items = parsed if isinstance(parsed, list) else [parsed]
    else:
        return ()

    tags = []
    for item in items:
        tag = str(item).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tuple(tags)


@dataclass(frozen=True)
class User:
    """
    Directory user.

    role drives every chat rule; specializations gate supervisor <-> trainer
    direct chats to matching training domains.
    """
    id: UUID = field(default_factory=uuid4)
    display_name: str = ""
    role: UserRole = UserRole.TRAINER
    specializations: Tuple[str, ...] = ()
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: bool = True

    def shares_specialization(self, other: "User") -> bool:
        """True if both users have at least one specialization in common"""
        return bool(set(self.specializations) & set(other.specializations))

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "display_name": self.display_name,
            "role": self.role.value,
            "specializations": list(self.specializations),
            "email": self.email,
            "avatar_url": self.avatar_url,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        """Create from dictionary (row or API payload)"""
        return cls(
            id=UUID(data["id"]) if isinstance(data.get("id"), str) else data.get("id", uuid4()),
            display_name=data.get("full_name") or data.get("display_name") or "",
            role=UserRole(data["role"]) if isinstance(data.get("role"), str) else data.get("role", UserRole.TRAINER),
            specializations=parse_specializations(
                data.get("specialization", data.get("specializations"))
            ),
            email=data.get("email"),
            avatar_url=data.get("avatar_url"),
            is_active=data.get("is_active", True),
        )
