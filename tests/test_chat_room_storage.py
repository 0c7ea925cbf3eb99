from datetime import datetime
from uuid import uuid4

import pytest

from chatcore.errors import BackingStoreError
from chatcore.models import ChatCategory, ChatRoom, RoomKind
from chatcore.storage import ChatRoomStorage

from fakes import run


def _row(room: ChatRoom) -> dict:
    return {
        "id": room.id,
        "name": room.name,
        "type": room.kind.value,
        "chat_category": room.chat_category.value,
        "participants": list(room.participant_ids),
        "description": room.description,
        "is_read_only": room.is_read_only,
        "auto_created": room.auto_created,
        "created_by": room.created_by,
        "room_key": room.room_key,
        "created_at": room.created_at,
        "updated_at": room.updated_at,
        "archived_at": room.archived_at,
    }


class ScriptedStorage(ChatRoomStorage):
    """Answers fetchrow calls in order and records the queries"""

    def __init__(self, *rows):
        super().__init__("postgresql://unused")
        self.rows = list(rows)
        self.queries = []

    async def fetchrow(self, query, *args):
        self.queries.append(" ".join(query.split()))
        return self.rows.pop(0)


def _keyed_room() -> ChatRoom:
    return ChatRoom(
        name="Training team",
        kind=RoomKind.GROUP,
        chat_category=ChatCategory.TRAINING_TEAM,
        participant_ids=[uuid4()],
        room_key="group:training_team",
    )


def test_create_or_get_inserts_new_room():
    room = _keyed_room()
    storage = ScriptedStorage(_row(room))

    stored, created = run(storage.create_or_get(room))

    assert created
    assert stored.id == room.id
    assert len(storage.queries) == 1
    assert "ON CONFLICT (room_key) DO NOTHING" in storage.queries[0]


def test_create_or_get_conflict_returns_existing_without_writing():
    existing = _keyed_room()
    existing.updated_at = datetime(2024, 1, 1)
    storage = ScriptedStorage(None, _row(existing))

    stored, created = run(storage.create_or_get(_keyed_room()))

    assert not created
    assert stored.id == existing.id
    assert stored.updated_at == datetime(2024, 1, 1)
    assert storage.queries[1].startswith("SELECT")
    assert not any("UPDATE" in q for q in storage.queries)


def test_create_or_get_conflict_with_vanished_row_is_store_error():
    storage = ScriptedStorage(None, None)
    with pytest.raises(BackingStoreError):
        run(storage.create_or_get(_keyed_room()))


def test_create_or_get_requires_key():
    room = _keyed_room()
    room.room_key = None
    with pytest.raises(ValueError):
        run(ScriptedStorage().create_or_get(room))
