import json
import re
from datetime import datetime
from uuid import uuid4

from chatcore.config import Config

NOTIFY_LIMIT = 8000


def _schema() -> str:
    return (Config.MIGRATIONS_DIR / "001_chat_schema.sql").read_text()


def _notified_columns(table: str):
    """Columns the change trigger copies into the payload for a table"""
    match = re.search(rf"WHEN '{table}' THEN jsonb_build_object\((.*?)\)\n", _schema(), re.S)
    assert match, f"no payload columns for {table}"
    return re.findall(r"'(\w+)', r->'\1'", match.group(1))


def test_room_payload_leaves_out_participants():
    columns = _notified_columns("chat_rooms")
    assert "id" in columns
    assert "participants" not in columns


def test_message_payload_keeps_room_filter_column():
    columns = _notified_columns("chat_messages")
    assert {"id", "chat_room_id"} <= set(columns)
    assert "content" not in columns


def test_large_room_change_fits_in_one_notification():
    now = datetime(2024, 1, 1).isoformat()
    row = {
        "id": str(uuid4()),
        "name": "Training team",
        "type": "group",
        "chat_category": "training_team",
        "room_key": "group:training_team",
        "participants": [str(uuid4()) for _ in range(1000)],
        "description": "x" * 500,
        "updated_at": now,
        "archived_at": None,
    }
    columns = _notified_columns("chat_rooms")
    record = {c: row.get(c) for c in columns}
    payload = json.dumps({"table": "chat_rooms", "type": "UPDATE", "record": record, "old_record": record})

    assert len(json.dumps(row)) > NOTIFY_LIMIT
    assert len(payload.encode()) < NOTIFY_LIMIT
