from uuid import UUID

import jwt
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chatcore.app import app
from chatcore.config import Config
from chatcore.models import ChatCategory, UserRole
from chatcore.routes.auth import get_engine

from fakes import Backend, insert_event, make_user


class FakeEngine:
    """Just enough of EngineService for the routes"""

    is_initialized = True
    change_listener = None

    def __init__(self, backend: Backend):
        self.backend = backend

    async def get_user(self, user_id):
        return await self.backend.users.get_by_id(user_id)

    def open_session(self, user):
        return self.backend.session(user)


@pytest.fixture
def backend():
    return Backend()


@pytest.fixture
def client(backend):
    app.dependency_overrides[get_engine] = lambda: FakeEngine(backend)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _token(user) -> str:
    return jwt.encode(
        {"sub": str(user.id), "aud": Config.JWT_AUDIENCE},
        Config.JWT_SECRET,
        algorithm=Config.JWT_ALGORITHM,
    )


def _auth(user) -> dict:
    return {"Authorization": f"Bearer {_token(user)}"}


def _register(backend, *users):
    backend.users.add(*users)
    return users


def test_requires_valid_token(client, backend):
    (trainer,) = _register(backend, make_user(UserRole.TRAINER))

    assert client.get("/api/v1/chats/rooms").status_code == 401
    assert client.get("/api/v1/chats/rooms", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/api/v1/chats/rooms", headers={"Authorization": "Bearer abc"}).status_code == 401

    inactive = make_user(UserRole.TRAINER, active=False)
    _register(backend, inactive)
    assert client.get("/api/v1/chats/rooms", headers=_auth(inactive)).status_code == 401
    assert client.get("/api/v1/chats/rooms", headers=_auth(trainer)).status_code == 200


def test_permission_check_reports_code(client, backend):
    supervisor, trainer = _register(
        backend,
        make_user(UserRole.SUPERVISOR, specializations=["first-aid"]),
        make_user(UserRole.TRAINER, specializations=["logistics"]),
    )
    response = client.get(f"/api/v1/chats/permissions/{trainer.id}", headers=_auth(supervisor))
    assert response.status_code == 200
    assert response.json()["allowed"] is False
    assert response.json()["code"] == "specialization_mismatch"


def test_direct_chat_status_codes(client, backend):
    dv, cc, pm, trainer, board = _register(
        backend,
        make_user(UserRole.PROVINCIAL_OFFICER),
        make_user(UserRole.COORDINATION_OFFICER),
        make_user(UserRole.PROJECT_MANAGER),
        make_user(UserRole.TRAINER),
        make_user(UserRole.BOARD_MEMBER),
    )

    response = client.post("/api/v1/chats/direct", json={"target_user_id": str(cc.id)}, headers=_auth(dv))
    assert response.status_code == 200
    room = response.json()
    assert set(room["participant_ids"]) == {str(dv.id), str(cc.id)}
    assert room["chat_category"] == "auto_direct"

    again = client.post("/api/v1/chats/direct", json={"target_user_id": str(dv.id)}, headers=_auth(cc))
    assert again.json()["id"] == room["id"]

    response = client.post("/api/v1/chats/direct", json={"target_user_id": str(trainer.id)}, headers=_auth(pm))
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "approval_required"

    response = client.post("/api/v1/chats/direct", json={"target_user_id": str(board.id)}, headers=_auth(trainer))
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "role_pair_not_permitted"


def test_request_and_open_after_approval(client, backend):
    pm, trainer = _register(backend, make_user(UserRole.PROJECT_MANAGER), make_user(UserRole.TRAINER))

    response = client.post(
        "/api/v1/chats/requests",
        json={"target_user_id": str(trainer.id), "reason": "Schedule"},
        headers=_auth(pm),
    )
    assert response.status_code == 200

    requests = client.get("/api/v1/chats/requests", headers=_auth(pm)).json()
    assert [(r["status"], r["reason"]) for r in requests] == [("pending", "Schedule")]

    assert client.post(f"/api/v1/chats/requests/{trainer.id}/open", headers=_auth(pm)).status_code == 403

    backend.requests.approve(backend.requests.requests[0])
    response = client.post(f"/api/v1/chats/requests/{trainer.id}/open", headers=_auth(pm))
    assert response.status_code == 200
    assert response.json()["chat_category"] == "approved_direct"


def test_setup_groups_and_read_only_posting(client, backend):
    (trainer,) = _register(backend, make_user(UserRole.TRAINER))

    groups = client.get("/api/v1/chats/groups", headers=_auth(trainer)).json()
    can_post = {g["chat_category"]: g["can_post"] for g in groups}
    assert can_post == {"announcement": False, "training_team": True}

    assert client.post("/api/v1/chats/setup", headers=_auth(trainer)).json()["rooms"] == 2
    rooms = {r["chat_category"]: r for r in client.get("/api/v1/chats/rooms", headers=_auth(trainer)).json()}

    announcement = rooms[ChatCategory.ANNOUNCEMENT.value]["id"]
    response = client.post(
        f"/api/v1/chats/rooms/{announcement}/messages", json={"content": "hello"}, headers=_auth(trainer)
    )
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "read_only_group"

    team = rooms[ChatCategory.TRAINING_TEAM.value]["id"]
    response = client.post(
        f"/api/v1/chats/rooms/{team}/messages", json={"content": "hello team"}, headers=_auth(trainer)
    )
    assert response.status_code == 200
    assert response.json()["content"] == "hello team"


def test_messages_unread_and_read(client, backend):
    dv, cc = _register(backend, make_user(UserRole.PROVINCIAL_OFFICER), make_user(UserRole.COORDINATION_OFFICER))
    room_id = client.post(
        "/api/v1/chats/direct", json={"target_user_id": str(cc.id)}, headers=_auth(dv)
    ).json()["id"]

    for text in ("one", "two"):
        assert client.post(
            f"/api/v1/chats/rooms/{room_id}/messages", json={"content": text}, headers=_auth(dv)
        ).status_code == 200

    listing = client.get(f"/api/v1/chats/rooms/{room_id}/messages", headers=_auth(cc)).json()
    assert [m["content"] for m in listing["messages"]] == ["one", "two"]
    assert listing["unread_count"] == 2

    assert client.post(f"/api/v1/chats/rooms/{room_id}/read", headers=_auth(cc)).json()["updated"] == 2
    listing = client.get(f"/api/v1/chats/rooms/{room_id}/messages", headers=_auth(cc)).json()
    assert listing["unread_count"] == 0


def test_empty_message_is_bad_request(client, backend):
    dv, cc = _register(backend, make_user(UserRole.PROVINCIAL_OFFICER), make_user(UserRole.COORDINATION_OFFICER))
    room_id = client.post(
        "/api/v1/chats/direct", json={"target_user_id": str(cc.id)}, headers=_auth(dv)
    ).json()["id"]

    response = client.post(f"/api/v1/chats/rooms/{room_id}/messages", json={"content": "  "}, headers=_auth(dv))
    assert response.status_code == 400


def test_non_member_and_archived_rooms_are_hidden(client, backend):
    dv, cc, outsider = _register(
        backend,
        make_user(UserRole.PROVINCIAL_OFFICER),
        make_user(UserRole.COORDINATION_OFFICER),
        make_user(UserRole.TRAINER),
    )
    room_id = client.post(
        "/api/v1/chats/direct", json={"target_user_id": str(cc.id)}, headers=_auth(dv)
    ).json()["id"]

    assert client.get(f"/api/v1/chats/rooms/{room_id}/messages", headers=_auth(outsider)).status_code == 404

    assert client.delete(f"/api/v1/chats/rooms/{room_id}", headers=_auth(dv)).status_code == 200
    assert client.get(f"/api/v1/chats/rooms/{room_id}/messages", headers=_auth(dv)).status_code == 404
    assert client.get("/api/v1/chats/rooms", headers=_auth(dv)).json() == []


def test_store_failure_is_service_unavailable(client, backend):
    (trainer,) = _register(backend, make_user(UserRole.TRAINER))
    backend.rooms.fail = True

    response = client.get("/api/v1/chats/rooms", headers=_auth(trainer))
    assert response.status_code == 503
    assert response.json()["detail"] == "Temporary failure, try again"


def test_live_stream_snapshot_and_echo(client, backend):
    dv, cc = _register(backend, make_user(UserRole.PROVINCIAL_OFFICER), make_user(UserRole.COORDINATION_OFFICER))
    room_id = client.post(
        "/api/v1/chats/direct", json={"target_user_id": str(cc.id)}, headers=_auth(dv)
    ).json()["id"]
    client.post(f"/api/v1/chats/rooms/{room_id}/messages", json={"content": "earlier"}, headers=_auth(dv))

    with client.websocket_connect(f"/api/v1/chats/rooms/{room_id}/live?token={_token(cc)}") as ws:
        snapshot = ws.receive_json()
        assert snapshot["op"] == "snapshot"
        assert [m["content"] for m in snapshot["messages"]] == ["earlier"]

        ws.send_json({"op": "send", "content": "live reply"})
        frame = ws.receive_json()
        assert frame["op"] == "message"
        assert frame["message"]["content"] == "live reply"
        assert frame["message"]["sender_id"] == str(cc.id)

        ws.send_json({"op": "dance"})
        assert ws.receive_json() == {"op": "error", "code": "unknown_op"}


def test_provisioned_group_cannot_be_archived(client, backend):
    (trainer,) = _register(backend, make_user(UserRole.TRAINER))
    client.post("/api/v1/chats/setup", headers=_auth(trainer))
    rooms = {r["chat_category"]: r for r in client.get("/api/v1/chats/rooms", headers=_auth(trainer)).json()}
    team = rooms[ChatCategory.TRAINING_TEAM.value]["id"]

    response = client.delete(f"/api/v1/chats/rooms/{team}", headers=_auth(trainer))
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "provisioned_group"
    assert len(client.get("/api/v1/chats/rooms", headers=_auth(trainer)).json()) == 2


def test_live_stream_does_not_repeat_snapshot_messages(client, backend):
    dv, cc = _register(backend, make_user(UserRole.PROVINCIAL_OFFICER), make_user(UserRole.COORDINATION_OFFICER))
    room_id = client.post(
        "/api/v1/chats/direct", json={"target_user_id": str(cc.id)}, headers=_auth(dv)
    ).json()["id"]

    async def insert_during_load():
        backend.messages.list_hook = None
        late = backend.messages.put(UUID(room_id), dv.id, "late")
        await backend.feed.publish(insert_event(late))

    backend.messages.list_hook = insert_during_load

    with client.websocket_connect(f"/api/v1/chats/rooms/{room_id}/live?token={_token(cc)}") as ws:
        snapshot = ws.receive_json()
        assert [m["content"] for m in snapshot["messages"]] == ["late"]

        ws.send_json({"op": "send", "content": "after"})
        frame = ws.receive_json()
        assert frame["op"] == "message"
        assert frame["message"]["content"] == "after"


def test_live_stream_survives_malformed_frames(client, backend):
    dv, cc = _register(backend, make_user(UserRole.PROVINCIAL_OFFICER), make_user(UserRole.COORDINATION_OFFICER))
    room_id = client.post(
        "/api/v1/chats/direct", json={"target_user_id": str(cc.id)}, headers=_auth(dv)
    ).json()["id"]

    with client.websocket_connect(f"/api/v1/chats/rooms/{room_id}/live?token={_token(cc)}") as ws:
        assert ws.receive_json()["op"] == "snapshot"

        ws.send_text("{not json")
        assert ws.receive_json()["code"] == "invalid"

        ws.send_json(["send", "hi"])
        assert ws.receive_json()["code"] == "invalid"

        ws.send_json({"op": "send", "content": 42})
        assert ws.receive_json()["code"] == "invalid"

        ws.send_json({"op": "send", "content": None})
        assert ws.receive_json()["code"] == "invalid"

        ws.send_json({"op": "send", "content": "still here"})
        frame = ws.receive_json()
        assert frame["op"] == "message"
        assert frame["message"]["content"] == "still here"


def test_live_stream_rejects_bad_token(client, backend):
    (dv,) = _register(backend, make_user(UserRole.PROVINCIAL_OFFICER))
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/api/v1/chats/rooms/{dv.id}/live?token=nope") as ws:
            ws.receive_json()


def test_health(client):
    assert client.get("/api/v1/health").json()["status"] == "healthy"
    ready = client.get("/api/v1/health/ready").json()
    assert ready["ready"] is True
    assert ready["change_feed"] is None
