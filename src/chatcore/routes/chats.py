"""
Chat Routes

API endpoints for chat permissions, rooms, requests and messages.
"""
import asyncio
import json
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from ..errors import BackingStoreError, ValidationError
from ..models.chat_room import ChatRoom
from ..models.message import MessageType
from ..models.user import User
from ..services.engine_service import EngineService
from ..services.room_registry import is_provisioned_group
from ..services.session import ChatSession
from .auth import get_engine, get_session, resolve_user

logger = logging.getLogger("chatcore.routes.chats")
router = APIRouter(prefix="/chats", tags=["chats"])


# ============================================
# Request/Response Models
# ============================================

class DirectChatRequest(BaseModel):
    target_user_id: UUID


class CreateChatRequestBody(BaseModel):
    target_user_id: UUID
    reason: Optional[str] = None


class SendMessageRequest(BaseModel):
    content: str
    message_type: MessageType = MessageType.TEXT
    file_url: Optional[str] = None


class PermissionResponse(BaseModel):
    allowed: bool
    requires_approval: bool
    code: str
    reason: Optional[str]


class UserResponse(BaseModel):
    id: str
    display_name: str
    role: str
    specializations: List[str]
    email: Optional[str]
    avatar_url: Optional[str]
    is_active: bool


class GroupResponse(BaseModel):
    chat_category: str
    name: str
    description: str
    allowed_roles: List[str]
    all_members_allowed: bool
    is_read_only: bool
    can_post: bool


class RoomResponse(BaseModel):
    id: str
    name: str
    kind: str
    chat_category: str
    participant_ids: List[str]
    description: Optional[str]
    is_read_only: bool
    auto_created: bool
    created_by: Optional[str]
    created_at: str
    updated_at: str
    archived_at: Optional[str]


class SenderResponse(BaseModel):
    id: str
    full_name: str
    avatar_url: Optional[str]


class MessageResponse(BaseModel):
    id: str
    room_id: str
    sender_id: str
    content: str
    message_type: str
    file_url: Optional[str]
    created_at: str
    is_read: bool
    sender: Optional[SenderResponse]


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]
    unread_count: int


class ChatRequestResponse(BaseModel):
    id: str
    requester_id: str
    target_user_id: str
    reason: str
    request_type: str
    status: str
    created_at: str
    resolved_at: Optional[str]


# ============================================
# Helpers
# ============================================

async def _load_target(engine: EngineService, user_id: UUID) -> User:
    target = await engine.get_user(user_id)
    if target is None or not target.is_active:
        raise HTTPException(status_code=404, detail="User not found")
    return target


async def _load_member_room(session: ChatSession, room_id: UUID) -> ChatRoom:
    room = await session.rooms.get_room(room_id)
    if room is None or room.is_archived or not room.has_participant(session.user.id):
        raise HTTPException(status_code=404, detail="Room not found")
    return room


def _check_can_post(session: ChatSession, room: ChatRoom) -> None:
    group = session.permissions.group_definition(room.chat_category)
    if group is not None and not session.permissions.can_post_in_group(session.user, group):
        raise HTTPException(
            status_code=403,
            detail={"code": "read_only_group", "reason": "Only designated roles can post in this group"},
        )


# ============================================
# Permission Routes
# ============================================

@router.get("/permissions/{user_id}", response_model=PermissionResponse)
async def check_direct_chat(
    user_id: UUID,
    session: ChatSession = Depends(get_session),
    engine: EngineService = Depends(get_engine),
):
    """Can the current user direct-chat this user?"""
    target = await _load_target(engine, user_id)
    permission = session.permissions.can_direct_chat(session.user, target)
    return PermissionResponse(**permission.to_dict())


@router.get("/contacts", response_model=List[UserResponse])
async def list_contacts(session: ChatSession = Depends(get_session)):
    """Users the current user may direct-chat with"""
    users = await session.provisioner.list_chatable_users(session.user)
    return [UserResponse(**u.to_dict()) for u in users]


@router.get("/groups", response_model=List[GroupResponse])
async def list_groups(session: ChatSession = Depends(get_session)):
    """Group chats the current user can join"""
    groups = session.permissions.available_groups(session.user)
    return [
        GroupResponse(
            **g.to_dict(),
            can_post=session.permissions.can_post_in_group(session.user, g),
        )
        for g in groups
    ]


@router.post("/setup")
async def setup_chats(session: ChatSession = Depends(get_session)):
    """Provision the current user's baseline chats"""
    await session.provisioner.setup_user_chats(session.user)
    rooms = await session.rooms.list_rooms_for_user()
    return {"success": True, "rooms": len(rooms)}


# ============================================
# Room Routes
# ============================================

@router.get("/rooms", response_model=List[RoomResponse])
async def list_rooms(session: ChatSession = Depends(get_session)):
    """Current user's active rooms, most recent activity first"""
    rooms = await session.rooms.list_rooms_for_user()
    return [RoomResponse(**r.to_dict()) for r in rooms]


@router.post("/direct", response_model=RoomResponse)
async def create_direct_chat(
    request: DirectChatRequest,
    session: ChatSession = Depends(get_session),
    engine: EngineService = Depends(get_engine),
):
    """Open a direct chat the rules allow immediately"""
    target = await _load_target(engine, request.target_user_id)
    permission = session.permissions.can_direct_chat(session.user, target)
    if not permission.allowed:
        raise HTTPException(status_code=403, detail={"code": permission.code.value, "reason": permission.reason})
    if permission.requires_approval:
        raise HTTPException(status_code=409, detail={"code": permission.code.value, "reason": permission.reason})

    room_id = await session.provisioner.create_auto_direct_chat(session.user, target)
    if room_id is None:
        raise HTTPException(status_code=503, detail="Could not create chat, try again")
    room = await session.rooms.get_room(room_id)
    return RoomResponse(**room.to_dict())


@router.delete("/rooms/{room_id}")
async def archive_room(room_id: UUID, session: ChatSession = Depends(get_session)):
    """Archive a room"""
    room = await _load_member_room(session, room_id)
    if is_provisioned_group(room):
        raise HTTPException(
            status_code=403,
            detail={"code": "provisioned_group", "reason": "Shared group chats cannot be archived"},
        )
    success = await session.archive_room(room_id)
    if not success:
        raise HTTPException(status_code=400, detail="Could not archive room")
    return {"success": True}


# ============================================
# Request Routes
# ============================================

@router.post("/requests")
async def request_chat(
    request: CreateChatRequestBody,
    session: ChatSession = Depends(get_session),
    engine: EngineService = Depends(get_engine),
):
    """Ask for approval to open a direct chat"""
    target = await _load_target(engine, request.target_user_id)
    permission = session.permissions.can_direct_chat(session.user, target)
    if not permission.requires_approval:
        raise HTTPException(status_code=400, detail={"code": permission.code.value, "reason": permission.reason})

    recorded = await session.provisioner.request_chat_permission(session.user, target, request.reason)
    if not recorded:
        raise HTTPException(status_code=503, detail="Could not record request, try again")
    return {"success": True}


@router.get("/requests", response_model=List[ChatRequestResponse])
async def list_requests(session: ChatSession = Depends(get_session)):
    """Current user's chat requests and their status"""
    requests = await session.provisioner.list_requests(session.user)
    return [ChatRequestResponse(**r.to_dict()) for r in requests]


@router.post("/requests/{target_user_id}/open", response_model=RoomResponse)
async def open_approved_chat(
    target_user_id: UUID,
    session: ChatSession = Depends(get_session),
    engine: EngineService = Depends(get_engine),
):
    """Open the direct chat for an approved request"""
    target = await _load_target(engine, target_user_id)
    room_id = await session.provisioner.open_approved_chat(session.user, target)
    if room_id is None:
        raise HTTPException(status_code=403, detail={"code": "not_approved", "reason": "No approved request"})
    room = await session.rooms.get_room(room_id)
    return RoomResponse(**room.to_dict())


# ============================================
# Message Routes
# ============================================

@router.get("/rooms/{room_id}/messages", response_model=MessageListResponse)
async def list_messages(room_id: UUID, session: ChatSession = Depends(get_session)):
    """Messages in a room, oldest first"""
    await _load_member_room(session, room_id)
    messages = await session.messages.fetch_messages(room_id)
    return MessageListResponse(
        messages=[MessageResponse(**m.to_dict()) for m in messages],
        unread_count=session.messages.get_unread_count(room_id),
    )


@router.post("/rooms/{room_id}/messages", response_model=MessageResponse)
async def send_message(
    room_id: UUID,
    request: SendMessageRequest,
    session: ChatSession = Depends(get_session),
):
    """Send a message to a room"""
    room = await _load_member_room(session, room_id)
    _check_can_post(session, room)
    message = await session.messages.send_message(
        room_id, request.content, request.message_type, request.file_url
    )
    return MessageResponse(**message.to_dict())


@router.post("/rooms/{room_id}/read")
async def mark_room_read(room_id: UUID, session: ChatSession = Depends(get_session)):
    """Mark the room's messages from others as read"""
    await _load_member_room(session, room_id)
    updated = await session.messages.mark_as_read(room_id)
    return {"success": True, "updated": updated}


# ============================================
# Live Room Stream
# ============================================

@router.websocket("/rooms/{room_id}/live")
async def room_live(
    websocket: WebSocket,
    room_id: UUID,
    token: Optional[str] = None,
    engine: EngineService = Depends(get_engine),
):
    """
    Stream a room's log to one client.

    Server -> client: {"op": "snapshot", "messages": [...]}, then
    {"op": "message", "message": {...}} per insertion.
    Client -> server: {"op": "send", "content": "..."} or {"op": "read"}.
    """
    user = await resolve_user(token, engine)
    if user is None:
        await websocket.close(code=1008, reason="auth failed")
        return

    session = engine.open_session(user)
    room = await session.rooms.get_room(room_id)
    if room is None or room.is_archived or not room.has_participant(user.id):
        session.close()
        await websocket.close(code=1008, reason="room not found")
        return

    await websocket.accept()
    outbox: asyncio.Queue = asyncio.Queue()
    session.messages.subscribe_to_messages(room_id, outbox.put_nowait)
    sent_ids = set()

    async def pump():
        while True:
            message = await outbox.get()
            # Arrivals queued while the snapshot was loading are already in it
            if message.id in sent_ids:
                sent_ids.discard(message.id)
                continue
            await websocket.send_json({"op": "message", "message": message.to_dict()})

    pump_task = None
    try:
        snapshot = await session.messages.fetch_messages(room_id)
        sent_ids.update(m.id for m in snapshot)
        await websocket.send_json({"op": "snapshot", "messages": [m.to_dict() for m in snapshot]})
        pump_task = asyncio.create_task(pump())

        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await websocket.send_json({"op": "error", "code": "invalid", "detail": "Frame is not JSON"})
                continue
            if not isinstance(data, dict):
                await websocket.send_json({"op": "error", "code": "invalid", "detail": "Frame must be an object"})
                continue
            op = data.get("op")
            try:
                if op == "send":
                    group = session.permissions.group_definition(room.chat_category)
                    if group is not None and not session.permissions.can_post_in_group(user, group):
                        await websocket.send_json({"op": "error", "code": "read_only_group"})
                        continue
                    content = data.get("content") or ""
                    if not isinstance(content, str):
                        raise ValidationError("content must be a string")
                    await session.messages.send_message(
                        room_id,
                        content,
                        MessageType(data.get("message_type", MessageType.TEXT.value)),
                        data.get("file_url"),
                    )
                elif op == "read":
                    await session.messages.mark_as_read(room_id)
                else:
                    await websocket.send_json({"op": "error", "code": "unknown_op"})
            except (ValidationError, ValueError) as e:
                await websocket.send_json({"op": "error", "code": "invalid", "detail": str(e)})
            except BackingStoreError:
                await websocket.send_json({"op": "error", "code": "try_again"})
    except WebSocketDisconnect:
        logger.debug(f"Live stream closed for user {user.id} in room {room_id}")
    finally:
        if pump_task is not None:
            pump_task.cancel()
        session.close()
