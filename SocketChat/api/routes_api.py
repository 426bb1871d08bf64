# Standard library imports
from typing import Any, Dict, List

# Third-party imports
from fastapi import APIRouter, Depends, Request

# Local imports
from SocketChat import __version__ as __main_version__
from SocketChat.core.exceptions import ValidationFailed
from SocketChat.core.message.protocol import Event, OutboundEvent
from SocketChat.core.server.interfaces import Identity
from SocketChat.core.server.rooms import evict_user
from SocketChat.core.server.service import CREATOR_CANNOT_LEAVE, NOT_A_MEMBER, ChatService
from .routes_base import (
    CreateGroupRequest,
    ProfileUpdateRequest,
    SendMessageRequest,
    get_current_identity,
    get_service,
)

router = APIRouter(prefix="/api")


@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    presence = request.app.state.presence
    return {
        "status": "ok",
        "version": __main_version__,
        "onlineUsers": len(presence.list_online()) if presence is not None else 0,
    }


# --------------------------- users ---------------------------
@router.get("/users")
async def list_users(
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> List[Dict[str, Any]]:
    users = await service.repository.list_users(exclude=identity.user_id)
    return [u.to_dict() for u in users]


@router.get("/users/profile")
async def get_profile(
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    user = await service.load_user(identity.user_id)
    return user.to_dict()


@router.put("/users/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    user = await service.update_profile(identity, body.first_name, body.last_name)
    return {"message": "Profile updated successfully", "user": user.to_dict()}


@router.get("/users/{user_id}/messages")
async def get_private_messages(
    user_id: str,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> List[Dict[str, Any]]:
    return await service.private_history(identity, user_id)


@router.post("/users/{user_id}/messages", status_code=201)
async def send_private_message(
    user_id: str,
    body: SendMessageRequest,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    return await service.post_private(identity, user_id, body.content)


# --------------------------- groups ---------------------------
@router.get("/groups")
async def list_groups(
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> List[Dict[str, Any]]:
    groups = await service.repository.list_groups()
    return [g.to_dict(viewer_id=identity.user_id) for g in groups]


@router.post("/groups", status_code=201)
async def create_group(
    body: CreateGroupRequest,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    group = await service.create_group(identity, body.name, body.description)
    return group.to_dict(viewer_id=identity.user_id)


@router.get("/groups/{group_id}")
async def get_group(
    group_id: str,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    group = await service.load_group(group_id)
    return group.to_dict(viewer_id=identity.user_id)


@router.post("/groups/{group_id}/join")
async def join_group(
    group_id: str,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    group = await service.load_group(group_id)
    if group.is_member(identity.user_id):
        raise ValidationFailed("You are already a member of this group")
    group = await service.enrol(identity.user_id, group_id)
    return {"message": "Joined group", "group": group.to_dict(viewer_id=identity.user_id)}


@router.post("/groups/{group_id}/leave")
async def leave_group(
    group_id: str,
    request: Request,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    group = await service.load_group(group_id)
    if group.creator_id == identity.user_id:
        raise ValidationFailed(CREATOR_CANNOT_LEAVE)
    if not group.is_member(identity.user_id):
        raise ValidationFailed(NOT_A_MEMBER)
    group = await service.withdraw(identity.user_id, group_id)

    channels, presence = request.app.state.channels, request.app.state.presence
    if channels is not None and presence is not None:
        notice = Event.outbound(OutboundEvent.LEFT_GROUP, {"groupId": group.id, "name": group.name}).serialize()
        for connection in await evict_user(channels, presence, group.id, identity.user_id):
            await connection.send(notice)
    return {"message": "Left group", "group": group.to_dict(viewer_id=identity.user_id)}


@router.get("/groups/{group_id}/messages")
async def get_group_messages(
    group_id: str,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> List[Dict[str, Any]]:
    return await service.group_history(identity, group_id)


@router.post("/groups/{group_id}/messages", status_code=201)
async def send_group_message(
    group_id: str,
    body: SendMessageRequest,
    identity: Identity = Depends(get_current_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    return await service.post_group(identity, group_id, body.content)
