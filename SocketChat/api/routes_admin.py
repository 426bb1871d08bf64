# Standard library imports
from typing import Any, Dict

# Third-party imports
from fastapi import APIRouter, Depends, Query, Request

# Local imports
from SocketChat.core.server.interfaces import Identity
from SocketChat.core.server.service import ChatService
from .routes_base import AdminUserUpdateRequest, get_admin_identity, get_service

router = APIRouter(prefix="/api/admin")


@router.get("/users")
async def list_users(
    page: int = Query(1),
    limit: int = Query(10),
    admin: Identity = Depends(get_admin_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    return await service.user_page(admin, page, limit)


@router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    admin: Identity = Depends(get_admin_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    user = await service.load_user(user_id)
    return user.to_dict()


@router.put("/users/{user_id}")
async def update_user(
    user_id: str,
    body: AdminUserUpdateRequest,
    admin: Identity = Depends(get_admin_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    user = await service.update_user(admin, user_id, body.first_name, body.last_name, body.role)
    return {"message": "User updated successfully", "user": user.to_dict()}


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    admin: Identity = Depends(get_admin_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    await service.delete_user(admin, user_id)

    # live sockets of a deleted account are cut off
    presence = request.app.state.presence
    if presence is not None:
        for connection in presence.connections_for(user_id):
            await connection.close(1008, "Account deleted")
    return {"message": "User deleted successfully"}


@router.get("/stats")
async def stats(
    admin: Identity = Depends(get_admin_identity),
    service: ChatService = Depends(get_service),
) -> Dict[str, Any]:
    return await service.system_stats(admin)
