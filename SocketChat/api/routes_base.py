# Standard library imports
import logging
from typing import Optional

# Third-party imports
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

# Local imports
from SocketChat import __version__ as __main_version__
from SocketChat.core.exceptions import AuthenticationFailed, ChatError
from SocketChat.core.server.auth import JWTTokenVerifier
from SocketChat.core.server.interfaces import ChatRepository, Identity
from SocketChat.core.server.presence import PresenceRegistry
from SocketChat.core.server.rooms import RoomChannels
from SocketChat.core.server.service import ChatService

logger = logging.getLogger(__name__)


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str


class CreateGroupRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    description: Optional[str] = ""


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")


class AdminUserUpdateRequest(ProfileUpdateRequest):
    role: Optional[str] = None


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def get_service(request: Request) -> ChatService:
    return request.app.state.service


async def get_current_identity(request: Request) -> Identity:
    """Resolve the bearer token (header or ``authToken`` cookie) to an Identity."""
    verifier: JWTTokenVerifier = request.app.state.verifier
    token = verifier.extract_token(request)
    if not token:
        raise AuthenticationFailed("No valid authentication token provided")
    return await verifier.verify(token)


async def get_admin_identity(identity: Identity = Depends(get_current_identity)) -> Identity:
    return ChatService.require_admin(identity)


def create_app(
    repository: ChatRepository,
    verifier: Optional[JWTTokenVerifier] = None,
    presence: Optional[PresenceRegistry] = None,
    channels: Optional[RoomChannels] = None,
) -> FastAPI:
    """
    Build the REST application over ``repository``.

    Args:
        repository: Same repository the socket layer uses
        verifier: Token verifier (creates a JWT verifier over ``repository`` if None)
        presence: Live presence, reported by the health endpoint when given
        channels: Live room channels; a REST leave evicts the caller's connections
    """
    from SocketChat.api.routes_admin import router as admin_router
    from SocketChat.api.routes_api import router

    app = FastAPI(
        title="SocketChat api",
        version=__main_version__,
        description="REST api for SocketChat, a real-time chat backend.",
        contact={"name": "SocketChat Team"}
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.state.repository = repository
    app.state.service = ChatService(repository)
    app.state.verifier = verifier if verifier is not None else JWTTokenVerifier(repository)
    app.state.presence = presence
    app.state.channels = channels

    app.add_exception_handler(ChatError, chat_error_handler)
    app.include_router(router)
    app.include_router(admin_router)
    return app
