"""
Authentication module for the server.

Provides JWT-based authentication for the WebSocket handshake and the
REST bearer dependency. Tokens are looked for in the ``Authorization``
header, the ``token`` query parameter and the ``authToken`` cookie.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

import jwt

from SocketChat.config import config
from SocketChat.core.exceptions import AuthenticationFailed
from SocketChat.core.server.interfaces import AuthResult, ChatRepository, Identity

logger = logging.getLogger(__name__)


def create_access_token(
    user_id: str,
    expires_minutes: Optional[int] = None,
    secret: Optional[str] = None,
) -> str:
    """
    Mint a signed access token for ``user_id``.

    Args:
        user_id: Repository id placed in the ``id`` claim
        expires_minutes: Lifetime; negative values produce an expired token
        secret: Signing key (defaults to config.JWT_SECRET)
    """
    now = datetime.now(timezone.utc)
    minutes = config.JWT_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    payload = {
        config.JWT_USER_CLAIM: user_id,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, secret or config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


class JWTTokenVerifier:
    """
    Resolves a bearer token to an Identity.

    The token's user id is looked up in the repository so a deleted or
    unverified account cannot connect with a still-valid token.
    """

    def __init__(
        self,
        repository: ChatRepository,
        secret: str = None,
        algorithm: str = None,
        token_extractor=None
    ):
        """
        Initialize the verifier.

        Args:
            repository: User lookup
            secret: JWT secret key (defaults to config.JWT_SECRET)
            algorithm: JWT algorithm (defaults to config.JWT_ALGORITHM)
            token_extractor: Optional custom token extractor
        """
        self._repository = repository
        self._secret = secret or config.JWT_SECRET
        self._algorithm = algorithm or config.JWT_ALGORITHM
        self._token_extractor = token_extractor if token_extractor is not None else DefaultTokenExtractor()

    async def verify(self, token: Optional[str]) -> Identity:
        """
        Validate ``token`` and load its user.

        Raises:
            AuthenticationFailed: Missing, expired or invalid token, unknown
                or unverified user
        """
        if not token:
            raise AuthenticationFailed("No authentication token provided")
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            logger.warning("Authentication failed: token expired")
            raise AuthenticationFailed("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning("Authentication failed: invalid token - %s", e)
            raise AuthenticationFailed("Invalid token")

        user_id = payload.get(config.JWT_USER_CLAIM) or payload.get("sub")
        if not user_id:
            raise AuthenticationFailed("Invalid token")

        user = await self._repository.get_user(str(user_id))
        if user is None:
            raise AuthenticationFailed("User not found")
        if not user.is_verified:
            raise AuthenticationFailed("Email not verified")
        return Identity.from_user(user)

    async def authenticate(self, token: Optional[str]) -> AuthResult:
        """
        Non-raising form of :meth:`verify`.

        Returns:
            AuthResult with the identity on success
        """
        try:
            identity = await self.verify(token)
        except AuthenticationFailed as e:
            return AuthResult(
                success=False,
                error_message=e.message,
                error_code=_error_code(e.message),
            )
        return AuthResult(success=True, identity=identity)

    def extract_token(self, request: Any) -> Optional[str]:
        return self._token_extractor.extract(request)


def _error_code(message: str) -> str:
    return {
        "No authentication token provided": "NO_TOKEN",
        "Token has expired": "TOKEN_EXPIRED",
        "User not found": "USER_NOT_FOUND",
        "Email not verified": "EMAIL_NOT_VERIFIED",
    }.get(message, "INVALID_TOKEN")


class DefaultTokenExtractor:
    """
    Pulls a bearer token from an HTTP handshake request.

    Supports extraction from:
    - ``Authorization: Bearer xxx`` header
    - URL query parameters (?token=xxx)
    - Cookie headers (authToken=xxx)
    """

    def extract(self, request: Any) -> Optional[str]:
        headers = getattr(request, "headers", None) or {}
        return (
            self._extract_from_header(headers)
            or self._extract_from_query(request)
            or self._extract_from_cookie(headers)
        )

    @staticmethod
    def _extract_from_header(headers: Any) -> Optional[str]:
        value = headers.get("Authorization") or ""
        scheme, _, credential = value.partition(" ")
        if scheme.lower() == "bearer" and credential.strip():
            return credential.strip()
        return None

    @staticmethod
    def _extract_from_query(request: Any) -> Optional[str]:
        path = getattr(request, "path", None) or ""
        tokens = parse_qs(urlsplit(path).query).get("token", [])
        return tokens[0] if tokens else None

    @staticmethod
    def _extract_from_cookie(headers: Any) -> Optional[str]:
        for cookie in (headers.get("Cookie") or "").split(";"):
            name, _, value = cookie.strip().partition("=")
            if name == "authToken" and value:
                return value
        return None


class AuthenticationMiddleware:
    """
    Wraps the verifier for handshake requests.
    """

    def __init__(self, verifier: JWTTokenVerifier):
        self._verifier = verifier

    async def authenticate_request(self, request: Any) -> AuthResult:
        """
        Authenticate a handshake request.

        Args:
            request: Object exposing ``path`` and ``headers``

        Returns:
            AuthResult with authentication status
        """
        token = self._verifier.extract_token(request)
        return await self._verifier.authenticate(token)


__all__ = [
    'JWTTokenVerifier',
    'DefaultTokenExtractor',
    'AuthenticationMiddleware',
    'create_access_token',
]
