"""
Chat policy shared by the socket layer and the REST surface.

Validation, authorization and persistence live here so a message sent
over HTTP is stored exactly like one sent over the socket. Delivery is
not this module's concern.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from SocketChat.config import config
from SocketChat.core.exceptions import Forbidden, NotFound, ValidationFailed, persistence_guard
from SocketChat.core.logging.utils import LogTimer
from SocketChat.core.server.interfaces import ChatRepository, Identity
from SocketChat.core.storage.models import ChatMessage, Group, User

logger = logging.getLogger(__name__)

NOT_A_MEMBER = "You are not a member of this group"
CREATOR_CANNOT_LEAVE = "Group creator cannot leave the group"
ADMIN_REQUIRED = "Access denied. Admin privileges required."


class ChatService:
    """
    Validated, authorized access to the repository.

    Every repository call runs inside ``persistence_guard`` so backend
    failures surface as PersistenceFailed with an operation-specific
    message while NotFound/Forbidden raised along the way pass through.
    """

    def __init__(self, repository: ChatRepository):
        self._repository = repository

    @property
    def repository(self) -> ChatRepository:
        return self._repository

    @staticmethod
    def validate_content(content: Any) -> str:
        """Trim and length-check message content."""
        text = content.strip() if isinstance(content, str) else ""
        if not text:
            raise ValidationFailed("Message content is required")
        if len(text) > config.MAX_MESSAGE_LENGTH:
            raise ValidationFailed(f"Message cannot exceed {config.MAX_MESSAGE_LENGTH} characters")
        return text

    async def load_user(self, user_id: str, missing: str = "User not found") -> User:
        user = await self._repository.get_user(user_id)
        if user is None:
            raise NotFound(missing)
        return user

    async def load_group(self, group_id: str) -> Group:
        group = await self._repository.get_group(group_id)
        if group is None:
            raise NotFound("Group not found")
        return group

    # --------------------------- membership ---------------------------
    async def enrol(self, user_id: str, group_id: str) -> Group:
        """
        Ensure durable membership of ``user_id`` in the group.

        Idempotent: an existing member is left as is.
        """
        with persistence_guard("Error joining group"):
            group = await self.load_group(group_id)
            if group.is_member(user_id):
                return group
            with LogTimer("add group member", logger):
                updated = await self._repository.add_group_member(group_id, user_id)
        if updated is None:
            raise NotFound("Group not found")
        logger.info("User %s joined group %s", user_id, group_id)
        return updated

    async def withdraw(self, user_id: str, group_id: str) -> Group:
        """
        Remove ``user_id`` from durable membership.

        Idempotent for non-members; the creator can never leave.
        """
        with persistence_guard("Error leaving group"):
            group = await self.load_group(group_id)
            if group.creator_id == user_id:
                raise Forbidden(CREATOR_CANNOT_LEAVE)
            if not group.is_member(user_id):
                return group
            with LogTimer("remove group member", logger):
                updated = await self._repository.remove_group_member(group_id, user_id)
        if updated is None:
            raise NotFound("Group not found")
        logger.info("User %s left group %s", user_id, group_id)
        return updated

    async def create_group(self, creator: Identity, name: str, description: Optional[str] = None) -> Group:
        name = (name or "").strip()
        description = (description or "").strip()
        if not config.GROUP_NAME_MIN_LENGTH <= len(name) <= config.GROUP_NAME_MAX_LENGTH:
            raise ValidationFailed(
                f"Group name must be between {config.GROUP_NAME_MIN_LENGTH} "
                f"and {config.GROUP_NAME_MAX_LENGTH} characters"
            )
        if len(description) > config.GROUP_DESCRIPTION_MAX_LENGTH:
            raise ValidationFailed(
                f"Description cannot exceed {config.GROUP_DESCRIPTION_MAX_LENGTH} characters"
            )
        with persistence_guard("Error creating group"):
            if await self._repository.get_group_by_name(name) is not None:
                raise ValidationFailed("Group name already exists")
            try:
                group = await self._repository.create_group(name, creator.user_id, description)
            except ValueError as e:
                raise ValidationFailed("Group name already exists") from e
        logger.info("User %s created group %s (%s)", creator.user_id, group.id, group.name)
        return group

    # --------------------------- profiles ---------------------------
    @staticmethod
    def _clean_name(value: Optional[str], label: str) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not 1 <= len(value) <= config.NAME_MAX_LENGTH:
            raise ValidationFailed(f"{label} must be between 1 and {config.NAME_MAX_LENGTH} characters")
        return value

    async def update_profile(
        self,
        identity: Identity,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        first_name = self._clean_name(first_name, "First name")
        last_name = self._clean_name(last_name, "Last name")
        with persistence_guard("Error updating user profile"):
            user = await self._repository.update_user(
                identity.user_id, first_name=first_name, last_name=last_name
            )
        if user is None:
            raise NotFound("User not found")
        logger.info("User %s updated their profile", identity.user_id)
        return user

    # --------------------------- administration ---------------------------
    @staticmethod
    def require_admin(identity: Identity) -> Identity:
        if not identity.is_admin:
            logger.warning("Unauthorized admin access attempt by user: %s", identity.user_id)
            raise Forbidden(ADMIN_REQUIRED)
        return identity

    async def user_page(self, admin: Identity, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        """
        One page of users in sign-up order.

        Returns:
            ``{"users": [...], "pagination": {"total", "page", "pages"}}``
        """
        self.require_admin(admin)
        if page < 1:
            raise ValidationFailed("Page must be at least 1")
        if not 1 <= limit <= config.ADMIN_PAGE_MAX_LIMIT:
            raise ValidationFailed(f"Limit must be between 1 and {config.ADMIN_PAGE_MAX_LIMIT}")
        with persistence_guard("Error retrieving users"):
            total = (await self._repository.stats())["users"]
            users = await self._repository.page_users((page - 1) * limit, limit)
        return {
            "users": [u.to_dict() for u in users],
            "pagination": {"total": total, "page": page, "pages": -(-total // limit)},
        }

    async def update_user(
        self,
        admin: Identity,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: Optional[str] = None,
    ) -> User:
        self.require_admin(admin)
        first_name = self._clean_name(first_name, "First name")
        last_name = self._clean_name(last_name, "Last name")
        if role is not None and role not in config.ROLES:
            raise ValidationFailed(f"Role must be one of: {', '.join(config.ROLES)}")
        with persistence_guard("Error updating user"):
            user = await self._repository.update_user(
                user_id, first_name=first_name, last_name=last_name, role=role
            )
        if user is None:
            raise NotFound("User not found")
        logger.info("User %s updated by admin %s", user_id, admin.user_id)
        return user

    async def delete_user(self, admin: Identity, user_id: str) -> None:
        """
        Delete a user, their messages, memberships and the groups they created.

        Raises:
            ValidationFailed: An admin deleting their own account
            NotFound: Unknown user
        """
        self.require_admin(admin)
        if user_id == admin.user_id:
            raise ValidationFailed("You cannot delete your own account")
        with persistence_guard("Error deleting user"):
            deleted = await self._repository.delete_user(user_id)
        if not deleted:
            raise NotFound("User not found")
        logger.info("User %s deleted by admin %s", user_id, admin.user_id)

    async def system_stats(self, admin: Identity) -> Dict[str, Any]:
        self.require_admin(admin)
        with persistence_guard("Error retrieving system statistics"):
            counts = await self._repository.stats()
            recent = await self._repository.recent_users(5)
        return {"stats": counts, "recentUsers": [u.to_dict() for u in recent]}

    # --------------------------- messages ---------------------------
    async def post_private(self, sender: Identity, recipient_id: str, content: Any) -> Dict[str, Any]:
        """
        Persist a private message.

        Returns:
            The message payload with the denormalized sender
        """
        text = self.validate_content(content)
        with persistence_guard("Error sending message"):
            await self.load_user(recipient_id, missing="Recipient not found")
            with LogTimer("persist private message", logger):
                message = await self._repository.create_message(
                    sender.user_id, text, recipient_id=recipient_id
                )
        logger.debug("Stored private message %s from %s to %s", message.id, sender.user_id, recipient_id)
        return message.to_dict(sender=sender.summary())

    async def post_group(self, sender: Identity, group_id: str, content: Any) -> Dict[str, Any]:
        """
        Persist a group message after the membership check.

        Raises:
            NotFound: Unknown group
            Forbidden: Sender is not a durable member
        """
        text = self.validate_content(content)
        with persistence_guard("Error sending group message"):
            group = await self.load_group(group_id)
            if not group.is_member(sender.user_id):
                raise Forbidden(NOT_A_MEMBER)
            with LogTimer("persist group message", logger):
                message = await self._repository.create_message(
                    sender.user_id, text, group_id=group_id
                )
        logger.debug("Stored group message %s from %s in %s", message.id, sender.user_id, group_id)
        return message.to_dict(sender=sender.summary())

    async def private_history(self, viewer: Identity, other_id: str) -> List[Dict[str, Any]]:
        """Conversation between ``viewer`` and ``other_id``; marks incoming messages read."""
        with persistence_guard("Error fetching messages"):
            await self.load_user(other_id)
            marked = await self._repository.mark_read(other_id, viewer.user_id)
            messages = await self._repository.private_history(viewer.user_id, other_id)
            payloads = await self._render(messages)
        if marked:
            logger.debug("Marked %d messages from %s to %s as read", marked, other_id, viewer.user_id)
        return payloads

    async def group_history(self, viewer: Identity, group_id: str) -> List[Dict[str, Any]]:
        with persistence_guard("Error fetching group messages"):
            group = await self.load_group(group_id)
            if not group.is_member(viewer.user_id):
                raise Forbidden(NOT_A_MEMBER)
            return await self._render(await self._repository.group_history(group_id))

    async def _render(self, messages: Iterable[ChatMessage]) -> List[Dict[str, Any]]:
        senders: Dict[str, Dict[str, Any]] = {}
        out = []
        for message in messages:
            if message.sender_id not in senders:
                user = await self._repository.get_user(message.sender_id)
                senders[message.sender_id] = user.summary() if user else {"id": message.sender_id}
            out.append(message.to_dict(sender=senders[message.sender_id]))
        return out


__all__ = ['ChatService', 'NOT_A_MEMBER', 'CREATOR_CANNOT_LEAVE', 'ADMIN_REQUIRED']
