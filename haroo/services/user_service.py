"""
User profile, block list and device token operations.
"""

import secrets

from haroo.infrastructure.clock import Clock
from haroo.infrastructure.observability.logging import get_logger
from haroo.models.domain.user_domain import UserState, UserStatus
from haroo.repositories.base import UserRepository
from haroo.services.errors import InvalidArgumentError, NotFoundError
from haroo.services.trace_permission import resolve_write_permission

logger = get_logger(__name__)

HASH_ID_LENGTH = 6


def generate_hash_id(length: int = HASH_ID_LENGTH) -> str:
    """Short random public handle, e.g. "x9f3a2"."""
    return secrets.token_hex((length + 1) // 2)[:length]


async def ensure_user(users: UserRepository, user_id: str) -> UserState:
    """
    Return the caller's row, creating it on first authentication.

    Modes, likes and reports reference users(id), so every operation that
    writes one of those for the caller goes through here first.
    """
    user = await users.get(user_id)
    if user is None:
        user = await users.ensure(user_id, hash_id=generate_hash_id())
        logger.info("User created on first authentication", user_id=user_id, hash_id=user.hash_id)
    return user


class UserService:
    def __init__(self, users: UserRepository, clock: Clock):
        self.users = users
        self.clock = clock

    async def get_my_status(self, user_id: str) -> UserStatus:
        """
        Profile plus current trace write permission.

        The first call for a newly authenticated id creates the user row.
        """
        user = await ensure_user(self.users, user_id)
        permission = resolve_write_permission(user, self.clock.now(), self.clock.tz)
        return UserStatus(user=user, permission=permission)

    async def block_user(self, user_id: str, target_id: str) -> UserState:
        if not target_id:
            raise InvalidArgumentError("A target user is required", "target_required")
        if target_id == user_id:
            raise InvalidArgumentError("Cannot block yourself", "self_target")

        if not await self.users.get(target_id):
            raise NotFoundError("User not found", "user_not_found")
        await ensure_user(self.users, user_id)

        user = await self.users.add_block(user_id, target_id)
        if not user:
            raise NotFoundError("User not found", "user_not_found")

        logger.info("User blocked", user_id=user_id, blocked_id=target_id)
        return user

    async def unblock_user(self, user_id: str, target_id: str) -> UserState:
        if target_id == user_id:
            raise InvalidArgumentError("Cannot unblock yourself", "self_target")

        if not await self.users.get(target_id):
            raise NotFoundError("User not found", "user_not_found")
        await ensure_user(self.users, user_id)

        user = await self.users.remove_block(user_id, target_id)
        if not user:
            raise NotFoundError("User not found", "user_not_found")

        logger.info("User unblocked", user_id=user_id, unblocked_id=target_id)
        return user

    async def register_push_token(self, user_id: str, token: str) -> UserState:
        if not token or not token.strip():
            raise InvalidArgumentError("A device token is required", "token_required")

        await ensure_user(self.users, user_id)
        updated = await self.users.set_fcm_token(user_id, token.strip())
        logger.info("Push token registered", user_id=user_id)
        return updated
