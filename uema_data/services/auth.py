from __future__ import annotations

import uuid

from pydantic import ValidationError

from uema_data.schemas.models import SectorType, User, UserRole
from uema_data.utils.cache import AUTHENTICATED_KEY, USER_KEY, LocalCacheStore
from uema_data.utils.logging import get_logger
from uema_data.utils.normalizer import user_from_row, user_to_row
from uema_data.utils.remote import RemoteClient
from uema_data.utils.security import hash_password, normalize_email, validate_password, verify_password

log = get_logger(__name__)

USERS_TABLE = "users"


async def read_cached_user(cache: LocalCacheStore) -> User | None:
    payload = await cache.get_json(USER_KEY)
    if not isinstance(payload, dict):
        return None
    try:
        return User.model_validate(payload)
    except ValidationError as exc:
        log.warning("cached_user_invalid", error=str(exc))
        return None


class AuthService:
    """Credential checks against the ``users`` table plus the cached session snapshot."""

    def __init__(self, cache: LocalCacheStore, remote: RemoteClient) -> None:
        self.cache = cache
        self.remote = remote

    async def login(self, email: str, password: str) -> User | None:
        normalized = normalize_email(email)
        if not normalized or not password:
            return None
        if not self.remote.configured:
            log.warning("login_unavailable_offline", email=normalized)
            return None
        row = await self.remote.select_one(USERS_TABLE, filters={"email": normalized})
        if row is None:
            log.info("login_rejected", email=normalized, reason="unknown_email")
            return None
        if not verify_password(password, row.get("password_hash")):
            log.info("login_rejected", email=normalized, reason="bad_password")
            return None
        user = user_from_row(row)
        if user is None:
            log.warning("login_rejected", email=normalized, reason="malformed_user_row")
            return None
        await self.cache.set_json(USER_KEY, user.to_cache())
        await self.cache.set(AUTHENTICATED_KEY, "true")
        log.info("login_succeeded", user_id=user.id, role=user.role.value)
        return user

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        *,
        role: UserRole = UserRole.OPERATOR,
        sector: SectorType = SectorType.PROGEP,
    ) -> User | None:
        validate_password(password)
        normalized = normalize_email(email)
        if not normalized or "@" not in normalized:
            raise ValueError("A valid email address is required.")
        existing = await self.remote.select_one(USERS_TABLE, filters={"email": normalized}, columns="id")
        if existing is not None:
            raise ValueError("Email already registered.")
        user = User(
            id=uuid.uuid4().hex,
            name=name.strip() or normalized.split("@")[0],
            email=normalized,
            role=role,
            sector=sector,
        )
        stored = await self.remote.upsert(USERS_TABLE, user_to_row(user, password_hash=hash_password(password)))
        if not stored:
            return None
        log.info("user_registered", user_id=user.id, role=user.role.value)
        return user

    async def get_user(self) -> User | None:
        return await read_cached_user(self.cache)

    async def is_authenticated(self) -> bool:
        return (await self.cache.get(AUTHENTICATED_KEY)) == "true"

    async def logout(self) -> None:
        await self.cache.clear_session()
        log.info("logout_completed")
