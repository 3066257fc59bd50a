from __future__ import annotations

from typing import Any, List

from pydantic import ValidationError

from uema_data.schemas.models import ChatSession, User
from uema_data.services.auth import read_cached_user
from uema_data.utils.cache import CHATS_KEY, LocalCacheStore, json_dumps, json_loads
from uema_data.utils.logging import get_logger
from uema_data.utils.normalizer import messages_to_rows, rows_to_models, session_from_row, session_to_row
from uema_data.utils.observability import get_metrics
from uema_data.utils.remote import RemoteClient

log = get_logger(__name__)

CHAT_SESSIONS_TABLE = "chat_sessions"
CHAT_MESSAGES_TABLE = "chat_messages"


def _cached_list(blob: str | None) -> List[Any]:
    payload = json_loads(blob, [])
    return payload if isinstance(payload, list) else []


def _parse_cached_sessions(entries: List[Any]) -> List[ChatSession]:
    sessions: List[ChatSession] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            sessions.append(ChatSession.model_validate(entry))
        except ValidationError as exc:
            log.warning("cached_session_invalid", session_id=entry.get("id"), error=str(exc))
    return sessions


class ChatSessionRepository:
    """Chat history with the remote copy preferred and the local cache as fallback.

    Reads return the remote list whole when it is reachable and non-empty,
    otherwise the cached list. Writes land in the cache first and are then
    mirrored remotely on a best-effort basis. There is no timestamp comparison
    between the two copies: whichever write reached a store last wins there.
    """

    def __init__(self, cache: LocalCacheStore, remote: RemoteClient) -> None:
        self.cache = cache
        self.remote = remote

    async def local_sessions(self) -> List[ChatSession]:
        await self.cache.initialize()
        return _parse_cached_sessions(_cached_list(await self.cache.get(CHATS_KEY)))

    async def _remote_sessions(self, user: User) -> List[ChatSession]:
        rows = await self.remote.select(
            CHAT_SESSIONS_TABLE,
            columns="*,chat_messages(*)",
            filters={"user_id": user.id},
            order="updated_at.desc",
            extra_params={"chat_messages.order": "created_at.asc"},
        )
        return rows_to_models(rows, session_from_row)

    async def list_sessions(self) -> List[ChatSession]:
        metrics = get_metrics()
        user = await read_cached_user(self.cache)
        if self.remote.configured and user is not None:
            sessions = await self._remote_sessions(user)
            if sessions:
                metrics.increment_counter("chat_source::remote")
                return sessions
        metrics.increment_counter("chat_source::local")
        return await self.local_sessions()

    async def save_session(self, session: ChatSession) -> None:
        await self.cache.initialize()
        payload = session.to_cache()

        def replace_or_prepend(blob: str | None) -> str:
            entries = _cached_list(blob)
            for index, entry in enumerate(entries):
                if isinstance(entry, dict) and entry.get("id") == session.id:
                    entries[index] = payload
                    break
            else:
                entries.insert(0, payload)
            return json_dumps(entries)

        # Local write first; CacheWriteError propagates to the caller.
        await self.cache.update(CHATS_KEY, replace_or_prepend)
        await self._mirror(session)

    async def _mirror(self, session: ChatSession) -> None:
        if not self.remote.configured:
            return
        user = await read_cached_user(self.cache)
        if user is None:
            get_metrics().increment_counter("chat_mirror::skipped")
            log.info("chat_mirror_skipped", session_id=session.id, reason="no_cached_user")
            return
        if not await self.remote.upsert(CHAT_SESSIONS_TABLE, session_to_row(session, user_id=user.id)):
            get_metrics().increment_counter("chat_mirror::failed")
            log.warning("chat_mirror_failed", session_id=session.id, stage="session")
            return
        if not await self.remote.upsert(CHAT_MESSAGES_TABLE, messages_to_rows(session)):
            get_metrics().increment_counter("chat_mirror::failed")
            log.warning("chat_mirror_failed", session_id=session.id, stage="messages")
            return
        get_metrics().increment_counter("chat_mirror::ok")

    async def delete_session(self, session_id: str) -> None:
        await self.cache.initialize()

        def drop(blob: str | None) -> str:
            entries = _cached_list(blob)
            return json_dumps([entry for entry in entries if not (isinstance(entry, dict) and entry.get("id") == session_id)])

        await self.cache.update(CHATS_KEY, drop)
        if not self.remote.configured:
            return
        # Messages reference the session row, so they go first.
        if await self.remote.delete(CHAT_MESSAGES_TABLE, filters={"session_id": session_id}):
            await self.remote.delete(CHAT_SESSIONS_TABLE, filters={"id": session_id})
