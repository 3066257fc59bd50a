from __future__ import annotations

import uuid
from typing import List, Sequence

import httpx

from uema_data.schemas.models import (
    ChatMessage,
    ChatRole,
    ChatSession,
    Document,
    Notification,
    Process,
    ProcessStatus,
    SectorType,
    User,
    UserRole,
    UserSettings,
    now_iso,
)
from uema_data.schemas.permissions import has_permission
from uema_data.services.auth import AuthService
from uema_data.services.responder import ContextItem, RuleBasedResponder, generate_summary, generate_tags
from uema_data.services.sessions import ChatSessionRepository
from uema_data.utils.cache import LocalCacheStore
from uema_data.utils.env import load_env_file
from uema_data.utils.logging import get_logger
from uema_data.utils.normalizer import (
    document_from_row,
    document_to_row,
    notification_from_row,
    process_from_row,
    process_to_row,
    rows_to_models,
    settings_from_row,
    settings_to_row,
)
from uema_data.utils.remote import RemoteClient
from uema_data.utils.settings import Settings, load_settings

log = get_logger(__name__)

DOCUMENTS_TABLE = "documents"
PROCESSES_TABLE = "processes"
SETTINGS_TABLE = "settings"
NOTIFICATIONS_TABLE = "notifications"


def advance_process(process: Process) -> Process:
    """Next state of ``process``: one step forward, or Completed once the last step is reached."""

    if process.current_step >= process.total_steps:
        return process.model_copy(update={"status": ProcessStatus.COMPLETED})
    return process.model_copy(update={"current_step": process.current_step + 1})


class DataService:
    """Entry point used by the app shell.

    Documents and processes are never cached locally: every read goes to the
    remote store and an unavailable backend reads as an empty list. Chat
    sessions go through ``ChatSessionRepository``; credentials and the cached
    user through ``AuthService``.
    """

    def __init__(
        self,
        settings: Settings,
        cache: LocalCacheStore,
        remote: RemoteClient,
        responder: RuleBasedResponder | None = None,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.remote = remote
        self.auth = AuthService(cache, remote)
        self.sessions = ChatSessionRepository(cache, remote)
        self.responder = responder or RuleBasedResponder()

    # Documents

    async def get_documents(self) -> List[Document]:
        rows = await self.remote.select(DOCUMENTS_TABLE, order="created_at.desc")
        return rows_to_models(rows, document_from_row)

    async def save_document(self, document: Document) -> None:
        await self.remote.upsert(DOCUMENTS_TABLE, document_to_row(document))

    async def delete_document(self, document_id: str) -> None:
        await self.remote.delete(DOCUMENTS_TABLE, filters={"id": document_id})

    # Processes

    async def get_processes(self) -> List[Process]:
        rows = await self.remote.select(PROCESSES_TABLE, order="created_at.desc")
        return rows_to_models(rows, process_from_row)

    async def get_process(self, process_id: str) -> Process | None:
        row = await self.remote.select_one(PROCESSES_TABLE, filters={"id": process_id})
        return process_from_row(row) if row is not None else None

    async def save_process(self, process: Process) -> None:
        await self.remote.upsert(PROCESSES_TABLE, process_to_row(process))

    async def delete_process(self, process_id: str) -> None:
        await self.remote.delete(PROCESSES_TABLE, filters={"id": process_id})

    # Chat sessions

    async def get_chat_sessions(self) -> List[ChatSession]:
        return await self.sessions.list_sessions()

    async def save_chat_session(self, session: ChatSession) -> None:
        await self.sessions.save_session(session)

    async def delete_chat_session(self, session_id: str) -> None:
        await self.sessions.delete_session(session_id)

    # Auth

    async def login(self, email: str, password: str) -> User | None:
        return await self.auth.login(email, password)

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        *,
        role: UserRole = UserRole.OPERATOR,
        sector: SectorType = SectorType.PROGEP,
    ) -> User | None:
        return await self.auth.register(name, email, password, role=role, sector=sector)

    async def get_user(self) -> User | None:
        return await self.auth.get_user()

    async def logout(self) -> None:
        await self.auth.logout()

    async def is_authenticated(self) -> bool:
        return await self.auth.is_authenticated()

    @staticmethod
    def has_permission(role: UserRole | str | None, capability: str) -> bool:
        return has_permission(role, capability)

    # Assistant

    def chat(self, utterance: str, context: Sequence[ContextItem] = ()) -> str:
        return self.responder.respond(utterance, context)

    async def send_message(self, session: ChatSession, utterance: str) -> ChatSession:
        """Answer ``utterance`` within ``session`` and persist the exchange."""

        documents = await self.get_documents()
        reply = self.chat(utterance, documents)
        updated = session.with_exchange(
            ChatMessage(id=f"msg_{uuid.uuid4().hex}", role=ChatRole.USER, content=utterance, timestamp=now_iso()),
            ChatMessage(id=f"msg_{uuid.uuid4().hex}", role=ChatRole.ASSISTANT, content=reply, timestamp=now_iso()),
        )
        await self.save_chat_session(updated)
        return updated

    @staticmethod
    def generate_tags(title: str, text: str = "") -> List[str]:
        return generate_tags(title, text)

    @staticmethod
    def generate_summary(title: str, text: str = "") -> str:
        return generate_summary(title, text)

    # Preferences and notifications

    async def get_settings(self) -> UserSettings | None:
        user = await self.get_user()
        if user is None:
            return None
        row = await self.remote.select_one(SETTINGS_TABLE, filters={"user_id": user.id})
        return settings_from_row(row) if row is not None else None

    async def save_settings(self, settings: UserSettings) -> None:
        user = await self.get_user()
        if user is None:
            log.warning("settings_save_skipped", reason="no_cached_user")
            return
        await self.remote.upsert(
            SETTINGS_TABLE,
            settings_to_row(settings, user_id=user.id),
            on_conflict="user_id",
        )

    async def get_unread_notifications(self) -> List[Notification]:
        user = await self.get_user()
        if user is None:
            return []
        rows = await self.remote.select(
            NOTIFICATIONS_TABLE,
            filters={"user_id": user.id, "read": False},
            order="created_at.desc",
        )
        return rows_to_models(rows, notification_from_row)

    async def mark_notification_read(self, notification_id: str) -> None:
        await self.remote.update(NOTIFICATIONS_TABLE, {"read": True}, filters={"id": notification_id})


def build_data_service(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DataService:
    """Wire the service once at process start; pass the result to callers."""

    if settings is None:
        load_env_file()
        settings = load_settings()
    if not settings.remote_configured:
        log.warning("remote_backend_unconfigured", cache_dir=str(settings.cache_dir))
    return DataService(
        settings=settings,
        cache=LocalCacheStore(settings.cache_dir),
        remote=RemoteClient(settings, transport=transport),
    )
