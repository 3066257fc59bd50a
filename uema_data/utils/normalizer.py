"""Translation between Supabase rows and the local domain models.

Each entity has a single declarative table of ``FieldMapping`` entries. Reading
a row walks the remote names of a field in precedence order and keeps the first
present value; writing a model emits the value under every remote name so that
rows stay readable by both the current and the legacy schema.

Nothing in here raises on bad input: missing or malformed values fall back to
the documented defaults. Rows without an identifier, and rows the models still
reject after that, are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from uema_data.schemas.models import (
    ChatMessage,
    ChatRole,
    ChatSession,
    Document,
    DocumentStatus,
    DocumentType,
    Notification,
    Priority,
    Process,
    ProcessStatus,
    SectorType,
    User,
    UserRole,
    UserSettings,
)
from uema_data.utils.logging import get_logger
from uema_data.utils.observability import get_metrics

log = get_logger(__name__)

UNTITLED = "Sem título"
DEFAULT_AUTHOR = "Sistema"
DEFAULT_SIZE = "0 KB"
DEFAULT_SESSION_TITLE = "Nova conversa"
DEFAULT_CURRENT_STEP = 1
DEFAULT_TOTAL_STEPS = 5

E = TypeVar("E", bound=Enum)
M = TypeVar("M", bound=BaseModel)

# Status enumerations are not isomorphic across the boundary, so both
# directions are spelled out instead of derived from one another.
PROCESS_STATUS_FROM_REMOTE: Mapping[str, ProcessStatus] = {
    "Pending": ProcessStatus.PENDING,
    "InProgress": ProcessStatus.IN_PROGRESS,
    "In Progress": ProcessStatus.IN_PROGRESS,
    "Approved": ProcessStatus.COMPLETED,
    "Completed": ProcessStatus.COMPLETED,
    "Rejected": ProcessStatus.REJECTED,
}
PROCESS_STATUS_TO_REMOTE: Mapping[ProcessStatus, str] = {
    ProcessStatus.PENDING: "Pending",
    ProcessStatus.IN_PROGRESS: "InProgress",
    ProcessStatus.COMPLETED: "Approved",
    ProcessStatus.REJECTED: "Rejected",
}

DOCUMENT_STATUS_FROM_REMOTE: Mapping[str, DocumentStatus] = {
    "draft": DocumentStatus.DRAFT,
    "pending": DocumentStatus.DRAFT,
    "published": DocumentStatus.PUBLISHED,
    "archived": DocumentStatus.ARCHIVED,
}
DOCUMENT_STATUS_TO_REMOTE: Mapping[DocumentStatus, str] = {
    DocumentStatus.DRAFT: "draft",
    DocumentStatus.PUBLISHED: "published",
    DocumentStatus.ARCHIVED: "archived",
}

PRIORITY_FROM_REMOTE: Mapping[str, Priority] = {
    "low": Priority.LOW,
    "medium": Priority.MEDIUM,
    "high": Priority.HIGH,
    "urgent": Priority.HIGH,
}

ROLE_FROM_REMOTE: Mapping[str, UserRole] = {
    "admin": UserRole.ADMIN,
    "manager": UserRole.MANAGER,
    "operator": UserRole.OPERATOR,
    "user": UserRole.OPERATOR,
    "viewer": UserRole.VIEWER,
}


def _is_absent(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class FieldMapping:
    local: str
    remote: Tuple[str, ...]
    default: Any = None
    parse: Optional[Callable[[Any], Any]] = None
    serialize: Optional[Callable[[Any], Any]] = None
    writable: bool = True
    omit_empty: bool = False

    def read(self, row: Mapping[str, Any]) -> Any:
        for name in self.remote:
            value = row.get(name)
            if not _is_absent(value):
                return self.parse(value) if self.parse else value
        default = self.default
        return list(default) if isinstance(default, list) else default

    def write(self, model: Any, row: Dict[str, Any]) -> None:
        if not self.writable:
            return
        value = getattr(model, self.local)
        if self.omit_empty and _is_absent(value):
            return
        value = self.serialize(value) if self.serialize else _enum_value(value)
        for name in self.remote:
            row[name] = value


def _lookup_parser(table: Mapping[str, E], default: E) -> Callable[[Any], E]:
    lowered = {key.lower(): value for key, value in table.items()}

    def parse(value: Any) -> E:
        raw = str(value).strip()
        if raw in table:
            return table[raw]
        return lowered.get(raw.lower(), default)

    return parse


def _enum_parser(enum_cls: Type[E], default: E) -> Callable[[Any], E]:
    by_name = {member.value.lower(): member for member in enum_cls}

    def parse(value: Any) -> E:
        return by_name.get(str(value).strip().lower(), default)

    return parse


def parse_step(value: Any, default: int) -> int:
    """Parse a step counter that may arrive as an int, a float or digits in a string."""

    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value >= 1 else default
    try:
        parsed = int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 1 else default


def _parse_tags(value: Any) -> List[str]:
    if isinstance(value, str):
        return [tag.strip() for tag in value.split(",") if tag.strip()]
    if isinstance(value, (list, tuple)):
        return [str(tag) for tag in value if not _is_absent(tag)]
    return []


def _as_text(value: Any) -> str:
    return str(value)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def process_status_to_local(value: Any) -> ProcessStatus:
    if _is_absent(value):
        return ProcessStatus.PENDING
    return _lookup_parser(PROCESS_STATUS_FROM_REMOTE, ProcessStatus.PENDING)(value)


def process_status_to_remote(status: ProcessStatus | str) -> str:
    if not isinstance(status, ProcessStatus):
        status = process_status_to_local(status)
    return PROCESS_STATUS_TO_REMOTE[status]


def document_status_to_local(value: Any) -> DocumentStatus:
    if _is_absent(value):
        return DocumentStatus.DRAFT
    return _lookup_parser(DOCUMENT_STATUS_FROM_REMOTE, DocumentStatus.DRAFT)(value)


def document_status_to_remote(status: DocumentStatus) -> str:
    return DOCUMENT_STATUS_TO_REMOTE[status]


def format_file_size(size_bytes: Any) -> str | None:
    if isinstance(size_bytes, bool):
        return None
    try:
        value = float(size_bytes)
    except (TypeError, ValueError):
        return None
    if value < 0:
        return None
    return f"{int(value / 1024 + 0.5)} KB"


DOCUMENT_FIELDS: Sequence[FieldMapping] = (
    FieldMapping("id", ("id",), parse=_as_text),
    FieldMapping("title", ("title", "name"), default=UNTITLED, parse=_as_text),
    FieldMapping("type", ("type",), default=DocumentType.PDF, parse=_enum_parser(DocumentType, DocumentType.PDF)),
    FieldMapping(
        "sector",
        ("sector", "category"),
        default=SectorType.PROGEP,
        parse=_enum_parser(SectorType, SectorType.PROGEP),
    ),
    FieldMapping("created_at", ("created_at",), default="", parse=_as_text, writable=False),
    FieldMapping(
        "status",
        ("status",),
        default=DocumentStatus.DRAFT,
        parse=document_status_to_local,
        serialize=document_status_to_remote,
    ),
    FieldMapping("tags", ("tags",), default=[], parse=_parse_tags),
    FieldMapping("summary", ("summary", "description"), default="", parse=_as_text),
    FieldMapping("author", ("author", "uploaded_by"), default=DEFAULT_AUTHOR, parse=_as_text),
    FieldMapping("size", ("size",), default=None, parse=_as_text),
    FieldMapping("file_url", ("file_url",), parse=_as_text),
    FieldMapping("content", ("content_text",), parse=_as_text),
)

PROCESS_FIELDS: Sequence[FieldMapping] = (
    FieldMapping("id", ("id",), parse=_as_text),
    FieldMapping("number", ("number",), default="", parse=_as_text),
    FieldMapping("title", ("title",), default=UNTITLED, parse=_as_text),
    FieldMapping("description", ("description",), parse=_as_text),
    FieldMapping(
        "current_step",
        ("current_step",),
        default=DEFAULT_CURRENT_STEP,
        parse=lambda value: parse_step(value, DEFAULT_CURRENT_STEP),
    ),
    FieldMapping(
        "total_steps",
        ("total_steps",),
        default=DEFAULT_TOTAL_STEPS,
        parse=lambda value: parse_step(value, DEFAULT_TOTAL_STEPS),
    ),
    FieldMapping(
        "status",
        ("status",),
        default=ProcessStatus.PENDING,
        parse=process_status_to_local,
        serialize=process_status_to_remote,
    ),
    FieldMapping(
        "sector",
        ("sector", "current_sector"),
        default=SectorType.PROGEP,
        parse=_enum_parser(SectorType, SectorType.PROGEP),
    ),
    FieldMapping("assigned_to", ("assigned_to", "assignee"), parse=_as_text),
    FieldMapping(
        "priority",
        ("priority",),
        default=Priority.MEDIUM,
        parse=_lookup_parser(PRIORITY_FROM_REMOTE, Priority.MEDIUM),
    ),
    FieldMapping("created_at", ("created_at",), default="", parse=_as_text, writable=False),
    FieldMapping("updated_at", ("updated_at", "created_at"), default="", parse=_as_text, writable=False),
)

SESSION_FIELDS: Sequence[FieldMapping] = (
    FieldMapping("id", ("id",), parse=_as_text),
    FieldMapping("title", ("title",), default=DEFAULT_SESSION_TITLE, parse=_as_text),
    FieldMapping("created_at", ("created_at",), default="", parse=_as_text, omit_empty=True),
    FieldMapping("updated_at", ("updated_at",), default="", parse=_as_text, omit_empty=True),
)

MESSAGE_FIELDS: Sequence[FieldMapping] = (
    FieldMapping("id", ("id",), parse=_as_text),
    FieldMapping("role", ("role",), default=ChatRole.USER, parse=_enum_parser(ChatRole, ChatRole.USER)),
    FieldMapping("content", ("content",), default="", parse=_as_text),
    FieldMapping("timestamp", ("created_at",), default="", parse=_as_text, omit_empty=True),
)

USER_FIELDS: Sequence[FieldMapping] = (
    FieldMapping("id", ("id",), parse=_as_text),
    FieldMapping("name", ("name",), parse=_as_text),
    FieldMapping("email", ("email",), default="", parse=_as_text),
    FieldMapping(
        "role",
        ("role",),
        default=UserRole.OPERATOR,
        parse=_lookup_parser(ROLE_FROM_REMOTE, UserRole.OPERATOR),
    ),
    FieldMapping(
        "sector",
        ("sector",),
        default=SectorType.PROGEP,
        parse=_enum_parser(SectorType, SectorType.PROGEP),
    ),
    FieldMapping("avatar_url", ("avatar_url",), parse=_as_text),
)

SETTINGS_FIELDS: Sequence[FieldMapping] = (
    FieldMapping("theme", ("theme",), default="light", parse=_as_text),
    FieldMapping("language", ("language",), default="pt-BR", parse=_as_text),
    FieldMapping("notifications", ("notifications",), default=True, parse=_parse_bool),
    FieldMapping(
        "accessibility",
        ("accessibility",),
        default=None,
        parse=lambda value: dict(value) if isinstance(value, Mapping) else {},
    ),
)

NOTIFICATION_FIELDS: Sequence[FieldMapping] = (
    FieldMapping("id", ("id",), parse=_as_text),
    FieldMapping("title", ("title",), default="", parse=_as_text),
    FieldMapping("message", ("message",), default="", parse=_as_text),
    FieldMapping("type", ("type",), default="info", parse=_as_text),
    FieldMapping("read", ("read",), default=False, parse=_parse_bool),
    FieldMapping("created_at", ("created_at",), default="", parse=_as_text),
    FieldMapping("link", ("link",), parse=_as_text),
)


def _read_fields(row: Mapping[str, Any], fields: Iterable[FieldMapping]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for mapping in fields:
        value = mapping.read(row)
        if value is not None:
            values[mapping.local] = value
    return values


def _write_fields(model: Any, fields: Iterable[FieldMapping]) -> Dict[str, Any]:
    row: Dict[str, Any] = {}
    for mapping in fields:
        mapping.write(model, row)
    return row


def _has_identifier(row: Any) -> bool:
    return isinstance(row, Mapping) and not _is_absent(row.get("id"))


def _build(model_cls: Type[M], values: Dict[str, Any]) -> M | None:
    try:
        return model_cls(**values)
    except ValidationError as exc:
        get_metrics().increment_counter(f"normalizer_dropped::{model_cls.__name__}")
        log.warning(
            "normalizer_row_dropped",
            model=model_cls.__name__,
            row_id=values.get("id"),
            errors=[".".join(str(part) for part in error["loc"]) for error in exc.errors()],
        )
        return None


def document_from_row(row: Any) -> Document | None:
    if not _has_identifier(row):
        return None
    values = _read_fields(row, DOCUMENT_FIELDS)
    if "size" not in values:
        values["size"] = format_file_size(row.get("file_size")) or DEFAULT_SIZE
    return _build(Document, values)


def document_to_row(document: Document) -> Dict[str, Any]:
    return _write_fields(document, DOCUMENT_FIELDS)


def process_from_row(row: Any) -> Process | None:
    if not _has_identifier(row):
        return None
    return _build(Process, _read_fields(row, PROCESS_FIELDS))


def process_to_row(process: Process) -> Dict[str, Any]:
    return _write_fields(process, PROCESS_FIELDS)


def message_from_row(row: Any) -> ChatMessage | None:
    if not _has_identifier(row):
        return None
    return _build(ChatMessage, _read_fields(row, MESSAGE_FIELDS))


def session_from_row(row: Any) -> ChatSession | None:
    if not _has_identifier(row):
        return None
    values = _read_fields(row, SESSION_FIELDS)
    nested = row.get("chat_messages")
    messages: List[ChatMessage] = []
    if isinstance(nested, list):
        for item in nested:
            message = message_from_row(item)
            if message is not None:
                messages.append(message)
    values["messages"] = messages
    return _build(ChatSession, values)


def session_to_row(session: ChatSession, *, user_id: str | None) -> Dict[str, Any]:
    row = _write_fields(session, SESSION_FIELDS)
    row["user_id"] = user_id
    return row


def messages_to_rows(session: ChatSession) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for message in session.messages:
        row = _write_fields(message, MESSAGE_FIELDS)
        row["session_id"] = session.id
        rows.append(row)
    return rows


def user_from_row(row: Any) -> User | None:
    if not _has_identifier(row):
        return None
    values = _read_fields(row, USER_FIELDS)
    if "name" not in values:
        values["name"] = values.get("email", "").split("@")[0] or "Usuário"
    return _build(User, values)


def user_to_row(user: User, *, password_hash: str | None = None) -> Dict[str, Any]:
    row = _write_fields(user, USER_FIELDS)
    if password_hash is not None:
        row["password_hash"] = password_hash
    return row


def settings_from_row(row: Any) -> UserSettings | None:
    if not isinstance(row, Mapping):
        return None
    return _build(UserSettings, _read_fields(row, SETTINGS_FIELDS))


def settings_to_row(settings: UserSettings, *, user_id: str) -> Dict[str, Any]:
    row = _write_fields(settings, SETTINGS_FIELDS)
    row["user_id"] = user_id
    return row


def notification_from_row(row: Any) -> Notification | None:
    if not _has_identifier(row):
        return None
    return _build(Notification, _read_fields(row, NOTIFICATION_FIELDS))


def rows_to_models(rows: Iterable[Any], convert: Callable[[Any], Any]) -> List[Any]:
    models = []
    for row in rows:
        model = convert(row)
        if model is not None:
            models.append(model)
    return models
