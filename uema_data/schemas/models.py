from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


class SectorType(str, Enum):
    PROGEP = "PROGEP"
    PROPLAD = "PROPLAD"
    PROTOCOLO = "PROTOCOLO"
    PROEXAE = "PROEXAE"
    PPG = "PPG"
    PROG = "PROG"


class DocumentType(str, Enum):
    PDF = "PDF"
    DOCX = "DOCX"
    XLSX = "XLSX"


class DocumentStatus(str, Enum):
    DRAFT = "Draft"
    PUBLISHED = "Published"
    ARCHIVED = "Archived"


class ProcessStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    REJECTED = "Rejected"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class UserRole(str, Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    OPERATOR = "Operator"
    VIEWER = "Viewer"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class DomainModel(BaseModel):
    """Local domain shape: snake_case attributes, camelCase when serialized to the cache."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_cache(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Document(DomainModel):
    id: str = Field(min_length=1)
    title: str
    type: DocumentType = DocumentType.PDF
    sector: SectorType = SectorType.PROGEP
    created_at: str = ""
    status: DocumentStatus = DocumentStatus.DRAFT
    tags: List[str] = Field(default_factory=list)
    summary: Optional[str] = None
    author: str = "Sistema"
    size: str = "0 KB"
    file_url: Optional[str] = None
    content: Optional[str] = None


class Process(DomainModel):
    id: str = Field(min_length=1)
    number: str = ""
    title: str
    description: Optional[str] = None
    current_step: int = 1
    total_steps: int = 5
    status: ProcessStatus = ProcessStatus.PENDING
    sector: SectorType = SectorType.PROGEP
    assigned_to: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    created_at: str = ""
    updated_at: str = ""


class ChatMessage(DomainModel):
    id: str
    role: ChatRole
    content: str
    timestamp: str = Field(default_factory=now_iso)


class ChatSession(DomainModel):
    id: str = Field(min_length=1)
    title: str = "Nova conversa"
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)
    messages: List[ChatMessage] = Field(default_factory=list)

    def with_exchange(self, *messages: ChatMessage) -> "ChatSession":
        """Copy of the session with ``messages`` appended after the known ones."""

        return self.model_copy(
            update={
                "messages": [*self.messages, *messages],
                "updated_at": now_iso(),
            },
            deep=True,
        )


class User(DomainModel):
    id: str = Field(min_length=1)
    name: str
    email: str
    role: UserRole = UserRole.OPERATOR
    sector: SectorType = SectorType.PROGEP
    avatar_url: Optional[str] = None


class UserSettings(DomainModel):
    theme: str = "light"
    language: str = "pt-BR"
    notifications: bool = True
    accessibility: dict = Field(default_factory=dict)


class Notification(DomainModel):
    id: str
    title: str = ""
    message: str = ""
    type: str = "info"
    read: bool = False
    created_at: str = ""
    link: Optional[str] = None
