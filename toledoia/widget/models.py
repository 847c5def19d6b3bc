"""Data model for the ToledoIA widget chat.

Wire models follow the JSON returned by the ToledoIA backend (snake_case
fields, numeric session and message ids, UUID widget ids). Chat messages also
carry two client-side fields: ``status`` tells a pending preview apart from a
server-confirmed message, and ``local_id`` is the preview's position in the
cache's own sequence. Server ids and local ids never share a namespace.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Language = Literal["pt", "en"]


class MessageType(str, Enum):
    """Kinds of chat message the backend stores."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


class MessageStatus(str, Enum):
    """Whether a cached message is a local preview or a server record."""

    PENDING = "pending"
    CONFIRMED = "confirmed"


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class WidgetInfo(BaseModel):
    """Widget identity resolved from an API key. Read-only reference data."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    greeting: str = ""
    avatar_url: str | None = None
    theme_color: str = "#6366f1"
    is_active: bool = True
    allowed_domains: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user_id: int | None = None

    @field_validator("allowed_domains", mode="before")
    @classmethod
    def _null_domains(cls, v: Any) -> Any:
        return [] if v is None else v


class ChatSession(BaseModel):
    """One conversation between a visitor and a widget."""

    model_config = ConfigDict(extra="ignore")

    id: int
    widget_id: str
    visitor_id: str
    started_at: datetime | None = None
    ended_at: datetime | None = None
    language: Language = "pt"
    referrer_url: str | None = None
    created_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


class ChatMessage(BaseModel):
    """A message in a session, either previewed locally or confirmed."""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    session_id: int
    message_type: MessageType = MessageType.TEXT
    content: str | None = None
    file_url: str | None = None
    created_at: datetime | None = None
    is_user: bool = True

    status: MessageStatus = MessageStatus.CONFIRMED
    local_id: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == MessageStatus.PENDING


# ---------------------------------------------------------------------------
# Operation payloads
# ---------------------------------------------------------------------------


@dataclass
class MessageExchange:
    """
    Result of a send or upload call.

    The backend answers both with the stored visitor message and, when the
    assistant replied in the same request, the assistant message.

    Attributes:
        user_message: The confirmed visitor message, if returned.
        ai_message: The assistant reply, if returned.
        file_url: Server URL of an uploaded file (uploads only).
    """

    user_message: ChatMessage | None = None
    ai_message: ChatMessage | None = None
    file_url: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "MessageExchange":
        user = payload.get("userMessage")
        ai = payload.get("aiMessage")
        return cls(
            user_message=ChatMessage.model_validate(user) if user else None,
            ai_message=ChatMessage.model_validate(ai) if ai else None,
            file_url=payload.get("fileUrl") or None,
        )

    @property
    def messages(self) -> list[ChatMessage]:
        """Confirmed messages in display order (visitor first)."""
        return [m for m in (self.user_message, self.ai_message) if m is not None]


@dataclass
class UploadFile:
    """
    A file the visitor wants to send.

    Attributes:
        filename: Name sent in the multipart body.
        content: Raw file bytes.
        content_type: MIME type; guessed from the file name when omitted.
    """

    filename: str
    content: bytes = field(repr=False)
    content_type: str = ""

    def __post_init__(self) -> None:
        if not self.content_type:
            guessed, _ = mimetypes.guess_type(self.filename)
            self.content_type = guessed or "application/octet-stream"

    @classmethod
    def from_path(cls, path: str | Path, content_type: str | None = None) -> "UploadFile":
        path = Path(path)
        return cls(
            filename=path.name,
            content=path.read_bytes(),
            content_type=content_type or "",
        )

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    @property
    def message_type(self) -> MessageType:
        return MessageType.IMAGE if self.is_image else MessageType.FILE

    @property
    def size(self) -> int:
        return len(self.content)
