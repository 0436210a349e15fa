from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MediaKind(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"
    OTHER = "other"


@dataclass(frozen=True)
class ChatSession:
    id: str
    owner_id: str
    title: str
    capability: str
    model_hint: str | None
    favorite: bool
    protected: bool
    message_count: int
    created_at: str
    last_activity_at: str


@dataclass(frozen=True)
class Attachment:
    id: str
    message_id: str | None
    storage_key: str
    original_name: str | None
    mime_type: str
    byte_size: int
    media_kind: MediaKind
    width: int | None
    height: int | None
    created_at: str

    @property
    def is_bound(self) -> bool:
        return self.message_id is not None

    @property
    def is_image(self) -> bool:
        return self.media_kind is MediaKind.IMAGE


@dataclass(frozen=True)
class Message:
    id: str
    session_id: str
    seq: int
    role: str
    content: str
    created_at: str
    deleted: bool = False
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ClientAttachmentRef:
    """Identity hints a client sends for a previously uploaded file."""

    file_id: str | None = None
    file_name: str | None = None
    original_name: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientAttachmentRef:
        def _clean(key: str) -> str | None:
            value = data.get(key)
            if value is None:
                return None
            text = str(value).strip()
            return text or None

        return cls(
            file_id=_clean("fileId"),
            file_name=_clean("fileName"),
            original_name=_clean("originalName"),
        )

    def describe(self) -> str:
        return f"fileId={self.file_id}, fileName={self.file_name}, originalName={self.original_name}"
