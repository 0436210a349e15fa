from ai_chat_backend.persistence.blobs import LocalBlobStorage
from ai_chat_backend.persistence.events import EventEmitter
from ai_chat_backend.persistence.models import Attachment, ChatSession, ClientAttachmentRef, MediaKind, Message
from ai_chat_backend.persistence.pruning import prune_orphaned_attachments
from ai_chat_backend.persistence.repository import ChatRepository
from ai_chat_backend.persistence.store import ChatStore

__all__ = [
    "Attachment",
    "ChatRepository",
    "ChatSession",
    "ChatStore",
    "ClientAttachmentRef",
    "EventEmitter",
    "LocalBlobStorage",
    "MediaKind",
    "Message",
    "prune_orphaned_attachments",
]
