from __future__ import annotations

from datetime import UTC, datetime, timedelta

from loguru import logger

from ai_chat_backend.persistence.blobs import LocalBlobStorage
from ai_chat_backend.persistence.events import EventEmitter
from ai_chat_backend.persistence.repository import ChatRepository
from ai_chat_backend.persistence.store import ChatStore


def prune_orphaned_attachments(
    store: ChatStore,
    blobs: LocalBlobStorage,
    *,
    older_than_hours: int,
) -> int:
    """Delete unbound attachments older than the cut-off, blob first. Returns the number removed."""
    cutoff = (datetime.now(UTC) - timedelta(hours=max(1, older_than_hours))).isoformat(timespec="microseconds")
    repository = ChatRepository(store, EventEmitter(store))

    removed = 0
    for attachment in repository.list_orphaned_attachments(cutoff):
        try:
            blobs.delete_file(attachment.storage_key)
        except (OSError, ValueError) as ex:
            logger.warning(f"Could not delete blob {attachment.storage_key}: {ex}")
            continue
        repository.delete_attachment(attachment.id)
        removed += 1

    if removed:
        logger.info(f"Pruned {removed} orphaned attachment(s) older than {cutoff}")
    return removed
