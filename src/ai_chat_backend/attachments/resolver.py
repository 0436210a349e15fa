from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from loguru import logger

from ai_chat_backend.persistence.models import Attachment, ClientAttachmentRef
from ai_chat_backend.persistence.repository import ChatRepository

Matcher = Callable[[ChatRepository, ClientAttachmentRef], tuple[Attachment | None, bool]]


def match_by_file_id(repository: ChatRepository, ref: ClientAttachmentRef) -> tuple[Attachment | None, bool]:
    if not ref.file_id:
        return None, False
    attachment = repository.find_attachment_by_storage_key(ref.file_id)
    return attachment, attachment is not None


def match_by_file_name(repository: ChatRepository, ref: ClientAttachmentRef) -> tuple[Attachment | None, bool]:
    if not ref.file_name:
        return None, False
    attachment = repository.find_attachment_by_storage_key(ref.file_name)
    return attachment, attachment is not None


def match_unbound_by_original_name(
    repository: ChatRepository,
    ref: ClientAttachmentRef,
) -> tuple[Attachment | None, bool]:
    if not ref.original_name:
        return None, False
    candidates = repository.find_unbound_attachments_by_original_name(ref.original_name)
    if not candidates:
        return None, False
    return candidates[0], True


# Tried in order; the first hit wins.
DEFAULT_MATCHERS: tuple[Matcher, ...] = (
    match_by_file_id,
    match_by_file_name,
    match_unbound_by_original_name,
)


@dataclass
class ResolveResult:
    bound_count: int = 0
    bound: list[Attachment] = field(default_factory=list)
    unresolved: list[ClientAttachmentRef] = field(default_factory=list)


class AttachmentResolver:
    """Binds client attachment references to a freshly persisted message.

    Best effort: a ref that cannot be matched, is already owned by another
    message, or loses a concurrent bind is reported unresolved rather than
    raised.
    """

    def __init__(self, repository: ChatRepository, matchers: Sequence[Matcher] = DEFAULT_MATCHERS):
        self._repository = repository
        self._matchers = tuple(matchers)

    def resolve(self, message_id: str, refs: Sequence[ClientAttachmentRef]) -> ResolveResult:
        result = ResolveResult()
        for ref in refs:
            attachment = self._match(ref)
            if attachment is None:
                self._report_unresolved(result, ref, "no matching attachment")
                continue

            if any(seen.id == attachment.id for seen in result.bound):
                logger.debug(f"Duplicate attachment ref ({ref.describe()}) for attachment {attachment.id}")
                continue

            if attachment.message_id == message_id:
                result.bound_count += 1
                result.bound.append(attachment)
                continue

            if attachment.message_id is not None:
                self._report_unresolved(
                    result,
                    ref,
                    f"attachment {attachment.id} already bound to message {attachment.message_id}",
                )
                continue

            if not self._repository.bind_attachment(attachment.id, message_id):
                self._report_unresolved(result, ref, f"attachment {attachment.id} was bound concurrently")
                continue

            bound = self._repository.get_attachment(attachment.id) or attachment
            result.bound_count += 1
            result.bound.append(bound)
            logger.info(
                f"Attachment bound: attachment={attachment.id}, key={attachment.storage_key}, message={message_id}"
            )
        return result

    def _match(self, ref: ClientAttachmentRef) -> Attachment | None:
        for matcher in self._matchers:
            attachment, found = matcher(self._repository, ref)
            if found:
                return attachment
        return None

    def _report_unresolved(self, result: ResolveResult, ref: ClientAttachmentRef, reason: str) -> None:
        result.unresolved.append(ref)
        logger.warning(
            f"Unresolved attachment ref ({ref.describe()}): {reason}; "
            f"unbound pool size={self._repository.count_unbound_attachments()}"
        )
