from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any

from loguru import logger

from ai_chat_backend.attachments.resolver import AttachmentResolver
from ai_chat_backend.capability import DEFAULT_CAPABILITY, normalize_tag
from ai_chat_backend.dispatcher import Dispatcher, DispatchResult
from ai_chat_backend.errors import InvalidInputError, NotFoundError
from ai_chat_backend.persistence.blobs import LocalBlobStorage
from ai_chat_backend.persistence.events import EventEmitter
from ai_chat_backend.persistence.models import ChatSession, ClientAttachmentRef, Message
from ai_chat_backend.persistence.repository import ChatRepository
from ai_chat_backend.providers.request_builder import DEFAULT_VISION_PROMPT

DEFAULT_SESSION_TITLE = "New Chat"


def _coerce_refs(refs: Sequence[ClientAttachmentRef | Mapping[str, Any]] | None) -> list[ClientAttachmentRef]:
    """Accept refs as objects or client JSON dicts; drop refs that carry no hint at all."""
    out: list[ClientAttachmentRef] = []
    for ref in refs or ():
        if not isinstance(ref, ClientAttachmentRef):
            ref = ClientAttachmentRef.from_dict(dict(ref))
        if ref.file_id or ref.file_name or ref.original_name:
            out.append(ref)
    return out


class SessionManager:
    """Chat session lifecycle and the send pipeline.

    Every operation takes the verified caller id; a session that does not
    exist and one owned by someone else are indistinguishable (NotFoundError).
    """

    def __init__(
        self,
        repository: ChatRepository,
        resolver: AttachmentResolver,
        dispatcher: Dispatcher,
        events: EventEmitter,
        blobs: LocalBlobStorage | None = None,
    ):
        self._repository = repository
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._events = events
        self._blobs = blobs

    async def send(
        self,
        session_id: str,
        caller_id: str,
        text: str | None,
        attachment_refs: Sequence[ClientAttachmentRef | Mapping[str, Any]] | None = None,
        *,
        capability: str | None = None,
        model_hint: str | None = None,
        image_url: str | None = None,
    ) -> tuple[Message, Message]:
        refs = _coerce_refs(attachment_refs)
        content = (text or "").strip()
        if not content and not refs:
            raise InvalidInputError("Message text and attachments are both empty")

        session = self._owned_session(session_id, caller_id)
        if not content:
            content = DEFAULT_VISION_PROMPT

        user_message = self._repository.save_message(session.id, "user", content)
        if refs:
            resolved = self._resolver.resolve(user_message.id, refs)
            logger.info(
                f"Resolved attachments for message {user_message.id}: "
                f"bound={resolved.bound_count}, unresolved={len(resolved.unresolved)}"
            )

        result: DispatchResult = await self._dispatcher.dispatch(
            content,
            capability or session.capability,
            model_hint or session.model_hint,
            image_url=image_url,
            source_message_id=user_message.id if refs else None,
        )
        if result.degraded:
            logger.warning(f"Degraded reply in session {session.id}: {result.text!r}")

        assistant_message = self._repository.save_message(session.id, "assistant", result.text)
        logger.info(
            f"Send complete: session={session.id}, state={result.state.value}, "
            f"capability={result.provider_capability.value if result.provider_capability else None}"
        )
        return self._repository.get_message(user_message.id) or user_message, assistant_message

    # -- session bookkeeping ----------------------------------------------------

    def create_session(
        self,
        owner_id: str,
        *,
        title: str | None = None,
        capability: str | None = None,
        model_hint: str | None = None,
    ) -> ChatSession:
        if not (owner_id or "").strip():
            raise InvalidInputError("Owner id is required")
        tag = normalize_tag(capability) or DEFAULT_CAPABILITY.value
        session = self._repository.create_session(
            owner_id,
            title=(title or "").strip() or DEFAULT_SESSION_TITLE,
            capability=tag,
            model_hint=(model_hint or "").strip() or None,
        )
        logger.info(f"Session created: id={session.id}, owner={owner_id}, capability={tag}")
        return session

    def get_session(self, session_id: str, caller_id: str) -> ChatSession:
        return self._owned_session(session_id, caller_id)

    def list_sessions(self, owner_id: str, *, limit: int = 20, offset: int = 0) -> list[ChatSession]:
        return self._repository.list_sessions(owner_id, limit=limit, offset=offset)

    def rename_session(self, session_id: str, caller_id: str, title: str) -> ChatSession:
        cleaned = (title or "").strip()
        if not cleaned:
            raise InvalidInputError("Title must not be empty")
        return self._update(session_id, caller_id, "session.renamed", title=cleaned)

    def toggle_favorite(self, session_id: str, caller_id: str) -> ChatSession:
        session = self._owned_session(session_id, caller_id)
        return self._update(session.id, caller_id, "session.favorite_toggled", favorite=not session.favorite)

    def toggle_protected(self, session_id: str, caller_id: str) -> ChatSession:
        session = self._owned_session(session_id, caller_id)
        return self._update(session.id, caller_id, "session.protected_toggled", protected=not session.protected)

    def update_model(self, session_id: str, caller_id: str, model_hint: str | None) -> ChatSession:
        return self._update(
            session_id,
            caller_id,
            "session.model_changed",
            model_hint=(model_hint or "").strip() or None,
        )

    def update_capability(self, session_id: str, caller_id: str, capability: str) -> ChatSession:
        tag = normalize_tag(capability)
        if not tag:
            raise InvalidInputError("Capability must not be empty")
        return self._update(session_id, caller_id, "session.capability_changed", capability=tag)

    def get_messages(self, session_id: str, caller_id: str) -> list[Message]:
        session = self._owned_session(session_id, caller_id)
        return self._repository.list_messages(session.id)

    def delete_message(self, session_id: str, caller_id: str, message_id: str) -> None:
        session = self._owned_session(session_id, caller_id)
        message = self._repository.get_message(message_id)
        if message is None or message.session_id != session.id or message.deleted:
            raise NotFoundError(f"Message not found: {message_id}")

        for attachment in message.attachments:
            if self._blobs is not None:
                self._blobs.delete_file(attachment.storage_key)
            self._repository.delete_attachment(attachment.id)
        self._repository.soft_delete_message(message.id)
        logger.info(
            f"Message deleted: session={session.id}, message={message.id}, "
            f"attachments_removed={len(message.attachments)}"
        )

    def delete_session(self, session_id: str, caller_id: str) -> None:
        session = self._owned_session(session_id, caller_id)
        removed = self._repository.delete_session(session.id)
        if self._blobs is not None:
            for attachment in removed:
                self._blobs.delete_file(attachment.storage_key)
        logger.info(f"Session deleted: id={session.id}, owner={caller_id}, attachments_removed={len(removed)}")

    # -- helpers ------------------------------------------------------------------

    def _owned_session(self, session_id: str, caller_id: str) -> ChatSession:
        session = self._repository.get_session(session_id)
        if session is None or session.owner_id != caller_id:
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    def _update(self, session_id: str, caller_id: str, event_type: str, **changes: Any) -> ChatSession:
        session = self._owned_session(session_id, caller_id)
        updated = replace(session, **changes)
        self._repository.save_session(updated)
        self._events.emit(session.id, event_type, {"session_id": session.id, **changes})
        logger.info(f"Session updated: id={session.id}, {event_type}, changes={changes}")
        return updated
