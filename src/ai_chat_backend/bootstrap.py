from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import httpx
from loguru import logger

from ai_chat_backend.app_config import AppConfig, RuntimeEnv
from ai_chat_backend.attachments.resolver import AttachmentResolver
from ai_chat_backend.dispatcher import Dispatcher
from ai_chat_backend.logging_config import setup_logging
from ai_chat_backend.persistence import (
    ChatRepository,
    ChatStore,
    EventEmitter,
    LocalBlobStorage,
    prune_orphaned_attachments,
)
from ai_chat_backend.provider import ProviderClient, create_provider_client
from ai_chat_backend.providers.request_builder import RequestBuilder
from ai_chat_backend.services.session_manager import SessionManager


@dataclass
class ChatRuntime:
    app: AppConfig
    store: ChatStore
    repository: ChatRepository
    events: EventEmitter
    blobs: LocalBlobStorage
    client: ProviderClient
    dispatcher: Dispatcher
    sessions: SessionManager
    log_descriptions: list[str]

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()
        self.store.close()


def _absolute(path: str) -> str:
    candidate = Path(path)
    if path == ":memory:" or candidate.is_absolute():
        return path
    return str(Path.cwd() / candidate)


def build_runtime(
    app: AppConfig,
    env: RuntimeEnv,
    *,
    client: ProviderClient | None = None,
    http_client: httpx.AsyncClient | None = None,
    configure_logging: bool = True,
) -> ChatRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers) if configure_logging else []

    store = ChatStore(_absolute(app.db_path))
    events = EventEmitter(store)
    repository = ChatRepository(store, events)
    blobs = LocalBlobStorage(_absolute(app.upload_dir))

    if client is None:
        client = create_provider_client(
            app.provider_name,
            env.provider_api_key,
            base_url=app.provider_base_url,
            text_timeout=app.text_timeout_seconds,
            image_timeout=app.image_timeout_seconds,
            http_client=http_client,
        )
    if not client.is_configured():
        logger.warning(f"{env.provider_env_var} is not set; provider calls will be rejected")

    builder = RequestBuilder(
        blobs,
        default_models=app.models,
        model_aliases=app.model_aliases,
        max_tokens=app.max_tokens,
        temperature=app.temperature,
        image_size=app.image_size,
        image_quality=app.image_quality,
        image_detail=app.image_detail,
    )
    dispatcher = Dispatcher(builder, client, repository, public_file_base_url=app.public_file_base_url)
    sessions = SessionManager(repository, AttachmentResolver(repository), dispatcher, events, blobs)

    if app.prune_on_startup:
        prune_orphaned_attachments(store, blobs, older_than_hours=app.orphan_retention_hours)

    return ChatRuntime(
        app=app,
        store=store,
        repository=repository,
        events=events,
        blobs=blobs,
        client=client,
        dispatcher=dispatcher,
        sessions=sessions,
        log_descriptions=log_descriptions,
    )
