from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import unquote

from loguru import logger

from ai_chat_backend.capability import (
    PLACEHOLDER_FEATURES,
    Capability,
    ProviderCapability,
    parse_capability,
)
from ai_chat_backend.errors import (
    BuildError,
    ProviderError,
    UnauthorizedError,
    UpstreamTimeoutError,
)
from ai_chat_backend.persistence.repository import ChatRepository
from ai_chat_backend.provider import ProviderClient
from ai_chat_backend.providers.request_builder import ImageInput, RequestBuilder

NO_IMAGE_TEXT = "Please provide an image to analyze."
UPSTREAM_FAILURE_TEXT = "Sorry, the AI service is temporarily unavailable. Please try again later."
TIMEOUT_TEXT = "Sorry, the AI service took too long to respond. Please try again later."
EMPTY_RESPONSE_TEXT = "Sorry, I could not generate a response. Please try again."
IMAGE_PROCESSING_FAILED_TEXT = "Sorry, the image could not be processed. Please try again with a different image."
IMAGE_GENERATED_TEMPLATE = "Image generated successfully.\nImage URL: {url}"


def placeholder_text(feature_label: str) -> str:
    return f"{feature_label} is a feature in development."


class DispatchState(str, Enum):
    IDLE = "idle"
    BUILDING_REQUEST = "building_request"
    AWAITING_PROVIDER = "awaiting_provider"
    DONE = "done"
    DEGRADED = "degraded"


@dataclass
class DispatchResult:
    state: DispatchState
    text: str
    provider_capability: ProviderCapability | None = None
    image_url: str | None = None
    model: str | None = None
    transitions: list[DispatchState] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.state is DispatchState.DEGRADED


class _Run:
    """State trail of a single dispatch."""

    def __init__(self) -> None:
        self.transitions: list[DispatchState] = [DispatchState.IDLE]

    def enter(self, state: DispatchState) -> None:
        self.transitions.append(state)

    def done(
        self,
        text: str,
        capability: ProviderCapability,
        model: str,
        *,
        image_url: str | None = None,
    ) -> DispatchResult:
        self.enter(DispatchState.DONE)
        return DispatchResult(
            state=DispatchState.DONE,
            text=text,
            provider_capability=capability,
            image_url=image_url,
            model=model,
            transitions=self.transitions,
        )

    def degraded(
        self,
        text: str,
        capability: ProviderCapability | None = None,
        model: str | None = None,
    ) -> DispatchResult:
        self.enter(DispatchState.DEGRADED)
        return DispatchResult(
            state=DispatchState.DEGRADED,
            text=text,
            provider_capability=capability,
            model=model,
            transitions=self.transitions,
        )


class Dispatcher:
    """Routes a capability tag to one provider call, or to a degraded reply.

    Provider-side failures never escape ``dispatch``; every path ends in
    ``DONE`` or ``DEGRADED`` with non-empty user-visible text.
    """

    def __init__(
        self,
        builder: RequestBuilder,
        client: ProviderClient,
        repository: ChatRepository,
        *,
        public_file_base_url: str | None = None,
    ):
        self._builder = builder
        self._client = client
        self._repository = repository
        self._public_file_base_url = (public_file_base_url or "").strip() or None

    async def dispatch(
        self,
        text: str,
        capability_tag: str | None,
        model_hint: str | None = None,
        *,
        image_url: str | None = None,
        source_message_id: str | None = None,
    ) -> DispatchResult:
        run = _Run()
        capability = parse_capability(capability_tag)

        if capability in PLACEHOLDER_FEATURES:
            logger.info(f"Capability {capability.value} not available yet; returning placeholder")
            return run.degraded(placeholder_text(PLACEHOLDER_FEATURES[capability]))

        if capability is Capability.TEXT_TO_IMAGE:
            return await self._generate_image(run, text, model_hint)

        if capability is Capability.IMAGE_TO_TEXT:
            image = self.resolve_image(image_url=image_url, source_message_id=source_message_id)
            if image is None:
                logger.info("image_to_text requested without a resolvable image")
                return run.degraded(NO_IMAGE_TEXT, ProviderCapability.VISION)
            return await self._complete(run, ProviderCapability.VISION, text, model_hint, [image])

        if capability in (Capability.TEXT_TO_TEXT, Capability.CONVERSATION):
            image = self.resolve_image(image_url=image_url, source_message_id=source_message_id)
            if image is not None:
                logger.info(f"Image found in context; upgrading {capability.value} to vision")
                return await self._complete(run, ProviderCapability.VISION, text, model_hint, [image])
            return await self._complete(run, ProviderCapability.TEXT, text, model_hint, [])

        logger.info(f"Unrecognized capability tag {capability_tag!r}; using text completion")
        return await self._complete(run, ProviderCapability.TEXT, text, model_hint, [])

    def resolve_image(
        self,
        *,
        image_url: str | None = None,
        source_message_id: str | None = None,
    ) -> ImageInput | None:
        """Pick the image for a request without touching attachment state.

        An explicit URL wins. URLs under the public file base are served by us,
        so they become local storage keys. Otherwise the oldest image bound to
        the source message is used.
        """
        url = (image_url or "").strip()
        if url:
            base = self._public_file_base_url
            if base and url.startswith(base):
                storage_key = unquote(url[len(base):].split("?", 1)[0].lstrip("/"))
                if storage_key:
                    attachment = self._repository.find_attachment_by_storage_key(storage_key)
                    mime_type = attachment.mime_type if attachment is not None else None
                    return ImageInput.local(storage_key, mime_type)
            return ImageInput.remote(url)

        if not source_message_id:
            return None
        for attachment in self._repository.list_attachments(source_message_id):
            if attachment.is_image:
                return ImageInput.local(attachment.storage_key, attachment.mime_type)
        return None

    async def _complete(
        self,
        run: _Run,
        capability: ProviderCapability,
        text: str,
        model_hint: str | None,
        images: list[ImageInput],
    ) -> DispatchResult:
        run.enter(DispatchState.BUILDING_REQUEST)
        try:
            request = self._builder.build(capability, model_hint, text, images)
        except BuildError as ex:
            logger.warning(f"Could not build {capability.value} request: {ex}")
            fallback = IMAGE_PROCESSING_FAILED_TEXT if capability is ProviderCapability.VISION else EMPTY_RESPONSE_TEXT
            return run.degraded(fallback, capability)

        run.enter(DispatchState.AWAITING_PROVIDER)
        try:
            content = await asyncio.shield(self._client.complete_text(request))
        except ProviderError as ex:
            return run.degraded(self._failure_text(ex, request.model), capability, request.model)

        if content is None:
            return run.degraded(EMPTY_RESPONSE_TEXT, capability, request.model)
        return run.done(content, capability, request.model)

    async def _generate_image(self, run: _Run, text: str, model_hint: str | None) -> DispatchResult:
        capability = ProviderCapability.IMAGE_GENERATION
        run.enter(DispatchState.BUILDING_REQUEST)
        try:
            request = self._builder.build(capability, model_hint, text)
        except BuildError as ex:
            logger.warning(f"Could not build image generation request: {ex}")
            return run.degraded(EMPTY_RESPONSE_TEXT, capability)

        run.enter(DispatchState.AWAITING_PROVIDER)
        try:
            url = await asyncio.shield(self._client.generate_image(request))
        except ProviderError as ex:
            return run.degraded(self._failure_text(ex, request.model), capability, request.model)

        if url is None:
            return run.degraded(EMPTY_RESPONSE_TEXT, capability, request.model)
        return run.done(IMAGE_GENERATED_TEMPLATE.format(url=url), capability, request.model, image_url=url)

    @staticmethod
    def _failure_text(ex: ProviderError, model: str) -> str:
        if isinstance(ex, UpstreamTimeoutError):
            logger.warning(f"Provider timed out: model={model}: {ex}")
            return TIMEOUT_TEXT
        if isinstance(ex, UnauthorizedError):
            logger.error(f"Provider rejected credentials (HTTP {ex.status_code}): model={model}")
            return UPSTREAM_FAILURE_TEXT
        logger.error(f"Provider call failed: model={model}: {ex}")
        return UPSTREAM_FAILURE_TEXT
