from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from ai_chat_backend.capability import ProviderCapability
from ai_chat_backend.errors import BuildError
from ai_chat_backend.persistence.blobs import LocalBlobStorage

DEFAULT_VISION_PROMPT = "Please analyze this image."

DEFAULT_MODELS: dict[str, str] = {
    ProviderCapability.TEXT.value: "openai/gpt-4.1-nano",
    ProviderCapability.VISION.value: "openai/gpt-4.1-nano",
    ProviderCapability.IMAGE_GENERATION.value: "dall-e-3",
}

DEFAULT_MODEL_ALIASES: dict[str, dict[str, str]] = {
    "qwen2.5b-local": {
        ProviderCapability.TEXT.value: "openai/gpt-4.1-nano",
        ProviderCapability.VISION.value: "openai/gpt-4.1-nano",
        ProviderCapability.IMAGE_GENERATION.value: "dall-e-3",
    },
}


@dataclass(frozen=True)
class ImageInput:
    """An image for a vision request: a remote ``url`` or a local ``storage_key``."""

    url: str | None = None
    storage_key: str | None = None
    mime_type: str | None = None
    detail: str | None = None

    @classmethod
    def remote(cls, url: str, *, detail: str | None = None) -> ImageInput:
        return cls(url=url, detail=detail)

    @classmethod
    def local(cls, storage_key: str, mime_type: str | None = None, *, detail: str | None = None) -> ImageInput:
        return cls(storage_key=storage_key, mime_type=mime_type, detail=detail)

    @property
    def is_local(self) -> bool:
        return self.storage_key is not None


@dataclass(frozen=True)
class TextPart:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImagePart:
    url: str
    detail: str = "auto"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "image_url", "image_url": {"url": self.url, "detail": self.detail}}


@dataclass(frozen=True)
class ProviderRequest:
    capability: ProviderCapability
    model: str
    parts: tuple[TextPart | ImagePart, ...] = field(default_factory=tuple)
    max_tokens: int = 1000
    temperature: float = 0.7
    prompt: str | None = None
    n: int = 1
    size: str = "1024x1024"
    quality: str = "standard"

    def to_chat_payload(self) -> dict[str, Any]:
        if self.capability is ProviderCapability.TEXT:
            content: str | list[dict[str, Any]] = "\n".join(
                part.text for part in self.parts if isinstance(part, TextPart)
            )
        else:
            content = [part.to_dict() for part in self.parts]
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    def to_image_payload(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "prompt": self.prompt or "",
            "n": self.n,
            "size": self.size,
            "quality": self.quality,
        }


class RequestBuilder:
    def __init__(
        self,
        blobs: LocalBlobStorage,
        *,
        default_models: dict[str, str] | None = None,
        model_aliases: dict[str, dict[str, str]] | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        image_size: str = "1024x1024",
        image_quality: str = "standard",
        image_detail: str = "auto",
    ):
        self._blobs = blobs
        self._default_models = {**DEFAULT_MODELS, **(default_models or {})}
        self._model_aliases = DEFAULT_MODEL_ALIASES if model_aliases is None else model_aliases
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._image_size = image_size
        self._image_quality = image_quality
        self._image_detail = image_detail

    def resolve_model(self, capability: ProviderCapability, model: str | None) -> str:
        name = (model or "").strip()
        if not name:
            return self._default_models[capability.value]
        aliased = self._model_aliases.get(name)
        if aliased is not None:
            resolved = aliased.get(capability.value) or self._default_models[capability.value]
            logger.debug(f"Model alias {name!r} resolved to {resolved!r} for {capability.value}")
            return resolved
        return name

    def build(
        self,
        capability: ProviderCapability,
        model: str | None,
        text: str,
        image_inputs: list[ImageInput] | None = None,
    ) -> ProviderRequest:
        images = list(image_inputs or [])
        resolved_model = self.resolve_model(capability, model)
        text = (text or "").strip()

        if capability is ProviderCapability.IMAGE_GENERATION:
            if not text:
                raise BuildError("Image generation requires a prompt")
            return ProviderRequest(
                capability=capability,
                model=resolved_model,
                parts=(TextPart(text),),
                prompt=text,
                n=1,
                size=self._image_size,
                quality=self._image_quality,
            )

        if capability is ProviderCapability.VISION:
            if not images:
                raise BuildError("Vision request requires at least one image")
            parts: list[TextPart | ImagePart] = [TextPart(text or DEFAULT_VISION_PROMPT)]
            parts.extend(self._image_part(image) for image in images)
            return ProviderRequest(
                capability=capability,
                model=resolved_model,
                parts=tuple(parts),
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )

        if not text:
            raise BuildError("Text request has no content")
        return ProviderRequest(
            capability=capability,
            model=resolved_model,
            parts=(TextPart(text),),
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )

    def _image_part(self, image: ImageInput) -> ImagePart:
        detail = image.detail or self._image_detail
        if not image.is_local:
            if not image.url:
                raise BuildError("Image input has neither a URL nor a storage key")
            return ImagePart(url=image.url, detail=detail)
        return ImagePart(url=self._to_data_uri(image), detail=detail)

    def _to_data_uri(self, image: ImageInput) -> str:
        assert image.storage_key is not None
        try:
            data = self._blobs.read_file(image.storage_key)
        except (OSError, ValueError) as ex:
            raise BuildError(f"Could not read local image {image.storage_key}: {ex}") from ex
        mime = image.mime_type or mimetypes.guess_type(image.storage_key)[0] or "image/jpeg"
        payload = base64.b64encode(data).decode("ascii")
        logger.debug(f"Inlined local image: key={image.storage_key}, mime={mime}, bytes={len(data)}")
        return f"data:{mime};base64,{payload}"
