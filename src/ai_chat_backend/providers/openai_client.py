from __future__ import annotations

import httpx
import openai
from loguru import logger

from ai_chat_backend.errors import UnauthorizedError, UpstreamError, UpstreamTimeoutError
from ai_chat_backend.providers.request_builder import ProviderRequest

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


def _classify(ex: Exception) -> Exception:
    """Map an openai SDK exception onto the backend's provider error taxonomy."""
    if isinstance(ex, openai.APITimeoutError):
        return UpstreamTimeoutError(f"Provider call timed out: {ex}")
    if isinstance(ex, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return UnauthorizedError(f"Provider rejected credentials: {ex}", status_code=ex.status_code)
    if isinstance(ex, openai.APIStatusError):
        return UpstreamError(f"Provider returned HTTP {ex.status_code}: {ex}", status_code=ex.status_code)
    return UpstreamError(f"Provider call failed: {ex}")


class OpenAIProviderClient:
    """One-shot calls against an OpenAI-compatible API.

    ``max_retries=0`` keeps every call at-most-once; the only bound on a call
    is its timeout.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        text_timeout: float = 30.0,
        image_timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._text_timeout = text_timeout
        self._image_timeout = image_timeout
        self._client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
            http_client=http_client,
        )

    def is_configured(self) -> bool:
        return bool(self._api_key and self._api_key.strip())

    async def complete_text(self, request: ProviderRequest) -> str | None:
        payload = request.to_chat_payload()
        logger.debug(
            f"API request: capability={request.capability.value}, model={request.model}, "
            f"parts={len(request.parts)}, max_tokens={request.max_tokens}"
        )
        try:
            response = await self._client.chat.completions.create(**payload, timeout=self._text_timeout)
        except openai.OpenAIError as ex:
            raise _classify(ex) from ex

        try:
            choices = response.choices or []
            if not choices:
                logger.warning(f"Provider returned no choices: model={request.model}")
                return None
            content = choices[0].message.content if choices[0].message is not None else None
        except (AttributeError, TypeError) as ex:
            raise UpstreamError(f"Malformed completion response: {ex}") from ex

        if not content or not content.strip():
            logger.warning(f"Provider returned empty content: model={request.model}")
            return None
        logger.debug(f"API response: model={request.model}, text_len={len(content)}")
        return content

    async def generate_image(self, request: ProviderRequest) -> str | None:
        payload = request.to_image_payload()
        logger.debug(
            f"Image request: model={request.model}, size={request.size}, quality={request.quality}"
        )
        try:
            response = await self._client.images.generate(**payload, timeout=self._image_timeout)
        except openai.OpenAIError as ex:
            raise _classify(ex) from ex

        try:
            data = response.data or []
            url = data[0].url if data else None
        except (AttributeError, TypeError) as ex:
            raise UpstreamError(f"Malformed image response: {ex}") from ex

        if not url:
            logger.warning(f"Provider returned no image URL: model={request.model}")
            return None
        logger.debug(f"Image response: model={request.model}, url={url}")
        return url

    async def close(self) -> None:
        await self._client.close()
