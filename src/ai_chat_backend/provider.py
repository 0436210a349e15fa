from typing import Protocol, runtime_checkable

import httpx

from ai_chat_backend.providers.request_builder import ProviderRequest


@runtime_checkable
class ProviderClient(Protocol):
    async def complete_text(self, request: ProviderRequest) -> str | None:
        """Single chat-completion call (text or vision).

        Returns the first choice's content, or None when the provider answered
        with no usable content. Raises a ProviderError subclass on timeout,
        rejected credentials or any other upstream failure.
        """
        ...

    async def generate_image(self, request: ProviderRequest) -> str | None:
        """Single image-generation call. Returns the image URL or None."""
        ...

    def is_configured(self) -> bool:
        ...


def create_provider_client(
    provider_name: str,
    api_key: str,
    *,
    base_url: str,
    text_timeout: float = 30.0,
    image_timeout: float = 60.0,
    http_client: httpx.AsyncClient | None = None,
) -> ProviderClient:
    """Factory: create a ProviderClient by name."""
    name = provider_name.strip().lower()
    if name in ("openrouter", "openai"):
        from ai_chat_backend.providers.openai_client import OpenAIProviderClient
        return OpenAIProviderClient(
            api_key,
            base_url=base_url,
            text_timeout=text_timeout,
            image_timeout=image_timeout,
            http_client=http_client,
        )
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'openrouter', 'openai'")
