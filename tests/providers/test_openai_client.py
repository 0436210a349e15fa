import asyncio
import json
import unittest

import httpx

from ai_chat_backend.capability import ProviderCapability
from ai_chat_backend.errors import UnauthorizedError, UpstreamError, UpstreamTimeoutError
from ai_chat_backend.providers.openai_client import OpenAIProviderClient
from ai_chat_backend.providers.request_builder import ProviderRequest, TextPart


def _completion(content: str | None) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "openai/gpt-4.1-nano",
        "choices": [
            {
                "index": 0,
                "finish_reason": "stop",
                "message": {"role": "assistant", "content": content},
            }
        ],
    }


def _text_request() -> ProviderRequest:
    return ProviderRequest(
        capability=ProviderCapability.TEXT,
        model="openai/gpt-4.1-nano",
        parts=(TextPart("hello"),),
    )


def _image_request() -> ProviderRequest:
    return ProviderRequest(
        capability=ProviderCapability.IMAGE_GENERATION,
        model="dall-e-3",
        parts=(TextPart("a fox"),),
        prompt="a fox",
    )


class OpenAIProviderClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []

    def _client(self, respond) -> OpenAIProviderClient:
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return respond(request)

        return OpenAIProviderClient(
            "sk-test",
            base_url="https://provider.test/v1",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

    def test_complete_text_returns_first_choice(self) -> None:
        client = self._client(lambda r: httpx.Response(200, json=_completion("hi there")))

        result = asyncio.run(client.complete_text(_text_request()))

        self.assertEqual("hi there", result)
        self.assertEqual(1, len(self.requests))
        self.assertTrue(self.requests[0].url.path.endswith("/chat/completions"))
        body = json.loads(self.requests[0].content)
        self.assertEqual("openai/gpt-4.1-nano", body["model"])
        self.assertEqual([{"role": "user", "content": "hello"}], body["messages"])
        self.assertEqual(1000, body["max_tokens"])
        self.assertEqual(0.7, body["temperature"])

    def test_empty_choices_is_soft_failure(self) -> None:
        payload = _completion("x")
        payload["choices"] = []
        client = self._client(lambda r: httpx.Response(200, json=payload))

        self.assertIsNone(asyncio.run(client.complete_text(_text_request())))

    def test_empty_content_is_soft_failure(self) -> None:
        client = self._client(lambda r: httpx.Response(200, json=_completion("")))

        self.assertIsNone(asyncio.run(client.complete_text(_text_request())))

    def test_unauthorized_is_classified(self) -> None:
        client = self._client(lambda r: httpx.Response(401, json={"error": {"message": "bad key"}}))

        with self.assertRaises(UnauthorizedError) as ctx:
            asyncio.run(client.complete_text(_text_request()))
        self.assertEqual(401, ctx.exception.status_code)

    def test_server_error_is_upstream_and_not_retried(self) -> None:
        client = self._client(lambda r: httpx.Response(500, json={"error": {"message": "boom"}}))

        with self.assertRaises(UpstreamError) as ctx:
            asyncio.run(client.complete_text(_text_request()))
        self.assertEqual(500, ctx.exception.status_code)
        self.assertEqual(1, len(self.requests))

    def test_timeout_is_classified(self) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = self._client(respond)

        with self.assertRaises(UpstreamTimeoutError):
            asyncio.run(client.complete_text(_text_request()))
        self.assertEqual(1, len(self.requests))

    def test_generate_image_returns_url(self) -> None:
        client = self._client(
            lambda r: httpx.Response(200, json={"created": 1700000000, "data": [{"url": "https://img.test/1.png"}]})
        )

        result = asyncio.run(client.generate_image(_image_request()))

        self.assertEqual("https://img.test/1.png", result)
        self.assertTrue(self.requests[0].url.path.endswith("/images/generations"))
        body = json.loads(self.requests[0].content)
        self.assertEqual(
            {"model": "dall-e-3", "prompt": "a fox", "n": 1, "size": "1024x1024", "quality": "standard"},
            body,
        )

    def test_generate_image_without_data_is_soft_failure(self) -> None:
        client = self._client(lambda r: httpx.Response(200, json={"created": 1700000000, "data": []}))

        self.assertIsNone(asyncio.run(client.generate_image(_image_request())))

    def test_is_configured_reflects_api_key(self) -> None:
        self.assertTrue(OpenAIProviderClient("sk-test").is_configured())
        self.assertFalse(OpenAIProviderClient("").is_configured())
