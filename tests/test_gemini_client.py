"""Tests for the Gemini REST client against a mocked transport."""

import json

import httpx
import pytest

from mirrorx_tryon.clients.gemini import GeminiClient, build_image_parts, extract_image
from mirrorx_tryon.config import GeminiConfig
from mirrorx_tryon.errors import NoImageProduced, ProviderError
from mirrorx_tryon.prompts import GARMENT_IMAGE_LABEL, SUBJECT_IMAGE_LABEL
from mirrorx_tryon.types import GenerationOptions, ImageReference


def image_reply(data="aW1n", mime="image/png"):
    return {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "Here is the result"},
                        {"inlineData": {"mimeType": mime, "data": data}},
                    ]
                },
                "finishReason": "STOP",
            }
        ]
    }


def make_client(handler, **kwargs):
    config = GeminiConfig(api_key="test-key", api_url="https://gemini.test/v1beta")
    return GeminiClient(config, transport=httpx.MockTransport(handler), **kwargs)


class TestPayload:
    def test_parts_are_labelled_and_prompt_last(self, subject_ref, garment_ref):
        parts = build_image_parts("do it", [subject_ref, garment_ref])

        assert parts[0] == {"text": SUBJECT_IMAGE_LABEL}
        assert parts[1]["inline_data"]["data"] == subject_ref.data
        assert parts[2] == {"text": GARMENT_IMAGE_LABEL}
        assert parts[3]["inline_data"]["mime_type"] == garment_ref.mime_type
        assert parts[-1] == {"text": "do it"}

    def test_extract_image_skips_text_parts(self):
        image = extract_image(image_reply())

        assert image == ImageReference.inline("aW1n", "image/png")

    def test_extract_image_ignores_non_image_blobs(self):
        assert extract_image(image_reply(mime="application/pdf")) is None


@pytest.mark.asyncio
async def test_generate_returns_inline_image(subject_ref, garment_ref):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=image_reply())

    async with make_client(handler) as client:
        image = await client.generate(
            "gemini-3-pro-image-preview", "prompt", [subject_ref, garment_ref], GenerationOptions()
        )

    assert image.is_inline
    assert image.mime_type == "image/png"
    assert seen["url"] == "https://gemini.test/v1beta/models/gemini-3-pro-image-preview:generateContent"
    assert seen["key"] == "test-key"
    config = seen["body"]["generationConfig"]
    assert config["responseModalities"] == ["TEXT", "IMAGE"]
    assert config["imageConfig"] == {"aspectRatio": "3:4", "imageSize": "2K"}


@pytest.mark.asyncio
async def test_image_size_only_sent_to_pro_models(subject_ref, garment_ref):
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=image_reply())

    async with make_client(handler) as client:
        await client.generate("gemini-2.5-flash-image", "prompt", [subject_ref, garment_ref])

    assert "imageSize" not in bodies[0]["generationConfig"]["imageConfig"]


@pytest.mark.asyncio
async def test_text_only_reply_raises_no_image(subject_ref, garment_ref):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "I cannot do that"}]}, "finishReason": "STOP"}]},
        )

    async with make_client(handler) as client:
        with pytest.raises(NoImageProduced) as excinfo:
            await client.generate("gemini-2.5-flash-image", "prompt", [subject_ref, garment_ref])

    assert "I cannot do that" in excinfo.value.raw_message


@pytest.mark.asyncio
async def test_permission_denied_is_flagged(subject_ref, garment_ref):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            json={"error": {"code": 403, "message": "The caller does not have permission", "status": "PERMISSION_DENIED"}},
        )

    async with make_client(handler) as client:
        with pytest.raises(ProviderError) as excinfo:
            await client.generate("gemini-2.5-flash-image", "prompt", [subject_ref, garment_ref])

    assert excinfo.value.permission_denied
    assert excinfo.value.status_code == 403
    assert "PERMISSION_DENIED" in excinfo.value.raw_message


@pytest.mark.asyncio
async def test_server_error_is_not_retried(subject_ref, garment_ref):
    """HTTP error statuses surface at once; only connection failures are retried."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, json={"error": {"message": "internal"}})

    async with make_client(handler, transport_attempts=3) as client:
        with pytest.raises(ProviderError):
            await client.generate("gemini-2.5-flash-image", "prompt", [subject_ref, garment_ref])

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_connection_errors_become_provider_error(subject_ref, garment_ref):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with make_client(handler, transport_attempts=1) as client:
        with pytest.raises(ProviderError) as excinfo:
            await client.generate("gemini-2.5-flash-image", "prompt", [subject_ref, garment_ref])

    assert "Network error" in excinfo.value.raw_message


@pytest.mark.asyncio
async def test_generate_json_returns_text(garment_ref):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        return httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": '{"analysis": "ok"}'}]}}]}
        )

    async with make_client(handler) as client:
        text = await client.generate_json("gemini-2.0-flash", "advise", garment_ref)

    assert text == '{"analysis": "ok"}'


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, error",
    [
        ([], ProviderError),
        ("just a string", ProviderError),
        ({"candidates": "x"}, NoImageProduced),
        ({"candidates": ["x", 3]}, NoImageProduced),
        ({"candidates": [{"content": {"parts": ["just text"]}}]}, NoImageProduced),
        ({"candidates": [{"content": "text"}], "promptFeedback": "blocked"}, NoImageProduced),
        ({"candidates": [{"content": {"parts": [{"inlineData": {"data": 5, "mimeType": "image/png"}}]}}]}, NoImageProduced),
    ],
)
async def test_malformed_bodies_raise_provider_errors(subject_ref, garment_ref, body, error):
    """Unexpected reply shapes surface as provider errors, never attribute errors."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    async with make_client(handler) as client:
        with pytest.raises(error):
            await client.generate("gemini-2.5-flash-image", "prompt", [subject_ref, garment_ref])


@pytest.mark.asyncio
async def test_generate_json_rejects_list_body(garment_ref):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"text": "{}"}])

    async with make_client(handler) as client:
        with pytest.raises(ProviderError, match="Malformed response"):
            await client.generate_json("gemini-2.0-flash", "advise", garment_ref)


@pytest.mark.asyncio
async def test_numeric_error_status_is_still_described(subject_ref, garment_ref):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": {"status": 13, "message": "internal"}})

    async with make_client(handler) as client:
        with pytest.raises(ProviderError) as excinfo:
            await client.generate("gemini-2.5-flash-image", "prompt", [subject_ref, garment_ref])

    assert "internal" in excinfo.value.raw_message
