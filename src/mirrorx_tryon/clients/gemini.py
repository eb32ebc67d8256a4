from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

import httpx

from ..config import GeminiConfig
from ..errors import NoImageProduced, ProviderError
from ..imaging import normalize
from ..prompts import GARMENT_IMAGE_LABEL, SUBJECT_IMAGE_LABEL
from ..types import GenerationOptions, ImageForm, ImageReference
from .base import send_request, raise_for_provider_status

logger = logging.getLogger(__name__)

PROVIDER_ID = "gemini"

IMAGE_LABELS = (SUBJECT_IMAGE_LABEL, GARMENT_IMAGE_LABEL)


def _inline_part(ref: ImageReference) -> Dict[str, Any]:
    inline = normalize(ref, ImageForm.INLINE)
    return {"inline_data": {"mime_type": inline.mime_type, "data": inline.data}}


def build_image_parts(prompt: str, images: Sequence[ImageReference]) -> List[Dict[str, Any]]:
    """Order content parts as label, image, label, image, ..., instruction."""
    parts: List[Dict[str, Any]] = []
    for index, image in enumerate(images):
        label = IMAGE_LABELS[index] if index < len(IMAGE_LABELS) else f"IMAGE {index + 1}:"
        parts.append({"text": label})
        parts.append(_inline_part(image))
    parts.append({"text": prompt})
    return parts


def _dicts(value: Any) -> List[Dict[str, Any]]:
    """Keep only the object entries of a JSON list; anything else yields nothing."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _parts(candidate: Dict[str, Any]) -> List[Dict[str, Any]]:
    content = candidate.get("content")
    if not isinstance(content, dict):
        return []
    return _dicts(content.get("parts"))


def extract_image(data: Dict[str, Any]) -> ImageReference | None:
    """Return the first image-bearing part across all candidates, if any."""
    for candidate in _dicts(data.get("candidates")):
        for part in _parts(candidate):
            blob = part.get("inlineData") or part.get("inline_data")
            if not isinstance(blob, dict) or not isinstance(blob.get("data"), str) or not blob["data"]:
                continue
            mime_type = blob.get("mimeType") or blob.get("mime_type") or "image/png"
            if not isinstance(mime_type, str) or not mime_type.startswith("image/"):
                continue
            return ImageReference.inline(blob["data"], mime_type)
    return None


def extract_text(data: Dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = _dicts(data.get("candidates"))
    if not candidates:
        return ""
    return "".join(
        part["text"] for part in _parts(candidates[0]) if isinstance(part.get("text"), str)
    )


def _describe_empty_reply(data: Dict[str, Any]) -> str:
    candidates = _dicts(data.get("candidates"))
    if not candidates:
        feedback = data.get("promptFeedback")
        reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        return f"no candidates returned (block reason: {reason})" if reason else "no candidates returned"
    finish_reason = candidates[0].get("finishReason")
    text = extract_text(data).strip()
    if text:
        return f"model returned text only (finish reason {finish_reason}): {text[:200]}"
    return f"model returned no image (finish reason {finish_reason})"


class GeminiClient:
    """Client for the Gemini ``generateContent`` REST endpoint (images and JSON text)."""

    provider_id = PROVIDER_ID

    def __init__(
        self,
        config: GeminiConfig,
        *,
        timeout_seconds: float = 180.0,
        transport_attempts: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._attempts = transport_attempts
        self._session = httpx.AsyncClient(
            base_url=config.api_url.rstrip("/") + "/",
            headers={
                "x-goog-api-key": config.api_key,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._session.aclose()

    def _image_config(self, model: str, options: GenerationOptions) -> Dict[str, Any]:
        image_config: Dict[str, Any] = {"aspectRatio": options.aspect_ratio or self._config.aspect_ratio}
        image_size = options.image_size or self._config.image_size
        if image_size and "pro" in model:
            image_config["imageSize"] = image_size
        return image_config

    async def _generate_content(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await send_request(
            PROVIDER_ID,
            self._session,
            "POST",
            f"models/{model}:generateContent",
            json=payload,
            attempts=self._attempts,
        )
        raise_for_provider_status(PROVIDER_ID, response)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(PROVIDER_ID, f"Malformed JSON response: {response.text[:200]}") from exc
        if not isinstance(data, dict):
            raise ProviderError(
                PROVIDER_ID, f"Malformed response: expected an object, got {type(data).__name__}"
            )
        return data

    async def generate(
        self,
        model: str,
        prompt: str,
        images: Sequence[ImageReference],
        options: GenerationOptions | None = None,
    ) -> ImageReference:
        """
        Generate an image from the prompt and reference images.

        Raises
        ------
        ProviderError
            On transport, authentication or quota failures.
        NoImageProduced
            When the model answers with text only.
        """
        options = options or GenerationOptions()
        payload = {
            "contents": [{"role": "user", "parts": build_image_parts(prompt, images)}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": self._image_config(model, options),
            },
        }
        logger.debug("Calling Gemini %s with %d image(s)", model, len(images))
        data = await self._generate_content(model, payload)

        image = extract_image(data)
        if image is None:
            raise NoImageProduced(PROVIDER_ID, _describe_empty_reply(data))
        return image

    async def generate_json(self, model: str, prompt: str, image: ImageReference) -> str:
        """Ask a text model for a JSON answer about one image; returns the raw reply text."""
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}, _inline_part(image)]}],
            "generationConfig": {"responseMimeType": "application/json", "temperature": 0.4},
        }
        data = await self._generate_content(model, payload)
        text = extract_text(data)
        if not text.strip():
            raise ProviderError(PROVIDER_ID, _describe_empty_reply(data))
        return text

    async def __aenter__(self) -> "GeminiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()
