from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence, runtime_checkable

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import ProviderError
from ..types import GenerationOptions, ImageReference

logger = logging.getLogger(__name__)

PERMISSION_MARKERS = ("PERMISSION_DENIED", "Requested entity was not found", "Unauthenticated")


@runtime_checkable
class ImageProvider(Protocol):
    """Anything the orchestrator can ask for an image."""

    provider_id: str

    async def generate(
        self,
        model: str,
        prompt: str,
        images: Sequence[ImageReference],
        options: GenerationOptions | None = None,
    ) -> ImageReference:
        ...


def error_detail(response: httpx.Response, limit: int = 500) -> str:
    """Extract a short, human readable error description from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:limit]
    if isinstance(body, dict):
        error = body.get("error") or body.get("detail") or body
        if isinstance(error, dict):
            message = error.get("message") or error.get("status") or str(error)
            status = error.get("status")
            if isinstance(status, str) and status and status not in str(message):
                message = f"{status}: {message}"
            return str(message)[:limit]
        return str(error)[:limit]
    return str(body)[:limit]


def is_permission_denied(status_code: int | None, message: str) -> bool:
    if status_code in (401, 403):
        return True
    return any(marker in message for marker in PERMISSION_MARKERS)


def raise_for_provider_status(provider_id: str, response: httpx.Response) -> None:
    """Convert an unsuccessful HTTP response into a :class:`ProviderError`."""
    if response.is_success:
        return
    detail = error_detail(response)
    raise ProviderError(
        provider_id,
        f"HTTP {response.status_code} - {detail}",
        status_code=response.status_code,
        permission_denied=is_permission_denied(response.status_code, detail),
    )


async def send_request(
    provider_id: str,
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    attempts: int = 2,
    **kwargs: Any,
) -> httpx.Response:
    """
    Issue a request, retrying only connection-level failures.

    HTTP error statuses are returned to the caller untouched; transport failures that
    survive every attempt become a :class:`ProviderError`.
    """
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=0.5, max=8),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                return await client.request(method, url, **kwargs)
    except httpx.TimeoutException as exc:
        raise ProviderError(provider_id, f"Request timed out: {exc!r}") from exc
    except httpx.TransportError as exc:
        raise ProviderError(provider_id, f"Network error: {exc!r}") from exc
    raise ProviderError(provider_id, "Request was not sent")  # pragma: no cover
