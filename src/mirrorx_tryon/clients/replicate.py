from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

import httpx

from ..config import ReplicateConfig
from ..errors import ProviderError, UnsupportedImageForm
from ..imaging import is_remote_url, parse_image_reference
from ..types import ImageReference
from .base import is_permission_denied, raise_for_provider_status, send_request

logger = logging.getLogger(__name__)

PROVIDER_ID = "replicate"

TERMINAL_STATUSES = {"succeeded", "failed", "canceled"}


def coerce_output(output: Any) -> ImageReference | None:
    """
    Normalize a prediction output to an image reference.

    Models return a URL string, a list of URLs, or an object carrying an ``image`` key;
    anything else yields ``None``.
    """
    if isinstance(output, list):
        output = output[0] if output else None
    elif isinstance(output, dict):
        output = output.get("image") or output.get("output")

    if not isinstance(output, str) or not output.strip():
        return None
    value = output.strip()
    if not (is_remote_url(value) or value.startswith("data:")):
        return None
    try:
        return parse_image_reference(value)
    except UnsupportedImageForm:
        logger.warning("Discarding malformed data URI in prediction output")
        return None


def prediction_status(prediction: Dict[str, Any]) -> str:
    status = prediction.get("status")
    return status.lower() if isinstance(status, str) else ""


def _split_model_ref(model_ref: str) -> tuple[str, str | None]:
    name, _, version = model_ref.partition(":")
    return name, version or None


class ReplicateClient:
    """Client for creating and polling predictions on Replicate."""

    provider_id = PROVIDER_ID

    def __init__(
        self,
        config: ReplicateConfig,
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
                "Authorization": f"Bearer {config.api_token}",
                "Content-Type": "application/json",
                "Prefer": "wait",
            },
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._session.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        response = await send_request(
            PROVIDER_ID, self._session, method, url, attempts=self._attempts, **kwargs
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

    async def _poll_prediction(self, prediction: Dict[str, Any]) -> Dict[str, Any]:
        """Poll the prediction endpoint until it reaches a terminal status."""
        urls = prediction.get("urls")
        get_url = urls.get("get") if isinstance(urls, dict) else None
        if not isinstance(get_url, str) or not get_url:
            prediction_id = prediction.get("id")
            if not prediction_id:
                raise ProviderError(PROVIDER_ID, "Prediction response carried neither status URL nor id")
            get_url = f"predictions/{prediction_id}"

        for _ in range(self._config.max_poll_attempts):
            await asyncio.sleep(self._config.poll_interval_seconds)
            prediction = await self._request("GET", get_url)
            if prediction_status(prediction) in TERMINAL_STATUSES:
                return prediction

        raise ProviderError(
            PROVIDER_ID,
            f"Prediction did not complete after {self._config.max_poll_attempts} polls",
        )

    async def run(self, model_ref: str, model_input: Dict[str, Any]) -> Any:
        """
        Run ``model_ref`` (``owner/name`` or ``owner/name:version``) and return its raw output.

        Raises
        ------
        ProviderError
            If the prediction cannot be created, fails, is cancelled or never finishes.
        """
        name, version = _split_model_ref(model_ref)
        if version:
            url, body = "predictions", {"version": version, "input": model_input}
        else:
            url, body = f"models/{name}/predictions", {"input": model_input}

        logger.debug("Creating Replicate prediction for %s", name)
        prediction = await self._request("POST", url, json=body)
        status = prediction_status(prediction)
        if status not in TERMINAL_STATUSES:
            prediction = await self._poll_prediction(prediction)
            status = prediction_status(prediction)

        if status != "succeeded":
            message = str(prediction.get("error") or f"prediction {status}")
            raise ProviderError(
                PROVIDER_ID,
                f"{name}: {message}",
                permission_denied=is_permission_denied(None, message),
            )
        return prediction.get("output")

    async def __aenter__(self) -> "ReplicateClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()


__all__ = ["ReplicateClient", "coerce_output"]
