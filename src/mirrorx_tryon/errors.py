from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .types import ProviderAttempt


class ErrorKind(str, Enum):
    """Failure categories surfaced by the try-on core."""

    UNSUPPORTED_IMAGE_FORM = "unsupported_image_form"
    PROVIDER_ERROR = "provider_error"
    NO_IMAGE_PRODUCED = "no_image_produced"
    EXHAUSTED_FALLBACK = "exhausted_fallback"
    ADVISORY_PARSE_FAILURE = "advisory_parse_failure"


class TryOnError(Exception):
    """Base class for every error raised inside the package."""

    kind: ErrorKind = ErrorKind.PROVIDER_ERROR


class UnsupportedImageForm(TryOnError):
    """The codec cannot derive the requested image representation."""

    kind = ErrorKind.UNSUPPORTED_IMAGE_FORM


class ProviderError(TryOnError):
    """A single adapter call failed (transport, auth, quota, malformed response or timeout)."""

    kind = ErrorKind.PROVIDER_ERROR

    def __init__(
        self,
        provider_id: str,
        raw_message: str,
        *,
        status_code: int | None = None,
        permission_denied: bool = False,
    ) -> None:
        super().__init__(f"{provider_id}: {raw_message}")
        self.provider_id = provider_id
        self.raw_message = raw_message
        self.status_code = status_code
        self.permission_denied = permission_denied


class NoImageProduced(ProviderError):
    """The provider answered but returned no image part."""

    kind = ErrorKind.NO_IMAGE_PRODUCED


class ExhaustedFallback(TryOnError):
    """Every configured candidate failed."""

    kind = ErrorKind.EXHAUSTED_FALLBACK

    def __init__(self, message: str, attempts: Sequence["ProviderAttempt"] = ()) -> None:
        super().__init__(message)
        self.attempts = tuple(attempts)


class AdvisoryParseFailure(TryOnError):
    """The style advisor reply did not contain a usable JSON object."""

    kind = ErrorKind.ADVISORY_PARSE_FAILURE
