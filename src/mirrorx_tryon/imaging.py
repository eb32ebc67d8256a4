"""
Image reference codec.

Converts between raw base64, ``data:`` URIs and remote URLs without ever touching the
network. Provider adapters call :func:`normalize` to obtain the form their backend needs.
"""
from __future__ import annotations

import base64
import binascii
import io
import re

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import UnsupportedImageForm
from .types import ImageForm, ImageReference

LANCZOS = Image.Resampling.LANCZOS

_DATA_URI_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]*)*),(?P<payload>.*)$", re.DOTALL)


def is_remote_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def detect_mime_type(raw: bytes, default: str = "image/jpeg") -> str:
    """Identify common image formats from their magic bytes."""
    if raw.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if raw[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if raw.startswith(b"GIF8"):
        return "image/gif"
    if raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
        return "image/webp"
    if raw[:2] == b"BM":
        return "image/bmp"
    return default


def _decode_base64(payload: str) -> bytes:
    cleaned = "".join(payload.split())
    try:
        return base64.b64decode(cleaned, validate=True)
    except (ValueError, binascii.Error) as exc:
        raise UnsupportedImageForm("Image payload is not valid base64") from exc


def _split_data_uri(uri: str) -> tuple[str, str]:
    match = _DATA_URI_PATTERN.match(uri)
    if match is None or ";base64" not in (match.group("params") or ""):
        raise UnsupportedImageForm("Only base64 encoded data URIs are supported")
    payload = "".join(match.group("payload").split())
    if not payload:
        raise UnsupportedImageForm("Data URI carries no image payload")
    return match.group("mime") or "image/jpeg", payload


def parse_image_reference(value: str, default_mime: str = "image/jpeg") -> ImageReference:
    """
    Build an :class:`ImageReference` from whatever string a caller uploaded.

    URLs stay URIs; ``data:`` URIs and raw base64 become inline references. Raw base64
    is validated and its MIME type sniffed from the decoded header.
    """
    cleaned = (value or "").strip()
    if not cleaned:
        raise UnsupportedImageForm("Empty image input provided")

    if is_remote_url(cleaned):
        return ImageReference.remote(cleaned)

    if cleaned.startswith("data:"):
        mime_type, payload = _split_data_uri(cleaned)
        _decode_base64(payload)
        return ImageReference.inline(payload, mime_type)

    raw = _decode_base64(cleaned)
    if not raw:
        raise UnsupportedImageForm("Empty image input provided")
    return ImageReference.inline("".join(cleaned.split()), detect_mime_type(raw, default_mime))


def reference_from_bytes(raw: bytes, mime_type: str | None = None) -> ImageReference:
    if not raw:
        raise UnsupportedImageForm("Empty image input provided")
    encoded = base64.b64encode(raw).decode("utf-8")
    return ImageReference.inline(encoded, mime_type or detect_mime_type(raw))


def normalize(ref: ImageReference, target: ImageForm) -> ImageReference:
    """
    Return ``ref`` in the ``target`` form.

    Matching forms pass through untouched. Inline payloads are wrapped in a ``data:``
    envelope for URI targets; ``data:`` URIs are unwrapped for inline targets. A remote
    URL cannot become inline bytes without fetching, so that raises.
    """
    if ref.form is target:
        return ref

    if target is ImageForm.URI:
        return ImageReference.remote(ref.to_display())

    uri = ref.uri or ""
    if uri.startswith("data:"):
        mime_type, payload = _split_data_uri(uri)
        return ImageReference.inline(payload, mime_type)
    raise UnsupportedImageForm(
        "Remote image URLs cannot be sent inline; upload the image file instead"
    )


def decode_inline(ref: ImageReference) -> bytes:
    """Return the raw bytes behind an inline (or ``data:`` URI) reference."""
    inline = normalize(ref, ImageForm.INLINE)
    return _decode_base64(inline.data or "")


def downscale_inline(ref: ImageReference, max_dimension: int, jpeg_quality: int = 90) -> ImageReference:
    """
    Shrink an inline image so its longest side is at most ``max_dimension``.

    EXIF orientation is applied before measuring. Images already within bounds and
    remote URLs are returned unchanged.
    """
    if not ref.is_inline:
        return ref

    raw = decode_inline(ref)
    try:
        with Image.open(io.BytesIO(raw)) as opened:
            image = ImageOps.exif_transpose(opened)
            width, height = image.size
            longest = max(width, height)
            if longest <= max_dimension:
                return ref

            scale = max_dimension / float(longest)
            new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
            resized = image.resize(new_size, LANCZOS)

            has_alpha = resized.mode in ("RGBA", "LA") or (
                resized.mode == "P" and "transparency" in resized.info
            )
            buffer = io.BytesIO()
            if has_alpha:
                resized.save(buffer, format="PNG", optimize=True)
                mime_type = "image/png"
            else:
                resized.convert("RGB").save(buffer, format="JPEG", quality=jpeg_quality, optimize=True)
                mime_type = "image/jpeg"
    except Image.DecompressionBombError as exc:
        raise UnsupportedImageForm("Image is too large to process; upload a smaller photo") from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise UnsupportedImageForm("Image could not be decoded; upload a JPEG, PNG or WEBP photo") from exc

    return reference_from_bytes(buffer.getvalue(), mime_type)
