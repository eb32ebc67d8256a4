from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .errors import ErrorKind, ExhaustedFallback, TryOnError, UnsupportedImageForm


class ImageForm(str, Enum):
    """Representation an image reference is carried in."""

    INLINE = "inline"
    URI = "uri"


class Mode(str, Enum):
    PART = "PART"
    FULL_FIT = "FULL_FIT"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class GarmentCategory(str, Enum):
    """Garment slot understood by the dedicated try-on models."""

    UPPER_BODY = "upper_body"
    LOWER_BODY = "lower_body"
    DRESSES = "dresses"


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    PROVIDER_ERROR = "provider_error"
    NO_IMAGE = "no_image"
    TIMEOUT = "timeout"
    DEGRADED = "degraded"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class ImageReference:
    """
    Either inline base64 bytes with a MIME type, or a URI.

    ``URI`` references hold an http(s) URL or a ``data:`` URI. Build instances through
    :meth:`inline` / :meth:`remote` or :func:`mirrorx_tryon.imaging.parse_image_reference`.
    """

    form: ImageForm
    data: str | None = None
    mime_type: str | None = None
    uri: str | None = None

    def __post_init__(self) -> None:
        if self.form is ImageForm.INLINE:
            if not self.data or not self.mime_type or self.uri is not None:
                raise ValueError("Inline image references need data and mime_type only")
        elif not self.uri or self.data is not None:
            raise ValueError("URI image references need a uri only")

    @classmethod
    def inline(cls, data: str, mime_type: str = "image/jpeg") -> "ImageReference":
        return cls(form=ImageForm.INLINE, data=data, mime_type=mime_type)

    @classmethod
    def remote(cls, uri: str) -> "ImageReference":
        return cls(form=ImageForm.URI, uri=uri)

    @property
    def is_inline(self) -> bool:
        return self.form is ImageForm.INLINE

    def to_display(self) -> str:
        """Return the string a UI can render or download: a data URI or a URL."""
        if self.form is ImageForm.INLINE:
            return f"data:{self.mime_type};base64,{self.data}"
        return self.uri  # type: ignore[return-value]

    def __repr__(self) -> str:
        if self.form is ImageForm.INLINE:
            return f"ImageReference(inline, {self.mime_type}, {len(self.data or '')} chars)"
        preview = (self.uri or "")[:48]
        return f"ImageReference(uri, {preview!r})"


@dataclass(frozen=True, slots=True)
class TryOnRequest:
    """Inputs for a single try-on generation."""

    subject_image: ImageReference
    garment_image: ImageReference
    mode: Mode = Mode.PART
    gender: Gender = Gender.FEMALE
    prior_feedback: str | None = None
    garment_category: GarmentCategory = GarmentCategory.UPPER_BODY


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    """Provider hints forwarded to every adapter call of a run."""

    aspect_ratio: str = "3:4"
    image_size: str | None = "2K"
    garment_category: GarmentCategory = GarmentCategory.UPPER_BODY
    garment_description: str | None = None
    seed: int | None = None


@dataclass(frozen=True, slots=True)
class ProviderAttempt:
    """One entry of the fallback trail."""

    provider_id: str
    model: str
    outcome: AttemptOutcome
    latency_seconds: float = 0.0
    message: str | None = None
    permission_denied: bool = False

    def describe(self) -> str:
        label = f"{self.provider_id}/{self.model}"
        if self.message:
            return f"{label} ({self.outcome.value}: {self.message})"
        return f"{label} ({self.outcome.value})"


@dataclass(frozen=True, slots=True)
class TryOnSuccess:
    image: ImageReference
    strategy: str
    attempts: Sequence[ProviderAttempt] = field(default_factory=tuple)
    degraded: bool = False

    ok = True

    def unwrap(self) -> ImageReference:
        return self.image

    @property
    def attempted_providers(self) -> tuple[ProviderAttempt, ...]:
        return tuple(self.attempts)


@dataclass(frozen=True, slots=True)
class TryOnFailure:
    kind: ErrorKind
    message: str
    attempts: Sequence[ProviderAttempt] = field(default_factory=tuple)

    ok = False

    def unwrap(self) -> ImageReference:
        """Raise the error this failure stands for."""
        error: TryOnError
        if self.kind is ErrorKind.UNSUPPORTED_IMAGE_FORM:
            error = UnsupportedImageForm(self.message)
        else:
            error = ExhaustedFallback(self.message, self.attempts)
        raise error

    @property
    def attempted_providers(self) -> tuple[ProviderAttempt, ...]:
        return tuple(self.attempts)


GenerationOutcome = Union[TryOnSuccess, TryOnFailure]


class ShoppingLink(BaseModel):
    store: str
    url: str


class ComplementaryItem(BaseModel):
    """A suggested item completing the outfit around the analysed garment."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    category: str = Field(default="", validation_alias=AliasChoices("category", "type"))
    description: str = ""
    color: str = ""
    price_range: str = Field(default="", validation_alias=AliasChoices("price_range", "priceRange"))
    search_query: str = Field(default="", validation_alias=AliasChoices("search_query", "searchQuery"))
    shopping_links: list[ShoppingLink] = Field(
        default_factory=list,
        validation_alias=AliasChoices("shopping_links", "shoppingLinks", "buyLinks"),
    )


class StyleRecommendation(BaseModel):
    """Structured styling advice for one garment."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    analysis: str = ""
    styling_tips: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("styling_tips", "stylingTips")
    )
    complementary_items: list[ComplementaryItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("complementary_items", "complementaryItems"),
    )

    @classmethod
    def empty(cls, analysis: Optional[str] = None) -> "StyleRecommendation":
        """Neutral recommendation returned when advice is unavailable."""
        return cls(analysis=analysis or "")

    @property
    def is_empty(self) -> bool:
        return not (self.analysis or self.styling_tips or self.complementary_items)
