from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from rich.logging import RichHandler

DEFAULT_GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_REPLICATE_API_URL = "https://api.replicate.com/v1"

DEFAULT_FACE_SWAP_MODEL = (
    "yan-ops/roop_face_swap:dfe65731046d8c5af68c28f0a5e2050cf9e4f6dc8d1b3be00af26cb4e1c8e2ac"
)
DEFAULT_FASHN_MODEL = (
    "fashn-ai/tryon:9725fffb6fc8dfd9f0c58a37fee85c3b0e3f5eeefbdbcb9a450b6db4a22aa32d"
)
DEFAULT_IDM_VTON_MODEL = (
    "cuuupid/idm-vton:c871bb9b046c1c045725e293bfe1e5847ae29f8d0bfc76b6bd32ed0dd89bf5eb"
)
DEFAULT_BASE_MODELS = ["gemini-2.5-flash-image"]
DEFAULT_CHAIN_MODELS = ["gemini-3-pro-image-preview", "gemini-2.5-flash-image"]

ProviderName = Literal["gemini", "replicate"]


class GeminiConfig(BaseModel):
    """Settings required to access the Gemini generateContent REST API."""

    api_key: str = Field(..., min_length=1, description="Gemini / Google AI Studio API key")
    api_url: str = Field(
        default=DEFAULT_GEMINI_API_URL,
        description="Base URL of the Generative Language API",
    )
    aspect_ratio: str = Field(default="3:4", description="Aspect ratio hint for generated images")
    image_size: str | None = Field(
        default="2K",
        description="Resolution hint, only sent to models that accept it (pro image models)",
    )


class ReplicateConfig(BaseModel):
    """Settings required to run predictions on Replicate-hosted models."""

    api_token: str = Field(..., min_length=1, description="Replicate API token")
    api_url: str = Field(default=DEFAULT_REPLICATE_API_URL, description="Replicate API base URL")
    poll_interval_seconds: float = Field(
        default=2.0,
        ge=0.0,
        le=30.0,
        description="Delay between polling attempts while a prediction is running",
    )
    max_poll_attempts: int = Field(
        default=60,
        ge=1,
        le=600,
        description="Maximum polling attempts before the prediction is treated as hung",
    )


class FaceSwapConfig(BaseModel):
    """Face-swap stage used by the two-step strategy."""

    enabled: bool = Field(default=True, description="Run the face-swap stage when Replicate is configured")
    model: str = Field(default=DEFAULT_FACE_SWAP_MODEL, description="Replicate model reference")


class VirtualTryOnConfig(BaseModel):
    """Dedicated try-on models usable as fallback candidates."""

    fashn_model: str = Field(default=DEFAULT_FASHN_MODEL)
    idm_vton_model: str = Field(default=DEFAULT_IDM_VTON_MODEL)


class StyleAdvisorConfig(BaseModel):
    model: str = Field(default="gemini-2.0-flash", description="Text/JSON capable Gemini model")


class CandidateConfig(BaseModel):
    """One entry of an ordered fallback chain."""

    provider: ProviderName
    model: str = Field(..., min_length=1)

    @classmethod
    def parse(cls, value: str) -> "CandidateConfig":
        """Parse ``provider:model``; a bare model name means Gemini."""
        provider, sep, model = value.strip().partition(":")
        if not sep or provider not in {"gemini", "replicate"}:
            return cls(provider="gemini", model=value.strip())
        return cls(provider=provider, model=model)  # type: ignore[arg-type]

    @property
    def label(self) -> str:
        return f"{self.provider}:{self.model}"


class OrchestratorConfig(BaseModel):
    """Strategy selection and per-call limits."""

    strategy: Literal["two_step", "fallback_chain"] = Field(
        default="two_step",
        description="two_step: generate then face-swap; fallback_chain: ordered single-call candidates",
    )
    base_models: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BASE_MODELS),
        description="Gemini models tried in order for step (a) of the two-step strategy",
    )
    fallback_chain: list[CandidateConfig] = Field(
        default_factory=list,
        description="Ordered candidates for the fallback-chain strategy (empty = built-in default)",
    )
    request_timeout_seconds: float = Field(
        default=180.0,
        gt=0.0,
        le=900.0,
        description="Deadline applied to every single adapter call",
    )
    transport_attempts: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Attempts per HTTP request on connection-level errors only",
    )
    max_input_dimension: int | None = Field(
        default=2048,
        ge=256,
        description="Longest side inline inputs are downscaled to before upload (None disables)",
    )

    @field_validator("base_models")
    @classmethod
    def _require_base_models(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item and item.strip()]
        if not cleaned:
            raise ValueError("At least one base model is required")
        return cleaned


class AppConfig(BaseModel):
    """Top-level configuration consumed by the orchestrator."""

    gemini: GeminiConfig | None = None
    replicate: ReplicateConfig | None = None
    face_swap: FaceSwapConfig = Field(default_factory=FaceSwapConfig)
    virtual_tryon: VirtualTryOnConfig = Field(default_factory=VirtualTryOnConfig)
    style_advisor: StyleAdvisorConfig = Field(default_factory=StyleAdvisorConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)

    @model_validator(mode="after")
    def _validate_chain(self) -> "AppConfig":
        for candidate in self.orchestrator.fallback_chain:
            if candidate.provider == "replicate" and candidate.model.split(":")[0].count("/") != 1:
                raise ValueError(
                    f"Replicate candidate '{candidate.model}' must look like owner/name[:version]"
                )
        return self

    @property
    def face_swap_available(self) -> bool:
        return self.face_swap.enabled and self.replicate is not None

    def resolved_chain(self) -> list[CandidateConfig]:
        """Return the configured chain, or the built-in default for the available providers."""
        if self.orchestrator.fallback_chain:
            return list(self.orchestrator.fallback_chain)
        chain = [CandidateConfig(provider="gemini", model=model) for model in DEFAULT_CHAIN_MODELS]
        chain.append(CandidateConfig(provider="replicate", model=self.virtual_tryon.fashn_model))
        chain.append(CandidateConfig(provider="replicate", model=self.virtual_tryon.idm_vton_model))
        return chain


def _bool_from_env(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _float_from_env(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise RuntimeError(f"Invalid float value: {value}") from exc


def _int_from_env(value: Optional[str], default: int | None) -> int | None:
    if value is None:
        return default
    if value.strip().lower() in {"", "none", "off", "0"}:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer value: {value}") from exc


def _list_from_env(value: Optional[str]) -> list[str] | None:
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def load_config(dotenv_path: str | Path | None = None) -> AppConfig:
    """
    Load configuration from environment variables (optionally seeded by a .env file).

    Providers whose credentials are absent are left unconfigured; the orchestrator
    degrades around them instead of failing.

    Raises
    ------
    RuntimeError
        If a configured value is malformed.
    """
    env_path = Path(dotenv_path) if dotenv_path else Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    gemini_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    gemini_data: dict[str, object] | None = None
    if gemini_key:
        gemini_data = {
            "api_key": gemini_key,
            "api_url": os.getenv("GEMINI_API_URL", DEFAULT_GEMINI_API_URL),
            "aspect_ratio": os.getenv("GEMINI_ASPECT_RATIO", "3:4"),
            "image_size": os.getenv("GEMINI_IMAGE_SIZE", "2K") or None,
        }

    replicate_token = os.getenv("REPLICATE_API_TOKEN")
    replicate_data: dict[str, object] | None = None
    if replicate_token:
        replicate_data = {
            "api_token": replicate_token,
            "api_url": os.getenv("REPLICATE_API_URL", DEFAULT_REPLICATE_API_URL),
            "poll_interval_seconds": _float_from_env(os.getenv("REPLICATE_POLL_INTERVAL"), 2.0),
            "max_poll_attempts": _int_from_env(os.getenv("REPLICATE_MAX_POLL_ATTEMPTS"), 60),
        }

    orchestrator_data: dict[str, object] = {
        "strategy": os.getenv("TRYON_STRATEGY", "two_step").strip().lower(),
        "request_timeout_seconds": _float_from_env(os.getenv("TRYON_REQUEST_TIMEOUT"), 180.0),
        "transport_attempts": _int_from_env(os.getenv("TRYON_TRANSPORT_ATTEMPTS"), 2) or 1,
        "max_input_dimension": _int_from_env(os.getenv("TRYON_MAX_INPUT_DIMENSION"), 2048),
    }
    base_models = _list_from_env(os.getenv("TRYON_BASE_MODELS"))
    if base_models is not None:
        orchestrator_data["base_models"] = base_models
    chain = _list_from_env(os.getenv("TRYON_FALLBACK_CHAIN"))
    if chain:
        orchestrator_data["fallback_chain"] = [CandidateConfig.parse(item) for item in chain]

    data = {
        "gemini": gemini_data,
        "replicate": replicate_data,
        "face_swap": {
            "enabled": _bool_from_env(os.getenv("ENABLE_FACE_SWAP"), True),
            "model": os.getenv("FACE_SWAP_MODEL", DEFAULT_FACE_SWAP_MODEL),
        },
        "virtual_tryon": {
            "fashn_model": os.getenv("FASHN_TRYON_MODEL", DEFAULT_FASHN_MODEL),
            "idm_vton_model": os.getenv("IDM_VTON_MODEL", DEFAULT_IDM_VTON_MODEL),
        },
        "style_advisor": {"model": os.getenv("STYLE_ADVISOR_MODEL", "gemini-2.0-flash")},
        "orchestrator": orchestrator_data,
    }

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        invalid = {"/".join(str(part) for part in err["loc"]) for err in exc.errors()}
        invalid_str = ", ".join(sorted(invalid))
        raise RuntimeError(f"Invalid configuration values: {invalid_str}") from exc


def configure_logging(level: str | int | None = None) -> None:
    """Route package logs through rich for command-line use."""
    resolved = level if level is not None else os.getenv("LOG_LEVEL", "INFO")
    if isinstance(resolved, str):
        resolved = resolved.upper()
    logging.basicConfig(
        level=resolved,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
