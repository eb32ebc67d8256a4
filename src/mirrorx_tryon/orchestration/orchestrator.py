from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Sequence

import httpx

from ..advisor import StyleAdvisor
from ..clients.base import ImageProvider
from ..clients.face_swap import FaceSwapAdapter
from ..clients.gemini import GeminiClient
from ..clients.replicate import ReplicateClient
from ..clients.vton import VirtualTryOnAdapter
from ..config import AppConfig
from ..errors import ErrorKind, UnsupportedImageForm
from ..imaging import downscale_inline
from ..prompts import build_prompt
from ..types import (
    GenerationOptions,
    GenerationOutcome,
    ImageReference,
    Mode,
    ProviderAttempt,
    StyleRecommendation,
    TryOnFailure,
    TryOnRequest,
    TryOnSuccess,
)
from .fallback import Candidate, FallbackChain
from .strategies import FallbackChainStrategy, GenerationStrategy, StrategyResult, TwoStepStrategy

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "We couldn't generate your try-on image. Please try again in a moment."
ACCESS_MESSAGE = "Access denied by the image provider. Select a valid provider key and try again."
NO_PROVIDER_MESSAGE = "No image provider is configured. Select a valid provider key and try again."


def summarize_attempts(attempts: Sequence[ProviderAttempt]) -> str:
    return "; ".join(attempt.describe() for attempt in attempts)


def tried_labels(attempts: Sequence[ProviderAttempt]) -> str:
    return ", ".join(f"{attempt.provider_id}/{attempt.model}" for attempt in attempts)


class TryOnOrchestrator:
    """
    Single entry point for try-on generation and styling advice.

    Adapters are injected; :meth:`from_config` wires the real HTTP clients. Provider
    failures never escape :meth:`generate_try_on`; they become a ``TryOnFailure``.
    """

    def __init__(
        self,
        strategy: GenerationStrategy,
        *,
        advisor: StyleAdvisor | None = None,
        options: GenerationOptions | None = None,
        max_input_dimension: int | None = None,
        exit_stack: AsyncExitStack | None = None,
    ) -> None:
        self.strategy = strategy
        self.advisor = advisor
        self.options = options or GenerationOptions()
        self.max_input_dimension = max_input_dimension
        self._exit_stack = exit_stack or AsyncExitStack()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        gemini_transport: httpx.AsyncBaseTransport | None = None,
        replicate_transport: httpx.AsyncBaseTransport | None = None,
    ) -> "TryOnOrchestrator":
        """Build clients, adapters and the configured strategy from ``config``."""
        limits = config.orchestrator
        stack = AsyncExitStack()
        client_kwargs = {
            "timeout_seconds": limits.request_timeout_seconds,
            "transport_attempts": limits.transport_attempts,
        }

        gemini: GeminiClient | None = None
        if config.gemini is not None:
            gemini = GeminiClient(config.gemini, transport=gemini_transport, **client_kwargs)
            stack.push_async_callback(gemini.aclose)
        replicate: ReplicateClient | None = None
        if config.replicate is not None:
            replicate = ReplicateClient(config.replicate, transport=replicate_transport, **client_kwargs)
            stack.push_async_callback(replicate.aclose)

        providers: dict[str, ImageProvider] = {}
        if gemini is not None:
            providers["gemini"] = gemini
        if replicate is not None:
            providers["replicate"] = VirtualTryOnAdapter(replicate)

        strategy: GenerationStrategy
        if limits.strategy == "two_step":
            base_candidates = [Candidate(gemini, model) for model in limits.base_models] if gemini else []
            face_swap = None
            if config.face_swap_available and replicate is not None:
                face_swap = FaceSwapAdapter(replicate, config.face_swap.model)
            strategy = TwoStepStrategy(
                FallbackChain(base_candidates, timeout_seconds=limits.request_timeout_seconds),
                face_swap,
                timeout_seconds=limits.request_timeout_seconds,
            )
        else:
            candidates = []
            for entry in config.resolved_chain():
                provider = providers.get(entry.provider)
                if provider is None:
                    logger.info("Skipping %s: provider not configured", entry.label)
                    continue
                candidates.append(Candidate(provider, entry.model))
            strategy = FallbackChainStrategy(
                FallbackChain(candidates, timeout_seconds=limits.request_timeout_seconds)
            )

        advisor = None
        if gemini is not None:
            advisor = StyleAdvisor(
                gemini,
                config.style_advisor.model,
                timeout_seconds=limits.request_timeout_seconds,
            )

        options = GenerationOptions()
        if config.gemini is not None:
            options = GenerationOptions(
                aspect_ratio=config.gemini.aspect_ratio,
                image_size=config.gemini.image_size,
            )

        logger.info(
            "Try-on orchestrator ready (strategy=%s, gemini=%s, replicate=%s, face_swap=%s)",
            strategy.name,
            gemini is not None,
            replicate is not None,
            config.face_swap_available,
        )
        return cls(
            strategy,
            advisor=advisor,
            options=options,
            max_input_dimension=limits.max_input_dimension,
            exit_stack=stack,
        )

    async def _prepare(self, image: ImageReference) -> ImageReference:
        if self.max_input_dimension is None or not image.is_inline:
            return image
        # Pillow decode and re-encode run in a worker thread
        return await asyncio.to_thread(downscale_inline, image, self.max_input_dimension)

    def _options_for(self, request: TryOnRequest) -> GenerationOptions:
        return GenerationOptions(
            aspect_ratio=self.options.aspect_ratio,
            image_size=self.options.image_size,
            garment_category=request.garment_category,
            garment_description=self.options.garment_description,
            seed=self.options.seed,
        )

    async def generate_try_on(self, request: TryOnRequest) -> GenerationOutcome:
        """
        Produce a try-on image for ``request``.

        Returns a ``TryOnSuccess`` with a displayable image reference, or a
        ``TryOnFailure`` whose message can be shown to the user as is.
        """
        logger.info(
            "Try-on requested (mode=%s, gender=%s, feedback=%s, strategy=%s)",
            request.mode.value,
            request.gender.value,
            bool(request.prior_feedback),
            self.strategy.name,
        )
        try:
            subject = await self._prepare(request.subject_image)
            garment = await self._prepare(request.garment_image)
            prompt = build_prompt(request.mode, request.gender, request.prior_feedback)
            result = await self.strategy.execute(prompt, subject, garment, self._options_for(request))
        except UnsupportedImageForm as exc:
            logger.warning("Rejected image input: %s", exc)
            return TryOnFailure(kind=ErrorKind.UNSUPPORTED_IMAGE_FORM, message=str(exc))

        return self._to_outcome(result)

    def _to_outcome(self, result: StrategyResult) -> GenerationOutcome:
        if result.image is not None:
            return TryOnSuccess(
                image=result.image,
                strategy=self.strategy.name,
                attempts=result.attempts,
                degraded=result.degraded,
            )

        if not result.attempts:
            message = NO_PROVIDER_MESSAGE
        elif result.permission_denied:
            message = ACCESS_MESSAGE
        else:
            message = RETRY_MESSAGE
        if result.attempts:
            message = f"{message} (Tried: {tried_labels(result.attempts)})"
        logger.error("All providers failed: %s", summarize_attempts(result.attempts) or "none configured")
        return TryOnFailure(
            kind=ErrorKind.EXHAUSTED_FALLBACK,
            message=message,
            attempts=result.attempts,
        )

    async def get_style_advice(
        self,
        garment_image: ImageReference,
        mode: Mode = Mode.FULL_FIT,
    ) -> StyleRecommendation:
        """Best-effort styling advice; the neutral recommendation when unavailable."""
        if self.advisor is None:
            logger.info("Style advisor not configured; returning empty advice")
            return StyleRecommendation.empty()
        return await self.advisor.get_recommendations(garment_image, mode)

    async def aclose(self) -> None:
        await self._exit_stack.aclose()

    async def __aenter__(self) -> "TryOnOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()
