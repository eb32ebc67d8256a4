from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Protocol

from ..clients.face_swap import FaceSwapAdapter
from ..errors import ProviderError
from ..types import AttemptOutcome, GenerationOptions, ImageReference, ProviderAttempt
from .fallback import ChainResult, FallbackChain

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StrategyResult:
    """What a strategy produced, before it is turned into a user-facing outcome."""

    image: ImageReference | None
    attempts: tuple[ProviderAttempt, ...]
    degraded: bool = False

    @property
    def permission_denied(self) -> bool:
        return any(attempt.permission_denied for attempt in self.attempts)


class GenerationStrategy(Protocol):
    name: str

    async def execute(
        self,
        prompt: str,
        subject: ImageReference,
        garment: ImageReference,
        options: GenerationOptions,
    ) -> StrategyResult:
        ...


class FallbackChainStrategy:
    """Single-call generation over an ordered list of interchangeable candidates."""

    name = "fallback_chain"

    def __init__(self, chain: FallbackChain) -> None:
        self.chain = chain

    async def execute(
        self,
        prompt: str,
        subject: ImageReference,
        garment: ImageReference,
        options: GenerationOptions,
    ) -> StrategyResult:
        result = await self.chain.run(prompt, (subject, garment), options)
        return StrategyResult(image=result.image, attempts=result.attempts)


class TwoStepStrategy:
    """
    Generate an outfit composite, then transplant the subject's exact face onto it.

    Step (a) runs the base chain. Step (b) only runs when a face-swap adapter is
    configured; when it is missing, fails, times out or cannot interpret its output,
    the step (a) image is returned as a degraded result rather than a failure.
    """

    name = "two_step"

    def __init__(
        self,
        base_chain: FallbackChain,
        face_swap: FaceSwapAdapter | None,
        *,
        timeout_seconds: float,
    ) -> None:
        self.base_chain = base_chain
        self.face_swap = face_swap
        self.timeout_seconds = timeout_seconds

    async def execute(
        self,
        prompt: str,
        subject: ImageReference,
        garment: ImageReference,
        options: GenerationOptions,
    ) -> StrategyResult:
        base: ChainResult = await self.base_chain.run(prompt, (subject, garment), options)
        if base.image is None:
            return StrategyResult(image=None, attempts=base.attempts)

        if self.face_swap is None:
            logger.info("No face-swap provider configured; returning the generated image as is")
            skipped = ProviderAttempt(
                provider_id="face-swap",
                model="-",
                outcome=AttemptOutcome.SKIPPED,
                message="face-swap provider not configured",
            )
            return StrategyResult(image=base.image, attempts=base.attempts + (skipped,))

        return await self._swap_face(self.face_swap, subject, base, base.image)

    async def _swap_face(
        self,
        adapter: FaceSwapAdapter,
        subject: ImageReference,
        base: ChainResult,
        composite: ImageReference,
    ) -> StrategyResult:
        started = time.perf_counter()

        def attempt(
            outcome: AttemptOutcome, message: str | None = None, denied: bool = False
        ) -> ProviderAttempt:
            return ProviderAttempt(
                provider_id=adapter.provider_id,
                model=adapter.model,
                outcome=outcome,
                latency_seconds=round(time.perf_counter() - started, 3),
                message=message,
                permission_denied=denied,
            )

        try:
            swapped = await asyncio.wait_for(
                adapter.swap(subject, composite), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            reason = f"face swap timed out after {self.timeout_seconds:.0f}s"
            return self._degrade(base, attempt(AttemptOutcome.DEGRADED, reason))
        except ProviderError as exc:
            reason = f"face swap failed: {exc.raw_message}"
            return self._degrade(base, attempt(AttemptOutcome.DEGRADED, reason, exc.permission_denied))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Face swap failed unexpectedly")
            reason = f"face swap failed: unexpected {type(exc).__name__}"
            return self._degrade(base, attempt(AttemptOutcome.DEGRADED, reason))

        if not swapped.swapped:
            return self._degrade(base, attempt(AttemptOutcome.DEGRADED, swapped.reason))

        logger.info("Face swap applied")
        return StrategyResult(
            image=swapped.image,
            attempts=base.attempts + (attempt(AttemptOutcome.SUCCESS),),
        )

    @staticmethod
    def _degrade(base: ChainResult, event: ProviderAttempt) -> StrategyResult:
        logger.warning("Degraded to the generated image without face swap: %s", event.message)
        return StrategyResult(image=base.image, attempts=base.attempts + (event,), degraded=True)
