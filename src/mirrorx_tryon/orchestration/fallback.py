from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

from ..clients.base import ImageProvider
from ..errors import NoImageProduced, ProviderError, UnsupportedImageForm
from ..types import AttemptOutcome, GenerationOptions, ImageReference, ProviderAttempt

logger = logging.getLogger(__name__)


class ChainState(str, Enum):
    IDLE = "idle"
    TRYING = "trying"
    DONE = "done"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class Candidate:
    """A provider plus the model it should be asked for."""

    provider: ImageProvider
    model: str

    @property
    def label(self) -> str:
        return f"{self.provider.provider_id}/{self.model}"


@dataclass(frozen=True, slots=True)
class ChainResult:
    image: ImageReference | None
    attempts: tuple[ProviderAttempt, ...]
    state: ChainState

    @property
    def succeeded(self) -> bool:
        return self.image is not None

    @property
    def permission_denied(self) -> bool:
        return any(attempt.permission_denied for attempt in self.attempts)


@dataclass(slots=True)
class _ChainRun:
    """Accumulator for one pass over the candidates."""

    attempts: List[ProviderAttempt] = field(default_factory=list)
    state: ChainState = ChainState.IDLE

    def record(
        self,
        candidate: Candidate,
        outcome: AttemptOutcome,
        started: float,
        message: str | None = None,
        permission_denied: bool = False,
    ) -> None:
        self.attempts.append(
            ProviderAttempt(
                provider_id=candidate.provider.provider_id,
                model=candidate.model,
                outcome=outcome,
                latency_seconds=round(time.perf_counter() - started, 3),
                message=message,
                permission_denied=permission_denied,
            )
        )


class FallbackChain:
    """
    Ordered provider candidates tried once each until one returns an image.

    A failed candidate is recorded and the chain advances; nothing is retried in place.
    :class:`~mirrorx_tryon.errors.UnsupportedImageForm` is a local, permanent problem and
    propagates immediately instead of advancing. A remote URL input sent to a candidate that
    needs inline bytes therefore ends the run even if a later candidate accepts URLs; upload
    image bytes when the chain mixes both kinds. Any other unexpected adapter exception is
    recorded as a provider error and the chain moves on.
    """

    def __init__(self, candidates: Sequence[Candidate], *, timeout_seconds: float) -> None:
        self.candidates = tuple(candidates)
        self.timeout_seconds = timeout_seconds

    def __len__(self) -> int:
        return len(self.candidates)

    async def run(
        self,
        prompt: str,
        images: Sequence[ImageReference],
        options: GenerationOptions | None = None,
    ) -> ChainResult:
        run = _ChainRun()
        for index, candidate in enumerate(self.candidates, start=1):
            run.state = ChainState.TRYING
            logger.info("Attempt %d/%d: %s", index, len(self.candidates), candidate.label)
            started = time.perf_counter()
            try:
                image = await asyncio.wait_for(
                    candidate.provider.generate(candidate.model, prompt, images, options),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning("%s timed out after %.0fs", candidate.label, self.timeout_seconds)
                run.record(
                    candidate,
                    AttemptOutcome.TIMEOUT,
                    started,
                    f"no response within {self.timeout_seconds:.0f}s",
                )
                continue
            except NoImageProduced as exc:
                logger.warning("%s produced no image: %s", candidate.label, exc.raw_message)
                run.record(candidate, AttemptOutcome.NO_IMAGE, started, exc.raw_message)
                continue
            except ProviderError as exc:
                logger.warning("%s failed: %s", candidate.label, exc.raw_message)
                run.record(
                    candidate,
                    AttemptOutcome.PROVIDER_ERROR,
                    started,
                    exc.raw_message,
                    permission_denied=exc.permission_denied,
                )
                continue
            except UnsupportedImageForm:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.exception("%s failed unexpectedly", candidate.label)
                run.record(
                    candidate,
                    AttemptOutcome.PROVIDER_ERROR,
                    started,
                    f"unexpected {type(exc).__name__}: {exc}",
                )
                continue

            run.record(candidate, AttemptOutcome.SUCCESS, started)
            run.state = ChainState.DONE
            logger.info("%s produced an image", candidate.label)
            return ChainResult(image=image, attempts=tuple(run.attempts), state=run.state)

        run.state = ChainState.EXHAUSTED
        return ChainResult(image=None, attempts=tuple(run.attempts), state=run.state)
