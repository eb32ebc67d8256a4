from __future__ import annotations

import logging
from dataclasses import dataclass

from ..imaging import normalize
from ..types import ImageForm, ImageReference
from .replicate import ReplicateClient, coerce_output

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FaceSwapResult:
    """Output of the face-swap stage; ``swapped`` is False when the target came back unchanged."""

    image: ImageReference
    swapped: bool
    reason: str | None = None


class FaceSwapAdapter:
    """Transplants the face of a source photo onto a generated composite."""

    provider_id = "replicate-faceswap"

    def __init__(self, client: ReplicateClient, model: str) -> None:
        self._client = client
        self.model = model

    async def swap(self, source: ImageReference, target: ImageReference) -> FaceSwapResult:
        """
        Run the face-swap model on (``source`` identity, ``target`` composite).

        An output the adapter cannot interpret returns ``target`` unchanged. Transport and
        prediction failures propagate as :class:`~mirrorx_tryon.errors.ProviderError`.
        """
        output = await self._client.run(
            self.model,
            {
                "swap_image": normalize(source, ImageForm.URI).uri,
                "target_image": normalize(target, ImageForm.URI).uri,
            },
        )
        image = coerce_output(output)
        if image is None:
            logger.warning(
                "Face swap returned an unexpected output (%s); keeping the generated image",
                type(output).__name__,
            )
            return FaceSwapResult(
                image=target,
                swapped=False,
                reason=f"unexpected output type {type(output).__name__}",
            )
        return FaceSwapResult(image=image, swapped=True)
