# Shared fixtures and scripted providers
import io
from typing import List, Sequence

import pytest
from PIL import Image

from mirrorx_tryon.clients.face_swap import FaceSwapResult
from mirrorx_tryon.errors import ProviderError
from mirrorx_tryon.imaging import reference_from_bytes
from mirrorx_tryon.types import GenerationOptions, ImageReference


def png_bytes(size=(32, 48), color=(200, 30, 30), mode="RGB") -> bytes:
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def subject_png():
    """Small PNG standing in for the subject photo."""
    return png_bytes(color=(10, 120, 200))


@pytest.fixture
def garment_png():
    return png_bytes(color=(220, 220, 20))


@pytest.fixture
def subject_ref(subject_png):
    return reference_from_bytes(subject_png)


@pytest.fixture
def garment_ref(garment_png):
    return reference_from_bytes(garment_png)


@pytest.fixture
def result_ref():
    return reference_from_bytes(png_bytes(color=(0, 255, 0)), "image/png")


class ScriptedProvider:
    """Image provider that replays a scripted list of results or exceptions."""

    def __init__(self, provider_id: str, script: Sequence):
        self.provider_id = provider_id
        self._script = list(script)
        self.calls: List[tuple] = []

    async def generate(
        self,
        model: str,
        prompt: str,
        images: Sequence[ImageReference],
        options: GenerationOptions | None = None,
    ) -> ImageReference:
        self.calls.append((model, prompt, tuple(images), options))
        step = self._script.pop(0)
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return await step()
        return step


class ScriptedFaceSwap:
    """Face-swap stand-in returning a fixed result or raising."""

    provider_id = "replicate-faceswap"
    model = "test/faceswap"

    def __init__(self, result):
        self._result = result
        self.calls: List[tuple] = []

    async def swap(self, source: ImageReference, target: ImageReference) -> FaceSwapResult:
        self.calls.append((source, target))
        if isinstance(self._result, BaseException):
            raise self._result
        if callable(self._result):
            return await self._result()
        if self._result is None:
            return FaceSwapResult(image=target, swapped=False, reason="unexpected output type NoneType")
        return FaceSwapResult(image=self._result, swapped=True)


@pytest.fixture
def provider_error():
    def build(provider_id="gemini", message="HTTP 500 - boom", denied=False):
        return ProviderError(provider_id, message, permission_denied=denied)

    return build
