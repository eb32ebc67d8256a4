"""
Provider adapters for Gemini image/text models and Replicate-hosted face-swap and try-on models.
"""
from .base import ImageProvider
from .face_swap import FaceSwapAdapter, FaceSwapResult
from .gemini import GeminiClient
from .replicate import ReplicateClient
from .vton import VirtualTryOnAdapter

__all__ = [
    "ImageProvider",
    "FaceSwapAdapter",
    "FaceSwapResult",
    "GeminiClient",
    "ReplicateClient",
    "VirtualTryOnAdapter",
]
