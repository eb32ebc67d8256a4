"""
Virtual fashion try-on orchestration over Gemini and Replicate image models.
"""
from .config import load_config
from .imaging import parse_image_reference
from .orchestration import TryOnOrchestrator
from .types import (
    Gender,
    GarmentCategory,
    ImageReference,
    Mode,
    StyleRecommendation,
    TryOnFailure,
    TryOnRequest,
    TryOnSuccess,
)

__all__ = [
    "load_config",
    "parse_image_reference",
    "TryOnOrchestrator",
    "Gender",
    "GarmentCategory",
    "ImageReference",
    "Mode",
    "StyleRecommendation",
    "TryOnFailure",
    "TryOnRequest",
    "TryOnSuccess",
]
