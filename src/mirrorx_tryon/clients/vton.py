from __future__ import annotations

import logging
import random
from typing import Any, Callable, Dict, Sequence

from ..errors import NoImageProduced, ProviderError
from ..imaging import normalize
from ..types import GarmentCategory, GenerationOptions, ImageForm, ImageReference
from .replicate import ReplicateClient, coerce_output

logger = logging.getLogger(__name__)

InputBuilder = Callable[[str, str, GenerationOptions], Dict[str, Any]]

FASHN_CATEGORIES = {
    GarmentCategory.UPPER_BODY: "tops",
    GarmentCategory.LOWER_BODY: "bottoms",
    GarmentCategory.DRESSES: "one-pieces",
}

IDM_DESCRIPTIONS = {
    GarmentCategory.UPPER_BODY: "A stylish top",
    GarmentCategory.LOWER_BODY: "Stylish pants",
    GarmentCategory.DRESSES: "A beautiful dress",
}


def fashn_input(person_uri: str, garment_uri: str, options: GenerationOptions) -> Dict[str, Any]:
    return {
        "model_image": person_uri,
        "garment_image": garment_uri,
        "category": FASHN_CATEGORIES[options.garment_category],
        "guidance_scale": 2.5,
        "num_inference_steps": 50,
        "garment_photo_type": "auto",
        "cover_feet": False,
        "adjust_hands": True,
        "restore_background": True,
        "restore_clothes": True,
    }


def idm_vton_input(person_uri: str, garment_uri: str, options: GenerationOptions) -> Dict[str, Any]:
    seed = options.seed if options.seed is not None else random.randint(0, 999_999)
    return {
        "human_img": person_uri,
        "garm_img": garment_uri,
        "garment_des": options.garment_description or IDM_DESCRIPTIONS[options.garment_category],
        "category": options.garment_category.value,
        "denoise_steps": 30,
        "seed": seed,
    }


INPUT_BUILDERS: Dict[str, InputBuilder] = {
    "fashn-ai/tryon": fashn_input,
    "cuuupid/idm-vton": idm_vton_input,
}


class VirtualTryOnAdapter:
    """Dedicated virtual try-on models hosted on Replicate."""

    provider_id = "replicate"

    def __init__(self, client: ReplicateClient) -> None:
        self._client = client

    async def generate(
        self,
        model: str,
        prompt: str,
        images: Sequence[ImageReference],
        options: GenerationOptions | None = None,
    ) -> ImageReference:
        """
        Run a try-on model on ``images`` = (person, garment).

        These models take no free-form instruction, so ``prompt`` is not sent.
        """
        if len(images) < 2:
            raise ProviderError(self.provider_id, "Try-on models need a person and a garment image")
        options = options or GenerationOptions()
        builder = INPUT_BUILDERS.get(model.split(":")[0], idm_vton_input)
        person_uri = normalize(images[0], ImageForm.URI).uri or ""
        garment_uri = normalize(images[1], ImageForm.URI).uri or ""

        output = await self._client.run(model, builder(person_uri, garment_uri, options))
        image = coerce_output(output)
        if image is None:
            raise NoImageProduced(
                self.provider_id, f"Unexpected output format from {model.split(':')[0]}"
            )
        return image
