"""Prompt templates and builders for try-on generation and styling advice."""

from __future__ import annotations

from dataclasses import dataclass

from .types import Gender, Mode

PROMPT_VERSION = "2024-06-identity-v3"

# Attributes every generation template pins down; identity fidelity depends on this set.
PRESERVED_ATTRIBUTES = (
    "facial bone structure",
    "eye shape and color",
    "nose shape",
    "lip shape and color",
    "skin tone and blemishes",
    "hairline and hair texture",
    "photographic realism",
)

FEEDBACK_HEADING = "PREVIOUS USER FEEDBACK TO INCORPORATE:"


@dataclass(frozen=True)
class Pronouns:
    noun: str
    subject: str
    possessive: str


PRONOUNS = {
    Gender.FEMALE: Pronouns(noun="woman", subject="she", possessive="her"),
    Gender.MALE: Pronouns(noun="man", subject="he", possessive="his"),
}


IDENTITY_BLOCK = """ABSOLUTE REQUIREMENTS - FACE PRESERVATION (MOST CRITICAL, NON-NEGOTIABLE):
1. The {noun}'s face MUST be 100% IDENTICAL to the person in the selfie.
2. PRESERVE EVERY FACIAL DETAIL EXACTLY:
   - Exact facial bone structure and shape (jawline, cheekbones, chin)
   - Exact eye shape, eye color, size and spacing
   - Exact nose shape, size and bridge
   - Exact lip shape, lip color and size
   - Exact eyebrow shape, thickness and arch
   - Exact skin tone, complexion and skin texture
   - ALL blemishes, scars, moles, birthmarks and freckles in their EXACT positions
   - Exact hairline, hair color, hair texture and hair style
   - Any facial hair exactly as shown
3. The face must look like a PHOTOGRAPH of the SAME person, not a similar-looking person.
4. DO NOT alter, beautify or "improve" any facial feature."""

REALISM_BLOCK = """OUTPUT REQUIREMENTS:
- The result must look like a REAL PHOTOGRAPH taken with a professional camera (photographic realism).
- Natural skin with visible pores; no synthetic, smooth, waxy or plastic-looking skin.
- No AI artifacts, no uncanny valley effect, no extra limbs, no text or graphics."""

GARMENT_TEMPLATE = """You are an EXPERT virtual fashion try-on system creating 100% PHOTOREALISTIC images.

{identity}

BODY & CLOTHING REQUIREMENTS:
5. Keep the exact same body shape, build and proportions.
6. Maintain the exact skin tone across face and body.
7. Change ONLY the garment shown in the garment image; everything else stays as it is.
8. The garment must fit naturally on {possessive} body with realistic fabric draping.
9. Keep stitching, prints, logos and weave of the garment intact.
10. Lighting and shadows must be consistent between face, body and clothing.

{realism}

Generate a photorealistic image of this {noun} wearing the garment shown while preserving {possessive} EXACT face."""

FULL_FIT_TEMPLATE = """You are an EXPERT virtual fashion stylist creating complete, photorealistic outfit looks.

{identity}

BODY REQUIREMENTS:
5. Keep the exact same body shape, build and proportions.
6. Maintain the exact skin tone across face and body.

OUTFIT COMPLETION:
7. The {noun} wears the uploaded TOP/UPPER garment exactly as shown.
8. Invent a COMPLETE OUTFIT around it:
   - Bottom wear (trousers, jeans, chinos, skirt) that complements the top
   - Footwear that matches the overall style
9. The complete outfit must be fashionable and cohesive for {possessive} style.
10. Show the full body so the whole outfit is visible.

{realism}

Generate a full-body photorealistic image of this {noun} in the complete styled outfit while preserving {possessive} EXACT face."""

SUBJECT_IMAGE_LABEL = "IMAGE 1 - Reference person (identity, body, pose, skin tone):"
GARMENT_IMAGE_LABEL = "IMAGE 2 - Garment to wear:"


STYLE_PROMPT_TEMPLATE = """You are a fashion stylist. Analyze this fashion item and give styling advice.

Return ONLY a JSON object with:
- "analysis": short description of the item (type, style, color, material, occasion)
- "stylingTips": array of 4-5 specific styling tips for this item
{items_instruction}
Focus on current Indian fashion trends, practical combinations and items available on
Myntra, Ajio, Amazon India and Flipkart. No text outside the JSON object."""

ITEMS_INSTRUCTION = """- "complementaryItems": array of 4-5 items completing the outfit, each with:
  - "category": e.g. "Jeans", "Trousers", "Sneakers", "Watch"
  - "description": specific product recommendation
  - "color": recommended color
  - "priceRange": price range in INR, e.g. "₹1,500 - ₹3,000"
  - "searchQuery": search term for e-commerce sites, e.g. "slim fit blue jeans men"
"""

NO_ITEMS_INSTRUCTION = '- "complementaryItems": an empty array\n'


def _pronouns(gender: Gender | str) -> Pronouns:
    return PRONOUNS[Gender(gender)]


def build_prompt(mode: Mode | str, gender: Gender | str, prior_feedback: str | None = None) -> str:
    """
    Render the generation prompt for ``mode`` and ``gender``.

    Feedback from a previous attempt is appended verbatim after the base prompt so the
    model treats it as a correction; the base prompt itself never changes.
    """
    words = _pronouns(gender)
    template = FULL_FIT_TEMPLATE if Mode(mode) is Mode.FULL_FIT else GARMENT_TEMPLATE
    prompt = template.format(
        identity=IDENTITY_BLOCK.format(noun=words.noun),
        realism=REALISM_BLOCK,
        noun=words.noun,
        possessive=words.possessive,
    )
    if prior_feedback and prior_feedback.strip():
        prompt += f"\n\n{FEEDBACK_HEADING}\n{prior_feedback}"
    return prompt


def build_style_prompt(mode: Mode | str = Mode.FULL_FIT) -> str:
    """Prompt for the style advisor; complementary items are only requested for FULL_FIT."""
    instruction = ITEMS_INSTRUCTION if Mode(mode) is Mode.FULL_FIT else NO_ITEMS_INSTRUCTION
    return STYLE_PROMPT_TEMPLATE.format(items_instruction=instruction)


__all__ = [
    "PROMPT_VERSION",
    "PRESERVED_ATTRIBUTES",
    "FEEDBACK_HEADING",
    "SUBJECT_IMAGE_LABEL",
    "GARMENT_IMAGE_LABEL",
    "build_prompt",
    "build_style_prompt",
]
