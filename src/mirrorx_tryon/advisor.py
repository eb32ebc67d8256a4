from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Sequence, Tuple
from urllib.parse import quote

from pydantic import ValidationError

from .clients.gemini import GeminiClient
from .errors import AdvisoryParseFailure, TryOnError
from .prompts import build_style_prompt
from .types import ComplementaryItem, ImageReference, Mode, ShoppingLink, StyleRecommendation

logger = logging.getLogger(__name__)

Marketplace = Tuple[str, str]

DEFAULT_MARKETPLACES: Tuple[Marketplace, ...] = (
    ("Myntra", "https://www.myntra.com/search?q="),
    ("Ajio", "https://www.ajio.com/search/?text="),
    ("Amazon", "https://www.amazon.in/s?k="),
    ("Flipkart", "https://www.flipkart.com/search?q="),
    ("Meesho", "https://www.meesho.com/search?q="),
)


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Return the first well-formed JSON object embedded in ``text``.

    Leading/trailing prose and markdown code fences are tolerated.

    Raises
    ------
    AdvisoryParseFailure
        If no parsable object is found.
    """
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    raise AdvisoryParseFailure(f"No JSON object found in reply: {text[:200]!r}")


def shopping_links(
    query: str, marketplaces: Sequence[Marketplace] = DEFAULT_MARKETPLACES
) -> list[ShoppingLink]:
    return [
        ShoppingLink(store=name, url=f"{base_url}{quote(query, safe='')}")
        for name, base_url in marketplaces
    ]


def attach_shopping_links(
    recommendation: StyleRecommendation,
    marketplaces: Sequence[Marketplace] = DEFAULT_MARKETPLACES,
) -> StyleRecommendation:
    """Give every complementary item deterministic marketplace search links."""
    items: list[ComplementaryItem] = []
    for item in recommendation.complementary_items:
        query = (item.search_query or item.description).strip()
        if not query:
            items.append(item)
            continue
        items.append(item.model_copy(update={"shopping_links": shopping_links(query, marketplaces)}))
    return recommendation.model_copy(update={"complementary_items": items})


def parse_recommendation(text: str) -> StyleRecommendation:
    payload = extract_json_object(text)
    try:
        return StyleRecommendation.model_validate(payload)
    except ValidationError as exc:
        raise AdvisoryParseFailure(f"Reply did not match the recommendation schema: {exc}") from exc


class StyleAdvisor:
    """Best-effort styling advice for a garment; never raises on provider trouble."""

    def __init__(
        self,
        gemini: GeminiClient,
        model: str,
        marketplaces: Sequence[Marketplace] = DEFAULT_MARKETPLACES,
        *,
        timeout_seconds: float = 60.0,
    ) -> None:
        self._gemini = gemini
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.marketplaces = tuple(marketplaces)

    async def get_recommendations(
        self,
        garment_image: ImageReference,
        mode: Mode = Mode.FULL_FIT,
    ) -> StyleRecommendation:
        try:
            text = await asyncio.wait_for(
                self._gemini.generate_json(self.model, build_style_prompt(mode), garment_image),
                timeout=self.timeout_seconds,
            )
            recommendation = parse_recommendation(text)
        except AdvisoryParseFailure as exc:
            logger.warning("Style advice could not be parsed: %s", exc)
            return StyleRecommendation.empty()
        except TryOnError as exc:
            logger.warning("Style advice unavailable: %s", exc)
            return StyleRecommendation.empty()
        except asyncio.TimeoutError:
            logger.warning("Style advice timed out after %.0fs", self.timeout_seconds)
            return StyleRecommendation.empty()
        except Exception:  # noqa: BLE001
            logger.exception("Style advice failed unexpectedly")
            return StyleRecommendation.empty()

        if Mode(mode) is Mode.PART:
            recommendation = recommendation.model_copy(update={"complementary_items": []})
        return attach_shopping_links(recommendation, self.marketplaces)
