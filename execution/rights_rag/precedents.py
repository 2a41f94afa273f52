"""
Precedent lookup: analogous cases, decisions and articles for a category.

Runs independently of local retrieval, asking the generation model for
relevant precedents. Any failure degrades to an empty list.
"""

import json
import logging
from typing import Optional
from urllib.parse import urlparse

from .generation import GenerationService
from .metrics import get_metrics_collector
from .models import SimilarCase
from .prompts import LLM_PROMPTS

logger = logging.getLogger(__name__)

_CONFIDENCE_LEVELS = {"low", "medium", "high"}
DEFAULT_SIMILARITY = 0.75


def normalize_url(url: Optional[str]) -> Optional[str]:
    """Add https:// when the scheme is missing; None for blank URLs."""
    if not url or not str(url).strip():
        return None
    url = str(url).strip()
    return url if url.startswith("http") else f"https://{url}"


def hostname_of(url: str) -> str:
    return urlparse(url).hostname or "external-source"


def parse_precedents(content: str, category: str, max_results: int) -> list[SimilarCase]:
    """
    Convert the model's JSON answer into SimilarCase records.

    Accepts either {"cases": [...]} or a bare list. Items without a URL are
    dropped, and the result is capped at max_results.
    """
    data = json.loads(content)
    items = data.get("cases", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        logger.info("Precedent response has no case list")
        return []

    precedents = []
    for idx, item in enumerate(items[:max_results]):
        if not isinstance(item, dict):
            continue
        link = normalize_url(item.get("url"))
        if link is None:
            continue

        confidence = str(item.get("confidence") or "medium").lower()
        try:
            similarity = float(item.get("relevance") or DEFAULT_SIMILARITY)
        except (TypeError, ValueError):
            similarity = DEFAULT_SIMILARITY

        precedents.append(SimilarCase(
            id=f"web-similar-{category}-{idx}",
            title=item.get("title") or "Untitled Case",
            description=item.get("description") or "",
            link=link,
            source=item.get("source") or hostname_of(link),
            page_number=0,
            confidence=confidence if confidence in _CONFIDENCE_LEVELS else "medium",
            similarity=similarity,
        ))
    return precedents


class PrecedentFinder:
    """Looks up analogous cases through the generation service."""

    def __init__(self, generation: GenerationService, temperature: float = 0.4):
        self._generation = generation
        self._temperature = temperature

    async def find(
        self,
        category: str,
        country: str,
        needs: list[str],
        max_results: int = 5,
    ) -> list[SimilarCase]:
        """
        Find up to max_results precedents for a category.

        Returns:
            Precedents, or an empty list when the lookup fails
        """
        logger.info(f"Searching for similar {category} rights cases in {country}...")
        prompt = LLM_PROMPTS["precedent_user"].format(
            max_results=max_results,
            category=category,
            country=country,
            needs=", ".join(needs) or "None",
        )
        try:
            content = await self._generation.complete_json(
                LLM_PROMPTS["precedent_system"], prompt, self._temperature,
            )
            precedents = parse_precedents(content, category, max_results)
        except Exception as e:
            logger.warning(f"Precedent lookup failed for {category}: {type(e).__name__}: {e}")
            get_metrics_collector().record_precedent_failure()
            return []

        logger.info(f"Found {len(precedents)} similar cases for {category}")
        return precedents
