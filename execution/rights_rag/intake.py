"""Case intake: entity extraction from free-text notes and case creation."""

import json
import random
import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from .generation import GenerationService
from .models import Case, ExtractedEntities
from .prompts import LLM_PROMPTS
from .storage import CaseStore

logger = logging.getLogger(__name__)


def generate_case_number(year: Optional[int] = None) -> str:
    """Case number in the UNHCR-CH-<year>-<5 digits> format."""
    year = year or datetime.now().year
    return f"UNHCR-CH-{year}-{random.randint(10000, 99999)}"


async def extract_entities(generation: GenerationService, notes: str, temperature: float = 0.3) -> ExtractedEntities:
    """
    Extract structured case facts from notes.

    Raises:
        RuntimeError: if the generation provider is unavailable
        ValueError: if the model output cannot be decoded
    """
    logger.info("Extracting entities from case notes...")
    content = await generation.complete_json(
        LLM_PROMPTS["intake_system"],
        LLM_PROMPTS["intake_user"].format(notes=notes),
        temperature,
    )
    try:
        entities = ExtractedEntities.model_validate(json.loads(content))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Could not decode extracted entities: {e}") from e

    logger.info(f"Entity extraction complete: host country {entities.host_country or 'unknown'}")
    return entities


async def analyze_intake(
    notes: str,
    generation: GenerationService,
    cases: CaseStore,
    temperature: float = 0.3,
) -> Case:
    """
    Turn raw notes into a draft Case.

    Raises:
        ValueError: for blank notes or undecodable model output
        RuntimeError: if the generation provider is unavailable
    """
    if not notes or not notes.strip():
        raise ValueError("No notes provided")

    entities = await extract_entities(generation, notes, temperature)
    return cases.create(
        case_number=generate_case_number(),
        notes=notes,
        extracted_entities=entities,
        status="draft",
    )
