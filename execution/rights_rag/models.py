"""
Domain models for cases, reports and their category analyses.

Field names are snake_case in Python and camelCase on the wire, matching the
caseworker UI.
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Confidence = Literal["low", "medium", "high"]
UrgencyLevel = Literal["low", "medium", "high", "critical"]
CaseStatus = Literal["draft", "verified", "completed"]


class RightsCategory(str, Enum):
    """Fixed report taxonomy."""
    ASYLUM = "asylum"
    DOCUMENTATION = "documentation"
    EDUCATION = "education"
    FAMILY_LIFE = "family_life"
    FREEDOM_MOVEMENT = "freedom_movement"
    HEALTH = "health"
    HOUSING = "housing"
    LIBERTY_SECURITY = "liberty_security"
    NATIONALITY = "nationality"
    SOCIAL_PROTECTION = "social_protection"
    WORK = "work"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractedEntities(CamelModel):
    """Structured facts pulled out of free-text case notes."""
    host_country: Optional[str] = None
    medical_needs: list[str] = Field(default_factory=list)
    education_needs: list[str] = Field(default_factory=list)
    age: Optional[int] = None
    family_size: Optional[int] = None
    complications: list[str] = Field(default_factory=list)
    urgency_level: Optional[UrgencyLevel] = None

    @field_validator("medical_needs", "education_needs", "complications", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value


class Case(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    case_number: str
    notes: str
    extracted_entities: ExtractedEntities = Field(default_factory=ExtractedEntities)
    status: CaseStatus = "draft"
    created_at: str
    updated_at: str


class SimilarCase(CamelModel):
    """An analogous case or article found by the precedent lookup."""
    id: str
    title: str
    description: str = ""
    link: str
    source: str
    page_number: int = 0
    confidence: Confidence = "medium"
    similarity: float = 0.75


class Citation(CamelModel):
    quote: str
    source: str
    origin_file: Optional[str] = None  # None when no documents backed the analysis
    page_estimate: Optional[int] = None


class CategoryAnalysis(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    category: RightsCategory
    summary: str
    legal_basis: str
    citation: Citation
    complications: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    precedents: list[SimilarCase] = Field(default_factory=list)
    confidence: Confidence


class Report(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    case_id: str
    case_number: str
    generated_at: str
    analyses: list[CategoryAnalysis]
    disclaimer: str
    # attempted but failed or timed out; distinct from categories that never applied
    failed_categories: list[RightsCategory] = Field(default_factory=list)
