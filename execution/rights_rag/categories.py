"""
Rights category taxonomy: applicability predicates and retrieval queries.

Only categories with a spec here can be attempted. Housing is the baseline
and applies to every case; the others require a qualifying fact in the
case's extracted entities. Categories without a spec (asylum, work, ...) are
never started and show up in a report only by their absence.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from .models import ExtractedEntities, RightsCategory


@dataclass(frozen=True)
class CategorySpec:
    category: RightsCategory
    query_template: str
    predicate: Optional[Callable[[ExtractedEntities], bool]] = None  # None = baseline
    needs: Callable[[ExtractedEntities], list[str]] = lambda entities: []

    @property
    def is_baseline(self) -> bool:
        return self.predicate is None

    def applies_to(self, entities: ExtractedEntities) -> bool:
        return self.predicate is None or bool(self.predicate(entities))

    def build_query(self, entities: ExtractedEntities, country: str) -> str:
        return self.query_template.format(
            needs=" ".join(self.needs(entities)),
            country=country,
        )


CATEGORY_SPECS: tuple[CategorySpec, ...] = (
    CategorySpec(
        category=RightsCategory.HEALTH,
        query_template="medical rights healthcare access treatment for {needs} in {country}",
        predicate=lambda e: len(e.medical_needs) > 0,
        needs=lambda e: list(e.medical_needs),
    ),
    CategorySpec(
        category=RightsCategory.EDUCATION,
        query_template="education rights school access language classes for refugees in {country}",
        predicate=lambda e: len(e.education_needs) > 0,
        needs=lambda e: list(e.education_needs),
    ),
    CategorySpec(
        category=RightsCategory.FAMILY_LIFE,
        query_template="family reunification rights asylum family members in {country}",
        predicate=lambda e: (e.family_size or 0) > 1,
    ),
    CategorySpec(
        category=RightsCategory.HOUSING,
        query_template="housing accommodation rights refugees asylum seekers in {country}",
    ),
)


def resolve_country(entities: ExtractedEntities, default: str) -> str:
    country = (entities.host_country or "").strip()
    return country or default


def applicable_categories(entities: ExtractedEntities) -> list[CategorySpec]:
    """Category specs whose predicate the case satisfies, in taxonomy order."""
    return [spec for spec in CATEGORY_SPECS if spec.applies_to(entities)]
