"""
In-memory case and report stores.

Plain keyed maps. Records are immutable models: updates replace the stored
record instead of mutating it. Writes to different keys are independent; two
report generations for the same case at once are the caller's responsibility
to avoid.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional

from .models import Case, CategoryAnalysis, ExtractedEntities, Report, RightsCategory

logger = logging.getLogger(__name__)


class CaseNotFoundError(LookupError):
    """Raised when a case id does not exist."""


class ReportNotFoundError(LookupError):
    """Raised when a report id does not exist."""


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CaseStore:
    """Keyed store of Case records."""

    def __init__(self):
        self._cases: dict[str, Case] = {}

    def create(
        self,
        case_number: str,
        notes: str,
        extracted_entities: Optional[ExtractedEntities] = None,
        status: str = "draft",
    ) -> Case:
        now = utc_now()
        case = Case(
            id=str(uuid.uuid4()),
            case_number=case_number,
            notes=notes,
            extracted_entities=extracted_entities or ExtractedEntities(),
            status=status,
            created_at=now,
            updated_at=now,
        )
        self._cases[case.id] = case
        logger.info(f"Case created: {case.case_number} ({case.id})")
        return case

    def get(self, case_id: str) -> Case:
        case = self._cases.get(case_id)
        if case is None:
            raise CaseNotFoundError(f"Case not found: {case_id}")
        return case

    def update(self, case_id: str, **changes) -> Case:
        """
        Replace a case with an updated copy.

        Args:
            case_id: Case to update
            **changes: Field values to change (snake_case names)

        Raises:
            CaseNotFoundError: if the case does not exist
        """
        current = self.get(case_id)
        changes.pop("id", None)
        changes.pop("created_at", None)
        # validate through the model so bad statuses are rejected
        updated = Case.model_validate({
            **current.model_dump(),
            **changes,
            "updated_at": utc_now(),
        })
        self._cases[case_id] = updated
        return updated

    def list_all(self) -> list[Case]:
        """All cases, newest first."""
        newest_first = list(reversed(self._cases.values()))
        return sorted(newest_first, key=lambda c: c.created_at, reverse=True)

    def __len__(self) -> int:
        return len(self._cases)


class ReportStore:
    """Keyed store of Report records; the latest report per case wins."""

    def __init__(self):
        self._reports: dict[str, Report] = {}
        self._latest_by_case: dict[str, str] = {}

    def create(
        self,
        case_id: str,
        case_number: str,
        analyses: list[CategoryAnalysis],
        disclaimer: str,
        generated_at: Optional[str] = None,
        failed_categories: Optional[list[RightsCategory]] = None,
    ) -> Report:
        report = Report(
            id=str(uuid.uuid4()),
            case_id=case_id,
            case_number=case_number,
            generated_at=generated_at or utc_now(),
            analyses=analyses,
            disclaimer=disclaimer,
            failed_categories=failed_categories or [],
        )
        self._reports[report.id] = report
        self._latest_by_case[case_id] = report.id
        return report

    def get(self, report_id: str) -> Report:
        report = self._reports.get(report_id)
        if report is None:
            raise ReportNotFoundError(f"Report not found: {report_id}")
        return report

    def get_by_case_id(self, case_id: str) -> Optional[Report]:
        """Most recently generated report for a case, if any."""
        report_id = self._latest_by_case.get(case_id)
        return self._reports.get(report_id) if report_id else None

    def list_all(self) -> list[Report]:
        """All reports, newest first."""
        newest_first = list(reversed(self._reports.values()))
        return sorted(newest_first, key=lambda r: r.generated_at, reverse=True)
