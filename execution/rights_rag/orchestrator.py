"""
Category Orchestrator

Synthesizes one Report from a Case. Every applicable rights category runs
its own pipeline as an asyncio task:

    NOT_STARTED -> RETRIEVING -> GENERATING -> SUCCEEDED | FAILED

Retrieval always precedes generation within a category. Generation and the
precedent lookup for the same category run side by side. All category tasks
are awaited together under one overall timeout; tasks still running at the
deadline are cancelled and count as failed.

Failure policy:
    - generation error or undecodable output -> the category is dropped
    - precedent lookup error                 -> empty precedent list
    - case not found                         -> CaseNotFoundError
    - nothing applicable                     -> NoApplicableCategoriesError

Otherwise a report is always produced, even with zero analyses. Categories
that were attempted but dropped are listed in Report.failed_categories, so a
missing analysis is never mistaken for a category that did not apply.
"""

import asyncio
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Optional

from .categories import CategorySpec, applicable_categories, resolve_country
from .context import assemble_context
from .document_index import DocumentIndex
from .generation import AnalysisPayload, GenerationService, decode_analysis
from .metrics import get_metrics_collector
from .models import Case, CategoryAnalysis, Citation, Report, SimilarCase
from .precedents import PrecedentFinder
from .prompts import LLM_PROMPTS, build_analysis_prompt
from .settings import AppSettings
from .storage import CaseStore, ReportStore

logger = logging.getLogger(__name__)


class NoApplicableCategoriesError(RuntimeError):
    """Raised when a case yields no category that can be attempted."""


class CategoryState(str, Enum):
    NOT_STARTED = "not_started"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = {CategoryState.SUCCEEDED, CategoryState.FAILED}


@dataclass
class CategoryRun:
    """Progress of one category pipeline within a report generation."""
    spec: CategorySpec
    state: CategoryState = CategoryState.NOT_STARTED
    analysis: Optional[CategoryAnalysis] = None
    error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.spec.category.value

    def fail(self, reason: str) -> None:
        self.state = CategoryState.FAILED
        self.error = reason


class ReportOrchestrator:
    """Fans out category analyses for a case and assembles the report."""

    def __init__(
        self,
        index: DocumentIndex,
        generation: GenerationService,
        precedents: PrecedentFinder,
        cases: CaseStore,
        reports: ReportStore,
        settings: Optional[AppSettings] = None,
    ):
        self._index = index
        self._generation = generation
        self._precedents = precedents
        self._cases = cases
        self._reports = reports
        self.settings = settings or AppSettings()

    async def generate_report(self, case_id: str) -> Report:
        """
        Generate, persist and return a new report for a case.

        Marks the case `completed`. A later call creates a new report that
        supersedes this one.

        Raises:
            CaseNotFoundError: if the case does not exist
            NoApplicableCategoriesError: if no category applies
        """
        case = self._cases.get(case_id)
        specs = applicable_categories(case.extracted_entities)
        if not specs:
            raise NoApplicableCategoriesError(f"No applicable categories for case {case_id}")

        runs = [CategoryRun(spec=spec) for spec in specs]
        has_documents = self._index.has_documents
        if not has_documents:
            logger.info("No legal documents available - using general knowledge")

        logger.info(
            f"Generating report for {case.case_number}: "
            f"{', '.join(run.name for run in runs)}"
        )

        metrics = get_metrics_collector()
        with metrics.track_report(case_id) as tracker:
            timed_out = await self._run_all(runs, case, has_documents)

            analyses = [run.analysis for run in runs if run.state is CategoryState.SUCCEEDED]
            failed = [run.spec.category for run in runs if run.state is CategoryState.FAILED]
            for run in runs:
                metrics.record_category(run.name, run.state is CategoryState.SUCCEEDED)
            tracker.set_outcome(len(runs), len(analyses), timed_out=timed_out)

            report = self._reports.create(
                case_id=case.id,
                case_number=case.case_number,
                analyses=analyses,
                disclaimer=self.settings.report.disclaimer,
                failed_categories=failed,
            )
            self._cases.update(case.id, status="completed")

        logger.info(
            f"Report generated: {report.id} ({len(analyses)}/{len(runs)} categories)"
        )
        return report

    async def _run_all(self, runs: list[CategoryRun], case: Case, has_documents: bool) -> bool:
        """Run every category concurrently; returns True if the deadline hit."""
        tasks = [
            asyncio.create_task(self._run_category(run, case, has_documents), name=run.name)
            for run in runs
        ]
        try:
            _, pending = await asyncio.wait(tasks, timeout=self.settings.report.timeout_seconds)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        if pending:
            logger.warning(
                f"Report timed out after {self.settings.report.timeout_seconds}s, "
                f"cancelling {len(pending)} categories"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for run in runs:
            if run.state not in TERMINAL_STATES:
                run.fail("timed out")
        return bool(pending)

    async def _run_category(self, run: CategoryRun, case: Case, has_documents: bool) -> None:
        """One category pipeline. Records its outcome on `run`, never raises."""
        try:
            run.analysis = await self._analyze(run, case, has_documents)
            run.state = CategoryState.SUCCEEDED
        except asyncio.CancelledError:
            run.fail("cancelled")
            raise
        except Exception as e:
            logger.warning(f"Dropping {run.name} analysis: {type(e).__name__}: {e}")
            run.fail(f"{type(e).__name__}: {e}")

    async def _analyze(self, run: CategoryRun, case: Case, has_documents: bool) -> CategoryAnalysis:
        entities = case.extracted_entities
        country = resolve_country(entities, self.settings.report.default_host_country)
        retrieval = self.settings.retrieval
        category = run.name

        run.state = CategoryState.RETRIEVING
        results = []
        if has_documents:
            results = await self._index.search(
                run.spec.build_query(entities, country),
                top_k=retrieval.report_top_k,
                min_similarity=retrieval.report_min_similarity,
                category_tag=country,
                scoped_min_similarity=retrieval.category_min_similarity,
            )
        context = assemble_context(results, retrieval.report_top_k)

        run.state = CategoryState.GENERATING
        prompt = build_analysis_prompt(category, country, entities, context, has_documents)
        content, precedents = await asyncio.gather(
            self._generation.complete_json(
                LLM_PROMPTS["analysis_system"], prompt,
                self.settings.generation.analysis_temperature,
            ),
            self._precedents.find(
                category, country, run.spec.needs(entities),
                max_results=self.settings.report.max_precedents,
            ),
            return_exceptions=True,
        )

        if isinstance(content, BaseException):
            raise content
        # precedents is always a list; find() turns lookup failures into []

        decoded = decode_analysis(content)
        if not decoded.ok:
            raise ValueError(f"Unparsable analysis output: {decoded.error}")

        return self._to_analysis(run, decoded.value, precedents, has_documents)

    def _to_analysis(
        self,
        run: CategoryRun,
        payload: AnalysisPayload,
        precedents: list[SimilarCase],
        has_documents: bool,
    ) -> CategoryAnalysis:
        citation = Citation(
            quote=payload.citation.quote,
            source=payload.citation.source,
            origin_file=payload.citation.filename if has_documents else None,
            page_estimate=payload.citation.page_number if has_documents else None,
        )
        return CategoryAnalysis(
            category=run.spec.category,
            summary=payload.summary,
            legal_basis=payload.legal_basis,
            citation=citation,
            complications=payload.complications,
            risks=payload.risks,
            precedents=precedents[:self.settings.report.max_precedents],
            # general-knowledge analyses are never better than low
            confidence=payload.confidence_level if has_documents else "low",
        )
