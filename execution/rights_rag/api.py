"""
FastAPI Backend for the Refugee Rights RAG System

Provides REST endpoints for case intake, verification, report generation,
streaming chat over the legal corpus and serving source documents.

The document index is built in the background at startup; until it is ready
(or if it fails) reports and chat run in general-knowledge mode.

Run with: uvicorn execution.rights_rag.api:app --host 0.0.0.0 --port 8000
"""

import json
import asyncio
import logging
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api_models import (
    CaseVerificationRequest, ChatRequest, GenerateReportRequest,
    HealthResponse, IndexStatus, IntakeRequest,
)
from .chat import ChatService
from .document_index import DocumentIndex
from .embeddings import get_embedding_service
from .generation import GenerationService
from .intake import analyze_intake
from .metrics import get_metrics_collector
from .models import Case, Report
from .orchestrator import NoApplicableCategoriesError, ReportOrchestrator
from .precedents import PrecedentFinder
from .settings import AppSettings
from .source_extractor import resolve_document_path
from .storage import CaseNotFoundError, CaseStore, ReportStore

logger = logging.getLogger(__name__)


# =============================================================================
# Service Container - builds and caches services for the process
# =============================================================================

class ServiceContainer:
    """Lazily constructs the services shared by all requests."""

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        index: Optional[DocumentIndex] = None,
        generation: Optional[GenerationService] = None,
        cases: Optional[CaseStore] = None,
        reports: Optional[ReportStore] = None,
    ):
        self._settings = settings
        self._index = index
        self._generation = generation
        self._cases = cases
        self._reports = reports
        self._init_task: Optional[asyncio.Task] = None

    @property
    def settings(self) -> AppSettings:
        if self._settings is None:
            self._settings = AppSettings.from_env()
        return self._settings

    def get_index(self) -> DocumentIndex:
        if self._index is None:
            embeddings = get_embedding_service(self.settings.embeddings)
            self._index = DocumentIndex(self.settings, embeddings)
        return self._index

    def get_generation(self) -> GenerationService:
        if self._generation is None:
            self._generation = GenerationService(self.settings.generation)
        return self._generation

    def get_cases(self) -> CaseStore:
        if self._cases is None:
            self._cases = CaseStore()
        return self._cases

    def get_reports(self) -> ReportStore:
        if self._reports is None:
            self._reports = ReportStore()
        return self._reports

    def get_orchestrator(self) -> ReportOrchestrator:
        generation = self.get_generation()
        return ReportOrchestrator(
            index=self.get_index(),
            generation=generation,
            precedents=PrecedentFinder(generation, self.settings.generation.precedent_temperature),
            cases=self.get_cases(),
            reports=self.get_reports(),
            settings=self.settings,
        )

    def get_chat(self) -> ChatService:
        return ChatService(
            index=self.get_index(),
            generation=self.get_generation(),
            cases=self.get_cases(),
            settings=self.settings,
        )

    def start_index_initialization(self) -> asyncio.Task:
        """Kick off index initialization without blocking startup."""
        if self._init_task is None:
            logger.info("Initializing document processing system...")
            self._init_task = asyncio.create_task(self.get_index().initialize())
        return self._init_task


_container = ServiceContainer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    _container.start_index_initialization()
    yield


app = FastAPI(
    title="Refugee Rights RAG API",
    description="Case intake, legal report generation and chat over refugee law documents",
    version=__version__,
    lifespan=lifespan,
)

# Configure CORS: use CORS_ORIGINS env var (comma-separated) or default to localhost
app.add_middleware(
    CORSMiddleware,
    allow_origins=AppSettings.from_env().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _sse_event(event: str, data) -> str:
    """Format a Server-Sent Event."""
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=__version__,
        index=IndexStatus(**_container.get_index().status()),
    )


@app.post("/api/v1/intake/analyze", response_model=Case)
async def intake_analyze(request: IntakeRequest):
    """Extract entities from case notes and create a draft case."""
    if not request.notes.strip():
        raise HTTPException(status_code=400, detail="No notes provided")

    try:
        return await analyze_intake(
            request.notes,
            _container.get_generation(),
            _container.get_cases(),
            temperature=_container.settings.generation.intake_temperature,
        )
    except RuntimeError as e:
        logger.error(f"Intake failed, generation unavailable: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        logger.error(f"Intake failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to process intake")


@app.get("/api/v1/cases", response_model=list[Case])
async def list_cases():
    """List all cases, newest first."""
    return _container.get_cases().list_all()


@app.get("/api/v1/cases/{case_id}", response_model=Case)
async def get_case(case_id: str):
    try:
        return _container.get_cases().get(case_id)
    except CaseNotFoundError:
        raise HTTPException(status_code=404, detail="Case not found")


@app.patch("/api/v1/cases/{case_id}", response_model=Case)
async def verify_case(case_id: str, request: CaseVerificationRequest):
    """Replace extracted entities with caseworker-verified ones."""
    try:
        return _container.get_cases().update(
            case_id,
            extracted_entities=request.extracted_entities.model_dump(),
            status="verified",
        )
    except CaseNotFoundError:
        raise HTTPException(status_code=404, detail="Case not found")


@app.post("/api/v1/chat")
async def chat(request: ChatRequest, http_request: Request):
    """Streaming RAG chat with SSE.

    Sends events:
      - {"event": "sources", "data": [...]}  (after retrieval)
      - {"event": "token", "data": "..."}    (during generation)
      - {"event": "done", "data": {"latency_ms": ...}}  (final)
      - {"event": "error", "data": "..."}    (on failure)
    """
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    if request.case_id:
        try:
            _container.get_cases().get(request.case_id)
        except CaseNotFoundError:
            raise HTTPException(status_code=404, detail="Case not found")

    events = _container.get_chat().stream(request.message, request.case_id)

    async def generate():
        try:
            async for event in events:
                if await http_request.is_disconnected():
                    logger.info("Chat client disconnected, stopping stream")
                    break
                yield _sse_event(event.type, event.data)
        finally:
            await events.aclose()

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@app.post("/api/v1/reports/generate", response_model=Report)
async def generate_report(request: GenerateReportRequest):
    """Generate a legal report for a case across all applicable categories."""
    logger.info(f"Generating report for case: {request.case_id}")
    try:
        return await _container.get_orchestrator().generate_report(request.case_id)
    except CaseNotFoundError:
        raise HTTPException(status_code=404, detail="Case not found")
    except NoApplicableCategoriesError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/v1/reports/case/{case_id}", response_model=Report)
async def get_report_for_case(case_id: str):
    report = _container.get_reports().get_by_case_id(case_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found for this case")
    return report


@app.get("/api/v1/documents/{path:path}")
async def serve_document(path: str):
    """Serve a source PDF from the document root."""
    try:
        file_path = resolve_document_path(_container.settings.document_root, path)
    except PermissionError:
        raise HTTPException(status_code=403, detail="Access denied")
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(
        file_path,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{file_path.name}"'},
    )


@app.get("/api/v1/metrics")
async def get_metrics():
    collector = get_metrics_collector()
    return {
        **collector.get_metrics_dict(),
        "uptime_seconds": round(collector.get_uptime().total_seconds(), 1),
    }
