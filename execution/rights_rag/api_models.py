"""
Pydantic request/response models for the Refugee Rights RAG FastAPI backend.
"""

from typing import Optional
from pydantic import BaseModel, Field

from .models import CamelModel, ExtractedEntities


class IntakeRequest(CamelModel):
    """Request body for case intake analysis."""
    notes: str = Field(..., max_length=50000)


class CaseVerificationRequest(CamelModel):
    """Caseworker-verified entities replacing the extracted ones."""
    extracted_entities: ExtractedEntities


class ChatRequest(CamelModel):
    """Request body for the streaming chat endpoint."""
    message: str = Field(..., min_length=1, max_length=4000)
    case_id: Optional[str] = None


class GenerateReportRequest(CamelModel):
    """Request body for report generation."""
    case_id: str = Field(..., min_length=1)


class IndexStatus(BaseModel):
    """State of the document index."""
    initialized: bool
    chunks: int
    embeddings: int
    has_documents: bool
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Response body for health check."""
    status: str
    version: str
    index: IndexStatus
