"""
Source Extractor - walks the document root and extracts raw text per PDF

Uses PyMuPDF for text extraction. Each file yields its full text plus a page
count, which the chunker later uses to estimate chunk page numbers.

A corrupt or unreadable file never fails the run: it is skipped with a
warning and contributes zero chunks. A missing root yields no sources.
"""

import asyncio
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".pdf"}


@dataclass(frozen=True)
class ExtractionResult:
    """Text extracted from one file."""
    text: str
    unit_count: int  # pages


@dataclass(frozen=True)
class ExtractedSource:
    """A source file with its extracted text and corpus-relative location."""
    path: Path
    relative_path: Path
    text: str
    unit_count: int

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def category_tag(self) -> str:
        """First folder under the corpus root, or "unknown" for root-level files."""
        parts = self.relative_path.parts
        return parts[0] if len(parts) > 1 else "unknown"


def resolve_document_path(root: str, relative_path: str) -> Path:
    """
    Resolve a requested document path inside the corpus root.

    Raises:
        PermissionError: if the path resolves outside the root
        FileNotFoundError: if no such file exists
    """
    base = Path(root).resolve()
    target = (base / relative_path).resolve()
    if target != base and base not in target.parents:
        raise PermissionError(f"Access denied: {relative_path}")
    if not target.is_file():
        raise FileNotFoundError(f"File not found: {relative_path}")
    return target


class TextExtractor(Protocol):
    """Text-extraction capability: may raise for any individual file."""

    def extract(self, path: Path) -> ExtractionResult:
        ...


class PyMuPDFTextExtractor:
    """Extracts plain text and page count with PyMuPDF."""

    def extract(self, path: Path) -> ExtractionResult:
        import fitz  # PyMuPDF

        with fitz.open(str(path)) as doc:
            page_count = len(doc)
            text = "\n".join(page.get_text() for page in doc)

        return ExtractionResult(text=text, unit_count=page_count)


class SourceExtractor:
    """
    Discovers eligible files under a root and extracts their text.

    Extraction is blocking library work, so each file is handed to a worker
    thread and awaited; the event loop keeps serving other requests meanwhile.
    """

    def __init__(self, root: str, extractor: Optional[TextExtractor] = None):
        """
        Initialize the extractor.

        Args:
            root: Corpus root directory
            extractor: Text-extraction backend. Defaults to PyMuPDF.
        """
        self.root = Path(root)
        self._extractor = extractor or PyMuPDFTextExtractor()

    def discover(self) -> list[Path]:
        """Recursively list eligible files in a stable (sorted) order."""
        if not self.root.is_dir():
            logger.info(f"Document root not found: {self.root}")
            return []

        return sorted(
            p for p in self.root.rglob("*")
            if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
        )

    async def extract_all(self) -> list[ExtractedSource]:
        """
        Extract every discovered file, skipping the ones that fail.

        Returns:
            Sources in discovery order, excluding unreadable or empty files
        """
        files = self.discover()
        logger.info(f"Found {len(files)} source files under {self.root}")

        sources = []
        for path in files:
            source = await self.extract_one(path)
            if source is not None:
                sources.append(source)

        logger.info(f"Extracted text from {len(sources)}/{len(files)} files")
        return sources

    async def extract_one(self, path: Path) -> Optional[ExtractedSource]:
        """Extract a single file; returns None when it must be skipped."""
        try:
            result = await asyncio.to_thread(self._extractor.extract, path)
        except Exception as e:
            logger.warning(f"Skipping {path}: extraction failed ({type(e).__name__}: {e})")
            return None

        if not result.text or not result.text.strip():
            logger.info(f"Skipping {path.name}: no text extracted")
            return None

        return ExtractedSource(
            path=path,
            relative_path=path.relative_to(self.root),
            text=result.text,
            unit_count=result.unit_count,
        )
