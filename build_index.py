"""
Offline build of the embedding cache for the refugee rights corpus.

Extracts every PDF under the document root, chunks it and embeds the chunks
once, writing the versioned embedding cache so the API starts warm.

Usage:
    python build_index.py
    python build_index.py --dir data/ --cache data/embeddings-cache.json
    python build_index.py --rebuild
"""

import sys
import time
import asyncio
import argparse
import logging
from pathlib import Path
from dotenv import load_dotenv

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def build(settings, rebuild: bool = False) -> int:
    """Build the index; returns the number of embeddings available."""
    from execution.rights_rag.document_index import DocumentIndex
    from execution.rights_rag.embeddings import get_embedding_service

    cache_path = Path(settings.embeddings.cache_path)
    if rebuild and cache_path.exists():
        logger.info(f"Removing existing cache {cache_path}")
        cache_path.unlink()

    index = DocumentIndex(settings, get_embedding_service(settings.embeddings))
    await index.initialize()
    status = index.status()
    if status["error"]:
        logger.error(f"Index build failed: {status['error']}")
    return status["embeddings"]


def main():
    arg_parser = argparse.ArgumentParser(description="Build the legal document embedding cache")
    arg_parser.add_argument("--dir", type=str, default=None, help="Document root (default: DOCUMENT_ROOT or data/)")
    arg_parser.add_argument("--cache", type=str, default=None, help="Cache file path (default: EMBEDDINGS_CACHE_PATH)")
    arg_parser.add_argument("--rebuild", action="store_true", help="Discard any existing cache and re-embed")
    args = arg_parser.parse_args()

    from execution.rights_rag.settings import AppSettings

    settings = AppSettings.from_env()
    if args.dir:
        settings.document_root = args.dir
    if args.cache:
        settings.embeddings.cache_path = args.cache

    if not Path(settings.document_root).exists():
        logger.error(f"Directory not found: {settings.document_root}")
        sys.exit(1)

    start = time.time()
    count = asyncio.run(build(settings, rebuild=args.rebuild))
    elapsed = time.time() - start

    print(f"\n{'='*60}")
    print(f"Index build complete in {elapsed:.1f}s")
    print(f"  Embeddings: {count}")
    print(f"  Cache:      {settings.embeddings.cache_path}")
    print(f"{'='*60}")

    if count == 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
