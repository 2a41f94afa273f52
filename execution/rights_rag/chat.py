"""
Chat over the legal corpus.

ChatService.stream() is an async generator of ChatEvent:

    sources  -> ranked evidence used for the answer (possibly empty)
    token*   -> answer text as it is generated
    done     -> terminal event with latency
    error    -> terminal event when generation fails

Closing the generator early (client disconnect) stops token emission and
closes the upstream provider stream; other chats are unaffected.
"""

import time
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Literal, Optional

from .context import assemble_context
from .document_index import DocumentIndex
from .generation import GenerationService
from .metrics import get_metrics_collector
from .prompts import LLM_PROMPTS, format_chat_case_context
from .settings import AppSettings
from .storage import CaseStore

logger = logging.getLogger(__name__)

EventType = Literal["sources", "token", "done", "error"]


@dataclass(frozen=True)
class ChatEvent:
    type: EventType
    data: Any

    @property
    def is_terminal(self) -> bool:
        return self.type in ("done", "error")


class ChatService:
    """Retrieval-augmented streaming chat."""

    def __init__(
        self,
        index: DocumentIndex,
        generation: GenerationService,
        cases: CaseStore,
        settings: Optional[AppSettings] = None,
    ):
        self._index = index
        self._generation = generation
        self._cases = cases
        self.settings = settings or AppSettings()

    async def build_system_prompt(self, message: str, case_id: Optional[str] = None):
        """
        Retrieve evidence and build the system prompt for a message.

        Returns:
            (system_prompt, results)

        Raises:
            CaseNotFoundError: if case_id is given but unknown
        """
        case_context = ""
        if case_id:
            case_context = format_chat_case_context(self._cases.get(case_id))

        retrieval = self.settings.retrieval
        results = []
        if self._index.has_documents:
            try:
                results = await self._index.search(
                    message,
                    top_k=retrieval.chat_max_chunks,
                    min_similarity=retrieval.chat_min_similarity,
                )
            except Exception as e:
                logger.warning(f"Chat retrieval failed, answering without documents: {e}")
            context = assemble_context(results, retrieval.chat_max_chunks)
        else:
            logger.info("No legal documents available - using general knowledge")
            context = LLM_PROMPTS["chat_no_documents"]

        system_prompt = LLM_PROMPTS["chat_system"].format(
            case_context=case_context, context=context,
        )
        return system_prompt, results

    async def stream(self, message: str, case_id: Optional[str] = None) -> AsyncIterator[ChatEvent]:
        """
        Answer a message as a stream of events.

        Raises:
            ValueError: for a blank message
            CaseNotFoundError: if case_id is given but unknown
        """
        if not message or not message.strip():
            raise ValueError("Message is required")

        start_time = time.time()
        logger.info(f"Processing chat message: {message[:50]}...")
        system_prompt, results = await self.build_system_prompt(message, case_id)
        yield ChatEvent("sources", [r.to_dict() for r in results])

        metrics = get_metrics_collector()
        tokens = self._generation.stream(
            system_prompt, message, self.settings.generation.chat_temperature,
        )
        completed = False
        failed = False
        try:
            async for token in tokens:
                yield ChatEvent("token", token)
            completed = True
        except Exception as e:
            failed = True
            logger.error(f"Chat generation failed: {type(e).__name__}: {e}")
        finally:
            await tokens.aclose()
            if not failed:
                metrics.record_chat(cancelled=not completed)

        if failed:
            yield ChatEvent("error", "Failed to process chat message")
            return

        yield ChatEvent("done", {"latency_ms": (time.time() - start_time) * 1000})
