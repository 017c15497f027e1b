from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Union

from . import config
from .completions import Answer, AnswerStream, ChatCompleter
from .config import RetrievalConfig, require_retrieval_config
from .embeddings import Embedder
from .errors import CompletionError, EmbeddingError, RagError, ValidationError
from .milvus_client import VectorStore
from .models import ChatCompletionRequest, ScoredPoint
from .prompt import merge_rag_context, system_message
from .utils import get_logger, preview


logger = get_logger(__name__)


class RetrievalStatus(str, enum.Enum):
    FOUND = "found"
    EMPTY = "empty"
    DEGRADED = "degraded"


@dataclass
class RetrievalOutcome:
    status: RetrievalStatus
    points: List[ScoredPoint] = field(default_factory=list)
    reason: Optional[str] = None

    @classmethod
    def from_points(cls, points: List[ScoredPoint]) -> "RetrievalOutcome":
        return cls(RetrievalStatus.FOUND if points else RetrievalStatus.EMPTY, list(points))

    @classmethod
    def degraded(cls, reason: str) -> "RetrievalOutcome":
        return cls(RetrievalStatus.DEGRADED, [], reason)


def extract_query(request: ChatCompletionRequest) -> str:
    """The text of the last message, which must be a user message."""
    if not request.messages:
        raise ValidationError("Messages should not be empty")
    last = request.messages[-1]
    if last.role != "user":
        raise ValidationError("The last message must be a user message")
    if not isinstance(last.content, str):
        raise ValidationError("The last message must be a text content user message")
    return last.content


def build_context(points: List[ScoredPoint]) -> str:
    sources = [p.source for p in points if p.source is not None]
    return "\n\n".join(sources)


class QueryPipeline:
    """
    Answer a chat request with retrieved context: embed the last user
    message, search, merge the context into the system prompt, complete.
    """

    def __init__(
        self,
        retrieval: Optional[RetrievalConfig],
        embedder: Embedder,
        store: VectorStore,
        completer: ChatCompleter,
        rag_prompt: Optional[str] = None,
    ):
        self.retrieval = require_retrieval_config(retrieval)
        self.embedder = embedder
        self.store = store
        self.completer = completer
        self.rag_prompt = rag_prompt if rag_prompt is not None else config.RAG_PROMPT

    async def embed_query(self, query: str) -> List[float]:
        try:
            response = await self.embedder.embed([query])
        except RagError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Failed to compute embeddings for the user query: {e}") from e
        if not response.data:
            raise EmbeddingError("No embeddings returned")
        return response.data[0].embedding

    async def search(self, vector: List[float]) -> RetrievalOutcome:
        cfg = self.retrieval
        try:
            points = await self.store.search(cfg.collection_name, vector, cfg.limit, cfg.score_threshold)
        except Exception as e:
            outcome = RetrievalOutcome.degraded(f"{type(e).__name__}: {e}")
            logger.warning("Retrieval degraded, answering without context: %s", outcome.reason)
            return outcome

        outcome = RetrievalOutcome.from_points(points)
        if outcome.status is RetrievalStatus.EMPTY:
            logger.info("No point retrieved (score < threshold %s)", cfg.score_threshold)
        for idx, point in enumerate(outcome.points):
            logger.info("Point %d: score %.4f source %s", idx, point.score, preview(point.source or ""))
        return outcome

    async def retrieve(self, query: str) -> RetrievalOutcome:
        logger.info("Computing embeddings for user query: %s", preview(query))
        vector = await self.embed_query(query)
        return await self.search(vector)

    def with_context(self, request: ChatCompletionRequest, context: str) -> ChatCompletionRequest:
        """Put the base RAG prompt at index 0, then merge `context` into it."""
        messages = list(request.messages)
        if messages and messages[0].role == "system":
            messages[0] = system_message(self.rag_prompt, messages[0].name)
        else:
            messages.insert(0, system_message(self.rag_prompt))
        merged = merge_rag_context(messages, [context])
        return request.model_copy(update={"messages": merged})

    async def prepare(self, request: ChatCompletionRequest) -> tuple[ChatCompletionRequest, RetrievalOutcome]:
        query = extract_query(request)
        outcome = await self.retrieve(query)
        context = build_context(outcome.points)
        if not context:
            return request, outcome
        return self.with_context(request, context), outcome

    async def answer(self, request: ChatCompletionRequest) -> Union[Answer, AnswerStream]:
        prepared, outcome = await self.prepare(request)
        if outcome.status is RetrievalStatus.FOUND:
            logger.info("Answer the user query with the context info")
        else:
            logger.info("Answer the user query")
        try:
            return await self.completer.complete(prepared)
        except RagError:
            raise
        except Exception as e:
            raise CompletionError(f"Chat completion failed: {e}") from e
