from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, Optional, Sequence

from . import config
from .archive import DocumentArchive
from .chunker import ChunkResult, chunk_text
from .config import RetrievalConfig, require_retrieval_config
from .embeddings import Embedder
from .errors import ChunkingError, EmbeddingError, PersistenceError, RagError
from .milvus_client import VectorStore
from .models import Document, EmbeddingResponse, EmbeddingSummary, Point
from .utils import chunk_hash, file_extension, get_logger, point_id


logger = get_logger(__name__)


class IngestionPipeline:
    """
    Uploaded -> Chunked -> Embedded -> Persisted.

    Each step runs only when the previous one succeeded. Nothing is retried
    and nothing is rolled back; the archived document stays, so a failed
    ingestion can be re-run from the upload.
    """

    def __init__(
        self,
        retrieval: Optional[RetrievalConfig],
        archive: DocumentArchive,
        embedder: Embedder,
        store: VectorStore,
        chunk_size: Optional[int] = None,
    ):
        self.retrieval = require_retrieval_config(retrieval)
        self.archive = archive
        self.embedder = embedder
        self.store = store
        self.chunk_size = chunk_size or config.CHUNK_SIZE

    def chunk_document(self, file_id: str, filename: str, extension: Optional[str] = None) -> ChunkResult:
        data = self.archive.load(file_id, filename)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ChunkingError(f"Failed to read `{filename}` as UTF-8 text: {e}") from e
        fmt = extension or file_extension(filename)
        result = chunk_text(text, fmt, self.chunk_size)
        logger.info("Chunked %s/%s into %d chunks", file_id, filename, len(result))
        return result

    async def _embed(self, texts: List[str]) -> EmbeddingResponse:
        try:
            response = await self.embedder.embed(texts)
        except RagError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Failed to compute embeddings: {e}") from e
        if len(response.data) != len(texts):
            raise EmbeddingError(
                f"Embedding response has {len(response.data)} vectors for {len(texts)} inputs."
            )
        return response

    def _points(self, chunks: Sequence[str], response: EmbeddingResponse, document: Optional[Document]) -> List[Point]:
        file_id = document.id if document else f"chunks_{uuid.uuid4().hex}"
        created = document.created_at if document else int(time.time())
        vectors = sorted(response.data, key=lambda d: d.index)
        points: List[Point] = []
        for i, (text, emb) in enumerate(zip(chunks, vectors)):
            payload: Dict[str, Any] = {
                "source": text,
                "file_id": file_id,
                "chunk_index": i,
                "hash": chunk_hash(text),
                "created_at": created,
            }
            if document:
                payload["filename"] = document.filename
            points.append(Point(id=point_id(file_id, i), vector=emb.embedding, payload=payload))
        return points

    async def embed_chunks(
        self,
        chunks: Sequence[str],
        document: Optional[Document] = None,
        oversized: Optional[List[int]] = None,
    ) -> EmbeddingSummary:
        """Embed `chunks` in one batch and upsert them in one call."""
        texts = list(chunks)
        if not texts:
            raise ChunkingError("No chunks to embed.")

        response = await self._embed(texts)
        logger.info("Computed %d embeddings with %s", len(response.data), response.model)

        points = self._points(texts, response, document)
        collection = self.retrieval.collection_name
        try:
            await self.store.upsert(collection, points)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to persist {len(points)} points to `{collection}`: {e}") from e
        logger.info("Persisted %d points to %s", len(points), collection)

        return EmbeddingSummary(
            data=response.data,
            model=response.model,
            usage=response.usage,
            collection=collection,
            file_id=document.id if document else None,
            filename=document.filename if document else None,
            oversized_chunks=oversized or [],
        )

    async def ingest(self, document: Document, extension: Optional[str] = None) -> EmbeddingSummary:
        result = self.chunk_document(document.id, document.filename, extension)
        return await self.embed_chunks(result.chunks, document=document, oversized=result.oversized)

    async def upload_and_ingest(self, filename: str, data: bytes) -> EmbeddingSummary:
        document = self.archive.store(filename, data)
        return await self.ingest(document)
