from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from . import config
from .archive import DocumentArchive
from .completions import ChatCompletionClient
from .config import RetrievalConfig, load_retrieval_config
from .embeddings import SentenceTransformerEmbedder
from .errors import RagError, ValidationError
from .ingestion import IngestionPipeline
from .milvus_client import MilvusManager
from .models import ChatCompletionRequest, Document, EmbeddingSummary
from .query import QueryPipeline, extract_query
from .utils import get_logger


logger = get_logger(__name__)

app = FastAPI(title="Chat RAG Server", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@dataclass
class Services:
    retrieval: RetrievalConfig
    archive: DocumentArchive
    completer: ChatCompletionClient
    store: MilvusManager
    ingestion: IngestionPipeline
    query: QueryPipeline


@lru_cache(maxsize=1)
def get_services() -> Services:
    retrieval = load_retrieval_config()
    archive = DocumentArchive(config.ARCHIVE_DIR)
    embedder = SentenceTransformerEmbedder(config.EMBEDDING_MODEL)
    store = MilvusManager(uri=retrieval.url)
    completer = ChatCompletionClient()
    logger.info(
        "Retrieval: %s collection=%s limit=%d threshold=%s",
        retrieval.url, retrieval.collection_name, retrieval.limit, retrieval.score_threshold,
    )
    return Services(
        retrieval=retrieval,
        archive=archive,
        completer=completer,
        store=store,
        ingestion=IngestionPipeline(retrieval, archive, embedder, store),
        query=QueryPipeline(retrieval, embedder, store, completer, rag_prompt=config.RAG_PROMPT),
    )


@app.exception_handler(RagError)
async def rag_error_handler(request: Request, exc: RagError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"message": exc.message, "type": type(exc).__name__}},
    )


class ChunksRequest(BaseModel):
    id: str = Field(..., description="Archive id returned by /v1/files")
    filename: str = Field(..., description="Filename used at upload time")


class EmbeddingsRequest(BaseModel):
    model: Optional[str] = Field(None, description="Ignored; the configured embedding model is used")
    input: Union[str, List[str]]


@app.get("/v1/info")
def info(services: Services = Depends(get_services)) -> Dict[str, Any]:
    try:
        milvus_ok = services.store.ping()
    except Exception as e:
        logger.warning("Vector store check failed: %s", e)
        milvus_ok = False
    return {
        "status": "ok" if milvus_ok else "degraded",
        "milvus": milvus_ok,
        "embedding_model": config.EMBEDDING_MODEL,
        "chat_model": services.completer.model,
        "collection": services.retrieval.collection_name,
        "limit": services.retrieval.limit,
        "score_threshold": services.retrieval.score_threshold,
        "chunk_size": services.ingestion.chunk_size,
    }


@app.get("/v1/models")
async def models(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.completer.list_models()


async def _read_upload(file: UploadFile) -> tuple[str, bytes]:
    if not file.filename:
        raise ValidationError("Failed to upload the target file. Not found the target file.")
    return file.filename, await file.read()


@app.post("/v1/files")
async def upload_file(file: UploadFile = File(...), services: Services = Depends(get_services)) -> Document:
    filename, data = await _read_upload(file)
    return services.archive.store(filename, data)


@app.post("/v1/chunks")
def chunks(req: ChunksRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    result = services.ingestion.chunk_document(req.id, req.filename)
    return {"id": req.id, "filename": req.filename, "chunks": result.chunks}


@app.post("/v1/embeddings")
async def embeddings(req: EmbeddingsRequest, services: Services = Depends(get_services)) -> EmbeddingSummary:
    texts = [req.input] if isinstance(req.input, str) else list(req.input)
    if not texts or any(not t.strip() for t in texts):
        raise ValidationError("The input must contain at least one non-empty chunk")
    return await services.ingestion.embed_chunks(texts)


@app.post("/v1/create/rag")
async def create_rag(file: UploadFile = File(...), services: Services = Depends(get_services)) -> EmbeddingSummary:
    filename, data = await _read_upload(file)
    return await services.ingestion.upload_and_ingest(filename, data)


@app.post("/v1/retrieve")
async def retrieve(req: ChatCompletionRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    outcome = await services.query.retrieve(extract_query(req))
    return {
        "points": [p.model_dump() for p in outcome.points],
        "limit": services.retrieval.limit,
        "score_threshold": services.retrieval.score_threshold,
        "status": outcome.status.value,
        "reason": outcome.reason,
    }


async def _sse(first: str, stream: AsyncIterator[str]) -> AsyncIterator[str]:
    yield f"data: {first}\n\n"
    async for data in stream:
        yield f"data: {data}\n\n"


@app.post("/v1/chat/completions")
async def chat_completions(req: ChatCompletionRequest, services: Services = Depends(get_services)):
    answer = await services.query.answer(req)
    if isinstance(answer, dict):
        return answer

    # pull the first fragment so upstream failures still map to an error status
    try:
        first = await answer.__anext__()
    except StopAsyncIteration:
        first = "[DONE]"
    return StreamingResponse(
        _sse(first, answer),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("chat_rag.app:app", host="0.0.0.0", port=8000, reload=False)
