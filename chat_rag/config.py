from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError


def env_str(key: str, default: str) -> str:
    return os.getenv(key, default)


def env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


# Logging
LOG_LEVEL = env_str("LOG_LEVEL", "INFO")

# Models
EMBEDDING_MODEL = env_str("EMBEDDING_MODEL", "BAAI/bge-large-en")
CHAT_MODEL = env_str("CHAT_MODEL", "default")

# Inference server (OpenAI-compatible)
CHAT_API_BASE = env_str("CHAT_API_BASE", "http://localhost:8080/v1")
CHAT_API_KEY = env_str("CHAT_API_KEY", "")
CHAT_TIMEOUT = env_float("CHAT_TIMEOUT", 300.0)

# Chunking
CHUNK_SIZE = env_int("CHUNK_SIZE", 1024)

# Document archive
ARCHIVE_DIR = env_str("ARCHIVE_DIR", "archives")

# Milvus
MILVUS_URI = env_str("MILVUS_URI", "http://localhost:19530")
MILVUS_TOKEN = env_str("MILVUS_TOKEN", "")
MILVUS_DB_NAME = env_str("MILVUS_DB_NAME", "")  # use default

# Retrieval
RAG_COLLECTION = env_str("RAG_COLLECTION", "default")
RAG_LIMIT = env_int("RAG_LIMIT", 3)
RAG_SCORE_THRESHOLD = env_float("RAG_SCORE_THRESHOLD", 0.4)

DEFAULT_RAG_PROMPT = (
    "Use the following pieces of context to answer the user's question.\n"
    "If you don't know the answer, just say that you don't know, "
    "don't try to make up an answer.\n----------------\n"
)
RAG_PROMPT = env_str("RAG_PROMPT", DEFAULT_RAG_PROMPT)

# Payload limits
SOURCE_MAX_LEN = env_int("SOURCE_MAX_LEN", 65535)
FILENAME_MAX_LEN = env_int("FILENAME_MAX_LEN", 512)
POINT_ID_MAX_LEN = env_int("POINT_ID_MAX_LEN", 128)


class RetrievalConfig(BaseModel):
    """Where retrieval happens and how much of it is kept. Read-only once built."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1, description="Vector store endpoint")
    collection_name: str = Field(..., min_length=1)
    limit: int = Field(..., gt=0, description="Maximum number of points returned per search")
    score_threshold: float = Field(..., description="Minimum similarity score of a returned point")


def load_retrieval_config() -> RetrievalConfig:
    url = env_str("MILVUS_URI", MILVUS_URI).strip()
    collection = env_str("RAG_COLLECTION", RAG_COLLECTION).strip()
    if not url:
        raise ConfigurationError("The vector store endpoint (MILVUS_URI) is not set.")
    if not collection:
        raise ConfigurationError("The vector store collection (RAG_COLLECTION) is not set.")
    limit = env_int("RAG_LIMIT", RAG_LIMIT)
    if limit <= 0:
        raise ConfigurationError(f"RAG_LIMIT must be a positive integer, got {limit}.")
    return RetrievalConfig(
        url=url,
        collection_name=collection,
        limit=limit,
        score_threshold=env_float("RAG_SCORE_THRESHOLD", RAG_SCORE_THRESHOLD),
    )


def require_retrieval_config(cfg: RetrievalConfig | None) -> RetrievalConfig:
    if cfg is None:
        raise ConfigurationError("The retrieval configuration is not set.")
    return cfg
