from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Document(BaseModel):
    """An uploaded file as stored in the archive."""

    model_config = ConfigDict(frozen=True)

    id: str
    object: str = "file"
    bytes: int
    created_at: int = Field(default_factory=lambda: int(time.time()))
    filename: str
    purpose: str = "assistants"


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str
    content: Optional[Union[str, List[Dict[str, Any]]]] = None
    name: Optional[str] = None


class ChatCompletionRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)
    stream: Optional[bool] = None
    user: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Point(BaseModel):
    id: str
    vector: List[float]
    payload: Dict[str, Any] = Field(default_factory=dict)


class ScoredPoint(BaseModel):
    score: float
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def source(self) -> Optional[str]:
        value = self.payload.get("source")
        return value if isinstance(value, str) else None


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class EmbeddingObject(BaseModel):
    object: str = "embedding"
    index: int
    embedding: List[float]


class EmbeddingResponse(BaseModel):
    object: str = "list"
    data: List[EmbeddingObject]
    model: str
    usage: Usage = Field(default_factory=Usage)


class EmbeddingSummary(EmbeddingResponse):
    """Embedding response of an ingestion, plus where the vectors went."""

    collection: str
    file_id: Optional[str] = None
    filename: Optional[str] = None
    oversized_chunks: List[int] = Field(default_factory=list)
