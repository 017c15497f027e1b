from __future__ import annotations

import asyncio
import threading
from typing import List, Optional, Protocol

import numpy as np
from sentence_transformers import SentenceTransformer

from . import config
from .models import EmbeddingObject, EmbeddingResponse, Usage


_emb_lock = threading.Lock()
_emb_models: dict[str, SentenceTransformer] = {}


class Embedder(Protocol):
    """Anything that turns an ordered batch of texts into index-aligned vectors."""

    model: str

    async def embed(self, texts: List[str]) -> EmbeddingResponse: ...


def get_embedding_model(name: str | None = None) -> SentenceTransformer:
    name = name or config.EMBEDDING_MODEL
    model = _emb_models.get(name)
    if model is None:
        with _emb_lock:
            model = _emb_models.get(name)
            if model is None:
                model = SentenceTransformer(name, device=None)
                _emb_models[name] = model
    return model


def l2_normalize(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    out = vectors / norms
    return out.astype(np.float32, copy=False)


def count_tokens(model: SentenceTransformer, texts: List[str]) -> int:
    tokenizer = getattr(model, "tokenizer", None)
    if tokenizer is None:
        return sum(len(t.split()) for t in texts)
    encoded = tokenizer(texts, add_special_tokens=True, truncation=False)
    return sum(len(ids) for ids in encoded["input_ids"])


def embed_texts(texts: List[str], normalize: bool = True, batch_size: int = 32, model_name: str | None = None) -> np.ndarray:
    model = get_embedding_model(model_name)
    if not texts:
        return np.zeros((0, model.get_sentence_embedding_dimension() or 0), dtype=np.float32)
    embs = model.encode(texts, batch_size=batch_size, show_progress_bar=False, normalize_embeddings=False)
    embs = np.asarray(embs, dtype=np.float32)
    if normalize:
        embs = l2_normalize(embs)
    return embs


class SentenceTransformerEmbedder:
    """Local sentence-transformers model behind the async embedding interface."""

    def __init__(self, model: Optional[str] = None, normalize: bool = True, batch_size: int = 32):
        self.model = model or config.EMBEDDING_MODEL
        self.normalize = normalize
        self.batch_size = batch_size

    def _embed_sync(self, texts: List[str]) -> EmbeddingResponse:
        vectors = embed_texts(texts, normalize=self.normalize, batch_size=self.batch_size, model_name=self.model)
        tokens = count_tokens(get_embedding_model(self.model), texts) if texts else 0
        return EmbeddingResponse(
            data=[EmbeddingObject(index=i, embedding=v.tolist()) for i, v in enumerate(vectors)],
            model=self.model,
            usage=Usage(prompt_tokens=tokens, total_tokens=tokens),
        )

    async def embed(self, texts: List[str]) -> EmbeddingResponse:
        return await asyncio.to_thread(self._embed_sync, texts)
