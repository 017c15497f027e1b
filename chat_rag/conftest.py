"""
Shared fixtures: in-memory stand-ins for the embedding model, the vector
store and the inference server, each counting the calls it receives.
"""
import pytest

from chat_rag.archive import DocumentArchive
from chat_rag.config import RetrievalConfig
from chat_rag.models import EmbeddingObject, EmbeddingResponse, ScoredPoint, Usage


class FakeEmbedder:
    model = "fake-embedding"

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def embed(self, texts):
        self.calls.append(list(texts))
        if self.fail:
            raise RuntimeError("embedding server unavailable")
        return EmbeddingResponse(
            data=[EmbeddingObject(index=i, embedding=[float(len(t)), float(i)]) for i, t in enumerate(texts)],
            model=self.model,
            usage=Usage(prompt_tokens=len(texts), total_tokens=len(texts)),
        )


class FakeStore:
    def __init__(self, results=None, fail_search=False, fail_upsert=False):
        self.results = results or []
        self.fail_search = fail_search
        self.fail_upsert = fail_upsert
        self.upserts = []
        self.searches = []

    async def upsert(self, collection, points):
        self.upserts.append((collection, list(points)))
        if self.fail_upsert:
            raise RuntimeError("collection not loaded")

    async def search(self, collection, vector, limit, score_threshold):
        self.searches.append((collection, list(vector), limit, score_threshold))
        if self.fail_search:
            raise ConnectionError("milvus unreachable")
        hits = [p for p in self.results if score_threshold is None or p.score >= score_threshold]
        hits.sort(key=lambda p: p.score, reverse=True)
        return hits[:limit]


class FakeCompleter:
    model = "fake-chat"

    def __init__(self):
        self.requests = []

    async def complete(self, request):
        self.requests.append(request)
        if request.stream:
            return self._stream()
        return {"object": "chat.completion", "choices": [{"index": 0, "message": {"role": "assistant", "content": "ok"}}]}

    async def _stream(self):
        for data in ('{"choices":[{"delta":{"content":"o"}}]}', '{"choices":[{"delta":{"content":"k"}}]}', "[DONE]"):
            yield data


def point(score, source):
    return ScoredPoint(score=score, payload={"source": source})


@pytest.fixture
def retrieval():
    return RetrievalConfig(url="http://milvus:19530", collection_name="docs", limit=3, score_threshold=0.8)


@pytest.fixture
def archive(tmp_path):
    return DocumentArchive(str(tmp_path / "archives"))


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def completer():
    return FakeCompleter()
