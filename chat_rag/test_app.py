import json

import pytest
from fastapi.testclient import TestClient

from chat_rag.app import Services, app, get_services
from chat_rag.conftest import FakeCompleter, FakeStore, point
from chat_rag.ingestion import IngestionPipeline
from chat_rag.query import QueryPipeline


class AppStore(FakeStore):
    def ping(self):
        return True


class AppCompleter(FakeCompleter):
    async def list_models(self):
        return {"object": "list", "data": [{"id": self.model}]}


@pytest.fixture
def services(retrieval, archive, embedder):
    store = AppStore(results=[point(0.9, "stored context")])
    completer = AppCompleter()
    return Services(
        retrieval=retrieval,
        archive=archive,
        completer=completer,
        store=store,
        ingestion=IngestionPipeline(retrieval, archive, embedder, store, chunk_size=64),
        query=QueryPipeline(retrieval, embedder, store, completer, rag_prompt="Base prompt"),
    )


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_info(client):
    res = client.get("/v1/info")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["collection"] == "docs"
    assert body["score_threshold"] == 0.8


def test_models(client):
    assert client.get("/v1/models").json()["data"][0]["id"] == "fake-chat"


def test_upload_then_chunks(client):
    res = client.post("/v1/files", files={"file": ("notes.txt", b"first para\n\nsecond para", "text/plain")})
    assert res.status_code == 200
    doc = res.json()
    assert doc["id"].startswith("file_")
    assert doc["bytes"] == 23
    assert doc["purpose"] == "assistants"

    res = client.post("/v1/chunks", json={"id": doc["id"], "filename": "notes.txt"})
    assert res.status_code == 200
    assert res.json()["chunks"] == ["first para\n\nsecond para"]


def test_upload_rejects_pdf(client):
    res = client.post("/v1/files", files={"file": ("paper.pdf", b"%PDF", "application/pdf")})
    assert res.status_code == 400
    assert res.json()["error"]["type"] == "UnsupportedFormatError"


def test_chunks_unknown_document(client):
    res = client.post("/v1/chunks", json={"id": "file_missing", "filename": "notes.txt"})
    assert res.status_code == 404


def test_create_rag(client, services):
    res = client.post("/v1/create/rag", files={"file": ("notes.md", b"# T\n\nbody", "text/markdown")})
    assert res.status_code == 200
    body = res.json()
    assert body["collection"] == "docs"
    assert body["filename"] == "notes.md"
    assert len(body["data"]) == 1
    assert len(services.store.upserts) == 1


def test_embeddings(client, services):
    res = client.post("/v1/embeddings", json={"model": "ignored", "input": ["a", "b"]})
    assert res.status_code == 200
    assert [d["index"] for d in res.json()["data"]] == [0, 1]
    assert [p.payload["source"] for p in services.store.upserts[0][1]] == ["a", "b"]


def test_embeddings_rejects_blank_input(client):
    assert client.post("/v1/embeddings", json={"input": ["  "]}).status_code == 400


def test_retrieve(client):
    res = client.post("/v1/retrieve", json={"messages": [{"role": "user", "content": "q"}]})
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "found"
    assert body["points"][0]["payload"]["source"] == "stored context"
    assert body["limit"] == 3


def test_chat_completions(client, services):
    res = client.post("/v1/chat/completions", json={"model": "llama", "messages": [{"role": "user", "content": "q"}]})
    assert res.status_code == 200
    assert res.json()["choices"][0]["message"]["content"] == "ok"
    sent = services.completer.requests[0]
    assert sent.messages[0].content == "Base prompt\nstored context"
    assert sent.model == "llama"


def test_chat_completions_stream(client):
    body = {"messages": [{"role": "user", "content": "q"}], "stream": True}
    with client.stream("POST", "/v1/chat/completions", json=body) as res:
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/event-stream")
        lines = [line for line in res.iter_lines() if line]
    assert lines[-1] == "data: [DONE]"
    assert json.loads(lines[0][len("data: "):])["choices"][0]["delta"]["content"] == "o"


def test_chat_completions_validation(client, services):
    res = client.post("/v1/chat/completions", json={"messages": [{"role": "assistant", "content": "q"}]})
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "The last message must be a user message"
    assert services.completer.requests == []


def test_cors_preflight(client):
    res = client.options("/v1/chat/completions", headers={
        "Origin": "http://ui.example",
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "content-type",
    })
    assert res.status_code == 200
    assert res.headers["access-control-allow-origin"] == "*"
    assert "POST" in res.headers["access-control-allow-methods"]


def test_cors_header_on_response(client):
    res = client.get("/v1/info", headers={"Origin": "http://ui.example"})
    assert res.status_code == 200
    assert res.headers["access-control-allow-origin"] == "*"
