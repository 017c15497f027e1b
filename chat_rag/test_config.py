import pydantic
import pytest

from chat_rag.config import RetrievalConfig, env_float, env_int, load_retrieval_config
from chat_rag.errors import ConfigurationError


def test_env_helpers_fall_back_on_garbage(monkeypatch):
    monkeypatch.setenv("RAG_LIMIT", "many")
    monkeypatch.setenv("RAG_SCORE_THRESHOLD", "high")
    assert env_int("RAG_LIMIT", 3) == 3
    assert env_float("RAG_SCORE_THRESHOLD", 0.4) == 0.4


def test_load_retrieval_config(monkeypatch):
    monkeypatch.setenv("MILVUS_URI", "http://milvus:19530")
    monkeypatch.setenv("RAG_COLLECTION", "handbook")
    monkeypatch.setenv("RAG_LIMIT", "5")
    monkeypatch.setenv("RAG_SCORE_THRESHOLD", "0.65")
    cfg = load_retrieval_config()
    assert cfg == RetrievalConfig(url="http://milvus:19530", collection_name="handbook", limit=5, score_threshold=0.65)


@pytest.mark.parametrize("key,value", [("MILVUS_URI", " "), ("RAG_COLLECTION", ""), ("RAG_LIMIT", "0")])
def test_load_retrieval_config_missing_values(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigurationError):
        load_retrieval_config()


def test_retrieval_config_is_frozen():
    cfg = RetrievalConfig(url="u", collection_name="c", limit=1, score_threshold=0.5)
    with pytest.raises(pydantic.ValidationError):
        cfg.limit = 2
