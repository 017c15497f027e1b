import pytest

from chat_rag.chunker import chunk_text, normalize_format
from chat_rag.errors import ChunkingError, UnsupportedFormatError


PARAGRAPHS = [
    "The quick brown fox jumps over the lazy dog.",
    "Pack my box with five dozen liquor jugs.",
    "How vexingly quick daft zebras jump!",
    "Sphinx of black quartz, judge my vow.",
]


def test_plain_text_reconstructs_original():
    text = "\n\n".join(PARAGRAPHS)
    res = chunk_text(text, "txt", max_len=90)
    assert "\n\n".join(res.chunks) == text
    assert all(len(c) <= 90 for c in res)
    assert res.oversized == []
    assert len(res) > 1


def test_short_text_is_single_chunk():
    res = chunk_text("hello world", "txt", max_len=100)
    assert res.chunks == ["hello world"]


def test_paragraphs_are_not_split_midway():
    text = "\n\n".join(PARAGRAPHS)
    res = chunk_text(text, "txt", max_len=50)
    assert res.chunks == PARAGRAPHS


def test_oversized_paragraph_is_kept_whole_and_flagged():
    long_para = "word " * 40
    text = "short intro\n\n" + long_para.strip() + "\n\nshort outro"
    res = chunk_text(text, "txt", max_len=50)
    assert res.chunks == ["short intro", long_para.strip(), "short outro"]
    assert res.oversized == [1]


def test_whitespace_paragraph_breaks_are_separators():
    res = chunk_text("first\n   \n\n\nsecond\r\n\r\nthird", "txt", max_len=6)
    assert res.chunks == ["first", "second", "third"]


@pytest.mark.parametrize("text", ["", "   ", "\n\n\t\n"])
def test_empty_input_fails(text):
    with pytest.raises(ChunkingError):
        chunk_text(text, "txt")


@pytest.mark.parametrize("hint", ["pdf", "", "docx", None])
def test_unsupported_format_fails(hint):
    with pytest.raises(UnsupportedFormatError):
        chunk_text("some text", hint)


def test_format_hint_is_normalized():
    assert normalize_format(".MD") == "md"
    assert normalize_format("Txt") == "txt"


def test_markdown_prefers_section_breaks():
    text = "# Intro\n\nAlpha beta.\n\n# Usage\n\nGamma delta.\n\nEpsilon."
    res = chunk_text(text, "md", max_len=40)
    assert res.chunks == ["# Intro\n\nAlpha beta.", "# Usage\n\nGamma delta.\n\nEpsilon."]


def test_markdown_oversized_section_falls_back_to_paragraphs():
    body = "\n\n".join(PARAGRAPHS)
    text = "## Pangrams\n" + body
    res = chunk_text(text, "md", max_len=60)
    assert res.chunks[0].startswith("## Pangrams\nThe quick brown fox")
    assert all(len(c) <= 60 for c in res)
    assert res.oversized == []


def test_markdown_keeps_fenced_code_together():
    code = "```python\ndef f():\n\n    return 1\n```"
    text = "Some prose.\n\n" + code + "\n\nMore prose."
    res = chunk_text(text, "md", max_len=20)
    assert code in res.chunks
    assert res.oversized == [res.chunks.index(code)]


def test_default_max_len_comes_from_config(monkeypatch):
    from chat_rag import config

    monkeypatch.setattr(config, "CHUNK_SIZE", 10)
    res = chunk_text("abcdefgh\n\nijklmnop", "txt")
    assert res.max_len == 10
    assert res.chunks == ["abcdefgh", "ijklmnop"]


def test_markdown_next_section_starts_a_new_chunk_after_oversized_section():
    text = "# A\n\n" + "a" * 20 + "\n\n" + "b" * 20 + "\n\n# B\n\nshort"
    res = chunk_text(text, "md", max_len=40)
    assert res.chunks == ["# A\n\n" + "a" * 20, "b" * 20, "# B\n\nshort"]
