from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from . import config
from .errors import ChunkingError, UnsupportedFormatError
from .utils import get_logger


logger = get_logger(__name__)

SUPPORTED_FORMATS = ("txt", "md")

_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n+")
_HEADING = re.compile(r"^ {0,3}#{1,6}(\s|$)")
_FENCE = re.compile(r"^ {0,3}(```|~~~)")


@dataclass
class ChunkResult:
    """
    Ordered chunks of one document. `oversized` lists the indices of chunks
    longer than `max_len` because they hold a single unit that could not be split.
    """

    chunks: List[str]
    max_len: int
    format: str
    oversized: List[int] = field(default_factory=list)

    def __iter__(self) -> Iterator[str]:
        return iter(self.chunks)

    def __len__(self) -> int:
        return len(self.chunks)

    def __getitem__(self, idx: int) -> str:
        return self.chunks[idx]


def normalize_format(format_hint: str) -> str:
    hint = (format_hint or "").strip().lower().lstrip(".")
    if hint not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(format_hint)
    return hint


def _paragraphs(text: str) -> List[str]:
    return [p.strip() for p in _PARAGRAPH_BREAK.split(text) if p.strip()]


def _markdown_blocks(text: str) -> List[str]:
    """
    Blank-line separated blocks. A heading always opens a new block and a
    fenced code block is never split, blank lines inside it included.
    """
    blocks: List[str] = []
    current: List[str] = []
    in_fence = False

    def flush():
        if current and "\n".join(current).strip():
            blocks.append("\n".join(current).strip("\n"))
        current.clear()

    for line in text.split("\n"):
        if _FENCE.match(line):
            if not in_fence:
                flush()
            in_fence = not in_fence
            current.append(line)
            if not in_fence:
                flush()
            continue
        if in_fence:
            current.append(line)
            continue
        if not line.strip():
            flush()
        elif _HEADING.match(line):
            flush()
            current.append(line)
        else:
            current.append(line)
    flush()
    return blocks


def _markdown_chunks(text: str, max_len: int) -> List[str]:
    sections: List[List[str]] = []
    for block in _markdown_blocks(text):
        if _HEADING.match(block) or not sections:
            sections.append([block])
        else:
            sections[-1].append(block)

    # sections that fit are packed together; an oversized one is packed on its own
    chunks: List[str] = []
    pending: List[str] = []
    for blocks in sections:
        section = "\n\n".join(blocks)
        if len(section) <= max_len:
            pending.append(section)
        else:
            chunks.extend(_pack(pending, max_len))
            pending = []
            chunks.extend(_pack(blocks, max_len))
    chunks.extend(_pack(pending, max_len))
    return chunks


def _pack(units: List[str], max_len: int) -> List[str]:
    chunks: List[str] = []
    current = ""
    for unit in units:
        candidate_len = len(current) + (2 if current else 0) + len(unit)
        if candidate_len > max_len and current:
            chunks.append(current)
            current = unit
        else:
            current = current + "\n\n" + unit if current else unit
    if current:
        chunks.append(current)
    return chunks


def chunk_text(text: str, format_hint: str, max_len: Optional[int] = None) -> ChunkResult:
    """
    Split `text` into chunks no longer than `max_len` characters, breaking on
    paragraphs (txt) or on headings then paragraphs (md). Chunks do not overlap.
    """
    fmt = normalize_format(format_hint)
    max_len = max_len or config.CHUNK_SIZE
    if max_len <= 0:
        raise ChunkingError(f"Chunk size must be positive, got {max_len}.")
    if not text or not text.strip():
        raise ChunkingError("The document is empty or contains only whitespace.")

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    if fmt == "md":
        chunks = _markdown_chunks(text, max_len)
    else:
        chunks = _pack(_paragraphs(text), max_len)
    if not chunks:
        raise ChunkingError("No text could be extracted from the document.")

    oversized = [i for i, c in enumerate(chunks) if len(c) > max_len]
    for i in oversized:
        logger.warning(
            "Chunk %d holds a single unsplittable unit of %d chars (max %d)",
            i, len(chunks[i]), max_len,
        )
    return ChunkResult(chunks=chunks, max_len=max_len, format=fmt, oversized=oversized)
