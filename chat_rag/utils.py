from __future__ import annotations

import hashlib
import logging
import sys
from pathlib import Path

from . import config


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
        logger.propagate = False
    return logger


def chunk_hash(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8", errors="ignore")).hexdigest()


def point_id(file_id: str, chunk_index: int) -> str:
    return f"{file_id}-{chunk_index}"


def file_extension(filename: str) -> str:
    """Lower-cased extension without the leading dot, '' when there is none."""
    return Path(filename).suffix.lower().lstrip(".")


def preview(text: str, limit: int = 80) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."
