from __future__ import annotations

import os
import tempfile
import time
import uuid
from pathlib import Path
from typing import Optional

from . import config
from .chunker import SUPPORTED_FORMATS
from .errors import NotFoundError, UnsupportedFormatError, ValidationError
from .models import Document
from .utils import file_extension, get_logger


logger = get_logger(__name__)

ALLOWED_EXTENSIONS = frozenset(SUPPORTED_FORMATS)


def _check_name(value: str, what: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"The {what} must not be empty.")
    if value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise ValidationError(f"Invalid {what}: {value!r}")
    return value


class DocumentArchive:
    """
    Uploaded documents on disk: <root>/<file id>/<original filename>.
    Ids are generated, so two uploads never share a directory.
    """

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or config.ARCHIVE_DIR)

    def path_for(self, file_id: str, filename: str) -> Path:
        return self.root / _check_name(file_id, "file id") / _check_name(filename, "filename")

    def store(self, filename: str, data: bytes) -> Document:
        filename = _check_name(os.path.basename(filename or ""), "filename")
        ext = file_extension(filename)
        if ext not in ALLOWED_EXTENSIONS:
            raise UnsupportedFormatError(ext or filename)
        if len(filename) > config.FILENAME_MAX_LEN:
            raise ValidationError(f"The filename is longer than {config.FILENAME_MAX_LEN} characters.")

        file_id = f"file_{uuid.uuid4()}"
        doc_dir = self.root / file_id
        doc_dir.mkdir(parents=True, exist_ok=False)

        # write next to the target, then rename into place
        fd, tmp = tempfile.mkstemp(dir=doc_dir, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, doc_dir / filename)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

        doc = Document(id=file_id, bytes=len(data), created_at=int(time.time()), filename=filename)
        logger.info("Archived %s as %s (%d bytes)", filename, file_id, doc.bytes)
        return doc

    def load(self, file_id: str, filename: str) -> bytes:
        doc_dir = self.root / _check_name(file_id, "file id")
        if not doc_dir.is_dir():
            raise NotFoundError(f"Not found archive id: {file_id}")
        path = doc_dir / _check_name(filename, "filename")
        if not path.is_file():
            raise NotFoundError(f"Not found file: {filename} in archive id: {file_id}")
        return path.read_bytes()
