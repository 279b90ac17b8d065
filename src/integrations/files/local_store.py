"""Local-disk FileStore for payment proofs."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Union
from uuid import uuid4

from src.errors import NotFoundError, ValidationError
from src.integrations.contracts.storage import FileStore

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_name(filename: str) -> str:
    name = Path(filename or "").name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or "upload"


class LocalFileStore(FileStore):
    """Stores each blob as ``<root>/<uuid>_<safe-name>``; the reference is the file name."""

    def __init__(self, root: Union[str, Path], max_bytes: int = 10 * 1024 * 1024) -> None:
        self.root = Path(root)
        self.max_bytes = max_bytes

    def save(self, filename: str, content: bytes) -> str:
        if not content:
            raise ValidationError("Uploaded file is empty", field_errors={"file": "File is empty"})
        if len(content) > self.max_bytes:
            raise ValidationError(
                "Uploaded file is too large",
                field_errors={"file": f"File exceeds {self.max_bytes} bytes"},
            )

        self.root.mkdir(parents=True, exist_ok=True)
        reference = f"{uuid4().hex}_{_safe_name(filename)}"
        (self.root / reference).write_bytes(content)
        logger.info("Stored upload %s (%d bytes)", reference, len(content))
        return reference

    def open(self, reference: str) -> bytes:
        path = self._resolve(reference)
        if not path.is_file():
            raise NotFoundError(f"Stored file not found: {reference}")
        return path.read_bytes()

    def exists(self, reference: str) -> bool:
        try:
            return self._resolve(reference).is_file()
        except NotFoundError:
            return False

    def delete(self, reference: str) -> None:
        try:
            path = self._resolve(reference)
        except NotFoundError:
            return
        if path.is_file():
            path.unlink()
            logger.info("Removed upload %s", reference)

    def _resolve(self, reference: str) -> Path:
        # References are bare file names; anything else never came from save().
        if not reference or reference != Path(reference).name:
            raise NotFoundError(f"Stored file not found: {reference}")
        return self.root / reference
