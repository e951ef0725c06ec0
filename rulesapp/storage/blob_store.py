from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """Blob paths ("rules/2025/global/NationalFr.pdf") mapped onto a directory."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, blob_path: str) -> Path:
        p = (self.root / blob_path).resolve()
        if self.root not in p.parents:
            raise ValueError(f"blob path escapes store root: {blob_path!r}")
        return p

    def put_bytes(self, blob_path: str, data: bytes) -> None:
        p = self._path(blob_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        # write-then-rename so readers never see a partial blob
        fd, tmp = tempfile.mkstemp(dir=p.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, p)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("Wrote %d bytes to %s", len(data), blob_path)

    def get_bytes(self, blob_path: str) -> bytes:
        return self._path(blob_path).read_bytes()

    def put_text(self, blob_path: str, text: str) -> None:
        self.put_bytes(blob_path, text.encode("utf-8"))

    def get_text(self, blob_path: str) -> str:
        return self.get_bytes(blob_path).decode("utf-8")

    def exists(self, blob_path: str) -> bool:
        return self._path(blob_path).is_file()
