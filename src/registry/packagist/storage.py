"""File-backed blob cache addressed by logical keys."""
from __future__ import annotations

import os
from pathlib import Path


class LocalFileStorage:
    """Stores fetched payloads under a base directory.

    Keys are relative paths such as ``packagist/acme/widget-v2.json``; the
    file modification time doubles as the payload's Last-Modified stamp.
    """

    def __init__(self, path: str):
        self._base = Path(path).expanduser().resolve()
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base(self) -> Path:
        """Root directory of the cache."""
        return self._base

    def _path(self, key: str) -> Path:
        path = (self._base / key.lstrip("/")).resolve()
        if path != self._base and self._base not in path.parents:
            raise ValueError(f'Invalid storage key "{key}"')
        return path

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def get_modification_time(self, key: str) -> int:
        """Return the mtime of key as a unix timestamp.

        Raises:
            FileNotFoundError: if key is not stored.
        """
        return int(self._path(key).stat().st_mtime)

    def set_modification_time(self, key: str, timestamp: int) -> None:
        os.utime(self._path(key), (timestamp, timestamp))

    def write_content(self, key: str, content: bytes) -> None:
        """Write content atomically (temp file + rename)."""
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(content)
        os.replace(tmp, path)

    def read_content(self, key: str) -> bytes:
        """Return stored bytes.

        Raises:
            FileNotFoundError: if key is not stored.
        """
        return self._path(key).read_bytes()

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()
