from __future__ import annotations

from pathlib import Path

from loguru import logger


class LocalBlobStorage:
    """Uploaded file bytes on the local filesystem, addressed by storage key.

    Keys are plain file names; anything that would resolve outside the upload
    root is rejected with ValueError.
    """

    def __init__(self, root: str):
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, storage_key: str) -> Path:
        if not storage_key or storage_key.strip() != storage_key:
            raise ValueError(f"Invalid storage key: {storage_key!r}")
        candidate = (self._root / storage_key).resolve()
        if candidate.parent != self._root:
            raise ValueError(f"Storage key escapes upload root: {storage_key!r}")
        return candidate

    def exists(self, storage_key: str) -> bool:
        return self.path_for(storage_key).is_file()

    def read_file(self, storage_key: str) -> bytes:
        return self.path_for(storage_key).read_bytes()

    def write_file(self, storage_key: str, data: bytes) -> None:
        path = self.path_for(storage_key)
        path.write_bytes(data)
        logger.debug(f"Blob written: key={storage_key}, bytes={len(data)}")

    def delete_file(self, storage_key: str) -> bool:
        path = self.path_for(storage_key)
        if not path.exists():
            return False
        path.unlink()
        logger.debug(f"Blob deleted: key={storage_key}")
        return True
