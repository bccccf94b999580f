"""Raw file storage for uploaded documents."""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path

import structlog

logger = structlog.get_logger()


class BlobStore(ABC):
    """Abstract store for the original bytes of uploaded documents."""

    @abstractmethod
    async def put(self, path: str, data: bytes, content_type: str) -> str:
        """Write bytes under ``path`` and return the path."""
        ...

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Remove a blob. Returns False if it did not exist."""
        ...

    @abstractmethod
    async def exists(self, path: str) -> bool:
        ...


class InMemoryBlobStore(BlobStore):
    """Dict-backed blob store for development and tests."""

    def __init__(self) -> None:
        self.blobs: dict[str, tuple[bytes, str]] = {}

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        self.blobs[path] = (data, content_type)
        return path

    async def delete(self, path: str) -> bool:
        return self.blobs.pop(path, None) is not None

    async def exists(self, path: str) -> bool:
        return path in self.blobs


class LocalBlobStore(BlobStore):
    """Blob store writing under a local directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"Blob path escapes storage root: {path}")
        return target

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        target = self._resolve(path)

        def write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(write)
        logger.debug("Stored blob", path=path, size=len(data), content_type=content_type)
        return path

    async def delete(self, path: str) -> bool:
        target = self._resolve(path)

        def remove() -> bool:
            if not target.exists():
                return False
            target.unlink()
            return True

        return await asyncio.to_thread(remove)

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).exists)
