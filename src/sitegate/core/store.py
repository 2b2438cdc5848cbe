"""
Key-value storage for rate limit counters.

The rate limiter only needs get/set/delete by string key, so the same
logic runs against memory or a JSON file on disk.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import aiofiles.os
import structlog
from aiofiles import open as aio_open

logger = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """String key to string value storage."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key; missing keys are ignored."""


class InMemoryStore(KeyValueStore):
    """Process-local store, used by default and in tests."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStore(KeyValueStore):
    """
    Store backed by a single JSON object on disk.

    Every operation re-reads the file so that counters survive restarts.
    File access is serialized within the process; not safe for concurrent
    writers in different processes.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        logger.info("JSON file store initialized", path=str(self.path))

    async def _read_all(self) -> Dict[str, str]:
        if not await aiofiles.os.path.exists(self.path):
            return {}
        async with aio_open(self.path, 'r', encoding='utf-8') as f:
            content = await f.read()
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self.path} does not contain a JSON object")
        return data

    async def _write_all(self, data: Dict[str, str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aio_open(tmp_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(data))
            await f.flush()
        await aiofiles.os.replace(tmp_path, self.path)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            data = await self._read_all()
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._read_all()
            data[key] = value
            await self._write_all(data)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await self._read_all()
            if data.pop(key, None) is not None:
                await self._write_all(data)
