from __future__ import annotations

import json
import logging
import os
import typing as t

import anyio

from ..errors import KeyNotFoundError, StorageError
from .base import ALL_KEYS, MISSING, StorageAdapter

_logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = ".cache/storage.json"


class JSONFileStorage(StorageAdapter):
    """Storage adapter persisting the whole mapping as one JSON object file.

    - A missing or blank file reads as an empty mapping.
    - Every operation re-reads the file, so external edits are picked up.
    - Writes go to a sibling temp file that then replaces the target.
    """

    def __init__(self, path: t.Union[str, "os.PathLike[str]"] = DEFAULT_STORAGE_PATH, *, indent: int = 2) -> None:
        self._path = anyio.Path(os.path.abspath(os.fspath(path)))
        self._indent = indent
        self._lock = anyio.Lock()
        # per-process, per-instance temp file
        self._tmp_path = self._path.with_name(f"{self._path.name}.{os.getpid()}.{id(self)}.tmp")

    @property
    def path(self) -> str:
        return str(self._path)

    async def _read(self) -> t.Dict[str, t.Any]:
        try:
            if not await self._path.exists():
                return {}
            text = (await self._path.read_text(encoding="utf-8")).strip()
        except OSError as exc:
            raise StorageError(f"Failed to read storage file {self._path}: {exc}") from exc
        if not text:
            return {}
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise StorageError(f"Corrupt storage file {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Invalid storage file format: {self._path}")
        return data

    async def _write(self, data: t.Dict[str, t.Any]) -> None:
        try:
            payload = json.dumps(data, indent=self._indent, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Storage data is not JSON-serializable: {exc}") from exc
        try:
            await self._path.parent.mkdir(parents=True, exist_ok=True)
            await self._tmp_path.write_text(payload, encoding="utf-8")
            await self._tmp_path.replace(self._path)
        except OSError as exc:
            raise StorageError(f"Failed to write storage file {self._path}: {exc}") from exc

    async def get(self, key: str, default: t.Any = MISSING) -> t.Any:
        async with self._lock:
            data = await self._read()
        if key == ALL_KEYS:
            return data
        if key in data:
            return data[key]
        if default is MISSING:
            raise KeyNotFoundError(key)
        return default

    async def set(self, key: str, value: t.Any) -> None:
        async with self._lock:
            data = await self._read()
            data[key] = value
            await self._write(data)
        _logger.debug("JSONFileStorage: set key=%s path=%s", key, self._path)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await self._read()
            if key not in data:
                return
            del data[key]
            await self._write(data)
        _logger.debug("JSONFileStorage: deleted key=%s path=%s", key, self._path)

    async def is_healthy(self) -> bool:
        try:
            async with self._lock:
                await self._read()
        except StorageError:
            return False
        return True
