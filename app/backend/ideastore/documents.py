"""
File-backed JSON document storage.

Each document lives in its own pretty-printed JSON file. Blocking filesystem
calls run in a worker thread via ``asyncio.to_thread``, so every read and
write is a suspension point for the event loop.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from .results import LoadResult

logger = logging.getLogger(__name__)


def _read_json(path: Path) -> LoadResult:
    try:
        with open(path, encoding="utf-8") as handle:
            raw = handle.read()
    except FileNotFoundError:
        return LoadResult.not_found(f"{path.name} does not exist")
    except OSError as e:
        return LoadResult.io_error(f"Failed to read {path}: {e}")

    try:
        data = json.loads(raw)
    except ValueError as e:
        return LoadResult.parse_error(f"Invalid JSON in {path.name}: {e}")

    if not isinstance(data, dict):
        return LoadResult.parse_error(
            f"Expected a JSON object in {path.name}, got {type(data).__name__}"
        )
    return LoadResult.ok(data)


def _write_json(path: Path, document: dict[str, Any]) -> None:
    # Write to a sibling temp file and swap it in so readers never see a partial document.
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def _delete_file(path: Path) -> LoadResult:
    try:
        path.unlink()
    except FileNotFoundError:
        return LoadResult.not_found(f"{path.name} does not exist")
    except OSError as e:
        return LoadResult.io_error(f"Failed to delete {path}: {e}")
    return LoadResult.ok()


class JsonFile:
    """A single JSON document stored at a fixed path."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    async def read(self) -> LoadResult:
        return await asyncio.to_thread(_read_json, self.path)

    async def write(self, document: dict[str, Any]) -> None:
        await asyncio.to_thread(self.path.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(_write_json, self.path, document)

    async def exists(self) -> bool:
        return await asyncio.to_thread(self.path.exists)


class DocumentCollection:
    """
    A directory of JSON documents keyed by identifier.

    Documents are stored as ``<directory>/<prefix>-<key>.json``. The
    collection has no index: listing reads every matching file.
    """

    def __init__(self, directory: str | os.PathLike, prefix: str):
        self.directory = Path(directory)
        self.prefix = prefix

    def path_for(self, key: Any) -> Path:
        """Return the file path for ``key``."""
        name = str(key)
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ValueError(f"Invalid document key: {key!r}")
        return self.directory / f"{self.prefix}-{name}.json"

    def _matches(self, filename: str) -> bool:
        return filename.startswith(f"{self.prefix}-") and filename.endswith(".json")

    async def ensure(self) -> None:
        """Create the collection directory if needed."""
        await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)

    async def read(self, key: Any) -> LoadResult:
        """Read a single document by key."""
        try:
            path = self.path_for(key)
        except ValueError as e:
            return LoadResult.not_found(str(e))
        return await asyncio.to_thread(_read_json, path)

    async def write(self, key: Any, document: dict[str, Any]) -> None:
        """
        Write a document, replacing any existing one with the same key.

        Raises:
            OSError: If the filesystem rejects the write.
        """
        path = self.path_for(key)
        await self.ensure()
        await asyncio.to_thread(_write_json, path, document)

    async def delete(self, key: Any) -> LoadResult:
        """Remove a document file."""
        try:
            path = self.path_for(key)
        except ValueError as e:
            return LoadResult.not_found(str(e))
        return await asyncio.to_thread(_delete_file, path)

    async def list_files(self) -> list[Path]:
        """Return matching document files in filename order."""

        def _list() -> list[Path]:
            try:
                names = os.listdir(self.directory)
            except FileNotFoundError:
                return []
            return [self.directory / name for name in sorted(names) if self._matches(name)]

        return await asyncio.to_thread(_list)

    async def scan(self) -> list[LoadResult]:
        """
        Read every document in the collection.

        The scan is not a snapshot: writes that land while it runs may or may
        not be reflected. A file removed between listing and reading shows up
        as NOT_FOUND.

        Raises:
            OSError: If the collection directory itself cannot be listed.
        """
        paths = await self.list_files()
        if not paths:
            return []
        return list(await asyncio.gather(*(asyncio.to_thread(_read_json, p) for p in paths)))
