"""
Metadata counter and identifier allocation.

``meta.json`` holds the next idea id and a cached idea count. Every change
to it is a read-modify-write; with ``serialize`` enabled those run under a
single ``asyncio.Lock`` so concurrent allocations cannot hand out the same id.
"""

import asyncio
import logging
import os
import time
import uuid
from typing import Callable, Optional, TypeVar

from .documents import DocumentCollection, JsonFile
from .models import Idea, StoreMetadata
from .results import LoadResult, Outcome

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MetadataStore:
    """
    Persists the singleton ``{nextId, totalIdeas}`` record.

    A missing record starts the counter at 1. A damaged or unreadable
    record is rebuilt from the highest idea id found on disk rather than
    reset, so a corrupt file cannot cause ids to be reused.
    """

    def __init__(
        self,
        path: str | os.PathLike,
        ideas: Optional[DocumentCollection] = None,
        serialize: bool = True,
    ):
        """
        Initialize the metadata store.

        Args:
            path: Location of ``meta.json``.
            ideas: Idea collection scanned to rebuild a damaged record.
            serialize: Guard read-modify-write cycles with a lock.
        """
        self.file = JsonFile(path)
        self.ideas = ideas
        self.serialize = serialize
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create ``meta.json`` with a fresh counter if it does not exist."""
        if not await self.file.exists():
            await self.save(StoreMetadata())
            logger.info(f"Initialized metadata at {self.file.path}")

    async def load(self) -> LoadResult:
        """Read the metadata record as a tagged result."""
        result = await self.file.read()
        if not result.is_ok:
            return result
        try:
            return LoadResult.ok(StoreMetadata.from_document(result.value))
        except (KeyError, TypeError, ValueError) as e:
            return LoadResult.parse_error(f"Invalid metadata record: {e}")

    async def read(self) -> StoreMetadata:
        """Return the current metadata, recovering from a missing or damaged record."""
        result = await self.load()
        if result.is_ok:
            return result.value
        if result.is_not_found:
            return StoreMetadata()

        if result.outcome is Outcome.PARSE_ERROR:
            logger.warning(f"Metadata record is corrupt, rebuilding: {result.error}")
        else:
            logger.error(f"Metadata record unreadable, rebuilding: {result.error}")
        return await self._rebuild()

    async def _rebuild(self) -> StoreMetadata:
        if self.ideas is None:
            return StoreMetadata()

        highest = 0
        total = 0
        try:
            results = await self.ideas.scan()
        except OSError as e:
            logger.error(f"Failed to scan ideas while rebuilding metadata: {e}")
            return StoreMetadata()

        for result in results:
            if not result.is_ok:
                continue
            try:
                idea = Idea.from_document(result.value)
            except (KeyError, TypeError, ValueError):
                continue
            total += 1
            highest = max(highest, idea.idea_id)

        logger.warning(f"Rebuilt metadata: nextId={highest + 1}, totalIdeas={total}")
        return StoreMetadata(next_id=highest + 1, total_ideas=total)

    async def save(self, metadata: StoreMetadata) -> None:
        await self.file.write(metadata.to_document())

    async def update(self, mutate: Callable[[StoreMetadata], T]) -> T:
        """
        Apply ``mutate`` to the record and write it back.

        Args:
            mutate: Function changing the record in place; its return value
                is passed through to the caller.

        Returns:
            Whatever ``mutate`` returned.
        """
        if self.serialize:
            async with self._lock:
                return await self._read_modify_write(mutate)
        return await self._read_modify_write(mutate)

    async def _read_modify_write(self, mutate: Callable[[StoreMetadata], T]) -> T:
        metadata = await self.read()
        value = mutate(metadata)
        await self.save(metadata)
        return value

    async def set_total_ideas(self, total: int) -> None:
        def _apply(metadata: StoreMetadata) -> None:
            metadata.total_ideas = total

        await self.update(_apply)


class IdAllocator:
    """Hands out identifiers for ideas and comments."""

    _last_sequence = 0

    def __init__(self, metadata: MetadataStore):
        self.metadata = metadata

    async def allocate_idea_id(self) -> int:
        """
        Return the next idea id and advance the counter.

        Ids are strictly increasing and never reused, including after
        deletion, as long as the metadata store serializes updates.
        """

        def _take_next(metadata: StoreMetadata) -> int:
            allocated = metadata.next_id
            metadata.next_id = allocated + 1
            return allocated

        idea_id = await self.metadata.update(_take_next)
        logger.debug(f"Allocated idea id {idea_id}")
        return idea_id

    @staticmethod
    def new_comment_id() -> str:
        """Return a random comment id. Comment ids carry no ordering."""
        return str(uuid.uuid4())

    @classmethod
    def next_comment_sequence(cls) -> int:
        """
        Return a creation sequence number larger than any handed out before.

        Derived from the wall clock in nanoseconds, and bumped by one when
        the clock has not advanced.
        """
        cls._last_sequence = max(time.time_ns(), cls._last_sequence + 1)
        return cls._last_sequence
