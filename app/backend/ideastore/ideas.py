"""
Idea repository backed by one JSON file per idea.
"""

import asyncio
import logging
from typing import Optional

from .documents import DocumentCollection
from .metadata import IdAllocator, MetadataStore
from .models import Idea
from .results import LoadResult, Outcome

logger = logging.getLogger(__name__)


def _to_idea(result: LoadResult) -> LoadResult:
    if not result.is_ok:
        return result
    try:
        return LoadResult.ok(Idea.from_document(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return LoadResult.parse_error(f"Invalid idea document: {e}")


def _log_skipped(result: LoadResult) -> None:
    if result.outcome is Outcome.PARSE_ERROR:
        logger.warning(f"Skipping unreadable idea: {result.error}")
    elif result.outcome is Outcome.IO_ERROR:
        logger.error(f"Skipping idea after IO failure: {result.error}")


class IdeaRepository:
    """
    Create, read, update, delete and list ideas.

    Ideas are stored as ``ideas/idea-<id>.json``. Listing returns the full
    unordered set; filtering and sorting belong to the caller.

    Callers that read an idea, change it and write it back hold
    ``lock_for(idea_id)`` across the whole cycle.
    """

    def __init__(
        self,
        collection: DocumentCollection,
        metadata: MetadataStore,
        allocator: Optional[IdAllocator] = None,
    ):
        self.collection = collection
        self.metadata = metadata
        self.allocator = allocator or IdAllocator(metadata)
        self._locks: dict[int, asyncio.Lock] = {}

    def lock_for(self, idea_id: int) -> asyncio.Lock:
        """The lock guarding read-modify-write cycles on one idea."""
        lock = self._locks.get(idea_id)
        if lock is None:
            lock = self._locks[idea_id] = asyncio.Lock()
        return lock

    async def allocate_id(self) -> int:
        """Allocate the id for a new idea."""
        return await self.allocator.allocate_idea_id()

    async def create(self, idea: Idea) -> Idea:
        """
        Persist a new idea under its pre-allocated id.

        Raises:
            OSError: If the document cannot be written.
        """
        await self.collection.write(idea.idea_id, idea.to_document())
        logger.info(f"Created idea {idea.idea_id}")
        return idea

    async def load(self, idea_id: int) -> LoadResult:
        """Read an idea as a tagged result."""
        return _to_idea(await self.collection.read(idea_id))

    async def get(self, idea_id: int) -> Idea | None:
        """
        Retrieve an idea by its ID.

        Returns:
            The idea if found and readable, None otherwise.
        """
        result = await self.load(idea_id)
        if result.is_ok:
            return result.value
        if result.is_not_found:
            logger.debug(f"Idea {idea_id} not found")
        else:
            _log_skipped(result)
        return None

    async def list_all(self) -> list[Idea]:
        """
        Return every readable idea.

        Documents that fail to parse are skipped, so one damaged file
        shrinks the result instead of failing the call.
        """
        try:
            results = await self.collection.scan()
        except OSError as e:
            logger.error(f"Error listing ideas: {e}")
            return []

        ideas = []
        for result in map(_to_idea, results):
            if result.is_ok:
                ideas.append(result.value)
            else:
                _log_skipped(result)
        return ideas

    async def update(self, idea: Idea) -> Idea:
        """
        Overwrite the stored document with ``idea``.

        This is a full replacement; merging partial changes is the caller's job.

        Raises:
            OSError: If the document cannot be written.
        """
        await self.collection.write(idea.idea_id, idea.to_document())
        logger.info(f"Updated idea {idea.idea_id}")
        return idea

    async def delete(self, idea_id: int) -> bool:
        """
        Delete an idea file.

        Returns:
            True if removed, False if it did not exist or removal failed.
        """
        result = await self.collection.delete(idea_id)
        if result.is_ok:
            logger.info(f"Deleted idea {idea_id}")
            return True
        if result.is_not_found:
            logger.debug(f"Idea {idea_id} not found for deletion")
        else:
            logger.error(f"Error deleting idea {idea_id}: {result.error}")
        return False

    async def refresh_total_count(self) -> int:
        """
        Recount stored ideas and write the total into the metadata record.

        This is a full scan, not an incrementally maintained counter.
        """
        total = len(await self.list_all())
        await self.metadata.set_total_ideas(total)
        logger.debug(f"Refreshed total idea count: {total}")
        return total
