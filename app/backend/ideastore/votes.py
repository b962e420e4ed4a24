"""
Vote ledger: which voters have voted for which idea.

The ledger toggles a voter in an idea's voter set and mirrors the result
onto the idea's ``voteCount``. Voter sets live either in process memory
(lost on restart) or in ``votes/votes-<ideaId>.json`` documents.
"""

import logging
import os
from typing import Protocol

from .documents import DocumentCollection
from .ideas import IdeaRepository
from .models import VoteResult, now_ms

logger = logging.getLogger(__name__)


class VoteStore(Protocol):
    """Storage for per-idea voter sets."""

    durable: bool

    async def voters(self, idea_id: int) -> set[str]: ...

    async def save(self, idea_id: int, voters: set[str]) -> None: ...

    async def forget(self, idea_id: int) -> None: ...

    async def idea_ids(self) -> list[int]: ...


class InMemoryVoteStore:
    """
    Voter sets kept in process memory.

    Nothing survives a restart, so a voter can vote again afterwards and
    the persisted ``voteCount`` drifts upward.
    """

    durable = False

    def __init__(self):
        self._votes: dict[int, set[str]] = {}

    async def voters(self, idea_id: int) -> set[str]:
        return set(self._votes.get(idea_id, set()))

    async def save(self, idea_id: int, voters: set[str]) -> None:
        self._votes[idea_id] = set(voters)

    async def forget(self, idea_id: int) -> None:
        self._votes.pop(idea_id, None)

    async def idea_ids(self) -> list[int]:
        return sorted(self._votes)


class FileVoteStore:
    """Voter sets persisted as one JSON document per idea."""

    durable = True

    def __init__(self, directory: str | os.PathLike):
        self.collection = DocumentCollection(directory, "votes")

    async def voters(self, idea_id: int) -> set[str]:
        result = await self.collection.read(idea_id)
        if result.is_ok:
            voters = result.value.get("voters", [])
            if isinstance(voters, list):
                return {str(v) for v in voters}
            logger.warning(f"Voter document for idea {idea_id} has no voter list")
        elif not result.is_not_found:
            logger.error(f"Failed to read voters for idea {idea_id}: {result.error}")
        return set()

    async def save(self, idea_id: int, voters: set[str]) -> None:
        await self.collection.write(
            idea_id,
            {"ideaId": idea_id, "voters": sorted(voters), "updatedAt": now_ms()},
        )

    async def forget(self, idea_id: int) -> None:
        await self.collection.delete(idea_id)

    async def idea_ids(self) -> list[int]:
        ids = []
        for path in await self.collection.list_files():
            key = path.stem[len(self.collection.prefix) + 1:]
            if key.isdigit():
                ids.append(int(key))
        return sorted(ids)


class VoteLedger:
    """
    Toggles votes and keeps ``idea.voteCount`` in step with the voter set.

    Each (idea, voter) pair flips between voted and not voted on every
    call; calling ``toggle`` twice restores the original state.
    Toggles hold the repository's per-idea lock, so they interleave safely
    with other edits of the same idea.
    """

    def __init__(self, ideas: IdeaRepository, store: VoteStore | None = None):
        self.ideas = ideas
        self.store = store if store is not None else InMemoryVoteStore()

    async def toggle(self, idea_id: int, voter_id: str) -> VoteResult | None:
        """
        Add or remove ``voter_id``'s vote on an idea.

        Args:
            idea_id: The idea being voted on.
            voter_id: Identifier of the voter.

        Returns:
            The new count and whether the voter now has a vote, or None if
            the idea does not exist.

        Raises:
            ValueError: If ``voter_id`` is empty.
            OSError: If the voter set or idea cannot be written.
        """
        if not voter_id:
            raise ValueError("Voter id is required")

        async with self.ideas.lock_for(idea_id):
            idea = await self.ideas.get(idea_id)
            if idea is None:
                logger.debug(f"Vote on missing idea {idea_id}")
                return None

            voters = await self.store.voters(idea_id)
            had_voted = voter_id in voters
            if had_voted:
                voters.discard(voter_id)
            else:
                voters.add(voter_id)
            await self.store.save(idea_id, voters)

            if self.store.durable:
                idea.vote_count = len(voters)
            elif had_voted:
                idea.vote_count = max(0, idea.vote_count - 1)
            else:
                idea.vote_count = idea.vote_count + 1
            await self.ideas.update(idea)

        action = "removed vote from" if had_voted else "voted for"
        logger.info(f"Voter {voter_id} {action} idea {idea_id} (count {idea.vote_count})")
        return VoteResult(idea_id=idea_id, vote_count=idea.vote_count, did_vote=not had_voted)

    async def has_voted(self, idea_id: int, voter_id: str) -> bool:
        return voter_id in await self.store.voters(idea_id)

    async def forget(self, idea_id: int) -> None:
        """Drop the voter set of a deleted idea."""
        await self.store.forget(idea_id)

    async def reconcile(self) -> dict[str, int]:
        """
        Rewrite ``voteCount`` from the persisted voter sets.

        Only meaningful for a durable store; ideas without a voter set are
        left untouched.

        Returns:
            Counts of checked and corrected ideas.
        """
        results = {"checked": 0, "corrected": 0}
        if not self.store.durable:
            return results

        for idea_id in await self.store.idea_ids():
            async with self.ideas.lock_for(idea_id):
                idea = await self.ideas.get(idea_id)
                if idea is None:
                    continue
                results["checked"] += 1
                count = len(await self.store.voters(idea_id))
                if idea.vote_count != count:
                    logger.warning(
                        f"Correcting vote count of idea {idea_id}: {idea.vote_count} -> {count}"
                    )
                    idea.vote_count = count
                    await self.ideas.update(idea)
                    results["corrected"] += 1
        return results
