"""
Comment repository backed by one JSON file per comment.

Comments are never physically removed: deletion sets ``isDeleted`` and the
record stays on disk. Deleted comments are hidden from listings but remain
reachable by id.
"""

import logging
from typing import Any, Optional

from .documents import DocumentCollection
from .metadata import IdAllocator
from .models import Comment, now_ms
from .results import LoadResult, Outcome

logger = logging.getLogger(__name__)

# Fields a patch may not change
PROTECTED_FIELDS = ("id", "ideaId", "parentId", "createdAt", "updatedAt", "seq")


class InvalidCommentError(ValueError):
    """Raised when a comment cannot be created as requested."""


def _to_comment(result: LoadResult) -> LoadResult:
    if not result.is_ok:
        return result
    try:
        return LoadResult.ok(Comment.from_document(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return LoadResult.parse_error(f"Invalid comment document: {e}")


class CommentRepository:
    """
    Create, read, update, soft-delete and list comments.

    Every listing scans the whole ``comments/`` collection; there is no
    index by idea or parent.
    """

    def __init__(self, collection: DocumentCollection, validate_parent: bool = True):
        """
        Initialize the comment repository.

        Args:
            collection: Collection holding ``comment-<id>.json`` files.
            validate_parent: Require a reply's parent to exist and belong to
                the same idea.
        """
        self.collection = collection
        self.validate_parent = validate_parent

    async def create(
        self,
        idea_id: int,
        author_name: str,
        author_email: str,
        content: str,
        parent_id: Optional[str] = None,
    ) -> Comment:
        """
        Create and persist a new comment.

        Args:
            idea_id: The idea the comment belongs to.
            author_name: Display name of the author.
            author_email: Email of the author, used for ownership checks.
            content: Comment text.
            parent_id: Comment being replied to, or None for a top-level comment.

        Returns:
            The stored comment with a fresh id.

        Raises:
            InvalidCommentError: If the parent is missing or belongs to another idea.
            OSError: If the document cannot be written.
        """
        parent_id = parent_id or None
        if parent_id and self.validate_parent:
            parent = await self.get(parent_id)
            if parent is None or parent.idea_id != idea_id:
                raise InvalidCommentError(f"Invalid parent comment {parent_id} for idea {idea_id}")

        timestamp = now_ms()
        comment = Comment(
            comment_id=IdAllocator.new_comment_id(),
            idea_id=idea_id,
            parent_id=parent_id,
            author_name=author_name,
            author_email=author_email,
            content=content,
            is_moderated=False,
            is_deleted=False,
            created_at=timestamp,
            updated_at=timestamp,
            sequence=IdAllocator.next_comment_sequence(),
        )
        await self.collection.write(comment.comment_id, comment.to_document())
        logger.info(f"Created comment {comment.comment_id} on idea {idea_id}")
        return comment

    async def load(self, comment_id: str) -> LoadResult:
        """Read a comment as a tagged result, including soft-deleted ones."""
        return _to_comment(await self.collection.read(comment_id))

    async def get(self, comment_id: str) -> Comment | None:
        """Get a comment by id, or None if it is missing or unreadable."""
        result = await self.load(comment_id)
        if result.is_ok:
            return result.value
        if result.outcome is Outcome.PARSE_ERROR:
            logger.warning(f"Comment {comment_id} is unreadable: {result.error}")
        elif result.outcome is Outcome.IO_ERROR:
            logger.error(f"Error getting comment {comment_id}: {result.error}")
        return None

    async def update(self, comment_id: str, patch: dict[str, Any]) -> Comment | None:
        """
        Merge ``patch`` onto a stored comment.

        Args:
            comment_id: The comment to change.
            patch: Document fields (camelCase) to overwrite. Identity,
                parent and timestamp fields are ignored.

        Returns:
            The updated comment, or None if it is missing, unreadable,
            already deleted, or the patch leaves it in an invalid shape.
        """
        existing = await self.get(comment_id)
        if existing is None or existing.is_deleted:
            return None

        ignored = [key for key in patch if key in PROTECTED_FIELDS]
        if ignored:
            logger.warning(f"Ignoring protected fields {ignored} in update of comment {comment_id}")

        document = existing.to_document()
        document.update({k: v for k, v in patch.items() if k not in PROTECTED_FIELDS})
        try:
            updated = Comment.from_document(document)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Rejected update of comment {comment_id}: {e}")
            return None
        updated.update_timestamp()

        try:
            await self.collection.write(comment_id, updated.to_document())
        except OSError as e:
            logger.error(f"Error updating comment {comment_id}: {e}")
            return None

        logger.info(f"Updated comment {comment_id}")
        return updated

    async def soft_delete(self, comment_id: str) -> bool:
        """
        Mark a comment as deleted and keep its record.

        Returns:
            True if the comment exists and was marked, False otherwise.
        """
        existing = await self.get(comment_id)
        if existing is None:
            return False

        existing.is_deleted = True
        existing.update_timestamp()
        try:
            await self.collection.write(comment_id, existing.to_document())
        except OSError as e:
            logger.error(f"Error deleting comment {comment_id}: {e}")
            return False

        logger.info(f"Soft-deleted comment {comment_id}")
        return True

    async def _scan(self) -> list[Comment]:
        try:
            results = await self.collection.scan()
        except OSError as e:
            logger.error(f"Error listing comments: {e}")
            return []

        comments = []
        for result in map(_to_comment, results):
            if result.is_ok:
                comments.append(result.value)
            elif result.outcome is Outcome.PARSE_ERROR:
                logger.warning(f"Skipping unreadable comment: {result.error}")
            elif result.outcome is Outcome.IO_ERROR:
                logger.error(f"Skipping comment after IO failure: {result.error}")
        return comments

    async def list_by_idea(self, idea_id: int) -> list[Comment]:
        """Visible comments of an idea, replies included, newest first."""
        comments = [c for c in await self._scan() if c.idea_id == idea_id and not c.is_deleted]
        comments.sort(key=Comment.sort_key, reverse=True)
        return comments

    async def list_replies(self, parent_id: str) -> list[Comment]:
        """Visible direct replies to a comment, oldest first."""
        replies = [c for c in await self._scan() if c.parent_id == parent_id and not c.is_deleted]
        replies.sort(key=Comment.sort_key)
        return replies

    async def list_all(self) -> list[Comment]:
        """Visible comments across all ideas, newest first."""
        comments = [c for c in await self._scan() if not c.is_deleted]
        comments.sort(key=Comment.sort_key, reverse=True)
        return comments

    async def count_for_idea(self, idea_id: int) -> int:
        return len(await self.list_by_idea(idea_id))
