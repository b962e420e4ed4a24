"""
Assembly of nested reply threads from flat parent references.

Comments only carry a ``parentId`` pointer, and nothing stops those pointers
from forming a cycle. Assembly therefore tracks visited comments and stops
at a maximum depth instead of recursing blindly.
"""

import logging
from collections import defaultdict

from .comments import CommentRepository
from .models import Comment, CommentThread

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 3


def build_threads(comments: list[Comment], max_depth: int = DEFAULT_MAX_DEPTH) -> list[CommentThread]:
    """
    Build reply trees from a flat list of comments.

    Top-level comments come back newest first, replies oldest first. A root
    sits at depth 0, so ``max_depth`` levels of replies are assembled below
    it; deeper replies are cut off and the node at the limit is marked
    ``truncated``. Replies whose parent is absent
    from ``comments`` (deleted, or from another idea) are dropped.

    Args:
        comments: Visible comments, typically all comments of one idea.
        max_depth: Number of reply levels to assemble below each root.

    Returns:
        One thread per top-level comment.
    """
    by_id = {c.comment_id: c for c in comments}
    children: dict[str, list[Comment]] = defaultdict(list)
    roots: list[Comment] = []

    for comment in comments:
        if comment.parent_id is None:
            roots.append(comment)
            continue
        parent = by_id.get(comment.parent_id)
        if parent is None or parent.idea_id != comment.idea_id:
            logger.debug(f"Dropping orphaned reply {comment.comment_id}")
            continue
        children[comment.parent_id].append(comment)

    for replies in children.values():
        replies.sort(key=Comment.sort_key)
    roots.sort(key=Comment.sort_key, reverse=True)

    visited: set[str] = set()

    def _assemble(comment: Comment, depth: int) -> CommentThread:
        visited.add(comment.comment_id)
        node = CommentThread(comment=comment)
        pending = [c for c in children.get(comment.comment_id, []) if c.comment_id not in visited]
        if not pending:
            return node
        if depth >= max_depth:
            node.truncated = True
            return node
        for reply in pending:
            if reply.comment_id in visited:
                continue
            node.replies.append(_assemble(reply, depth + 1))
        return node

    return [_assemble(root, 0) for root in roots if root.comment_id not in visited]


class ThreadBuilder:
    """Answers "comments for idea X" as a tree."""

    def __init__(self, comments: CommentRepository, max_depth: int = DEFAULT_MAX_DEPTH):
        self.comments = comments
        self.max_depth = max(0, max_depth)

    async def threads_for_idea(self, idea_id: int) -> list[CommentThread]:
        """
        Build every thread of an idea from a single collection scan.
        """
        comments = await self.comments.list_by_idea(idea_id)
        return build_threads(comments, self.max_depth)

    async def thread_for_comment(self, comment_id: str) -> CommentThread | None:
        """
        Build the reply tree below one comment by fetching replies level by level.

        Returns:
            The thread rooted at the comment, or None if it is missing or deleted.
        """
        root = await self.comments.get(comment_id)
        if root is None or root.is_deleted:
            return None

        visited = {root.comment_id}

        async def _assemble(comment: Comment, depth: int) -> CommentThread:
            node = CommentThread(comment=comment)
            replies = await self.comments.list_replies(comment.comment_id)
            pending = [
                r for r in replies
                if r.comment_id not in visited and r.idea_id == comment.idea_id
            ]
            if len(pending) < len(replies):
                logger.warning(f"Skipped revisited or foreign replies under comment {comment.comment_id}")
            if not pending:
                return node
            if depth >= self.max_depth:
                node.truncated = True
                return node
            for reply in pending:
                if reply.comment_id in visited:
                    continue
                visited.add(reply.comment_id)
                node.replies.append(await _assemble(reply, depth + 1))
            return node

        return await _assemble(root, 0)

    async def depth_of(self, comment: Comment) -> int:
        """Number of ancestors above ``comment``, stopping at a missing parent or a cycle."""
        depth = 0
        seen = {comment.comment_id}
        parent_id = comment.parent_id
        while parent_id and parent_id not in seen:
            parent = await self.comments.get(parent_id)
            if parent is None:
                break
            seen.add(parent_id)
            depth += 1
            parent_id = parent.parent_id
        return depth
