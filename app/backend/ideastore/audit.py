"""
Audit trail for changes to ideas and their discussion.

Every recorded action becomes an ``AUDIT:`` line in the application log.
When a collection is configured the entry is also kept as
``audit/audit-<uuid>.json`` so the history of an idea can be replayed.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .documents import DocumentCollection
from .models import now_ms

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Kinds of recorded actions."""

    # Idea lifecycle
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    STATUS_CHANGE = "status_change"

    # Votes
    VOTE_ADDED = "vote_added"
    VOTE_REMOVED = "vote_removed"

    # Discussion
    COMMENT_ADDED = "comment_added"
    COMMENT_UPDATED = "comment_updated"
    COMMENT_DELETED = "comment_deleted"
    COMMENT_MODERATED = "comment_moderated"


def _diff(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Fields present in both documents whose values differ."""
    return {
        key: {"old": before[key], "new": value}
        for key, value in after.items()
        if key in before and before[key] != value
    }


@dataclass
class AuditEntry:
    """
    One recorded action against an idea.

    ``changes`` maps a field name to its ``{"old", "new"}`` pair;
    ``metadata`` carries context such as the title or the comment id.
    """

    audit_id: str
    idea_id: int
    action: AuditAction
    user_id: str
    timestamp: int
    changes: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        action = self.action.value if isinstance(self.action, AuditAction) else self.action
        return {
            "id": self.audit_id,
            "ideaId": self.idea_id,
            "action": action,
            "userId": self.user_id,
            "timestamp": self.timestamp,
            "changes": self.changes,
            "metadata": self.metadata,
        }

    @classmethod
    def from_document(cls, item: dict[str, Any]) -> "AuditEntry":
        """
        Rebuild an entry from its stored document.

        Actions this version does not know are kept as plain strings.

        Raises:
            TypeError, ValueError: If ``ideaId`` or ``timestamp`` is not numeric.
        """
        raw_action = item.get("action", "")
        try:
            action = AuditAction(raw_action)
        except ValueError:
            action = raw_action

        return cls(
            audit_id=item.get("id", ""),
            idea_id=int(item.get("ideaId", 0)),
            action=action,
            user_id=item.get("userId", ""),
            timestamp=int(item.get("timestamp", 0)),
            changes=dict(item.get("changes") or {}),
            metadata=dict(item.get("metadata") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return self.to_document()


class AuditLogger:
    """
    Records store operations for later review.

    Persisting an entry is best effort: a failed write is logged and the
    operation that triggered it still succeeds.
    """

    def __init__(self, collection: Optional[DocumentCollection] = None):
        self.collection = collection

    async def log(
        self,
        idea_id: int,
        action: AuditAction,
        user_id: str,
        changes: Optional[dict[str, Any]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AuditEntry:
        """
        Record ``action`` by ``user_id`` on an idea.

        Returns:
            The entry, whether or not it could be persisted.
        """
        entry = AuditEntry(
            audit_id=str(uuid.uuid4()),
            idea_id=idea_id,
            action=action,
            user_id=user_id,
            timestamp=now_ms(),
            changes=changes or {},
            metadata=metadata or {},
        )
        logger.info(f"AUDIT: {action.value} on idea {idea_id} by user {user_id}")

        if self.collection is not None:
            try:
                await self.collection.write(entry.audit_id, entry.to_document())
            except OSError as e:
                logger.error(f"Could not persist audit entry {entry.audit_id}: {e}")
        return entry

    async def log_create(self, idea_id: int, user_id: str, title: str) -> AuditEntry:
        return await self.log(idea_id, AuditAction.CREATE, user_id, metadata={"title": title})

    async def log_update(
        self,
        idea_id: int,
        user_id: str,
        old_values: dict[str, Any],
        new_values: dict[str, Any],
    ) -> AuditEntry:
        """Record an edit with the fields that actually changed."""
        return await self.log(idea_id, AuditAction.UPDATE, user_id, changes=_diff(old_values, new_values))

    async def log_delete(self, idea_id: int, user_id: str, title: str = "") -> AuditEntry:
        return await self.log(idea_id, AuditAction.DELETE, user_id, metadata={"title": title})

    async def log_status_change(
        self,
        idea_id: int,
        user_id: str,
        old_status: str,
        new_status: str,
    ) -> AuditEntry:
        return await self.log(
            idea_id,
            AuditAction.STATUS_CHANGE,
            user_id,
            changes={"status": {"old": old_status, "new": new_status}},
        )

    async def log_comment(
        self,
        idea_id: int,
        action: AuditAction,
        user_id: str,
        comment_id: str,
    ) -> AuditEntry:
        return await self.log(idea_id, action, user_id, metadata={"commentId": comment_id})

    async def _entries(self) -> list[AuditEntry]:
        if self.collection is None:
            return []

        try:
            results = await self.collection.scan()
        except OSError as e:
            logger.error(f"Could not read audit entries: {e}")
            return []

        entries = []
        for result in results:
            if not result.is_ok:
                logger.warning(f"Skipping audit document: {result.error}")
                continue
            try:
                entries.append(AuditEntry.from_document(result.value))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed audit entry: {e}")
        return entries

    @staticmethod
    def _newest(entries: list[AuditEntry], limit: int) -> list[AuditEntry]:
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]

    async def get_audit_trail(self, idea_id: int, limit: int = 50) -> list[AuditEntry]:
        """History of one idea, newest first, at most ``limit`` entries."""
        return self._newest([e for e in await self._entries() if e.idea_id == idea_id], limit)

    async def get_user_activity(self, user_id: str, limit: int = 50) -> list[AuditEntry]:
        """Everything ``user_id`` did, newest first, at most ``limit`` entries."""
        return self._newest([e for e in await self._entries() if e.user_id == user_id], limit)
