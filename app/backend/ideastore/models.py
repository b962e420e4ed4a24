"""
Data models for the idea portal store.

This module defines the documents persisted by the store: ideas, comments,
the metadata counter and the per-idea voter sets. Models follow the
dataclass pattern with camelCase JSON document serialization.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def coerce_timestamp(value: Any) -> int:
    """
    Normalize a stored timestamp to integer milliseconds.

    Older documents carry ISO-8601 strings; newer ones carry integers.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    raise ValueError(f"Invalid timestamp: {value!r}")


class IdeaStatus(str, Enum):
    """Status of an idea in the triage workflow."""

    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PARKED = "parked"
    DECLINED = "declined"  # legacy, superseded by PARKED

    @classmethod
    def workflow(cls) -> list["IdeaStatus"]:
        """Statuses that may be assigned to an idea."""
        return [status for status in cls if status is not cls.DECLINED]

    @classmethod
    def parse(cls, value: Any) -> Optional["IdeaStatus"]:
        """
        Interpret a stored or submitted status value.

        Variants such as ``"Under Review"`` map to ``under_review``.

        Returns:
            The matching status, or None if the value is not recognized.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls("_".join(value.strip().lower().split()))
        except ValueError:
            return None


@dataclass
class Idea:
    """
    Represents an idea submitted to the portal.

    Unknown keys found in a stored document are kept in ``extra`` and
    written back unchanged, since updates overwrite the whole document.
    """

    # Core identification
    idea_id: int

    # User-provided content
    title: str
    description: str
    category: str = ""
    source: str = ""
    author_name: str = ""
    author_email: str = ""
    attachments: list[Any] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    # Workflow
    status: IdeaStatus = IdeaStatus.SUBMITTED
    vote_count: int = 0
    comment_count: int = 0
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)
    updated_by: str = ""

    # Product team internals
    estimated_effort: str = ""
    effort_unit: str = "story_points"
    detailed_requirements: str = ""
    features: list[Any] = field(default_factory=list)
    use_cases: list[Any] = field(default_factory=list)

    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN_KEYS = (
        "id", "title", "description", "category", "source", "authorName",
        "authorEmail", "attachments", "tags", "status", "voteCount",
        "commentCount", "createdAt", "updatedAt", "updatedBy",
        "estimatedEffort", "effortUnit", "detailedRequirements", "features",
        "useCases",
    )

    def to_document(self) -> dict[str, Any]:
        """
        Convert the idea to its stored JSON document.

        Returns:
            Dictionary representation written to ``idea-<id>.json``.
        """
        document = dict(self.extra)
        document.update({
            "id": self.idea_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "source": self.source,
            "authorName": self.author_name,
            "authorEmail": self.author_email,
            "attachments": self.attachments,
            "tags": self.tags,
            "status": self.status.value if isinstance(self.status, IdeaStatus) else self.status,
            "voteCount": self.vote_count,
            "commentCount": self.comment_count,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "updatedBy": self.updated_by,
            "estimatedEffort": self.estimated_effort,
            "effortUnit": self.effort_unit,
            "detailedRequirements": self.detailed_requirements,
            "features": self.features,
            "useCases": self.use_cases,
        })
        return document

    @classmethod
    def from_document(cls, item: dict[str, Any]) -> "Idea":
        """
        Create an Idea from a stored document.

        Args:
            item: Parsed JSON object.

        Returns:
            Idea instance populated with document data.

        Raises:
            KeyError: If the document has no ``id``.
            ValueError: If the id or a timestamp cannot be interpreted.
        """
        status = IdeaStatus.parse(item.get("status")) or IdeaStatus.SUBMITTED

        idea_id = item["id"]
        if isinstance(idea_id, bool) or not isinstance(idea_id, (int, str)):
            raise ValueError(f"Invalid idea id: {idea_id!r}")

        return cls(
            idea_id=int(idea_id),
            title=item.get("title", "") or "",
            description=item.get("description", "") or "",
            category=item.get("category", "") or "",
            source=item.get("source", "") or "",
            author_name=item.get("authorName", "") or "",
            author_email=item.get("authorEmail", "") or "",
            attachments=list(item.get("attachments") or []),
            tags=list(item.get("tags") or []),
            status=status,
            vote_count=max(0, int(item.get("voteCount") or 0)),
            comment_count=int(item.get("commentCount") or 0),
            created_at=coerce_timestamp(item.get("createdAt")),
            updated_at=coerce_timestamp(item.get("updatedAt")),
            updated_by=item.get("updatedBy", "") or "",
            estimated_effort=item.get("estimatedEffort", "") or "",
            effort_unit=item.get("effortUnit", "story_points") or "story_points",
            detailed_requirements=item.get("detailedRequirements", "") or "",
            features=list(item.get("features") or []),
            use_cases=list(item.get("useCases") or []),
            extra={k: v for k, v in item.items() if k not in cls._KNOWN_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return self.to_document()

    def update_timestamp(self) -> None:
        """Update the updated_at timestamp to current time."""
        self.updated_at = now_ms()

    def matches_search(self, text: str) -> bool:
        """Case-insensitive substring match on title and description."""
        needle = text.lower()
        return needle in self.title.lower() or needle in self.description.lower()


@dataclass
class Comment:
    """
    Represents a comment on an idea.

    A comment with ``parent_id`` set is a reply to another comment of the
    same idea. Deleted comments keep their record with ``is_deleted`` set.
    ``sequence`` increases with every comment created and breaks ties
    between comments that share a ``created_at`` millisecond.
    """

    comment_id: str
    idea_id: int
    author_name: str
    author_email: str
    content: str
    parent_id: Optional[str] = None
    is_moderated: bool = False
    is_deleted: bool = False
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)
    sequence: int = 0

    def to_document(self) -> dict[str, Any]:
        """Convert to the stored JSON document."""
        return {
            "id": self.comment_id,
            "ideaId": self.idea_id,
            "parentId": self.parent_id,
            "authorName": self.author_name,
            "authorEmail": self.author_email,
            "content": self.content,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "isModerated": self.is_moderated,
            "isDeleted": self.is_deleted,
            "seq": self.sequence,
        }

    @classmethod
    def from_document(cls, item: dict[str, Any]) -> "Comment":
        """
        Create a Comment from a stored document.

        Raises:
            KeyError: If ``id`` or ``ideaId`` is missing.
            ValueError: If ``ideaId`` or a timestamp cannot be interpreted.
        """
        comment_id = item["id"]
        if not isinstance(comment_id, str) or not comment_id:
            raise ValueError(f"Invalid comment id: {comment_id!r}")
        idea_id = item["ideaId"]
        if isinstance(idea_id, bool) or not isinstance(idea_id, (int, str)):
            raise ValueError(f"Invalid idea id: {idea_id!r}")

        return cls(
            comment_id=comment_id,
            idea_id=int(idea_id),
            parent_id=item.get("parentId") or None,
            author_name=item.get("authorName", "") or "",
            author_email=item.get("authorEmail", "") or "",
            content=item.get("content", "") or "",
            is_moderated=bool(item.get("isModerated", False)),
            is_deleted=bool(item.get("isDeleted", False)),
            created_at=coerce_timestamp(item.get("createdAt")),
            updated_at=coerce_timestamp(item.get("updatedAt")),
            sequence=int(item.get("seq") or 0),
        )

    def sort_key(self) -> tuple[int, int]:
        """Creation order: timestamp first, then creation sequence."""
        return (self.created_at, self.sequence)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return self.to_document()

    def update_timestamp(self) -> None:
        """Update the updated_at timestamp to current time."""
        self.updated_at = now_ms()

    def is_owner(self, author_email: str) -> bool:
        """Check if the given email belongs to the comment's author."""
        return self.author_email == author_email.strip()


@dataclass
class CommentThread:
    """A comment together with its nested replies."""

    comment: Comment
    replies: list["CommentThread"] = field(default_factory=list)
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to a nested dictionary for API responses."""
        data = self.comment.to_dict()
        data["replies"] = [reply.to_dict() for reply in self.replies]
        data["hasMoreReplies"] = self.truncated
        return data

    def walk(self):
        """Yield this thread's comment and every nested reply, depth first."""
        yield self.comment
        for reply in self.replies:
            yield from reply.walk()


@dataclass
class CommentThreadsResponse:
    """Response model for the threaded comments of an idea."""

    threads: list[CommentThread]
    total_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "comments": [thread.to_dict() for thread in self.threads],
            "total": self.total_count,
        }


@dataclass
class IdeaStats:
    """Aggregate counts across all ideas."""

    total_ideas: int
    total_votes: int
    ideas_by_status: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalIdeas": self.total_ideas,
            "totalVotes": self.total_votes,
            "ideasByStatus": self.ideas_by_status,
        }


@dataclass
class StoreMetadata:
    """Singleton counter record stored in ``meta.json``."""

    next_id: int = 1
    total_ideas: int = 0

    def to_document(self) -> dict[str, Any]:
        return {"nextId": self.next_id, "totalIdeas": self.total_ideas}

    @classmethod
    def from_document(cls, item: dict[str, Any]) -> "StoreMetadata":
        next_id = item["nextId"]
        total = item.get("totalIdeas", 0)
        if isinstance(next_id, bool) or not isinstance(next_id, int) or next_id < 1:
            raise ValueError(f"Invalid nextId: {next_id!r}")
        if isinstance(total, bool) or not isinstance(total, int) or total < 0:
            raise ValueError(f"Invalid totalIdeas: {total!r}")
        return cls(next_id=next_id, total_ideas=total)


@dataclass
class VoteResult:
    """Result of toggling a vote."""

    idea_id: int
    vote_count: int
    did_vote: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "ideaId": self.idea_id,
            "voteCount": self.vote_count,
            "didVote": self.did_vote,
        }
