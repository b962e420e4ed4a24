"""
Service layer for the idea portal store.

This module composes the repositories, thread builder and vote ledger into
the operations the web layer calls: submitting and triaging ideas,
discussing them in threaded comments, and voting.
"""

import logging
from collections import Counter
from typing import Any, Optional

from .audit import AuditAction, AuditLogger
from .comments import CommentRepository, InvalidCommentError
from .config import StoreConfig
from .documents import DocumentCollection
from .ideas import IdeaRepository
from .metadata import IdAllocator, MetadataStore
from .models import (
    Comment,
    CommentThread,
    CommentThreadsResponse,
    Idea,
    IdeaStats,
    IdeaStatus,
    VoteResult,
    now_ms,
)
from .scheduler import StoreMaintenanceScheduler
from .threads import ThreadBuilder, build_threads
from .votes import FileVoteStore, InMemoryVoteStore, VoteLedger

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "General"
DEFAULT_SOURCE = "General"
DEFAULT_AUTHOR = "Anonymous"

SORT_OPTIONS = ("newest", "oldest", "most_voted")

# Fields the generic update may not touch
IMMUTABLE_IDEA_FIELDS = ("id", "createdAt", "updatedAt", "voteCount")


class IdeasService:
    """
    Service class for managing ideas, comments and votes.

    Filtering and sorting of ideas happen here, over the full set returned
    by the repository.
    """

    def __init__(
        self,
        ideas: IdeaRepository,
        comments: CommentRepository,
        votes: VoteLedger,
        threads: Optional[ThreadBuilder] = None,
        audit_logger: Optional[AuditLogger] = None,
        config: Optional[StoreConfig] = None,
    ):
        """
        Initialize the Ideas service.

        Args:
            ideas: Repository for idea documents.
            comments: Repository for comment documents.
            votes: Vote ledger mirroring counts onto ideas.
            threads: Builder for reply trees; defaults to depth 3.
            audit_logger: Audit trail; defaults to logging only.
            config: Settings for the maintenance scheduler; defaults apply if None.
        """
        self.ideas = ideas
        self.comments = comments
        self.votes = votes
        self.threads = threads or ThreadBuilder(comments)
        self.audit_logger = audit_logger or AuditLogger()
        self.config = config or StoreConfig()
        self.scheduler: Optional[StoreMaintenanceScheduler] = None

    @classmethod
    def from_config(cls, config: StoreConfig) -> "IdeasService":
        """Wire up a service over the directory layout described by ``config``."""
        ideas_collection = DocumentCollection(config.ideas_dir, "idea")
        metadata = MetadataStore(
            config.meta_file,
            ideas=ideas_collection,
            serialize=config.serialize_id_allocation,
        )
        ideas = IdeaRepository(ideas_collection, metadata, IdAllocator(metadata))
        comments = CommentRepository(
            DocumentCollection(config.comments_dir, "comment"),
            validate_parent=config.validate_comment_parent,
        )
        vote_store = FileVoteStore(config.votes_dir) if config.persist_votes else InMemoryVoteStore()
        audit_collection = DocumentCollection(config.audit_dir, "audit") if config.audit_enabled else None

        return cls(
            ideas=ideas,
            comments=comments,
            votes=VoteLedger(ideas, vote_store),
            threads=ThreadBuilder(comments, config.max_thread_depth),
            audit_logger=AuditLogger(audit_collection),
            config=config,
        )

    async def initialize(self) -> None:
        """Create the collection directories and the metadata record."""
        await self.ideas.collection.ensure()
        await self.comments.collection.ensure()
        await self.ideas.metadata.initialize()
        logger.info(f"Idea store ready at {self.ideas.collection.directory.parent}")

    def start_maintenance(self) -> Optional[StoreMaintenanceScheduler]:
        """
        Start the background maintenance jobs if enabled in the configuration.

        Must be called from a running event loop.

        Returns:
            The running scheduler, or None when ``ENABLE_IDEAS_SCHEDULER`` is off.
        """
        if not self.config.scheduler_enabled:
            logger.info("Ideas scheduler disabled (ENABLE_IDEAS_SCHEDULER != true)")
            return None

        if self.scheduler is None:
            self.scheduler = StoreMaintenanceScheduler(
                ideas=self.ideas,
                votes=self.votes,
                refresh_minutes=self.config.total_refresh_minutes,
            )
        self.scheduler.start()
        return self.scheduler

    def stop_maintenance(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()
            self.scheduler = None

    # =========================================================================
    # Idea Management Methods
    # =========================================================================

    async def submit_idea(
        self,
        title: str,
        description: str,
        category: str = "",
        source: str = "",
        author_name: str = "",
        author_email: str = "",
        attachments: Optional[list[Any]] = None,
        tags: Optional[list[str]] = None,
    ) -> Idea:
        """
        Create a new idea with a freshly allocated id.

        Raises:
            ValueError: If title or description is empty.
        """
        if not title or not title.strip() or not description or not description.strip():
            raise ValueError("Title and description are required")

        timestamp = now_ms()
        idea = Idea(
            idea_id=await self.ideas.allocate_id(),
            title=title,
            description=description,
            category=category or DEFAULT_CATEGORY,
            source=source or DEFAULT_SOURCE,
            author_name=author_name or DEFAULT_AUTHOR,
            author_email=author_email or "",
            attachments=list(attachments or []),
            tags=list(tags or []),
            status=IdeaStatus.SUBMITTED,
            created_at=timestamp,
            updated_at=timestamp,
        )

        await self.ideas.create(idea)
        await self.ideas.refresh_total_count()
        await self.audit_logger.log_create(
            idea_id=idea.idea_id,
            user_id=idea.author_email or idea.author_name,
            title=idea.title,
        )
        return idea

    async def get_idea(self, idea_id: int) -> Idea | None:
        return await self.ideas.get(idea_id)

    async def list_ideas(
        self,
        category: Optional[str] = None,
        status: Optional[str] = None,
        source: Optional[str] = None,
        tags: Optional[list[str]] = None,
        search: Optional[str] = None,
        sort_by: str = "newest",
    ) -> list[Idea]:
        """
        List ideas with filtering and sorting.

        Args:
            category: Exact category match.
            status: Exact status match.
            source: Exact source match.
            tags: Keep ideas carrying at least one of these tags.
            search: Case-insensitive text in title or description.
            sort_by: ``newest`` (default), ``oldest`` or ``most_voted``.

        Returns:
            Matching ideas in the requested order.
        """
        ideas = await self.ideas.list_all()

        if category:
            ideas = [i for i in ideas if i.category == category]
        if status:
            ideas = [i for i in ideas if i.status.value == status]
        if source:
            ideas = [i for i in ideas if i.source == source]
        if tags:
            wanted = set(tags)
            ideas = [i for i in ideas if wanted.intersection(i.tags)]
        if search:
            ideas = [i for i in ideas if i.matches_search(search)]

        if sort_by not in SORT_OPTIONS:
            sort_by = "newest"

        if sort_by == "oldest":
            ideas.sort(key=lambda i: i.created_at)
        elif sort_by == "most_voted":
            ideas.sort(key=lambda i: i.vote_count, reverse=True)
        else:
            ideas.sort(key=lambda i: i.created_at, reverse=True)
        return ideas

    async def update_idea(
        self,
        idea_id: int,
        updates: dict[str, Any],
        user_id: Optional[str] = None,
    ) -> Idea | None:
        """
        Merge ``updates`` (document fields, camelCase) into an idea.

        ``id``, ``createdAt``, ``updatedAt`` and ``voteCount`` are preserved.
        An invalid status is ignored with a warning.

        Returns:
            The updated idea, or None if it was not found or the merged
            document is invalid.
        """
        async with self.ideas.lock_for(idea_id):
            existing = await self.ideas.get(idea_id)
            if existing is None:
                return None

            old_values = existing.to_document()
            document = dict(old_values)
            for key, value in updates.items():
                if key in IMMUTABLE_IDEA_FIELDS:
                    continue
                if key == "status":
                    status = IdeaStatus.parse(value)
                    if status is None:
                        logger.warning(f"Invalid status value: {value}")
                        continue
                    value = status.value
                document[key] = value

            try:
                updated = Idea.from_document(document)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Rejected update of idea {idea_id}: {e}")
                return None
            updated.update_timestamp()
            if user_id:
                updated.updated_by = user_id
            await self.ideas.update(updated)

        if old_values["status"] != updated.status.value:
            await self.audit_logger.log_status_change(
                idea_id=idea_id,
                user_id=user_id or "unknown",
                old_status=old_values["status"],
                new_status=updated.status.value,
            )
        else:
            await self.audit_logger.log_update(
                idea_id=idea_id,
                user_id=user_id or "unknown",
                old_values=old_values,
                new_values=updated.to_document(),
            )
        return updated

    async def set_status(self, idea_id: int, status: str, user_id: Optional[str] = None) -> Idea | None:
        """
        Move an idea to a workflow status.

        Raises:
            ValueError: If ``status`` is not an assignable workflow status.
        """
        parsed = IdeaStatus.parse(status)
        if parsed is None or parsed not in IdeaStatus.workflow():
            raise ValueError(f"Invalid status: {status}")
        return await self.update_idea(idea_id, {"status": parsed.value}, user_id=user_id)

    async def update_internal(
        self,
        idea_id: int,
        estimated_effort: str = "",
        effort_unit: str = "",
        detailed_requirements: str = "",
        features: Optional[list[Any]] = None,
        use_cases: Optional[list[Any]] = None,
        user_id: Optional[str] = None,
    ) -> Idea | None:
        """Replace the product team's internal planning fields."""
        return await self.update_idea(
            idea_id,
            {
                "estimatedEffort": estimated_effort or "",
                "effortUnit": effort_unit or "story_points",
                "detailedRequirements": detailed_requirements or "",
                "features": list(features or []),
                "useCases": list(use_cases or []),
            },
            user_id=user_id,
        )

    async def add_attachments(
        self,
        idea_id: int,
        attachments: list[dict[str, Any]],
        user_id: Optional[str] = None,
    ) -> Idea | None:
        """
        Append attachment descriptors to an idea, after any it already has.

        Storing the uploaded files is the caller's job; this records them.

        Returns:
            The updated idea, or None if it does not exist.

        Raises:
            ValueError: If ``attachments`` is empty.
        """
        if not attachments:
            raise ValueError("No attachments given")

        async with self.ideas.lock_for(idea_id):
            idea = await self.ideas.get(idea_id)
            if idea is None:
                return None
            idea.attachments = [*idea.attachments, *attachments]
            idea.update_timestamp()
            if user_id:
                idea.updated_by = user_id
            await self.ideas.update(idea)

        await self.audit_logger.log(
            idea_id=idea_id,
            action=AuditAction.UPDATE,
            user_id=user_id or "unknown",
            metadata={"attachmentsAdded": len(attachments)},
        )
        return idea

    async def delete_idea(self, idea_id: int, user_id: Optional[str] = None) -> bool:
        """
        Delete an idea and its voter set. Comments on it are kept.

        Returns:
            True if deleted, False if not found.
        """
        async with self.ideas.lock_for(idea_id):
            existing = await self.ideas.get(idea_id)
            if not await self.ideas.delete(idea_id):
                return False
            await self.votes.forget(idea_id)

        await self.ideas.refresh_total_count()
        await self.audit_logger.log_delete(
            idea_id=idea_id,
            user_id=user_id or "unknown",
            title=existing.title if existing else "",
        )
        return True

    async def get_stats(self) -> IdeaStats:
        ideas = await self.ideas.list_all()
        by_status = Counter(idea.status.value for idea in ideas)
        return IdeaStats(
            total_ideas=len(ideas),
            # persisted counts; the ledger's reconcile job keeps them in step with voter sets
            total_votes=sum(idea.vote_count for idea in ideas),
            ideas_by_status=dict(by_status),
        )

    async def get_categories(self) -> list[str]:
        return sorted({idea.category for idea in await self.ideas.list_all() if idea.category})

    async def get_sources(self) -> list[str]:
        return sorted({idea.source for idea in await self.ideas.list_all() if idea.source})

    async def get_tags(self) -> list[str]:
        """Distinct non-blank tags, trimmed and sorted."""
        return sorted(
            {
                tag.strip()
                for idea in await self.ideas.list_all()
                for tag in idea.tags
                if isinstance(tag, str) and tag.strip()
            }
        )

    async def get_tag_counts(self) -> list[dict[str, Any]]:
        """Distinct tags with usage counts, most used first."""
        counts = Counter(
            tag.strip()
            for idea in await self.ideas.list_all()
            for tag in idea.tags
            if isinstance(tag, str) and tag.strip()
        )
        ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [{"tag": tag, "count": count} for tag, count in ordered]

    # =========================================================================
    # Vote Methods
    # =========================================================================

    async def toggle_vote(self, idea_id: int, voter_id: str) -> VoteResult | None:
        """
        Toggle a voter's vote on an idea.

        Returns:
            The vote result, or None if the idea does not exist.

        Raises:
            ValueError: If ``voter_id`` is empty.
        """
        result = await self.votes.toggle(idea_id, voter_id)
        if result is not None:
            await self.audit_logger.log(
                idea_id=idea_id,
                action=AuditAction.VOTE_ADDED if result.did_vote else AuditAction.VOTE_REMOVED,
                user_id=voter_id,
            )
        return result

    # =========================================================================
    # Comment Management Methods
    # =========================================================================

    async def add_comment(
        self,
        idea_id: int,
        author_name: str,
        author_email: str,
        content: str,
        parent_id: Optional[str] = None,
    ) -> Comment | None:
        """
        Create a comment or reply on an idea.

        Returns:
            The created comment, or None if the idea does not exist.

        Raises:
            InvalidCommentError: If a field is empty, the parent is invalid,
                or the reply would nest deeper than the thread depth.
        """
        if not author_name or not author_name.strip() or not author_email or not author_email.strip():
            raise InvalidCommentError("Author name and email are required")
        if not content or not content.strip():
            raise InvalidCommentError("Comment content cannot be empty")

        if await self.ideas.get(idea_id) is None:
            logger.debug(f"Comment on missing idea {idea_id}")
            return None

        if parent_id:
            parent = await self.comments.get(parent_id)
            if parent is not None and await self.threads.depth_of(parent) >= self.threads.max_depth:
                raise InvalidCommentError(
                    f"Replies may nest at most {self.threads.max_depth} levels below a comment"
                )

        comment = await self.comments.create(
            idea_id=idea_id,
            author_name=author_name.strip(),
            author_email=author_email.strip(),
            content=content.strip(),
            parent_id=parent_id,
        )
        await self.audit_logger.log_comment(
            idea_id, AuditAction.COMMENT_ADDED, comment.author_email, comment.comment_id
        )
        return comment

    async def edit_comment(self, comment_id: str, content: str, author_email: str) -> Comment | None:
        """
        Change the text of a comment. Only the author may edit.

        Returns:
            The updated comment, or None if not found or deleted.

        Raises:
            InvalidCommentError: If the new content is empty.
            PermissionError: If ``author_email`` is not the comment's author.
        """
        if not content or not content.strip():
            raise InvalidCommentError("Comment content cannot be empty")

        existing = await self.comments.get(comment_id)
        if existing is None or existing.is_deleted:
            return None
        if not existing.is_owner(author_email):
            raise PermissionError("Only the author can edit this comment")

        updated = await self.comments.update(comment_id, {"content": content.strip()})
        if updated is not None:
            await self.audit_logger.log_comment(
                updated.idea_id, AuditAction.COMMENT_UPDATED, updated.author_email, comment_id
            )
        return updated

    async def remove_comment(self, comment_id: str, author_email: str = "", is_admin: bool = False) -> bool:
        """
        Soft-delete a comment. Only the author or an admin may delete.

        Returns:
            True if deleted, False if not found.

        Raises:
            PermissionError: If the caller is neither author nor admin.
        """
        existing = await self.comments.get(comment_id)
        if existing is None:
            return False
        if not is_admin and not existing.is_owner(author_email):
            raise PermissionError("Only the author can delete this comment")

        deleted = await self.comments.soft_delete(comment_id)
        if deleted:
            await self.audit_logger.log_comment(
                existing.idea_id,
                AuditAction.COMMENT_DELETED,
                "admin" if is_admin else existing.author_email,
                comment_id,
            )
        return deleted

    async def moderate_comment(self, comment_id: str, is_moderated: bool) -> Comment | None:
        updated = await self.comments.update(comment_id, {"isModerated": bool(is_moderated)})
        if updated is not None:
            await self.audit_logger.log_comment(
                updated.idea_id, AuditAction.COMMENT_MODERATED, "admin", comment_id
            )
        return updated

    async def get_comment_threads(self, idea_id: int) -> CommentThreadsResponse:
        """Threaded comments of an idea with the count of visible comments."""
        comments = await self.comments.list_by_idea(idea_id)
        threads = build_threads(comments, self.threads.max_depth)
        return CommentThreadsResponse(threads=threads, total_count=len(comments))

    async def get_comment_thread(self, comment_id: str) -> CommentThread | None:
        """Reply tree below a single comment."""
        return await self.threads.thread_for_comment(comment_id)

    async def get_comment_counts(self, idea_ids: list[int]) -> dict[int, int]:
        """Visible comment counts for several ideas from a single scan."""
        wanted = set(idea_ids)
        counts = Counter(c.idea_id for c in await self.comments.list_all() if c.idea_id in wanted)
        return {idea_id: counts.get(idea_id, 0) for idea_id in idea_ids}

    async def list_all_comments(self) -> list[Comment]:
        return await self.comments.list_all()
