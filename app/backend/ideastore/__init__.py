# Idea portal store
# File-backed persistence for ideas, threaded comments and votes

from .audit import AuditAction, AuditEntry, AuditLogger
from .comments import CommentRepository, InvalidCommentError
from .config import StoreConfig
from .documents import DocumentCollection, JsonFile
from .ideas import IdeaRepository
from .metadata import IdAllocator, MetadataStore
from .models import (
    Comment,
    CommentThread,
    CommentThreadsResponse,
    Idea,
    IdeaStats,
    IdeaStatus,
    StoreMetadata,
    VoteResult,
)
from .results import LoadResult, Outcome
from .scheduler import StoreMaintenanceScheduler
from .service import IdeasService
from .threads import ThreadBuilder, build_threads
from .votes import FileVoteStore, InMemoryVoteStore, VoteLedger

__all__ = [
    "AuditAction",
    "AuditEntry",
    "AuditLogger",
    "Comment",
    "CommentRepository",
    "CommentThread",
    "CommentThreadsResponse",
    "DocumentCollection",
    "FileVoteStore",
    "IdAllocator",
    "Idea",
    "IdeaRepository",
    "IdeaStats",
    "IdeaStatus",
    "IdeasService",
    "InMemoryVoteStore",
    "InvalidCommentError",
    "JsonFile",
    "LoadResult",
    "MetadataStore",
    "Outcome",
    "StoreConfig",
    "StoreMaintenanceScheduler",
    "StoreMetadata",
    "ThreadBuilder",
    "VoteLedger",
    "VoteResult",
    "build_threads",
]
