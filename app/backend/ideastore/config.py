"""
Configuration for the idea portal store, read from environment variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() == "true"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "")
    try:
        return int(value) if value else default
    except ValueError:
        return default


@dataclass
class StoreConfig:
    """Settings for the file-backed store and its maintenance jobs."""

    data_dir: Path = Path("data")
    serialize_id_allocation: bool = True
    persist_votes: bool = True
    max_thread_depth: int = 3
    validate_comment_parent: bool = True
    scheduler_enabled: bool = False
    total_refresh_minutes: int = 15
    audit_enabled: bool = True

    @property
    def ideas_dir(self) -> Path:
        return self.data_dir / "ideas"

    @property
    def comments_dir(self) -> Path:
        return self.data_dir / "comments"

    @property
    def votes_dir(self) -> Path:
        return self.data_dir / "votes"

    @property
    def audit_dir(self) -> Path:
        return self.data_dir / "audit"

    @property
    def meta_file(self) -> Path:
        return self.data_dir / "meta.json"

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Build the configuration from ``IDEAS_*`` environment variables."""
        return cls(
            data_dir=Path(os.getenv("IDEAS_DATA_DIR", "data")),
            serialize_id_allocation=_env_flag("IDEAS_SERIALIZE_ID_ALLOCATION", True),
            persist_votes=_env_flag("IDEAS_PERSIST_VOTES", True),
            max_thread_depth=max(1, _env_int("IDEAS_MAX_THREAD_DEPTH", 3)),
            validate_comment_parent=_env_flag("IDEAS_VALIDATE_COMMENT_PARENT", True),
            scheduler_enabled=os.getenv("ENABLE_IDEAS_SCHEDULER", "").lower() == "true",
            total_refresh_minutes=max(1, _env_int("IDEAS_TOTAL_REFRESH_MINUTES", 15)),
            audit_enabled=_env_flag("IDEAS_AUDIT_ENABLED", True),
        )
