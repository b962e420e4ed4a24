# tests/conftest.py - Shared test fixtures
import pytest
import pytest_asyncio

from ideastore.comments import CommentRepository
from ideastore.config import StoreConfig
from ideastore.documents import DocumentCollection
from ideastore.ideas import IdeaRepository
from ideastore.metadata import IdAllocator, MetadataStore
from ideastore.models import Idea
from ideastore.service import IdeasService

BASE_TIME = 1_700_000_000_000


@pytest.fixture
def clock(monkeypatch):
    """Deterministic millisecond clock advancing one second per reading."""
    state = {"now": BASE_TIME}

    def tick() -> int:
        state["now"] += 1000
        return state["now"]

    monkeypatch.setattr("ideastore.comments.now_ms", tick)
    monkeypatch.setattr("ideastore.models.now_ms", tick)
    monkeypatch.setattr("ideastore.service.now_ms", tick)
    return state


@pytest.fixture
def store_config(tmp_path):
    return StoreConfig(data_dir=tmp_path / "data")


@pytest.fixture
def ideas_collection(store_config):
    return DocumentCollection(store_config.ideas_dir, "idea")


@pytest.fixture
def metadata_store(store_config, ideas_collection):
    return MetadataStore(store_config.meta_file, ideas=ideas_collection)


@pytest.fixture
def idea_repo(ideas_collection, metadata_store):
    return IdeaRepository(ideas_collection, metadata_store, IdAllocator(metadata_store))


@pytest.fixture
def comment_repo(store_config):
    return CommentRepository(DocumentCollection(store_config.comments_dir, "comment"))


@pytest_asyncio.fixture
async def service(store_config):
    svc = IdeasService.from_config(store_config)
    await svc.initialize()
    return svc


@pytest.fixture
def make_idea():
    """Factory for ideas with fixed timestamps."""

    def _make(idea_id: int, **overrides) -> Idea:
        fields = {
            "idea_id": idea_id,
            "title": f"Idea {idea_id}",
            "description": f"Description of idea {idea_id}",
            "category": "General",
            "source": "General",
            "author_name": "Ada",
            "author_email": "ada@example.com",
            "created_at": BASE_TIME + idea_id,
            "updated_at": BASE_TIME + idea_id,
        }
        fields.update(overrides)
        return Idea(**fields)

    return _make
