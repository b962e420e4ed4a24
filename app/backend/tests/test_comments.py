"""Tests for the comment repository."""
import json

import pytest

from ideastore.comments import CommentRepository, InvalidCommentError
from ideastore.documents import DocumentCollection


@pytest.mark.asyncio
async def test_top_level_comment_and_reply(comment_repo, clock):
    top = await comment_repo.create(1, "Ada", "ada@example.com", "top")
    reply = await comment_repo.create(1, "Bob", "bob@example.com", "reply", parent_id=top.comment_id)

    by_idea = await comment_repo.list_by_idea(1)
    assert [c.comment_id for c in by_idea] == [reply.comment_id, top.comment_id]
    assert [c.comment_id for c in await comment_repo.list_replies(top.comment_id)] == [reply.comment_id]
    assert await comment_repo.list_replies(reply.comment_id) == []


@pytest.mark.asyncio
async def test_new_comment_fields(comment_repo, clock):
    comment = await comment_repo.create(4, "Ada", "ada@example.com", "hello")

    assert comment.parent_id is None
    assert comment.is_deleted is False
    assert comment.is_moderated is False
    assert comment.created_at == comment.updated_at
    assert await comment_repo.get(comment.comment_id) == comment


@pytest.mark.asyncio
async def test_soft_delete_hides_reply_but_keeps_record(comment_repo, clock, store_config):
    top = await comment_repo.create(1, "Ada", "ada@example.com", "top")
    reply = await comment_repo.create(1, "Bob", "bob@example.com", "reply", parent_id=top.comment_id)

    assert await comment_repo.soft_delete(reply.comment_id) is True

    assert await comment_repo.list_replies(top.comment_id) == []
    assert [c.comment_id for c in await comment_repo.list_by_idea(1)] == [top.comment_id]
    stored = await comment_repo.get(reply.comment_id)
    assert stored.is_deleted is True
    assert (store_config.comments_dir / f"comment-{reply.comment_id}.json").exists()


@pytest.mark.asyncio
async def test_soft_delete_missing_comment(comment_repo):
    assert await comment_repo.soft_delete("does-not-exist") is False


@pytest.mark.asyncio
async def test_listing_orders(comment_repo, clock):
    first = await comment_repo.create(1, "Ada", "ada@example.com", "first")
    second = await comment_repo.create(1, "Ada", "ada@example.com", "second")
    other = await comment_repo.create(2, "Ada", "ada@example.com", "other idea")
    r1 = await comment_repo.create(1, "Bob", "bob@example.com", "r1", parent_id=first.comment_id)
    r2 = await comment_repo.create(1, "Bob", "bob@example.com", "r2", parent_id=first.comment_id)

    assert [c.content for c in await comment_repo.list_by_idea(1)] == ["r2", "r1", "second", "first"]
    assert [c.comment_id for c in await comment_repo.list_replies(first.comment_id)] == [
        r1.comment_id,
        r2.comment_id,
    ]
    assert [c.comment_id for c in await comment_repo.list_all()] == [
        r2.comment_id,
        r1.comment_id,
        other.comment_id,
        second.comment_id,
        first.comment_id,
    ]
    assert await comment_repo.count_for_idea(1) == 4
    assert await comment_repo.count_for_idea(2) == 1
    assert await comment_repo.count_for_idea(3) == 0


@pytest.mark.asyncio
async def test_update_merges_patch(comment_repo, clock):
    comment = await comment_repo.create(1, "Ada", "ada@example.com", "draft")

    updated = await comment_repo.update(comment.comment_id, {"content": "final", "isModerated": True})

    assert updated.content == "final"
    assert updated.is_moderated is True
    assert updated.author_name == "Ada"
    assert updated.updated_at > comment.updated_at
    assert updated.created_at == comment.created_at
    assert await comment_repo.get(comment.comment_id) == updated


@pytest.mark.asyncio
async def test_update_ignores_protected_fields(comment_repo, clock):
    comment = await comment_repo.create(1, "Ada", "ada@example.com", "draft")

    updated = await comment_repo.update(
        comment.comment_id,
        {"id": "other", "ideaId": 99, "createdAt": 5, "content": "edited"},
    )

    assert updated.comment_id == comment.comment_id
    assert updated.idea_id == 1
    assert updated.created_at == comment.created_at
    assert updated.content == "edited"


@pytest.mark.asyncio
async def test_update_refuses_deleted_comment(comment_repo, clock):
    comment = await comment_repo.create(1, "Ada", "ada@example.com", "draft")
    await comment_repo.soft_delete(comment.comment_id)

    assert await comment_repo.update(comment.comment_id, {"content": "again"}) is None
    assert (await comment_repo.get(comment.comment_id)).content == "draft"


@pytest.mark.asyncio
async def test_update_missing_comment(comment_repo):
    assert await comment_repo.update("nope", {"content": "x"}) is None


@pytest.mark.asyncio
async def test_reply_to_missing_parent_rejected(comment_repo):
    with pytest.raises(InvalidCommentError):
        await comment_repo.create(1, "Ada", "ada@example.com", "reply", parent_id="missing")


@pytest.mark.asyncio
async def test_reply_to_parent_of_other_idea_rejected(comment_repo, clock):
    foreign = await comment_repo.create(2, "Ada", "ada@example.com", "elsewhere")

    with pytest.raises(InvalidCommentError):
        await comment_repo.create(1, "Ada", "ada@example.com", "reply", parent_id=foreign.comment_id)
    assert await comment_repo.list_by_idea(1) == []


@pytest.mark.asyncio
async def test_parent_check_can_be_disabled(store_config, clock):
    repo = CommentRepository(
        DocumentCollection(store_config.comments_dir, "comment"),
        validate_parent=False,
    )

    reply = await repo.create(1, "Ada", "ada@example.com", "dangling", parent_id="missing")

    assert reply.parent_id == "missing"
    assert [c.comment_id for c in await repo.list_replies("missing")] == [reply.comment_id]


@pytest.mark.asyncio
async def test_unreadable_comment_is_skipped(comment_repo, clock, store_config):
    good = await comment_repo.create(1, "Ada", "ada@example.com", "fine")
    (store_config.comments_dir / "comment-bad.json").write_text("{", encoding="utf-8")
    (store_config.comments_dir / "comment-noidea.json").write_text(
        json.dumps({"id": "noidea", "content": "x"}), encoding="utf-8"
    )

    assert [c.comment_id for c in await comment_repo.list_by_idea(1)] == [good.comment_id]
    assert await comment_repo.get("bad") is None


@pytest.mark.asyncio
async def test_legacy_iso_timestamps(comment_repo, store_config):
    store_config.comments_dir.mkdir(parents=True)
    document = {
        "id": "legacy",
        "ideaId": "7",
        "parentId": None,
        "authorName": "Ada",
        "authorEmail": "ada@example.com",
        "content": "old",
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": "2024-01-01T00:00:00.000Z",
        "isModerated": False,
        "isDeleted": False,
    }
    (store_config.comments_dir / "comment-legacy.json").write_text(json.dumps(document), encoding="utf-8")

    comment = await comment_repo.get("legacy")
    assert comment.idea_id == 7
    assert comment.created_at == 1704067200000


@pytest.mark.asyncio
async def test_update_cannot_move_comment_to_other_parent(comment_repo, clock):
    mine = await comment_repo.create(1, "Ada", "ada@example.com", "mine")
    foreign = await comment_repo.create(2, "Bob", "bob@example.com", "elsewhere")

    updated = await comment_repo.update(mine.comment_id, {"parentId": foreign.comment_id, "content": "moved?"})

    assert updated.parent_id is None
    assert updated.content == "moved?"
    assert (await comment_repo.get(mine.comment_id)).parent_id is None
    assert await comment_repo.list_replies(foreign.comment_id) == []


@pytest.mark.asyncio
async def test_update_ignores_supplied_timestamp(comment_repo, clock):
    comment = await comment_repo.create(1, "Ada", "ada@example.com", "draft")

    updated = await comment_repo.update(comment.comment_id, {"updatedAt": "not a date", "content": "edited"})

    assert updated.content == "edited"
    assert updated.updated_at > comment.updated_at


@pytest.mark.asyncio
async def test_same_millisecond_comments_keep_creation_order(comment_repo, monkeypatch):
    monkeypatch.setattr("ideastore.comments.now_ms", lambda: 1_700_000_000_000)
    top = await comment_repo.create(1, "Ada", "ada@example.com", "top")
    replies = [
        await comment_repo.create(1, "Bob", "bob@example.com", f"r{n}", parent_id=top.comment_id)
        for n in range(8)
    ]
    expected = [r.comment_id for r in replies]

    assert [c.comment_id for c in await comment_repo.list_replies(top.comment_id)] == expected
    newest_first = [c.comment_id for c in await comment_repo.list_by_idea(1)]
    assert newest_first == list(reversed(expected)) + [top.comment_id]
    assert [c.comment_id for c in await comment_repo.list_all()] == newest_first
