"""Tests for the ideas service."""
import asyncio
from dataclasses import replace

import pytest

from ideastore.audit import AuditAction
from ideastore.comments import InvalidCommentError
from ideastore.models import IdeaStatus
from ideastore.service import IdeasService


async def _submit(service, title="Idea", **kwargs):
    kwargs.setdefault("description", f"About {title}")
    return await service.submit_idea(title=title, **kwargs)


# ===== Ideas =====


@pytest.mark.asyncio
async def test_submit_applies_defaults(service, clock):
    idea = await _submit(service, "Dark mode")

    assert idea.idea_id == 1
    assert idea.category == "General"
    assert idea.source == "General"
    assert idea.author_name == "Anonymous"
    assert idea.status is IdeaStatus.SUBMITTED
    assert idea.vote_count == 0
    assert idea.created_at == idea.updated_at
    assert await service.get_idea(1) == idea


@pytest.mark.asyncio
@pytest.mark.parametrize("title,description", [("", "text"), ("Title", ""), ("   ", "text")])
async def test_submit_requires_title_and_description(service, title, description):
    with pytest.raises(ValueError):
        await service.submit_idea(title=title, description=description)
    assert await service.list_ideas() == []


@pytest.mark.asyncio
async def test_submit_refreshes_total(service, clock):
    await _submit(service, "One")
    await _submit(service, "Two")

    meta = await service.ideas.metadata.read()
    assert meta.total_ideas == 2
    assert meta.next_id == 3


@pytest.mark.asyncio
async def test_list_filters(service, clock):
    await _submit(service, "Mobile app", category="Product", source="Workshop", tags=["mobile", "ux"])
    await _submit(service, "Faster builds", category="Engineering", tags=["ci"])
    await _submit(service, "Offline mode", description="Works on the MOBILE train", category="Product")

    assert [i.title for i in await service.list_ideas(category="Product")] == ["Offline mode", "Mobile app"]
    assert [i.title for i in await service.list_ideas(source="Workshop")] == ["Mobile app"]
    assert [i.title for i in await service.list_ideas(tags=["ci", "nothing"])] == ["Faster builds"]
    assert [i.title for i in await service.list_ideas(search="mobile")] == ["Offline mode", "Mobile app"]
    assert await service.list_ideas(status="approved") == []


@pytest.mark.asyncio
async def test_list_sorting(service, clock):
    first = await _submit(service, "First")
    second = await _submit(service, "Second")
    third = await _submit(service, "Third")
    await service.toggle_vote(second.idea_id, "u1")
    await service.toggle_vote(second.idea_id, "u2")
    await service.toggle_vote(first.idea_id, "u1")

    newest = await service.list_ideas()
    assert [i.idea_id for i in newest] == [third.idea_id, second.idea_id, first.idea_id]
    oldest = await service.list_ideas(sort_by="oldest")
    assert [i.idea_id for i in oldest] == [first.idea_id, second.idea_id, third.idea_id]
    voted = await service.list_ideas(sort_by="most_voted")
    assert [i.idea_id for i in voted] == [second.idea_id, first.idea_id, third.idea_id]
    assert [i.idea_id for i in await service.list_ideas(sort_by="bogus")] == [i.idea_id for i in newest]


@pytest.mark.asyncio
async def test_update_preserves_immutable_fields(service, clock):
    idea = await _submit(service, "Original")
    await service.toggle_vote(idea.idea_id, "u1")

    updated = await service.update_idea(
        idea.idea_id,
        {"title": "Renamed", "id": 99, "createdAt": 1, "voteCount": 50, "status": "nonsense"},
        user_id="reviewer@example.com",
    )

    assert updated.idea_id == idea.idea_id
    assert updated.title == "Renamed"
    assert updated.created_at == idea.created_at
    assert updated.vote_count == 1
    assert updated.status is IdeaStatus.SUBMITTED
    assert updated.updated_by == "reviewer@example.com"
    assert updated.updated_at > idea.updated_at
    assert await service.get_idea(idea.idea_id) == updated


@pytest.mark.asyncio
async def test_update_missing_idea(service):
    assert await service.update_idea(7, {"title": "x"}) is None


@pytest.mark.asyncio
async def test_set_status(service, clock):
    idea = await _submit(service)

    moved = await service.set_status(idea.idea_id, "under_review", user_id="lead")

    assert moved.status is IdeaStatus.UNDER_REVIEW
    with pytest.raises(ValueError):
        await service.set_status(idea.idea_id, "declined")
    with pytest.raises(ValueError):
        await service.set_status(idea.idea_id, "unknown")


@pytest.mark.asyncio
async def test_update_internal(service, clock):
    idea = await _submit(service)

    updated = await service.update_internal(
        idea.idea_id,
        estimated_effort="8",
        detailed_requirements="Needs SSO",
        features=["login"],
    )

    assert updated.estimated_effort == "8"
    assert updated.effort_unit == "story_points"
    assert updated.detailed_requirements == "Needs SSO"
    assert updated.features == ["login"]
    assert updated.use_cases == []
    assert updated.title == idea.title


@pytest.mark.asyncio
async def test_delete_idea(service, clock):
    keep = await _submit(service, "Keep")
    drop = await _submit(service, "Drop")
    await service.toggle_vote(drop.idea_id, "u1")

    assert await service.delete_idea(drop.idea_id) is True
    assert await service.get_idea(drop.idea_id) is None
    assert await service.votes.has_voted(drop.idea_id, "u1") is False
    assert (await service.ideas.metadata.read()).total_ideas == 1
    assert [i.idea_id for i in await service.list_ideas()] == [keep.idea_id]
    assert await service.delete_idea(drop.idea_id) is False

    replacement = await _submit(service, "After delete")
    assert replacement.idea_id == 3


@pytest.mark.asyncio
async def test_stats_categories_sources_tags(service, clock):
    a = await _submit(service, "A", category="Product", source="Survey", tags=["ux", "mobile"])
    await _submit(service, "B", category="Engineering", tags=["ux"])
    c = await _submit(service, "C", category="Product", tags=["api"])
    await service.set_status(c.idea_id, "approved")
    await service.toggle_vote(a.idea_id, "u1")
    await service.toggle_vote(a.idea_id, "u2")

    stats = await service.get_stats()
    assert stats.to_dict() == {
        "totalIdeas": 3,
        "totalVotes": 2,
        "ideasByStatus": {"submitted": 2, "approved": 1},
    }
    assert await service.get_categories() == ["Engineering", "Product"]
    assert await service.get_sources() == ["General", "Survey"]
    assert await service.get_tags() == ["api", "mobile", "ux"]
    assert await service.get_tag_counts() == [
        {"tag": "ux", "count": 2},
        {"tag": "api", "count": 1},
        {"tag": "mobile", "count": 1},
    ]


# ===== Votes =====


@pytest.mark.asyncio
async def test_toggle_vote_on_missing_idea(service):
    assert await service.toggle_vote(5, "u1") is None


@pytest.mark.asyncio
async def test_toggle_vote_result(service, clock):
    idea = await _submit(service)

    result = await service.toggle_vote(idea.idea_id, "u1")

    assert result.to_dict() == {"ideaId": idea.idea_id, "voteCount": 1, "didVote": True}


# ===== Comments =====


@pytest.mark.asyncio
async def test_add_comment_validation(service, clock):
    idea = await _submit(service)

    with pytest.raises(InvalidCommentError):
        await service.add_comment(idea.idea_id, "", "ada@example.com", "text")
    with pytest.raises(InvalidCommentError):
        await service.add_comment(idea.idea_id, "Ada", " ", "text")
    with pytest.raises(InvalidCommentError):
        await service.add_comment(idea.idea_id, "Ada", "ada@example.com", "   ")
    assert await service.add_comment(99, "Ada", "ada@example.com", "text") is None


@pytest.mark.asyncio
async def test_add_comment_trims_input(service, clock):
    idea = await _submit(service)

    comment = await service.add_comment(idea.idea_id, " Ada ", " ada@example.com ", "  hello  ")

    assert comment.author_name == "Ada"
    assert comment.author_email == "ada@example.com"
    assert comment.content == "hello"


@pytest.mark.asyncio
async def test_reply_to_foreign_parent_rejected(service, clock):
    one = await _submit(service, "One")
    two = await _submit(service, "Two")
    top = await service.add_comment(one.idea_id, "Ada", "ada@example.com", "top")

    with pytest.raises(InvalidCommentError):
        await service.add_comment(two.idea_id, "Bob", "bob@example.com", "reply", parent_id=top.comment_id)


@pytest.mark.asyncio
async def test_edit_comment_permissions(service, clock):
    idea = await _submit(service)
    comment = await service.add_comment(idea.idea_id, "Ada", "ada@example.com", "draft")

    with pytest.raises(PermissionError):
        await service.edit_comment(comment.comment_id, "hijacked", "eve@example.com")

    edited = await service.edit_comment(comment.comment_id, " final ", "ada@example.com")
    assert edited.content == "final"
    assert await service.edit_comment("missing", "x", "ada@example.com") is None


@pytest.mark.asyncio
async def test_remove_comment_permissions(service, clock):
    idea = await _submit(service)
    mine = await service.add_comment(idea.idea_id, "Ada", "ada@example.com", "mine")
    other = await service.add_comment(idea.idea_id, "Bob", "bob@example.com", "other")

    with pytest.raises(PermissionError):
        await service.remove_comment(other.comment_id, "ada@example.com")

    assert await service.remove_comment(mine.comment_id, "ada@example.com") is True
    assert await service.remove_comment(other.comment_id, is_admin=True) is True
    assert await service.remove_comment("missing", is_admin=True) is False
    assert await service.edit_comment(mine.comment_id, "again", "ada@example.com") is None
    assert (await service.get_comment_threads(idea.idea_id)).total_count == 0


@pytest.mark.asyncio
async def test_moderate_comment(service, clock):
    idea = await _submit(service)
    comment = await service.add_comment(idea.idea_id, "Ada", "ada@example.com", "spam?")

    moderated = await service.moderate_comment(comment.comment_id, True)

    assert moderated.is_moderated is True
    assert moderated.content == "spam?"
    assert await service.moderate_comment("missing", True) is None


@pytest.mark.asyncio
async def test_comment_threads_response(service, clock):
    idea = await _submit(service)
    first = await service.add_comment(idea.idea_id, "Ada", "ada@example.com", "first")
    second = await service.add_comment(idea.idea_id, "Bob", "bob@example.com", "second")
    reply = await service.add_comment(idea.idea_id, "Cy", "cy@example.com", "reply", parent_id=first.comment_id)

    response = (await service.get_comment_threads(idea.idea_id)).to_dict()

    assert response["total"] == 3
    assert [c["id"] for c in response["comments"]] == [second.comment_id, first.comment_id]
    assert [r["id"] for r in response["comments"][1]["replies"]] == [reply.comment_id]

    thread = await service.get_comment_thread(first.comment_id)
    assert [c.comment_id for c in thread.walk()] == [first.comment_id, reply.comment_id]


@pytest.mark.asyncio
async def test_comment_counts_and_listing(service, clock):
    one = await _submit(service, "One")
    two = await _submit(service, "Two")
    await service.add_comment(one.idea_id, "Ada", "ada@example.com", "a")
    await service.add_comment(one.idea_id, "Ada", "ada@example.com", "b")
    last = await service.add_comment(two.idea_id, "Ada", "ada@example.com", "c")

    assert await service.get_comment_counts([one.idea_id, two.idea_id, 77]) == {
        one.idea_id: 2,
        two.idea_id: 1,
        77: 0,
    }
    comments = await service.list_all_comments()
    assert len(comments) == 3
    assert comments[0].comment_id == last.comment_id


# ===== Audit =====


@pytest.mark.asyncio
async def test_audit_trail(service, clock):
    idea = await _submit(service, author_email="ada@example.com")
    await service.set_status(idea.idea_id, "approved", user_id="lead@example.com")
    await service.update_idea(idea.idea_id, {"title": "Better"}, user_id="lead@example.com")
    await service.toggle_vote(idea.idea_id, "u1")
    await service.add_comment(idea.idea_id, "Ada", "ada@example.com", "note")

    trail = await service.audit_logger.get_audit_trail(idea.idea_id)
    assert {entry.action for entry in trail} == {
        AuditAction.CREATE,
        AuditAction.STATUS_CHANGE,
        AuditAction.UPDATE,
        AuditAction.VOTE_ADDED,
        AuditAction.COMMENT_ADDED,
    }
    status_entry = next(e for e in trail if e.action is AuditAction.STATUS_CHANGE)
    assert status_entry.changes == {"status": {"old": "submitted", "new": "approved"}}
    update_entry = next(e for e in trail if e.action is AuditAction.UPDATE)
    assert update_entry.changes["title"] == {"old": "Idea", "new": "Better"}

    activity = await service.audit_logger.get_user_activity("lead@example.com")
    assert len(activity) == 2


# ===== Concurrency and edge cases =====


@pytest.mark.asyncio
async def test_edit_and_vote_on_same_idea_both_survive(service, clock):
    """Concurrent edits and votes on one idea do not overwrite each other."""
    for run in range(6):
        idea = await _submit(service, "T")

        await asyncio.gather(
            service.update_idea(idea.idea_id, {"title": "T2"}),
            service.toggle_vote(idea.idea_id, f"u{run}"),
        )

        stored = await service.get_idea(idea.idea_id)
        assert stored.title == "T2"
        assert stored.vote_count == 1


@pytest.mark.asyncio
async def test_update_with_invalid_shape_is_rejected(service, clock):
    idea = await _submit(service, "Shape")

    assert await service.update_idea(idea.idea_id, {"tags": 5}) is None
    assert await service.get_idea(idea.idea_id) == idea

    updated = await service.update_idea(idea.idea_id, {"updatedAt": "not a date", "title": "Still fine"})
    assert updated.title == "Still fine"
    assert updated.updated_at > idea.updated_at


@pytest.mark.asyncio
async def test_status_variants_are_normalized(service, clock):
    idea = await _submit(service)

    moved = await service.set_status(idea.idea_id, "Under Review")
    assert moved.status is IdeaStatus.UNDER_REVIEW

    updated = await service.update_idea(idea.idea_id, {"status": "In Progress"})
    assert updated.status is IdeaStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_replies_down_to_max_depth_are_shown(service, clock):
    idea = await _submit(service)
    root = await service.add_comment(idea.idea_id, "Ada", "ada@example.com", "root")
    parent = root
    for level in (1, 2, 3):
        parent = await service.add_comment(
            idea.idea_id, "Ada", "ada@example.com", f"level{level}", parent_id=parent.comment_id
        )

    response = await service.get_comment_threads(idea.idea_id)

    [thread] = response.threads
    assert [c.content for c in thread.walk()] == ["root", "level1", "level2", "level3"]
    assert response.total_count == 4
    with pytest.raises(InvalidCommentError):
        await service.add_comment(idea.idea_id, "Ada", "ada@example.com", "level4", parent_id=parent.comment_id)


@pytest.mark.asyncio
async def test_add_attachments_appends_in_order(service, clock):
    existing = {"filename": "a.pdf", "url": "/uploads/a.pdf"}
    idea = await _submit(service, attachments=[existing])
    added = [
        {"filename": "b.png", "url": "/uploads/b.png"},
        {"filename": "c.txt", "url": "/uploads/c.txt"},
    ]

    updated = await service.add_attachments(idea.idea_id, added, user_id="ada@example.com")

    assert updated.attachments == [existing, *added]
    assert updated.updated_at > idea.updated_at
    assert (await service.get_idea(idea.idea_id)).attachments == [existing, *added]
    assert await service.add_attachments(99, added) is None
    with pytest.raises(ValueError):
        await service.add_attachments(idea.idea_id, [])


@pytest.mark.asyncio
async def test_maintenance_follows_config(store_config):
    disabled = IdeasService.from_config(store_config)
    assert disabled.start_maintenance() is None

    enabled = IdeasService.from_config(
        replace(store_config, scheduler_enabled=True, total_refresh_minutes=7)
    )
    scheduler = enabled.start_maintenance()
    try:
        assert scheduler.running is True
        assert scheduler.refresh_minutes == 7
        assert scheduler.votes is enabled.votes
        assert sorted(scheduler.job_ids()) == ["ideas_total_refresh", "nightly_vote_reconcile"]
    finally:
        enabled.stop_maintenance()

    assert scheduler.running is False
    assert enabled.scheduler is None
