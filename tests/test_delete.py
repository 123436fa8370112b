"""Tests for delete preview and delete."""


def _setup(store):
    from beadwork_core import create_issue, link_issues

    upstream = create_issue(store, "Upstream")
    victim = create_issue(store, "Victim")
    downstream = create_issue(store, "Downstream")
    child = create_issue(store, "Child", parent=victim.id)
    link_issues(store, upstream.id, victim.id)
    link_issues(store, victim.id, downstream.id)
    return upstream, victim, downstream, child


def test_delete_preview_does_not_mutate(store):
    """Preview should describe the plan and leave everything in place."""
    from beadwork_core import delete_preview

    upstream, victim, downstream, child = _setup(store)

    plan = delete_preview(store, victim.id)

    assert plan.issue.id == victim.id
    assert plan.blocks == [downstream.id]
    assert plan.blocked_by == [upstream.id]
    assert plan.children == [child.id]
    assert store.has_issue(victim.id)
    assert store.read_issue(downstream.id).blocked_by == [victim.id]


def test_delete_executes_exactly_the_preview(store):
    """Delete should sever the previewed edges and orphan the previewed children."""
    from beadwork_core import delete_issue, delete_preview

    upstream, victim, downstream, child = _setup(store)

    preview = delete_preview(store, victim.id)
    plan = delete_issue(store, victim.id)

    assert plan.to_dict() == preview.to_dict()
    assert not store.has_issue(victim.id)
    assert store.read_issue(upstream.id).blocks == []
    assert store.read_issue(downstream.id).blocked_by == []
    assert store.read_issue(child.id).parent == ""
    assert not (store.root / "blocks" / victim.id).exists()
    assert not (store.root / "blocks" / upstream.id / victim.id).exists()
    assert not (store.root / "parent" / victim.id).exists()
    assert not (store.root / "status" / "open" / victim.id).exists()


def test_delete_unknown_issue(store):
    import pytest

    from beadwork_core import NotFoundError, delete_issue

    with pytest.raises(NotFoundError):
        delete_issue(store, "test-nope")
