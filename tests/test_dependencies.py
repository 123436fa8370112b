"""Tests for blocking dependencies and graph queries."""

import pytest


def _edge_consistent(store):
    """Every blocks entry has its mirror and its marker, and vice versa."""
    issues = {i.id: i for i in store.all_issues()}
    for issue in issues.values():
        for blocked_id in issue.blocks:
            if issue.id not in issues[blocked_id].blocked_by:
                return False
            if not (store.root / "blocks" / issue.id / blocked_id).exists():
                return False
        for blocker_id in issue.blocked_by:
            if issue.id not in issues[blocker_id].blocks:
                return False
    return True


def test_link_maintains_mirror_and_marker(store):
    """Linking should update both records and the edge index."""
    from beadwork_core import create_issue, link_issues

    a = create_issue(store, "A")
    b = create_issue(store, "B")

    link_issues(store, a.id, b.id)

    assert store.read_issue(a.id).blocks == [b.id]
    assert store.read_issue(b.id).blocked_by == [a.id]
    assert (store.root / "blocks" / a.id / b.id).exists()
    assert _edge_consistent(store)


def test_link_is_idempotent(store):
    from beadwork_core import create_issue, link_issues

    a = create_issue(store, "A")
    b = create_issue(store, "B")

    link_issues(store, a.id, b.id)
    before = store.read_issue(a.id)
    link_issues(store, a.id, b.id)

    assert store.read_issue(a.id) == before


def test_link_rejects_self(store):
    from beadwork_core import ValidationError, create_issue, link_issues

    a = create_issue(store, "A")

    with pytest.raises(ValidationError):
        link_issues(store, a.id, a.id)


def test_unlink_removes_mirror_and_marker(store):
    from beadwork_core import create_issue, link_issues, unlink_issues

    a = create_issue(store, "A")
    b = create_issue(store, "B")
    link_issues(store, a.id, b.id)

    unlink_issues(store, a.id, b.id)
    unlink_issues(store, a.id, b.id)

    assert store.read_issue(a.id).blocks == []
    assert store.read_issue(b.id).blocked_by == []
    assert not (store.root / "blocks" / a.id).exists()
    assert _edge_consistent(store)


def test_ready_and_blocked_are_disjoint(store):
    """No issue should be both ready and blocked."""
    from beadwork_core import create_issue, get_blocked, get_ready, link_issues

    a = create_issue(store, "A")
    b = create_issue(store, "B")
    c = create_issue(store, "C")
    link_issues(store, a.id, b.id)
    link_issues(store, b.id, c.id)

    ready_ids = {i.id for i in get_ready(store)}
    blocked_ids = {entry.issue.id for entry in get_blocked(store)}

    assert ready_ids == {a.id}
    assert blocked_ids == {b.id, c.id}
    assert not ready_ids & blocked_ids


def test_closing_blocker_cascades(store):
    """A blocks B: closing A makes B ready and reports it as newly unblocked."""
    from beadwork_core import (
        close_issue,
        create_issue,
        get_blocked,
        get_ready,
        link_issues,
        newly_unblocked,
    )

    a = create_issue(store, "A")
    b = create_issue(store, "B")
    link_issues(store, a.id, b.id)

    assert [entry.open_blockers for entry in get_blocked(store)] == [[a.id]]

    close_issue(store, a.id)

    assert [i.id for i in get_ready(store)] == [b.id]
    assert [i.id for i in newly_unblocked(store, a.id)] == [b.id]
    assert get_blocked(store) == []


def test_newly_unblocked_ignores_still_blocked(store):
    from beadwork_core import close_issue, create_issue, link_issues, newly_unblocked

    a = create_issue(store, "A")
    b = create_issue(store, "B")
    c = create_issue(store, "C")
    link_issues(store, a.id, c.id)
    link_issues(store, b.id, c.id)

    close_issue(store, a.id)

    assert newly_unblocked(store, a.id) == []


def test_in_progress_with_open_blocker_is_blocked(store):
    from beadwork_core import create_issue, get_blocked, link_issues, start_issue

    a = create_issue(store, "A")
    b = create_issue(store, "B")
    start_issue(store, b.id, "alice")
    link_issues(store, a.id, b.id)

    assert [entry.issue.id for entry in get_blocked(store)] == [b.id]


def test_get_graph_from_root_follows_blocks(store):
    from beadwork_core import create_issue, get_graph, link_issues

    a = create_issue(store, "A", issue_id="test-a")
    b = create_issue(store, "B", issue_id="test-b")
    c = create_issue(store, "C", issue_id="test-c")
    create_issue(store, "Unrelated", issue_id="test-z")
    link_issues(store, a.id, b.id)
    link_issues(store, b.id, c.id)

    assert [n.id for n in get_graph(store, b.id)] == ["test-b", "test-c"]
    assert [n.id for n in get_graph(store)] == ["test-a", "test-b", "test-c", "test-z"]


def test_get_graph_tolerates_cycles(store):
    from beadwork_core import create_issue, get_graph, link_issues

    a = create_issue(store, "A")
    b = create_issue(store, "B")
    link_issues(store, a.id, b.id)
    link_issues(store, b.id, a.id)

    assert {n.id for n in get_graph(store, a.id)} == {a.id, b.id}


def test_nearest_open_blockers_walks_through_closed(store):
    """Closed blockers should be replaced by their own open blockers."""
    from beadwork_core import close_issue, create_issue, link_issues, nearest_open_blockers

    root = create_issue(store, "Root cause")
    middle = create_issue(store, "Middle")
    direct = create_issue(store, "Direct")
    target = create_issue(store, "Target")
    link_issues(store, root.id, middle.id)
    link_issues(store, middle.id, target.id)
    link_issues(store, direct.id, target.id)
    close_issue(store, middle.id)

    assert sorted(nearest_open_blockers(store, target.id)) == sorted([root.id, direct.id])


def test_nearest_open_blockers_deduplicates_and_survives_cycles(store):
    from beadwork_core import close_issue, create_issue, link_issues, nearest_open_blockers

    shared = create_issue(store, "Shared")
    left = create_issue(store, "Left")
    right = create_issue(store, "Right")
    target = create_issue(store, "Target")
    link_issues(store, shared.id, left.id)
    link_issues(store, shared.id, right.id)
    link_issues(store, left.id, target.id)
    link_issues(store, right.id, target.id)
    link_issues(store, left.id, right.id)
    link_issues(store, right.id, left.id)
    close_issue(store, left.id)
    close_issue(store, right.id)

    assert nearest_open_blockers(store, target.id) == [shared.id]
