"""Tests for issue CRUD and lifecycle operations."""

import json

import pytest


def test_create_issue_defaults(store):
    """Should create an open task at priority 2 with matching timestamps."""
    from beadwork_core import create_issue

    issue = create_issue(store, "Fix login")

    assert issue.id.startswith("test-")
    assert issue.status == "open"
    assert issue.priority == 2
    assert issue.type == "task"
    assert issue.created.endswith("Z")
    assert issue.updated_at == issue.created


def test_create_issue_writes_record_and_status_marker(store):
    """Should write issues/<id>.json and status/open/<id> together."""
    from beadwork_core import create_issue

    issue = create_issue(store, "Fix login", description="details")

    record = json.loads((store.root / "issues" / f"{issue.id}.json").read_text())
    assert record["title"] == "Fix login"
    assert record["description"] == "details"
    assert (store.root / "status" / "open" / issue.id).exists()


def test_create_issue_uses_store_default_priority(store):
    from beadwork_core import create_issue

    store.default_priority = 1

    assert create_issue(store, "Urgent-ish").priority == 1
    assert create_issue(store, "Explicit", priority=4).priority == 4


@pytest.mark.parametrize("priority", [-1, 5])
def test_create_issue_rejects_out_of_range_priority(store, priority):
    from beadwork_core import ValidationError, create_issue

    with pytest.raises(ValidationError, match="Priority"):
        create_issue(store, "Bad", priority=priority)


def test_create_issue_rejects_empty_title(store):
    from beadwork_core import ValidationError, create_issue

    with pytest.raises(ValidationError):
        create_issue(store, "   ")


def test_create_issue_with_defer_starts_deferred(store):
    """Supplying a defer date should create the issue deferred."""
    from beadwork_core import create_issue

    issue = create_issue(store, "Later", defer_until="2030-01-15")

    assert issue.status == "deferred"
    assert issue.defer_until == "2030-01-15"
    assert (store.root / "status" / "deferred" / issue.id).exists()


def test_create_issue_with_invalid_defer_date(store):
    from beadwork_core import ValidationError, create_issue

    with pytest.raises(ValidationError):
        create_issue(store, "Later", defer_until="2030-02-30")


def test_create_child_issue_gets_hierarchical_id(store):
    """Children should be numbered under their parent."""
    from beadwork_core import create_issue, get_children

    parent = create_issue(store, "Epic")
    first = create_issue(store, "Part one", parent=parent.id)
    second = create_issue(store, "Part two", parent=parent.id)

    assert first.id == f"{parent.id}.1"
    assert second.id == f"{parent.id}.2"
    assert [c.id for c in get_children(store, parent.id)] == [first.id, second.id]


def test_create_issue_with_explicit_id(store):
    from beadwork_core import ValidationError, create_issue

    issue = create_issue(store, "Pinned", issue_id="test-fixed")
    assert issue.id == "test-fixed"

    with pytest.raises(ValidationError, match="already exists"):
        create_issue(store, "Again", issue_id="test-fixed")


def test_get_issue_resolves_partial_ids(store):
    """Should resolve unique suffixes and report ambiguity."""
    from beadwork_core import AmbiguousIDError, NotFoundError, create_issue, get_issue

    create_issue(store, "One", issue_id="test-abc")
    create_issue(store, "Two", issue_id="test-abd")

    assert get_issue(store, "abc").title == "One"
    assert get_issue(store, "test-abd").title == "Two"
    with pytest.raises(AmbiguousIDError):
        get_issue(store, "test-ab")
    with pytest.raises(NotFoundError):
        get_issue(store, "zzz")


def test_list_issues_default_hides_deferred_and_closed(store):
    from beadwork_core import close_issue, create_issue, list_issues

    open_issue = create_issue(store, "Open")
    create_issue(store, "Deferred", defer_until="2030-01-01")
    done = create_issue(store, "Done")
    close_issue(store, done.id)

    assert [i.id for i in list_issues(store)] == [open_issue.id]
    assert len(list_issues(store, statuses=["open", "deferred", "closed", "in_progress"])) == 3


def test_list_issues_sorted_by_priority_then_created(store):
    from beadwork_core import create_issue, list_issues

    low = create_issue(store, "Low", priority=3)
    first_high = create_issue(store, "High A", priority=1)
    second_high = create_issue(store, "High B", priority=1)

    ordered = [i.id for i in list_issues(store)]
    assert set(ordered[:2]) == {first_high.id, second_high.id}
    assert ordered[2] == low.id


def test_list_issues_filters(store):
    """Should filter by assignee, type, label and text."""
    from beadwork_core import create_issue, label_issue, list_issues

    bug = create_issue(store, "Crash on save", type="bug", assignee="alice")
    create_issue(store, "Write docs", description="mention SAVE button")
    label_issue(store, bug.id, add=["urgent"])

    assert [i.id for i in list_issues(store, assignee="alice")] == [bug.id]
    assert [i.id for i in list_issues(store, type="bug")] == [bug.id]
    assert [i.id for i in list_issues(store, label="urgent")] == [bug.id]
    assert len(list_issues(store, grep="save")) == 2


def test_list_issues_rejects_unknown_status(store):
    from beadwork_core import ValidationError, list_issues

    with pytest.raises(ValidationError):
        list_issues(store, statuses=["blocked"])


def test_update_issue_changes_only_supplied_fields(store):
    from beadwork_core import create_issue, update_issue

    issue = create_issue(store, "Original", description="keep me", priority=3)

    updated = update_issue(store, issue.id, title="Renamed", assignee="bob")

    assert updated.title == "Renamed"
    assert updated.assignee == "bob"
    assert updated.description == "keep me"
    assert updated.priority == 3
    assert updated.updated_at >= issue.updated_at


def test_update_defer_until_implies_deferred(store):
    """Supplying defer_until without status should defer the issue."""
    from beadwork_core import create_issue, update_issue

    issue = create_issue(store, "Later")
    updated = update_issue(store, issue.id, defer_until="2030-06-01")

    assert updated.status == "deferred"
    assert updated.defer_until == "2030-06-01"
    assert (store.root / "status" / "deferred" / issue.id).exists()
    assert not (store.root / "status" / "open" / issue.id).exists()


def test_update_clearing_defer_until_reopens(store):
    from beadwork_core import create_issue, update_issue

    issue = create_issue(store, "Later", defer_until="2030-06-01")
    updated = update_issue(store, issue.id, defer_until="")

    assert updated.status == "open"
    assert updated.defer_until == ""


def test_leaving_deferred_clears_defer_until(store):
    from beadwork_core import create_issue, update_issue

    issue = create_issue(store, "Later", defer_until="2030-06-01")
    updated = update_issue(store, issue.id, status="open")

    assert updated.defer_until == ""


def test_in_progress_cannot_be_deferred(store):
    from beadwork_core import (
        InvalidStateTransitionError,
        create_issue,
        defer_issue,
        start_issue,
    )

    issue = create_issue(store, "Busy")
    start_issue(store, issue.id, "alice")

    with pytest.raises(InvalidStateTransitionError):
        defer_issue(store, issue.id, "2030-01-01")


def test_update_parent_rejects_cycle(store):
    from beadwork_core import CycleError, create_issue, update_issue

    parent = create_issue(store, "Parent")
    child = create_issue(store, "Child", parent=parent.id)

    with pytest.raises(CycleError):
        update_issue(store, parent.id, parent=child.id)


def test_update_parent_moves_parent_marker(store):
    from beadwork_core import create_issue, get_children, update_issue

    old_parent = create_issue(store, "Old")
    new_parent = create_issue(store, "New")
    child = create_issue(store, "Child", parent=old_parent.id)

    update_issue(store, child.id, parent=new_parent.id)

    assert get_children(store, old_parent.id) == []
    assert [c.id for c in get_children(store, new_parent.id)] == [child.id]


def test_close_issue_records_reason(store):
    from beadwork_core import close_issue, create_issue

    issue = create_issue(store, "Done soon")
    closed = close_issue(store, issue.id, reason="shipped")

    assert closed.status == "closed"
    assert closed.close_reason == "shipped"
    assert closed.closed_at
    assert (store.root / "status" / "closed" / issue.id).exists()
    assert not (store.root / "status" / "open" / issue.id).exists()


def test_close_issue_twice_fails(store):
    from beadwork_core import InvalidStateTransitionError, close_issue, create_issue

    issue = create_issue(store, "Once")
    close_issue(store, issue.id)

    with pytest.raises(InvalidStateTransitionError):
        close_issue(store, issue.id)


def test_reopen_closed_issue_clears_close_fields(store):
    from beadwork_core import close_issue, create_issue, reopen_issue

    issue = create_issue(store, "Again")
    close_issue(store, issue.id, reason="oops")
    reopened = reopen_issue(store, issue.id)

    assert reopened.status == "open"
    assert reopened.closed_at == ""
    assert reopened.close_reason == ""


def test_reopen_in_progress_clears_assignee(store):
    from beadwork_core import create_issue, reopen_issue, start_issue

    issue = create_issue(store, "Claimed")
    start_issue(store, issue.id, "alice")
    reopened = reopen_issue(store, issue.id)

    assert reopened.status == "open"
    assert reopened.assignee == ""


def test_reopen_open_issue_fails(store):
    from beadwork_core import InvalidStateTransitionError, create_issue, reopen_issue

    issue = create_issue(store, "Already open")

    with pytest.raises(InvalidStateTransitionError):
        reopen_issue(store, issue.id)


def test_start_issue_sets_assignee_and_status(store):
    from beadwork_core import create_issue, start_issue

    issue = create_issue(store, "Work", defer_until="2030-01-01")
    started = start_issue(store, issue.id, "alice")

    assert started.status == "in_progress"
    assert started.assignee == "alice"
    assert started.defer_until == ""


def test_start_issue_blocked_lists_open_blockers(store):
    """Start should fail with every blocker that is not closed."""
    from beadwork_core import BlockedError, close_issue, create_issue, link_issues, start_issue

    a = create_issue(store, "A")
    b = create_issue(store, "B")
    c = create_issue(store, "C")
    link_issues(store, a.id, c.id)
    link_issues(store, b.id, c.id)
    close_issue(store, b.id)

    with pytest.raises(BlockedError) as excinfo:
        start_issue(store, c.id, "alice")

    assert excinfo.value.issue_id == c.id
    assert excinfo.value.blockers == [a.id]


def test_undefer_requires_deferred(store):
    from beadwork_core import InvalidStateTransitionError, create_issue, undefer_issue

    issue = create_issue(store, "Now")

    with pytest.raises(InvalidStateTransitionError):
        undefer_issue(store, issue.id)


def test_label_issue_has_set_semantics(store):
    """Labels should stay sorted and deduplicated with index markers in step."""
    from beadwork_core import create_issue, label_issue

    issue = create_issue(store, "Labelled")
    label_issue(store, issue.id, add=["ui", "bug", "ui"])
    updated = label_issue(store, issue.id, add=["perf"], remove=["ui"])

    assert updated.labels == ["bug", "perf"]
    assert (store.root / "labels" / "bug" / issue.id).exists()
    assert not (store.root / "labels" / "ui").exists()


def test_label_issue_rejects_bad_labels(store):
    from beadwork_core import ValidationError, create_issue, label_issue

    issue = create_issue(store, "Labelled")

    with pytest.raises(ValidationError):
        label_issue(store, issue.id, add=["two words"])


def test_import_issue_replaces_record_and_indexes(store):
    """Import should upsert the raw record and rewrite its markers."""
    from beadwork_core import Issue, create_issue, import_issue

    issue = create_issue(store, "Original")
    imported = Issue(
        id=issue.id,
        title="Imported",
        status="closed",
        priority=0,
        labels=["b", "a", "a"],
        created="2024-01-01T00:00:00Z",
    )
    import_issue(store, imported)

    reread = store.read_issue(issue.id)
    assert reread.title == "Imported"
    assert reread.labels == ["a", "b"]
    assert (store.root / "status" / "closed" / issue.id).exists()
    assert not (store.root / "status" / "open" / issue.id).exists()
    assert (store.root / "labels" / "a" / issue.id).exists()
    assert issue.id in store.existing_ids()


@pytest.mark.parametrize(
    "overrides",
    [{"priority": 7}, {"priority": -1}, {"blocks": ["test-imp"]}, {"blocked_by": ["test-imp"]}],
)
def test_import_issue_rejects_invalid_records(store, overrides):
    """Import should refuse out-of-range priorities and self-edges."""
    from beadwork_core import Issue, ValidationError, import_issue

    with pytest.raises(ValidationError):
        import_issue(store, Issue(id="test-imp", title="Bad", **overrides))

    assert not store.has_issue("test-imp")
