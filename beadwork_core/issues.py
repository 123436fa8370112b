"""Issue management for beadwork - CRUD and lifecycle operations."""

import re
from typing import Iterable, List, Optional, Sequence

from beadwork_core.constants import (
    DEFAULT_LIST_STATUSES,
    DEFAULT_PRIORITY,
    DEFAULT_TYPE,
    PRIORITY_RANGE,
    STATUS_TRANSITIONS,
    VALID_STATUSES,
)
from beadwork_core.dependencies import open_blockers
from beadwork_core.exceptions import (
    BlockedError,
    InvalidStateTransitionError,
    ValidationError,
)
from beadwork_core.ids import generate_child_id, generate_id, validate_explicit_id
from beadwork_core.models import DeletePlan, Issue
from beadwork_core.reorganization import set_parent
from beadwork_core.store import IssueStore
from beadwork_core.utils import get_iso_timestamp, validate_date

__all__ = [
    "create_issue",
    "get_issue",
    "list_issues",
    "update_issue",
    "close_issue",
    "reopen_issue",
    "start_issue",
    "defer_issue",
    "undefer_issue",
    "label_issue",
    "import_issue",
    "get_children",
    "delete_preview",
    "delete_issue",
]

_INVALID_LABEL = re.compile(r"[\s/]")


def _validate_priority(priority: int) -> int:
    min_priority, max_priority = PRIORITY_RANGE
    if not (min_priority <= priority <= max_priority):
        raise ValidationError(f"Priority must be between {min_priority} and {max_priority}, got {priority}")
    return priority


def _validate_status(status: str) -> str:
    if status not in VALID_STATUSES:
        raise ValidationError(f"Invalid status: {status}. Must be one of {', '.join(VALID_STATUSES)}")
    return status


def _validate_label(label: str) -> str:
    if not label or _INVALID_LABEL.search(label) or label.startswith("."):
        raise ValidationError(f"Invalid label '{label}'")
    return label


def _transition(issue: Issue, target: str, now: str) -> None:
    """Move an in-memory issue to a new status, maintaining status-bound fields."""
    _validate_status(target)
    if issue.status not in STATUS_TRANSITIONS[target]:
        raise InvalidStateTransitionError(
            f"Cannot change {issue.id} from {issue.status} to {target}"
        )
    if target == "closed":
        issue.closed_at = now
    elif issue.status == "closed":
        issue.closed_at = ""
        issue.close_reason = ""
    issue.status = target
    if target != "deferred":
        issue.defer_until = ""


def _save_status_change(store: IssueStore, issue: Issue, old_status: str) -> None:
    store.write_issue(issue)
    if old_status != issue.status:
        store.move_status(issue.id, old_status, issue.status)


def create_issue(
    store: IssueStore,
    title: str,
    description: str = "",
    priority: Optional[int] = None,
    type: str = DEFAULT_TYPE,
    assignee: str = "",
    parent: Optional[str] = None,
    defer_until: Optional[str] = None,
    issue_id: Optional[str] = None,
) -> Issue:
    """Create a new issue.

    Args:
        store: Issue store
        title: Issue title
        description: Optional detailed description
        priority: Priority 0-4 (0=critical, 4=backlog); store default if None
        type: Free-form issue type
        assignee: Initial assignee
        parent: Parent issue ID; the new issue gets a ``<parent>.<n>`` ID
        defer_until: YYYY-MM-DD; creates the issue deferred
        issue_id: Explicit ID to use instead of a generated one

    Returns:
        The created issue

    Raises:
        ValidationError: If title, priority, date or explicit ID is invalid
    """
    if not title.strip():
        raise ValidationError("Title cannot be empty")

    if priority is None:
        priority = store.default_priority if store.default_priority is not None else DEFAULT_PRIORITY
    _validate_priority(priority)

    if defer_until:
        validate_date(defer_until)

    existing_ids = store.existing_ids()

    parent_id = store.resolve_id(parent) if parent else ""

    if issue_id:
        new_id = validate_explicit_id(issue_id, existing_ids)
    elif parent_id:
        new_id = generate_child_id(parent_id, existing_ids)
    else:
        new_id = generate_id(title, store.prefix, existing_ids=existing_ids)

    now = get_iso_timestamp()
    issue = Issue(
        id=new_id,
        title=title,
        description=description,
        status="deferred" if defer_until else "open",
        priority=priority,
        type=type or DEFAULT_TYPE,
        assignee=assignee,
        created=now,
        updated_at=now,
        defer_until=defer_until or "",
        parent=parent_id,
    )

    store.write_issue(issue)
    store.move_status(issue.id, None, issue.status)
    if parent_id:
        store.add_parent_marker(parent_id, issue.id)

    return issue


def get_issue(store: IssueStore, issue_id: str) -> Issue:
    """Get issue by full or partial ID.

    Raises:
        NotFoundError: If no issue matches
        AmbiguousIDError: If several issues match a partial ID
    """
    return store.read_issue(store.resolve_id(issue_id))


def list_issues(
    store: IssueStore,
    statuses: Optional[Sequence[str]] = None,
    assignee: Optional[str] = None,
    priority: Optional[int] = None,
    type: Optional[str] = None,
    label: Optional[str] = None,
    grep: Optional[str] = None,
) -> List[Issue]:
    """List issues with optional filtering.

    Args:
        store: Issue store
        statuses: Statuses to include; default hides deferred and closed
        assignee: Only issues assigned to this name
        priority: Only issues with this priority
        type: Only issues of this type
        label: Only issues carrying this label
        grep: Case-insensitive substring of title or description

    Returns:
        List of issues, sorted by priority then creation time
    """
    if statuses is None:
        statuses = DEFAULT_LIST_STATUSES
    for status in statuses:
        _validate_status(status)

    candidates = set()
    for status in statuses:
        candidates.update(store.ids_with_status(status))

    if label is not None:
        candidates &= set(store.ids_with_label(label))

    needle = grep.lower() if grep else None

    results = []
    for issue_id in candidates:
        issue = store.read_issue(issue_id)
        if assignee is not None and issue.assignee != assignee:
            continue
        if priority is not None and issue.priority != priority:
            continue
        if type is not None and issue.type != type:
            continue
        if needle and needle not in f"{issue.title}\n{issue.description}".lower():
            continue
        results.append(issue)

    results.sort(key=lambda i: (i.priority, i.created, i.id))
    return results


def update_issue(
    store: IssueStore,
    issue_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    priority: Optional[int] = None,
    assignee: Optional[str] = None,
    type: Optional[str] = None,
    status: Optional[str] = None,
    defer_until: Optional[str] = None,
    parent: Optional[str] = None,
) -> Issue:
    """Update issue fields. Only fields that are not None are changed.

    Supplying ``defer_until`` defers the issue unless ``status`` is given
    too. Supplying an empty ``defer_until`` on a deferred issue reopens it.

    Args:
        store: Issue store
        issue_id: Issue ID
        title: New title
        description: New description
        priority: New priority 0-4
        assignee: New assignee ("" clears)
        type: New type
        status: New status
        defer_until: YYYY-MM-DD, or "" to clear
        parent: New parent ID, or "" to clear

    Returns:
        The updated issue

    Raises:
        ValidationError: If any supplied value is invalid
        InvalidStateTransitionError: If the status change is not allowed
    """
    issue = get_issue(store, issue_id)
    old_status = issue.status
    now = get_iso_timestamp()

    if title is not None:
        if not title.strip():
            raise ValidationError("Title cannot be empty")
        issue.title = title
    if description is not None:
        issue.description = description
    if priority is not None:
        issue.priority = _validate_priority(priority)
    if assignee is not None:
        issue.assignee = assignee
    if type is not None:
        issue.type = type or DEFAULT_TYPE

    target = status
    if defer_until is not None:
        if defer_until:
            validate_date(defer_until)
            if target is None:
                target = "deferred"
        elif target is None and issue.status == "deferred":
            target = "open"

    if target is not None and target != issue.status:
        _transition(issue, target, now)

    if defer_until is not None:
        issue.defer_until = defer_until if issue.status == "deferred" else ""

    if parent is not None:
        set_parent(store, issue, parent)

    issue.updated_at = now
    _save_status_change(store, issue, old_status)
    return issue


def close_issue(store: IssueStore, issue_id: str, reason: str = "") -> Issue:
    """Close an issue.

    Args:
        store: Issue store
        issue_id: Issue ID
        reason: Optional close reason

    Returns:
        The closed issue

    Raises:
        InvalidStateTransitionError: If the issue is already closed
    """
    issue = get_issue(store, issue_id)
    if issue.status == "closed":
        raise InvalidStateTransitionError(f"{issue.id} is already closed")

    old_status = issue.status
    now = get_iso_timestamp()
    _transition(issue, "closed", now)
    issue.close_reason = reason
    issue.updated_at = now
    _save_status_change(store, issue, old_status)
    return issue


def reopen_issue(store: IssueStore, issue_id: str) -> Issue:
    """Return a closed or in-progress issue to open.

    Reopening in-progress work also clears its assignee.

    Raises:
        InvalidStateTransitionError: If the issue is open or deferred
    """
    issue = get_issue(store, issue_id)
    if issue.status not in ("closed", "in_progress"):
        raise InvalidStateTransitionError(f"{issue.id} is {issue.status}, not closed or in progress")

    old_status = issue.status
    now = get_iso_timestamp()
    if old_status == "in_progress":
        issue.assignee = ""
    _transition(issue, "open", now)
    issue.updated_at = now
    _save_status_change(store, issue, old_status)
    return issue


def start_issue(store: IssueStore, issue_id: str, assignee: str) -> Issue:
    """Claim an issue: move it to in_progress and assign it.

    Raises:
        InvalidStateTransitionError: If the issue is already in progress or closed
        BlockedError: If any blocker is not closed
    """
    issue = get_issue(store, issue_id)
    if issue.status not in ("open", "deferred"):
        raise InvalidStateTransitionError(f"{issue.id} is {issue.status}; only open or deferred issues can be started")

    blockers = open_blockers(store, issue)
    if blockers:
        raise BlockedError(issue.id, blockers)

    old_status = issue.status
    now = get_iso_timestamp()
    _transition(issue, "in_progress", now)
    issue.assignee = assignee
    issue.updated_at = now
    _save_status_change(store, issue, old_status)
    return issue


def defer_issue(store: IssueStore, issue_id: str, until: str) -> Issue:
    """Park an issue until a date (YYYY-MM-DD)."""
    if not until:
        raise ValidationError("Defer date cannot be empty")
    return update_issue(store, issue_id, defer_until=until)


def undefer_issue(store: IssueStore, issue_id: str) -> Issue:
    """Bring a deferred issue back to open."""
    issue = get_issue(store, issue_id)
    if issue.status != "deferred":
        raise InvalidStateTransitionError(f"{issue.id} is {issue.status}, not deferred")
    return update_issue(store, issue.id, defer_until="")


def label_issue(
    store: IssueStore,
    issue_id: str,
    add: Optional[Iterable[str]] = None,
    remove: Optional[Iterable[str]] = None,
) -> Issue:
    """Add and remove labels. Labels behave as a sorted set.

    Raises:
        ValidationError: If a label is empty or contains whitespace or '/'
    """
    add = [_validate_label(label) for label in (add or [])]
    remove = [_validate_label(label) for label in (remove or [])]

    issue = get_issue(store, issue_id)
    before = set(issue.labels)
    after = (before | set(add)) - set(remove)
    if after == before:
        return issue

    for label in sorted(before - after):
        store.remove_label_marker(issue.id, label)
    for label in sorted(after - before):
        store.add_label_marker(issue.id, label)

    issue.labels = sorted(after)
    issue.updated_at = get_iso_timestamp()
    store.write_issue(issue)
    return issue


def import_issue(store: IssueStore, issue: Issue) -> Issue:
    """Write a complete record as-is, replacing any record with the same ID.

    No defaults are filled and related records are not touched; only this
    record's own index entries are rewritten.

    Raises:
        ValidationError: If the status or priority is invalid, or the issue
            blocks itself
    """
    _validate_status(issue.status)
    _validate_priority(issue.priority)
    if issue.id in issue.blocks or issue.id in issue.blocked_by:
        raise ValidationError(f"{issue.id} cannot block itself")
    if store.has_issue(issue.id):
        store.unindex_issue(store.read_issue(issue.id))
    issue.labels = sorted(set(issue.labels))
    issue.blocks = sorted(set(issue.blocks))
    issue.blocked_by = sorted(set(issue.blocked_by))
    store.write_issue(issue)
    store.index_issue(issue)
    return issue


def get_children(store: IssueStore, parent_id: str) -> List[Issue]:
    """Direct children of an issue, sorted by ID."""
    parent_id = store.resolve_id(parent_id)
    return [store.read_issue(c) for c in store.child_ids(parent_id) if store.has_issue(c)]


def delete_preview(store: IssueStore, issue_id: str) -> DeletePlan:
    """Describe what deleting an issue would touch, without changing anything."""
    issue = get_issue(store, issue_id)
    return DeletePlan(
        issue=issue,
        blocks=list(issue.blocks),
        blocked_by=list(issue.blocked_by),
        children=[c.id for c in get_children(store, issue.id)],
    )


def delete_issue(store: IssueStore, issue_id: str) -> DeletePlan:
    """Permanently remove an issue.

    Severs exactly the edges and orphans exactly the children that
    ``delete_preview`` reports.

    Returns:
        The plan that was carried out
    """
    plan = delete_preview(store, issue_id)
    issue = plan.issue
    now = get_iso_timestamp()

    for blocked_id in plan.blocks:
        if store.has_issue(blocked_id):
            other = store.read_issue(blocked_id)
            other.blocked_by = [i for i in other.blocked_by if i != issue.id]
            other.updated_at = now
            store.write_issue(other)

    for blocker_id in plan.blocked_by:
        if store.has_issue(blocker_id):
            other = store.read_issue(blocker_id)
            other.blocks = [i for i in other.blocks if i != issue.id]
            other.updated_at = now
            store.write_issue(other)

    for child_id in plan.children:
        child = store.read_issue(child_id)
        child.parent = ""
        child.updated_at = now
        store.write_issue(child)
        store.remove_parent_marker(issue.id, child_id)

    store.unindex_issue(issue)
    store.delete_record(issue.id)
    return plan
