"""Reorganization for beadwork - reparent operations."""

from typing import Optional

from beadwork_core.exceptions import CycleError, ValidationError
from beadwork_core.models import Issue
from beadwork_core.store import IssueStore
from beadwork_core.utils import get_iso_timestamp

__all__ = [
    "detect_cycle",
    "set_parent",
    "reparent_issue",
]


def detect_cycle(store: IssueStore, issue_id: str, new_parent_id: str) -> bool:
    """Detect if reparenting would create a cycle.

    Args:
        store: Issue store
        issue_id: Issue to reparent
        new_parent_id: Proposed new parent

    Returns:
        True if cycle would be created
    """
    # Walk up from new_parent to see if we reach issue_id
    current = new_parent_id
    visited = set()

    while current:
        if current == issue_id:
            return True

        if current in visited:
            break

        visited.add(current)

        if not store.has_issue(current):
            break

        current = store.read_issue(current).parent

    return False


def set_parent(store: IssueStore, issue: Issue, new_parent_id: Optional[str]) -> None:
    """Point an in-memory issue at a new parent and update the parent index.

    The caller writes the record. An empty or None parent clears it.

    Raises:
        ValidationError: If an issue is made its own parent
        CycleError: If the new parent is a descendant of the issue
    """
    new_parent_id = new_parent_id or ""
    if new_parent_id:
        new_parent_id = store.resolve_id(new_parent_id)
        if new_parent_id == issue.id:
            raise ValidationError(f"{issue.id} cannot be its own parent")
        if detect_cycle(store, issue.id, new_parent_id):
            raise CycleError(f"Cannot reparent {issue.id}: would create a cycle")

    if new_parent_id == issue.parent:
        return

    if issue.parent:
        store.remove_parent_marker(issue.parent, issue.id)
    if new_parent_id:
        store.add_parent_marker(new_parent_id, issue.id)
    issue.parent = new_parent_id


def reparent_issue(store: IssueStore, issue_id: str, new_parent_id: Optional[str]) -> Issue:
    """Change parent of an issue.

    Args:
        store: Issue store
        issue_id: Issue to reparent
        new_parent_id: New parent ID (None or "" to remove parent)

    Returns:
        The updated issue

    Raises:
        CycleError: If reparenting would create a cycle
    """
    issue = store.read_issue(store.resolve_id(issue_id))
    set_parent(store, issue, new_parent_id)
    issue.updated_at = get_iso_timestamp()
    store.write_issue(issue)
    return issue
