"""Dependency management for beadwork - blocking edges and graph queries.

A blocking edge "A blocks B" is stored three times: in A's ``blocks``, in
B's ``blocked_by`` and as the marker ``blocks/A/B``. Every function here
keeps the three in step.
"""

from typing import Dict, List, Set, Tuple

from beadwork_core.exceptions import ValidationError
from beadwork_core.models import BlockedIssue, GraphNode, Issue
from beadwork_core.store import IssueStore
from beadwork_core.utils import get_iso_timestamp

__all__ = [
    "link_issues",
    "unlink_issues",
    "open_blockers",
    "get_ready",
    "get_blocked",
    "newly_unblocked",
    "get_graph",
    "nearest_open_blockers",
]


def _resolve_pair(store: IssueStore, blocker_id: str, blocked_id: str) -> Tuple[Issue, Issue]:
    blocker = store.read_issue(store.resolve_id(blocker_id))
    blocked = store.read_issue(store.resolve_id(blocked_id))
    if blocker.id == blocked.id:
        raise ValidationError(f"{blocker.id} cannot block itself")
    return blocker, blocked


def link_issues(store: IssueStore, blocker_id: str, blocked_id: str) -> Tuple[Issue, Issue]:
    """Record that one issue blocks another.

    Linking an already-linked pair changes nothing.

    Args:
        store: Issue store
        blocker_id: Issue that must finish first
        blocked_id: Issue that waits on the blocker

    Returns:
        (blocker, blocked) issues after the change

    Raises:
        ValidationError: If both IDs name the same issue
    """
    blocker, blocked = _resolve_pair(store, blocker_id, blocked_id)

    if blocked.id in blocker.blocks and blocker.id in blocked.blocked_by:
        return blocker, blocked

    now = get_iso_timestamp()
    blocker.blocks = sorted(set(blocker.blocks) | {blocked.id})
    blocker.updated_at = now
    blocked.blocked_by = sorted(set(blocked.blocked_by) | {blocker.id})
    blocked.updated_at = now

    store.write_issue(blocker)
    store.write_issue(blocked)
    store.add_edge_marker(blocker.id, blocked.id)
    return blocker, blocked


def unlink_issues(store: IssueStore, blocker_id: str, blocked_id: str) -> Tuple[Issue, Issue]:
    """Remove a blocking edge. Unlinking an unlinked pair changes nothing."""
    blocker, blocked = _resolve_pair(store, blocker_id, blocked_id)

    if blocked.id not in blocker.blocks and blocker.id not in blocked.blocked_by:
        return blocker, blocked

    now = get_iso_timestamp()
    blocker.blocks = [i for i in blocker.blocks if i != blocked.id]
    blocker.updated_at = now
    blocked.blocked_by = [i for i in blocked.blocked_by if i != blocker.id]
    blocked.updated_at = now

    store.write_issue(blocker)
    store.write_issue(blocked)
    store.remove_edge_marker(blocker.id, blocked.id)
    return blocker, blocked


def open_blockers(store: IssueStore, issue: Issue) -> List[str]:
    """IDs of the issue's blockers that are not closed (missing ones count as open)."""
    return [b for b in issue.blocked_by if not store.is_closed(b)]


def _by_priority(issues: List[Issue]) -> List[Issue]:
    return sorted(issues, key=lambda i: (i.priority, i.created, i.id))


def get_ready(store: IssueStore) -> List[Issue]:
    """Open issues whose every blocker is closed, most urgent first."""
    ready = []
    for issue_id in store.ids_with_status("open"):
        issue = store.read_issue(issue_id)
        if not open_blockers(store, issue):
            ready.append(issue)
    return _by_priority(ready)


def get_blocked(store: IssueStore) -> List[BlockedIssue]:
    """Open or in-progress issues that still wait on at least one blocker."""
    blocked = []
    for status in ("open", "in_progress"):
        for issue_id in store.ids_with_status(status):
            issue = store.read_issue(issue_id)
            waiting = open_blockers(store, issue)
            if waiting:
                blocked.append(BlockedIssue(issue=issue, open_blockers=waiting))
    blocked.sort(key=lambda b: (b.issue.priority, b.issue.created, b.issue.id))
    return blocked


def newly_unblocked(store: IssueStore, closed_id: str) -> List[Issue]:
    """Issues freed by closing ``closed_id``.

    Of the issues ``closed_id`` blocks, returns the non-closed ones whose
    blockers are now all closed. Call after closing an issue.
    """
    closed = store.read_issue(store.resolve_id(closed_id))
    unblocked = []
    for blocked_id in closed.blocks:
        if not store.has_issue(blocked_id):
            continue
        issue = store.read_issue(blocked_id)
        if issue.status == "closed":
            continue
        if not open_blockers(store, issue):
            unblocked.append(issue)
    return unblocked


def get_graph(store: IssueStore, root_id: str = "") -> List[GraphNode]:
    """Nodes of the blocking graph.

    Args:
        store: Issue store
        root_id: Start from this issue and follow ``blocks`` edges; empty
            means every issue

    Returns:
        GraphNode list sorted by ID
    """
    if not root_id:
        issues = store.all_issues()
    else:
        root = store.resolve_id(root_id)
        seen: Dict[str, Issue] = {}
        stack = [root]
        while stack:
            current = stack.pop()
            if current in seen or not store.has_issue(current):
                continue
            issue = store.read_issue(current)
            seen[current] = issue
            stack.extend(issue.blocks)
        issues = list(seen.values())

    nodes = [
        GraphNode(
            id=i.id,
            title=i.title,
            status=i.status,
            blocks=list(i.blocks),
            blocked_by=list(i.blocked_by),
        )
        for i in issues
    ]
    return sorted(nodes, key=lambda n: n.id)


def nearest_open_blockers(store: IssueStore, issue_id: str) -> List[str]:
    """The closest unfinished work standing in front of an issue.

    Open blockers are reported as-is. A closed blocker is replaced by its
    own blockers, recursively, until an open one turns up or the chain
    ends.

    Returns:
        Deduplicated blocker IDs in discovery order
    """
    issue = store.read_issue(store.resolve_id(issue_id))
    visited: Set[str] = {issue.id}
    found: List[str] = []

    def walk(blocker_ids: List[str]) -> None:
        for blocker_id in blocker_ids:
            if blocker_id in visited:
                continue
            visited.add(blocker_id)
            # Missing blockers count as open, same as open_blockers
            if not store.is_closed(blocker_id):
                found.append(blocker_id)
                continue
            walk(store.read_issue(blocker_id).blocked_by)

    walk(issue.blocked_by)
    return found
