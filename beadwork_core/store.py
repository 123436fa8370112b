"""Issue storage for beadwork - JSON records plus marker-file indexes.

Each issue is a JSON document under ``issues/``. Queries that would
otherwise scan every record use zero-byte marker files instead:

    status/<status>/<id>
    labels/<label>/<id>
    blocks/<blocker>/<blocked>
    parent/<parent>/<child>

The store only touches the working tree. Recording a change in history is
delegated to a ``Committer`` (normally the ``Repo`` backend).
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Protocol, Set, Union, runtime_checkable

from beadwork_core.constants import (
    BLOCKS_DIR,
    ISSUES_DIR,
    KEEP_FILE,
    LABELS_DIR,
    PARENT_DIR,
    SKELETON_DIRS,
    STATUS_DIR,
    VALID_STATUSES,
)
from beadwork_core.exceptions import AmbiguousIDError, NotFoundError
from beadwork_core.models import Issue

__all__ = [
    "Committer",
    "ConfigCommitter",
    "IssueStore",
]

logger = logging.getLogger(__name__)


class Committer(Protocol):
    """Anything that can turn the current worktree state into a commit."""

    def commit(self, message: str) -> bool:
        ...


@runtime_checkable
class ConfigCommitter(Committer, Protocol):
    """A committer that can also change repository config."""

    def set_config(self, key: str, value: str) -> None:
        ...


class IssueStore:
    """File-backed issue store rooted at a beadwork worktree.

    Args:
        work_tree: Directory holding the issue records and indexes
        prefix: ID prefix for generated issue IDs
        committer: Receives commit messages; None makes commit a no-op
        default_priority: Priority for new issues when none is given
    """

    def __init__(
        self,
        work_tree: Union[str, Path],
        prefix: str,
        committer: Optional[Committer] = None,
        default_priority: Optional[int] = None,
    ):
        self.root = Path(work_tree)
        self.prefix = prefix
        self.committer = committer
        self.default_priority = default_priority

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def _issue_path(self, issue_id: str) -> Path:
        return self.root / ISSUES_DIR / f"{issue_id}.json"

    def has_issue(self, issue_id: str) -> bool:
        return self._issue_path(issue_id).is_file()

    def read_issue(self, issue_id: str) -> Issue:
        """Load a record by exact ID.

        Raises:
            NotFoundError: If no record exists for the ID
        """
        path = self._issue_path(issue_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise NotFoundError(f"Issue {issue_id} not found") from None
        return Issue.from_dict(data)

    def write_issue(self, issue: Issue) -> None:
        """Persist a record atomically (write to a temp file, then rename)."""
        path = self._issue_path(issue.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(issue.to_dict(), indent=2, sort_keys=True) + "\n"
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        os.replace(tmp, path)

    def delete_record(self, issue_id: str) -> None:
        path = self._issue_path(issue_id)
        if path.exists():
            path.unlink()

    def existing_ids(self) -> Set[str]:
        """Snapshot of every stored issue ID."""
        issues_dir = self.root / ISSUES_DIR
        if not issues_dir.is_dir():
            return set()
        return {p.stem for p in issues_dir.glob("*.json")}

    def all_issues(self) -> List[Issue]:
        return [self.read_issue(i) for i in sorted(self.existing_ids())]

    def resolve_id(self, partial: str, exact: bool = False) -> str:
        """Resolve a full or partial issue ID to a stored ID.

        An exact match wins. Otherwise ``<prefix>-<partial>`` is tried, then
        any ID that starts or ends with the partial text. With ``exact`` only
        a stored ID identical to ``partial`` is accepted.

        Raises:
            NotFoundError: If nothing matches
            AmbiguousIDError: If several IDs match
        """
        if not partial:
            raise NotFoundError("Issue ID cannot be empty")
        if self.has_issue(partial):
            return partial
        if exact:
            raise NotFoundError(f"Issue {partial} not found")
        prefixed = f"{self.prefix}-{partial}"
        if self.has_issue(prefixed):
            return prefixed

        matches = [
            i for i in self.existing_ids()
            if i.startswith(partial) or i.endswith(partial)
        ]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            raise AmbiguousIDError(partial, matches)
        raise NotFoundError(f"Issue {partial} not found")

    # ------------------------------------------------------------------
    # Marker indexes
    # ------------------------------------------------------------------

    def _add_marker(self, *parts: str) -> None:
        marker = self.root.joinpath(*parts)
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.touch()

    def _remove_marker(self, *parts: str) -> None:
        marker = self.root.joinpath(*parts)
        if marker.exists():
            marker.unlink()
        # Per-key directories (labels/<x>, blocks/<id>, parent/<id>) go away
        # with their last marker; top-level index dirs keep their .gitkeep
        parent = marker.parent
        if parent.parent != self.root and parent.parent.name != STATUS_DIR:
            if parent.is_dir() and not any(parent.iterdir()):
                parent.rmdir()

    def _list_markers(self, *parts: str) -> List[str]:
        directory = self.root.joinpath(*parts)
        if not directory.is_dir():
            return []
        return sorted(p.name for p in directory.iterdir() if p.name != KEEP_FILE)

    def move_status(self, issue_id: str, old: Optional[str], new: Optional[str]) -> None:
        """Move an issue's status marker from one status directory to another."""
        if old:
            self._remove_marker(STATUS_DIR, old, issue_id)
        if new:
            self._add_marker(STATUS_DIR, new, issue_id)

    def ids_with_status(self, status: str) -> List[str]:
        return self._list_markers(STATUS_DIR, status)

    def ids_with_label(self, label: str) -> List[str]:
        return self._list_markers(LABELS_DIR, label)

    def child_ids(self, parent_id: str) -> List[str]:
        return self._list_markers(PARENT_DIR, parent_id)

    def add_label_marker(self, issue_id: str, label: str) -> None:
        self._add_marker(LABELS_DIR, label, issue_id)

    def remove_label_marker(self, issue_id: str, label: str) -> None:
        self._remove_marker(LABELS_DIR, label, issue_id)

    def add_edge_marker(self, blocker_id: str, blocked_id: str) -> None:
        self._add_marker(BLOCKS_DIR, blocker_id, blocked_id)

    def remove_edge_marker(self, blocker_id: str, blocked_id: str) -> None:
        self._remove_marker(BLOCKS_DIR, blocker_id, blocked_id)

    def add_parent_marker(self, parent_id: str, child_id: str) -> None:
        self._add_marker(PARENT_DIR, parent_id, child_id)

    def remove_parent_marker(self, parent_id: str, child_id: str) -> None:
        self._remove_marker(PARENT_DIR, parent_id, child_id)

    def is_closed(self, issue_id: str) -> bool:
        """True when the issue exists and is closed; missing issues count as open."""
        return (self.root / STATUS_DIR / "closed" / issue_id).exists()

    def index_issue(self, issue: Issue) -> None:
        """Write every marker describing this record."""
        self.move_status(issue.id, None, issue.status)
        for label in issue.labels:
            self.add_label_marker(issue.id, label)
        for blocked in issue.blocks:
            self.add_edge_marker(issue.id, blocked)
        for blocker in issue.blocked_by:
            self.add_edge_marker(blocker, issue.id)
        if issue.parent:
            self.add_parent_marker(issue.parent, issue.id)

    def unindex_issue(self, issue: Issue) -> None:
        """Remove every marker this record owns."""
        for status in VALID_STATUSES:
            self._remove_marker(STATUS_DIR, status, issue.id)
        for label in issue.labels:
            self.remove_label_marker(issue.id, label)
        for blocked in issue.blocks:
            self.remove_edge_marker(issue.id, blocked)
        for blocker in issue.blocked_by:
            self.remove_edge_marker(blocker, issue.id)
        if issue.parent:
            self.remove_parent_marker(issue.parent, issue.id)

    # ------------------------------------------------------------------
    # Layout and history
    # ------------------------------------------------------------------

    def ensure_layout(self) -> None:
        """Create the index skeleton, each directory holding a .gitkeep."""
        for rel in SKELETON_DIRS:
            directory = self.root / rel
            directory.mkdir(parents=True, exist_ok=True)
            (directory / KEEP_FILE).touch()

    def commit(self, message: str) -> bool:
        """Hand a commit message to the committer.

        Returns:
            True if a commit was made, False when there was nothing to commit
            or no committer is attached
        """
        if self.committer is None:
            logger.debug("No committer attached; skipping commit %r", message)
            return False
        return self.committer.commit(message)
