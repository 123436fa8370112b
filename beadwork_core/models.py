"""Data classes for beadwork records and query results."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

__all__ = [
    "Comment",
    "Issue",
    "BlockedIssue",
    "DeletePlan",
    "GraphNode",
    "HistoryEntry",
]


@dataclass
class Comment:
    text: str
    author: str = ""
    timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "author": self.author,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Comment":
        return cls(
            text=data.get("text", ""),
            author=data.get("author", ""),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class Issue:
    """One work item, stored as ``issues/<id>.json``.

    ``blocks`` and ``blocked_by`` mirror each other across records: if this
    issue lists B in ``blocks``, B lists this issue in ``blocked_by``.
    """

    id: str
    title: str
    description: str = ""
    status: str = "open"
    priority: int = 2
    type: str = "task"
    assignee: str = ""
    created: str = ""
    updated_at: str = ""
    closed_at: str = ""
    close_reason: str = ""
    defer_until: str = ""
    parent: str = ""
    labels: List[str] = field(default_factory=list)
    blocks: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "type": self.type,
            "assignee": self.assignee,
            "created": self.created,
            "updated_at": self.updated_at,
            "closed_at": self.closed_at,
            "close_reason": self.close_reason,
            "defer_until": self.defer_until,
            "parent": self.parent,
            "labels": list(self.labels),
            "blocks": list(self.blocks),
            "blocked_by": list(self.blocked_by),
            "comments": [c.to_dict() for c in self.comments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Issue":
        """Build an Issue from a stored record, tolerating missing keys."""
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            status=data.get("status", "open"),
            priority=int(data.get("priority", 2)),
            type=data.get("type", "task"),
            assignee=data.get("assignee", ""),
            created=data.get("created", ""),
            updated_at=data.get("updated_at", ""),
            closed_at=data.get("closed_at", ""),
            close_reason=data.get("close_reason", ""),
            defer_until=data.get("defer_until", ""),
            parent=data.get("parent", ""),
            labels=list(data.get("labels", [])),
            blocks=list(data.get("blocks", [])),
            blocked_by=list(data.get("blocked_by", [])),
            comments=[Comment.from_dict(c) for c in data.get("comments", [])],
        )


@dataclass
class BlockedIssue:
    issue: Issue
    open_blockers: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"issue": self.issue.to_dict(), "open_blockers": list(self.open_blockers)}


@dataclass
class DeletePlan:
    """Everything a delete will touch, computed before anything changes."""

    issue: Issue
    blocks: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)
    children: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue": self.issue.to_dict(),
            "blocks": list(self.blocks),
            "blocked_by": list(self.blocked_by),
            "children": list(self.children),
        }


@dataclass
class GraphNode:
    id: str
    title: str
    status: str
    blocks: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "blocks": list(self.blocks),
            "blocked_by": list(self.blocked_by),
        }


@dataclass
class HistoryEntry:
    """One commit on the beadwork branch."""

    hash: str
    timestamp: str
    author: str
    intent: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "timestamp": self.timestamp,
            "author": self.author,
            "intent": self.intent,
        }
