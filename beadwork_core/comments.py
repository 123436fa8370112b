"""Comments module for beadwork - add and retrieve issue comments."""

from typing import List

from beadwork_core.exceptions import ValidationError
from beadwork_core.models import Comment
from beadwork_core.store import IssueStore
from beadwork_core.utils import get_iso_timestamp

__all__ = [
    "add_comment",
    "get_comments",
]


def add_comment(
    store: IssueStore,
    issue_id: str,
    text: str,
    author: str = "",
) -> Comment:
    """Add a comment to an issue.

    Args:
        store: Issue store
        issue_id: Issue ID to comment on
        text: Comment text
        author: Who made the comment

    Returns:
        The created comment

    Raises:
        ValidationError: If the text is empty

    Note:
        Comments are append-only - no edit or delete operations.
    """
    if not text.strip():
        raise ValidationError("Comment text cannot be empty")

    issue = store.read_issue(store.resolve_id(issue_id))
    now = get_iso_timestamp()
    comment = Comment(text=text, author=author, timestamp=now)
    issue.comments.append(comment)
    issue.updated_at = now
    store.write_issue(issue)
    return comment


def get_comments(store: IssueStore, issue_id: str) -> List[Comment]:
    """Get all comments for an issue, oldest first.

    Args:
        store: Issue store
        issue_id: Issue ID

    Returns:
        List of comments in the order they were added
    """
    return store.read_issue(store.resolve_id(issue_id)).comments
