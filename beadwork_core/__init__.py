"""beadwork - git-backed issue tracking that syncs between clones.

This package provides the core functionality for the bw issue tracker.
Import from here for the public API.
"""

from beadwork_core.exceptions import (
    BeadworkError,
    NotFoundError,
    AmbiguousIDError,
    ValidationError,
    CycleError,
    IntentSyntaxError,
    InvalidStateTransitionError,
    BlockedError,
    IDCollisionError,
    GitCommandError,
    NotARepositoryError,
    NotInitializedError,
    AlreadyInitializedError,
    SchemaVersionError,
    MigrationError,
)
from beadwork_core.constants import (
    VALID_STATUSES,
    PRIORITY_RANGE,
    BRANCH_NAME,
    CURRENT_VERSION,
)
from beadwork_core.utils import (
    get_iso_timestamp,
    validate_date,
    validate_prefix,
    derive_prefix,
)
from beadwork_core.ids import generate_id, generate_child_id
from beadwork_core.models import Comment, Issue, BlockedIssue, DeletePlan, GraphNode, HistoryEntry
from beadwork_core.store import Committer, ConfigCommitter, IssueStore
from beadwork_core.issues import (
    create_issue,
    get_issue,
    list_issues,
    update_issue,
    close_issue,
    reopen_issue,
    start_issue,
    defer_issue,
    undefer_issue,
    label_issue,
    import_issue,
    get_children,
    delete_preview,
    delete_issue,
)
from beadwork_core.dependencies import (
    link_issues,
    unlink_issues,
    open_blockers,
    get_ready,
    get_blocked,
    newly_unblocked,
    get_graph,
    nearest_open_blockers,
)
from beadwork_core.comments import add_comment, get_comments
from beadwork_core.reorganization import detect_cycle, reparent_issue
from beadwork_core.git import GitRunner
from beadwork_core.repo import Repo, find_git_dir
from beadwork_core.migrations import MIGRATIONS, upgrade_repo
from beadwork_core.intent import (
    INTENT_GRAMMAR_VERSION,
    Intent,
    IntentVerb,
    parse_intent,
    format_intent,
    is_field_name,
)
from beadwork_core.replay import ReplayFailure, ReplayResult, replay_intents
from beadwork_core.log import setup_logging
from beadwork_core.cli import app, main

__all__ = [
    # Exceptions
    "BeadworkError",
    "NotFoundError",
    "AmbiguousIDError",
    "ValidationError",
    "CycleError",
    "IntentSyntaxError",
    "InvalidStateTransitionError",
    "BlockedError",
    "IDCollisionError",
    "GitCommandError",
    "NotARepositoryError",
    "NotInitializedError",
    "AlreadyInitializedError",
    "SchemaVersionError",
    "MigrationError",
    # Constants
    "VALID_STATUSES",
    "PRIORITY_RANGE",
    "BRANCH_NAME",
    "CURRENT_VERSION",
    # Utils
    "get_iso_timestamp",
    "validate_date",
    "validate_prefix",
    "derive_prefix",
    # IDs
    "generate_id",
    "generate_child_id",
    # Models
    "Comment",
    "Issue",
    "BlockedIssue",
    "DeletePlan",
    "GraphNode",
    "HistoryEntry",
    # Store
    "Committer",
    "ConfigCommitter",
    "IssueStore",
    # Issues
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
    # Dependencies
    "link_issues",
    "unlink_issues",
    "open_blockers",
    "get_ready",
    "get_blocked",
    "newly_unblocked",
    "get_graph",
    "nearest_open_blockers",
    # Comments
    "add_comment",
    "get_comments",
    # Reorganization
    "detect_cycle",
    "reparent_issue",
    # Git backend
    "GitRunner",
    "Repo",
    "find_git_dir",
    "MIGRATIONS",
    "upgrade_repo",
    # Intents
    "INTENT_GRAMMAR_VERSION",
    "Intent",
    "IntentVerb",
    "parse_intent",
    "format_intent",
    "is_field_name",
    "ReplayFailure",
    "ReplayResult",
    "replay_intents",
    # Logging
    "setup_logging",
    # CLI
    "app",
    "main",
]
