"""Constants for beadwork - statuses, layout names, schema version."""

__all__ = [
    "VALID_STATUSES",
    "DEFAULT_LIST_STATUSES",
    "STATUS_TRANSITIONS",
    "PRIORITY_RANGE",
    "DEFAULT_PRIORITY",
    "DEFAULT_TYPE",
    "BRANCH_NAME",
    "REMOTE_NAME",
    "CURRENT_VERSION",
    "CONFIG_FILE",
    "ISSUES_DIR",
    "STATUS_DIR",
    "LABELS_DIR",
    "BLOCKS_DIR",
    "PARENT_DIR",
    "SKELETON_DIRS",
    "KEEP_FILE",
    "MAX_ID_RETRIES",
    "MIN_HASH_LENGTH",
    "MAX_HASH_LENGTH",
    "BASE36_CHARS",
    "MAX_PREFIX_LENGTH",
    "DERIVED_PREFIX_LENGTH",
    "FALLBACK_PREFIX",
    "LOG_FILE",
]

# Issue statuses
VALID_STATUSES = ("open", "in_progress", "deferred", "closed")

# `list` without an explicit status filter hides parked and finished work
DEFAULT_LIST_STATUSES = ("open", "in_progress")

# Allowed status changes (target -> allowed sources)
STATUS_TRANSITIONS = {
    "open": {"in_progress", "deferred", "closed"},
    "in_progress": {"open", "deferred"},
    "deferred": {"open"},
    "closed": {"open", "in_progress", "deferred"},
}

# Priority range (inclusive), 0 is most urgent
PRIORITY_RANGE = (0, 4)
DEFAULT_PRIORITY = 2
DEFAULT_TYPE = "task"

# Git layout
BRANCH_NAME = "beadwork"
REMOTE_NAME = "origin"

# On-disk schema version this build reads and writes
CURRENT_VERSION = 2

# Worktree layout
CONFIG_FILE = ".bwconfig"
ISSUES_DIR = "issues"
STATUS_DIR = "status"
LABELS_DIR = "labels"
BLOCKS_DIR = "blocks"
PARENT_DIR = "parent"
KEEP_FILE = ".gitkeep"
SKELETON_DIRS = (
    ISSUES_DIR,
    f"{STATUS_DIR}/open",
    f"{STATUS_DIR}/in_progress",
    f"{STATUS_DIR}/deferred",
    f"{STATUS_DIR}/closed",
    LABELS_DIR,
    BLOCKS_DIR,
    PARENT_DIR,
)

# ID generation
MAX_ID_RETRIES = 10
MIN_HASH_LENGTH = 3
MAX_HASH_LENGTH = 8
BASE36_CHARS = "0123456789abcdefghijklmnopqrstuvwxyz"

# Prefixes
MAX_PREFIX_LENGTH = 16
DERIVED_PREFIX_LENGTH = 8
FALLBACK_PREFIX = "bw"

# Logging (relative to the git metadata directory)
LOG_FILE = "beadwork.log"
