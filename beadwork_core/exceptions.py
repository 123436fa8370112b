"""Custom exceptions for beadwork."""

from typing import List, Optional, Sequence

__all__ = [
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
]


class BeadworkError(Exception):
    """Base class for every error raised by beadwork."""

    pass


class NotFoundError(BeadworkError, LookupError):
    """Raised when an issue ID does not resolve to a stored issue."""

    pass


class AmbiguousIDError(NotFoundError):
    """Raised when a partial issue ID matches more than one issue."""

    def __init__(self, partial: str, matches: Sequence[str]):
        self.partial = partial
        self.matches = sorted(matches)
        super().__init__(f"ambiguous ID '{partial}' matches: {', '.join(self.matches)}")


class ValidationError(BeadworkError, ValueError):
    """Raised when an input value is malformed or out of range."""

    pass


class CycleError(ValidationError):
    """Raised when reparenting would make an issue its own ancestor."""

    pass


class IntentSyntaxError(ValidationError):
    """Raised when an intent string cannot be parsed."""

    pass


class InvalidStateTransitionError(BeadworkError):
    """Raised when a status change is not allowed from the current status."""

    pass


class BlockedError(InvalidStateTransitionError):
    """Raised when starting an issue that still has open blockers."""

    def __init__(self, issue_id: str, blockers: List[str]):
        self.issue_id = issue_id
        self.blockers = list(blockers)
        super().__init__(f"{issue_id} is blocked by: {', '.join(self.blockers)}")


class IDCollisionError(BeadworkError):
    """Raised when unable to generate unique ID after max retries."""

    pass


class GitCommandError(BeadworkError):
    """Raised when a git subprocess exits non-zero."""

    def __init__(self, args_list: Sequence[str], returncode: int, output: str):
        self.args_list = list(args_list)
        self.returncode = returncode
        self.output = output
        detail = output.strip() or f"exit status {returncode}"
        super().__init__(f"git {' '.join(self.args_list)}: {detail}")


class NotARepositoryError(BeadworkError):
    """Raised when no enclosing git repository can be found."""

    pass


class NotInitializedError(BeadworkError):
    """Raised when the beadwork branch does not exist yet."""

    pass


class AlreadyInitializedError(BeadworkError):
    """Raised by init when the beadwork branch already exists."""

    pass


class SchemaVersionError(BeadworkError):
    """Raised when the on-disk schema version does not match this build."""

    def __init__(self, message: str, hint: Optional[str] = None):
        self.hint = hint
        super().__init__(message)


class MigrationError(BeadworkError):
    """Raised when a schema migration fails; the repository keeps its prior version."""

    pass
