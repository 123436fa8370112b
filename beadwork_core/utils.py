"""Shared utilities for beadwork - timestamps, dates, prefixes."""

import re
from datetime import date, datetime, timezone

from beadwork_core.constants import (
    DERIVED_PREFIX_LENGTH,
    FALLBACK_PREFIX,
    MAX_PREFIX_LENGTH,
)
from beadwork_core.exceptions import ValidationError

__all__ = [
    "get_iso_timestamp",
    "validate_date",
    "validate_prefix",
    "derive_prefix",
]

_PREFIX_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def get_iso_timestamp() -> str:
    """Get current UTC timestamp in ISO format with Z suffix.

    Returns:
        ISO 8601 formatted timestamp string (e.g., "2024-01-15T10:30:00.123456Z")
    """
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def validate_date(value: str) -> str:
    """Check that value is a real calendar date in YYYY-MM-DD form.

    Args:
        value: Date string

    Returns:
        The same string, for chaining

    Raises:
        ValidationError: If the value is not a valid date
    """
    if not _DATE_RE.match(value):
        raise ValidationError(f"Invalid date '{value}': expected YYYY-MM-DD")
    try:
        date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Invalid date '{value}': {e}") from e
    return value


def validate_prefix(prefix: str) -> str:
    """Check that an ID prefix is usable.

    Prefixes start with a letter or digit, may contain letters, digits,
    hyphens and underscores, and are at most 16 characters long.

    Raises:
        ValidationError: If the prefix is empty, too long or has bad characters
    """
    if not prefix:
        raise ValidationError("Prefix cannot be empty")
    if len(prefix) > MAX_PREFIX_LENGTH:
        raise ValidationError(
            f"Prefix '{prefix}' is too long (max {MAX_PREFIX_LENGTH} characters)"
        )
    if not _PREFIX_RE.match(prefix):
        raise ValidationError(
            f"Invalid prefix '{prefix}': use letters, digits, '-' or '_', "
            "starting with a letter or digit"
        )
    return prefix


def derive_prefix(name: str) -> str:
    """Derive an ID prefix from a repository directory name.

    Examples:
        >>> derive_prefix("my.project")
        'myprojec'
        >>> derive_prefix("...")
        'bw'
    """
    # Keep only characters a prefix may contain
    name = re.sub(r"[^A-Za-z0-9_-]+", "", name)

    # Prefix must start with a letter or digit
    name = name.lstrip("-_")

    name = name[:DERIVED_PREFIX_LENGTH]
    return name or FALLBACK_PREFIX
