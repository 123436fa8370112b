"""ID generation for beadwork - collision-resistant hash-based IDs."""

import hashlib
import os
import re
import time
from typing import Iterable, Optional, Set

from beadwork_core.constants import (
    BASE36_CHARS,
    MAX_HASH_LENGTH,
    MAX_ID_RETRIES,
    MIN_HASH_LENGTH,
)
from beadwork_core.exceptions import IDCollisionError, ValidationError

__all__ = [
    "generate_id",
    "generate_child_id",
    "validate_explicit_id",
]

_INVALID_ID_CHARS = re.compile(r"[\s/\"\\=]")


def generate_id(
    title: str,
    prefix: str,
    existing_ids: Optional[Set[str]] = None,
    max_retries: int = MAX_ID_RETRIES,
) -> str:
    """Generate a collision-resistant hash-based ID.

    Format: {prefix}-{base36-hash}. The hash starts short and grows one
    character at a time when every attempt at the current length collides.

    Args:
        title: Issue title (used for entropy)
        prefix: Repository ID prefix
        existing_ids: Set of existing IDs to check for collisions
        max_retries: Attempts per hash length

    Returns:
        Unique ID string in format "prefix-a1b"

    Raises:
        IDCollisionError: If every length up to the maximum is exhausted
    """
    if existing_ids is None:
        existing_ids = set()

    for length in range(MIN_HASH_LENGTH, MAX_HASH_LENGTH + 1):
        for attempt in range(max_retries):
            # Generate entropy from multiple sources
            timestamp_ns = time.time_ns()
            random_bytes = os.urandom(16)
            entropy = f"{title}|{timestamp_ns}|{random_bytes.hex()}".encode("utf-8")

            hash_digest = hashlib.sha256(entropy).digest()
            hash_int = int.from_bytes(hash_digest[:8], byteorder="big")
            hash_b36 = _to_base36(hash_int)[:length].zfill(length)

            candidate = f"{prefix}-{hash_b36}"
            if candidate not in existing_ids:
                return candidate

    raise IDCollisionError(
        f"Unable to generate unique ID with prefix '{prefix}' "
        f"after {max_retries} attempts at each length up to {MAX_HASH_LENGTH}"
    )


def generate_child_id(parent_id: str, existing_ids: Iterable[str]) -> str:
    """Next hierarchical child ID for a parent.

    Children are numbered ``<parent>.1``, ``<parent>.2`` and so on; the new
    child gets one more than the highest number in use.

    Examples:
        >>> generate_child_id("bw-abc", {"bw-abc", "bw-abc.1", "bw-abc.3"})
        'bw-abc.4'
    """
    highest = 0
    marker = f"{parent_id}."
    for existing in existing_ids:
        if not existing.startswith(marker):
            continue
        suffix = existing[len(marker):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{parent_id}.{highest + 1}"


def validate_explicit_id(issue_id: str, existing_ids: Set[str]) -> str:
    """Check a caller-supplied issue ID.

    Raises:
        ValidationError: If the ID is empty, contains whitespace, quotes,
            '/', '\\' or '=', or is already taken
    """
    if not issue_id:
        raise ValidationError("Issue ID cannot be empty")
    if _INVALID_ID_CHARS.search(issue_id) or issue_id.startswith("."):
        raise ValidationError(f"Invalid issue ID '{issue_id}'")
    if issue_id in existing_ids:
        raise ValidationError(f"Issue {issue_id} already exists")
    return issue_id


def _to_base36(num: int) -> str:
    """Convert integer to base36 string (0-9a-z).

    Args:
        num: Integer to convert

    Returns:
        Base36 string representation
    """
    if num == 0:
        return "0"

    result = []
    while num > 0:
        num, remainder = divmod(num, 36)
        result.append(BASE36_CHARS[remainder])

    return "".join(reversed(result))
