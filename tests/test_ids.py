"""Tests for hash-based ID generation with collision detection."""

from unittest import mock

import pytest


def test_generate_id_returns_correct_format():
    """ID should be in format: {prefix}-{base36 hash}, starting at 3 chars."""
    from beadwork_core import generate_id

    issue_id = generate_id("Test issue", "myapp")

    prefix, _, hash_part = issue_id.partition("-")
    assert prefix == "myapp"
    assert len(hash_part) == 3
    assert all(c in "0123456789abcdefghijklmnopqrstuvwxyz" for c in hash_part)


def test_generate_id_avoids_existing_ids():
    """Should never return an ID that already exists."""
    from beadwork_core import generate_id

    existing = set()
    for _ in range(200):
        new_id = generate_id("Same title", "myapp", existing_ids=existing)
        assert new_id not in existing
        existing.add(new_id)


def test_generate_id_grows_when_short_ids_exhausted():
    """Should move to a longer hash when every attempt at a length collides."""
    from beadwork_core import ids

    short_ids = {f"myapp-{ids._to_base36(n).zfill(3)}" for n in range(36 ** 3)}

    new_id = ids.generate_id("Title", "myapp", existing_ids=short_ids)

    assert len(new_id.split("-")[1]) == 4


def test_generate_id_raises_when_every_length_collides():
    """Should raise IDCollisionError once all lengths are exhausted."""
    from beadwork_core import IDCollisionError, ids

    with mock.patch.object(ids, "_to_base36", return_value="0" * 8):
        existing = {"myapp-" + "0" * n for n in range(3, 9)}
        with pytest.raises(IDCollisionError):
            ids.generate_id("Title", "myapp", existing_ids=existing, max_retries=2)


def test_generate_child_id_numbers_after_highest():
    """Child IDs should be parent.N with N one more than the highest in use."""
    from beadwork_core import generate_child_id

    existing = {"bw-abc", "bw-abc.1", "bw-abc.3", "bw-abc.2.1", "bw-abcd.9"}

    assert generate_child_id("bw-abc", existing) == "bw-abc.4"
    assert generate_child_id("bw-xyz", existing) == "bw-xyz.1"


@pytest.mark.parametrize("bad_id", ["", "has space", "a/b", 'quo"te', "k=v", ".hidden"])
def test_validate_explicit_id_rejects_malformed(bad_id):
    """Should reject IDs that cannot be stored or written into an intent."""
    from beadwork_core import ValidationError
    from beadwork_core.ids import validate_explicit_id

    with pytest.raises(ValidationError):
        validate_explicit_id(bad_id, set())


def test_validate_explicit_id_rejects_duplicate():
    """Should reject an ID that is already taken."""
    from beadwork_core import ValidationError
    from beadwork_core.ids import validate_explicit_id

    with pytest.raises(ValidationError, match="already exists"):
        validate_explicit_id("bw-abc", {"bw-abc"})

    assert validate_explicit_id("bw-new", {"bw-abc"}) == "bw-new"


def test_derive_prefix_from_directory_name():
    """Prefix should keep allowed characters and cap at 8."""
    from beadwork_core import derive_prefix

    assert derive_prefix("my.project") == "myprojec"
    assert derive_prefix("api") == "api"
    assert derive_prefix("...") == "bw"
    assert derive_prefix("-lead") == "lead"


@pytest.mark.parametrize("prefix", ["", "-x", "a b", "x" * 17, "a.b"])
def test_validate_prefix_rejects_bad_prefixes(prefix):
    from beadwork_core import ValidationError, validate_prefix

    with pytest.raises(ValidationError):
        validate_prefix(prefix)
