"""Schema migrations for beadwork repositories.

``MIGRATIONS[n]`` upgrades a repository from version n to n+1. All pending
migrations run in one pass and land in a single commit.
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable, List, Tuple

from beadwork_core.constants import CURRENT_VERSION, ISSUES_DIR
from beadwork_core.exceptions import BeadworkError, MigrationError
from beadwork_core.repo import Repo

__all__ = [
    "Migration",
    "MIGRATIONS",
    "upgrade_repo",
]

logger = logging.getLogger(__name__)


@dataclass
class Migration:
    description: str
    apply: Callable[[Repo], None]


def _stamp_version(repo: Repo) -> None:
    # v0 -> v1: no data changes, the version key is written by upgrade_repo
    pass


def _shift_priorities(repo: Repo) -> None:
    # v1 -> v2: priorities move from 1-5 to 0-4
    issues_dir = repo.work_tree / ISSUES_DIR
    if not issues_dir.is_dir():
        return
    for path in sorted(issues_dir.glob("*.json")):
        data = json.loads(path.read_text(encoding="utf-8"))
        priority = data.get("priority")
        if isinstance(priority, int) and priority > 0:
            data["priority"] = priority - 1
            path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")


MIGRATIONS: List[Migration] = [
    Migration("add version marker", _stamp_version),
    Migration("shift priority scale from 1-5 to 0-4", _shift_priorities),
]


def _discard_worktree_changes(repo: Repo) -> None:
    repo.git.run("checkout", "--", ".", cwd=repo.work_tree)
    repo.git.run("clean", "-fdq", cwd=repo.work_tree)


def upgrade_repo(repo: Repo) -> Tuple[int, int]:
    """Bring a repository's schema up to the current version.

    Args:
        repo: Initialized repository

    Returns:
        (from_version, to_version); equal when already current

    Raises:
        MigrationError: If a migration fails. The worktree is restored and
            the repository stays at its previous version.
    """
    from_version = repo.version()
    if from_version >= CURRENT_VERSION:
        return from_version, from_version
    if from_version < 0 or from_version >= len(MIGRATIONS):
        raise MigrationError(f"repo version {from_version} has no migration path")

    for version in range(from_version, CURRENT_VERSION):
        migration = MIGRATIONS[version]
        logger.info("Migrating v%d -> v%d: %s", version, version + 1, migration.description)
        try:
            migration.apply(repo)
        except (OSError, ValueError, BeadworkError) as e:
            _discard_worktree_changes(repo)
            raise MigrationError(
                f"migration v{version} -> v{version + 1} ({migration.description}) failed: {e}"
            ) from e

    repo.set_config("version", str(CURRENT_VERSION))
    repo.commit(f"upgrade repo v{from_version} -> v{CURRENT_VERSION}")
    return from_version, CURRENT_VERSION
