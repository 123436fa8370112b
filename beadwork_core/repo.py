"""Git backend for beadwork.

Issues live on a dedicated ``beadwork`` branch that shares no history with
the project's code. The branch is checked out as a linked worktree inside
the git metadata directory (``.git/beadwork``), so the user's own checkout
is never touched.
"""

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from beadwork_core.constants import (
    BRANCH_NAME,
    CONFIG_FILE,
    CURRENT_VERSION,
    KEEP_FILE,
    REMOTE_NAME,
    SKELETON_DIRS,
)
from beadwork_core.exceptions import (
    AlreadyInitializedError,
    GitCommandError,
    IntentSyntaxError,
    NotARepositoryError,
    NotInitializedError,
    SchemaVersionError,
    ValidationError,
)
from beadwork_core.git import GitRunner
from beadwork_core.intent import is_field_name, parse_intent
from beadwork_core.models import HistoryEntry
from beadwork_core.utils import derive_prefix, validate_prefix

__all__ = [
    "LOCAL_REF",
    "REMOTE_REF",
    "find_git_dir",
    "Repo",
]

logger = logging.getLogger(__name__)

LOCAL_REF = f"refs/heads/{BRANCH_NAME}"
REMOTE_REF = f"refs/remotes/{REMOTE_NAME}/{BRANCH_NAME}"
_FETCH_SPEC = f"+{LOCAL_REF}:{REMOTE_REF}"
# hash, author time, author name, subject
_LOG_FORMAT = "%H%x1f%at%x1f%an%x1f%s"

# Sync outcomes
SYNC_NO_REMOTE = "no remote configured"
SYNC_PUSHED = "pushed"
SYNC_UP_TO_DATE = "up to date"
SYNC_REBASED = "rebased and pushed"
SYNC_NEEDS_REPLAY = "needs replay"


def find_git_dir(start: Optional[Union[str, Path]] = None) -> Path:
    """Find the shared git metadata directory for a path.

    Walks up from ``start`` looking for ``.git``. A ``.git`` file (linked
    worktrees, submodules) is followed through its ``gitdir:`` line and,
    when that directory has a ``commondir`` file, on to the shared
    metadata directory.

    Raises:
        NotARepositoryError: If no enclosing repository is found
    """
    current = Path(start or Path.cwd()).resolve()

    for candidate in (current, *current.parents):
        dot_git = candidate / ".git"
        if dot_git.is_dir():
            return dot_git
        if dot_git.is_file():
            return _follow_gitfile(dot_git)

    raise NotARepositoryError(f"Not a git repository: {current}")


def _follow_gitfile(gitfile: Path) -> Path:
    content = gitfile.read_text(encoding="utf-8").strip()
    if not content.startswith("gitdir:"):
        raise NotARepositoryError(f"Invalid gitfile: {gitfile}")

    gitdir = Path(content[len("gitdir:"):].strip())
    if not gitdir.is_absolute():
        gitdir = gitfile.parent / gitdir
    gitdir = gitdir.resolve()

    commondir_file = gitdir / "commondir"
    if commondir_file.is_file():
        common = Path(commondir_file.read_text(encoding="utf-8").strip())
        if not common.is_absolute():
            common = gitdir / common
        return common.resolve()
    return gitdir


class Repo:
    """Handle on a repository's beadwork branch and worktree.

    Args:
        git_dir: Shared git metadata directory
        git: Command runner; any object with GitRunner's ``run`` signature
    """

    def __init__(self, git_dir: Union[str, Path], git: Optional[GitRunner] = None):
        self.git_dir = Path(git_dir)
        self.repo_dir = self.git_dir.parent
        self.work_tree = self.git_dir / BRANCH_NAME
        self.git = git or GitRunner(self.repo_dir)
        self.prefix = ""
        if self.is_initialized:
            self._ensure_worktree()
            self.prefix = self.get_config("prefix") or derive_prefix(self.repo_dir.name)

    @classmethod
    def locate(cls, start: Optional[Union[str, Path]] = None, git: Optional[GitRunner] = None) -> "Repo":
        """Open the repository enclosing ``start`` (default: current directory)."""
        return cls(find_git_dir(start), git=git)

    # ------------------------------------------------------------------
    # Branch and worktree
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self.git.succeeds("show-ref", "--verify", "--quiet", LOCAL_REF)

    def require_initialized(self) -> None:
        if not self.is_initialized:
            raise NotInitializedError("beadwork not initialized. Run: bw init")

    def _ensure_worktree(self) -> None:
        """Re-attach the worktree if its checkout has gone missing."""
        if (self.work_tree / ".git").exists():
            return
        logger.info("Re-attaching beadwork worktree at %s", self.work_tree)
        self.git.run("worktree", "prune")
        if self.work_tree.exists():
            shutil.rmtree(self.work_tree)
        self.git.run("worktree", "add", str(self.work_tree), BRANCH_NAME)

    def _has_remote(self) -> bool:
        return REMOTE_NAME in self.git.run("remote").split()

    def _remote_branch_exists(self) -> bool:
        if not self._has_remote():
            return False
        try:
            out = self.git.run("ls-remote", "--heads", REMOTE_NAME, BRANCH_NAME)
        except GitCommandError as e:
            logger.warning("ls-remote failed, treating remote branch as absent: %s", e)
            return False
        return bool(out)

    def _write_skeleton_commit(self, prefix: str) -> str:
        """Build the initial tree with plumbing and return a parentless commit."""
        empty_blob = self.git.run("hash-object", "-w", "--stdin", input="")
        config_blob = self.git.run(
            "hash-object", "-w", "--stdin", input=f"prefix={prefix}\nversion={CURRENT_VERSION}\n"
        )
        keep_tree = self.git.run("mktree", input=f"100644 blob {empty_blob}\t{KEEP_FILE}\n")

        # Group skeleton dirs by their top-level component
        children: Dict[str, List[str]] = {}
        for rel in SKELETON_DIRS:
            top, _, rest = rel.partition("/")
            children.setdefault(top, [])
            if rest:
                children[top].append(rest)

        entries = [f"100644 blob {config_blob}\t{CONFIG_FILE}"]
        for top, subdirs in sorted(children.items()):
            if subdirs:
                listing = "".join(f"040000 tree {keep_tree}\t{d}\n" for d in sorted(subdirs))
                subtree = self.git.run("mktree", input=listing)
            else:
                subtree = keep_tree
            entries.append(f"040000 tree {subtree}\t{top}")

        root_tree = self.git.run("mktree", input="\n".join(entries) + "\n")
        return self.git.run("commit-tree", root_tree, "-m", "init beadwork")

    def init(self, prefix: str = "") -> None:
        """Create the beadwork branch and worktree.

        If ``origin`` already has a beadwork branch it is adopted (and its
        prefix used); otherwise a fresh branch is created with an empty
        skeleton and config.

        Args:
            prefix: ID prefix; derived from the repository name when empty

        Raises:
            AlreadyInitializedError: If the branch already exists
            ValidationError: If the prefix is invalid
        """
        if self.is_initialized:
            raise AlreadyInitializedError("beadwork already initialized")
        if prefix:
            validate_prefix(prefix)

        if self._remote_branch_exists():
            self.git.run("fetch", REMOTE_NAME, _FETCH_SPEC)
            self.git.run("branch", BRANCH_NAME, REMOTE_REF)
            self._ensure_worktree()
            self.prefix = self.get_config("prefix") or derive_prefix(self.repo_dir.name)
            logger.info("Adopted beadwork branch from %s (prefix %s)", REMOTE_NAME, self.prefix)
            return

        prefix = prefix or derive_prefix(self.repo_dir.name)
        commit = self._write_skeleton_commit(prefix)
        self.git.run("update-ref", LOCAL_REF, commit)
        self._ensure_worktree()
        self.prefix = prefix
        logger.info("Initialized beadwork branch (prefix %s)", prefix)

    def force_reinit(self, prefix: str = "") -> None:
        """Destroy the local beadwork branch and worktree, then init again."""
        if prefix:
            validate_prefix(prefix)

        if self.work_tree.exists():
            if not self.git.succeeds("worktree", "remove", "--force", str(self.work_tree)):
                shutil.rmtree(self.work_tree)
        self.git.run("worktree", "prune")
        if self.is_initialized:
            self.git.run("branch", "-D", BRANCH_NAME)

        self.prefix = ""
        self.init(prefix)

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    def commit(self, message: str) -> bool:
        """Stage everything in the worktree and commit it.

        Hooks are bypassed. Returns False, without committing, when nothing
        changed.
        """
        self.git.run("add", "-A", cwd=self.work_tree)
        if self.git.succeeds("diff", "--cached", "--quiet", cwd=self.work_tree):
            logger.debug("Nothing to commit for %r", message)
            return False
        self.git.run("commit", "--no-verify", "--quiet", "-m", message, cwd=self.work_tree)
        logger.info("Committed %r", message)
        return True

    def user_name(self) -> str:
        """git user.name, or "unknown" when unset."""
        try:
            name = self.git.run("config", "user.name")
        except GitCommandError:
            return "unknown"
        return name or "unknown"

    def all_commits(self) -> List[HistoryEntry]:
        """Every commit on the beadwork branch, oldest first."""
        out = self.git.run("log", "--reverse", f"--format={_LOG_FORMAT}", LOCAL_REF)
        entries = []
        for line in out.splitlines():
            commit_hash, timestamp, author, subject = line.split("\x1f", 3)
            when = datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
            entries.append(HistoryEntry(commit_hash, when.strftime("%Y-%m-%d %H:%M"), author, subject))
        return entries

    def history(self, issue_id: str, limit: int = 0) -> List[HistoryEntry]:
        """Commits whose intent names an issue, oldest first.

        An intent names the issue when the ID appears as one of its
        positional arguments or field values (a child's ``parent=``, for
        example). Subjects that are not intents are left out.

        Args:
            issue_id: Full issue ID
            limit: Keep only the most recent N entries; 0 keeps all

        Returns:
            List of HistoryEntry
        """
        matched = []
        for entry in self.all_commits():
            try:
                intent = parse_intent(entry.intent)
            except IntentSyntaxError:
                logger.debug("Skipping non-intent commit %s: %r", entry.hash, entry.intent)
                continue
            if issue_id in intent.args or issue_id in intent.fields.values():
                matched.append(entry)

        if limit > 0:
            matched = matched[-limit:]
        return matched

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def list_config(self) -> Dict[str, str]:
        """All key=value pairs from the worktree's config file."""
        path = self.work_tree / CONFIG_FILE
        if not path.is_file():
            return {}
        config = {}
        for line in path.read_text(encoding="utf-8").splitlines():
            key, sep, value = line.partition("=")
            if sep and key:
                config[key] = value
        return config

    def get_config(self, key: str) -> Optional[str]:
        return self.list_config().get(key)

    def set_config(self, key: str, value: str) -> None:
        """Write or replace one config key, keeping the others. Does not commit.

        Raises:
            ValidationError: If the key is not a valid intent field name, or
                the value contains a newline
        """
        if not is_field_name(key):
            raise ValidationError(f"Invalid config key {key!r}")
        if "\n" in value:
            raise ValidationError("Config values cannot contain newlines")

        config = self.list_config()
        config[key] = value
        lines = sorted(f"{k}={v}" for k, v in config.items())
        (self.work_tree / CONFIG_FILE).write_text("\n".join(lines) + "\n", encoding="utf-8")
        if key == "prefix":
            self.prefix = value

    def version(self) -> int:
        """Schema version from config; 0 when unset or not a number."""
        try:
            return int(self.get_config("version") or "")
        except ValueError:
            return 0

    def check_version(self) -> None:
        """Refuse to operate on a schema this build does not match.

        Raises:
            SchemaVersionError: With a hint naming the command that fixes it
        """
        version = self.version()
        if version < 0:
            raise SchemaVersionError(
                f"Invalid repository schema version {version}",
                hint="bw init --force",
            )
        if version > CURRENT_VERSION:
            raise SchemaVersionError(
                f"Repository schema v{version} is newer than this bw supports (v{CURRENT_VERSION})",
                hint="upgrade bw",
            )
        if version < CURRENT_VERSION:
            raise SchemaVersionError(
                f"Repository schema v{version} is older than this bw expects (v{CURRENT_VERSION})",
                hint="bw upgrade-repo",
            )

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def push(self) -> None:
        """Push the beadwork branch to origin."""
        self.git.run("push", "--no-verify", "--quiet", REMOTE_NAME, f"{LOCAL_REF}:{LOCAL_REF}")
        logger.info("Pushed %s to %s", BRANCH_NAME, REMOTE_NAME)

    def _count(self, revision_range: str) -> int:
        return int(self.git.run("rev-list", "--count", revision_range) or "0")

    def local_intents(self) -> List[str]:
        """Subjects of commits on the local branch but not the remote, oldest first."""
        out = self.git.run("log", "--reverse", "--format=%s", f"{REMOTE_REF}..{LOCAL_REF}")
        return [line for line in out.splitlines() if line.strip()]

    def sync(self) -> Tuple[str, List[str]]:
        """Exchange commits with origin.

        Returns:
            (status, intents). ``intents`` is non-empty only for
            "needs replay": the local changes that were dropped and must be
            re-applied with ``replay_intents`` before pushing.

        Raises:
            GitCommandError: If the remote cannot be reached
        """
        if not self._has_remote():
            return SYNC_NO_REMOTE, []

        try:
            self.git.run("fetch", "--quiet", REMOTE_NAME, _FETCH_SPEC)
        except GitCommandError as e:
            # An unreachable remote fails ls-remote too and that error propagates
            if self.git.run("ls-remote", "--heads", REMOTE_NAME, BRANCH_NAME):
                raise
            logger.info("Remote has no %s branch yet (%s); pushing", BRANCH_NAME, e)
            self.push()
            return SYNC_PUSHED, []

        ahead = self._count(f"{REMOTE_REF}..{LOCAL_REF}")
        behind = self._count(f"{LOCAL_REF}..{REMOTE_REF}")
        logger.debug("Sync: %d ahead, %d behind", ahead, behind)

        if ahead == 0:
            if behind:
                self.git.run("reset", "--hard", "--quiet", REMOTE_REF, cwd=self.work_tree)
            return SYNC_UP_TO_DATE, []

        if behind == 0:
            self.push()
            return SYNC_PUSHED, []

        intents = self.local_intents()
        if self.git.succeeds("rebase", "--no-verify", "--quiet", REMOTE_REF, cwd=self.work_tree):
            self.push()
            return SYNC_REBASED, []

        logger.info("Rebase conflicted; resetting to %s for replay of %d intents", REMOTE_REF, len(intents))
        self.git.run("rebase", "--abort", cwd=self.work_tree, check=False)
        self.git.run("reset", "--hard", "--quiet", REMOTE_REF, cwd=self.work_tree)
        return SYNC_NEEDS_REPLAY, intents
