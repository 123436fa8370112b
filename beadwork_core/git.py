"""Git command execution for beadwork.

Everything beadwork does to the repository goes through ``GitRunner.run``.
Anything with the same ``run`` signature can stand in for it, which is how
tests exercise the backend without a real repository when they need to.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional, Union

from beadwork_core.exceptions import GitCommandError

__all__ = ["GitRunner"]

logger = logging.getLogger(__name__)


class GitRunner:
    """Runs git subprocesses in a fixed working directory.

    Args:
        cwd: Default working directory for every command
        executable: git binary; defaults to ``$BW_GIT`` or ``git``
    """

    def __init__(self, cwd: Union[str, Path], executable: Optional[str] = None):
        self.cwd = Path(cwd)
        self.executable = executable or os.environ.get("BW_GIT", "git")

    def run(
        self,
        *args: str,
        cwd: Optional[Union[str, Path]] = None,
        check: bool = True,
        input: Optional[str] = None,
    ) -> str:
        """Run ``git <args>`` and return its stripped stdout.

        Args:
            *args: git arguments
            cwd: Working directory override (e.g. the beadwork worktree)
            check: Raise on non-zero exit when True
            input: Text fed to stdin

        Returns:
            Standard output with surrounding whitespace removed

        Raises:
            GitCommandError: If the command fails and check is True
        """
        workdir = Path(cwd) if cwd is not None else self.cwd
        logger.debug("git %s (cwd=%s)", " ".join(args), workdir)

        proc = subprocess.run(
            [self.executable, *args],
            cwd=workdir,
            text=True,
            capture_output=True,
            input=input,
            check=False,
        )
        if check and proc.returncode != 0:
            output = (proc.stderr or "") + (proc.stdout or "")
            raise GitCommandError(args, proc.returncode, output)
        return proc.stdout.strip()

    def succeeds(self, *args: str, cwd: Optional[Union[str, Path]] = None) -> bool:
        """Run a git command and report whether it exited zero."""
        try:
            self.run(*args, cwd=cwd)
        except GitCommandError:
            return False
        return True
