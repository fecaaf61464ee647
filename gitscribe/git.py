"""Git operations for gitscribe.

This is the git-integration collaborator: it reads repository state into a
:class:`~gitscribe.prompt.DiffContext` and applies the final commit. The
generation core never calls git itself.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional

from .exceptions import GitError
from .prompt import DiffContext

logger = logging.getLogger(__name__)


def find_git_repo_root(start_path: Optional[Path] = None) -> Optional[Path]:
    """Return the top-level Git repository directory for ``start_path``.

    Attempts ``git rev-parse --show-toplevel`` first so worktrees and
    submodules are handled correctly. Falls back to walking parent
    directories looking for a ``.git`` directory or file. Returns ``None``
    when no Git repository can be found starting from ``start_path``.
    """

    path = Path(start_path or Path.cwd()).expanduser().resolve(strict=False)
    if path.is_file():
        path = path.parent

    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=path,
            capture_output=True,
            text=True,
            check=True,
        )
        top = result.stdout.strip()
        if top:
            return Path(top)
    except (subprocess.CalledProcessError, FileNotFoundError):
        logger.debug("git rev-parse failed in %s, walking parents", path)

    for candidate in (path, *path.parents):
        if (candidate / ".git").exists():
            return candidate

    return None


class GitRepo:
    """Reads staged state from, and commits to, one repository."""

    def __init__(self, repo_path: Optional[str] = None) -> None:
        self.repo_path = Path(repo_path or ".").expanduser().resolve(strict=False)
        if not self._is_git_repo():
            raise GitError(f"Not a Git repository: {self.repo_path}")

    def _is_git_repo(self) -> bool:
        try:
            self._run_git_command(["rev-parse", "--git-dir"])
            return True
        except GitError:
            return False

    def _run_git_command(self, args: list[str]) -> str:
        """Run a Git command and return its stripped output."""
        try:
            result = subprocess.run(
                ["git"] + args,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=True,
                encoding="utf-8",
                errors="replace",
            )
            return result.stdout.strip()
        except subprocess.CalledProcessError as e:
            cmd = " ".join(args)
            raise GitError(f"Git command failed: {cmd}\n{e.stderr}") from e
        except FileNotFoundError as exc:
            raise GitError("Git command not found. Please install Git.") from exc

    def get_staged_diff(self) -> str:
        """Get the diff of staged changes."""
        return self._run_git_command(["diff", "--cached"])

    def has_staged_changes(self) -> bool:
        return bool(self.get_staged_diff().strip())

    def get_branch_name(self) -> str:
        """Current branch, also on an unborn branch; ``HEAD`` when detached."""
        try:
            return self._run_git_command(["symbolic-ref", "--short", "HEAD"])
        except GitError:
            return self._run_git_command(["rev-parse", "--short", "HEAD"])

    def get_recent_commit_subjects(self, count: int = 5) -> list[str]:
        """Subjects of the last ``count`` commits, newest first."""
        if count <= 0:
            return []
        try:
            output = self._run_git_command(["log", f"-{count}", "--pretty=%s"])
        except GitError:
            # No commits yet
            return []
        return output.split("\n") if output else []

    def list_staged_files(self) -> list[tuple[str, str]]:
        """Return (status, path) pairs for staged entries."""
        output = self._run_git_command(["diff", "--cached", "--name-status"])
        entries: list[tuple[str, str]] = []
        for line in output.split("\n"):
            if not line.strip():
                continue
            status, _, rest = line.partition("\t")
            # Renames and copies list "old<TAB>new"; keep the new path
            path = rest.split("\t")[-1]
            if path:
                entries.append((status.strip(), path))
        return entries

    def commit(self, message: str) -> str:
        """Create a commit with the given message and return its short hash."""
        self._run_git_command(["commit", "-m", message])
        return self._run_git_command(["rev-parse", "--short", "HEAD"])

    def build_diff_context(
        self, hint: Optional[str] = None, recent_count: int = 5
    ) -> DiffContext:
        """Collect everything the prompt builder needs from this repository."""
        files = self.list_staged_files()
        file_list = "\n".join(f"{status}\t{path}" for status, path in files)
        return DiffContext(
            branch_name=self.get_branch_name(),
            diff=self.get_staged_diff(),
            hint=hint or None,
            recent_commits=tuple(self.get_recent_commit_subjects(recent_count)),
            staged_file_list=file_list or None,
        )
