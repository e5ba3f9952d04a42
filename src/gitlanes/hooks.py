"""Run the repository's commit hooks for virtual-branch commits."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from pathlib import Path

from .errors import HookError

logger = logging.getLogger(__name__)


class HookRunner:
    """Runs ``pre-commit`` and ``commit-msg`` from a hooks directory.

    Missing or non-executable hooks are skipped, as git does.
    """

    def __init__(self, hooks_dir: Path, worktree: Path):
        self.hooks_dir = hooks_dir
        self.worktree = worktree

    def _hook(self, name: str) -> Path | None:
        path = self.hooks_dir / name
        if path.is_file() and os.access(path, os.X_OK):
            return path
        return None

    def _run(self, name: str, *args: str) -> None:
        hook = self._hook(name)
        if hook is None:
            return
        try:
            result = subprocess.run(
                [str(hook), *args],
                capture_output=True,
                text=True,
                cwd=self.worktree,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise HookError(f"Could not run {name} hook: {e}") from e

        output = (result.stdout + result.stderr).strip()
        if result.returncode != 0:
            raise HookError(f"{name} hook failed (exit {result.returncode}): {output}")
        if output:
            logger.warning(f"{name} hook: {output}")

    def pre_commit(self) -> None:
        """Raises HookError if the hook rejects the commit."""
        self._run("pre-commit")

    def commit_msg(self, message: str) -> str:
        """Let the hook validate or rewrite ``message``; return the result."""
        if self._hook("commit-msg") is None:
            return message

        fd, path = tempfile.mkstemp(prefix="COMMIT_EDITMSG-")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(message)
            self._run("commit-msg", path)
            return Path(path).read_text()
        finally:
            Path(path).unlink(missing_ok=True)
