"""Error hierarchy for virtual branch operations.

Every error raised by gitlanes derives from :class:`GitLanesError`. The
controller fills in ``operation``, ``project`` and ``branch_id`` before the
error reaches the caller, so a CLI or tool server can report where it came
from without parsing the message.
"""

from __future__ import annotations


class GitLanesError(Exception):
    """Base class for all gitlanes errors."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        project: str | None = None,
        branch_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.project = project
        self.branch_id = branch_id

    def with_context(
        self,
        operation: str | None = None,
        project: str | None = None,
        branch_id: str | None = None,
    ) -> "GitLanesError":
        """Attach operation context without overwriting what is already set."""
        self.operation = self.operation or operation
        self.project = self.project or project
        self.branch_id = self.branch_id or branch_id
        return self

    def __str__(self) -> str:
        parts = []
        if self.operation:
            parts.append(self.operation)
        if self.project:
            parts.append(f"project={self.project}")
        if self.branch_id:
            parts.append(f"branch={self.branch_id}")
        if not parts:
            return self.message
        return f"{self.message} ({', '.join(parts)})"

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "operation": self.operation,
            "project": self.project,
            "branch_id": self.branch_id,
        }


class OwnershipError(GitLanesError):
    """A claim references a hunk the branch does not currently own."""


class InvalidTargetError(GitLanesError):
    """Reset target is not an ancestor of the branch head."""


class BranchNotFoundError(GitLanesError):
    """No virtual branch with the given id."""


class TargetNotSetError(GitLanesError):
    """The project has no integration target yet (run set_base_branch)."""


class ConcurrentModificationError(GitLanesError):
    """Branch metadata changed between the read and the write of an operation.

    Callers should re-fetch and retry; gitlanes never retries on its own.
    """


class RepositoryError(GitLanesError):
    """Building a tree or a commit failed."""


class ObjectError(RepositoryError):
    """The object store failed (I/O, corruption, unknown object)."""


class PatchApplyError(RepositoryError):
    """A hunk could not be placed onto the target tree."""


class ConflictError(RepositoryError):
    """Committed changes of two virtual branches overlap."""


class HookError(GitLanesError):
    """A git hook rejected the commit."""


class RemoteError(GitLanesError):
    """Pushing to the remote failed."""
