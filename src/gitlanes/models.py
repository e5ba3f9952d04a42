"""Core data models for virtual branches.

Uses Pydantic v2 for validation, ULID for sortable unique IDs.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field
from ulid import ULID


def generate_id() -> str:
    """Generate a ULID (sortable, unique identifier)."""
    return str(ULID())


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


# ─────────────────────────────────────────────────────────────────────────────
# Ownership
# ─────────────────────────────────────────────────────────────────────────────


class Lock(BaseModel):
    """Dependency of an uncommitted hunk on a prior commit."""

    commit_id: str
    branch_id: str


class HunkClaim(BaseModel):
    """A branch's claim on one hunk.

    ``id`` is the persisted relation. The range is only the last value seen
    during reconciliation and is recomputed on every read.
    """

    id: str
    old_start: int = 0
    old_lines: int = 0
    new_start: int = 0
    new_lines: int = 0
    claimed_at: datetime = Field(default_factory=utc_now)


class FileClaim(BaseModel):
    """All hunks a branch claims within one file."""

    path: str
    hunks: list[HunkClaim] = Field(default_factory=list)

    def hunk_ids(self) -> list[str]:
        return [h.id for h in self.hunks]


class ClaimSelector(BaseModel):
    """Selects hunks of one file; ``hunk_ids=None`` selects the whole file."""

    path: str
    hunk_ids: list[str] | None = None

    def selects(self, hunk_id: str) -> bool:
        return self.hunk_ids is None or hunk_id in self.hunk_ids

    @classmethod
    def parse(cls, value: str) -> "ClaimSelector":
        """Parse ``path`` or ``path:id1,id2``.

        Raises:
            ValueError: If the path part is empty
        """
        path, sep, ids = value.rpartition(":")
        if not sep:
            path, ids = value, ""
        path = path.strip()
        if not path:
            raise ValueError(f"Invalid claim selector: {value!r}")
        hunk_ids = [i.strip() for i in ids.split(",") if i.strip()]
        return cls(path=path, hunk_ids=hunk_ids or None)


# ─────────────────────────────────────────────────────────────────────────────
# Branches
# ─────────────────────────────────────────────────────────────────────────────


class VirtualBranch(BaseModel):
    """A line of development overlaid on the shared working directory."""

    id: str = Field(default_factory=generate_id)
    name: str
    notes: str = ""
    order: int = 0
    head: str | None = None  # None until the first commit
    base: str  # merge-base with the integration target
    selected_for_changes: bool = False
    upstream: str | None = None
    ownership: list[FileClaim] = Field(default_factory=list)
    # commit id -> project-wide creation sequence, for commits made here
    commit_order: dict[str, int] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def effective_head(self) -> str:
        """Commit the branch currently builds on (head, or base if none)."""
        return self.head or self.base

    def claimed_hunk_ids(self) -> set[str]:
        return {h.id for fc in self.ownership for h in fc.hunks}

    def file_claim(self, path: str) -> FileClaim | None:
        for fc in self.ownership:
            if fc.path == path:
                return fc
        return None


class Target(BaseModel):
    """The integration target virtual branches are based on."""

    ref: str
    sha: str
    recorded_at: datetime = Field(default_factory=utc_now)


class BranchCreateRequest(BaseModel):
    name: str | None = None
    notes: str = ""
    order: int | None = None
    selected_for_changes: bool | None = None


class BranchUpdateRequest(BaseModel):
    id: str
    name: str | None = None
    notes: str | None = None
    order: int | None = None
    selected_for_changes: bool | None = None
    ownership: list[ClaimSelector] | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Reconciled views
# ─────────────────────────────────────────────────────────────────────────────


class VirtualBranchHunk(BaseModel):
    """An uncommitted hunk as seen by the caller."""

    id: str
    diff: str
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    binary: bool = False
    locked: bool = False
    locked_to: list[Lock] = Field(default_factory=list)


class VirtualBranchFile(BaseModel):
    path: str
    hunks: list[VirtualBranchHunk] = Field(default_factory=list)

    @property
    def locked(self) -> bool:
        return any(h.locked for h in self.hunks)


class CommitSummary(BaseModel):
    id: str
    message: str
    author: str
    created_at: datetime


class VirtualBranchView(BaseModel):
    """A virtual branch with its reconciled files, hunks and locks."""

    id: str
    name: str
    notes: str = ""
    order: int
    head: str | None
    base: str
    selected_for_changes: bool
    upstream: str | None = None
    files: list[VirtualBranchFile] = Field(default_factory=list)
    commits: list[CommitSummary] = Field(default_factory=list)

    def to_summary(self) -> dict:
        """Return a compact summary of this branch."""
        return {
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "head": self.head[:7] if self.head else None,
            "selected_for_changes": self.selected_for_changes,
            "file_count": len(self.files),
            "hunk_count": sum(len(f.hunks) for f in self.files),
            "locked_hunk_count": sum(1 for f in self.files for h in f.hunks if h.locked),
            "commit_count": len(self.commits),
        }
