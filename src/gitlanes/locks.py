"""Hunk lock detection.

An uncommitted hunk is *locked* to every commit, on any virtual branch,
whose changes it touches once widened by the diff context. Each commit's
changed lines are mapped into integration-tree coordinates, the same
coordinates the uncommitted diff's old side uses, so ranges from different
branches and commits can be compared directly.
"""

from __future__ import annotations

import heapq
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .diff import FileDiff, Hunk, project_range, ranges_overlap
from .models import Lock
from .repository import CommitInfo

if TYPE_CHECKING:
    from .models import VirtualBranch
    from .repository import ProjectRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommittedHunk:
    """Lines one commit changed in one file, in integration coordinates."""

    commit_id: str
    branch_id: str
    path: str
    lo: int
    hi: int
    binary: bool = False


@dataclass
class CommitHistory:
    """Committed hunks of all virtual branches, oldest commit first."""

    hunks_by_path: dict[str, list[CommittedHunk]] = field(default_factory=dict)
    chains: dict[str, list[CommitInfo]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        repo: "ProjectRepository",
        branches: list["VirtualBranch"],
        integration_tree: str,
    ) -> "CommitHistory":
        """Collect committed hunks of ``branches``.

        Args:
            repo: Project repository
            branches: Branches in creation order
            integration_tree: Tree the uncommitted diff is taken against
        """
        chains = {
            b.id: repo.commit_chain(b.base, b.head) if b.head else []
            for b in branches
        }

        # Commit time, then the order commits were made in; git timestamps
        # only have one-second resolution
        tagged = (
            [((c.committed_date, b.commit_order.get(c.id, 0)), b.id, c) for c in chains[b.id]]
            for b in branches
        )
        ordered = heapq.merge(*tagged, key=lambda item: item[0])

        hunks_by_path: dict[str, list[CommittedHunk]] = defaultdict(list)
        for _, branch_id, commit in ordered:
            parent_tree = repo.commit_tree(commit.parents[0]) if commit.parents else None
            if parent_tree is None:
                continue
            to_integration = _by_path(repo.diff_trees(commit.tree, integration_tree, 0))

            for file_diff in repo.diff_trees(parent_tree, commit.tree, 0):
                later = to_integration.get(file_diff.path)
                if later is not None and later.status == "deleted":
                    # Gone from the integration tree, nothing left to lock onto
                    continue
                for hunk in file_diff.hunks:
                    hunks_by_path[file_diff.path].append(
                        _committed_hunk(commit.id, branch_id, file_diff.path, hunk, later)
                    )

        logger.debug(
            f"Commit history: {sum(len(c) for c in chains.values())} commits, "
            f"{sum(len(h) for h in hunks_by_path.values())} hunks"
        )
        return cls(hunks_by_path=dict(hunks_by_path), chains=chains)

    def for_path(self, path: str) -> list[CommittedHunk]:
        return self.hunks_by_path.get(path, [])


def _by_path(file_diffs: list[FileDiff]) -> dict[str, FileDiff]:
    return {fd.path: fd for fd in file_diffs}


def _committed_hunk(
    commit_id: str,
    branch_id: str,
    path: str,
    hunk: Hunk,
    later: FileDiff | None,
) -> CommittedHunk:
    if hunk.binary:
        return CommittedHunk(commit_id, branch_id, path, 0, 0, binary=True)
    lo, hi = hunk.changed_new_range()
    if later is not None and later.hunks and not later.binary:
        lo, hi = project_range(lo, hi, later.hunks)
    return CommittedHunk(commit_id, branch_id, path, lo, hi)


def detect_locks(
    path: str,
    hunk: Hunk,
    history: CommitHistory,
    context_lines: int,
) -> list[Lock]:
    """Commits an uncommitted ``hunk`` of ``path`` depends on.

    The hunk's changed lines, widened by ``context_lines`` on each side,
    are tested against each committed hunk of the same file. Every commit
    appears at most once, in commit order.
    """
    committed = history.for_path(path)
    if not committed:
        return []

    lo, hi = hunk.changed_old_range()
    lo, hi = max(0, lo - context_lines), hi + context_lines

    locks: list[Lock] = []
    seen: set[str] = set()
    for c in committed:
        if c.commit_id in seen:
            continue
        if hunk.binary or c.binary or ranges_overlap(lo, hi, c.lo, c.hi):
            seen.add(c.commit_id)
            locks.append(Lock(commit_id=c.commit_id, branch_id=c.branch_id))
    return locks
