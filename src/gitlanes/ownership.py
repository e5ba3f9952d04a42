"""Ownership reconciliation.

Maps every hunk of the live uncommitted diff onto exactly one virtual
branch. Claims are keyed by hunk identity (a content hash); line ranges
stored alongside a claim are refreshed on every pass and never trusted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from .diff import FileDiff, Hunk, file_hunk_identities
from .errors import OwnershipError
from .locks import CommitHistory, detect_locks
from .models import (
    ClaimSelector,
    CommitSummary,
    FileClaim,
    HunkClaim,
    VirtualBranch,
    VirtualBranchFile,
    VirtualBranchHunk,
    VirtualBranchView,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class LiveHunk:
    """A hunk of the current uncommitted diff with its identity."""

    id: str
    path: str
    hunk: Hunk
    file: FileDiff


@dataclass
class ReconciledBranches:
    branches: list[VirtualBranch]
    views: list[VirtualBranchView]
    live: dict[str, LiveHunk] = field(default_factory=dict)
    changed: bool = False


def live_hunks(file_diffs: list[FileDiff]) -> dict[str, LiveHunk]:
    """Index the diff's hunks by identity, in diff order."""
    live: dict[str, LiveHunk] = {}
    for file_diff in file_diffs:
        for hunk_id, hunk in zip(file_hunk_identities(file_diff), file_diff.hunks):
            live[hunk_id] = LiveHunk(id=hunk_id, path=file_diff.path, hunk=hunk, file=file_diff)
    return live


def default_branch(branches: list[VirtualBranch]) -> VirtualBranch | None:
    """Branch that receives unclaimed hunks.

    The ``selected_for_changes`` branch if any, else the lowest ``order``
    (ties by creation time).
    """
    for branch in branches:
        if branch.selected_for_changes:
            return branch
    if not branches:
        return None
    return min(branches, key=lambda b: (b.order, b.created_at, b.id))


def reconcile(
    branches: list[VirtualBranch],
    file_diffs: list[FileDiff],
    history: CommitHistory,
    context_lines: int,
    now: datetime | None = None,
) -> ReconciledBranches:
    """Assign every live hunk to a branch and attach locks.

    Args:
        branches: Branch records as persisted
        file_diffs: Uncommitted diff against the integration tree
        history: Committed hunks of all branches
        context_lines: Context window the diff was taken with
        now: Timestamp for newly created claims

    Returns:
        Updated branch records (copies), their views, and whether any
        claim changed compared to ``branches``
    """
    now = now or utc_now()
    live = live_hunks(file_diffs)

    owner: dict[str, str] = {}
    claimed_at: dict[str, datetime] = {}
    for branch in branches:
        for file_claim in branch.ownership:
            for claim in file_claim.hunks:
                hunk = live.get(claim.id)
                if hunk is None or hunk.path != file_claim.path or claim.id in owner:
                    continue
                owner[claim.id] = branch.id
                claimed_at[claim.id] = claim.claimed_at

    fallback = default_branch(branches)
    unassigned = 0
    for hunk_id in live:
        if hunk_id in owner:
            continue
        if fallback is None:
            unassigned += 1
            continue
        owner[hunk_id] = fallback.id
        claimed_at[hunk_id] = now
        logger.debug(f"Assigned new hunk {hunk_id[:8]} to {fallback.name}")
    if unassigned:
        logger.warning(f"{unassigned} hunks have no virtual branch to go to")

    updated: list[VirtualBranch] = []
    changed = False
    for branch in branches:
        ownership = _branch_ownership(branch, live, owner, claimed_at)
        if [fc.model_dump() for fc in ownership] != [fc.model_dump() for fc in branch.ownership]:
            changed = True
        updated.append(branch.model_copy(update={"ownership": ownership}))

    ordered = sorted(updated, key=lambda b: (b.order, b.created_at, b.id))
    views = [_branch_view(b, live, history, context_lines) for b in ordered]
    return ReconciledBranches(branches=updated, views=views, live=live, changed=changed)


def _branch_ownership(
    branch: VirtualBranch,
    live: dict[str, LiveHunk],
    owner: dict[str, str],
    claimed_at: dict[str, datetime],
) -> list[FileClaim]:
    mine = [h for h in live.values() if owner.get(h.id) == branch.id]
    if not mine:
        return []

    # Existing files first, in their claim order; new files in diff order
    paths = [fc.path for fc in branch.ownership]
    for h in mine:
        if h.path not in paths:
            paths.append(h.path)

    ownership = []
    for path in paths:
        hunks = sorted((h for h in mine if h.path == path), key=lambda h: h.hunk.new_start)
        if hunks:
            ownership.append(
                FileClaim(path=path, hunks=[_claim(h, claimed_at[h.id]) for h in hunks])
            )
    return ownership


def _claim(live_hunk: LiveHunk, claimed_at: datetime) -> HunkClaim:
    hunk = live_hunk.hunk
    return HunkClaim(
        id=live_hunk.id,
        old_start=hunk.old_start,
        old_lines=hunk.old_lines,
        new_start=hunk.new_start,
        new_lines=hunk.new_lines,
        claimed_at=claimed_at,
    )


def _branch_view(
    branch: VirtualBranch,
    live: dict[str, LiveHunk],
    history: CommitHistory,
    context_lines: int,
) -> VirtualBranchView:
    files = []
    for file_claim in branch.ownership:
        hunks = []
        for claim in file_claim.hunks:
            live_hunk = live[claim.id]
            locks = detect_locks(file_claim.path, live_hunk.hunk, history, context_lines)
            hunks.append(
                VirtualBranchHunk(
                    id=claim.id,
                    diff=live_hunk.hunk.render(),
                    old_start=claim.old_start,
                    old_lines=claim.old_lines,
                    new_start=claim.new_start,
                    new_lines=claim.new_lines,
                    binary=live_hunk.hunk.binary,
                    locked=bool(locks),
                    locked_to=locks,
                )
            )
        files.append(VirtualBranchFile(path=file_claim.path, hunks=hunks))

    # Newest first, like git log
    commits = [
        CommitSummary(id=c.id, message=c.message, author=c.author, created_at=c.created_at)
        for c in reversed(history.chains.get(branch.id, []))
    ]

    return VirtualBranchView(
        id=branch.id,
        name=branch.name,
        notes=branch.notes,
        order=branch.order,
        head=branch.head,
        base=branch.base,
        selected_for_changes=branch.selected_for_changes,
        upstream=branch.upstream,
        files=files,
        commits=commits,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Moving claims
# ─────────────────────────────────────────────────────────────────────────────


def resolve_selectors(
    selectors: list[ClaimSelector],
    live: dict[str, LiveHunk],
) -> list[LiveHunk]:
    """Live hunks named by ``selectors``, in selector order.

    Raises:
        OwnershipError: If a selector names a hunk or file with no live change
    """
    selected: list[LiveHunk] = []
    seen: set[str] = set()
    for selector in selectors:
        in_file = [h for h in live.values() if h.path == selector.path]
        if not in_file:
            raise OwnershipError(f"No uncommitted changes in {selector.path}")
        if selector.hunk_ids is not None:
            known = {h.id for h in in_file}
            missing = [i for i in selector.hunk_ids if i not in known]
            if missing:
                raise OwnershipError(
                    f"Unknown hunk {missing[0][:12]} in {selector.path}"
                )
        for h in in_file:
            if selector.selects(h.id) and h.id not in seen:
                seen.add(h.id)
                selected.append(h)
    return selected


def move_claims(
    branches: list[VirtualBranch],
    target_id: str,
    hunks: list[LiveHunk],
    now: datetime | None = None,
) -> list[VirtualBranch]:
    """Move ``hunks`` onto branch ``target_id``, releasing other claims on them."""
    now = now or utc_now()
    moving = {h.id for h in hunks}

    result = []
    for branch in branches:
        ownership = []
        for fc in branch.ownership:
            kept = [c for c in fc.hunks if c.id not in moving]
            if branch.id == target_id:
                # Already owned hunks stay where they are
                kept = list(fc.hunks)
            if kept:
                ownership.append(FileClaim(path=fc.path, hunks=kept))

        if branch.id == target_id:
            owned = {c.id for fc in ownership for c in fc.hunks}
            for h in hunks:
                if h.id in owned:
                    continue
                file_claim = next((fc for fc in ownership if fc.path == h.path), None)
                if file_claim is None:
                    file_claim = FileClaim(path=h.path)
                    ownership.append(file_claim)
                file_claim.hunks.append(_claim(h, now))
                file_claim.hunks.sort(key=lambda c: c.new_start)

        result.append(branch.model_copy(update={"ownership": ownership}))
    return result
