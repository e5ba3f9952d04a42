"""Branch reset: move a head back and hand the dropped changes to reconciliation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .diff import FileDiff
from .errors import InvalidTargetError, ObjectError
from .models import VirtualBranch, utc_now

if TYPE_CHECKING:
    from .repository import ProjectRepository

logger = logging.getLogger(__name__)


def decompose(
    repo: "ProjectRepository", target: str, head: str, context_lines: int
) -> list[FileDiff]:
    """Cumulative changes of the commits between ``target`` and ``head``."""
    return repo.diff_trees(repo.commit_tree(target), repo.commit_tree(head), context_lines)


def reset_branch(
    repo: "ProjectRepository",
    branch: VirtualBranch,
    target_commit: str,
    context_lines: int,
) -> tuple[VirtualBranch, list[FileDiff]]:
    """Point ``branch`` at ``target_commit``.

    The working directory is left alone: it already holds the content of
    the discarded commits, which therefore turns into uncommitted changes
    on the next reconciliation.

    Returns:
        The updated branch (not yet saved) and the re-exposed file changes

    Raises:
        InvalidTargetError: If ``target_commit`` does not lie between the
            branch base and its head
    """
    try:
        target = repo.resolve(target_commit)
    except ObjectError as e:
        raise InvalidTargetError(
            f"Unknown reset target {target_commit}", branch_id=branch.id
        ) from e

    head = branch.effective_head
    if not (repo.is_ancestor(branch.base, target) and repo.is_ancestor(target, head)):
        raise InvalidTargetError(
            f"{target[:7]} is not an ancestor of {branch.name} ({head[:7]})",
            branch_id=branch.id,
        )

    reexposed = decompose(repo, target, head, context_lines)
    kept = {c.id for c in repo.commit_chain(branch.base, target)}
    updated = branch.model_copy(
        update={
            "head": None if target == branch.base else target,
            "commit_order": {k: v for k, v in branch.commit_order.items() if k in kept},
            "updated_at": utc_now(),
        }
    )
    logger.debug(f"Moving {branch.name} from {head[:7]} to {target[:7]}")
    return updated, reexposed
