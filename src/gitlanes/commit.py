"""Commit builder: turn a selection of claimed hunks into a real commit.

The selected hunks are applied onto the branch's own head tree, not onto
the working directory, so other branches' changes never leak into the
commit. No reference is moved; the caller repoints the branch head once
the commit object exists.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from git import Actor

from .constants import REGULAR_FILE_MODE
from .diff import ChangeBlock, project_range
from .errors import OwnershipError
from .locks import CommitHistory, detect_locks
from .models import ClaimSelector, FileClaim, VirtualBranch, utc_now
from .ownership import LiveHunk
from .patch import DEFAULT_SEARCH_WINDOW, apply_blocks, split_lines
from .repository import FileChange, decode_content, encode_content

if TYPE_CHECKING:
    from .repository import ProjectRepository

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    commit_id: str
    branch: VirtualBranch
    hunk_ids: list[str]


def select_hunks(
    branch: VirtualBranch,
    live: dict[str, LiveHunk],
    selectors: list[ClaimSelector] | None = None,
    history: CommitHistory | None = None,
    context_lines: int = 0,
    exclude_locked: bool = False,
) -> list[LiveHunk]:
    """Resolve which of the branch's hunks go into the commit.

    Without ``selectors`` every hunk the branch claims is taken. Locked
    hunks are included unless ``exclude_locked`` is set.

    Raises:
        OwnershipError: If a selector names a file or hunk the branch does
            not currently claim, or nothing is left to commit
    """
    if selectors is None:
        claims = [(fc.path, c.id) for fc in branch.ownership for c in fc.hunks]
    else:
        claims = []
        for selector in selectors:
            file_claim = branch.file_claim(selector.path)
            if file_claim is None:
                raise OwnershipError(
                    f"{selector.path} has no changes owned by {branch.name}",
                    branch_id=branch.id,
                )
            owned = file_claim.hunk_ids()
            for hunk_id in selector.hunk_ids or []:
                if hunk_id not in owned:
                    raise OwnershipError(
                        f"Hunk {hunk_id[:12]} in {selector.path} is not owned by {branch.name}",
                        branch_id=branch.id,
                    )
            claims.extend((selector.path, i) for i in owned if selector.selects(i))

    selected: list[LiveHunk] = []
    seen: set[str] = set()
    for path, hunk_id in claims:
        live_hunk = live.get(hunk_id)
        if live_hunk is None or hunk_id in seen:
            continue
        if exclude_locked and history is not None:
            if detect_locks(path, live_hunk.hunk, history, context_lines):
                logger.info(f"Leaving locked hunk {hunk_id[:8]} in {path} out of the commit")
                continue
        seen.add(hunk_id)
        selected.append(live_hunk)

    if not selected:
        raise OwnershipError(f"Nothing to commit on {branch.name}", branch_id=branch.id)
    return selected


def build_tree(
    repo: "ProjectRepository",
    branch: VirtualBranch,
    selected: list[LiveHunk],
    integration_tree: str,
) -> str:
    """Tree of the branch head with ``selected`` applied.

    Hunk positions refer to the integration tree. Each change block is
    mapped onto the head tree through the zero-context diff between the
    two before it is applied.

    Raises:
        PatchApplyError: If a block's removed lines are not in the head file
    """
    head_tree = repo.commit_tree(branch.effective_head)
    to_head = {
        fd.path: fd for fd in repo.diff_trees(integration_tree, head_tree, context_lines=0)
    }

    by_path: dict[str, list[LiveHunk]] = defaultdict(list)
    for live_hunk in selected:
        by_path[live_hunk.path].append(live_hunk)

    changes: list[FileChange] = []
    for path, hunks in by_path.items():
        file_diff = hunks[0].file
        if file_diff.status == "deleted":
            changes.append(FileChange(path=path, deleted=True))
            continue

        entry = repo.tree_entry(head_tree, path)
        mode = file_diff.new_mode or (entry[0] if entry else REGULAR_FILE_MODE)

        if file_diff.binary:
            changes.append(FileChange(path=path, blob=file_diff.new_blob, mode=mode))
            continue

        shifts = to_head[path].hunks if path in to_head else []
        blocks = []
        for live_hunk in hunks:
            for block in live_hunk.hunk.change_blocks():
                lo, _ = project_range(block.old_lo, block.old_hi, shifts)
                blocks.append(ChangeBlock(lo, block.new_lo, block.removed, block.added))

        current = repo.read_blob(head_tree, path) or b""
        lines = apply_blocks(
            split_lines(decode_content(current)), blocks, DEFAULT_SEARCH_WINDOW, path
        )
        changes.append(
            FileChange(path=path, content=encode_content("".join(lines)), mode=mode)
        )

    return repo.write_tree(head_tree, changes)


def commit_hunks(
    repo: "ProjectRepository",
    branch: VirtualBranch,
    message: str,
    selected: list[LiveHunk],
    integration_tree: str,
    author: Actor,
    committer: Actor,
) -> CommitResult:
    """Create the commit and return the branch as it should be saved.

    The returned branch points at the new commit and no longer claims the
    committed hunks. Nothing is persisted here.
    """
    tree = build_tree(repo, branch, selected, integration_tree)
    commit_id = repo.create_commit(branch.effective_head, tree, message, author, committer)

    committed = {h.id for h in selected}
    ownership = []
    for fc in branch.ownership:
        remaining = [c for c in fc.hunks if c.id not in committed]
        if remaining:
            ownership.append(FileClaim(path=fc.path, hunks=remaining))

    updated = branch.model_copy(
        update={"head": commit_id, "ownership": ownership, "updated_at": utc_now()}
    )
    logger.info(
        f"Committed {len(selected)} hunks to {branch.name} as {commit_id[:7]}: "
        f"{message.splitlines()[0] if message else ''}"
    )
    return CommitResult(commit_id=commit_id, branch=updated, hunk_ids=sorted(committed))
