"""Content-level hunk application.

Hunks are applied change block by change block rather than with
``git apply``: context lines of an uncommitted hunk describe the
integration state, which other branches may have changed, so only the
removed lines are checked against the destination.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

from .constants import REGULAR_FILE_MODE
from .diff import ChangeBlock, FileDiff
from .errors import ConflictError, PatchApplyError
from .repository import FileChange, decode_content, encode_content

if TYPE_CHECKING:
    from .models import VirtualBranch
    from .repository import ProjectRepository

logger = logging.getLogger(__name__)

# How far (in lines) a block may be found away from its expected position.
DEFAULT_SEARCH_WINDOW = 50


def split_lines(content: str) -> list[str]:
    """Split on ``\\n`` only, keeping terminators (git's notion of a line)."""
    if not content:
        return []
    parts = content.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def apply_blocks(
    lines: list[str],
    blocks: list[ChangeBlock],
    search_window: int = 0,
    path: str = "",
) -> list[str]:
    """Apply change blocks to ``lines``.

    Args:
        lines: File content split with :func:`split_lines`
        blocks: Non-overlapping blocks, positions relative to ``lines``
        search_window: Lines to search around the expected position when
            the removed lines are not found exactly there
        path: For error messages only

    Returns:
        The new file content as a list of lines

    Raises:
        PatchApplyError: If a block's removed lines cannot be located
    """
    out: list[str] = []
    cursor = 0
    for block in sorted(blocks, key=lambda b: b.old_lo):
        pos = _locate(lines, block, cursor, search_window)
        if pos is None:
            raise PatchApplyError(
                f"Hunk at line {block.old_lo + 1} of {path or '<file>'} does not apply"
            )
        out.extend(lines[cursor:pos])
        out.extend(block.added)
        cursor = pos + len(block.removed)
    out.extend(lines[cursor:])
    return out


def _locate(lines: list[str], block: ChangeBlock, cursor: int, window: int) -> int | None:
    size = len(block.removed)

    def fits(pos: int) -> bool:
        if pos < cursor or pos + size > len(lines):
            return False
        return lines[pos:pos + size] == block.removed

    if fits(block.old_lo):
        return block.old_lo
    # Pure insertions carry nothing to search for
    if size == 0:
        return None
    for offset in range(1, window + 1):
        for pos in (block.old_lo - offset, block.old_lo + offset):
            if fits(pos):
                return pos
    return None


def combine_blocks(per_branch: list[tuple[str, list[ChangeBlock]]], path: str) -> list[ChangeBlock]:
    """Merge the blocks of several branches that share one base file.

    Raises:
        ConflictError: If blocks of different branches overlap
    """
    tagged = [(branch_id, block) for branch_id, blocks in per_branch for block in blocks]
    tagged.sort(key=lambda item: (item[1].old_lo, item[1].old_hi))

    for (prev_id, prev), (cur_id, cur) in zip(tagged, tagged[1:]):
        if prev_id == cur_id:
            continue
        same_insertion_point = prev.old_lo == cur.old_lo and not prev.removed and not cur.removed
        if cur.old_lo < prev.old_hi or same_insertion_point:
            raise ConflictError(
                f"Branches {prev_id} and {cur_id} both change {path} around line {cur.old_lo + 1}"
            )
    return [block for _, block in tagged]


def file_blocks(file_diff: FileDiff) -> list[ChangeBlock]:
    return [block for hunk in file_diff.hunks for block in hunk.change_blocks()]


def build_integration_tree(
    repo: "ProjectRepository",
    base_sha: str,
    branches: list["VirtualBranch"],
) -> str:
    """Tree of the target base with every branch's commits applied.

    A path changed by a single branch takes that branch's blob directly;
    paths touched by several branches are combined block by block.

    Raises:
        ConflictError: If two branches change the same lines or the same
            binary file, or one deletes a file another modifies
    """
    base_tree = repo.commit_tree(base_sha)
    by_path: dict[str, list[tuple[str, FileDiff]]] = defaultdict(list)

    for branch in branches:
        if branch.head is None or branch.head == base_sha:
            continue
        head_tree = repo.commit_tree(branch.head)
        for file_diff in repo.diff_trees(base_tree, head_tree, context_lines=0):
            by_path[file_diff.path].append((branch.id, file_diff))

    if not by_path:
        return base_tree

    changes: list[FileChange] = []
    for path in sorted(by_path):
        entries = by_path[path]
        if len(entries) == 1:
            changes.append(_take_branch_version(path, entries[0][1]))
            continue

        owners = ", ".join(branch_id for branch_id, _ in entries)
        if any(fd.binary or fd.status == "deleted" for _, fd in entries):
            raise ConflictError(f"Branches {owners} all change {path}")

        base_entry = repo.tree_entry(base_tree, path)
        base_content = repo.read_blob(base_tree, path) or b""
        blocks = combine_blocks([(bid, file_blocks(fd)) for bid, fd in entries], path)
        merged = apply_blocks(split_lines(decode_content(base_content)), blocks, path=path)

        mode = next((fd.new_mode for _, fd in entries if fd.new_mode), None)
        if mode is None:
            mode = base_entry[0] if base_entry else REGULAR_FILE_MODE
        changes.append(FileChange(path=path, content=encode_content("".join(merged)), mode=mode))

    tree = repo.write_tree(base_tree, changes)
    logger.debug(f"Integration tree {tree[:7]} from {len(branches)} branches")
    return tree


def _take_branch_version(path: str, file_diff: FileDiff) -> FileChange:
    if file_diff.status == "deleted":
        return FileChange(path=path, deleted=True)
    return FileChange(
        path=path,
        blob=file_diff.new_blob,
        mode=file_diff.new_mode or REGULAR_FILE_MODE,
    )
