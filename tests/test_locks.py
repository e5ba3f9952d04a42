"""Tests for lock detection against a hand-built commit history."""

from gitlanes.diff import Hunk, HunkLine
from gitlanes.locks import CommitHistory, CommittedHunk, detect_locks


def _modify(line_idx: int, total: int = 24, context: int = 3) -> Hunk:
    """Hunk replacing 0-based line ``line_idx`` with the given context."""
    lo = max(0, line_idx - context)
    hi = min(total, line_idx + context + 1)
    lines = [HunkLine(" ", f"line {i}\n") for i in range(lo, line_idx)]
    lines += [HunkLine("-", f"line {line_idx}\n"), HunkLine("+", "updated line\n")]
    lines += [HunkLine(" ", f"line {i}\n") for i in range(line_idx + 1, hi)]
    return Hunk(old_start=lo + 1, old_lines=hi - lo, new_start=lo + 1, new_lines=hi - lo, lines=lines)


def _history(*committed: CommittedHunk) -> CommitHistory:
    history = CommitHistory()
    for c in committed:
        history.hunks_by_path.setdefault(c.path, []).append(c)
    return history


class TestContextBoundary:
    """Commit at line 12 of a 24-line file, context window 3."""

    history = _history(CommittedHunk("c1", "b1", "file.txt", 12, 13))

    def test_edit_well_before_is_unlocked(self):
        assert detect_locks("file.txt", _modify(8), self.history, 3) == []

    def test_edit_well_after_is_unlocked(self):
        assert detect_locks("file.txt", _modify(16), self.history, 3) == []

    def test_edit_within_context_before_is_locked(self):
        locks = detect_locks("file.txt", _modify(10), self.history, 3)
        assert [l.commit_id for l in locks] == ["c1"]

    def test_edit_within_context_after_is_locked(self):
        locks = detect_locks("file.txt", _modify(14), self.history, 3)
        assert [l.commit_id for l in locks] == ["c1"]

    def test_other_file_is_unlocked(self):
        assert detect_locks("other.txt", _modify(12), self.history, 3) == []

    def test_zero_context_only_locks_direct_overlap(self):
        assert detect_locks("file.txt", _modify(11, context=0), self.history, 0) == []
        assert detect_locks("file.txt", _modify(12, context=0), self.history, 0) != []


class TestLockChain:
    def test_double_lock_keeps_history_order(self):
        history = _history(
            CommittedHunk("c1", "b1", "file.txt", 0, 1),
            CommittedHunk("c2", "b2", "file.txt", 6, 7),
        )
        locks = detect_locks("file.txt", _modify(3, total=7), history, 3)
        assert [(l.commit_id, l.branch_id) for l in locks] == [("c1", "b1"), ("c2", "b2")]

    def test_one_lock_per_commit(self):
        history = _history(
            CommittedHunk("c1", "b1", "file.txt", 2, 3),
            CommittedHunk("c1", "b1", "file.txt", 4, 5),
        )
        locks = detect_locks("file.txt", _modify(3, total=7), history, 3)
        assert [l.commit_id for l in locks] == ["c1"]

    def test_binary_commit_locks_whole_file(self):
        history = _history(CommittedHunk("c1", "b1", "logo.png", 0, 0, binary=True))
        binary = Hunk(0, 0, 0, 0, binary=True, new_blob="f" * 40)
        assert [l.commit_id for l in detect_locks("logo.png", binary, history, 3)] == ["c1"]
