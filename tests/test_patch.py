"""Tests for content-level hunk application and branch combination."""

import pytest

from gitlanes.diff import ChangeBlock
from gitlanes.errors import ConflictError, PatchApplyError
from gitlanes.patch import apply_blocks, combine_blocks, split_lines


class TestSplitLines:
    def test_keeps_terminators(self):
        assert split_lines("a\nb\n") == ["a\n", "b\n"]

    def test_last_line_without_newline(self):
        assert split_lines("a\nb") == ["a\n", "b"]

    def test_empty(self):
        assert split_lines("") == []

    def test_carriage_returns_stay_in_line(self):
        assert split_lines("a\r\nb") == ["a\r\n", "b"]


class TestApplyBlocks:
    def test_replace(self):
        lines = ["a\n", "b\n", "c\n"]
        block = ChangeBlock(old_lo=1, new_lo=1, removed=["b\n"], added=["B\n"])
        assert apply_blocks(lines, [block]) == ["a\n", "B\n", "c\n"]

    def test_insert_and_delete(self):
        lines = ["a\n", "b\n", "c\n"]
        blocks = [
            ChangeBlock(old_lo=3, new_lo=3, added=["d\n"]),
            ChangeBlock(old_lo=0, new_lo=0, removed=["a\n"]),
        ]
        assert apply_blocks(lines, blocks) == ["b\n", "c\n", "d\n"]

    def test_mismatch_raises(self):
        block = ChangeBlock(old_lo=0, new_lo=0, removed=["x\n"], added=["y\n"])
        with pytest.raises(PatchApplyError):
            apply_blocks(["a\n"], [block], path="f.txt")

    def test_search_window_finds_shifted_lines(self):
        lines = ["new\n", "a\n", "b\n"]
        block = ChangeBlock(old_lo=0, new_lo=0, removed=["a\n"], added=["A\n"])
        assert apply_blocks(lines, [block], search_window=2) == ["new\n", "A\n", "b\n"]

    def test_no_search_without_window(self):
        lines = ["new\n", "a\n"]
        block = ChangeBlock(old_lo=0, new_lo=0, removed=["a\n"], added=["A\n"])
        with pytest.raises(PatchApplyError):
            apply_blocks(lines, [block])


class TestCombineBlocks:
    def test_disjoint_blocks_from_two_branches(self):
        first = ChangeBlock(old_lo=0, new_lo=0, removed=["a\n"], added=["A\n"])
        second = ChangeBlock(old_lo=4, new_lo=4, removed=["e\n"], added=["E\n"])
        combined = combine_blocks([("b1", [second]), ("b2", [first])], "f.txt")
        assert combined == [first, second]

    def test_overlapping_blocks_conflict(self):
        first = ChangeBlock(old_lo=0, new_lo=0, removed=["a\n", "b\n"], added=[])
        second = ChangeBlock(old_lo=1, new_lo=1, removed=["b\n"], added=["B\n"])
        with pytest.raises(ConflictError):
            combine_blocks([("b1", [first]), ("b2", [second])], "f.txt")

    def test_insertions_at_same_point_conflict(self):
        first = ChangeBlock(old_lo=2, new_lo=2, added=["x\n"])
        second = ChangeBlock(old_lo=2, new_lo=2, added=["y\n"])
        with pytest.raises(ConflictError):
            combine_blocks([("b1", [first]), ("b2", [second])], "f.txt")

    def test_conflict_is_a_repository_error(self):
        from gitlanes.errors import RepositoryError

        assert issubclass(ConflictError, RepositoryError)
