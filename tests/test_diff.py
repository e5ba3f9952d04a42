"""Tests for unified diff parsing, hunk identity and range projection."""

from gitlanes.diff import (
    Hunk,
    HunkLine,
    file_hunk_identities,
    hunk_identity,
    parse_unified_diff,
    project_range,
    ranges_overlap,
)


MODIFIED = """\
diff --git a/file.txt b/file.txt
index 1111111111111111111111111111111111111111..2222222222222222222222222222222222222222 100644
--- a/file.txt
+++ b/file.txt
@@ -2,5 +2,5 @@ section
 line 1
 line 2
 line 3
-line 4
+changed 4
 line 5
"""

ADDED_NO_NEWLINE = """\
diff --git a/new.txt b/new.txt
new file mode 100644
index 0000000000000000000000000000000000000000..3333333333333333333333333333333333333333
--- /dev/null
+++ b/new.txt
@@ -0,0 +1 @@
+content
\\ No newline at end of file
"""

DELETED_AND_BINARY = """\
diff --git a/gone.txt b/gone.txt
deleted file mode 100644
index 4444444444444444444444444444444444444444..0000000000000000000000000000000000000000
--- a/gone.txt
+++ /dev/null
@@ -1,2 +0,0 @@
-a
-b
diff --git a/image.png b/image.png
index 5555555555555555555555555555555555555555..6666666666666666666666666666666666666666 100644
Binary files a/image.png and b/image.png differ
"""


def _hunk(old_start, old_lines, new_start, new_lines):
    return Hunk(old_start=old_start, old_lines=old_lines, new_start=new_start, new_lines=new_lines)


# ─────────────────────────────────────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────────────────────────────────────


class TestParse:
    def test_modified_file(self):
        files = parse_unified_diff(MODIFIED)
        assert len(files) == 1
        fd = files[0]
        assert fd.path == "file.txt"
        assert fd.status == "modified"
        assert fd.new_mode == "100644"
        assert fd.new_blob == "2" * 40

        hunk = fd.hunks[0]
        assert (hunk.old_start, hunk.old_lines, hunk.new_start, hunk.new_lines) == (2, 5, 2, 5)
        assert hunk.section == " section"
        assert [l.origin for l in hunk.lines] == [" ", " ", " ", "-", "+", " "]
        assert hunk.lines[3].text == "line 4\n"

    def test_change_blocks_and_ranges(self):
        hunk = parse_unified_diff(MODIFIED)[0].hunks[0]
        blocks = hunk.change_blocks()
        assert len(blocks) == 1
        assert blocks[0].old_lo == 4
        assert blocks[0].removed == ["line 4\n"]
        assert blocks[0].added == ["changed 4\n"]
        assert hunk.changed_old_range() == (4, 5)
        assert hunk.changed_new_range() == (4, 5)

    def test_added_file_without_trailing_newline(self):
        fd = parse_unified_diff(ADDED_NO_NEWLINE)[0]
        assert fd.status == "added"
        assert fd.new_mode == "100644"
        hunk = fd.hunks[0]
        assert hunk.old_lo == 0 and hunk.old_hi == 0
        assert hunk.new_lo == 0 and hunk.new_hi == 1
        assert hunk.lines == [HunkLine("+", "content")]

    def test_deleted_and_binary(self):
        deleted, binary = parse_unified_diff(DELETED_AND_BINARY)
        assert deleted.path == "gone.txt"
        assert deleted.status == "deleted"
        assert deleted.hunks[0].change_blocks()[0].removed == ["a\n", "b\n"]

        assert binary.path == "image.png"
        assert binary.binary is True
        assert len(binary.hunks) == 1
        assert binary.hunks[0].binary is True
        assert binary.hunks[0].new_blob == "6" * 40

    def test_quoted_path(self):
        text = (
            'diff --git "a/with space\\303\\251.txt" "b/with space\\303\\251.txt"\n'
            "index 1111111111111111111111111111111111111111..2222222222222222222222222222222222222222 100644\n"
            '--- "a/with space\\303\\251.txt"\n'
            '+++ "b/with space\\303\\251.txt"\n'
            "@@ -1 +1 @@\n"
            "-x\n"
            "+y\n"
        )
        fd = parse_unified_diff(text)[0]
        assert fd.path == "with spaceé.txt"

    def test_empty_output(self):
        assert parse_unified_diff("") == []


class TestRender:
    def test_render_round_trips_no_newline_marker(self):
        hunk = parse_unified_diff(ADDED_NO_NEWLINE)[0].hunks[0]
        assert hunk.render() == "@@ -0,0 +1,1 @@\n+content\n\\ No newline at end of file\n"


# ─────────────────────────────────────────────────────────────────────────────
# Identity
# ─────────────────────────────────────────────────────────────────────────────


class TestIdentity:
    def test_identity_ignores_line_numbers_and_context(self):
        a = Hunk(1, 3, 1, 3, lines=[HunkLine(" ", "x\n"), HunkLine("-", "a\n"), HunkLine("+", "b\n")])
        b = Hunk(40, 2, 41, 2, lines=[HunkLine("-", "a\n"), HunkLine("+", "b\n"), HunkLine(" ", "z\n")])
        assert hunk_identity("f.txt", a) == hunk_identity("f.txt", b)

    def test_identity_depends_on_path(self):
        hunk = Hunk(1, 1, 1, 1, lines=[HunkLine("-", "a\n"), HunkLine("+", "b\n")])
        assert hunk_identity("one.txt", hunk) != hunk_identity("two.txt", hunk)

    def test_identity_normalizes_line_endings(self):
        crlf = Hunk(1, 1, 1, 1, lines=[HunkLine("+", "b\r\n")])
        lf = Hunk(1, 1, 1, 1, lines=[HunkLine("+", "b\n")])
        assert hunk_identity("f", crlf) == hunk_identity("f", lf)

    def test_duplicate_hunks_get_distinct_ids(self):
        text = (
            "diff --git a/f b/f\n"
            "index 1111111111111111111111111111111111111111..2222222222222222222222222222222222222222 100644\n"
            "--- a/f\n"
            "+++ b/f\n"
            "@@ -1,0 +2 @@\n"
            "+dup\n"
            "@@ -9,0 +11 @@\n"
            "+dup\n"
        )
        ids = file_hunk_identities(parse_unified_diff(text)[0])
        assert len(set(ids)) == 2
        assert ids[1] == f"{ids[0]}-1"


# ─────────────────────────────────────────────────────────────────────────────
# Ranges
# ─────────────────────────────────────────────────────────────────────────────


class TestProjectRange:
    def test_no_hunks_is_identity(self):
        assert project_range(3, 5, []) == (3, 5)

    def test_shift_by_earlier_insertion(self):
        # Two lines inserted after line 1
        assert project_range(5, 6, [_hunk(1, 0, 2, 2)]) == (7, 8)

    def test_shift_by_earlier_deletion(self):
        # Lines 1-3 (0-based 0..3) removed
        assert project_range(5, 6, [_hunk(1, 3, 0, 0)]) == (2, 3)

    def test_later_hunk_does_not_shift(self):
        assert project_range(2, 3, [_hunk(10, 1, 10, 1)]) == (2, 3)

    def test_range_inside_changed_region_maps_to_whole_region(self):
        # Lines 0-based 4..6 replaced by 5 lines
        assert project_range(5, 6, [_hunk(5, 2, 5, 5)]) == (4, 9)


class TestRangesOverlap:
    def test_disjoint(self):
        assert not ranges_overlap(0, 3, 3, 5)

    def test_overlap(self):
        assert ranges_overlap(0, 4, 3, 5)

    def test_empty_range_counts_as_one_line(self):
        assert ranges_overlap(2, 2, 2, 3)
        assert not ranges_overlap(2, 2, 3, 4)
