"""Unified diff model and parser.

``git diff`` output is parsed into :class:`FileDiff` / :class:`Hunk` objects.
Hunk lines keep their line terminator so that applying a hunk reproduces the
file byte for byte, including a missing newline at end of file.

Positions inside this module are 0-based and half-open unless a name says
otherwise (``old_start``/``new_start`` are git's 1-based header values).
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Literal

NO_NEWLINE_MARKER = "\\ No newline at end of file"

HUNK_HEADER_PATTERN = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")

FileStatus = Literal["added", "deleted", "modified"]


@dataclass(frozen=True)
class HunkLine:
    """One body line of a hunk.

    ``origin`` is one of ``" "``, ``"-"``, ``"+"``. ``text`` includes the line
    terminator unless the line is the last one of a file without a newline.
    """

    origin: str
    text: str


@dataclass
class ChangeBlock:
    """A maximal run of removed/added lines inside a hunk.

    ``old_lo`` is the 0-based position in the old file where ``removed``
    starts (or where ``added`` is inserted for a pure insertion).
    """

    old_lo: int
    new_lo: int
    removed: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)

    @property
    def old_hi(self) -> int:
        return self.old_lo + len(self.removed)

    @property
    def new_hi(self) -> int:
        return self.new_lo + len(self.added)


@dataclass
class Hunk:
    """A contiguous diff fragment within one file."""

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: list[HunkLine] = field(default_factory=list)
    section: str = ""
    binary: bool = False
    old_blob: str | None = None
    new_blob: str | None = None

    # git reports the line *after which* an empty side sits, hence the shift.
    @property
    def old_lo(self) -> int:
        return self.old_start - 1 if self.old_lines > 0 else self.old_start

    @property
    def old_hi(self) -> int:
        return self.old_lo + self.old_lines

    @property
    def new_lo(self) -> int:
        return self.new_start - 1 if self.new_lines > 0 else self.new_start

    @property
    def new_hi(self) -> int:
        return self.new_lo + self.new_lines

    def change_blocks(self) -> list[ChangeBlock]:
        """Split the hunk body into change blocks, dropping context lines."""
        blocks: list[ChangeBlock] = []
        current: ChangeBlock | None = None
        old_pos, new_pos = self.old_lo, self.new_lo

        for line in self.lines:
            if line.origin == " ":
                current = None
                old_pos += 1
                new_pos += 1
                continue
            if current is None:
                current = ChangeBlock(old_lo=old_pos, new_lo=new_pos)
                blocks.append(current)
            if line.origin == "-":
                current.removed.append(line.text)
                old_pos += 1
            else:
                current.added.append(line.text)
                new_pos += 1

        return blocks

    def changed_old_range(self) -> tuple[int, int]:
        """Old-side span from the first to the last changed line."""
        blocks = self.change_blocks()
        if not blocks:
            return self.old_lo, self.old_hi
        return blocks[0].old_lo, blocks[-1].old_hi

    def changed_new_range(self) -> tuple[int, int]:
        """New-side span from the first to the last changed line."""
        blocks = self.change_blocks()
        if not blocks:
            return self.new_lo, self.new_hi
        return blocks[0].new_lo, blocks[-1].new_hi

    def normalized_text(self) -> str:
        """Changed lines only, with line endings normalized.

        Line numbers and context are excluded so that identity survives
        shifts caused by edits elsewhere in the file.
        """
        if self.binary:
            return f"binary {self.new_blob or ''}"
        return "".join(
            line.origin + line.text.rstrip("\r\n") + "\n"
            for line in self.lines
            if line.origin in "+-"
        )

    def render(self) -> str:
        """Render the hunk as unified diff text."""
        if self.binary:
            return f"Binary change {self.old_blob or ''}..{self.new_blob or ''}"
        out = [
            f"@@ -{self.old_start},{self.old_lines} "
            f"+{self.new_start},{self.new_lines} @@{self.section}"
        ]
        for line in self.lines:
            if line.text.endswith("\n"):
                out.append(f"{line.origin}{line.text[:-1]}")
            else:
                out.append(f"{line.origin}{line.text}")
                out.append(NO_NEWLINE_MARKER)
        return "\n".join(out) + "\n"


@dataclass
class FileDiff:
    """All hunks of one file between two trees."""

    path: str
    status: FileStatus = "modified"
    old_mode: str | None = None
    new_mode: str | None = None
    old_blob: str | None = None
    new_blob: str | None = None
    binary: bool = False
    hunks: list[Hunk] = field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────────────────────────────────────


def parse_unified_diff(text: str) -> list[FileDiff]:
    """Parse ``git diff`` output (no renames) into file diffs.

    Args:
        text: Raw output of ``git diff`` between two trees

    Returns:
        One FileDiff per file, in the order git reported them
    """
    files: list[FileDiff] = []
    current: FileDiff | None = None
    lines = text.split("\n")
    i = 0

    while i < len(lines):
        line = lines[i]

        if line.startswith("diff --git "):
            current = FileDiff(path=_path_from_git_header(line))
            files.append(current)
            i += 1
            continue

        if current is None:
            i += 1
            continue

        if line.startswith("new file mode "):
            current.status = "added"
            current.new_mode = line.split()[-1]
        elif line.startswith("deleted file mode "):
            current.status = "deleted"
            current.old_mode = line.split()[-1]
        elif line.startswith("old mode "):
            current.old_mode = line.split()[-1]
        elif line.startswith("new mode "):
            current.new_mode = line.split()[-1]
        elif line.startswith("index "):
            _parse_index_line(current, line)
        elif line.startswith("--- "):
            if not line.endswith("/dev/null"):
                current.path = _strip_prefix(line[4:], "a/")
        elif line.startswith("+++ "):
            if not line.endswith("/dev/null"):
                current.path = _strip_prefix(line[4:], "b/")
        elif line.startswith("Binary files ") or line.startswith("GIT binary patch"):
            current.binary = True
            current.hunks.append(
                Hunk(
                    old_start=0,
                    old_lines=0,
                    new_start=0,
                    new_lines=0,
                    binary=True,
                    old_blob=current.old_blob,
                    new_blob=current.new_blob,
                )
            )
        elif line.startswith("@@ "):
            hunk, i = _parse_hunk(lines, i)
            current.hunks.append(hunk)
            continue

        i += 1

    return files


def _parse_hunk(lines: list[str], i: int) -> tuple[Hunk, int]:
    """Parse the hunk whose header is ``lines[i]``; return it and the next index."""
    match = HUNK_HEADER_PATTERN.match(lines[i])
    if match is None:
        raise ValueError(f"Malformed hunk header: {lines[i]!r}")

    hunk = Hunk(
        old_start=int(match.group(1)),
        old_lines=int(match.group(2)) if match.group(2) is not None else 1,
        new_start=int(match.group(3)),
        new_lines=int(match.group(4)) if match.group(4) is not None else 1,
        section=match.group(5),
    )

    old_left, new_left = hunk.old_lines, hunk.new_lines
    i += 1
    while i < len(lines) and (old_left > 0 or new_left > 0 or lines[i].startswith("\\")):
        raw = lines[i]
        if raw.startswith("\\"):
            # Applies to the line before it
            if hunk.lines:
                last = hunk.lines[-1]
                hunk.lines[-1] = HunkLine(last.origin, last.text.removesuffix("\n"))
            i += 1
            continue

        origin = raw[:1] or " "
        if origin == " ":
            old_left -= 1
            new_left -= 1
        elif origin == "-":
            old_left -= 1
        elif origin == "+":
            new_left -= 1
        else:
            break
        hunk.lines.append(HunkLine(origin, raw[1:] + "\n"))
        i += 1

    return hunk, i


def _parse_index_line(current: FileDiff, line: str) -> None:
    # index <old>..<new>[ <mode>]
    parts = line.split()
    if len(parts) < 2 or ".." not in parts[1]:
        return
    old_blob, new_blob = parts[1].split("..", 1)
    current.old_blob = old_blob
    current.new_blob = new_blob
    if len(parts) > 2:
        current.old_mode = current.old_mode or parts[2]
        current.new_mode = current.new_mode or parts[2]


def _path_from_git_header(line: str) -> str:
    rest = line[len("diff --git "):]
    if rest.startswith('"'):
        token, _ = _read_quoted(rest)
        return _strip_prefix(token, "a/", quoted=False)
    # Without renames both sides are "a/<path> b/<path>" of equal length
    half = (len(rest) - 1) // 2
    return rest[:half][2:]


def _strip_prefix(value: str, prefix: str, quoted: bool = True) -> str:
    value = value.rstrip("\t")
    if quoted and value.startswith('"'):
        value, _ = _read_quoted(value)
    return value[len(prefix):] if value.startswith(prefix) else value


_ESCAPES = {"n": b"\n", "t": b"\t", '"': b'"', "\\": b"\\", "a": b"\a", "b": b"\b",
            "f": b"\f", "r": b"\r", "v": b"\v"}


def _read_quoted(value: str) -> tuple[str, str]:
    """Decode a C-style quoted path as git prints it; return (path, rest)."""
    out = bytearray()
    i = 1
    while i < len(value):
        ch = value[i]
        if ch == '"':
            return out.decode("utf-8", "surrogateescape"), value[i + 1:]
        if ch == "\\" and i + 1 < len(value):
            nxt = value[i + 1]
            if nxt in "01234567":
                out.append(int(value[i + 1:i + 4], 8))
                i += 4
                continue
            out.extend(_ESCAPES.get(nxt, nxt.encode()))
            i += 2
            continue
        out.extend(ch.encode("utf-8", "surrogateescape"))
        i += 1
    raise ValueError(f"Unterminated quoted path: {value!r}")


# ─────────────────────────────────────────────────────────────────────────────
# Identity
# ─────────────────────────────────────────────────────────────────────────────


def hunk_identity(path: str, hunk: Hunk) -> str:
    """Stable hash over the path and the hunk's normalized diff text."""
    digest = hashlib.sha1()
    digest.update(path.encode("utf-8", "surrogateescape"))
    digest.update(b"\0")
    digest.update(hunk.normalized_text().encode("utf-8", "surrogateescape"))
    return digest.hexdigest()


def file_hunk_identities(file_diff: FileDiff) -> list[str]:
    """Identities for every hunk of a file, disambiguating equal content.

    Two hunks with the same changed lines (say, the same line added in two
    places) would hash alike; the second and later ones get an ordinal suffix.
    """
    seen: dict[str, int] = {}
    ids = []
    for hunk in file_diff.hunks:
        base = hunk_identity(file_diff.path, hunk)
        count = seen.get(base, 0)
        seen[base] = count + 1
        ids.append(base if count == 0 else f"{base}-{count}")
    return ids


# ─────────────────────────────────────────────────────────────────────────────
# Line range bookkeeping
# ─────────────────────────────────────────────────────────────────────────────


def project_range(lo: int, hi: int, hunks: list[Hunk]) -> tuple[int, int]:
    """Project ``[lo, hi)`` from the old side of ``hunks`` onto the new side.

    ``hunks`` must come from a zero-context diff of a single file. Lines that
    fall inside a changed region map to that region's whole new span, and a
    range touching an insertion is widened to cover it.
    """
    before = 0
    touching: list[Hunk] = []
    for hunk in sorted(hunks, key=lambda h: (h.old_lo, h.old_hi)):
        if hunk.old_hi < lo or (hunk.old_hi == lo and hunk.old_lo < lo):
            before = hunk.new_hi - hunk.old_hi
        elif hunk.old_lo > hi or (hunk.old_lo == hi and hunk.old_hi > hi):
            break
        else:
            touching.append(hunk)

    if not touching:
        return lo + before, hi + before

    first, last = touching[0], touching[-1]
    new_lo = first.new_lo if first.old_lo <= lo else lo + before
    new_hi = last.new_hi if last.old_hi >= hi else hi + (last.new_hi - last.old_hi)
    return new_lo, max(new_lo, new_hi)


def ranges_overlap(a_lo: int, a_hi: int, b_lo: int, b_hi: int) -> bool:
    """Overlap test where an empty range counts as the line at its position."""
    a_hi = max(a_hi, a_lo + 1)
    b_hi = max(b_hi, b_lo + 1)
    return a_lo < b_hi and b_lo < a_hi
