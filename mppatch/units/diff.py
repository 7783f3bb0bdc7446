"""Unified diff text engine.

The same routine is used to simulate a unit (probing, dry runs) and to
produce the content that actually gets written, so a probe always predicts
the real outcome.

Matching rules:
1. The unit's anchor must occur exactly once in the current text.
2. Each hunk's "before" block must match exactly one run of lines, searched
   from the end of the previous hunk onwards. Line endings are ignored for
   matching and preserved for untouched lines.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from mppatch.errors import (
    AnchorAmbiguous,
    AnchorMissing,
    ConfigurationError,
    HunkAmbiguous,
    HunkMismatch,
)
from mppatch.models.unit import Hunk, ModificationUnit

HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


@dataclass
class ParsedDiff:
    """A single-file unified diff."""

    old_path: str = ""
    new_path: str = ""
    hunks: list[Hunk] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.new_path or self.old_path


def parse_diff(text: str) -> ParsedDiff:
    """Parse a single-file unified diff.

    Hunk bodies are read by the line counts in their ``@@`` headers, so any
    preamble (commit message, ``diff --git`` and ``index`` lines) or trailing
    text is ignored.

    Raises:
        ConfigurationError: on a malformed header, a truncated hunk, or a
            diff that touches more than one file.
    """
    parsed = ParsedDiff()
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        raw = lines[i]
        if raw.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            if parsed.old_path:
                raise ConfigurationError("Diff touches more than one file")
            parsed.old_path = _strip_prefix(raw[4:], "a/")
            parsed.new_path = _strip_prefix(lines[i + 1][4:], "b/")
            i += 2
            continue
        if raw.startswith("@@"):
            match = HUNK_HEADER.match(raw)
            if not match:
                raise ConfigurationError(f"Malformed hunk header: {raw!r}")
            if not parsed.old_path:
                raise ConfigurationError("Hunk found before the '---'/'+++' file header")
            header = (
                int(match.group(1)),
                int(match.group(2) or 1),
                int(match.group(3)),
                int(match.group(4) or 1),
            )
            number = len(parsed.hunks) + 1
            body, i = _read_hunk_body(lines, i + 1, header[1], header[3], number)
            parsed.hunks.append(_build_hunk(header, body, number))
            continue
        i += 1

    if not parsed.old_path or not parsed.new_path:
        raise ConfigurationError("Diff is missing its '---'/'+++' file header")
    if not parsed.hunks:
        raise ConfigurationError("Diff contains no hunks")
    return parsed


def _read_hunk_body(
    lines: list[str], start: int, old_count: int, new_count: int, number: int
) -> tuple[list[str], int]:
    body: list[str] = []
    old_seen = new_seen = 0
    i = start
    while old_seen < old_count or new_seen < new_count:
        if i >= len(lines):
            raise ConfigurationError(f"Hunk {number} is truncated")
        raw = lines[i]
        i += 1
        if raw.startswith("\\"):
            # "\ No newline at end of file"
            continue
        if raw == "":
            raw = " "
        tag = raw[0]
        if tag not in " +-":
            raise ConfigurationError(f"Hunk {number}: unexpected line {raw!r}")
        if tag in " -":
            old_seen += 1
        if tag in " +":
            new_seen += 1
        if old_seen > old_count or new_seen > new_count:
            raise ConfigurationError(
                f"Hunk {number}: body does not match header -{old_count}/+{new_count}"
            )
        body.append(raw)
    if i < len(lines) and lines[i].startswith("\\"):
        i += 1
    return body, i


def _build_hunk(header: tuple[int, int, int, int], lines: list[str], number: int) -> Hunk:
    old_start, old_count, new_start, new_count = header
    if not any(line[0] in "+-" for line in lines):
        raise ConfigurationError(f"Hunk {number} has no changes")
    if lines[0][0] != " " or lines[-1][0] != " ":
        raise ConfigurationError(
            f"Hunk {number} must start and end with a context line"
        )
    return Hunk(old_start, old_count, new_start, new_count, tuple(lines))


def _strip_prefix(path: str, prefix: str) -> str:
    path = path.split("\t", 1)[0].strip()
    if path.startswith(prefix):
        return path[len(prefix):]
    return path


# ── Application ──────────────────────────────────────────────────────


def check_anchor(text: str, anchor: str) -> None:
    """Require ``anchor`` to occur exactly once in ``text``."""
    occurrences = text.count(anchor)
    if occurrences == 0:
        raise AnchorMissing(f"anchor not found: {_short(anchor)!r}")
    if occurrences > 1:
        raise AnchorAmbiguous(
            f"anchor occurs {occurrences} times: {_short(anchor)!r}"
        )


def apply_unit(text: str, unit: ModificationUnit, reverse: bool = False) -> str:
    """Apply (or reverse) ``unit`` against ``text`` and return the new content.

    Raises:
        ApplyConflict: subclass describing why the unit does not apply.
    """
    check_anchor(text, unit.anchor)

    lines = text.splitlines(keepends=True)
    bare = [_strip_eol(line) for line in lines]
    eol = newline_style(lines)
    add_tag, drop_tag = ("-", "+") if reverse else ("+", "-")

    out: list[str] = []
    cursor = 0
    for number, hunk in enumerate(unit.hunks, 1):
        pos = _locate(bare, hunk.before(reverse), cursor, number)
        out.extend(lines[cursor:pos])
        i = pos
        for line in hunk.lines:
            tag, body = line[0], line[1:]
            if tag == " ":
                out.append(lines[i])
                i += 1
            elif tag == add_tag:
                out.append(body + eol)
            elif tag == drop_tag:
                i += 1
        cursor = i

    out.extend(lines[cursor:])
    return "".join(out)


def _locate(bare: list[str], block: list[str], start: int, number: int) -> int:
    size = len(block)
    matches = [
        pos
        for pos in range(start, len(bare) - size + 1)
        if bare[pos:pos + size] == block
    ]
    if not matches:
        raise HunkMismatch(f"hunk {number} does not match the file content")
    if len(matches) > 1:
        raise HunkAmbiguous(
            f"hunk {number} matches {len(matches)} locations "
            f"(lines {', '.join(str(m + 1) for m in matches[:5])})"
        )
    return matches[0]


def newline_style(lines: list[str]) -> str:
    """Return the dominant line terminator of ``lines`` (``\\n`` by default)."""
    crlf = sum(1 for line in lines if line.endswith("\r\n"))
    lf = sum(1 for line in lines if line.endswith("\n")) - crlf
    return "\r\n" if crlf > lf else "\n"


def _strip_eol(line: str) -> str:
    return line.rstrip("\r\n")


def _short(text: str, limit: int = 60) -> str:
    text = text.strip().splitlines()[0] if text.strip() else text
    return text if len(text) <= limit else text[: limit - 3] + "..."
