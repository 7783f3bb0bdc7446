"""Modification Unit data model.

A Modification Unit (MU) is one named, ordered, invertible textual change to a
single file in the target tree. Units are immutable once loaded.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Hunk:
    """One ``@@`` block of a unified diff.

    ``lines`` keeps the diff prefix character (``' '``, ``'-'``, ``'+'``) on
    every entry, without the trailing newline.
    """

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: tuple[str, ...] = ()

    def before(self, reverse: bool = False) -> list[str]:
        """Lines the file must contain for this hunk to apply."""
        drop = "-" if reverse else "+"
        return [line[1:] for line in self.lines if line[0] != drop]

    def after(self, reverse: bool = False) -> list[str]:
        """Lines the file contains once this hunk has been applied."""
        return self.before(reverse=not reverse)

    @property
    def added(self) -> list[str]:
        return [line[1:] for line in self.lines if line[0] == "+"]

    @property
    def removed(self) -> list[str]:
        return [line[1:] for line in self.lines if line[0] == "-"]


@dataclass(frozen=True)
class ModificationUnit:
    """A single, ordered modification of one target file."""

    index: int
    name: str
    target: str  # POSIX path relative to the tree root
    anchor: str
    diff: str
    hunks: tuple[Hunk, ...] = field(default_factory=tuple)
    description: str = ""
    source: str = ""  # .patch file the unit was loaded from

    @property
    def inserted_content(self) -> str:
        return "\n".join(line for hunk in self.hunks for line in hunk.added)

    @property
    def label(self) -> str:
        return f"{self.index + 1:02d}:{self.name}"
