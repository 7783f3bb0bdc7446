"""Run-level models — probe states, run modes, and run summaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class UnitState(Enum):
    """Probed state of a unit against one tree snapshot."""

    UNAPPLIED = "unapplied"
    APPLIED = "applied"
    CONFLICTED = "conflicted"


class RunMode(Enum):
    """What a lifecycle run does with each unit."""

    APPLY = "apply"
    REVERSE = "reverse"
    DRY_RUN = "dry-run"
    DRY_RUN_REVERSE = "dry-run-reverse"

    @property
    def reverse(self) -> bool:
        return self in (RunMode.REVERSE, RunMode.DRY_RUN_REVERSE)

    @property
    def writes(self) -> bool:
        return self in (RunMode.APPLY, RunMode.REVERSE)

    @classmethod
    def from_flags(cls, dry_run: bool = False, reverse: bool = False) -> "RunMode":
        if dry_run:
            return cls.DRY_RUN_REVERSE if reverse else cls.DRY_RUN
        return cls.REVERSE if reverse else cls.APPLY


class Action(Enum):
    """Per-unit action recorded in a run summary."""

    APPLIED = "applied"  # written (or reversed), or would be in a dry run
    SKIPPED = "skipped"  # already in the desired state
    FAILED = "failed"  # conflicted


class Verdict(Enum):
    """Overall classification of a drift check."""

    CLEAN = "clean"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class ProbeResult:
    """State of one unit against the current tree contents."""

    unit_name: str
    state: UnitState
    reason: str = ""

    @property
    def conflicted(self) -> bool:
        return self.state is UnitState.CONFLICTED


@dataclass(frozen=True)
class UnitOutcome:
    """One line of a run summary."""

    name: str
    state: UnitState
    action: Action
    reason: str = ""

    @property
    def outcome(self) -> str:
        if self.action is Action.FAILED:
            return "FAIL"
        return "OK"


@dataclass(frozen=True)
class RunSummary:
    """Immutable result of a lifecycle run.

    ``completed`` is False when the run was cancelled between units; such a
    summary only covers the units processed so far and is reported as
    incomplete rather than as a run with failures.
    """

    mode: RunMode
    tree_root: str
    outcomes: tuple[UnitOutcome, ...] = ()
    completed: bool = True
    started_at: str = ""
    finished_at: str = ""

    def _count(self, action: Action) -> int:
        return sum(1 for o in self.outcomes if o.action is action)

    @property
    def applied(self) -> int:
        return self._count(Action.APPLIED)

    @property
    def skipped(self) -> int:
        return self._count(Action.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(Action.FAILED)

    @property
    def failed_units(self) -> list[str]:
        return [o.name for o in self.outcomes if o.action is Action.FAILED]

    @property
    def succeeded(self) -> bool:
        return self.completed and self.failed == 0

    @property
    def status(self) -> str:
        return "complete" if self.completed else "incomplete"

    def counts(self) -> dict[str, int]:
        return {"applied": self.applied, "skipped": self.skipped, "failed": self.failed}

    def summary(self) -> str:
        return (
            f"{self.mode.value}: applied={self.applied} skipped={self.skipped} "
            f"failed={self.failed} ({self.status})"
        )

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "tree_root": self.tree_root,
            "completed": self.completed,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "counts": self.counts(),
            "outcomes": [
                {
                    "name": o.name,
                    "state": o.state.value,
                    "action": o.action.value,
                    "reason": o.reason,
                }
                for o in self.outcomes
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RunSummary":
        return cls(
            mode=RunMode(data.get("mode", RunMode.DRY_RUN.value)),
            tree_root=data.get("tree_root", ""),
            outcomes=tuple(
                UnitOutcome(
                    name=o["name"],
                    state=UnitState(o["state"]),
                    action=Action(o["action"]),
                    reason=o.get("reason", ""),
                )
                for o in data.get("outcomes", [])
            ),
            completed=data.get("completed", True),
            started_at=data.get("started_at", ""),
            finished_at=data.get("finished_at", ""),
        )


@dataclass(frozen=True)
class LedgerEntry:
    """One verified upstream revision, as recorded by the drift monitor."""

    revision: str
    timestamp: str
    verdict: Verdict
    summary: RunSummary
    ref: str = ""
    failed_units: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return self.verdict is Verdict.CLEAN
