"""Lifecycle engine — apply, reverse, or dry-run the ordered unit set.

Units are processed strictly in order because later units may rely on text
inserted by earlier ones. Reverse modes walk the set last-to-first so each
unit is undone before the units it depends on. Per unit:

    mode           UNAPPLIED     APPLIED       CONFLICTED
    apply          write/applied skipped       failed
    reverse        skipped       write/applied failed
    dry-run(*)     same branch as the mode it simulates, never writes

A conflicted unit never aborts the run; the summary always covers every unit.
Units that succeeded before a failure are not rolled back. Partial application
is a visible end state.

Dry runs write simulated results into an in-memory overlay so a dependent
unit is classified exactly as a real run would classify it.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

from mppatch.engine.prober import probe_view
from mppatch.engine.tree import DEFAULT_MARKER_DIR, OverlayTree, TreeView, validate_tree_root
from mppatch.errors import ApplyConflict, ConfigurationError, EnvironmentFailure
from mppatch.models.run import Action, RunMode, RunSummary, UnitOutcome, UnitState
from mppatch.models.unit import ModificationUnit
from mppatch.units.diff import apply_unit

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[ModificationUnit, UnitOutcome], None]


class LifecycleEngine:
    """Runs the ordered unit set against one tree root."""

    def __init__(self, marker_dir: str = DEFAULT_MARKER_DIR):
        self.marker_dir = marker_dir

    def run(
        self,
        tree_root: str | Path,
        units: Sequence[ModificationUnit],
        mode: RunMode = RunMode.APPLY,
        cancel_event: threading.Event | None = None,
        on_outcome: OutcomeCallback | None = None,
    ) -> RunSummary:
        """Process every unit in order and return an immutable summary.

        Args:
            tree_root: Root of the target checkout.
            units: The ordered unit set.
            mode: What to do with each unit.
            cancel_event: Checked between units. When set, the run stops and
                the summary is marked incomplete.
            on_outcome: Called after each unit (used by the CLI for live output).

        Raises:
            ConfigurationError: invalid tree root or empty unit set. Raised
                before any unit is probed.
            EnvironmentFailure: I/O error while reading or writing a target.
        """
        root = validate_tree_root(tree_root, self.marker_dir)
        if not units:
            raise ConfigurationError("No modification units to process")
        _check_order(units)

        tree: TreeView = TreeView(root) if mode.writes else OverlayTree(root)
        started_at = _now()
        outcomes: list[UnitOutcome] = []
        completed = True

        logger.info("Starting %s run over %d unit(s) in %s", mode.value, len(units), root)

        ordered = list(reversed(units)) if mode.reverse else list(units)
        for unit in ordered:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    "Run cancelled after %d of %d unit(s)", len(outcomes), len(units)
                )
                completed = False
                break

            outcome = self._process(tree, unit, mode)
            outcomes.append(outcome)
            if on_outcome is not None:
                on_outcome(unit, outcome)

        summary = RunSummary(
            mode=mode,
            tree_root=str(root),
            outcomes=tuple(outcomes),
            completed=completed,
            started_at=started_at,
            finished_at=_now(),
        )
        logger.info(summary.summary())
        return summary

    def _process(self, tree: TreeView, unit: ModificationUnit, mode: RunMode) -> UnitOutcome:
        result = probe_view(tree, unit)

        if result.state is UnitState.CONFLICTED:
            return UnitOutcome(unit.name, result.state, Action.FAILED, result.reason)

        actionable = UnitState.APPLIED if mode.reverse else UnitState.UNAPPLIED
        if result.state is not actionable:
            logger.debug("Unit %s already in desired state, skipping", unit.name)
            return UnitOutcome(unit.name, result.state, Action.SKIPPED)

        content = tree.read(unit.target)
        try:
            new_content = apply_unit(content, unit, reverse=mode.reverse)
        except ApplyConflict as e:
            # Probe and apply share one routine; reaching this means the file
            # changed underneath the run.
            return UnitOutcome(unit.name, UnitState.CONFLICTED, Action.FAILED, str(e))

        try:
            tree.write(unit.target, new_content)
        except EnvironmentFailure:
            logger.error("Write failed for unit %s; aborting run", unit.name)
            raise

        if mode.writes:
            verb = "Reversed" if mode.reverse else "Applied"
            logger.info("%s unit %s (%s)", verb, unit.name, unit.target)
        return UnitOutcome(unit.name, result.state, Action.APPLIED)


def _check_order(units: Sequence[ModificationUnit]) -> None:
    indices = [u.index for u in units]
    if indices != sorted(indices) or len(set(indices)) != len(indices):
        raise ConfigurationError("Modification units are not in their declared order")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
