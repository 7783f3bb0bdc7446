"""Tree prober — classify a unit as Unapplied, Applied, or Conflicted.

Probing never writes. It runs the exact routine the lifecycle engine uses to
produce new file content (``mppatch.units.diff.apply_unit``) against an
in-memory copy of the target file:

1. Forward simulation succeeds => UNAPPLIED
2. Else reverse simulation succeeds => APPLIED
3. Else => CONFLICTED

A unit that simulates cleanly in *both* directions is ambiguous and is
reported as CONFLICTED rather than guessed.
"""

from __future__ import annotations

import logging
from pathlib import Path

from mppatch.engine.tree import TreeView
from mppatch.errors import ApplyConflict
from mppatch.models.run import ProbeResult, UnitState
from mppatch.models.unit import ModificationUnit
from mppatch.units.diff import apply_unit

logger = logging.getLogger(__name__)


def probe(tree_root: str | Path, unit: ModificationUnit) -> ProbeResult:
    """Probe ``unit`` against the files on disk under ``tree_root``."""
    return probe_view(TreeView(tree_root), unit)


def probe_view(tree: TreeView, unit: ModificationUnit) -> ProbeResult:
    """Probe ``unit`` against any TreeView (disk or overlay)."""
    content = tree.read(unit.target)
    if content is None:
        return _conflicted(unit, f"target file missing: {unit.target}")

    forward_error = _simulate(content, unit, reverse=False)
    reverse_error = _simulate(content, unit, reverse=True)

    if forward_error is None and reverse_error is None:
        return _conflicted(unit, "diff applies in both directions (ambiguous)")
    if forward_error is None:
        result = ProbeResult(unit.name, UnitState.UNAPPLIED)
    elif reverse_error is None:
        result = ProbeResult(unit.name, UnitState.APPLIED)
    else:
        # The forward reason is what the operator needs to reconcile
        return _conflicted(unit, str(forward_error))

    logger.debug("Probe %s: %s", unit.name, result.state.value)
    return result


def _simulate(content: str, unit: ModificationUnit, reverse: bool) -> ApplyConflict | None:
    try:
        apply_unit(content, unit, reverse=reverse)
    except ApplyConflict as e:
        return e
    return None


def _conflicted(unit: ModificationUnit, reason: str) -> ProbeResult:
    logger.warning("Probe %s: conflicted (%s)", unit.name, reason)
    return ProbeResult(unit.name, UnitState.CONFLICTED, reason)
