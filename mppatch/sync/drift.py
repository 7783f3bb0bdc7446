"""Drift monitor — detect upstream changes that break the unit set.

A check fetches a disposable snapshot of the upstream tree at a ref, runs the
lifecycle engine in dry-run mode against it, and classifies the result:

- Clean: no unit failed. The ledger entry is written, nothing else happens.
- Conflict: at least one unit failed. The ledger entry is written and a
  ``CompatibilityEvent`` is sent to the notifier.

Fetch failures and timeouts are environment errors: the verdict is unknown,
so nothing is recorded and ``FetchError`` propagates to the caller. The
operator's own checkout is never touched.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Sequence

from mppatch.engine.lifecycle import LifecycleEngine
from mppatch.engine.tree import DEFAULT_MARKER_DIR
from mppatch.errors import EnvironmentFailure
from mppatch.models.run import LedgerEntry, RunMode, Verdict
from mppatch.models.unit import ModificationUnit
from mppatch.sync.ledger import VersionLedger
from mppatch.sync.notifier import CompatibilityEvent, LogNotifier, Notifier
from mppatch.utils.git_ops import Snapshot, fetch_snapshot

logger = logging.getLogger(__name__)

DEFAULT_UPSTREAM_URL = "https://github.com/livekit/rust-sdks.git"
DEFAULT_FETCH_TIMEOUT = 300.0

Fetcher = Callable[[str, str, float], Snapshot]


class DriftMonitor:
    """Runs compatibility checks of the unit set against upstream revisions."""

    def __init__(
        self,
        units: Sequence[ModificationUnit],
        ledger: VersionLedger,
        upstream_url: str = DEFAULT_UPSTREAM_URL,
        notifier: Notifier | None = None,
        marker_dir: str = DEFAULT_MARKER_DIR,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        mode: RunMode = RunMode.DRY_RUN,
        fetcher: Fetcher = fetch_snapshot,
    ):
        if mode.reverse:
            raise ValueError("Drift checks run in a forward mode (dry-run or apply)")
        self.units = list(units)
        self.ledger = ledger
        self.upstream_url = upstream_url
        self.notifier = notifier or LogNotifier()
        self.engine = LifecycleEngine(marker_dir=marker_dir)
        self.fetch_timeout = fetch_timeout
        self.mode = mode
        self.fetcher = fetcher

    def check(self, upstream_ref: str) -> LedgerEntry:
        """Check the unit set against ``upstream_ref`` and record the verdict.

        Raises:
            FetchError: the snapshot could not be fetched in time.
            ConfigurationError: the snapshot is not a valid target tree.
        """
        logger.info("Drift check of %s@%s", self.upstream_url, upstream_ref)
        snapshot = self.fetcher(self.upstream_url, upstream_ref, self.fetch_timeout)
        with snapshot:
            summary = self.engine.run(snapshot.local_path, self.units, self.mode)
            revision = snapshot.revision

        if not summary.completed:
            # The monitor never cancels its own runs; treat as unknown.
            raise EnvironmentFailure(f"Drift check of {revision[:12]} did not complete")

        verdict = Verdict.CLEAN if summary.failed == 0 else Verdict.CONFLICT
        entry = LedgerEntry(
            revision=revision,
            ref=upstream_ref,
            timestamp=datetime.now(timezone.utc).isoformat(),
            verdict=verdict,
            summary=summary,
            failed_units=tuple(summary.failed_units),
        )
        self.ledger.record(entry)

        if verdict is Verdict.CONFLICT:
            logger.warning(
                "Upstream %s (%s) conflicts with %d unit(s)",
                revision[:12], upstream_ref, summary.failed,
            )
            self.notifier.notify(
                CompatibilityEvent(
                    revision=revision,
                    ref=upstream_ref,
                    failed_units=entry.failed_units,
                    timestamp=entry.timestamp,
                )
            )
        else:
            logger.info("Upstream %s (%s) is clean", revision[:12], upstream_ref)

        return entry
