"""Version ledger — append-only record of verified upstream revisions.

Each drift check appends one row. A revision may appear many times; the most
recent row for a revision is authoritative and older rows are kept for audit.

Storage layout (JSON lines, default ``~/.mppatch/ledger.jsonl``)::

    {"revision": "...", "ref": "main", "timestamp": "...", "verdict": "clean",
     "failed_units": [], "summary": {...}}
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from mppatch.errors import ConfigurationError, EnvironmentFailure
from mppatch.models.run import LedgerEntry, RunSummary, Verdict

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_PATH = Path.home() / ".mppatch" / "ledger.jsonl"


class VersionLedger:
    """Stores and retrieves ledger entries for upstream revisions."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else DEFAULT_LEDGER_PATH

    def record(self, entry: LedgerEntry) -> LedgerEntry:
        """Append an entry. Entries are never rewritten."""
        row = {
            "revision": entry.revision,
            "ref": entry.ref,
            "timestamp": entry.timestamp or datetime.now(timezone.utc).isoformat(),
            "verdict": entry.verdict.value,
            "failed_units": list(entry.failed_units),
            "summary": entry.summary.to_dict(),
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(row) + "\n")
        except OSError as e:
            raise EnvironmentFailure(f"Cannot append to ledger {self.path}: {e}") from e

        logger.info("Ledger: %s -> %s", entry.revision[:12], entry.verdict.value)
        return entry

    def history(self, revision: str | None = None) -> list[LedgerEntry]:
        """Return entries in append order, optionally for a single revision.

        ``revision`` may be a full SHA or a unique prefix of one. An empty
        revision matches nothing.

        Raises:
            ConfigurationError: the prefix matches more than one revision.
        """
        entries = self._read()
        if revision is None:
            return entries
        if not revision.strip():
            return []

        exact = [e for e in entries if e.revision == revision]
        if exact:
            return exact
        matches = [e for e in entries if e.revision.startswith(revision)]
        distinct = sorted({e.revision for e in matches})
        if len(distinct) > 1:
            raise ConfigurationError(
                f"Revision prefix '{revision}' is ambiguous: "
                + ", ".join(r[:12] for r in distinct)
            )
        return matches

    def _read(self) -> list[LedgerEntry]:
        if not self.path.exists():
            return []

        entries = []
        with open(self.path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                    entries.append(_row_to_entry(data))
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    logger.warning("Skipping unreadable ledger row %d: %s", lineno, e)
        return entries

    def latest(self, revision: str) -> LedgerEntry | None:
        """Return the most recent entry for ``revision``, or None."""
        history = self.history(revision)
        return history[-1] if history else None

    def is_known_good(self, revision: str) -> bool | None:
        """True/False from the latest entry, None if the revision was never checked."""
        entry = self.latest(revision)
        if entry is None:
            return None
        return entry.is_clean

    def revisions(self) -> list[str]:
        """Distinct revisions in first-seen order."""
        seen: dict[str, None] = {}
        for entry in self.history():
            seen.setdefault(entry.revision, None)
        return list(seen)


def _row_to_entry(data: dict) -> LedgerEntry:
    return LedgerEntry(
        revision=data["revision"],
        ref=data.get("ref", ""),
        timestamp=data.get("timestamp", ""),
        verdict=Verdict(data["verdict"]),
        failed_units=tuple(data.get("failed_units", [])),
        summary=RunSummary.from_dict(data.get("summary", {})),
    )
