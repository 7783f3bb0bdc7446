"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from mppatch.config import Settings, load_settings
from mppatch.models.run import LedgerEntry, RunSummary

from web.backend.app.models.api import (
    LedgerEntryResponse,
    RunSummaryResponse,
    UnitOutcomeResponse,
)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings loaded once per process (override in tests)."""
    return load_settings()


def summary_to_response(summary: RunSummary) -> RunSummaryResponse:
    """Convert a RunSummary dataclass to a Pydantic response."""
    return RunSummaryResponse(
        mode=summary.mode.value,
        tree_root=summary.tree_root,
        status=summary.status,
        applied=summary.applied,
        skipped=summary.skipped,
        failed=summary.failed,
        succeeded=summary.succeeded,
        outcomes=[
            UnitOutcomeResponse(
                name=o.name,
                state=o.state.value,
                action=o.action.value,
                outcome=o.outcome,
                reason=o.reason,
            )
            for o in summary.outcomes
        ],
    )


def entry_to_response(entry: LedgerEntry) -> LedgerEntryResponse:
    """Convert a LedgerEntry dataclass to a Pydantic response."""
    return LedgerEntryResponse(
        revision=entry.revision,
        ref=entry.ref,
        timestamp=entry.timestamp,
        verdict=entry.verdict.value,
        failed_units=list(entry.failed_units),
        summary=summary_to_response(entry.summary),
    )
