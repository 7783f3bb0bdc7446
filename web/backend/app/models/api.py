"""Pydantic models for API request/response serialization.

These models mirror the mppatch dataclasses and provide proper JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Unit models
# ---------------------------------------------------------------------------


class UnitResponse(BaseModel):
    """Mirrors mppatch.models.unit.ModificationUnit (without the diff body)."""

    index: int
    name: str
    target: str
    anchor: str
    description: str = ""
    hunk_count: int = 0


# ---------------------------------------------------------------------------
# Run models
# ---------------------------------------------------------------------------


class StatusRequest(BaseModel):
    """Request body for a dry-run status probe of a tree root."""

    tree_root: str
    reverse: bool = False


class UnitOutcomeResponse(BaseModel):
    """Mirrors mppatch.models.run.UnitOutcome."""

    name: str
    state: str
    action: str
    outcome: str
    reason: str = ""


class RunSummaryResponse(BaseModel):
    """Mirrors mppatch.models.run.RunSummary."""

    mode: str
    tree_root: str
    status: str
    applied: int = 0
    skipped: int = 0
    failed: int = 0
    succeeded: bool = False
    outcomes: list[UnitOutcomeResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Ledger / drift models
# ---------------------------------------------------------------------------


class LedgerEntryResponse(BaseModel):
    """Mirrors mppatch.models.run.LedgerEntry."""

    revision: str
    ref: str = ""
    timestamp: str
    verdict: str
    failed_units: list[str] = Field(default_factory=list)
    summary: Optional[RunSummaryResponse] = None


class KnownGoodResponse(BaseModel):
    """Answer to "is revision X known good"."""

    revision: str
    known_good: Optional[bool] = None
    latest: Optional[LedgerEntryResponse] = None


class DriftCheckRequest(BaseModel):
    """Request body for an on-demand drift check."""

    ref: str = ""
