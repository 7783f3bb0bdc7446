"""Ledger router — read-only access to the version ledger."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from mppatch.config import Settings
from mppatch.errors import ConfigurationError
from mppatch.sync.ledger import VersionLedger

from web.backend.app.deps import entry_to_response, get_settings
from web.backend.app.models.api import KnownGoodResponse, LedgerEntryResponse

router = APIRouter(tags=["ledger"])


@router.get(
    "/api/ledger",
    response_model=list[LedgerEntryResponse],
    summary="List ledger entries",
)
async def list_entries(
    limit: int = Query(100, ge=1, le=1000),
    settings: Settings = Depends(get_settings),
):
    """Return the most recent ledger entries, oldest first."""
    entries = VersionLedger(settings.ledger_path).history()
    return [entry_to_response(e) for e in entries[-limit:]]


@router.get(
    "/api/ledger/{revision}",
    response_model=list[LedgerEntryResponse],
    summary="Get every ledger entry for a revision",
)
async def revision_history(revision: str, settings: Settings = Depends(get_settings)):
    """Return all entries recorded for ``revision`` (full SHA or unique prefix)."""
    try:
        entries = VersionLedger(settings.ledger_path).history(revision)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not entries:
        raise HTTPException(status_code=404, detail=f"Revision never checked: {revision}")
    return [entry_to_response(e) for e in entries]


@router.get(
    "/api/ledger/{revision}/known-good",
    response_model=KnownGoodResponse,
    summary="Is this revision known good?",
)
async def known_good(revision: str, settings: Settings = Depends(get_settings)):
    """Answer from the most recent entry; ``known_good`` is null if never checked."""
    try:
        latest = VersionLedger(settings.ledger_path).latest(revision)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return KnownGoodResponse(
        revision=revision,
        known_good=None if latest is None else latest.is_clean,
        latest=None if latest is None else entry_to_response(latest),
    )
