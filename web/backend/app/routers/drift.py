"""Drift router — on-demand compatibility checks against upstream."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from mppatch.config import Settings
from mppatch.errors import ConfigurationError, EnvironmentFailure
from mppatch.sync.drift import DriftMonitor
from mppatch.sync.ledger import VersionLedger
from mppatch.units.loader import load_units

from web.backend.app.deps import entry_to_response, get_settings
from web.backend.app.models.api import DriftCheckRequest, LedgerEntryResponse

router = APIRouter(tags=["drift"])


def get_monitor(settings: Settings = Depends(get_settings)) -> DriftMonitor:
    """Build a drift monitor from settings (override in tests)."""
    try:
        units = load_units(settings.patches_dir)
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return DriftMonitor(
        units,
        VersionLedger(settings.ledger_path),
        upstream_url=settings.upstream_url,
        notifier=settings.notifier(),
        marker_dir=settings.marker_dir,
        fetch_timeout=settings.fetch_timeout,
    )


@router.post(
    "/api/drift/check",
    response_model=LedgerEntryResponse,
    summary="Check an upstream ref for drift",
)
def check_drift(
    request: DriftCheckRequest,
    settings: Settings = Depends(get_settings),
    monitor: DriftMonitor = Depends(get_monitor),
):
    """Fetch a snapshot of ``ref`` and dry-run the unit set against it.

    The upstream URL always comes from server settings. The verdict is
    recorded in the ledger. A fetch failure returns 503 and records nothing.
    """
    try:
        entry = monitor.check(request.ref or settings.upstream_ref)
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except EnvironmentFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    return entry_to_response(entry)
