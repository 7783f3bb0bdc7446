"""Units router — list the modification units and probe a tree root."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from mppatch.config import Settings
from mppatch.engine.lifecycle import LifecycleEngine
from mppatch.errors import ConfigurationError, EnvironmentFailure
from mppatch.models.run import RunMode
from mppatch.units.loader import load_units

from web.backend.app.deps import get_settings, summary_to_response
from web.backend.app.models.api import RunSummaryResponse, StatusRequest, UnitResponse

router = APIRouter(tags=["units"])


@router.get(
    "/api/units",
    response_model=list[UnitResponse],
    summary="List the ordered modification units",
)
async def list_units(settings: Settings = Depends(get_settings)):
    """Return every unit in application order."""
    try:
        units = load_units(settings.patches_dir)
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    return [
        UnitResponse(
            index=u.index,
            name=u.name,
            target=u.target,
            anchor=u.anchor,
            description=u.description,
            hunk_count=len(u.hunks),
        )
        for u in units
    ]


@router.post(
    "/api/status",
    response_model=RunSummaryResponse,
    summary="Dry-run the unit set against a tree root",
)
def tree_status(request: StatusRequest, settings: Settings = Depends(get_settings)):
    """Report what apply (or reverse) would do for each unit. Never writes."""
    mode = RunMode.DRY_RUN_REVERSE if request.reverse else RunMode.DRY_RUN
    try:
        units = load_units(settings.patches_dir)
        summary = LifecycleEngine(marker_dir=settings.marker_dir).run(
            request.tree_root, units, mode
        )
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except EnvironmentFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    return summary_to_response(summary)
