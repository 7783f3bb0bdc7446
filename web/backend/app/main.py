"""FastAPI application for the mppatch status service.

Provides read-mostly REST endpoints wrapping the mppatch package for:
- Listing the ordered modification units
- Dry-run status of a tree root
- Version ledger queries ("is revision X known good")
- On-demand drift checks against upstream
"""

from __future__ import annotations

from fastapi import FastAPI

from mppatch import __version__
from web.backend.app.routers import drift, ledger, units

app = FastAPI(
    title="mppatch API",
    description=(
        "REST API for the Rockchip MPP patch lifecycle. "
        "Provides endpoints for unit listing, dry-run status, "
        "version ledger queries, and upstream drift checks."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(units.router)
app.include_router(ledger.router)
app.include_router(drift.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "mppatch API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health():
    """Liveness probe."""
    return {"status": "ok"}
