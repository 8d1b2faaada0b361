"""Health and status endpoints.

Exposes:
- GET /health: lightweight health check
- GET /      : status page including the database connection state
"""

from fastapi import APIRouter, Request

from ..core.models_io import StatusResponse

router = APIRouter()


@router.get("/health")
def health():
    """Container/ELB-friendly health check endpoint."""
    return {"status": "healthy"}


@router.get("/", response_model=StatusResponse)
def status(request: Request):
    """Basic status with the database state for quick diagnostics."""
    connected = getattr(request.app.state, "db", None) is not None
    return StatusResponse(
        status="OK" if connected else "DEGRADED",
        database=getattr(request.app.state, "server_state", "idle"),
        version=request.app.version,
    )
