"""Health check routes."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        Health status.
    """
    return {"status": "healthy"}


@router.get("/ready")
async def readiness_check(request: Request) -> JSONResponse:
    """Readiness check endpoint.

    Ready once the engine has connected and loaded its tenants.
    """
    engine = request.app.state.engine
    if not engine.started:
        return JSONResponse(status_code=503, content={"status": "starting"})
    return JSONResponse(status_code=200, content={"status": "ready"})
