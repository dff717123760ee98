"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running
and dependencies (record store, cache, bus) are reachable.
"""

from fastapi import APIRouter, Depends

from relaycache import __version__
from relaycache.api.dependencies import get_services
from relaycache.container import Services

router = APIRouter()


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    for name, component in (
        ("store", services.store),
        ("cache", services.cache),
        ("bus", services.bus),
    ):
        try:
            await component.ping()
            checks[name] = "ok"
        except Exception as e:
            checks[name] = f"error: {e}"

    checks["sessions"] = len(services.gateway.sessions)

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k not in ("version", "sessions")
    ) else "degraded"

    return {"status": status, **checks}
