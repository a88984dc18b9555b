from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import Gauge

from app.shared.db.session import health_check as db_health_check

SYSTEM_HEALTH = Gauge(
    "cirrus_system_health",
    "System health status (1=healthy, 0=unhealthy)",
)

API_PREFIX = "/api/v1"


def _validate_router_registry(routes: list[tuple[Any, str]]) -> None:
    for router, prefix in routes:
        route_list = getattr(router, "routes", None)
        if not isinstance(route_list, list) or not route_list:
            raise RuntimeError("Router registry includes an empty router definition")
        if not prefix.startswith("/"):
            raise RuntimeError(f"Router prefix must start with '/': {prefix!r}")


def register_lifecycle_routes(
    app: FastAPI,
    *,
    app_name: str,
    version: str,
) -> None:
    """Register lifecycle and health endpoints."""

    @app.get("/", tags=["Lifecycle"])
    async def root() -> dict[str, str]:
        """Root endpoint for basic reachability."""
        return {"status": "ok", "app": app_name, "version": version}

    @app.get("/health", tags=["Lifecycle"])
    async def health_check() -> Any:
        """Health check for load balancers; reports database reachability."""
        database = await db_health_check()
        healthy = database.get("status") == "up"
        SYSTEM_HEALTH.set(1.0 if healthy else 0.0)
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "app": app_name,
            "version": version,
            "database": database,
        }
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            body["scheduler"] = scheduler.get_status()
        if not healthy:
            return JSONResponse(status_code=503, content=body)
        return body


def register_api_routers(app: FastAPI) -> None:
    """Register API route modules in one place to keep app entrypoint focused."""
    from app.modules.compliance.api.v1.compliance import router as compliance_router
    from app.modules.inventory.api.v1.refresh import router as refresh_router

    routes = [
        (refresh_router, API_PREFIX),
        (compliance_router, API_PREFIX),
    ]
    _validate_router_registry(routes)
    for router, prefix in routes:
        app.include_router(router, prefix=prefix)
