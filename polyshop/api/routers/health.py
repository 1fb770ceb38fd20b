from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from polyshop.api.deps import get_store
from polyshop.core.config import settings
from polyshop.core.logging import get_logger
from polyshop.core.metrics import export_metrics
from polyshop.schemas.health import ProbeRead
from polyshop.stores.base import ConnectionState, ReconnectingStore

router = APIRouter(tags=["health"])

logger = get_logger("polyshop.api.health")


def _service_name(request: Request) -> str:
    return getattr(request.app.state, "service_name", settings.SERVICE_NAME)


@router.get("/healthz")
async def healthz(request: Request, store: ReconnectingStore = Depends(get_store)):
    """Readiness/liveness probe that checks store reachability."""
    healthy = await store.ping()
    if not healthy:
        logger.error("Health check failed: store unreachable", extra={"store": store.kind})
    store_status = "healthy" if healthy else "unhealthy"
    body = {
        "status": store_status,
        "service": _service_name(request),
        "pod_name": settings.POD_NAME,
        "node_name": settings.NODE_NAME,
        store.kind: store_status,
    }
    code = status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=body)


@router.get("/live", response_model=ProbeRead)
async def live(request: Request):
    # process liveness only, no store call
    return ProbeRead(status="alive", service=_service_name(request))


@router.get("/ready", response_model=ProbeRead)
async def ready(request: Request, response: Response, store: ReconnectingStore = Depends(get_store)):
    if store.state is not ConnectionState.connected:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ProbeRead(status="not ready", service=_service_name(request))
    return ProbeRead(status="ready", service=_service_name(request))


@router.get("/metrics", include_in_schema=False)
async def metrics():
    payload, content_type = export_metrics()
    return Response(content=payload, media_type=content_type)
