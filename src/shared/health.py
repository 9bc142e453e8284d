from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from src.dependencies import AppContext, get_app_context

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health(context: AppContext = Depends(get_app_context)):
    stats = context.router.get_stats()
    try:
        cache_ok = await context.cache_backend.ping()
    except Exception:
        cache_ok = False

    body = {
        "status": "ok" if stats["admin_connected"] else "degraded",
        "environment": context.settings.environment,
        "checks": {"admin_partition": stats["admin_connected"], "cache": cache_ok},
    }
    if not stats["admin_connected"]:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body


@router.get("/health/tenants")
async def health_tenants(context: AppContext = Depends(get_app_context)):
    stats = context.router.get_stats()
    return {
        "adminConnected": stats["admin_connected"],
        "tenantConnectionsCount": stats["tenant_connections_count"],
        "tenantIds": stats["tenant_ids"],
    }
