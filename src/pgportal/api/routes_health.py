from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from pgportal.api.deps import get_gateway


def create_health_router(health_path: str) -> APIRouter:
    router = APIRouter()

    @router.get(health_path)
    async def health(request: Request) -> dict[str, Any]:
        gateway = get_gateway(request)
        return {
            "status": "ok",
            "hasDatabase": gateway.router.has_pool,
            "activeConnections": gateway.registry.count(),
            "secretRequired": gateway.settings.secret_configured,
        }

    return router
