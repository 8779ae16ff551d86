"""Index and debug endpoints.

These bypass the fault gate: they are for humans and test harnesses
inspecting the simulator, not for the client under test.
"""

from __future__ import annotations

import json

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse, Response

from fleetsim.registry import SensorRegistry

GREETING = "Greetings from space!"


def create_debug_router(registry: SensorRegistry) -> APIRouter:
    """Create a router serving ``/`` and ``/debug``.

    Args:
        registry: The registry whose full contents ``/debug`` dumps.

    Returns:
        A configured FastAPI APIRouter.
    """
    router = APIRouter(tags=["debug"])

    @router.get("/")
    async def index() -> PlainTextResponse:
        return PlainTextResponse(content=GREETING)

    @router.get("/debug")
    async def debug_dump() -> Response:
        """Dump every sensor, including internal state, as indented JSON."""
        sensors = [sensor.model_dump(mode="json") for sensor in registry.list()]
        return Response(content=json.dumps(sensors, indent=2), media_type="application/json")

    return router
