"""FastAPI server for the sensor fleet simulator.

Wires the registry, lifecycle state machine, background schedulers and
fault gate into one application, with a middleware that logs the timing of
every request.
"""

from __future__ import annotations

import json
import logging
import random
import time
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from fleetsim.clock import AsyncioClock, Clock
from fleetsim.config import SimulatorConfig, load_config
from fleetsim.errors import SimulatorError
from fleetsim.faults import (
    DROP_CONNECTION_KEY,
    ERROR_TEXT_CONTENT,
    ConnectionDropper,
    FaultGate,
    InjectedFault,
)
from fleetsim.lifecycle import SensorLifecycle
from fleetsim.models import FaultKind
from fleetsim.registry import SensorRegistry
from fleetsim.routes import create_debug_router, create_sensor_router
from fleetsim.schedulers import BackgroundSchedulers

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

logger = logging.getLogger(__name__)


class SimulatorServer:
    """Owns one independent simulated fleet and the app that serves it.

    Every component gets its own random stream derived from the configured
    seed, so a seeded server replays the same delays, faults, failures and
    measurements.
    """

    def __init__(self, config: SimulatorConfig | None = None, *, clock: Clock | None = None) -> None:
        """Initialize the simulator server.

        Args:
            config: Optional configuration. If None, loads from fleetsim.yaml.
            clock: Time source for delays and tickers. Defaults to the
                asyncio event loop clock.
        """
        self.config = config or load_config()
        self.clock = clock or AsyncioClock()

        seeds = random.Random(self.config.seed)

        def _rng() -> random.Random:
            if self.config.seed is None:
                return random.Random()
            return random.Random(seeds.getrandbits(64))

        timing = self.config.timing
        self.registry = SensorRegistry()
        self.lifecycle = SensorLifecycle(
            self.registry,
            self.clock,
            action_delay_min_ms=timing.action_delay_min_ms,
            action_delay_max_ms=timing.action_delay_max_ms,
            rng=_rng(),
        )
        self.gate = FaultGate(
            self.clock,
            self.config.effective_fault_rates(),
            request_delay_min_ms=timing.request_delay_min_ms,
            request_delay_max_ms=timing.request_delay_max_ms,
            rng=_rng(),
        )
        self.schedulers = BackgroundSchedulers(
            self.registry,
            self.lifecycle,
            self.clock,
            failure_rate=self.config.effective_failure_rate(),
            failure_interval_s=timing.failure_interval_s,
            measurement_interval_s=timing.measurement_interval_s,
            measurement_min=self.config.sensors.measurement_min,
            measurement_max=self.config.sensors.measurement_max,
            rng=_rng(),
        )
        self.app = self._create_app()
        self.asgi_app = ConnectionDropper(self.app)

    def _create_app(self) -> FastAPI:
        """Create and configure the FastAPI application.

        Returns:
            A configured FastAPI instance with middleware, error handlers
            and routes.
        """

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
            self._startup()
            yield
            self._shutdown()

        app = FastAPI(
            title="Sensor Fleet Simulator",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=lifespan,
        )

        app.middleware("http")(self._request_log_middleware)

        app.add_exception_handler(SimulatorError, self._handle_simulator_error)  # type: ignore[arg-type]
        app.add_exception_handler(InjectedFault, self._handle_injected_fault)  # type: ignore[arg-type]
        app.add_exception_handler(Exception, self._handle_unexpected_error)

        app.include_router(create_debug_router(self.registry))
        app.include_router(create_sensor_router(self.lifecycle, self.gate))

        return app

    def _startup(self) -> None:
        """Log the active modes and start the background schedulers."""
        modes = self.config.modes
        logger.info("Running in %s mode.", "unreliable" if modes.unreliable else "reliable")
        logger.info(
            "Running %s intermittent sensor failure.",
            "with" if modes.fail_sensors else "without",
        )
        self.schedulers.start()
        logger.info(
            "Sensor API listening at http://%s:%d",
            self.config.server.host,
            self.config.server.port,
        )

    def _shutdown(self) -> None:
        """Stop the schedulers and release any requests held by hang faults."""
        self.schedulers.stop()
        released = self.gate.release_hung()
        if released:
            logger.info("Released %d hung request(s)", released)
        logger.info("Sensor simulator shutting down")

    async def _request_log_middleware(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Log each request on arrival and again with its outcome and timing.

        Args:
            request: The incoming FastAPI Request.
            call_next: The next middleware/handler in the chain.

        Returns:
            The response from the handler.
        """
        label = f"{request.method} {request.url.path}"
        if request.url.query:
            label = f"{label}?{request.url.query}"
        logger.info("%s ...", label)

        start_time = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        if request.scope.get(DROP_CONNECTION_KEY):
            logger.info("%s - connection dropped - %dms", label, elapsed_ms)
            return response

        logger.info(
            "%s - %d %s - %dms - %sb sent",
            label,
            response.status_code,
            _reason_phrase(response.status_code),
            elapsed_ms,
            response.headers.get("content-length", 0),
        )
        return response

    async def _handle_simulator_error(self, request: Request, exc: SimulatorError) -> Response:
        return self._error_response(exc.status_code, exc.message)

    async def _handle_injected_fault(self, request: Request, exc: InjectedFault) -> Response:
        """Render an injected fault in place of the handler's response."""
        if exc.kind == FaultKind.TEXT_ERROR:
            return PlainTextResponse(content=ERROR_TEXT_CONTENT, status_code=500)
        if exc.kind == FaultKind.CLOSE:
            request.scope[DROP_CONNECTION_KEY] = True
            return Response(status_code=500)
        return Response(status_code=502)

    async def _handle_unexpected_error(self, request: Request, exc: Exception) -> Response:
        """Report an unexpected error as a 500. The server logs the traceback."""
        return self._error_response(500, str(exc))

    def _error_response(self, status_code: int, message: str) -> Response:
        """Build a structured ``{"error": message}`` response.

        Args:
            status_code: HTTP status code.
            message: Human-readable error message.

        Returns:
            A JSON Response.
        """
        body = json.dumps({"error": message})
        return Response(content=body, status_code=status_code, media_type="application/json")


def _reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


def create_app(
    config_path: str | None = None,
    *,
    unreliable: bool | None = None,
    fail_sensors: bool | None = None,
) -> ConnectionDropper:
    """Create the simulator ASGI application.

    This is the main entry point for ASGI servers like uvicorn.

    Args:
        config_path: Optional path to the fleetsim.yaml config file.
        unreliable: Override the configured unreliable mode.
        fail_sensors: Override the configured sensor failure mode.

    Returns:
        The configured application, wrapped so injected connection drops
        can abort the client socket.
    """
    config = load_config(config_path)
    if unreliable is not None:
        config.modes.unreliable = unreliable
    if fail_sensors is not None:
        config.modes.fail_sensors = fail_sensors
    server = SimulatorServer(config)
    return server.asgi_app
