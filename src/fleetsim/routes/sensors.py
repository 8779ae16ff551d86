"""Sensor API endpoints.

Thin handlers that validate input, delegate to the registry and lifecycle
state machine, and shape responses. Every route here first decodes the
request body, then passes through the fault gate (request delay plus fault
draw) before the handler runs.
"""

from __future__ import annotations

import json
import math
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from fleetsim.errors import (
    InvalidFrequencyError,
    InvalidIdError,
    InvalidJSONError,
    MissingFrequencyError,
    SensorNotFoundError,
)
from fleetsim.faults import FaultGate
from fleetsim.lifecycle import SensorLifecycle
from fleetsim.models import Sensor


async def decode_json_body(request: Request) -> Any:
    """Decode the request body as JSON whatever its declared content type.

    An empty body decodes to an empty object. The decoded value is also
    stored on ``request.state.json_body``.

    Raises:
        InvalidJSONError: If the body is not JSON, or is a bare scalar
            rather than an object or array.
    """
    raw = await request.body()
    if not raw.strip():
        body: Any = {}
    else:
        text = raw.decode("utf-8", errors="replace")
        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidJSONError(text) from exc
        if not isinstance(body, dict | list):
            raise InvalidJSONError(text)
    request.state.json_body = body
    return body


def parse_frequency(body: Any) -> int:
    """Extract and validate the ``frequency`` of a create request.

    Integral floats such as ``2.0`` are accepted; booleans are not.

    Raises:
        MissingFrequencyError: If the body has no ``frequency`` key.
        InvalidFrequencyError: If ``frequency`` is not an integer.
    """
    if not isinstance(body, dict) or "frequency" not in body:
        raise MissingFrequencyError()
    value = body["frequency"]
    if isinstance(value, bool):
        raise InvalidFrequencyError()
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise InvalidFrequencyError()


_RADIX_PREFIXES = {"0x": 16, "0o": 8, "0b": 2}


def parse_sensor_id(raw: str) -> int | float:
    """Parse a sensor id path segment.

    Any non-zero number is a syntactically valid id, including ones no
    sensor could have (negative or fractional); those are simply not found.
    Besides decimal and exponent forms, unsigned ``0x``, ``0o`` and ``0b``
    integers are accepted, as is ``Infinity``. Digit separators (``1_0``)
    and Python-only spellings such as ``inf`` are not.

    Raises:
        InvalidIdError: If the segment is not a number, or is zero.
    """
    text = raw.strip()
    if "_" in text:
        raise InvalidIdError()

    radix = _RADIX_PREFIXES.get(text[:2].lower())
    if radix is not None:
        digits = text[2:]
        if not (digits.isascii() and digits.isalnum()):
            raise InvalidIdError()
        try:
            number = int(digits, radix)
        except ValueError as exc:
            raise InvalidIdError() from exc
        if number == 0:
            raise InvalidIdError()
        return number

    unsigned = text.lstrip("+-")
    if unsigned.lower() in ("inf", "infinity", "nan") and unsigned != "Infinity":
        raise InvalidIdError()
    try:
        value = float(text)
    except ValueError as exc:
        raise InvalidIdError() from exc
    if math.isnan(value) or value == 0:
        raise InvalidIdError()
    return int(value) if value.is_integer() else value


def create_sensor_router(lifecycle: SensorLifecycle, gate: FaultGate) -> APIRouter:
    """Create the router serving the sensor API.

    Mounts:
      - GET  /sensor-ids
      - POST /sensors
      - GET  /sensors/{sensor_id}
      - POST /sensors/{sensor_id}/{action}

    Args:
        lifecycle: State machine owning the sensor registry.
        gate: Fault gate applied to every route before its handler.

    Returns:
        A configured FastAPI APIRouter.
    """
    registry = lifecycle.registry

    async def apply_fault_gate(request: Request) -> None:
        await gate(request)

    router = APIRouter(
        tags=["sensors"],
        dependencies=[Depends(decode_json_body), Depends(apply_fault_gate)],
    )

    def _lookup(raw_id: str) -> Sensor:
        sensor = registry.find_by_id(parse_sensor_id(raw_id))
        if sensor is None:
            raise SensorNotFoundError()
        return sensor

    @router.get("/sensor-ids")
    async def list_sensor_ids() -> JSONResponse:
        """Return the ids of all known sensors."""
        return JSONResponse(content=registry.ids())

    @router.post("/sensors")
    async def create_sensor(request: Request) -> JSONResponse:
        """Create a sensor; it starts INITIALIZING and activates later."""
        frequency = parse_frequency(request.state.json_body)
        sensor = lifecycle.create(frequency)
        return JSONResponse(content=sensor.model_dump(mode="json"))

    @router.get("/sensors/{sensor_id}")
    async def get_sensor(sensor_id: str) -> JSONResponse:
        """Return one sensor with its current status and measurement."""
        return JSONResponse(content=_lookup(sensor_id).model_dump(mode="json"))

    @router.post("/sensors/{sensor_id}/{action}")
    async def change_sensor(sensor_id: str, action: str) -> JSONResponse:
        """Restart or terminate a sensor. Completion happens asynchronously."""
        lifecycle.apply(_lookup(sensor_id), action)
        return JSONResponse(content={"ok": True})

    return router
