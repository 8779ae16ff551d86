"""Core data models for the sensor fleet simulator."""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field


class SensorStatus(enum.StrEnum):
    """Lifecycle status of a simulated sensor.

    A sensor that has been fully terminated has no status: it is simply
    absent from the registry.
    """

    INITIALIZING = "INITIALIZING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"
    RESTARTING = "RESTARTING"
    TERMINATING = "TERMINATING"


class SensorAction(enum.StrEnum):
    """Actions a client may request on an existing sensor."""

    RESTART = "restart"
    TERMINATE = "terminate"


class FaultKind(enum.StrEnum):
    """Transport-level faults the simulator can inject, in evaluation order."""

    HANG = "hang"
    BAD_GATEWAY = "bad_gateway"
    CLOSE = "close"
    TEXT_ERROR = "text_error"


# Statuses from which a restart or terminate may be requested.
ACTIONABLE_STATUSES = frozenset({SensorStatus.ACTIVE, SensorStatus.FAILED})


class Sensor(BaseModel):
    """A simulated remote sensor device.

    The frequency is carried exactly as the client supplied it and is never
    interpreted by the simulation. The measurement stays ``None`` until the
    sensor has been active for at least one measurement tick.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: int = Field(gt=0, description="Unique, monotonically assigned identifier")
    frequency: int = Field(description="Client-supplied sampling frequency")
    status: SensorStatus = Field(default=SensorStatus.INITIALIZING)
    measurement: float | None = Field(default=None, description="Latest measurement value")

    @property
    def is_active(self) -> bool:
        """Return True if the sensor is eligible for failures and measurements."""
        return self.status == SensorStatus.ACTIVE

    @property
    def accepts_actions(self) -> bool:
        """Return True if a restart or terminate may be applied now."""
        return self.status in ACTIONABLE_STATUSES
