"""Client-facing error types.

Every error a client can provoke with bad input is a SimulatorError. The
server renders them as ``{"error": message}`` with the carried status code.
"""

from __future__ import annotations

from fleetsim.models import SensorStatus


class SimulatorError(Exception):
    """Base class for errors reported to the client as structured JSON."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidJSONError(SimulatorError):
    """The request body could not be decoded as JSON."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"invalid json: received '{raw}'")
        self.raw = raw


class MissingFrequencyError(SimulatorError):
    def __init__(self) -> None:
        super().__init__("missing frequency")


class InvalidFrequencyError(SimulatorError):
    def __init__(self) -> None:
        super().__init__("invalid frequency")


class InvalidIdError(SimulatorError):
    def __init__(self) -> None:
        super().__init__("invalid id")


class SensorNotFoundError(SimulatorError):
    status_code = 404

    def __init__(self) -> None:
        super().__init__("not found")


class InvalidStatusError(SimulatorError):
    """An action was requested while the sensor is busy or initializing."""

    def __init__(self, status: SensorStatus) -> None:
        super().__init__(f"sensor status is {status}")
        self.status = status


class InvalidActionError(SimulatorError):
    def __init__(self) -> None:
        super().__init__("invalid action")
