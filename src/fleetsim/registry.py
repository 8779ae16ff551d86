"""In-memory device registry.

Holds the canonical state of every sensor for the lifetime of a server
instance. Nothing is persisted.
"""

from __future__ import annotations

import itertools
import logging
import threading

from fleetsim.models import Sensor, SensorStatus

logger = logging.getLogger(__name__)


class SensorRegistry:
    """Insertion-ordered store of sensors keyed by id.

    Structural changes (create, remove) are serialized with a lock, and
    ``list()`` always returns a snapshot, so background tickers can iterate
    while requests add and remove sensors.
    """

    def __init__(self) -> None:
        self._sensors: dict[int, Sensor] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def allocate_id(self) -> int:
        """Return a fresh id. Ids are strictly increasing and never reused."""
        with self._lock:
            return next(self._ids)

    def create(self, frequency: int) -> Sensor:
        """Create and store a new sensor in the INITIALIZING state.

        Args:
            frequency: The client-supplied frequency, stored as-is.

        Returns:
            The stored Sensor.
        """
        sensor = Sensor(
            id=self.allocate_id(),
            frequency=frequency,
            status=SensorStatus.INITIALIZING,
            measurement=None,
        )
        with self._lock:
            self._sensors[sensor.id] = sensor
        logger.debug("Created sensor %d (frequency=%d)", sensor.id, frequency)
        return sensor

    def list(self) -> list[Sensor]:
        """Return a snapshot of all stored sensors in insertion order."""
        with self._lock:
            return list(self._sensors.values())

    def ids(self) -> list[int]:
        """Return the ids of all stored sensors in insertion order."""
        with self._lock:
            return list(self._sensors)

    def find_by_id(self, sensor_id: int | float) -> Sensor | None:
        """Look up a sensor by id. A missing sensor is not an error."""
        with self._lock:
            return self._sensors.get(sensor_id)  # type: ignore[call-overload]

    def remove(self, sensor: Sensor) -> None:
        """Delete a sensor. Removing an absent sensor is a no-op."""
        with self._lock:
            removed = self._sensors.pop(sensor.id, None)
        if removed is not None:
            logger.debug("Removed sensor %d", sensor.id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sensors)

    def __contains__(self, sensor: object) -> bool:
        if not isinstance(sensor, Sensor):
            return False
        with self._lock:
            return self._sensors.get(sensor.id) is sensor
