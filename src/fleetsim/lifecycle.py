"""Sensor lifecycle state machine.

Multi-step operations (activation after create, restart, terminate) change
status immediately where needed and then complete after a randomized action
delay, modelling real device latency. Completions are scheduled on the
clock and never block the caller. They are not cancellable: if the sensor
has changed in the meantime, the last write wins, and a completion for a
sensor that has already been removed does nothing.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable

from fleetsim.clock import Clock
from fleetsim.errors import InvalidActionError, InvalidStatusError
from fleetsim.models import Sensor, SensorAction, SensorStatus
from fleetsim.registry import SensorRegistry

logger = logging.getLogger(__name__)


class SensorLifecycle:
    """Applies lifecycle transitions to sensors held in a registry."""

    def __init__(
        self,
        registry: SensorRegistry,
        clock: Clock,
        *,
        action_delay_min_ms: float = 2000,
        action_delay_max_ms: float = 5000,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the state machine.

        Args:
            registry: The registry whose sensors this machine drives.
            clock: Clock used to schedule delayed completions.
            action_delay_min_ms: Lower bound of the action delay.
            action_delay_max_ms: Upper bound of the action delay.
            rng: Random source for action delays.
        """
        self.registry = registry
        self.clock = clock
        self.action_delay_min_ms = action_delay_min_ms
        self.action_delay_max_ms = action_delay_max_ms
        self._rng = rng or random.Random()

    def action_delay(self) -> float:
        """Draw a fresh action delay, in seconds."""
        return self._rng.uniform(self.action_delay_min_ms, self.action_delay_max_ms) / 1000.0

    def create(self, frequency: int) -> Sensor:
        """Register a new sensor and schedule its activation.

        Returns:
            The new sensor, still INITIALIZING.
        """
        sensor = self.registry.create(frequency)
        self._after_delay(sensor, self._complete_activation)
        logger.info("Sensor %d initializing", sensor.id)
        return sensor

    def apply(self, sensor: Sensor, action: str) -> None:
        """Start a restart or terminate on ``sensor``.

        The status check happens before the action name is validated, so a
        busy sensor reports its status even for an unknown action.

        Raises:
            InvalidStatusError: If the sensor is not ACTIVE or FAILED.
            InvalidActionError: If ``action`` is not a known action.
        """
        if not sensor.accepts_actions:
            raise InvalidStatusError(sensor.status)

        if action == SensorAction.RESTART:
            sensor.status = SensorStatus.RESTARTING
            self._after_delay(sensor, self._complete_activation)
        elif action == SensorAction.TERMINATE:
            sensor.status = SensorStatus.TERMINATING
            self._after_delay(sensor, self._complete_termination)
        else:
            raise InvalidActionError()

        logger.info("Sensor %d %s", sensor.id, sensor.status.lower())

    def fail(self, sensor: Sensor) -> bool:
        """Move an ACTIVE sensor to FAILED.

        Returns:
            True if the sensor was failed, False if it was not ACTIVE.
        """
        if not sensor.is_active:
            return False
        sensor.status = SensorStatus.FAILED
        logger.info("Sensor %d failed", sensor.id)
        return True

    def _after_delay(self, sensor: Sensor, completion: Callable[[Sensor], None]) -> None:
        self.clock.call_later(self.action_delay(), lambda: completion(sensor))

    def _complete_activation(self, sensor: Sensor) -> None:
        if sensor not in self.registry:
            return
        sensor.status = SensorStatus.ACTIVE
        logger.info("Sensor %d active", sensor.id)

    def _complete_termination(self, sensor: Sensor) -> None:
        self.registry.remove(sensor)
        logger.info("Sensor %d terminated", sensor.id)
