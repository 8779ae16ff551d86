"""Background tickers that advance sensor state independently of requests.

Two tickers run for the lifetime of the server:

  - the failure ticker rolls, for every ACTIVE sensor, whether it fails;
  - the measurement ticker writes a fresh measurement to every ACTIVE sensor.

Both iterate a registry snapshot and only ever touch ACTIVE sensors.
"""

from __future__ import annotations

import logging
import random

from fleetsim.clock import Clock, Ticker
from fleetsim.lifecycle import SensorLifecycle
from fleetsim.registry import SensorRegistry

logger = logging.getLogger(__name__)


def trigger_failures(
    registry: SensorRegistry,
    lifecycle: SensorLifecycle,
    failure_rate: float,
    rng: random.Random,
) -> int:
    """Independently fail each ACTIVE sensor with probability ``failure_rate``.

    Returns:
        The number of sensors moved to FAILED.
    """
    failed = 0
    for sensor in registry.list():
        if not sensor.is_active:
            continue
        if rng.random() < failure_rate and lifecycle.fail(sensor):
            failed += 1
    return failed


def trigger_measurements(
    registry: SensorRegistry,
    rng: random.Random,
    low: float = 0.0,
    high: float = 100.0,
) -> int:
    """Refresh the measurement of every ACTIVE sensor.

    Values are drawn uniformly from ``[low, high)``.

    Returns:
        The number of sensors measured.
    """
    measured = 0
    span = high - low
    for sensor in registry.list():
        if sensor.is_active:
            sensor.measurement = low + rng.random() * span
            measured += 1
    return measured


class BackgroundSchedulers:
    """Owns the failure and measurement tickers for one server instance."""

    def __init__(
        self,
        registry: SensorRegistry,
        lifecycle: SensorLifecycle,
        clock: Clock,
        *,
        failure_rate: float = 0.0,
        failure_interval_s: float = 10.0,
        measurement_interval_s: float = 3.0,
        measurement_min: float = 0.0,
        measurement_max: float = 100.0,
        rng: random.Random | None = None,
    ) -> None:
        self.registry = registry
        self.lifecycle = lifecycle
        self.clock = clock
        self.failure_rate = failure_rate
        self.failure_interval_s = failure_interval_s
        self.measurement_interval_s = measurement_interval_s
        self.measurement_min = measurement_min
        self.measurement_max = measurement_max
        self._rng = rng or random.Random()
        self._tickers: list[Ticker] = []

    @property
    def running(self) -> bool:
        return bool(self._tickers)

    def start(self) -> None:
        """Start both tickers. Calling start twice has no effect."""
        if self._tickers:
            return
        self._tickers = [
            self.clock.every(self.failure_interval_s, self.failure_tick),
            self.clock.every(self.measurement_interval_s, self.measurement_tick),
        ]
        logger.info(
            "Background schedulers started (failure every %ss at rate %s, "
            "measurement every %ss)",
            self.failure_interval_s,
            self.failure_rate,
            self.measurement_interval_s,
        )

    def stop(self) -> None:
        for ticker in self._tickers:
            ticker.stop()
        self._tickers = []

    def failure_tick(self) -> None:
        failed = trigger_failures(self.registry, self.lifecycle, self.failure_rate, self._rng)
        if failed:
            logger.debug("Failure tick failed %d sensor(s)", failed)

    def measurement_tick(self) -> None:
        trigger_measurements(
            self.registry,
            self._rng,
            low=self.measurement_min,
            high=self.measurement_max,
        )
