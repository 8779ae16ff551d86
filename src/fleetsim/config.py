"""Configuration loading and validation for fleetsim."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

from fleetsim.models import FaultKind

PORT_ENV_VAR = "PORT"


class ServerConfig(BaseModel):
    """Configuration for the HTTP listener."""

    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    graceful_shutdown_s: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for open connections, hung ones included, before shutdown",
    )


class ModesConfig(BaseModel):
    """The two independent simulation switches."""

    unreliable: bool = Field(
        default=False,
        description="Inject transport faults (hangs, 502s, dropped connections, text errors)",
    )
    fail_sensors: bool = Field(
        default=False,
        description="Intermittently move active sensors to FAILED",
    )


class TimingConfig(BaseModel):
    """Delays and ticker intervals, in milliseconds and seconds."""

    request_delay_min_ms: float = Field(default=0, ge=0)
    request_delay_max_ms: float = Field(default=1000, ge=0)
    action_delay_min_ms: float = Field(default=2000, ge=0)
    action_delay_max_ms: float = Field(default=5000, ge=0)
    failure_interval_s: float = Field(default=10.0, gt=0)
    measurement_interval_s: float = Field(default=3.0, gt=0)

    @model_validator(mode="after")
    def _check_ranges(self) -> TimingConfig:
        if self.request_delay_max_ms < self.request_delay_min_ms:
            raise ValueError("request_delay_max_ms must be >= request_delay_min_ms")
        if self.action_delay_max_ms < self.action_delay_min_ms:
            raise ValueError("action_delay_max_ms must be >= action_delay_min_ms")
        return self


class FaultRatesConfig(BaseModel):
    """Per-request fault probabilities used when unreliable mode is on."""

    hang: float = Field(default=0.05, ge=0.0, le=1.0)
    bad_gateway: float = Field(default=0.05, ge=0.0, le=1.0)
    close: float = Field(default=0.05, ge=0.0, le=1.0)
    text_error: float = Field(default=0.05, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_total(self) -> FaultRatesConfig:
        total = self.hang + self.bad_gateway + self.close + self.text_error
        if total > 1.0:
            raise ValueError(f"Fault rates must sum to at most 1.0, got {total}")
        return self


class SensorConfig(BaseModel):
    """Behavior of the simulated devices."""

    failure_rate: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Per-tick failure probability for each active sensor in failure mode",
    )
    measurement_min: float = 0.0
    measurement_max: float = 100.0


class LoggingConfig(BaseModel):
    """Configuration for logging output."""

    level: str = "info"


class SimulatorConfig(BaseModel):
    """Top-level fleetsim configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    modes: ModesConfig = Field(default_factory=ModesConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    faults: FaultRatesConfig = Field(default_factory=FaultRatesConfig)
    sensors: SensorConfig = Field(default_factory=SensorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    seed: int | None = Field(
        default=None,
        description="Seed for every random draw; None means nondeterministic",
    )

    def effective_fault_rates(self) -> list[tuple[float, FaultKind]]:
        """Return the ordered fault rates in force for the current mode.

        All rates are zero in reliable mode, which turns the fault gate into
        a pass-through.
        """
        enabled = self.modes.unreliable
        return [
            (self.faults.hang if enabled else 0.0, FaultKind.HANG),
            (self.faults.bad_gateway if enabled else 0.0, FaultKind.BAD_GATEWAY),
            (self.faults.close if enabled else 0.0, FaultKind.CLOSE),
            (self.faults.text_error if enabled else 0.0, FaultKind.TEXT_ERROR),
        ]

    def effective_failure_rate(self) -> float:
        """Return the per-tick sensor failure probability for the current mode."""
        return self.sensors.failure_rate if self.modes.fail_sensors else 0.0


def load_config(path: str | Path | None = None) -> SimulatorConfig:
    """Load fleetsim configuration from a YAML file and the environment.

    Args:
        path: Path to the YAML config file. If None, uses 'fleetsim.yaml'
              in the current directory, falling back to defaults.

    Returns:
        A validated SimulatorConfig instance. The ``PORT`` environment
        variable, when set, overrides the configured port.

    Raises:
        pydantic.ValidationError: If the file or the ``PORT`` variable holds
            an invalid value.
    """
    path = Path("fleetsim.yaml") if path is None else Path(path)

    raw: dict[str, Any] = {}
    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}

    env_port = os.environ.get(PORT_ENV_VAR)
    if env_port:
        server = raw.get("server") or {}
        server["port"] = env_port
        raw["server"] = server

    return SimulatorConfig.model_validate(raw)
