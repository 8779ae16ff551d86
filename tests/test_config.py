"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from fleetsim.config import FaultRatesConfig, SimulatorConfig, TimingConfig, load_config
from fleetsim.models import FaultKind


def test_default_config(tmp_path, monkeypatch) -> None:
    """Loading with no file should produce valid defaults."""
    monkeypatch.delenv("PORT", raising=False)
    config = load_config(tmp_path / "missing.yaml")
    assert config.server.port == 3000
    assert config.modes.unreliable is False
    assert config.modes.fail_sensors is False
    assert config.timing.action_delay_min_ms == 2000
    assert config.timing.action_delay_max_ms == 5000


def test_load_config_from_yaml(tmp_path, monkeypatch) -> None:
    """Configuration should load from a YAML file."""
    monkeypatch.delenv("PORT", raising=False)
    path = tmp_path / "fleetsim.yaml"
    path.write_text(
        """
server:
  port: 9090
  host: 127.0.0.1
modes:
  unreliable: true
faults:
  hang: 0.0
  bad_gateway: 0.1
seed: 7
"""
    )
    config = load_config(path)

    assert config.server.port == 9090
    assert config.server.host == "127.0.0.1"
    assert config.modes.unreliable is True
    assert config.faults.bad_gateway == 0.1
    assert config.seed == 7


def test_port_env_overrides_file(tmp_path, monkeypatch) -> None:
    """The PORT environment variable should win over the config file."""
    path = tmp_path / "fleetsim.yaml"
    path.write_text("server:\n  port: 9090\n")
    monkeypatch.setenv("PORT", "4567")
    assert load_config(path).server.port == 4567


@pytest.mark.parametrize("value", ["abc", "0", "70000"])
def test_invalid_port_env_rejected(tmp_path, monkeypatch, value: str) -> None:
    """A bad PORT value should fail validation like a bad file value."""
    monkeypatch.setenv("PORT", value)
    with pytest.raises(ValidationError, match="port"):
        load_config(tmp_path / "missing.yaml")


def test_graceful_shutdown_timeout(tmp_path, monkeypatch) -> None:
    """The shutdown grace period has a default and can be configured."""
    monkeypatch.delenv("PORT", raising=False)
    assert load_config(tmp_path / "missing.yaml").server.graceful_shutdown_s == 5.0

    path = tmp_path / "fleetsim.yaml"
    path.write_text("server:\n  graceful_shutdown_s: 1.5\n")
    config = load_config(path)
    assert config.server.graceful_shutdown_s == 1.5
    assert config.server.port == 3000

    with pytest.raises(ValidationError):
        SimulatorConfig.model_validate({"server": {"graceful_shutdown_s": 0}})


def test_reliable_mode_zeroes_fault_rates() -> None:
    """Without unreliable mode every fault rate is zero, in fixed order."""
    config = SimulatorConfig()
    rates = config.effective_fault_rates()
    assert [kind for _, kind in rates] == [
        FaultKind.HANG,
        FaultKind.BAD_GATEWAY,
        FaultKind.CLOSE,
        FaultKind.TEXT_ERROR,
    ]
    assert all(rate == 0.0 for rate, _ in rates)


def test_unreliable_mode_uses_configured_rates() -> None:
    config = SimulatorConfig()
    config.modes.unreliable = True
    assert [rate for rate, _ in config.effective_fault_rates()] == [0.05, 0.05, 0.05, 0.05]


def test_failure_rate_depends_on_mode() -> None:
    config = SimulatorConfig()
    assert config.effective_failure_rate() == 0.0
    config.modes.fail_sensors = True
    assert config.effective_failure_rate() == 0.2


def test_fault_rates_must_not_exceed_one() -> None:
    with pytest.raises(ValidationError):
        FaultRatesConfig(hang=0.5, bad_gateway=0.3, close=0.3, text_error=0.0)


def test_delay_ranges_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        TimingConfig(action_delay_min_ms=5000, action_delay_max_ms=1000)
