"""Tests for the fault injection pipeline."""

import asyncio
import random
from collections import Counter

import pytest
from starlette.requests import Request

from fleetsim.clock import ManualClock
from fleetsim.faults import FaultGate, InjectedFault, WeightedChoice
from fleetsim.models import FaultKind

DEFAULT_RATES = [
    (0.05, FaultKind.HANG),
    (0.05, FaultKind.BAD_GATEWAY),
    (0.05, FaultKind.CLOSE),
    (0.05, FaultKind.TEXT_ERROR),
]


def _request() -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/sensor-ids",
            "headers": [],
            "query_string": b"",
        }
    )


def _gate(rates: list[tuple[float, FaultKind]], **kwargs: float) -> FaultGate:
    kwargs.setdefault("request_delay_min_ms", 0)
    kwargs.setdefault("request_delay_max_ms", 0)
    return FaultGate(ManualClock(), rates, rng=random.Random(5), **kwargs)


class TestWeightedChoice:
    """Cumulative selection over ordered probabilities."""

    def test_draw_boundaries(self) -> None:
        choice = WeightedChoice([(0.1, "a"), (0.2, "b")])
        assert choice.pick(0.0) == "a"
        assert choice.pick(0.0999) == "a"
        assert choice.pick(0.1) == "b"
        assert choice.pick(0.2999) == "b"
        assert choice.pick(0.31) is None
        assert choice.pick(0.99) is None

    def test_zero_weight_never_selected(self) -> None:
        choice = WeightedChoice([(0.0, "a"), (0.5, "b"), (0.0, "c")])
        assert choice.pick(0.0) == "b"
        assert choice.pick(0.6) is None

    def test_all_zero_is_pass_through(self) -> None:
        choice = WeightedChoice([(0.0, k) for _, k in DEFAULT_RATES], rng=random.Random(0))
        assert all(choice.pick() is None for _ in range(1000))

    def test_rejects_negative_probability(self) -> None:
        with pytest.raises(ValueError):
            WeightedChoice([(-0.1, "a")])

    def test_rejects_total_above_one(self) -> None:
        with pytest.raises(ValueError):
            WeightedChoice([(0.6, "a"), (0.6, "b")])

    def test_empirical_rates_converge(self) -> None:
        """Each category's observed rate should match its configured rate."""
        choice = WeightedChoice(DEFAULT_RATES, rng=random.Random(1234))
        n = 40_000
        counts = Counter(choice.pick() for _ in range(n))
        for rate, kind in DEFAULT_RATES:
            assert counts[kind] / n == pytest.approx(rate, abs=0.01)
        assert counts[None] / n == pytest.approx(0.8, abs=0.01)


class TestFaultGate:
    """The per-request gate used as a FastAPI dependency."""

    def test_request_delay_bounds(self) -> None:
        gate = _gate([], request_delay_min_ms=0, request_delay_max_ms=1000)
        delays = [gate.request_delay() for _ in range(200)]
        assert all(0.0 <= d <= 1.0 for d in delays)

    def test_disabled_when_all_rates_zero(self) -> None:
        gate = _gate([(0.0, k) for _, k in DEFAULT_RATES])
        assert gate.enabled is False
        assert gate.roll() is None

    @pytest.mark.asyncio
    async def test_pass_through(self) -> None:
        gate = _gate([(0.0, FaultKind.BAD_GATEWAY)])
        assert await gate(_request()) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kind", [FaultKind.BAD_GATEWAY, FaultKind.CLOSE, FaultKind.TEXT_ERROR]
    )
    async def test_raises_injected_fault(self, kind: FaultKind) -> None:
        gate = _gate([(1.0, kind)])
        with pytest.raises(InjectedFault) as excinfo:
            await gate(_request())
        assert excinfo.value.kind == kind

    @pytest.mark.asyncio
    async def test_request_delay_runs_before_fault(self) -> None:
        clock = ManualClock()
        gate = FaultGate(
            clock,
            [(1.0, FaultKind.BAD_GATEWAY)],
            request_delay_min_ms=500,
            request_delay_max_ms=500,
        )
        task = asyncio.create_task(gate(_request()))
        await asyncio.sleep(0)
        assert not task.done()

        clock.advance(0.5)
        with pytest.raises(InjectedFault):
            await task

    @pytest.mark.asyncio
    async def test_hang_until_released(self) -> None:
        gate = _gate([(1.0, FaultKind.HANG)])
        task = asyncio.create_task(gate(_request()))
        for _ in range(5):
            await asyncio.sleep(0)
        assert not task.done()
        assert gate.hung_requests == 1

        assert gate.release_hung() == 1
        with pytest.raises(asyncio.CancelledError):
            await task
        assert gate.hung_requests == 0
