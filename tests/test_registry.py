"""Tests for the in-memory sensor registry."""

from fleetsim.models import SensorStatus
from fleetsim.registry import SensorRegistry


def test_create_stores_initializing_sensor() -> None:
    registry = SensorRegistry()
    sensor = registry.create(5)
    assert sensor.id == 1
    assert sensor.frequency == 5
    assert sensor.status == SensorStatus.INITIALIZING
    assert sensor.measurement is None
    assert registry.find_by_id(1) is sensor


def test_ids_strictly_increase_and_are_never_reused() -> None:
    """Removing sensors must not free their ids."""
    registry = SensorRegistry()
    seen = []
    for i in range(10):
        sensor = registry.create(i)
        seen.append(sensor.id)
        if i % 2:
            registry.remove(sensor)
    assert seen == sorted(set(seen))
    assert registry.create(0).id == 11


def test_list_preserves_insertion_order() -> None:
    registry = SensorRegistry()
    created = [registry.create(i) for i in range(5)]
    registry.remove(created[2])
    assert [s.id for s in registry.list()] == [1, 2, 4, 5]
    assert registry.ids() == [1, 2, 4, 5]
    assert len(registry) == 4


def test_list_is_a_snapshot() -> None:
    """Mutating the registry while iterating a listing must be safe."""
    registry = SensorRegistry()
    for i in range(3):
        registry.create(i)
    for sensor in registry.list():
        registry.remove(sensor)
        registry.create(sensor.frequency)
    assert len(registry) == 3


def test_find_missing_returns_none() -> None:
    registry = SensorRegistry()
    registry.create(1)
    assert registry.find_by_id(999) is None
    assert registry.find_by_id(1.5) is None
    assert registry.find_by_id(1.0) is not None


def test_remove_is_idempotent() -> None:
    registry = SensorRegistry()
    sensor = registry.create(1)
    registry.remove(sensor)
    registry.remove(sensor)
    assert sensor not in registry
    assert registry.find_by_id(sensor.id) is None
