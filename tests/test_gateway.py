import logging
from datetime import timedelta

import pytest

from binwatch.config import SeedBin
from binwatch.engine.store import BinStore, UnknownBinMetadata
from binwatch.sensors.gateway import IngestionGateway, InvalidSnapshot
from binwatch.sensors.simulator import RandomWalkProducer, seed_snapshots

from conftest import T0, first_sight

SEEDS = [
    SeedBin("BIN-1", "One", "Rue A", 5.0, -4.0, 100, 45.0, 87),
    SeedBin("BIN-2", "Two", "Rue B", 5.1, -4.1, 80, 79.5, 21),
    SeedBin("BIN-3", "Three", "Rue C", 5.2, -4.2, 100, 60.0, 90, online=False, seconds_since_update=600),
]


def test_out_of_range_values_are_clamped_and_logged(caplog) -> None:
    gateway = IngestionGateway(BinStore())
    gateway.ingest(first_sight("BIN-1", T0, capacity=100.0))

    with caplog.at_level(logging.WARNING, logger="binwatch.sensors.gateway"):
        record = gateway.ingest(
            {"code": "BIN-1", "timestamp": T0, "weight": 150.0, "battery": 130, "deposit_increment": -2}
        )

    assert record.current_weight == 100.0
    assert record.battery_level == 100
    assert record.deposits_today == 0
    assert len([item for item in caplog.records if "clamped" in item.getMessage()]) == 3


def test_first_sight_weight_clamped_to_declared_capacity() -> None:
    gateway = IngestionGateway(BinStore())
    record = gateway.ingest(first_sight("BIN-1", T0, capacity=60.0, weight=75.0, battery=-3))
    assert record.current_weight == 60.0
    assert record.battery_level == 0


def test_malformed_snapshots_are_rejected() -> None:
    store = BinStore()
    gateway = IngestionGateway(store)
    with pytest.raises(InvalidSnapshot):
        gateway.ingest({"code": "BIN-1", "weight": 10.0})
    with pytest.raises(InvalidSnapshot):
        gateway.ingest(first_sight("BIN-1", T0, weight=float("nan")))
    with pytest.raises(InvalidSnapshot):
        gateway.ingest(first_sight("BIN-1", T0, capacity=0))
    assert store.list_bins() == ()


def test_unknown_bin_without_metadata() -> None:
    store = BinStore()
    with pytest.raises(UnknownBinMetadata):
        IngestionGateway(store).ingest({"code": "BIN-9", "timestamp": T0, "weight": 4.0})
    assert len(store) == 0


def test_seed_snapshots_backdate_timestamps() -> None:
    snapshots = seed_snapshots(SEEDS, T0)
    assert [item.code for item in snapshots] == ["BIN-1", "BIN-2", "BIN-3"]
    assert snapshots[2].timestamp == T0 - timedelta(seconds=600)
    assert snapshots[1].capacity == 80


def test_random_walk_is_seed_deterministic() -> None:
    first = RandomWalkProducer(SEEDS, seed=11)
    second = RandomWalkProducer(SEEDS, seed=11)
    for tick in range(50):
        now = T0 + timedelta(seconds=3 * tick)
        assert first.poll(now) == second.poll(now)


def test_random_walk_stays_in_range_and_skips_offline_bins() -> None:
    producer = RandomWalkProducer(SEEDS, seed=3)
    capacities = {item.code: item.capacity for item in SEEDS}
    for tick in range(500):
        snapshots = producer.poll(T0 + timedelta(seconds=3 * tick))
        assert [item.code for item in snapshots] == ["BIN-1", "BIN-2"]
        for item in snapshots:
            assert 0 <= item.weight <= capacities[item.code]
            assert 0 <= item.battery <= 100
            assert item.deposit_increment in (0, 1)
