import random
import threading
from datetime import timedelta

import pytest

from binwatch.config import ThresholdConfig
from binwatch.engine.alerts import AlertEngine
from binwatch.engine.monitor import FleetMonitor
from binwatch.engine.store import UnknownBinMetadata
from binwatch.models.schemas import Bin

from conftest import T0, FakeClock, first_sight


def _keys(monitor: FleetMonitor) -> list[tuple[str, str]]:
    return [(item.bin_code, item.alert_type) for item in monitor.active_alerts()]


def test_full_bin_raises_single_high_alert_and_resolves(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-ABJ-002", clock.now, weight=92.1, battery=45))
    alerts = monitor.active_alerts()
    assert len(alerts) == 1
    assert alerts[0].alert_type == "full"
    assert alerts[0].priority == "high"
    assert "BIN-ABJ-002" in alerts[0].message

    monitor.ingest({"code": "BIN-ABJ-002", "timestamp": clock.advance(3), "weight": 50.0})
    assert monitor.active_alerts() == ()


def test_low_battery_alert_mentions_level(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-ABJ-003", clock.now, weight=23.7, battery=15))
    alerts = monitor.active_alerts()
    assert [(item.alert_type, item.priority) for item in alerts] == [("low_battery", "medium")]
    assert "15" in alerts[0].message

    monitor.ingest({"code": "BIN-ABJ-003", "timestamp": clock.advance(3), "battery": 25})
    assert monitor.active_alerts() == ()


def test_repeated_condition_refreshes_instead_of_duplicating(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-1", clock.now, weight=95.0))
    created = monitor.active_alerts()[0]

    for _ in range(5):
        monitor.ingest({"code": "BIN-1", "timestamp": clock.advance(3), "weight": 96.0})

    alerts = monitor.active_alerts()
    assert len(alerts) == 1
    assert alerts[0].created_at == created.created_at
    assert alerts[0].last_seen == T0 + timedelta(seconds=15)
    assert alerts[0].message == created.message


def test_full_and_low_battery_are_independent(monitor, clock) -> None:
    record = monitor.ingest(first_sight("BIN-1", clock.now, weight=95.0, battery=10))
    assert monitor.view(record).status == "full"
    assert sorted(_keys(monitor)) == [("BIN-1", "full"), ("BIN-1", "low_battery")]


def test_offline_alert_waits_for_liveness_threshold(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-1", clock.now, online=False))
    assert monitor.active_alerts() == ()

    clock.advance(301)
    assert monitor.sweep_liveness() == ["BIN-1"]
    alerts = monitor.active_alerts()
    assert [(item.alert_type, item.priority) for item in alerts] == [("offline", "high")]
    assert alerts[0].message == "BIN-1: offline for 5m"


def test_sweep_takes_silent_bin_offline(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-1", clock.now))
    clock.advance(200)
    assert monitor.sweep_liveness() == []

    clock.advance(101)
    assert monitor.sweep_liveness() == ["BIN-1"]
    assert monitor.get_bin("BIN-1").online is False
    assert _keys(monitor) == [("BIN-1", "offline")]

    monitor.ingest({"code": "BIN-1", "timestamp": clock.advance(1), "online": True})
    assert monitor.active_alerts() == ()


def test_resolve_is_idempotent(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-1", clock.now, weight=95.0))
    assert monitor.resolve_alert("BIN-1", "full") is True
    after_first = monitor.active_alerts()
    assert monitor.resolve_alert("BIN-1", "full") is False
    assert monitor.active_alerts() == after_first == ()


def test_resolve_unknown_alert_is_noop(monitor) -> None:
    assert monitor.resolve_alert("BIN-MISSING", "offline") is False
    assert monitor.active_alerts() == ()


def test_acknowledged_alert_returns_only_after_condition_clears(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-1", clock.now, weight=95.0))
    monitor.resolve_alert("BIN-1", "full")

    monitor.ingest({"code": "BIN-1", "timestamp": clock.advance(3), "weight": 97.0})
    assert monitor.active_alerts() == ()

    monitor.ingest({"code": "BIN-1", "timestamp": clock.advance(3), "weight": 5.0})
    monitor.ingest({"code": "BIN-1", "timestamp": clock.advance(3), "weight": 93.0})
    assert _keys(monitor) == [("BIN-1", "full")]


def test_alerts_ordered_by_priority_then_age(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-A", clock.now, battery=12))
    clock.advance(10)
    monitor.ingest(first_sight("BIN-B", clock.now, weight=91.0))
    clock.advance(10)
    monitor.ingest(first_sight("BIN-C", clock.now, weight=99.0))

    assert _keys(monitor) == [("BIN-B", "full"), ("BIN-C", "full"), ("BIN-A", "low_battery")]


def test_priorities_follow_configuration(clock) -> None:
    thresholds = ThresholdConfig(full_priority="medium", low_battery_priority="high")
    monitor = FleetMonitor(thresholds, clock=clock)
    monitor.ingest(first_sight("BIN-1", clock.now, weight=95.0, battery=5))
    assert [(item.alert_type, item.priority) for item in monitor.active_alerts()] == [
        ("low_battery", "high"),
        ("full", "medium"),
    ]


def test_reconcile_returns_raised_alerts_only() -> None:
    clock = FakeClock()
    engine = AlertEngine(ThresholdConfig(), clock=clock)
    record = Bin(
        code="BIN-1",
        name="One",
        address="Here",
        latitude=0.0,
        longitude=0.0,
        current_weight=95.0,
        capacity=100.0,
        battery_level=50,
        online=True,
        last_update=clock.now,
    )
    assert [item.alert_type for item in engine.reconcile(record)] == ["full"]
    assert engine.reconcile(record) == []


def _expected_alert_types(clock: FakeClock, record: Bin) -> set[str]:
    expected: set[str] = set()
    if record.fill_percentage >= 90:
        expected.add("full")
    if record.battery_level < 20:
        expected.add("low_battery")
    silence = (clock.now - record.last_update).total_seconds()
    if not record.online and silence > 300:
        expected.add("offline")
    return expected


def test_concurrent_ingestion_keeps_one_alert_per_key(monitor, clock) -> None:
    codes = [f"BIN-{index:02d}" for index in range(6)]
    for code in codes:
        monitor.ingest(first_sight(code, clock.now - timedelta(seconds=900)))

    def worker(seed: int) -> None:
        rng = random.Random(seed)
        for _ in range(300):
            monitor.ingest(
                {
                    "code": rng.choice(codes),
                    "timestamp": clock.now - timedelta(seconds=rng.randint(0, 800)),
                    "weight": rng.uniform(-10.0, 120.0),
                    "battery": rng.randint(-5, 105),
                    "online": rng.random() > 0.3,
                    "deposit_increment": rng.randint(0, 2),
                }
            )

    threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    keys = _keys(monitor)
    assert len(keys) == len(set(keys))
    for record in monitor.list_bins():
        assert 0 <= record.current_weight <= record.capacity
        assert 0 <= record.battery_level <= 100
        active = {item.alert_type for item in monitor.alerts.alerts_for(record.code)}
        assert active == _expected_alert_types(clock, record)


def test_resolution_racing_reconcile_never_duplicates(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-1", clock.now, weight=95.0, battery=5))
    stop = threading.Event()

    def ingester() -> None:
        rng = random.Random(1)
        while not stop.is_set():
            monitor.ingest(
                {"code": "BIN-1", "timestamp": clock.now, "weight": rng.choice([95.0, 40.0]), "battery": 5}
            )

    def resolver() -> None:
        for _ in range(500):
            monitor.resolve_alert("BIN-1", "full")
            monitor.resolve_alert("BIN-1", "low_battery")
            keys = _keys(monitor)
            assert len(keys) == len(set(keys))

    ingest_thread = threading.Thread(target=ingester)
    ingest_thread.start()
    resolver()
    stop.set()
    ingest_thread.join()

    keys = _keys(monitor)
    assert len(keys) == len(set(keys))
    assert ("BIN-1", "low_battery") not in keys


def test_rejected_ingests_and_unknown_resolves_leave_no_locks(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-1", clock.now, weight=95.0))
    for index in range(100):
        with pytest.raises(UnknownBinMetadata):
            monitor.ingest({"code": f"BIN-GHOST-{index}", "timestamp": clock.now, "weight": 1.0})
        assert monitor.resolve_alert(f"BIN-GHOST-{index}", "full") is False

    assert len(monitor.store._bin_locks) == len(monitor.list_bins()) == 1
    assert set(monitor.alerts._bin_locks) == {"BIN-1"}


def test_late_deposit_reaches_fleet_totals(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-1", clock.now, deposit_increment=2))
    monitor.ingest({"code": "BIN-1", "timestamp": clock.now + timedelta(seconds=10), "deposit_increment": 1})
    monitor.ingest({"code": "BIN-1", "timestamp": clock.now + timedelta(seconds=5), "deposit_increment": 1})

    assert monitor.fleet_aggregate().deposits_today == 4
    assert monitor.incremental_aggregate() == monitor.fleet_aggregate()


def test_silenced_bin_reporting_again_counts_as_online(monitor, clock) -> None:
    monitor.ingest(first_sight("BIN-1", clock.now))
    clock.advance(301)
    monitor.sweep_liveness()
    assert monitor.fleet_aggregate().online_bins == 0

    record = monitor.ingest({"code": "BIN-1", "timestamp": clock.advance(1), "weight": 20.0})
    assert monitor.view(record).status == "active"
    assert monitor.fleet_aggregate().online_bins == 1
    assert monitor.active_alerts() == ()
