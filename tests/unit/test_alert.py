from datetime import datetime, timedelta, timezone

from src.domain.entities.alert import Alert
from src.domain.entities.volume_events import AnomalyEvent, RefillEvent
from src.domain.enums import AlertType, Severity

from conftest import T0


def _event(cls, before, after):
    return cls(tank_id="02", delta=abs(after - before), window_start=T0, window_end=T0 + timedelta(minutes=5),
               threshold=100.0, volume_before=before, volume_after=after, station_id=3)

def test_volume_anomaly_is_critical():
    a = Alert.volume_anomaly(_event(AnomalyEvent, 5000.0, 4850.0))
    assert a.type is AlertType.VOLUME_ANOMALY
    assert a.severity is Severity.CRITICAL
    assert (a.station_id, a.tank_id) == (3, "02")
    assert "150.0" in a.message
    assert a.metadata["kind"] == "anomaly"

def test_refill_is_informative():
    a = Alert.refill(_event(RefillEvent, 4850.0, 5400.0))
    assert a.type is AlertType.REFILL
    assert a.severity is Severity.NORMAL
    assert a.metadata["volume_after"] == 5400.0

def test_interface_down_and_submission_failed():
    down = Alert.interface_down(1, "NPGIS", "3 timeouts consecutivos")
    assert down.tank_id is None and down.metadata["reason"] == "3 timeouts consecutivos"
    failed = Alert.submission_failed(1, "RPT-20250116", 3, "HTTP 503")
    assert failed.type is AlertType.SUBMISSION_FAILED
    assert failed.metadata["attempts"] == 3

def test_resolve_duration():
    a = Alert.interface_down(1, "SIM", "erro", alert_id="a-1")
    assert a.duration is None
    b = a.resolve(a.created_at + timedelta(minutes=2))
    assert b is not a and b.id == "a-1"
    assert b.duration == timedelta(minutes=2)

def test_naive_timestamps_become_utc():
    a = Alert("x", None, None, AlertType.REFILL, Severity.NORMAL, "m", datetime(2025, 1, 17, 8, 0))
    assert a.created_at.tzinfo is timezone.utc
