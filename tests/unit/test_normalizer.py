from datetime import datetime, timezone

import pytest

from src.domain.entities.raw_frame import RawFrame
from src.domain.errors import NormalizationError
from src.domain.normalizer import normalize, normalize_batch

RECEIVED = datetime(2025, 1, 17, 10, 0, tzinfo=timezone.utc)


def test_atg_camelcase_frame():
    frame = RawFrame({
        "tankNumber": "1", "oilVolume": 4850.5, "totalVolume": 4870.5, "waterVolume": 20.0,
        "waterHeight": 3.1, "temperature": 27.4, "timestamp": "2025-01-17T09:59:00Z",
    }, RECEIVED)
    r = normalize(frame, "npgis", station_id=1)
    assert r.tank_id == "01"
    assert r.volume == 4850.5
    assert r.water_level == 3.1
    assert r.source_interface == "NPGIS"
    assert r.captured_at == datetime(2025, 1, 17, 9, 59, tzinfo=timezone.utc)
    assert r.pressure is None

def test_pts_pascalcase_frame_uses_total_minus_water():
    frame = RawFrame({"Probe": 3, "ProductVolume": 5000.0, "WaterVolume": 40.0, "Temperature": 26.0}, RECEIVED)
    r = normalize(frame, "NFPP")
    assert r.tank_id == "03"
    assert r.volume == 4960.0
    assert r.total_volume == 5000.0

def test_missing_timestamp_falls_back_to_received_at():
    r = normalize(RawFrame({"tank_id": "A1", "current_volume": 10.0}, RECEIVED), "SIM")
    assert r.tank_id == "A1"
    assert r.captured_at == RECEIVED
    # ausentes viram 0.0, nunca None
    assert r.water_level == 0.0
    assert r.temperature == 0.0

def test_missing_tank_id_is_rejected():
    with pytest.raises(NormalizationError):
        normalize(RawFrame({"oilVolume": 100.0}, RECEIVED), "SIM")

def test_non_numeric_field_is_rejected():
    with pytest.raises(NormalizationError):
        normalize(RawFrame({"tankNumber": "01", "oilVolume": "abc"}, RECEIVED), "SIM")

def test_negative_volume_is_rejected():
    with pytest.raises(NormalizationError):
        normalize(RawFrame({"tankNumber": "01", "oilVolume": -5}, RECEIVED), "SIM")

def test_normalize_is_idempotent():
    frame = RawFrame({"tankNumber": "02", "oilVolume": 1200.0, "temperature": 25.0}, RECEIVED)
    assert normalize(frame, "SIM", 1) == normalize(frame, "SIM", 1)

def test_batch_drops_invalid_frames():
    frames = [
        RawFrame({"tankNumber": "01", "oilVolume": 100.0}, RECEIVED),
        RawFrame({"oilVolume": 200.0}, RECEIVED),
        RawFrame({"tankNumber": "03", "oilVolume": 300.0}, RECEIVED),
    ]
    readings, errors = normalize_batch(frames, "SIM", 1)
    assert [r.tank_id for r in readings] == ["01", "03"]
    assert len(errors) == 1

@pytest.mark.parametrize("payload", [
    {"tankNumber": float("nan"), "oilVolume": 1.0},
    {"tankNumber": float("inf"), "oilVolume": 1.0},
    {"tankNumber": "01", "oilVolume": 1.0, "timestamp": 1e20},
    {"tankNumber": "01", "oilVolume": 1.0, "timestamp": float("nan")},
])
def test_unparseable_fields_are_normalization_errors(payload):
    with pytest.raises(NormalizationError):
        normalize(RawFrame(payload, RECEIVED), "SIM")

def test_batch_survives_nan_tank_id():
    frames = [RawFrame({"tankNumber": float("nan"), "oilVolume": 1.0}, RECEIVED),
              RawFrame({"tankNumber": "02", "oilVolume": 2.0}, RECEIVED)]
    readings, errors = normalize_batch(frames, "SIM", 1)
    assert [r.tank_id for r in readings] == ["02"]
    assert len(errors) == 1
