from datetime import datetime, timedelta, timezone
import struct
from zoneinfo import ZoneInfo

import pytest
import requests

from src.domain.entities.interface import Interface, resolve_family
from src.domain.enums import InterfaceFamily
from src.domain.errors import ConnectError, PollTimeout, ProtocolError
from src.domain.normalizer import normalize_batch
from src.infrastructure.adapters import atg_adapter
from src.infrastructure.adapters.atg_adapter import AtgAdapter, decode_i201
from src.infrastructure.adapters.pts_adapter import PtsAdapter, PtsHandle
from src.infrastructure.adapters.registry import AdapterRegistry
from src.infrastructure.adapters.simulated_adapter import SimulatedAdapter

RECEIVED = datetime(2025, 1, 17, 7, 0, tzinfo=timezone.utc)


def _hex(value: float) -> str:
    return struct.pack(">f", value).hex().upper()

def _tank(tank: str, values) -> str:
    return f"{tank}10000{len(values):02X}" + "".join(_hex(v) for v in values)

# volume, tc, ullage, altura, água(mm), temperatura, volume água
TANK_1 = [5020.0, 4990.0, 4980.0, 1200.0, 12.0, 27.5, 20.0]
TANK_2 = [8000.0, 7950.0, 7000.0, 1500.0, 0.0, 26.0, 0.0]


# ---------- ATG i201 ----------

def test_decode_i201_two_tanks():
    raw = "\x01i201002501171000" + _tank("01", TANK_1) + _tank("02", TANK_2) + "&&ABCD\x03"
    frames = decode_i201(raw, RECEIVED, ZoneInfo("Africa/Dar_es_Salaam"))
    assert [f.payload["tankNumber"] for f in frames] == ["01", "02"]
    assert frames[0].payload["oilVolume"] == 5000.0
    assert frames[0].payload["temperature"] == 27.5
    # 10:00 local (UTC+3)
    assert frames[0].payload["timestamp"].startswith("2025-01-17T10:00:00+03:00")

    readings, errors = normalize_batch(frames, "NPGIS", station_id=1)
    assert errors == []
    assert readings[0].volume == 5000.0
    assert readings[0].captured_at == datetime(2025, 1, 17, 7, 0, tzinfo=timezone.utc)
    assert readings[1].water_level == 0.0

def test_decode_i201_without_marker():
    with pytest.raises(ProtocolError):
        decode_i201("9999FF1B&&", RECEIVED)

def test_decode_i201_without_terminator():
    with pytest.raises(ProtocolError):
        decode_i201("i201002501171000" + _tank("01", TANK_1), RECEIVED)

def test_decode_i201_truncated_fields():
    raw = "i201002501171000" + _tank("01", TANK_1)[:-4] + "&&ABCD"
    with pytest.raises(ProtocolError):
        decode_i201(raw, RECEIVED)


# ---------- códigos e registry ----------

@pytest.mark.parametrize("code, family", [
    ("NPGIS", InterfaceFamily.NPGIS), ("atg", InterfaceFamily.NPGIS), ("CONSOLE", InterfaceFamily.NPGIS),
    ("NFPP", InterfaceFamily.NFPP), ("pts", InterfaceFamily.NFPP), ("VFD", InterfaceFamily.NFPP),
    ("SIM", InterfaceFamily.SIM), ("simulated", InterfaceFamily.SIM),
])
def test_interface_aliases(code, family):
    assert resolve_family(code) is family

def test_registry_creates_fresh_adapter_per_session():
    reg = AdapterRegistry()
    a = reg.create(Interface(1, "SIM"))
    b = reg.create(Interface(1, "SIM"))
    assert isinstance(a, SimulatedAdapter) and a is not b

def test_registry_rejects_unknown_code():
    with pytest.raises(ConnectError):
        AdapterRegistry().create(Interface(1, "MODBUS"))


# ---------- simulador ----------

def test_simulator_is_deterministic_with_seed():
    times = iter(RECEIVED + timedelta(minutes=i) for i in range(10))

    def clock():
        return next(times)

    iface = Interface(1, "SIM", {"seed": 42, "tanks": [1, 2]})

    sim = SimulatedAdapter(clock)
    handle = sim.connect(iface)
    frames = sim.poll(handle)
    assert [f.payload["tankNumber"] for f in frames] == ["01", "02"]
    readings, errors = normalize_batch(frames, "SIM", 1)
    assert errors == [] and all(r.volume > 0 for r in readings)

    sim.disconnect(handle)
    with pytest.raises(ProtocolError):
        sim.poll(handle)

def test_simulator_unreachable_flag():
    with pytest.raises(ConnectError):
        SimulatedAdapter().connect(Interface(1, "SIM", {"unreachable": True}))


# ---------- PTS (jsonPTS) ----------

class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload, self.status_code = payload, status
    def json(self):
        return self.payload

class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts = []
    def post(self, url, json, timeout):
        self.posts.append(json)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item
    def close(self):
        pass

def _pts_handle(*responses) -> PtsHandle:
    return PtsHandle(Interface(1, "NFPP", {"host": "10.0.0.5"}), FakeSession(*responses),
                     "http://10.0.0.5/jsonPTS", probes=[1])

def test_pts_poll_reads_probe_measurements():
    data = {"Packets": [{"Id": 1, "Type": "ProbeGetMeasurements",
                         "Data": {"ProductVolume": 5100.0, "WaterVolume": 100.0, "Temperature": 26.5}}]}
    handle = _pts_handle(FakeResponse(data))
    frames = PtsAdapter(sleep=lambda s: None).poll(handle)
    readings, _ = normalize_batch(frames, "NFPP", 1)
    assert readings[0].tank_id == "01"
    assert readings[0].volume == 5000.0
    assert handle.session.posts[0]["Packets"][0]["Data"] == {"Probe": 1}

def test_pts_error_packet_is_protocol_error():
    err = {"Packets": [{"Id": 1, "Error": True, "Message": "Probe not found"}]}
    with pytest.raises(ProtocolError):
        PtsAdapter(sleep=lambda s: None).poll(_pts_handle(FakeResponse(err)))

def test_pts_timeouts_become_poll_timeout():
    handle = _pts_handle(requests.Timeout("t"), requests.Timeout("t"))
    with pytest.raises(PollTimeout):
        PtsAdapter(sleep=lambda s: None).poll(handle)


# ---------- ATG: conexão ----------

class FakeSocket:
    def __init__(self, fail_settimeout=False):
        self.fail_settimeout = fail_settimeout
        self.closed = False
    def settimeout(self, value):
        if self.fail_settimeout:
            raise OSError("socket inválido")
    def close(self):
        self.closed = True

def _atg(**connection) -> Interface:
    return Interface(1, "ATG", {"host": "10.0.0.5", **connection}, connection_timeout=1.0)

@pytest.mark.parametrize("connection", [
    {"timezone": "Marte/Olympus"},
    {"timezone": ""},
    {"port": "abc"},
    {"port": None},
])
def test_atg_bad_config_fails_before_opening_socket(monkeypatch, connection):
    opened = []
    monkeypatch.setattr(atg_adapter.socket, "create_connection",
                        lambda *a, **kw: opened.append(a) or FakeSocket())
    with pytest.raises(ConnectError):
        AtgAdapter().connect(_atg(**connection))
    assert opened == []

def test_atg_socket_setup_failure_closes_socket(monkeypatch):
    sock = FakeSocket(fail_settimeout=True)
    monkeypatch.setattr(atg_adapter.socket, "create_connection", lambda *a, **kw: sock)
    with pytest.raises(ConnectError):
        AtgAdapter().connect(_atg())
    assert sock.closed

def test_atg_unreachable_is_connect_error(monkeypatch):
    def refuse(*a, **kw):
        raise ConnectionRefusedError("refused")
    monkeypatch.setattr(atg_adapter.socket, "create_connection", refuse)
    with pytest.raises(ConnectError):
        AtgAdapter().connect(_atg(port=10001))
