from dataclasses import replace
from datetime import datetime, timezone
import threading
import time
from typing import List

import pytest

from src.domain.entities.interface import Interface
from src.domain.entities.raw_frame import RawFrame
from src.domain.enums import AlertType, InterfaceFamily, SessionState
from src.domain.errors import ConnectError, PollTimeout, ProtocolError
from src.domain.repositories.telemetry_adapter import ITelemetryAdapter
from src.infrastructure.adapters.registry import AdapterRegistry
from src.infrastructure.monitoring.session_manager import MonitoringSession, MonitoringSessionManager

from conftest import FakeStations, make_station

NOW = datetime(2025, 1, 17, 8, 0, tzinfo=timezone.utc)


class FakeAdapter(ITelemetryAdapter):
    """Poll roteirizado: cada item é uma lista de payloads ou uma exceção."""

    def __init__(self, script=None, fail_connect: bool = False) -> None:
        self.script = list(script or [])
        self.fail_connect = fail_connect
        self.open_handles = 0
        self.max_open = 0
        self.disconnects = 0
        self._lock = threading.Lock()

    def connect(self, interface: Interface):
        if self.fail_connect:
            raise ConnectError("offline")
        with self._lock:
            self.open_handles += 1
            self.max_open = max(self.max_open, self.open_handles)
        return object()

    def poll(self, handle) -> List[RawFrame]:
        step = self.script.pop(0) if self.script else [{"tankNumber": "01", "oilVolume": 5000.0}]
        if isinstance(step, Exception):
            raise step
        return [RawFrame(p, NOW) for p in step]

    def disconnect(self, handle) -> None:
        with self._lock:
            self.open_handles -= 1
            self.disconnects += 1


def _session(config, alerts, adapter, sinks=()):
    iface = Interface(1, "SIM")
    return MonitoringSession(iface, adapter, sinks, config, alerts, clock=lambda: NOW)

def test_connect_then_poll_moves_to_monitoring(config, alerts):
    got = []
    s = _session(config, alerts, FakeAdapter(), sinks=[got.append])
    assert s.connect()
    assert s.state is SessionState.CONNECTED
    assert s.poll_once()
    assert s.state is SessionState.MONITORING
    assert s.last_heartbeat == NOW
    assert [r.tank_id for r in got] == ["01"]
    assert got[0].station_id == 1 and got[0].source_interface == "SIM"

def test_three_timeouts_disconnect_with_single_alert(config, alerts):
    adapter = FakeAdapter([PollTimeout("t1"), PollTimeout("t2"), PollTimeout("t3")])
    s = _session(config, alerts, adapter)
    s.connect()
    assert s.poll_once() and s.consecutive_timeouts == 1
    assert s.poll_once() and s.consecutive_timeouts == 2
    assert s.poll_once() is False
    assert s.state is SessionState.DISCONNECTED
    assert adapter.disconnects == 1
    assert len(alerts.items) == 1
    assert alerts.items[0].type is AlertType.INTERFACE_DOWN

def test_successful_poll_resets_timeout_counter(config, alerts):
    s = _session(config, alerts, FakeAdapter([PollTimeout("t"), PollTimeout("t"), [], PollTimeout("t")]))
    s.connect()
    for _ in range(4):
        assert s.poll_once()
    assert s.consecutive_timeouts == 1
    assert alerts.items == []

def test_protocol_error_disconnects_and_alerts(config, alerts):
    adapter = FakeAdapter([ProtocolError("checksum")])
    s = _session(config, alerts, adapter)
    s.connect()
    assert s.poll_once() is False
    assert s.state is SessionState.DISCONNECTED
    assert s.last_error == "checksum"
    assert len(alerts.items) == 1

def test_failing_sink_does_not_stop_other_sinks(config, alerts):
    got = []
    def broken(_):
        raise RuntimeError("db down")
    s = _session(config, alerts, FakeAdapter(), sinks=[broken, got.append])
    s.connect()
    assert s.poll_once()
    assert len(got) == 1

def test_failed_connect_stays_disconnected(config, alerts):
    s = _session(config, alerts, FakeAdapter(fail_connect=True))
    assert s.connect() is False
    assert s.state is SessionState.DISCONNECTED
    assert s.last_error == "offline"


# ---------- manager ----------

def _manager(config, alerts, adapter):
    config.update({"poll_intervals": {"SIM": 0.01}})
    registry = AdapterRegistry({InterfaceFamily.SIM: lambda: adapter})
    return MonitoringSessionManager(FakeStations(make_station(1, "SIM")), [], config, alerts, registry)

def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False

def test_start_is_idempotent(config, alerts):
    adapter = FakeAdapter()
    mgr = _manager(config, alerts, adapter)
    try:
        mgr.start(1, "SIM")
        assert _wait_for(lambda: mgr.session_status((1, "SIM")).is_monitoring)
        mgr.start(1, "SIM")
        assert adapter.max_open == 1
    finally:
        mgr.shutdown()
    assert adapter.open_handles == 0

def test_stop_then_start_never_overlaps_handles(config, alerts):
    adapter = FakeAdapter()
    mgr = _manager(config, alerts, adapter)
    try:
        for _ in range(5):
            mgr.start(1)
            assert _wait_for(lambda: mgr.session_status((1, "SIM")).is_monitoring)
            status = mgr.stop(1)
            assert status[0].state is SessionState.DISCONNECTED
        assert adapter.max_open == 1
    finally:
        mgr.shutdown()

def test_status_of_unknown_key_is_disconnected(config, alerts):
    mgr = _manager(config, alerts, FakeAdapter())
    st = mgr.session_status((99, "NPGIS"))
    assert st.state is SessionState.DISCONNECTED
    assert not st.is_connected

def test_status_lists_registered_interfaces(config, alerts):
    mgr = _manager(config, alerts, FakeAdapter())
    assert [(s.station_id, s.interface_code, s.state) for s in mgr.status()] == [
        (1, "SIM", SessionState.DISCONNECTED)
    ]

def test_unknown_station_raises_lookup(config, alerts):
    mgr = _manager(config, alerts, FakeAdapter())
    with pytest.raises(LookupError):
        mgr.start(42)
    with pytest.raises(LookupError):
        mgr.start(1, "NPGIS")


# ---------- falhas fora do contrato do adaptador ----------

def test_unexpected_poll_error_disconnects_and_alerts(config, alerts):
    adapter = FakeAdapter([RuntimeError("driver bug")])
    s = _session(config, alerts, adapter)
    s.connect()
    assert s.poll_once() is False
    assert s.state is SessionState.DISCONNECTED
    assert s.last_error == "RuntimeError: driver bug"
    assert adapter.disconnects == 1
    assert len(alerts.items) == 1

def test_unexpected_connect_error_is_not_silent(config, alerts):
    class Exploding(FakeAdapter):
        def connect(self, interface):
            raise KeyError("port")

    s = _session(config, alerts, Exploding())
    s.start()
    assert s.join(2.0)
    assert s.state is SessionState.DISCONNECTED
    assert s.last_error.startswith("KeyError")
    assert [a.type for a in alerts.items] == [AlertType.INTERFACE_DOWN]

def test_running_session_alerts_once_on_adapter_crash(config, alerts):
    adapter = FakeAdapter([[{"tankNumber": "01", "oilVolume": 5000.0}], RuntimeError("boom")])
    mgr = _manager(config, alerts, adapter)
    try:
        mgr.start(1, "SIM")
        assert _wait_for(lambda: alerts.items)
        assert _wait_for(lambda: adapter.open_handles == 0)
        st = mgr.session_status((1, "SIM"))
        assert st.state is SessionState.DISCONNECTED
        assert st.last_error == "RuntimeError: boom"
        assert len(alerts.items) == 1
    finally:
        mgr.shutdown()

def test_malformed_frame_does_not_kill_running_session(config, alerts):
    got = []
    adapter = FakeAdapter([[{"tankNumber": float("nan"), "oilVolume": 1.0}]])
    config.update({"poll_intervals": {"SIM": 0.01}})
    registry = AdapterRegistry({InterfaceFamily.SIM: lambda: adapter})
    mgr = MonitoringSessionManager(FakeStations(make_station(1, "SIM")), [got.append], config, alerts, registry)
    try:
        mgr.start(1, "SIM")
        # o frame inválido é descartado e os polls seguintes continuam chegando
        assert _wait_for(lambda: len(got) >= 2)
        assert mgr.session_status((1, "SIM")).is_monitoring
        assert alerts.items == []
    finally:
        mgr.shutdown()


# ---------- stop durante um poll em andamento ----------

class SlowAdapter(FakeAdapter):
    """poll preso como um socket sem resposta até o timeout da interface."""

    def __init__(self, timeout: float) -> None:
        super().__init__()
        self.timeout = timeout
        self.in_poll = threading.Event()

    def poll(self, handle):
        self.in_poll.set()
        time.sleep(self.timeout)
        raise PollTimeout("sem resposta")

def test_stop_cancels_in_flight_poll_within_timeout(config, alerts):
    timeout = 0.3
    adapter = SlowAdapter(timeout)
    station = replace(make_station(1), interfaces=(Interface(1, "SIM", connection_timeout=timeout),))
    registry = AdapterRegistry({InterfaceFamily.SIM: lambda: adapter})
    mgr = MonitoringSessionManager(FakeStations(station), [], config, alerts, registry)

    mgr.start(1, "SIM")
    assert adapter.in_poll.wait(2.0)
    started = time.monotonic()
    (status,) = mgr.stop(1, "SIM")
    elapsed = time.monotonic() - started

    assert status.state is SessionState.DISCONNECTED
    assert elapsed < timeout + 0.5
    assert adapter.open_handles == 0
    assert alerts.items == []
