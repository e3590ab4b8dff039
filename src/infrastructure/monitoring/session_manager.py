"""
Gerenciador das sessões de monitoramento (uma por estação + interface).

Máquina de estados por sessão::

    DISCONNECTED --start--> CONNECTING --connect ok--> CONNECTED --loop--> MONITORING
    CONNECTING --falha--> DISCONNECTED (nova tentativa após backoff, até CONNECT_MAX_ATTEMPTS)
    MONITORING --stop--> DISCONNECTED (adapter.disconnect)
    MONITORING --ProtocolError--> DISCONNECTED (alerta)
    MONITORING --N timeouts seguidos--> DISCONNECTED (um único alerta)

Cada sessão roda seu loop numa thread própria (daemon) e é dona exclusiva do
adaptador. Um lock por chave (estação, interface) é segurado enquanto o handle
está aberto: um `start` logo após `stop` espera o handle anterior fechar antes
de conectar de novo, então nunca há dois handles vivos para a mesma chave.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from config.settings import CONNECT_BACKOFF_BASE, CONNECT_BACKOFF_MAX, CONNECT_MAX_ATTEMPTS
from src.domain.entities.alert import Alert
from src.domain.entities.interface import Interface
from src.domain.entities.monitoring_session import SessionStatus
from src.domain.entities.schedule_config import ScheduleConfig
from src.domain.entities.tank_reading import TankReading
from src.domain.enums import SessionState
from src.domain.errors import ConnectError, PollTimeout, ProtocolError
from src.domain.normalizer import normalize_batch
from src.domain.repositories.alert_repository import IAlertSink
from src.domain.repositories.station_repository import IStationDirectory
from src.domain.repositories.telemetry_adapter import ITelemetryAdapter
from src.infrastructure.adapters.registry import AdapterRegistry

log = logging.getLogger("fuelsync.monitoring.session")

SessionKey = Tuple[int, str]
ReadingSink = Callable[[TankReading], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MonitoringSession:
    """Ciclo de vida de uma (estação, interface): conexão, polling e parada."""

    def __init__(
        self,
        interface: Interface,
        adapter: Optional[ITelemetryAdapter],
        sinks: Iterable[ReadingSink],
        config_provider: Callable[[], ScheduleConfig],
        alert_sink: Optional[IAlertSink] = None,
        handle_lock: Optional[threading.Lock] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.interface = interface
        self.adapter = adapter
        self.sinks = list(sinks)
        self.config_provider = config_provider
        self.alert_sink = alert_sink
        self.handle_lock = handle_lock or threading.Lock()
        self.clock = clock

        self.state = SessionState.DISCONNECTED
        self.last_heartbeat: Optional[datetime] = None
        self.consecutive_timeouts = 0
        self.last_error: Optional[str] = None

        self._handle: Any = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---------- consulta ----------
    @property
    def key(self) -> SessionKey:
        return self.interface.key

    @property
    def active(self) -> bool:
        """True enquanto a thread da sessão estiver viva."""
        return self._thread is not None and self._thread.is_alive()

    def status(self) -> SessionStatus:
        with self._lock:
            return SessionStatus(
                station_id=self.interface.station_id,
                interface_code=self.interface.code,
                state=self.state,
                last_heartbeat=self.last_heartbeat,
                consecutive_timeouts=self.consecutive_timeouts,
                last_error=self.last_error,
            )

    # ---------- controle ----------
    def start(self) -> None:
        """Dispara a thread do loop; no-op se já estiver ativa."""
        with self._lock:
            if self.active:
                return
            self._stop.clear()
            self._set_state(SessionState.CONNECTING)
            self._thread = threading.Thread(
                target=self.run, name=f"session-{self.key[0]}-{self.key[1]}", daemon=True
            )
            self._thread.start()

    def request_stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread is not None:
            self._thread.join(timeout)
        return not self.active

    # ---------- loop ----------
    def run(self) -> None:
        with self.handle_lock:
            try:
                if not self._connect_with_backoff():
                    return
                while not self._stop.is_set():
                    if not self.poll_once():
                        return
                    interval = self.config_provider().poll_interval(self.interface.family.name)
                    if self._stop.wait(interval):
                        return
            except Exception as e:
                # erro fora do contrato do adaptador: a sessão cai, mas nunca em silêncio
                reason = f"{type(e).__name__}: {e}"
                with self._lock:
                    self.last_error = reason
                log.exception("session_crashed station=%s iface=%s", self.key[0], self.key[1])
                self._raise_alert(reason)
            finally:
                self.close()

    def _connect_with_backoff(self) -> bool:
        attempt = 0
        while not self._stop.is_set():
            if self.connect():
                return True
            attempt += 1
            if attempt >= CONNECT_MAX_ATTEMPTS:
                self._raise_alert(f"{attempt} falhas de conexão: {self.last_error}")
                return False
            delay = min(CONNECT_BACKOFF_BASE * 2 ** (attempt - 1), CONNECT_BACKOFF_MAX)
            log.warning("connect_retry station=%s iface=%s attempt=%s wait=%.1fs",
                        self.key[0], self.key[1], attempt, delay)
            if self._stop.wait(delay):
                return False
            with self._lock:
                self._set_state(SessionState.CONNECTING)
        return False

    def connect(self) -> bool:
        """Abre o handle. CONNECTING → CONNECTED, ou DISCONNECTED em falha."""
        if self.adapter is None:
            return False
        try:
            handle = self.adapter.connect(self.interface)
        except ConnectError as e:
            with self._lock:
                self.last_error = str(e)
                self._set_state(SessionState.DISCONNECTED)
            log.warning("connect_failed station=%s iface=%s reason=%s", self.key[0], self.key[1], e)
            return False
        with self._lock:
            self._handle = handle
            self.consecutive_timeouts = 0
            self.last_error = None
            self._set_state(SessionState.CONNECTED)
        return True

    def poll_once(self) -> bool:
        """
        Um ciclo: poll → normalização → sinks (persistência, hub, detector).

        Returns:
            False quando a sessão deve encerrar (protocolo ou timeouts esgotados).
        """
        with self._lock:
            if self._handle is None:
                return False
            if self.state is SessionState.CONNECTED:
                self._set_state(SessionState.MONITORING)
            handle = self._handle

        try:
            frames = self.adapter.poll(handle)
        except PollTimeout as e:
            limit = self.config_provider().max_consecutive_timeouts
            with self._lock:
                self.consecutive_timeouts += 1
                count = self.consecutive_timeouts
                self.last_error = str(e)
            log.warning("poll_timeout station=%s iface=%s count=%s/%s",
                        self.key[0], self.key[1], count, limit)
            if count >= limit:
                self.close()
                self._raise_alert(f"{count} timeouts consecutivos")
                return False
            return True
        except ProtocolError as e:
            with self._lock:
                self.last_error = str(e)
            log.error("protocol_error station=%s iface=%s reason=%s", self.key[0], self.key[1], e)
            self.close()
            self._raise_alert(str(e))
            return False
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            with self._lock:
                self.last_error = reason
            log.exception("poll_failed station=%s iface=%s", self.key[0], self.key[1])
            self.close()
            self._raise_alert(reason)
            return False

        readings, _ = normalize_batch(frames, self.interface.code, self.interface.station_id)
        for reading in readings:
            self._dispatch(reading)

        with self._lock:
            self.consecutive_timeouts = 0
            self.last_heartbeat = self.clock()
        return True

    def close(self) -> None:
        """Fecha o handle (se houver) e vai para DISCONNECTED."""
        with self._lock:
            handle, self._handle = self._handle, None
            self._set_state(SessionState.DISCONNECTED)
        if handle is not None:
            try:
                self.adapter.disconnect(handle)
            except Exception:
                log.exception("disconnect_failed station=%s iface=%s", self.key[0], self.key[1])

    # ---------- helpers ----------
    def _dispatch(self, reading: TankReading) -> None:
        for sink in self.sinks:
            try:
                sink(reading)
            except Exception:
                log.exception("reading_sink_failed station=%s tank=%s sink=%s",
                              reading.station_id, reading.tank_id, getattr(sink, "__qualname__", sink))

    def _set_state(self, new: SessionState) -> None:
        # chamado com self._lock adquirido
        if new is not self.state:
            log.info("session_state station=%s iface=%s from=%s to=%s",
                     self.key[0], self.key[1], self.state.name, new.name)
            self.state = new

    def _raise_alert(self, reason: str) -> None:
        alert = Alert.interface_down(self.interface.station_id, self.interface.code, reason)
        log.warning("interface_down station=%s iface=%s reason=%s", self.key[0], self.key[1], reason)
        if self.alert_sink is None:
            return
        try:
            self.alert_sink.save(alert)
        except Exception:
            log.exception("alert_sink_failed station=%s iface=%s", self.key[0], self.key[1])


class MonitoringSessionManager:
    """
    API de controle: start/stop/status por (estação, interface).

    Identificadores omitidos significam "todos". Operações sobre a mesma
    chave são serializadas.
    """

    def __init__(
        self,
        stations: IStationDirectory,
        sinks: Iterable[ReadingSink],
        config_provider: Callable[[], ScheduleConfig],
        alert_sink: Optional[IAlertSink] = None,
        registry: Optional[AdapterRegistry] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.stations = stations
        self.sinks = list(sinks)
        self.config_provider = config_provider
        self.alert_sink = alert_sink
        self.registry = registry or AdapterRegistry()
        self.clock = clock

        self._sessions: Dict[SessionKey, MonitoringSession] = {}
        self._handle_locks: Dict[SessionKey, threading.Lock] = {}
        self._key_locks: Dict[SessionKey, threading.Lock] = {}
        self._lock = threading.Lock()

    # ---------- API ----------
    def start(self, station_id: Optional[int] = None, interface_code: Optional[str] = None) -> List[SessionStatus]:
        return [self.start_session(i) for i in self._interfaces(station_id, interface_code)]

    def stop(self, station_id: Optional[int] = None, interface_code: Optional[str] = None) -> List[SessionStatus]:
        return [self.stop_session(k) for k in self._matching_keys(station_id, interface_code)]

    def status(self, station_id: Optional[int] = None, interface_code: Optional[str] = None) -> List[SessionStatus]:
        keys = set(self._matching_keys(station_id, interface_code))
        try:
            keys.update(i.key for i in self._interfaces(station_id, interface_code))
        except LookupError:
            pass
        return [self.session_status(k) for k in sorted(keys)]

    def start_session(self, interface: Interface) -> SessionStatus:
        """Inicia a sessão da interface; idempotente se já estiver ativa."""
        key = interface.key
        with self._key_lock(key):
            session = self._sessions.get(key)
            if session is not None and session.active:
                return session.status()

            try:
                adapter = self.registry.create(interface)
            except ConnectError as e:
                adapter = None
                log.error("adapter_unavailable station=%s iface=%s reason=%s", key[0], key[1], e)
                error = str(e)
            else:
                error = None

            session = MonitoringSession(
                interface, adapter, self.sinks, self.config_provider, self.alert_sink,
                handle_lock=self._handle_lock(key), clock=self.clock,
            )
            with self._lock:
                self._sessions[key] = session
            if adapter is None:
                session.last_error = error
                return session.status()
            session.start()
            return session.status()

    def stop_session(self, key: SessionKey) -> SessionStatus:
        """Cancela o loop, espera o handle fechar (até um timeout) e descarta a sessão."""
        with self._key_lock(key):
            with self._lock:
                session = self._sessions.pop(key, None)
            if session is None:
                return SessionStatus(key[0], key[1], SessionState.DISCONNECTED)
            session.request_stop()
            wait = session.interface.connection_timeout + 1.0
            if not session.join(wait):
                log.warning("session_stop_slow station=%s iface=%s wait=%.1fs", key[0], key[1], wait)
            return SessionStatus(key[0], key[1], SessionState.DISCONNECTED,
                                 last_heartbeat=session.last_heartbeat, last_error=session.last_error)

    def session_status(self, key: SessionKey) -> SessionStatus:
        with self._lock:
            session = self._sessions.get(key)
        if session is None:
            return SessionStatus(key[0], key[1], SessionState.DISCONNECTED)
        return session.status()

    def remove_station(self, station_id: int) -> None:
        """Estação desativada: encerra e descarta todas as suas sessões."""
        for key in self._matching_keys(station_id, None):
            self.stop_session(key)

    def shutdown(self) -> None:
        for key in self._matching_keys(None, None):
            self.stop_session(key)

    # ---------- helpers ----------
    def _interfaces(self, station_id: Optional[int], interface_code: Optional[str]) -> List[Interface]:
        if station_id is None:
            stations = list(self.stations.list_active())
        else:
            station = self.stations.get(station_id)
            if station is None:
                raise LookupError(f"Estação {station_id} não encontrada")
            stations = [station]

        code = interface_code.strip().upper() if interface_code else None
        found = [i for s in stations for i in s.interfaces if code is None or i.code == code]
        if code is not None and station_id is not None and not found:
            raise LookupError(f"Interface {code} não cadastrada na estação {station_id}")
        return found

    def _matching_keys(self, station_id: Optional[int], interface_code: Optional[str]) -> List[SessionKey]:
        code = interface_code.strip().upper() if interface_code else None
        with self._lock:
            return [
                k for k in self._sessions
                if (station_id is None or k[0] == station_id) and (code is None or k[1] == code)
            ]

    def _key_lock(self, key: SessionKey) -> threading.Lock:
        with self._lock:
            return self._key_locks.setdefault(key, threading.Lock())

    def _handle_lock(self, key: SessionKey) -> threading.Lock:
        with self._lock:
            return self._handle_locks.setdefault(key, threading.Lock())
