# Adaptador NFPP / PTS: controlador de pista, protocolo jsonPTS sobre HTTP
#
# Requisição:  {"Protocol": "jsonPTS", "Packets": [{"Id": 1, "Type": "...", "Data": {...}}]}
# Resposta:    {"Protocol": "jsonPTS", "Packets": [{"Id": 1, "Type": "...", "Data": {...}}]}
#              (pacotes com erro trazem "Error": true e "Message")

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import time
from typing import Any, Dict, List, Optional

import requests
from requests.auth import HTTPBasicAuth

from config.settings import PTS_SETTINGS
from src.domain.entities.interface import Interface
from src.domain.entities.raw_frame import RawFrame
from src.domain.errors import ConnectError, PollTimeout, ProtocolError

log = logging.getLogger("fuelsync.adapters.pts")


@dataclass
class PtsHandle:
    interface: Interface
    session: requests.Session
    url: str
    probes: List[int] = field(default_factory=list)
    closed: bool = False


def _packet(response_json: Dict[str, Any], packet_type: str) -> Dict[str, Any]:
    """Extrai o primeiro pacote da resposta; erro reportado vira ProtocolError."""
    packets = response_json.get("Packets") if isinstance(response_json, dict) else None
    if not packets:
        raise ProtocolError(f"{packet_type}: resposta sem Packets")
    pkt = packets[0]
    if pkt.get("Error"):
        raise ProtocolError(f"{packet_type}: {pkt.get('Message') or pkt.get('Code') or 'erro do controlador'}")
    return pkt.get("Data") or {}


class PtsAdapter:
    """
    Controlador PTS via HTTP (requests).

    `connect` descobre o caminho jsonPTS que responde e a lista de sondas;
    `poll` lê as medições de cada sonda.
    """

    def __init__(self, sleep=time.sleep) -> None:
        self.sleep = sleep

    def connect(self, interface: Interface) -> PtsHandle:
        cfg = interface.connection
        host = cfg.get("host")
        if not host:
            raise ConnectError(f"Interface {interface.code}: host não configurado")
        base = host if str(host).startswith("http") else f"http://{host}"
        if cfg.get("port"):
            base = f"{base}:{cfg['port']}"

        session = requests.Session()
        if cfg.get("username"):
            session.auth = HTTPBasicAuth(cfg["username"], cfg.get("password", ""))
        session.headers.update({"Content-Type": "application/json"})

        paths = [cfg["path"]] if cfg.get("path") else PTS_SETTINGS["paths"]
        last_error: Optional[Exception] = None
        for path in paths:
            handle = PtsHandle(interface, session, f"{base}{path}")
            try:
                self._request(handle, "GetDateTime")
                handle.probes = self._probes(handle)
                log.info("pts_connected station=%s url=%s probes=%s",
                         interface.station_id, handle.url, handle.probes)
                return handle
            except (PollTimeout, ProtocolError) as e:
                last_error = e
                log.debug("pts_path_rejected url=%s reason=%s", handle.url, e)

        session.close()
        raise ConnectError(f"PTS {base}: nenhum caminho jsonPTS respondeu ({last_error})")

    def poll(self, handle: PtsHandle) -> List[RawFrame]:
        if handle.closed:
            raise ProtocolError("Handle PTS já fechado")
        frames: List[RawFrame] = []
        for probe in handle.probes:
            data = self._request(handle, "ProbeGetMeasurements", {"Probe": probe})
            data.setdefault("Probe", probe)
            frames.append(RawFrame(data, datetime.now(timezone.utc), handle.interface.code))
        return frames

    def disconnect(self, handle: PtsHandle) -> None:
        if not handle.closed:
            handle.closed = True
            handle.session.close()

    # ---------- helpers ----------
    def _probes(self, handle: PtsHandle) -> List[int]:
        data = self._request(handle, "GetProbesConfiguration")
        probes = [int(p["Id"]) for p in data.get("Probes", []) if p.get("Id") is not None]
        return probes or [int(p) for p in handle.interface.connection.get("probes", [])]

    def _request(self, handle: PtsHandle, packet_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        POST de um pacote jsonPTS com retentativas curtas.

        Timeouts/conexão recusada são retentados até `max_retries` (espera
        2s, 4s... limitada a `retry_wait_max`) e então viram PollTimeout.
        """
        packet: Dict[str, Any] = {"Id": 1, "Type": packet_type}
        if data:
            packet["Data"] = data
        body = {"Protocol": "jsonPTS", "Packets": [packet]}
        timeout = min(handle.interface.connection_timeout, PTS_SETTINGS["request_timeout"])

        for attempt in range(PTS_SETTINGS["max_retries"] + 1):
            try:
                resp = handle.session.post(handle.url, json=body, timeout=timeout)
            except (requests.Timeout, requests.ConnectionError) as e:
                if attempt >= PTS_SETTINGS["max_retries"]:
                    raise PollTimeout(f"{packet_type}: {e}") from e
                self.sleep(min(2.0 * (attempt + 1), PTS_SETTINGS["retry_wait_max"]))
                continue

            if resp.status_code >= 400:
                raise ProtocolError(f"{packet_type}: HTTP {resp.status_code}")
            try:
                payload = resp.json()
            except ValueError:
                raise ProtocolError(f"{packet_type}: resposta não é JSON") from None
            return _packet(payload, packet_type)

        raise PollTimeout(packet_type)
