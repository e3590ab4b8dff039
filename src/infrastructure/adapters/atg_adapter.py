# Adaptador NPGIS / ATG: console de tanques (protocolo TLS, comando i201)
#
# Resposta do i20100 (após remover caracteres não imprimíveis):
#   i20100 YYMMDDHHmm  {TT p ssss NN f1..fNN}*  && CCCC
#     TT   = número do tanque      p    = código do produto
#     ssss = bits de status        NN   = qtd. de campos (hex)
#     fN   = float IEEE-754 big-endian em 8 dígitos hex
#   ordem dos campos: volume, volume TC, ullage, altura produto,
#                     altura água, temperatura, volume água

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import re
import socket
import struct
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config.settings import ATG_SETTINGS, DEFAULT_TIMEZONE
from src.domain.entities.interface import Interface
from src.domain.entities.raw_frame import RawFrame
from src.domain.errors import ConnectError, PollTimeout, ProtocolError

log = logging.getLogger("fuelsync.adapters.atg")

SOH = "\x01"
ETX = b"\x03"
INVENTORY_COMMAND = SOH + "i20100"
TERMINATOR = "&&"
FIELD_NAMES = ("totalVolume", "tcVolume", "ullage", "oilHeight", "waterHeight", "temperature", "waterVolume")
MAX_RESPONSE_BYTES = 64 * 1024

_NON_PRINTABLE = re.compile(r"[^\x20-\x7E]")


def _hex_float(chunk: str) -> float:
    try:
        return struct.unpack(">f", bytes.fromhex(chunk))[0]
    except ValueError:
        raise ProtocolError(f"Campo hex inválido: {chunk!r}") from None


def decode_i201(raw: str, received_at: datetime, tz=timezone.utc, interface_code: str = "NPGIS") -> List[RawFrame]:
    """
    Decodifica a resposta do inventário i201 em um frame por tanque.

    Args:
        raw: Resposta completa do console (com ou sem SOH/ETX).
        received_at: Instante de recepção (fallback de timestamp).
        tz: Fuso do relógio do console.
        interface_code: Código gravado em cada RawFrame.

    Raises:
        ProtocolError: sem marcador i201, sem terminador ou bloco truncado.
    """
    text = _NON_PRINTABLE.sub("", raw)
    start = text.find("i201")
    if start < 0:
        raise ProtocolError("Resposta sem marcador i201")
    text = text[start:]
    end = text.find(TERMINATOR)
    if end < 0:
        raise ProtocolError("Resposta sem terminador &&")
    body = text[:end]

    try:
        stamp = datetime.strptime(body[6:16], "%y%m%d%H%M").replace(tzinfo=tz)
    except ValueError:
        raise ProtocolError(f"Timestamp inválido no i201: {body[6:16]!r}") from None

    frames: List[RawFrame] = []
    pos = 16
    while pos < len(body):
        head = body[pos:pos + 9]
        if len(head) < 9:
            raise ProtocolError(f"Bloco de tanque truncado em {pos}")
        try:
            n_fields = int(head[7:9], 16)
        except ValueError:
            raise ProtocolError(f"Contagem de campos inválida: {head[7:9]!r}") from None
        pos += 9

        chunks = [body[pos + 8 * i: pos + 8 * (i + 1)] for i in range(n_fields)]
        if any(len(c) < 8 for c in chunks):
            raise ProtocolError(f"Tanque {head[0:2]}: campos truncados")
        pos += 8 * n_fields

        payload = {
            "tankNumber": head[0:2],
            "productCode": head[2],
            "status": head[3:7],
            "timestamp": stamp.isoformat(),
        }
        for name, chunk in zip(FIELD_NAMES, chunks):
            payload[name] = round(_hex_float(chunk), 1)
        if "totalVolume" in payload:
            payload["oilVolume"] = round(payload["totalVolume"] - payload.get("waterVolume", 0.0), 1)
        frames.append(RawFrame(payload, received_at, interface_code))

    return frames


@dataclass
class AtgHandle:
    interface: Interface
    sock: socket.socket
    tz: ZoneInfo
    closed: bool = field(default=False)


class AtgAdapter:
    """Console ATG via TCP (porta serial exposta por conversor/IP)."""

    def connect(self, interface: Interface) -> AtgHandle:
        cfg = interface.connection
        host = cfg.get("host")
        if not host:
            raise ConnectError(f"Interface {interface.code}: host não configurado")
        # configuração validada antes de abrir o socket
        try:
            port = int(cfg.get("port", ATG_SETTINGS["port"]))
            tz = ZoneInfo(cfg.get("timezone", DEFAULT_TIMEZONE))
        except (TypeError, ValueError, ZoneInfoNotFoundError) as e:
            raise ConnectError(f"Interface {interface.code}: configuração inválida ({e})") from e
        try:
            sock = socket.create_connection((host, port), timeout=interface.connection_timeout)
        except OSError as e:
            raise ConnectError(f"ATG {host}:{port} inacessível: {e}") from e
        try:
            sock.settimeout(interface.connection_timeout)
        except OSError as e:
            sock.close()
            raise ConnectError(f"ATG {host}:{port}: falha ao configurar o socket: {e}") from e
        log.info("atg_connected station=%s host=%s port=%s", interface.station_id, host, port)
        return AtgHandle(interface, sock, tz)

    def poll(self, handle: AtgHandle) -> List[RawFrame]:
        if handle.closed:
            raise ProtocolError("Handle ATG já fechado")
        try:
            handle.sock.sendall(INVENTORY_COMMAND.encode("ascii"))
            raw = self._read_response(handle.sock)
        except socket.timeout as e:
            raise PollTimeout(f"ATG sem resposta em {handle.interface.connection_timeout}s") from e
        except OSError as e:
            raise ProtocolError(f"Conexão ATG falhou: {e}") from e
        return decode_i201(raw.decode("ascii", errors="replace"), datetime.now(timezone.utc),
                           handle.tz, handle.interface.code)

    def disconnect(self, handle: AtgHandle) -> None:
        if handle.closed:
            return
        handle.closed = True
        try:
            handle.sock.close()
        except OSError as e:
            log.warning("atg_close_failed station=%s error=%s", handle.interface.station_id, e)

    @staticmethod
    def _read_response(sock: socket.socket) -> bytes:
        buf = b""
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                raise ProtocolError("Console encerrou a conexão")
            buf += chunk
            idx = buf.find(TERMINATOR.encode("ascii"))
            # && + checksum (4) ou ETX
            if idx >= 0 and (ETX in buf[idx:] or len(buf) - idx >= 6):
                return buf
            if len(buf) > MAX_RESPONSE_BYTES:
                raise ProtocolError("Resposta ATG excedeu o tamanho máximo")
