"""
Normalização de telemetria: frame bruto (formato nativo) → TankReading.

Cada grandeza tem uma lista ORDENADA de nomes candidatos; o primeiro campo
presente e não nulo vence. Os nomes cobrem as variantes encontradas nos
consoles ATG (camelCase), no controlador PTS (PascalCase) e em cadastros
antigos (snake_case).

Regras
------
- Sem identificador de tanque → `NormalizationError`.
- Grandezas numéricas ausentes viram 0.0 (nunca None); `pressure` é a única
  opcional.
- Volume de produto: `oilVolume`/`oil_volume`/`current_volume`; se nenhum
  existir, `volume total - volume de água`.
- Timestamp: o do próprio frame; na falta, o `received_at` do adaptador.
  Nada depende do relógio, então normalizar o mesmo frame duas vezes produz a
  mesma leitura.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from src.domain.entities.raw_frame import RawFrame
from src.domain.entities.tank_reading import TankReading
from src.domain.errors import NormalizationError

log = logging.getLogger("fuelsync.normalizer")

TANK_ID_FIELDS = ("tankNumber", "tank_number", "tank_id", "Probe", "id")
OIL_VOLUME_FIELDS = ("oilVolume", "oil_volume", "current_volume")
TOTAL_VOLUME_FIELDS = ("totalVolume", "total_volume", "ProductVolume")
WATER_VOLUME_FIELDS = ("waterVolume", "water_volume", "WaterVolume")
WATER_LEVEL_FIELDS = ("waterHeight", "water_height", "water_level", "WaterHeight")
TEMPERATURE_FIELDS = ("temperature", "Temperature")
PRESSURE_FIELDS = ("pressure", "Pressure")
TC_VOLUME_FIELDS = ("tcVolume", "tc_volume", "ProductTCVolume")
ULLAGE_FIELDS = ("ullage", "ProductUllage")
PRODUCT_HEIGHT_FIELDS = ("oilHeight", "oil_height", "ProductHeight")
TIMESTAMP_FIELDS = ("timestamp", "reading_timestamp", "DateTime")


def _first(payload: Mapping[str, Any], fields: Sequence[str]) -> Tuple[Optional[str], Any]:
    for name in fields:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        return name, value
    return None, None


def _number(payload: Mapping[str, Any], fields: Sequence[str], default: Optional[float] = 0.0) -> Optional[float]:
    name, value = _first(payload, fields)
    if name is None:
        return default
    if isinstance(value, bool):
        raise NormalizationError(f"Campo {name} não numérico: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise NormalizationError(f"Campo {name} não numérico: {value!r}") from None
    if not math.isfinite(number):
        raise NormalizationError(f"Campo {name} não finito: {value!r}")
    return number


def _tank_id(payload: Mapping[str, Any]) -> str:
    name, value = _first(payload, TANK_ID_FIELDS)
    if name is None:
        raise NormalizationError("Frame sem identificador de tanque")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{int(value):02d}"
    text = str(value).strip()
    return f"{int(text):02d}" if text.isdigit() else text


def _timestamp(payload: Mapping[str, Any], fallback: datetime) -> datetime:
    name, value = _first(payload, TIMESTAMP_FIELDS)
    if name is None:
        return fallback
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = datetime.fromtimestamp(float(value), tz=timezone.utc)
    else:
        try:
            ts = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            raise NormalizationError(f"Timestamp inválido em {name}: {value!r}") from None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def normalize(frame: RawFrame, source_interface: str, station_id: Optional[int] = None) -> TankReading:
    """
    Converte um frame bruto em TankReading canônico.

    Args:
        frame: Registro bruto de um tanque.
        source_interface: Código da interface de origem (NPGIS, NFPP, SIM...).
        station_id: Estação dona da sessão (opcional).

    Returns:
        TankReading validado.

    Raises:
        NormalizationError: frame sem tanque, campo numérico inválido ou
            leitura que viola os limites físicos.
    """
    payload = frame.payload
    try:
        tank_id = _tank_id(payload)
        water_volume = _number(payload, WATER_VOLUME_FIELDS)
        total_volume = _number(payload, TOTAL_VOLUME_FIELDS)
        volume = _number(payload, OIL_VOLUME_FIELDS, default=None)
        if volume is None:
            volume = round(total_volume - water_volume, 3) if total_volume else 0.0
        if not total_volume:
            total_volume = round(volume + water_volume, 3)

        return TankReading(
            tank_id=tank_id,
            volume=volume,
            water_level=_number(payload, WATER_LEVEL_FIELDS),
            temperature=_number(payload, TEMPERATURE_FIELDS),
            captured_at=_timestamp(payload, frame.received_at),
            source_interface=source_interface.strip().upper(),
            pressure=_number(payload, PRESSURE_FIELDS, default=None),
            station_id=station_id,
            total_volume=total_volume,
            water_volume=water_volume,
            tc_volume=_number(payload, TC_VOLUME_FIELDS),
            ullage=_number(payload, ULLAGE_FIELDS),
            product_height=_number(payload, PRODUCT_HEIGHT_FIELDS),
        )
    except NormalizationError:
        raise
    except (ValueError, TypeError, OverflowError, OSError) as e:
        raise NormalizationError(f"Frame inválido ({type(e).__name__}): {e}") from e


def normalize_batch(
    frames: Iterable[RawFrame], source_interface: str, station_id: Optional[int] = None
) -> Tuple[List[TankReading], List[NormalizationError]]:
    """
    Normaliza um lote (um poll); frames inválidos são descartados e devolvidos
    como erros, sem derrubar o lote inteiro.
    """
    readings: List[TankReading] = []
    errors: List[NormalizationError] = []
    for frame in frames:
        try:
            readings.append(normalize(frame, source_interface, station_id))
        except NormalizationError as e:
            log.warning("frame_rejected station=%s iface=%s reason=%s", station_id, source_interface, e)
            errors.append(e)
    return readings, errors
