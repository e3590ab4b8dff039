"""
Eventos de volume emitidos pelo detector.

- `AnomalyEvent`: queda de volume entre duas leituras consecutivas maior ou
  igual ao limiar de anomalia (possível vazamento, furto ou venda não
  registrada).
- `RefillEvent`: aumento de volume maior ou igual ao limiar de descarga
  (entrega de combustível).

Ambos são imutáveis; `delta` é sempre a magnitude (positiva) da variação e a
janela é delimitada pelos `captured_at` das duas leituras comparadas.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional


def _utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class _VolumeEvent:
    tank_id: str
    delta: float
    window_start: datetime
    window_end: datetime
    threshold: float
    volume_before: float
    volume_after: float
    station_id: Optional[int] = None
    source_interface: str = ""
    temperature: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "window_start", _utc(self.window_start))
        object.__setattr__(self, "window_end", _utc(self.window_end))
        if self.delta < self.threshold:
            raise ValueError(f"delta {self.delta} abaixo do limiar {self.threshold}")

    @property
    def window(self) -> timedelta:
        return self.window_end - self.window_start

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "station_id": self.station_id,
            "tank_id": self.tank_id,
            "delta": self.delta,
            "threshold": self.threshold,
            "volume_before": self.volume_before,
            "volume_after": self.volume_after,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "source_interface": self.source_interface,
            "temperature": self.temperature,
        }


@dataclass(frozen=True)
class AnomalyEvent(_VolumeEvent):
    """Queda anormal de volume (delta = anterior - atual)."""

    kind = "anomaly"


@dataclass(frozen=True)
class RefillEvent(_VolumeEvent):
    """Aumento de volume por descarga (delta = atual - anterior)."""

    kind = "refill"

    @property
    def volume_added(self) -> float:
        return self.delta
