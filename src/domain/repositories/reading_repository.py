# define como salvar/buscar leituras e eventos de volume, mas nao onde
# src/domain/repositories/reading_repository.py
from __future__ import annotations
from datetime import datetime
from typing import Protocol, Iterable, Union
from src.domain.entities.tank_reading import TankReading
from src.domain.entities.volume_events import AnomalyEvent, RefillEvent

VolumeEvent = Union[AnomalyEvent, RefillEvent]

class ITankReadingRepository(Protocol):
    """Persistência de leituras canônicas de tanques.

    A retenção é política da infra; o núcleo só grava e consulta por janela.
    """

    def add(self, reading: TankReading) -> None:
        """Persiste uma leitura normalizada.

        Args:
            reading: TankReading com `station_id` preenchido pela sessão.
        """
        ...

    def list_for_station(self, station_id: int, start: datetime, end: datetime) -> Iterable[TankReading]:
        """Leituras da estação com `start <= captured_at < end` (UTC), em ordem crescente."""
        ...


class IVolumeEventRepository(Protocol):
    """Persistência dos eventos de anomalia/descarga emitidos pelo detector."""

    def add(self, event: VolumeEvent) -> None:
        ...

    def list_for_station(self, station_id: int, start: datetime, end: datetime) -> Iterable[VolumeEvent]:
        """Eventos cuja janela termina em `[start, end)`, em ordem crescente."""
        ...
