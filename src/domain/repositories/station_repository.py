# src/domain/repositories/station_repository.py
from __future__ import annotations
from typing import Protocol, Optional, Iterable, Any, Mapping
from src.domain.entities.station import Station

class IStationDirectory(Protocol):
    """
    Cadastro de estações e interfaces (mantido fora do núcleo).

    O núcleo só consulta: quais estações estão ativas e quais interfaces
    cada uma expõe.
    """

    def list_active(self) -> Iterable[Station]:
        """Estações ativas, com suas interfaces."""
        ...

    def get(self, station_id: int) -> Optional[Station]:
        """Estação pelo id (ativa ou não); None se não existir."""
        ...


class ISettingsRepository(Protocol):
    """Persistência das configurações operacionais (ScheduleConfig serializado)."""

    def load(self) -> Mapping[str, Any]:
        """Retorna o último mapeamento salvo (vazio se nunca salvo)."""
        ...

    def save(self, data: Mapping[str, Any]) -> None:
        """Substitui as configurações salvas."""
        ...
