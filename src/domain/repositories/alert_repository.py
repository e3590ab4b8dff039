# src/domain/repositories/alert_repository.py
from __future__ import annotations
from typing import Protocol, Iterable, Optional
from src.domain.entities.alert import Alert

class IAlertSink(Protocol):
    """
    Destino dos alertas gerados pelo núcleo (colaborador externo).

    Pode ser uma tabela de alertas, um serviço de notificação ou apenas o log.
    O núcleo só entrega; não decide como o alerta é exibido.
    """

    def save(self, alert: Alert) -> None:
        """
        Entrega um alerta.

        Args:
            alert: Alerta imutável já montado por uma das fábricas de `Alert`.

        Returns:
            None. Efeito colateral: gravação/notificação do alerta.
        """
        ...

    def list_open(self, station_id: Optional[int] = None) -> Iterable[Alert]:
        """
        Lista os alertas ainda não resolvidos.

        Args:
            station_id: Filtra por estação (None = todas).

        Returns:
            Iterable[Alert] em ordem de criação.
        """
        ...
