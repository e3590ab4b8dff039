# src/domain/repositories/telemetry_adapter.py
from __future__ import annotations
from typing import Protocol, Any, List
from src.domain.entities.interface import Interface
from src.domain.entities.raw_frame import RawFrame

class ITelemetryAdapter(Protocol):
    """
    Driver de um protocolo de hardware (ATG, PTS, simulador...).

    O adaptador não guarda estado entre chamadas: tudo que a conexão precisa
    vive no handle devolvido por `connect`. Cada família implementa as três
    operações de forma independente.
    """

    def connect(self, interface: Interface) -> Any:
        """
        Abre a conexão respeitando `interface.connection_timeout`.

        Raises:
            ConnectError: dispositivo inacessível ou configuração inválida.
        """
        ...

    def poll(self, handle: Any) -> List[RawFrame]:
        """
        Lê um lote de frames brutos (um por tanque).

        Raises:
            PollTimeout: sem resposta dentro do timeout (recuperável).
            ProtocolError: resposta malformada (fatal para a sessão).
        """
        ...

    def disconnect(self, handle: Any) -> None:
        """Libera o handle; idempotente."""
        ...
