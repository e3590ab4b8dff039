# src/domain/repositories/regulator_gateway.py
from __future__ import annotations
from typing import Protocol, Any, Mapping, Optional
from src.domain.entities.daily_report import DailyReport
from src.domain.entities.station import Station
from src.domain.enums import SubmissionKind

class IRegulatorGateway(Protocol):
    """
    Porta de saída para o regulador (EWURA).

    Monta os payloads assinados e faz a entrega. A classificação do resultado
    (SUCCESS/PENDING/FAILED) é feita pelo caso de uso a partir do corpo devolvido.
    """

    def build_registration(self, station: Station, transaction_id: str,
                           license_payload: Optional[Mapping[str, Any]] = None) -> str:
        """Payload (pronto para envio) de registro da estação/dispositivo."""
        ...

    def build_daily_summary(self, report: DailyReport, station: Station) -> str:
        """Payload (pronto para envio) do resumo diário."""
        ...

    def send(self, kind: SubmissionKind, payload: str) -> str:
        """
        Entrega o payload e devolve o corpo da resposta.

        Raises:
            NetworkError: falha de conexão ou 5xx.
            SubmissionTimeout: sem resposta dentro do timeout.
            RejectedError: payload recusado (4xx).
        """
        ...
