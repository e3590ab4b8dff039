# src/domain/repositories/report_repository.py
from __future__ import annotations
from datetime import date, datetime
from typing import Protocol, Iterable, Optional
from src.domain.entities.daily_report import DailyReport
from src.domain.entities.transaction import SalesTransaction
from src.domain.enums import SubmissionOutcome

class ITransactionRepository(Protocol):
    """Fonte das vendas agregadas no relatório diário (somente leitura para o núcleo)."""

    def list_for_station_day(self, station_id: int, day: date) -> Iterable[SalesTransaction]:
        """
        Vendas de uma estação num dia.

        Args:
            station_id: Estação.
            day: Data da transação (local da estação).
        """
        ...


class IDailyReportRepository(Protocol):
    """
    Contrato de persistência de relatórios diários.

    Invariante: no máximo um relatório por (estação, data). `save` de um
    relatório para um par já existente SUBSTITUI o registro anterior
    (mantendo o id), nunca duplica.
    """

    def save(self, report: DailyReport) -> DailyReport:
        """
        Insere ou substitui o relatório de (station_id, report_date).

        Returns:
            O relatório salvo, com `id` preenchido.
        """
        ...

    def get(self, report_id: int) -> Optional[DailyReport]:
        """Busca por id; None se não existir."""
        ...

    def get_for(self, station_id: int, day: date) -> Optional[DailyReport]:
        """Busca pelo par (estação, data)."""
        ...

    def record_submission(self, report_id: int, outcome: SubmissionOutcome, attempts: int,
                          error: Optional[str], when: datetime) -> Optional[DailyReport]:
        """
        Grava só o resultado de envio (status, outcome, tentativas, erro,
        submitted_at) no relatório atual, sem tocar nos totais. Uma
        regeneração concorrente não é desfeita pelo envio.

        Returns:
            O relatório atualizado; None se não existir mais.
        """
        ...

    def list_submittable(self, since: date) -> Iterable[DailyReport]:
        """
        Relatórios com `report_date >= since` que ainda podem ser enviados
        (PROCESSED sem SUCCESS), em ordem de data.
        """
        ...
