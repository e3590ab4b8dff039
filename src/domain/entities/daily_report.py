"""
Relatório diário (estação, data).

Um único relatório por (estação, data): regenerar substitui o anterior. O
status descreve o ciclo de vida completo:

- `PENDING`: criado, agregação em andamento;
- `PROCESSED`: totais calculados, pronto para envio;
- `FAILED`: a agregação falhou (`submission_outcome is None`) ou o envio ao
  regulador esgotou as tentativas (`submission_outcome is FAILED`). No segundo
  caso o relatório continua elegível para reenvio manual.

O relatório é imutável; mudanças de estado retornam uma nova instância
(`with_status`, `with_submission`).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Tuple

from src.domain.enums import ReportStatus, SubmissionOutcome


@dataclass(frozen=True)
class TankDaySummary:
    """Inventário de um tanque ao longo do dia (primeira/última leitura)."""
    tank_id: str
    start_volume: float
    end_volume: float
    avg_temperature: Optional[float]
    reading_count: int
    delivered_volume: float = 0.0

    @property
    def volume_difference(self) -> float:
        """Volume consumido no dia: início + entregas - fim."""
        return round(self.start_volume + self.delivered_volume - self.end_volume, 2)

    def to_dict(self) -> dict:
        return {
            "tank_id": self.tank_id,
            "start_volume": self.start_volume,
            "end_volume": self.end_volume,
            "avg_temperature": self.avg_temperature,
            "reading_count": self.reading_count,
            "delivered_volume": self.delivered_volume,
            "volume_difference": self.volume_difference,
        }


@dataclass(frozen=True)
class DailyReport:
    """
    Resumo diário agregado de uma estação.

    Attributes:
        station_id: Estação do relatório.
        report_date: Dia (local da estação) agregado.
        transaction_count: Número de vendas no dia.
        total_amount: Soma dos valores (moeda local).
        total_volume: Soma dos volumes vendidos (litros).
        status: PENDING → PROCESSED | FAILED.
        total_discount: Soma dos descontos concedidos.
        volume_by_grade: Volume vendido por produto.
        tanks: Inventário por tanque.
        anomaly_count / refill_count: eventos detectados no dia.
        error: Motivo da última falha (agregação ou envio).
        submission_outcome: Resultado do último envio ao regulador (None se nunca enviado).
        submission_attempts: Tentativas de envio acumuladas.
        id: Identificador atribuído pelo repositório.
    """

    station_id: int
    report_date: date
    transaction_count: int = 0
    total_amount: float = 0.0
    total_volume: float = 0.0
    status: ReportStatus = ReportStatus.PENDING
    total_discount: float = 0.0
    volume_by_grade: Dict[str, float] = field(default_factory=dict)
    tanks: Tuple[TankDaySummary, ...] = field(default_factory=tuple)
    anomaly_count: int = 0
    refill_count: int = 0
    error: Optional[str] = None
    submission_outcome: Optional[SubmissionOutcome] = None
    submission_attempts: int = 0
    submitted_at: Optional[datetime] = None
    generated_at: Optional[datetime] = None
    id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.transaction_count < 0:
            raise ValueError("transaction_count não pode ser negativo.")
        object.__setattr__(self, "tanks", tuple(self.tanks))
        if self.generated_at is None:
            object.__setattr__(self, "generated_at", datetime.now(timezone.utc))

    @property
    def report_no(self) -> str:
        """Número do relatório: a data sem separadores (YYYYMMDD)."""
        return self.report_date.strftime("%Y%m%d")

    @property
    def net_amount(self) -> float:
        return round(self.total_amount - self.total_discount, 2)

    @property
    def is_submittable(self) -> bool:
        """Totais válidos e ainda sem SUCCESS do regulador."""
        if self.submission_outcome is SubmissionOutcome.SUCCESS:
            return False
        if self.status is ReportStatus.PROCESSED:
            return True
        return self.status is ReportStatus.FAILED and self.submission_outcome is SubmissionOutcome.FAILED

    @property
    def needs_manual_retry(self) -> bool:
        return self.status is ReportStatus.FAILED and self.submission_outcome is SubmissionOutcome.FAILED

    def with_status(self, status: ReportStatus, error: Optional[str] = None) -> "DailyReport":
        return replace(self, status=status, error=error)

    def with_submission(self, outcome: SubmissionOutcome, attempts: int,
                        error: Optional[str] = None,
                        when: Optional[datetime] = None) -> "DailyReport":
        """
        Registra o resultado de uma rodada de envio.

        - SUCCESS/PENDING mantêm o relatório PROCESSED.
        - FAILED (tentativas esgotadas) marca o relatório como FAILED para
          reenvio manual.
        """
        status = ReportStatus.FAILED if outcome is SubmissionOutcome.FAILED else ReportStatus.PROCESSED
        return replace(
            self,
            status=status,
            error=error,
            submission_outcome=outcome,
            submission_attempts=self.submission_attempts + attempts,
            submitted_at=when or datetime.now(timezone.utc),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Totais estruturados do relatório (base para exportação e API)."""
        return {
            "id": self.id,
            "station_id": self.station_id,
            "report_date": self.report_date.isoformat(),
            "report_no": self.report_no,
            "status": self.status.name,
            "transaction_count": self.transaction_count,
            "total_amount": self.total_amount,
            "total_discount": self.total_discount,
            "net_amount": self.net_amount,
            "total_volume": self.total_volume,
            "volume_by_grade": dict(self.volume_by_grade),
            "tanks": [t.to_dict() for t in self.tanks],
            "anomaly_count": self.anomaly_count,
            "refill_count": self.refill_count,
            "error": self.error,
            "submission_outcome": self.submission_outcome.name if self.submission_outcome else None,
            "submission_attempts": self.submission_attempts,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }
