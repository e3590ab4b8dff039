from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, timezone
import hashlib
from typing import Optional

from src.domain.enums import SubmissionKind, SubmissionOutcome


def payload_hash(payload: str) -> str:
    """SHA-256 (hex) do payload exatamente como enviado."""
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class EwuraSubmission:
    """
    Uma tentativa de entrega ao regulador (EWURA).

    - Imutável: cada tentativa (inclusive retries) gera um registro novo.
    - O histórico nunca é apagado; o repositório só insere.
    """
    kind: SubmissionKind
    station_id: int
    transaction_id: str
    payload_hash: str
    submitted_at: datetime
    outcome: SubmissionOutcome
    attempt: int = 1
    report_id: Optional[int] = None
    report_date: Optional[date] = None
    response_body: Optional[str] = None
    error: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        if self.submitted_at.tzinfo is None:
            object.__setattr__(self, "submitted_at", self.submitted_at.replace(tzinfo=timezone.utc))
        if self.attempt < 1:
            raise ValueError("attempt deve ser >= 1.")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.name,
            "station_id": self.station_id,
            "transaction_id": self.transaction_id,
            "payload_hash": self.payload_hash,
            "submitted_at": self.submitted_at.isoformat(),
            "outcome": self.outcome.name,
            "attempt": self.attempt,
            "report_id": self.report_id,
            "report_date": self.report_date.isoformat() if self.report_date else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class SubmissionFilter:
    """Filtro do histórico de envios; campos None não filtram."""
    station_id: Optional[int] = None
    kind: Optional[SubmissionKind] = None
    outcome: Optional[SubmissionOutcome] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    limit: int = 100
