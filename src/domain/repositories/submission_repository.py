# src/domain/repositories/submission_repository.py
from __future__ import annotations
from typing import Protocol, List, Optional
from src.domain.entities.submission import EwuraSubmission, SubmissionFilter

class ISubmissionRepository(Protocol):
    """
    Histórico de envios ao regulador.

    Somente inserção: um EwuraSubmission nunca é atualizado nem apagado.
    """

    def add(self, submission: EwuraSubmission) -> EwuraSubmission:
        """Grava uma tentativa e retorna o registro com `id` preenchido."""
        ...

    def history(self, flt: SubmissionFilter) -> List[EwuraSubmission]:
        """
        Consulta o histórico.

        Args:
            flt: Filtro por estação, tipo, resultado e intervalo de datas.

        Returns:
            Lista do mais recente para o mais antigo, limitada a `flt.limit`.
        """
        ...

    def last_registration(self, station_id: int, transaction_id: str) -> Optional[EwuraSubmission]:
        """Último envio de registro para (estação, transação)."""
        ...
