# src/domain/use_cases/submit_to_regulator_use_case.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
import logging
import re
import time
from typing import Any, Callable, List, Mapping, Optional, Tuple

from config.settings import SUBMISSION_LOOKBACK_DAYS, SUBMISSION_RETRY
from src.domain.entities.alert import Alert
from src.domain.entities.daily_report import DailyReport
from src.domain.entities.station import Station
from src.domain.entities.submission import EwuraSubmission, SubmissionFilter, payload_hash
from src.domain.enums import ReportStatus, SubmissionKind, SubmissionOutcome
from src.domain.errors import RejectedError, SubmissionError
from src.domain.repositories.alert_repository import IAlertSink
from src.domain.repositories.regulator_gateway import IRegulatorGateway
from src.domain.repositories.report_repository import IDailyReportRepository
from src.domain.repositories.station_repository import IStationDirectory
from src.domain.repositories.submission_repository import ISubmissionRepository
from src.domain.single_flight import SingleFlight

log = logging.getLogger("fuelsync.usecases.submission")

_SIMULATION_MARKER = re.compile(r"\b(SIMULATION|SANDBOX)\b", re.IGNORECASE)
_SUCCESS_MARKER = re.compile(r"\bSUCCESS\b", re.IGNORECASE)


def classify_response(body: Optional[str]) -> SubmissionOutcome:
    """
    Classifica a resposta do regulador.

    A marca de simulação/sandbox tem precedência: o ambiente de simulação
    responde com `SUCCESS` E com `(SIMULATION)`, e isso não é um aceite real.
    """
    text = body or ""
    if _SIMULATION_MARKER.search(text):
        return SubmissionOutcome.PENDING
    if _SUCCESS_MARKER.search(text):
        return SubmissionOutcome.SUCCESS
    return SubmissionOutcome.FAILED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SubmissionResult:
    """
    DTO imutável de uma rodada de envio.

    Atributos:
        outcome: resultado final da rodada.
        attempts: registros EwuraSubmission gravados (um por tentativa).
        report: relatório atualizado (envios de relatório).
        skipped: True quando nada foi enviado (já aceito / não elegível).
    """
    outcome: Optional[SubmissionOutcome]
    attempts: List[EwuraSubmission] = field(default_factory=list)
    report: Optional[DailyReport] = None
    skipped: bool = False


class SubmitToRegulatorUseCase:
    """
    Entrega registros de dispositivo e relatórios diários ao regulador.

    - Cada tentativa vira um EwuraSubmission imutável.
    - Retentativa automática limitada (`max_attempts`) com backoff exponencial
      (`backoff_base * 2**(n-1)`); recusa explícita (4xx) não é retentada.
    - Um único envio em voo por (estação, data) ou (registro, estação):
      chamadas concorrentes recebem o resultado do envio em andamento.
    - Esgotadas as tentativas, o relatório fica FAILED (reenvio manual) e um
      alerta é emitido.
    """

    def __init__(
        self,
        gateway: IRegulatorGateway,
        submission_repo: ISubmissionRepository,
        report_repo: IDailyReportRepository,
        stations: IStationDirectory,
        alert_sink: Optional[IAlertSink] = None,
        max_attempts: int = SUBMISSION_RETRY["max_attempts"],
        backoff_base: float = SUBMISSION_RETRY["backoff_base"],
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.gateway = gateway
        self.submission_repo = submission_repo
        self.report_repo = report_repo
        self.stations = stations
        self.alert_sink = alert_sink
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_base = float(backoff_base)
        self.sleep = sleep
        self.clock = clock
        self.flights = SingleFlight()

    # ------------------------------------------------------------------
    # registro
    # ------------------------------------------------------------------
    def register_device(
        self,
        station_id: int,
        transaction_id: str,
        license_payload: Optional[Mapping[str, Any]] = None,
        force: bool = False,
    ) -> SubmissionResult:
        """
        Registra a estação/dispositivo no regulador (uma vez por transação).

        Args:
            station_id: Estação a registrar.
            transaction_id: Identificador da transação de registro (TranId).
            license_payload: Campos que sobrescrevem os dados do cadastro.
            force: Reenvia mesmo que já exista registro aceito.
        """
        station = self._station(station_id)
        if not force:
            last = self.submission_repo.last_registration(station_id, transaction_id)
            if last is not None and last.outcome is SubmissionOutcome.SUCCESS:
                log.info("registration_skipped station=%s tran=%s reason=already_accepted",
                         station_id, transaction_id)
                return SubmissionResult(SubmissionOutcome.SUCCESS, skipped=True)

        def _run() -> SubmissionResult:
            payload = self.gateway.build_registration(station, transaction_id, license_payload)
            outcome, attempts, error = self._deliver(
                SubmissionKind.REGISTRATION, station_id, transaction_id, payload
            )
            if outcome is SubmissionOutcome.FAILED:
                self._alert(Alert.submission_failed(station_id, transaction_id, len(attempts), error or "-"))
            return SubmissionResult(outcome, attempts)

        return self.flights.do(("registration", station_id), _run)

    # ------------------------------------------------------------------
    # relatórios
    # ------------------------------------------------------------------
    def submit_report(self, report_id: int) -> SubmissionResult:
        """
        Envia um relatório diário (manual ou agendado).

        Raises:
            LookupError: relatório inexistente.
        """
        report = self.report_repo.get(report_id)
        if report is None:
            raise LookupError(f"Relatório {report_id} não encontrado")
        key = (report.station_id, report.report_date)
        return self.flights.do(key, lambda: self._submit_report(report_id))

    def submit_pending(self, today: Optional[date] = None) -> List[SubmissionResult]:
        """
        Envia os relatórios PROCESSED ainda não enviados dos últimos dias.

        Relatórios FAILED por envio esgotado ficam para reenvio manual. Erros
        de um relatório não interrompem os demais.
        """
        today = today or self.clock().date()
        since = today - timedelta(days=SUBMISSION_LOOKBACK_DAYS)
        results: List[SubmissionResult] = []
        for report in self.report_repo.list_submittable(since):
            if report.status is not ReportStatus.PROCESSED or report.submission_outcome is not None:
                continue
            try:
                results.append(self.submit_report(report.id))
            except Exception:
                log.exception("submission_error station=%s date=%s", report.station_id, report.report_date)
        log.info("submission_run since=%s sent=%s", since, len(results))
        return results

    def history(self, flt: Optional[SubmissionFilter] = None) -> List[EwuraSubmission]:
        return self.submission_repo.history(flt or SubmissionFilter())

    # ---------- helpers ----------
    def _submit_report(self, report_id: int) -> SubmissionResult:
        # relê dentro do single-flight: outro envio pode ter acabado de concluir
        report = self.report_repo.get(report_id)
        if not report.is_submittable:
            log.info("submission_skipped report=%s status=%s outcome=%s", report_id, report.status.name,
                     report.submission_outcome.name if report.submission_outcome else None)
            return SubmissionResult(report.submission_outcome, report=report, skipped=True)

        station = self._station(report.station_id)
        payload = self.gateway.build_daily_summary(report, station)
        outcome, attempts, error = self._deliver(
            SubmissionKind.DAILY_REPORT, report.station_id, f"RPT-{report.report_no}", payload, report
        )
        updated = self.report_repo.record_submission(report.id, outcome, len(attempts), error, self.clock())
        if outcome is SubmissionOutcome.FAILED:
            self._alert(Alert.submission_failed(report.station_id, f"RPT-{report.report_no}",
                                                len(attempts), error or "-"))
        return SubmissionResult(outcome, attempts, report=updated)

    def _deliver(
        self,
        kind: SubmissionKind,
        station_id: int,
        transaction_id: str,
        payload: str,
        report: Optional[DailyReport] = None,
    ) -> Tuple[SubmissionOutcome, List[EwuraSubmission], Optional[str]]:
        digest = payload_hash(payload)
        attempts: List[EwuraSubmission] = []
        error: Optional[str] = None

        for n in range(1, self.max_attempts + 1):
            body: Optional[str] = None
            retriable = True
            try:
                body = self.gateway.send(kind, payload)
                outcome = classify_response(body)
                error = None if outcome is not SubmissionOutcome.FAILED else f"Resposta sem SUCCESS: {body[:200]}"
            except SubmissionError as e:
                outcome = SubmissionOutcome.FAILED
                error = f"{type(e).__name__}: {e}"
                retriable = not isinstance(e, RejectedError)

            record = self.submission_repo.add(EwuraSubmission(
                kind=kind,
                station_id=station_id,
                transaction_id=transaction_id,
                payload_hash=digest,
                submitted_at=self.clock(),
                outcome=outcome,
                attempt=n,
                report_id=report.id if report else None,
                report_date=report.report_date if report else None,
                response_body=body,
                error=error,
            ))
            attempts.append(record)
            log.info("submission_attempt kind=%s station=%s tran=%s attempt=%s outcome=%s",
                     kind.name, station_id, transaction_id, n, outcome.name)

            if outcome is not SubmissionOutcome.FAILED:
                return outcome, attempts, None
            if not retriable or n == self.max_attempts:
                break
            delay = self.backoff_base * 2 ** (n - 1)
            log.warning("submission_retry kind=%s tran=%s attempt=%s wait=%.1fs reason=%s",
                        kind.name, transaction_id, n, delay, error)
            self.sleep(delay)

        return SubmissionOutcome.FAILED, attempts, error

    def _station(self, station_id: int) -> Station:
        station = self.stations.get(station_id)
        if station is None:
            raise LookupError(f"Estação {station_id} não encontrada")
        return station

    def _alert(self, alert: Alert) -> None:
        log.warning("submission_failed station=%s msg=%s", alert.station_id, alert.message)
        if self.alert_sink is not None:
            self.alert_sink.save(alert)
