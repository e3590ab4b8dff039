"""
Agenda dos relatórios diários e do envio ao regulador.

Dois timers independentes: geração (`generation_time`) e envio
(`submission_time`), ambos no fuso da ScheduleConfig. Mudanças de agenda
trocam os timers afetados; outras mudanças de configuração não mexem neles.
A falha de uma estação é registrada e não interrompe as demais.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
import logging
import threading
from typing import Callable, Dict, List, Optional

from src.domain.entities.daily_report import DailyReport
from src.domain.entities.schedule_config import ScheduleConfig
from src.domain.enums import ReportStatus
from src.domain.repositories.station_repository import IStationDirectory
from src.domain.use_cases.generate_daily_report_use_case import GenerateDailyReportUseCase
from src.domain.use_cases.submit_to_regulator_use_case import SubmissionResult, SubmitToRegulatorUseCase
from src.infrastructure.scheduling.daily_timer import DailyTimer

log = logging.getLogger("fuelsync.scheduling.reports")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _schedule_key(cfg: ScheduleConfig) -> tuple:
    return (cfg.generation_time, cfg.submission_time, cfg.timezone, cfg.auto_generate, cfg.auto_submit)


class ReportScheduler:
    def __init__(
        self,
        stations: IStationDirectory,
        generate: GenerateDailyReportUseCase,
        submit: SubmitToRegulatorUseCase,
        config_provider: Callable[[], ScheduleConfig],
        timer_factory: Callable[..., DailyTimer] = DailyTimer,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.stations = stations
        self.generate = generate
        self.submit = submit
        self.config_provider = config_provider
        self.timer_factory = timer_factory
        self.clock = clock
        self.timers: Dict[str, DailyTimer] = {}
        self._active: Optional[tuple] = None
        self._started = False
        self._lock = threading.Lock()

    # ---------- ciclo de vida ----------
    def start(self) -> None:
        with self._lock:
            self._started = True
            self._swap_timers(self.config_provider())

    def stop(self) -> None:
        with self._lock:
            self._started = False
            self._cancel_all()
            self._active = None

    def reconfigure(self, cfg: ScheduleConfig) -> None:
        """Listener do ConfigStore: troca os timers só se a agenda mudou."""
        with self._lock:
            if not self._started or _schedule_key(cfg) == self._active:
                return
            log.info("report_schedule_changed generation=%s submission=%s tz=%s",
                     cfg.generation_time, cfg.submission_time, cfg.timezone)
            self._swap_timers(cfg)

    # ---------- jobs ----------
    def run_generation(self, day: Optional[date] = None) -> List[DailyReport]:
        """
        Gera o relatório do dia anterior (local) para cada estação ativa.

        Estações com relatório já PROCESSED para o dia são puladas; a geração
        manual (`generate.execute`) sempre substitui.
        """
        cfg = self.config_provider()
        day = day or (self.clock().astimezone(cfg.tzinfo).date() - timedelta(days=1))
        reports = []
        for station in self.stations.list_active():
            existing = self.generate.report_repo.get_for(station.id, day)
            if existing is not None and existing.status is ReportStatus.PROCESSED:
                log.info("report_skip station=%s date=%s reason=already_processed", station.id, day)
                continue
            try:
                reports.append(self.generate.execute(station.id, day))
            except Exception:
                log.exception("report_job_failed station=%s date=%s", station.id, day)
        return reports

    def run_submission(self) -> List[SubmissionResult]:
        cfg = self.config_provider()
        try:
            return self.submit.submit_pending(self.clock().astimezone(cfg.tzinfo).date())
        except Exception:
            log.exception("submission_job_failed")
            return []

    # ---------- helpers ----------
    def _swap_timers(self, cfg: ScheduleConfig) -> None:
        # chamado com self._lock adquirido
        self._cancel_all()
        if cfg.auto_generate:
            self.timers["generation"] = self.timer_factory(
                cfg.generation_time, cfg.tzinfo, self.run_generation, name="report-generation"
            ).start()
        if cfg.auto_submit:
            self.timers["submission"] = self.timer_factory(
                cfg.submission_time, cfg.tzinfo, self.run_submission, name="report-submission"
            ).start()
        self._active = _schedule_key(cfg)

    def _cancel_all(self) -> None:
        for timer in self.timers.values():
            timer.cancel()
        self.timers.clear()
