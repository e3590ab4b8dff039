"""
Raiz de composição: monta repositórios, casos de uso, sessões e agendadores
e expõe as APIs do núcleo (controle, relatórios, regulador, configurações,
backup) para o CLI ou para outra camada de apresentação.
"""

from __future__ import annotations

from datetime import date
import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional

from config.database import BACKUP_DIR, DATABASE_PATH
from config.settings import EWURA_SETTINGS
from src.domain.entities.backup_record import BackupRecord
from src.domain.entities.daily_report import DailyReport
from src.domain.entities.monitoring_session import SessionStatus
from src.domain.entities.submission import EwuraSubmission, SubmissionFilter
from src.domain.use_cases.detect_volume_events_use_case import DetectVolumeEventsUseCase
from src.domain.use_cases.generate_daily_report_use_case import GenerateDailyReportUseCase
from src.domain.use_cases.submit_to_regulator_use_case import SubmissionResult, SubmitToRegulatorUseCase
from src.infrastructure.backup.backup_service import BackupService, strategy_for
from src.infrastructure.database.migrations import run_migrations
from src.infrastructure.database.sqlite_repositories import (
    SqliteDailyReportRepository,
    SqliteSubmissionRepository,
    SqliteTankReadingRepository,
    SqliteTransactionRepository,
    SqliteVolumeEventRepository,
)
from src.infrastructure.database.sqlite_station_directory import (
    SqliteAlertSink,
    SqliteSettingsRepository,
    SqliteStationDirectory,
)
from src.infrastructure.monitoring.broadcast_hub import BroadcastHub, Subscription
from src.infrastructure.monitoring.session_manager import MonitoringSessionManager
from src.infrastructure.regulator.ewura_client import EwuraClient
from src.infrastructure.reporting.report_export import export_report
from src.infrastructure.scheduling.backup_scheduler import BackupScheduler
from src.infrastructure.scheduling.report_scheduler import ReportScheduler
from src.infrastructure.settings.config_store import ConfigStore

log = logging.getLogger("fuelsync.app")


class FuelSyncApp:
    """Núcleo montado sobre SQLite; `start`/`shutdown` controlam os serviços de fundo."""

    def __init__(
        self,
        db_path: Path = DATABASE_PATH,
        backup_dir: Path = BACKUP_DIR,
        ewura_settings: Mapping[str, Any] = EWURA_SETTINGS,
        seed: bool = True,
    ) -> None:
        run_migrations(db_path, seed=seed)

        self.stations = SqliteStationDirectory(db_path)
        self.readings = SqliteTankReadingRepository(db_path)
        self.events = SqliteVolumeEventRepository(db_path)
        self.transactions = SqliteTransactionRepository(db_path)
        self.reports = SqliteDailyReportRepository(db_path)
        self.submissions = SqliteSubmissionRepository(db_path)
        self.alerts = SqliteAlertSink(db_path)
        self.config = ConfigStore(SqliteSettingsRepository(db_path))

        self.hub = BroadcastHub()
        self.detector = DetectVolumeEventsUseCase(self.config, self.events, self.alerts)
        self.sessions = MonitoringSessionManager(
            self.stations,
            sinks=[self.readings.add, self.hub.publish, self.detector.execute],
            config_provider=self.config,
            alert_sink=self.alerts,
        )

        self.generator = GenerateDailyReportUseCase(
            self.transactions, self.readings, self.events, self.reports, self.config
        )
        self.regulator = EwuraClient(ewura_settings)
        self.submitter = SubmitToRegulatorUseCase(
            self.regulator, self.submissions, self.reports, self.stations, self.alerts
        )
        self.report_scheduler = ReportScheduler(self.stations, self.generator, self.submitter, self.config)

        self.backups = BackupService(strategy_for(db_path=db_path), backup_dir)
        self.backup_scheduler = BackupScheduler(self.backups, self.config().backup)

        self.config.subscribe(self.report_scheduler.reconfigure)
        self.config.subscribe(lambda cfg: self.backup_scheduler.reconfigure(cfg.backup))

    # ---------- ciclo de vida ----------
    def start(self) -> List[SessionStatus]:
        """Liga agendadores e monitoramento de todas as estações ativas."""
        self.report_scheduler.start()
        self.backup_scheduler.start()
        statuses = self.sessions.start()
        log.info("app_started sessions=%s", len(statuses))
        return statuses

    def shutdown(self) -> None:
        self.sessions.shutdown()
        self.report_scheduler.stop()
        self.backup_scheduler.stop()
        log.info("app_stopped")

    # ---------- controle ----------
    def start_monitoring(self, station_id: Optional[int] = None, interface_code: Optional[str] = None):
        return self.sessions.start(station_id, interface_code)

    def stop_monitoring(self, station_id: Optional[int] = None, interface_code: Optional[str] = None):
        return self.sessions.stop(station_id, interface_code)

    def status(self, station_id: Optional[int] = None, interface_code: Optional[str] = None):
        return self.sessions.status(station_id, interface_code)

    def deactivate_station(self, station_id: int) -> None:
        """
        Desativa a estação: some do cadastro ativo, as sessões dela são
        encerradas e o detector esquece as bases dos tanques.

        Raises:
            LookupError: estação inexistente.
        """
        if not self.stations.set_active(station_id, False):
            raise LookupError(f"Estação {station_id} não encontrada")
        self.sessions.remove_station(station_id)
        self.detector.reset(station_id)
        log.info("station_deactivated station=%s", station_id)

    def subscribe(self, station_id: Optional[int] = None, interface_code: Optional[str] = None) -> Subscription:
        return self.hub.subscribe(station_id, interface_code)

    # ---------- relatórios ----------
    def generate_report(self, station_id: int, day: date) -> DailyReport:
        return self.generator.execute(station_id, day)

    def export_report(self, report_id: int, fmt: str = "json") -> str:
        report = self.reports.get(report_id)
        if report is None:
            raise LookupError(f"Relatório {report_id} não encontrado")
        return export_report(report, fmt)

    # ---------- regulador ----------
    def register_device(self, station_id: int, transaction_id: str,
                        license_payload: Optional[Mapping[str, Any]] = None,
                        force: bool = False) -> SubmissionResult:
        return self.submitter.register_device(station_id, transaction_id, license_payload, force)

    def submit_report(self, report_id: int) -> SubmissionResult:
        return self.submitter.submit_report(report_id)

    def history(self, flt: Optional[SubmissionFilter] = None) -> List[EwuraSubmission]:
        return self.submitter.history(flt)

    # ---------- configurações ----------
    def get_settings(self) -> dict:
        return self.config().to_mapping()

    def set_settings(self, changes: Mapping[str, Any]) -> dict:
        return self.config.update(changes).to_mapping()

    # ---------- backup ----------
    def create_backup(self) -> BackupRecord:
        return self.backups.create()

    def list_backups(self) -> List[BackupRecord]:
        return self.backups.list()

    def restore_backup(self, file_name: str) -> BackupRecord:
        return self.backups.restore(file_name)
