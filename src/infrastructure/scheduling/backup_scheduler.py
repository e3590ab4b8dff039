"""
Agenda do backup diário.

`reconfigure` compara a configuração normalizada com a ativa: igual não mexe
no timer (mesmo objeto, mesmo próximo disparo); diferente troca o timer sob
lock, cancelando o antigo antes de iniciar o novo, de modo que nunca há dois
timers ativos para o job.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Union

from src.domain.entities.backup_record import BackupRecord
from src.domain.entities.schedule_config import BackupConfig
from src.domain.errors import BackupError
from src.infrastructure.backup.backup_service import BackupService
from src.infrastructure.scheduling.daily_timer import DailyTimer

log = logging.getLogger("fuelsync.scheduling.backup")


class BackupScheduler:
    def __init__(
        self,
        service: BackupService,
        config: Optional[BackupConfig] = None,
        timer_factory: Callable[..., DailyTimer] = DailyTimer,
    ) -> None:
        self.service = service
        self.timer_factory = timer_factory
        self.config = config or BackupConfig()
        self.timer: Optional[DailyTimer] = None
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._started = False

    @property
    def next_fire(self) -> Optional[datetime]:
        return self.timer.next_fire if self.timer is not None else None

    def start(self) -> None:
        with self._lock:
            self._started = True
            self._swap_timer()

    def stop(self) -> None:
        with self._lock:
            self._started = False
            if self.timer is not None:
                self.timer.cancel()
                self.timer = None

    def reconfigure(self, raw: Union[BackupConfig, Mapping[str, Any]]) -> BackupConfig:
        """
        Aplica uma nova configuração de backup.

        Args:
            raw: BackupConfig pronto ou mapeamento parcial (valores inválidos
                voltam ao padrão).

        Returns:
            A configuração efetivamente ativa.
        """
        with self._lock:
            new = raw if isinstance(raw, BackupConfig) else BackupConfig.from_mapping(raw, self.config)
            if new == self.config:
                log.debug("backup_schedule_unchanged at=%s", new.time_hhmm)
                return self.config
            log.info("backup_schedule_changed enabled=%s at=%s tz=%s retention_days=%s",
                     new.enabled, new.time_hhmm, new.timezone, new.retention_days)
            self.config = new
            if self._started:
                self._swap_timer()
            return new

    def run_backup(self) -> Optional[BackupRecord]:
        """Dump + limpeza. Um disparo concorrente com outro em andamento é ignorado."""
        if not self._run_lock.acquire(blocking=False):
            log.warning("backup_skipped reason=already_running")
            return None
        try:
            retention = self.config.retention_days
            try:
                record = self.service.create()
            except BackupError as e:
                log.error("backup_job_failed reason=%s", e)
                return None
            self.service.prune(retention)
            return record
        finally:
            self._run_lock.release()

    def _swap_timer(self) -> None:
        # chamado com self._lock adquirido
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.config.enabled:
            self.timer = self.timer_factory(
                self.config.time_hhmm, self.config.tzinfo, self.run_backup, name="backup"
            ).start()
