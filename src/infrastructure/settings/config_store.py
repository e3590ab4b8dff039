"""
Dono do snapshot corrente de ScheduleConfig.

Leitores chamam `store.current()` (ou usam o próprio store como provider) e
recebem sempre um snapshot completo: `update` monta o novo snapshot fora do
lock, persiste e troca a referência de uma vez. Os listeners (agendadores)
são avisados depois da troca.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Mapping, Optional

from src.domain.entities.schedule_config import ScheduleConfig
from src.domain.repositories.station_repository import ISettingsRepository

log = logging.getLogger("fuelsync.config.store")

Listener = Callable[[ScheduleConfig], Any]


class ConfigStore:
    def __init__(self, repo: Optional[ISettingsRepository] = None) -> None:
        self.repo = repo
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        raw = repo.load() if repo is not None else {}
        self._config = ScheduleConfig.from_mapping(raw)

    def __call__(self) -> ScheduleConfig:
        return self._config

    def current(self) -> ScheduleConfig:
        return self._config

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def update(self, changes: Mapping[str, Any]) -> ScheduleConfig:
        """
        Aplica mudanças parciais e publica o novo snapshot.

        Args:
            changes: Chaves de ScheduleConfig (e `backup` aninhado). Valores
                inválidos voltam ao padrão, nunca bloqueiam o salvamento.

        Returns:
            O snapshot efetivo.
        """
        with self._lock:
            new = ScheduleConfig.from_mapping(changes, self._config)
            if self.repo is not None:
                self.repo.save(new.to_mapping())
            self._config = new
        log.info("config_updated keys=%s", ",".join(sorted(changes)) or "-")
        for listener in list(self._listeners):
            try:
                listener(new)
            except Exception:
                log.exception("config_listener_failed listener=%s", getattr(listener, "__qualname__", listener))
        return new
