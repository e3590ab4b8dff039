"""
Timer diário cancelável.

`next_fire_time` calcula o próximo disparo a partir de (HH:MM, fuso) e do
instante atual; `DailyTimer` roda numa thread própria esperando em fatias
curtas e confere o cancelamento imediatamente antes de disparar, então um
timer cancelado nunca executa um disparo atrasado.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone, tzinfo
import logging
import threading
from typing import Callable, Optional

from src.domain.value_objects import TimeOfDay

log = logging.getLogger("fuelsync.scheduling.timer")

MAX_WAIT_CHUNK = 60.0  # segundos; relógio é reavaliado a cada fatia


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_fire_time(at: TimeOfDay, tz: tzinfo, now: datetime) -> datetime:
    """
    Próximo instante (UTC) em que o relógio local de `tz` marca `at`.

    Args:
        at: Horário local do disparo.
        tz: Fuso da agenda.
        now: Instante de referência (aware).

    Returns:
        datetime UTC estritamente posterior a `now`.
    """
    local_now = now.astimezone(tz)
    day = local_now.date()
    candidate = datetime.combine(day, time(at.hour, at.minute), tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(day + timedelta(days=1), time(at.hour, at.minute), tzinfo=tz)
    return candidate.astimezone(timezone.utc)


class DailyTimer:
    """Dispara `callback` todo dia no horário local configurado, até `cancel()`."""

    def __init__(
        self,
        at: TimeOfDay,
        tz: tzinfo,
        callback: Callable[[], object],
        name: str = "daily-timer",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.at = at
        self.tz = tz
        self.callback = callback
        self.name = name
        self.clock = clock
        self.next_fire: Optional[datetime] = None
        self._cancelled = threading.Event()
        self._fire_lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._cancelled.is_set()

    def start(self) -> "DailyTimer":
        if self._thread is not None:
            return self
        self.next_fire = next_fire_time(self.at, self.tz, self.clock())
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        log.info("timer_started name=%s at=%s next_fire=%s", self.name, self.at, self.next_fire.isoformat())
        return self

    def cancel(self, join_timeout: Optional[float] = None) -> None:
        # espera um disparo em curso terminar: depois do cancel nenhum callback começa
        with self._fire_lock:
            self._cancelled.set()
        if self._thread is not None and join_timeout is not None and self._thread is not threading.current_thread():
            self._thread.join(join_timeout)
        log.info("timer_cancelled name=%s", self.name)

    def _run(self) -> None:
        while not self._cancelled.is_set():
            remaining = (self.next_fire - self.clock()).total_seconds()
            if remaining > 0:
                self._cancelled.wait(min(remaining, MAX_WAIT_CHUNK))
                continue
            with self._fire_lock:
                if self._cancelled.is_set():
                    return
                log.info("timer_fired name=%s", self.name)
                try:
                    self.callback()
                except Exception:
                    log.exception("timer_callback_failed name=%s", self.name)
            self.next_fire = next_fire_time(self.at, self.tz, self.clock())
