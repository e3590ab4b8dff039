"""
Hub de transmissão ao vivo das leituras normalizadas.

Cada assinante recebe um `Subscription` com buffer próprio e limitado
(`collections.deque(maxlen=...)`). `publish` nunca bloqueia: com o buffer
cheio, a leitura mais antiga ainda não lida é descartada e a nova entra
(prioridade ao último valor). O hub guarda os assinantes num `WeakSet`, então
uma assinatura abandonada pelo consumidor some sozinha, sem `unsubscribe`.

Não há histórico: uma assinatura nova só vê o que for publicado depois dela.
"""

from __future__ import annotations

from collections import deque
import logging
import threading
from typing import Callable, Iterator, List, Optional
import weakref

from config.settings import BROADCAST_BUFFER_SIZE
from src.domain.entities.tank_reading import TankReading

log = logging.getLogger("fuelsync.monitoring.hub")

ReadingFilter = Callable[[TankReading], bool]


class Subscription:
    """Handle de assinatura: sequência privada e preguiçosa de TankReading."""

    def __init__(self, buffer_size: int, accept: Optional[ReadingFilter] = None) -> None:
        self._buffer: deque = deque(maxlen=max(1, int(buffer_size)))
        self._cond = threading.Condition()
        self._closed = False
        self._accept = accept
        self.dropped = 0

    # ----- lado do produtor -----
    def offer(self, reading: TankReading) -> None:
        if self._accept is not None and not self._accept(reading):
            return
        with self._cond:
            if self._closed:
                return
            if len(self._buffer) == self._buffer.maxlen:
                self.dropped += 1
            self._buffer.append(reading)
            self._cond.notify()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    # ----- lado do consumidor -----
    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, timeout: Optional[float] = None) -> Optional[TankReading]:
        """Próxima leitura; None se o tempo esgotar ou a assinatura fechar vazia."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._buffer or self._closed, timeout):
                return None
            return self._buffer.popleft() if self._buffer else None

    def drain(self) -> List[TankReading]:
        """Retira tudo o que estiver no buffer, sem esperar."""
        with self._cond:
            items = list(self._buffer)
            self._buffer.clear()
            return items

    def __iter__(self) -> Iterator[TankReading]:
        """Itera até a assinatura ser fechada (bloqueante entre leituras)."""
        while True:
            reading = self.get()
            if reading is None:
                return
            yield reading

    def __len__(self) -> int:
        return len(self._buffer)


class BroadcastHub:
    """Distribui leituras para N assinantes sem contrapressão no produtor."""

    def __init__(self, buffer_size: int = BROADCAST_BUFFER_SIZE) -> None:
        self.buffer_size = buffer_size
        self._subs: "weakref.WeakSet[Subscription]" = weakref.WeakSet()
        self._lock = threading.Lock()

    def subscribe(
        self,
        station_id: Optional[int] = None,
        interface_code: Optional[str] = None,
        buffer_size: Optional[int] = None,
    ) -> Subscription:
        """
        Cria uma assinatura, opcionalmente filtrada por estação e/ou interface.

        O chamador é dono do handle; o hub só mantém referência fraca.
        """
        code = interface_code.strip().upper() if interface_code else None

        def accept(r: TankReading) -> bool:
            return (station_id is None or r.station_id == station_id) and (
                code is None or r.source_interface == code
            )

        sub = Subscription(buffer_size or self.buffer_size,
                           accept if (station_id is not None or code) else None)
        with self._lock:
            self._subs.add(sub)
        log.debug("subscriber_added total=%s", len(self._subs))
        return sub

    def publish(self, reading: TankReading) -> int:
        """Entrega a leitura a todos os assinantes vivos; retorna quantos."""
        with self._lock:
            subs = list(self._subs)
        for sub in subs:
            sub.offer(reading)
        return len(subs)

    def unsubscribe(self, sub: Subscription) -> None:
        sub.close()
        with self._lock:
            self._subs.discard(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)
