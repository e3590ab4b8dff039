from __future__ import annotations
from dataclasses import dataclass, field
import threading
from typing import Any, Callable, Dict, Hashable, Optional


@dataclass
class _Call:
    done: threading.Event = field(default_factory=threading.Event)
    result: Any = None
    error: Optional[BaseException] = None


class SingleFlight:
    """
    Garante no máximo uma execução em andamento por chave.

    Quem chega enquanto a chave está em voo espera e recebe o MESMO resultado
    (ou a mesma exceção) da execução corrente, sem disparar outra.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: Dict[Hashable, _Call] = {}

    def do(self, key: Hashable, fn: Callable[[], Any]) -> Any:
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if leader:
                call = self._calls[key] = _Call()

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result

        try:
            call.result = fn()
            return call.result
        except BaseException as e:
            call.error = e
            raise
        finally:
            with self._lock:
                del self._calls[key]
            call.done.set()

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._calls
