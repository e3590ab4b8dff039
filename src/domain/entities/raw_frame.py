from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class RawFrame:
    """
    Registro bruto de UM tanque, no formato nativo da interface.

    - `payload` mantém os nomes de campo do protocolo (camelCase do ATG,
      PascalCase do PTS, snake_case de cadastros antigos...).
    - `received_at` é o instante em que o adaptador recebeu o frame; serve de
      timestamp quando o próprio payload não traz um.
    """
    payload: Mapping[str, Any]
    received_at: datetime
    interface_code: str = ""

    def __post_init__(self):
        if self.received_at.tzinfo is None:
            object.__setattr__(self, "received_at", self.received_at.replace(tzinfo=timezone.utc))
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))
