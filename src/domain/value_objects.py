import re
from dataclasses import dataclass

from src.domain.errors import InvalidTimeError

_HHMM = re.compile(r"[0-9]{2}:[0-9]{2}")

@dataclass(frozen=True)
class TimeOfDay:
    """
    Value Object para horário diário "HH:MM".

    - Imutável (frozen).
    - Valida faixa de hora/minuto no __post_init__.
    - `parse` exige o padrão estrito HH:MM (ex.: "7:30" é rejeitado).
    """
    hour: int
    minute: int

    def __post_init__(self):
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59):
            raise InvalidTimeError(f"Horário inválido: {self.hour:02d}:{self.minute:02d}")

    @classmethod
    def parse(cls, value) -> "TimeOfDay":
        """Converte "HH:MM" em TimeOfDay; levanta InvalidTimeError se inválido."""
        if isinstance(value, TimeOfDay):
            return value
        if not isinstance(value, str) or not _HHMM.fullmatch(value):
            raise InvalidTimeError(f"Horário inválido: {value!r} (esperado HH:MM)")
        hh, mm = value.split(":")
        return cls(int(hh), int(mm))

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"
