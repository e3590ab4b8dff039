from __future__ import annotations
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional, ClassVar


@dataclass(frozen=True)
class TankReading:
    """
    Leitura canônica de um tanque, independente do protocolo de origem.

    - Imutável.
    - Valida limites físicos (hard limits) no __post_init__.
    - `captured_at` é sempre timezone-aware (UTC).
    - `pressure` é opcional; os demais campos numéricos nunca são None.
    """

    tank_id: str
    volume: float                  # litros de produto (sem água)
    water_level: float             # mm
    temperature: float             # °C
    captured_at: datetime
    source_interface: str
    pressure: Optional[float] = None
    station_id: Optional[int] = None
    total_volume: float = 0.0
    water_volume: float = 0.0
    tc_volume: float = 0.0
    ullage: float = 0.0
    product_height: float = 0.0

    # -------- Hard limits (físicos) --------
    _TEMP_MIN_HARD: ClassVar[float] = -40.0
    _TEMP_MAX_HARD: ClassVar[float] = 80.0

    def __post_init__(self) -> None:
        """
        - Garante captured_at em UTC.
        - Volume negativo ou temperatura impossível disparam ValueError.
        """
        if self.captured_at.tzinfo is None:
            object.__setattr__(self, "captured_at", self.captured_at.replace(tzinfo=timezone.utc))
        else:
            object.__setattr__(self, "captured_at", self.captured_at.astimezone(timezone.utc))

        if not str(self.tank_id).strip():
            raise ValueError("tank_id não pode estar vazio.")
        if self.volume < 0:
            raise ValueError(f"Volume inválido: {self.volume} L (deve ser >= 0)")
        if self.water_level < 0:
            raise ValueError(f"Nível de água inválido: {self.water_level}")
        if not (self._TEMP_MIN_HARD <= self.temperature <= self._TEMP_MAX_HARD):
            raise ValueError(
                f"Temperatura inválida: {self.temperature}°C. "
                f"Range: {self._TEMP_MIN_HARD}-{self._TEMP_MAX_HARD}°C"
            )

    @property
    def tank_key(self) -> tuple:
        """Chave do tanque no detector: (estação, tanque)."""
        return (self.station_id, self.tank_id)

    def to_dict(self) -> dict:
        """
        Serializa a leitura para transporte (hub/SSE) e persistência.
        O timestamp sai em ISO-8601 UTC.
        """
        data = asdict(self)
        data["captured_at"] = self.captured_at.isoformat()
        return data
