from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from src.domain.enums import SessionState


@dataclass(frozen=True)
class SessionStatus:
    """Fotografia do estado de uma sessão (estação, interface) para a API de controle."""
    station_id: int
    interface_code: str
    state: SessionState
    last_heartbeat: Optional[datetime] = None
    consecutive_timeouts: int = 0
    last_error: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.state in (SessionState.CONNECTED, SessionState.MONITORING)

    @property
    def is_monitoring(self) -> bool:
        return self.state is SessionState.MONITORING

    def to_dict(self) -> dict:
        return {
            "station_id": self.station_id,
            "interface_code": self.interface_code,
            "state": self.state.name,
            "is_connected": self.is_connected,
            "is_monitoring": self.is_monitoring,
            "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
            "consecutive_timeouts": self.consecutive_timeouts,
            "last_error": self.last_error,
        }
