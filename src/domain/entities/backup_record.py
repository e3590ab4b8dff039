from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path


@dataclass(frozen=True)
class BackupRecord:
    """Dump pontual do banco guardado no diretório de backups."""
    file_name: str
    created_at: datetime
    size_bytes: int
    path: Path

    def __post_init__(self):
        if self.created_at.tzinfo is None:
            object.__setattr__(self, "created_at", self.created_at.replace(tzinfo=timezone.utc))

    def is_expired(self, now: datetime, retention_days: float) -> bool:
        """True se o arquivo está fora da janela de retenção (0 = nunca expira)."""
        if retention_days <= 0:
            return False
        return self.created_at < now - timedelta(days=retention_days)

    def to_dict(self) -> dict:
        return {
            "file_name": self.file_name,
            "created_at": self.created_at.isoformat(),
            "size_bytes": self.size_bytes,
        }
