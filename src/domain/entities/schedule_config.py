"""
Configuração operacional (horários, fuso, limiares, intervalos de poll, backup).

`ScheduleConfig` é um snapshot imutável: quem precisa de configuração recebe
um *provider* (callable) e lê o snapshot corrente a cada uso, de modo que a
troca feita pelo `ConfigStore` é atômica para os leitores.

Construção tolerante
--------------------
`from_mapping(raw, base)` aplica cada chave presente em `raw` sobre `base` (ou
sobre os padrões de `config.settings`). Valores inválidos NÃO rejeitam a
atualização inteira: o campo volta ao padrão e o motivo é registrado em log
(`config_fallback key=... reason=...`).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
import math
from types import MappingProxyType
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config.settings import BACKUP_DEFAULTS, POLL_INTERVALS, SCHEDULE_DEFAULTS
from src.domain.errors import ConfigError, InvalidRetentionError, InvalidTimeError
from src.domain.value_objects import TimeOfDay

log = logging.getLogger("fuelsync.config")

_MISSING = object()


# ---------- parsers de campo ----------

def parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("true", "1", "yes", "on", "sim"):
            return True
        if v in ("false", "0", "no", "off", "nao", "não", ""):
            return False
        raise ConfigError(f"Booleano inválido: {value!r}")
    return bool(value)


def parse_retention(value: Any) -> float:
    """Dias de retenção: número finito >= 0 (0 desliga a limpeza)."""
    if isinstance(value, bool):
        raise InvalidRetentionError(f"Retenção inválida: {value!r}")
    try:
        days = float(value)
    except (TypeError, ValueError):
        raise InvalidRetentionError(f"Retenção inválida: {value!r}") from None
    if not math.isfinite(days) or days < 0:
        raise InvalidRetentionError(f"Retenção inválida: {value!r}")
    return days


def parse_timezone(value: Any) -> str:
    try:
        ZoneInfo(str(value))
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(f"Fuso horário desconhecido: {value!r}") from None
    return str(value)


def parse_positive(value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"Número inválido: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Número inválido: {value!r}") from None
    if not math.isfinite(number) or number <= 0:
        raise ConfigError(f"Número deve ser finito e > 0: {value!r}")
    return number


def _field(raw: Mapping[str, Any], key: str, current: Any, default: Any, parser) -> Any:
    """Aplica `parser` ao valor de `raw[key]`; ausente mantém `current`, inválido vira `default`."""
    value = raw.get(key, _MISSING)
    if value is _MISSING:
        return current
    try:
        return parser(value)
    except ConfigError as e:
        log.warning("config_fallback key=%s value=%r default=%r reason=%s", key, value, default, e)
        return parser(default)


# ---------- snapshots ----------

@dataclass(frozen=True)
class BackupConfig:
    """Agenda e retenção do backup diário."""
    enabled: bool = bool(BACKUP_DEFAULTS["enabled"])
    time_hhmm: TimeOfDay = TimeOfDay.parse(BACKUP_DEFAULTS["time_hhmm"])
    timezone: str = BACKUP_DEFAULTS["timezone"]
    retention_days: float = float(BACKUP_DEFAULTS["retention_days"])

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], base: Optional["BackupConfig"] = None) -> "BackupConfig":
        base = base or cls()
        raw = raw or {}
        return cls(
            enabled=_field(raw, "enabled", base.enabled, BACKUP_DEFAULTS["enabled"], parse_bool),
            time_hhmm=_field(raw, "time_hhmm", base.time_hhmm, BACKUP_DEFAULTS["time_hhmm"], TimeOfDay.parse),
            timezone=_field(raw, "timezone", base.timezone, BACKUP_DEFAULTS["timezone"], parse_timezone),
            retention_days=_field(raw, "retention_days", base.retention_days,
                                  BACKUP_DEFAULTS["retention_days"], parse_retention),
        )

    def to_mapping(self) -> dict:
        return {
            "enabled": self.enabled,
            "time_hhmm": str(self.time_hhmm),
            "timezone": self.timezone,
            "retention_days": self.retention_days,
        }


@dataclass(frozen=True)
class ScheduleConfig:
    """
    Snapshot imutável da configuração operacional.

    Attributes:
        generation_time: Horário (local) da geração dos relatórios diários.
        submission_time: Horário (local) do envio ao regulador.
        timezone: Fuso da estação (IANA).
        auto_generate / auto_submit: liga/desliga cada job.
        enable_anomaly_detection: desliga o detector (leituras continuam no hub).
        anomaly_threshold: Queda mínima (L) para AnomalyEvent.
        refill_threshold: Aumento mínimo (L) para RefillEvent.
        poll_intervals: Segundos entre polls, por família (NPGIS, NFPP, SIM).
        max_consecutive_timeouts: Timeouts seguidos antes de derrubar a sessão.
        backup: Agenda de backup.
    """
    generation_time: TimeOfDay = TimeOfDay.parse(SCHEDULE_DEFAULTS["generation_time"])
    submission_time: TimeOfDay = TimeOfDay.parse(SCHEDULE_DEFAULTS["submission_time"])
    timezone: str = SCHEDULE_DEFAULTS["timezone"]
    auto_generate: bool = bool(SCHEDULE_DEFAULTS["auto_generate"])
    auto_submit: bool = bool(SCHEDULE_DEFAULTS["auto_submit"])
    enable_anomaly_detection: bool = bool(SCHEDULE_DEFAULTS["enable_anomaly_detection"])
    anomaly_threshold: float = float(SCHEDULE_DEFAULTS["anomaly_threshold"])
    refill_threshold: float = float(SCHEDULE_DEFAULTS["refill_threshold"])
    poll_intervals: Mapping[str, float] = field(default_factory=lambda: MappingProxyType(dict(POLL_INTERVALS)))
    max_consecutive_timeouts: int = int(SCHEDULE_DEFAULTS["max_consecutive_timeouts"])
    backup: BackupConfig = field(default_factory=BackupConfig)

    def __post_init__(self):
        object.__setattr__(self, "poll_intervals", MappingProxyType(dict(self.poll_intervals)))

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def poll_interval(self, family_name: str) -> float:
        return float(self.poll_intervals.get(family_name, POLL_INTERVALS.get(family_name, 5.0)))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], base: Optional["ScheduleConfig"] = None) -> "ScheduleConfig":
        """
        Monta um snapshot a partir de um dicionário (settings salvos ou API).

        Args:
            raw: Chaves parciais; as ausentes são herdadas de `base`.
            base: Snapshot de partida (padrões se None).

        Returns:
            Novo ScheduleConfig; valores inválidos voltam ao padrão (com log).
        """
        base = base or cls()
        raw = raw or {}
        d = SCHEDULE_DEFAULTS

        intervals = dict(base.poll_intervals)
        for family_name, seconds in dict(raw.get("poll_intervals") or {}).items():
            key = str(family_name).upper()
            intervals[key] = _field({key: seconds}, key, intervals.get(key),
                                    POLL_INTERVALS.get(key, 5.0), parse_positive)

        return cls(
            generation_time=_field(raw, "generation_time", base.generation_time, d["generation_time"], TimeOfDay.parse),
            submission_time=_field(raw, "submission_time", base.submission_time, d["submission_time"], TimeOfDay.parse),
            timezone=_field(raw, "timezone", base.timezone, d["timezone"], parse_timezone),
            auto_generate=_field(raw, "auto_generate", base.auto_generate, d["auto_generate"], parse_bool),
            auto_submit=_field(raw, "auto_submit", base.auto_submit, d["auto_submit"], parse_bool),
            enable_anomaly_detection=_field(raw, "enable_anomaly_detection", base.enable_anomaly_detection,
                                            d["enable_anomaly_detection"], parse_bool),
            anomaly_threshold=_field(raw, "anomaly_threshold", base.anomaly_threshold,
                                     d["anomaly_threshold"], parse_positive),
            refill_threshold=_field(raw, "refill_threshold", base.refill_threshold,
                                    d["refill_threshold"], parse_positive),
            poll_intervals=intervals,
            max_consecutive_timeouts=int(_field(raw, "max_consecutive_timeouts", base.max_consecutive_timeouts,
                                                d["max_consecutive_timeouts"], parse_positive)),
            backup=BackupConfig.from_mapping(raw.get("backup") or {}, base.backup),
        )

    def with_backup(self, backup: BackupConfig) -> "ScheduleConfig":
        return replace(self, backup=backup)

    def to_mapping(self) -> dict:
        return {
            "generation_time": str(self.generation_time),
            "submission_time": str(self.submission_time),
            "timezone": self.timezone,
            "auto_generate": self.auto_generate,
            "auto_submit": self.auto_submit,
            "enable_anomaly_detection": self.enable_anomaly_detection,
            "anomaly_threshold": self.anomaly_threshold,
            "refill_threshold": self.refill_threshold,
            "poll_intervals": dict(self.poll_intervals),
            "max_consecutive_timeouts": self.max_consecutive_timeouts,
            "backup": self.backup.to_mapping(),
        }
