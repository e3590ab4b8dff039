"""
Módulo de definição de alertas do domínio.

Este módulo concentra o tipo imutável `Alert`, entregue ao coletor de alertas
externo (notificações, painel, e-mail). Um alerta é produzido quando:

- o detector encontra uma queda de volume (`AlertType.VOLUME_ANOMALY`) ou uma
  descarga (`AlertType.REFILL`);
- uma sessão de monitoramento cai por erro de protocolo ou por timeouts
  consecutivos (`AlertType.INTERFACE_DOWN`);
- um envio ao regulador esgota as tentativas (`AlertType.SUBMISSION_FAILED`).

Princípios e invariantes adotados
---------------------------------
- **Imutabilidade**: `Alert` é um `dataclass(frozen=True)`. Qualquer mudança
  (p.ex., marcar como resolvido) gera **uma nova instância**.
- **Temporalidade em UTC**: `created_at` e `resolved_at` são normalizados para
  timezone UTC. Valores "naive" (sem tzinfo) são assumidos como UTC.
- **Contexto**: `metadata` carrega os dados que motivaram o alerta (delta,
  limiar, chave da sessão, relatório...), em formato serializável.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any
from uuid import uuid4

from src.domain.entities.volume_events import AnomalyEvent, RefillEvent
from src.domain.enums import AlertType, Severity


@dataclass(frozen=True)
class Alert:
    """
    Entidade imutável que representa um alerta gerado pelo núcleo.

    Attributes:
        id: Identificador único do alerta.
        station_id: Estação de origem (None para alertas globais).
        tank_id: Tanque associado, quando houver.
        type: Tipo do alerta.
        severity: Nível de severidade (NORMAL, WARNING, CRITICAL).
        message: Texto curto e objetivo descrevendo o motivo do alerta.
        created_at: Instante de criação do alerta (normalizado para UTC).
        metadata: Dados auxiliares para auditoria e contexto (opcional).
        resolved_at: Instante de resolução (UTC), se já resolvido.
    """

    id: str
    station_id: Optional[int]
    tank_id: Optional[str]
    type: AlertType
    severity: Severity
    message: str
    created_at: datetime
    metadata: Optional[Dict[str, Any]] = None
    resolved_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        tz = timezone.utc

        # `dataclass(frozen=True)` impede atribuição direta; usa-se `object.__setattr__`.
        if self.created_at.tzinfo is None:
            object.__setattr__(self, "created_at", self.created_at.replace(tzinfo=tz))

        if self.resolved_at and self.resolved_at.tzinfo is None:
            object.__setattr__(self, "resolved_at", self.resolved_at.replace(tzinfo=tz))

    def resolve(self, when: Optional[datetime] = None) -> "Alert":
        """
        Marca o alerta como resolvido, retornando uma NOVA instância.

        Args:
            when: Instante da resolução. Se omitido, usa o horário atual em UTC.
        """
        resolved_time = when or datetime.now(timezone.utc)
        return replace(self, resolved_at=resolved_time)

    @property
    def duration(self) -> Optional[timedelta]:
        """`resolved_at - created_at` se já resolvido; caso contrário, `None`."""
        return None if not self.resolved_at else (self.resolved_at - self.created_at)

    # -------------------------------------------------------------------------
    # Fábricas especializadas
    # -------------------------------------------------------------------------

    @staticmethod
    def volume_anomaly(event: AnomalyEvent, alert_id: Optional[str] = None) -> "Alert":
        """
        Alerta de queda anormal de volume.

        Mensagem gerada:
            "Queda de {delta} L no tanque {tank} (limiar {threshold} L)"
        """
        msg = (
            f"Queda de {event.delta:.1f} L no tanque {event.tank_id} "
            f"(limiar {event.threshold:.1f} L)"
        )
        return Alert(
            alert_id or uuid4().hex,
            event.station_id,
            event.tank_id,
            AlertType.VOLUME_ANOMALY,
            Severity.CRITICAL,
            msg,
            datetime.now(timezone.utc),
            metadata=event.to_dict(),
        )

    @staticmethod
    def refill(event: RefillEvent, alert_id: Optional[str] = None) -> "Alert":
        """Alerta informativo de descarga detectada."""
        msg = (
            f"Descarga de {event.delta:.1f} L no tanque {event.tank_id} "
            f"({event.volume_before:.1f} → {event.volume_after:.1f} L)"
        )
        return Alert(
            alert_id or uuid4().hex,
            event.station_id,
            event.tank_id,
            AlertType.REFILL,
            Severity.NORMAL,
            msg,
            datetime.now(timezone.utc),
            metadata=event.to_dict(),
        )

    @staticmethod
    def interface_down(station_id: int, interface_code: str, reason: str,
                       alert_id: Optional[str] = None) -> "Alert":
        """
        Alerta de sessão derrubada (erro de protocolo ou timeouts consecutivos).

        Args:
            station_id: Estação da sessão.
            interface_code: Código da interface (NPGIS, NFPP...).
            reason: Motivo textual (mensagem do erro).
        """
        msg = f"Interface {interface_code} da estação {station_id} desconectada: {reason}"
        return Alert(
            alert_id or uuid4().hex,
            station_id,
            None,
            AlertType.INTERFACE_DOWN,
            Severity.CRITICAL,
            msg,
            datetime.now(timezone.utc),
            metadata={"interface_code": interface_code, "reason": reason},
        )

    @staticmethod
    def submission_failed(station_id: int, reference: str, attempts: int, reason: str,
                          alert_id: Optional[str] = None) -> "Alert":
        """Alerta de envio ao regulador que esgotou as tentativas automáticas."""
        msg = f"Envio EWURA {reference} falhou após {attempts} tentativa(s): {reason}"
        return Alert(
            alert_id or uuid4().hex,
            station_id,
            None,
            AlertType.SUBMISSION_FAILED,
            Severity.WARNING,
            msg,
            datetime.now(timezone.utc),
            metadata={"reference": reference, "attempts": attempts, "reason": reason},
        )
