"""
Hierarquia de erros do domínio.

Cada família corresponde a uma etapa do pipeline:

- adaptadores: `ConnectError`, `PollError` (`PollTimeout` é recuperável,
  `ProtocolError` invalida a sessão);
- normalização: `NormalizationError`;
- relatórios: `AggregationError`;
- envio ao regulador: `SubmissionError` (`NetworkError`, `RejectedError`,
  `SubmissionTimeout`);
- configuração: `ConfigError` (`InvalidTimeError`, `InvalidRetentionError`);
- backup: `BackupError` (`DumpFailedError`, `RestoreMissingFileError`).
"""

from __future__ import annotations


class FuelSyncError(Exception):
    """Raiz de todos os erros do núcleo."""


class ConnectError(FuelSyncError):
    """Falha ao abrir o handle de uma interface."""


class PollError(FuelSyncError):
    """Falha durante um ciclo de poll."""


class PollTimeout(PollError):
    """O dispositivo não respondeu dentro do timeout (recuperável)."""


class ProtocolError(PollError):
    """Resposta malformada ou erro reportado pelo dispositivo (fatal para a sessão)."""


class NormalizationError(FuelSyncError, ValueError):
    """Frame bruto não pode ser convertido em TankReading."""


class AggregationError(FuelSyncError):
    """Falha ao agregar transações/leituras de um dia."""


class SubmissionError(FuelSyncError):
    """Falha ao entregar um payload ao regulador."""


class NetworkError(SubmissionError):
    """Erro de rede ou 5xx do regulador."""


class RejectedError(SubmissionError):
    """Regulador recusou o payload (4xx)."""


class SubmissionTimeout(SubmissionError):
    """Regulador não respondeu dentro do timeout."""


class ConfigError(FuelSyncError, ValueError):
    """Valor de configuração inválido."""


class InvalidTimeError(ConfigError):
    """Horário fora do padrão HH:MM."""


class InvalidRetentionError(ConfigError):
    """Retenção de backups não finita ou negativa."""


class BackupError(FuelSyncError):
    """Falha em operação de backup."""


class DumpFailedError(BackupError):
    """O utilitário de dump falhou."""


class RestoreMissingFileError(BackupError):
    """Arquivo de backup pedido para restore não existe."""
