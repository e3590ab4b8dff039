from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Tuple

from config.settings import CONNECTION_TIMEOUT
from src.domain.enums import InterfaceFamily

# códigos aceitos por família (aliases herdados dos cadastros antigos)
FAMILY_ALIASES = {
    "NPGIS": InterfaceFamily.NPGIS,
    "ATG": InterfaceFamily.NPGIS,
    "CONSOLE": InterfaceFamily.NPGIS,
    "NFPP": InterfaceFamily.NFPP,
    "PTS": InterfaceFamily.NFPP,
    "VFD": InterfaceFamily.NFPP,
    "SIM": InterfaceFamily.SIM,
    "SIMULATED": InterfaceFamily.SIM,
}


def resolve_family(code: str) -> InterfaceFamily:
    """Resolve o código da interface (com aliases) para a família de protocolo."""
    try:
        return FAMILY_ALIASES[code.strip().upper()]
    except KeyError:
        raise ValueError(f"Código de interface desconhecido: {code!r}") from None


@dataclass(frozen=True)
class Interface:
    """
    Endpoint de protocolo de hardware de uma estação.

    - Imutável: o código não muda depois do registro.
    - `connection` guarda a configuração de transporte (host, porta, credenciais...).
    - `key` identifica a sessão de monitoramento (estação, código).
    """
    station_id: int
    code: str
    connection: Mapping[str, Any] = field(default_factory=dict)
    connection_timeout: float = CONNECTION_TIMEOUT

    def __post_init__(self):
        if not self.code or not self.code.strip():
            raise ValueError("Código da interface não pode estar vazio.")
        if self.connection_timeout <= 0:
            raise ValueError("connection_timeout deve ser > 0.")
        object.__setattr__(self, "code", self.code.strip().upper())
        object.__setattr__(self, "connection", MappingProxyType(dict(self.connection)))

    @property
    def family(self) -> InterfaceFamily:
        return resolve_family(self.code)

    @property
    def key(self) -> Tuple[int, str]:
        return (self.station_id, self.code)
