from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple

from src.domain.entities.interface import Interface


@dataclass(frozen=True)
class Station:
    """
    Estação de combustível (dados mestres, mantidos fora do núcleo).

    Guarda apenas o que o monitoramento e o regulador precisam:
    identificação, licença EWURA, dados do operador e as interfaces.
    """
    id: int
    name: str
    code: str = ""
    ewura_license_no: str = ""
    operator_tin: str = ""
    operator_vrn: str = ""
    operator_name: str = ""
    tra_serial_no: str = ""
    region: str = ""
    district: str = ""
    ward: str = ""
    zone: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    active: bool = True
    interfaces: Tuple[Interface, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.name.strip():
            raise ValueError("Nome da estação não pode estar vazio.")
        object.__setattr__(self, "interfaces", tuple(self.interfaces))

    def interface(self, code: str) -> Optional[Interface]:
        code = code.strip().upper()
        return next((i for i in self.interfaces if i.code == code), None)
