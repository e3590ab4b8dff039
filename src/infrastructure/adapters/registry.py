# seleção do adaptador pelo código da interface (ATG/CONSOLE → NPGIS, PTS/VFD → NFPP, SIM)
from __future__ import annotations

from typing import Callable, Dict, Optional

from src.domain.entities.interface import Interface, resolve_family
from src.domain.enums import InterfaceFamily
from src.domain.errors import ConnectError
from src.domain.repositories.telemetry_adapter import ITelemetryAdapter
from src.infrastructure.adapters.atg_adapter import AtgAdapter
from src.infrastructure.adapters.pts_adapter import PtsAdapter
from src.infrastructure.adapters.simulated_adapter import SimulatedAdapter

AdapterFactory = Callable[[], ITelemetryAdapter]

DEFAULT_FACTORIES: Dict[InterfaceFamily, AdapterFactory] = {
    InterfaceFamily.NPGIS: AtgAdapter,
    InterfaceFamily.NFPP: PtsAdapter,
    InterfaceFamily.SIM: SimulatedAdapter,
}


class AdapterRegistry:
    """Cria um adaptador novo (exclusivo da sessão) a partir do código da interface."""

    def __init__(self, factories: Optional[Dict[InterfaceFamily, AdapterFactory]] = None) -> None:
        self.factories = dict(DEFAULT_FACTORIES)
        if factories:
            self.factories.update(factories)

    def create(self, interface: Interface) -> ITelemetryAdapter:
        try:
            family = resolve_family(interface.code)
        except ValueError as e:
            raise ConnectError(str(e)) from e
        factory = self.factories.get(family)
        if factory is None:
            raise ConnectError(f"Sem adaptador para a família {family.name}")
        return factory()
