# Simulador de console de tanques (comportamento realista, sem hardware)
# Usado em demonstração/homologação: interface com código SIM.
#
# Dinâmica por tanque:
#   - vendas com ciclo diário (pico no fim da tarde) e ruído
#   - descarga quando o volume cai abaixo do ponto de pedido
#   - spikes raros de sonda (uma leitura ruim)
# Todo o estado vive no handle; o adaptador em si não guarda nada.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import math
import random
from typing import Callable, Dict, List

from src.domain.entities.interface import Interface
from src.domain.entities.raw_frame import RawFrame
from src.domain.errors import ConnectError, ProtocolError

# =========================
# Perfis por tanque
# =========================
TANK_PROFILES: Dict[str, Dict[str, float]] = {
    "01": {"capacity": 10000.0, "sales_lpm": 4.0, "temperature_base": 27.0, "temp_var": 2.0},
    "02": {"capacity": 15000.0, "sales_lpm": 6.0, "temperature_base": 27.5, "temp_var": 2.2},
    "03": {"capacity": 10000.0, "sales_lpm": 2.5, "temperature_base": 26.5, "temp_var": 1.8},
}

REORDER_FRACTION = 0.25        # abaixo disso, agenda descarga
DELIVERY_FRACTION = 0.60       # descarga traz ~60% da capacidade
DELIVERY_CHANCE_PER_TICK = 0.15
PROBLEM_PROBABILITY = 0.01     # spike de sonda

def _profile(tank_id: str) -> Dict[str, float]:
    if tank_id not in TANK_PROFILES:
        n = int(tank_id) if tank_id.isdigit() else len(tank_id)
        return {"capacity": 10000.0 + 1000.0 * (n % 3), "sales_lpm": 3.0 + (n % 4),
                "temperature_base": 27.0, "temp_var": 2.0}
    return TANK_PROFILES[tank_id]

def _diurnal(min_of_day: int, peak_min: int) -> float:
    """Onda diária suave em [-1, 1], com pico em peak_min (min do dia)."""
    phase = 2.0 * math.pi * ((min_of_day - peak_min + 360) % 1440) / 1440.0
    return math.sin(phase)

def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


@dataclass
class SimHandle:
    interface: Interface
    rng: random.Random
    tanks: Dict[str, Dict[str, float]]
    last_tick: datetime
    closed: bool = False


class SimulatedAdapter:
    """
    Gera frames no formato do console ATG (camelCase).

    Configuração (`interface.connection`):
        tanks: lista de ids (default: perfis 01..03)
        seed: semente do gerador (determinístico para testes)
        start_fraction: volume inicial em fração da capacidade
    """

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)) -> None:
        self.clock = clock

    def connect(self, interface: Interface) -> SimHandle:
        cfg = interface.connection
        if cfg.get("unreachable"):
            raise ConnectError(f"Simulador {interface.code}: indisponível (configurado)")
        tank_ids = [f"{int(t):02d}" if str(t).isdigit() else str(t) for t in cfg.get("tanks", TANK_PROFILES.keys())]
        rng = random.Random(cfg.get("seed"))
        start = float(cfg.get("start_fraction", 0.5))
        tanks = {}
        for tid in tank_ids:
            prof = _profile(tid)
            tanks[tid] = {
                "volume": prof["capacity"] * start,
                "water": rng.uniform(0.0, 40.0),
                "temperature": prof["temperature_base"],
                "pending_delivery": 0.0,
            }
        return SimHandle(interface, rng, tanks, self.clock())

    def poll(self, handle: SimHandle) -> List[RawFrame]:
        if handle.closed:
            raise ProtocolError("Handle do simulador já fechado")
        now = self.clock()
        minutes = max(0.0, (now - handle.last_tick).total_seconds() / 60.0)
        handle.last_tick = now
        mod = now.hour * 60 + now.minute

        frames = []
        for tid, st in handle.tanks.items():
            prof = _profile(tid)
            cap = prof["capacity"]

            # 1) vendas (pico ~18h)
            rate = prof["sales_lpm"] * (1.0 + 0.6 * _diurnal(mod, peak_min=18 * 60))
            st["volume"] -= max(0.0, rate * minutes + handle.rng.uniform(-0.5, 0.5) * minutes)

            # 2) descarga
            if st["volume"] < cap * REORDER_FRACTION and not st["pending_delivery"]:
                st["pending_delivery"] = cap * DELIVERY_FRACTION
            if st["pending_delivery"] and handle.rng.random() < DELIVERY_CHANCE_PER_TICK:
                st["volume"] += st["pending_delivery"]
                st["pending_delivery"] = 0.0

            # 3) temperatura com ciclo diário
            target = prof["temperature_base"] + prof["temp_var"] * 0.7 * _diurnal(mod, peak_min=15 * 60)
            st["temperature"] += 0.1 * (target - st["temperature"]) + handle.rng.uniform(-0.05, 0.05)

            st["volume"] = clamp(st["volume"], 0.0, cap)
            volume = st["volume"]

            # 4) spike de sonda (uma amostra)
            if handle.rng.random() < PROBLEM_PROBABILITY:
                volume = clamp(volume - handle.rng.uniform(150.0, 400.0), 0.0, cap)

            total = volume + st["water"]
            frames.append(RawFrame({
                "tankNumber": tid,
                "oilVolume": round(volume, 1),
                "totalVolume": round(total, 1),
                "waterVolume": round(st["water"], 1),
                "waterHeight": round(st["water"] / 10.0, 1),
                "temperature": round(st["temperature"], 1),
                "ullage": round(cap - total, 1),
                "oilHeight": round(2000.0 * total / cap, 1),
                "timestamp": now.isoformat(),
            }, now, handle.interface.code))
        return frames

    def disconnect(self, handle: SimHandle) -> None:
        handle.closed = True
