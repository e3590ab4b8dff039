from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class SalesTransaction:
    """
    Venda registrada na pista (fonte: controlador PTS ou cadastro manual).

    Só os campos usados na agregação diária; o cadastro completo vive fora do núcleo.
    """
    station_id: int
    transaction_id: str
    transaction_date: date
    volume: float
    total_amount: float
    discount_amount: float = 0.0
    unit_price: float = 0.0
    fuel_grade_name: Optional[str] = None
    interface_source: Optional[str] = None
    transaction_time: Optional[datetime] = None

    def __post_init__(self):
        if self.volume < 0:
            raise ValueError("Volume da transação não pode ser negativo.")
        if self.total_amount < 0:
            raise ValueError("Valor da transação não pode ser negativo.")
