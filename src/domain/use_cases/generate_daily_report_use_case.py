# src/domain/use_cases/generate_daily_report_use_case.py
from __future__ import annotations
from datetime import date, datetime, time, timedelta, timezone
import logging
from typing import Callable, List, Tuple

import numpy as np
import pandas as pd

from src.domain.entities.daily_report import DailyReport, TankDaySummary
from src.domain.entities.schedule_config import ScheduleConfig
from src.domain.enums import ReportStatus
from src.domain.errors import AggregationError
from src.domain.repositories.reading_repository import ITankReadingRepository, IVolumeEventRepository
from src.domain.repositories.report_repository import IDailyReportRepository, ITransactionRepository

log = logging.getLogger("fuelsync.usecases.report")

_TX_COLUMNS = ["volume", "total_amount", "discount_amount", "fuel_grade"]
_READING_COLUMNS = ["tank_id", "captured_at", "volume", "temperature"]


def local_day_bounds(day: date, tz) -> Tuple[datetime, datetime]:
    """Início/fim (UTC) do dia local `day` no fuso `tz`."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


class GenerateDailyReportUseCase:
    """
    Agrega um dia de vendas e leituras de uma estação num DailyReport.

    Fluxo:
        1) grava (ou substitui) o relatório do par (estação, data) como PENDING;
        2) soma vendas (contagem, valor, desconto, volume, volume por produto);
        3) monta o inventário por tanque a partir das leituras do dia local;
        4) grava PROCESSED, ou FAILED com o motivo se a agregação falhar.

    O relatório fica salvo nos dois casos; a falha nunca sobe para quem agendou.
    """

    def __init__(
        self,
        transaction_repo: ITransactionRepository,
        reading_repo: ITankReadingRepository,
        event_repo: IVolumeEventRepository,
        report_repo: IDailyReportRepository,
        config_provider: Callable[[], ScheduleConfig],
    ) -> None:
        self.transaction_repo = transaction_repo
        self.reading_repo = reading_repo
        self.event_repo = event_repo
        self.report_repo = report_repo
        self.config_provider = config_provider

    def execute(self, station_id: int, day: date) -> DailyReport:
        """
        Gera (ou regenera) o relatório de `station_id` para `day`.

        Args:
            station_id: Estação.
            day: Dia local da estação.

        Returns:
            DailyReport persistido com status PROCESSED ou FAILED.
        """
        existing = self.report_repo.get_for(station_id, day)
        pending = self.report_repo.save(
            DailyReport(station_id=station_id, report_date=day, id=existing.id if existing else None)
        )
        if existing is not None:
            log.info("report_superseded station=%s date=%s id=%s", station_id, day, existing.id)

        try:
            report = self._aggregate(pending)
        except Exception as e:
            err = e if isinstance(e, AggregationError) else AggregationError(f"{type(e).__name__}: {e}")
            log.exception("report_failed station=%s date=%s reason=%s", station_id, day, err)
            return self.report_repo.save(pending.with_status(ReportStatus.FAILED, error=str(err)))

        saved = self.report_repo.save(report)
        log.info("report_generated station=%s date=%s status=%s tx=%s amount=%.2f volume=%.2f",
                 station_id, day, saved.status.name, saved.transaction_count,
                 saved.total_amount, saved.total_volume)
        return saved

    # ---------- helpers ----------
    def _aggregate(self, pending: DailyReport) -> DailyReport:
        cfg = self.config_provider()
        txs = pd.DataFrame(
            [
                {
                    "volume": t.volume,
                    "total_amount": t.total_amount,
                    "discount_amount": t.discount_amount,
                    "fuel_grade": t.fuel_grade_name or "UNKNOWN",
                }
                for t in self.transaction_repo.list_for_station_day(pending.station_id, pending.report_date)
            ],
            columns=_TX_COLUMNS,
        )
        numeric = txs[["volume", "total_amount", "discount_amount"]].to_numpy(dtype=float)
        if numeric.size and not np.isfinite(numeric).all():
            raise AggregationError("Transações com valores não numéricos/infinitos")

        volume_by_grade = {
            str(k): round(float(v), 2)
            for k, v in txs.groupby("fuel_grade")["volume"].sum().items()
        }

        start, end = local_day_bounds(pending.report_date, cfg.tzinfo)
        events = list(self.event_repo.list_for_station(pending.station_id, start, end))
        tanks = self._tank_summaries(pending.station_id, start, end, events)

        return DailyReport(
            station_id=pending.station_id,
            report_date=pending.report_date,
            transaction_count=int(len(txs)),
            total_amount=round(float(txs["total_amount"].sum()), 2),
            total_volume=round(float(txs["volume"].sum()), 2),
            status=ReportStatus.PROCESSED,
            total_discount=round(float(txs["discount_amount"].sum()), 2),
            volume_by_grade=volume_by_grade,
            tanks=tanks,
            anomaly_count=sum(1 for e in events if e.kind == "anomaly"),
            refill_count=sum(1 for e in events if e.kind == "refill"),
            id=pending.id,
        )

    def _tank_summaries(self, station_id: int, start: datetime, end: datetime, events: list) -> List[TankDaySummary]:
        readings = pd.DataFrame(
            [
                {"tank_id": r.tank_id, "captured_at": r.captured_at,
                 "volume": r.volume, "temperature": r.temperature}
                for r in self.reading_repo.list_for_station(station_id, start, end)
            ],
            columns=_READING_COLUMNS,
        )
        if readings.empty:
            return []

        deliveries = {}
        for e in events:
            if e.kind == "refill":
                deliveries[e.tank_id] = deliveries.get(e.tank_id, 0.0) + e.delta

        agg = (
            readings.sort_values("captured_at")
            .groupby("tank_id")
            .agg(
                start_volume=("volume", "first"),
                end_volume=("volume", "last"),
                avg_temperature=("temperature", "mean"),
                reading_count=("volume", "size"),
            )
        )
        return [
            TankDaySummary(
                tank_id=str(tank_id),
                start_volume=round(float(row.start_volume), 2),
                end_volume=round(float(row.end_volume), 2),
                avg_temperature=round(float(row.avg_temperature), 2),
                reading_count=int(row.reading_count),
                delivered_volume=round(deliveries.get(tank_id, 0.0), 2),
            )
            for tank_id, row in agg.iterrows()
        ]
