from datetime import date, datetime, timedelta, timezone
import json

import pytest

from src.domain.entities.daily_report import DailyReport
from src.domain.entities.transaction import SalesTransaction
from src.domain.entities.volume_events import RefillEvent
from src.domain.enums import ReportStatus
from src.domain.use_cases.generate_daily_report_use_case import GenerateDailyReportUseCase, local_day_bounds
from src.infrastructure.reporting.report_export import export_report

from conftest import FakeTransactionRepo, make_reading

DAY = date(2025, 1, 16)


def _transactions(n: int = 333):
    txs = [
        SalesTransaction(1, f"TX-{i}", DAY, volume=4.18, total_amount=11981.0, fuel_grade_name="PMS")
        for i in range(n - 1)
    ]
    txs.append(SalesTransaction(1, "TX-last", DAY, volume=5.37, total_amount=12250.0,
                                discount_amount=250.0, fuel_grade_name="AGO"))
    return txs

def _uc(config, readings, events, reports, txs=()):
    return GenerateDailyReportUseCase(FakeTransactionRepo(txs), readings, events, reports, config)

def test_aggregates_day_totals(config, readings, events, reports):
    report = _uc(config, readings, events, reports, _transactions()).execute(1, DAY)

    assert report.status is ReportStatus.PROCESSED
    assert report.transaction_count == 333
    assert report.total_amount == 3989942.0
    assert report.total_volume == 1393.13
    assert report.total_discount == 250.0
    assert report.net_amount == 3989692.0
    assert report.volume_by_grade == {"AGO": 5.37, "PMS": 1387.76}
    assert report.report_no == "20250116"

def test_empty_day_is_processed_with_zero_totals(config, readings, events, reports):
    report = _uc(config, readings, events, reports).execute(1, DAY)
    assert report.status is ReportStatus.PROCESSED
    assert report.transaction_count == 0
    assert report.total_amount == 0.0
    assert report.tanks == ()

def test_regenerating_supersedes_and_keeps_id(config, readings, events, reports):
    first = _uc(config, readings, events, reports, _transactions(10)).execute(1, DAY)
    second = _uc(config, readings, events, reports, _transactions(20)).execute(1, DAY)
    assert second.id == first.id
    assert len(reports.rows) == 1
    assert reports.get(first.id).transaction_count == 20

def test_aggregation_failure_saves_failed_report(config, readings, events, reports):
    class BrokenTransactions(FakeTransactionRepo):
        def list_for_station_day(self, station_id, day):
            raise RuntimeError("tabela indisponível")

    uc = GenerateDailyReportUseCase(BrokenTransactions(), readings, events, reports, config)
    report = uc.execute(1, DAY)
    assert report.status is ReportStatus.FAILED
    assert "tabela indisponível" in report.error
    assert reports.get_for(1, DAY).status is ReportStatus.FAILED

def test_tank_inventory_uses_local_day(config, readings, events, reports):
    tz = config().tzinfo
    start, end = local_day_bounds(DAY, tz)
    readings.add(make_reading(5000.0, start - timedelta(minutes=1)))   # dia anterior
    readings.add(make_reading(4800.0, start + timedelta(hours=1)))
    readings.add(make_reading(4200.0, start + timedelta(hours=12)))
    readings.add(make_reading(4000.0, end - timedelta(minutes=1)))
    events.add(RefillEvent(tank_id="01", delta=600.0, window_start=start + timedelta(hours=11),
                           window_end=start + timedelta(hours=12), threshold=500.0,
                           volume_before=3600.0, volume_after=4200.0, station_id=1))

    report = _uc(config, readings, events, reports).execute(1, DAY)
    (tank,) = report.tanks
    assert tank.start_volume == 4800.0
    assert tank.end_volume == 4000.0
    assert tank.reading_count == 3
    assert tank.delivered_volume == 600.0
    assert tank.volume_difference == 1400.0
    assert report.refill_count == 1

def test_local_day_bounds_in_dar_es_salaam(config):
    start, end = local_day_bounds(DAY, config().tzinfo)
    assert start == datetime(2025, 1, 15, 21, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(days=1)


# ---------- exportação ----------

def _report() -> DailyReport:
    return DailyReport(station_id=1, report_date=DAY, transaction_count=2, total_amount=100.0,
                       total_volume=3.5, status=ReportStatus.PROCESSED,
                       volume_by_grade={"PMS": 3.5}, id=7)

def test_export_json_has_structured_totals():
    data = json.loads(export_report(_report(), "json"))
    assert data["id"] == 7
    assert data["status"] == "PROCESSED"
    assert data["volume_by_grade"] == {"PMS": 3.5}

def test_export_csv_has_summary_and_grades():
    text = export_report(_report(), "CSV")
    lines = text.splitlines()
    assert lines[0].startswith("id,station_id,report_date,report_no,status")
    assert "fuel_grade,volume" in lines
    assert "PMS,3.5" in lines

def test_export_unknown_format():
    with pytest.raises(ValueError):
        export_report(_report(), "pdf")
