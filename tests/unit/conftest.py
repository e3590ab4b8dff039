# tests/unit/conftest.py
from __future__ import annotations
from dataclasses import replace
from datetime import date, datetime, timezone
import itertools
import threading
from typing import Dict, Iterable, List, Optional

import pytest

from src.domain.entities.alert import Alert
from src.domain.entities.daily_report import DailyReport
from src.domain.entities.interface import Interface
from src.domain.entities.station import Station
from src.domain.entities.submission import EwuraSubmission, SubmissionFilter
from src.domain.entities.tank_reading import TankReading
from src.domain.entities.transaction import SalesTransaction
from src.domain.enums import ReportStatus, SubmissionKind, SubmissionOutcome
from src.domain.repositories.alert_repository import IAlertSink
from src.domain.repositories.reading_repository import ITankReadingRepository, IVolumeEventRepository
from src.domain.repositories.report_repository import IDailyReportRepository, ITransactionRepository
from src.domain.repositories.station_repository import IStationDirectory
from src.domain.repositories.submission_repository import ISubmissionRepository
from src.infrastructure.settings.config_store import ConfigStore

# ---------- Fakes em memória ----------

class FakeStations(IStationDirectory):
    def __init__(self, *stations: Station) -> None:
        self.items: Dict[int, Station] = {s.id: s for s in stations}
    def list_active(self) -> Iterable[Station]:
        return [s for s in self.items.values() if s.active]
    def get(self, station_id: int) -> Optional[Station]:
        return self.items.get(station_id)

class FakeAlertSink(IAlertSink):
    def __init__(self) -> None:
        self.items: List[Alert] = []
    def save(self, alert: Alert) -> None:
        self.items.append(alert)
    def list_open(self, station_id: Optional[int] = None):
        return [a for a in self.items if station_id is None or a.station_id == station_id]

class FakeReadingRepo(ITankReadingRepository):
    def __init__(self) -> None:
        self.store: List[TankReading] = []
    def add(self, reading: TankReading) -> None:
        self.store.append(reading)
    def list_for_station(self, station_id, start, end):
        return [r for r in self.store if r.station_id == station_id and start <= r.captured_at < end]

class FakeEventRepo(IVolumeEventRepository):
    def __init__(self) -> None:
        self.store: list = []
    def add(self, event) -> None:
        self.store.append(event)
    def list_for_station(self, station_id, start, end):
        return [e for e in self.store if e.station_id == station_id and start <= e.window_end < end]

class FakeTransactionRepo(ITransactionRepository):
    def __init__(self, items: Iterable[SalesTransaction] = ()) -> None:
        self.items = list(items)
    def list_for_station_day(self, station_id: int, day: date):
        return [t for t in self.items if t.station_id == station_id and t.transaction_date == day]

class FakeReportRepo(IDailyReportRepository):
    def __init__(self) -> None:
        self.rows: Dict[int, DailyReport] = {}
        self._ids = itertools.count(1)
    def save(self, report: DailyReport) -> DailyReport:
        existing = self.get_for(report.station_id, report.report_date)
        rid = existing.id if existing else (report.id or next(self._ids))
        saved = replace(report, id=rid)
        self.rows[rid] = saved
        return saved
    def get(self, report_id: int):
        return self.rows.get(report_id)
    def get_for(self, station_id: int, day: date):
        return next((r for r in self.rows.values()
                     if r.station_id == station_id and r.report_date == day), None)
    def record_submission(self, report_id, outcome, attempts, error, when):
        current = self.rows.get(report_id)
        if current is None:
            return None
        self.rows[report_id] = current.with_submission(outcome, attempts, error, when)
        return self.rows[report_id]
    def list_submittable(self, since: date):
        return sorted(
            (r for r in self.rows.values()
             if r.report_date >= since and r.status is ReportStatus.PROCESSED
             and r.submission_outcome is not SubmissionOutcome.SUCCESS),
            key=lambda r: r.report_date,
        )

class FakeSubmissionRepo(ISubmissionRepository):
    def __init__(self) -> None:
        self.items: List[EwuraSubmission] = []
        self._lock = threading.Lock()
    def add(self, submission: EwuraSubmission) -> EwuraSubmission:
        with self._lock:
            saved = replace(submission, id=len(self.items) + 1)
            self.items.append(saved)
            return saved
    def history(self, flt: SubmissionFilter):
        rows = [s for s in self.items
                if (flt.station_id is None or s.station_id == flt.station_id)
                and (flt.kind is None or s.kind is flt.kind)
                and (flt.outcome is None or s.outcome is flt.outcome)]
        return list(reversed(rows))[: flt.limit]
    def last_registration(self, station_id, transaction_id):
        rows = [s for s in self.items if s.kind is SubmissionKind.REGISTRATION
                and s.station_id == station_id and s.transaction_id == transaction_id]
        return rows[-1] if rows else None

class FakeGateway:
    """Gateway roteirizado: cada `send` consome a próxima resposta (str ou exceção)."""
    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.sent: List[tuple] = []
        self.gate: Optional[threading.Event] = None
    def build_registration(self, station, transaction_id, license_payload=None) -> str:
        return f"<Reg>{station.id}:{transaction_id}</Reg>"
    def build_daily_summary(self, report, station) -> str:
        return f"<Rpt>{station.id}:{report.report_no}</Rpt>"
    def send(self, kind, payload) -> str:
        if self.gate is not None:
            self.gate.wait(5)
        self.sent.append((kind, payload))
        resp = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(resp, Exception):
            raise resp
        return resp

# ---------- Helpers ----------

T0 = datetime(2025, 1, 17, 8, 0, tzinfo=timezone.utc)

def make_reading(volume: float, at: datetime = T0, tank_id: str = "01", station_id: int = 1,
                 source: str = "SIM") -> TankReading:
    return TankReading(tank_id=tank_id, volume=volume, water_level=0.0, temperature=27.0,
                       captured_at=at, source_interface=source, station_id=station_id)

def make_station(station_id: int = 1, *codes: str, **connection) -> Station:
    return Station(
        id=station_id,
        name=f"Estação {station_id}",
        ewura_license_no="PRL/2025/001",
        operator_tin="123456789",
        interfaces=tuple(Interface(station_id, c, connection) for c in (codes or ("SIM",))),
    )

# ---------- Fixtures ----------

@pytest.fixture
def config() -> ConfigStore:
    return ConfigStore()

@pytest.fixture
def alerts() -> FakeAlertSink:
    return FakeAlertSink()

@pytest.fixture
def readings() -> FakeReadingRepo:
    return FakeReadingRepo()

@pytest.fixture
def events() -> FakeEventRepo:
    return FakeEventRepo()

@pytest.fixture
def reports() -> FakeReportRepo:
    return FakeReportRepo()

@pytest.fixture
def submissions() -> FakeSubmissionRepo:
    return FakeSubmissionRepo()
