from datetime import date, datetime, timedelta, timezone
import threading
from zoneinfo import ZoneInfo

from src.domain.entities.daily_report import DailyReport
from src.domain.entities.schedule_config import BackupConfig
from src.domain.enums import ReportStatus
from src.domain.value_objects import TimeOfDay
from src.domain.use_cases.generate_daily_report_use_case import GenerateDailyReportUseCase
from src.infrastructure.scheduling.backup_scheduler import BackupScheduler
from src.infrastructure.scheduling.daily_timer import DailyTimer, next_fire_time
from src.infrastructure.scheduling.report_scheduler import ReportScheduler

from conftest import FakeStations, FakeTransactionRepo, make_station

DAR = ZoneInfo("Africa/Dar_es_Salaam")   # UTC+3, sem horário de verão


class FakeTimer:
    """Timer que não dispara: só registra start/cancel."""
    created = []

    def __init__(self, at, tz, callback, name="daily-timer"):
        self.at, self.tz, self.callback, self.name = at, tz, callback, name
        self.started = 0
        self.cancelled = 0
        self.next_fire = None
        FakeTimer.created.append(self)

    def start(self):
        self.started += 1
        self.next_fire = next_fire_time(self.at, self.tz, datetime(2025, 1, 17, 12, 0, tzinfo=timezone.utc))
        return self

    def cancel(self, join_timeout=None):
        self.cancelled += 1


class FakeBackupService:
    def __init__(self):
        self.created = 0
        self.pruned = []
    def create(self):
        self.created += 1
        return "record"
    def prune(self, retention_days, now=None):
        self.pruned.append(retention_days)
        return []


# ---------- next_fire_time ----------

def test_next_fire_later_today():
    now = datetime(2025, 1, 17, 0, 30, tzinfo=timezone.utc)         # 03:30 local
    assert next_fire_time(TimeOfDay(7, 30), DAR, now) == datetime(2025, 1, 17, 4, 30, tzinfo=timezone.utc)

def test_next_fire_rolls_to_tomorrow():
    now = datetime(2025, 1, 17, 4, 30, tzinfo=timezone.utc)         # exatamente 07:30 local
    assert next_fire_time(TimeOfDay(7, 30), DAR, now) == datetime(2025, 1, 18, 4, 30, tzinfo=timezone.utc)

def test_next_fire_crosses_utc_midnight():
    now = datetime(2025, 1, 17, 22, 0, tzinfo=timezone.utc)         # 01:00 local do dia 18
    assert next_fire_time(TimeOfDay(2, 0), DAR, now) == datetime(2025, 1, 17, 23, 0, tzinfo=timezone.utc)


# ---------- backup ----------

def _backup_scheduler():
    FakeTimer.created = []
    sched = BackupScheduler(FakeBackupService(), BackupConfig(), timer_factory=FakeTimer)
    sched.start()
    return sched

def test_identical_config_keeps_timer():
    sched = _backup_scheduler()
    timer, fire = sched.timer, sched.next_fire
    sched.reconfigure({"time_hhmm": "02:00", "timezone": "Africa/Dar_es_Salaam", "retention_days": 30})
    assert sched.timer is timer
    assert sched.next_fire == fire
    assert timer.cancelled == 0 and len(FakeTimer.created) == 1

def test_time_change_swaps_timer_once():
    sched = _backup_scheduler()
    old = sched.timer
    sched.reconfigure({"time_hhmm": "03:15"})
    assert old.cancelled == 1
    assert len(FakeTimer.created) == 2
    assert sched.timer.started == 1
    assert str(sched.timer.at) == "03:15"

def test_disable_cancels_without_new_timer():
    sched = _backup_scheduler()
    old = sched.timer
    sched.reconfigure({"enabled": False})
    assert old.cancelled == 1
    assert sched.timer is None and sched.next_fire is None

def test_invalid_values_fall_back_to_defaults():
    sched = _backup_scheduler()
    cfg = sched.reconfigure({"time_hhmm": "7:30", "retention_days": -1})
    assert str(cfg.time_hhmm) == "02:00"
    assert cfg.retention_days == 30.0
    cfg = sched.reconfigure({"retention_days": float("inf")})
    assert cfg.retention_days == 30.0

def test_run_backup_creates_then_prunes():
    sched = BackupScheduler(FakeBackupService(), BackupConfig(retention_days=7), timer_factory=FakeTimer)
    assert sched.run_backup() == "record"
    assert sched.service.created == 1
    assert sched.service.pruned == [7]


# ---------- relatórios ----------

def _report_scheduler(config, readings, events, reports):
    gen = GenerateDailyReportUseCase(FakeTransactionRepo(), readings, events, reports, config)
    stations = FakeStations(make_station(1), make_station(2))
    return ReportScheduler(stations, gen, submit=None, config_provider=config, timer_factory=FakeTimer,
                           clock=lambda: datetime(2025, 1, 17, 4, 30, tzinfo=timezone.utc))

def test_generation_targets_previous_local_day_and_skips_processed(config, readings, events, reports):
    reports.save(DailyReport(station_id=2, report_date=date(2025, 1, 16), status=ReportStatus.PROCESSED))
    sched = _report_scheduler(config, readings, events, reports)
    generated = sched.run_generation()
    assert [(r.station_id, r.report_date) for r in generated] == [(1, date(2025, 1, 16))]

def test_schedule_change_replaces_only_on_schedule_keys(config, readings, events, reports):
    FakeTimer.created = []
    sched = _report_scheduler(config, readings, events, reports)
    config.subscribe(sched.reconfigure)
    sched.start()
    assert sorted(sched.timers) == ["generation", "submission"]
    first = dict(sched.timers)

    config.update({"anomaly_threshold": 150})
    assert sched.timers == first

    config.update({"generation_time": "06:00"})
    assert first["generation"].cancelled == 1
    assert str(sched.timers["generation"].at) == "06:00"

    config.update({"auto_submit": False})
    assert "submission" not in sched.timers
    sched.stop()
    assert sched.timers == {}


# ---------- DailyTimer ----------

def test_daily_timer_fires_and_cancels():
    t0 = datetime(2025, 1, 17, 0, 0, tzinfo=timezone.utc)   # 03:00 local em ponto
    calls = iter([t0])

    def clock():
        # primeira chamada agenda; as seguintes já estão depois do disparo
        return next(calls, t0 + timedelta(days=2))

    fired = threading.Event()
    timer = DailyTimer(TimeOfDay(3, 0), DAR, fired.set, clock=clock).start()
    assert fired.wait(2)
    timer.cancel(join_timeout=2)
    assert not timer.running

def test_cancel_waits_for_callback_in_progress():
    t0 = datetime(2025, 1, 17, 0, 0, tzinfo=timezone.utc)
    calls = iter([t0])

    def clock():
        return next(calls, t0 + timedelta(days=2))

    started, release, cancelled = threading.Event(), threading.Event(), threading.Event()
    fired = []

    def callback():
        fired.append(clock())
        started.set()
        release.wait(5)

    timer = DailyTimer(TimeOfDay(3, 0), DAR, callback, clock=clock).start()
    assert started.wait(2)

    def cancel():
        timer.cancel(join_timeout=2)
        cancelled.set()

    threading.Thread(target=cancel).start()
    assert not cancelled.wait(0.2)
    release.set()
    assert cancelled.wait(3)
    assert not timer.running
    assert len(fired) == 1

def test_cancelled_timer_never_fires():
    t0 = datetime(2025, 1, 17, 0, 0, tzinfo=timezone.utc)
    calls = iter([t0])
    fired = threading.Event()
    timer = DailyTimer(TimeOfDay(3, 0), DAR, fired.set,
                       clock=lambda: next(calls, t0 + timedelta(days=2)))
    timer.cancel()
    timer.start()
    assert not fired.wait(0.3)
