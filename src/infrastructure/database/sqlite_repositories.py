# implementação concreta dos repositórios sobre SQLite
# leituras, eventos, vendas, relatórios e histórico de envios

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
import json
import sqlite3
from typing import List, Optional

from config.database import DATABASE_PATH
from src.domain.entities.daily_report import DailyReport, TankDaySummary
from src.domain.entities.submission import EwuraSubmission, SubmissionFilter
from src.domain.entities.tank_reading import TankReading
from src.domain.entities.transaction import SalesTransaction
from src.domain.entities.volume_events import AnomalyEvent, RefillEvent
from src.domain.enums import ReportStatus, SubmissionKind, SubmissionOutcome
from src.domain.repositories.reading_repository import VolumeEvent

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_ts(dt: Optional[datetime]) -> Optional[str]:
    """Timestamp UTC com largura fixa (ordena corretamente como texto)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(_TS_FORMAT)


def from_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class DatabaseManager:
    """Conexão por bloco `with`: commit ao sair sem erro, rollback com erro."""

    def __init__(self, db_path: str = str(DATABASE_PATH)):
        self.db_path = str(db_path)
        self.conexao = None

    def __enter__(self):
        self.conexao = sqlite3.connect(self.db_path)
        self.conexao.row_factory = sqlite3.Row
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.conexao:
            if exc_type is None:
                self.conexao.commit()
            else:
                self.conexao.rollback()
            self.conexao.close()
            self.conexao = None

    def execute(self, sql: str, params=()) -> sqlite3.Cursor:
        return self.conexao.execute(sql, params)


class SqliteTankReadingRepository:
    def __init__(self, db_path=DATABASE_PATH):
        self.db_path = db_path

    def add(self, reading: TankReading) -> None:
        with DatabaseManager(self.db_path) as db:
            db.execute(
                """
                INSERT INTO tank_readings (station_id, tank_id, captured_at, volume, water_level,
                    temperature, pressure, total_volume, water_volume, tc_volume, ullage,
                    product_height, source_interface)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (reading.station_id, reading.tank_id, to_ts(reading.captured_at), reading.volume,
                 reading.water_level, reading.temperature, reading.pressure, reading.total_volume,
                 reading.water_volume, reading.tc_volume, reading.ullage, reading.product_height,
                 reading.source_interface),
            )

    def list_for_station(self, station_id: int, start: datetime, end: datetime) -> List[TankReading]:
        with DatabaseManager(self.db_path) as db:
            rows = db.execute(
                """
                SELECT * FROM tank_readings
                WHERE station_id = ? AND captured_at >= ? AND captured_at < ?
                ORDER BY captured_at, id
                """,
                (station_id, to_ts(start), to_ts(end)),
            ).fetchall()
        return [self._row(r) for r in rows]

    @staticmethod
    def _row(r: sqlite3.Row) -> TankReading:
        return TankReading(
            tank_id=r["tank_id"],
            volume=r["volume"],
            water_level=r["water_level"],
            temperature=r["temperature"],
            captured_at=from_ts(r["captured_at"]),
            source_interface=r["source_interface"],
            pressure=r["pressure"],
            station_id=r["station_id"],
            total_volume=r["total_volume"],
            water_volume=r["water_volume"],
            tc_volume=r["tc_volume"],
            ullage=r["ullage"],
            product_height=r["product_height"],
        )


class SqliteVolumeEventRepository:
    _KINDS = {"anomaly": AnomalyEvent, "refill": RefillEvent}

    def __init__(self, db_path=DATABASE_PATH):
        self.db_path = db_path

    def add(self, event: VolumeEvent) -> None:
        with DatabaseManager(self.db_path) as db:
            db.execute(
                """
                INSERT INTO volume_events (station_id, tank_id, kind, delta, threshold, volume_before,
                    volume_after, window_start, window_end, source_interface, temperature)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (event.station_id, event.tank_id, event.kind, event.delta, event.threshold,
                 event.volume_before, event.volume_after, to_ts(event.window_start),
                 to_ts(event.window_end), event.source_interface, event.temperature),
            )

    def list_for_station(self, station_id: int, start: datetime, end: datetime) -> List[VolumeEvent]:
        with DatabaseManager(self.db_path) as db:
            rows = db.execute(
                """
                SELECT * FROM volume_events
                WHERE station_id = ? AND window_end >= ? AND window_end < ?
                ORDER BY window_end, id
                """,
                (station_id, to_ts(start), to_ts(end)),
            ).fetchall()
        return [
            self._KINDS[r["kind"]](
                tank_id=r["tank_id"], delta=r["delta"], window_start=from_ts(r["window_start"]),
                window_end=from_ts(r["window_end"]), threshold=r["threshold"],
                volume_before=r["volume_before"], volume_after=r["volume_after"],
                station_id=r["station_id"], source_interface=r["source_interface"],
                temperature=r["temperature"],
            )
            for r in rows
        ]


class SqliteTransactionRepository:
    def __init__(self, db_path=DATABASE_PATH):
        self.db_path = db_path

    def add(self, tx: SalesTransaction) -> None:
        """Grava (ou substitui) uma venda importada do controlador."""
        with DatabaseManager(self.db_path) as db:
            db.execute(
                """
                INSERT OR REPLACE INTO sales_transactions (station_id, transaction_id, transaction_date,
                    transaction_time, volume, total_amount, discount_amount, unit_price,
                    fuel_grade_name, interface_source)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (tx.station_id, tx.transaction_id, tx.transaction_date.isoformat(),
                 to_ts(tx.transaction_time), tx.volume, tx.total_amount, tx.discount_amount,
                 tx.unit_price, tx.fuel_grade_name, tx.interface_source),
            )

    def list_for_station_day(self, station_id: int, day: date) -> List[SalesTransaction]:
        with DatabaseManager(self.db_path) as db:
            rows = db.execute(
                "SELECT * FROM sales_transactions WHERE station_id = ? AND transaction_date = ? ORDER BY id",
                (station_id, day.isoformat()),
            ).fetchall()
        return [
            SalesTransaction(
                station_id=r["station_id"],
                transaction_id=r["transaction_id"],
                transaction_date=date.fromisoformat(r["transaction_date"]),
                volume=r["volume"],
                total_amount=r["total_amount"],
                discount_amount=r["discount_amount"] or 0.0,
                unit_price=r["unit_price"] or 0.0,
                fuel_grade_name=r["fuel_grade_name"],
                interface_source=r["interface_source"],
                transaction_time=from_ts(r["transaction_time"]),
            )
            for r in rows
        ]


class SqliteDailyReportRepository:
    """Upsert por (station_id, report_date): regenerar mantém o id e substitui o resto."""

    def __init__(self, db_path=DATABASE_PATH):
        self.db_path = db_path

    def save(self, report: DailyReport) -> DailyReport:
        with DatabaseManager(self.db_path) as db:
            db.execute(
                """
                INSERT INTO daily_reports (station_id, report_date, status, transaction_count,
                    total_amount, total_discount, total_volume, volume_by_grade_json, tanks_json,
                    anomaly_count, refill_count, error, submission_outcome, submission_attempts,
                    submitted_at, generated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (station_id, report_date) DO UPDATE SET
                    status = excluded.status,
                    transaction_count = excluded.transaction_count,
                    total_amount = excluded.total_amount,
                    total_discount = excluded.total_discount,
                    total_volume = excluded.total_volume,
                    volume_by_grade_json = excluded.volume_by_grade_json,
                    tanks_json = excluded.tanks_json,
                    anomaly_count = excluded.anomaly_count,
                    refill_count = excluded.refill_count,
                    error = excluded.error,
                    submission_outcome = excluded.submission_outcome,
                    submission_attempts = excluded.submission_attempts,
                    submitted_at = excluded.submitted_at,
                    generated_at = excluded.generated_at
                """,
                (report.station_id, report.report_date.isoformat(), report.status.name,
                 report.transaction_count, report.total_amount, report.total_discount,
                 report.total_volume, json.dumps(dict(report.volume_by_grade)),
                 json.dumps([self._tank_dict(t) for t in report.tanks]),
                 report.anomaly_count, report.refill_count, report.error,
                 report.submission_outcome.name if report.submission_outcome else None,
                 report.submission_attempts, to_ts(report.submitted_at), to_ts(report.generated_at)),
            )
            row = db.execute(
                "SELECT * FROM daily_reports WHERE station_id = ? AND report_date = ?",
                (report.station_id, report.report_date.isoformat()),
            ).fetchone()
        return self._row(row)

    def get(self, report_id: int) -> Optional[DailyReport]:
        with DatabaseManager(self.db_path) as db:
            row = db.execute("SELECT * FROM daily_reports WHERE id = ?", (report_id,)).fetchone()
        return self._row(row) if row else None

    def get_for(self, station_id: int, day: date) -> Optional[DailyReport]:
        with DatabaseManager(self.db_path) as db:
            row = db.execute(
                "SELECT * FROM daily_reports WHERE station_id = ? AND report_date = ?",
                (station_id, day.isoformat()),
            ).fetchone()
        return self._row(row) if row else None

    def record_submission(self, report_id: int, outcome: SubmissionOutcome, attempts: int,
                          error: Optional[str], when: datetime) -> Optional[DailyReport]:
        # só colunas de envio: os totais podem ter sido regenerados durante o envio
        status = ReportStatus.FAILED if outcome is SubmissionOutcome.FAILED else ReportStatus.PROCESSED
        with DatabaseManager(self.db_path) as db:
            db.execute(
                """
                UPDATE daily_reports SET
                    status = ?,
                    error = ?,
                    submission_outcome = ?,
                    submission_attempts = submission_attempts + ?,
                    submitted_at = ?
                WHERE id = ?
                """,
                (status.name, error, outcome.name, attempts, to_ts(when), report_id),
            )
            row = db.execute("SELECT * FROM daily_reports WHERE id = ?", (report_id,)).fetchone()
        return self._row(row) if row else None

    def list_submittable(self, since: date) -> List[DailyReport]:
        with DatabaseManager(self.db_path) as db:
            rows = db.execute(
                """
                SELECT * FROM daily_reports
                WHERE report_date >= ? AND status = 'PROCESSED'
                  AND (submission_outcome IS NULL OR submission_outcome <> 'SUCCESS')
                ORDER BY report_date, station_id
                """,
                (since.isoformat(),),
            ).fetchall()
        return [self._row(r) for r in rows]

    def list_for_station(self, station_id: int, limit: int = 30) -> List[DailyReport]:
        with DatabaseManager(self.db_path) as db:
            rows = db.execute(
                "SELECT * FROM daily_reports WHERE station_id = ? ORDER BY report_date DESC LIMIT ?",
                (station_id, limit),
            ).fetchall()
        return [self._row(r) for r in rows]

    @staticmethod
    def _tank_dict(t: TankDaySummary) -> dict:
        return {
            "tank_id": t.tank_id,
            "start_volume": t.start_volume,
            "end_volume": t.end_volume,
            "avg_temperature": t.avg_temperature,
            "reading_count": t.reading_count,
            "delivered_volume": t.delivered_volume,
        }

    @staticmethod
    def _row(r: sqlite3.Row) -> DailyReport:
        return DailyReport(
            id=r["id"],
            station_id=r["station_id"],
            report_date=date.fromisoformat(r["report_date"]),
            status=ReportStatus[r["status"]],
            transaction_count=r["transaction_count"],
            total_amount=r["total_amount"],
            total_discount=r["total_discount"],
            total_volume=r["total_volume"],
            volume_by_grade=json.loads(r["volume_by_grade_json"] or "{}"),
            tanks=tuple(TankDaySummary(**t) for t in json.loads(r["tanks_json"] or "[]")),
            anomaly_count=r["anomaly_count"],
            refill_count=r["refill_count"],
            error=r["error"],
            submission_outcome=SubmissionOutcome[r["submission_outcome"]] if r["submission_outcome"] else None,
            submission_attempts=r["submission_attempts"],
            submitted_at=from_ts(r["submitted_at"]),
            generated_at=from_ts(r["generated_at"]),
        )


class SqliteSubmissionRepository:
    """Histórico de envios: só INSERT, nunca UPDATE/DELETE."""

    def __init__(self, db_path=DATABASE_PATH):
        self.db_path = db_path

    def add(self, submission: EwuraSubmission) -> EwuraSubmission:
        with DatabaseManager(self.db_path) as db:
            cur = db.execute(
                """
                INSERT INTO ewura_submissions (kind, station_id, transaction_id, payload_hash,
                    submitted_at, outcome, attempt, report_id, report_date, response_body, error)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (submission.kind.name, submission.station_id, submission.transaction_id,
                 submission.payload_hash, to_ts(submission.submitted_at), submission.outcome.name,
                 submission.attempt, submission.report_id,
                 submission.report_date.isoformat() if submission.report_date else None,
                 submission.response_body, submission.error),
            )
            new_id = cur.lastrowid
        return replace(submission, id=new_id)

    def history(self, flt: SubmissionFilter) -> List[EwuraSubmission]:
        clauses, params = [], []
        if flt.station_id is not None:
            clauses.append("station_id = ?")
            params.append(flt.station_id)
        if flt.kind is not None:
            clauses.append("kind = ?")
            params.append(flt.kind.name)
        if flt.outcome is not None:
            clauses.append("outcome = ?")
            params.append(flt.outcome.name)
        if flt.start_date is not None:
            clauses.append("substr(submitted_at, 1, 10) >= ?")
            params.append(flt.start_date.isoformat())
        if flt.end_date is not None:
            clauses.append("substr(submitted_at, 1, 10) <= ?")
            params.append(flt.end_date.isoformat())
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with DatabaseManager(self.db_path) as db:
            rows = db.execute(
                f"SELECT * FROM ewura_submissions {where} ORDER BY submitted_at DESC, id DESC LIMIT ?",
                (*params, flt.limit),
            ).fetchall()
        return [self._row(r) for r in rows]

    def last_registration(self, station_id: int, transaction_id: str) -> Optional[EwuraSubmission]:
        with DatabaseManager(self.db_path) as db:
            row = db.execute(
                """
                SELECT * FROM ewura_submissions
                WHERE kind = 'REGISTRATION' AND station_id = ? AND transaction_id = ?
                ORDER BY submitted_at DESC, id DESC LIMIT 1
                """,
                (station_id, transaction_id),
            ).fetchone()
        return self._row(row) if row else None

    @staticmethod
    def _row(r: sqlite3.Row) -> EwuraSubmission:
        return EwuraSubmission(
            id=r["id"],
            kind=SubmissionKind[r["kind"]],
            station_id=r["station_id"],
            transaction_id=r["transaction_id"],
            payload_hash=r["payload_hash"],
            submitted_at=from_ts(r["submitted_at"]),
            outcome=SubmissionOutcome[r["outcome"]],
            attempt=r["attempt"],
            report_id=r["report_id"],
            report_date=date.fromisoformat(r["report_date"]) if r["report_date"] else None,
            response_body=r["response_body"],
            error=r["error"],
        )
