# cadastro de estações/interfaces, configurações e alertas sobre SQLite

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from config.database import DATABASE_PATH
from src.domain.entities.alert import Alert
from src.domain.entities.interface import Interface
from src.domain.entities.station import Station
from src.domain.enums import AlertType, Severity
from src.infrastructure.database.sqlite_repositories import DatabaseManager, from_ts, to_ts

log = logging.getLogger("fuelsync.database.directory")

_STATION_FIELDS = (
    "name", "code", "ewura_license_no", "operator_tin", "operator_vrn", "operator_name",
    "tra_serial_no", "region", "district", "ward", "zone", "contact_email", "contact_phone",
)


class SqliteStationDirectory:
    """Consulta estações ativas e suas interfaces (o cadastro em si vive fora do núcleo)."""

    def __init__(self, db_path=DATABASE_PATH):
        self.db_path = db_path

    def list_active(self) -> List[Station]:
        with DatabaseManager(self.db_path) as db:
            rows = db.execute("SELECT * FROM stations WHERE active = 1 ORDER BY id").fetchall()
            return [self._station(db, r) for r in rows]

    def get(self, station_id: int) -> Optional[Station]:
        with DatabaseManager(self.db_path) as db:
            row = db.execute("SELECT * FROM stations WHERE id = ?", (station_id,)).fetchone()
            return self._station(db, row) if row else None

    def upsert(self, station: Station) -> Station:
        """Grava estação + interfaces (carga inicial e importação do cadastro)."""
        values = [getattr(station, f) for f in _STATION_FIELDS]
        with DatabaseManager(self.db_path) as db:
            db.execute(
                f"""
                INSERT INTO stations (id, {', '.join(_STATION_FIELDS)}, active)
                VALUES (?, {', '.join('?' for _ in _STATION_FIELDS)}, ?)
                ON CONFLICT (id) DO UPDATE SET
                    {', '.join(f'{f} = excluded.{f}' for f in _STATION_FIELDS)},
                    active = excluded.active
                """,
                (station.id, *values, int(station.active)),
            )
            for iface in station.interfaces:
                db.execute(
                    """
                    INSERT INTO station_interfaces (station_id, code, connection_json, connection_timeout)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT (station_id, code) DO UPDATE SET
                        connection_json = excluded.connection_json,
                        connection_timeout = excluded.connection_timeout,
                        active = 1
                    """,
                    (station.id, iface.code, json.dumps(dict(iface.connection)), iface.connection_timeout),
                )
        return station

    def set_active(self, station_id: int, active: bool) -> bool:
        """Liga/desliga a estação no cadastro. False se a estação não existir."""
        with DatabaseManager(self.db_path) as db:
            cur = db.execute("UPDATE stations SET active = ? WHERE id = ?", (int(active), station_id))
            changed = cur.rowcount > 0
        log.info("station_active station=%s active=%s found=%s", station_id, active, changed)
        return changed

    @staticmethod
    def _station(db: DatabaseManager, r) -> Station:
        ifaces = db.execute(
            "SELECT * FROM station_interfaces WHERE station_id = ? AND active = 1 ORDER BY id",
            (r["id"],),
        ).fetchall()
        interfaces = []
        for i in ifaces:
            try:
                connection = json.loads(i["connection_json"] or "{}")
            except json.JSONDecodeError:
                log.warning("interface_config_invalid station=%s iface=%s", r["id"], i["code"])
                connection = {}
            interfaces.append(Interface(
                station_id=r["id"], code=i["code"], connection=connection,
                connection_timeout=i["connection_timeout"] or 5.0,
            ))
        return Station(
            id=r["id"],
            **{f: r[f] or "" for f in _STATION_FIELDS},
            active=bool(r["active"]),
            interfaces=tuple(interfaces),
        )


class SqliteSettingsRepository:
    """ScheduleConfig serializado numa única chave de `system_settings`."""

    KEY = "schedule_config"

    def __init__(self, db_path=DATABASE_PATH):
        self.db_path = db_path

    def load(self) -> Mapping[str, Any]:
        with DatabaseManager(self.db_path) as db:
            row = db.execute("SELECT value FROM system_settings WHERE key = ?", (self.KEY,)).fetchone()
        if row is None:
            return {}
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            log.warning("settings_corrupted key=%s", self.KEY)
            return {}

    def save(self, data: Mapping[str, Any]) -> None:
        with DatabaseManager(self.db_path) as db:
            db.execute(
                """
                INSERT INTO system_settings (key, value, updated_at) VALUES (?, ?, datetime('now'))
                ON CONFLICT (key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (self.KEY, json.dumps(dict(data))),
            )


class SqliteAlertSink:
    """Grava alertas na tabela `alerts` e os espelha no log."""

    def __init__(self, db_path=DATABASE_PATH):
        self.db_path = db_path

    def save(self, alert: Alert) -> None:
        log.warning("alert type=%s severity=%s station=%s msg=%s",
                    alert.type.name, alert.severity.name, alert.station_id, alert.message)
        with DatabaseManager(self.db_path) as db:
            db.execute(
                """
                INSERT OR REPLACE INTO alerts (id, station_id, tank_id, alert_type, severity, message,
                    metadata_json, created_at, resolved_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (alert.id, alert.station_id, alert.tank_id, alert.type.name, alert.severity.name,
                 alert.message, json.dumps(alert.metadata or {}, default=str),
                 to_ts(alert.created_at), to_ts(alert.resolved_at)),
            )

    def list_open(self, station_id: Optional[int] = None) -> List[Alert]:
        sql = "SELECT * FROM alerts WHERE resolved_at IS NULL"
        params: tuple = ()
        if station_id is not None:
            sql += " AND station_id = ?"
            params = (station_id,)
        with DatabaseManager(self.db_path) as db:
            rows = db.execute(sql + " ORDER BY created_at", params).fetchall()
        return [self._row(r) for r in rows]

    @staticmethod
    def _row(r) -> Alert:
        metadata: Dict[str, Any] = json.loads(r["metadata_json"] or "{}")
        return Alert(
            id=r["id"],
            station_id=r["station_id"],
            tank_id=r["tank_id"],
            type=AlertType[r["alert_type"]],
            severity=Severity[r["severity"]],
            message=r["message"],
            created_at=from_ts(r["created_at"]),
            metadata=metadata,
            resolved_at=from_ts(r["resolved_at"]),
        )
