"""
Backup completo do banco em arquivos `.sql` no diretório de backups.

Duas estratégias de dump, escolhidas pela URL do banco:

- `SqliteDumpStrategy` (padrão): `Connection.iterdump()` gera o script SQL;
  o restore executa o script num banco em memória e copia o resultado por
  cima do arquivo com a API de backup do sqlite3.
- `PostgresDumpStrategy`: `pg_dump -F p` / `psql -v ON_ERROR_STOP=1`, com a
  senha em `PGPASSWORD`.

Nomes: `backup_YYYY-MM-DDTHH-MM-SS-fffZ.sql` (UTC).
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import os
from pathlib import Path
import sqlite3
import subprocess
from typing import Callable, Dict, List, Mapping, Optional

from config.database import BACKUP_DIR, DATABASE_PATH, DATABASE_URL, PG_SETTINGS
from src.domain.entities.backup_record import BackupRecord
from src.domain.errors import DumpFailedError, RestoreMissingFileError

log = logging.getLogger("fuelsync.backup")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def backup_file_name(when: datetime) -> str:
    """`backup_2025-01-17T02-00-00-000Z.sql` para o instante dado."""
    when = when.astimezone(timezone.utc)
    return f"backup_{when.strftime('%Y-%m-%dT%H-%M-%S')}-{when.microsecond // 1000:03d}Z.sql"


class SqliteDumpStrategy:
    def __init__(self, db_path: Path = DATABASE_PATH) -> None:
        self.db_path = Path(db_path)

    def dump(self, target: Path) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn, open(target, "w", encoding="utf-8") as fh:
                for line in conn.iterdump():
                    fh.write(f"{line}\n")
        except (sqlite3.Error, OSError) as e:
            raise DumpFailedError(f"Dump SQLite falhou: {e}") from e

    def restore(self, source: Path) -> None:
        script = source.read_text(encoding="utf-8")
        scratch = sqlite3.connect(":memory:")
        try:
            scratch.executescript(script)
            with sqlite3.connect(self.db_path) as dst:
                scratch.backup(dst)
        except sqlite3.Error as e:
            raise DumpFailedError(f"Restore SQLite falhou: {e}") from e
        finally:
            scratch.close()


class PostgresDumpStrategy:
    def __init__(self, settings: Mapping[str, str] = PG_SETTINGS, runner: Callable = subprocess.run) -> None:
        self.settings = dict(settings)
        self.runner = runner

    def _base_args(self) -> List[str]:
        s = self.settings
        return ["-U", s["user"], "-h", s["host"], "-p", str(s["port"]), "-d", s["database"]]

    def _run(self, cmd: str, args: List[str]) -> None:
        env = dict(os.environ, PGPASSWORD=self.settings.get("password", ""))
        try:
            result = self.runner([cmd, *args], env=env, capture_output=True, text=True)
        except OSError as e:
            raise DumpFailedError(f"{cmd}: não foi possível executar ({e})") from e
        if result.returncode != 0:
            raise DumpFailedError(f"{cmd} saiu com código {result.returncode}: {result.stderr or result.stdout}")

    def dump(self, target: Path) -> None:
        self._run("pg_dump", [*self._base_args(), "-F", "p", "-f", str(target)])

    def restore(self, source: Path) -> None:
        self._run("psql", [*self._base_args(), "-v", "ON_ERROR_STOP=1", "-f", str(source)])


def strategy_for(database_url: str = DATABASE_URL, db_path: Path = DATABASE_PATH):
    """Escolhe a estratégia de dump pela URL do banco."""
    if database_url.startswith(("postgres://", "postgresql://")):
        return PostgresDumpStrategy()
    return SqliteDumpStrategy(db_path)


class BackupService:
    """create / list / restore / prune sobre o diretório de backups."""

    def __init__(self, strategy=None, backup_dir: Path = BACKUP_DIR,
                 clock: Callable[[], datetime] = _utcnow) -> None:
        self.strategy = strategy or strategy_for()
        self.backup_dir = Path(backup_dir)
        self.clock = clock
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def create(self) -> BackupRecord:
        name = backup_file_name(self.clock())
        target = self.backup_dir / name
        try:
            self.strategy.dump(target)
        except DumpFailedError:
            target.unlink(missing_ok=True)
            log.error("backup_failed file=%s", name)
            raise
        record = self._record(target)
        log.info("backup_created file=%s size=%s", name, record.size_bytes)
        return record

    def list(self) -> List[BackupRecord]:
        """Backups existentes, do mais novo para o mais antigo."""
        records = [self._record(p) for p in self.backup_dir.glob("*.sql") if p.is_file()]
        return sorted(records, key=lambda r: (r.created_at, r.file_name), reverse=True)

    def restore(self, file_name: str) -> BackupRecord:
        """
        Restaura o banco a partir de um backup (destrutivo).

        Raises:
            RestoreMissingFileError: nome não é um arquivo existente no diretório.
        """
        by_name: Dict[str, BackupRecord] = {r.file_name: r for r in self.list()}
        if not file_name or Path(file_name).name != file_name or file_name not in by_name:
            raise RestoreMissingFileError(f"Backup não encontrado: {file_name!r}")
        record = by_name[file_name]
        log.warning("backup_restore_started file=%s", file_name)
        self.strategy.restore(record.path)
        log.info("backup_restored file=%s", file_name)
        return record

    def prune(self, retention_days: float, now: Optional[datetime] = None) -> List[BackupRecord]:
        """Apaga backups mais velhos que a retenção (0 desliga); retorna os apagados."""
        now = now or self.clock()
        removed = []
        for record in self.list():
            if record.is_expired(now, retention_days):
                try:
                    record.path.unlink()
                except FileNotFoundError:
                    continue
                removed.append(record)
        if removed:
            log.info("backup_pruned count=%s retention_days=%s", len(removed), retention_days)
        return removed

    @staticmethod
    def _record(path: Path) -> BackupRecord:
        st = path.stat()
        return BackupRecord(
            file_name=path.name,
            created_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            size_bytes=st.st_size,
            path=path,
        )
