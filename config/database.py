# config do banco e do diretório de backups
import os
from pathlib import Path

# banco
DATABASE_PATH = Path(os.environ.get("FUELSYNC_DB", "data/fuelsync.db"))
DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{DATABASE_PATH}")

# backups
BACKUP_DIR = Path(os.environ.get("BACKUP_DIR", "data/backups"))

# credenciais do pg_dump (usadas só quando DATABASE_URL aponta para postgres)
PG_SETTINGS = {
    "host": os.environ.get("DB_HOST", "localhost"),
    "port": os.environ.get("DB_PORT", "5432"),
    "user": os.environ.get("DB_USER", "postgres"),
    "password": os.environ.get("DB_PASSWORD", ""),
    "database": os.environ.get("DB_NAME", "fuelsync"),
}

# vai criar um repositorio se nao existir
DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
