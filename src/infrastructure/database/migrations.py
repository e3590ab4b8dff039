# estrutura do banco
import logging
import sqlite3

from config.database import DATABASE_PATH

log = logging.getLogger("fuelsync.database.migrations")


def migration_001():
    """Cria a tabela 'stations' (dados mestres mínimos para o regulador)."""
    return """
    CREATE TABLE stations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        code TEXT DEFAULT '',
        ewura_license_no TEXT DEFAULT '',
        operator_tin TEXT DEFAULT '',
        operator_vrn TEXT DEFAULT '',
        operator_name TEXT DEFAULT '',
        tra_serial_no TEXT DEFAULT '',
        region TEXT DEFAULT '',
        district TEXT DEFAULT '',
        ward TEXT DEFAULT '',
        zone TEXT DEFAULT '',
        contact_email TEXT DEFAULT '',
        contact_phone TEXT DEFAULT '',
        active BOOLEAN DEFAULT 1,
        created_at DATETIME DEFAULT (datetime('now'))
    );
    """

def migration_002():
    """Cria a tabela 'station_interfaces' (uma linha por estação + código)."""
    return """
    CREATE TABLE station_interfaces (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        station_id INTEGER NOT NULL,
        code TEXT NOT NULL,
        connection_json TEXT DEFAULT '{}',
        connection_timeout REAL DEFAULT 5.0,
        active BOOLEAN DEFAULT 1,
        UNIQUE (station_id, code),
        FOREIGN KEY (station_id) REFERENCES stations(id)
    );
    """

def migration_003():
    """Cria a tabela 'tank_readings' (leituras normalizadas)."""
    return """
    CREATE TABLE tank_readings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        station_id INTEGER,
        tank_id TEXT NOT NULL,
        captured_at TEXT NOT NULL,
        volume REAL NOT NULL,
        water_level REAL NOT NULL,
        temperature REAL NOT NULL,
        pressure REAL,
        total_volume REAL DEFAULT 0,
        water_volume REAL DEFAULT 0,
        tc_volume REAL DEFAULT 0,
        ullage REAL DEFAULT 0,
        product_height REAL DEFAULT 0,
        source_interface TEXT NOT NULL,
        created_at DATETIME DEFAULT (datetime('now'))
    );
    """

def migration_004():
    """Cria a tabela 'volume_events' (anomalias e descargas)."""
    return """
    CREATE TABLE volume_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        station_id INTEGER,
        tank_id TEXT NOT NULL,
        kind TEXT NOT NULL,
        delta REAL NOT NULL,
        threshold REAL NOT NULL,
        volume_before REAL NOT NULL,
        volume_after REAL NOT NULL,
        window_start TEXT NOT NULL,
        window_end TEXT NOT NULL,
        source_interface TEXT DEFAULT '',
        temperature REAL
    );
    """

def migration_005():
    """Cria a tabela 'sales_transactions' (vendas da pista)."""
    return """
    CREATE TABLE sales_transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        station_id INTEGER NOT NULL,
        transaction_id TEXT NOT NULL,
        transaction_date TEXT NOT NULL,
        transaction_time TEXT,
        volume REAL NOT NULL,
        total_amount REAL NOT NULL,
        discount_amount REAL DEFAULT 0,
        unit_price REAL DEFAULT 0,
        fuel_grade_name TEXT,
        interface_source TEXT,
        UNIQUE (station_id, transaction_id)
    );
    """

def migration_006():
    """Cria a tabela 'daily_reports' (um relatório por estação + data)."""
    return """
    CREATE TABLE daily_reports (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        station_id INTEGER NOT NULL,
        report_date TEXT NOT NULL,
        status TEXT NOT NULL,
        transaction_count INTEGER DEFAULT 0,
        total_amount REAL DEFAULT 0,
        total_discount REAL DEFAULT 0,
        total_volume REAL DEFAULT 0,
        volume_by_grade_json TEXT DEFAULT '{}',
        tanks_json TEXT DEFAULT '[]',
        anomaly_count INTEGER DEFAULT 0,
        refill_count INTEGER DEFAULT 0,
        error TEXT,
        submission_outcome TEXT,
        submission_attempts INTEGER DEFAULT 0,
        submitted_at TEXT,
        generated_at TEXT,
        UNIQUE (station_id, report_date)
    );
    """

def migration_007():
    """Cria a tabela 'ewura_submissions' (histórico de envios, só inserção)."""
    return """
    CREATE TABLE ewura_submissions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        kind TEXT NOT NULL,
        station_id INTEGER NOT NULL,
        transaction_id TEXT NOT NULL,
        payload_hash TEXT NOT NULL,
        submitted_at TEXT NOT NULL,
        outcome TEXT NOT NULL,
        attempt INTEGER DEFAULT 1,
        report_id INTEGER,
        report_date TEXT,
        response_body TEXT,
        error TEXT
    );
    """

def migration_008():
    """Cria a tabela 'alerts' com severidade, contexto e marcação de resolução."""
    return """
    CREATE TABLE alerts (
        id TEXT PRIMARY KEY,
        station_id INTEGER,
        tank_id TEXT,
        alert_type TEXT NOT NULL,
        severity TEXT NOT NULL,
        message TEXT NOT NULL,
        metadata_json TEXT,
        created_at TEXT NOT NULL,
        resolved_at TEXT
    );
    """

def migration_009():
    """Cria a tabela 'system_settings' (chave/valor JSON)."""
    return """
    CREATE TABLE system_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at DATETIME DEFAULT (datetime('now'))
    );
    """

def migration_010():
    """Cria índice composto para leituras por (station_id, captured_at)."""
    return """
    CREATE INDEX idx_tank_readings_station_time ON tank_readings(station_id, captured_at);
    """

def migration_011():
    """Cria índice para o histórico de envios por (station_id, submitted_at)."""
    return """
    CREATE INDEX idx_ewura_submissions_station_time ON ewura_submissions(station_id, submitted_at);
    """

def migration_012():
    """Insere a estação de demonstração (seed)."""
    return """
    INSERT INTO stations (name, code, region, district) VALUES
    ('Estação Demo', 'DEMO-01', 'Dar es Salaam', 'Kinondoni');
    """

def migration_013():
    """Liga a interface simulada à estação de demonstração (seed)."""
    return """
    INSERT INTO station_interfaces (station_id, code, connection_json) VALUES
    (1, 'SIM', '{"seed": 42, "tanks": ["01", "02", "03"]}');
    """


AVAILABLE_MIGRATIONS = {
    '001': migration_001,
    '002': migration_002,
    '003': migration_003,
    '004': migration_004,
    '005': migration_005,
    '006': migration_006,
    '007': migration_007,
    '008': migration_008,
    '009': migration_009,
    '010': migration_010,
    '011': migration_011,
    '012': migration_012,
    '013': migration_013,
}


# tabela para controlar migrations executadas
def create_migrations_table(db_path=DATABASE_PATH):
    """Garante a existência da tabela de controle 'migrations'."""
    with sqlite3.connect(db_path) as connec:
        connec.execute("""
            CREATE TABLE IF NOT EXISTS migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                version TEXT UNIQUE NOT NULL,
                executed_at DATETIME DEFAULT (datetime('now'))
            );
        """)
        connec.commit()


def get_executed_migrations(db_path=DATABASE_PATH):
    """
    Retorna a lista das migrations já executadas (strings de versão).

    Observação:
        Se a tabela 'migrations' ainda não existir, retorna lista vazia.
    """
    try:
        with sqlite3.connect(db_path) as connec:
            rows = connec.execute("SELECT version FROM migrations ORDER BY version").fetchall()
            return [row[0] for row in rows]
    except sqlite3.OperationalError:
        return []


def run_migrations(db_path=DATABASE_PATH, seed=True):
    """
    Executa as migrations pendentes, na ordem de AVAILABLE_MIGRATIONS.

    Args:
        db_path: arquivo do banco.
        seed: se False, as migrations de dados iniciais (012+) são marcadas
            como executadas sem inserir nada (usado em testes).
    """
    create_migrations_table(db_path)
    executed = get_executed_migrations(db_path)

    for version, migration_func in AVAILABLE_MIGRATIONS.items():
        if version in executed:
            continue
        if not seed and version >= '012':
            execute_migration(lambda: "SELECT 1;", version, db_path)
            continue
        log.info("migration_run version=%s", version)
        execute_migration(migration_func, version, db_path)
    log.debug("migrations_done db=%s", db_path)


def execute_migration(migration_func, version, db_path=DATABASE_PATH):
    """
    Executa uma migration específica e registra a versão na tabela 'migrations'.

    Args:
        migration_func: função que retorna o SQL (DDL/DML) da migration.
        version: string de versão (ex.: '001', '002').
        db_path: arquivo do banco.
    """
    try:
        with sqlite3.connect(db_path) as connec:
            connec.execute(migration_func())
            connec.execute("INSERT INTO migrations (version) VALUES (?)", (version,))
            connec.commit()
    except sqlite3.Error:
        log.exception("migration_failed version=%s", version)
        raise
