# configurações globais
# valores padrão; o snapshot em uso fica no ConfigStore (recarregável em runtime)
import os

DEFAULT_TIMEZONE = "Africa/Dar_es_Salaam"

# intervalo de polling (segundos) por família de interface
POLL_INTERVALS = {
    "NPGIS": 5.0,
    "NFPP": 10.0,
    "SIM": 5.0,
}

# timeouts de poll consecutivos antes de derrubar a sessão
MAX_CONSECUTIVE_TIMEOUTS = 3
CONNECTION_TIMEOUT = 5.0

# reconexão após falha de connect
CONNECT_MAX_ATTEMPTS = 5
CONNECT_BACKOFF_BASE = 2.0
CONNECT_BACKOFF_MAX = 60.0

# buffer por assinante do hub (descarta o mais antigo quando cheio)
BROADCAST_BUFFER_SIZE = 100

#thresholds e horários usados pelo agendador e detector

SCHEDULE_DEFAULTS = {
    "generation_time": "07:30",
    "submission_time": "08:00",
    "timezone": DEFAULT_TIMEZONE,
    "auto_generate": True,
    "auto_submit": True,
    "enable_anomaly_detection": True,
    "anomaly_threshold": 100.0,   # litros
    "refill_threshold": 500.0,    # litros
    "max_consecutive_timeouts": MAX_CONSECUTIVE_TIMEOUTS,
}

BACKUP_DEFAULTS = {
    "enabled": True,
    "time_hhmm": "02:00",
    "timezone": DEFAULT_TIMEZONE,
    "retention_days": 30,
}

# relatórios PROCESSED ainda não enviados dentro desta janela são reenviados
SUBMISSION_LOOKBACK_DAYS = 7

SUBMISSION_RETRY = {
    "max_attempts": 3,
    "backoff_base": 2.0,   # segundos; 2, 4, 8...
}

_EWURA_BASE_URL = os.environ.get("EWURA_BASE_URL", "http://196.41.86.25:8081")

EWURA_SETTINGS = {
    "registration_url": f"{_EWURA_BASE_URL}/api/v1/RegisterRetailStationRecords",
    "report_url": f"{_EWURA_BASE_URL}/api/v1/PostDailyStationInvSumTran",
    "api_source_id": os.environ.get("EWURA_API_SOURCE_ID", "109_FUELSYNC"),
    "certificate_path": os.environ.get("EWURA_CERT_PATH", "certs/advafuel.pfx"),
    "certificate_password": os.environ.get("EWURA_P12PASSWORD", ""),
    "simulation_mode": os.environ.get("EWURA_SIMULATION_MODE", "false").lower() == "true",
    "request_timeout": 30.0,
}

# controlador PTS (NFPP)
PTS_SETTINGS = {
    "request_timeout": 12.0,
    "max_retries": 1,
    "retry_wait_max": 8.0,
    "paths": ["/jsonPTS", "/json/PTS", "/json/pts", "/json", "/PTS", "/pts"],
}

# console ATG (NPGIS / TLS)
ATG_SETTINGS = {
    "port": 10001,
}
