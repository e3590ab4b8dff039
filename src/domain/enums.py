from enum import Enum, auto

class InterfaceFamily(Enum):
    """Família de protocolo de uma interface de hardware."""
    NPGIS = auto()      # Console ATG (TLS i201)
    NFPP = auto()       # Controlador de pista PTS (jsonPTS)
    SIM = auto()        # Simulador (sem hardware)

class SessionState(Enum):
    """Estado de uma sessão de monitoramento (estação, interface)."""
    DISCONNECTED = auto()  # Sem handle aberto
    CONNECTING = auto()    # connect em andamento
    CONNECTED = auto()     # Handle aberto, loop ainda não iniciado
    MONITORING = auto()    # Loop de polling ativo

class ReportStatus(Enum):
    """Estado de um relatório diário."""
    PENDING = auto()    # Criado, agregação em andamento
    PROCESSED = auto()  # Totais calculados
    FAILED = auto()     # Falha de agregação ou de envio esgotado

class SubmissionOutcome(Enum):
    """Resultado de uma tentativa de envio ao regulador."""
    PENDING = auto()    # Reconhecimento de sandbox/simulação
    SUCCESS = auto()    # Aceito pelo regulador
    FAILED = auto()     # Rejeitado ou erro de rede

class SubmissionKind(Enum):
    """Tipo de payload enviado ao regulador."""
    REGISTRATION = auto()   # Registro do dispositivo/estação
    DAILY_REPORT = auto()   # Resumo diário

class Severity(Enum):
    """Nível de severidade para condições/alertas."""
    NORMAL = auto()    # Dentro da faixa esperada
    WARNING = auto()   # Atenção: fora do ideal
    CRITICAL = auto()  # Crítico: ação imediata necessária

class AlertType(Enum):
    """Categoria/origem do alerta."""
    VOLUME_ANOMALY = auto()     # Queda de volume acima do limiar
    REFILL = auto()             # Aumento de volume (descarga)
    INTERFACE_DOWN = auto()     # Sessão derrubada (timeouts/protocolo)
    SUBMISSION_FAILED = auto()  # Envio ao regulador esgotou tentativas
