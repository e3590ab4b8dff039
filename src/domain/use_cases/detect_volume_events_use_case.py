# src/domain/use_cases/detect_volume_events_use_case.py
from __future__ import annotations
from dataclasses import dataclass, field
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from src.domain.entities.alert import Alert
from src.domain.entities.schedule_config import ScheduleConfig
from src.domain.entities.tank_reading import TankReading
from src.domain.entities.volume_events import AnomalyEvent, RefillEvent
from src.domain.repositories.alert_repository import IAlertSink
from src.domain.repositories.reading_repository import IVolumeEventRepository

log = logging.getLogger("fuelsync.usecases.detector")

@dataclass(frozen=True)
class DetectionResult:
    """
    DTO imutável retornado pelo detector.

    Atributos:
        anomalies: AnomalyEvents emitidos para a leitura (0 ou 1).
        refills: RefillEvents emitidos para a leitura (0 ou 1).
        accepted: False quando a leitura chegou fora de ordem e foi ignorada.
    """
    anomalies: List[AnomalyEvent] = field(default_factory=list)
    refills: List[RefillEvent] = field(default_factory=list)
    accepted: bool = True

class DetectVolumeEventsUseCase:
    """
    Avaliador contínuo de limiares sobre leituras sucessivas de cada tanque.

    Para cada (estação, tanque) guarda a última leitura aceita. Com uma nova
    leitura calcula `delta = anterior.volume - atual.volume`:

    - `delta >= anomaly_threshold` → AnomalyEvent;
    - `-delta >= refill_threshold` → RefillEvent.

    Leituras com `captured_at` não estritamente posterior ao da base são
    ignoradas (nem delta, nem troca de base). Com a detecção desligada a base
    continua sendo atualizada, mas nenhum evento é emitido.
    """

    def __init__(
        self,
        config_provider: Callable[[], ScheduleConfig],
        event_repo: Optional[IVolumeEventRepository] = None,
        alert_sink: Optional[IAlertSink] = None,
    ) -> None:
        """
        Args:
            config_provider: retorna o snapshot corrente de ScheduleConfig
                (limiares e liga/desliga lidos a cada leitura).
            event_repo: persistência dos eventos (opcional).
            alert_sink: destino dos alertas (opcional).
        """
        self.config_provider = config_provider
        self.event_repo = event_repo
        self.alert_sink = alert_sink
        self._baseline: Dict[Tuple, TankReading] = {}
        self._lock = threading.Lock()

    def execute(self, reading: TankReading) -> DetectionResult:
        cfg = self.config_provider()
        key = reading.tank_key

        # troca de base serializada: sessões diferentes podem chamar em paralelo
        with self._lock:
            prev = self._baseline.get(key)
            if prev is not None and reading.captured_at <= prev.captured_at:
                log.debug("reading_out_of_order tank=%s ts=%s base=%s",
                          reading.tank_id, reading.captured_at.isoformat(), prev.captured_at.isoformat())
                return DetectionResult(accepted=False)
            self._baseline[key] = reading

        if prev is None or not cfg.enable_anomaly_detection:
            return DetectionResult()

        delta = round(prev.volume - reading.volume, 3)
        common = dict(
            tank_id=reading.tank_id,
            window_start=prev.captured_at,
            window_end=reading.captured_at,
            volume_before=prev.volume,
            volume_after=reading.volume,
            station_id=reading.station_id,
            source_interface=reading.source_interface,
            temperature=reading.temperature,
        )

        if delta >= cfg.anomaly_threshold:
            event = AnomalyEvent(delta=delta, threshold=cfg.anomaly_threshold, **common)
            log.warning("anomaly_detected station=%s tank=%s delta=%.1f thr=%.1f",
                        reading.station_id, reading.tank_id, delta, cfg.anomaly_threshold)
            self._record(event, Alert.volume_anomaly(event))
            return DetectionResult(anomalies=[event])

        if -delta >= cfg.refill_threshold:
            event = RefillEvent(delta=-delta, threshold=cfg.refill_threshold, **common)
            log.info("refill_detected station=%s tank=%s added=%.1f thr=%.1f",
                     reading.station_id, reading.tank_id, -delta, cfg.refill_threshold)
            self._record(event, Alert.refill(event))
            return DetectionResult(refills=[event])

        return DetectionResult()

    def reset(self, station_id: Optional[int] = None) -> None:
        """Esquece as bases (todas ou de uma estação removida)."""
        with self._lock:
            if station_id is None:
                self._baseline.clear()
            else:
                for key in [k for k in self._baseline if k[0] == station_id]:
                    del self._baseline[key]

    # ---------- helpers ----------
    def _record(self, event, alert: Alert) -> None:
        if self.event_repo is not None:
            self.event_repo.add(event)
        if self.alert_sink is not None:
            self.alert_sink.save(alert)
