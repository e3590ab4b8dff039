"""
Cliente HTTP do regulador (implementa IRegulatorGateway).

Modo simulação: ligado por configuração ou automaticamente quando o
certificado PKCS#12 ou sua senha não estão disponíveis. Nesse modo nada sai
da máquina e a resposta é um aceite enlatado marcado como `(SIMULATION)`.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import requests

from config.settings import EWURA_SETTINGS
from src.domain.entities.daily_report import DailyReport
from src.domain.entities.station import Station
from src.domain.enums import SubmissionKind
from src.domain.errors import NetworkError, RejectedError, SubmissionTimeout
from src.infrastructure.regulator.ewura_payloads import (
    XmlSigner,
    daily_summary_xml,
    registration_xml,
    wrap_signed,
)

log = logging.getLogger("fuelsync.regulator.ewura")

HEADERS = {
    "Content-Type": "application/xml",
    "Accept": "application/xml, text/xml, */*",
    "User-Agent": "FuelSync/1.0",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def simulated_response(kind: SubmissionKind, now: datetime) -> str:
    label = "Registration" if kind is SubmissionKind.REGISTRATION else "Daily summary"
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        "<NPGISResponse>"
        "<Status>SUCCESS</Status>"
        f"<Message>{label} received successfully (SIMULATION)</Message>"
        f"<TransactionId>SIM-{int(now.timestamp() * 1000)}</TransactionId>"
        f"<Timestamp>{now.isoformat()}</Timestamp>"
        "</NPGISResponse>"
    )


class EwuraClient:
    """Monta, assina e entrega os payloads do regulador."""

    def __init__(
        self,
        settings: Mapping[str, Any] = EWURA_SETTINGS,
        signer: Optional[XmlSigner] = None,
        http: Any = requests,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = dict(settings)
        self.http = http
        self.clock = clock
        self.signer = signer
        self.simulation_mode = bool(self.settings.get("simulation_mode"))
        if self.signer is None and not self.simulation_mode:
            self.signer = self._load_signer()
        log.info("ewura_client_ready mode=%s", "SIMULATION" if self.simulation_mode else "PRODUCTION")

    def _load_signer(self) -> Optional[XmlSigner]:
        path = Path(self.settings.get("certificate_path") or "")
        password = self.settings.get("certificate_password") or ""
        if not password or not path.is_file():
            log.warning("ewura_simulation_fallback cert=%s cert_exists=%s password_set=%s",
                        path, path.is_file(), bool(password))
            self.simulation_mode = True
            return None
        return XmlSigner.from_pkcs12(path, password)

    # ---------- IRegulatorGateway ----------
    def build_registration(self, station: Station, transaction_id: str,
                           license_payload: Optional[Mapping[str, Any]] = None) -> str:
        xml = registration_xml(station, transaction_id, self.settings["api_source_id"], license_payload)
        return wrap_signed(xml, self.signer)

    def build_daily_summary(self, report: DailyReport, station: Station) -> str:
        return wrap_signed(daily_summary_xml(report, station, self.settings["api_source_id"]), self.signer)

    def send(self, kind: SubmissionKind, payload: str) -> str:
        url = self._url(kind)
        if self.simulation_mode:
            log.info("ewura_simulated kind=%s url=%s bytes=%s", kind.name, url, len(payload))
            return simulated_response(kind, self.clock())

        timeout = float(self.settings.get("request_timeout", 30.0))
        try:
            resp = self.http.post(url, data=payload.encode("utf-8"), headers=HEADERS, timeout=timeout)
        except requests.Timeout as e:
            raise SubmissionTimeout(f"{kind.name}: sem resposta em {timeout:.0f}s") from e
        except requests.RequestException as e:
            raise NetworkError(f"{kind.name}: {e}") from e

        log.info("ewura_response kind=%s status=%s bytes=%s", kind.name, resp.status_code, len(resp.text or ""))
        if resp.status_code >= 500:
            raise NetworkError(f"{kind.name}: HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise RejectedError(f"{kind.name}: HTTP {resp.status_code} {resp.text[:200]}")
        return resp.text

    def _url(self, kind: SubmissionKind) -> str:
        if kind is SubmissionKind.REGISTRATION:
            return self.settings["registration_url"]
        return self.settings["report_url"]
