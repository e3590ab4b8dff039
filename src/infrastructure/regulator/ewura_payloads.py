"""
Payloads XML do regulador (EWURA).

- `registration_xml`: <RetailStationRegistration>
- `daily_summary_xml`: <StationDaySummaryReport> com <TankInventory>

O XML é minificado, assinado (RSA-SHA1 com a chave do PKCS#12 do fornecedor)
e embrulhado em `<NPGIS>{xml}<VendorSignature>{assinatura b64}</VendorSignature></NPGIS>`.
"""

from __future__ import annotations

import base64
from pathlib import Path
import re
from typing import Any, Mapping, Optional
import xml.etree.ElementTree as ET

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.serialization import pkcs12

from src.domain.entities.daily_report import DailyReport
from src.domain.entities.station import Station

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
SIGNATURE_TAG = "VendorSignature"

_BETWEEN_TAGS = re.compile(r">\s+<")


def minify_xml(xml: str) -> str:
    return _BETWEEN_TAGS.sub("><", xml).strip()


def _money(value: float) -> str:
    return f"{value:.2f}"


def _sub(parent: ET.Element, tag: str, value: Any) -> ET.Element:
    el = ET.SubElement(parent, tag)
    el.text = "" if value is None else str(value)
    return el


def registration_xml(station: Station, transaction_id: str, api_source_id: str,
                     license_payload: Optional[Mapping[str, Any]] = None) -> str:
    """
    XML de registro da estação.

    Args:
        station: Dados mestres da estação.
        transaction_id: TranId do registro.
        api_source_id: Identificador do fornecedor junto ao regulador.
        license_payload: Sobrescritas por nome de tag (ex.: {"EWURALicenseNo": "..."}).
    """
    fields = {
        "TranId": transaction_id,
        "APISourceId": api_source_id,
        "RetailStationName": station.name,
        "EWURALicenseNo": station.ewura_license_no,
        "OperatorTin": station.operator_tin,
        "OperatorVrn": station.operator_vrn,
        "OperatorName": station.operator_name,
        "LicenseeTraSerialNo": station.tra_serial_no,
        "RegionName": station.region,
        "DistrictName": station.district,
        "WardName": station.ward,
        "Zone": station.zone,
        "ContactPersonEmailAddress": station.contact_email,
        "ContactPersonPhone": station.contact_phone,
    }
    for tag, value in dict(license_payload or {}).items():
        if tag in fields and tag != "TranId":
            fields[tag] = value

    root = ET.Element("RetailStationRegistration")
    for tag, value in fields.items():
        _sub(root, tag, value)
    return ET.tostring(root, encoding="unicode")


def daily_summary_xml(report: DailyReport, station: Station, api_source_id: str) -> str:
    """XML do resumo diário (totais + inventário por tanque)."""
    day = report.report_date.isoformat()
    root = ET.Element("StationDaySummaryReport")
    _sub(root, "TranId", f"RPT-{report.report_no}")
    _sub(root, "APISourceId", api_source_id)
    _sub(root, "EWURALicenseNo", station.ewura_license_no)
    _sub(root, "RetailStationName", station.name)
    _sub(root, "SerialNo", station.tra_serial_no)
    _sub(root, "ReportId", report.id)
    _sub(root, "ReportNo", report.report_no)
    _sub(root, "StartDate", day)
    _sub(root, "EndDate", day)
    _sub(root, "CountOfTransactions", report.transaction_count)
    _sub(root, "TotalNetAmount", _money(report.net_amount))
    _sub(root, "TotalDiscount", _money(report.total_discount))
    _sub(root, "TotalAmount", _money(report.total_amount))
    _sub(root, "TotalVolume", _money(report.total_volume))
    _sub(root, "TotalNoTanks", len(report.tanks))
    _sub(root, "RegionName", station.region)
    _sub(root, "DistrictName", station.district)
    _sub(root, "WardName", station.ward)

    inventory = ET.SubElement(root, "TankInventory")
    for tank in report.tanks:
        el = ET.SubElement(inventory, "Tank")
        _sub(el, "TankID", tank.tank_id)
        _sub(el, "StartVolume", _money(tank.start_volume))
        _sub(el, "ATGDeliveryVolume", _money(tank.delivered_volume))
        _sub(el, "MeasuredEndVolume", _money(tank.end_volume))
        _sub(el, "CalculatedEndVolume", _money(tank.start_volume + tank.delivered_volume))
        _sub(el, "VolumeDifference", _money(tank.volume_difference))
    return ET.tostring(root, encoding="unicode")


class XmlSigner:
    """Assina XML minificado com RSA PKCS#1 v1.5 + SHA1 (base64)."""

    def __init__(self, private_key) -> None:
        self.private_key = private_key

    @classmethod
    def from_pkcs12(cls, path, password: str) -> "XmlSigner":
        data = Path(path).read_bytes()
        key, _cert, _extra = pkcs12.load_key_and_certificates(data, password.encode("utf-8") if password else None)
        if key is None:
            raise ValueError(f"PKCS#12 sem chave privada: {path}")
        return cls(key)

    def sign(self, xml: str) -> str:
        signature = self.private_key.sign(xml.encode("utf-8"), padding.PKCS1v15(), hashes.SHA1())
        return base64.b64encode(signature).decode("ascii")


def wrap_signed(xml: str, signer: Optional[XmlSigner]) -> str:
    """Minifica, assina (se houver signer) e embrulha no envelope NPGIS."""
    cleaned = minify_xml(xml)
    signature = signer.sign(cleaned) if signer is not None else ""
    return f"{XML_DECLARATION}<NPGIS>{cleaned}<{SIGNATURE_TAG}>{signature}</{SIGNATURE_TAG}></NPGIS>"
