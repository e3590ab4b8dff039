import base64
from datetime import date, datetime, timezone
import xml.etree.ElementTree as ET

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
import pytest
import requests

from src.domain.entities.daily_report import DailyReport, TankDaySummary
from src.domain.enums import ReportStatus, SubmissionKind, SubmissionOutcome
from src.domain.errors import NetworkError, RejectedError, SubmissionTimeout
from src.domain.use_cases.submit_to_regulator_use_case import classify_response
from src.infrastructure.regulator.ewura_client import EwuraClient
from src.infrastructure.regulator.ewura_payloads import (
    XmlSigner,
    daily_summary_xml,
    minify_xml,
    registration_xml,
    wrap_signed,
)

from conftest import make_station

NOW = datetime(2025, 1, 17, 5, 0, tzinfo=timezone.utc)
SETTINGS = {
    "registration_url": "http://ewura.test/register",
    "report_url": "http://ewura.test/report",
    "api_source_id": "109_TEST",
    "certificate_path": "/nao/existe.pfx",
    "certificate_password": "",
    "simulation_mode": False,
    "request_timeout": 5.0,
}


def _report() -> DailyReport:
    return DailyReport(
        station_id=1, report_date=date(2025, 1, 16), transaction_count=333,
        total_amount=3989942.0, total_volume=1393.13, total_discount=250.0,
        status=ReportStatus.PROCESSED, id=12,
        tanks=(TankDaySummary("01", 5000.0, 4000.0, 27.0, 96, 600.0),),
    )


# ---------- payloads ----------

def test_registration_xml_overrides_by_tag():
    xml = registration_xml(make_station(1), "REG-1", "109_TEST", {"EWURALicenseNo": "PRL-9", "TranId": "X"})
    root = ET.fromstring(xml)
    assert root.tag == "RetailStationRegistration"
    assert root.findtext("TranId") == "REG-1"
    assert root.findtext("EWURALicenseNo") == "PRL-9"
    assert root.findtext("OperatorTin") == "123456789"

def test_daily_summary_xml_totals():
    root = ET.fromstring(daily_summary_xml(_report(), make_station(1), "109_TEST"))
    assert root.findtext("TranId") == "RPT-20250116"
    assert root.findtext("ReportId") == "12"
    assert root.findtext("CountOfTransactions") == "333"
    assert root.findtext("TotalAmount") == "3989942.00"
    assert root.findtext("TotalNetAmount") == "3989692.00"
    assert root.findtext("TotalVolume") == "1393.13"
    assert root.findtext("TotalNoTanks") == "1"
    tank = root.find("TankInventory/Tank")
    assert tank.findtext("ATGDeliveryVolume") == "600.00"
    assert tank.findtext("CalculatedEndVolume") == "5600.00"
    assert tank.findtext("VolumeDifference") == "1600.00"

def test_minify_removes_whitespace_between_tags():
    assert minify_xml("<a>\n  <b>1</b>\n</a>\n") == "<a><b>1</b></a>"

def test_signature_verifies_with_public_key():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    signer = XmlSigner(key)
    xml = "<a>\n <b>x</b>\n</a>"
    wrapped = wrap_signed(xml, signer)

    assert wrapped.startswith('<?xml version="1.0" encoding="UTF-8"?><NPGIS><a><b>x</b></a><VendorSignature>')
    sig = wrapped.split("<VendorSignature>")[1].split("</VendorSignature>")[0]
    key.public_key().verify(base64.b64decode(sig), b"<a><b>x</b></a>", padding.PKCS1v15(), hashes.SHA1())

def test_unsigned_wrap_has_empty_signature():
    assert wrap_signed("<a/>", None).endswith("<a/><VendorSignature></VendorSignature></NPGIS>")


# ---------- cliente ----------

class FakeHttp:
    def __init__(self, result):
        self.result = result
        self.calls = []
    def post(self, url, data, headers, timeout):
        self.calls.append((url, data, headers, timeout))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result

class FakeResp:
    def __init__(self, status, text):
        self.status_code, self.text = status, text

def _client(result, **overrides):
    key = rsa.generate_private_key(public_exponent=65537, key_size=1024)
    return EwuraClient({**SETTINGS, **overrides}, signer=XmlSigner(key), http=FakeHttp(result), clock=lambda: NOW)

def test_missing_certificate_falls_back_to_simulation():
    client = EwuraClient(SETTINGS, http=FakeHttp(AssertionError("não deveria enviar")), clock=lambda: NOW)
    assert client.simulation_mode
    body = client.send(SubmissionKind.DAILY_REPORT, "<x/>")
    assert "(SIMULATION)" in body
    assert classify_response(body) is SubmissionOutcome.PENDING

def test_send_posts_to_kind_url():
    client = _client(FakeResp(200, "<Status>SUCCESS</Status>"))
    assert client.send(SubmissionKind.REGISTRATION, "<x/>") == "<Status>SUCCESS</Status>"
    url, data, headers, timeout = client.http.calls[0]
    assert url == "http://ewura.test/register"
    assert data == b"<x/>"
    assert headers["Content-Type"] == "application/xml"
    assert timeout == 5.0

@pytest.mark.parametrize("result, error", [
    (FakeResp(503, "down"), NetworkError),
    (FakeResp(400, "bad xml"), RejectedError),
    (requests.Timeout("slow"), SubmissionTimeout),
    (requests.ConnectionError("refused"), NetworkError),
])
def test_send_maps_errors(result, error):
    with pytest.raises(error):
        _client(result).send(SubmissionKind.DAILY_REPORT, "<x/>")

def test_built_payload_is_signed_envelope():
    client = _client(FakeResp(200, ""))
    payload = client.build_daily_summary(_report(), make_station(1))
    assert payload.startswith('<?xml version="1.0" encoding="UTF-8"?><NPGIS><StationDaySummaryReport>')
    assert "<VendorSignature></VendorSignature>" not in payload
