# exportação do DailyReport (json / csv)
from __future__ import annotations

import json

import pandas as pd

from src.domain.entities.daily_report import DailyReport

EXPORT_FORMATS = ("json", "csv")

_SUMMARY_COLUMNS = [
    "id", "station_id", "report_date", "report_no", "status", "transaction_count",
    "total_amount", "total_discount", "net_amount", "total_volume",
    "anomaly_count", "refill_count", "submission_outcome", "submission_attempts",
]


def export_report(report: DailyReport, fmt: str = "json") -> str:
    """
    Serializa os totais estruturados do relatório.

    - json: o dicionário completo (`DailyReport.to_dict`).
    - csv: linha de resumo, linhas de volume por produto e o inventário por tanque,
      em blocos separados por linha em branco.
    """
    fmt = fmt.lower()
    data = report.to_dict()
    if fmt == "json":
        return json.dumps(data, ensure_ascii=False, indent=2)
    if fmt != "csv":
        raise ValueError(f"Formato não suportado: {fmt!r} (use {', '.join(EXPORT_FORMATS)})")

    blocks = [pd.DataFrame([data], columns=_SUMMARY_COLUMNS).to_csv(index=False)]
    if data["volume_by_grade"]:
        grades = pd.DataFrame(
            sorted(data["volume_by_grade"].items()), columns=["fuel_grade", "volume"]
        )
        blocks.append(grades.to_csv(index=False))
    if data["tanks"]:
        blocks.append(pd.DataFrame(data["tanks"]).to_csv(index=False))
    return "\n".join(blocks)
