# run.py: CLI do núcleo de telemetria
# =============================================================================
# serve      : agendadores + monitoramento de todas as estações ativas
# status     : estado das sessões (estação/interface)
# deactivate : STATION (encerra sessões e esquece as bases do detector)
# report     : generate STATION DATE | export ID --format json|csv
# submit     : report ID
# register   : STATION TRANID [LICENSE_JSON] [--force]
# history    : envios ao regulador
# backup     : create | list | restore FILE
# settings   : get | set KEY=VALUE ...
# =============================================================================

from __future__ import annotations

import argparse
from datetime import date
import json
import logging
import os
import sys
from typing import Any, Dict, List

from src.bootstrap import FuelSyncApp
from src.domain.entities.submission import SubmissionFilter
from src.domain.enums import SubmissionKind
from src.domain.errors import FuelSyncError

log = logging.getLogger("fuelsync.cli")


def _print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _parse_assignments(pairs: List[str]) -> Dict[str, Any]:
    """`a=1 backup.time_hhmm=02:30` → {"a": 1, "backup": {"time_hhmm": "02:30"}}."""
    changes: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Esperado KEY=VALUE, recebido {pair!r}")
        key, raw = pair.split("=", 1)
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            value = raw
        target = changes
        *parents, leaf = key.strip().split(".")
        for p in parents:
            target = target.setdefault(p, {})
        target[leaf] = value
    return changes


def cmd_serve(app: FuelSyncApp, args) -> int:
    statuses = app.start()
    print(f"Monitorando {len(statuses)} interface(s) | Ctrl+C para sair")
    sub = app.subscribe()
    try:
        while True:
            reading = sub.get(timeout=1.0)
            if reading is not None and args.verbose:
                print(f"[{reading.captured_at.isoformat(timespec='seconds')}] station={reading.station_id} "
                      f"tank={reading.tank_id} vol={reading.volume:.1f}L T={reading.temperature:.1f}°C")
    except KeyboardInterrupt:
        print("\nEncerrado pelo usuário.")
    finally:
        app.hub.unsubscribe(sub)
        app.shutdown()
    return 0


def cmd_status(app: FuelSyncApp, args) -> int:
    _print_json([s.to_dict() for s in app.status(args.station, args.interface)])
    return 0


def cmd_deactivate(app: FuelSyncApp, args) -> int:
    app.deactivate_station(args.station)
    _print_json([s.to_dict() for s in app.status(args.station)])
    return 0


def cmd_report(app: FuelSyncApp, args) -> int:
    if args.report_cmd == "generate":
        report = app.generate_report(args.station, date.fromisoformat(args.date))
        _print_json(report.to_dict())
        return 0 if report.error is None else 1
    print(app.export_report(args.report_id, args.format))
    return 0


def cmd_submit(app: FuelSyncApp, args) -> int:
    result = app.submit_report(args.report_id)
    _print_json({
        "outcome": result.outcome.name if result.outcome else None,
        "skipped": result.skipped,
        "attempts": [a.to_dict() for a in result.attempts],
    })
    return 0 if result.outcome is not None and result.outcome.name != "FAILED" else 1


def cmd_register(app: FuelSyncApp, args) -> int:
    payload = json.loads(args.license_json) if args.license_json else None
    result = app.register_device(args.station, args.tran_id, payload, force=args.force)
    _print_json({
        "outcome": result.outcome.name if result.outcome else None,
        "skipped": result.skipped,
        "attempts": [a.to_dict() for a in result.attempts],
    })
    return 0 if result.outcome is not None and result.outcome.name != "FAILED" else 1


def cmd_history(app: FuelSyncApp, args) -> int:
    flt = SubmissionFilter(
        station_id=args.station,
        kind=SubmissionKind[args.kind] if args.kind else None,
        start_date=date.fromisoformat(args.since) if args.since else None,
        limit=args.limit,
    )
    _print_json([s.to_dict() for s in app.history(flt)])
    return 0


def cmd_backup(app: FuelSyncApp, args) -> int:
    if args.backup_cmd == "create":
        _print_json(app.create_backup().to_dict())
    elif args.backup_cmd == "list":
        _print_json([r.to_dict() for r in app.list_backups()])
    else:
        _print_json(app.restore_backup(args.file).to_dict())
    return 0


def cmd_settings(app: FuelSyncApp, args) -> int:
    if args.settings_cmd == "get":
        _print_json(app.get_settings())
    else:
        _print_json(app.set_settings(_parse_assignments(args.pairs)))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FuelSync: telemetria de tanques e relatórios EWURA")
    parser.add_argument("--log-level", default=os.environ.get("FUELSYNC_LOG_LEVEL", "INFO"),
                        help="DEBUG, INFO, WARNING... (default: $FUELSYNC_LOG_LEVEL ou INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="Roda agendadores e monitoramento até Ctrl+C")
    p.add_argument("-v", "--verbose", action="store_true", help="Imprime cada leitura recebida")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("status", help="Estado das sessões de monitoramento")
    p.add_argument("--station", type=int)
    p.add_argument("--interface")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("deactivate", help="Desativa a estação e encerra suas sessões")
    p.add_argument("station", type=int)
    p.set_defaults(func=cmd_deactivate)

    p = sub.add_parser("report", help="Relatórios diários")
    rs = p.add_subparsers(dest="report_cmd", required=True)
    g = rs.add_parser("generate")
    g.add_argument("station", type=int)
    g.add_argument("date", help="YYYY-MM-DD")
    e = rs.add_parser("export")
    e.add_argument("report_id", type=int)
    e.add_argument("--format", default="json", choices=("json", "csv"))
    p.set_defaults(func=cmd_report)

    p = sub.add_parser("submit", help="Envio de relatório ao regulador")
    ss = p.add_subparsers(dest="submit_cmd", required=True)
    r = ss.add_parser("report")
    r.add_argument("report_id", type=int)
    p.set_defaults(func=cmd_submit)

    p = sub.add_parser("register", help="Registro da estação no regulador")
    p.add_argument("station", type=int)
    p.add_argument("tran_id")
    p.add_argument("license_json", nargs="?", help='Sobrescritas por tag, ex.: \'{"EWURALicenseNo": "PRL-1"}\'')
    p.add_argument("--force", action="store_true", help="Reenvia mesmo com registro já aceito")
    p.set_defaults(func=cmd_register)

    p = sub.add_parser("history", help="Histórico de envios")
    p.add_argument("--station", type=int)
    p.add_argument("--kind", choices=[k.name for k in SubmissionKind])
    p.add_argument("--since", help="YYYY-MM-DD")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("backup", help="Backup do banco")
    bs = p.add_subparsers(dest="backup_cmd", required=True)
    bs.add_parser("create")
    bs.add_parser("list")
    b = bs.add_parser("restore")
    b.add_argument("file", help="Nome exato do arquivo (veja `backup list`)")
    p.set_defaults(func=cmd_backup)

    p = sub.add_parser("settings", help="Configuração operacional")
    st = p.add_subparsers(dest="settings_cmd", required=True)
    st.add_parser("get")
    s = st.add_parser("set")
    s.add_argument("pairs", nargs="+", help="KEY=VALUE (ex.: anomaly_threshold=120 backup.time_hhmm=03:00)")
    p.set_defaults(func=cmd_settings)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    app = FuelSyncApp()
    try:
        return args.func(app, args)
    except (FuelSyncError, LookupError, ValueError) as e:
        log.error("command_failed command=%s reason=%s", args.command, e)
        print(f"Erro: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
