"""CLI entrypoints for xprobe display reports, diagnostics, and transcript replay."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from xprobe_core import DiagnosticsExporter, ProbeSession, build_doctor_payload, load_config
from xprobe_core.logging_setup import configure_logging, install_crash_hooks
from xprobe_display import DisplayTransport, ReplayRunner, XProbeError
from xprobe_renderer import ProbeReport, extension_line, render_json, render_text, report_to_dict

logger = logging.getLogger("xprobe")


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _print_errors(report: ProbeReport) -> None:
    for message in report.errors:
        print(f"ERROR: {message}", file=sys.stderr)


def _run_session(args: argparse.Namespace, query_extensions: bool = True) -> ProbeReport:
    session = ProbeSession(args.config)
    return session.run(
        display_name=args.display,
        auth_path=args.auth_file,
        anonymous=args.anonymous,
        query_extensions=query_extensions,
    )


def cmd_info(args: argparse.Namespace) -> int:
    report = _run_session(args, query_extensions=not args.no_extensions)
    if args.json or args.config.output.format == "json":
        print(render_json(report))
    else:
        sys.stdout.write(render_text(report))
    _print_errors(report)
    return 0


def cmd_extensions(args: argparse.Namespace) -> int:
    report = _run_session(args)
    if args.json:
        _print_json(report_to_dict(report)["extensions"])
    else:
        print(f"Supported extensions: {len(report.extensions)}")
        for record in report.extensions:
            print(extension_line(record))
    _print_errors(report)
    return 0


def cmd_list_displays(_args: argparse.Namespace) -> int:
    _print_json([asdict(d) for d in DisplayTransport.discover()])
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = args.config
    payload = build_doctor_payload(cfg)
    events: list[dict] = []

    if args.probe:
        session = ProbeSession(cfg)
        try:
            report = session.run(query_extensions=False)
            payload["probe"] = {"vendor": report.setup.vendor_name, "errors": report.errors}
        except XProbeError as exc:
            payload["probe"] = {"error": str(exc), "error_type": type(exc).__name__}
        events = session.recent_events()

    if args.export:
        exporter = DiagnosticsExporter()
        out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else None
        bundle = exporter.bundle(cfg=cfg, doctor_payload=payload, recent_probe_events=events, output_dir=out_dir)
        payload["diagnostics_bundle"] = str(bundle)

    _print_json(payload)
    return 0


def cmd_replay(args: argparse.Namespace) -> int:
    runner = ReplayRunner()
    report = runner.run(Path(args.transcript), strict=not args.no_strict)
    payload = asdict(report)
    payload["success"] = len(report.errors) == 0
    _print_json(payload)
    return 0 if not report.errors else 2


def _add_connect_args(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--display", default=None, help="Display name, defaults to $DISPLAY")
    cmd.add_argument("--auth-file", default=None, help="Credential cache, defaults to $XAUTHORITY or ~/.Xauthority")
    cmd.add_argument("--anonymous", action="store_true", help="Connect without sending a credential")
    cmd.add_argument("--json", action="store_true", help="Print JSON instead of text")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="xprobe", description="X server information printer and tools")
    sub = parser.add_subparsers(dest="command", required=True)

    info_cmd = sub.add_parser("info", help="Print setup data, font paths and extension versions")
    _add_connect_args(info_cmd)
    info_cmd.add_argument("--no-extensions", action="store_true", help="Skip extension version queries")
    info_cmd.set_defaults(func=cmd_info)

    ext_cmd = sub.add_parser("extensions", help="Print extension versions only")
    _add_connect_args(ext_cmd)
    ext_cmd.set_defaults(func=cmd_extensions)

    list_cmd = sub.add_parser("list-displays", help="List display servers on this machine")
    list_cmd.set_defaults(func=cmd_list_displays)

    doctor_cmd = sub.add_parser("doctor", help="Print environment diagnostics")
    doctor_cmd.add_argument("--probe", action="store_true", help="Also attempt a connection to the display")
    doctor_cmd.add_argument("--export", action="store_true", help="Export offline diagnostics bundle")
    doctor_cmd.add_argument("--out-dir", default=None, help="Optional output directory for diagnostics bundle")
    doctor_cmd.set_defaults(func=cmd_doctor)

    replay_cmd = sub.add_parser("replay", help="Analyze captured protocol transcript")
    replay_cmd.add_argument("--transcript", required=True, help="Path to JSONL transcript")
    replay_cmd.add_argument("--no-strict", action="store_true", help="Skip mandatory setup request/reply checks")
    replay_cmd.set_defaults(func=cmd_replay)

    return parser


def main(argv: list[str] | None = None) -> int:
    cfg = load_config()
    configure_logging(keep_files=cfg.diagnostics.keep_log_files)
    install_crash_hooks()
    parser = build_parser()
    args = parser.parse_args(argv)
    args.config = cfg
    try:
        return int(args.func(args))
    except XProbeError as exc:
        logger.error("%s failed: %s", args.command, exc, extra={"event": "command_failed"})
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
