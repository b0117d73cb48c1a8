from __future__ import annotations

import argparse
import importlib
import importlib.util
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from copyflow_intake import __version__ as TOOL_VERSION
from copyflow_intake.contracts import build_run_summary, stamp_payload


PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_DIR.parent
SOURCE_SKILLS_DIR = PROJECT_ROOT / "skills"
SKILL_DIR = "csv-intake"

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_WARNINGS = 3
EXIT_UNKNOWN_PLATFORM = 6

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

_MODULE_CACHE: dict[str, Any] = {}


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class IntakeArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def scripts_dir() -> Path:
    path = SOURCE_SKILLS_DIR / SKILL_DIR / "scripts"
    if not path.exists():
        raise CliError(f"Runtime scripts not found: {path}", EXIT_COMMAND_ERROR)
    return path


def load_script_module(script_name: str):
    path = scripts_dir() / script_name
    if not path.exists():
        raise CliError(f"Runtime script not found: {path}", EXIT_COMMAND_ERROR)
    if path in _MODULE_CACHE:
        return _MODULE_CACHE[path]
    module_name = "copyflow_intake_runtime_" + script_name.replace(".py", "").replace("-", "_")
    spec = importlib.util.spec_from_file_location(module_name, path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    _MODULE_CACHE[path] = module
    return module


def runtime_settings_module():
    # shared by every script through the plain ``intake_modules`` import
    path = str(scripts_dir())
    if path not in sys.path:
        sys.path.insert(0, path)
    return importlib.import_module("intake_modules.settings")


def configure_logging(args: argparse.Namespace) -> None:
    level = logging.WARNING
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get("COPYFLOW_INTAKE_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(input_path: Path) -> Path:
    return Path.cwd() / "copyflow-intake-output" / f"{input_path.stem}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, input_path: Path) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(input_path)


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def remove_volatile_fields(value: Any) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key == "generated_at":
                result[key] = "1970-01-01T00:00:00Z"
            elif key == "scanned_at":
                result[key] = "1970-01-01T00:00:00"
            else:
                result[key] = remove_volatile_fields(item)
        return result
    if isinstance(value, list):
        return [remove_volatile_fields(item) for item in value]
    return value


def classify_backend_exception(exc: Exception) -> int:
    # parse failures never raise; anything that does is caller misuse
    if isinstance(exc, CliError):
        return exc.code
    return EXIT_COMMAND_ERROR


def parse_mapping_overrides(items: list[str] | None) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for item in items or []:
        field_name, sep, header = item.partition("=")
        if not sep or not field_name.strip():
            raise CliError(f"Invalid --map value '{item}'. Use field=Header", EXIT_COMMAND_ERROR)
        overrides[field_name.strip()] = header.strip()
    return overrides


def resolve_settings(args: argparse.Namespace):
    settings_module = runtime_settings_module()
    if getattr(args, "config", None):
        return settings_module.load_settings_file(args.config)
    return settings_module.get_settings()


def header_flag(args: argparse.Namespace) -> bool | None:
    return getattr(args, "has_header", None)


# ══════════════════════════════════════════════════════════════════════════════
# TEXT RENDERING
# ══════════════════════════════════════════════════════════════════════════════

def render_parse_text(payload: dict[str, Any]) -> str:
    result = payload["result"]
    lines = [
        "copyflow-intake parse",
        f"File: {payload.get('file', '[unknown]')}",
    ]
    if not result["success"]:
        lines.append(f"Error: {result['error']}")
        return "\n".join(lines) + "\n"
    lines.extend(
        [
            f"Encoding: {result['detectedEncoding']}",
            f"Delimiter: {result['delimiter']!r}",
            f"Rows: {result['totalRows']}",
            f"Columns: {len(result['headers'])}",
        ]
    )
    for column in result["columnTypes"]:
        lines.append(f"- {column['name']}: {column['type']} ({column['confidence']}%)")
    if result["warnings"]:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in result["warnings"])
    return "\n".join(lines) + "\n"


def render_detect_text(payload: dict[str, Any]) -> str:
    lines = [
        "copyflow-intake detect",
        f"File: {payload.get('file', '[unknown]')}",
    ]
    if not payload["success"]:
        lines.append(f"Error: {payload['error']}")
        return "\n".join(lines) + "\n"
    detection = payload["detection"]
    lines.extend(
        [
            f"Platform: {detection['detectedPlatform']}",
            f"Confidence: {detection['confidence']}/100",
            f"Rows: {payload['parse']['totalRows']}",
        ]
    )
    if payload["columnMapping"]:
        lines.append("Mapping:")
        lines.extend(f"- {name} <- {header}" for name, header in payload["columnMapping"].items())
    warnings = payload["run_summary"]["warnings"]
    if warnings:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in warnings)
    return "\n".join(lines) + "\n"


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def add_input_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", help="Input file path")
    parser.add_argument("--plan", help="Plan tier used for the size limit (free, pro, business)")
    parser.add_argument("--mime-type", dest="mime_type", help="Declared MIME type of the upload")
    parser.add_argument("--delimiter", help="Force the field delimiter: one character or comma, semicolon, tab, pipe")
    header = parser.add_mutually_exclusive_group()
    header.add_argument("--header", dest="has_header", action="store_const", const=True, help="Treat the first row as the header")
    header.add_argument("--no-header", dest="has_header", action="store_const", const=False, help="Treat every row as data")
    parser.add_argument("--config", help="Settings file (.json supported; .yml/.yaml rejected honestly for now)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logs")


def build_parser() -> argparse.ArgumentParser:
    parser = IntakeArgumentParser(prog="copyflow-intake")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse = subparsers.add_parser("parse", help="Decode and tokenize a file and profile its columns.")
    add_input_options(parse)
    parse.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    parse.add_argument("--output", help="Explicit result output path")
    parse.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parse.add_argument("--rows", action="store_true", help="Include every data row in the JSON output")

    detect = subparsers.add_parser("detect", help="Detect the source platform and plan the export.")
    add_input_options(detect)
    detect.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    detect.add_argument("--output", help="Explicit result output path")
    detect.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    detect.add_argument("--map", action="append", metavar="FIELD=HEADER", help="Override a column mapping")

    report = subparsers.add_parser("report", help="Generate a human-readable or JSON intake report.")
    add_input_options(report)
    report.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    report.add_argument("--output", help="Explicit report output path")
    report.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    report.add_argument("--format", choices=["text", "json"], default="text", help="Output format when --json is not used")

    export = subparsers.add_parser("export", help="Write the enhanced export template.")
    add_input_options(export)
    export.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    export.add_argument("--output", help="Explicit export output path")
    export.add_argument("--format", choices=["csv", "xlsx"], default="csv", help="Export file format")
    export.add_argument("--json", action="store_true", help="Write machine JSON summary to stdout")
    export.add_argument("--map", action="append", metavar="FIELD=HEADER", help="Override a column mapping")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default="copyflow-intake.json", help="Config output path")

    explain = subparsers.add_parser("explain", help="Explain a stable anomaly code.")
    explain.add_argument("rule_id", help="Anomaly code")
    explain.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def exit_code_for_intake(payload: dict[str, Any]) -> int:
    if not payload.get("success"):
        return EXIT_PARSE_FAILED
    detection = payload.get("detection") or {}
    if detection.get("detectedPlatform") == "unknown":
        return EXIT_UNKNOWN_PLATFORM
    if payload.get("run_summary", {}).get("warnings_count", 0) > 0:
        return EXIT_WARNINGS
    return EXIT_SUCCESS


def require_input(args: argparse.Namespace) -> Path:
    input_path = Path(args.input)
    if not input_path.exists():
        raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)
    return input_path


def intake_kwargs(args: argparse.Namespace, settings: Any) -> dict[str, Any]:
    return {
        "plan": args.plan,
        "mime_type": args.mime_type,
        "delimiter": args.delimiter,
        "has_header": header_flag(args),
        "settings": settings,
    }


def run_parse(args: argparse.Namespace) -> int:
    input_path = require_input(args)
    settings = resolve_settings(args)
    result = load_script_module("loader.py").load_file(input_path, **intake_kwargs(args, settings))
    payload = stamp_payload(
        "csv_intake.parse",
        {"file": input_path.name, "result": result.to_dict(include_rows=args.rows)},
        TOOL_VERSION,
    )
    payload["run_summary"] = build_run_summary(
        tool="csv-intake",
        script="loader.py",
        input_path=input_path,
        status="ok" if result.success else "failed",
        metrics={"total_rows": result.total_rows, "columns": len(result.headers)},
        warnings=result.warnings,
    )
    payload = remove_volatile_fields(payload)

    out_dir = determine_output_dir(args, input_path)
    output_path = Path(args.output) if args.output else out_dir / "parse.json"
    write_json(output_path, payload)
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(render_parse_text(payload).rstrip(), quiet=args.quiet)
        emit_human(f"Result written: {output_path}", quiet=args.quiet)
    return EXIT_SUCCESS if result.success else EXIT_PARSE_FAILED


def run_detect(args: argparse.Namespace) -> int:
    input_path = require_input(args)
    settings = resolve_settings(args)
    intake = load_script_module("intake.py")
    result = intake.intake_file(
        input_path,
        mapping_overrides=parse_mapping_overrides(args.map),
        **intake_kwargs(args, settings),
    )
    payload = remove_volatile_fields(intake.build_payload(result, input_path))

    out_dir = determine_output_dir(args, input_path)
    output_path = Path(args.output) if args.output else out_dir / "detection.json"
    write_json(output_path, payload)
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(render_detect_text(payload).rstrip(), quiet=args.quiet)
        emit_human(f"Result written: {output_path}", quiet=args.quiet)
    return exit_code_for_intake(payload)


def run_report(args: argparse.Namespace) -> int:
    input_path = require_input(args)
    settings = resolve_settings(args)
    report = load_script_module("reporter.py").build_report(input_path, **intake_kwargs(args, settings))
    machine_payload = remove_volatile_fields(report)
    text_payload = machine_payload["text_report"]

    out_dir = determine_output_dir(args, input_path)
    suffix = ".json" if args.json or args.format == "json" else ".txt"
    report_path = Path(args.output) if args.output else out_dir / f"report{suffix}"

    if args.json or args.format == "json":
        write_json(report_path, machine_payload)
        if args.json:
            maybe_emit_json_stdout(machine_payload, True)
        else:
            emit_human(f"Report written: {report_path}", quiet=args.quiet)
    else:
        write_text(report_path, text_payload)
        emit_human(text_payload.rstrip(), quiet=args.quiet)
        emit_human(f"Report written: {report_path}", quiet=args.quiet)
    return exit_code_for_intake(machine_payload["intake"])


def run_export(args: argparse.Namespace) -> int:
    input_path = require_input(args)
    settings = resolve_settings(args)
    intake = load_script_module("intake.py")
    exporter = load_script_module("exporter.py")

    result = intake.intake_file(
        input_path,
        mapping_overrides=parse_mapping_overrides(args.map),
        **intake_kwargs(args, settings),
    )
    if not result.success:
        eprint(result.parse.error or "Could not parse file")
        return EXIT_PARSE_FAILED

    out_dir = determine_output_dir(args, input_path)
    output_path = Path(args.output) if args.output else out_dir / f"{input_path.stem}-copyflow.{args.format}"
    if output_path.exists():
        raise CliError(f"Refusing to overwrite existing output: {output_path}", EXIT_COMMAND_ERROR)

    written = exporter.write_export(result.parse, result.export, output_path)
    summary = stamp_payload(
        "csv_intake.export_summary",
        {
            "file": input_path.name,
            "detected_platform": result.platform,
            "export": written,
            "exportStructure": result.export.to_dict(),
        },
        TOOL_VERSION,
    )
    summary["run_summary"] = build_run_summary(
        tool="csv-intake",
        script="exporter.py",
        input_path=input_path,
        output_path=output_path,
        metrics={"rows_written": written["rows_written"], "columns_written": written["columns_written"]},
        warnings=result.warnings + written["warnings"],
    )
    summary = remove_volatile_fields(summary)
    summary_path = output_path.with_name(f"{output_path.stem}-summary.json")
    write_json(summary_path, summary)

    if args.json:
        maybe_emit_json_stdout(summary, True)
    else:
        emit_human(
            f"Export written: {output_path} ({written['rows_written']} rows, {written['columns_written']} columns)",
            quiet=args.quiet,
        )
        emit_human(f"Summary written: {summary_path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    if config_path.suffix.lower() != ".json":
        eprint("Config path must end in .json")
        return EXIT_COMMAND_ERROR
    write_json(config_path, runtime_settings_module().starter_config())
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_explain(args: argparse.Namespace) -> int:
    payload = load_script_module("issue_taxonomy.py").explain(args.rule_id)
    if payload is None:
        eprint(f"Unknown rule id: {args.rule_id}")
        return EXIT_COMMAND_ERROR
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Rule: {args.rule_id}",
                    f"Severity: {payload['severity']}",
                    f"What it means: {payload['description']}",
                    f"What triggers it: {payload['evidence']}",
                    f"What to do: {payload['disable_hint']}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


COMMANDS = {
    "parse": run_parse,
    "detect": run_detect,
    "report": run_report,
    "export": run_export,
}


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command in COMMANDS:
            try:
                return COMMANDS[args.command](args)
            except CliError:
                raise
            except Exception as exc:
                eprint(str(exc))
                return classify_backend_exception(exc)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
