from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import Optional, Union

from riskreport_cli.client import ComplianceApiClient
from riskreport_cli.config import CONFIG_FILENAME, config_exists, read_config, write_config
from riskreport_cli.exceptions import ConfigError, InvalidInput, NotFound
from riskreport_cli.formatters.registry import formatter_for
from riskreport_cli.models.assessments import ImplementationStatus
from riskreport_cli.models.config import AppConfig
from riskreport_cli.models.reports import ReportFormat, ReportKind
from riskreport_cli.output import OutputWriter
from riskreport_cli.register import RiskRegisterManager, register_csv
from riskreport_cli.service import (
    apply_control_status,
    compute_risk_score,
    compute_statistics,
    generate_report,
    parse_kind,
)
from riskreport_cli.storage.api import ApiRepository
from riskreport_cli.storage.base import Repository
from riskreport_cli.storage.memory import InMemoryRepository

_SUBDIRS = ("reports",)
_KINDS = [k.value for k in ReportKind]
_FORMATS = [f.value for f in ReportFormat]
_STATUSES = [s.value for s in ImplementationStatus]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="riskreport-cli",
        description="Risk scoring, compliance statistics and report generation.",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--init",
        metavar="API_URL",
        help="Initialize configuration with the compliance platform API URL.",
    )
    group.add_argument(
        "--score", nargs=2, metavar=("LIKELIHOOD", "IMPACT"),
        help="Score a likelihood/impact pair (very_low, low, medium, high, very_high).",
    )
    group.add_argument(
        "--stats", nargs=2, metavar=("KIND", "ID"),
        help="Print statistics for an assessment or threat_model.",
    )
    group.add_argument(
        "--report", nargs=2, metavar=("KIND", "ID"),
        help="Generate a report for an assessment or threat_model.",
    )
    group.add_argument(
        "--set-status", nargs=3, metavar=("ASSESSMENT_ID", "CONTROL_ID", "STATUS"),
        help="Set a control's implementation status and update the risk register.",
    )
    group.add_argument(
        "--export-register", action="store_true",
        help="Export the risk register as CSV.",
    )
    parser.add_argument(
        "--snapshot", type=Path, metavar="FILE",
        help="Read data from a local YAML or JSON snapshot instead of the API.",
    )
    parser.add_argument("--format", choices=_FORMATS, help="Output format.")
    parser.add_argument(
        "--output-dir", type=Path, metavar="DIR",
        help="Directory for generated files (default: ./reports).",
    )
    parser.add_argument(
        "--assessment", type=int, metavar="ID",
        help="Limit --export-register to one assessment.",
    )
    parser.add_argument("--notes", default=None, help="Notes recorded with --set-status.")
    parser.add_argument(
        "--thresholds", default="threat", choices=["threat", "register"],
        help="Threshold preset used by --score.",
    )
    parser.add_argument(
        "--force", action="store_true",
        help="Overwrite existing files without confirmation.",
    )
    parser.add_argument(
        "--keep-raw-json", action="store_true",
        help="Also write the report structure as JSON alongside the report.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def _log(message: str) -> None:
    print(message)


def _parse_id(value: str, name: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise InvalidInput(f"{name} must be an integer, got '{value}'.") from exc


def _run_init(api_url: str) -> None:
    if not api_url.startswith("https://"):
        raise ConfigError("API URL must start with https://")

    bearer_token = getpass.getpass("Enter your bearer token: ")
    if not bearer_token.strip():
        raise ConfigError("Bearer token cannot be empty.")

    organization = input("Enter your organization name (shown on reports): ")
    if not organization.strip():
        raise ConfigError("Organization name cannot be empty.")

    config = AppConfig(
        api_url=api_url,
        bearer_token=bearer_token.strip(),
        organization=organization.strip(),
    )

    cwd = Path.cwd()
    write_config(cwd, config)

    for subdir in _SUBDIRS:
        (cwd / subdir).mkdir(exist_ok=True)

    print(f"Configuration saved to {CONFIG_FILENAME}")
    print("Created directories: " + ", ".join(f"{d}/" for d in _SUBDIRS))


def _run_score(args: argparse.Namespace) -> None:
    likelihood, impact = args.score
    result = compute_risk_score(likelihood, impact, args.thresholds)
    _log(f"Risk score: {result.score} ({result.level.label})")


class _Context:
    """Repository and settings shared by the data-backed actions."""

    def __init__(self, args: argparse.Namespace) -> None:
        cwd = Path.cwd()
        self.args = args
        self.config: Optional[AppConfig] = None
        self.snapshot: Optional[InMemoryRepository] = None
        self.repo: Repository
        if args.snapshot is not None:
            if config_exists(cwd):
                self.config = read_config(cwd)
            self.snapshot = InMemoryRepository.from_snapshot(args.snapshot)
            self.repo = self.snapshot
        else:
            config = read_config(cwd)
            self.config = config
            self.repo = ApiRepository(ComplianceApiClient(config))
        self.writer = OutputWriter(args.output_dir or cwd / "reports", force=args.force)

    @property
    def generated_by(self) -> str:
        return self.config.generated_by if self.config else "riskreport-cli"

    def manager(self) -> RiskRegisterManager:
        if self.config is None:
            return RiskRegisterManager(self.repo)
        return RiskRegisterManager(
            self.repo,
            thresholds=self.config.register_thresholds,
            defaults=self.config.auto_risk,
        )

    def organization_name(self, kind: ReportKind, subject_id: int) -> str:
        if self.config is not None:
            return self.config.organization
        try:
            if kind is ReportKind.ASSESSMENT:
                owner = self.repo.get_assessment(subject_id).organization_id
            else:
                owner = self.repo.get_threat_model(subject_id).organization_id
            if owner is None:
                return "Unknown Organization"
            return self.repo.get_organization(owner).name
        except NotFound:
            return "Unknown Organization"

    def save_snapshot(self) -> None:
        if self.snapshot is not None and self.args.snapshot is not None:
            self.snapshot.save_snapshot(self.args.snapshot)
            _log(f"Updated snapshot {self.args.snapshot}")


def _run_stats(ctx: _Context) -> None:
    kind_value, raw_id = ctx.args.stats
    kind = parse_kind(kind_value)
    subject_id = _parse_id(raw_id, "ID")
    stats = compute_statistics(ctx.repo, subject_id, kind)
    formatter = formatter_for(ctx.args.format or ReportFormat.YAML)
    data = formatter.dump(stats)
    if ctx.args.output_dir is None:
        sys.stdout.write(data.decode("utf-8"))
        return
    ctx.writer.write(f"statistics-{kind.value}-{subject_id}{formatter.file_extension()}", data)


def _run_report(ctx: _Context) -> None:
    kind_value, raw_id = ctx.args.report
    kind = parse_kind(kind_value)
    subject_id = _parse_id(raw_id, "ID")
    fmt: Union[str, ReportFormat] = ctx.args.format or (
        ctx.config.report_format if ctx.config else ReportFormat.PDF
    )
    organization = ctx.organization_name(kind, subject_id)
    document = generate_report(
        ctx.repo, subject_id, kind, organization,
        fmt=fmt, generated_by=ctx.generated_by,
    )
    ctx.writer.write(document.metadata.file_name, document.content)
    _log(f"{document.metadata.title}: {document.metadata.page_count} pages")

    if ctx.args.keep_raw_json and document.metadata.format is not ReportFormat.JSON:
        raw = generate_report(
            ctx.repo, subject_id, kind, organization,
            fmt=ReportFormat.JSON, generated_by=ctx.generated_by,
            now=document.metadata.generated_at,
        )
        ctx.writer.write(raw.metadata.file_name, raw.content)


def _run_set_status(ctx: _Context) -> None:
    raw_assessment, raw_control, status = ctx.args.set_status
    if status not in _STATUSES:
        raise InvalidInput(f"Invalid status '{status}'. Must be one of: {', '.join(_STATUSES)}.")
    result = apply_control_status(
        ctx.repo,
        _parse_id(raw_assessment, "ASSESSMENT_ID"),
        _parse_id(raw_control, "CONTROL_ID"),
        status,
        notes=ctx.args.notes,
        assessed_by=ctx.generated_by,
        manager=ctx.manager(),
    )
    _log(f"Control {result.entry.control_code or result.entry.control_id} set to {status}")
    if result.created_risk_id:
        _log(f"Created risk register entry {result.created_risk_id}")
    for risk_id in result.mitigated_risk_ids:
        _log(f"Marked risk register entry {risk_id} as Completed")
    ctx.save_snapshot()


def _run_export_register(ctx: _Context) -> None:
    entries = ctx.repo.list_register_entries(assessment_id=ctx.args.assessment)
    suffix = f"-{ctx.args.assessment}" if ctx.args.assessment is not None else ""
    ctx.writer.write(f"risk-register{suffix}.csv", register_csv(entries).encode("utf-8"))
    _log(f"Exported {len(entries)} risk register entries")


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.init:
        _run_init(args.init)
    elif args.score:
        _run_score(args)
    elif args.stats:
        _run_stats(_Context(args))
    elif args.report:
        _run_report(_Context(args))
    elif args.set_status:
        _run_set_status(_Context(args))
    elif args.export_register:
        _run_export_register(_Context(args))
    else:
        parser.print_help()
