from __future__ import annotations

from dataclasses import dataclass, field

from riskreport_cli.exceptions import ConfigError
from riskreport_cli.models.register import AutoRiskDefaults
from riskreport_cli.models.reports import ReportFormat
from riskreport_cli.models.scoring import THRESHOLD_PRESETS


@dataclass
class AppConfig:
    api_url: str
    bearer_token: str
    organization: str
    generated_by: str = "riskreport-cli"
    report_format: str = ReportFormat.PDF.value
    auto_risk: AutoRiskDefaults = field(default_factory=AutoRiskDefaults)
    register_thresholds: str = "register"

    def __post_init__(self) -> None:
        if not self.api_url:
            raise ConfigError("API URL cannot be empty.")
        if not self.api_url.endswith("/"):
            self.api_url = self.api_url + "/"
        if not self.bearer_token:
            raise ConfigError("Bearer token cannot be empty.")
        if not self.organization:
            raise ConfigError("Organization name cannot be empty.")
        if self.report_format not in {f.value for f in ReportFormat}:
            raise ConfigError(
                f"Unsupported report format '{self.report_format}'. "
                "Use pdf, markdown, json or yaml."
            )
        if self.register_thresholds not in THRESHOLD_PRESETS:
            raise ConfigError(
                f"Unknown threshold preset '{self.register_thresholds}'. "
                "Use 'threat' or 'register'."
            )
        for name in ("likelihood", "impact"):
            value = getattr(self.auto_risk, name)
            if not 1 <= value <= 5:
                raise ConfigError(f"auto_{name} must be between 1 and 5, got {value}.")
