from __future__ import annotations

import configparser
from pathlib import Path

from riskreport_cli.exceptions import ConfigError
from riskreport_cli.models.config import AppConfig
from riskreport_cli.models.register import AutoRiskDefaults

CONFIG_FILENAME = ".riskreport-cli.ini"
_SECTION = "riskreport"
_REGISTER_SECTION = "risk_register"
_REQUIRED_KEYS = ("api_url", "bearer_token", "organization")


def config_exists(directory: Path) -> bool:
    return (directory / CONFIG_FILENAME).is_file()


def write_config(directory: Path, config: AppConfig) -> None:
    cp = configparser.ConfigParser()
    cp[_SECTION] = {
        "api_url": config.api_url,
        "bearer_token": config.bearer_token,
        "organization": config.organization,
        "generated_by": config.generated_by,
        "report_format": config.report_format,
    }
    cp[_REGISTER_SECTION] = {
        "auto_likelihood": str(config.auto_risk.likelihood),
        "auto_impact": str(config.auto_risk.impact),
        "category": config.auto_risk.category,
        "thresholds": config.register_thresholds,
    }
    path = directory / CONFIG_FILENAME
    with open(path, "w", encoding="utf-8") as f:
        cp.write(f)


def _read_int(cp: configparser.ConfigParser, key: str, default: int) -> int:
    try:
        return cp.getint(_REGISTER_SECTION, key, fallback=default)
    except ValueError as exc:
        raise ConfigError(
            f"Invalid configuration: '{key}' in [{_REGISTER_SECTION}] must be an integer."
        ) from exc


def read_config(directory: Path) -> AppConfig:
    path = directory / CONFIG_FILENAME
    if not path.is_file():
        raise ConfigError(
            "Configuration not found. Run riskreport-cli --init first."
        )

    cp = configparser.ConfigParser()
    try:
        cp.read(str(path), encoding="utf-8")
    except configparser.Error as exc:
        raise ConfigError(
            f"Invalid configuration format in {CONFIG_FILENAME}. "
            "Run riskreport-cli --init to reconfigure."
        ) from exc

    if not cp.has_section(_SECTION):
        raise ConfigError(
            f"Invalid configuration: missing [{_SECTION}] section in {CONFIG_FILENAME}."
        )

    for key in _REQUIRED_KEYS:
        if not cp.has_option(_SECTION, key) or not cp.get(_SECTION, key).strip():
            raise ConfigError(
                f"Invalid configuration: missing or empty '{key}' in {CONFIG_FILENAME}. "
                "Run riskreport-cli --init to reconfigure."
            )

    defaults = AutoRiskDefaults()
    auto_risk = defaults
    thresholds = "register"
    if cp.has_section(_REGISTER_SECTION):
        auto_risk = AutoRiskDefaults(
            likelihood=_read_int(cp, "auto_likelihood", defaults.likelihood),
            impact=_read_int(cp, "auto_impact", defaults.impact),
            category=cp.get(_REGISTER_SECTION, "category", fallback=defaults.category),
        )
        thresholds = cp.get(_REGISTER_SECTION, "thresholds", fallback=thresholds).strip().lower()

    return AppConfig(
        api_url=cp.get(_SECTION, "api_url"),
        bearer_token=cp.get(_SECTION, "bearer_token"),
        organization=cp.get(_SECTION, "organization"),
        generated_by=cp.get(_SECTION, "generated_by", fallback="riskreport-cli"),
        report_format=cp.get(_SECTION, "report_format", fallback="pdf").strip().lower(),
        auto_risk=auto_risk,
        register_thresholds=thresholds,
    )
