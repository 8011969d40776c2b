"""Settings for the validator engine and monitor.

Values are layered: defaults, then a YAML config file, then environment
variables (``CONTRACT_MONITOR_<FIELD>`` plus ``API_VERSION``,
``WEBHOOK_URL`` and ``SLACK_WEBHOOK``), then explicit overrides.
"""

import os
from pathlib import Path
from typing import Literal, Mapping

import yaml
from pydantic import BaseModel, Field

from contract_monitor.drift.analyzer import DEFAULT_INTERNAL_PATHS
from contract_monitor.drift.scanner import DEFAULT_API_PREFIX

ENV_PREFIX = "CONTRACT_MONITOR_"

# Unprefixed variables honoured for compatibility with existing deployments
ENV_ALIASES = {
    "API_VERSION": "expected_version",
    "WEBHOOK_URL": "webhook_url",
    "SLACK_WEBHOOK": "slack_webhook",
}


class EmailSettings(BaseModel):
    host: str
    port: int = 25
    sender: str
    recipients: list[str] = Field(default_factory=list)
    username: str | None = None
    password: str | None = None
    use_tls: bool = False


class MonitorSettings(BaseModel):
    contract_path: Path = Path("contract.yaml")
    source_root: Path = Path("frontend/src")
    data_dir: Path = Path("data")
    api_prefix: str = DEFAULT_API_PREFIX

    check_interval: float = Field(default=300.0, gt=0)
    alert_threshold: int = Field(default=5, ge=1)
    retention_days: int = Field(default=7, ge=1)
    max_reports: int = Field(default=10, ge=1)
    enable_alerts: bool = True
    enable_reports: bool = True
    report_frequency: Literal["hourly", "daily", "weekly"] = "daily"
    expected_version: str = "1.0.0"

    development_mode: bool = False
    reject_unresolved: bool = True
    request_failure_threshold: float = 10.0
    response_failure_threshold: float = 5.0
    recent_error_capacity: int = Field(default=10, ge=1)
    sub_check_timeout: float = Field(default=30.0, gt=0)
    internal_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_INTERNAL_PATHS))

    webhook_url: str | None = None
    slack_webhook: str | None = None
    email: EmailSettings | None = None

    log_level: str = "INFO"


def _read_config_file(config_file: Path) -> dict:
    with open(config_file, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_file} must contain a mapping")
    return data


def _from_env(environ: Mapping[str, str]) -> dict:
    values = {}
    for env_name, field in ENV_ALIASES.items():
        if environ.get(env_name):
            values[field] = environ[env_name]

    for field in MonitorSettings.model_fields:
        if field == "email":
            continue
        raw = environ.get(ENV_PREFIX + field.upper())
        if raw is None or raw == "":
            continue
        if field == "internal_paths":
            values[field] = [p.strip() for p in raw.split(",") if p.strip()]
        else:
            values[field] = raw
    return values


def load_settings(
    config_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides,
) -> MonitorSettings:
    values: dict = {}
    if config_file is not None:
        values.update(_read_config_file(Path(config_file)))
    values.update(_from_env(os.environ if environ is None else environ))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return MonitorSettings(**values)
