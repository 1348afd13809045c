"""
Configuration for sympaging.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

RECORD_ERROR_POLICIES = ("drop", "abort")
BRANCH_ERROR_POLICIES = ("abort", "skip")


@dataclass
class IlswsConfig:
    """Symphony web services connection configuration."""

    hostname: str = "localhost"
    port: int = 443
    webapp: str = "symws"
    scheme: str = "https"
    client_id: str = ""
    originating_app_id: str = "sympaging"
    username: str = ""
    password: str | None = None
    password_env: str | None = None
    timeout_seconds: float = 600.0
    include_fields: bool = False  # Ask for the thick pull list shape

    @property
    def base_url(self) -> str:
        """Root URL of the ILSWS web application, with trailing slash."""
        return f"{self.scheme}://{self.hostname}:{self.port}/{self.webapp}/"

    def get_password(self) -> str:
        """Get password from config or environment."""
        if self.password:
            return self.password
        if self.password_env:
            return os.environ.get(self.password_env, "")
        return ""


@dataclass
class RequestGateConfig:
    """Concurrency and retry limits for outbound ILSWS calls."""

    max_concurrent_requests: int = 2
    max_attempts: int = 3  # Total tries, not retries
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0


@dataclass
class OutputConfig:
    """Where and how reports are written."""

    csv_dir: Path = field(default_factory=lambda: Path("/tmp"))
    html_dir: Path = field(default_factory=lambda: Path("html"))
    xsl_title: Path | None = None
    xsl_item: Path | None = None
    utc_offset_hours: float = -8


@dataclass
class PolicyConfig:
    """Failure handling policies."""

    on_record_error: str = "drop"  # drop, abort
    on_branch_error: str = "abort"  # abort, skip
    reuse_session: bool = False


@dataclass
class SympagingConfig:
    """Complete sympaging configuration."""

    ilsws: IlswsConfig = field(default_factory=IlswsConfig)
    request_gate: RequestGateConfig = field(default_factory=RequestGateConfig)
    branches: dict[str, str] = field(default_factory=dict)
    sort_order: list[str] = field(default_factory=lambda: ["title"])
    output: OutputConfig = field(default_factory=OutputConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SympagingConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "ilsws" in data:
            ils = data["ilsws"]
            config.ilsws = IlswsConfig(
                hostname=ils.get("hostname", "localhost"),
                port=int(ils.get("port", 443)),
                webapp=ils.get("webapp", "symws"),
                scheme=ils.get("scheme", "https"),
                client_id=ils.get("client_id", ""),
                originating_app_id=ils.get("originating_app_id", "sympaging"),
                username=ils.get("username", ""),
                password=ils.get("password"),
                password_env=ils.get("password_env"),
                timeout_seconds=float(ils.get("timeout_seconds", 600.0)),
                include_fields=bool(ils.get("include_fields", False)),
            )

        if "request_gate" in data:
            gate = data["request_gate"]
            config.request_gate = RequestGateConfig(
                max_concurrent_requests=int(gate.get("max_concurrent_requests", 2)),
                max_attempts=int(gate.get("max_attempts", 3)),
                base_delay_seconds=float(gate.get("base_delay_seconds", 1.0)),
                max_delay_seconds=float(gate.get("max_delay_seconds", 30.0)),
            )

        if "branches" in data:
            config.branches = {str(k): str(v) for k, v in (data["branches"] or {}).items()}

        if "sort_order" in data:
            config.sort_order = list(data["sort_order"] or [])

        if "output" in data:
            out = data["output"]
            config.output = OutputConfig(
                csv_dir=Path(out.get("csv_dir", "/tmp")),
                html_dir=Path(out.get("html_dir", "html")),
                xsl_title=Path(out["xsl_title"]) if out.get("xsl_title") else None,
                xsl_item=Path(out["xsl_item"]) if out.get("xsl_item") else None,
                utc_offset_hours=float(out.get("utc_offset_hours", -8)),
            )

        if "policy" in data:
            pol = data["policy"]
            config.policy = PolicyConfig(
                on_record_error=pol.get("on_record_error", "drop"),
                on_branch_error=pol.get("on_branch_error", "abort"),
                reuse_session=bool(pol.get("reuse_session", False)),
            )

        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "SympagingConfig":
        """Load config from a YAML file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    def validate(self) -> None:
        """Raise ConfigError for values the pipeline cannot run with."""
        # Imported here: sorting depends on models, which must stay config-free
        from .sorting import resolve_sort_fields

        if self.policy.on_record_error not in RECORD_ERROR_POLICIES:
            raise ConfigError(
                f"policy.on_record_error must be one of {RECORD_ERROR_POLICIES}, "
                f"got {self.policy.on_record_error!r}"
            )
        if self.policy.on_branch_error not in BRANCH_ERROR_POLICIES:
            raise ConfigError(
                f"policy.on_branch_error must be one of {BRANCH_ERROR_POLICIES}, "
                f"got {self.policy.on_branch_error!r}"
            )
        if self.request_gate.max_concurrent_requests < 1:
            raise ConfigError("request_gate.max_concurrent_requests must be >= 1")
        if self.request_gate.max_attempts < 1:
            raise ConfigError("request_gate.max_attempts must be >= 1")
        if self.branches:
            for option in ("xsl_title", "xsl_item"):
                if getattr(self.output, option) is None:
                    raise ConfigError(f"output.{option} is required to write branch reports")
        if not self.sort_order:
            raise ConfigError("sort_order must name at least one field")
        try:
            resolve_sort_fields(self.sort_order)
        except ValueError as e:
            raise ConfigError(str(e)) from e

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for logging. Secrets are left out."""
        return {
            "ilsws": {
                "base_url": self.ilsws.base_url,
                "client_id": self.ilsws.client_id,
                "username": self.ilsws.username,
                "include_fields": self.ilsws.include_fields,
            },
            "request_gate": {
                "max_concurrent_requests": self.request_gate.max_concurrent_requests,
                "max_attempts": self.request_gate.max_attempts,
            },
            "branches": dict(self.branches),
            "sort_order": list(self.sort_order),
            "output": {
                "csv_dir": str(self.output.csv_dir),
                "html_dir": str(self.output.html_dir),
            },
            "policy": {
                "on_record_error": self.policy.on_record_error,
                "on_branch_error": self.policy.on_branch_error,
                "reuse_session": self.policy.reuse_session,
            },
        }
