"""
Engine configuration: authentication settings, Graph constants, the
governance feature categories to estimate, and output options.

Everything has a default except tenant credentials, which come from a
profile, CLI flags, or a JSON config file (see EngineConfig.from_file).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class ConfigurationError(Exception):
    """Configuration is missing, unreadable or inconsistent."""
    pass


# --- Authentication ----------------------------------------------------------

@dataclass
class CertificateAuth:
    """App-only auth with a base64-encoded PFX."""
    tenant_id: str
    client_id: str
    certificate_path: str = "./base64.txt"
    certificate_password: str = ""     # env var or prompt when empty


@dataclass
class DelegatedAuth:
    """Device-code sign-in by an administrator."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: ["AuditLog.Read.All", "User.Read.All"])


@dataclass
class AuthConfig:
    mode: str = "certificate"          # certificate | delegated
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None


# --- Graph -------------------------------------------------------------------

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"             # stable surface
GRAPH_BETA_VERSION = "beta"            # preview surface

MAX_RETRIES = 5
INITIAL_BACKOFF_SECONDS = 2.0
MAX_BACKOFF_SECONDS = 120.0
BACKOFF_MULTIPLIER = 2.0

DEFAULT_PAGE_SIZE = 999
AUDIT_PAGE_SIZE = 500                  # directoryAudits rejects larger $top
MAX_PAGES_PER_ENDPOINT = 10000

CERT_PASSWORD_ENV = "GUEST_MAU_CERT_PASSWORD"

# Least-privilege application permissions, all read-only.
REQUIRED_PERMISSIONS = {
    "User.Read.All": "Enumerate guest accounts and read tenant user counts",
    "AuditLog.Read.All": "Read directory audits and user sign-in activity",
}


# --- Governance features -----------------------------------------------------

@dataclass(frozen=True)
class FeatureCategory:
    """A governance capability whose audited activity can bill guests."""
    key: str                           # identifier used in reports
    display_name: str
    audit_category: str                # directoryAudits `category`
    activities: tuple[str, ...] = ()   # optional activityDisplayName filter

    @classmethod
    def from_dict(cls, data: dict) -> "FeatureCategory":
        if not isinstance(data, dict):
            raise ConfigurationError(f"Feature category must be a JSON object, got {data!r}")
        try:
            key = data["key"]
            return cls(
                key=key,
                display_name=data.get("display_name", key),
                audit_category=data["audit_category"],
                activities=tuple(data.get("activities", ())),
            )
        except KeyError as e:
            raise ConfigurationError(f"Feature category is missing {e}")


DEFAULT_FEATURES: tuple[FeatureCategory, ...] = (
    FeatureCategory("entitlement_management", "Entitlement Management", "EntitlementManagement"),
    FeatureCategory("lifecycle_workflows", "Lifecycle Workflows", "WorkflowManagement"),
    FeatureCategory("access_reviews", "Access Reviews", "AccessReviews"),
)


@dataclass
class AnalysisConfig:
    features: list[FeatureCategory] = field(default_factory=lambda: list(DEFAULT_FEATURES))
    period_start: Optional[datetime] = None   # None: first instant of the current UTC month
    page_size: int = DEFAULT_PAGE_SIZE
    audit_page_size: int = AUDIT_PAGE_SIZE
    max_pages: int = MAX_PAGES_PER_ENDPOINT


# --- Output ------------------------------------------------------------------

@dataclass
class OutputConfig:
    base_dir: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: ["json", "csv", "markdown"])

    def __post_init__(self):
        self.timestamp = self.timestamp or datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        self.base_dir = self.base_dir or os.path.join(os.getcwd(), f"guest_mau_report_{self.timestamp}")

    @property
    def report_dir(self) -> Path:
        return Path(self.base_dir)


# --- Top level ---------------------------------------------------------------

@dataclass
class EngineConfig:
    auth: AuthConfig = field(default_factory=AuthConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    assume_yes: bool = False           # skip the continue/abort prompt
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str | Path) -> "EngineConfig":
        """
        Load a JSON config file. Sections are optional:

            {"auth": {"mode": ..., "certificate": {...}, "delegated": {...}},
             "analysis": {"features": [...], "period_start": "2024-05-01", ...},
             "output": {"base_dir": ..., "formats": [...]},
             "assume_yes": false, "verbose": false}
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Configuration file {path} is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {path} must hold a JSON object")

        config = cls()
        _apply_auth(config.auth, _section(data, "auth"))
        _apply_analysis(config.analysis, _section(data, "analysis"))
        for key, value in _section(data, "output").items():
            if hasattr(config.output, key):
                setattr(config.output, key, value)
        config.assume_yes = bool(data.get("assume_yes", False))
        config.verbose = bool(data.get("verbose", False))
        return config


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigurationError(f"Config section '{name}' must be a JSON object")
    return section


def _apply_auth(auth: AuthConfig, section: dict[str, Any]) -> None:
    auth.mode = section.get("mode", auth.mode)
    try:
        if "certificate" in section:
            cert = section["certificate"]
            auth.certificate = CertificateAuth(
                tenant_id=cert["tenant_id"],
                client_id=cert["client_id"],
                certificate_path=cert.get("certificate_path", "./base64.txt"),
                certificate_password=cert.get("certificate_password", ""),
            )
        if "delegated" in section:
            deleg = section["delegated"]
            auth.delegated = DelegatedAuth(tenant_id=deleg["tenant_id"], client_id=deleg["client_id"])
    except KeyError as e:
        raise ConfigurationError(f"Auth configuration is missing {e}")
    except TypeError:
        raise ConfigurationError("Auth certificate/delegated settings must be JSON objects")


def _apply_analysis(analysis: AnalysisConfig, section: dict[str, Any]) -> None:
    if "features" in section:
        if not isinstance(section["features"], list):
            raise ConfigurationError("analysis.features must be a list")
        analysis.features = [FeatureCategory.from_dict(f) for f in section["features"]]
    if section.get("period_start"):
        analysis.period_start = parse_period_start(section["period_start"])
    for key in ("page_size", "audit_page_size", "max_pages"):
        if key in section:
            try:
                setattr(analysis, key, int(section[key]))
            except (TypeError, ValueError):
                raise ConfigurationError(f"analysis.{key} must be an integer, got {section[key]!r}")


def parse_period_start(value: str) -> datetime:
    """Parse YYYY-MM-DD or a full ISO-8601 timestamp; naive values are UTC."""
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ConfigurationError(f"Invalid period start: {value!r} (expected YYYY-MM-DD)")
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
