"""
Configuration module for M365 Domain Remediation.
Defines API endpoints, retry settings, and run options.
"""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Will be prompted if empty

@dataclass
class DelegatedAuth:
    """Delegated (interactive) authentication configuration."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: [
        "https://graph.microsoft.com/User.ReadWrite.All",
        "https://graph.microsoft.com/Domain.Read.All",
    ])

@dataclass
class AuthConfig:
    """Authentication configuration — supports both modes."""
    mode: str = "certificate"  # "certificate" or "delegated"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None


# ─── Graph API Settings ─────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"

# Exchange Online admin API (REST transport of the ExchangeOnlineManagement module)
EXCHANGE_ADMIN_BASE_URL = "https://outlook.office365.com/adminapi/beta"

# Rate limiting / throttling
MAX_RETRIES = 5                   # Retry count for throttled requests
INITIAL_BACKOFF_SECONDS = 2.0     # First retry delay
MAX_BACKOFF_SECONDS = 120.0       # Cap on exponential backoff
BACKOFF_MULTIPLIER = 2.0          # Exponential factor

# Pagination
DEFAULT_PAGE_SIZE = 999           # Maximum items per page ($top)
MAX_PAGES_PER_ENDPOINT = 10000    # Safety cap on pagination loops

# Attributes read for every identity
USER_SELECT_FIELDS = "id,displayName,userPrincipalName,mail,proxyAddresses"


# ─── Remediation Settings ───────────────────────────────────────────────────

@dataclass
class RemediationConfig:
    """What to remediate and how."""
    source_domain: str = ""
    fallback_domain: str = ""             # Empty = tenant's initial onmicrosoft domain
    ensure_lowercase_alias: bool = False  # Add smtp: alias when none survives
    alias_domain: str = ""                # Empty = <tenant>.mail.onmicrosoft.com
    dry_run: bool = False                 # Plan only, never write


# ─── Output Configuration ───────────────────────────────────────────────────

@dataclass
class OutputConfig:
    """Output directory and format settings."""
    base_dir: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: [
        "csv", "json", "markdown", "html"
    ])

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        if not self.base_dir:
            self.base_dir = os.path.join(
                os.getcwd(),
                f"domain_remediation_{self.timestamp}"
            )

    @property
    def run_dir(self) -> Path:
        return Path(self.base_dir)


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class EngineConfig:
    """Top-level configuration for a remediation run."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    remediation: RemediationConfig = field(default_factory=RemediationConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str | Path) -> "EngineConfig":
        """Load configuration from a JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "certificate")
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                config.auth.certificate = CertificateAuth(
                    tenant_id=c["tenant_id"],
                    client_id=c["client_id"],
                    certificate_path=c.get("certificate_path", "./base64.txt"),
                    certificate_password=c.get("certificate_password", ""),
                )
            if "delegated" in auth_data:
                d = auth_data["delegated"]
                config.auth.delegated = DelegatedAuth(
                    tenant_id=d["tenant_id"],
                    client_id=d["client_id"],
                )
        if "remediation" in data:
            for k, v in data["remediation"].items():
                if hasattr(config.remediation, k):
                    setattr(config.remediation, k, v)
        if "output" in data:
            for k, v in data["output"].items():
                if hasattr(config.output, k):
                    setattr(config.output, k, v)
        config.verbose = data.get("verbose", False)
        return config


# ─── Required Application Permissions ────────────────────────────────────────

REQUIRED_PERMISSIONS = {
    "User.ReadWrite.All": "Read users and update UPN and mail",
    "Domain.Read.All": "Verify the source and fallback domains exist in the tenant",
    "Directory.Read.All": "Advanced queries ($count, endswith) over users",
    "Exchange.ManageAsApp": "Set-Mailbox -EmailAddresses (Office 365 Exchange Online API)",
}
