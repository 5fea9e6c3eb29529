"""
Write Guardian — Limits what the tool may change in the tenant.
Only two writes are ever allowed: PATCH /users/{id} with userPrincipalName
and mail, and Set-Mailbox -EmailAddresses through the Exchange admin API.
Nothing at all is written in dry-run mode.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("m365_domain_remediation.safety")

# ─── Allowed Writes ──────────────────────────────────────────────────────────

READ_METHODS = {"GET", "HEAD", "OPTIONS"}
WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# PATCH is only allowed against a single user object
USER_OBJECT_URL = re.compile(r"/users/[^/?]+$", re.IGNORECASE)

# The only user attributes Graph may write (proxyAddresses is read-only there)
ALLOWED_PATCH_FIELDS = frozenset({"userPrincipalName", "mail"})

# POST is only allowed against the Exchange admin API command endpoint
EXCHANGE_COMMAND_URL = re.compile(r"/adminapi/beta/[^/?]+/InvokeCommand$", re.IGNORECASE)

# The only cmdlet, and the only parameters, the remediation may invoke
ALLOWED_CMDLET = "Set-Mailbox"
ALLOWED_CMDLET_PARAMETERS = frozenset({"Identity", "EmailAddresses"})


class SafetyViolation(Exception):
    """Raised when a request falls outside the allowed write scope."""
    pass


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class WriteGuardian:
    """
    Validates every outbound HTTP request before it is sent.
    Maintains an audit log of writes and violations.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self.violations: list[dict] = []
        self.writes: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = _utcnow()

    def validate_request(self, method: str, url: str, body: Optional[dict] = None) -> bool:
        """
        Validate a request.
        Returns True if allowed, raises SafetyViolation if not.
        """
        self.checks_performed += 1
        method_upper = method.upper()

        if method_upper in READ_METHODS:
            return True

        if self.dry_run:
            self._record_violation(method_upper, url, "Write attempted in dry-run mode")
            raise SafetyViolation(
                f"SAFETY VIOLATION: Dry run, write blocked: {method_upper} {url}"
            )

        if method_upper == "POST":
            return self._validate_exchange_command(url, body)

        if method_upper != "PATCH":
            self._record_violation(method_upper, url, "Write HTTP method blocked")
            raise SafetyViolation(
                f"SAFETY VIOLATION: Write method blocked: {method_upper} {url}"
            )

        path = url.split("?", 1)[0]
        if not USER_OBJECT_URL.search(path):
            self._record_violation(method_upper, url, "PATCH outside /users/{id}")
            raise SafetyViolation(
                f"SAFETY VIOLATION: PATCH target not allowed: {url}"
            )

        fields = set((body or {}).keys())
        if not fields:
            self._record_violation(method_upper, url, "Empty PATCH body")
            raise SafetyViolation(f"SAFETY VIOLATION: Empty PATCH body: {url}")

        extra = fields - ALLOWED_PATCH_FIELDS
        if extra:
            self._record_violation(
                method_upper, url, f"Attributes not allowed: {', '.join(sorted(extra))}"
            )
            raise SafetyViolation(
                f"SAFETY VIOLATION: PATCH touches disallowed attributes {sorted(extra)}: {url}"
            )

        self.writes.append({
            "timestamp": _utcnow(),
            "method": method_upper,
            "url": url,
            "fields": sorted(fields),
        })
        return True

    def _validate_exchange_command(self, url: str, body: Optional[dict]) -> bool:
        """Allow Set-Mailbox -Identity X -EmailAddresses [...] and nothing else."""
        path = url.split("?", 1)[0]
        if not EXCHANGE_COMMAND_URL.search(path):
            self._record_violation("POST", url, "POST outside the Exchange command endpoint")
            raise SafetyViolation(f"SAFETY VIOLATION: POST target not allowed: {url}")

        cmdlet_input = (body or {}).get("CmdletInput") or {}
        cmdlet = cmdlet_input.get("CmdletName")
        if cmdlet != ALLOWED_CMDLET:
            self._record_violation("POST", url, f"Cmdlet not allowed: {cmdlet}")
            raise SafetyViolation(f"SAFETY VIOLATION: Cmdlet blocked: {cmdlet}")

        parameters = set((cmdlet_input.get("Parameters") or {}).keys())
        if parameters != ALLOWED_CMDLET_PARAMETERS:
            self._record_violation(
                "POST", url, f"Set-Mailbox parameters not allowed: {', '.join(sorted(parameters))}"
            )
            raise SafetyViolation(
                f"SAFETY VIOLATION: Set-Mailbox must pass exactly Identity and "
                f"EmailAddresses, got {sorted(parameters)}"
            )

        self.writes.append({
            "timestamp": _utcnow(),
            "method": "POST",
            "url": url,
            "fields": [f"{cmdlet} -EmailAddresses"],
        })
        return True

    def _record_violation(self, method: str, url: str, reason: str):
        """Record a safety violation for audit."""
        violation = {
            "timestamp": _utcnow(),
            "method": method,
            "url": url,
            "reason": reason,
        }
        self.violations.append(violation)
        logger.critical(f"SAFETY VIOLATION: {reason} — {method} {url}")

    def get_audit_record(self) -> dict:
        """Return the full safety audit record."""
        return {
            "write_guardian": {
                "mode": "DRY-RUN" if self.dry_run else "REMEDIATE",
                "started_at": self.started_at,
                "checks_performed": self.checks_performed,
                "writes_allowed": len(self.writes),
                "writes": self.writes,
                "violations_detected": len(self.violations),
                "violations": self.violations,
                "status": "CLEAN" if not self.violations else "VIOLATIONS_DETECTED",
            }
        }

    def print_banner(self):
        """Print the run-mode banner."""
        print("=" * 75)
        if self.dry_run:
            print("  DRY RUN -- NO CHANGES WILL BE MADE")
            print("  * Plans are computed and exported, nothing is written")
        else:
            print("  REMEDIATION RUN -- USER ATTRIBUTES WILL BE CHANGED")
            print("  * Only userPrincipalName, mail (Graph) and EmailAddresses (Exchange) are written")
        print("  * Write Guardian validates every request before it is sent")
        print("=" * 75)
