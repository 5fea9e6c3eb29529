"""
M365 Domain Remediation — Main Orchestrator

Usage:
    python -m m365_domain_remediation --source-domain contoso.com --dry-run
    python -m m365_domain_remediation --source-domain contoso.com \\
        --fallback-domain contoso.onmicrosoft.com --profile contoso-prod
    python -m m365_domain_remediation --config config.json
    python -m m365_domain_remediation --source-domain contoso.com --delegated

Profile management:
    python -m m365_domain_remediation profile add <name> --tenant-id ... --client-id ...
    python -m m365_domain_remediation profile list
    python -m m365_domain_remediation profile remove <name>
    python -m m365_domain_remediation profile set-default <name>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import httpx

from . import __version__
from .config import EngineConfig, CertificateAuth, DelegatedAuth
from .safety.guardian import WriteGuardian
from .auth.authenticator import Authenticator, AuthenticationError
from .graph.client import GraphClient
from .graph.directory import GraphDirectory
from .exchange.client import ExchangeClient
from .exchange.mailboxes import ExchangeMailboxes
from .collectors import DomainCollector, IdentityCollector, resolve_fallback_domain
from .remediation import (
    DomainRemediationEngine,
    InvalidConfiguration,
    RemediationPolicy,
    RemediationRunner,
    RunSummary,
    measure_domain_usage,
)
from .remediation.usage import DomainUsage
from .reporting import export_csv, export_json, export_markdown, export_html
from .profiles import ProfileStore, TenantProfile, resolve_profile

logger = logging.getLogger("m365_domain_remediation")

ALL_FORMATS = ["csv", "json", "markdown", "html"]


# ---------------------------------------------------------------------------
# Profile management sub-commands
# ---------------------------------------------------------------------------

def _cmd_profile(args: argparse.Namespace) -> int:
    """Handle `profile add|list|remove|set-default` sub-commands."""
    store = ProfileStore.load()
    action = args.profile_action

    if action == "list":
        return _profile_list(store)
    if action == "add":
        return _profile_add(store, args)
    if action == "remove":
        if store.remove(args.profile_name):
            print(f"  Profile '{args.profile_name}' removed.")
            return 0
        print(f"  Profile '{args.profile_name}' not found.")
        return 1
    if action == "set-default":
        if store.set_default(args.profile_name):
            print(f"  Default profile set to '{args.profile_name}'.")
            return 0
        print(f"  Profile '{args.profile_name}' not found.")
        return 1
    print("Usage: python -m m365_domain_remediation profile {add|list|remove|set-default}")
    return 0


def _profile_list(store: ProfileStore) -> int:
    profiles = store.list_profiles()
    if not profiles:
        print("No profiles configured. Add one with:\n")
        print("  python -m m365_domain_remediation profile add <name> \\")
        print("    --tenant-id <GUID> --client-id <GUID> --cert-path ./base64.txt")
        return 0

    print(f"\n  {'Name':<24s} {'Tenant ID':<38s} {'Fallback Domain':<32s} {'Default'}")
    print(f"  {'-'*24} {'-'*38} {'-'*32} {'-'*7}")
    for p in profiles:
        default_marker = "  *" if p.name == store.default_profile else ""
        name_col = p.name + (f" ({p.tenant_display_name})" if p.tenant_display_name else "")
        print(f"  {name_col:<24s} {p.tenant_id:<38s} {p.fallback_domain or '(initial)':<32s}{default_marker}")
    print()
    return 0


def _profile_add(store: ProfileStore, args: argparse.Namespace) -> int:
    name = args.profile_name
    if store.get(name):
        print(f"  Profile '{name}' already exists. It will be overwritten.")

    profile = TenantProfile(
        name=name,
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        cert_path=args.cert_path or "./base64.txt",
        tenant_display_name=args.display_name or "",
        fallback_domain=args.fallback_domain or "",
    )
    set_as_default = args.set_default or not store.profiles
    store.add(profile, set_default=set_as_default)
    print(f"  Profile '{name}' saved.")
    if set_as_default:
        print("  Set as default profile.")
    return 0


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="m365_domain_remediation",
        description="Remove a domain from Entra ID users' UPN, mail and proxyAddresses",
    )

    # --- Sub-commands: profile management ---
    subparsers = parser.add_subparsers(dest="command", help="Management commands")

    prof_parser = subparsers.add_parser("profile", help="Manage tenant profiles")
    prof_sub = prof_parser.add_subparsers(dest="profile_action", help="Profile actions")

    add_p = prof_sub.add_parser("add", help="Add or update a tenant profile")
    add_p.add_argument("profile_name", help="Short name for the profile (e.g. 'contoso-prod')")
    add_p.add_argument("--tenant-id", required=True, help="Entra tenant ID (GUID)")
    add_p.add_argument("--client-id", required=True, help="App registration client ID (GUID)")
    add_p.add_argument("--cert-path", default="./base64.txt", help="Path to base64-encoded PFX (default: ./base64.txt)")
    add_p.add_argument("--display-name", help="Friendly tenant display name for reports")
    add_p.add_argument("--fallback-domain", help="Fallback domain to use for this tenant")
    add_p.add_argument("--set-default", action="store_true", help="Set as default profile")

    prof_sub.add_parser("list", help="List all configured profiles")

    rm_p = prof_sub.add_parser("remove", help="Remove a profile")
    rm_p.add_argument("profile_name", help="Name of the profile to remove")

    sd_p = prof_sub.add_parser("set-default", help="Set the default profile")
    sd_p.add_argument("profile_name", help="Name of the profile to set as default")

    # --- Run options ---
    parser.add_argument("--source-domain", "-s", help="Domain to remove (e.g. contoso.com)")
    parser.add_argument(
        "--fallback-domain", "-f",
        help="Domain to move identities onto (default: tenant's initial onmicrosoft.com domain)",
    )
    parser.add_argument(
        "--dry-run", "--what-if",
        dest="dry_run",
        action="store_true",
        help="Compute and export plans without writing anything",
    )
    parser.add_argument(
        "--ensure-lowercase-alias",
        action="store_true",
        help="Add an smtp: alias when none remains after the domain is removed",
    )
    parser.add_argument(
        "--alias-domain",
        help="Domain for the smtp: alias (default: <tenant>.mail.onmicrosoft.com)",
    )
    parser.add_argument("--profile", "-p", default=None, help="Tenant profile name to use")
    parser.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")
    parser.add_argument(
        "--delegated",
        action="store_true",
        help="Use delegated (device-code) authentication instead of certificate",
    )
    parser.add_argument("--cert-path", type=Path, help="Path to base64-encoded certificate file")
    parser.add_argument("--tenant-id", default=None, help="Tenant ID (overrides profile)")
    parser.add_argument("--client-id", default=None, help="Client ID (overrides profile)")
    parser.add_argument(
        "--output-dir", "-o",
        type=Path,
        default=None,
        help="Output directory for reports (default: ./domain_remediation_<timestamp>)",
    )
    parser.add_argument("--tenant-name", default=None, help="Display name for the tenant in reports")
    parser.add_argument(
        "--formats",
        nargs="+",
        choices=ALL_FORMATS,
        default=None,
        help="Output formats to generate",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def _selected_profile(args: argparse.Namespace) -> Optional[TenantProfile]:
    if args.profile:
        return resolve_profile(args.profile)
    if not args.config and not args.tenant_id:
        return resolve_profile()
    return None


def build_config(
    args: argparse.Namespace,
    profile: Optional[TenantProfile] = None,
) -> EngineConfig:
    """
    Build run configuration from config file, profile and CLI flags.
    CLI flags win over the profile, which wins over the config file.
    """
    if args.config and args.config.exists():
        config = EngineConfig.from_file(args.config)
    else:
        config = EngineConfig()

    if args.delegated:
        config.auth.mode = "delegated"

    # --- Tenant identity ---
    if profile:
        tenant_id = args.tenant_id or profile.tenant_id
        client_id = args.client_id or profile.client_id
        cert_path = str(args.cert_path) if args.cert_path else profile.resolve_cert_path()
    elif args.tenant_id and args.client_id:
        tenant_id = args.tenant_id
        client_id = args.client_id
        cert_path = str(args.cert_path) if args.cert_path else "./base64.txt"
    elif config.auth.certificate:
        tenant_id = config.auth.certificate.tenant_id
        client_id = config.auth.certificate.client_id
        cert_path = str(args.cert_path) if args.cert_path else config.auth.certificate.certificate_path
    elif config.auth.delegated:
        tenant_id = config.auth.delegated.tenant_id
        client_id = config.auth.delegated.client_id
        cert_path = ""
    else:
        raise InvalidConfiguration(
            "No tenant credentials found. Use --profile <name>, "
            "--tenant-id X --client-id Y, or --config config.json."
        )

    if config.auth.mode == "certificate":
        password = config.auth.certificate.certificate_password if config.auth.certificate else ""
        config.auth.certificate = CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=cert_path,
            certificate_password=password,
        )
    elif not config.auth.delegated or profile or args.tenant_id:
        config.auth.delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id)

    # --- Remediation options ---
    rem = config.remediation
    if args.source_domain:
        rem.source_domain = args.source_domain
    if args.fallback_domain:
        rem.fallback_domain = args.fallback_domain
    elif not rem.fallback_domain and profile and profile.fallback_domain:
        rem.fallback_domain = profile.fallback_domain
    if args.alias_domain:
        rem.alias_domain = args.alias_domain
    rem.ensure_lowercase_alias = rem.ensure_lowercase_alias or args.ensure_lowercase_alias
    rem.dry_run = rem.dry_run or args.dry_run

    if not rem.source_domain:
        raise InvalidConfiguration("A source domain is required (--source-domain).")

    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    if args.formats:
        config.output.formats = list(args.formats)
    config.verbose = config.verbose or args.verbose
    return config


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


async def run_preflight(client: GraphClient, config: EngineConfig) -> str:
    """Check the domain pair against the tenant. Returns the fallback domain."""
    result = await DomainCollector(client).execute()
    if not result.ok:
        raise InvalidConfiguration(
            "Could not read tenant domains: " + "; ".join(result.metadata["errors"])
        )
    return resolve_fallback_domain(
        result.data.get("domains", []),
        config.remediation.source_domain,
        config.remediation.fallback_domain or None,
    )


async def run_collection(client: GraphClient, source_domain: str):
    """Enumerate identities referencing the source domain."""
    result = await IdentityCollector(client, source_domain).execute()
    if not result.ok:
        raise InvalidConfiguration(
            "Identity enumeration failed: " + "; ".join(result.metadata["errors"])
        )
    for w in result.metadata.get("warnings", []):
        print(f"      !  {w}")
    return IdentityCollector.identities(result)


def generate_reports(
    summary: RunSummary,
    usage: Optional[DomainUsage],
    output_dir: Path,
    run_id: str,
    run_info: dict[str, Any],
    audit: dict,
    formats: list[str],
) -> list[Path]:
    """Generate all requested report formats."""
    created = []

    if "csv" in formats:
        paths = export_csv(summary, output_dir, run_id)
        created.extend(paths)
        for p in paths:
            print(f"  CSV:        {p}")

    if "json" in formats:
        path = export_json(summary, usage, output_dir, run_id, run_info, audit)
        created.append(path)
        print(f"  JSON:       {path}")

    if "markdown" in formats:
        path = export_markdown(summary, usage, output_dir, run_id, run_info)
        created.append(path)
        print(f"  Markdown:   {path}")

    if "html" in formats:
        path = export_html(summary, usage, output_dir, run_id, run_info)
        created.append(path)
        print(f"  HTML:       {path}")

    return created


def _phase(title: str) -> None:
    print("\n" + "=" * 70)
    print(f" {title}")
    print("=" * 70)


async def main_async(
    argv: Optional[list[str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """Async entry point. Returns the process exit code."""
    args = parse_args(argv)

    if args.command == "profile":
        return _cmd_profile(args)

    profile = _selected_profile(args)
    if args.profile and not profile:
        print(f"\n Profile '{args.profile}' not found. Use 'profile list' to see available profiles.")
        return 1

    try:
        config = build_config(args, profile)
    except InvalidConfiguration as e:
        print(f"\n Configuration error: {e}")
        return 1

    configure_logging(config.verbose)
    rem = config.remediation

    guardian = WriteGuardian(dry_run=rem.dry_run)
    guardian.print_banner()

    run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]
    output_dir = config.output.run_dir
    logger.info(f"Run {run_id} starting (dry_run={rem.dry_run})")
    tenant_name = args.tenant_name or (profile.tenant_display_name if profile else "") or "Unknown Tenant"

    print(f" M365 Domain Remediation v{__version__}")
    print(f"\n Run ID:  {run_id}")
    print(f" Output:  {output_dir.resolve()}")
    print(f" Tenant:  {tenant_name}" + (f" (profile: {profile.name})" if profile else ""))

    # --- Authentication ---
    print("\n Authenticating...")
    authenticator = Authenticator(config.auth)
    exchange_token = ""
    try:
        token = await authenticator.acquire_token()
        if not rem.dry_run:
            exchange_token = await authenticator.acquire_exchange_token()
    except AuthenticationError as e:
        print(f" Authentication failed: {e}")
        return 1
    print(" Authentication successful.")

    async with GraphClient(token, guardian, transport=transport) as client, \
            ExchangeClient(exchange_token, authenticator.tenant_id, guardian, transport=transport) as exchange:
        # --- Pre-flight ---
        _phase("PHASE 1: PRE-FLIGHT")
        try:
            fallback = await run_preflight(client, config)
            policy = RemediationPolicy(
                source_domain=rem.source_domain,
                fallback_domain=fallback,
                ensure_lowercase_alias=rem.ensure_lowercase_alias,
                alias_domain=rem.alias_domain or None,
            )
        except InvalidConfiguration as e:
            print(f"\n Configuration error: {e}")
            return 1
        print(f"  Source:   {policy.source_domain}")
        print(f"  Fallback: {policy.fallback_domain}")

        # --- Collection ---
        _phase("PHASE 2: IDENTITY COLLECTION")
        try:
            identities = await run_collection(client, policy.source_domain)
        except InvalidConfiguration as e:
            print(f"\n {e}")
            return 1
        usage = measure_domain_usage(identities, policy.source_domain)
        print(f"  {len(identities)} identities returned, {usage.identities} reference {policy.source_domain}")
        print(f"    UPN: {usage.upn}   mail: {usage.mail}   proxyAddresses: {usage.proxy_identities}")

        # --- Remediation ---
        _phase("PHASE 3: " + ("PLANNING (DRY RUN)" if rem.dry_run else "REMEDIATION"))
        runner = RemediationRunner(
            DomainRemediationEngine(policy),
            GraphDirectory(client),
            None if rem.dry_run else ExchangeMailboxes(exchange),
            dry_run=rem.dry_run,
        )
        summary = await runner.run(identities)
        stats = {"graph_client": client.get_stats(), "exchange_client": exchange.get_stats()}

    print(f"\n  Processed: {summary.total}")
    print(f"  Succeeded: {summary.succeeded}")
    print(f"  Planned:   {summary.planned}")
    print(f"  Unchanged: {summary.unchanged}")
    print(f"  Conflicts: {summary.skipped}")
    print(f"  Failed:    {summary.failed}")

    # --- Reporting ---
    _phase("PHASE 4: REPORT GENERATION")
    run_info = {
        "tenant": tenant_name,
        "source_domain": policy.source_domain,
        "fallback_domain": policy.fallback_domain,
        "dry_run": rem.dry_run,
        "ensure_lowercase_alias": policy.ensure_lowercase_alias,
    }
    audit = {**guardian.get_audit_record(), **stats}
    created = generate_reports(
        summary, usage, output_dir, run_id, run_info, audit, config.output.formats
    )

    _phase("RUN COMPLETE")
    print(f"\n  Files: {len(created)} reports generated")
    print(f"  Path:  {output_dir.resolve()}\n")
    return 2 if summary.failed else 0


def main(argv: Optional[list[str]] = None):
    """Synchronous entry point for `python -m m365_domain_remediation`."""
    sys.exit(asyncio.run(main_async(argv)))


if __name__ == "__main__":
    main()
