"""
Guest MAU Exposure Engine: command-line entry point.

Usage:
    python -m guest_mau_engine                             # default profile
    python -m guest_mau_engine --profile contoso-prod      # named profile
    python -m guest_mau_engine --config config.json        # JSON config file
    python -m guest_mau_engine --tenant-id T --client-id C --delegated
    python -m guest_mau_engine --period-start 2024-05-01   # custom period boundary

Profiles:
    python -m guest_mau_engine profile add <name> --tenant-id ... --client-id ...
    python -m guest_mau_engine profile list
    python -m guest_mau_engine profile remove <name>
    python -m guest_mau_engine profile set-default <name>

Only GET requests are ever sent; the tenant is never modified.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from . import __version__
from .analysis import MauReport, compute_report, current_period_start
from .auth.authenticator import AuthenticationError, Authenticator
from .collectors import AuditLogCollector, CollectorResult, GuestCollector
from .config import (
    CertificateAuth,
    ConfigurationError,
    DelegatedAuth,
    EngineConfig,
    parse_period_start,
)
from .graph.client import GraphClient
from .graph.selector import (
    Acquirer,
    DependencyAcquisitionError,
    SurfaceSelection,
    acquire_missing,
    select_surface,
)
from .graph.surfaces import (
    DEPENDENCY_PERMISSIONS,
    PREVIEW,
    STABLE,
    DirectorySurface,
    open_surface,
    probe_dependency,
    probe_surface,
)
from .profiles import DEFAULT_CERT_PATH, ProfileStore, TenantProfile, resolve_profile
from .reporting import (
    export_csv,
    export_json,
    export_markdown,
    print_summary,
    print_warnings,
)
from .safety.guardian import SafetyGuardian

logger = logging.getLogger("guest_mau_engine")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_ABORTED = 2


# --- profile sub-commands ----------------------------------------------------

def _profile_list(store: ProfileStore, args: argparse.Namespace) -> int:
    profiles = store.list_profiles()
    if not profiles:
        print("No profiles configured. Add one with:\n")
        print("  python -m guest_mau_engine profile add <name> --tenant-id <GUID> --client-id <GUID>")
        return EXIT_OK

    print(f"\n  {'Name':<28s} {'Tenant ID':<38s} {'Auth':<12s} Default")
    print(f"  {'-' * 28} {'-' * 38} {'-' * 12} -------")
    for p in profiles:
        label = f"{p.name} ({p.tenant_display_name})" if p.tenant_display_name else p.name
        marker = "*" if p.name == store.default_profile else ""
        print(f"  {label:<28s} {p.tenant_id:<38s} {p.auth_mode:<12s} {marker}")
    print()
    return EXIT_OK


def _profile_add(store: ProfileStore, args: argparse.Namespace) -> int:
    replacing = store.get(args.profile_name) is not None
    make_default = args.set_default or not store.profiles
    store.add(
        TenantProfile(
            name=args.profile_name,
            tenant_id=args.tenant_id,
            client_id=args.client_id,
            auth_mode=args.auth_mode,
            cert_path=args.cert_path or DEFAULT_CERT_PATH,
            tenant_display_name=args.display_name or "",
            notes=args.notes or "",
        ),
        set_default=make_default,
    )
    verb = "Updated" if replacing else "Saved"
    print(f"  ✅ {verb} profile '{args.profile_name}'{' (default)' if make_default else ''}.")
    return EXIT_OK


def _profile_remove(store: ProfileStore, args: argparse.Namespace) -> int:
    if not store.remove(args.profile_name):
        print(f"  ❌ No profile named '{args.profile_name}'.")
        return EXIT_FATAL
    print(f"  ✅ Removed profile '{args.profile_name}'.")
    return EXIT_OK


def _profile_set_default(store: ProfileStore, args: argparse.Namespace) -> int:
    if not store.set_default(args.profile_name):
        print(f"  ❌ No profile named '{args.profile_name}'.")
        return EXIT_FATAL
    print(f"  ✅ '{args.profile_name}' is now the default profile.")
    return EXIT_OK


PROFILE_ACTIONS = {
    "list": _profile_list,
    "add": _profile_add,
    "remove": _profile_remove,
    "set-default": _profile_set_default,
}


def _cmd_profile(args: argparse.Namespace) -> int:
    action = PROFILE_ACTIONS.get(args.profile_action)
    if action is None:
        print("Usage: python -m guest_mau_engine profile {add|list|remove|set-default}")
        return EXIT_OK
    return action(ProfileStore.load(), args)


def _add_profile_parser(subparsers) -> None:
    profile = subparsers.add_parser("profile", help="Manage saved tenant profiles")
    actions = profile.add_subparsers(dest="profile_action")

    add = actions.add_parser("add", help="Save a tenant profile (replaces one with the same name)")
    add.add_argument("profile_name", help="Short name, e.g. contoso-prod")
    add.add_argument("--tenant-id", required=True, help="Entra tenant ID")
    add.add_argument("--client-id", required=True, help="App registration (client) ID")
    add.add_argument("--auth-mode", choices=["certificate", "delegated"], default="certificate")
    add.add_argument("--cert-path", default=DEFAULT_CERT_PATH,
                     help=f"Base64-encoded PFX for certificate mode (default: {DEFAULT_CERT_PATH})")
    add.add_argument("--display-name", help="Tenant name printed in reports")
    add.add_argument("--notes")
    add.add_argument("--set-default", action="store_true")

    actions.add_parser("list", help="Show saved profiles")
    for name, help_text in (("remove", "Delete a profile"), ("set-default", "Make a profile the default")):
        actions.add_parser(name, help=help_text).add_argument("profile_name")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="guest_mau_engine",
        description="Estimate guest MAU billing exposure for Entra ID Governance (read-only)",
    )
    _add_profile_parser(parser.add_subparsers(dest="command"))

    parser.add_argument("--profile", "-p", help="Saved tenant profile to use")
    parser.add_argument("--config", "-c", type=Path, help="JSON configuration file")
    parser.add_argument("--delegated", action="store_true", help="Sign in with the device-code flow")
    parser.add_argument("--cert-path", type=Path, help="Base64-encoded PFX (overrides profile/config)")
    parser.add_argument("--tenant-id", help="Tenant ID (overrides profile/config)")
    parser.add_argument("--client-id", help="Client ID (overrides profile/config)")
    parser.add_argument("--tenant-name", help="Tenant name printed in reports")
    parser.add_argument("--period-start",
                        help="Billing period start, YYYY-MM-DD (default: first day of this month, UTC)")
    parser.add_argument("--output-dir", "-o", type=Path,
                        help="Report directory (default: ./guest_mau_report_<timestamp>)")
    parser.add_argument("--formats", nargs="*", choices=["json", "csv", "markdown"],
                        help="Report formats (default: json csv markdown)")
    parser.add_argument("--yes", "-y", action="store_true",
                        help="Continue without asking when a dependency could not be acquired")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    """
    Per-item problems (unparsable dates, retrieval and acquisition failures,
    throttling) are logged at INFO; without --verbose they reach the user only
    through the Warnings section printed at the end of the run.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


def _credentials(
    args: argparse.Namespace,
    config: EngineConfig,
    profile: Optional[TenantProfile],
) -> tuple[str, str, str]:
    """Tenant id, client id and certificate path, CLI flags winning."""
    cli_cert = str(args.cert_path) if args.cert_path else None
    if profile:
        return (
            args.tenant_id or profile.tenant_id,
            args.client_id or profile.client_id,
            cli_cert or profile.resolve_cert_path(),
        )
    if args.tenant_id and args.client_id:
        return args.tenant_id, args.client_id, cli_cert or DEFAULT_CERT_PATH

    configured = config.auth.certificate or config.auth.delegated
    if configured is None:
        raise ConfigurationError(
            "No tenant credentials found. Use --profile <name>, "
            "--tenant-id X --client-id Y, or --config config.json."
        )
    file_cert = config.auth.certificate.certificate_path if config.auth.certificate else DEFAULT_CERT_PATH
    return (
        args.tenant_id or configured.tenant_id,
        args.client_id or configured.client_id,
        cli_cert or file_cert,
    )


def build_config(args: argparse.Namespace) -> tuple[EngineConfig, Optional[TenantProfile]]:
    """
    Merge the config file, the tenant profile and CLI flags (in rising
    precedence). Raises ConfigurationError.
    """
    config = EngineConfig.from_file(args.config) if args.config else EngineConfig()

    profile = None
    if args.profile:
        profile = resolve_profile(args.profile)
        if profile is None:
            raise ConfigurationError(
                f"Profile '{args.profile}' not found. Use 'profile list' to see available profiles."
            )
    elif not args.config and not args.tenant_id:
        profile = resolve_profile()

    if args.delegated or (profile and profile.auth_mode == "delegated"):
        config.auth.mode = "delegated"

    tenant_id, client_id, cert_path = _credentials(args, config, profile)
    if config.auth.mode == "delegated":
        config.auth.delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id)
    else:
        existing = config.auth.certificate
        config.auth.certificate = CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=cert_path,
            certificate_password=existing.certificate_password if existing else "",
        )

    if args.period_start:
        config.analysis.period_start = parse_period_start(args.period_start)
    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    if args.formats is not None:
        config.output.formats = list(args.formats)
    config.assume_yes = config.assume_yes or args.yes
    config.verbose = config.verbose or args.verbose
    return config, profile


def resolve_tenant_name(args: argparse.Namespace, profile: Optional[TenantProfile]) -> str:
    if args.tenant_name:
        return args.tenant_name
    if profile and profile.tenant_display_name:
        return profile.tenant_display_name
    return "Unknown Tenant"


def make_acquirer(graph: GraphClient, authenticator: Authenticator) -> Acquirer:
    """Acquisition step for a missing stable dependency: fresh token, then re-probe."""
    async def acquire(dependency: str) -> None:
        graph.set_access_token(await authenticator.refresh_token())
        if not await probe_dependency(graph, STABLE, dependency):
            permission = DEPENDENCY_PERMISSIONS.get(dependency, "the required permission")
            raise DependencyAcquisitionError(
                f"still unavailable with a fresh token; grant admin consent for {permission}"
            )
    return acquire


async def choose_surface(
    graph: GraphClient,
    acquire: Optional[Acquirer],
) -> SurfaceSelection:
    """Probe both surfaces and make the one-time surface decision."""
    stable = await probe_surface(graph, STABLE)
    preview = await probe_surface(graph, PREVIEW)
    selection = select_surface(stable, preview)
    return await acquire_missing(selection, acquire)


def confirm_continue(
    selection: SurfaceSelection,
    assume_yes: bool,
    prompt: Callable[[str], str] = input,
) -> bool:
    """Ask the operator whether to continue after acquisition failures."""
    if not selection.requires_confirmation:
        return True
    print("\n  ⚠  Some dependencies could not be acquired:")
    for issue in selection.issues:
        print(f"      - {issue.message}")
    if assume_yes:
        print("  Continuing (--yes).")
        return True
    try:
        answer = prompt("  Continue anyway? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


async def run_collection(
    surface: DirectorySurface,
    config: EngineConfig,
    period_start: datetime,
) -> tuple[CollectorResult, CollectorResult]:
    """Run the guest and audit-log collectors one after the other."""
    guest_result = await GuestCollector(surface, config.analysis).execute()
    print(f"  ✅ Guests: {len(guest_result.data.get('guests', []))} accounts "
          f"({guest_result.metadata['duration_seconds']}s)")

    audit_result = await AuditLogCollector(surface, config.analysis, period_start).execute()
    for feature in config.analysis.features:
        records = audit_result.data.get("records", {}).get(feature.key, [])
        failed = any(i.category == feature.key for i in audit_result.issues)
        marker = "⚠ " if failed else "✅"
        print(f"  {marker} {feature.display_name}: {len(records)} audit records")
    return guest_result, audit_result


REPORT_WRITERS = {
    "json": ("📄 JSON", export_json),
    "csv": ("📊 CSV", export_csv),
    "markdown": ("📝 Markdown", export_markdown),
}


def generate_reports(
    report: MauReport,
    output_dir: Path,
    run_id: str,
    formats: list[str],
) -> list[Path]:
    """Write each requested format, in json/csv/markdown order."""
    created: list[Path] = []
    for fmt, (label, writer) in REPORT_WRITERS.items():
        if fmt not in formats:
            continue
        written = writer(report, output_dir, run_id)
        for path in written if isinstance(written, list) else [written]:
            print(f"  {label + ':':<14s}{path}")
            created.append(path)
    return created


def _phase(title: str) -> None:
    print("\n" + "=" * 70)
    print(f" {title}")
    print("=" * 70 + "\n")


async def main_async(argv: Optional[list[str]] = None) -> int:
    """Async entry point. Returns the process exit code."""
    args = parse_args(argv)

    if getattr(args, "command", None) == "profile":
        return _cmd_profile(args)

    configure_logging(args.verbose)

    guardian = SafetyGuardian()
    guardian.print_banner()
    print(f" Guest MAU Exposure Engine v{__version__}")

    try:
        config, profile = build_config(args)
    except ConfigurationError as e:
        print(f"\n❌ {e}")
        return EXIT_FATAL

    run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]
    output_dir = config.output.report_dir
    tenant_name = resolve_tenant_name(args, profile)
    period_start = config.analysis.period_start or current_period_start()

    via = f" via profile '{profile.name}'" if profile else ""
    print(f"\n📋 Run:     {run_id}")
    print(f"🏢 Tenant:  {tenant_name}{via}")
    print(f"📅 Period:  since {period_start:%Y-%m-%d %H:%M} UTC")
    print(f"📂 Reports: {output_dir.resolve()}")

    print(f"\n🔐 Signing in ({config.auth.mode})...")
    authenticator = Authenticator(config.auth)
    try:
        token = await authenticator.acquire_token()
    except AuthenticationError as e:
        print(f"❌ {e}")
        print("   The app registration needs these read-only Graph permissions:")
        for permission, purpose in Authenticator.list_required_permissions().items():
            print(f"     - {permission}: {purpose}")
        return EXIT_FATAL
    print("✅ Token acquired.")

    async with GraphClient(token, guardian, max_pages=config.analysis.max_pages) as graph:
        _phase("PHASE 1: API SURFACE SELECTION")
        selection = await choose_surface(graph, make_acquirer(graph, authenticator))
        print(f"  Surface: {selection.config.surface} "
              f"(users: {selection.config.user_endpoint}, "
              f"audit: {selection.config.audit_log_endpoint})")
        if not confirm_continue(selection, config.assume_yes):
            print("\n❌ Aborted by operator.")
            return EXIT_ABORTED

        surface = open_surface(
            selection.config,
            graph,
            page_size=config.analysis.page_size,
            audit_page_size=config.analysis.audit_page_size,
        )

        _phase("PHASE 2: DATA COLLECTION")
        guest_result, audit_result = await run_collection(surface, config, period_start)
        stats = graph.get_stats()

    _phase("PHASE 3: CLASSIFICATION")
    report = compute_report(
        tenant_name=tenant_name,
        features=config.analysis.features,
        guests=guest_result.data.get("guests", []),
        audit_records=audit_result.data.get("records", {}),
        period_start=period_start,
        total_users=guest_result.data.get("total_users"),
        guest_count=guest_result.data.get("guest_count"),
        surface=selection.config.surface,
        issues=[*selection.issues, *guest_result.issues, *audit_result.issues],
    )
    report.safety = {**guardian.get_audit_record(), **stats}
    print_summary(report)

    _phase("PHASE 4: REPORT GENERATION")
    created_files = generate_reports(report, output_dir, run_id, config.output.formats)

    _phase("WARNINGS")
    print_warnings(report)

    print("\n" + "=" * 70)
    print(" ESTIMATE COMPLETE")
    print("=" * 70)
    print(f"\n  Distinct billable guests: {report.billable_count}")
    print(f"  Reports written:          {len(created_files)} file(s) in {output_dir.resolve()}")
    print()
    return EXIT_OK


def main():
    """Synchronous entry point for `python -m guest_mau_engine`."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
