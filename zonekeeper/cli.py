"""Command line entry point"""
import argparse
import asyncio
import json
import sys
from typing import List, Optional

from zonekeeper.core.exceptions import ValidationError
from zonekeeper.core.log import setup_logging
from zonekeeper.schemas.fcrdns import FcrDnsResult
from zonekeeper.services.fcrdns_service import FcrDnsService
from zonekeeper.services.resolver import DnsLookup


def render_fcrdns(result: FcrDnsResult) -> str:
    status = "PASS" if result.passes() else "FAIL"
    lines = [
        f"FCrDNS {status}: {result.fqdn} <-> {result.ip}",
        f"  forward: {result.forward_ip or '-'}",
        f"  reverse: {result.reverse_fqdn or '-'}",
    ]
    lines.extend(f"  error [{issue.code}]: {issue.message}" for issue in result.errors)
    lines.extend(f"  warning [{issue.code}]: {issue.message}" for issue in result.warnings)
    return "\n".join(lines)


async def run_fcrdns(args, lookup: Optional[DnsLookup] = None) -> int:
    service = FcrDnsService(lookup or DnsLookup(nameservers=args.nameserver or None))
    try:
        if args.wait:
            await service.wait_for_propagation(args.fqdn, args.ip, max_wait_seconds=args.wait)
        result = await service.validate(args.fqdn, args.ip)
    except ValidationError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 2

    print(result.to_json() if args.json else render_fcrdns(result))
    return 0 if result.passes() else 1


async def run_sync(args) -> int:
    from zonekeeper.tasks.dns_tasks import _sync_all_providers_async, _sync_provider_async

    if args.provider is not None:
        summary = await _sync_provider_async(args.provider)
    else:
        summary = await _sync_all_providers_async()
    print(json.dumps(summary, indent=2, default=str))
    return 0 if not summary.get("errors") else 1


async def run_export(args) -> int:
    from zonekeeper.core.database import AsyncSessionLocal
    from zonekeeper.services.container import ServiceContainer
    from zonekeeper.services.export_service import ExportService
    from zonekeeper.services.zone_service import ZoneService

    container = ServiceContainer()
    try:
        async with AsyncSessionLocal() as db:
            zone = await ZoneService(db, container).find_zone(args.zone)
            if not zone:
                print(f"error: zone not found: {args.zone}", file=sys.stderr)
                return 1
            sys.stdout.write(await ExportService(db).to_bind(zone))
    finally:
        await container.close()
    return 0


async def run_provider_call(args) -> int:
    from zonekeeper.core.database import AsyncSessionLocal
    from zonekeeper.services.container import ServiceContainer
    from zonekeeper.services.provider_service import ProviderService

    container = ServiceContainer()
    try:
        async with AsyncSessionLocal() as db:
            service = ProviderService(db, container)
            if args.provider.isdigit():
                provider = await service.get_by_id(int(args.provider))
            else:
                provider = await service.get_by_name(args.provider)
            if not provider:
                print(f"error: provider not found: {args.provider}", file=sys.stderr)
                return 1
            if args.command == "stats":
                result = await service.server_stats(provider)
            else:
                result = await service.flush_cache(provider, args.domain)
    finally:
        await container.close()

    if not result.success:
        print(f"error: {result.message}", file=sys.stderr)
        return 1
    print(json.dumps(result.remote, indent=2, default=str))
    return 0


async def run_init_db(args) -> int:
    from zonekeeper.core.init import init_system

    return 0 if await init_system() else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zonekeeper", description="DNS zone and record manager")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    fcrdns = commands.add_parser("fcrdns", help="Check forward-confirmed reverse DNS")
    fcrdns.add_argument("fqdn", help="Hostname expected in the PTR record")
    fcrdns.add_argument("ip", help="IPv4 or IPv6 address")
    fcrdns.add_argument("--json", action="store_true", help="Print the result as JSON")
    fcrdns.add_argument("--wait", type=int, default=0, metavar="SECONDS",
                        help="Poll for up to SECONDS before the final check")
    fcrdns.add_argument("--nameserver", action="append", help="Resolver to query (repeatable)")
    fcrdns.set_defaults(handler=run_fcrdns)

    sync = commands.add_parser("sync", help="Reconcile local state with providers")
    sync.add_argument("--provider", type=int, help="Only this provider id")
    sync.set_defaults(handler=run_sync)

    export = commands.add_parser("export", help="Print a zone in BIND format")
    export.add_argument("zone", help="Zone name or id")
    export.set_defaults(handler=run_export)

    stats = commands.add_parser("stats", help="Print backend server statistics")
    stats.add_argument("provider", help="Provider name or id")
    stats.set_defaults(handler=run_provider_call)

    flush = commands.add_parser("flush-cache", help="Drop cached answers for a zone on the backend")
    flush.add_argument("provider", help="Provider name or id")
    flush.add_argument("domain", help="Zone name")
    flush.set_defaults(handler=run_provider_call)

    init_db = commands.add_parser("init-db", help="Create database tables")
    init_db.set_defaults(handler=run_init_db)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or ("WARNING" if args.command == "fcrdns" else None))
    return asyncio.run(args.handler(args))


if __name__ == "__main__":
    sys.exit(main())
