#!/usr/bin/env python3
"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import argparse
import json
import signal
import sys
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from dotenv import load_dotenv

from sitemigrate.modules.endpoints import ResolvedSite
from sitemigrate.modules.orchestrator import Orchestrator
from sitemigrate.modules.plan import MigrationPlan, build_plan
from sitemigrate.modules.schedule import TimeResolver
from sitemigrate.utils.config import COMPRESSION_KINDS, MigrationConfig, load_migration_config
from sitemigrate.utils.errors import ConfigurationError, InvalidScheduleFormat
from sitemigrate.utils.index import (
    get_debug_mode,
    get_package_version,
    load_root_config,
    log_message,
    setup_migration_logging,
)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_INTERRUPTED = 130


def _common_arguments() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--plan", metavar="PATH",
                        help="JSON or YAML plan file mapping domain -> {from, to, delayUntil}")
    common.add_argument("--sites", metavar="GLOB",
                        help="Glob of site directories under the sites root (e.g. '[a-c]*.com')")
    common.add_argument("--target", metavar="HOST",
                        help="Target host for --sites, and the default 'to' for plan entries without one")
    common.add_argument("--sites-root", metavar="DIR",
                        help="Root holding site directories (default: /var/opt)")
    common.add_argument("--set-global-delay", metavar="WHEN",
                        help="Delay applied to every entry without delayUntil (e.g. 'in 2h', 'tomorrow 9am')")
    common.add_argument("--env-file", metavar="PATH",
                        help="Load environment variables (Cloudflare credentials etc.) from this file")
    common.add_argument("-v", "--verbose", action="store_true",
                        help="Show debug output")
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_arguments()
    parser = argparse.ArgumentParser(prog="sitemigrate", description="Site Migration Orchestrator")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_package_version()}")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    migrate = sub.add_parser("migrate", parents=[common],
                             help="Migrate sites, cut over DNS, archive or delete the source")
    migrate.add_argument("--dry-run", action="store_true",
                         help="Log every action without executing any of them")
    migrate.add_argument("--archive-dir", metavar="DIR",
                         help="Move the source directory here after migration")
    migrate.add_argument("--archive-with-timestamp", action="store_true",
                         help="Append a timestamp to the archived directory name")
    migrate.add_argument("--compress-archive", action="store_true",
                         help="Also create a compressed tarball in the archive directory")
    migrate.add_argument("--archive-compression", choices=sorted(COMPRESSION_KINDS), default=None,
                         help="Compression for --compress-archive (default: xz)")
    migrate.add_argument("--delete", action="store_true",
                         help="Delete the source after migration (asks first)")
    migrate.add_argument("--force-delete", action="store_true",
                         help="Delete the source without asking (implies --delete)")
    migrate.add_argument("--cf-email", help="Cloudflare account email (default: CLOUDFLARE_EMAIL)")
    migrate.add_argument("--cf-key", help="Cloudflare global API key (default: CLOUDFLARE_API_KEY)")
    migrate.add_argument("--cf-token", help="Cloudflare API token (default: CLOUDFLARE_API_TOKEN)")
    migrate.add_argument("--dns-proxied", dest="dns_proxied", action="store_true", default=None,
                         help="Mark updated records as proxied (default)")
    migrate.add_argument("--no-dns-proxied", dest="dns_proxied", action="store_false", default=None,
                         help="Mark updated records as DNS-only")
    migrate.add_argument("--dns-ttl", type=int, help="TTL for updated records (default: 120)")
    migrate.add_argument("-u", "--user", help="SSH user when a host has no user@ prefix (default: root)")
    migrate.add_argument("-p", "--port", type=int, help="SSH port (default: 22)")
    migrate.add_argument("-k", "--key", help="SSH private key path")
    migrate.add_argument("--no-agent", action="store_true", help="Do not use the SSH agent")
    migrate.add_argument("-t", "--timeout", type=float, help="SSH connection timeout in seconds (default: 30)")
    migrate.add_argument("--staging-dir", metavar="DIR",
                         help="Parent directory for temporary staging areas (default: system temp)")

    plan = sub.add_parser("plan", parents=[common],
                          help="Show the resolved plan without touching any host")
    plan.add_argument("--json", action="store_true", help="Print the plan as JSON on stdout")
    return parser


@contextmanager
def cancellation_handler(cancel_event: threading.Event) -> Iterator[threading.Event]:
    """
    First SIGINT/SIGTERM: finish the current domain, start no new ones.
    Second SIGINT: raise KeyboardInterrupt immediately.
    """
    def handle(signum, frame):
        if cancel_event.is_set() and signum == signal.SIGINT:
            raise KeyboardInterrupt
        cancel_event.set()
        log_message("Interrupt received: finishing the current domain, no new domains will start "
                    "(press Ctrl+C again to abort)", "WARNING")

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, handle)
        except ValueError:
            # not the main thread
            pass
    try:
        yield cancel_event
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def load_plan(args, config: MigrationConfig) -> MigrationPlan:
    return build_plan(plan_path=args.plan, sites_glob=args.sites, target_host=config.default_target,
                      base_root=config.sites_root)


def show_plan(plan: MigrationPlan, config: MigrationConfig, as_json: bool = False) -> None:
    """Print each entry with its resolved paths and gate status."""
    resolver = TimeResolver()
    now = datetime.now(timezone.utc)
    plan = plan.with_default_delay(config.global_delay)
    rows = []
    for domain, entry in plan.items():
        site = ResolvedSite.resolve(domain, entry.source, entry.target, config.sites_root)
        if entry.delay_until is None:
            gate = "due"
        else:
            try:
                when = resolver.resolve(entry.delay_until, now)
                gate = "due" if now >= when else f"scheduled for {when.isoformat()}"
            except InvalidScheduleFormat as e:
                gate = f"invalid schedule: {e.message}"
        rows.append({
            "domain": domain,
            "from": entry.source,
            "to": entry.target,
            "delayUntil": entry.delay_until,
            "source_path": site.source_path,
            "target_path": site.target_site_path,
            "gate": gate,
        })

    if as_json:
        print(json.dumps(rows, indent=2))
        return
    log_message(f"Plan: {len(rows)} domain(s)")
    for row in rows:
        log_message(f"  {row['domain']}")
        log_message(f"    from: {row['from'] or 'local'}:{row['source_path']}")
        log_message(f"    to:   {row['to']}:{row['target_path']}")
        log_message(f"    gate: {row['gate']}")


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        int: 0 for a completed run (per-domain failures included), 1 for
        configuration errors, 130 when aborted by a second interrupt
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.env_file:
        load_dotenv(args.env_file, override=False)
    else:
        load_dotenv()

    root_config = load_root_config()
    setup_migration_logging(verbose=args.verbose or get_debug_mode(root_config))

    try:
        config = load_migration_config(args, root_config=root_config)
        log_message(f"Configuration: {json.dumps(config.to_dict(), default=str)}", "DEBUG")
        plan = load_plan(args, config)

        if args.command == "plan":
            show_plan(plan, config, as_json=args.json)
            return EXIT_OK

        orchestrator = Orchestrator(config)
        with cancellation_handler(threading.Event()) as cancel_event:
            summary = orchestrator.run(plan, cancel_event=cancel_event)
        if summary.failed:
            log_message(f"{len(summary.failed)} domain(s) failed; see the summary above", "WARNING")
        return EXIT_OK

    except ConfigurationError as e:
        log_message(f"Configuration error: {e}", "ERROR")
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        log_message("Migration interrupted by user", "WARNING")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
