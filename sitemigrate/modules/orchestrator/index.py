"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Orchestrator

Walks a MigrationPlan one domain at a time:

    Pending -> (gate) -> SourceDump -> Stage -> Ship -> DNSUpdate -> Archive? -> Delete? -> Done
             `-> Skipped (gate in the future)
    any fatal step -> Failed

A domain that fails never stops the batch; the failure is recorded with the
stage it happened in and the loop moves on. Only configuration errors, raised
before the first domain is touched, escape run().
"""

import os
import threading
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sitemigrate.modules.archive import archive_site
from sitemigrate.modules.database import dump_database
from sitemigrate.modules.dns import DNSCutover
from sitemigrate.modules.endpoints import ResolvedSite, host_only
from sitemigrate.modules.gateway import CommandGateway, DryRunSession
from sitemigrate.modules.plan import MigrationPlan, PlanEntry
from sitemigrate.modules.removal import confirm, delete_site
from sitemigrate.modules.schedule import TimeResolver, build_gate
from sitemigrate.modules.transfer import StagingArea, TransferStager
from sitemigrate.utils.commands import command
from sitemigrate.utils.config import MigrationConfig, normalize_compression
from sitemigrate.utils.errors import (
    AdvisoryFailure, CommandError, ConfigurationError, InvalidScheduleFormat,
    MigrationError, ScheduleNotDue, SourceNotFoundError, TransferError, UserDeclined,
)
from sitemigrate.utils.index import log_message


class DomainState(str, Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    SOURCE_DUMP = "source_dump"
    STAGE = "stage"
    SHIP = "ship"
    DNS_UPDATE = "dns_update"
    ARCHIVE = "archive"
    DELETE = "delete"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = (DomainState.DONE, DomainState.FAILED, DomainState.SKIPPED, DomainState.CANCELLED)


@dataclass
class DomainResult:
    """Outcome of one plan entry."""
    domain: str
    source: str = ""
    target: str = ""
    state: DomainState = DomainState.PENDING
    stage: Optional[str] = None
    message: str = ""
    warnings: List[str] = field(default_factory=list)
    deletion: Optional[str] = None
    target_path: Optional[str] = None

    def advance(self, state: DomainState, stage: Optional[str] = None) -> None:
        self.state = state
        self.stage = stage or state.value

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        log_message(f"{self.domain} [{self.stage}]: {message}", "WARNING")

    def fail(self, message: str, stage: Optional[str] = None) -> None:
        self.stage = stage or self.stage or self.state.value
        self.state = DomainState.FAILED
        self.message = message
        log_message(f"{self.domain} [{self.stage}]: {message}", "ERROR")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "from": self.source,
            "to": self.target,
            "state": self.state.value,
            "stage": self.stage,
            "message": self.message,
            "warnings": list(self.warnings),
            "deletion": self.deletion,
            "target_path": self.target_path,
        }


@dataclass
class RunSummary:
    """Every domain's terminal state, in plan order."""
    results: List[DomainResult] = field(default_factory=list)
    dry_run: bool = False

    def by_state(self, state: DomainState) -> List[DomainResult]:
        return [r for r in self.results if r.state == state]

    @property
    def counts(self) -> Dict[str, int]:
        return {state.value: len(self.by_state(state)) for state in TERMINAL_STATES}

    @property
    def succeeded(self) -> List[DomainResult]:
        return self.by_state(DomainState.DONE)

    @property
    def failed(self) -> List[DomainResult]:
        return self.by_state(DomainState.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "counts": self.counts,
            "results": [r.to_dict() for r in self.results],
        }

    def log_summary(self) -> None:
        log_message("=" * 60)
        title = "MIGRATION SUMMARY (DRY RUN)" if self.dry_run else "MIGRATION SUMMARY"
        log_message(title)
        for r in self.results:
            line = f"  {r.domain}: {r.state.value}"
            if r.state in (DomainState.FAILED, DomainState.SKIPPED, DomainState.CANCELLED) and r.message:
                line += f" [{r.stage}] {r.message}" if r.stage else f" {r.message}"
            log_message(line, "ERROR" if r.state == DomainState.FAILED else "INFO")
            for warning in r.warnings:
                log_message(f"    warning: {warning}", "WARNING")
        counts = self.counts
        log_message(", ".join(f"{k}: {v}" for k, v in counts.items()))
        log_message("=" * 60)


Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Orchestrator:
    """
    Runs a migration plan against the configured hosts.

    Collaborators are injectable so that tests (and callers embedding the
    orchestrator) can replace SSH, rsync, the DNS provider and the prompt.
    """

    def __init__(self, config: MigrationConfig, gateway: Optional[CommandGateway] = None,
                 stager: Optional[TransferStager] = None, dns: Optional[DNSCutover] = None,
                 prompt: Optional[Callable[[str], bool]] = None, resolver: Optional[TimeResolver] = None,
                 clock: Optional[Clock] = None):
        self.config = config
        self.gateway = gateway or CommandGateway(config.ssh)
        self.stager = stager or TransferStager(config.ssh, config.rsync)
        self.dns = dns or DNSCutover(config.dns)
        self.prompt = prompt or confirm
        self.resolver = resolver or TimeResolver()
        self.clock = clock or _utc_now
        self._validate()

    def _validate(self) -> None:
        """Reject configuration that would fail every domain, before any is touched."""
        if self.config.global_delay is not None:
            try:
                self.resolver.resolve(self.config.global_delay, self.clock())
            except InvalidScheduleFormat as e:
                raise ConfigurationError(f"Invalid global delay '{self.config.global_delay}': {e.message}")
        if self.config.archive.enabled:
            normalize_compression(self.config.archive.compression)

    def run(self, plan: MigrationPlan, cancel_event: Optional[threading.Event] = None) -> RunSummary:
        """
        Process every plan entry in order.

        Args:
            plan: the plan to execute; it is never modified
            cancel_event: when set, domains not yet started are reported as cancelled

        Returns:
            RunSummary: one result per domain
        """
        plan = plan.with_default_delay(self.config.global_delay)
        summary = RunSummary(dry_run=self.config.dry_run)
        mode = " (dry run)" if self.config.dry_run else ""
        log_message(f"Starting migration of {len(plan)} domain(s){mode}")

        for domain, entry in plan.items():
            if cancel_event is not None and cancel_event.is_set():
                result = DomainResult(domain=domain, source=entry.source, target=entry.target,
                                      state=DomainState.CANCELLED, message="cancelled before start")
                log_message(f"[CANCEL] {domain}: not started", "WARNING")
                summary.results.append(result)
                continue
            summary.results.append(self.migrate_domain(domain, entry))

        summary.log_summary()
        return summary

    def migrate_domain(self, domain: str, entry: PlanEntry) -> DomainResult:
        """Run one entry to a terminal state; never raises."""
        result = DomainResult(domain=domain, source=entry.source, target=entry.target)
        log_message(f"Migrating {domain}: {entry.source} -> {entry.target}")
        try:
            result.stage = "schedule"
            gate = build_gate(entry.delay_until, self.resolver, self.clock())
            if gate is not None:
                gate.check(domain, self.clock())
                log_message(f"[SCHEDULE] {domain}: gate {gate.when.isoformat()} has passed", "DEBUG")

            result.stage = "resolve"
            site = ResolvedSite.resolve(domain, entry.source, entry.target, self.config.sites_root)
            result.target_path = site.target_site_path

            if self.config.dry_run:
                self._dry_run(site, result)
            else:
                self._execute(site, result)
        except ScheduleNotDue as e:
            result.state = DomainState.SKIPPED
            result.stage = "schedule"
            result.message = e.message
            log_message(f"[SCHEDULE] {domain}: skipped, {e.message}")
        except MigrationError as e:
            result.fail(e.message, e.stage)
        except Exception as e:
            result.fail(f"unexpected error: {e}")
        return result

    def _dry_run(self, site: ResolvedSite, result: DomainResult) -> None:
        cfg = self.config
        domain = site.domain
        source = DryRunSession(site.source_host)
        target_label = site.target_host or "local"

        result.advance(DomainState.SOURCE_DUMP)
        dump_database(source, domain, site.source_path, cfg.database, dry_run=True)

        result.advance(DomainState.STAGE)
        if site.source.is_local:
            log_message(f"[DRY RUN] {domain}: local source, no staging")
        else:
            src = site.source.remote_spec(site.source_path + "/", default_user=cfg.ssh.user)
            log_message(f"[DRY RUN] {domain}: would stage {src} into a temporary directory")

        result.advance(DomainState.SHIP)
        dst = site.target.remote_spec(site.target_site_path, default_user=cfg.ssh.user)
        log_message(f"[DRY RUN] {domain}: would rsync to {dst} (ssh: {cfg.ssh.rsync_shell()})")

        result.advance(DomainState.DNS_UPDATE)
        if cfg.dns.has_credentials:
            log_message(f"[DRY RUN] {domain}: would point the A record at {host_only(site.target_host)} "
                        f"(ttl {cfg.dns.ttl}, proxied {cfg.dns.proxied})")
        else:
            log_message(f"[DRY RUN] {domain}: would skip the DNS update (no Cloudflare credentials)")

        if cfg.archive.enabled:
            result.advance(DomainState.ARCHIVE)
            archive_site(source, domain, site.source_path, cfg.archive, dry_run=True, now=datetime.now())

        if cfg.delete:
            result.advance(DomainState.DELETE)
            if cfg.archive.enabled:
                log_message(f"[DRY RUN] {domain}: {site.source_path} would already be in the archive, "
                            f"nothing to delete")
            else:
                delete_site(source, domain, site.source_path, force=cfg.force_delete, prompt=self.prompt,
                            dry_run=True)
            result.deletion = "dry-run"

        result.advance(DomainState.DONE)
        result.stage = None
        log_message(f"[DRY RUN] {domain}: next on {target_label}: cd {site.target_site_path} && "
                    f"{cfg.post_migration_command}")

    def _check_source(self, session, site: ResolvedSite) -> None:
        if session.is_local:
            found = os.path.isdir(site.source_path)
        else:
            found = session.run(command("test", "-d", site.source_path)).ok
        if not found:
            where = "locally" if session.is_local else f"on source {site.source_host}"
            raise SourceNotFoundError(f"{site.source_path}: not found {where}",
                                      domain=site.domain, stage="source_check")

    def _execute(self, site: ResolvedSite, result: DomainResult) -> None:
        cfg = self.config
        domain = site.domain

        with ExitStack() as sessions:
            result.stage = "connect_source"
            source = sessions.enter_context(self.gateway.open(site.source_host))

            result.stage = "source_check"
            self._check_source(source, site)

            result.advance(DomainState.SOURCE_DUMP)
            if not dump_database(source, domain, site.source_path, cfg.database):
                result.warn("database export failed; shipping the existing files as they are")

            result.stage = "connect_target"
            target = sessions.enter_context(self.gateway.open(site.target_host))

            with ExitStack() as staging:
                ship_from = site.source_path
                result.advance(DomainState.STAGE)
                if not site.source.is_local:
                    staged = staging.enter_context(StagingArea(domain, cfg.staging_root))
                    ship_from = self.stager.stage(site, staged)
                else:
                    log_message(f"[TRANSFER] {domain}: local source, shipping directly", "DEBUG")

                result.advance(DomainState.SHIP)
                parent = os.path.dirname(site.target_site_path)
                created = target.run(command("mkdir", "-p", parent))
                if not created.ok:
                    raise TransferError(f"cannot create {parent} on target: {created.error}",
                                        domain=domain, stage="ship")
                self.stager.ship(ship_from, site)

            result.advance(DomainState.DNS_UPDATE)
            self._cutover(site, result)

            archived = False
            if cfg.archive.enabled:
                result.advance(DomainState.ARCHIVE)
                try:
                    archive_site(source, domain, site.source_path, cfg.archive, now=datetime.now())
                    archived = True
                except AdvisoryFailure as e:
                    result.warn(e.message)

            if cfg.delete:
                result.advance(DomainState.DELETE)
                if archived:
                    log_message(f"[DELETE] {domain}: {site.source_path} was moved to the archive, nothing to delete")
                    result.deletion = "archived"
                else:
                    self._delete(source, site, result)

        result.advance(DomainState.DONE)
        result.stage = None
        follow_up = host_only(site.target_host) or "local"
        log_message(f"Migration finished for {domain}. Next on {follow_up}: "
                    f"cd {site.target_site_path} && {cfg.post_migration_command}")

    def _cutover(self, site: ResolvedSite, result: DomainResult) -> None:
        if not self.config.dns.has_credentials:
            log_message(f"[DNS] {site.domain}: Cloudflare credentials missing; skipping DNS update")
            return
        try:
            self.dns.update_record(site.domain, host_only(site.target_host))
        except AdvisoryFailure as e:
            result.warn(f"DNS update failed: {e.message}")

    def _delete(self, session, site: ResolvedSite, result: DomainResult) -> None:
        try:
            result.deletion = delete_site(session, site.domain, site.source_path, force=self.config.force_delete,
                                          prompt=self.prompt)
        except UserDeclined:
            result.deletion = "declined"
        except CommandError as e:
            result.deletion = "failed"
            result.warn(e.message)
