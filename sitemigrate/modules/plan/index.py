"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Plan Builder

Produces the MigrationPlan a run works from, either by reading a plan document
or by expanding a directory-name glob under the sites root.

Plan document (JSON or YAML), keyed by domain:

    example.com:
      from: local
      to: wp18.example-host.com
      delayUntil: "in 2h"
    blog.example.net:
      from: user@old.server.com
      to: root@new.server.com:/srv/sites

Document parsing order:
    .json            -> JSON, then YAML
    anything else    -> YAML, then JSON
"""

import os
import glob
import json
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import yaml

from sitemigrate.utils.errors import PlanParseError
from sitemigrate.utils.index import log_message

LOCAL_SOURCE = "local"


@dataclass(frozen=True)
class PlanEntry:
    """One domain's migration instructions."""
    source: str = LOCAL_SOURCE
    target: str = ""
    delay_until: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"from": self.source, "to": self.target}
        if self.delay_until is not None:
            data["delayUntil"] = self.delay_until
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_target: Optional[str] = None) -> "PlanEntry":
        source = _as_text(data.get("from")) or LOCAL_SOURCE
        target = _as_text(data.get("to")) or (default_target or "")
        delay = _schedule_text(data.get("delayUntil", data.get("delay_until"))) or None
        return cls(source=source, target=target, delay_until=delay)


class MigrationPlan:
    """
    Read-only mapping of domain -> PlanEntry.

    A plan is never modified during a run; with_default_delay() returns a new
    plan instead.
    """

    def __init__(self, entries: Optional[Mapping[str, PlanEntry]] = None):
        self._entries: Dict[str, PlanEntry] = dict(entries or {})

    def __getitem__(self, domain: str) -> PlanEntry:
        return self._entries[domain]

    def __contains__(self, domain: object) -> bool:
        return domain in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MigrationPlan):
            return self._entries == other._entries
        return NotImplemented

    def __repr__(self) -> str:
        return f"MigrationPlan({self._entries!r})"

    def items(self) -> List[Tuple[str, PlanEntry]]:
        return list(self._entries.items())

    def domains(self) -> List[str]:
        return list(self._entries)

    def with_default_delay(self, delay: Optional[str]) -> "MigrationPlan":
        """Copy of this plan with delay filled into every entry that has none."""
        if not delay:
            return self
        return MigrationPlan({
            domain: entry if entry.delay_until else replace(entry, delay_until=delay)
            for domain, entry in self._entries.items()
        })

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {domain: entry.to_dict() for domain, entry in self._entries.items()}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _schedule_text(value: Any) -> str:
    """
    Text form of a delayUntil value.

    YAML turns unquoted timestamps into datetime or date objects. Naive ones
    are UTC in YAML, so they are written back as RFC 3339 with an explicit
    offset rather than read later as local time.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return _as_text(value)


def _load_json(text: str) -> Any:
    return json.loads(text)


def _load_yaml(text: str) -> Any:
    return yaml.safe_load(text)


def _decode_document(path: str, text: str) -> Any:
    ext = os.path.splitext(path)[1].lower()
    if ext == ".json":
        loaders = [("JSON", _load_json), ("YAML", _load_yaml)]
    else:
        loaders = [("YAML", _load_yaml), ("JSON", _load_json)]

    errors = []
    for name, loader in loaders:
        try:
            return loader(text)
        except (ValueError, yaml.YAMLError) as e:
            log_message(f"[PLAN] {path} is not valid {name}: {e}", "DEBUG")
            errors.append(f"{name}: {e}")
    raise PlanParseError(f"Plan {path} could not be parsed ({'; '.join(errors)})")


def plan_from_mapping(data: Any, default_target: Optional[str] = None, source: str = "plan") -> MigrationPlan:
    """
    Validate a decoded plan document and build the plan.

    Raises:
        PlanParseError: wrong shape, or an entry has no target and no default target was given
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PlanParseError(f"{source}: top-level value must be a mapping of domain to entry")

    entries = {}
    for domain, raw in data.items():
        domain = _as_text(domain)
        if not domain:
            raise PlanParseError(f"{source}: empty domain key")
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise PlanParseError(f"{source}: entry for {domain} must be a mapping with from/to/delayUntil")
        entry = PlanEntry.from_dict(raw, default_target=default_target)
        if not entry.target:
            raise PlanParseError(f"{source}: entry for {domain} has no 'to' and no --target was supplied")
        entries[domain] = entry
    return MigrationPlan(entries)


def plan_from_document(path: str, default_target: Optional[str] = None) -> MigrationPlan:
    """
    Read a plan document.

    Args:
        path: JSON or YAML file
        default_target: fills 'to' for entries that omit it

    Raises:
        PlanParseError: unreadable file or invalid content in both formats
    """
    try:
        with open(path, 'r') as f:
            text = f.read()
    except OSError as e:
        raise PlanParseError(f"Cannot read plan {path}: {e}")

    plan = plan_from_mapping(_decode_document(path, text), default_target=default_target, source=path)
    log_message(f"[PLAN] Loaded {len(plan)} entries from {path}")
    return plan


def plan_from_glob(pattern: str, target_host: str, base_root: str) -> MigrationPlan:
    """
    Expand a directory-name glob under base_root.

    Every matching directory becomes an entry from "local" to target_host. When
    nothing matches, the pattern itself is taken as a single literal domain.
    """
    matches = sorted(glob.glob(os.path.join(base_root, pattern)))
    if not matches:
        log_message(f"[PLAN] No directories under {base_root} match '{pattern}', treating it as a domain")
        return MigrationPlan({pattern: PlanEntry(source=LOCAL_SOURCE, target=target_host)})

    entries = {}
    for match in matches:
        if os.path.isdir(match):
            entries[os.path.basename(match)] = PlanEntry(source=LOCAL_SOURCE, target=target_host)
        else:
            log_message(f"[PLAN] Ignoring non-directory match {match}", "DEBUG")
    log_message(f"[PLAN] Glob '{pattern}' matched {len(entries)} site directories under {base_root}")
    return MigrationPlan(entries)


def build_plan(plan_path: Optional[str] = None, sites_glob: Optional[str] = None,
               target_host: Optional[str] = None, base_root: str = "/var/opt") -> MigrationPlan:
    """
    Build the plan from exactly one source: a plan document, or a glob plus target.

    Raises:
        PlanParseError: neither source is usable, or the document is invalid
    """
    if plan_path:
        return plan_from_document(plan_path, default_target=target_host)
    if sites_glob and target_host:
        return plan_from_glob(sites_glob, target_host, base_root)
    raise PlanParseError("Provide --plan or both --sites and --target")
