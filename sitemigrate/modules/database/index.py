"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Database Export Step

Best-effort export of a site's database before its files are copied. The
site's compose descriptor names the application service; the export runs inside
that container and writes the dump next to the site's files, so the transfer
step carries it along. Nothing here is fatal: every failure is reported as a
warning and the migration goes on with whatever dump already exists.
"""

import os
from typing import Any, Dict, Optional, Tuple

import yaml

from sitemigrate.utils.commands import command
from sitemigrate.utils.config import DatabaseOptions
from sitemigrate.utils.index import log_message

DB_NAME_VARIABLE = "WORDPRESS_DB_NAME"


def _environment(service: Dict[str, Any]) -> Dict[str, str]:
    """Compose allows environment as a mapping or as a list of KEY=VALUE strings."""
    env = service.get("environment") or {}
    if isinstance(env, dict):
        return {str(k): "" if v is None else str(v) for k, v in env.items()}
    result = {}
    for item in env:
        key, _, value = str(item).partition("=")
        result[key] = value
    return result


def find_database_service(compose: Any, prefix: str = "wp_") -> Optional[Tuple[str, Optional[str]]]:
    """
    Locate the database-bearing service in a parsed compose document.

    Args:
        compose: parsed docker-compose.yml
        prefix: service-name prefix identifying the application service

    Returns:
        tuple: (container name, database name or None), or None if no service matches
    """
    if not isinstance(compose, dict):
        return None
    services = compose.get("services") or {}
    if not isinstance(services, dict):
        return None
    for name, service in services.items():
        if not str(name).startswith(prefix):
            continue
        service = service or {}
        container = service.get("container_name") or str(name)
        db_name = _environment(service).get(DB_NAME_VARIABLE) or None
        return container, db_name
    return None


def dump_database(session, domain: str, site_path: str, options: Optional[DatabaseOptions] = None,
                  dry_run: bool = False) -> bool:
    """
    Export the site's database through an open gateway session.

    Args:
        session: local or remote gateway session on the source host
        domain: domain being migrated (for log lines)
        site_path: site directory on the source host
        options: database export settings
        dry_run: only log what would run

    Returns:
        bool: True if a fresh dump was written (or would be, under dry run)
    """
    options = options or DatabaseOptions()
    compose_path = os.path.join(site_path, options.compose_file)

    if dry_run:
        log_message(f"[DRY RUN] {domain}: would export database via {compose_path} "
                    f"to {options.export_path} on {session.host}")
        return True

    result = session.run(command("cat", compose_path), timeout=options.timeout)
    if not result.ok:
        log_message(f"[DB] {domain}: cannot read {compose_path} on {session.host}; continuing without a fresh dump",
                    "WARNING")
        return False

    try:
        compose = yaml.safe_load(result.stdout)
    except yaml.YAMLError as e:
        log_message(f"[DB] {domain}: {compose_path} is not valid YAML ({e}); continuing without a fresh dump",
                    "WARNING")
        return False

    found = find_database_service(compose, options.service_prefix)
    if found is None:
        log_message(f"[DB] {domain}: no '{options.service_prefix}*' service in {compose_path}; "
                    f"continuing without a fresh dump", "WARNING")
        return False

    container, db_name = found
    log_message(f"[DB] {domain}: exporting database {db_name or '(default)'} from container {container}")
    # the official wordpress image builds wp-config from the environment
    env_flags = ["-e", f"{DB_NAME_VARIABLE}={db_name}"] if db_name else []
    export = command("docker", "exec", *env_flags, container, "wp", "db", "export", options.export_path, "--allow-root")
    result = session.run(export, timeout=options.timeout)
    if not result.ok:
        log_message(f"[DB] {domain}: database export failed: {result.error}; continuing with the existing dump",
                    "WARNING")
        return False

    log_message(f"[DB] ✓ {domain}: database exported to {options.export_path}")
    return True
