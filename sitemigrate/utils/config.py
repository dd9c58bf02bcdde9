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

"""
Migration Configuration

One MigrationConfig is built per invocation and handed to the plan builder and
the orchestrator. Values are layered: shipped index.json defaults, then the
process environment (after any .env file has been loaded), then CLI flags.

Usage:
    from sitemigrate.utils.config import load_migration_config

    config = load_migration_config(args)
    orchestrator = Orchestrator(config)
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Mapping, Optional, Tuple

from .commands import command
from .errors import ConfigurationError
from .index import load_root_config

DEFAULT_SITES_ROOT = "/var/opt"

# accepted spelling -> (canonical kind, tar flag, file extension)
COMPRESSION_KINDS = {
    "xz": ("xz", "-J", "xz"),
    "gz": ("gz", "-z", "gz"),
    "gzip": ("gz", "-z", "gz"),
}


def normalize_compression(kind: str) -> str:
    """Return the canonical compression kind or raise ConfigurationError."""
    key = (kind or "").strip().lower()
    if key not in COMPRESSION_KINDS:
        supported = ", ".join(sorted(COMPRESSION_KINDS))
        raise ConfigurationError(f"Unsupported archive compression '{kind}' (supported: {supported})")
    return COMPRESSION_KINDS[key][0]


@dataclass(frozen=True)
class SSHOptions:
    """Connection parameters shared by the SSH sessions and the rsync transport."""
    user: str = "root"
    port: int = 22
    key_path: Optional[str] = None
    timeout: float = 30.0
    use_agent: bool = True

    def rsync_shell(self) -> str:
        """The remote shell handed to rsync -e."""
        args = []
        if self.port and int(self.port) != 22:
            args += ["-p", str(self.port)]
        if self.key_path:
            args += ["-i", os.path.expanduser(self.key_path)]
        if self.timeout:
            args += ["-o", f"ConnectTimeout={int(self.timeout)}"]
        return command("ssh", *args).render()


@dataclass(frozen=True)
class RsyncOptions:
    binary: str = "rsync"
    flags: Tuple[str, ...] = ("-az", "--delete")
    timeout: Optional[float] = None


@dataclass(frozen=True)
class DatabaseOptions:
    service_prefix: str = "wp_"
    compose_file: str = "docker-compose.yml"
    export_path: str = "/var/www/html/wp-content/mysql.sql"
    timeout: Optional[float] = 600


@dataclass(frozen=True)
class DNSOptions:
    """Cloudflare credentials plus the record policy applied on cutover."""
    email: Optional[str] = None
    api_key: Optional[str] = None
    api_token: Optional[str] = None
    api_base: str = "https://api.cloudflare.com/client/v4"
    ttl: int = 120
    proxied: bool = True
    timeout: float = 15.0
    resolver_timeout: float = 5.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_token) or bool(self.email and self.api_key)


@dataclass(frozen=True)
class ArchiveOptions:
    directory: Optional[str] = None
    with_timestamp: bool = False
    compress: bool = False
    compression: str = "xz"
    timestamp_format: str = "%Y%m%d-%H%M%S"

    @property
    def enabled(self) -> bool:
        return bool(self.directory)


@dataclass(frozen=True)
class MigrationConfig:
    """Read-only configuration threaded through every step of a run."""
    sites_root: str = DEFAULT_SITES_ROOT
    staging_root: Optional[str] = None
    dry_run: bool = False
    delete: bool = False
    force_delete: bool = False
    global_delay: Optional[str] = None
    default_target: Optional[str] = None
    post_migration_command: str = "docker compose up -d"
    debug: bool = False
    ssh: SSHOptions = field(default_factory=SSHOptions)
    rsync: RsyncOptions = field(default_factory=RsyncOptions)
    database: DatabaseOptions = field(default_factory=DatabaseOptions)
    dns: DNSOptions = field(default_factory=DNSOptions)
    archive: ArchiveOptions = field(default_factory=ArchiveOptions)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # never echo secrets into logs
        for secret in ("api_key", "api_token"):
            if data["dns"].get(secret):
                data["dns"][secret] = "***"
        return data


def _pick(*values):
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def _env_bool(value: Optional[str]) -> Optional[bool]:
    if value is None or value == "":
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_migration_config(args: Any = None, env: Optional[Mapping[str, str]] = None,
                          root_config: Optional[Dict[str, Any]] = None) -> MigrationConfig:
    """
    Build the run configuration.

    Args:
        args: argparse namespace (or any object) carrying CLI overrides; missing
            attributes and None values fall through to lower layers
        env: environment mapping, defaults to os.environ
        root_config: parsed index.json, defaults to the shipped file

    Returns:
        MigrationConfig: the validated configuration

    Raises:
        ConfigurationError: on invalid values (e.g. unsupported compression)
    """
    if env is None:
        env = os.environ
    if root_config is None:
        root_config = load_root_config()

    def arg(name):
        return getattr(args, name, None) if args is not None else None

    cfg = root_config.get("config", {})
    paths = cfg.get("paths", {})
    ssh_cfg = cfg.get("ssh", {})
    rsync_cfg = cfg.get("rsync", {})
    db_cfg = cfg.get("database", {})
    dns_cfg = cfg.get("dns", {})
    archive_cfg = cfg.get("archive", {})

    try:
        ssh = SSHOptions(
            user=_pick(arg("user"), env.get("SITEMIGRATE_SSH_USER"), ssh_cfg.get("user"), "root"),
            port=int(_pick(arg("port"), env.get("SITEMIGRATE_SSH_PORT"), ssh_cfg.get("port"), 22)),
            key_path=_pick(arg("key"), env.get("SITEMIGRATE_SSH_KEY"), ssh_cfg.get("key_path")),
            timeout=float(_pick(arg("timeout"), ssh_cfg.get("timeout"), 30)),
            use_agent=not arg("no_agent") and bool(_pick(ssh_cfg.get("use_agent"), True)),
        )

        rsync_flags = rsync_cfg.get("flags") or ["-az", "--delete"]
        rsync = RsyncOptions(
            binary=rsync_cfg.get("binary") or "rsync",
            flags=tuple(rsync_flags),
            timeout=rsync_cfg.get("timeout"),
        )

        database = DatabaseOptions(
            service_prefix=db_cfg.get("service_prefix", "wp_"),
            compose_file=db_cfg.get("compose_file", "docker-compose.yml"),
            export_path=db_cfg.get("export_path", "/var/www/html/wp-content/mysql.sql"),
            timeout=db_cfg.get("timeout", 600),
        )

        proxied = _pick(arg("dns_proxied"), _env_bool(env.get("SITEMIGRATE_DNS_PROXIED")), dns_cfg.get("proxied"), True)
        dns = DNSOptions(
            email=_pick(arg("cf_email"), env.get("CLOUDFLARE_EMAIL") or None),
            api_key=_pick(arg("cf_key"), env.get("CLOUDFLARE_API_KEY") or None),
            api_token=_pick(arg("cf_token"), env.get("CLOUDFLARE_API_TOKEN") or None),
            api_base=dns_cfg.get("api_base", "https://api.cloudflare.com/client/v4").rstrip("/"),
            ttl=int(_pick(arg("dns_ttl"), dns_cfg.get("ttl"), 120)),
            proxied=bool(proxied),
            timeout=float(dns_cfg.get("timeout", 15)),
            resolver_timeout=float(dns_cfg.get("resolver_timeout", 5)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration value: {e}")

    compression = normalize_compression(_pick(arg("archive_compression"), archive_cfg.get("compression"), "xz"))
    archive = ArchiveOptions(
        directory=arg("archive_dir") or None,
        with_timestamp=bool(arg("archive_with_timestamp")),
        compress=bool(arg("compress_archive")),
        compression=compression,
        timestamp_format=archive_cfg.get("timestamp_format", "%Y%m%d-%H%M%S"),
    )

    force_delete = bool(arg("force_delete"))
    global_delay = arg("set_global_delay")
    if global_delay is not None and not str(global_delay).strip():
        raise ConfigurationError("--set-global-delay must not be empty; omit it for no delay")

    return MigrationConfig(
        sites_root=_pick(arg("sites_root"), env.get("SITEMIGRATE_SITES_ROOT") or None,
                         paths.get("sites_root"), DEFAULT_SITES_ROOT),
        staging_root=_pick(arg("staging_dir"), env.get("SITEMIGRATE_STAGING_ROOT") or None,
                           paths.get("staging_root")),
        dry_run=bool(arg("dry_run")),
        delete=bool(arg("delete")) or force_delete,
        force_delete=force_delete,
        global_delay=global_delay,
        default_target=arg("target") or None,
        post_migration_command=cfg.get("post_migration", {}).get("command", "docker compose up -d"),
        debug=bool(root_config.get("debug", False)),
        ssh=ssh,
        rsync=rsync,
        database=database,
        dns=dns,
        archive=archive,
    )
