"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Archive Step

Moves a migrated site's source directory out of the live sites root into an
archive directory on the same host, optionally under a timestamped name and
optionally rolled into a single compressed tarball.

    mkdir -p <root> && mv <site> <root>/<name>
      (fallback) rsync -a <site>/ <root>/<name>/ && rm -rf <site>
    tar -cJf <root>/<name>.tar.xz -C <root> <name>     # xz
    tar -czf <root>/<name>.tar.gz -C <root> <name>     # gz / gzip
"""

import os
from datetime import datetime
from typing import Optional

from sitemigrate.utils.commands import command
from sitemigrate.utils.config import COMPRESSION_KINDS, ArchiveOptions, normalize_compression
from sitemigrate.utils.errors import AdvisoryFailure
from sitemigrate.utils.index import log_message


def archive_name(source_path: str, with_timestamp: bool = False, now: Optional[datetime] = None,
                 timestamp_format: str = "%Y%m%d-%H%M%S") -> str:
    base = os.path.basename(os.path.normpath(source_path))
    if not with_timestamp:
        return base
    now = now or datetime.now()
    return f"{base}-{now.strftime(timestamp_format)}"


def archive_site(session, domain: str, source_path: str, options: ArchiveOptions,
                 dry_run: bool = False, now: Optional[datetime] = None) -> Optional[str]:
    """
    Archive source_path on the host behind session.

    Returns:
        str: the archived directory (or tarball when compressing), None under dry run

    Raises:
        ConfigurationError: unsupported compression kind
        AdvisoryFailure: the move or the compression failed
    """
    kind = normalize_compression(options.compression)
    root = os.path.normpath(os.path.expanduser(options.directory))
    name = archive_name(source_path, options.with_timestamp, now, options.timestamp_format)
    destination = os.path.join(root, name)

    if dry_run:
        log_message(f"[DRY RUN] {domain}: would move {source_path} to {destination} on {session.host}")
        if options.compress:
            log_message(f"[DRY RUN] {domain}: would compress {destination} as {name}.tar.{COMPRESSION_KINDS[kind][2]}")
        return None

    log_message(f"[ARCHIVE] {domain}: moving {source_path} -> {destination} on {session.host}")
    move = command("mkdir", "-p", root).then(command("mv", source_path, destination))
    result = session.run(move)
    if not result.ok:
        log_message(f"[ARCHIVE] {domain}: move failed ({result.error}); falling back to copy and delete", "WARNING")
        fallback = (command("mkdir", "-p", root)
                    .then(command("rsync", "-a", source_path.rstrip("/") + "/", destination + "/"))
                    .then(command("rm", "-rf", source_path)))
        result = session.run(fallback)
        if not result.ok:
            raise AdvisoryFailure(f"could not archive {source_path}: {result.error}", domain=domain, stage="archive")

    if not options.compress:
        log_message(f"[ARCHIVE] ✓ {domain}: archived to {destination}")
        return destination

    _, tar_flag, ext = COMPRESSION_KINDS[kind]
    tarball = os.path.join(root, f"{name}.tar.{ext}")
    log_message(f"[ARCHIVE] {domain}: compressing {destination} -> {tarball}")
    result = session.run(command("tar", f"-c{tar_flag[1:]}f", tarball, "-C", root, name))
    if not result.ok:
        raise AdvisoryFailure(f"archived to {destination} but compression failed: {result.error}",
                              domain=domain, stage="archive")
    log_message(f"[ARCHIVE] ✓ {domain}: archived to {tarball}")
    return tarball
