"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Transfer Stager

Moves a site directory between hosts with rsync. A remote source is first
pulled into a local staging area (rsync cannot copy between two remote hosts),
then the local copy is pushed to the target. The staging area belongs to one
domain and is removed when that domain's shipping is over, whatever happened.

Layout on disk:
    <staging_root>/sitemigrate-<domain>-XXXXXXXX/<domain>/   staged site tree
"""

import os
import shutil
import subprocess
import tempfile
from typing import Callable, List, Optional

from sitemigrate.modules.endpoints import ResolvedSite
from sitemigrate.utils.config import RsyncOptions, SSHOptions
from sitemigrate.utils.errors import TransferError
from sitemigrate.utils.index import log_message

Runner = Callable[..., subprocess.CompletedProcess]


class StagingArea:
    """
    Context manager owning one temporary directory for one domain.

    Usage:
        with StagingArea("example.com", staging_root) as staged_site:
            stager.stage(site, staged_site)
            stager.ship(staged_site, site)
    """

    def __init__(self, domain: str, root: Optional[str] = None):
        self.domain = domain
        self.root = root
        self.base: Optional[str] = None
        self.path: Optional[str] = None

    def __enter__(self) -> str:
        if self.root:
            os.makedirs(self.root, exist_ok=True)
        self.base = tempfile.mkdtemp(prefix=f"sitemigrate-{self.domain}-", dir=self.root)
        self.path = os.path.join(self.base, self.domain)
        os.makedirs(self.path)
        log_message(f"[TRANSFER] {self.domain}: staging area {self.path}", "DEBUG")
        return self.path

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False

    def cleanup(self) -> None:
        if self.base and os.path.exists(self.base):
            shutil.rmtree(self.base, ignore_errors=True)
            log_message(f"[TRANSFER] {self.domain}: removed staging area {self.base}", "DEBUG")
        self.base = None
        self.path = None


class TransferStager:
    """Runs the staging pull and the shipping push for one domain at a time."""

    def __init__(self, ssh: Optional[SSHOptions] = None, rsync: Optional[RsyncOptions] = None,
                 runner: Optional[Runner] = None):
        self.ssh = ssh or SSHOptions()
        self.rsync = rsync or RsyncOptions()
        self.runner = runner or subprocess.run

    def build_argv(self, src: str, dst: str) -> List[str]:
        return [self.rsync.binary, *self.rsync.flags, "-e", self.ssh.rsync_shell(), src, dst]

    def _sync(self, domain: str, stage: str, src: str, dst: str) -> None:
        argv = self.build_argv(src, dst)
        log_message(f"[TRANSFER] {domain}: {' '.join(argv)}", "DEBUG")
        try:
            result = self.runner(argv, capture_output=True, text=True, timeout=self.rsync.timeout)
        except subprocess.TimeoutExpired:
            raise TransferError(f"rsync {src} -> {dst} timed out", domain=domain, stage=stage)
        except OSError as e:
            raise TransferError(f"could not run {self.rsync.binary}: {e}", domain=domain, stage=stage)

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise TransferError(
                f"rsync {src} -> {dst} exited with status {result.returncode}: {stderr}",
                returncode=result.returncode, domain=domain, stage=stage,
            )

    def stage(self, site: ResolvedSite, staging_path: str) -> str:
        """
        Pull a remote source tree into staging_path, mirroring deletions.

        Returns:
            str: staging_path, now holding an exact copy of the source

        Raises:
            TransferError: rsync exited non-zero
        """
        src = site.source.remote_spec(site.source_path.rstrip("/") + "/", default_user=self.ssh.user)
        log_message(f"[TRANSFER] {site.domain}: staging {src} -> {staging_path}")
        self._sync(site.domain, "stage", src, staging_path.rstrip("/") + "/")
        log_message(f"[TRANSFER] ✓ {site.domain}: staged")
        return staging_path

    def ship(self, source_dir: str, site: ResolvedSite) -> str:
        """
        Push a local site directory to the target.

        The directory is copied into the target parent so that its name is
        appended on the far side; when the target path already names the domain
        the contents are copied into it instead.

        Returns:
            str: the site directory on the target

        Raises:
            TransferError: rsync exited non-zero
        """
        source_dir = os.path.normpath(source_dir)
        if site.target_names_site or os.path.basename(source_dir) != site.domain:
            # contents into the site directory itself
            src = source_dir + "/"
            dst_path = site.target_site_path + "/"
        else:
            src = source_dir
            dst_path = site.target_path.rstrip("/") + "/"
        dst = site.target.remote_spec(dst_path, default_user=self.ssh.user)
        log_message(f"[TRANSFER] {site.domain}: shipping {src} -> {dst}")
        self._sync(site.domain, "ship", src, dst)
        log_message(f"[TRANSFER] ✓ {site.domain}: shipped to {site.target_host or 'local'}:{site.target_site_path}")
        return site.target_site_path
