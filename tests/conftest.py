"""
Shared fixtures: in-memory stand-ins for the gateway, rsync and the DNS step so
that no test opens an SSH connection, runs rsync or talks to Cloudflare.
"""

import logging
import os
import subprocess
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest

from sitemigrate.modules.endpoints import is_local
from sitemigrate.modules.gateway import CommandResult
from sitemigrate.utils.errors import CommandError, ConnectivityError

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

COMPOSE_YAML = """
services:
  wp_example:
    image: wordpress
    container_name: wp_example_com
    environment:
      - WORDPRESS_DB_NAME=example_db
      - WORDPRESS_DB_USER=example
  db:
    image: mariadb
"""


def ok(stdout=""):
    return CommandResult(stdout=stdout)


def failed(returncode=1, stderr="boom"):
    error = CommandError(stderr, returncode=returncode, stderr=stderr)
    return CommandResult(stderr=stderr, returncode=returncode, error=error)


class FakeSession:
    """Records every rendered command; handler may return a CommandResult to override success."""

    def __init__(self, host, handler=None):
        self.host = host or "local"
        self.is_local = is_local(host)
        self.handler = handler
        self.commands = []
        self.closed = False

    def run(self, command, timeout=None):
        rendered = command.render()
        self.commands.append(rendered)
        if self.handler is not None:
            result = self.handler(self.host, rendered)
            if result is not None:
                return result
        return ok()

    def close(self):
        self.closed = True


class FakeGateway:
    def __init__(self, handler=None, unreachable=()):
        self.handler = handler
        self.unreachable = set(unreachable)
        self.sessions = []

    @contextmanager
    def open(self, host):
        if host in self.unreachable:
            raise ConnectivityError(f"Failed to connect to {host}")
        session = FakeSession(host, self.handler)
        self.sessions.append(session)
        try:
            yield session
        finally:
            session.close()

    def commands_for(self, host):
        return [c for s in self.sessions if s.host == host for c in s.commands]


class FakeRsync:
    """Stands in for subprocess.run; staging pulls drop a file into the local destination."""

    def __init__(self, fail_when=None):
        self.fail_when = fail_when
        self.calls = []
        self.staged_paths = []

    def __call__(self, argv, **kwargs):
        self.calls.append(list(argv))
        src, dst = argv[-2], argv[-1]
        if self.fail_when is not None and self.fail_when(src, dst):
            return subprocess.CompletedProcess(argv, 23, stdout="", stderr="rsync: connection unexpectedly closed")
        if ":" not in dst and os.path.isdir(dst):
            self.staged_paths.append(dst.rstrip("/"))
            with open(os.path.join(dst, "index.php"), "w") as f:
                f.write("<?php // staged\n")
        return subprocess.CompletedProcess(argv, 0, stdout="", stderr="")


class FakeDNS:
    def __init__(self, error=None, on_update=None):
        self.error = error
        self.on_update = on_update
        self.updates = []

    def update_record(self, domain, target_host_only):
        self.updates.append((domain, target_host_only))
        if self.on_update is not None:
            self.on_update(domain)
        if self.error is not None:
            raise self.error
        return "203.0.113.10"


def compose_handler(host, rendered):
    if rendered.startswith("cat ") and rendered.endswith("docker-compose.yml"):
        return ok(COMPOSE_YAML)
    return None


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI replaces root handlers; put pytest's back after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)


@pytest.fixture(autouse=True)
def no_cloudflare_env(monkeypatch):
    for name in ("CLOUDFLARE_EMAIL", "CLOUDFLARE_API_KEY", "CLOUDFLARE_API_TOKEN",
                 "SITEMIGRATE_SITES_ROOT", "SITEMIGRATE_STAGING_ROOT", "SITEMIGRATE_SSH_USER",
                 "SITEMIGRATE_SSH_PORT", "SITEMIGRATE_SSH_KEY", "SITEMIGRATE_DNS_PROXIED"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def gateway():
    return FakeGateway(handler=compose_handler)


@pytest.fixture
def rsync():
    return FakeRsync()
