"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Remote/Local Command Gateway

Every side effect on a source or target host (directory tests, database
export, archival, deletion) runs through a session obtained here. A session is
either local (a subprocess shell on this machine) or remote (an SSH session),
and both return the same CommandResult, so the steps never branch on where
they are running.

Usage:
    gateway = CommandGateway(config.ssh)
    with gateway.open("root@old.example.net") as session:
        result = session.run(command("test", "-d", "/var/opt/example.com"))
        if not result.ok:
            ...
"""

import os
import socket
import subprocess
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import paramiko

from sitemigrate.modules.endpoints import host_only, is_local, user_of
from sitemigrate.utils.commands import Runnable
from sitemigrate.utils.config import SSHOptions
from sitemigrate.utils.errors import CommandError, ConnectivityError
from sitemigrate.utils.index import log_message


@dataclass
class CommandResult:
    """Captured outcome of one command; error is None on success."""
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    error: Optional[CommandError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _result(command: Runnable, host: str, stdout: str, stderr: str, returncode: int) -> CommandResult:
    error = None
    if returncode != 0:
        error = CommandError(
            f"'{command.render()}' on {host or 'local'} exited with status {returncode}: {stderr.strip()}",
            returncode=returncode,
            stderr=stderr,
        )
    return CommandResult(stdout=stdout, stderr=stderr, returncode=returncode, error=error)


class LocalSession:
    """Runs commands through a local subprocess shell."""

    is_local = True

    def __init__(self, host: str = "local", timeout: Optional[float] = None):
        self.host = host or "local"
        self.timeout = timeout

    def run(self, command: Runnable, timeout: Optional[float] = None) -> CommandResult:
        log_message(f"[GATEWAY] local: {command.render()}", "DEBUG")
        try:
            completed = subprocess.run(
                ["sh", "-c", command.render()],
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
            )
        except subprocess.TimeoutExpired:
            error = CommandError(f"'{command.render()}' timed out locally", returncode=None)
            return CommandResult(returncode=-1, error=error)
        except OSError as e:
            error = CommandError(f"'{command.render()}' could not start locally: {e}", returncode=None)
            return CommandResult(returncode=-1, error=error)
        return _result(command, "local", completed.stdout, completed.stderr, completed.returncode)

    def close(self) -> None:
        pass


class RemoteSession:
    """An SSH connection to one host; commands run through the remote login shell."""

    is_local = False

    def __init__(self, host: str, options: SSHOptions, client: Optional[paramiko.SSHClient] = None):
        self.host = host
        self.hostname = host_only(host)
        self.username = user_of(host) or options.user
        self.options = options
        self._client = client

    def connect(self) -> "RemoteSession":
        """
        Open the connection.

        Raises:
            ConnectivityError: when the host cannot be reached or authentication fails
        """
        client = self._client or paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        log_message(f"[GATEWAY] Connecting to {self.username}@{self.hostname}:{self.options.port}")
        try:
            client.connect(
                hostname=self.hostname,
                port=int(self.options.port),
                username=self.username,
                key_filename=os.path.expanduser(self.options.key_path) if self.options.key_path else None,
                timeout=self.options.timeout,
                banner_timeout=self.options.timeout,
                auth_timeout=self.options.timeout,
                allow_agent=self.options.use_agent,
                look_for_keys=True,
            )
        except (paramiko.SSHException, socket.error, OSError) as e:
            client.close()
            raise ConnectivityError(f"Failed to connect to {self.username}@{self.hostname}:{self.options.port}: {e}")
        self._client = client
        return self

    def run(self, command: Runnable, timeout: Optional[float] = None) -> CommandResult:
        if self._client is None:
            raise ConnectivityError(f"Session to {self.host} is not connected")
        log_message(f"[GATEWAY] {self.host}: {command.render()}", "DEBUG")
        try:
            _, stdout, stderr = self._client.exec_command(command.render(), timeout=timeout)
            # both streams drain at once so a chatty stderr cannot fill the channel window
            with ThreadPoolExecutor(max_workers=1) as executor:
                pending_err = executor.submit(stderr.read)
                out = stdout.read().decode("utf-8", errors="replace")
                err = pending_err.result().decode("utf-8", errors="replace")
            status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, socket.timeout, OSError) as e:
            error = CommandError(f"'{command.render()}' failed on {self.host}: {e}", returncode=None)
            return CommandResult(returncode=-1, error=error)
        return _result(command, self.host, out, err, status)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


SessionFactory = Callable[[str], object]


class DryRunSession:
    """Names a host for dry-run log lines; refuses to run anything."""

    def __init__(self, host: str = "local"):
        self.host = host or "local"
        self.is_local = is_local(host)

    def run(self, command: Runnable, timeout: Optional[float] = None) -> CommandResult:
        raise ConnectivityError(f"dry run: '{command.render()}' was not sent to {self.host}")

    def close(self) -> None:
        pass


class CommandGateway:
    """Hands out local or remote sessions depending on the host part."""

    def __init__(self, ssh_options: Optional[SSHOptions] = None,
                 remote_factory: Optional[SessionFactory] = None):
        self.ssh_options = ssh_options or SSHOptions()
        self._remote_factory = remote_factory or self._connect_remote

    def _connect_remote(self, host: str) -> RemoteSession:
        return RemoteSession(host, self.ssh_options).connect()

    def connect(self, host: str):
        """Open a session for host; the caller must close it."""
        if is_local(host):
            return LocalSession(host)
        return self._remote_factory(host)

    @contextmanager
    def open(self, host: str) -> Iterator:
        """Open a session for host and close it on every exit path."""
        session = self.connect(host)
        try:
            yield session
        finally:
            session.close()

    def run(self, host: str, command: Runnable, timeout: Optional[float] = None) -> CommandResult:
        """One-shot: open a session, run a single command, close it."""
        with self.open(host) as session:
            return session.run(command, timeout=timeout)
