"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Endpoint Descriptor Parser

Plan entries name their source and target as "[user@]host[:path]". This module
splits those strings, decides whether an endpoint is the local machine, and
computes the site directory a domain lives in.
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

LOCAL_HOSTS = ("", "local", "localhost", "127.0.0.1")


def split_host_path(value: Optional[str]) -> Tuple[str, str]:
    """
    Split "user@host:/path", "host:/path", "host" or "local:/custom".

    The split happens at the first ':'; IPv6 literals are not supported.

    Returns:
        tuple: (host_part, path_part); path_part is "" when absent
    """
    value = (value or "").strip()
    if not value:
        return "", ""
    host_part, sep, path_part = value.partition(":")
    if not sep:
        return value, ""
    return host_part, path_part


def is_local(host_part: Optional[str]) -> bool:
    """True for "", "local", "localhost" and "127.0.0.1", case-insensitively."""
    return (host_part or "").strip().lower() in LOCAL_HOSTS


def host_only(host_part: str) -> str:
    """Strip an optional user@ prefix for DNS and IP lookups."""
    return host_part.rpartition("@")[2]


def user_of(host_part: str) -> Optional[str]:
    """The user@ prefix of a host part, or None."""
    user, sep, _ = host_part.rpartition("@")
    return user if sep and user else None


def resolve_site_path(path_part: Optional[str], domain: str, default_root: str) -> str:
    """
    Compute the directory holding a domain's site.

    An empty path yields default_root/domain. A leading '~' expands to the home
    directory, the path is normalised, and the domain is appended unless the
    final component already equals it.
    """
    if not path_part:
        return os.path.join(os.path.normpath(default_root), domain)
    path = os.path.normpath(os.path.expanduser(path_part))
    if os.path.basename(path) == domain:
        return path
    return os.path.join(path, domain)


@dataclass(frozen=True)
class EndpointDescriptor:
    """Parsed form of one "[user@]host[:path]" string."""
    raw: str
    host_part: str
    path_part: str

    @classmethod
    def parse(cls, value: Optional[str]) -> "EndpointDescriptor":
        host_part, path_part = split_host_path(value)
        return cls(raw=(value or "").strip(), host_part=host_part, path_part=path_part)

    @property
    def is_local(self) -> bool:
        return is_local(self.host_part)

    @property
    def hostname(self) -> str:
        return host_only(self.host_part)

    @property
    def user(self) -> Optional[str]:
        return user_of(self.host_part)

    def remote_spec(self, path: str, default_user: Optional[str] = None) -> str:
        """rsync-style "user@host:path" for this endpoint, or the bare path when local."""
        if self.is_local:
            return path
        host = self.host_part
        if default_user and not self.user:
            host = f"{default_user}@{host}"
        return f"{host}:{path}"


@dataclass(frozen=True)
class ResolvedSite:
    """Where one domain comes from and where it goes, fixed at execution time."""
    domain: str
    source: EndpointDescriptor
    target: EndpointDescriptor
    source_path: str
    target_path: str

    @property
    def source_host(self) -> str:
        return self.source.host_part

    @property
    def target_host(self) -> str:
        return self.target.host_part

    @property
    def target_names_site(self) -> bool:
        """True when the target path already is the site directory."""
        return os.path.basename(os.path.normpath(self.target_path)) == self.domain

    @property
    def target_site_path(self) -> str:
        if self.target_names_site:
            return os.path.normpath(self.target_path)
        return os.path.join(self.target_path, self.domain)

    @classmethod
    def resolve(cls, domain: str, source: str, target: str, sites_root: str) -> "ResolvedSite":
        """
        Resolve a plan entry. The source path always points at the site
        directory; the target path defaults to sites_root, the parent that the
        transfer step copies the site directory into.
        """
        src = EndpointDescriptor.parse(source or "local")
        tgt = EndpointDescriptor.parse(target)
        source_path = resolve_site_path(src.path_part, domain, sites_root)
        if tgt.path_part:
            target_path = os.path.normpath(os.path.expanduser(tgt.path_part))
        else:
            target_path = os.path.normpath(sites_root)
        return cls(domain=domain, source=src, target=tgt, source_path=source_path, target_path=target_path)
