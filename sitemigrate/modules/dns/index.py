"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

DNS Cutover Step

Points a domain's A record at its new host through the Cloudflare v4 API:

    1. resolve the target host to an IP (getaddrinfo, then `dig +short`)
    2. GET  /zones?name=<zone>                        (walking up to the parent zone)
    3. GET  /zones/<zone_id>/dns_records?type=A&name=<domain>
    4. PUT  /zones/<zone_id>/dns_records/<record_id>

Cutover is advisory. Every failure raises DNSUpdateError, which the
orchestrator records as a warning for the domain; an operator may well be
managing DNS by hand.
"""

import ipaddress
import socket
import subprocess
from typing import Any, Callable, Dict, List, Optional

import requests

from sitemigrate.utils.config import DNSOptions
from sitemigrate.utils.errors import DNSUpdateError
from sitemigrate.utils.index import log_message


def _is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
        return True
    except ValueError:
        return False


def zone_candidates(domain: str) -> List[str]:
    """a.b.example.com -> [a.b.example.com, b.example.com, example.com]"""
    labels = [label for label in domain.strip().strip(".").lower().split(".") if label]
    return [".".join(labels[i:]) for i in range(len(labels) - 1)] or labels


def lookup_ip(host: str, resolver_timeout: float = 5.0,
              runner: Optional[Callable[..., subprocess.CompletedProcess]] = None) -> str:
    """
    Resolve host to an IP address.

    IP literals are returned unchanged. Standard resolution is tried first
    (IPv4 preferred); when it is inconclusive `dig +short` is asked and its
    first line that is an IP address wins.

    Raises:
        DNSUpdateError: neither lookup produced an address
    """
    host = host.strip()
    if _is_ip(host):
        return host

    try:
        infos = socket.getaddrinfo(host, None)
    except (socket.gaierror, UnicodeError) as e:
        log_message(f"[DNS] getaddrinfo({host}) failed: {e}; falling back to dig", "DEBUG")
        infos = []
    addresses = [info[4][0] for info in infos if info[0] == socket.AF_INET]
    addresses += [info[4][0] for info in infos if info[0] == socket.AF_INET6]
    if addresses:
        return addresses[0]

    runner = runner or subprocess.run
    try:
        result = runner(["dig", "+short", host], capture_output=True, text=True, timeout=resolver_timeout)
    except (subprocess.TimeoutExpired, OSError) as e:
        raise DNSUpdateError(f"could not resolve {host}: dig failed ({e})", stage="dns_update")
    for line in (result.stdout or "").splitlines():
        line = line.strip()
        if _is_ip(line):
            return line
    raise DNSUpdateError(f"could not resolve {host} to an IP address", stage="dns_update")


class CloudflareClient:
    """Minimal Cloudflare v4 client for A-record cutover."""

    def __init__(self, options: DNSOptions, session: Optional[requests.Session] = None):
        self.options = options
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.options.api_token:
            headers["Authorization"] = f"Bearer {self.options.api_token}"
        else:
            headers["X-Auth-Email"] = self.options.email or ""
            headers["X-Auth-Key"] = self.options.api_key or ""
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.options.api_base}{path}"
        try:
            response = self.session.request(method, url, headers=self._headers(),
                                            timeout=self.options.timeout, **kwargs)
        except requests.RequestException as e:
            raise DNSUpdateError(f"{method} {path} failed: {e}", stage="dns_update")
        try:
            body = response.json()
            if not isinstance(body, dict):
                raise ValueError("not an object")
        except ValueError:
            raise DNSUpdateError(f"{method} {path} returned HTTP {response.status_code} with a non-JSON body",
                                 stage="dns_update")
        if not response.ok or not body.get("success"):
            errors = body.get("errors") or response.reason
            raise DNSUpdateError(f"{method} {path} rejected (HTTP {response.status_code}): {errors}",
                                 stage="dns_update")
        return body.get("result")

    def get_zone_id(self, domain: str) -> str:
        for candidate in zone_candidates(domain):
            result = self._request("GET", "/zones", params={"name": candidate})
            if result:
                log_message(f"[DNS] {domain}: zone {candidate} ({result[0]['id']})", "DEBUG")
                return result[0]["id"]
        raise DNSUpdateError(f"no Cloudflare zone found for {domain}", domain=domain, stage="dns_update")

    def get_a_record_id(self, zone_id: str, domain: str) -> str:
        result = self._request("GET", f"/zones/{zone_id}/dns_records", params={"type": "A", "name": domain})
        if not result:
            raise DNSUpdateError(f"no A record for {domain}", domain=domain, stage="dns_update")
        return result[0]["id"]

    def update_a_record(self, zone_id: str, record_id: str, domain: str, ip: str) -> Dict[str, Any]:
        payload = {
            "type": "A",
            "name": domain,
            "content": ip,
            "ttl": self.options.ttl,
            "proxied": self.options.proxied,
        }
        return self._request("PUT", f"/zones/{zone_id}/dns_records/{record_id}", json=payload)

    def update_record(self, domain: str, ip: str) -> Dict[str, Any]:
        """Zone lookup, record lookup, update: three sequential calls."""
        zone_id = self.get_zone_id(domain)
        record_id = self.get_a_record_id(zone_id, domain)
        return self.update_a_record(zone_id, record_id, domain, ip)


class DNSCutover:
    """Resolves the target host and rewrites the domain's A record."""

    def __init__(self, options: DNSOptions, client: Optional[CloudflareClient] = None,
                 resolver: Optional[Callable[[str], str]] = None):
        self.options = options
        self.client = client or CloudflareClient(options)
        self.resolver = resolver or (lambda host: lookup_ip(host, options.resolver_timeout))

    def update_record(self, domain: str, target_host_only: str) -> str:
        """
        Point domain at target_host_only.

        Returns:
            str: the IP address the record now holds

        Raises:
            DNSUpdateError: missing credentials, resolution failure, or a provider error
        """
        if not self.options.has_credentials:
            raise DNSUpdateError("no Cloudflare credentials configured", domain=domain, stage="dns_update")
        try:
            ip = self.resolver(target_host_only)
            log_message(f"[DNS] {domain}: {target_host_only} resolves to {ip}")
            self.client.update_record(domain, ip)
        except DNSUpdateError as e:
            e.domain = e.domain or domain
            raise
        log_message(f"[DNS] ✓ {domain}: A record -> {ip} (ttl {self.options.ttl}, proxied {self.options.proxied})")
        return ip
