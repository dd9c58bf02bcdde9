"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

DNS Module
"""

from .index import CloudflareClient, DNSCutover, lookup_ip, zone_candidates

__all__ = ['CloudflareClient', 'DNSCutover', 'lookup_ip', 'zone_candidates']
