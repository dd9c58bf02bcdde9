"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Endpoints Module

Parses "[user@]host[:path]" descriptors and resolves site directories.
"""

from .index import (
    EndpointDescriptor,
    ResolvedSite,
    split_host_path,
    resolve_site_path,
    host_only,
    is_local,
    user_of,
    LOCAL_HOSTS
)

__all__ = [
    'EndpointDescriptor',
    'ResolvedSite',
    'split_host_path',
    'resolve_site_path',
    'host_only',
    'is_local',
    'user_of',
    'LOCAL_HOSTS'
]
