"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Archive Module
"""

from .index import archive_site, archive_name

__all__ = ['archive_site', 'archive_name']
