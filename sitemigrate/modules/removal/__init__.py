"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Removal Module
"""

from .index import confirm, delete_site

__all__ = ['confirm', 'delete_site']
