"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Database Module
"""

from .index import dump_database, find_database_service, DB_NAME_VARIABLE

__all__ = ['dump_database', 'find_database_service', 'DB_NAME_VARIABLE']
