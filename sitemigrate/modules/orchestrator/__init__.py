"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Orchestrator Module
"""

from .index import Orchestrator, DomainState, DomainResult, RunSummary, TERMINAL_STATES

__all__ = ['Orchestrator', 'DomainState', 'DomainResult', 'RunSummary', 'TERMINAL_STATES']
