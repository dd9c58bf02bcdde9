"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Schedule Module

Resolves delayUntil strings into UTC instants and gates plan entries on them.
"""

from .index import TimeResolver, DelayGate, build_gate, parse_duration, LAYOUTS

__all__ = ['TimeResolver', 'DelayGate', 'build_gate', 'parse_duration', 'LAYOUTS']
