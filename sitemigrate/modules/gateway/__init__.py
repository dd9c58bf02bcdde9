"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Gateway Module

Uniform local/remote command execution for every migration step.
"""

from .index import CommandGateway, CommandResult, DryRunSession, LocalSession, RemoteSession

__all__ = ['CommandGateway', 'CommandResult', 'DryRunSession', 'LocalSession', 'RemoteSession']
