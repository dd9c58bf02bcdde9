"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Functional modules of the migration pipeline, one directory per step.
"""
