"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Plan Module

Builds the immutable MigrationPlan from a plan document or a sites glob.
"""

from .index import (
    PlanEntry,
    MigrationPlan,
    build_plan,
    plan_from_document,
    plan_from_glob,
    plan_from_mapping
)

__all__ = [
    'PlanEntry',
    'MigrationPlan',
    'build_plan',
    'plan_from_document',
    'plan_from_glob',
    'plan_from_mapping'
]
