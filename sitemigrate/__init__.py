"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

"""
Relocates hosted sites (files plus database) between servers, cuts DNS over to
the new host, and archives or deletes the source afterwards.
"""

from .utils.index import log_message, get_package_version
from .utils.config import MigrationConfig, load_migration_config
from .modules.plan import MigrationPlan, PlanEntry, build_plan
from .modules.orchestrator import Orchestrator, RunSummary, DomainResult, DomainState

__version__ = get_package_version()

__all__ = [
    'log_message',
    'MigrationConfig',
    'load_migration_config',
    'MigrationPlan',
    'PlanEntry',
    'build_plan',
    'Orchestrator',
    'RunSummary',
    'DomainResult',
    'DomainState',
    '__version__',
]
