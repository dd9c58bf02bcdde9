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
Utilities shared by every migration step: logging, configuration, the error
taxonomy and the typed command builder.
"""

from .index import log_message, setup_migration_logging, load_root_config, get_debug_mode, get_package_version
from .errors import (
    MigrationError,
    ConfigurationError,
    PlanParseError,
    InvalidScheduleFormat,
    ScheduleNotDue,
    ConnectivityError,
    SourceNotFoundError,
    TransferError,
    CommandError,
    AdvisoryFailure,
    DNSUpdateError,
    UserDeclined,
)
from .commands import Command, CommandChain, command
from .config import (
    MigrationConfig,
    SSHOptions,
    RsyncOptions,
    DatabaseOptions,
    DNSOptions,
    ArchiveOptions,
    load_migration_config,
    normalize_compression,
)

__all__ = [
    'log_message', 'setup_migration_logging', 'load_root_config', 'get_debug_mode', 'get_package_version',
    'MigrationError', 'ConfigurationError', 'PlanParseError', 'InvalidScheduleFormat', 'ScheduleNotDue',
    'ConnectivityError', 'SourceNotFoundError', 'TransferError', 'CommandError', 'AdvisoryFailure',
    'DNSUpdateError', 'UserDeclined',
    'Command', 'CommandChain', 'command',
    'MigrationConfig', 'SSHOptions', 'RsyncOptions', 'DatabaseOptions', 'DNSOptions', 'ArchiveOptions',
    'load_migration_config', 'normalize_compression',
]
