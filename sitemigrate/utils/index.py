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

import os
import sys
import json
import logging
from typing import Any, Dict, Optional

LOGGER_NAME = "sitemigrate"
ROOT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "index.json")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def log_message(message: str, level: str = "INFO"):
    """
    Unified logger used throughout the orchestrator and its steps.

    Args:
        message (str): The message to log.
        level (str): Log level ('DEBUG', 'INFO', 'WARNING', 'ERROR').
    """
    logging.getLogger(LOGGER_NAME).log(_LEVELS.get(level.upper(), logging.INFO), message)


def setup_migration_logging(verbose: bool = False, stream=None) -> None:
    """
    Log to stderr only; callers redirect diagnostic output if they want a file.
    """
    console_handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    unified_format = logging.Formatter('[%(asctime)s] [%(levelname)s] %(message)s',
                                       datefmt='%Y-%m-%d %H:%M:%S')
    console_handler.setFormatter(unified_format)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for h in list(root_logger.handlers):
        root_logger.removeHandler(h)
    root_logger.addHandler(console_handler)
    # paramiko is chatty at INFO
    logging.getLogger("paramiko").setLevel(logging.WARNING)
    log_message("=" * 80, "DEBUG")
    log_message("SITE MIGRATION SESSION STARTED", "DEBUG")
    log_message(f"Command: {' '.join(sys.argv)}", "DEBUG")
    log_message(f"Working Directory: {os.getcwd()}", "DEBUG")
    log_message(f"Python Version: {sys.version}", "DEBUG")
    log_message("=" * 80, "DEBUG")


def load_root_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the shipped index.json holding metadata and default configuration.

    Returns:
        dict: Root configuration, or a minimal default structure if loading fails
    """
    path = config_path or ROOT_CONFIG_PATH
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except Exception as e:
        log_message(f"Failed to load root config from {path}: {e}", "WARNING")
        return {"metadata": {}, "config": {}, "debug": False}


def get_debug_mode(root_config: Optional[Dict[str, Any]] = None) -> bool:
    """Return the debug flag from the root configuration."""
    if root_config is None:
        root_config = load_root_config()
    return bool(root_config.get("debug", False))


def get_package_version(root_config: Optional[Dict[str, Any]] = None) -> str:
    """Return the schema version recorded in index.json, or "unknown"."""
    if root_config is None:
        root_config = load_root_config()
    return root_config.get("metadata", {}).get("schema_version", "unknown")
