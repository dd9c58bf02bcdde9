"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Error Taxonomy

Every failure the orchestrator can observe is one of these classes. Errors that
concern a single domain carry the domain and the stage that failed so that the
per-domain boundary in the orchestrator can report them without guessing.
"""

from typing import Optional


class MigrationError(Exception):
    """Base class for all migration failures."""

    def __init__(self, message: str, domain: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.domain = domain
        self.stage = stage

    def __str__(self) -> str:
        if self.domain and self.stage:
            return f"{self.domain} [{self.stage}]: {self.message}"
        if self.domain:
            return f"{self.domain}: {self.message}"
        return self.message


class ConfigurationError(MigrationError):
    """Fatal for the whole run: raised before any domain is touched."""
    pass


class PlanParseError(ConfigurationError):
    """The plan document could not be read as JSON or YAML, or has the wrong shape."""
    pass


class InvalidScheduleFormat(MigrationError):
    """No time strategy recognised the schedule string."""
    pass


class ScheduleNotDue(MigrationError):
    """Skip signal: the entry's gate lies in the future."""

    def __init__(self, message: str, when=None, domain: Optional[str] = None, stage: Optional[str] = "schedule"):
        super().__init__(message, domain=domain, stage=stage)
        self.when = when


class ConnectivityError(MigrationError):
    """A session to the source or target host could not be opened."""
    pass


class SourceNotFoundError(MigrationError):
    """The source site directory does not exist."""
    pass


class TransferError(MigrationError):
    """A staging or shipping sync exited non-zero."""

    def __init__(self, message: str, returncode: Optional[int] = None, domain: Optional[str] = None,
                 stage: Optional[str] = None):
        super().__init__(message, domain=domain, stage=stage)
        self.returncode = returncode


class CommandError(MigrationError):
    """A command run through the gateway exited non-zero."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "",
                 domain: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message, domain=domain, stage=stage)
        self.returncode = returncode
        self.stderr = stderr


class AdvisoryFailure(MigrationError):
    """Logged as a warning; the domain keeps going."""
    pass


class DNSUpdateError(AdvisoryFailure):
    """The DNS provider refused or could not complete a cutover call."""
    pass


class UserDeclined(MigrationError):
    """The operator answered no to the delete confirmation."""
    pass
