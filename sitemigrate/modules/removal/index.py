"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Delete Step

Removes a migrated site's source directory. Unless forced, the operator is
asked first, with the exact path and host in the question; anything other than
"y" or "yes" keeps the directory.
"""

from typing import Callable, Optional

from sitemigrate.utils.commands import command
from sitemigrate.utils.errors import CommandError, UserDeclined
from sitemigrate.utils.index import log_message

Prompt = Callable[[str], bool]


def confirm(message: str) -> bool:
    """Ask a yes/no question on the terminal; EOF counts as no."""
    try:
        answer = input(message)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def delete_site(session, domain: str, source_path: str, force: bool = False,
                prompt: Optional[Prompt] = None, dry_run: bool = False) -> str:
    """
    Delete source_path on the host behind session.

    Returns:
        str: "deleted", or "dry-run" when nothing was touched

    Raises:
        UserDeclined: the operator answered no
        CommandError: rm exited non-zero
    """
    host = session.host or "local"
    if dry_run:
        verb = "delete" if force else "prompt to delete"
        log_message(f"[DRY RUN] {domain}: would {verb} {source_path} on {host}")
        return "dry-run"

    if not force:
        prompt = prompt or confirm
        if not prompt(f"Delete source directory {source_path} on {host}? [y/N]: "):
            log_message(f"[DELETE] {domain}: kept {source_path} on {host} (declined)")
            raise UserDeclined(f"deletion of {source_path} declined", domain=domain, stage="delete")

    result = session.run(command("rm", "-rf", source_path))
    if not result.ok:
        raise CommandError(f"could not delete {source_path} on {host}: {result.error}",
                           returncode=result.returncode, stderr=result.stderr, domain=domain, stage="delete")
    log_message(f"[DELETE] ✓ {domain}: removed {source_path} on {host}")
    return "deleted"
