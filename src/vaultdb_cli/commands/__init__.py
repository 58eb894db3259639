"""vaultdb subcommands."""

from .apply import apply, destroy, logs, status
from .creds import creds
from .state import state

__all__ = ["apply", "destroy", "status", "logs", "state", "creds"]
