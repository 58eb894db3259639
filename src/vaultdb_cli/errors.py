"""Error types for vaultdb bootstrap operations.

Readiness timeouts, verification failures and precondition errors are fatal
and abort the running phase. Any other dependency failure is surfaced as
ExternalCallFailure without retry.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class BootstrapError(Exception):
    """Base error class for bootstrap errors."""

    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


@dataclass
class ReadinessTimeout(BootstrapError):
    """External process never became reachable within the poll budget."""

    message: str = "Service did not become ready"
    target: str = ""
    attempts: int = 0
    last_error: str | None = None


@dataclass
class VerificationFailure(BootstrapError):
    """A creation step returned but the post-check did not confirm it."""

    message: str = "Verification failed"
    diagnostics: str = ""


@dataclass
class PreconditionError(BootstrapError):
    """A transition was attempted before the stage it depends on."""

    message: str = "Precondition not met"
    required: str = ""
    current: str = ""


@dataclass
class ExternalCallFailure(BootstrapError):
    """A call to Vault, Docker or SQL*Plus returned an error."""

    message: str = "External call failed"
    operation: str = ""
    status_code: int | None = None
    detail: str = ""


def readiness_timeout(target: str, attempts: int, last_error: str | None) -> ReadinessTimeout:
    """Build a ReadinessTimeout with a message naming the target.

    Args:
        target: Name of the service being polled
        attempts: Number of probe attempts made
        last_error: Last probe output, if any

    Returns:
        ReadinessTimeout ready to raise
    """
    return ReadinessTimeout(
        message=(
            f"{target} did not become ready after {attempts} attempts. "
            f"Last error: {last_error or 'probe returned not ready'}"
        ),
        target=target,
        attempts=attempts,
        last_error=last_error,
        data={"target": target, "attempts": attempts},
    )


def external_call_failure(
    operation: str,
    detail: str,
    status_code: int | None = None,
) -> ExternalCallFailure:
    """Build an ExternalCallFailure for a failed dependency call.

    Args:
        operation: Short name of the call (e.g., "vault init", "docker compose up")
        detail: Error output from the dependency
        status_code: HTTP status or process exit code

    Returns:
        ExternalCallFailure ready to raise
    """
    prefix = f"{operation} failed"
    if status_code is not None:
        prefix = f"{prefix} ({status_code})"
    return ExternalCallFailure(
        message=f"{prefix}: {detail}" if detail else prefix,
        operation=operation,
        status_code=status_code,
        detail=detail,
        data={"operation": operation, "status_code": status_code},
    )
