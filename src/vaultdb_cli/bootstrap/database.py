"""Oracle SQL session for account provisioning.

SQL runs through SQL*Plus inside the Oracle container (`docker exec`), so the
host needs no Oracle client. Output is captured and kept for diagnostics.
"""

from __future__ import annotations

import re
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..config import ORACLE_IDENTIFIER
from ..errors import BootstrapError, external_call_failure
from ..shared.logging import get_logger

logger = get_logger(__name__)

READY_MARKER = "VAULTDB_READY"

# SQL*Plus and server errors both show up on stdout
_ERROR_MARKERS = ("ORA-", "SP2-", "TNS-")


@dataclass
class DatabaseAccount:
    """A fixed Oracle account created during Phase 1."""

    username: str
    password: str
    grants: list[str] = field(default_factory=list)

    def creation_statements(self) -> list[str]:
        statements = [f'CREATE USER {self.username} IDENTIFIED BY "{self.password}"']
        statements.extend(grant.format(username=self.username) for grant in self.grants)
        return statements


# The connection account creates, alters and drops per-lease users
CONNECTION_ACCOUNT_GRANTS = [
    "GRANT CREATE SESSION TO {username} WITH ADMIN OPTION",
    "GRANT CONNECT TO {username} WITH ADMIN OPTION",
    "GRANT CREATE USER TO {username} WITH ADMIN OPTION",
    "GRANT ALTER USER TO {username} WITH ADMIN OPTION",
    "GRANT DROP USER TO {username} WITH ADMIN OPTION",
]

STATIC_ACCOUNT_GRANTS = [
    "GRANT CREATE SESSION TO {username}",
]


@dataclass
class SqlResult:
    """Captured result of one SQL*Plus invocation."""

    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not any(m in self.output for m in _ERROR_MARKERS)


class OracleSession:
    """Run SQL against the Oracle container as the administrative user."""

    def __init__(
        self,
        container: str,
        admin_password: str,
        service: str = "XEPDB1",
        admin_user: str = "system",
        port: int = 1521,
        runner: Callable[..., Any] = subprocess.run,
    ):
        """Initialize Oracle session.

        Args:
            container: Name of the Oracle container
            admin_password: Password of the administrative user
            service: Pluggable database service name
            admin_user: Administrative user
            port: Listener port inside the container
            runner: subprocess.run compatible callable
        """
        self.container = container
        self.admin_password = admin_password
        self.service = service
        self.admin_user = admin_user
        self.port = port
        self._run = runner

    def _script(self, statements: list[str]) -> str:
        lines = [
            "WHENEVER OSERROR EXIT FAILURE",
            "WHENEVER SQLERROR EXIT SQL.SQLCODE",
            "SET HEADING OFF FEEDBACK OFF PAGESIZE 0 VERIFY OFF ECHO OFF",
            f'CONNECT {self.admin_user}/"{self.admin_password}"'
            f"@//localhost:{self.port}/{self.service}",
        ]
        lines.extend(f"{statement.rstrip(';')};" for statement in statements)
        lines.append("EXIT;")
        return "\n".join(lines) + "\n"

    def run_sql(self, statements: list[str]) -> SqlResult:
        """Run statements in one SQL*Plus session and capture output.

        Raises:
            ExternalCallFailure: If docker itself cannot be executed
        """
        try:
            result = self._run(
                ["docker", "exec", "-i", self.container, "sqlplus", "-S", "-L", "/nolog"],
                input=self._script(statements),
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise external_call_failure(
                "sqlplus", "Docker not found. Is Docker installed?"
            ) from e
        output = ((result.stdout or "") + (result.stderr or "")).strip()
        return SqlResult(result.returncode, output)

    def execute(self, statements: list[str], operation: str = "sqlplus") -> str:
        """Run statements, raising on any SQL or session error.

        Returns:
            Captured SQL*Plus output

        Raises:
            ExternalCallFailure: On non-zero exit or ORA-/SP2- errors in output
        """
        result = self.run_sql(statements)
        if not result.ok:
            raise external_call_failure(operation, result.output, status_code=result.returncode)
        return result.output

    def is_ready(self) -> bool:
        """Readiness probe: listener up and the pluggable database open."""
        result = self.run_sql([f"SELECT '{READY_MARKER}' FROM dual"])
        return result.ok and READY_MARKER in result.output

    def user_exists(self, username: str) -> bool:
        """Check dba_users for an account.

        Raises:
            BootstrapError: If username is not a plain Oracle identifier
        """
        _check_identifier(username)
        output = self.execute(
            [f"SELECT COUNT(*) FROM dba_users WHERE username = UPPER('{username}')"],
            operation=f"check account {username}",
        )
        counts = re.findall(r"\d+", output)
        return bool(counts) and int(counts[-1]) > 0

    def create_account(self, account: DatabaseAccount) -> str:
        """Create an account and apply its grants.

        Returns:
            Captured SQL*Plus output, kept for diagnostics

        Raises:
            BootstrapError: If the username or password can't be written into SQL
        """
        _check_identifier(account.username)
        if '"' in account.password:
            raise BootstrapError(
                f"Password for Oracle account {account.username!r} may not contain double quotes",
                data={"username": account.username},
            )
        logger.info("database_account_create", username=account.username)
        return self.execute(
            account.creation_statements(),
            operation=f"create account {account.username}",
        )


def _check_identifier(name: str) -> None:
    if not ORACLE_IDENTIFIER.match(name):
        raise BootstrapError(f"Invalid Oracle identifier: {name!r}", data={"username": name})
