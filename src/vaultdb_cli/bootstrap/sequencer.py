"""Two-phase bootstrap sequencer.

Phase 1 provisions the containers, initializes and unseals Vault, and creates
the Oracle accounts. Phase 2, possibly in a later invocation, registers the
Oracle plugin, configures the database secrets engine and creates a dynamic
and a static role.

Every transition checks the stage it depends on before touching anything
external, and every one-time action is guarded by a check of current state,
so re-running after a failure or an interrupt resumes where it stopped. Stages
only move forward; unsealing is the one transition that may run again, since
a recreated Vault container comes back sealed.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from ..config import BootstrapConfig
from ..errors import (
    BootstrapError,
    ExternalCallFailure,
    PreconditionError,
    VerificationFailure,
)
from ..shared.logging import get_logger
from ..shared.paths import vault_plugin_dir
from .artifacts import sha256_file
from .compose import ORACLE_SERVICE
from .credentials import (
    INIT_RECORD_KEY,
    ROOT_TOKEN_KEY,
    UNSEAL_KEY_KEY,
    CredentialStore,
    load_init_record,
    load_root_token,
    persist_init_record,
)
from .database import (
    CONNECTION_ACCOUNT_GRANTS,
    STATIC_ACCOUNT_GRANTS,
    DatabaseAccount,
)
from .models import (
    ORACLE_DYNAMIC_CREATION_STATEMENTS,
    ConnectionConfig,
    DynamicRoleSpec,
    InitializationRecord,
    StaticRoleSpec,
    oracle_connection_template,
)
from .readiness import ReadinessPoller
from .state import BootstrapStage, StateStore, TrackedState

logger = get_logger(__name__)


class Provisioner(Protocol):
    def apply(self, state: TrackedState) -> Any: ...

    def destroy(self, state: TrackedState, remove_data: bool = False) -> None: ...


@dataclass
class StepResult:
    """Outcome of one transition."""

    stage: BootstrapStage
    changed: bool
    detail: str = ""


StepCallback = Callable[[StepResult], None]


class BootstrapSequencer:
    """Drive the bootstrap state machine against Vault and Oracle."""

    def __init__(
        self,
        config: BootstrapConfig,
        vault: Any,
        oracle: Any,
        credentials: CredentialStore,
        state_store: StateStore,
        provisioner: Provisioner | None = None,
        vault_poller: ReadinessPoller | None = None,
        oracle_poller: ReadinessPoller | None = None,
        on_step: StepCallback | None = None,
    ):
        """Initialize sequencer.

        Args:
            config: Bootstrap configuration.
            vault: VaultClient (or a fake with the same methods).
            oracle: OracleSession (or a fake with the same methods).
            credentials: Credential store for the initialization record.
            state_store: Where the reached stage and applied resources live.
            provisioner: Container provisioner; required for provision/teardown.
            vault_poller: Readiness poller for the Vault API.
            oracle_poller: Readiness poller for the Oracle listener.
            on_step: Optional callback invoked after each transition.
        """
        self.config = config
        self.vault = vault
        self.oracle = oracle
        self.credentials = credentials
        self.state_store = state_store
        self.provisioner = provisioner
        self.vault_poller = vault_poller or ReadinessPoller(
            interval_seconds=config.poll_interval,
            max_attempts=config.vault_max_attempts,
        )
        self.oracle_poller = oracle_poller or ReadinessPoller(
            interval_seconds=config.poll_interval,
            max_attempts=config.oracle_max_attempts,
        )
        self.on_step = on_step
        self.state = state_store.load()

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------

    @property
    def stage(self) -> BootstrapStage:
        return self.state.stage

    def _require(self, required: BootstrapStage, transition: str) -> None:
        """Fail fast, before any external call, if required isn't reached."""
        if not self.state.stage.reached(required):
            raise PreconditionError(
                message=(
                    f"Cannot {transition}: requires stage '{required.value}', "
                    f"current stage is '{self.state.stage.value}'"
                ),
                required=required.value,
                current=self.state.stage.value,
                data={"transition": transition},
            )

    def _complete(self, stage: BootstrapStage, changed: bool, detail: str = "") -> StepResult:
        if self.state.advance(stage):
            logger.info("stage_reached", stage=stage.value)
        self.state_store.save(self.state)
        result = StepResult(stage, changed, detail)
        if self.on_step:
            self.on_step(result)
        return result

    def _track(self, address: str, attributes: dict[str, Any]) -> None:
        self.state.set_resource(address, attributes)
        self.state_store.save(self.state)

    def _use_root_token(self) -> None:
        token = load_root_token(self.credentials)
        if not token:
            raise BootstrapError(
                "No root token persisted. Run `vaultdb apply --phase 1` first."
            )
        self.vault.token = token

    # -------------------------------------------------------------------------
    # Declarations
    # -------------------------------------------------------------------------

    def database_accounts(self) -> list[DatabaseAccount]:
        """Accounts Phase 1 creates: the connection user and the static-role user."""
        return [
            DatabaseAccount(
                self.config.vault_db_user,
                self.config.vault_db_password,
                list(CONNECTION_ACCOUNT_GRANTS),
            ),
            DatabaseAccount(
                self.config.static_db_user,
                self.config.static_db_password,
                list(STATIC_ACCOUNT_GRANTS),
            ),
        ]

    def connection_config(self) -> ConnectionConfig:
        return ConnectionConfig(
            name=self.config.connection_name,
            plugin_name=self.config.plugin_name,
            connection_template=oracle_connection_template(
                ORACLE_SERVICE, 1521, self.config.oracle_service
            ),
            username=self.config.vault_db_user,
            password=self.config.vault_db_password,
            allowed_roles=[self.config.dynamic_role, self.config.static_role],
            max_lifetime=self.config.max_connection_lifetime,
            plugin_version=self.config.plugin_version,
        )

    def dynamic_role(self) -> DynamicRoleSpec:
        return DynamicRoleSpec(
            name=self.config.dynamic_role,
            backend_ref=self.config.connection_name,
            ttl_default=self.config.default_ttl,
            ttl_max=self.config.max_ttl,
            creation_statements=list(ORACLE_DYNAMIC_CREATION_STATEMENTS),
        )

    def static_role(self) -> StaticRoleSpec:
        return StaticRoleSpec(
            name=self.config.static_role,
            backend_ref=self.config.connection_name,
            bound_username=self.config.static_db_user,
            rotation_period=self.config.rotation_period,
        )

    # -------------------------------------------------------------------------
    # Readiness
    # -------------------------------------------------------------------------

    def wait_for_vault(self) -> None:
        self.vault_poller.wait("vault", self.vault.is_reachable)

    def wait_for_oracle(self) -> None:
        self.oracle_poller.wait("oracle", self.oracle.is_ready)

    # -------------------------------------------------------------------------
    # Phase 1
    # -------------------------------------------------------------------------

    def provision(self) -> StepResult:
        """Reconcile containers and artifacts → ContainersRunning."""
        if self.provisioner is None:
            raise BootstrapError("No provisioner configured")
        result = self.provisioner.apply(self.state)
        changed = bool(getattr(result, "changed", True))
        return self._complete(BootstrapStage.CONTAINERS_RUNNING, changed)

    def initialize(self) -> StepResult:
        """Initialize Vault once and persist the record → SecretsServerInitialized."""
        self._require(BootstrapStage.CONTAINERS_RUNNING, "initialize Vault")
        self.wait_for_vault()

        record = load_init_record(self.credentials)
        if record is not None:
            if not self.vault.is_initialized():
                raise BootstrapError(
                    "An initialization record is persisted but Vault reports it is not "
                    "initialized. Its storage was reset; run `vaultdb destroy --remove-data` "
                    "to start over."
                )
            logger.info("initialize_skipped", reason="initialization record already persisted")
            self.vault.token = record.root_token
            return self._complete(
                BootstrapStage.SECRETS_SERVER_INITIALIZED, False, "already initialized"
            )

        if self.vault.is_initialized():
            raise BootstrapError(
                "Vault is already initialized but no initialization record is persisted; "
                "its unseal keys cannot be recovered."
            )

        if self.config.key_shares == 1:
            logger.warning(
                "single_key_share",
                detail="one unseal key fully unseals Vault; use key_shares >= 3 outside demos",
            )
        response = self.vault.initialize(self.config.key_shares, self.config.key_threshold)
        record = InitializationRecord.from_init_response(response, self.config.key_threshold)
        if not record.unseal_key or not record.root_token:
            raise VerificationFailure(
                message="Vault init returned no unseal key or root token",
                diagnostics=json.dumps(sorted(response.keys())),
            )
        persist_init_record(self.credentials, record)
        self.vault.token = record.root_token
        logger.info("vault_initialized", key_shares=self.config.key_shares)
        return self._complete(BootstrapStage.SECRETS_SERVER_INITIALIZED, True, "initialized")

    def unseal(self) -> StepResult:
        """Submit persisted unseal keys if Vault is sealed → SecretsServerUnsealed.

        Re-enterable: safe to run whenever Vault may have restarted.
        """
        self._require(BootstrapStage.SECRETS_SERVER_INITIALIZED, "unseal Vault")
        record = load_init_record(self.credentials)
        if record is None:
            raise BootstrapError("No initialization record persisted; cannot unseal Vault.")

        status = self.vault.seal_status()
        if not status.get("sealed", True):
            logger.info("unseal_skipped", reason="vault already unsealed")
            return self._complete(BootstrapStage.SECRETS_SERVER_UNSEALED, False, "already unsealed")

        for key in record.unseal_keys:
            status = self.vault.unseal(key)
            if not status.get("sealed", True):
                break

        if status.get("sealed", True):
            raise VerificationFailure(
                message="Vault is still sealed after submitting all persisted unseal keys",
                diagnostics=json.dumps(
                    {k: status.get(k) for k in ("progress", "t", "n", "sealed")}
                ),
            )
        logger.info("vault_unsealed")
        return self._complete(BootstrapStage.SECRETS_SERVER_UNSEALED, True, "unsealed")

    def ensure_unsealed(self) -> StepResult:
        """Wait for Vault and unseal it again if a restart sealed it."""
        self._require(BootstrapStage.SECRETS_SERVER_INITIALIZED, "unseal Vault")
        self.wait_for_vault()
        return self.unseal()

    def create_database_accounts(self) -> StepResult:
        """Create the connection and static-role accounts → DatabaseAccountsCreated."""
        self._require(BootstrapStage.SECRETS_SERVER_UNSEALED, "create database accounts")
        self.wait_for_oracle()

        created = []
        for account in self.database_accounts():
            if self.oracle.user_exists(account.username):
                logger.info("account_create_skipped", username=account.username)
                continue

            output = self.oracle.create_account(account)
            if not self.oracle.user_exists(account.username):
                raise VerificationFailure(
                    message=f"Account '{account.username}' was not found after creation",
                    diagnostics=output,
                    data={"username": account.username},
                )
            created.append(account.username)

        detail = f"created {', '.join(created)}" if created else "accounts already exist"
        return self._complete(BootstrapStage.DATABASE_ACCOUNTS_CREATED, bool(created), detail)

    def run_phase1(self) -> list[StepResult]:
        """Provision, initialize, unseal and create database accounts."""
        return [
            self.provision(),
            self.initialize(),
            self.unseal(),
            self.create_database_accounts(),
        ]

    # -------------------------------------------------------------------------
    # Phase 2
    # -------------------------------------------------------------------------

    def register_plugin(self) -> StepResult:
        """Register the Oracle plugin binary by checksum → PluginRegistered."""
        self._require(BootstrapStage.DATABASE_ACCOUNTS_CREATED, "register plugin")
        binary = vault_plugin_dir(self.config.base_dir) / self.config.plugin_name
        if not binary.exists():
            raise BootstrapError(f"Plugin binary not found at {binary}")

        sha256 = sha256_file(binary)
        self.vault.register_plugin(
            self.config.plugin_name,
            sha256=sha256,
            command=self.config.plugin_name,
            version=self.config.plugin_version,
        )
        self._track(
            f"vault_plugin.{self.config.plugin_name}",
            {"sha256": sha256, "version": self.config.plugin_version, "type": "database"},
        )
        return self._complete(BootstrapStage.PLUGIN_REGISTERED, True, sha256[:12])

    def configure_backend(self) -> StepResult:
        """Mount the database engine and write the connection → BackendConfigured."""
        self._require(BootstrapStage.PLUGIN_REGISTERED, "configure the database backend")
        mount = self.config.mount_path

        address = f"vault_mount.{mount}"
        if self.vault.enable_secrets_engine(mount, "database"):
            self._track(address, {"type": "database"})
        elif address in self.state.resources:
            logger.info("mount_skipped", path=mount, reason="already configured")
        else:
            # Mounted by someone else; destroy leaves it in place
            logger.warning("mount_adopted", path=mount)
            self._track(address, {"type": "database", "adopted": True})

        connection = self.connection_config()
        self.vault.write_connection(mount, connection)
        self._track(
            f"vault_database_connection.{connection.name}",
            {"mount": mount, **connection.to_state()},
        )
        return self._complete(BootstrapStage.BACKEND_CONFIGURED, True, f"{mount}/{connection.name}")

    def create_roles(self) -> StepResult:
        """Write the dynamic and static roles → RolesCreated."""
        self._require(BootstrapStage.BACKEND_CONFIGURED, "create roles")
        mount = self.config.mount_path

        dynamic = self.dynamic_role()
        self.vault.write_dynamic_role(mount, dynamic)
        self._track(f"vault_database_role.{dynamic.name}", {"mount": mount, **dynamic.to_payload()})

        static = self.static_role()
        self.vault.write_static_role(mount, static)
        self._track(
            f"vault_database_static_role.{static.name}", {"mount": mount, **static.to_payload()}
        )
        return self._complete(
            BootstrapStage.ROLES_CREATED, True, f"{dynamic.name}, {static.name}"
        )

    def run_phase2(self) -> list[StepResult]:
        """Unseal if needed, then register plugin, configure backend, create roles."""
        self._require(BootstrapStage.DATABASE_ACCOUNTS_CREATED, "run phase 2")
        self._use_root_token()
        return [
            self.ensure_unsealed(),
            self.register_plugin(),
            self.configure_backend(),
            self.create_roles(),
        ]

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def forget_vault_resources(self) -> list[str]:
        """Drop Vault-side resources from tracked state without touching Vault."""
        dropped = self.state.vault_resources()
        for address in dropped:
            self.state.remove_resource(address)
        self.state_store.save(self.state)
        if dropped:
            logger.warning("vault_resources_forgotten", addresses=dropped)
        return dropped

    def destroy_vault_resources(self) -> list[str]:
        """Delete tracked Vault-side resources through the API.

        Raises:
            BootstrapError: If Vault is unreachable while resources are tracked.
        """
        addresses = self.state.vault_resources()
        if not addresses:
            return []

        try:
            self.vault.is_reachable()
        except ExternalCallFailure as e:
            raise BootstrapError(
                f"Vault is unreachable ({e.detail}) but {len(addresses)} Vault resource(s) "
                "are still tracked. Drop them first with `vaultdb state rm --vault-resources` "
                "or pass --forget-vault-resources.",
                data={"addresses": addresses},
            ) from e

        self._use_root_token()
        self.unseal()

        deleted = []
        for address in sorted(addresses, key=_deletion_order):
            attributes = self.state.resources[address]
            if attributes.get("adopted"):
                logger.info("vault_resource_released", address=address)
            else:
                self._delete_vault_resource(address, attributes)
                deleted.append(address)
            self.state.remove_resource(address)
            self.state_store.save(self.state)
        return deleted

    def _delete_vault_resource(self, address: str, attributes: dict[str, Any]) -> None:
        kind, name = address.split(".", 1)
        mount = attributes.get("mount", self.config.mount_path)
        logger.info("vault_resource_delete", address=address)
        if kind == "vault_database_static_role":
            self.vault.delete_static_role(mount, name)
        elif kind == "vault_database_role":
            self.vault.delete_dynamic_role(mount, name)
        elif kind == "vault_database_connection":
            self.vault.delete_connection(mount, name)
        elif kind == "vault_mount":
            self.vault.disable_secrets_engine(name)
        elif kind == "vault_plugin":
            self.vault.deregister_plugin(name, attributes.get("version", ""))
        else:
            raise BootstrapError(f"Unknown resource kind in state: {address}")

    def teardown(
        self,
        forget_vault_resources: bool = False,
        remove_data: bool = False,
    ) -> list[str]:
        """Remove everything this tool created.

        Args:
            forget_vault_resources: Drop Vault-side resources from state instead
                                    of deleting them through the API.
            remove_data: Also delete Vault storage, downloads and credentials.

        Returns:
            Addresses of Vault resources deleted or forgotten.
        """
        if forget_vault_resources:
            handled = self.forget_vault_resources()
        else:
            handled = self.destroy_vault_resources()

        if self.provisioner is None:
            raise BootstrapError("No provisioner configured")
        self.provisioner.destroy(self.state, remove_data=remove_data)

        if remove_data:
            for key in (INIT_RECORD_KEY, ROOT_TOKEN_KEY, UNSEAL_KEY_KEY):
                self.credentials.forget(key)

        self.state = TrackedState(resources=self.state.resources)
        self.state_store.save(self.state)
        logger.info("teardown_complete", remove_data=remove_data)
        return handled


# Roles before the connection they use, the connection before its mount,
# the mount before the plugin it runs
_DELETION_ORDER = [
    "vault_database_static_role",
    "vault_database_role",
    "vault_database_connection",
    "vault_mount",
    "vault_plugin",
]


def _deletion_order(address: str) -> int:
    kind = address.split(".", 1)[0]
    return _DELETION_ORDER.index(kind) if kind in _DELETION_ORDER else len(_DELETION_ORDER)
