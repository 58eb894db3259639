"""Wire bootstrap components together from a BootstrapConfig."""

from collections.abc import Callable
from typing import Any

from .bootstrap import (
    BootstrapSequencer,
    FileCredentialStore,
    OracleSession,
    ReadinessPoller,
    ResourceProvisioner,
    StackManager,
    StateStore,
    VaultClient,
)
from .bootstrap.compose import ORACLE_CONTAINER
from .bootstrap.sequencer import StepCallback
from .config import BootstrapConfig
from .shared.paths import STATE_FILENAME

AttemptCallback = Callable[[int, Any, Any], None]


class BootstrapApplication:
    """
    Bootstrap application.

    Builds the Vault client, Oracle session, credential store, tracked state
    and provisioner for one configuration, and hands them to the sequencer.
    """

    def __init__(
        self,
        config: BootstrapConfig,
        on_step: StepCallback | None = None,
        on_attempt: AttemptCallback | None = None,
    ):
        self.config = config
        self.credentials = FileCredentialStore(config.base_dir)
        self.state_store = StateStore(config.base_dir / STATE_FILENAME)
        self.stack_manager = StackManager(config.base_dir)
        self.vault = VaultClient(config.vault_addr, timeout=config.http_timeout)
        self.oracle = OracleSession(
            ORACLE_CONTAINER,
            config.oracle_password,
            service=config.oracle_service,
        )
        self.provisioner = ResourceProvisioner(config, stack_manager=self.stack_manager)
        self.sequencer = BootstrapSequencer(
            config,
            vault=self.vault,
            oracle=self.oracle,
            credentials=self.credentials,
            state_store=self.state_store,
            provisioner=self.provisioner,
            vault_poller=ReadinessPoller(
                interval_seconds=config.poll_interval,
                max_attempts=config.vault_max_attempts,
                on_attempt=on_attempt,
            ),
            oracle_poller=ReadinessPoller(
                interval_seconds=config.poll_interval,
                max_attempts=config.oracle_max_attempts,
                on_attempt=on_attempt,
            ),
            on_step=on_step,
        )

    def close(self) -> None:
        self.vault.close()

    def __enter__(self) -> "BootstrapApplication":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
