"""Bootstrap package for the Vault/Oracle dynamic-secrets demo.

This package provides what `vaultdb apply` and `vaultdb destroy` run:
1. Downloads the Oracle plugin and Instant Client, declares the containers
2. Reconciles them with Docker
3. Waits for Vault and Oracle to accept requests
4. Phase 1: initializes and unseals Vault, creates Oracle accounts
5. Phase 2: registers the plugin, configures the database engine, creates roles
"""

from .artifacts import Artifact, ArtifactDownloader, sha256_file
from .compose import ComposeGenerator, ContainerSpec, VolumeManager, declare_containers
from .credentials import CredentialStore, FileCredentialStore
from .database import DatabaseAccount, OracleSession, SqlResult
from .models import (
    ConnectionConfig,
    DynamicRoleSpec,
    InitializationRecord,
    StaticRoleSpec,
)
from .provisioner import ResourceAction, ResourcePlan, ResourceProvisioner, detect_drift
from .readiness import ReadinessPoller, ReadinessResult, wait_until_ready
from .sequencer import BootstrapSequencer, StepResult
from .stack import StackManager, StackState, StackStatus
from .state import BootstrapStage, StateStore, TrackedState
from .vault import VaultClient

__all__ = [
    # Data model
    "InitializationRecord",
    "ConnectionConfig",
    "DynamicRoleSpec",
    "StaticRoleSpec",
    # Readiness
    "wait_until_ready",
    "ReadinessPoller",
    "ReadinessResult",
    # Credentials
    "CredentialStore",
    "FileCredentialStore",
    # External systems
    "VaultClient",
    "OracleSession",
    "DatabaseAccount",
    "SqlResult",
    # Provisioning
    "Artifact",
    "ArtifactDownloader",
    "sha256_file",
    "ContainerSpec",
    "ComposeGenerator",
    "VolumeManager",
    "declare_containers",
    "ResourceAction",
    "ResourcePlan",
    "ResourceProvisioner",
    "detect_drift",
    "StackManager",
    "StackState",
    "StackStatus",
    # State machine
    "BootstrapStage",
    "StateStore",
    "TrackedState",
    "BootstrapSequencer",
    "StepResult",
]
