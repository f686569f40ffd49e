# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant provisioning saga.

Key Components:
- ProvisioningSaga: Ten-step creation with typed compensations
- RollbackLog: Per-attempt log of started steps and their compensations
- CompensationExecutor: Interprets compensations
- ports: Interfaces of the account layer, Git host and notifier
"""

from cdn_tenants.domains.provisioning.compensations import (
    Compensation,
    CompensationExecutor,
    DeleteOsAccount,
    DeletePersistedRecord,
    DeleteRemoteRepo,
    DeleteRemoteUser,
    RemoveChroot,
    RemoveCollaborator,
    RemoveWebLink,
)
from cdn_tenants.domains.provisioning.credentials import Credentials, generate_password
from cdn_tenants.domains.provisioning.rollback_log import RollbackLog
from cdn_tenants.domains.provisioning.saga import (
    STEPS,
    ProvisioningResult,
    ProvisioningSaga,
    SagaStep,
)

__all__ = [
    # Saga
    "ProvisioningSaga",
    "ProvisioningResult",
    "SagaStep",
    "STEPS",
    "Credentials",
    "generate_password",
    # Rollback
    "RollbackLog",
    "CompensationExecutor",
    "Compensation",
    "DeleteOsAccount",
    "RemoveChroot",
    "DeleteRemoteRepo",
    "DeleteRemoteUser",
    "RemoveCollaborator",
    "RemoveWebLink",
    "DeletePersistedRecord",
]
