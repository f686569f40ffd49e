# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exception hierarchy for tenant operations.

This module defines the error taxonomy shared by every tenant operation:
- CdnTenantError: Base exception for all tenant-related errors
- ValidationError: Bad input, rejected before any side effect
- PreconditionError: Tenant exists / does not exist / not confirmed
- ResourceExhaustedError: The SFTP UID pool has no free value
- ResourceExistsError: A create call found its target already present
- ProvisioningError: A creation step failed and was rolled back
- LifecycleStepError: A lifecycle step failed before the record changed
- PersistenceError: The tenant store could not be read or written
- NotificationError: A notification could not be sent or queued
"""

from enum import Enum


class CdnTenantError(Exception):
    """Base exception for all tenant-related errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: dict | None = None):
        """Initialize tenant error.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation with details if available."""
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(CdnTenantError):
    """Input failed validation. Always recoverable by retrying with new input."""


class NameViolation(str, Enum):
    """Which tenant name rule was broken."""

    INVALID_LENGTH = "invalid_length"
    INVALID_CHARSET = "invalid_charset"
    INVALID_BOUNDARY = "invalid_boundary"
    RESERVED = "reserved"


class InvalidTenantNameError(ValidationError):
    """Tenant name failed validation.

    Attributes:
        name: The rejected tenant name.
        violation: The rule that was broken.
    """

    def __init__(self, name: str, violation: NameViolation, message: str):
        self.name = name
        self.violation = violation
        super().__init__(message, {"tenant": name, "violation": violation.value})


class InvalidEmailError(ValidationError):
    """Email address is not RFC-shaped."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Invalid email format: {address}", {"field": "email"})


class InvalidQuotaError(ValidationError):
    """Quota is not a positive integer number of KB."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(
            f"Invalid quota: {value!r} (must be positive integer KB)",
            {"field": "quota_kb"},
        )


class InvalidPortError(ValidationError):
    """Port is outside 1..65535."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid port: {value!r} (must be 1-65535)", {"field": "port"})


class InvalidSshKeyError(ValidationError):
    """Public key is not an OpenSSH public key line."""

    def __init__(self, reason: str):
        super().__init__(f"Invalid SSH public key: {reason}", {"field": "public_key"})


class ImmutableFieldError(ValidationError):
    """Attempted to update a field that cannot change after creation."""

    def __init__(self, tenant: str, field: str):
        self.tenant = tenant
        self.field = field
        super().__init__(
            f"Field '{field}' of tenant '{tenant}' is immutable",
            {"tenant": tenant, "field": field},
        )


# =============================================================================
# Precondition Errors
# =============================================================================


class PreconditionError(CdnTenantError):
    """The tenant is not in the state the operation requires."""


class TenantAlreadyExistsError(PreconditionError):
    """Raised when a tenant name is already in use."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tenant already exists: {name}", {"tenant": name})


class TenantNotFoundError(PreconditionError):
    """Raised when a tenant does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tenant does not exist: {name}", {"tenant": name})


class ConfirmationRequiredError(PreconditionError):
    """Raised when a destructive operation was not explicitly confirmed."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Deleting tenant '{name}' requires the --confirm-delete flag",
            {"tenant": name},
        )


# =============================================================================
# Resource / Step Errors
# =============================================================================


class ResourceExhaustedError(CdnTenantError):
    """A bounded resource pool has no free entries."""


class UidPoolExhaustedError(ResourceExhaustedError):
    """No free UID left in the configured SFTP range."""

    def __init__(self, uid_start: int, uid_end: int):
        self.uid_start = uid_start
        self.uid_end = uid_end
        super().__init__(
            f"No available UIDs in range {uid_start}-{uid_end}",
            {"uid_start": uid_start, "uid_end": uid_end},
        )


class ResourceExistsError(CdnTenantError):
    """A create call found its target already present and changed nothing."""


class ProvisioningError(CdnTenantError):
    """A creation step failed; all earlier steps were compensated.

    Attributes:
        tenant: Tenant that failed to provision.
        step: 1-based index of the failing step.
        step_description: Human-readable step name.
        cause: The underlying exception.
        compensation_failures: Descriptions of compensations that also failed.
        rollback_log: Path of the persisted rollback log, if any.
    """

    def __init__(
        self,
        tenant: str,
        step: int,
        step_description: str,
        cause: BaseException,
        compensation_failures: list[str] | None = None,
        rollback_log: str | None = None,
    ):
        self.tenant = tenant
        self.step = step
        self.step_description = step_description
        self.cause = cause
        self.compensation_failures = compensation_failures or []
        self.rollback_log = rollback_log
        details: dict = {"tenant": tenant, "step": step}
        if self.compensation_failures:
            details["compensation_failures"] = self.compensation_failures
        if rollback_log:
            details["rollback_log"] = rollback_log
        super().__init__(
            f"Failed to create tenant '{tenant}' at step {step} "
            f"({step_description}): {cause}",
            details,
        )


class PersistenceError(CdnTenantError):
    """The tenant store could not be read or written."""

    def __init__(self, tenant: str, reason: str):
        self.tenant = tenant
        self.reason = reason
        super().__init__(
            f"Persistence failure for tenant '{tenant}': {reason}",
            {"tenant": tenant},
        )


class NotificationError(CdnTenantError):
    """A notification could be neither delivered nor queued."""


class LifecycleStepError(CdnTenantError):
    """A step of a lifecycle command failed; the tenant record was left as it was.

    Attributes:
        tenant: Tenant being changed.
        step: What was being done, e.g. ``lock SFTP account``.
        cause: The underlying exception.
    """

    def __init__(self, tenant: str, step: str, cause: BaseException):
        self.tenant = tenant
        self.step = step
        self.cause = cause
        super().__init__(
            f"Failed to {step} for tenant '{tenant}': {cause}",
            {"tenant": tenant, "step": step},
        )
