# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Gitea REST API client.

This module talks to the Gitea API v1 to manage the per-tenant content
repository, the tenant's Gitea account and its read-only collaborator
access. Repositories are owned by the configured admin account.

Requests are retried with exponential backoff on transport errors and 5xx
responses. A 409 or 422 answer to the first attempt raises GiteaConflictError.
Delete operations treat 404 as "already gone" so they can be used as
compensations and in best-effort teardown.

Example:
    client = GiteaClient(settings.gitea)
    try:
        await client.repo_create("acme", "CDN content for acme")
        await client.user_create("tenant_acme", "ops@acme.io", password)
        await client.collaborator_add("acme", "tenant_acme")
    finally:
        await client.close()
"""

import asyncio
import base64
import logging
from typing import Any

import httpx

from cdn_tenants.core.config.settings import GiteaSettings
from cdn_tenants.core.exceptions import CdnTenantError, ResourceExistsError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_MIN = 500
CONFLICT_STATUSES = frozenset({409, 422})


class GiteaError(CdnTenantError):
    """Raised when a Gitea API call fails.

    Attributes:
        status_code: HTTP status (None for transport failures).
        response_body: Raw response text, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        details: dict = {}
        if status_code is not None:
            details["status_code"] = status_code
        if response_body:
            details["response"] = response_body[:500]
        super().__init__(message, details)


class GiteaConflictError(GiteaError, ResourceExistsError):
    """The first attempt of a create call was refused with 409 or 422.

    No earlier request of the same call reached Gitea, so nothing changed.
    A conflict on a retry is reported as a plain GiteaError because an
    earlier attempt may have been applied.
    """


class GiteaClient:
    """Async client for the Gitea admin and repository endpoints."""

    def __init__(
        self,
        settings: GiteaSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Gitea settings (URL, token, timeout, retry policy).
            transport: Optional transport, used by tests.
        """
        self._settings = settings
        self._owner = settings.admin_user
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers={**settings.auth_headers, "Accept": "application/json"},
            timeout=settings.timeout,
            transport=transport,
        )

    @property
    def owner(self) -> str:
        """Account that owns every tenant repository."""
        return self._owner

    def repo_url(self, repo: str) -> str:
        """Public web URL of a tenant repository."""
        return f"https://{self._settings.domain}/{self._owner}/{repo}"

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "GiteaClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json: dict[str, Any] | None = None,
        missing_ok: bool = False,
    ) -> httpx.Response | None:
        """Send a request with retry.

        Args:
            method: HTTP method.
            path: Path relative to the API base URL.
            operation: Description used in errors and logs.
            json: Optional JSON body.
            missing_ok: Return None instead of raising on 404.

        Returns:
            The response, or None for a tolerated 404.

        Raises:
            GiteaError: On a non-2xx response or when retries are exhausted.
        """
        attempts = max(1, self._settings.max_retries)
        last_error: GiteaError | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(method, path, json=json)
            except httpx.TransportError as e:
                last_error = GiteaError(f"{operation} failed: {e}")
                logger.warning(
                    "Gitea %s attempt %d/%d failed: %s", operation, attempt, attempts, e
                )
            else:
                if response.status_code < RETRYABLE_STATUS_MIN:
                    return self._check_response(
                        response, operation, missing_ok, first_attempt=attempt == 1
                    )
                last_error = GiteaError(
                    f"{operation} failed: HTTP {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text,
                )
                logger.warning(
                    "Gitea %s attempt %d/%d returned HTTP %d",
                    operation,
                    attempt,
                    attempts,
                    response.status_code,
                )

            if attempt < attempts:
                await asyncio.sleep(self._settings.retry_backoff * 2 ** (attempt - 1))

        if last_error is None:
            raise GiteaError(f"{operation} failed: no attempt was made")
        raise last_error

    @staticmethod
    def _check_response(
        response: httpx.Response,
        operation: str,
        missing_ok: bool,
        first_attempt: bool = False,
    ) -> httpx.Response | None:
        if response.status_code == 404 and missing_ok:
            return None
        if response.is_success:
            return response

        detail = response.text
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("message"):
            detail = payload["message"]

        error_cls = GiteaError
        if first_attempt and response.status_code in CONFLICT_STATUSES:
            error_cls = GiteaConflictError
        raise error_cls(
            f"{operation} failed: HTTP {response.status_code}: {detail}",
            status_code=response.status_code,
            response_body=response.text,
        )

    # =========================================================================
    # Repositories
    # =========================================================================

    async def repo_create(self, repo: str, description: str = "") -> dict[str, Any]:
        """Create a public repository owned by the admin account.

        Returns:
            The created repository as returned by Gitea.
        """
        response = await self._request(
            "POST",
            f"/admin/users/{self._owner}/repos",
            f"create repository {self._owner}/{repo}",
            json={
                "name": repo,
                "description": description,
                "private": False,
                "auto_init": False,
                "default_branch": self._settings.default_branch,
            },
        )
        if response is None:
            raise GiteaError(f"create repository {self._owner}/{repo} failed: no response")
        logger.info("Created Gitea repository: %s/%s", self._owner, repo)
        return response.json()

    async def repo_delete(self, repo: str) -> bool:
        """Delete a repository.

        Returns:
            True if deleted, False if it did not exist.
        """
        response = await self._request(
            "DELETE",
            f"/repos/{self._owner}/{repo}",
            f"delete repository {self._owner}/{repo}",
            missing_ok=True,
        )
        if response is None:
            logger.warning("Gitea repository not found: %s/%s", self._owner, repo)
            return False
        logger.info("Deleted Gitea repository: %s/%s", self._owner, repo)
        return True

    async def repo_initialize(self, repo: str, readme: str) -> None:
        """Commit an initial README.md to the default branch."""
        await self._request(
            "POST",
            f"/repos/{self._owner}/{repo}/contents/README.md",
            f"initialize repository {self._owner}/{repo}",
            json={
                "content": base64.b64encode(readme.encode("utf-8")).decode("ascii"),
                "message": "Initial commit",
                "branch": self._settings.default_branch,
                "new_branch": self._settings.default_branch,
            },
        )
        logger.info("Initialized Gitea repository: %s/%s", self._owner, repo)

    # =========================================================================
    # Users
    # =========================================================================

    async def user_create(self, username: str, email: str, password: str) -> dict[str, Any]:
        """Create a Gitea account that does not have to change its password."""
        response = await self._request(
            "POST",
            "/admin/users",
            f"create user {username}",
            json={
                "username": username,
                "email": email,
                "password": password,
                "must_change_password": False,
                "send_notify": False,
            },
        )
        if response is None:
            raise GiteaError(f"create user {username} failed: no response")
        logger.info("Created Gitea user: %s", username)
        return response.json()

    async def user_delete(self, username: str) -> bool:
        """Delete a Gitea account (and purge what it owns).

        Returns:
            True if deleted, False if it did not exist.
        """
        response = await self._request(
            "DELETE",
            f"/admin/users/{username}?purge=true",
            f"delete user {username}",
            missing_ok=True,
        )
        if response is None:
            logger.warning("Gitea user not found: %s", username)
            return False
        logger.info("Deleted Gitea user: %s", username)
        return True

    # =========================================================================
    # Collaborators
    # =========================================================================

    async def collaborator_add(self, repo: str, username: str, permission: str = "read") -> None:
        """Grant ``username`` access to a repository (read-only by default)."""
        await self._request(
            "PUT",
            f"/repos/{self._owner}/{repo}/collaborators/{username}",
            f"add collaborator {username} to {self._owner}/{repo}",
            json={"permission": permission},
        )
        logger.info("Added %s as %s collaborator on %s/%s", username, permission, self._owner, repo)

    async def collaborator_remove(self, repo: str, username: str) -> bool:
        """Revoke a collaborator.

        Returns:
            True if removed, False if the repository or user was not found.
        """
        response = await self._request(
            "DELETE",
            f"/repos/{self._owner}/{repo}/collaborators/{username}",
            f"remove collaborator {username} from {self._owner}/{repo}",
            missing_ok=True,
        )
        if response is None:
            logger.warning("Collaborator %s not found on %s/%s", username, self._owner, repo)
            return False
        logger.info("Removed collaborator %s from %s/%s", username, self._owner, repo)
        return True
