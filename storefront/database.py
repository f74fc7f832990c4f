"""
Supabase Connection Layer.

Owns the async Supabase clients used by the storefront client:

- **Anon client**: the end-user client.  Carries the signed-in session,
  so every ``profiles`` query runs under row-level security.
- **Service-role client** (optional): only for maintenance commands that
  enumerate identities or repair profiles on behalf of other users.

This module only manages the client *objects*; query logic lives in the
repositories and auth operations live in ``AuthService``.

Usage (dependency injection at app startup)::

    db = SupabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        logger=StructuredLogger(name="storefront.database"),
    )
    await db.connect()
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from supabase import AsyncClient, acreate_client

from storefront.logger import StructuredLogger

T = TypeVar("T")


class SupabaseManager:
    """Holds the anon and (optionally) service-role ``AsyncClient``.

    Pre-built clients may be injected, which is how tests substitute an
    in-memory backend.  Missing clients are created by :meth:`connect`.

    Parameters
    ----------
    supabase_url:
        The Supabase project URL (e.g. ``https://xyz.supabase.co``).
    supabase_key:
        The anon (publishable) key.
    logger:
        A ``StructuredLogger`` instance.
    service_role_key:
        Service-role key for maintenance commands.  May be empty.
    request_timeout_s:
        Optional ceiling applied by :meth:`run` to every remote call.
    client / admin_client:
        Pre-built clients; skip creation in :meth:`connect`.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        logger: StructuredLogger,
        service_role_key: str = "",
        request_timeout_s: Optional[float] = None,
        client: Optional[AsyncClient] = None,
        admin_client: Optional[AsyncClient] = None,
    ) -> None:
        self._url: str = supabase_url
        self._key: str = supabase_key
        self._service_role_key: str = service_role_key
        self._logger: StructuredLogger = logger
        self._timeout: Optional[float] = request_timeout_s
        self._client: Optional[AsyncClient] = client
        self._admin_client: Optional[AsyncClient] = admin_client

    async def connect(self) -> None:
        """Create whichever clients were not injected.

        Raises
        ------
        RuntimeError
            If the anon client cannot be created (missing or malformed
            credentials).  The storefront cannot authenticate without it.
        """
        if self._client is None:
            if not self._url or not self._key:
                raise RuntimeError(
                    "Supabase configuration missing. "
                    "Set SUPABASE_URL and SUPABASE_ANON_KEY environment variables."
                )
            try:
                self._client = await acreate_client(self._url, self._key)
            except (ValueError, TypeError) as exc:
                raise RuntimeError(f"Supabase credential format error: {exc}") from exc
            self._logger.info("Supabase client initialized.")

        if self._admin_client is None and self._url and self._service_role_key:
            try:
                self._admin_client = await acreate_client(self._url, self._service_role_key)
                self._logger.info("Supabase service-role client initialized.")
            except (ValueError, TypeError) as exc:
                self._logger.warning(
                    "Service-role key format error: %s. Maintenance commands disabled.",
                    exc,
                )

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def client(self) -> AsyncClient:
        """Return the end-user client.

        Raises
        ------
        RuntimeError
            If :meth:`connect` has not created it yet.
        """
        if self._client is None:
            raise RuntimeError(
                "Supabase client is not initialised. Call connect() first."
            )
        return self._client

    @property
    def admin(self) -> AsyncClient:
        """Return the service-role client.

        Raises
        ------
        RuntimeError
            If no service-role key was configured.
        """
        if self._admin_client is None:
            raise RuntimeError(
                "Supabase service-role client is not configured. "
                "Set SUPABASE_SERVICE_ROLE_KEY for maintenance commands."
            )
        return self._admin_client

    async def run(self, call: Awaitable[T]) -> T:
        """Await a remote call, applying the configured timeout.

        A timeout surfaces as ``TimeoutError`` so callers classify it
        together with transport failures.
        """
        if self._timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self._timeout)
