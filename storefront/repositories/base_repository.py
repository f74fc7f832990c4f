"""
Base Repository.

Provides shared infrastructure for all repositories:
- SupabaseManager reference
- Logger reference
- Client selection (end-user client vs. service-role client)
"""

from __future__ import annotations

from typing import Awaitable, TypeVar

from supabase import AsyncClient

from storefront.database import SupabaseManager
from storefront.logger import StructuredLogger

T = TypeVar("T")


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__.

    ``use_service_role`` routes every query through the service-role
    client, bypassing row-level security.  Only maintenance services
    construct repositories that way.
    """

    TABLE: str = ""

    def __init__(
        self,
        db: SupabaseManager,
        logger: StructuredLogger,
        *,
        use_service_role: bool = False,
    ) -> None:
        self._db = db
        self._logger = logger
        self._use_service_role = use_service_role

    @property
    def supabase(self) -> AsyncClient:
        """Returns the Supabase client this repository queries through."""
        return self._db.admin if self._use_service_role else self._db.client

    async def _run(self, call: Awaitable[T]) -> T:
        return await self._db.run(call)
