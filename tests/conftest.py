"""
Shared test fixtures and utilities.

Provides an in-memory stand-in for the Supabase ``AsyncClient`` that
covers the surface the storefront uses: auth events, password sign-in,
sign-up, sign-out, metadata updates, the admin user listing and the
``profiles`` table (select / insert / update with a primary-key
uniqueness constraint).
"""

from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable, Optional

import pytest
import pytest_asyncio
from postgrest.exceptions import APIError

from storefront.auth import AuthState
from storefront.config import AppConfig, reset_config
from storefront.database import SupabaseManager
from storefront.logger import StructuredLogger
from storefront.services import ServiceContainer, create_services

_ids = itertools.count(1)


class FakeAuthApiError(Exception):
    """Mimics the auth client's API error: a message plus a ``code``."""

    def __init__(self, message: str, code: Optional[str] = None, status: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class FakeSubscription:
    def __init__(self, auth: "FakeAuth", callback: Callable[[Any, Any], None]) -> None:
        self._auth = auth
        self._callback = callback

    def unsubscribe(self) -> None:
        if self._callback in self._auth.callbacks:
            self._auth.callbacks.remove(self._callback)


class FakeAdminApi:
    def __init__(self, backend: "FakeSupabase") -> None:
        self._backend = backend

    async def list_users(
        self, page: Optional[int] = None, per_page: Optional[int] = None,
    ) -> list[SimpleNamespace]:
        """Paginated like the auth server: 1-based pages, 50 users by default."""
        self._backend.raise_if_failing("list_users")
        self._backend.calls.append(("list_users", f"page={page}"))
        size = per_page or 50
        start = ((page or 1) - 1) * size
        return list(self._backend.users.values())[start:start + size]


class FakeAuth:
    """Auth half of the fake client.  Events fire synchronously."""

    def __init__(self, backend: "FakeSupabase") -> None:
        self._backend = backend
        self.callbacks: list[Callable[[Any, Any], None]] = []
        self.current_session: Optional[SimpleNamespace] = None
        self.admin = FakeAdminApi(backend)

    def on_auth_state_change(self, callback: Callable[[Any, Any], None]) -> FakeSubscription:
        self.callbacks.append(callback)
        return FakeSubscription(self, callback)

    def emit(self, event: str, session: Optional[SimpleNamespace]) -> None:
        for callback in list(self.callbacks):
            callback(event, session)

    async def get_session(self) -> Optional[SimpleNamespace]:
        self._backend.raise_if_failing("get_session")
        return self.current_session

    async def sign_in_with_password(self, credentials: dict[str, str]) -> SimpleNamespace:
        self._backend.raise_if_failing("sign_in")
        email = credentials["email"]
        user = self._backend.find_user(email)
        if user is None or self._backend.passwords.get(email) != credentials["password"]:
            raise FakeAuthApiError("Invalid login credentials", code="invalid_credentials")
        session = self._backend.start_session(user)
        self.emit("SIGNED_IN", session)
        return SimpleNamespace(user=user, session=session)

    async def sign_up(self, credentials: dict[str, Any]) -> SimpleNamespace:
        self._backend.raise_if_failing("sign_up")
        email = credentials["email"]
        if self._backend.find_user(email) is not None:
            raise FakeAuthApiError("User already registered", code="user_already_exists")
        metadata = credentials.get("options", {}).get("data", {})
        user = self._backend.add_user(email, credentials["password"], metadata=metadata)
        session = self._backend.start_session(user)
        self.emit("SIGNED_IN", session)
        return SimpleNamespace(user=user, session=session)

    async def sign_out(self) -> None:
        self._backend.raise_if_failing("sign_out")
        self.current_session = None
        self.emit("SIGNED_OUT", None)

    async def update_user(self, attributes: dict[str, Any]) -> SimpleNamespace:
        self._backend.raise_if_failing("update_user")
        session = self.current_session
        if session is None:
            raise FakeAuthApiError("Auth session missing!", code="session_not_found")
        session.user.user_metadata.update(attributes.get("data", {}))
        self.emit("USER_UPDATED", session)
        return SimpleNamespace(user=session.user)


class FakeQuery:
    """Chainable PostgREST-style builder over ``FakeSupabase.tables``."""

    def __init__(self, backend: "FakeSupabase", table: str) -> None:
        self._backend = backend
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._filters: list[tuple[str, Any]] = []
        self._single = False
        self._order: Optional[tuple[str, bool]] = None

    def select(self, *_columns: str) -> "FakeQuery":
        self._op = "select"
        return self

    def insert(self, payload: dict[str, Any]) -> "FakeQuery":
        self._op = "insert"
        self._payload = payload
        return self

    def update(self, payload: dict[str, Any]) -> "FakeQuery":
        self._op = "update"
        self._payload = payload
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append((column, value))
        return self

    def maybe_single(self) -> "FakeQuery":
        self._single = True
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = (column, desc)
        return self

    async def execute(self) -> Optional[SimpleNamespace]:
        backend = self._backend
        backend.calls.append((self._op, self._table))
        # Yield so concurrent callers interleave like real network calls.
        await asyncio.sleep(0)
        if self._op == "select" and backend.hold_selects is not None:
            backend.select_waiting.set()
            await backend.hold_selects.wait()
        backend.raise_if_failing(self._op)

        rows = backend.tables.setdefault(self._table, {})
        if self._op == "insert":
            return self._insert(rows)
        matched = [row for row in rows.values() if self._matches(row)]
        if self._op == "update":
            for row in matched:
                row.update(self._payload)
                row["updated_at"] = _now()
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self._order is not None:
            column, desc = self._order
            matched.sort(key=lambda row: row.get(column) or "", reverse=desc)
        if self._single:
            return SimpleNamespace(data=dict(matched[0])) if matched else None
        return SimpleNamespace(data=[dict(row) for row in matched])

    def _insert(self, rows: dict[str, dict[str, Any]]) -> SimpleNamespace:
        key = self._payload["id"]
        if key in rows:
            raise APIError({
                "code": "23505",
                "message": 'duplicate key value violates unique constraint "profiles_pkey"',
                "details": f"Key (id)=({key}) already exists.",
                "hint": None,
            })
        stamp = _now()
        row = {
            "is_suspended": False,
            "last_updated_at": None,
            "last_updated_by": None,
            **self._payload,
            "created_at": stamp,
            "updated_at": stamp,
        }
        rows[key] = row
        if not self._backend.return_representation:
            return SimpleNamespace(data=[])
        return SimpleNamespace(data=[dict(row)])

    def _matches(self, row: dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in self._filters)


class FakeSupabase:
    """In-memory Supabase client.

    ``errors`` maps an operation name (``select``, ``insert``, ``update``,
    ``get_session``, ``sign_in``, ``sign_up``, ``sign_out``,
    ``update_user``, ``list_users``) to the exception it should raise.
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = {"profiles": {}}
        self.users: dict[str, SimpleNamespace] = {}
        self.passwords: dict[str, str] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.return_representation: bool = True
        self.hold_selects: Optional[asyncio.Event] = None
        self.select_waiting: asyncio.Event = asyncio.Event()
        self.auth = FakeAuth(self)

    # -- client surface ------------------------------------------------
    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    # -- test helpers --------------------------------------------------
    @property
    def profiles(self) -> dict[str, dict[str, Any]]:
        return self.tables["profiles"]

    def raise_if_failing(self, operation: str) -> None:
        error = self.errors.get(operation)
        if error is not None:
            raise error

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def find_user(self, email: str) -> Optional[SimpleNamespace]:
        return next((u for u in self.users.values() if u.email == email), None)

    def add_user(
        self,
        email: str,
        password: str = "secret123",
        metadata: Optional[dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> SimpleNamespace:
        user = SimpleNamespace(
            id=user_id or f"user-{next(_ids)}",
            email=email,
            user_metadata=dict(metadata or {}),
        )
        self.users[user.id] = user
        self.passwords[email] = password
        return user

    def add_profile(self, user_id: str, **fields: Any) -> dict[str, Any]:
        stamp = _now()
        row = {
            "id": user_id,
            "full_name": None,
            "phone": None,
            "role": "customer",
            "is_suspended": False,
            "created_at": stamp,
            "updated_at": stamp,
            "last_updated_at": None,
            "last_updated_by": None,
            **fields,
        }
        self.profiles[user_id] = row
        return row

    def start_session(self, user: SimpleNamespace) -> SimpleNamespace:
        session = SimpleNamespace(
            access_token=f"access-{user.id}",
            refresh_token=f"refresh-{user.id}",
            expires_at=4102444800,
            user=user,
        )
        self.auth.current_session = session
        return session


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep tests off the log file and away from any developer .env values."""
    monkeypatch.setenv("LOG_FILE", "")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("SUPABASE_URL", "http://localhost:54321")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-test-key")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(name="storefront.tests")


@pytest.fixture
def backend() -> FakeSupabase:
    """Fresh in-memory Supabase for each test."""
    return FakeSupabase()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(PROFILE_REFETCH_DELAY_S=0.0)


@pytest.fixture
def db(backend: FakeSupabase, logger: StructuredLogger) -> SupabaseManager:
    """SupabaseManager wired to the fake for both anon and service-role use."""
    return SupabaseManager(
        supabase_url="http://localhost:54321",
        supabase_key="anon-test-key",
        logger=logger,
        client=backend,
        admin_client=backend,
    )


@pytest.fixture
def state(logger: StructuredLogger) -> AuthState:
    return AuthState(logger=logger)


@pytest.fixture
def services(db: SupabaseManager, config: AppConfig, state: AuthState) -> ServiceContainer:
    return create_services(db=db, config=config, state=state)


@pytest.fixture
def toasts(services: ServiceContainer) -> list[Any]:
    """Every notification pushed during the test, in order."""
    received: list[Any] = []
    services["notifications"].subscribe(received.append)
    return received


@pytest_asyncio.fixture
async def attached_listener(services: ServiceContainer):
    """Session listener attached for the duration of the test."""
    listener = services["session_listener"]
    await listener.attach()
    yield listener
    await listener.detach()
