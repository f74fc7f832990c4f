"""
Business Logic Services Package.

Services depend on the Repository layer for data access and on the
shared ``AuthState`` for the signed-in user's context.

The ``create_services()`` factory wires every repository and service together,
returning a typed dict that the application layer (views / commands) can
consume without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import TypedDict

from storefront.auth import AuthState
from storefront.config import AppConfig
from storefront.database import SupabaseManager
from storefront.logger import get_logger
from storefront.repositories.profile_repository import ProfileRepository
from storefront.services.access_gate import AccessGate, AreaRegistry, build_default_registry
from storefront.services.auth_service import AuthService
from storefront.services.notifications import NotificationCenter
from storefront.services.profile_reconciler import ProfileReconcilerService
from storefront.services.session_listener import SessionListener
from storefront.services.user_admin import UserAdminService


class ServiceContainer(TypedDict):
    """Typed container for all storefront services."""

    notifications: NotificationCenter
    profile_reconciler: ProfileReconcilerService
    session_listener: SessionListener
    auth_service: AuthService
    area_registry: AreaRegistry
    access_gate: AccessGate
    user_admin_service: UserAdminService


def create_services(
    db: SupabaseManager,
    config: AppConfig,
    state: AuthState,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    application entry-point calls this once at startup and passes the
    returned dict to views / commands as needed.

    Args:
        db: SupabaseManager (clients are resolved lazily, so it may be
            connected before or after this call).
        config: Application configuration.
        state: The process-wide auth state.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("storefront.services")

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    profile_repo = ProfileRepository(db=db, logger=logger)
    admin_profile_repo = ProfileRepository(db=db, logger=logger, use_service_role=True)

    # ------------------------------------------------------------------
    # 2. Leaf services
    # ------------------------------------------------------------------
    notifications = NotificationCenter(
        logger=logger,
        history_size=config.NOTIFICATION_HISTORY,
    )
    profile_reconciler = ProfileReconcilerService(
        repo=profile_repo,
        state=state,
        notifications=notifications,
        logger=logger,
        refetch_delay_s=config.PROFILE_REFETCH_DELAY_S,
    )
    area_registry = build_default_registry(logger=get_logger("storefront.areas"))

    # ------------------------------------------------------------------
    # 3. Orchestration services
    # ------------------------------------------------------------------
    session_listener = SessionListener(
        db=db,
        state=state,
        reconciler=profile_reconciler,
        notifications=notifications,
        logger=logger,
    )
    auth_service = AuthService(
        db=db,
        state=state,
        reconciler=profile_reconciler,
        repo=profile_repo,
        notifications=notifications,
        logger=logger,
    )
    access_gate = AccessGate(state=state, registry=area_registry, logger=logger)
    user_admin_service = UserAdminService(
        repo=profile_repo,
        admin_repo=admin_profile_repo,
        db=db,
        state=state,
        logger=logger,
    )

    return ServiceContainer(
        notifications=notifications,
        profile_reconciler=profile_reconciler,
        session_listener=session_listener,
        auth_service=auth_service,
        area_registry=area_registry,
        access_gate=access_gate,
        user_admin_service=user_admin_service,
    )
