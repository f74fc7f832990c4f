import pytest

from storefront.models import AccessDecision, Identity, Profile, SessionInfo, UserRole
from storefront.services.access_gate import AccessGate, AreaRegistry, build_default_registry


@pytest.fixture
def gate(state, logger):
    return AccessGate(state=state, registry=build_default_registry(logger), logger=logger)


def sign_in(state, user_id="u1", **metadata):
    state.begin_loading()
    state.finish_loading()
    state.apply_session(
        SessionInfo(access_token="t", identity=Identity(id=user_id, user_metadata=metadata))
    )


class TestAreaRegistry:
    def test_find_matches_prefix_segments(self, logger):
        registry = build_default_registry(logger)
        assert registry.find("/admin").prefix == "/admin"
        assert registry.find("/admin/orders/42").prefix == "/admin"
        assert registry.find("/staff/?tab=queue").prefix == "/staff"
        assert registry.find("/administrator") is None
        assert registry.find("/") is None

    def test_most_specific_area_wins(self, logger):
        registry = AreaRegistry(logger)
        registry.register("/admin", "Admin", frozenset({UserRole.ADMIN}))
        registry.register("/admin/reports/", "Reports", frozenset({UserRole.ADMIN, UserRole.STAFF}))
        assert registry.find("/admin/reports/daily").display_name == "Reports"

    def test_empty_roles_rejected(self, logger):
        with pytest.raises(ValueError):
            AreaRegistry(logger).register("/vault", "Vault", frozenset())

    def test_areas_for_role(self, logger):
        registry = build_default_registry(logger)
        assert [a.prefix for a in registry.get_areas_for_role(UserRole.STAFF)] == ["/staff"]
        assert registry.get_areas_for_role(UserRole.CUSTOMER) == []


class TestAccessGate:
    def test_loading_while_initial_check_runs(self, gate, state):
        state.begin_loading()
        assert gate.check("/admin") == AccessDecision.LOADING

    def test_public_paths_always_allowed(self, gate, state):
        state.begin_loading()
        state.finish_loading()
        assert gate.check("/products/7") == AccessDecision.ALLOW

    def test_unauthenticated_redirects(self, gate, state):
        state.begin_loading()
        state.finish_loading()
        assert gate.check("/admin") == AccessDecision.REDIRECT_LOGIN

    def test_pending_until_fetch_attempted(self, gate, state):
        sign_in(state)
        assert gate.check("/staff") == AccessDecision.PENDING

    def test_deny_when_profile_missing_after_attempt(self, gate, state):
        sign_in(state)
        state.mark_profile_fetch_attempted()
        assert gate.check("/staff") == AccessDecision.DENY

    @pytest.mark.parametrize(
        "role, path, expected",
        [
            (UserRole.ADMIN, "/admin", AccessDecision.ALLOW),
            (UserRole.STAFF, "/admin", AccessDecision.DENY),
            (UserRole.CUSTOMER, "/admin", AccessDecision.DENY),
            (UserRole.STAFF, "/staff/orders", AccessDecision.ALLOW),
            (UserRole.ADMIN, "/staff", AccessDecision.DENY),
        ],
    )
    def test_role_decisions(self, gate, state, role, path, expected):
        sign_in(state)
        state.mark_profile_fetch_attempted()
        state.set_profile(Profile(id="u1", role=role))
        assert gate.check(path) == expected

    def test_metadata_role_is_ignored(self, gate, state):
        sign_in(state, role="admin")
        state.mark_profile_fetch_attempted()
        state.set_profile(Profile(id="u1", role=UserRole.CUSTOMER))
        assert gate.check("/admin") == AccessDecision.DENY

    def test_suspended_profile_denied(self, gate, state):
        sign_in(state)
        state.mark_profile_fetch_attempted()
        state.set_profile(Profile(id="u1", role=UserRole.ADMIN, is_suspended=True))
        assert gate.check("/admin") == AccessDecision.DENY
        assert not gate.can_access("/admin")
