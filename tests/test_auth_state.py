from types import SimpleNamespace

import pytest

from storefront.auth import AuthState
from storefront.models import AuthPhase, Identity, Profile, SessionInfo, UserRole


def make_session(user_id: str, email: str = "ana@example.com", **metadata) -> SessionInfo:
    return SessionInfo(
        access_token=f"access-{user_id}",
        identity=Identity(id=user_id, email=email, user_metadata=metadata),
    )


class TestAuthState:
    def test_phase_progression(self, state: AuthState):
        """Phase follows loading, identity and profile."""
        assert state.phase == AuthPhase.UNINITIALIZED

        state.begin_loading()
        assert state.phase == AuthPhase.LOADING

        state.finish_loading()
        assert state.phase == AuthPhase.UNAUTHENTICATED

        state.apply_session(make_session("u1"))
        assert state.phase == AuthPhase.AUTHENTICATED_NO_PROFILE

        state.set_profile(Profile(id="u1"))
        assert state.phase == AuthPhase.AUTHENTICATED_WITH_PROFILE

    def test_role_selectors_read_profile_only(self, state: AuthState):
        """Metadata claiming admin grants nothing without the profile role."""
        state.apply_session(make_session("u1", role="admin"))
        assert state.is_authenticated
        assert not state.is_admin

        state.set_profile(Profile(id="u1", role=UserRole.STAFF))
        assert state.is_staff
        assert not state.is_admin

        state.set_profile(Profile(id="u1", role=UserRole.ADMIN))
        assert state.is_admin
        assert not state.is_staff

    def test_set_profile_ignores_other_identity(self, state: AuthState):
        state.apply_session(make_session("u1"))
        assert state.set_profile(Profile(id="someone-else")) is False
        assert state.profile is None

    def test_token_refresh_keeps_profile(self, state: AuthState):
        state.apply_session(make_session("u1"))
        state.mark_profile_fetch_attempted()
        state.set_profile(Profile(id="u1", full_name="Ana"))

        state.apply_session(make_session("u1"))

        assert state.profile is not None
        assert state.profile.full_name == "Ana"
        assert state.profile_fetch_attempted

    def test_identity_change_drops_profile(self, state: AuthState):
        state.apply_session(make_session("u1"))
        state.mark_profile_fetch_attempted()
        state.set_profile(Profile(id="u1", role=UserRole.ADMIN))

        state.apply_session(make_session("u2", email="ben@example.com"))

        assert state.profile is None
        assert not state.is_admin
        assert not state.profile_fetch_attempted

    def test_clear_resets_everything(self, state: AuthState):
        state.apply_session(make_session("u1"))
        state.mark_profile_fetch_attempted()
        state.set_profile(Profile(id="u1"))

        state.clear()

        assert state.session is None
        assert state.identity is None
        assert state.profile is None
        assert not state.profile_fetch_attempted
        assert not state.is_authenticated

    def test_merge_profile(self, state: AuthState):
        state.apply_session(make_session("u1"))
        state.set_profile(Profile(id="u1", full_name="Ana", phone="555"))

        state.merge_profile({"phone": "777"})

        assert state.profile.full_name == "Ana"
        assert state.profile.phone == "777"

    def test_merge_without_profile_is_noop(self, state: AuthState):
        state.apply_session(make_session("u1"))
        state.merge_profile({"full_name": "Ana"})
        assert state.profile is None

    def test_subscribe_and_unsubscribe(self, state: AuthState):
        seen = []
        unsubscribe = state.subscribe(lambda s: seen.append(s.phase))

        state.begin_loading()
        unsubscribe()
        state.finish_loading()

        assert seen == [AuthPhase.LOADING]

    def test_failing_listener_does_not_block_others(self, state: AuthState):
        seen = []

        def broken(_state):
            raise RuntimeError("boom")

        state.subscribe(broken)
        state.subscribe(lambda s: seen.append(s.user_id))

        state.apply_session(make_session("u1"))

        assert seen == ["u1"]


class TestSessionInfo:
    def test_from_supabase_none(self):
        assert SessionInfo.from_supabase(None) is None
        assert SessionInfo.from_supabase(SimpleNamespace(access_token="t", user=None)) is None

    def test_from_supabase_copies_identity(self):
        user = SimpleNamespace(id="u1", email="a@b.co", user_metadata={"full_name": "A"})
        info = SessionInfo.from_supabase(
            SimpleNamespace(access_token="t", refresh_token="r", expires_at=1, user=user)
        )
        assert info.identity.id == "u1"
        assert info.identity.metadata_str("full_name") == "A"

    def test_identity_requires_id(self):
        with pytest.raises(ValueError):
            Identity(id="")

    @pytest.mark.parametrize(
        "email, expected",
        [("ana@example.com", "ana"), ("no-at-sign", None), (None, None), ("@x.com", None)],
    )
    def test_email_local_part(self, email, expected):
        assert Identity(id="u1", email=email).email_local_part == expected
