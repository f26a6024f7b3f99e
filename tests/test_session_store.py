"""Tests for the process-wide session store."""

import asyncio
from unittest.mock import MagicMock

from authflow.models.enums import ProfileStatus
from authflow.models.session_state import SessionState
from authflow.session_store import SessionStore
from tests.fakes import make_identity, make_profile


class TestSessionStoreWrites:
    def test_initial_state_is_loading_and_signed_out(self, store: SessionStore) -> None:
        state = store.get_state()
        assert state.is_loading is True
        assert state.identity is None
        assert state.profile is None
        assert state.has_redirected_to_onboarding is False
        assert state.profile_status == ProfileStatus.IDLE

    def test_every_write_replaces_the_snapshot(self, store: SessionStore) -> None:
        before = store.get_state()
        store.set_identity(make_identity())
        after = store.get_state()
        assert before is not after
        assert before.identity is None
        assert after.identity is not None

    def test_listeners_receive_the_new_snapshot(self, store: SessionStore) -> None:
        seen: list[SessionState] = []
        store.subscribe(seen.append)
        store.set_loading(False)
        assert len(seen) == 1
        assert seen[0] is store.get_state()
        assert seen[0].is_loading is False

    def test_unchanged_flag_does_not_notify(self, store: SessionStore) -> None:
        listener = MagicMock()
        store.subscribe(listener)
        store.set_has_redirected_to_onboarding(False)
        store.set_loading(True)
        listener.assert_not_called()

    def test_set_profile_marks_loaded(self, store: SessionStore) -> None:
        store.set_identity(make_identity())
        store.set_profile_status(ProfileStatus.ERROR, "boom")
        store.set_profile(make_profile())
        state = store.get_state()
        assert state.profile_status == ProfileStatus.LOADED
        assert state.profile_error is None

    def test_profile_fetched_at_uses_loop_time(self, store: SessionStore) -> None:
        async def scenario() -> None:
            store.set_identity(make_identity())
            store.set_profile(make_profile())

        asyncio.run(scenario())
        assert store.get_state().profile_fetched_at is not None

    def test_changing_identity_drops_previous_profile(self, store: SessionStore) -> None:
        store.set_identity(make_identity("user-1"))
        store.set_profile(make_profile("user-1"))
        store.set_has_redirected_to_onboarding(True)
        store.set_identity(make_identity("user-2"))
        state = store.get_state()
        assert state.identity.id == "user-2"
        assert state.profile is None
        assert state.profile_status == ProfileStatus.IDLE
        assert state.has_redirected_to_onboarding is False

    def test_same_identity_keeps_profile(self, store: SessionStore) -> None:
        store.set_identity(make_identity("user-1"))
        store.set_profile(make_profile("user-1"))
        store.set_identity(make_identity("user-1", role_hint=None))
        assert store.get_state().profile is not None

    def test_sign_out_clears_identity_profile_and_flag_together(self, store: SessionStore) -> None:
        store.set_identity(make_identity())
        store.set_profile(make_profile())
        store.set_has_redirected_to_onboarding(True)

        seen: list[SessionState] = []
        store.subscribe(seen.append)
        store.sign_out()

        assert len(seen) == 1
        cleared = seen[0]
        assert cleared.identity is None
        assert cleared.profile is None
        assert cleared.has_redirected_to_onboarding is False

    def test_reset_restores_initial_state(self, store: SessionStore) -> None:
        store.set_loading(False)
        store.set_identity(make_identity())
        store.reset()
        assert store.get_state() == SessionState()


class TestSessionStoreListeners:
    def test_unsubscribe_is_idempotent(self, store: SessionStore) -> None:
        listener = MagicMock()
        unsubscribe = store.subscribe(listener)
        unsubscribe()
        unsubscribe()
        store.set_loading(False)
        listener.assert_not_called()
        assert store.listener_count == 0

    def test_failing_listener_does_not_break_others(self, store: SessionStore) -> None:
        handler = MagicMock()
        store.set_error_handler(handler)
        after = MagicMock()

        def broken(_state: SessionState) -> None:
            raise RuntimeError("render failed")

        store.subscribe(broken)
        store.subscribe(after)
        store.set_loading(False)

        after.assert_called_once()
        handler.assert_called_once()
        assert isinstance(handler.call_args.args[0], RuntimeError)

    def test_nested_write_delivers_only_the_newest_snapshot(self, store: SessionStore) -> None:
        seen_by_second: list[SessionState] = []

        def first(state: SessionState) -> None:
            if state.identity is not None and not state.has_redirected_to_onboarding:
                store.set_has_redirected_to_onboarding(True)

        store.subscribe(first)
        store.subscribe(seen_by_second.append)
        store.set_identity(make_identity())

        assert len(seen_by_second) == 1
        assert seen_by_second[0].has_redirected_to_onboarding is True
