"""Tests for the retry-protected profile creation path."""

import asyncio
from unittest.mock import MagicMock

import pytest

from authflow.config import AppConfig
from authflow.models.auth_models import RETRY_MESSAGE
from authflow.models.enums import ProfileRole, ProfileStatus, ProvisioningOutcome
from authflow.services.profile_provisioning import ProfileProvisioningService
from authflow.session_store import SessionStore
from authflow.utils.retry import backoff_delays
from authflow.utils.tasks import TaskRunner
from tests.fakes import FakeProfileStore, fast_config, make_identity, make_profile


def _service(profiles: FakeProfileStore, store: SessionStore, config: AppConfig) -> ProfileProvisioningService:
    return ProfileProvisioningService(
        repo=profiles, store=store, tasks=TaskRunner(logger=MagicMock()), config=config, logger=MagicMock(),
    )


class TestLoadProfile:
    def test_existing_profile_is_published(self, profiles, store, config) -> None:
        identity = make_identity()
        profiles.rows[identity.id] = make_profile(identity.id, display_name="Jane")
        store.set_identity(identity)

        profile = asyncio.run(_service(profiles, store, config).load_profile(identity))

        assert profile.display_name == "Jane"
        assert store.get_state().profile == profile
        assert store.get_state().profile_status == ProfileStatus.LOADED
        assert profiles.insert_calls == 0

    def test_missing_profile_is_created_as_placeholder(self, profiles, store, config) -> None:
        """No row and no trigger: the client creates an incomplete row."""
        identity = make_identity(role_hint=ProfileRole.ORGANIZATION)
        store.set_identity(identity)

        profile = asyncio.run(_service(profiles, store, config).load_profile(identity))

        assert profile is not None
        assert profile.display_name is None
        assert profile.role == ProfileRole.ORGANIZATION
        assert profiles.rows[identity.id] == profile
        assert store.get_state().profile == profile

    def test_placeholder_role_defaults_without_hint(self, profiles, store, config) -> None:
        identity = make_identity(role_hint=None)
        store.set_identity(identity)

        profile = asyncio.run(_service(profiles, store, config).load_profile(identity))

        assert profile.role == config.DEFAULT_PROFILE_ROLE

    def test_concurrent_loads_share_one_fetch(self, profiles, store, config) -> None:
        identity = make_identity()
        profiles.rows[identity.id] = make_profile(identity.id)
        profiles.get_delay = 0.02
        store.set_identity(identity)
        service = _service(profiles, store, config)

        async def scenario():
            return await asyncio.gather(*(service.load_profile(identity) for _ in range(3)))

        results = asyncio.run(scenario())

        assert profiles.get_calls == 1
        assert all(result == results[0] for result in results)

    def test_refresh_forces_a_second_fetch(self, profiles, store, config) -> None:
        identity = make_identity()
        profiles.rows[identity.id] = make_profile(identity.id)
        store.set_identity(identity)
        service = _service(profiles, store, config)

        async def scenario() -> None:
            await service.load_profile(identity)
            profiles.rows[identity.id] = make_profile(identity.id, display_name="Edited")
            await service.refresh_profile(identity)

        asyncio.run(scenario())

        assert profiles.get_calls == 2
        assert store.get_state().profile.display_name == "Edited"

    def test_result_for_replaced_identity_is_discarded(self, profiles, store, config) -> None:
        first = make_identity("user-1")
        profiles.rows[first.id] = make_profile(first.id, display_name="Old")
        profiles.get_delay = 0.02
        store.set_identity(first)
        service = _service(profiles, store, config)

        async def scenario() -> None:
            load = asyncio.ensure_future(service.load_profile(first))
            await asyncio.sleep(0)
            store.set_identity(make_identity("user-2"))
            await load

        asyncio.run(scenario())

        state = store.get_state()
        assert state.identity.id == "user-2"
        assert state.profile is None

    def test_fetch_failure_surfaces_error_status(self, profiles, store, config) -> None:
        identity = make_identity()
        profiles.fail_gets = config.PROFILE_CREATE_MAX_ATTEMPTS
        store.set_identity(identity)

        profile = asyncio.run(_service(profiles, store, config).load_profile(identity))

        assert profile is None
        assert store.get_state().profile_status == ProfileStatus.ERROR
        assert store.get_state().profile_error
        assert profiles.insert_calls == 0

    def test_transient_fetch_error_is_retried(self, profiles, store, config) -> None:
        identity = make_identity()
        profiles.rows[identity.id] = make_profile(identity.id)
        profiles.fail_gets = 1
        store.set_identity(identity)

        profile = asyncio.run(_service(profiles, store, config).load_profile(identity))

        assert profile is not None
        assert profiles.get_calls == 2


class TestEnsureProfile:
    def test_conflict_resolves_to_existing_row(self, profiles, store, config) -> None:
        identity = make_identity()
        existing = profiles.server_trigger_insert(identity)
        store.set_identity(identity)

        result = asyncio.run(_service(profiles, store, config).ensure_profile(identity))

        assert result.success
        assert result.outcome == ProvisioningOutcome.FETCHED_EXISTING
        assert result.profile == existing
        assert store.get_state().profile == existing

    def test_two_racing_creators_converge_on_one_row(self, profiles, config) -> None:
        """A second writer loses the insert race and fetches the winner's row."""
        identity = make_identity()
        profiles.insert_delay = 0.01
        store_a = SessionStore(logger=MagicMock())
        store_b = SessionStore(logger=MagicMock())
        store_a.set_identity(identity)
        store_b.set_identity(identity)

        async def scenario():
            return await asyncio.gather(
                _service(profiles, store_a, config).ensure_profile(identity),
                _service(profiles, store_b, config).ensure_profile(identity),
            )

        first, second = asyncio.run(scenario())

        assert first.success and second.success
        assert {first.outcome, second.outcome} == {
            ProvisioningOutcome.CREATED,
            ProvisioningOutcome.FETCHED_EXISTING,
        }
        assert first.profile == second.profile
        assert len(profiles.rows) == 1

    def test_concurrent_calls_in_one_client_share_an_attempt(self, profiles, store, config) -> None:
        identity = make_identity()
        profiles.insert_delay = 0.01
        store.set_identity(identity)
        service = _service(profiles, store, config)

        async def scenario():
            return await asyncio.gather(*(service.ensure_profile(identity) for _ in range(4)))

        results = asyncio.run(scenario())

        assert profiles.insert_calls == 1
        assert all(result.outcome == ProvisioningOutcome.CREATED for result in results)

    def test_transient_insert_errors_are_retried(self, profiles, store, config) -> None:
        identity = make_identity()
        profiles.fail_inserts = 2
        store.set_identity(identity)

        result = asyncio.run(_service(profiles, store, config).ensure_profile(identity))

        assert result.outcome == ProvisioningOutcome.CREATED
        assert result.attempts == 3
        assert profiles.insert_calls == 3

    def test_exhausted_retries_surface_actionable_failure(self, profiles, store, config) -> None:
        identity = make_identity()
        profiles.fail_inserts = 10
        store.set_identity(identity)

        result = asyncio.run(_service(profiles, store, config).ensure_profile(identity))

        assert not result.success
        assert result.outcome == ProvisioningOutcome.FAILED
        assert result.error_message == RETRY_MESSAGE
        assert profiles.insert_calls == config.PROFILE_CREATE_MAX_ATTEMPTS
        assert profiles.rows == {}
        state = store.get_state()
        assert state.profile_status == ProfileStatus.ERROR
        assert state.profile_error == RETRY_MESSAGE

    def test_failure_can_be_retried_by_the_user(self, profiles, store, config) -> None:
        identity = make_identity()
        profiles.fail_inserts = config.PROFILE_CREATE_MAX_ATTEMPTS
        store.set_identity(identity)
        service = _service(profiles, store, config)

        async def scenario():
            failed = await service.ensure_profile(identity)
            retried = await service.ensure_profile(identity)
            return failed, retried

        failed, retried = asyncio.run(scenario())

        assert not failed.success
        assert retried.outcome == ProvisioningOutcome.CREATED
        assert store.get_state().profile_status == ProfileStatus.LOADED

    def test_creation_is_audited(self, profiles, store, config) -> None:
        identity = make_identity()
        store.set_identity(identity)
        logger = MagicMock()
        service = ProfileProvisioningService(
            repo=profiles, store=store, tasks=TaskRunner(logger=logger), config=config, logger=logger,
        )

        asyncio.run(service.ensure_profile(identity))

        audit_events = [
            call.kwargs.get("extra", {}).get("event")
            for call in logger.info.call_args_list
        ]
        assert "PROFILE_CREATE" in audit_events


class TestAutoCreateTrigger:
    def test_trigger_row_is_picked_up_after_grace(self, profiles, store) -> None:
        config = fast_config(PROFILE_AUTO_CREATE_TRIGGER=True)
        identity = make_identity()
        store.set_identity(identity)
        service = _service(profiles, store, config)

        async def scenario():
            load = asyncio.ensure_future(service.load_profile(identity))
            await asyncio.sleep(0.005)
            profiles.server_trigger_insert(identity)
            return await load

        profile = asyncio.run(scenario())

        assert profile is not None
        assert profiles.insert_calls == 0

    def test_insert_path_stays_armed_when_trigger_never_fires(self, profiles, store) -> None:
        config = fast_config(PROFILE_AUTO_CREATE_TRIGGER=True)
        identity = make_identity()
        store.set_identity(identity)

        profile = asyncio.run(_service(profiles, store, config).load_profile(identity))

        assert profile is not None
        assert profiles.insert_calls == 1


class TestBackoff:
    def test_reference_schedule(self) -> None:
        assert list(backoff_delays(1.0, 4.0, 4)) == [1.0, 2.0, 4.0]

    def test_three_attempts_wait_twice(self) -> None:
        assert list(backoff_delays(1.0, 4.0, 3)) == [1.0, 2.0]

    @pytest.mark.parametrize("attempts", [0, 1])
    def test_single_attempt_never_waits(self, attempts: int) -> None:
        assert list(backoff_delays(1.0, 4.0, attempts)) == []

    def test_delay_is_capped(self) -> None:
        assert list(backoff_delays(1.0, 4.0, 6))[-1] == 4.0
