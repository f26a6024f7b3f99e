"""
In-memory collaborators for the session flow.

``FakeIdentityProvider`` counts live subscriptions and lets a test decide
when a session becomes visible; ``FakeProfileStore`` enforces a unique
``id`` the way the ``profiles`` primary key does and can be scripted to
fail or to stall.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional
from unittest.mock import MagicMock

from authflow.config import AppConfig
from authflow.errors import (
    IdentityProviderError,
    ProfileConflictError,
    ProfileNotFoundError,
    ProfileStoreError,
)
from authflow.models.enums import ProfileRole, SessionEvent
from authflow.models.identity import AuthSession, Identity
from authflow.models.profile import ProfileRecord, ProfileUpdate
from authflow.services import ServiceContainer, create_services
from authflow.ui.navigation import HistoryNavigator

SessionCallback = Callable[[str, Optional[AuthSession]], None]


def fast_config(**overrides: object) -> AppConfig:
    """Config with every wait shrunk to a few milliseconds."""
    values: dict[str, object] = {
        "SUPABASE_URL": "",
        "SESSION_POLL_INTERVAL_S": 0.01,
        "SESSION_POLL_ATTEMPTS": 20,
        "PROFILE_WAIT_S": 0.2,
        "PROFILE_POLL_INTERVAL_S": 0.01,
        "PROFILE_TRIGGER_GRACE_S": 0.02,
        "PROFILE_RETRY_BASE_DELAY_S": 0.01,
        "PROFILE_RETRY_MAX_DELAY_S": 0.04,
        "REQUEST_TIMEOUT_S": 1.0,
    }
    values.update(overrides)
    return AppConfig(_env_file=None, **values)


def make_identity(
    user_id: str = "user-1",
    role_hint: Optional[ProfileRole] = ProfileRole.COACH,
) -> Identity:
    return Identity(id=user_id, email=f"{user_id}@example.com", role_hint=role_hint)


def make_session(identity: Optional[Identity] = None) -> AuthSession:
    return AuthSession(identity=identity or make_identity(), access_token="access", refresh_token="refresh")


def make_profile(user_id: str = "user-1", display_name: Optional[str] = None) -> ProfileRecord:
    return ProfileRecord(
        id=user_id,
        email=f"{user_id}@example.com",
        role=ProfileRole.COACH,
        display_name=display_name,
    )


# ---------------------------------------------------------------------------
# Identity provider
# ---------------------------------------------------------------------------

class FakeSubscription:
    def __init__(self, provider: "FakeIdentityProvider", callback: SessionCallback) -> None:
        self._provider = provider
        self._callback = callback

    def unsubscribe(self) -> None:
        if self._callback in self._provider.subscribers:
            self._provider.subscribers.remove(self._callback)


class FakeIdentityProvider:
    """Identity provider whose session the test controls."""

    def __init__(self, session: Optional[AuthSession] = None) -> None:
        self.session: Optional[AuthSession] = session
        self.subscribers: list[SessionCallback] = []
        self.max_active_subscriptions: int = 0
        self.get_session_calls: int = 0
        self.get_session_error: Optional[Exception] = None
        self.resend_error: Optional[Exception] = None
        self.resent_to: list[str] = []
        self.sign_out_calls: int = 0
        self.exchange_calls: list[str] = []
        self.pending_session: Optional[AuthSession] = None
        self.exchange_delay: float = 0.0

    @property
    def active_subscriptions(self) -> int:
        return len(self.subscribers)

    async def get_current_session(self) -> Optional[AuthSession]:
        self.get_session_calls += 1
        await asyncio.sleep(0)
        if self.get_session_error is not None:
            raise self.get_session_error
        return self.session

    def on_session_change(self, callback: SessionCallback) -> FakeSubscription:
        self.subscribers.append(callback)
        self.max_active_subscriptions = max(self.max_active_subscriptions, len(self.subscribers))
        return FakeSubscription(self, callback)

    async def resend_verification(self, email: str) -> None:
        await asyncio.sleep(0)
        if self.resend_error is not None:
            raise self.resend_error
        self.resent_to.append(email)

    async def complete_redirect(self, url: str) -> Optional[AuthSession]:
        self.exchange_calls.append(url)
        if len(self.exchange_calls) > 1:
            raise IdentityProviderError("flow_state_not_found", code="flow_state_not_found")
        await asyncio.sleep(self.exchange_delay)
        if self.pending_session is not None:
            self.establish(self.pending_session)
        return self.session

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        self.session = None
        self.emit(SessionEvent.SIGNED_OUT, None)

    # -- test controls ---------------------------------------------------

    def establish(self, session: AuthSession) -> None:
        self.session = session
        self.emit(SessionEvent.SIGNED_IN, session)

    def emit(self, event: str, session: Optional[AuthSession]) -> None:
        for callback in list(self.subscribers):
            callback(str(event), session)


# ---------------------------------------------------------------------------
# Profile store
# ---------------------------------------------------------------------------

class FakeProfileStore:
    """Profile table with a unique ``id`` and scriptable failures."""

    def __init__(self) -> None:
        self.rows: dict[str, ProfileRecord] = {}
        self.insert_calls: int = 0
        self.get_calls: int = 0
        self.update_calls: int = 0
        self.fail_inserts: int = 0
        self.fail_gets: int = 0
        self.fail_updates: int = 0
        self.insert_delay: float = 0.0
        self.get_delay: float = 0.0

    async def insert(self, record: ProfileRecord) -> ProfileRecord:
        self.insert_calls += 1
        await asyncio.sleep(self.insert_delay)
        if self.fail_inserts > 0:
            self.fail_inserts -= 1
            raise ProfileStoreError("connection reset by peer", code="08006")
        if record.id in self.rows:
            raise ProfileConflictError("duplicate key value violates unique constraint", code="23505")
        self.rows[record.id] = record
        return record

    async def get_by_id(self, profile_id: str) -> ProfileRecord:
        self.get_calls += 1
        await asyncio.sleep(self.get_delay)
        if self.fail_gets > 0:
            self.fail_gets -= 1
            raise ProfileStoreError("connection reset by peer", code="08006")
        if profile_id not in self.rows:
            raise ProfileNotFoundError("no rows", code="PGRST116")
        return self.rows[profile_id]

    async def update(self, profile_id: str, changes: ProfileUpdate) -> ProfileRecord:
        self.update_calls += 1
        await asyncio.sleep(0)
        if self.fail_updates > 0:
            self.fail_updates -= 1
            raise ProfileStoreError("connection reset by peer", code="08006")
        if profile_id not in self.rows:
            raise ProfileNotFoundError("no rows", code="PGRST116")
        updated = self.rows[profile_id].model_copy(update=changes.to_payload())
        self.rows[profile_id] = updated
        return updated

    def server_trigger_insert(self, identity: Identity) -> ProfileRecord:
        """What an auto-create trigger does at sign-up."""
        record = ProfileRecord(
            id=identity.id,
            email=identity.email,
            role=identity.role_hint or ProfileRole.APPLICANT,
        )
        self.rows[identity.id] = record
        return record


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_services(
    provider: FakeIdentityProvider,
    profiles: FakeProfileStore,
    initial_url: str = "/",
    config: Optional[AppConfig] = None,
) -> tuple[ServiceContainer, HistoryNavigator]:
    navigator = HistoryNavigator(logger=MagicMock(), initial_url=initial_url)
    services = create_services(
        provider=provider,
        profiles=profiles,
        navigator=navigator,
        config=config or fast_config(),
        logger=MagicMock(),
    )
    return services, navigator
