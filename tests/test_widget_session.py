"""Tests for toledoia.widget.session.

Tests cover:
- Single-flight session creation per (widget, visitor)
- Resuming an already-active backend session
- Failure resetting the slot
- Ending sessions idempotently
- Expiry clearing the cached session
"""

from __future__ import annotations

import asyncio

import pytest

from toledoia.widget.errors import WidgetAPIError
from toledoia.widget.session import SessionManager, SessionState

WIDGET_ID = "3f6c1c8e-0000-4000-8000-000000000001"


@pytest.fixture
def sessions(api) -> SessionManager:
    return SessionManager(api)


# ===========================================================================
# Creation
# ===========================================================================


class TestEnsureSession:
    """Tests for ensure_session."""

    @pytest.mark.asyncio
    async def test_creates_session(self, sessions, backend):
        session = await sessions.ensure_session(WIDGET_ID, "v-1", "pt", "https://site.example/")
        assert session.visitor_id == "v-1"
        assert session.referrer_url == "https://site.example/"
        assert sessions.state(WIDGET_ID, "v-1") == SessionState.ACTIVE
        assert sessions.get_session(WIDGET_ID, "v-1") == session
        assert backend.session_posts == 1

    @pytest.mark.asyncio
    async def test_reuses_cached_session(self, sessions, backend):
        first = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        second = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        assert first.id == second.id
        assert backend.session_posts == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_creation(self, sessions, backend):
        backend.create_delay = 0.05
        results = await asyncio.gather(
            *(sessions.ensure_session(WIDGET_ID, "v-1", "pt") for _ in range(5))
        )
        assert backend.session_posts == 1
        assert len({s.id for s in results}) == 1
        assert not sessions.is_creating(WIDGET_ID, "v-1")

    @pytest.mark.asyncio
    async def test_is_creating_while_in_flight(self, sessions, backend):
        backend.create_delay = 0.05
        task = asyncio.create_task(sessions.ensure_session(WIDGET_ID, "v-1", "pt"))
        await asyncio.sleep(0.01)
        assert sessions.is_creating(WIDGET_ID, "v-1")
        assert sessions.state(WIDGET_ID, "v-1") == SessionState.CREATING
        assert sessions.get_session(WIDGET_ID, "v-1") is None
        await task
        assert not sessions.is_creating(WIDGET_ID, "v-1")

    @pytest.mark.asyncio
    async def test_pairs_are_independent(self, sessions, backend):
        a = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        b = await sessions.ensure_session(WIDGET_ID, "v-2", "pt")
        assert a.id != b.id
        assert backend.session_posts == 2

    @pytest.mark.asyncio
    async def test_resumes_active_backend_session(self, api, backend):
        existing = await api.create_session(WIDGET_ID, "v-1", "pt")
        manager = SessionManager(api)
        session = await manager.ensure_session(WIDGET_ID, "v-1", "pt")
        assert session.id == existing.id
        assert backend.session_posts == 1

    @pytest.mark.asyncio
    async def test_resume_disabled(self, api, backend):
        existing = await api.create_session(WIDGET_ID, "v-1", "pt")
        manager = SessionManager(api, resume_existing=False)
        session = await manager.ensure_session(WIDGET_ID, "v-1", "pt")
        assert session.id != existing.id
        assert backend.session_posts == 2

    @pytest.mark.asyncio
    async def test_failure_resets_slot_and_retries(self, sessions, backend):
        with pytest.raises(WidgetAPIError):
            await sessions.ensure_session(WIDGET_ID, "", "pt")
        assert sessions.state(WIDGET_ID, "") == SessionState.ABSENT
        assert not sessions.is_creating(WIDGET_ID, "")

        with pytest.raises(WidgetAPIError):
            await sessions.ensure_session(WIDGET_ID, "", "pt")
        assert backend.session_posts == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_all_see_failure(self, sessions, backend):
        backend.create_delay = 0.02
        results = await asyncio.gather(
            sessions.ensure_session(WIDGET_ID, "", "pt"),
            sessions.ensure_session(WIDGET_ID, "", "pt"),
            return_exceptions=True,
        )
        assert all(isinstance(r, WidgetAPIError) for r in results)
        assert backend.session_posts == 1


# ===========================================================================
# Ending and expiry
# ===========================================================================


class TestEndSession:
    """Tests for end_session."""

    @pytest.mark.asyncio
    async def test_end(self, sessions, backend):
        session = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        assert await sessions.end_session(session.id) is True
        assert sessions.state(WIDGET_ID, "v-1") == SessionState.ENDED
        assert sessions.get_session(WIDGET_ID, "v-1") is None

    @pytest.mark.asyncio
    async def test_end_twice_is_not_an_error(self, sessions):
        session = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        await sessions.end_session(session.id)
        assert await sessions.end_session(session.id) is False

    @pytest.mark.asyncio
    async def test_new_session_after_end(self, sessions, backend):
        first = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        await sessions.end_session(first.id)
        second = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        assert second.id != first.id
        assert backend.session_posts == 2


class TestHandleExpiry:
    """Tests for handle_expiry."""

    @pytest.mark.asyncio
    async def test_expiry_clears_session(self, sessions):
        session = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        assert sessions.handle_expiry(session.id) is True
        assert sessions.state(WIDGET_ID, "v-1") == SessionState.EXPIRED
        assert sessions.get_session(WIDGET_ID, "v-1") is None

    @pytest.mark.asyncio
    async def test_expiry_of_unknown_session(self, sessions):
        assert sessions.handle_expiry(12345) is False

    @pytest.mark.asyncio
    async def test_expiry_is_idempotent(self, sessions):
        session = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        sessions.handle_expiry(session.id)
        assert sessions.handle_expiry(session.id) is False

    @pytest.mark.asyncio
    async def test_next_ensure_creates_fresh_session(self, sessions, backend):
        first = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        backend.expire(first.id)
        sessions.handle_expiry(first.id)

        second = await sessions.ensure_session(WIDGET_ID, "v-1", "pt")
        assert second.id != first.id
        assert second.is_active
        assert sessions.state(WIDGET_ID, "v-1") == SessionState.ACTIVE
