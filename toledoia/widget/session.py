"""Widget session manager.

Keeps at most one active conversation per (widget, visitor) pair and recovers
transparently when the backend reports that conversation as gone. Each pair
has a slot that moves through::

    ABSENT -> CREATING -> ACTIVE -> ENDED
                          ACTIVE -> EXPIRED -> CREATING (on next use)

A failed creation drops the slot back to ABSENT with nothing cached, so the
next call retries from scratch.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from toledoia.widget.client import WidgetAPIClient
from toledoia.widget.models import ChatSession, Language

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle of a pair's session reference."""

    ABSENT = "absent"
    CREATING = "creating"
    ACTIVE = "active"
    ENDED = "ended"
    EXPIRED = "expired"


@dataclass
class SessionSlot:
    """Session reference and creation guard for one (widget, visitor) pair."""

    widget_id: str
    visitor_id: str
    state: SessionState = SessionState.ABSENT
    session: ChatSession | None = None
    creating: asyncio.Task | None = None


class SessionManager:
    """Guarantees a single logical conversation thread per visitor and widget.

    Attributes:
        _api: HTTP collaborator.
        _resume_existing: Ask the backend for an already-active session
            before creating one.
        _slots: Slot per (widget_id, visitor_id).
    """

    def __init__(self, api: WidgetAPIClient, *, resume_existing: bool = True) -> None:
        self._api = api
        self._resume_existing = resume_existing
        self._slots: dict[tuple[str, str], SessionSlot] = {}

    def _slot(self, widget_id: str, visitor_id: str) -> SessionSlot:
        key = (widget_id, visitor_id)
        slot = self._slots.get(key)
        if slot is None:
            slot = SessionSlot(widget_id=widget_id, visitor_id=visitor_id)
            self._slots[key] = slot
        return slot

    def _find(self, session_id: int) -> SessionSlot | None:
        for slot in self._slots.values():
            if slot.session is not None and slot.session.id == session_id:
                return slot
        return None

    def state(self, widget_id: str, visitor_id: str) -> SessionState:
        slot = self._slots.get((widget_id, visitor_id))
        return slot.state if slot else SessionState.ABSENT

    def get_session(self, widget_id: str, visitor_id: str) -> ChatSession | None:
        """Return the cached active session for the pair, if any."""
        slot = self._slots.get((widget_id, visitor_id))
        if slot is None or slot.state != SessionState.ACTIVE:
            return None
        return slot.session

    def is_creating(self, widget_id: str, visitor_id: str) -> bool:
        slot = self._slots.get((widget_id, visitor_id))
        return slot is not None and slot.creating is not None

    async def ensure_session(
        self,
        widget_id: str,
        visitor_id: str,
        language: Language,
        referrer_url: str | None = None,
    ) -> ChatSession:
        """Return the pair's active session, creating it if needed.

        Callers arriving while a creation is in flight wait for that same
        creation instead of starting another one.

        Raises:
            WidgetTransportError: The backend could not be reached.
            WidgetAPIError: The backend refused to create the session.
        """
        slot = self._slot(widget_id, visitor_id)
        if slot.state == SessionState.ACTIVE and slot.session is not None:
            return slot.session

        if slot.creating is None:
            slot.state = SessionState.CREATING
            slot.creating = asyncio.create_task(
                self._create(slot, language, referrer_url)
            )

        return await asyncio.shield(slot.creating)

    async def _create(
        self,
        slot: SessionSlot,
        language: Language,
        referrer_url: str | None,
    ) -> ChatSession:
        task = asyncio.current_task()
        try:
            session = None
            if self._resume_existing:
                session = await self._api.get_active_session(slot.widget_id, slot.visitor_id)
                if session is not None:
                    logger.info(
                        "Resumed session %s for widget %s", session.id, slot.widget_id
                    )
            if session is None:
                session = await self._api.create_session(
                    slot.widget_id, slot.visitor_id, language, referrer_url
                )
                logger.info("Created session %s for widget %s", session.id, slot.widget_id)
        except Exception as e:
            if slot.creating is task:
                slot.state = SessionState.ABSENT
                slot.session = None
            logger.error("Session creation failed for widget %s: %s", slot.widget_id, e)
            raise
        else:
            if slot.creating is task:
                slot.session = session
                slot.state = SessionState.ACTIVE
            return session
        finally:
            if slot.creating is task:
                slot.creating = None

    async def end_session(self, session_id: int) -> bool:
        """End a session; ending an already-ended session is not an error.

        Returns:
            True if this call ended the session, False if it had already ended.
        """
        ended = await self._api.end_session(session_id)
        slot = self._find(session_id)
        if slot is not None:
            slot.session = None
            slot.state = SessionState.ENDED
        logger.info("Session %s ended (already ended: %s)", session_id, not ended)
        return ended

    def handle_expiry(self, session_id: int) -> bool:
        """Forget a session the backend reported as ended or missing.

        Clears the cached reference and the creation guard; the next
        :meth:`ensure_session` for the pair creates a fresh session.

        Returns:
            True if a cached session was cleared, False if none matched.
        """
        slot = self._find(session_id)
        if slot is None:
            logger.debug("Expiry for unknown or already cleared session %s", session_id)
            return False

        slot.session = None
        slot.creating = None
        slot.state = SessionState.EXPIRED
        logger.info("Session %s expired; will recreate on next use", session_id)
        return True
