"""Optimistic message cache for one widget session.

The cache holds the list shown to the visitor. Previews (status ``pending``)
are appended synchronously when the visitor acts, and identified by a local
sequence number. Server records (status ``confirmed``) are identified by
their server id. Reconciliation only ever removes a preview by its local id,
never by content or timestamp.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone

from toledoia.widget.models import ChatMessage, MessageStatus, MessageType

logger = logging.getLogger(__name__)


def _as_confirmed(message: ChatMessage) -> ChatMessage:
    if message.status == MessageStatus.CONFIRMED and message.local_id is None:
        return message
    return message.model_copy(update={"status": MessageStatus.CONFIRMED, "local_id": None})


class MessageCache:
    """Ordered message list with pending previews and confirmed messages.

    Attributes:
        _session_id: Session the list belongs to.
        _entries: Messages in display order.
        _sequence: Source of local ids; keeps counting across resets.
        _fallback_urls: Local preview URLs for confirmed messages whose
            server copy has no file URL.
    """

    def __init__(self, session_id: int | None = None) -> None:
        self._session_id = session_id
        self._entries: list[ChatMessage] = []
        self._sequence = itertools.count(1)
        self._fallback_urls: dict[int, str] = {}

    @property
    def session_id(self) -> int | None:
        return self._session_id

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._entries)

    @property
    def pending(self) -> list[ChatMessage]:
        return [m for m in self._entries if m.is_pending]

    @property
    def confirmed(self) -> list[ChatMessage]:
        return [m for m in self._entries if not m.is_pending]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(list(self._entries))

    def reset(self, session_id: int | None = None) -> None:
        """Empty the cache and bind it to ``session_id``."""
        self._session_id = session_id
        self._entries = []
        self._fallback_urls.clear()

    def add_pending(
        self,
        session_id: int,
        message_type: MessageType,
        content: str | None = None,
        file_url: str | None = None,
        is_user: bool = True,
    ) -> ChatMessage:
        """Append a preview message and return it."""
        message = ChatMessage(
            id=None,
            session_id=session_id,
            message_type=message_type,
            content=content,
            file_url=file_url,
            created_at=datetime.now(timezone.utc),
            is_user=is_user,
            status=MessageStatus.PENDING,
            local_id=next(self._sequence),
        )
        self._entries.append(message)
        logger.debug("Added preview %s to session %s", message.local_id, session_id)
        return message

    def discard(self, local_id: int) -> bool:
        """Remove the preview with ``local_id``. Returns False if absent."""
        for index, message in enumerate(self._entries):
            if message.is_pending and message.local_id == local_id:
                del self._entries[index]
                return True
        return False

    def confirm(self, local_id: int, confirmed: Iterable[ChatMessage]) -> list[ChatMessage]:
        """Replace a preview with the server's confirmed messages.

        The preview is removed exactly once; confirmed messages already in
        the list (a resync got there first) are updated in place instead of
        being appended again.

        Returns:
            The confirmed messages as stored in the cache.
        """
        if not self.discard(local_id):
            logger.debug("Preview %s was already gone when confirmed", local_id)

        stored: list[ChatMessage] = []
        for message in confirmed:
            message = self._with_fallback(_as_confirmed(message))
            index = self._index_of(message.id)
            if index is None:
                self._entries.append(message)
            else:
                self._entries[index] = message
            stored.append(message)
        return stored

    def replace_confirmed(self, server_messages: Iterable[ChatMessage]) -> None:
        """Adopt the server's list as the confirmed part of the cache.

        Previews still waiting for their response stay at the end. Confirmed
        entries newer than anything in the fetched list were confirmed after
        the fetch was issued and are kept as well.
        """
        fetched = [self._with_fallback(_as_confirmed(m)) for m in server_messages]
        fetched_ids = {m.id for m in fetched if m.id is not None}
        newest = max(fetched_ids, default=0)

        newer = [
            m for m in self._entries
            if not m.is_pending
            and m.id is not None
            and m.id not in fetched_ids
            and m.id > newest
        ]
        pending = self.pending

        self._entries = fetched + newer + pending
        logger.debug(
            "Resynced session %s: %d confirmed, %d newer, %d pending",
            self._session_id, len(fetched), len(newer), len(pending),
        )

    def remember_file_url(self, message_id: int, url: str) -> None:
        """Use ``url`` whenever the server copy of a message lacks a file URL."""
        self._fallback_urls[message_id] = url

    def _with_fallback(self, message: ChatMessage) -> ChatMessage:
        if message.file_url or message.id is None:
            return message
        fallback = self._fallback_urls.get(message.id)
        if fallback is None:
            return message
        return message.model_copy(update={"file_url": fallback})

    def _index_of(self, message_id: int | None) -> int | None:
        if message_id is None:
            return None
        for index, message in enumerate(self._entries):
            if not message.is_pending and message.id == message_id:
                return index
        return None
