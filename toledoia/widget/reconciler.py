"""Send and upload operations over the optimistic message cache.

Every operation follows the same shape: validate, append a preview, call the
backend, then either confirm the preview with the server's messages or roll
it back. A session-expiry rejection additionally hands the session to the
:class:`SessionManager` for recovery before the error is re-raised. After a
successful operation a background resync pulls the authoritative list.
"""

from __future__ import annotations

import asyncio
import logging

from toledoia.config.settings import settings
from toledoia.widget.client import WidgetAPIClient
from toledoia.widget.errors import SessionExpiredError, WidgetError, WidgetValidationError
from toledoia.widget.messages import MessageCache
from toledoia.widget.models import ChatMessage, MessageExchange, MessageType, UploadFile
from toledoia.widget.previews import PreviewURLRegistry
from toledoia.widget.session import SessionManager

logger = logging.getLogger(__name__)


def validate_text(content: str | None) -> None:
    if not content or not content.strip():
        raise WidgetValidationError("A mensagem está vazia")


def validate_upload(upload: UploadFile | None) -> None:
    if upload is None:
        raise WidgetValidationError("Nenhum arquivo selecionado")
    if not upload.content:
        raise WidgetValidationError(f"O arquivo {upload.filename} está vazio")


def _require_session(session_id: int | None) -> None:
    if session_id is None:
        raise WidgetValidationError("Nenhuma sessão ativa")


class MessageReconciler:
    """Keeps the message cache consistent with the backend.

    Parameters
    ----------
    api:
        HTTP collaborator.
    sessions:
        Session manager notified when the backend reports expiry.
    cache:
        Message cache to reconcile; a fresh one by default.
    previews:
        Registry for local image preview URLs; a fresh one by default.
    resync_delay:
        Seconds between a completed send/upload and the follow-up resync.
        Falls back to ``settings.RESYNC_DELAY_SECONDS``.
    auto_resync:
        Schedule the follow-up resync at all.
    """

    def __init__(
        self,
        api: WidgetAPIClient,
        sessions: SessionManager,
        cache: MessageCache | None = None,
        previews: PreviewURLRegistry | None = None,
        *,
        resync_delay: float | None = None,
        auto_resync: bool = True,
    ) -> None:
        self._api = api
        self._sessions = sessions
        self._cache = cache or MessageCache()
        self._previews = previews or PreviewURLRegistry()
        self._resync_delay = (
            settings.RESYNC_DELAY_SECONDS if resync_delay is None else resync_delay
        )
        self._auto_resync = auto_resync
        self._resync_tasks: set[asyncio.Task] = set()

    @property
    def cache(self) -> MessageCache:
        return self._cache

    @property
    def previews(self) -> PreviewURLRegistry:
        return self._previews

    def bind(self, session_id: int) -> None:
        """Point the cache at ``session_id``, clearing it on a change."""
        if self._cache.session_id != session_id:
            self._cache.reset(session_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def send_text(self, session_id: int | None, content: str) -> MessageExchange:
        """Send a visitor text message with an immediate preview.

        Raises:
            WidgetValidationError: No session or blank content.
            SessionExpiredError: The session is gone; recovery has started.
            WidgetError: Any other failure; the preview has been removed.
        """
        _require_session(session_id)
        validate_text(content)

        self.bind(session_id)
        preview = self._cache.add_pending(session_id, MessageType.TEXT, content=content)

        try:
            exchange = await self._api.send_message(session_id, content)
        except SessionExpiredError:
            self._cache.discard(preview.local_id)
            self._sessions.handle_expiry(session_id)
            raise
        except Exception:
            self._cache.discard(preview.local_id)
            raise

        self._settle(session_id, preview, exchange.messages)
        return exchange

    async def upload_file(self, session_id: int | None, upload: UploadFile | None) -> MessageExchange:
        """Upload a file or image with an immediate preview.

        Images get a local preview URL for the time the upload is in flight.
        The confirmed message carries the server URL; if the server returns
        none for an image, the local preview URL stays in use.

        Raises:
            WidgetValidationError: No session, no file, or an empty file.
            SessionExpiredError: The session is gone; recovery has started.
            WidgetError: Any other failure; the preview has been removed.
        """
        _require_session(session_id)
        validate_upload(upload)

        self.bind(session_id)
        preview_url = self._previews.create(upload) if upload.is_image else None
        preview = self._cache.add_pending(
            session_id,
            upload.message_type,
            content=upload.filename,
            file_url=preview_url,
        )

        try:
            exchange = await self._api.upload_file(session_id, upload)
        except SessionExpiredError:
            self._rollback_upload(preview, preview_url)
            self._sessions.handle_expiry(session_id)
            raise
        except Exception:
            self._rollback_upload(preview, preview_url)
            raise

        user_message = exchange.user_message
        server_url = exchange.file_url or (user_message.file_url if user_message else None)

        if user_message is not None:
            if server_url:
                user_message = user_message.model_copy(update={"file_url": server_url})
            elif preview_url:
                user_message = user_message.model_copy(update={"file_url": preview_url})
                if user_message.id is not None:
                    self._cache.remember_file_url(user_message.id, preview_url)
                logger.info("No server URL for upload %s; keeping local preview", upload.filename)

        if preview_url and server_url:
            self._previews.revoke(preview_url)

        confirmed = MessageExchange(
            user_message=user_message,
            ai_message=exchange.ai_message,
            file_url=server_url,
        )
        self._settle(session_id, preview, confirmed.messages)
        return confirmed

    def _rollback_upload(self, preview: ChatMessage, preview_url: str | None) -> None:
        self._cache.discard(preview.local_id)
        if preview_url:
            self._previews.revoke(preview_url)

    def _settle(self, session_id: int, preview: ChatMessage, confirmed: list[ChatMessage]) -> None:
        if self._cache.session_id != session_id:
            logger.debug("Session %s is no longer current; dropping confirmation", session_id)
            return
        self._cache.confirm(preview.local_id, confirmed)
        if self._auto_resync:
            self.schedule_resync(session_id)

    # ------------------------------------------------------------------
    # Resynchronisation
    # ------------------------------------------------------------------

    async def resync(self, session_id: int) -> list[ChatMessage]:
        """Pull the authoritative message list for ``session_id``.

        A list fetched for a session that is no longer current is dropped.
        """
        messages = await self._api.list_messages(session_id)
        if self._cache.session_id != session_id:
            logger.debug("Dropping stale message list for session %s", session_id)
        else:
            self._cache.replace_confirmed(messages)
        return self._cache.messages

    def schedule_resync(self, session_id: int, delay: float | None = None) -> asyncio.Task:
        """Run :meth:`resync` in the background after ``delay`` seconds."""
        delay = self._resync_delay if delay is None else delay

        async def resync_later() -> None:
            await asyncio.sleep(delay)
            try:
                await self.resync(session_id)
            except WidgetError as e:
                logger.warning("Background resync of session %s failed: %s", session_id, e)

        task = asyncio.create_task(resync_later())
        self._resync_tasks.add(task)
        task.add_done_callback(self._resync_tasks.discard)
        return task

    @property
    def pending_resyncs(self) -> int:
        return len(self._resync_tasks)

    async def aclose(self) -> None:
        """Cancel outstanding background resyncs."""
        tasks = list(self._resync_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._resync_tasks.clear()
