"""Widget chat controller.

:class:`WidgetChatController` is the one object a front end talks to. It
owns the widget identity, the visitor id, the session reference and the
message list, and exposes them through a narrow interface: initialize,
ensure a session, send, upload, end. Operation failures never escape as
exceptions; they come back as an :class:`OperationResult` and are posted to
the :class:`NotificationCenter`. Session expiry is recovered automatically.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from toledoia.config.settings import settings
from toledoia.widget.client import WidgetAPIClient
from toledoia.widget.errors import (
    SessionExpiredError,
    WidgetAPIError,
    WidgetError,
    WidgetValidationError,
)
from toledoia.widget.identity import LocalStorage, get_or_create_visitor_id
from toledoia.widget.models import (
    ChatMessage,
    ChatSession,
    Language,
    MessageExchange,
    UploadFile,
    WidgetInfo,
)
from toledoia.widget.notifications import NotificationCenter
from toledoia.widget.reconciler import MessageReconciler, validate_text, validate_upload
from toledoia.widget.session import SessionManager, SessionState

logger = logging.getLogger(__name__)

EXPIRED_NOTICE = "Sessão expirada. O chat será reiniciado automaticamente."


@dataclass
class OperationResult:
    """
    Outcome of a controller operation.

    Attributes:
        ok: Whether the operation succeeded.
        session: Session the operation ran against, when known.
        exchange: Confirmed messages for sends and uploads.
        error: The failure, when ``ok`` is False.
        restarted: The session had expired and is being recreated.
    """

    ok: bool
    session: ChatSession | None = None
    exchange: MessageExchange | None = None
    error: WidgetError | None = None
    restarted: bool = False


def _describe(error: WidgetError) -> str:
    if isinstance(error, WidgetAPIError):
        return error.message
    return str(error)


class WidgetChatController:
    """Owns the state of one embedded widget instance.

    Parameters
    ----------
    api:
        HTTP collaborator. The caller owns its lifetime.
    storage:
        Where the visitor id is persisted.
    notifications:
        Top-level sink for user-facing notices.
    language:
        Session language. Falls back to ``settings.DEFAULT_LANGUAGE``.
    referrer_url:
        Page the widget is embedded in, sent on session creation.
    poll_interval:
        Seconds between message polls. Falls back to
        ``settings.POLL_INTERVAL_SECONDS``.
    resync_delay:
        Forwarded to the default :class:`MessageReconciler`.
    """

    def __init__(
        self,
        api: WidgetAPIClient,
        *,
        storage: LocalStorage | None = None,
        notifications: NotificationCenter | None = None,
        sessions: SessionManager | None = None,
        reconciler: MessageReconciler | None = None,
        language: Language | None = None,
        referrer_url: str | None = None,
        poll_interval: float | None = None,
        resync_delay: float | None = None,
    ) -> None:
        self._api = api
        self._storage = storage or LocalStorage()
        self._notifications = notifications or NotificationCenter()
        self._sessions = sessions or SessionManager(api)
        self._reconciler = reconciler or MessageReconciler(
            api, self._sessions, resync_delay=resync_delay
        )
        self._language: Language = language or settings.DEFAULT_LANGUAGE
        self._referrer_url = referrer_url
        self._poll_interval = poll_interval or settings.POLL_INTERVAL_SECONDS

        self._widgets: dict[str, WidgetInfo] = {}
        self._api_key: str | None = None
        self._widget: WidgetInfo | None = None
        self._visitor_id: str | None = None

        self._sending = 0
        self._uploading = 0
        self._processing_llm = 0

        self._polling = False
        self._poll_task: asyncio.Task | None = None
        self._recovery_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def notifications(self) -> NotificationCenter:
        return self._notifications

    @property
    def widget(self) -> WidgetInfo | None:
        return self._widget

    @property
    def visitor_id(self) -> str | None:
        return self._visitor_id

    @property
    def is_initialized(self) -> bool:
        return self._widget is not None and self._visitor_id is not None

    @property
    def session(self) -> ChatSession | None:
        if not self.is_initialized:
            return None
        return self._sessions.get_session(self._widget.id, self._visitor_id)

    @property
    def session_state(self) -> SessionState:
        if not self.is_initialized:
            return SessionState.ABSENT
        return self._sessions.state(self._widget.id, self._visitor_id)

    @property
    def messages(self) -> list[ChatMessage]:
        return self._reconciler.cache.messages

    @property
    def is_creating_session(self) -> bool:
        return self.is_initialized and self._sessions.is_creating(
            self._widget.id, self._visitor_id
        )

    @property
    def is_sending(self) -> bool:
        return self._sending > 0

    @property
    def is_uploading(self) -> bool:
        return self._uploading > 0

    @property
    def is_processing_llm(self) -> bool:
        return self._processing_llm > 0

    @property
    def is_busy(self) -> bool:
        return self.is_creating_session or self.is_sending or self.is_uploading

    @property
    def is_polling(self) -> bool:
        return self._polling

    @property
    def recovery_task(self) -> asyncio.Task | None:
        """Background session recreation started after an expiry, if any."""
        return self._recovery_task

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def initialize(self, api_key: str) -> WidgetInfo:
        """Resolve the visitor and the widget behind ``api_key``.

        The widget is fetched once per key and cached for the lifetime of
        the controller.

        Raises:
            WidgetValidationError: Empty API key.
            WidgetError: The widget could not be loaded (also notified).
        """
        if not api_key:
            raise WidgetValidationError("API key is required")

        self._visitor_id = get_or_create_visitor_id(self._storage)

        widget = self._widgets.get(api_key)
        if widget is None:
            try:
                widget = await self._api.get_widget(api_key)
            except WidgetError as e:
                self._notifications.error(
                    "Erro ao carregar widget",
                    "Não foi possível carregar os dados do widget. Verifique a API key.",
                )
                logger.error("Failed to load widget for key %s: %s", api_key, e)
                raise
            self._widgets[api_key] = widget

        self._api_key = api_key
        self._widget = widget
        logger.info("Widget %s initialized for visitor %s", widget.id, self._visitor_id)
        return widget

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def ensure_session(
        self,
        language: Language | None = None,
        referrer_url: str | None = None,
    ) -> OperationResult:
        """Make sure the visitor has an active session and its messages are loaded."""
        if not self.is_initialized:
            return self._rejected(
                "Erro ao iniciar sessão", WidgetValidationError("Widget não inicializado")
            )

        try:
            session = await self._sessions.ensure_session(
                self._widget.id,
                self._visitor_id,
                language or self._language,
                referrer_url or self._referrer_url,
            )
        except WidgetError as e:
            return self._rejected("Erro ao iniciar sessão", e)

        if self._reconciler.cache.session_id != session.id:
            self._reconciler.bind(session.id)
            try:
                await self._reconciler.resync(session.id)
            except WidgetError as e:
                logger.warning("Could not load messages for session %s: %s", session.id, e)

        return OperationResult(ok=True, session=session)

    async def send_text(self, content: str) -> OperationResult:
        """Send a visitor message, creating the session first if needed."""
        try:
            validate_text(content)
        except WidgetValidationError as e:
            return self._rejected("Erro ao enviar mensagem", e)

        started = await self._session_for_operation()
        if not started.ok:
            return started
        session = started.session

        self._sending += 1
        self._processing_llm += 1
        try:
            exchange = await self._reconciler.send_text(session.id, content)
        except SessionExpiredError as e:
            return self._recover(session, e)
        except WidgetError as e:
            return self._rejected("Erro ao enviar mensagem", e, session)
        finally:
            self._sending -= 1
            self._processing_llm -= 1

        return OperationResult(ok=True, session=session, exchange=exchange)

    async def upload_file(self, upload: UploadFile | None) -> OperationResult:
        """Upload a file or image, creating the session first if needed."""
        try:
            validate_upload(upload)
        except WidgetValidationError as e:
            return self._rejected("Erro ao enviar arquivo", e)

        started = await self._session_for_operation()
        if not started.ok:
            return started
        session = started.session

        self._uploading += 1
        try:
            exchange = await self._reconciler.upload_file(session.id, upload)
        except SessionExpiredError as e:
            return self._recover(session, e)
        except WidgetError as e:
            return self._rejected("Erro ao enviar arquivo", e, session)
        finally:
            self._uploading -= 1

        return OperationResult(ok=True, session=session, exchange=exchange)

    async def end_session(self, session_id: int | None = None) -> OperationResult:
        """End the current session (or ``session_id``).

        Ending a session that is already over is reported as success.
        """
        session = self.session
        target = session_id if session_id is not None else (session.id if session else None)
        if target is None:
            return OperationResult(ok=True)

        try:
            await self._sessions.end_session(target)
        except WidgetError as e:
            return self._rejected("Erro ao finalizar sessão", e, session)

        return OperationResult(ok=True, session=session)

    async def refresh_messages(self) -> list[ChatMessage]:
        """Pull the current session's messages now."""
        session = self.session
        if session is None:
            return self.messages
        try:
            return await self._reconciler.resync(session.id)
        except WidgetError as e:
            self._rejected("Erro ao buscar mensagens", e, session)
            return self.messages

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def start_polling(self) -> None:
        """Poll the active session's messages every ``poll_interval`` seconds.

        Raises:
            RuntimeError: If polling is already active.
        """
        if self._polling:
            raise RuntimeError("Polling already active")

        self._polling = True

        async def poll_loop():
            while self._polling:
                await asyncio.sleep(self._poll_interval)
                session = self.session
                if session is None:
                    continue
                try:
                    await self._reconciler.resync(session.id)
                except WidgetError as e:
                    logger.error("Message poll failed for session %s: %s", session.id, e)

        self._poll_task = asyncio.create_task(poll_loop())
        logger.info("Started message polling (interval: %.1fs)", self._poll_interval)

    async def stop_polling(self) -> None:
        """Stop the message polling task."""
        self._polling = False

        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
            logger.info("Stopped message polling")

    async def aclose(self) -> None:
        """Stop background work and release local previews."""
        await self.stop_polling()

        if self._recovery_task and not self._recovery_task.done():
            self._recovery_task.cancel()
            try:
                await self._recovery_task
            except asyncio.CancelledError:
                pass
        self._recovery_task = None

        await self._reconciler.aclose()
        self._reconciler.previews.revoke_all()

    async def __aenter__(self) -> "WidgetChatController":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _session_for_operation(self) -> OperationResult:
        session = self.session
        if session is not None:
            return OperationResult(ok=True, session=session)
        if self._recovery_task and not self._recovery_task.done():
            await asyncio.shield(self._recovery_task)
            session = self.session
            if session is not None:
                return OperationResult(ok=True, session=session)
        return await self.ensure_session()

    def _rejected(
        self,
        title: str,
        error: WidgetError,
        session: ChatSession | None = None,
    ) -> OperationResult:
        self._notifications.error(title, _describe(error))
        return OperationResult(ok=False, session=session, error=error)

    def _recover(self, session: ChatSession, error: SessionExpiredError) -> OperationResult:
        self._notifications.restarting(EXPIRED_NOTICE)
        # A late expiry for a session already replaced keeps the new one's messages.
        if self._reconciler.cache.session_id == session.id:
            self._reconciler.cache.reset(None)

        if self._recovery_task is None or self._recovery_task.done():
            self._recovery_task = asyncio.create_task(self._recreate_session(session.id))

        return OperationResult(ok=False, session=session, error=error, restarted=True)

    async def _recreate_session(self, expired_id: int) -> None:
        result = await self.ensure_session()
        if result.ok:
            logger.info("Session %s replaced by %s", expired_id, result.session.id)
