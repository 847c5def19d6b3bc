"""Async HTTP client for the ToledoIA widget endpoints.

Wraps :class:`httpx.AsyncClient` and maps backend responses onto the widget
error taxonomy: transport failures become :class:`WidgetTransportError`,
rejections become :class:`WidgetAPIError` (or one of its subclasses) carrying
the payload's ``message`` verbatim.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

import httpx

from toledoia.config.settings import settings
from toledoia.widget.errors import (
    INVALID_RESPONSE_MESSAGE,
    SESSION_ALREADY_ENDED_MESSAGE,
    SessionExpiredError,
    WidgetAPIError,
    WidgetNotFoundError,
    WidgetTransportError,
    is_session_expiry,
)
from toledoia.widget.models import (
    ChatMessage,
    ChatSession,
    Language,
    MessageExchange,
    MessageType,
    UploadFile,
    WidgetInfo,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        return default
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return default


class WidgetAPIClient:
    """Client for the widget-facing REST surface of the ToledoIA backend.

    Parameters
    ----------
    base_url:
        Backend origin. Falls back to ``settings.TOLEDOIA_API_URL``.
    timeout:
        Request timeout in seconds. Falls back to
        ``settings.HTTP_TIMEOUT_SECONDS``.
    client:
        Pre-built ``httpx.AsyncClient`` (tests pass one bound to an ASGI
        transport). When given, the caller owns its lifetime.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (base_url or settings.TOLEDOIA_API_URL).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "WidgetAPIClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        logger.debug("%s %s", method, path)
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise WidgetTransportError(method, path, str(e) or type(e).__name__) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, default: str) -> None:
        if response.is_success:
            return
        raise WidgetAPIError(response.status_code, _error_message(response, default))

    @staticmethod
    def _raise_for_session(
        response: httpx.Response,
        session_id: int,
        default: str,
    ) -> None:
        if response.is_success:
            return
        message = _error_message(response, default)
        if is_session_expiry(response.status_code, message):
            raise SessionExpiredError(session_id, response.status_code, message)
        raise WidgetAPIError(response.status_code, message)

    @staticmethod
    def _parse(response: httpx.Response, parse: Callable[[Any], T]) -> T:
        """Decode a success body, mapping malformed payloads to WidgetAPIError."""
        try:
            return parse(response.json())
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(
                "Malformed %s response from %s: %s",
                response.status_code,
                response.request.url.path,
                e,
            )
            raise WidgetAPIError(response.status_code, INVALID_RESPONSE_MESSAGE) from e

    # ------------------------------------------------------------------
    # Widget identity
    # ------------------------------------------------------------------

    async def get_widget(self, api_key: str) -> WidgetInfo:
        """Resolve an API key to its widget.

        Raises:
            WidgetNotFoundError: Unknown key, any rejection, or inactive widget.
        """
        response = await self._request("GET", "/api/embed/widget", params={"key": api_key})
        if not response.is_success:
            logger.error(
                "Widget lookup failed: %s %s", response.status_code, response.reason_phrase
            )
            raise WidgetNotFoundError(api_key, response.status_code)

        widget = self._parse(response, WidgetInfo.model_validate)
        if not widget.is_active:
            raise WidgetNotFoundError(api_key, response.status_code)
        return widget

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def get_active_session(self, widget_id: str, visitor_id: str) -> ChatSession | None:
        """Return the pair's active session, or None when there is none (404)."""
        response = await self._request(
            "GET",
            "/api/widgets/sessions/active",
            params={"widget_id": widget_id, "visitor_id": visitor_id},
        )
        if response.status_code == 404:
            return None
        self._raise_for_status(response, "Erro ao buscar sessão")
        return self._parse(response, ChatSession.model_validate)

    async def create_session(
        self,
        widget_id: str,
        visitor_id: str,
        language: Language,
        referrer_url: str | None = None,
    ) -> ChatSession:
        body: dict[str, Any] = {
            "widget_id": widget_id,
            "visitor_id": visitor_id,
            "language": language,
        }
        if referrer_url:
            body["referrer_url"] = referrer_url

        response = await self._request("POST", "/api/widgets/sessions", json=body)
        self._raise_for_status(response, "Erro ao iniciar sessão")
        return self._parse(response, ChatSession.model_validate)

    async def end_session(self, session_id: int) -> bool:
        """End a session.

        Returns:
            True if this call ended it, False if it was already ended.
        """
        response = await self._request("PUT", f"/api/widgets/sessions/{session_id}/end")
        if response.status_code == 400:
            message = _error_message(response, "Erro ao finalizar sessão")
            if SESSION_ALREADY_ENDED_MESSAGE in message:
                logger.info("Session %s was already ended", session_id)
                return False
            raise WidgetAPIError(400, message)
        self._raise_for_status(response, "Erro ao finalizar sessão")
        return True

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def list_messages(self, session_id: int) -> list[ChatMessage]:
        response = await self._request(
            "GET", "/api/widgets-messages", params={"session_id": session_id}
        )
        self._raise_for_status(response, "Erro ao buscar mensagens")
        return self._parse(
            response, lambda items: [ChatMessage.model_validate(item) for item in items]
        )

    async def send_message(
        self,
        session_id: int,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        is_user: bool = True,
    ) -> MessageExchange:
        response = await self._request(
            "POST",
            "/api/widgets-messages",
            json={
                "session_id": session_id,
                "content": content,
                "message_type": message_type.value,
                "is_user": is_user,
            },
        )
        self._raise_for_session(response, session_id, "Erro ao enviar mensagem")
        return self._parse(response, MessageExchange.from_payload)

    async def upload_file(self, session_id: int, upload: UploadFile) -> MessageExchange:
        response = await self._request(
            "POST",
            "/api/widgets/upload",
            data={"session_id": str(session_id)},
            files={"file": (upload.filename, upload.content, upload.content_type)},
        )
        self._raise_for_session(response, session_id, "Erro ao enviar arquivo")
        return self._parse(response, MessageExchange.from_payload)
