"""ToledoIA embeddable chat widget client.

This package keeps one conversation per visitor and widget alive against the
ToledoIA backend and maintains an optimistic message list that is reconciled
with the server as responses arrive.

Example usage:

    from toledoia.widget import UploadFile, WidgetAPIClient, WidgetChatController

    async with WidgetAPIClient("https://toledoia.replit.app") as api:
        async with WidgetChatController(api) as chat:
            await chat.initialize("widget-api-key")
            await chat.ensure_session(language="pt")
            chat.start_polling()

            result = await chat.send_text("Olá!")
            if result.ok:
                print(result.exchange.ai_message.content)

            await chat.upload_file(UploadFile.from_path("placa.jpg"))
            await chat.end_session()
"""

from toledoia.widget.client import WidgetAPIClient
from toledoia.widget.controller import OperationResult, WidgetChatController
from toledoia.widget.embed import EmbedCodeGenerator
from toledoia.widget.errors import (
    SessionExpiredError,
    WidgetAPIError,
    WidgetError,
    WidgetNotFoundError,
    WidgetTransportError,
    WidgetValidationError,
)
from toledoia.widget.identity import (
    VISITOR_ID_KEY,
    LocalStorage,
    get_or_create_visitor_id,
    reset_visitor_id,
)
from toledoia.widget.messages import MessageCache
from toledoia.widget.models import (
    ChatMessage,
    ChatSession,
    MessageExchange,
    MessageStatus,
    MessageType,
    UploadFile,
    WidgetInfo,
)
from toledoia.widget.notifications import Notice, NoticeVariant, NotificationCenter
from toledoia.widget.previews import PreviewURLRegistry, normalize_file_url
from toledoia.widget.reconciler import MessageReconciler
from toledoia.widget.session import SessionManager, SessionState

__all__ = [
    # Controller
    "WidgetChatController",
    "OperationResult",
    # Components
    "WidgetAPIClient",
    "SessionManager",
    "SessionState",
    "MessageCache",
    "MessageReconciler",
    "PreviewURLRegistry",
    "normalize_file_url",
    # Data model
    "ChatMessage",
    "ChatSession",
    "MessageExchange",
    "MessageStatus",
    "MessageType",
    "UploadFile",
    "WidgetInfo",
    # Visitor identity
    "VISITOR_ID_KEY",
    "LocalStorage",
    "get_or_create_visitor_id",
    "reset_visitor_id",
    # Notifications
    "Notice",
    "NoticeVariant",
    "NotificationCenter",
    # Embed code
    "EmbedCodeGenerator",
    # Errors
    "WidgetError",
    "WidgetAPIError",
    "WidgetNotFoundError",
    "WidgetTransportError",
    "WidgetValidationError",
    "SessionExpiredError",
]
