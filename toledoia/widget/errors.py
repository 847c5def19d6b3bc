"""
Error taxonomy for the ToledoIA widget client.

Three kinds of failure reach the widget layer:

- transport failures (no HTTP response at all)
- backend rejections, carrying the human-readable ``message`` field of the
  error payload; session expiry is the one rejection that is recovered from
- validation failures, raised before any request is made
"""

SESSION_ENDED_MESSAGE = "Sessão encerrada"
SESSION_NOT_FOUND_MESSAGE = "Sessão não encontrada"
SESSION_ALREADY_ENDED_MESSAGE = "Sessão já encerrada"
INVALID_RESPONSE_MESSAGE = "Resposta inválida do servidor"


class WidgetError(Exception):
    """Base exception for widget client errors."""
    pass


class WidgetTransportError(WidgetError):
    """Raised when a request never produced an HTTP response."""

    def __init__(self, method: str, path: str, reason: str):
        self.method = method
        self.path = path
        self.reason = reason
        super().__init__(f"{method} {path} failed: {reason}")


class WidgetAPIError(WidgetError):
    """Raised when the backend answers with a non-success status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class WidgetNotFoundError(WidgetAPIError):
    """Raised when an API key resolves to no widget or an inactive one."""

    def __init__(self, api_key: str, status_code: int = 404):
        self.api_key = api_key
        super().__init__(status_code, "Widget não encontrado ou inativo")


class SessionExpiredError(WidgetAPIError):
    """Raised when the backend reports the session as ended or gone."""

    def __init__(self, session_id: int | None, status_code: int, message: str):
        self.session_id = session_id
        super().__init__(status_code, message)


class WidgetValidationError(WidgetError):
    """Raised when an operation is rejected before reaching the network."""
    pass


def is_session_expiry(status_code: int, message: str | None) -> bool:
    """Check whether a backend rejection is the session-expiry signal."""
    if not message:
        return False
    if status_code == 403 and message == SESSION_ENDED_MESSAGE:
        return True
    return status_code == 404 and message == SESSION_NOT_FOUND_MESSAGE
