"""Shared fixtures: an in-memory ToledoIA backend served over ASGI."""

import asyncio
import itertools
from datetime import datetime, timezone
from typing import Any, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

from toledoia.widget.client import WidgetAPIClient
from toledoia.widget.identity import LocalStorage

BASE_URL = "http://testserver"
API_KEY = "test-key"
WIDGET_ID = "3f6c1c8e-0000-4000-8000-000000000001"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


class FakeToledoIA:
    """In-memory stand-in for the widget endpoints of the ToledoIA backend.

    Knobs used by the tests:
        create_delay: seconds each session creation takes
        send_gate: when set, sends and uploads wait for this event
        send_failure: (status, message) returned by every send and upload
        omit_file_url: uploads answer without any file URL
        ai_replies: sends also return an assistant message
    """

    def __init__(self) -> None:
        self.widgets: dict[str, dict[str, Any]] = {}
        self.sessions: dict[int, dict[str, Any]] = {}
        self.messages: list[dict[str, Any]] = []

        self.session_posts = 0
        self.message_lists = 0
        self.create_delay = 0.0
        self.send_gate: Optional[asyncio.Event] = None
        self.send_failure: Optional[tuple[int, str]] = None
        self.omit_file_url = False
        self.ai_replies = True

        self._session_ids = itertools.count(1)
        self._message_ids = itertools.count(1)
        self.app = self._build_app()

        self.api_key = API_KEY
        self.widget_id = WIDGET_ID
        self.add_widget(API_KEY, WIDGET_ID, name="Assistente Toledo")

    # -- state helpers ---------------------------------------------------

    def add_widget(self, api_key: str, widget_id: str, name: str = "Widget", is_active: bool = True) -> dict:
        widget = {
            "id": widget_id,
            "name": name,
            "greeting": "Olá! Como posso ajudar?",
            "avatar_url": None,
            "theme_color": "#6366f1",
            "is_active": is_active,
            "allowed_domains": None,
            "created_at": _now(),
            "updated_at": _now(),
            "user_id": 1,
        }
        self.widgets[api_key] = widget
        return widget

    def expire(self, session_id: int) -> None:
        """End a session behind the client's back."""
        self.sessions[session_id]["ended_at"] = _now()

    def forget(self, session_id: int) -> None:
        """Delete a session behind the client's back."""
        del self.sessions[session_id]

    def add_message(self, session_id: int, content: str, is_user: bool = True, **extra: Any) -> dict:
        message = {
            "id": next(self._message_ids),
            "session_id": session_id,
            "message_type": "text",
            "content": content,
            "file_url": None,
            "created_at": _now(),
            "is_user": is_user,
        }
        message.update(extra)
        self.messages.append(message)
        return message

    def messages_for(self, session_id: int) -> list[dict]:
        return [m for m in self.messages if m["session_id"] == session_id]

    def _check_session(self, session_id: int) -> Optional[JSONResponse]:
        session = self.sessions.get(session_id)
        if session is None:
            return _error(404, "Sessão não encontrada")
        if session["ended_at"] is not None:
            return _error(403, "Sessão encerrada")
        return None

    async def _before_send(self, session_id: int) -> Optional[JSONResponse]:
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.send_failure is not None:
            return _error(*self.send_failure)
        return self._check_session(session_id)

    # -- routes ----------------------------------------------------------

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.get("/api/embed/widget")
        async def get_widget(key: str = ""):
            widget = backend.widgets.get(key)
            if widget is None:
                return _error(404, "Widget não encontrado")
            return widget

        @app.get("/api/widgets/sessions/active")
        async def get_active_session(request: Request):
            widget_id = request.query_params.get("widget_id")
            visitor_id = request.query_params.get("visitor_id")
            for session in backend.sessions.values():
                if (
                    session["widget_id"] == widget_id
                    and session["visitor_id"] == visitor_id
                    and session["ended_at"] is None
                ):
                    return session
            return _error(404, "Nenhuma sessão ativa")

        @app.post("/api/widgets/sessions")
        async def create_session(request: Request):
            body = await request.json()
            backend.session_posts += 1
            if backend.create_delay:
                await asyncio.sleep(backend.create_delay)
            if not body.get("widget_id") or not body.get("visitor_id"):
                return _error(400, "Dados inválidos")
            session_id = next(backend._session_ids)
            session = {
                "id": session_id,
                "widget_id": body["widget_id"],
                "visitor_id": body["visitor_id"],
                "started_at": _now(),
                "ended_at": None,
                "language": body.get("language", "pt"),
                "referrer_url": body.get("referrer_url"),
                "created_at": _now(),
            }
            backend.sessions[session_id] = session
            return JSONResponse(status_code=201, content=session)

        @app.put("/api/widgets/sessions/{session_id}/end")
        async def end_session(session_id: int):
            session = backend.sessions.get(session_id)
            if session is None:
                return _error(404, "Sessão não encontrada")
            if session["ended_at"] is not None:
                return _error(400, "Sessão já encerrada")
            session["ended_at"] = _now()
            return session

        @app.get("/api/widgets-messages")
        async def list_messages(session_id: int):
            backend.message_lists += 1
            if session_id not in backend.sessions:
                return _error(404, "Sessão não encontrada")
            return backend.messages_for(session_id)

        @app.post("/api/widgets-messages")
        async def send_message(request: Request):
            body = await request.json()
            session_id = int(body["session_id"])
            rejected = await backend._before_send(session_id)
            if rejected is not None:
                return rejected

            user_message = backend.add_message(
                session_id, body["content"], message_type=body.get("message_type", "text")
            )
            ai_message = None
            if backend.ai_replies:
                ai_message = backend.add_message(
                    session_id, f"Resposta: {body['content']}", is_user=False
                )
            return JSONResponse(
                status_code=201,
                content={"userMessage": user_message, "aiMessage": ai_message},
            )

        @app.post("/api/widgets/upload")
        async def upload(request: Request):
            form = await request.form()
            session_id = int(form["session_id"])
            rejected = await backend._before_send(session_id)
            if rejected is not None:
                return rejected

            upload = form["file"]
            await upload.read()
            is_image = (upload.content_type or "").startswith("image/")
            file_url = None if backend.omit_file_url else f"/uploads/{upload.filename}"

            user_message = backend.add_message(
                session_id,
                upload.filename,
                message_type="image" if is_image else "file",
                file_url=file_url,
            )
            payload: dict[str, Any] = {"userMessage": user_message, "aiMessage": None}
            if file_url is not None:
                payload["fileUrl"] = file_url
            return JSONResponse(status_code=201, content=payload)

        return app


# ===========================================================================
# Fixtures
# ===========================================================================


@pytest.fixture
def backend() -> FakeToledoIA:
    """Fresh in-memory backend."""
    return FakeToledoIA()


@pytest_asyncio.fixture
async def http_client(backend):
    """httpx client routed to the fake backend."""
    async with AsyncClient(transport=ASGITransport(app=backend.app), base_url=BASE_URL) as client:
        yield client


@pytest_asyncio.fixture
async def api(http_client) -> WidgetAPIClient:
    """Widget API client bound to the fake backend."""
    return WidgetAPIClient(BASE_URL, client=http_client)


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    """Visitor storage in a temporary directory."""
    return LocalStorage(tmp_path / "storage.json")
