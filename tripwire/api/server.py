"""FastAPI webhook server.

Runs in the same process as the schedulers, sharing the event loop.
External systems call ``/events/{event_id}`` and the payload is published
on the event bus. Logical failures are reported in the body with HTTP 200.
"""

import json
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

import structlog
from fastapi import FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .. import __version__
from ..config.settings import Settings
from ..events.bus import EventBus, Payload
from ..exceptions import AuthenticationError
from ..owners.directory import OwnerDirectory
from ..utils.constants import APP_NAME, MAX_RAW_BODY_LENGTH, PING_EVENT_ID
from .auth import authenticate_event_token

logger = structlog.get_logger()

_TRUTHY = {"1", "true", "yes", "on"}


def _is_truthy(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in _TRUTHY


async def read_payload(request: Request) -> Payload:
    """Turn a POST body into a payload dict.

    JSON objects are used as-is; form bodies become a dict; anything else
    is wrapped as ``{"body": ...}``.
    """
    raw = await request.body()
    if not raw:
        return {}

    text = raw.decode("utf-8", errors="replace")
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded"):
        return dict(parse_qsl(text, keep_blank_values=True))

    try:
        parsed = json.loads(text)
    except ValueError:
        return {"body": text[:MAX_RAW_BODY_LENGTH]}
    if isinstance(parsed, dict):
        return parsed
    return {"body": parsed}


def create_api_app(
    event_bus: EventBus,
    directory: OwnerDirectory,
    settings: Settings,
) -> FastAPI:
    """Create the FastAPI application."""

    app = FastAPI(
        title=f"{APP_NAME} - Event API",
        version=__version__,
        docs_url="/docs" if settings.development_mode else None,
        redoc_url=None,
    )

    async def handle_trigger(
        event_id: str,
        payload: Payload,
        wait: bool,
        token: Optional[str],
    ) -> Response:
        if event_id == PING_EVENT_ID:
            logger.info("Ping event received", payload=payload, wait=wait)
            if wait:
                listeners = await event_bus.publish_and_collect(event_id, payload)
                return _json({"response": "pong", "listeners": listeners})
            event_bus.publish(event_id, payload)
            return PlainTextResponse("pong")

        try:
            owner_id = authenticate_event_token(token, directory)
        except AuthenticationError as e:
            logger.warning(
                "Unauthorized event trigger", event_id=event_id, reason=str(e)
            )
            return _json({"error": "Unauthorized"})

        logger.info(
            "Event received",
            event_id=event_id,
            owner_id=owner_id,
            payload=payload,
            wait=wait,
        )
        if wait:
            listeners = await event_bus.publish_and_collect(event_id, payload)
            return _json({"response": "Event received", "listeners": listeners})
        event_bus.publish(event_id, payload)
        return PlainTextResponse("Event received")

    @app.get("/", response_class=PlainTextResponse)
    async def banner() -> str:
        return f"{APP_NAME}\nExternal event listener running"

    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/events/{event_id}", response_model=None)
    async def trigger_event_get(
        event_id: str,
        request: Request,
        token: Optional[str] = Header(None),
    ) -> Response:
        """Trigger an event with query parameters as the payload."""
        payload: Payload = dict(request.query_params)
        wait = _is_truthy(payload.pop("wait", None))
        return await handle_trigger(event_id, payload, wait, token)

    @app.post("/events/{event_id}", response_model=None)
    async def trigger_event_post(
        event_id: str,
        request: Request,
        token: Optional[str] = Header(None),
    ) -> Response:
        """Trigger an event with the request body as the payload."""
        wait = _is_truthy(request.query_params.get("wait"))
        payload = await read_payload(request)
        return await handle_trigger(event_id, payload, wait, token)

    return app


def _json(content: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(jsonable_encoder(content))


async def run_api_server(
    event_bus: EventBus,
    directory: OwnerDirectory,
    settings: Settings,
) -> None:
    """Run the FastAPI server using uvicorn."""
    import uvicorn

    app = create_api_app(event_bus, directory, settings)

    config = uvicorn.Config(
        app=app,
        host=settings.api_server_host,
        port=settings.api_server_port,
        log_level="info" if not settings.debug else "debug",
    )
    server = uvicorn.Server(config)
    await server.serve()
