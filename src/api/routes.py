"""HTTP and WebSocket endpoints used by Twilio.

- ``GET /`` liveness check.
- ``POST /incoming-call`` TwiML that connects the call to the media stream.
- ``WS /media-stream`` Twilio Media Streams, relayed to OpenAI Realtime.
"""

from __future__ import annotations

import logging
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Request, Response, WebSocket

from api.dependencies import get_session_gateway
from config.settings import get_settings
from telephony.session_gateway import SessionGateway

LOGGER = logging.getLogger(__name__)

MEDIA_STREAM_PATH = "/media-stream"

router = APIRouter(tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _stream_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return _to_ws_url(settings.public_base_url.rstrip("/")) + MEDIA_STREAM_PATH
    host = request.headers.get("host") or request.url.netloc
    return f"wss://{host}{MEDIA_STREAM_PATH}"


def _twiml_connect_stream(*, stream_url: str) -> str:
    stream = escape(stream_url, {"\"": "&quot;"})
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{stream}\" />"
        "</Connect>"
        "</Response>"
    )


@router.get("/")
async def root() -> dict[str, str]:
    return {"message": "Twilio Media Stream Server is running!"}


@router.post("/incoming-call")
async def incoming_call(request: Request) -> Response:
    stream_url = _stream_url(request)
    LOGGER.info("Incoming call, connecting media stream to %s", stream_url)
    return _twiml_response(_twiml_connect_stream(stream_url=stream_url))


@router.websocket(MEDIA_STREAM_PATH)
async def media_stream(
    websocket: WebSocket,
    gateway: SessionGateway = Depends(get_session_gateway),
) -> None:
    await websocket.accept()
    await gateway.on_connect(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            data = message.get("text") or message.get("bytes")
            if data:
                await gateway.on_inbound_event(data)
    finally:
        LOGGER.info("Twilio closed the media stream (streamSid=%s)", gateway.stream_sid)
        await gateway.on_disconnect(websocket)
