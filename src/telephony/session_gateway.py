from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

from starlette.websockets import WebSocketDisconnect

from integrations.errors import MalformedFrameError
from integrations.openai_realtime import RelayClient
from integrations.twilio_streaming import (
    MEDIA_EVENT,
    START_EVENT,
    build_media_message,
    parse_twilio_ws_message,
    stream_sid_from_start,
)

LOGGER = logging.getLogger(__name__)


class InboundSocket(Protocol):
    async def send_text(self, data: str) -> None:  # pragma: no cover - protocol stub
        ...


class SessionGateway:
    """Bridges one Twilio media stream to one :class:`RelayClient`.

    The gateway is the relay's audio sink: audio deltas coming back from OpenAI
    are wrapped in Twilio ``media`` frames and written to the inbound socket once
    the stream has been started.
    """

    def __init__(self, relay: RelayClient, *, logger: logging.Logger | None = None) -> None:
        self._relay = relay
        self._logger = logger or LOGGER
        self._socket: InboundSocket | None = None
        self._stream_sid: str | None = None
        self._connect_task: asyncio.Task | None = None

    @property
    def relay(self) -> RelayClient:
        return self._relay

    @property
    def stream_sid(self) -> str | None:
        return self._stream_sid

    async def on_connect(self, websocket: InboundSocket) -> None:
        if self._connect_task is not None:
            self._logger.warning("Media stream already connected; ignoring second connect")
            return

        self._logger.info("Client connected to /media-stream")
        self._socket = websocket
        # The handshake runs in the background; media arriving before it
        # completes is dropped by the relay.
        self._connect_task = asyncio.create_task(self._relay.connect(self))

    async def on_inbound_event(self, raw: str | bytes) -> None:
        try:
            message = parse_twilio_ws_message(raw)
        except MalformedFrameError as exc:
            self._logger.error("Invalid frame from Twilio: %s", exc.detail)
            return

        event = message.get("event")
        if event == START_EVENT:
            self._stream_sid = stream_sid_from_start(message)
            self._logger.info("Twilio media stream started with streamSid: %s", self._stream_sid)
        elif event == MEDIA_EVENT:
            await self._relay.forward_inbound_media(message)
        else:
            self._logger.info("Received non-media event: %s", event)

    async def on_disconnect(self, websocket: InboundSocket | None = None) -> None:
        if self._socket is None:
            return

        self._logger.info("Client disconnected from /media-stream")
        await self._relay.close()
        if self._connect_task is not None:
            try:
                await self._connect_task
            except Exception:
                self._logger.exception("Relay connection attempt failed")
        self._stream_sid = None
        self._socket = None

    async def send_audio(self, payload: str) -> None:
        socket = self._socket
        stream_sid = self._stream_sid
        if socket is None or stream_sid is None:
            return

        message: dict[str, Any] = build_media_message(stream_sid, payload)
        try:
            await socket.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError) as exc:
            self._logger.warning("Could not send audio to Twilio stream %s: %s", stream_sid, exc)
