"""Outbound leg of a call: one OpenAI Realtime WebSocket per Twilio stream.

The client negotiates the session shortly after the socket opens, turns Twilio
``media`` events into ``input_audio_buffer.append`` frames and hands every
``response.audio.delta`` payload to the registered audio sink.

Connection states::

    UNCONNECTED -> CONNECTING -> OPEN -> CLOSED
                        \\          \\
                         +-> FAILED <-+

close() before the handshake finishes also ends in CLOSED. Media is only
sent while OPEN. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Final, Protocol
from urllib.parse import urlencode

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from config.settings import Settings, get_settings
from integrations.errors import MalformedFrameError, MissingCredentialsError
from integrations.realtime_schemas import InputAudioBufferAppend, build_session_update
from integrations.twilio_streaming import MEDIA_EVENT, media_payload
from prompts.loader import load_prompt

LOGGER = logging.getLogger(__name__)

AUDIO_DELTA_EVENT: Final[str] = "response.audio.delta"
SESSION_CREATED_EVENT: Final[str] = "session.created"
ERROR_EVENT: Final[str] = "error"

LOG_EVENT_TYPES: Final[frozenset[str]] = frozenset(
    {
        "response.content.done",
        "rate_limits.updated",
        "response.done",
        "input_audio_buffer.committed",
        "input_audio_buffer.speech_stopped",
        "input_audio_buffer.speech_started",
        "session.created",
        "session.updated",
    }
)


class RelayState(str, Enum):
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"


class AudioSink(Protocol):
    """Receives synthesized audio (base64, output_audio_format) for the caller."""

    async def send_audio(self, payload: str) -> None:  # pragma: no cover - protocol stub
        ...


Connector = Callable[..., Awaitable[Any]]


def parse_realtime_message(data: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(data)
    except (TypeError, ValueError) as exc:
        raise MalformedFrameError(f"Invalid JSON from OpenAI: {exc}") from exc
    if not isinstance(message, dict):
        raise MalformedFrameError(f"Expected a JSON object, got {type(message).__name__}")
    return message


class RelayClient:
    """Owns one connection to the OpenAI Realtime API for a single call."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        connector: Connector | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._connector = connector or ws_connect
        self._logger = logger or LOGGER
        self._ws: Any = None
        self._state = RelayState.UNCONNECTED
        self._sink: AudioSink | None = None
        self._session_configured = False
        self._reader_task: asyncio.Task | None = None
        self._session_timer: asyncio.Task | None = None

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def connection(self) -> Any:
        """The live Realtime socket, or ``None`` before connect and after close."""

        return self._ws

    @property
    def is_open(self) -> bool:
        return self._state is RelayState.OPEN and self._ws is not None

    def _realtime_url(self) -> str:
        base = self._settings.openai_realtime_url
        query = urlencode({"model": self._settings.openai_realtime_model})
        return f"{base}?{query}"

    def _headers(self) -> dict[str, str]:
        api_key = self._settings.openai_api_key
        if not api_key:
            raise MissingCredentialsError()
        return {
            "Authorization": f"Bearer {api_key}",
            "OpenAI-Beta": self._settings.openai_beta_header,
        }

    def _instructions(self) -> str:
        return self._settings.realtime_instructions or load_prompt()

    async def connect(self, sink: AudioSink) -> bool:
        """Open the Realtime socket and start relaying audio deltas to ``sink``.

        Returns ``True`` once the socket is open. A missing API key or a failed
        handshake is logged and returns ``False``; the call then carries on
        without an outbound leg.
        """

        self._sink = sink
        if self._state is not RelayState.UNCONNECTED:
            self._logger.warning("Relay connect ignored in state %s", self._state.value)
            return False

        try:
            headers = self._headers()
        except MissingCredentialsError as exc:
            self._logger.error("Cannot connect to OpenAI Realtime API: %s", exc.detail)
            return False

        self._state = RelayState.CONNECTING
        try:
            ws = await self._connector(self._realtime_url(), additional_headers=headers)
        except (OSError, TimeoutError, WebSocketException) as exc:
            self._mark_failed()
            self._logger.error("OpenAI WebSocket error during handshake: %s", exc)
            return False

        if self._state is not RelayState.CONNECTING:
            # close() was called while the handshake was in flight.
            await ws.close()
            return False

        self._ws = ws
        self._state = RelayState.OPEN
        self._logger.info("Connected to OpenAI Realtime API")

        delay = self._settings.session_update_delay_seconds
        if delay is not None:
            self._session_timer = asyncio.create_task(self._send_session_update_later(delay))
        self._reader_task = asyncio.create_task(self._receive_loop(ws))
        return True

    async def _send_session_update_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._send_session_update()

    async def _send_session_update(self) -> None:
        if not self.is_open:
            self._logger.debug("Skipping session update, relay is %s", self._state.value)
            return
        if self._session_configured:
            return
        self._session_configured = True

        update = build_session_update(self._settings, self._instructions()).model_dump()
        self._logger.info("Sending session update: %s", json.dumps(update))
        await self._send_json(update)

    async def _receive_loop(self, ws: Any) -> None:
        try:
            async for data in ws:
                try:
                    message = parse_realtime_message(data)
                except MalformedFrameError as exc:
                    self._logger.error("Error parsing OpenAI message: %s", exc.detail)
                    continue
                await self.handle_remote_message(message)
        except ConnectionClosedError as exc:
            self._mark_failed()
            self._logger.error("OpenAI WebSocket error: %s", exc)
        else:
            if self._state is RelayState.OPEN:
                self._state = RelayState.CLOSED
            self._logger.info("Disconnected from OpenAI Realtime API")
        finally:
            if self._ws is ws:
                self._ws = None

    async def handle_remote_message(self, message: dict[str, Any]) -> None:
        event_type = message.get("type")

        if event_type in LOG_EVENT_TYPES:
            self._logger.info("Received OpenAI event: %s => %s", event_type, json.dumps(message))

        if event_type == SESSION_CREATED_EVENT and self._settings.session_update_delay_seconds is None:
            await self._send_session_update()
        elif event_type == ERROR_EVENT:
            self._logger.error("OpenAI reported an error: %s", json.dumps(message.get("error")))
        elif event_type == AUDIO_DELTA_EVENT and message.get("delta"):
            try:
                audio = base64.b64encode(base64.b64decode(message["delta"], validate=True)).decode("ascii")
            except (binascii.Error, TypeError, ValueError):
                self._logger.warning("Dropping audio delta with invalid base64 payload")
                return
            if self._sink is not None:
                await self._sink.send_audio(audio)

    async def forward_inbound_media(self, event: dict[str, Any]) -> None:
        """Append a Twilio ``media`` event to the Realtime input audio buffer."""

        if not self.is_open:
            return

        event_type = event.get("event")
        if event_type != MEDIA_EVENT:
            self._logger.info("Received non-media event: %s", event_type)
            return

        payload = media_payload(event)
        if payload is None:
            self._logger.warning("Dropping media event without payload")
            return

        await self._send_json(InputAudioBufferAppend(audio=payload).model_dump())

    async def close(self) -> None:
        """Close the Realtime socket. Safe to call repeatedly or before connecting."""

        if self._state in (RelayState.UNCONNECTED, RelayState.CONNECTING):
            # connect() sees CLOSED and abandons the handshake.
            self._state = RelayState.CLOSED
            return
        if not self.is_open:
            return

        self._state = RelayState.CLOSED
        ws = self._ws
        self._ws = None
        try:
            await ws.close()
        except (OSError, WebSocketException) as exc:
            self._logger.warning("Error while closing OpenAI WebSocket: %s", exc)

        reader = self._reader_task
        if reader is not None and reader is not asyncio.current_task():
            await reader

    async def _send_json(self, message: dict[str, Any]) -> None:
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as exc:
            self._mark_failed()
            self._logger.error("OpenAI WebSocket closed while sending %s: %s", message.get("type"), exc)

    def _mark_failed(self) -> None:
        if self._state in (RelayState.CONNECTING, RelayState.OPEN):
            self._state = RelayState.FAILED
