"""Wire format of Twilio Media Streams.

Twilio sends JSON text frames (``connected``, ``start``, ``media``, ``mark``,
``stop``) and accepts ``media`` frames carrying base64 G.711 mu-law audio for
playback on the call.
"""

from __future__ import annotations

import json
from typing import Any, Final

from integrations.errors import MalformedFrameError

START_EVENT: Final[str] = "start"
MEDIA_EVENT: Final[str] = "media"


def parse_twilio_ws_message(text: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedFrameError(f"Invalid JSON from Twilio: {exc}") from exc
    if not isinstance(message, dict):
        raise MalformedFrameError(f"Expected a JSON object, got {type(message).__name__}")
    return message


def stream_sid_from_start(message: dict[str, Any]) -> str | None:
    start = message.get("start")
    if not isinstance(start, dict):
        return None
    stream_sid = start.get("streamSid")
    return str(stream_sid) if stream_sid else None


def media_payload(message: dict[str, Any]) -> str | None:
    media = message.get("media")
    if not isinstance(media, dict):
        return None
    payload = media.get("payload")
    return payload if isinstance(payload, str) and payload else None


def build_media_message(stream_sid: str, payload_b64: str) -> dict[str, Any]:
    """Frame that plays ``payload_b64`` (mu-law, base64) on the call."""

    return {
        "event": MEDIA_EVENT,
        "streamSid": stream_sid,
        "media": {"payload": payload_b64},
    }
