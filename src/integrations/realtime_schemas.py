"""Client events sent to the OpenAI Realtime API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from config.settings import Settings


class TurnDetection(BaseModel):
    type: str = "server_vad"


class RealtimeSession(BaseModel):
    turn_detection: TurnDetection = Field(default_factory=TurnDetection)
    input_audio_format: str = "g711_ulaw"
    output_audio_format: str = "g711_ulaw"
    voice: str
    instructions: str
    modalities: list[str]
    temperature: float


class SessionUpdate(BaseModel):
    type: Literal["session.update"] = "session.update"
    session: RealtimeSession


class InputAudioBufferAppend(BaseModel):
    type: Literal["input_audio_buffer.append"] = "input_audio_buffer.append"
    audio: str = Field(description="Base64 audio in the session's input_audio_format.")


def build_session_update(settings: Settings, instructions: str) -> SessionUpdate:
    return SessionUpdate(
        session=RealtimeSession(
            turn_detection=TurnDetection(type=settings.realtime_turn_detection),
            input_audio_format=settings.realtime_audio_format,
            output_audio_format=settings.realtime_audio_format,
            voice=settings.realtime_voice,
            instructions=instructions,
            modalities=list(settings.realtime_modalities),
            temperature=settings.realtime_temperature,
        )
    )
