"""Exceptions raised by the call relay.

Handlers catch these at their boundary; none of them propagate to the socket
read loops.
"""

from __future__ import annotations


class RelayError(Exception):
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class MalformedFrameError(RelayError):
    default_detail = "Frame is not a JSON object."


class MissingCredentialsError(RelayError):
    default_detail = "OPENAI_API_KEY is not configured."
