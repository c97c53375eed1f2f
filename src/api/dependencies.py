"""Shared FastAPI dependencies.

Each media stream gets a fresh relay client and gateway; tests override
``get_relay_client`` to inject a fake connector.
"""

from __future__ import annotations

from fastapi import Depends

from config.settings import get_settings
from integrations.openai_realtime import RelayClient
from telephony.session_gateway import SessionGateway


def get_relay_client() -> RelayClient:
    return RelayClient(get_settings())


def get_session_gateway(relay: RelayClient = Depends(get_relay_client)) -> SessionGateway:
    return SessionGateway(relay)
