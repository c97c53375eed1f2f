"""Entry point for the Twilio to OpenAI Realtime call relay."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from api.routes import router
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not get_settings().openai_api_key:
        LOGGER.error("Missing OPENAI_API_KEY; calls will be accepted but the assistant stays silent")
    yield


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Realtime Call Relay",
    description="Relays Twilio Media Streams to the OpenAI Realtime API.",
    lifespan=lifespan,
)
app.include_router(router)


def main() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
