# src/replaylink/api/deps.py

"""Shared FastAPI dependencies."""

from typing import AsyncGenerator

from fastapi import Depends

from replaylink.config import Settings, get_settings
from replaylink.services.replay_client import ReplayClient


async def get_replay_client(
    settings: Settings = Depends(get_settings),
) -> AsyncGenerator[ReplayClient, None]:
    """One client per request, closed when the request ends."""
    async with ReplayClient(
        base_url=settings.replay_base_url, timeout=settings.fetch_timeout
    ) as client:
        yield client
