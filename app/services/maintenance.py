from __future__ import annotations

import asyncio
from typing import Callable

import anyio
from loguru import logger
from sqlalchemy.engine import Engine
from sqlmodel import Session

from app.core.providers import AuthComponents


def run_cleanup_once(components: AuthComponents, engine: Engine) -> int:
    with Session(engine) as session:
        removed = components.refresh_tokens.sweep_expired(session)
    components.rate_limiter.evict_idle()
    return removed


async def run_periodic_cleanup(
    components: AuthComponents,
    engine_getter: Callable[[], Engine],
    interval_seconds: float,
) -> None:
    """Purge expired refresh tokens and idle buckets until cancelled.

    A failed tick is logged and the next one tries again.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await anyio.to_thread.run_sync(run_cleanup_once, components, engine_getter())
        except Exception:
            logger.exception('Refresh token cleanup failed; retrying next tick')
