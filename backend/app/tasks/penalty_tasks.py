"""Celery periodic task: daily late-payment penalty run."""

import asyncio
import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.tasks import celery_app
from app.config import settings
from app.services.rentals.penalties import run_penalty_calculation

logger = logging.getLogger(__name__)

__all__ = ["calculate_daily_penalties", "trigger_penalty_calculation"]


def _get_async_session():
    engine = create_async_engine(settings.database_url)
    return engine, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def trigger_penalty_calculation(
    tenant_id: int | None = None,
    *,
    session_factory: async_sessionmaker | None = None,
    today: date | None = None,
) -> dict:
    """Run the penalty calculation now, optionally for a single tenant.

    Returns ``{processed, skipped, errors, penalties}``.
    """
    engine = None
    if session_factory is None:
        engine, session_factory = _get_async_session()

    try:
        async with session_factory() as db:
            try:
                run = await run_penalty_calculation(db, tenant_id, today=today)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return run.as_dict()
    finally:
        if engine is not None:
            await engine.dispose()


@celery_app.task(name="app.tasks.penalty_tasks.calculate_daily_penalties")
def calculate_daily_penalties(tenant_id: int | None = None) -> dict:
    """Penalize every overdue installment across all tenants.

    This runs as a synchronous Celery task that wraps an async inner function.
    """
    loop = asyncio.new_event_loop()
    try:
        result = loop.run_until_complete(trigger_penalty_calculation(tenant_id))
    finally:
        loop.close()

    logger.info(
        "Daily penalty calculation: %d processed, %d skipped, %d errors",
        result["processed"], result["skipped"], len(result["errors"]),
    )
    return result
