"""
Celery tasks for hold expiry and waitlist promotion.
"""

import asyncio
import logging
from dataclasses import asdict

from .celery_app import celery_app
from ..database import close_database, get_db_session, init_database
from ..services.engine import PlaySessionEngine
from ..services.seat_ledger import EventLockRegistry

logger = logging.getLogger(__name__)


async def run_sweep() -> dict:
    """One sweep over every event with due holds or a waiting queue."""
    async with get_db_session() as session:
        engine = PlaySessionEngine(session, EventLockRegistry())
        report = await engine.payments.sweep()

    result = asdict(report)
    result["drifted_events"] = [str(event_id) for event_id in report.drifted_events]
    return result


@celery_app.task(bind=True, name="sweep_holds_task")
def sweep_holds_task(self):
    """
    Periodic task that expires overdue holds and promotes from waitlists.

    Runs every ``hold_sweep_interval_seconds``. Each event is handled under its
    own lock, so a sweep can overlap with live API traffic. Multiple workers
    must enable distributed locks to share that guarantee.
    """

    async def _sweep():
        await init_database()
        try:
            logger.info("Starting hold sweep task")
            return await run_sweep()
        except Exception as e:
            logger.error(f"Error in hold sweep task: {e}")
            raise
        finally:
            await close_database()

    # Run the async function
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_sweep())
    finally:
        loop.close()
