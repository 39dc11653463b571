"""
In-process trigger for the prompt cycle and the 2-hour reminder.

Optional background worker for deployments without an external cron. Polls
every SCHEDULER_POLL_SECONDS and fires:

- the prompt cycle once per execution slot
- the 2-hour reminder once per day, TWO_HOUR_WARNING_LEAD_HOURS before the slot

A run is only fired within CATCH_UP_WINDOW of its scheduled time, so a
restart hours after the slot does not replay it. The Redis run lock and the
conditional updates make a run that overlaps an external cron harmless.
"""

import asyncio
import logging
import os
from datetime import datetime, timedelta
from typing import Optional

from challenge_league.services import warning_service
from challenge_league.services.phase_clock import next_execution_slot, normalized_now
from challenge_league.services.prompt_queue_service import get_prompt_queue_service
from challenge_league.utils.constants import TWO_HOUR_WARNING_LEAD_HOURS
from challenge_league.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# How often the worker wakes up (seconds)
POLL_INTERVAL_SECONDS = int(os.getenv("SCHEDULER_POLL_SECONDS", "60"))

# Runs older than this are considered missed and skipped
CATCH_UP_WINDOW = timedelta(hours=1)


def is_scheduler_worker_enabled() -> bool:
    return os.getenv("ENABLE_SCHEDULER_WORKER", "false").lower() == "true"


class SchedulerWorker:
    """Background worker that fires scheduler passes at their slot times."""

    def __init__(self):
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._last_cycle_slot: Optional[datetime] = None
        self._last_reminder_time: Optional[datetime] = None

    def start(self) -> None:
        """Start the background scheduler worker."""
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info("Scheduler worker started")

    def stop(self) -> None:
        """Stop the background scheduler worker."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            logger.info("Scheduler worker stopped")

    async def _poll_loop(self) -> None:
        """Main loop: check due runs, then sleep. Repeats until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error in scheduler worker: {e}", exc_info=True)

            # Wait for poll interval or until stop is signalled
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=POLL_INTERVAL_SECONDS)
                break
            except asyncio.TimeoutError:
                pass

    async def tick(self, now: Optional[datetime] = None) -> None:
        """Fire whichever runs are due at `now`."""
        current = now or utcnow()

        reminder_time = next_execution_slot(current) - timedelta(hours=TWO_HOUR_WARNING_LEAD_HOURS)
        if self._is_due(reminder_time, self._last_reminder_time, current):
            self._last_reminder_time = reminder_time
            logger.info(f"Firing 2-hour reminder for {reminder_time.isoformat()}")
            await warning_service.send_2_hour_warning_notifications()

        slot = normalized_now(current)
        if self._is_due(slot, self._last_cycle_slot, current):
            self._last_cycle_slot = slot
            logger.info(f"Firing prompt cycle for slot {slot.isoformat()}")
            await get_prompt_queue_service().process_prompt_queue()

    @staticmethod
    def _is_due(scheduled: datetime, last_fired: Optional[datetime], now: datetime) -> bool:
        if last_fired is not None and last_fired >= scheduled:
            return False
        return scheduled <= now < scheduled + CATCH_UP_WINDOW


# Global singleton
_scheduler_worker = SchedulerWorker()


def get_scheduler_worker() -> SchedulerWorker:
    """Get the global scheduler worker instance."""
    return _scheduler_worker
