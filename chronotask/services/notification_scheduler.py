"""
Notification Scheduler.

Per-profile state machine deciding when a task summary is due:

    disabled --toggle--> idle --now >= next_run--> sending --done--> idle
        ^                  |                          |
        +-----toggle-------+----------toggle----------+

The advanced `next_run` is committed before delivery starts, so a crash
mid-send can never fire the same boundary twice. Only this class writes
SchedulerState rows.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from chronotask.config import DEFAULT_FREQUENCY, DEFAULT_TIMEZONE, DELIVERY_TIMEOUT_SECONDS, SCHEDULER_TICK_SECONDS
from chronotask.models.scheduler_state import SchedulerPhase, SchedulerState, SendStatus
from chronotask.schemas.scheduler import SchedulerStatus
from chronotask.services.cadence import advance_boundary, first_boundary, get_timezone, parse_frequency
from chronotask.services.delivery import DeliveryProvider
from chronotask.services.task_summary import build_task_summary
from chronotask.utils.clock import utcnow
from chronotask.utils.logger import get_logger
from chronotask.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)
scheduler_logger = get_logger("chronotask.scheduler")

MAX_ERROR_LENGTH = 500


class NotificationScheduler:
    """Controller funnelling every SchedulerState transition."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        delivery: DeliveryProvider,
        clock: Callable[[], datetime] = utcnow,
        delivery_timeout: float = DELIVERY_TIMEOUT_SECONDS,
        default_frequency: str = DEFAULT_FREQUENCY,
        default_timezone: str = DEFAULT_TIMEZONE,
    ):
        self.session_factory = session_factory
        self.delivery = delivery
        self.clock = clock
        self.delivery_timeout = delivery_timeout
        self.default_frequency = parse_frequency(default_frequency).value
        self.default_timezone = default_timezone

    # ---- state access ----

    def _load(self, session: Session, profile_id: str) -> SchedulerState:
        state = session.get(SchedulerState, profile_id)
        if state is None:
            state = SchedulerState(
                profile_id=profile_id,
                frequency=self.default_frequency,
                timezone=self.default_timezone,
                updated_at=self.clock(),
            )
            session.add(state)
            session.flush()
        return state

    @staticmethod
    def _status(state: SchedulerState) -> SchedulerStatus:
        return SchedulerStatus.model_validate(state)

    def get_status(self, profile_id: str) -> SchedulerStatus:
        with self.session_factory() as session:
            state = session.get(SchedulerState, profile_id)
            if state is None:
                return SchedulerStatus(
                    profile_id=profile_id,
                    enabled=False,
                    frequency=self.default_frequency,
                    timezone=self.default_timezone,
                    state=SchedulerPhase.DISABLED.value,
                )
            return self._status(state)

    # ---- user transitions ----

    def toggle(self, profile_id: str) -> SchedulerStatus:
        """Enable a disabled scheduler, disable an enabled one."""
        with self.session_factory() as session:
            state = self._load(session, profile_id)
            now = self.clock()
            if state.enabled:
                state.enabled = False
                state.state = SchedulerPhase.DISABLED.value
                state.next_run = None
            else:
                state.enabled = True
                state.state = SchedulerPhase.IDLE.value
                state.next_run = first_boundary(parse_frequency(state.frequency), now, state.timezone)
            state.updated_at = now
            session.add(state)
            session.commit()
            session.refresh(state)
            scheduler_logger.info("Task summary toggled", profile_id=profile_id, enabled=state.enabled,
                                  next_run=state.next_run)
            return self._status(state)

    def set_frequency(self, profile_id: str, frequency: str) -> SchedulerStatus:
        parsed = parse_frequency(frequency)
        with self.session_factory() as session:
            state = self._load(session, profile_id)
            now = self.clock()
            state.frequency = parsed.value
            if state.enabled:
                state.next_run = first_boundary(parsed, now, state.timezone)
            state.updated_at = now
            session.add(state)
            session.commit()
            session.refresh(state)
            return self._status(state)

    def set_timezone(self, profile_id: str, timezone_name: str) -> SchedulerStatus:
        get_timezone(timezone_name)
        with self.session_factory() as session:
            state = self._load(session, profile_id)
            now = self.clock()
            state.timezone = timezone_name
            if state.enabled:
                state.next_run = first_boundary(parse_frequency(state.frequency), now, timezone_name)
            state.updated_at = now
            session.add(state)
            session.commit()
            session.refresh(state)
            return self._status(state)

    # ---- delivery ----

    async def _deliver(self, profile_id: str, now: datetime) -> Optional[str]:
        """
        Build and send a summary. Returns None on success, else an error description.

        A cancellation raised by the provider itself counts as a failed send;
        only cancelling the task running this coroutine propagates.
        """
        try:
            with self.session_factory() as session:
                payload = build_task_summary(session, profile_id, now)
            delivered = await asyncio.wait_for(self.delivery.send(profile_id, payload), timeout=self.delivery_timeout)
        except asyncio.TimeoutError:
            return f"delivery timed out after {self.delivery_timeout}s"
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.warning(f"Task summary delivery for profile {profile_id} was cancelled by the provider")
            return "delivery cancelled"
        except Exception as e:
            logger.exception(f"Task summary delivery failed for profile {profile_id}")
            return f"delivery error: {str(e)}"
        return None if delivered else "delivery reported failure"

    async def send_now(self, profile_id: str) -> bool:
        """Manual send; leaves last_run/next_run and the state untouched."""
        error = await self._deliver(profile_id, self.clock())
        if error:
            scheduler_logger.warning("Manual task summary failed", profile_id=profile_id, error=error)
            return False
        scheduler_logger.info("Manual task summary sent", profile_id=profile_id)
        return True

    def _claim(self, profile_id: str, boundary: datetime, now: datetime) -> Optional[datetime]:
        """
        idle -> sending: persist the advanced boundary before delivery.

        Compare-and-set on next_run, so one boundary is claimed at most once.
        """
        with self.session_factory() as session:
            state = session.get(SchedulerState, profile_id)
            if state is None:
                return None
            advanced = advance_boundary(parse_frequency(state.frequency), boundary, now, state.timezone)
            result = session.execute(
                update(SchedulerState)
                .where(SchedulerState.profile_id == profile_id)
                .where(SchedulerState.enabled == True)  # noqa: E712
                .where(SchedulerState.next_run == boundary)
                .values(next_run=advanced, state=SchedulerPhase.SENDING.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                return None
            session.commit()
            return advanced

    def _finish(self, profile_id: str, error: Optional[str]) -> None:
        """sending -> idle, unless the profile was toggled off mid-send."""
        finished_at = self.clock()
        with self.session_factory() as session:
            session.execute(
                update(SchedulerState)
                .where(SchedulerState.profile_id == profile_id)
                .values(
                    last_run=finished_at,
                    last_status=(SendStatus.FAILED if error else SendStatus.SUCCESS).value,
                    last_error=error[:MAX_ERROR_LENGTH] if error else None,
                    updated_at=finished_at,
                )
                .execution_options(synchronize_session=False)
            )
            session.execute(
                update(SchedulerState)
                .where(SchedulerState.profile_id == profile_id)
                .where(SchedulerState.state == SchedulerPhase.SENDING.value)
                .values(state=SchedulerPhase.IDLE.value)
                .execution_options(synchronize_session=False)
            )
            session.commit()

    async def fire(self, profile_id: str, boundary: datetime, now: datetime) -> bool:
        """Fire one due boundary. Returns True when this call claimed it."""
        advanced = self._claim(profile_id, boundary, now)
        if advanced is None:
            scheduler_logger.debug("Boundary already claimed", profile_id=profile_id, boundary=boundary)
            return False

        # A claimed row always leaves the sending state, even if delivery is interrupted
        error: Optional[str] = "delivery interrupted"
        try:
            error = await self._deliver(profile_id, now)
        finally:
            if error:
                metrics_collector.summary_failed()
                scheduler_logger.warning("Task summary failed", profile_id=profile_id, boundary=boundary,
                                         next_run=advanced, error=error)
            else:
                metrics_collector.summary_sent()
                scheduler_logger.info("Task summary sent", profile_id=profile_id, boundary=boundary,
                                      next_run=advanced)
            self._finish(profile_id, error)
        return True

    def recover_interrupted(self) -> int:
        """
        Release rows left in `sending` by a process that died mid-send.

        Their boundary was already advanced by the claim, so nothing is resent.

        Returns:
            Number of rows released
        """
        now = self.clock()
        with self.session_factory() as session:
            released = 0
            for enabled, phase in ((True, SchedulerPhase.IDLE), (False, SchedulerPhase.DISABLED)):
                result = session.execute(
                    update(SchedulerState)
                    .where(SchedulerState.state == SchedulerPhase.SENDING.value)
                    .where(SchedulerState.enabled == enabled)
                    .values(state=phase.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                released += result.rowcount
            session.commit()
        if released:
            logger.warning(f"Released {released} task summary scheduler(s) left in sending state")
        return released

    def due_profiles(self, now: datetime) -> List[tuple]:
        with self.session_factory() as session:
            statement = (
                select(SchedulerState.profile_id, SchedulerState.next_run)
                .where(SchedulerState.enabled == True)  # noqa: E712
                .where(SchedulerState.next_run != None)  # noqa: E711
                .where(SchedulerState.next_run <= now)
                .order_by(SchedulerState.next_run.asc())
            )
            return [(row[0], row[1]) for row in session.exec(statement).all()]

    async def tick(self, now: Optional[datetime] = None) -> int:
        """
        Fire every enabled profile whose next_run has passed.

        Returns:
            Number of boundaries fired by this tick
        """
        now = now or self.clock()
        fired = 0
        with metrics_collector.time_operation("scheduler_tick"):
            for profile_id, boundary in self.due_profiles(now):
                try:
                    if await self.fire(profile_id, boundary, now):
                        fired += 1
                except SQLAlchemyError:
                    logger.exception(f"Scheduler storage error for profile {profile_id}")
        return fired


async def run_scheduler(scheduler: NotificationScheduler, interval_seconds: float = SCHEDULER_TICK_SECONDS) -> None:
    """
    Polling loop re-evaluating `now >= next_run` every interval.

    Errors are logged and the loop re-arms; cancel the task to stop it.
    """
    sleep_s = max(0.01, float(interval_seconds))
    logger.info(f"Starting task summary scheduler (tick every {sleep_s}s)...")

    while True:
        try:
            fired = await scheduler.tick()
            if fired:
                logger.info(f"Scheduler tick fired {fired} summary(ies)")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduler tick failed")
        await asyncio.sleep(sleep_s)
