# tests/test_notification_scheduler.py

import asyncio
from datetime import date, datetime, timedelta

import pytest
from sqlmodel import Session

from chronotask.exceptions import ValidationError
from chronotask.models.scheduler_state import SchedulerState
from chronotask.services.notification_scheduler import NotificationScheduler, run_scheduler
from chronotask.services.task_service import TaskService
from chronotask.utils.metrics import metrics_collector

from .fakes import FakeDelivery, FixedClock

T = datetime(2024, 1, 3, 7, 0, 0)


@pytest.fixture()
def scheduler_clock() -> FixedClock:
    return FixedClock(datetime(2024, 1, 3, 6, 0, 0))


@pytest.fixture()
def delivery() -> FakeDelivery:
    return FakeDelivery()


@pytest.fixture()
def scheduler(engine, delivery, scheduler_clock) -> NotificationScheduler:
    return NotificationScheduler(
        session_factory=lambda: Session(engine),
        delivery=delivery,
        clock=scheduler_clock,
        delivery_timeout=0.05,
        default_frequency="daily",
        default_timezone="UTC",
    )


def _row(engine, profile_id: str = "p1") -> SchedulerState:
    with Session(engine) as db_session:
        return db_session.get(SchedulerState, profile_id)


def test_status_of_unknown_profile_is_disabled(scheduler) -> None:
    status = scheduler.get_status("nobody")
    assert status.enabled is False
    assert status.state == "disabled"
    assert status.next_run is None


def test_toggle_enables_with_first_boundary(scheduler) -> None:
    status = scheduler.toggle("p1")
    assert status.enabled is True
    assert status.state == "idle"
    assert status.next_run == T


def test_toggle_twice_disables_and_clears_next_run(scheduler) -> None:
    scheduler.toggle("p1")
    status = scheduler.toggle("p1")
    assert status.enabled is False
    assert status.state == "disabled"
    assert status.next_run is None


@pytest.mark.asyncio
async def test_tick_before_boundary_sends_nothing(scheduler, delivery, scheduler_clock) -> None:
    scheduler.toggle("p1")

    fired = await scheduler.tick(T - timedelta(seconds=1))

    assert fired == 0
    assert delivery.sent == []
    assert scheduler.get_status("p1").next_run == T


@pytest.mark.asyncio
async def test_tick_after_boundary_sends_once_and_advances(scheduler, delivery, scheduler_clock) -> None:
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))

    assert await scheduler.tick() == 1
    assert await scheduler.tick() == 0

    assert len(delivery.sent) == 1
    status = scheduler.get_status("p1")
    assert status.next_run == T + timedelta(hours=24)
    assert status.last_run == T + timedelta(seconds=1)
    assert status.last_status == "success"
    assert status.last_error is None
    assert status.state == "idle"
    assert metrics_collector.get_metrics()["counters"]["summaries_sent_total"] == 1


@pytest.mark.asyncio
async def test_next_run_is_persisted_before_delivery(engine, scheduler, delivery, scheduler_clock) -> None:
    seen = []
    delivery.on_send = lambda profile_id: seen.append(_row(engine, profile_id))
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))

    await scheduler.tick()

    assert seen[0].next_run == T + timedelta(hours=24)
    assert seen[0].state == "sending"


@pytest.mark.asyncio
async def test_failed_delivery_still_advances(scheduler, delivery, scheduler_clock) -> None:
    delivery.succeed = False
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))

    assert await scheduler.tick() == 1

    status = scheduler.get_status("p1")
    assert status.last_status == "failed"
    assert status.last_error == "delivery reported failure"
    assert status.next_run == T + timedelta(hours=24)
    assert status.state == "idle"
    assert metrics_collector.get_metrics()["counters"]["summaries_failed_total"] == 1


@pytest.mark.asyncio
async def test_delivery_exception_is_recorded(scheduler, delivery, scheduler_clock) -> None:
    delivery.error = RuntimeError("gateway down")
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))

    await scheduler.tick()

    status = scheduler.get_status("p1")
    assert status.last_status == "failed"
    assert "gateway down" in status.last_error


@pytest.mark.asyncio
async def test_delivery_timeout_counts_as_failure(scheduler, delivery, scheduler_clock) -> None:
    delivery.delay = 1.0
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))

    await scheduler.tick()

    status = scheduler.get_status("p1")
    assert status.last_status == "failed"
    assert "timed out" in status.last_error
    assert status.next_run == T + timedelta(hours=24)


@pytest.mark.asyncio
async def test_claimed_boundary_is_never_sent_again(scheduler, delivery, scheduler_clock) -> None:
    scheduler.toggle("p1")
    now = T + timedelta(seconds=1)

    # Process dies after the claim commits but before delivery
    assert scheduler._claim("p1", T, now) == T + timedelta(hours=24)

    assert await scheduler.fire("p1", T, now) is False
    assert await scheduler.tick(now) == 0
    assert delivery.sent == []


@pytest.mark.asyncio
async def test_missed_boundaries_fire_once(scheduler, delivery, scheduler_clock) -> None:
    scheduler.toggle("p1")

    assert await scheduler.tick(T + timedelta(days=3, minutes=5)) == 1

    assert len(delivery.sent) == 1
    assert scheduler.get_status("p1").next_run == T + timedelta(days=4)


@pytest.mark.asyncio
async def test_disabled_profile_is_never_fired(scheduler, delivery) -> None:
    scheduler.toggle("p1")
    scheduler.toggle("p1")

    assert await scheduler.tick(T + timedelta(days=1)) == 0
    assert delivery.sent == []


@pytest.mark.asyncio
async def test_send_now_skips_bookkeeping(scheduler, delivery) -> None:
    scheduler.toggle("p1")

    assert await scheduler.send_now("p1") is True

    assert len(delivery.sent) == 1
    status = scheduler.get_status("p1")
    assert status.last_run is None
    assert status.last_status is None
    assert status.next_run == T
    assert status.state == "idle"


@pytest.mark.asyncio
async def test_send_now_reports_failure(scheduler, delivery) -> None:
    delivery.succeed = False
    assert await scheduler.send_now("p1") is False
    assert scheduler.get_status("p1").state == "disabled"


@pytest.mark.asyncio
async def test_summary_payload_lists_due_tasks(engine, scheduler, delivery, scheduler_clock) -> None:
    with Session(engine) as db_session:
        tasks = TaskService(db_session, clock=scheduler_clock)
        tasks.create_task("p1", "Pay rent", due_date=date(2024, 1, 3))
        tasks.create_task("p1", "File taxes", due_date=date(2024, 1, 1))
        done = tasks.create_task("p1", "Old chore", due_date=date(2024, 1, 3))
        tasks.complete_task(done.id)

    await scheduler.send_now("p1")

    _, payload = delivery.sent[0]
    assert payload["open_count"] == 2
    assert payload["today"] == ["Pay rent"]
    assert payload["overdue"] == ["File taxes"]


def test_frequency_change_recomputes_next_run(scheduler) -> None:
    scheduler.toggle("p1")

    status = scheduler.set_frequency("p1", "4h")

    assert status.frequency == "4h"
    assert status.next_run == datetime(2024, 1, 3, 8, 0)


def test_invalid_frequency_and_timezone_rejected(scheduler) -> None:
    with pytest.raises(ValidationError):
        scheduler.set_frequency("p1", "hourly")
    with pytest.raises(ValidationError):
        scheduler.set_timezone("p1", "Nowhere/Special")


def test_timezone_change_moves_boundary(scheduler) -> None:
    scheduler.toggle("p1")
    status = scheduler.set_timezone("p1", "Europe/Berlin")
    # 06:00 UTC is 07:00 in Berlin (CET), so the next 07:00 local is tomorrow 06:00 UTC
    assert status.timezone == "Europe/Berlin"
    assert status.next_run == datetime(2024, 1, 4, 6, 0)


@pytest.mark.asyncio
async def test_run_scheduler_loop_fires_and_stops(scheduler, delivery, scheduler_clock) -> None:
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))

    runner = asyncio.create_task(run_scheduler(scheduler, interval_seconds=0.01))
    await asyncio.sleep(0.1)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert len(delivery.sent) == 1


@pytest.mark.asyncio
async def test_provider_cancellation_counts_as_failure(scheduler, delivery, scheduler_clock) -> None:
    delivery.error = asyncio.CancelledError()
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))

    assert await scheduler.tick() == 1

    status = scheduler.get_status("p1")
    assert status.last_status == "failed"
    assert status.last_error == "delivery cancelled"
    assert status.state == "idle"
    assert status.next_run == T + timedelta(hours=24)


@pytest.mark.asyncio
async def test_run_scheduler_survives_provider_cancellation(scheduler, delivery, scheduler_clock) -> None:
    delivery.error = asyncio.CancelledError()
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))

    runner = asyncio.create_task(run_scheduler(scheduler, interval_seconds=0.01))
    await asyncio.sleep(0.1)

    assert not runner.done()
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner
    assert scheduler.get_status("p1").last_status == "failed"


@pytest.mark.asyncio
async def test_cancelling_the_tick_still_releases_the_row(scheduler, delivery, scheduler_clock) -> None:
    scheduler.delivery_timeout = 5.0
    delivery.delay = 1.0
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))

    ticking = asyncio.create_task(scheduler.tick())
    await asyncio.sleep(0.05)
    ticking.cancel()
    with pytest.raises(asyncio.CancelledError):
        await ticking

    status = scheduler.get_status("p1")
    assert status.state == "idle"
    assert status.last_status == "failed"
    assert status.last_error == "delivery interrupted"
    assert status.next_run == T + timedelta(hours=24)


@pytest.mark.asyncio
async def test_run_scheduler_recovers_from_failing_tick(scheduler, delivery, scheduler_clock, monkeypatch) -> None:
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))
    real_due_profiles = scheduler.due_profiles
    calls = []

    def flaky_due_profiles(now):
        calls.append(now)
        if len(calls) == 1:
            raise RuntimeError("storage hiccup")
        return real_due_profiles(now)

    monkeypatch.setattr(scheduler, "due_profiles", flaky_due_profiles)

    runner = asyncio.create_task(run_scheduler(scheduler, interval_seconds=0.01))
    await asyncio.sleep(0.1)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert len(calls) > 1
    assert len(delivery.sent) == 1


@pytest.mark.asyncio
async def test_toggle_off_during_send_stays_disabled(scheduler, delivery, scheduler_clock) -> None:
    delivery.on_send = lambda profile_id: scheduler.toggle(profile_id)
    scheduler.toggle("p1")
    scheduler_clock.set(T + timedelta(seconds=1))

    assert await scheduler.tick() == 1

    status = scheduler.get_status("p1")
    assert status.enabled is False
    assert status.state == "disabled"
    assert status.next_run is None
    assert status.last_status == "success"
    assert await scheduler.tick(T + timedelta(days=3)) == 0


def test_recover_interrupted_releases_sending_rows(scheduler) -> None:
    scheduler.toggle("p1")
    scheduler._claim("p1", T, T + timedelta(seconds=1))
    assert scheduler.get_status("p1").state == "sending"

    assert scheduler.recover_interrupted() == 1

    status = scheduler.get_status("p1")
    assert status.state == "idle"
    assert status.next_run == T + timedelta(hours=24)
    assert scheduler.recover_interrupted() == 0
