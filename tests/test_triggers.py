from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from cronherd.triggers import JOB_PREFIX, CronTriggerHandle


def make_handle(calls, expression="*/5 * * * *", timezone="UTC"):
    scheduler = BackgroundScheduler(timezone="UTC")
    handle = CronTriggerHandle(
        scheduler,
        "job",
        expression,
        timezone,
        lambda: calls.append(1),
        misfire_grace_time=3,
    )
    return scheduler, handle


def test_start_registers_job():
    calls = []
    scheduler, handle = make_handle(calls, timezone="Europe/Paris")
    handle.start()

    job = scheduler.get_job(handle.job_id)
    assert handle.job_id.startswith(f"{JOB_PREFIX}job:")
    assert handle.active
    assert isinstance(job.trigger, CronTrigger)
    assert str(job.trigger.timezone) == "Europe/Paris"
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.misfire_grace_time == 3


def test_start_is_idempotent():
    calls = []
    scheduler, handle = make_handle(calls)
    handle.start()
    handle.start()
    assert len(scheduler.get_jobs()) == 1


def test_fire_calls_callback_only_while_active():
    calls = []
    scheduler, handle = make_handle(calls)
    handle.fire()
    assert calls == []

    handle.start()
    handle.fire()
    assert calls == [1]

    assert handle.stop() is True
    handle.fire()
    assert calls == [1]


def test_stop_removes_job_and_is_idempotent():
    calls = []
    scheduler, handle = make_handle(calls)
    handle.start()
    assert handle.stop() is True
    assert scheduler.get_job(handle.job_id) is None
    assert handle.stop() is False
    assert not handle.active


def test_stop_tolerates_missing_job():
    calls = []
    scheduler, handle = make_handle(calls)
    handle.start()
    scheduler.remove_job(handle.job_id)
    assert handle.stop() is True


def test_next_fire_time_from_running_scheduler():
    calls = []
    scheduler, handle = make_handle(calls, expression="0 0 1 1 *")
    assert handle.next_fire_time() is None
    scheduler.start(paused=True)
    try:
        handle.start()
        upcoming = handle.next_fire_time()
        assert (upcoming.month, upcoming.day, upcoming.hour) == (1, 1, 0)
    finally:
        scheduler.shutdown(wait=False)
