"""Tests for the deferred welcome notification."""
import asyncio

import httpx
import pytest

from pushrelay.services.scheduler import SchedulerService, WELCOME_TITLE

from .conftest import TOKEN_A


@pytest.fixture()
def scheduler(session_factory, sender):
    service = SchedulerService(session_factory=session_factory, sender=sender)
    yield service
    service.stop()


@pytest.mark.asyncio
async def test_send_welcome_logs_sent_with_ticket(scheduler, fake_expo, fetch_logs):
    await scheduler.send_welcome("user-1", TOKEN_A)

    assert fake_expo.sent_messages[0]["to"] == TOKEN_A
    assert fake_expo.sent_messages[0]["data"] == {"type": "welcome"}
    [entry] = await fetch_logs(user_id="user-1")
    assert entry.type == "welcome"
    assert entry.status == "sent"
    assert entry.title == WELCOME_TITLE
    assert entry.ticket_id == "ticket-1"


@pytest.mark.asyncio
async def test_send_welcome_logs_rejected_ticket(scheduler, fake_expo, fetch_logs):
    fake_expo.responder = lambda number, messages: httpx.Response(200, json={"data": [
        {"status": "error", "message": "not registered", "details": {"error": "DeviceNotRegistered"}},
    ]})

    await scheduler.send_welcome("user-1", TOKEN_A)

    [entry] = await fetch_logs(user_id="user-1")
    assert entry.status == "error"
    assert entry.ticket_id is None
    assert "DeviceNotRegistered" in entry.error


@pytest.mark.asyncio
async def test_send_welcome_logs_transport_failure(scheduler, fake_expo, fetch_logs):
    def responder(number, messages):
        raise httpx.ConnectTimeout("timed out")

    fake_expo.responder = responder

    await scheduler.send_welcome("user-1", TOKEN_A)

    [entry] = await fetch_logs(user_id="user-1")
    assert entry.status == "error"
    assert entry.error == "Push provider request failed"


@pytest.mark.asyncio
async def test_send_welcome_swallows_sender_exceptions(scheduler, fetch_logs, monkeypatch):
    async def exploding_send_one(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(scheduler.sender, "send_one", exploding_send_one)

    await scheduler.send_welcome("user-1", TOKEN_A)

    [entry] = await fetch_logs(user_id="user-1")
    assert entry.status == "error"
    assert entry.error == "boom"


def test_schedule_without_running_scheduler_is_dropped(scheduler):
    assert scheduler.schedule_welcome("user-1", TOKEN_A) is None


@pytest.mark.asyncio
async def test_schedule_and_cancel_welcome(scheduler):
    scheduler.start()

    job_id = scheduler.schedule_welcome("user-1", TOKEN_A, delay_seconds=60)
    assert job_id == "welcome:user-1"
    assert scheduler.scheduler.get_job(job_id) is not None

    # A second registration replaces the pending job
    scheduler.schedule_welcome("user-1", TOKEN_A, delay_seconds=60)
    assert len(scheduler.scheduler.get_jobs()) == 1

    assert scheduler.cancel_welcome("user-1") is True
    assert scheduler.scheduler.get_job(job_id) is None
    assert scheduler.cancel_welcome("user-1") is False

    scheduler.stop()
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_scheduled_welcome_fires_and_is_logged(scheduler, fake_expo, fetch_logs):
    scheduler.start()
    scheduler.schedule_welcome("user-1", TOKEN_A, delay_seconds=0.05)

    entries = []
    for _ in range(100):
        entries = await fetch_logs(user_id="user-1", type="welcome")
        if entries:
            break
        await asyncio.sleep(0.05)

    assert len(entries) == 1
    assert entries[0].status == "sent"
    assert fake_expo.sent_messages[0]["to"] == TOKEN_A
    scheduler.stop()
