"""Pytest fixtures for service and API tests."""
import json
from datetime import datetime
from typing import AsyncGenerator, Callable, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from pushrelay.database import build_engine, create_tables, get_db, get_session_factory
from pushrelay.main import create_app
from pushrelay.models import Device, NotificationLog
from pushrelay.services.push_sender import PushConfig, PushSenderService, get_push_sender
from pushrelay.services.scheduler import get_scheduler

EXPO_URL = "https://expo.test/--/api/v2/push/send"

TOKEN_A = "ExponentPushToken[aaaaaaaaaaaaaaaaaaaaaa]"
TOKEN_B = "ExponentPushToken[bbbbbbbbbbbbbbbbbbbbbb]"
TOKEN_C = "ExpoPushToken[cccccccccccccccccccccc]"


def bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {user_id}"}


class FakeExpo:
    """Stands in for the Expo push endpoint.

    Every accepted request gets one ok ticket per message unless a custom
    responder is set. Responders get (request_number, messages) and return
    an httpx.Response or raise an httpx error.
    """

    def __init__(self):
        self.requests: list[list[dict]] = []
        self.headers: list[httpx.Headers] = []
        self.responder: Optional[Callable[[int, list], httpx.Response]] = None
        self._ticket_counter = 0

    def ok_response(self, messages: list) -> httpx.Response:
        tickets = []
        for _ in messages:
            self._ticket_counter += 1
            tickets.append({"status": "ok", "id": f"ticket-{self._ticket_counter}"})
        return httpx.Response(200, json={"data": tickets})

    def handler(self, request: httpx.Request) -> httpx.Response:
        messages = json.loads(request.content)
        self.requests.append(messages)
        self.headers.append(request.headers)
        if self.responder is not None:
            return self.responder(len(self.requests), messages)
        return self.ok_response(messages)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def sent_messages(self) -> list[dict]:
        return [message for request in self.requests for message in request]


class RecordingScheduler:
    """Scheduler double that records welcome jobs instead of running them."""

    def __init__(self):
        self.scheduled: list[tuple[str, str]] = []
        self.cancelled: list[str] = []

    def schedule_welcome(self, user_id: str, token: str, delay_seconds=None):
        self.scheduled.append((user_id, token))
        return f"welcome:{user_id}"

    def cancel_welcome(self, user_id: str) -> bool:
        self.cancelled.append(user_id)
        return False


@pytest_asyncio.fixture()
async def engine(tmp_path):
    # File-backed so concurrent sessions each get their own connection
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    await create_tables(test_engine)
    try:
        yield test_engine
    finally:
        await test_engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def fake_expo() -> FakeExpo:
    return FakeExpo()


@pytest.fixture()
def sender(fake_expo) -> PushSenderService:
    return PushSenderService(PushConfig(url=EXPO_URL, chunk_size=100), transport=fake_expo.transport)


@pytest.fixture()
def recording_scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture()
def app(session_factory, sender, recording_scheduler):
    application = create_app()

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    application.dependency_overrides[get_push_sender] = lambda: sender
    application.dependency_overrides[get_scheduler] = lambda: recording_scheduler
    return application


@pytest_asyncio.fixture()
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture()
def make_device(db_session) -> Callable:
    """Insert a device row directly."""

    async def _make(user_id: str, token: Optional[str] = TOKEN_A, **fields) -> Device:
        now = datetime.utcnow()
        device = Device(
            user_id=user_id,
            expo_push_token=token,
            platform=fields.pop("platform", "ios"),
            app_version=fields.pop("app_version", "1.1.0"),
            device_name=fields.pop("device_name", "iPhone 12"),
            device_model=fields.pop("device_model", "iPhone13,2"),
            registered_at=fields.pop("registered_at", now),
            last_active=fields.pop("last_active", now),
            token_updated_at=fields.pop("token_updated_at", now),
        )
        db_session.add(device)
        await db_session.commit()
        return device

    return _make


@pytest.fixture()
def make_log(db_session) -> Callable:
    """Insert a notification log row directly."""

    async def _make(user_id: Optional[str], **fields) -> NotificationLog:
        entry = NotificationLog(
            user_id=user_id,
            title=fields.pop("title", "Title"),
            body=fields.pop("body", "Body"),
            data=fields.pop("data", {}),
            type=fields.pop("type", "single"),
            status=fields.pop("status", "sent"),
            ticket_id=fields.pop("ticket_id", None),
            error=fields.pop("error", None),
            sent_at=fields.pop("sent_at", datetime.utcnow()),
        )
        db_session.add(entry)
        await db_session.commit()
        return entry

    return _make


@pytest.fixture()
def fetch_logs(session_factory) -> Callable:
    """Read log rows through a fresh session."""

    async def _fetch(**filters) -> list[NotificationLog]:
        async with session_factory() as session:
            query = select(NotificationLog).filter_by(**filters).order_by(NotificationLog.id)
            result = await session.execute(query)
            return list(result.scalars().all())

    return _fetch


@pytest.fixture()
def fetch_device(session_factory) -> Callable:
    """Read a device row through a fresh session."""

    async def _fetch(user_id: str) -> Optional[Device]:
        async with session_factory() as session:
            result = await session.execute(select(Device).where(Device.user_id == user_id))
            return result.scalar_one_or_none()

    return _fetch
