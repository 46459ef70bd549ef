from __future__ import annotations

from typing import Any, Mapping

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from serverlister.config import Settings
from serverlister.models import Base, User
from serverlister.queue import JobHandle, JobName


class StubQueue:
    """Records enqueued jobs instead of talking to Redis."""

    name = "jobQueue"

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def enqueue(self, job_name, payload: Mapping[str, Any], *, job_id=None) -> JobHandle:
        name = JobName(job_name).value
        self.calls.append((name, dict(payload)))
        return JobHandle(id=job_id or f"job-{len(self.calls)}", name=name, queue=self.name)

    def close(self) -> None:
        return None


class RecordingBridge:
    def __init__(self, *, delivered: bool = True) -> None:
        self.delivered = delivered
        self.pushes: list[tuple[str, str, dict]] = []

    def push(self, user_id: str, event: str, data: Mapping[str, Any]) -> bool:
        self.pushes.append((user_id, event, dict(data)))
        return self.delivered


class FailingBridge:
    def push(self, user_id: str, event: str, data: Mapping[str, Any]) -> bool:
        raise ConnectionError("stream endpoint unreachable")


def scan_report(hostname: str = "web-1", **host_overrides: Any) -> dict[str, Any]:
    host = {
        "hostname": hostname,
        "ipv4": "10.0.0.5",
        "ipv6": "",
        "macAddress": "00:1a:2b:3c:4d:5e",
        "cores": 8,
        "memoryGB": 15.6,
        "storage": [{"diskMountPath": "/", "totalGB": 100.0, "usedGB": 42.5}],
        "users": [{"username": "root", "localAccount": True}],
    }
    host.update(host_overrides)
    return {
        "host": host,
        "services": [{"name": "nginx", "running": True}],
        "software": [
            {"name": "openssl", "version": "3.0.13", "install_location": "/usr/lib"}
        ],
        "os": {"name": "Ubuntu", "version": "24.04", "patch_version": "1"},
    }


def create_session_factory(session_class=Session):
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, future=True, class_=session_class)


def rejecting_session_factory(*user_ids: str):
    """Session factory whose commits fail while a notification for *user_ids* is pending."""

    from sqlalchemy.exc import OperationalError

    from serverlister.models import Notification

    class RejectingSession(Session):
        def commit(self) -> None:
            if any(
                isinstance(obj, Notification) and obj.user_id in user_ids for obj in self.new
            ):
                raise OperationalError("INSERT INTO notifications", {}, Exception("disk full"))
            super().commit()

    factory = create_session_factory(RejectingSession)
    seed_users(factory)
    return factory


def seed_users(session_factory) -> None:
    with session_factory() as session:
        session.add_all(
            [
                User(id="u1", name="Ana", email="ana@example.com", roles={"admin"}),
                User(id="u2", name="Bob", email="bob@example.com", roles={"admin", "user"}),
                User(id="u3", name="Carla", email="carla@example.com", roles={"user"}),
                User(id="u4", name="Dan", email=None, roles=set()),
            ]
        )
        session.commit()


@pytest.fixture()
def session_factory():
    factory = create_session_factory()
    seed_users(factory)
    return factory


@pytest.fixture()
def stub_queue() -> StubQueue:
    return StubQueue()


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        scan_token="scan-secret",
        internal_api_token="internal-secret",
        log_json=False,
    )


@pytest.fixture()
def bridge() -> RecordingBridge:
    return RecordingBridge()


@pytest.fixture()
def client(test_settings, stub_queue, session_factory, bridge):
    from serverlister.main import create_app

    app = create_app(
        config=test_settings,
        queue=stub_queue,
        session_factory=session_factory,
        delivery_bridge=bridge,
    )
    with TestClient(app) as test_client:
        yield test_client
