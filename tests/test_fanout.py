import pytest
from sqlalchemy import func, select

from serverlister.models import DeliveryType, Notification
from serverlister.notify.fanout import (
    NOTIFICATION_EMAIL_TEMPLATE,
    FanoutPersistenceError,
    NotificationFanoutService,
)

from conftest import FailingBridge, RecordingBridge, StubQueue, rejecting_session_factory


def _count(session_factory) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(Notification))


def test_one_unread_row_per_recipient_and_push(session_factory):
    bridge = RecordingBridge()

    with session_factory() as session:
        created = NotificationFanoutService(session, bridge=bridge).create_bulk_notifications(
            title="Maintenance",
            message="Reboot at 22:00",
            user_ids=["u1", "u2", "u2"],
        )
        assert [item.user_id for item in created] == ["u1", "u2"]
        assert all(item.read is False for item in created)
        assert created[0].delivery_status == {"browser": {"sent": True}}

    assert _count(session_factory) == 2
    assert [push[0] for push in bridge.pushes] == ["u1", "u2"]
    assert bridge.pushes[0][1] == "notification"
    assert bridge.pushes[0][2]["title"] == "Maintenance"


def test_failed_push_keeps_the_row(session_factory):
    with session_factory() as session:
        created = NotificationFanoutService(
            session, bridge=FailingBridge()
        ).create_bulk_notifications(title="Hi", message="Body", user_ids=["u1"])
        status = created[0].delivery_status

    assert _count(session_factory) == 1
    assert status["browser"]["sent"] is False
    assert "unreachable" in status["browser"]["error"]


def test_email_delivery_queues_template_job(session_factory):
    queue = StubQueue()
    bridge = RecordingBridge()

    with session_factory() as session:
        created = NotificationFanoutService(
            session, bridge=bridge, email_queue=queue
        ).create_bulk_notifications(
            title="Disk almost full",
            message="/var at 91%",
            user_ids=["u1", "u4"],
            delivery_type=DeliveryType.EMAIL,
        )
        statuses = {item.user_id: item.delivery_status for item in created}

    assert not bridge.pushes
    assert len(queue.calls) == 1
    job_name, payload = queue.calls[0]
    assert job_name == "email"
    assert payload["to"] == "ana@example.com"
    assert payload["template"] == NOTIFICATION_EMAIL_TEMPLATE
    assert payload["context"]["message"] == "/var at 91%"
    assert statuses["u1"]["email"]["queued"] is True
    assert statuses["u4"]["email"] == {"queued": False, "error": "User email not found"}


def test_both_delivery_pushes_and_emails(session_factory):
    queue = StubQueue()
    bridge = RecordingBridge(delivered=False)

    with session_factory() as session:
        created = NotificationFanoutService(
            session, bridge=bridge, email_queue=queue
        ).create_bulk_notifications(
            title="Hello", message="World", user_ids=["u3"], delivery_type="both"
        )
        status = created[0].delivery_status

    assert status["browser"] == {"sent": False}
    assert status["email"]["queued"] is True
    assert len(bridge.pushes) == 1


def test_empty_recipient_list_creates_nothing(session_factory):
    with session_factory() as session:
        created = NotificationFanoutService(session).create_bulk_notifications(
            title="Nobody", message="Listening", user_ids=[]
        )

    assert created == []
    assert _count(session_factory) == 0


def test_failed_row_is_skipped_and_others_are_kept():
    session_factory = rejecting_session_factory("u2")
    bridge = RecordingBridge()

    with session_factory() as session:
        created = NotificationFanoutService(session, bridge=bridge).create_bulk_notifications(
            title="Maintenance", message="Reboot", user_ids=["u1", "u2", "u3"]
        )
        assert [item.user_id for item in created] == ["u1", "u3"]

    assert _count(session_factory) == 2
    assert [push[0] for push in bridge.pushes] == ["u1", "u3"]


def test_all_rows_failing_raises():
    session_factory = rejecting_session_factory("u1", "u2")

    with session_factory() as session:
        with pytest.raises(FanoutPersistenceError) as excinfo:
            NotificationFanoutService(session).create_bulk_notifications(
                title="Maintenance", message="Reboot", user_ids=["u1", "u2"]
            )

    assert excinfo.value.failed_user_ids == ["u1", "u2"]
    assert _count(session_factory) == 0
