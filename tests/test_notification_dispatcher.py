from uuid import uuid4

from chatcore.models import NotificationKind, NotificationPayload
from chatcore.services import StoreNotificationDispatcher
from chatcore.services.notification_dispatcher import notify_best_effort

from fakes import RecordingDispatcher, run


class FakeNotificationStorage:
    def __init__(self):
        self.rows = []

    async def create_many(self, notifications):
        self.rows.extend(notifications)
        return len(notifications)


def test_one_row_per_distinct_recipient():
    storage = FakeNotificationStorage()
    dispatcher = StoreNotificationDispatcher(storage)
    a, b = uuid4(), uuid4()
    room_id = uuid4()
    payload = NotificationPayload(NotificationKind.MESSAGE, "hello", title="Toni", room_id=room_id)

    assert run(dispatcher.notify([a, b, a], payload)) == 2
    assert [r.user_id for r in storage.rows] == [a, b]
    assert storage.rows[0].content == "hello"
    assert storage.rows[0].chat_room_id == room_id
    assert storage.rows[0].notification_type == NotificationKind.MESSAGE


def test_no_recipients_writes_nothing():
    storage = FakeNotificationStorage()
    payload = NotificationPayload(NotificationKind.SYSTEM_EVENT, "maintenance")
    assert run(StoreNotificationDispatcher(storage).notify([], payload)) == 0
    assert storage.rows == []


def test_best_effort_swallows_failures():
    payload = NotificationPayload(NotificationKind.CHAT_REQUEST, "please")
    assert run(notify_best_effort(RecordingDispatcher(), [uuid4()], payload)) is True
    assert run(notify_best_effort(RecordingDispatcher(fail=True), [uuid4()], payload)) is False
