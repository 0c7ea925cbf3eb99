import asyncio
from datetime import datetime
from uuid import uuid4

import pytest

from chatcore.errors import ValidationError
from chatcore.models import ChatMessage, MessageType, NotificationKind, RoomKind, UserRole
from chatcore.services import RoomLog

from fakes import Backend, insert_event, make_user, run


def _direct_room(backend, a, b):
    session = backend.session(a)
    backend.users.add(b)
    return run(session.rooms.create_room(f"{a.display_name} ↔ {b.display_name}", RoomKind.DIRECT, [a.id, b.id]))


@pytest.fixture
def quiet_backend():
    """Storage writes do not echo through the feed"""
    return Backend(publish_inserts=False)


def test_same_event_twice_gives_one_copy(quiet_backend):
    me, other = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR)
    room = _direct_room(quiet_backend, me, other)
    session = quiet_backend.session(me)
    session.messages.subscribe_to_messages(room.id)

    message = quiet_backend.messages.put(room.id, other.id, "hello")
    event = insert_event(message)
    run(quiet_backend.feed.publish(event))
    run(quiet_backend.feed.publish(event))

    log = session.messages.messages(room.id)
    assert [m.id for m in log] == [message.id]
    assert log[0].sender.full_name == other.display_name


def test_out_of_order_delivery_is_sorted(quiet_backend):
    me, other = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR)
    room = _direct_room(quiet_backend, me, other)
    session = quiet_backend.session(me)
    session.messages.subscribe_to_messages(room.id)

    t1 = quiet_backend.messages.put(room.id, other.id, "one", datetime(2024, 5, 1, 10, 0, 1))
    t2 = quiet_backend.messages.put(room.id, other.id, "two", datetime(2024, 5, 1, 10, 0, 2))
    t3 = quiet_backend.messages.put(room.id, other.id, "three", datetime(2024, 5, 1, 10, 0, 3))
    for message in (t3, t1, t2):
        run(quiet_backend.feed.publish(insert_event(message)))

    assert [m.content for m in session.messages.messages(room.id)] == ["one", "two", "three"]


def test_equal_timestamps_ordered_by_id(quiet_backend):
    me, other = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR)
    room = _direct_room(quiet_backend, me, other)
    session = quiet_backend.session(me)
    session.messages.subscribe_to_messages(room.id)

    when = datetime(2024, 5, 1, 10, 0, 0)
    messages = [quiet_backend.messages.put(room.id, other.id, str(i), when) for i in range(4)]
    for message in reversed(messages):
        run(quiet_backend.feed.publish(insert_event(message)))

    ids = [str(m.id) for m in session.messages.messages(room.id)]
    assert ids == sorted(str(m.id) for m in messages)


def test_events_for_other_rooms_are_ignored(quiet_backend):
    me, a, b = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR), make_user(UserRole.SUPERVISOR)
    mine = _direct_room(quiet_backend, me, a)
    theirs = _direct_room(quiet_backend, a, b)
    session = quiet_backend.session(me)
    session.messages.subscribe_to_messages(mine.id)

    run(quiet_backend.feed.publish(insert_event(quiet_backend.messages.put(theirs.id, a.id, "psst"))))
    assert session.messages.messages(mine.id) == []
    assert session.messages.messages(theirs.id) == []


def test_send_persists_and_feed_inserts(backend):
    me, other = make_user(UserRole.TRAINER, "Toni"), make_user(UserRole.SUPERVISOR)
    room = _direct_room(backend, me, other)
    session = backend.session(me)
    received = []
    session.messages.subscribe_to_messages(room.id, received.append)

    sent = run(session.messages.send_message(room.id, "hi there"))

    assert [m.id for m in session.messages.messages(room.id)] == [sent.id]
    assert [m.id for m in received] == [sent.id]
    assert sent.id in backend.messages.messages

    recipients, payload = backend.dispatcher.calls[-1]
    assert recipients == [other.id]
    assert payload.kind == NotificationKind.MESSAGE
    assert payload.room_id == room.id
    assert payload.summary == "hi there"
    assert payload.title == "Toni"


def test_send_does_not_insert_locally(quiet_backend):
    me, other = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR)
    room = _direct_room(quiet_backend, me, other)
    session = quiet_backend.session(me)
    session.messages.subscribe_to_messages(room.id)

    sent = run(session.messages.send_message(room.id, "waiting for echo"))
    assert session.messages.messages(room.id) == []

    run(quiet_backend.feed.publish(insert_event(quiet_backend.messages.messages[sent.id])))
    assert [m.id for m in session.messages.messages(room.id)] == [sent.id]


def test_send_rejects_invalid_targets(backend):
    me, other, stranger = (make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR),
                           make_user(UserRole.SUPERVISOR))
    room = _direct_room(backend, me, other)
    outsider = backend.session(stranger)

    with pytest.raises(ValidationError):
        run(outsider.messages.send_message(room.id, "let me in"))

    session = backend.session(me)
    with pytest.raises(ValidationError):
        run(session.messages.send_message(room.id, "   "))

    run(session.rooms.archive_room(room.id))
    with pytest.raises(ValidationError):
        run(session.messages.send_message(room.id, "too late"))
    assert backend.messages.messages == {}


def test_send_survives_dispatcher_failure(backend):
    me, other = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR)
    room = _direct_room(backend, me, other)
    backend.dispatcher.fail = True
    session = backend.session(me)

    sent = run(session.messages.send_message(room.id, "", MessageType.IMAGE, "https://files/1.png"))
    assert sent.id in backend.messages.messages


def test_unread_count_and_mark_as_read(quiet_backend):
    me, other = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR)
    room = _direct_room(quiet_backend, me, other)
    for i in range(3):
        quiet_backend.messages.put(room.id, other.id, f"from them {i}")
    quiet_backend.messages.put(room.id, me.id, "from me")
    session = quiet_backend.session(me)

    run(session.messages.fetch_messages(room.id))
    assert session.messages.get_unread_count(room.id) == 3
    assert session.messages.get_total_unread_count() == 3

    assert run(session.messages.mark_as_read(room.id)) == 3
    assert session.messages.get_unread_count(room.id) == 0
    assert all(m.is_read for m in quiet_backend.messages.messages.values() if m.sender_id == other.id)


def test_reload_merges_arrivals_during_query(quiet_backend):
    me, other = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR)
    room = _direct_room(quiet_backend, me, other)
    session = quiet_backend.session(me)
    session.messages.subscribe_to_messages(room.id)
    quiet_backend.messages.put(room.id, other.id, "old")
    store = quiet_backend.messages.messages

    async def arrive_mid_query():
        # Committed after the snapshot was taken, delivered before it returns
        late = quiet_backend.messages.put(room.id, other.id, "late")
        await quiet_backend.feed.publish(insert_event(late))
        pending[late.id] = store.pop(late.id)

    pending = {}
    quiet_backend.messages.list_hook = arrive_mid_query
    messages = run(session.messages.fetch_messages(room.id))
    assert [m.content for m in messages] == ["old", "late"]

    quiet_backend.messages.list_hook = None
    store.update(pending)
    again = run(session.messages.fetch_messages(room.id))
    assert [m.content for m in again] == ["old", "late"]


def test_room_log_drops_duplicate_rows():
    a = ChatMessage(content="a", created_at=datetime(2024, 5, 1, 10, 0, 1))
    b = ChatMessage(content="b", created_at=datetime(2024, 5, 1, 10, 0, 2))
    log = RoomLog([b, a, b, a.mark_read()])
    assert len(log) == 2
    assert [m.content for m in log.messages] == ["a", "b"]
    assert not log.insert(b)


def test_double_subscribe_delivers_once(quiet_backend):
    me, other = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR)
    room = _direct_room(quiet_backend, me, other)
    session = quiet_backend.session(me)

    first = session.messages.subscribe_to_messages(room.id)
    second = session.messages.subscribe_to_messages(room.id)
    assert first is second
    assert quiet_backend.feed.subscription_count == 1

    message = quiet_backend.messages.put(room.id, other.id, "once")
    assert run(quiet_backend.feed.publish(insert_event(message))) == 1
    assert len(session.messages.messages(room.id)) == 1


def test_unsubscribe_after_archive_is_safe(backend):
    me, other = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR)
    room = _direct_room(backend, me, other)
    session = backend.session(me)
    sub = session.messages.subscribe_to_messages(room.id)

    assert run(session.archive_room(room.id))
    session.messages.unsubscribe(room.id)
    sub.unsubscribe()
    session.messages.unsubscribe(uuid4())
    assert backend.feed.subscription_count == 0
    assert session.messages.subscribed_rooms == set()


def test_concurrent_deliveries_of_same_event(quiet_backend):
    me, other = make_user(UserRole.TRAINER), make_user(UserRole.SUPERVISOR)
    room = _direct_room(quiet_backend, me, other)
    session = quiet_backend.session(me)
    message = quiet_backend.messages.put(room.id, other.id, "race")
    event = insert_event(message)

    async def scenario():
        return await asyncio.gather(*(session.messages.handle_change(room.id, event) for _ in range(3)))

    results = run(scenario())
    assert sum(1 for r in results if r is not None) == 1
    assert len(session.messages.messages(room.id)) == 1
