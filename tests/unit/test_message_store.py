from __future__ import annotations

from chat_sync.services.message_store import MessageStore, normalize
from tests.conftest import make_message


def test_normalize_dedupes_first_wins_and_sorts():
    first = make_message(2, content="first")
    duplicate = make_message(2, content="second")
    result = normalize([make_message(3), first, make_message(1), duplicate])

    assert [m.id for m in result] == ["msg-0001", "msg-0002", "msg-0003"]
    assert result[1].content == "first"


def test_update_notifies_listeners_only_on_change():
    store = MessageStore()
    seen: list[int] = []
    store.add_listener(lambda messages: seen.append(len(messages)))

    store.replace([make_message(1)])
    store.update(lambda prev: prev)
    store.update(lambda prev: [*prev, make_message(2)])

    assert seen == [1, 2]
    assert store.get("msg-0002") is not None
    assert store.ids() == {"msg-0001", "msg-0002"}


def test_remove_listener():
    store = MessageStore()
    seen: list[int] = []
    remove = store.add_listener(lambda messages: seen.append(len(messages)))
    remove()
    remove()

    store.replace([make_message(1)])

    assert seen == []


def test_failing_listener_does_not_block_others():
    store = MessageStore()
    seen: list[int] = []

    def broken(messages):
        raise RuntimeError("boom")

    store.add_listener(broken)
    store.add_listener(lambda messages: seen.append(len(messages)))

    store.replace([make_message(1)])

    assert seen == [1]
    assert len(store) == 1


def test_current_is_a_copy():
    store = MessageStore()
    store.replace([make_message(1)])
    store.current.clear()
    assert len(store) == 1
