"""
Unit tests for the message synchronization store.
"""

from conftest import make_message, make_room

from room_sync.core.store import MessageStore


class TestAppendMessage:
    """Tests for appending inbound messages."""

    def test_appends_in_arrival_order(self):
        store = MessageStore()
        messages = [make_message(i, room_id=1) for i in (3, 1, 2)]

        for message in messages:
            store.append_message(message)

        assert store.get_history(1) == tuple(messages)

    def test_creates_history_for_unknown_room(self):
        store = MessageStore()

        store.append_message(make_message(1, room_id=9))

        assert store.has_history(9)
        assert [m.id for m in store.get_history(9)] == [1]

    def test_updates_last_message_of_listed_room(self):
        """Cached [m1, m2] plus an inbound m3 for the same room."""
        store = MessageStore([make_room(1), make_room(2)])
        m1, m2, m3 = make_message(1), make_message(2), make_message(3)
        store.load_history(1, [m1, m2])

        store.append_message(m3)

        assert store.get_history(1) == (m1, m2, m3)
        assert store.get_room(1).last_message == m3
        assert store.get_room(2).last_message is None

    def test_unlisted_room_gets_history_but_no_summary(self):
        store = MessageStore([make_room(1)])

        store.append_message(make_message(1, room_id=5))

        assert store.get_room(5) is None
        assert len(store.get_history(5)) == 1

    def test_duplicates_are_kept(self):
        store = MessageStore()
        message = make_message(1)

        store.append_message(message)
        store.append_message(message)

        assert len(store.get_history(1)) == 2

    def test_histories_are_independent(self):
        store = MessageStore()

        store.append_message(make_message(1, room_id=1))
        store.append_message(make_message(2, room_id=2))
        store.append_message(make_message(3, room_id=1))

        assert [m.id for m in store.get_history(1)] == [1, 3]
        assert [m.id for m in store.get_history(2)] == [2]


class TestRoomList:
    """Tests for room summary list reconciliation."""

    def test_replace_keeps_known_last_message(self):
        store = MessageStore([make_room(1)])
        store.append_message(make_message(1, room_id=1))

        store.replace_room_list([make_room(1, current_members=3), make_room(2)])

        assert store.get_room(1).current_members == 3
        assert store.get_room(1).last_message.id == 1
        assert [r.id for r in store.rooms] == [1, 2]

    def test_replace_prefers_incoming_last_message(self):
        store = MessageStore([make_room(1)])
        store.append_message(make_message(1, room_id=1))
        incoming = make_room(1, last_message=make_message(7, room_id=1))

        store.replace_room_list([incoming])

        assert store.get_room(1).last_message.id == 7

    def test_replace_drops_missing_rooms(self):
        store = MessageStore([make_room(1), make_room(2)])

        store.replace_room_list([make_room(2)])

        assert store.get_room(1) is None

    def test_add_room_prepends(self):
        store = MessageStore([make_room(1), make_room(2)])

        store.add_room(make_room(3))

        assert [r.id for r in store.rooms] == [3, 1, 2]

    def test_remove_room_discards_history_and_active_pointer(self):
        store = MessageStore([make_room(1), make_room(2)])
        store.append_message(make_message(1, room_id=1))
        store.active_room_id = 1

        store.remove_room(1)

        assert store.get_room(1) is None
        assert store.get_history(1) == ()
        assert not store.has_history(1)
        assert store.active_room_id is None

    def test_remove_other_room_keeps_active_pointer(self):
        store = MessageStore([make_room(1), make_room(2)])
        store.active_room_id = 1

        store.remove_room(2)

        assert store.active_room_id == 1


class TestHistory:
    """Tests for history reads and reloads."""

    def test_unknown_room_is_empty(self):
        store = MessageStore()

        assert store.get_history(42) == ()
        assert store.get_history(None) == ()
        assert not store.has_history(42)

    def test_history_view_is_a_copy(self):
        store = MessageStore()
        store.append_message(make_message(1))

        view = store.get_history(1)
        store.append_message(make_message(2))

        assert len(view) == 1

    def test_load_history_replaces_wholesale(self):
        store = MessageStore([make_room(1)])
        store.append_message(make_message(5))

        store.load_history(1, [make_message(1), make_message(2)])

        assert [m.id for m in store.get_history(1)] == [1, 2]
        assert store.get_room(1).last_message.id == 5

    def test_load_history_sets_missing_preview(self):
        store = MessageStore([make_room(1)])

        store.load_history(1, [make_message(1), make_message(2)])

        assert store.get_room(1).last_message.id == 2

    def test_load_empty_history_marks_room_as_cached(self):
        store = MessageStore()

        store.load_history(3, [])

        assert store.has_history(3)
        assert store.get_history(3) == ()
