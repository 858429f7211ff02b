"""Tests for rooms, message history and unread counters."""
import pydantic
import pytest

from core.errors import NotFoundError, ValidationError
from models.models import MessageKind
from services import room_store as room_store_module
from services.room_store import LEFT_PLACEHOLDER_NAME, Room, RoomStore, derive_room_key


@pytest.fixture
def alice(registry):
    return registry.register("Alice")


@pytest.fixture
def bob(registry):
    return registry.register("Bob")


@pytest.fixture
def direct_room(room_store, alice, bob):
    return room_store.get_or_create({alice.id, bob.id})


@pytest.fixture
def fake_clock(monkeypatch):
    """Replace the message clock with explicit millisecond values."""
    ticks = []

    def _set(*values):
        ticks.extend(values)

    monkeypatch.setattr(room_store_module, "_now_ms", lambda: ticks.pop(0))
    return _set


# =============================================================================
# Room keys / creation
# =============================================================================


def test_room_key_is_order_independent():
    assert derive_room_key(["a", "b"]) == derive_room_key(["b", "a"]) == "a_b"
    assert derive_room_key({"x1", "x0"}) == "x0_x1"


@pytest.mark.parametrize("members", [[], ["a"], ["a", "a"], ["a", ""], ["a", "b", "c"]])
def test_room_key_needs_two_distinct_members(members):
    with pytest.raises(ValidationError):
        derive_room_key(members)


def test_get_or_create_returns_existing_room(room_store, alice, bob, direct_room):
    again = room_store.get_or_create([bob.id, alice.id])

    assert again is direct_room
    assert room_store.room_count == 1
    assert direct_room.messages == []
    assert direct_room.unread == {alice.id: 0, bob.id: 0}


def test_create_group_assigns_key_and_rejects_duplicates(room_store, alice, bob, registry):
    carol = registry.register("Carol")

    room = room_store.create_group([alice.id, bob.id, carol.id, bob.id], name=" Team ")
    assert room.is_group
    assert room.name == "Team"
    assert room.members == (alice.id, bob.id, carol.id)
    assert room.key

    room_store.create_group([alice.id, bob.id], room_key="team-x")
    with pytest.raises(ValidationError):
        room_store.create_group([alice.id, carol.id], room_key="team-x")
    with pytest.raises(ValidationError):
        room_store.create_group([alice.id])


def test_group_room_cannot_take_a_direct_room_key(room_store, alice, bob, registry):
    carol = registry.register("Carol")
    direct_key = derive_room_key({alice.id, bob.id})

    with pytest.raises(ValidationError):
        room_store.create_group([alice.id, bob.id, carol.id], room_key=direct_key)
    with pytest.raises(ValidationError):
        room_store.create_group([alice.id, bob.id], room_key="a_b")
    assert room_store.room_count == 0

    room = room_store.get_or_create({alice.id, bob.id})
    assert room.key == direct_key
    assert not room.is_group
    assert room.members == tuple(sorted([alice.id, bob.id]))


def test_get_or_create_refuses_a_key_held_by_another_room(room_store, alice, bob, registry):
    carol = registry.register("Carol")
    direct_key = derive_room_key({alice.id, bob.id})
    room_store.rooms[direct_key] = Room(key=direct_key, members=(alice.id, bob.id, carol.id), is_group=True)

    with pytest.raises(ValidationError):
        room_store.get_or_create({alice.id, bob.id})


# =============================================================================
# Messages and unread counters
# =============================================================================


def test_history_is_exact_append_order(room_store, alice, bob, direct_room):
    sent = []
    for i in range(10):
        sender = alice if i % 3 else bob
        sent.append(room_store.append_message(direct_room.key, sender.id, f"msg {i}"))

    history = room_store.history(direct_room.key)

    assert [m.id for m in history] == [m.id for m in sent]
    assert [m.text for m in history] == [f"msg {i}" for i in range(10)]
    assert room_store.message_count == 10


def test_unread_counts_messages_from_others(room_store, alice, bob, direct_room):
    for i in range(4):
        room_store.append_message(direct_room.key, alice.id, f"hello {i}")

    assert room_store.unread_for(direct_room.key, bob.id) == 4
    assert room_store.unread_for(direct_room.key, alice.id) == 0


def test_reset_unread_only_touches_that_member(room_store, alice, bob, direct_room):
    room_store.append_message(direct_room.key, alice.id, "one")
    room_store.append_message(direct_room.key, bob.id, "two")
    room_store.append_message(direct_room.key, bob.id, "three")

    assert room_store.reset_unread(direct_room.key, bob.id) is True

    assert room_store.unread_for(direct_room.key, bob.id) == 0
    assert room_store.unread_for(direct_room.key, alice.id) == 2


def test_reset_unread_is_noop_for_missing_room_or_member(room_store, alice, direct_room):
    assert room_store.reset_unread("no-such-room", alice.id) is False
    assert room_store.reset_unread(direct_room.key, "stranger") is False


def test_group_unread_increments_every_other_member(room_store, registry, alice, bob):
    carol = registry.register("Carol")
    room = room_store.create_group([alice.id, bob.id, carol.id])

    room_store.append_message(room.key, alice.id, "hi all")

    assert room.unread == {alice.id: 0, bob.id: 1, carol.id: 1}


@pytest.mark.parametrize("text", ["", "   ", None])
def test_blank_text_message_is_rejected_without_mutation(room_store, alice, bob, direct_room, text):
    with pytest.raises(ValidationError):
        room_store.append_message(direct_room.key, alice.id, text, MessageKind.TEXT)

    assert direct_room.messages == []
    assert room_store.unread_for(direct_room.key, bob.id) == 0


def test_blank_text_is_allowed_for_media_kinds(room_store, alice, direct_room):
    message = room_store.append_message(direct_room.key, alice.id, "", MessageKind.STICKER)

    assert message.kind is MessageKind.STICKER
    assert room_store.history(direct_room.key) == [message]


def test_oversized_text_is_rejected(registry, alice, bob):
    store = RoomStore(registry, max_message_length=5)
    room = store.get_or_create({alice.id, bob.id})

    with pytest.raises(ValidationError):
        store.append_message(room.key, alice.id, "too long")
    assert room.messages == []


def test_zero_message_limit_is_honoured(registry, alice, bob):
    store = RoomStore(registry, max_message_length=0)
    room = store.get_or_create({alice.id, bob.id})

    with pytest.raises(ValidationError):
        store.append_message(room.key, alice.id, "x")
    store.append_message(room.key, alice.id, "", kind=MessageKind.STICKER)
    assert len(room.messages) == 1


def test_append_requires_existing_room_and_membership(room_store, registry, alice, direct_room):
    mallory = registry.register("Mallory")

    with pytest.raises(NotFoundError):
        room_store.append_message("no-such-room", alice.id, "hi")
    with pytest.raises(NotFoundError):
        room_store.append_message(direct_room.key, mallory.id, "hi")
    assert direct_room.messages == []


def test_message_timestamps_never_go_backwards(room_store, alice, bob, direct_room, fake_clock):
    fake_clock(5_000, 4_000, 6_000)

    stamps = [room_store.append_message(direct_room.key, alice.id, str(i)).ts for i in range(3)]

    assert stamps == [5_000, 5_000, 6_000]


def test_messages_are_immutable(room_store, alice, direct_room):
    message = room_store.append_message(direct_room.key, alice.id, "hi")

    with pytest.raises(pydantic.ValidationError):
        message.text = "edited"


# =============================================================================
# Views
# =============================================================================


def test_snapshot_projects_partner_last_message_and_own_unread(room_store, alice, bob, direct_room):
    room_store.append_message(direct_room.key, alice.id, "first")
    last = room_store.append_message(direct_room.key, alice.id, "second")

    view = room_store.snapshot(direct_room.key, bob.id)

    assert view.id == direct_room.key
    assert view.partner.id == alice.id
    assert view.partner.name == "Alice"
    assert view.last_message == last
    assert view.unread == 2
    assert room_store.snapshot(direct_room.key, alice.id).unread == 0


def test_snapshot_shows_offline_partner_after_disconnect(room_store, registry, alice, bob, direct_room):
    registry.unregister(alice.id)

    view = room_store.snapshot(direct_room.key, bob.id)

    assert view.partner.id == alice.id
    assert view.partner.name == "Alice"
    assert view.partner.online is False


def test_snapshot_uses_placeholder_for_unknown_partner(room_store, alice):
    room = room_store.get_or_create({alice.id, "ghost"})

    view = room_store.snapshot(room.key, alice.id)

    assert view.partner.id == "ghost"
    assert view.partner.name == LEFT_PLACEHOLDER_NAME
    assert view.partner.online is False


def test_snapshot_of_unknown_room_is_not_found(room_store, alice):
    with pytest.raises(NotFoundError):
        room_store.snapshot("missing", alice.id)


def test_rooms_for_sorts_newest_first_with_empty_rooms_last(room_store, registry, alice, bob, fake_clock):
    carol = registry.register("Carol")
    dave = registry.register("Dave")
    with_bob = room_store.get_or_create({alice.id, bob.id})
    with_carol = room_store.get_or_create({alice.id, carol.id})
    with_dave = room_store.get_or_create({alice.id, dave.id})
    room_store.get_or_create({bob.id, carol.id})

    fake_clock(1_000, 2_000)
    room_store.append_message(with_bob.key, bob.id, "older")
    room_store.append_message(with_carol.key, carol.id, "newer")

    views = room_store.rooms_for(alice.id)

    assert [v.id for v in views] == [with_carol.key, with_bob.key, with_dave.key]
    assert [v.unread for v in views] == [1, 1, 0]
    assert views[-1].last_message is None
