"""Tests for the poll response decoder."""

import json

import pytest

from anonchat.shared.errors import DecodeError
from anonchat.shared.events import WIRE_KINDS, coerce_field, decode_events, unescape_message
from anonchat.shared.models import EventKind, PayloadShape

from tests.conftest import STATUS_OBJECT


class TestEmptyBodies:
    def test_empty_array(self):
        assert decode_events("[]") == []

    def test_null(self):
        assert decode_events("null") == []

    def test_surrounding_whitespace(self):
        assert decode_events("  []\n") == []


class TestMalformedRoot:
    def test_object_root(self):
        with pytest.raises(DecodeError) as exc:
            decode_events('{"connected": true}')
        assert "malformed root" in exc.value.message
        assert exc.value.body == '{"connected": true}'

    def test_invalid_json(self):
        with pytest.raises(DecodeError, match="malformed root"):
            decode_events("<html>502</html>")

    def test_scalar_root(self):
        with pytest.raises(DecodeError, match="malformed root"):
            decode_events('"win"')


class TestNoPayloadKinds:
    def test_connected(self):
        events = decode_events('[["connected"]]')
        assert len(events) == 1
        assert events[0].kind is EventKind.CONNECTED
        assert events[0].payload == ()
        assert events[0].status is None

    def test_stranger_disconnected_is_peer_disconnected(self):
        [event] = decode_events('[["strangerDisconnected"]]')
        assert event.kind is EventKind.PEER_DISCONNECTED
        assert event.kind.is_terminal

    def test_count_ignores_extra_fields(self):
        [event] = decode_events('[["count", 31337]]')
        assert event.kind is EventKind.ONLINE_COUNT
        assert event.payload == ()

    def test_waiting_then_connected_keeps_order(self):
        events = decode_events('[["waiting"], ["connected"], ["typing"], ["stoppedTyping"]]')
        assert [e.kind for e in events] == [
            EventKind.WAITING,
            EventKind.CONNECTED,
            EventKind.PEER_TYPING,
            EventKind.PEER_STOPPED_TYPING,
        ]


class TestSingleFieldKinds:
    def test_ident_digests(self):
        [event] = decode_events('[["identDigests", "a1,b2,c3"]]')
        assert event.kind is EventKind.IDENTITY_DIGEST
        assert event.payload == ("a1,b2,c3",)

    def test_number_rendered_as_string(self):
        [event] = decode_events('[["serverMessage", 42]]')
        assert event.payload == ("42",)

    def test_too_short_tuple_dropped(self):
        events = decode_events('[["question"], ["connected"]]')
        assert [e.kind for e in events] == [EventKind.CONNECTED]

    def test_spy_typing_carries_label(self):
        [event] = decode_events('[["spyTyping", "Stranger 1"]]')
        assert event.kind is EventKind.COUNTERPART_TYPING
        assert event.text == "Stranger 1"


class TestPairKind:
    def test_spy_message(self):
        [event] = decode_events('[["spyMessage","Alice","hello"]]')
        assert event.kind is EventKind.COUNTERPART_MESSAGE
        assert event.payload == ("Alice", "hello")

    def test_spy_message_missing_text_dropped(self):
        events = decode_events('[["spyMessage","Alice"], ["waiting"]]')
        assert [e.kind for e in events] == [EventKind.WAITING]


class TestVariadicKind:
    def test_common_likes_in_order(self):
        [event] = decode_events('[["commonLikes", "pizza", "music", 3]]')
        assert event.kind is EventKind.SHARED_TOPICS
        assert event.payload == ("pizza", "music", "3")

    def test_common_likes_empty(self):
        [event] = decode_events('[["commonLikes"]]')
        assert event.payload == ()

    def test_common_likes_nested_array(self):
        [event] = decode_events(json.dumps([["commonLikes", ["music", "chess"]]]))
        assert event.kind is EventKind.SHARED_TOPICS
        assert event.payload == ("music", "chess")

    def test_nested_non_strings_ignored(self):
        [event] = decode_events('[["commonLikes", ["music", 7, null], "chess"]]')
        assert event.payload == ("music", "chess")


class TestMessageFanOut:
    def test_two_messages_two_events(self):
        events = decode_events('[["gotMessage", ["hi", "there"]]]')
        assert [e.kind for e in events] == [EventKind.MESSAGE_RECEIVED] * 2
        assert [e.payload for e in events] == [("hi",), ("there",)]

    def test_bare_string_message(self):
        [event] = decode_events('[["gotMessage", "hello"]]')
        assert event.payload == ("hello",)

    def test_fan_out_keeps_position_among_tuples(self):
        events = decode_events('[["connected"], ["gotMessage", ["a", "b"]], ["typing"]]')
        assert [(e.kind, e.text) for e in events] == [
            (EventKind.CONNECTED, ""),
            (EventKind.MESSAGE_RECEIVED, "a"),
            (EventKind.MESSAGE_RECEIVED, "b"),
            (EventKind.PEER_TYPING, ""),
        ]

    def test_escaped_slashes_are_unescaped(self):
        body = json.dumps([["gotMessage", ["see http:\\/\\/example.com\\/x"]]])
        [event] = decode_events(body)
        assert event.text == "see http://example.com/x"

    def test_backslashes_survive_unchanged(self):
        body = json.dumps([["gotMessage", ["C:\\Users\\pc", "typed \\n literally", "ok"]]])
        events = decode_events(body)
        assert [e.text for e in events] == ["C:\\Users\\pc", "typed \\n literally", "ok"]

    def test_bad_escape_dropped_rest_kept(self):
        body = json.dumps([["gotMessage", ["ok", "broken \\q \\/ escape", "also ok"]]])
        events = decode_events(body)
        assert [e.text for e in events] == ["ok", "also ok"]

    def test_non_string_messages_dropped(self):
        events = decode_events('[["gotMessage", [1, "kept", null]]]')
        assert [e.text for e in events] == ["kept"]


class TestStatusSnapshot:
    def test_full_record(self):
        body = json.dumps([["statusInfo", STATUS_OBJECT]])
        [event] = decode_events(body)
        assert event.kind is EventKind.STATUS_SNAPSHOT
        assert event.payload == ()
        assert event.status.count == 5
        assert event.status.servers == ["s1"]

    def test_missing_servers_skipped_when_others_decode(self):
        broken = {k: v for k, v in STATUS_OBJECT.items() if k != "servers"}
        events = decode_events(json.dumps([["statusInfo", broken], ["waiting"]]))
        assert [e.kind for e in events] == [EventKind.WAITING]

    def test_missing_servers_as_only_tuple_is_unknown_shape(self):
        broken = {k: v for k, v in STATUS_OBJECT.items() if k != "servers"}
        with pytest.raises(DecodeError, match="unknown shape"):
            decode_events(json.dumps([["statusInfo", broken]]))

    def test_status_not_an_object_skipped(self):
        events = decode_events('[["statusInfo", "nope"], ["connected"]]')
        assert [e.kind for e in events] == [EventKind.CONNECTED]


class TestLeniency:
    def test_unknown_kind_alone_is_error(self):
        with pytest.raises(DecodeError) as exc:
            decode_events('[["bogusKind","x"]]')
        assert exc.value.message == "unknown shape"
        assert exc.value.body == '[["bogusKind","x"]]'

    def test_unknown_kind_skipped_among_known(self):
        events = decode_events('[["bogusKind","x"], ["connected"]]')
        assert [e.kind for e in events] == [EventKind.CONNECTED]

    def test_non_array_and_empty_entries_skipped(self):
        events = decode_events('["stray", 7, [], [3, "x"], {"a": 1}, ["waiting"]]')
        assert [e.kind for e in events] == [EventKind.WAITING]

    def test_all_entries_malformed_is_error(self):
        with pytest.raises(DecodeError, match="unknown shape"):
            decode_events("[[], [null]]")


class TestWireTable:
    def test_every_kind_has_a_wire_name(self):
        assert set(WIRE_KINDS.values()) == set(EventKind)

    def test_every_kind_has_a_shape(self):
        for kind in EventKind:
            assert isinstance(kind.shape, PayloadShape)


class TestHelpers:
    def test_coerce_integral_float(self):
        assert coerce_field(5.0) == "5"

    def test_coerce_fraction(self):
        assert coerce_field(0.25) == "0.25"

    def test_coerce_bool(self):
        assert coerce_field(True) == "true"

    def test_unescape_plain_text_untouched(self):
        assert unescape_message("plain") == "plain"

    def test_unescape_unicode_escape(self):
        assert unescape_message("caf\\u00e9\\/x") == "café/x"

    def test_unescape_failure(self):
        assert unescape_message("bad \\x \\/") is None

    def test_unescape_lone_backslash_untouched(self):
        assert unescape_message("C:\\Users") == "C:\\Users"
