"""Unit tests for the Reconciler."""

import time

from wpp_console.schemas import ImageContent, Message, ProductCardContent, TextContent


def _messages(*raws):
    return [Message.from_wire(raw) for raw in raws]


class TestApplyUpsert:
    """Tests for merging authoritative messages."""

    def test_duplicate_message_stored_once(self, reconciler, store, wire_message):
        """Test feeding the same message twice keeps exactly one copy."""
        raw = wire_message("dup-1", "Halo")

        reconciler.apply_upsert(_messages(raw))
        result = reconciler.apply_upsert(_messages(raw))

        assert [m.message_id for m in store.messages] == ["dup-1"]
        assert result.duplicates == 1
        assert result.inserted == []

    def test_pending_text_replaced_by_authoritative(self, reconciler, store, wire_message, chat_id):
        """Test a pending "Hi there" converges to the authoritative abc123."""
        pending = reconciler.add_pending(chat_id, TextContent(text="Hi there"), agent_name="Alice")
        assert store.has_message(pending.message_id)

        result = reconciler.apply_upsert(_messages(wire_message("abc123", "Hi there", from_me=True)))

        assert [m.message_id for m in store.messages] == ["abc123"]
        assert store.messages[0].text == "Hi there"
        assert not any(m.is_pending for m in store.messages)
        assert result.confirmed == {pending.message_id: "abc123"}

    def test_confirmed_message_keeps_agent_name(self, reconciler, store, wire_message, chat_id):
        """Test provenance from the pending entry fills gaps in the stream copy."""
        reconciler.add_pending(chat_id, TextContent(text="Hi"), agent_name="Alice")

        reconciler.apply_upsert(_messages(wire_message("abc", "Hi", from_me=True)))

        assert store.messages[0].agent_name == "Alice"

    def test_oldest_pending_matched_first(self, reconciler, store, wire_message, chat_id):
        """Test two identical pending texts are confirmed in send order."""
        first = reconciler.add_pending(chat_id, TextContent(text="ok"), timestamp=10)
        second = reconciler.add_pending(chat_id, TextContent(text="ok"), timestamp=11)

        result = reconciler.apply_upsert(_messages(wire_message("WA-1", "ok", from_me=True, timestamp=12)))

        assert result.confirmed == {first.message_id: "WA-1"}
        assert [m.message_id for m in store.messages] == [second.message_id, "WA-1"]

    def test_inbound_message_never_matches_pending(self, reconciler, store, wire_message, chat_id):
        """Test a customer message with the same text leaves the pending entry."""
        pending = reconciler.add_pending(chat_id, TextContent(text="ok"))

        reconciler.apply_upsert(_messages(wire_message("IN-1", "ok", from_me=False)))

        assert store.has_message(pending.message_id)
        assert store.has_message("IN-1")

    def test_image_matches_oldest_pending_image(self, reconciler, store, wire_message, chat_id):
        """Test an authoritative image replaces at most one pending image."""
        first = reconciler.add_pending(chat_id, ImageContent(caption="a"), timestamp=10)
        second = reconciler.add_pending(chat_id, ImageContent(caption="b"), timestamp=11)

        result = reconciler.apply_upsert(
            _messages(wire_message("IMG-1", from_me=True, image_caption="a", timestamp=12))
        )

        assert result.confirmed == {first.message_id: "IMG-1"}
        assert store.has_message(second.message_id)

    def test_product_card_with_image_matches_as_image(self, reconciler, store, wire_message, chat_id):
        pending = reconciler.add_pending(
            chat_id,
            ProductCardContent(product_name="Kopi", text="card", image_url="https://cdn/kopi.jpg"),
        )

        result = reconciler.apply_upsert(_messages(wire_message("P-1", from_me=True, image_caption="card")))

        assert result.confirmed == {pending.message_id: "P-1"}

    def test_product_card_without_image_matches_as_text(self, reconciler, store, wire_message, chat_id):
        pending = reconciler.add_pending(chat_id, ProductCardContent(product_name="Kopi", text="card"))

        result = reconciler.apply_upsert(_messages(wire_message("P-2", "card", from_me=True)))

        assert result.confirmed == {pending.message_id: "P-2"}

    def test_inserted_in_timestamp_order(self, reconciler, store, wire_message):
        """Test late messages are placed by their timestamp."""
        reconciler.apply_upsert(_messages(wire_message("B", timestamp=200), wire_message("C", timestamp=300)))
        reconciler.apply_upsert(_messages(wire_message("A", timestamp=100)))

        assert [m.message_id for m in store.messages] == ["A", "B", "C"]

    def test_other_chat_updates_summary_only(self, reconciler, store, wire_message):
        """Test messages for a closed chat are not retained but update its summary."""
        other = "6289876543210@s.whatsapp.net"

        result = reconciler.apply_upsert(_messages(wire_message("O-1", "Permisi", chat=other, timestamp=500)))

        assert store.messages == []
        chat = store.get_chat(other)
        assert chat is not None
        assert chat.last_message_content == "Permisi"
        assert chat.last_message_timestamp == 500
        assert chat.contact_name == "Budi"
        assert other in result.touched_chats

    def test_older_message_keeps_newer_summary(self, reconciler, store, wire_message, chat_id):
        store.upsert_chat({"chatId": chat_id, "lastMessageContent": "newest", "lastMessageTimestamp": 2000000000})

        reconciler.apply_upsert(_messages(wire_message("OLD", "old", timestamp=100)))

        assert store.get_chat(chat_id).last_message_content == "newest"

    def test_matches_chat_by_phone_number(self, reconciler, store, wire_message):
        """Test a message addressed with another JID domain joins the open chat."""
        reconciler.apply_upsert(_messages(wire_message("LID-1", chat="6281234567890@lid")))

        assert store.has_message("LID-1")

    def test_broadcast_does_not_create_chat(self, reconciler, store, wire_message):
        reconciler.apply_upsert(_messages(wire_message("S-1", chat="status@broadcast")))

        assert store.get_chat("status@broadcast") is None


class TestPendingBinding:
    """Tests for binding pending entries to the id returned by the send call."""

    def test_bound_id_replaces_pending_regardless_of_text(self, reconciler, store, wire_message, chat_id):
        """Test the returned id wins over content matching."""
        pending = reconciler.add_pending(chat_id, TextContent(text="Hi  there "))
        reconciler.bind_pending(chat_id, pending.message_id, "WA-9")

        result = reconciler.apply_upsert(_messages(wire_message("WA-9", "Hi there", from_me=True)))

        assert result.confirmed == {pending.message_id: "WA-9"}
        assert [m.message_id for m in store.messages] == ["WA-9"]

    def test_bound_pending_not_taken_by_other_message(self, reconciler, store, wire_message, chat_id):
        """Test content matching skips pending entries bound to another id."""
        pending = reconciler.add_pending(chat_id, TextContent(text="ok"))
        reconciler.bind_pending(chat_id, pending.message_id, "WA-1")

        reconciler.apply_upsert(_messages(wire_message("WA-OTHER", "ok", from_me=True)))

        assert store.has_message(pending.message_id)

    def test_stream_won_the_race(self, reconciler, store, wire_message, chat_id):
        """Test binding after the authoritative copy arrived drops the pending entry."""
        pending = reconciler.add_pending(chat_id, TextContent(text="Hi"))
        # Provider normalized the text, so content matching misses it
        reconciler.apply_upsert(_messages(wire_message("WA-5", "Hi!", from_me=True)))

        reconciler.bind_pending(chat_id, pending.message_id, "WA-5")

        assert not store.has_message(pending.message_id)
        assert [m.message_id for m in store.messages] == ["WA-5"]

    def test_drop_pending(self, reconciler, store, chat_id):
        """Test a failed send removes its pending entry."""
        pending = reconciler.add_pending(chat_id, TextContent(text="Hi"))

        dropped = reconciler.drop_pending(chat_id, pending.message_id)

        assert dropped.message_id == pending.message_id
        assert store.messages == []

    def test_pending_after_server_clock_keeps_order(self, reconciler, store, wire_message, chat_id):
        """Test a pending send after a message stamped ahead of the local clock stays last."""
        ahead = int(time.time()) + 30
        reconciler.apply_upsert(_messages(wire_message("A", timestamp=ahead)))

        pending = reconciler.add_pending(chat_id, TextContent(text="Hi"))
        reconciler.apply_upsert(_messages(wire_message("B", timestamp=ahead - 10)))

        timestamps = [m.timestamp for m in store.messages]
        assert timestamps == sorted(timestamps)
        assert [m.message_id for m in store.messages] == ["B", "A", pending.message_id]


class TestApplyUpdate:
    """Tests for message_update events."""

    def test_unknown_message_is_noop(self, reconciler, store):
        """Test an update for a message not present leaves the store unchanged."""
        version = store.version

        assert reconciler.apply_update("xyz", "http://cdn/x.jpg") is False
        assert store.messages == []
        assert store.version == version

    def test_patches_media_url(self, reconciler, store, wire_message):
        reconciler.apply_upsert(_messages(wire_message("IMG", image_caption="")))

        assert reconciler.apply_update("IMG", "http://cdn/x.jpg") is True
        assert store.find_message("IMG").media_url == "http://cdn/x.jpg"


class TestApplyHistory:
    """Tests for merging history snapshots."""

    def test_keeps_stream_messages_and_pending(self, reconciler, store, wire_message, chat_id):
        """Test messages that arrived during the fetch survive the snapshot."""
        pending = reconciler.add_pending(chat_id, TextContent(text="draft"), timestamp=400)
        reconciler.apply_upsert(_messages(wire_message("LIVE", timestamp=300)))

        history = _messages(wire_message("H1", timestamp=100), wire_message("H2", timestamp=200))
        reconciler.apply_history(chat_id, history)

        assert [m.message_id for m in store.messages] == ["H1", "H2", "LIVE", pending.message_id]

    def test_deduplicates_by_id(self, reconciler, store, wire_message, chat_id):
        reconciler.apply_upsert(_messages(wire_message("H2", timestamp=200)))

        history = _messages(wire_message("H1", timestamp=100), wire_message("H2", timestamp=200))
        reconciler.apply_history(chat_id, history)

        assert [m.message_id for m in store.messages] == ["H1", "H2"]

    def test_history_confirms_pending(self, reconciler, store, wire_message, chat_id):
        """Test a pending send already present in history is dropped."""
        reconciler.add_pending(chat_id, TextContent(text="Hi"), timestamp=1000)

        reconciler.apply_history(chat_id, _messages(wire_message("WA-1", "Hi", from_me=True, timestamp=1001)))

        assert [m.message_id for m in store.messages] == ["WA-1"]

    def test_old_history_does_not_confirm_pending(self, reconciler, store, wire_message, chat_id):
        """Test an old identical message does not swallow a new send."""
        pending = reconciler.add_pending(chat_id, TextContent(text="ok"), timestamp=100000)

        reconciler.apply_history(chat_id, _messages(wire_message("OLD", "ok", from_me=True, timestamp=100)))

        assert store.has_message(pending.message_id)

    def test_ignored_for_closed_chat(self, reconciler, store, wire_message):
        assert reconciler.apply_history("other@s.whatsapp.net", _messages(wire_message("H1"))) is False
        assert store.messages == []
