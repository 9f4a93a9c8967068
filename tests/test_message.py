import uuid
from datetime import timezone

from minikernel.message import DeliveryStatus, Message, MessageResult


def test_new_direct_message_fields():
    msg = Message.new("sender", "receiver", b"payload")
    assert msg.from_plugin == "sender"
    assert msg.to == "receiver"
    assert msg.payload == b"payload"
    assert msg.topic is None
    assert msg.msg_type is None
    assert not msg.is_topic_message()


def test_new_message_has_uuid4_identifier():
    msg = Message.new("a", "b", b"")
    assert uuid.UUID(msg.id).version == 4


def test_identifiers_are_unique():
    ids = {Message.new("a", "b", b"x").id for _ in range(50)}
    assert len(ids) == 50


def test_timestamp_is_utc():
    msg = Message.new("a", "b", b"")
    assert msg.timestamp.tzinfo == timezone.utc


def test_topic_message_has_empty_recipient():
    msg = Message.new_topic("publisher", "news", b"data")
    assert msg.to == ""
    assert msg.topic == "news"
    assert msg.is_topic_message()


def test_with_type_keeps_other_fields():
    msg = Message.new("a", "b", b"x")
    typed = msg.with_type("event")
    assert typed.msg_type == "event"
    assert typed.id == msg.id
    assert typed.payload == msg.payload
    assert msg.msg_type is None


def test_with_topic_turns_message_into_topic_message():
    msg = Message.new("a", "b", b"x").with_topic("alerts")
    assert msg.is_topic_message()
    assert msg.topic == "alerts"
    assert msg.to == "b"


def test_payload_accepts_bytearray():
    msg = Message.new("a", "b", bytearray(b"abc"))
    assert msg.payload == b"abc"


def test_message_results():
    assert MessageResult.success().status is DeliveryStatus.SUCCESS
    assert MessageResult.success().detail is None
    missing = MessageResult.plugin_not_found("ghost")
    assert missing.status is DeliveryStatus.PLUGIN_NOT_FOUND
    assert missing.detail == "ghost"
    failed = MessageResult.failed("closed")
    assert failed.status is DeliveryStatus.FAILED
    assert failed.detail == "closed"