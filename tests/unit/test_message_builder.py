from __future__ import annotations

import dataclasses

import pytest
from fcm_dispatch.dispatch.contracts import InvalidMessageError, NotificationMessage, Priority, PushContent
from fcm_dispatch.dispatch.message_builder import MAX_PAYLOAD_BYTES, MessageBuilder, build_message, payload_size_bytes


def test_build_applies_policy_defaults():
  message = build_message(PushContent(body="Your order shipped", title="Order update"))

  assert message.body == "Your order shipped"
  assert message.title == "Order update"
  assert message.priority is Priority.HIGH
  assert message.sound == "default"
  assert dict(message.data) == {}


def test_build_keeps_caller_overrides():
  message = build_message(PushContent(body="hi", sound="chime.caf", priority="normal"))

  assert message.sound == "chime.caf"
  assert message.priority is Priority.NORMAL


def test_build_coerces_data_values_to_strings():
  message = build_message(PushContent(body="hi", data={"order_id": 42, "urgent": True, "url": "/orders/42"}))
  assert dict(message.data) == {"order_id": "42", "urgent": "True", "url": "/orders/42"}


def test_built_message_is_immutable():
  message = build_message(PushContent(body="hi", data={"a": "1"}))

  with pytest.raises(dataclasses.FrozenInstanceError):
    message.body = "changed"
  with pytest.raises(TypeError):
    message.data["a"] = "2"


@pytest.mark.parametrize("body", ["", "   "])
def test_build_rejects_empty_body(body):
  with pytest.raises(InvalidMessageError):
    build_message(PushContent(body=body))


@pytest.mark.parametrize("key", ["from", "notification", "message_type", "google.c.a.e", "gcm.notification.title"])
def test_build_rejects_reserved_data_keys(key):
  with pytest.raises(InvalidMessageError):
    build_message(PushContent(body="hi", data={key: "x"}))


def test_build_rejects_oversized_payload():
  with pytest.raises(InvalidMessageError):
    build_message(PushContent(body="x" * (MAX_PAYLOAD_BYTES + 1)))


def test_build_rejects_unknown_priority():
  with pytest.raises(InvalidMessageError):
    build_message(PushContent(body="hi", priority="urgent"))


def test_build_is_pure():
  content = PushContent(body="hi", title="t", data={"k": "v"})
  assert build_message(content) == build_message(content)


def test_build_accepts_notification_message():
  original = NotificationMessage(body="hi", sound=None, priority=Priority.NORMAL)
  message = MessageBuilder(default_sound=None).build(original)
  assert message.sound is None
  assert message.priority is Priority.NORMAL


def test_payload_size_counts_utf8_bytes():
  ascii_size = payload_size_bytes(NotificationMessage(body="a"))
  assert payload_size_bytes(NotificationMessage(body="é")) == ascii_size + 1
