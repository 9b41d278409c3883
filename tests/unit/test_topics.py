from __future__ import annotations

import pytest
from fcm_dispatch.dispatch.contracts import InvalidTargetError, TargetKind, Topic
from fcm_dispatch.dispatch.topics import slugify_topic


def test_slugify_label_is_deterministic():
  assert slugify_topic("Firebase Push Notifications") == "firebase-push-notifications"
  assert slugify_topic("Firebase Push Notifications") == slugify_topic("Firebase Push Notifications")


def test_slugify_collapses_whitespace_and_drops_unsupported_characters():
  assert slugify_topic("  Breaking   News! (EU) ") == "breaking-news-eu"
  assert slugify_topic("Release 2.0 - Beta") == "release-2.0-beta"


def test_topic_from_label_uses_slug():
  topic = Topic.from_label("Firebase Push Notifications")
  assert topic.name == "firebase-push-notifications"
  assert topic.kind is TargetKind.TOPIC


def test_topic_validate_rejects_empty_name():
  with pytest.raises(InvalidTargetError):
    Topic(name="").validate()


def test_topic_validate_rejects_label_that_slugifies_to_nothing():
  with pytest.raises(InvalidTargetError):
    Topic.from_label("!!!").validate()


def test_topic_validate_rejects_unsupported_characters():
  with pytest.raises(InvalidTargetError):
    Topic(name="news/world").validate()
