"""Convention-based topic naming."""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^a-z0-9\-_.~%]")
_HYPHEN_RUN_RE = re.compile(r"-{2,}")


def slugify_topic(label: str) -> str:
  """Derive a topic name from a human-readable label.

  Lowercases, turns whitespace runs into single hyphens and drops characters
  outside the FCM topic alphabet, so callers and the gateway agree on the name
  without shared storage.
  """
  slug = _WHITESPACE_RE.sub("-", label.strip().lower())
  slug = _DISALLOWED_RE.sub("", slug)
  return _HYPHEN_RUN_RE.sub("-", slug).strip("-")
