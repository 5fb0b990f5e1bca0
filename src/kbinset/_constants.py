"""Shared defaults for kbinset."""

from __future__ import annotations

DEFAULT_SHOW_TOPIC = "kbinset/keyboard/will-show"
DEFAULT_HIDE_TOPIC = "kbinset/keyboard/will-hide"

#: Key holding the keyboard height in a show payload.
DEFAULT_HEIGHT_KEY = "height"

DEFAULT_BROKER_HOST = "localhost"
DEFAULT_BROKER_PORT = 1883
DEFAULT_KEEPALIVE = 60
