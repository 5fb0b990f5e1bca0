"""Configuration for kbinset notification bridges."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from kbinset._constants import (
    DEFAULT_BROKER_HOST,
    DEFAULT_BROKER_PORT,
    DEFAULT_HEIGHT_KEY,
    DEFAULT_HIDE_TOPIC,
    DEFAULT_KEEPALIVE,
    DEFAULT_SHOW_TOPIC,
)
from kbinset.exceptions import InsetConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError as exc:
        raise InsetConfigError(f"{name} must be an integer, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class InsetConfig:
    """Notification bridge configuration.

    Parameters
    ----------
    show_topic : str
        Topic carrying keyboard-will-show notifications.
    hide_topic : str
        Topic carrying keyboard-will-hide notifications.
    height_key : str
        Key holding the keyboard height inside a show payload.
    broker_host : str
        MQTT broker host name.
    broker_port : int
        MQTT broker port.
    keepalive : int
        MQTT keepalive in seconds.
    tls : bool
        Enable TLS on the broker connection.
    username : str or None
        Broker username, if the broker requires authentication.
    password : str or None
        Broker password.
    client_id : str
        MQTT client id. Empty lets the broker assign one.
    log_events : bool
        Emit a DEBUG log line for every applied obstruction event.
    """

    show_topic: str = DEFAULT_SHOW_TOPIC
    hide_topic: str = DEFAULT_HIDE_TOPIC
    height_key: str = DEFAULT_HEIGHT_KEY
    broker_host: str = DEFAULT_BROKER_HOST
    broker_port: int = DEFAULT_BROKER_PORT
    keepalive: int = DEFAULT_KEEPALIVE
    tls: bool = False
    username: str | None = None
    password: str | None = None
    client_id: str = ""
    log_events: bool = False

    def __post_init__(self) -> None:
        if not self.show_topic.strip() or not self.hide_topic.strip():
            raise InsetConfigError("show_topic and hide_topic must be non-empty")
        if self.show_topic == self.hide_topic:
            raise InsetConfigError("show_topic and hide_topic must differ")
        if not 0 < self.broker_port < 65536:
            raise InsetConfigError(f"broker_port out of range: {self.broker_port}")
        if self.keepalive <= 0:
            raise InsetConfigError(f"keepalive must be positive: {self.keepalive}")

    @classmethod
    def from_env(cls, **overrides: Any) -> InsetConfig:
        """Create configuration from environment variables.

        Reads optional ``KBINSET_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        InsetConfig
            Populated configuration.

        Raises
        ------
        InsetConfigError
            If a numeric variable cannot be parsed or the result is invalid.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "KBINSET_SHOW_TOPIC": "show_topic",
            "KBINSET_HIDE_TOPIC": "hide_topic",
            "KBINSET_HEIGHT_KEY": "height_key",
            "KBINSET_BROKER_HOST": "broker_host",
            "KBINSET_USERNAME": "username",
            "KBINSET_PASSWORD": "password",
            "KBINSET_CLIENT_ID": "client_id",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        port_env = env.get("KBINSET_BROKER_PORT")
        if port_env is not None and "broker_port" not in overrides:
            config_kwargs["broker_port"] = _env_int("KBINSET_BROKER_PORT", port_env)

        keepalive_env = env.get("KBINSET_KEEPALIVE")
        if keepalive_env is not None and "keepalive" not in overrides:
            config_kwargs["keepalive"] = _env_int("KBINSET_KEEPALIVE", keepalive_env)

        if "tls" not in overrides:
            config_kwargs["tls"] = _env_bool(env.get("KBINSET_TLS"), False)

        if "log_events" not in overrides:
            config_kwargs["log_events"] = _env_bool(env.get("KBINSET_LOG_EVENTS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
