"""MQTT-backed notification source.

Keyboard show/hide notifications arrive on two MQTT topics. paho-mqtt runs
its network loop on a background thread; decoded events are handed to the
asyncio loop, which acts as the single coordination thread for delivery.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, cast

import paho.mqtt.client as mqtt

from kbinset.config import InsetConfig
from kbinset.exceptions import NotificationSourceError, SourceClosedError
from kbinset.source import NotificationCallback, SubscriberRegistry, SubscriptionHandle
from kbinset.state.events import ObstructionHidden, ObstructionKind, ObstructionShown


def decode_obstruction_payload(
    kind: ObstructionKind,
    payload: bytes,
    *,
    height_key: str = "height",
) -> ObstructionShown | ObstructionHidden:
    """Decode a raw MQTT payload for *kind* into an obstruction event.

    Show payloads are either a JSON object carrying *height_key* or a bare
    JSON number. Hide payloads are ignored beyond their topic.

    Raises
    ------
    ValueError
        If a show payload is not JSON or carries no height.
    """
    if kind == ObstructionKind.HIDDEN:
        return ObstructionHidden()

    text = payload.decode("utf-8", errors="replace").strip()
    if not text:
        raise ValueError("Show payload is empty")
    parsed = json.loads(text)
    if isinstance(parsed, dict):
        if height_key not in parsed:
            raise ValueError(f"Show payload missing {height_key!r}")
        return ObstructionShown(height=parsed[height_key])
    if isinstance(parsed, (int, float)) and not isinstance(parsed, bool):
        return ObstructionShown(height=parsed)
    raise ValueError(f"Unsupported show payload type: {type(parsed).__name__}")


class MqttNotificationSource:
    """Threaded paho-mqtt source that delivers events on an asyncio loop.

    Subscriber lookup happens on the loop thread at delivery time, so an
    event queued before :meth:`unsubscribe` never reaches the released
    callback.
    """

    def __init__(
        self,
        config: InsetConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._registry = SubscriberRegistry(name="mqtt source")
        self._topics: dict[str, ObstructionKind] = {
            config.show_topic: ObstructionKind.SHOWN,
            config.hide_topic: ObstructionKind.HIDDEN,
        }
        self._client: mqtt.Client | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is active."""
        return self._running

    @property
    def is_closed(self) -> bool:
        return self._registry.is_closed

    # ------------------------------------------------------------------
    # NotificationSource
    # ------------------------------------------------------------------

    def subscribe(self, kind: ObstructionKind, callback: NotificationCallback) -> SubscriptionHandle:
        return self._registry.subscribe(kind, callback)

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self._registry.unsubscribe(handle)

    def subscriber_count(self, kind: ObstructionKind | None = None) -> int:
        return self._registry.subscriber_count(kind)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, topic: str, payload: bytes) -> None:
        """Decode one inbound message and schedule its delivery.

        Called from the paho network thread.
        """
        kind = self._topics.get(topic)
        if kind is None:
            self._logger.debug("MQTT message on unexpected topic=%s", topic)
            return
        try:
            event = decode_obstruction_payload(kind, payload, height_key=self._config.height_key)
        except Exception:
            self._logger.debug("MQTT payload parse failure topic=%s", topic, exc_info=True)
            return
        self._logger.debug("MQTT obstruction event topic=%s kind=%s", topic, kind)
        self._loop.call_soon_threadsafe(self._deliver, event)

    def _deliver(self, event: ObstructionShown | ObstructionHidden) -> None:
        if self._registry.is_closed:
            return
        self._registry.dispatch(event)

    # ------------------------------------------------------------------
    # Outbound (simulators, test rigs)
    # ------------------------------------------------------------------

    def publish_shown(self, height: float) -> None:
        payload = json.dumps({self._config.height_key: height})
        self._publish(self._config.show_topic, payload)

    def publish_hidden(self) -> None:
        self._publish(self._config.hide_topic, "{}")

    def _publish(self, topic: str, payload: str) -> None:
        client = self._client
        if client is None or not self._running:
            raise NotificationSourceError("MQTT source is not running")
        client.publish(topic, payload, qos=1)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Connect to the broker and subscribe to both obstruction topics."""
        if self._registry.is_closed:
            raise SourceClosedError("mqtt source is closed")
        self.stop()
        config = self._config
        self._logger.debug(
            "MQTT source start requested host=%s port=%s show=%s hide=%s",
            config.broker_host,
            config.broker_port,
            config.show_topic,
            config.hide_topic,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if config.username:
            client.username_pw_set(config.username, config.password)
        if config.tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected reason=%s", reason_code)
            c.subscribe([(topic, 1) for topic in self._topics])

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self.handle_message(msg.topic, msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            client.connect(config.broker_host, config.broker_port, keepalive=config.keepalive)
        except OSError as exc:
            raise NotificationSourceError(
                f"Cannot reach MQTT broker {config.broker_host}:{config.broker_port}: {exc}"
            ) from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Disconnect the current client, if any. The source can be restarted."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def close(self) -> None:
        """Stop the network loop and drop every subscription for good."""
        self.stop()
        self._registry.close()
