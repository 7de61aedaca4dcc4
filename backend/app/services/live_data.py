from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, AsyncIterator, Callable, Sequence

import paho.mqtt.client as mqtt

from app.core.config import Settings

LiveSample = dict[str, Any]

CHANNEL_NUMBER_OF_TOWERS = "battery0/NumberOfTowers"
CHANNEL_NUMBER_OF_MODULES_PER_TOWER = "battery0/NumberOfModulesPerTower"
CHANNEL_BATTERY_INVERTER_SERIAL_NUMBER = "batteryInverter0/SerialNumber"
CHANNEL_MAX_CELL_VOLTAGE = "battery0/MaxCellVoltage"
CHANNEL_MIN_CELL_VOLTAGE = "battery0/MinCellVoltage"
CHANNEL_MAX_CELL_TEMPERATURE = "battery0/MaxCellTemperature"
CHANNEL_MIN_CELL_TEMPERATURE = "battery0/MinCellTemperature"


class LiveDataFeed(ABC):
    @abstractmethod
    def subscribe(self, edge_id: str, channels: Sequence[str]) -> Any:
        """Return an async context manager yielding an ``asyncio.Queue`` of samples.

        Every queued sample holds the latest value of each channel seen so far.
        """


async def wait_for_sample(
    feed: LiveDataFeed,
    *,
    edge_id: str,
    channels: Sequence[str],
    accept: Callable[[LiveSample], bool],
    timeout_seconds: float,
) -> LiveSample | None:
    async with feed.subscribe(edge_id, channels) as samples:
        try:
            return await asyncio.wait_for(_first_accepted(samples, accept), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            return None


async def _first_accepted(samples: asyncio.Queue, accept: Callable[[LiveSample], bool]) -> LiveSample:
    while True:
        sample = await samples.get()
        if accept(sample):
            return sample


def parse_channel_payload(raw_payload: str) -> Any:
    stripped = raw_payload.strip()
    if stripped == "":
        return None
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        return stripped


@dataclass
class _Listener:
    loop: asyncio.AbstractEventLoop
    channel_by_topic: dict[str, str]
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    snapshot: LiveSample = field(default_factory=dict)

    def deliver(self, topic: str, value: Any) -> None:
        channel = self.channel_by_topic.get(topic)
        if channel is None:
            return
        self.loop.call_soon_threadsafe(self._push, channel, value)

    def _push(self, channel: str, value: Any) -> None:
        self.snapshot[channel] = value
        self.queue.put_nowait(dict(self.snapshot))


class MqttLiveDataFeed(LiveDataFeed):
    def __init__(self, *, settings: Settings) -> None:
        self._settings = settings
        self._logger = logging.getLogger("app.live_data")
        self._lock = Lock()
        self._listeners: list[_Listener] = []
        self._topic_refcounts: dict[str, int] = {}
        self._latest_by_topic: dict[str, Any] = {}
        self._connected = False

        self._client = mqtt.Client(client_id=settings.mqtt_client_id, clean_session=True)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.reconnect_delay_set(min_delay=1, max_delay=30)

    def start(self) -> None:
        self._logger.info(
            "starting live data feed broker=%s:%s",
            self._settings.mqtt_broker_host,
            self._settings.mqtt_broker_port,
        )
        self._client.connect_async(
            host=self._settings.mqtt_broker_host,
            port=self._settings.mqtt_broker_port,
            keepalive=60,
        )
        self._client.loop_start()

    def stop(self) -> None:
        self._logger.info("stopping live data feed")
        self._client.loop_stop()
        try:
            self._client.disconnect()
        except Exception:
            self._logger.exception("live data feed disconnect failed")

    def topic_for(self, edge_id: str, channel: str) -> str:
        component, _, channel_id = channel.partition("/")
        return self._settings.mqtt_topic_template.format(
            edge_id=edge_id,
            component=component,
            channel=channel_id,
        )

    @asynccontextmanager
    async def subscribe(self, edge_id: str, channels: Sequence[str]) -> AsyncIterator[asyncio.Queue]:
        listener = _Listener(
            loop=asyncio.get_running_loop(),
            channel_by_topic={self.topic_for(edge_id, channel): channel for channel in channels},
        )
        self._attach(listener)
        try:
            yield listener.queue
        finally:
            self._detach(listener)

    def get_status(self) -> dict[str, Any]:
        with self._lock:
            return {
                "connected": self._connected,
                "broker_host": self._settings.mqtt_broker_host,
                "broker_port": self._settings.mqtt_broker_port,
                "active_subscriptions": len(self._listeners),
                "subscribed_topics": sorted(self._topic_refcounts),
            }

    def _attach(self, listener: _Listener) -> None:
        new_topics: list[str] = []
        cached: list[tuple[str, Any]] = []
        with self._lock:
            self._listeners.append(listener)
            for topic in listener.channel_by_topic:
                count = self._topic_refcounts.get(topic, 0)
                if count == 0:
                    new_topics.append(topic)
                self._topic_refcounts[topic] = count + 1
                if topic in self._latest_by_topic:
                    cached.append((topic, self._latest_by_topic[topic]))
            connected = self._connected
        for topic, value in cached:
            listener.deliver(topic, value)
        if not connected:
            return
        for topic in new_topics:
            result, _mid = self._client.subscribe(topic, qos=self._settings.mqtt_qos)
            if result != mqtt.MQTT_ERR_SUCCESS:
                self._logger.error("mqtt subscribe failed topic=%s rc=%s", topic, result)
            else:
                self._logger.debug("mqtt subscribed topic=%s", topic)

    def _detach(self, listener: _Listener) -> None:
        released: list[str] = []
        with self._lock:
            self._listeners.remove(listener)
            for topic in listener.channel_by_topic:
                count = self._topic_refcounts.get(topic, 0) - 1
                if count <= 0:
                    self._topic_refcounts.pop(topic, None)
                    self._latest_by_topic.pop(topic, None)
                    released.append(topic)
                else:
                    self._topic_refcounts[topic] = count
            connected = self._connected
        if not connected:
            return
        for topic in released:
            self._client.unsubscribe(topic)
            self._logger.debug("mqtt unsubscribed topic=%s", topic)

    def _on_connect(self, client: mqtt.Client, _userdata: object, _flags: dict[str, int], rc: int) -> None:
        if rc != 0:
            self._logger.error("mqtt connect failed rc=%s", rc)
            return
        with self._lock:
            self._connected = True
            topics = sorted(self._topic_refcounts)
        self._logger.info("mqtt connected active_topics=%s", len(topics))
        for topic in topics:
            result, _mid = client.subscribe(topic, qos=self._settings.mqtt_qos)
            if result != mqtt.MQTT_ERR_SUCCESS:
                self._logger.error("mqtt subscribe failed topic=%s rc=%s", topic, result)

    def _on_disconnect(self, _client: mqtt.Client, _userdata: object, rc: int) -> None:
        with self._lock:
            self._connected = False
        self._logger.warning("mqtt disconnected rc=%s", rc)

    def _on_message(self, _client: mqtt.Client, _userdata: object, message: mqtt.MQTTMessage) -> None:
        value = parse_channel_payload(message.payload.decode("utf-8", errors="replace"))
        with self._lock:
            if message.topic in self._topic_refcounts:
                self._latest_by_topic[message.topic] = value
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener.deliver(message.topic, value)
            except RuntimeError:
                # loop already closed for an abandoned request
                self._logger.debug("dropped live sample topic=%s", message.topic)
