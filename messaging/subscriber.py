"""MQTT subscriber that feeds inbound telemetry into the ingestion handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt

from services.ingestion import IngestOutcome, TemperatureIngestor
from settings import Settings

logger = logging.getLogger(__name__)

Handler = Callable[[bytes, str], IngestOutcome]


@dataclass(frozen=True)
class TopicNames:
    temperature: str = "telemetry/temperature"
    water_temperature: str = "telemetry/watertemperature"
    store_temperature: str = "commands/storetemperatureupdate"
    store_water_temperature: str = "commands/storewatertemperatureupdate"
    commands: str = "commands"

    @classmethod
    def with_prefix(cls, prefix: str) -> "TopicNames":
        if not prefix:
            return cls()
        base = prefix.rstrip("/")
        defaults = cls()
        return cls(
            temperature=f"{base}/{defaults.temperature}",
            water_temperature=f"{base}/{defaults.water_temperature}",
            store_temperature=f"{base}/{defaults.store_temperature}",
            store_water_temperature=f"{base}/{defaults.store_water_temperature}",
            commands=f"{base}/{defaults.commands}",
        )


class TelemetrySubscriber:
    """Routes MQTT messages to ``TemperatureIngestor`` handlers by topic.

    Callbacks run on the paho network thread; handlers are safe to run
    concurrently because the store enforces uniqueness itself.
    """

    def __init__(
        self,
        ingestor: TemperatureIngestor,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        topics: Optional[TopicNames] = None,
        client_id: str = "api-temperature",
        qos: int = 1,
    ) -> None:
        self.ingestor = ingestor
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topics = topics or TopicNames()
        self.qos = qos
        self.handlers: Dict[str, Handler] = {
            self.topics.temperature: ingestor.handle_temperature,
            self.topics.water_temperature: ingestor.handle_water_temperature,
            self.topics.store_temperature: ingestor.handle_store_temperature_command,
            self.topics.store_water_temperature: ingestor.handle_store_water_temperature_command,
        }

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
        if username and password:
            self.client.username_pw_set(username, password)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message
        self._connected = False

    @classmethod
    def from_settings(cls, ingestor: TemperatureIngestor, settings: Settings) -> "TelemetrySubscriber":
        return cls(
            ingestor,
            broker_host=settings.mqtt_host,
            broker_port=settings.mqtt_port,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            topics=TopicNames.with_prefix(settings.mqtt_topic_prefix),
        )

    def start(self) -> bool:
        """Connect to the broker and start the background network loop."""
        logger.info("Connecting to MQTT broker %s:%d", self.broker_host, self.broker_port)
        try:
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
        except OSError as exc:
            logger.error(
                "MQTT connection failed",
                extra={"reason": f"{exc.__class__.__name__}: {exc}"},
            )
            return False
        self.client.loop_start()
        return True

    def stop(self) -> None:
        self.client.loop_stop()
        self.client.disconnect()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def dispatch(
        self, topic: str, payload: bytes, content_type: Optional[str] = None
    ) -> Optional[IngestOutcome]:
        if topic == self.topics.commands:
            return self.ingestor.handle_command(content_type or "", payload, topic)
        handler = self.handlers.get(topic)
        if handler is None:
            logger.warning("Ignored message on unknown topic", extra={"topic": topic})
            return None
        return handler(payload, topic)

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        if reason_code.is_failure:
            self._connected = False
            logger.error("MQTT broker refused connection", extra={"reason": str(reason_code)})
            return
        self._connected = True
        topics = [*self.handlers, self.topics.commands]
        client.subscribe([(topic, self.qos) for topic in topics])
        logger.info("Subscribed to %d topics", len(topics))

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        self._connected = False
        logger.warning("Disconnected from MQTT broker", extra={"reason": str(reason_code)})

    def _on_message(self, client: mqtt.Client, userdata: Any, message: mqtt.MQTTMessage) -> None:
        # Only MQTT v5 messages carry a content type.
        properties = getattr(message, "properties", None)
        content_type = getattr(properties, "ContentType", None) if properties else None
        self.dispatch(message.topic, message.payload, content_type)
