"""MQTT publisher for decoded events.

Publishes each event as JSON to
``<topic>/<profile>/<identity key>[/<index>]/<event kind>``. The aiomqtt
client lives on a private uvloop event loop running in a daemon thread so
the synchronous discovery loop can hand events over without becoming
async itself.

After ``max_retry_attempts`` consecutive publish failures the publisher
enters backoff mode: the next ``BACKOFF_SKIP_MESSAGES`` events are dropped
and then a reconnect is attempted.
"""

from __future__ import annotations

import asyncio
import json
import re
import threading
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from urllib.parse import parse_qs, unquote

import aiomqtt
import uvloop
from pydantic import BaseModel, Field, ValidationError

from antz_discovery.const import YES_ANSWER
from antz_discovery.events import DecodedEvent
from antz_discovery.exceptions import ConfigError
from antz_discovery.logging_abstraction import get_logger
from antz_discovery.metrics import registry as metrics

logger = get_logger(__name__)

BACKOFF_SKIP_MESSAGES = 100
CONNECT_TIMEOUT_SECONDS = 10.0
PUBLISH_TIMEOUT_SECONDS = 5.0

_CONNECTION_STRING_RE = re.compile(
    r"^(mqtts?)://(?:([^:@]+)(?::([^@]+))?@)?([^:/?#]+)(?::(\d+))?(?:/([^?#]*))?(?:\?([^#]*))?$",
)


class MqttConfig(BaseModel):
    """Broker connection settings."""

    host: str
    port: int = Field(default=1883, ge=1, le=65535)
    tls: bool = False
    username: str | None = None
    password: str | None = None
    topic: str = "ant"
    client_id: str = "ant_discovery"
    keepalive: int = Field(default=30, ge=0)
    qos: int = Field(default=1, ge=0, le=2)
    retain: bool = False
    max_retry_attempts: int = Field(default=100, ge=1)
    reconnect_delay_ms: int = Field(default=5000, ge=0)

    @classmethod
    def from_connection_string(cls, uri: str) -> MqttConfig:
        """Parse ``mqtt[s]://[user[:pass]@]host[:port][/topic][?qos=&retain=&keepalive=&client_id=]``.

        Raises:
            ConfigError: If the string is not a valid MQTT URL

        """
        match = _CONNECTION_STRING_RE.match(uri.strip())
        if match is None:
            msg = f"Invalid MQTT connection string: {uri!r}"
            raise ConfigError(msg)

        scheme, username, password, host, port, topic, query = match.groups()
        tls = scheme == "mqtts"
        values: dict[str, object] = {
            "host": host,
            "tls": tls,
            "port": int(port) if port else (8883 if tls else 1883),
        }
        if username:
            values["username"] = unquote(username)
        if password:
            values["password"] = unquote(password)
        if topic and topic.strip("/"):
            values["topic"] = topic.strip("/")

        params = {k: v[-1] for k, v in parse_qs(query or "").items()}
        for key in ("qos", "keepalive", "max_retry_attempts", "reconnect_delay_ms"):
            if key in params:
                values[key] = params[key]
        if "retain" in params:
            values["retain"] = params["retain"].casefold() in YES_ANSWER
        if "client_id" in params:
            values["client_id"] = params["client_id"]

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            msg = f"Invalid MQTT connection string {uri!r}: {e}"
            raise ConfigError(msg) from e

    def describe(self) -> str:
        scheme = "mqtts" if self.tls else "mqtt"
        user = f"{self.username}@" if self.username else ""
        return f"{scheme}://{user}{self.host}:{self.port}/{self.topic}"


def event_topic(base: str, event: DecodedEvent) -> str:
    parts = [base, event.profile.value, event.identity.key]
    if event.index is not None:
        parts.append(str(event.index))
    parts.append(event.kind.value)
    return "/".join(parts)


class MQTTPublisher:
    """Publish decoded events to an MQTT broker with failure backoff."""

    lp: str = "mqtt:"

    def __init__(self, config: MqttConfig, clock=time.monotonic) -> None:
        self.config = config
        self.client: aiomqtt.Client | None = None
        self.failed_attempts = 0
        self.messages_skipped = 0
        self._clock = clock
        self._last_reconnect: float | None = None
        self._connected = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def in_backoff(self) -> bool:
        return self.failed_attempts >= self.config.max_retry_attempts

    def _new_client(self) -> aiomqtt.Client:
        return aiomqtt.Client(
            hostname=self.config.host,
            port=self.config.port,
            username=self.config.username,
            password=self.config.password,
            identifier=self.config.client_id,
            keepalive=self.config.keepalive,
            tls_params=aiomqtt.TLSParameters() if self.config.tls else None,
        )

    def _run(self, coro, timeout: float):
        if self._loop is None:
            coro.close()
            msg = "MQTT publisher loop is not running, call start() first"
            raise RuntimeError(msg)
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout)
        except FutureTimeoutError:
            _ = future.cancel()
            raise

    def start(self) -> bool:
        """Start the private event loop and connect to the broker."""
        lp = f"{self.lp}start:"
        if self._loop is None:
            self._loop = uvloop.new_event_loop()
            self._thread = threading.Thread(target=self._loop.run_forever, name="antz-mqtt", daemon=True)
            self._thread.start()
        logger.info("%s Connecting to %s", lp, self.config.describe())
        try:
            return self._run(self.connect(), CONNECT_TIMEOUT_SECONDS)
        except FutureTimeoutError:
            logger.error("%s Timed out connecting to %s", lp, self.config.describe())
            return False

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        self.client = self._new_client()
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as e:
            logger.error("%s Failed to connect to %s:%d: %s", lp, self.config.host, self.config.port, e)
            return False
        self._connected = True
        logger.info("%s Connected to MQTT broker: %s port: %d", lp, self.config.host, self.config.port)
        return True

    async def disconnect(self) -> None:
        lp = f"{self.lp}disconnect:"
        if self.client is None:
            return
        try:
            await self.client.__aexit__(None, None, None)
        except aiomqtt.MqttError as e:
            logger.warning("%s MQTT disconnect failed: %s", lp, e)
        else:
            logger.info("%s Disconnected from MQTT broker", lp)
        finally:
            self._connected = False

    async def publish_raw(self, topic: str, payload: bytes) -> bool:
        lp = f"{self.lp}publish:"
        if not self._connected or self.client is None:
            return False
        try:
            await self.client.publish(topic, payload, qos=self.config.qos, retain=self.config.retain)
        except aiomqtt.MqttCodeError as e:
            logger.warning("%s [MqttCodeError] -> %s", lp, e)
            self._connected = False
        except aiomqtt.MqttError as e:
            logger.warning("%s [MqttError] -> %s", lp, e)
            self._connected = False
        else:
            return True
        return False

    def publish(self, event: DecodedEvent) -> bool:
        """Publish one event; returns False when dropped or failed."""
        lp = f"{self.lp}publish:"
        if self._loop is None:
            return False

        if self.in_backoff:
            self.messages_skipped += 1
            metrics.record_publish("skipped")
            remaining = BACKOFF_SKIP_MESSAGES - self.messages_skipped
            if self.messages_skipped == 1:
                logger.warning("%s Backoff mode - skipping next %d messages before retry", lp, BACKOFF_SKIP_MESSAGES)
            elif self.messages_skipped % 25 == 0:
                logger.warning(
                    "%s Skipped %d/%d, %d more before reconnect",
                    lp,
                    self.messages_skipped,
                    BACKOFF_SKIP_MESSAGES,
                    remaining,
                )
            if self.messages_skipped >= BACKOFF_SKIP_MESSAGES:
                logger.info("%s Reconnecting after %d skipped messages...", lp, BACKOFF_SKIP_MESSAGES)
                self.reconnect()
                self.messages_skipped = 0
                self.failed_attempts = 0
            return False

        topic = event_topic(self.config.topic, event)
        payload = json.dumps(event.to_dict(), default=str).encode()
        try:
            ok = self._run(self.publish_raw(topic, payload), PUBLISH_TIMEOUT_SECONDS)
        except FutureTimeoutError:
            logger.warning("%s Publish to %s timed out", lp, topic)
            ok = False

        if ok:
            metrics.record_publish("ok")
            if self.failed_attempts > 0:
                logger.info("%s Recovered after %d failures", lp, self.failed_attempts)
                self.failed_attempts = 0
                self.messages_skipped = 0
            return True

        metrics.record_publish("failed")
        self.failed_attempts += 1
        if self.failed_attempts == 1:
            logger.error("%s Publish to %s failed", lp, topic)
        elif self.failed_attempts == self.config.max_retry_attempts:
            logger.error("%s %d failures, entering backoff mode", lp, self.failed_attempts)
        elif self.failed_attempts % 20 == 0:
            logger.error("%s %d consecutive failures", lp, self.failed_attempts)

        if not self._connected:
            logger.warning("%s Connection lost, reconnecting...", lp)
            self.reconnect()
        return False

    def reconnect(self) -> bool:
        """Reconnect, at most once per ``reconnect_delay_ms``."""
        lp = f"{self.lp}reconnect:"
        now = self._clock()
        if self._last_reconnect is not None and (now - self._last_reconnect) * 1000 < self.config.reconnect_delay_ms:
            return False
        self._last_reconnect = now
        logger.info("%s Reconnecting to %s:%d", lp, self.config.host, self.config.port)
        try:
            self._run(self.disconnect(), CONNECT_TIMEOUT_SECONDS)
            return self._run(self.connect(), CONNECT_TIMEOUT_SECONDS)
        except FutureTimeoutError:
            logger.error("%s Reconnect to %s timed out", lp, self.config.describe())
            return False

    def stop(self) -> None:
        lp = f"{self.lp}stop:"
        if self._loop is None:
            return
        try:
            self._run(self.disconnect(), CONNECT_TIMEOUT_SECONDS)
        except FutureTimeoutError:
            logger.warning("%s Timed out disconnecting from broker", lp)
        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread is not None:
            self._thread.join(timeout=CONNECT_TIMEOUT_SECONDS)
        self._loop.close()
        self._loop = None
        self._thread = None
        logger.info("%s Stopped", lp)
