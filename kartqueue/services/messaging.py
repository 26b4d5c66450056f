"""Message bus carrying trigger events in and push hand-offs out.

Three backends share one interface: an in-process bus for tests and the demo,
MQTT through :mod:`paho.mqtt` and AMQP through :mod:`aio_pika`. Payloads are
JSON objects on every backend.
"""

from __future__ import annotations

import asyncio
import json
import ssl
from concurrent.futures import Future
from dataclasses import dataclass
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional

import aio_pika
from aio_pika.abc import AbstractIncomingMessage
import paho.mqtt.client as mqtt
import structlog

from kartqueue.enterprise.config.settings import MessagingSettings
from kartqueue.observability.metrics import TRIGGER_FAILURE_COUNTER

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[dict], Awaitable[None] | None]


@dataclass
class MessageEnvelope:
	"""One JSON payload addressed to a topic."""

	topic: str
	payload: dict
	qos: int = 1

	def encode(self) -> bytes:
		return json.dumps(self.payload, default=str).encode("utf-8")


def decode_payload(raw: bytes) -> dict:
	payload = json.loads(raw.decode("utf-8"))
	if not isinstance(payload, dict):
		raise ValueError("message payload must be a JSON object")
	return payload


def _report_handler_failure(topic: str, future: Future) -> None:
	if future.cancelled() or future.exception() is None:
		return
	exc = future.exception()
	TRIGGER_FAILURE_COUNTER.labels(source="mqtt").inc()
	logger.error("trigger_handler_failed", topic=topic, error=str(exc), error_type=type(exc).__name__)


class MessageBus:
	"""Topic based publish/subscribe with fan-out to every matching handler."""

	def __init__(self) -> None:
		self._handlers: Dict[str, List[MessageHandler]] = {}

	def _matching(self, topic: str) -> List[MessageHandler]:
		handlers: List[MessageHandler] = []
		for pattern, bound in self._handlers.items():
			if mqtt.topic_matches_sub(pattern, topic):
				handlers.extend(bound)
		return handlers

	async def dispatch(self, topic: str, payload: dict) -> None:
		for handler in self._matching(topic):
			result = handler(payload)
			if asyncio.iscoroutine(result):
				await result

	async def subscribe(self, topic: str, handler: MessageHandler) -> None:
		self._handlers.setdefault(topic, []).append(handler)

	async def connect(self) -> None:  # pragma: no cover - interface
		raise NotImplementedError

	async def publish(self, envelope: MessageEnvelope) -> None:  # pragma: no cover - interface
		raise NotImplementedError

	async def close(self) -> None:  # pragma: no cover - interface
		raise NotImplementedError


class InMemoryMessageBus(MessageBus):
	"""Delivers every published message to its handlers before returning."""

	def __init__(self) -> None:
		super().__init__()
		self.published: List[MessageEnvelope] = []

	async def connect(self) -> None:
		return None

	async def publish(self, envelope: MessageEnvelope) -> None:
		self.published.append(envelope)
		# Round-trip through JSON so handlers see exactly what a broker would deliver.
		await self.dispatch(envelope.topic, decode_payload(envelope.encode()))

	async def close(self) -> None:
		self._handlers.clear()


class MQTTMessageBus(MessageBus):
	"""MQTT backend; paho runs its network loop on its own thread."""

	def __init__(self, client_id: str, settings: MessagingSettings) -> None:
		super().__init__()
		self.settings = settings
		self.loop: Optional[asyncio.AbstractEventLoop] = None
		self.client = mqtt.Client(client_id=client_id, callback_api_version=mqtt.CallbackAPIVersion.VERSION2)
		self.client.on_connect = self._on_connect
		self.client.on_message = self._on_message
		if settings.username:
			self.client.username_pw_set(settings.username, settings.password)
		if settings.use_tls:
			self.client.tls_set_context(self._tls_context())

	def _tls_context(self) -> ssl.SSLContext:
		context = ssl.create_default_context(cafile=self.settings.ca_path)
		if self.settings.client_cert_path and self.settings.client_key_path:
			context.load_cert_chain(self.settings.client_cert_path, self.settings.client_key_path)
		return context

	async def connect(self) -> None:
		self.loop = asyncio.get_running_loop()
		await asyncio.to_thread(self.client.connect, self.settings.broker_host, self.settings.port, 60)
		self.client.loop_start()
		logger.info("mqtt_connected", host=self.settings.broker_host, port=self.settings.port)

	def _on_connect(self, client: mqtt.Client, _userdata, _flags, reason_code, _properties=None) -> None:
		if reason_code.is_failure:
			logger.error("mqtt_connect_failed", reason=str(reason_code))
			return
		# Resubscribe after every reconnect; the broker session may be fresh.
		for topic in self._handlers:
			client.subscribe(topic, qos=1)

	def _on_message(self, _client: mqtt.Client, _userdata, message: mqtt.MQTTMessage) -> Optional[Future]:
		if self.loop is None:
			return None
		try:
			payload = decode_payload(message.payload)
		except ValueError:
			logger.warning("mqtt_payload_invalid", topic=message.topic)
			return None
		future = asyncio.run_coroutine_threadsafe(self.dispatch(message.topic, payload), self.loop)
		future.add_done_callback(partial(_report_handler_failure, message.topic))
		return future

	async def publish(self, envelope: MessageEnvelope) -> None:
		info = await asyncio.to_thread(self.client.publish, envelope.topic, envelope.encode(), envelope.qos)
		if info.rc != mqtt.MQTT_ERR_SUCCESS:
			logger.warning("mqtt_publish_failed", topic=envelope.topic, rc=info.rc)

	async def subscribe(self, topic: str, handler: MessageHandler) -> None:
		await super().subscribe(topic, handler)
		await asyncio.to_thread(self.client.subscribe, topic, 1)

	async def close(self) -> None:
		await asyncio.to_thread(self.client.loop_stop)
		await asyncio.to_thread(self.client.disconnect)


def routing_key(topic: str) -> str:
	"""Translate an MQTT style topic (``a/b/+``) into an AMQP topic key (``a.b.*``)."""

	return topic.replace("/", ".").replace("+", "*")


class AMQPMessageBus(MessageBus):
	"""AMQP backend on a durable topic exchange with one durable queue per subscription."""

	exchange_name = "kartqueue"

	def __init__(self, url: str, prefetch: int = 16) -> None:
		super().__init__()
		self.url = url
		self.prefetch = prefetch
		self._connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
		self._channel: Optional[aio_pika.abc.AbstractChannel] = None
		self._exchange: Optional[aio_pika.abc.AbstractExchange] = None

	async def connect(self) -> None:
		self._connection = await aio_pika.connect_robust(self.url)
		self._channel = await self._connection.channel()
		await self._channel.set_qos(prefetch_count=self.prefetch)
		self._exchange = await self._channel.declare_exchange(
			self.exchange_name,
			aio_pika.ExchangeType.TOPIC,
			durable=True,
		)

	def _require_exchange(self) -> aio_pika.abc.AbstractExchange:
		if self._exchange is None:
			raise RuntimeError("AMQP bus used before connect()")
		return self._exchange

	async def publish(self, envelope: MessageEnvelope) -> None:
		message = aio_pika.Message(
			body=envelope.encode(),
			content_type="application/json",
			delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
		)
		await self._require_exchange().publish(message, routing_key=routing_key(envelope.topic))

	async def subscribe(self, topic: str, handler: MessageHandler) -> None:
		exchange = self._require_exchange()
		assert self._channel is not None
		key = routing_key(topic)
		queue = await self._channel.declare_queue(f"{self.exchange_name}.{key}", durable=True)
		await queue.bind(exchange, routing_key=key)

		async def consume(message: AbstractIncomingMessage) -> None:
			# Requeued on handler failure, so triggers are delivered at least once.
			async with message.process(requeue=True):
				result = handler(decode_payload(message.body))
				if asyncio.iscoroutine(result):
					await result

		await queue.consume(consume)
		await super().subscribe(topic, handler)

	async def close(self) -> None:
		if self._channel is not None:
			await self._channel.close()
		if self._connection is not None:
			await self._connection.close()


def build_message_bus(settings: MessagingSettings, client_id: str = "kartqueue") -> MessageBus:
	"""Instantiate the bus selected by ``settings.backend``."""

	backend = settings.backend.lower()
	if backend == "memory":
		return InMemoryMessageBus()
	if backend == "mqtt":
		return MQTTMessageBus(client_id, settings)
	if backend == "amqp":
		if not settings.amqp_url:
			raise ValueError("messaging.amqp_url is required for the amqp backend")
		return AMQPMessageBus(settings.amqp_url)
	raise ValueError(f"Unknown messaging backend {settings.backend!r}")
