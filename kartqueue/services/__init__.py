"""Service layer exports for the kart dispatch platform."""

from .catalog import CatalogService, load_fixtures
from .dispatcher import DispatchRecord, KartChoice, KartDispatcher
from .lifecycle import FulfillmentResult, OrderLifecycle
from .messaging import AMQPMessageBus, InMemoryMessageBus, MessageBus, MessageEnvelope, MQTTMessageBus, build_message_bus
from .notifications import BusPushGateway, NotificationEmitter, PushPort, RecordingPushGateway
from .orders import ReservationService
from .platform import CheckoutResult, DispatchPlatform
from .queue import Admission, ReservationQueueManager
from .triggers import TriggerEvent, TriggerKind, TriggerRouter, publish_trigger
from .users import UserDirectory

__all__ = [
	"Admission",
	"ReservationQueueManager",
	"ReservationService",
	"CatalogService",
	"load_fixtures",
	"UserDirectory",
	"KartDispatcher",
	"KartChoice",
	"DispatchRecord",
	"OrderLifecycle",
	"FulfillmentResult",
	"TriggerEvent",
	"TriggerKind",
	"TriggerRouter",
	"publish_trigger",
	"PushPort",
	"RecordingPushGateway",
	"BusPushGateway",
	"NotificationEmitter",
	"CheckoutResult",
	"DispatchPlatform",
	"MessageBus",
	"MessageEnvelope",
	"InMemoryMessageBus",
	"MQTTMessageBus",
	"AMQPMessageBus",
	"build_message_bus",
]
