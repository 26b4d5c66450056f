"""Per-case FIFO admission queues maintained with optimistic transactions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

import structlog

from kartqueue.enterprise.config.settings import QueueSettings, get_settings
from kartqueue.enterprise.core import CaseQueue, QueueContention, QueueEntry
from kartqueue.observability.metrics import ORDERS_ENQUEUED_COUNTER, QUEUE_CONTENTION_COUNTER
from kartqueue.observability.tracing import get_tracer
from kartqueue.persistence.store import ABORT, DocumentStore, run_transaction
from kartqueue.services.keys import case_queue_key

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)


@dataclass(frozen=True)
class Admission:
	"""Result of a committed enqueue."""

	case_id: str
	entry: QueueEntry
	position: int

	@property
	def order_id(self) -> str:
		return self.entry.order_id


def _load_queue(document: Any) -> CaseQueue:
	# A case that has never been queued for has no record yet.
	if document is None:
		return CaseQueue()
	return CaseQueue.from_document(document)


class ReservationQueueManager:
	"""Enqueue and pop-and-shift against ``caseQueues/{caseId}``.

	Both operations are read-modify-write transactions on the same record, so
	the store's compare-and-swap serialises them; neither assumes the record is
	unchanged between its read and its write.
	"""

	def __init__(self, store: DocumentStore, settings: Optional[QueueSettings] = None) -> None:
		self.store = store
		self.settings = settings or get_settings().queue

	async def _transact(self, case_id: str, mutate):
		return await run_transaction(
			self.store,
			case_queue_key(case_id),
			mutate,
			max_attempts=self.settings.max_attempts,
			backoff_seconds=self.settings.backoff_seconds,
		)

	async def enqueue(self, case_id: str, user_id: str, pickup_location: str) -> Admission:
		"""Append a new entry at ``queueCount + 1`` and return its committed position."""

		entry = QueueEntry(user_id=user_id, pickup_location=pickup_location)

		def append(current: Any) -> Any:
			queue = _load_queue(current)
			queue.append(entry)
			return queue.to_document()

		with tracer.start_as_current_span("queue.enqueue") as span:
			span.set_attribute("kartqueue.case_id", case_id)
			try:
				result = await self._transact(case_id, append)
			except QueueContention:
				QUEUE_CONTENTION_COUNTER.inc()
				logger.warning("enqueue_contention", case_id=case_id, user_id=user_id)
				raise

		position = CaseQueue.from_document(result.snapshot.value).position_of(entry.order_id)
		assert position is not None
		ORDERS_ENQUEUED_COUNTER.inc()
		logger.info(
			"order_enqueued",
			case_id=case_id,
			order_id=entry.order_id,
			position=position,
			attempts=result.attempts,
		)
		return Admission(case_id=case_id, entry=entry, position=position)

	async def pop_and_shift(self, case_id: str, expected_order_id: Optional[str] = None) -> Optional[QueueEntry]:
		"""Remove the head entry and move every other entry up one position.

		Returns ``None`` without writing when the queue is empty or absent, or
		when ``expected_order_id`` is given and is not at the head.
		"""

		popped: Optional[QueueEntry] = None

		def shift(current: Any) -> Any:
			nonlocal popped
			popped = None
			if current is None:
				return ABORT
			queue = _load_queue(current)
			head = queue.head
			if head is None or (expected_order_id and head.order_id != expected_order_id):
				return ABORT
			popped = queue.pop_front()
			return queue.to_document()

		with tracer.start_as_current_span("queue.pop_and_shift") as span:
			span.set_attribute("kartqueue.case_id", case_id)
			result = await self._transact(case_id, shift)

		if not result.committed:
			return None
		logger.info("queue_popped", case_id=case_id, order_id=popped.order_id, attempts=result.attempts)
		return popped

	async def snapshot(self, case_id: str) -> CaseQueue:
		return _load_queue(await self.store.value(case_queue_key(case_id)))

	async def head(self, case_id: str) -> Optional[QueueEntry]:
		return (await self.snapshot(case_id)).head

	async def entries(self, case_id: str) -> List[QueueEntry]:
		return (await self.snapshot(case_id)).entries()
