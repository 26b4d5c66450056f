"""Nearest-kart selection and kart work queue assignment."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

import structlog

from kartqueue.enterprise.config.settings import GridSettings, get_settings
from kartqueue.enterprise.core import InvalidLocation, Kart, KartAssignment, NoUnitAvailable, Order
from kartqueue.enterprise.core.models import utcnow
from kartqueue.grid import euclidean, parse_sector
from kartqueue.observability.metrics import DISPATCH_COUNTER
from kartqueue.persistence.store import DocumentStore
from kartqueue.services.keys import KARTS, kart_queue_key

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class KartChoice:
    kart_id: str
    distance: float


@dataclass
class DispatchRecord:
    kart_id: str
    order_id: str
    distance: float
    assigned_at: datetime = field(default_factory=utcnow)


class KartDispatcher:
    """Assigns fulfilled orders to the kart closest to the case."""

    def __init__(self, store: DocumentStore, grid: Optional[GridSettings] = None) -> None:
        self.store = store
        self.grid = grid or get_settings().grid

    def select_kart(self, location: str, karts: Sequence[Kart]) -> Optional[KartChoice]:
        """Pick the kart for an order at ``location``.

        A kart in the same sector wins outright; otherwise the kart with the
        strictly smallest distance, the first one encountered on ties.
        """

        target = parse_sector(location, self.grid)

        candidates: List[tuple[Kart, float]] = []
        for kart in karts:
            try:
                cell = parse_sector(kart.current_location, self.grid)
            except InvalidLocation:
                logger.warning("kart_location_invalid", kart_id=kart.id, location=kart.current_location)
                continue
            if cell == target:
                return KartChoice(kart_id=kart.id, distance=0.0)
            candidates.append((kart, euclidean(target, cell)))

        if not candidates:
            return None

        best, distance = min(candidates, key=lambda candidate: candidate[1])
        return KartChoice(kart_id=best.id, distance=distance)

    async def karts(self) -> List[Kart]:
        documents = await self.store.children(KARTS)
        return [Kart.from_document(document) for document in documents.values()]

    async def dispatch(self, order: Order, case_location: str) -> DispatchRecord:
        """Append ``order`` to the nearest kart's work queue.

        The work queue entry is created only if absent, so concurrent
        dispatches to one kart never overwrite each other and re-dispatching
        an order to the same kart leaves the existing assignment in place.
        """

        choice = self.select_kart(case_location, await self.karts())
        if choice is None:
            raise NoUnitAvailable(order.order_id, case_location)
        selection = DispatchRecord(kart_id=choice.kart_id, order_id=order.order_id, distance=choice.distance)

        assignment = KartAssignment(
            order_id=order.order_id,
            user_id=order.user_id,
            case_id=order.case_id,
            pickup_location=order.pickup_location,
            assigned_at=selection.assigned_at,
        )
        created = await self.store.compare_and_set(
            kart_queue_key(selection.kart_id, order.order_id),
            0,
            assignment.to_document(),
        )
        if created:
            DISPATCH_COUNTER.inc()
        else:
            logger.info("kart_assignment_exists", kart_id=selection.kart_id, order_id=order.order_id)

        logger.info(
            "order_dispatched",
            order_id=order.order_id,
            case_id=order.case_id,
            kart_id=selection.kart_id,
            distance=selection.distance,
        )
        return selection

    async def work_queue(self, kart_id: str) -> List[KartAssignment]:
        documents = await self.store.children(kart_queue_key(kart_id))
        assignments = [KartAssignment.from_document(document) for document in documents.values()]
        return sorted(assignments, key=lambda assignment: (assignment.assigned_at, assignment.order_id))
