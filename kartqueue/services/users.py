"""User profiles, carts, past orders and history logs."""

from __future__ import annotations

from typing import Any, List, Optional

from kartqueue.enterprise.config.settings import GridSettings, get_settings
from kartqueue.enterprise.core import HistoryEntry, Order, UnknownOrder, UserProfile
from kartqueue.grid import parse_sector
from kartqueue.persistence.store import DocumentStore, run_transaction
from kartqueue.services.keys import USER_PAST_ORDERS, cart_key, history_key, order_key, user_key


class UserDirectory:
    def __init__(self, store: DocumentStore, grid: Optional[GridSettings] = None) -> None:
        self.store = store
        self.grid = grid or get_settings().grid

    async def profile(self, user_id: str) -> UserProfile:
        document = await self.store.value(user_key(user_id))
        if document is None:
            return UserProfile(user_id=user_id)
        return UserProfile.from_document(document)

    async def update_profile(
        self,
        user_id: str,
        *,
        device_token: Optional[str] = None,
        pickup_location: Optional[str] = None,
    ) -> UserProfile:
        """Merge the given fields into the profile; ``None`` leaves a field unchanged."""

        if pickup_location is not None:
            parse_sector(pickup_location, self.grid)

        def merge(current: Any) -> Any:
            profile = UserProfile.from_document(current) if current else UserProfile(user_id=user_id)
            if device_token is not None:
                profile.device_token = device_token
            if pickup_location is not None:
                profile.pickup_location = pickup_location.upper()
            return profile.to_document()

        result = await run_transaction(self.store, user_key(user_id), merge)
        return UserProfile.from_document(result.snapshot.value)

    async def add_to_cart(self, user_id: str, case_id: str) -> None:
        await self.store.set(cart_key(user_id, case_id), True)

    async def remove_from_cart(self, user_id: str, case_id: str) -> None:
        await self.store.delete(cart_key(user_id, case_id))

    async def cart(self, user_id: str) -> List[str]:
        return sorted(await self.store.children(cart_key(user_id)))

    async def append_history(self, user_id: str, entry: HistoryEntry) -> HistoryEntry:
        await self.store.set(history_key(user_id, entry.entry_id), entry.to_document())
        return entry

    async def history(self, user_id: str) -> List[HistoryEntry]:
        documents = await self.store.children(history_key(user_id))
        entries = [HistoryEntry.from_document(document) for document in documents.values()]
        return sorted(entries, key=lambda entry: entry.timestamp)

    async def order(self, user_id: str, order_id: str) -> Order:
        document = await self.store.value(order_key(user_id, order_id))
        if document is None:
            raise UnknownOrder(order_id)
        return Order.from_document(document)

    async def orders(self, user_id: str) -> List[Order]:
        documents = await self.store.children(f"{USER_PAST_ORDERS}/{user_id}")
        orders = [Order.from_document(document) for document in documents.values()]
        return sorted(orders, key=lambda order: order.queued_at)
