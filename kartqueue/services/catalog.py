"""Registration of cases and karts, and the external case-release event."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml

from kartqueue.enterprise.config.settings import GridSettings, get_settings
from kartqueue.enterprise.core import Case, Kart, UnknownCase, UnknownKart
from kartqueue.grid import parse_sector
from kartqueue.persistence.store import ABORT, DocumentStore, run_transaction
from kartqueue.services.keys import CASES, KARTS, case_key, kart_key
from kartqueue.services.users import UserDirectory

logger = structlog.get_logger(__name__)


def load_fixtures(path: Path) -> Dict[str, Any]:
    """Read a YAML file with ``cases``, ``karts`` and ``users`` lists."""

    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


class CatalogService:
    """Owns the case and kart records the core reads."""

    def __init__(self, store: DocumentStore, grid: Optional[GridSettings] = None) -> None:
        self.store = store
        self.grid = grid or get_settings().grid

    def normalize_sector(self, name: str) -> str:
        parse_sector(name, self.grid)
        return name.strip().upper()

    async def register_case(self, case: Case) -> Case:
        case = case.model_copy(update={"last_location": self.normalize_sector(case.last_location)})
        await self.store.set(case_key(case.id), case.to_document())
        logger.info("case_registered", case_id=case.id, location=case.last_location)
        return case

    async def get_case(self, case_id: str) -> Case:
        document = await self.store.value(case_key(case_id))
        if document is None:
            raise UnknownCase(case_id)
        return Case.from_document(document)

    async def cases(self) -> List[Case]:
        documents = await self.store.children(CASES)
        return [Case.from_document(document) for document in documents.values()]

    async def release_case(self, case_id: str, location: Optional[str] = None) -> Case:
        """Mark the case available again, e.g. after it was scanned back in.

        This is the external release event: the caller is expected to deliver
        the matching availability-changed trigger afterwards.
        """

        sector = self.normalize_sector(location) if location else None

        def release(current: Any) -> Any:
            if current is None:
                return ABORT
            current["isAvailable"] = True
            if sector:
                current["lastLocation"] = sector
            return current

        result = await run_transaction(self.store, case_key(case_id), release)
        if not result.committed:
            raise UnknownCase(case_id)
        logger.info("case_released", case_id=case_id, location=result.snapshot.value["lastLocation"])
        return Case.from_document(result.snapshot.value)

    async def register_kart(self, kart: Kart) -> Kart:
        kart = kart.model_copy(update={"current_location": self.normalize_sector(kart.current_location)})
        await self.store.set(kart_key(kart.id), kart.to_document())
        logger.info("kart_registered", kart_id=kart.id, location=kart.current_location)
        return kart

    async def get_kart(self, kart_id: str) -> Kart:
        document = await self.store.value(kart_key(kart_id))
        if document is None:
            raise UnknownKart(kart_id)
        return Kart.from_document(document)

    async def karts(self) -> List[Kart]:
        documents = await self.store.children(KARTS)
        return [Kart.from_document(document) for document in documents.values()]

    async def move_kart(self, kart_id: str, location: str) -> Kart:
        sector = self.normalize_sector(location)

        def move(current: Any) -> Any:
            if current is None:
                return ABORT
            current["currentLocation"] = sector
            return current

        result = await run_transaction(self.store, kart_key(kart_id), move)
        if not result.committed:
            raise UnknownKart(kart_id)
        return Kart.from_document(result.snapshot.value)

    async def seed(self, fixtures: Dict[str, Any], users: Optional[UserDirectory] = None) -> Dict[str, int]:
        """Register every case, kart and (when ``users`` is given) user profile in ``fixtures``."""

        counts = {"cases": 0, "karts": 0, "users": 0}
        for raw in fixtures.get("cases") or []:
            await self.register_case(Case.model_validate(raw))
            counts["cases"] += 1
        for raw in fixtures.get("karts") or []:
            await self.register_kart(Kart.model_validate(raw))
            counts["karts"] += 1
        if users is not None:
            for raw in fixtures.get("users") or []:
                await users.update_profile(
                    raw["user_id"],
                    device_token=raw.get("device_token"),
                    pickup_location=raw.get("pickup_location"),
                )
                counts["users"] += 1
        return counts
