"""
In-memory adapter for SessionStorePort.

Default backend for local development and tests. Records are kept as
JSON-compatible dicts and copied on the way in and out so callers never share
mutable state with the store.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

from ports.session_store import SessionStorePort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import LogScope
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.ADAPTER)


def apply_query(
    records: List[Dict[str, Any]],
    where: Optional[Dict[str, Any]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Equality filter, optional sort and limit over plain records.

    Records missing the ``order_by`` field sort last.
    """
    if where:
        records = [r for r in records if all(r.get(k) == v for k, v in where.items())]

    if order_by:
        present = [r for r in records if r.get(order_by) is not None]
        missing = [r for r in records if r.get(order_by) is None]
        present.sort(key=lambda r: r[order_by], reverse=descending)
        records = present + missing

    if limit is not None:
        records = records[:max(0, limit)]
    return records


class InMemorySessionStoreAdapter:
    """Dict-of-dicts store: ``collection -> record_id -> record``."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    # ------------------------------------------------------------------
    # SessionStorePort implementation
    # ------------------------------------------------------------------

    async def create(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        """Create (or overwrite) a record. Repeating a create is harmless."""
        self._collections.setdefault(collection, {})[record_id] = copy.deepcopy(record)
        logger.debug("record_created", collection=collection, record_id=record_id)

    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        records = self._collections.get(collection, {})
        if record_id not in records:
            raise PersistenceError("Record not found", collection=collection, record_id=record_id)
        records[record_id].update(copy.deepcopy(fields))
        logger.debug("record_updated", collection=collection, record_id=record_id, fields=list(fields))

    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        record = self._collections.get(collection, {}).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def list(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        records = [copy.deepcopy(r) for r in self._collections.get(collection, {}).values()]
        return apply_query(records, where, order_by, descending, limit)

    # ------------------------------------------------------------------
    # Introspection (tests, local runner)
    # ------------------------------------------------------------------

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))
