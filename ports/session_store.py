"""
Port interface for durable session storage.

Record-oriented: each record is a JSON-compatible dict living in a named
collection under an opaque string id.

Implementations: InMemorySessionStoreAdapter, JsonSessionStoreAdapter,
DynamoSessionStoreAdapter (adapters/)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class SessionStorePort(Protocol):
    """Abstract interface for create/update/get/list on record collections."""

    async def create(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        """Insert a new record.

        Raises:
            PersistenceError: If the id already exists or the store is unreachable.
        """
        ...

    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        """Merge *fields* into an existing record.

        Raises:
            PersistenceError: If the record is missing or the store is unreachable.
        """
        ...

    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return one record, or None if absent."""
        ...

    async def list(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """List records matching every equality filter in *where*.

        Args:
            collection: Collection name.
            where: Field -> value equality filters (AND-combined).
            order_by: Field to sort on; records missing it sort first.
            descending: Reverse the sort.
            limit: Maximum number of records returned.
        """
        ...
