"""
Local JSON-file adapter for SessionStorePort.

Stores every collection in a single JSON file on disk.
Simple, no extra infra: good for local dev and single-user runs.
For production, swap to the DynamoDB adapter behind the same port.
"""

from __future__ import annotations

import asyncio
import json
import os
import threading
from typing import Any, Dict, List, Optional

from adapters.in_memory_session_store import apply_query
from ports.session_store import SessionStorePort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import LogScope
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.ADAPTER)

_DEFAULT_PATH = "data/sessions/store.json"


class JsonSessionStoreAdapter:
    """Thread-safe JSON file store. File I/O runs in a worker thread."""

    def __init__(self, path: str = _DEFAULT_PATH) -> None:
        self._path = path
        self._lock = threading.Lock()
        # Ensure directory exists
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)

    # ------------------------------------------------------------------
    # SessionStorePort implementation
    # ------------------------------------------------------------------

    async def create(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._create_sync, collection, record_id, record)

    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._update_sync, collection, record_id, fields)

    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        data = await asyncio.to_thread(self._read_locked)
        return data.get(collection, {}).get(record_id)

    async def list(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        data = await asyncio.to_thread(self._read_locked)
        records = list(data.get(collection, {}).values())
        return apply_query(records, where, order_by, descending, limit)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _create_sync(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        with self._lock:
            data = self._read_all()
            data.setdefault(collection, {})[record_id] = record
            self._write_all(data)
        logger.debug("json_record_created", collection=collection, record_id=record_id)

    def _update_sync(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            data = self._read_all()
            records = data.get(collection, {})
            if record_id not in records:
                raise PersistenceError("Record not found", collection=collection, record_id=record_id)
            records[record_id].update(fields)
            self._write_all(data)
        logger.debug("json_record_updated", collection=collection, record_id=record_id)

    def _read_locked(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        with self._lock:
            return self._read_all()

    def _read_all(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        if not os.path.exists(self._path):
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError):
            logger.warning("session_store_corrupt_file", path=self._path)
            return {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        try:
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
        except OSError as exc:
            raise PersistenceError(f"Failed to write store file: {exc}", context={"path": self._path}) from exc
