"""In-process CRM store for tests and local runs."""

import copy
import itertools
from typing import Any, Dict, Optional

from agenthub.interfaces import CRMResult


class InMemoryCRMStore:
    """``ICRMStore`` keeping entities in dicts keyed by generated string ids."""

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._ids = itertools.count(1)

    async def create(self, entity: str, data: Dict[str, Any]) -> CRMResult:
        record = copy.deepcopy(data)
        record_id = str(record.get("id") or next(self._ids))
        record["id"] = record_id
        table = self._tables.setdefault(entity, {})
        if record_id in table:
            return CRMResult(success=False, error=f"{entity} {record_id} already exists", status=409)
        table[record_id] = record
        return CRMResult(success=True, data=copy.deepcopy(record), status=201)

    async def get(self, entity: str, data: Optional[Dict[str, Any]] = None) -> CRMResult:
        table = self._tables.get(entity, {})
        filters = dict(data or {})
        record_id = filters.pop("id", None)
        if record_id is not None:
            record = table.get(str(record_id))
            if record is None:
                return CRMResult(success=False, error=f"{entity} {record_id} not found", status=404)
            return CRMResult(success=True, data=copy.deepcopy(record), status=200)
        rows = [
            copy.deepcopy(r) for r in table.values()
            if all(r.get(k) == v for k, v in filters.items())
        ]
        return CRMResult(success=True, data=rows, status=200)

    async def update(self, entity: str, data: Dict[str, Any]) -> CRMResult:
        record_id = data.get("id")
        table = self._tables.get(entity, {})
        if record_id is None or str(record_id) not in table:
            return CRMResult(success=False, error=f"{entity} {record_id} not found", status=404)
        record = table[str(record_id)]
        record.update({k: copy.deepcopy(v) for k, v in data.items() if k != "id"})
        return CRMResult(success=True, data=copy.deepcopy(record), status=200)

    async def delete(self, entity: str, data: Dict[str, Any]) -> CRMResult:
        record_id = data.get("id")
        table = self._tables.get(entity, {})
        if record_id is None or table.pop(str(record_id), None) is None:
            return CRMResult(success=False, error=f"{entity} {record_id} not found", status=404)
        return CRMResult(success=True, data={"id": str(record_id)}, status=200)

    def count(self, entity: str) -> int:
        return len(self._tables.get(entity, {}))
