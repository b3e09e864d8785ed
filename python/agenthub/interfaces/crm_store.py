"""Interface for the CRM persistence collaborator.

Workers' action bodies call these CRUD operations; the orchestration core
treats every call as a black box returning a ``CRMResult`` envelope.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol


@dataclass
class CRMResult:
    """Envelope returned by every persistence call."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    status: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data, "status": self.status}
        return {"success": False, "error": self.error, "status": self.status}


class ICRMStore(Protocol):
    """CRUD access to CRM entities (leads, deals, quotations, customers...)."""

    async def create(self, entity: str, data: Dict[str, Any]) -> CRMResult:
        ...

    async def get(self, entity: str, data: Optional[Dict[str, Any]] = None) -> CRMResult:
        """Fetch one record (``data["id"]``) or list the entity when no id is given."""
        ...

    async def update(self, entity: str, data: Dict[str, Any]) -> CRMResult:
        ...

    async def delete(self, entity: str, data: Dict[str, Any]) -> CRMResult:
        ...
