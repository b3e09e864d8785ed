from agenthub.crm.http_store import HttpCRMStore
from agenthub.crm.memory_store import InMemoryCRMStore

__all__ = ["HttpCRMStore", "InMemoryCRMStore"]
