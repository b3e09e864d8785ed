from agenthub.routing.request_router import RequestRouter, RouterMetrics

__all__ = ["RequestRouter", "RouterMetrics"]
