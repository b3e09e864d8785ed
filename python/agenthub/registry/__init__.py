from agenthub.registry.worker_registry import (
    WorkerPerformance,
    WorkerRecord,
    WorkerRegistry,
    WorkerStatus,
)

__all__ = ["WorkerPerformance", "WorkerRecord", "WorkerRegistry", "WorkerStatus"]
