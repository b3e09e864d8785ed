from agenthub.runtime.cancellation import CancellationToken
from agenthub.runtime.task_runtime import (
    ACTION_CAPABILITY_MAP,
    BackpressurePolicy,
    RuntimeStatus,
    TaskRecord,
    TaskRuntime,
)

__all__ = [
    "ACTION_CAPABILITY_MAP",
    "BackpressurePolicy",
    "CancellationToken",
    "RuntimeStatus",
    "TaskRecord",
    "TaskRuntime",
]
