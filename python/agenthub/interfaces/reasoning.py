"""Interface for the reasoning collaborator.

The orchestrator only needs ``chat(messages, options) -> ChatResult`` and
treats ``content`` as untrusted text that may or may not be valid JSON.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol


@dataclass
class ChatResult:
    """Result of a chat call."""
    content: str
    success: bool = True
    error: Optional[str] = None
    model: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)
    response_time_ms: float = 0.0
    cached: bool = False


class IReasoningService(Protocol):
    """Chat-style reasoning service used to plan and review workflows."""

    async def chat(
        self,
        messages: List[Dict[str, str]],
        options: Optional[Dict[str, Any]] = None,
    ) -> ChatResult:
        """Send *messages* and return the assistant reply.

        Args:
            messages: ``[{"role": ..., "content": ...}]``
            options: Optional ``temperature``, ``max_tokens``, ``model``, ``agent_type``
        """
        ...
