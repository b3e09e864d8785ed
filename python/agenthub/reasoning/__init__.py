from agenthub.reasoning.client import ReasoningClient, ReasoningMetrics
from agenthub.reasoning.prompts import PromptTemplates, SYSTEM_PROMPTS

__all__ = ["ReasoningClient", "ReasoningMetrics", "PromptTemplates", "SYSTEM_PROMPTS"]
