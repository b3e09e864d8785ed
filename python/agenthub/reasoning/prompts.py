"""Prompt construction for the planner, the reviewer and CRM workers."""

import json
from typing import Any, Dict, Iterable, List, Optional

from agenthub.exceptions_unified import ValidationError

SYSTEM_PROMPTS: Dict[str, Dict[str, Any]] = {
    "nlp_sales": {
        "role": (
            "You are a professional sales assistant for the CRM. You help customers "
            "with inquiries, provide information about services, and guide them "
            "through the sales process."
        ),
        "guidelines": [
            "Be professional and helpful",
            "Ask qualifying questions to understand customer needs",
            "Provide accurate information about services and availability",
            "Guide customers toward actionable next steps",
        ],
    },
    "lead_agent": {
        "role": "You are a Lead Management specialist. You analyze, categorize, and prioritize leads.",
        "guidelines": [
            "Analyze lead quality and potential value",
            "Categorize leads by service type and urgency",
            "Identify missing information needed for qualification",
            "Recommend next actions for lead follow-up",
        ],
    },
    "deal_agent": {
        "role": (
            "You are a Deal Management specialist. You track opportunities, "
            "forecast revenue, and optimize the sales pipeline."
        ),
        "guidelines": [
            "Monitor deal progression through pipeline stages",
            "Identify potential risks and opportunities",
            "Suggest actions to advance deals",
        ],
    },
    "quotation_agent": {
        "role": "You are a Quotation specialist. You prepare proposals and manage quotation processes.",
        "guidelines": [
            "Include all necessary terms and conditions",
            "Track quotation status and follow-up requirements",
        ],
    },
    "company_intelligence": {
        "role": (
            "You are a Company Intelligence analyst. You research potential "
            "customers and market opportunities."
        ),
        "guidelines": [
            "Research company backgrounds",
            "Analyze market trends and opportunities",
            "Assess competitive landscape",
        ],
    },
    "master_agent": {
        "role": (
            "You are the Master Coordinator for the CRM system. You orchestrate "
            "activities between specialized agents and ensure optimal workflow."
        ),
        "guidelines": [
            "Coordinate activities between specialized agents",
            "Prioritize tasks based on business impact",
            "Ensure data consistency across systems",
            "Make strategic decisions for complex scenarios",
        ],
    },
}

_PLAN_SCHEMA = """{
  "id": "workflow_id",
  "priority": "high|medium|low",
  "steps": [
    {
      "stepId": "step1",
      "agent": "agent_id_or_capability",
      "action": "action_name",
      "data": {},
      "dependencies": ["step0"],
      "estimatedTime": 30
    }
  ],
  "expectedOutcome": "description"
}"""

_FOLLOW_UP_SCHEMA = """{
  "summary": "workflow outcome summary",
  "successRate": 0.9,
  "recommendedActions": [
    {
      "action": "action_name",
      "agent": "agent_name",
      "priority": "high|medium|low",
      "deadline": "ISO-8601 timestamp",
      "description": "what to do"
    }
  ],
  "risks": ["identified risks"],
  "opportunities": ["identified opportunities"]
}"""


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


class PromptTemplates:
    """Builds chat message lists; every method returns plain dicts."""

    HISTORY_LIMIT = 10

    @staticmethod
    def get_system_prompt(agent_type: str) -> Dict[str, str]:
        template = SYSTEM_PROMPTS.get(agent_type)
        if template is None:
            raise ValidationError(f"Unknown agent type: {agent_type}")
        guidelines = "\n".join(f"- {g}" for g in template["guidelines"])
        return {
            "role": "system",
            "content": (
                f"{template['role']}\n\nGuidelines:\n{guidelines}\n\n"
                "You have access to CRM data and can perform actions through the system. "
                "Always provide helpful, accurate, and professional responses."
            ),
        }

    @staticmethod
    def create_user_message(content: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        context = context or {}
        message = content
        for key, label in (
            ("customer_data", "Customer Context"),
            ("lead_data", "Lead Context"),
            ("deal_data", "Deal Context"),
        ):
            if context.get(key):
                message += f"\n\n{label}: {_dump(context[key])}"
        return {"role": "user", "content": message}

    @classmethod
    def create_conversation(
        cls,
        agent_type: str,
        user_message: str,
        context: Optional[Dict[str, Any]] = None,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> List[Dict[str, str]]:
        messages = [cls.get_system_prompt(agent_type)]
        if history:
            messages.extend(history[-cls.HISTORY_LIMIT:])
        messages.append(cls.create_user_message(user_message, context))
        return messages

    @classmethod
    def planning_messages(
        cls,
        request: Dict[str, Any],
        available_workers: Iterable[Dict[str, Any]] = (),
    ) -> List[Dict[str, str]]:
        workers = "\n".join(
            f"- {w['worker_id']}: {', '.join(w.get('capabilities', []))}"
            for w in available_workers
        ) or "- (none registered)"
        content = (
            "Analyze this CRM request and plan an optimal workflow:\n\n"
            f"Request Type: {request.get('type', 'unknown')}\n"
            f"Data: {_dump(request.get('data', {}))}\n"
            f"Context: {_dump(request.get('context', {}))}\n\n"
            f"Available agents:\n{workers}\n\n"
            "Plan a workflow with specific steps, agent assignments, and dependencies.\n"
            f"Respond with JSON: {_PLAN_SCHEMA}"
        )
        return [cls.get_system_prompt("master_agent"), {"role": "user", "content": content}]

    @classmethod
    def follow_up_messages(
        cls,
        results: Dict[str, Any],
        original_request: Dict[str, Any],
    ) -> List[Dict[str, str]]:
        content = (
            "Analyze workflow results and coordinate follow-up actions:\n\n"
            f"Original Request: {_dump(original_request)}\n"
            f"Workflow Results: {_dump(results)}\n\n"
            "Determine:\n"
            "1. What follow-up actions are needed\n"
            "2. Priority levels for each action\n"
            "3. Which agents should handle follow-ups\n"
            "4. Timeline for completion\n"
            "5. Success metrics to track\n\n"
            f"Respond with JSON: {_FOLLOW_UP_SCHEMA}"
        )
        return [cls.get_system_prompt("master_agent"), {"role": "user", "content": content}]

    @classmethod
    def optimization_messages(cls, performance_data: Dict[str, Any]) -> List[Dict[str, str]]:
        content = (
            "Analyze system performance and provide optimization recommendations:\n\n"
            f"Performance Data: {_dump(performance_data)}\n\n"
            "Identify:\n"
            "1. Performance bottlenecks\n"
            "2. Underutilized resources\n"
            "3. Optimization opportunities\n"
            "4. Recommended configuration changes\n\n"
            "Respond with actionable recommendations."
        )
        return [cls.get_system_prompt("master_agent"), {"role": "user", "content": content}]
