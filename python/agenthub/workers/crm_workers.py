"""Standard CRM workers built on TaskRuntime.

Each builder wires an explicit ``action -> handler`` map over the CRM store
and, where a worker talks to customers or researches companies, the
reasoning service. Handlers raise on failure; the runtime turns that into a
failed TaskResult.
"""

import logging
from typing import Any, Dict, List, Optional

from agenthub.exceptions_unified import CRMStoreError, ReasoningServiceError, ValidationError
from agenthub.interfaces import ICRMStore, IReasoningService
from agenthub.reasoning.prompts import PromptTemplates
from agenthub.runtime.task_runtime import Handler, TaskRuntime

logger = logging.getLogger(__name__)

# Keys the orchestrator adds to every step payload.
_WORKFLOW_KEYS = frozenset({"workflow_id", "previous_results", "original_request"})


def record_fields(payload: Any) -> Dict[str, Any]:
    """Entity fields of a payload, without workflow bookkeeping."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError(f"Expected a mapping payload, got {type(payload).__name__}")
    return {k: v for k, v in payload.items() if k not in _WORKFLOW_KEYS}


def _crud_handlers(store: ICRMStore, entity: str, singular: str) -> Dict[str, Handler]:
    async def create(payload: Any, context: Dict[str, Any]) -> Any:
        return _unwrap(await store.create(entity, record_fields(payload)))

    async def get(payload: Any, context: Dict[str, Any]) -> Any:
        return _unwrap(await store.get(entity, record_fields(payload)))

    async def update(payload: Any, context: Dict[str, Any]) -> Any:
        return _unwrap(await store.update(entity, record_fields(payload)))

    async def delete(payload: Any, context: Dict[str, Any]) -> Any:
        return _unwrap(await store.delete(entity, record_fields(payload)))

    return {
        f"create_{singular}": create,
        f"get_{singular}": get,
        f"update_{singular}": update,
        f"delete_{singular}": delete,
    }


def _unwrap(result: Any) -> Any:
    if not result.success:
        raise CRMStoreError(str(result.error), status=result.status)
    return result.data


async def _ask(
    reasoning: Optional[IReasoningService],
    agent_type: str,
    prompt: str,
    context: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    if reasoning is None:
        raise ReasoningServiceError("No reasoning service configured")
    messages = PromptTemplates.create_conversation(agent_type, prompt, context)
    reply = await reasoning.chat(messages, {"agent_type": agent_type})
    if not reply.success:
        raise ReasoningServiceError(reply.error or "Reasoning request failed")
    return {"response": reply.content, "model": reply.model, "cached": reply.cached}


# ── Builders ─────────────────────────────────────────────────────────


def build_lead_worker(store: ICRMStore, **runtime_kwargs: Any) -> TaskRuntime:
    handlers = _crud_handlers(store, "leads", "lead")

    async def list_leads(payload: Any, context: Dict[str, Any]) -> Any:
        return _unwrap(await store.get("leads", record_fields(payload)))

    handlers["list_leads"] = list_leads
    return TaskRuntime(
        worker_id="lead_agent",
        name="Lead Agent",
        role="lead_management",
        capabilities=["lead_management", "lead_crud", "lead_qualification", "lead_assignment"],
        specializations=["leads", "prospect_management"],
        handlers=handlers,
        tools=["crm_leads_api"],
        endpoint_compatibility=["/leads"],
        **runtime_kwargs,
    )


def build_deal_worker(store: ICRMStore, **runtime_kwargs: Any) -> TaskRuntime:
    return TaskRuntime(
        worker_id="deal_agent",
        name="Deal Agent",
        role="deal_management",
        capabilities=["deal_management", "deal_crud", "pipeline_tracking"],
        specializations=["deals", "opportunities", "pipeline_management"],
        handlers=_crud_handlers(store, "deals", "deal"),
        tools=["crm_deals_api"],
        endpoint_compatibility=["/deals"],
        **runtime_kwargs,
    )


def build_quotation_worker(store: ICRMStore, **runtime_kwargs: Any) -> TaskRuntime:
    handlers = _crud_handlers(store, "quotations", "quotation")

    async def generate_quotation(payload: Any, context: Dict[str, Any]) -> Any:
        fields = record_fields(payload)
        fields.setdefault("status", "draft")
        return _unwrap(await store.create("quotations", fields))

    handlers["generate_quotation"] = generate_quotation
    return TaskRuntime(
        worker_id="quotation_agent",
        name="Quotation Agent",
        role="quotation_management",
        capabilities=["quotation_management", "quotation_crud", "proposal_generation"],
        specializations=["quotations", "proposals"],
        handlers=handlers,
        tools=["crm_quotations_api"],
        endpoint_compatibility=["/quotations"],
        **runtime_kwargs,
    )


def build_company_intelligence_worker(
    reasoning: Optional[IReasoningService],
    **runtime_kwargs: Any,
) -> TaskRuntime:
    async def research_company(payload: Any, context: Dict[str, Any]) -> Any:
        fields = record_fields(payload)
        company = fields.get("company_name") or fields.get("name")
        if not company:
            raise ValidationError("research_company needs company_name")
        return await _ask(
            reasoning,
            "company_intelligence",
            f"Research the company {company} and summarize its profile, industry and potential.",
            {"customer_data": fields},
        )

    async def analyze_market(payload: Any, context: Dict[str, Any]) -> Any:
        fields = record_fields(payload)
        return await _ask(
            reasoning,
            "company_intelligence",
            f"Analyze the market for: {fields.get('market') or fields.get('industry') or 'our services'}",
            {"customer_data": fields},
        )

    return TaskRuntime(
        worker_id="company_intelligence",
        name="Company Intelligence Agent",
        role="company_research",
        capabilities=["company_research", "market_analysis", "competitive_intelligence"],
        specializations=["company_analysis", "market_research"],
        handlers={"research_company": research_company, "analyze_market": analyze_market},
        tools=["reasoning_service"],
        **runtime_kwargs,
    )


def build_sales_assistant_worker(
    reasoning: Optional[IReasoningService],
    **runtime_kwargs: Any,
) -> TaskRuntime:
    async def handle_query(payload: Any, context: Dict[str, Any]) -> Any:
        fields = record_fields(payload)
        query = fields.get("query") or fields.get("message") or fields.get("inquiry")
        if not query:
            raise ValidationError("handle_query needs a query")
        return await _ask(reasoning, "nlp_sales", str(query), fields.get("context"))

    return TaskRuntime(
        worker_id="nlp_sales_assistant",
        name="NLP Sales Assistant",
        role="customer_interaction",
        capabilities=["natural_language_processing", "customer_interaction", "sales_support"],
        specializations=["customer_queries", "sales_conversations"],
        handlers={"handle_query": handle_query},
        tools=["reasoning_service"],
        **runtime_kwargs,
    )


def build_standard_workers(
    store: ICRMStore,
    reasoning: Optional[IReasoningService] = None,
    **runtime_kwargs: Any,
) -> List[TaskRuntime]:
    """All standard CRM workers sharing the same runtime options."""
    return [
        build_sales_assistant_worker(reasoning, **runtime_kwargs),
        build_lead_worker(store, **runtime_kwargs),
        build_deal_worker(store, **runtime_kwargs),
        build_quotation_worker(store, **runtime_kwargs),
        build_company_intelligence_worker(reasoning, **runtime_kwargs),
    ]
