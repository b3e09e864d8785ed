from agenthub.workers.crm_workers import (
    build_company_intelligence_worker,
    build_deal_worker,
    build_lead_worker,
    build_quotation_worker,
    build_sales_assistant_worker,
    build_standard_workers,
)

__all__ = [
    "build_company_intelligence_worker",
    "build_deal_worker",
    "build_lead_worker",
    "build_quotation_worker",
    "build_sales_assistant_worker",
    "build_standard_workers",
]
