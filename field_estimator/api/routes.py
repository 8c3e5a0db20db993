"""
API routes — thin HTTP layer that delegates to the pricing engine.

Every request carries the data it prices (a snapshot or the pieces it
needs); the API keeps no state of its own.

Routes:
  GET  /health                              → API health check
  POST /api/pricing/material-cost           → Per-unit material cost build-up
  POST /api/pricing/labor-minutes           → Baseline / expected labor minutes
  POST /api/pricing/tech-cost               → Capacity, overhead and rate breakdown
  POST /api/pricing/assembly                → Price an assembly
  POST /api/pricing/estimate                → Price an estimate (active or given option)
  POST /api/pricing/estimate/apply-rules    → Run admin rules once and re-price
  POST /api/pricing/admin-rules/evaluate    → Which job type would the rules pick
  POST /api/estimates/transition            → Change estimate status
  POST /api/estimates/group-quantity        → Rescale an assembly group
  POST /api/settings/check                  → Company settings sanity checks
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from field_estimator.config import get_settings
from field_estimator.models.enums import EstimateStatus, RuleScope
from field_estimator.models.schemas import (
    Assembly,
    AssemblyPricing,
    CompanySettings,
    Estimate,
    EstimateItem,
    EstimatePricing,
    ExpectedMetrics,
    JobType,
    LaborMinutes,
    Material,
    MaterialCostBreakdown,
    PricingSnapshot,
    RuleApplication,
    TechCostBreakdown,
)
from field_estimator.persistence.normalize import normalize_admin_rule
from field_estimator.pricing.labor import aggregate_labor_minutes
from field_estimator.pricing.line_items import set_group_quantity
from field_estimator.pricing.markup import markup_tiers_for, resolve_material_cost
from field_estimator.pricing.tech_cost import compute_tech_cost_breakdown
from field_estimator.rules.admin_rules import evaluate_admin_rules
from field_estimator.rules.settings_rules import CompanySettingsRules
from field_estimator.services.estimate_service import (
    EstimateLockedError,
    InvalidStatusTransition,
    edit_line_items,
    ensure_editable,
    transition_status,
)
from field_estimator.services.pricing_service import PricingService

logger = logging.getLogger(__name__)

# ── Routers ──────────────────────────────────────────────
health_router = APIRouter()
pricing_router = APIRouter()
estimates_router = APIRouter()
settings_router = APIRouter()


# ── Request / response schemas ───────────────────────────
class MaterialCostRequest(BaseModel):
    company_settings: CompanySettings = CompanySettings()
    material: Optional[Material] = None
    unit_cost: float = 0.0  # used when no material is given
    cost_override: Optional[float] = None
    customer_supplies_materials: bool = False
    job_type: Optional[JobType] = None


class LaborMinutesRequest(BaseModel):
    items: list[EstimateItem] = []
    materials: dict[str, Material] = {}
    assemblies: dict[str, Assembly] = {}
    efficiency_percent: float = 100.0
    min_billable_minutes: float = 0.0


class TechCostRequest(BaseModel):
    company_settings: CompanySettings = CompanySettings()
    job_type: Optional[JobType] = None


class AssemblyPricingRequest(BaseModel):
    snapshot: PricingSnapshot = PricingSnapshot()
    assembly: Assembly
    job_type_id: Optional[str] = None


class EstimatePricingRequest(BaseModel):
    snapshot: PricingSnapshot = PricingSnapshot()
    estimate: Estimate
    option_id: Optional[str] = None
    job_type_id: Optional[str] = None


class EstimatePricingResponse(BaseModel):
    pricing: EstimatePricing
    option_totals: dict[str, float] = {}


class ApplyRulesResponse(BaseModel):
    estimate: Estimate
    application: RuleApplication
    pricing: EstimatePricing


class EvaluateRulesRequest(BaseModel):
    rules: list[dict[str, Any]] = []  # any stored shape; normalized here
    metrics: ExpectedMetrics = ExpectedMetrics()
    scope: Optional[RuleScope] = None


class EvaluateRulesResponse(BaseModel):
    job_type_id: Optional[str] = None


class TransitionRequest(BaseModel):
    estimate: Estimate
    status: EstimateStatus


class GroupQuantityRequest(BaseModel):
    estimate: Estimate
    group_id: str
    quantity: float
    option_id: Optional[str] = None


class SettingsCheckRequest(BaseModel):
    company_settings: CompanySettings = CompanySettings()
    job_types: list[JobType] = []


class SettingsCheckResponse(BaseModel):
    ok: bool
    violations: list[dict[str, Any]] = []


# ── Health ───────────────────────────────────────────────

@health_router.get("/health")
async def health_check():
    settings = get_settings()
    return {
        "status": "ok",
        "app": settings.app_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Pricing ──────────────────────────────────────────────

@pricing_router.post("/material-cost", response_model=MaterialCostBreakdown)
async def material_cost(body: MaterialCostRequest):
    return resolve_material_cost(
        body.material if body.material is not None else body.unit_cost,
        body.company_settings,
        customer_supplies_materials=body.customer_supplies_materials,
        markup=markup_tiers_for(body.company_settings, body.job_type),
        cost_override=body.cost_override,
    )


@pricing_router.post("/labor-minutes", response_model=LaborMinutes)
async def labor_minutes(body: LaborMinutesRequest):
    return aggregate_labor_minutes(
        body.items,
        body.materials,
        body.efficiency_percent,
        assemblies_by_id=body.assemblies,
        min_billable_minutes=body.min_billable_minutes,
    )


@pricing_router.post("/tech-cost", response_model=TechCostBreakdown)
async def tech_cost(body: TechCostRequest):
    return compute_tech_cost_breakdown(body.company_settings, body.job_type)


@pricing_router.post("/assembly", response_model=AssemblyPricing)
async def price_assembly(body: AssemblyPricingRequest):
    return PricingService(body.snapshot).price_assembly(body.assembly, job_type_id=body.job_type_id)


@pricing_router.post("/estimate", response_model=EstimatePricingResponse)
async def price_estimate(body: EstimatePricingRequest):
    service = PricingService(body.snapshot)
    if body.option_id and not any(o.id == body.option_id for o in body.estimate.options):
        raise HTTPException(status_code=404, detail=f"Option {body.option_id} not found")
    return EstimatePricingResponse(
        pricing=service.price_estimate(body.estimate, body.option_id, body.job_type_id),
        option_totals=service.option_totals(body.estimate),
    )


@pricing_router.post("/estimate/apply-rules", response_model=ApplyRulesResponse)
async def apply_rules(body: EstimatePricingRequest):
    try:
        estimate, application, pricing = PricingService(body.snapshot).apply_admin_rules_to_estimate(
            body.estimate, option_id=body.option_id,
        )
    except EstimateLockedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ApplyRulesResponse(estimate=estimate, application=application, pricing=pricing)


@pricing_router.post("/admin-rules/evaluate", response_model=EvaluateRulesResponse)
async def evaluate_rules(body: EvaluateRulesRequest):
    try:
        rules = [normalize_admin_rule(raw) for raw in body.rules]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid admin rule: {e}")
    return EvaluateRulesResponse(job_type_id=evaluate_admin_rules(rules, body.metrics, body.scope))


# ── Estimate lifecycle ───────────────────────────────────

@estimates_router.post("/transition", response_model=Estimate)
async def transition(body: TransitionRequest):
    try:
        return transition_status(body.estimate, body.status)
    except (EstimateLockedError, InvalidStatusTransition) as e:
        raise HTTPException(status_code=409, detail=str(e))


@estimates_router.post("/group-quantity", response_model=Estimate)
async def group_quantity(body: GroupQuantityRequest):
    try:
        ensure_editable(body.estimate)
        return edit_line_items(
            body.estimate,
            lambda items: set_group_quantity(items, body.group_id, body.quantity),
            body.option_id,
        )
    except EstimateLockedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except KeyError as e:
        raise HTTPException(status_code=404, detail=e.args[0])


# ── Company settings ─────────────────────────────────────

@settings_router.post("/check", response_model=SettingsCheckResponse)
async def check_settings(body: SettingsCheckRequest):
    violations = CompanySettingsRules().check_company_settings(body.company_settings, body.job_types)
    return SettingsCheckResponse(ok=not violations, violations=violations)
