"""
Estimate Pricing Engine — prices a full estimate (or one of its options).

    net subtotal   = material price (incl. misc) + labor price
    advertised     = net / (1 − discount%)        when a discount applies
    discount       = advertised − net
    processing fee = fee% × (advertised if discounted else net)
    total          = net + processing fee

The advertised subtotal is grossed up so that taking the discount off lands
exactly on the net subtotal.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from field_estimator.models.enums import BillingMode
from field_estimator.models.schemas import (
    Assembly,
    CompanySettings,
    Estimate,
    EstimateOption,
    EstimatePricing,
    JobType,
    Material,
    PricingSnapshot,
)
from field_estimator.pricing.labor import aggregate_labor_minutes
from field_estimator.pricing.lines import (
    LineContext,
    distribute_labor_price,
    expected_metrics,
    price_lines,
    resolve_job_type,
)
from field_estimator.pricing.markup import markup_tiers_for
from field_estimator.pricing.tech_cost import compute_tech_cost_breakdown

logger = logging.getLogger(__name__)

_OPTION_OVERRIDES = (
    "job_type_id",
    "use_admin_rules",
    "customer_supplies_materials",
    "apply_discount",
    "discount_percent",
    "apply_processing_fees",
    "apply_misc_material",
)


# ── Options ──────────────────────────────────────────────


def active_option(estimate: Estimate) -> Optional[EstimateOption]:
    """The active option: ``active_option_id`` if it exists, else the first by sort order."""
    if not estimate.options:
        return None
    for option in estimate.options:
        if option.id == estimate.active_option_id:
            return option
    return sorted(estimate.options, key=lambda o: o.sort_order)[0]


def estimate_for_option(estimate: Estimate, option_id: Optional[str] = None) -> Estimate:
    """
    Flatten an option into a plain estimate view: the option's items plus any
    pricing toggles it overrides. Estimates without options pass through.
    """
    if not estimate.options:
        return estimate
    option = None
    if option_id is not None:
        option = next((o for o in estimate.options if o.id == option_id), None)
        if option is None:
            logger.debug(f"Option {option_id} not on estimate {estimate.id}, using active option")
    option = option or active_option(estimate)

    update: dict = {"items": option.items, "active_option_id": option.id}
    for field in _OPTION_OVERRIDES:
        value = getattr(option, field)
        if value is not None:
            update[field] = value
    return estimate.model_copy(update=update)


# ── Discount / fee policy ────────────────────────────────


def resolve_discount_percent(estimate: Estimate, company_settings: CompanySettings) -> float:
    """Estimate discount (or the company default), capped at the company maximum."""
    pct = estimate.discount_percent
    if pct is None:
        pct = company_settings.discount_percent_default
    cap = max(0.0, company_settings.max_discount_percent)
    return max(0.0, min(pct, cap))


def advertised_subtotal(net_subtotal: float, discount_percent: float) -> float:
    """Gross-up so that ``advertised × (1 − d/100) == net``; unchanged outside 0 < d < 100."""
    if not 0 < discount_percent < 100:
        return net_subtotal
    return net_subtotal / (1 - discount_percent / 100)


def gross_margin_percent(revenue: float, cost: float) -> float:
    if revenue <= 0:
        return 0.0
    return (revenue - cost) / revenue * 100


# ── Engine ───────────────────────────────────────────────


def compute_estimate_pricing(
    estimate: Estimate,
    materials_by_id: Mapping[str, Material],
    assemblies_by_id: Mapping[str, Assembly],
    job_types_by_id: Mapping[str, JobType],
    company_settings: CompanySettings,
    option_id: Optional[str] = None,
    job_type_id: Optional[str] = None,
) -> EstimatePricing:
    """
    Full cost/price breakdown of an estimate's active (or given) option.

    ``job_type_id`` overrides the estimate's selection (used when re-pricing
    after admin rules picked a job type).
    """
    view = estimate_for_option(estimate, option_id)
    job_type = resolve_job_type(job_type_id or view.job_type_id, job_types_by_id)
    tech = compute_tech_cost_breakdown(company_settings, job_type)

    ctx = LineContext(
        company_settings=company_settings,
        materials_by_id=materials_by_id,
        assemblies_by_id=assemblies_by_id,
        markup=markup_tiers_for(company_settings, job_type),
        customer_supplies_materials=view.customer_supplies_materials,
        apply_misc_material=view.apply_misc_material,
    )
    lines = price_lines(view.items, ctx)

    flat_rate = job_type is None or job_type.billing_mode == BillingMode.FLAT
    labor = aggregate_labor_minutes(
        view.items,
        materials_by_id,
        tech.efficiency_percent,
        assemblies_by_id=assemblies_by_id,
        min_billable_minutes=company_settings.min_billable_labor_minutes_per_job if flat_rate else 0.0,
    )
    labor_price = labor.expected / 60 * tech.labor_sell_rate
    labor_cost = labor.expected / 60 * tech.loaded_labor_rate
    lines = distribute_labor_price(lines, labor_price)

    material_cost = sum(line.material_cost for line in lines)
    material_price = sum(line.material_price for line in lines)
    misc = sum(line.misc_material for line in lines)

    net_subtotal = material_price + labor_price

    discount_pct = resolve_discount_percent(view, company_settings)
    allows_discounts = job_type.allow_discounts if job_type is not None else True
    discount_active = view.apply_discount and allows_discounts and 0 < discount_pct < 100
    pre_discount = advertised_subtotal(net_subtotal, discount_pct) if discount_active else net_subtotal
    discount_amount = pre_discount - net_subtotal

    subtotal_before_processing = net_subtotal
    processing_fee = 0.0
    if view.apply_processing_fees:
        fee_base = pre_discount if discount_active else subtotal_before_processing
        processing_fee = fee_base * max(0.0, company_settings.processing_fee_percent) / 100
    total = subtotal_before_processing + processing_fee

    logger.debug(
        f"Estimate {estimate.id}: net ${net_subtotal:,.2f}, "
        f"discount {discount_pct if discount_active else 0:.1f}%, total ${total:,.2f}"
    )

    return EstimatePricing(
        estimate_id=estimate.id,
        option_id=view.active_option_id if estimate.options else None,
        job_type_id=job_type.id if job_type else None,
        material_cost=material_cost,
        material_price=material_price,
        misc_material=misc,
        labor_minutes_actual=labor.baseline,
        labor_minutes_expected=labor.expected,
        labor_rate=tech.labor_sell_rate,
        labor_cost=labor_cost,
        labor_price=labor_price,
        pre_discount_total=pre_discount,
        discount_percent=discount_pct if discount_active else 0.0,
        discount_amount=discount_amount,
        subtotal_before_processing=subtotal_before_processing,
        processing_fee=processing_fee,
        total=total,
        gross_margin_target_percent=tech.gross_margin_target_percent,
        gross_margin_expected_percent=gross_margin_percent(total, material_cost + labor_cost),
        lines=lines,
        metrics=expected_metrics(lines, labor, material_cost),
    )


def compute_option_totals(estimate: Estimate, snapshot: PricingSnapshot) -> dict[str, float]:
    """Grand total of every option, keyed by option id."""
    return {
        option.id: compute_estimate_pricing(
            estimate,
            snapshot.materials,
            snapshot.assemblies,
            snapshot.job_types,
            snapshot.company_settings,
            option_id=option.id,
        ).total
        for option in estimate.options
    }
