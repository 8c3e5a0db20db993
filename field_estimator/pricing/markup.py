"""
Markup / Tax Resolver — per-unit material cost build-up.

    cost → + purchase tax → + tiered markup → + misc-material surcharge

Markup tiers are looked up by the tax-inclusive unit cost.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

from field_estimator.models.enums import BillingMode, MaterialMarkupMode
from field_estimator.models.schemas import (
    BlankMaterialLine,
    CompanySettings,
    JobType,
    MarkupTier,
    Material,
    MaterialCostBreakdown,
)
from field_estimator.utils.numbers import to_num


def chosen_unit_cost(material: Material, cost_override: Optional[float] = None) -> float:
    """Custom cost wins when enabled and set; a line-level override wins over both."""
    if cost_override is not None:
        return max(0.0, to_num(cost_override))
    if material.use_custom_cost and material.custom_cost is not None:
        return max(0.0, to_num(material.custom_cost, material.base_cost))
    return max(0.0, to_num(material.base_cost))


def resolve_markup_percent(unit_cost: float, tiers: Sequence[MarkupTier]) -> float:
    """Markup % of the first tier whose [min, max] contains ``unit_cost``; 0 if none."""
    for tier in tiers:
        if tier.min <= unit_cost <= tier.max:
            return tier.markup_percent
    return 0.0


def markup_tiers_for(
    company_settings: CompanySettings,
    job_type: Optional[JobType] = None,
) -> Union[list[MarkupTier], float]:
    """
    Tier table (or a fixed percent) that applies to material lines.

    Only hourly job types may override the company tiers.
    """
    if job_type is None or job_type.billing_mode != BillingMode.HOURLY:
        return company_settings.material_markup_tiers
    if job_type.material_markup_mode == MaterialMarkupMode.FIXED:
        return job_type.material_markup_percent
    if job_type.material_markup_mode == MaterialMarkupMode.TIERED:
        return job_type.material_markup_tiers
    return company_settings.material_markup_tiers


def resolve_unit_cost(
    unit_cost: float,
    taxable: bool,
    company_settings: CompanySettings,
    customer_supplies_materials: bool = False,
    markup: Union[Sequence[MarkupTier], float, None] = None,
) -> MaterialCostBreakdown:
    """Cost build-up for a raw unit cost (material or ad-hoc line)."""
    cost = max(0.0, to_num(unit_cost))
    tax_pct = max(0.0, company_settings.material_purchase_tax_percent)
    tax = cost * tax_pct / 100 if taxable else 0.0

    if markup is None:
        markup = company_settings.material_markup_tiers
    if isinstance(markup, (int, float)):
        markup_pct = float(markup)
    else:
        markup_pct = resolve_markup_percent(cost + tax, markup)
    markup_amount = max(0.0, (cost + tax) * markup_pct / 100)

    misc = 0.0
    if not customer_supplies_materials or company_settings.allow_misc_with_customer_materials:
        misc_pct = max(0.0, company_settings.misc_material_percent)
        misc = (cost + tax + markup_amount) * misc_pct / 100

    return MaterialCostBreakdown(
        base_cost=cost,
        tax=tax,
        markup_percent=markup_pct,
        markup=markup_amount,
        misc=misc,
        total=cost + tax + markup_amount + misc,
    )


def resolve_material_cost(
    material: Union[Material, BlankMaterialLine, float],
    company_settings: CompanySettings,
    customer_supplies_materials: bool = False,
    markup: Union[Sequence[MarkupTier], float, None] = None,
    cost_override: Optional[float] = None,
) -> MaterialCostBreakdown:
    """
    Per-unit {base_cost, tax, markup, misc, total} for a catalogue material,
    an ad-hoc (blank) line, or a bare unit cost (treated as taxable).
    """
    if isinstance(material, Material):
        unit_cost = chosen_unit_cost(material, cost_override)
        taxable = material.taxable
    elif isinstance(material, BlankMaterialLine):
        unit_cost = material.unit_cost if cost_override is None else cost_override
        taxable = material.taxable
    else:
        unit_cost = material if cost_override is None else cost_override
        taxable = True

    return resolve_unit_cost(
        unit_cost,
        taxable,
        company_settings,
        customer_supplies_materials=customer_supplies_materials,
        markup=markup,
    )
