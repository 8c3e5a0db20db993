"""
Assembly Pricing Engine — prices one reusable bundle of materials and labor.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from field_estimator.models.schemas import (
    Assembly,
    AssemblyPricing,
    CompanySettings,
    JobType,
    Material,
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


def compute_assembly_pricing(
    assembly: Assembly,
    materials_by_id: Mapping[str, Material],
    job_types_by_id: Mapping[str, JobType],
    company_settings: CompanySettings,
    job_type_id: Optional[str] = None,
) -> AssemblyPricing:
    """
    Material cost/price, labor minutes and labor price of an assembly.

    ``job_type_id`` overrides the assembly's own selection (used when
    re-pricing after admin rules picked a job type).
    """
    job_type = resolve_job_type(job_type_id or assembly.job_type_id, job_types_by_id)
    tech = compute_tech_cost_breakdown(company_settings, job_type)

    ctx = LineContext(
        company_settings=company_settings,
        materials_by_id=materials_by_id,
        assemblies_by_id={},
        markup=markup_tiers_for(company_settings, job_type),
        customer_supplies_materials=assembly.customer_supplies_materials,
    )
    lines = price_lines(assembly.items, ctx)

    labor = aggregate_labor_minutes(assembly.items, materials_by_id, tech.efficiency_percent)
    labor_price = labor.expected / 60 * tech.labor_sell_rate
    lines = distribute_labor_price(lines, labor_price)

    material_cost = sum(line.material_cost for line in lines)
    material_price = sum(line.material_price for line in lines)
    misc = sum(line.misc_material for line in lines)

    logger.debug(
        f"Assembly {assembly.id}: materials ${material_price:,.2f}, "
        f"labor {labor.expected:.0f} min @ ${tech.labor_sell_rate:,.2f}/h"
    )

    return AssemblyPricing(
        assembly_id=assembly.id,
        job_type_id=job_type.id if job_type else None,
        material_cost_total=material_cost,
        material_price_total=material_price,
        misc_material_price=misc,
        labor_minutes_actual=labor.baseline,
        labor_minutes_expected=labor.expected,
        labor_minutes_total=labor.expected,
        labor_rate=tech.labor_sell_rate,
        labor_price_total=labor_price,
        total_price=material_price + labor_price,
        lines=lines,
        metrics=expected_metrics(lines, labor, material_cost),
    )
