"""
Line walk shared by the assembly and estimate engines.

Prices the material side of every line (via the markup/tax resolver) and
records each line's baseline labor minutes; labor dollars are spread over
the lines afterwards by ``distribute_labor_price``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Mapping, Optional, Sequence, Union

from field_estimator.models.schemas import (
    Assembly,
    AssemblyLine,
    BlankMaterialLine,
    CompanySettings,
    ExpectedMetrics,
    JobType,
    LaborLine,
    LaborMinutes,
    LineItemBase,
    MarkupTier,
    Material,
    MaterialCostBreakdown,
    MaterialLine,
    PricingLine,
)
from field_estimator.pricing.labor import line_labor_minutes
from field_estimator.pricing.line_items import effective_quantities, group_heads, groups_by_id
from field_estimator.pricing.markup import resolve_material_cost

logger = logging.getLogger(__name__)


def default_job_type(job_types_by_id: Mapping[str, JobType]) -> Optional[JobType]:
    for job_type in job_types_by_id.values():
        if job_type.is_default:
            return job_type
    return None


def resolve_job_type(
    job_type_id: Optional[str],
    job_types_by_id: Mapping[str, JobType],
) -> Optional[JobType]:
    """Selected job type, else the company default, else None (configured fallback)."""
    if job_type_id and job_type_id in job_types_by_id:
        return job_types_by_id[job_type_id]
    if job_type_id:
        logger.debug(f"Job type {job_type_id} not found, using company default")
    return default_job_type(job_types_by_id)


@dataclass(frozen=True)
class LineContext:
    """Everything the walk needs besides the items themselves."""
    company_settings: CompanySettings
    materials_by_id: Mapping[str, Material]
    assemblies_by_id: Mapping[str, Assembly]
    markup: Union[Sequence[MarkupTier], float]
    customer_supplies_materials: bool = False
    apply_misc_material: bool = True


def _material_amounts(
    unit: MaterialCostBreakdown,
    quantity: float,
    ctx: LineContext,
) -> tuple[float, float, float]:
    """(cost, price, misc) for ``quantity`` units; customer-supplied lines keep only misc."""
    misc = unit.misc if ctx.apply_misc_material else 0.0
    if ctx.customer_supplies_materials:
        return 0.0, misc * quantity, misc * quantity
    cost = unit.base_cost + unit.tax
    price = cost + unit.markup + misc
    return cost * quantity, price * quantity, misc * quantity


def price_lines(items: Sequence[LineItemBase], ctx: LineContext) -> list[PricingLine]:
    """Material side and baseline minutes of every priced line; unknown ids are skipped."""
    quantities = effective_quantities(items)
    heads = group_heads(items)
    groups = groups_by_id(items)
    lines: list[PricingLine] = []

    for item in items:
        if item.group_id and item.group_id in heads:
            continue  # the group's children carry its contribution
        qty = quantities[item.id]
        nested = bool(item.parent_group_id) and item.parent_group_id in groups
        minutes = line_labor_minutes(
            item, qty, nested, ctx.materials_by_id, ctx.assemblies_by_id,
        )
        line = PricingLine(item_id=item.id, type=item.type, name=item.name or None,
                           quantity=qty, labor_minutes=minutes)

        if isinstance(item, MaterialLine):
            material = ctx.materials_by_id.get(item.material_id)
            if material is None:
                logger.debug(f"Skipping line {item.id}: unknown material {item.material_id}")
                continue
            unit = resolve_material_cost(
                material,
                ctx.company_settings,
                customer_supplies_materials=ctx.customer_supplies_materials,
                markup=ctx.markup,
                cost_override=item.material_cost_override,
            )
            cost, price, misc = _material_amounts(unit, qty, ctx)
            line = line.model_copy(update={
                "name": item.name or material.name,
                "material_cost": cost, "material_price": price, "misc_material": misc,
            })

        elif isinstance(item, BlankMaterialLine):
            unit = resolve_material_cost(
                item,
                ctx.company_settings,
                customer_supplies_materials=ctx.customer_supplies_materials,
                markup=ctx.markup,
            )
            cost, price, misc = _material_amounts(unit, qty, ctx)
            line = line.model_copy(update={
                "material_cost": cost, "material_price": price, "misc_material": misc,
            })

        elif isinstance(item, AssemblyLine):
            assembly = ctx.assemblies_by_id.get(item.assembly_id)
            if assembly is None:
                logger.debug(f"Skipping line {item.id}: unknown assembly {item.assembly_id}")
                continue
            sub_ctx = replace(
                ctx,
                customer_supplies_materials=(
                    ctx.customer_supplies_materials or assembly.customer_supplies_materials
                ),
            )
            sub_lines = price_lines(assembly.items, sub_ctx)
            line = line.model_copy(update={
                "name": item.name or assembly.name,
                "material_cost": sum(s.material_cost for s in sub_lines) * qty,
                "material_price": sum(s.material_price for s in sub_lines) * qty,
                "misc_material": sum(s.misc_material for s in sub_lines) * qty,
            })

        elif not isinstance(item, LaborLine):
            continue

        lines.append(line)

    return lines


def distribute_labor_price(lines: list[PricingLine], labor_price_total: float) -> list[PricingLine]:
    """Spread the labor total over lines in proportion to their baseline minutes."""
    total_minutes = sum(line.labor_minutes for line in lines)
    priced: list[PricingLine] = []
    for line in lines:
        share = line.labor_minutes / total_minutes if total_minutes > 0 else 0.0
        labor_price = labor_price_total * share
        priced.append(line.model_copy(update={
            "labor_price": labor_price,
            "total_price": line.material_price + labor_price,
        }))
    return priced


def expected_metrics(
    lines: Sequence[PricingLine],
    labor: LaborMinutes,
    material_cost: float,
) -> ExpectedMetrics:
    return ExpectedMetrics(
        expected_labor_minutes=labor.expected,
        expected_labor_hours=labor.expected / 60,
        material_cost=material_cost,
        line_item_count=len(lines),
        any_line_item_qty=max((line.quantity for line in lines), default=0.0),
    )
