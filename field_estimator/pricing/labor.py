"""
Labor Aggregator — sums labor minutes across heterogeneous line items and
inflates them by the job type's efficiency.
"""

from __future__ import annotations

import logging
import math
from typing import Mapping, Optional, Sequence

from field_estimator.models.schemas import (
    Assembly,
    AssemblyLine,
    BlankMaterialLine,
    LaborLine,
    LaborMinutes,
    LineItemBase,
    Material,
    MaterialLine,
)
from field_estimator.pricing.line_items import effective_quantities, group_heads, groups_by_id
from field_estimator.utils.numbers import to_num

logger = logging.getLogger(__name__)

# Absorbs float noise before ceiling (e.g. 200.00000000003 → 200).
_CEIL_EPSILON = 1e-9


def apply_efficiency(baseline_minutes: float, efficiency_percent: float) -> float:
    """
    Expected minutes = ceil(baseline / (efficiency / 100)).

    Efficiency ≤ 0 (no usable divisor) and exactly 100% leave the baseline
    unchanged.
    """
    eff = to_num(efficiency_percent)
    if eff <= 0 or eff == 100:
        return baseline_minutes
    return float(math.ceil(baseline_minutes / (eff / 100) - _CEIL_EPSILON))


def line_labor_minutes(
    item: LineItemBase,
    quantity: float,
    nested: bool,
    materials_by_id: Mapping[str, Material],
    assemblies_by_id: Optional[Mapping[str, Assembly]] = None,
) -> float:
    """Baseline minutes contributed by one line at the given effective quantity."""
    if isinstance(item, MaterialLine):
        material = materials_by_id.get(item.material_id)
        if material is None:
            logger.debug(f"Skipping labor for unknown material {item.material_id}")
            return 0.0
        return max(0.0, material.labor_minutes) * quantity
    if isinstance(item, BlankMaterialLine):
        return max(0.0, item.labor_minutes) * quantity
    if isinstance(item, LaborLine):
        # Stand-alone labor is a flat block of minutes; grouped labor scales with its parent.
        return max(0.0, item.labor_minutes) * (quantity if nested else 1.0)
    if isinstance(item, AssemblyLine):
        assembly = (assemblies_by_id or {}).get(item.assembly_id)
        if assembly is None:
            logger.debug(f"Skipping labor for unknown assembly {item.assembly_id}")
            return 0.0
        return baseline_labor_minutes(assembly.items, materials_by_id, assemblies_by_id) * quantity
    return 0.0


def baseline_labor_minutes(
    items: Sequence[LineItemBase],
    materials_by_id: Mapping[str, Material],
    assemblies_by_id: Optional[Mapping[str, Assembly]] = None,
) -> float:
    """Unadjusted minutes of a line-item list (group heads count through their children)."""
    quantities = effective_quantities(items)
    heads = group_heads(items)
    groups = groups_by_id(items)

    total = 0.0
    for item in items:
        if item.group_id and item.group_id in heads:
            continue
        nested = bool(item.parent_group_id) and item.parent_group_id in groups
        total += line_labor_minutes(
            item, quantities[item.id], nested, materials_by_id, assemblies_by_id,
        )
    return total


def aggregate_labor_minutes(
    items: Sequence[LineItemBase],
    materials_by_id: Mapping[str, Material],
    efficiency_percent: float,
    assemblies_by_id: Optional[Mapping[str, Assembly]] = None,
    min_billable_minutes: float = 0.0,
) -> LaborMinutes:
    """
    Baseline ("actual") and efficiency-adjusted ("expected") minutes.

    ``min_billable_minutes`` is the flat-rate per-job floor; it only applies
    to a non-empty item list.
    """
    baseline = baseline_labor_minutes(items, materials_by_id, assemblies_by_id)
    expected = apply_efficiency(baseline, efficiency_percent)

    floor = max(0.0, to_num(min_billable_minutes))
    if floor > 0 and items and expected < floor:
        expected = floor

    return LaborMinutes(baseline=baseline, expected=expected)
