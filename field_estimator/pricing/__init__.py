"""
Pricing engine — pure, synchronous calculators over an in-memory snapshot.

Callers import from this package:
    from field_estimator.pricing import compute_estimate_pricing
"""

from .markup import resolve_material_cost, resolve_markup_percent, markup_tiers_for
from .labor import aggregate_labor_minutes, apply_efficiency
from .tech_cost import compute_tech_cost_breakdown, labor_sell_rate
from .revenue import solve_required_revenue
from .assembly import compute_assembly_pricing
from .estimate import (
    active_option,
    compute_estimate_pricing,
    compute_option_totals,
    estimate_for_option,
)
from .line_items import (
    attach_to_group,
    effective_quantities,
    expand_assembly,
    set_group_quantity,
)
from .lines import resolve_job_type

__all__ = [
    "resolve_material_cost",
    "resolve_markup_percent",
    "markup_tiers_for",
    "aggregate_labor_minutes",
    "apply_efficiency",
    "compute_tech_cost_breakdown",
    "labor_sell_rate",
    "solve_required_revenue",
    "compute_assembly_pricing",
    "compute_estimate_pricing",
    "compute_option_totals",
    "active_option",
    "estimate_for_option",
    "attach_to_group",
    "effective_quantities",
    "expand_assembly",
    "set_group_quantity",
    "resolve_job_type",
]
