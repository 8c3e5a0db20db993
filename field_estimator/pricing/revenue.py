"""
Required-Revenue Solver — minimum sell rate per billable hour that meets
both the job type's gross-margin target and the company's net-profit goal.

Advisory only (dashboards / tech view); line pricing does not use it.
"""

from __future__ import annotations

from field_estimator.models.enums import NetProfitGoalMode
from field_estimator.models.schemas import RequiredRevenue
from field_estimator.utils.numbers import clamp_pct, safe_div, to_num


def revenue_for_gross_margin(cogs_per_hour: float, gross_margin_percent: float) -> float:
    """COGS / (1 − margin); 0 once the margin reaches 100%."""
    margin = clamp_pct(gross_margin_percent) / 100
    denom = 1 - margin
    if denom <= 0:
        return 0.0
    return cogs_per_hour / denom


def revenue_for_net_profit(
    cogs_per_hour: float,
    overhead_per_hour: float,
    mode: NetProfitGoalMode | str,
    value: float,
    billable_hours_per_month: float,
) -> float:
    """
    Percent mode: (COGS + overhead) / (1 − NP%), 0 once NP% reaches 100.
    Fixed mode: COGS + overhead + monthly goal spread over billable hours.
    """
    cost_plus_overhead = cogs_per_hour + overhead_per_hour
    if NetProfitGoalMode(mode) == NetProfitGoalMode.PERCENT:
        denom = 1 - max(0.0, to_num(value)) / 100
        if denom <= 0:
            return 0.0
        return cost_plus_overhead / denom
    profit_per_hour = safe_div(max(0.0, to_num(value)), billable_hours_per_month)
    return cost_plus_overhead + profit_per_hour


def solve_required_revenue(
    gross_margin_percent: float,
    net_profit_mode: NetProfitGoalMode | str,
    net_profit_value: float,
    wage_cost_per_billable_hour: float,
    overhead_per_hour: float,
    billable_hours_per_month: float,
) -> RequiredRevenue:
    """Both constraints must hold, so the required rate is the larger candidate."""
    cogs = wage_cost_per_billable_hour
    for_margin = revenue_for_gross_margin(cogs, gross_margin_percent)
    for_profit = revenue_for_net_profit(
        cogs, overhead_per_hour, net_profit_mode, net_profit_value, billable_hours_per_month,
    )
    required = max(for_margin, for_profit)
    return RequiredRevenue(
        cogs_per_billable_hour=cogs,
        revenue_per_billable_hour_for_gross_margin=for_margin,
        revenue_per_billable_hour_for_net_profit=for_profit,
        required_revenue_per_billable_hour=required,
        revenue_goal_per_month=max(0.0, billable_hours_per_month) * required,
    )
