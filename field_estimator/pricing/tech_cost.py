"""
Capacity & Overhead Model (Tech Cost Breakdown).

Converts company staffing and expense parameters into an overhead rate and
a loaded labor rate per billable hour, for a given job type:

  1. monthly overhead   = business + personal (lump sum or itemized)
  2. annual overhead    = monthly × 12
  3. workdays / year    = max(0, workdays/week × 52 − vacation − sick)
  4. total hours / year = workdays × hours/day × technicians
  5. effective hours    = total × max(0, efficiency%) / 100
  6. overhead / hour    = annual overhead / effective hours
  7. average wage       = mean of wage rows with a positive rate
  8. wage cost / hour   = average wage × total hours / effective hours
  9. loaded labor rate  = overhead / hour + wage cost / hour

Every rate with a non-positive hours denominator is 0.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from field_estimator.config import get_settings
from field_estimator.models.enums import ExpenseFrequency, NetProfitGoalMode
from field_estimator.models.schemas import (
    CompanySettings,
    ExpenseItem,
    JobType,
    TechCostBreakdown,
    TechnicianWage,
)
from field_estimator.pricing.revenue import solve_required_revenue
from field_estimator.utils.numbers import clamp_pct, safe_div, to_num

logger = logging.getLogger(__name__)

MONTHLY_MULTIPLIER = {
    ExpenseFrequency.MONTHLY: 1.0,
    ExpenseFrequency.QUARTERLY: 1 / 3,
    ExpenseFrequency.BIANNUAL: 1 / 6,
    ExpenseFrequency.ANNUAL: 1 / 12,
}


def monthly_from_itemized(items: Sequence[ExpenseItem]) -> float:
    return sum(it.amount * MONTHLY_MULTIPLIER.get(it.frequency, 1.0) for it in items)


def monthly_overhead(company: CompanySettings) -> float:
    business = (
        monthly_from_itemized(company.business_expenses_itemized)
        if company.business_apply_itemized
        else company.business_expenses_lump_sum_monthly
    )
    personal = (
        monthly_from_itemized(company.personal_expenses_itemized)
        if company.personal_apply_itemized
        else company.personal_expenses_lump_sum_monthly
    )
    return business + personal


def average_wage(wages: Sequence[TechnicianWage]) -> float:
    rates = [w.hourly_rate for w in wages if w.hourly_rate > 0]
    if not rates:
        return 0.0
    return sum(rates) / len(rates)


def labor_sell_rate(loaded_labor_rate: float, gross_margin_percent: float) -> float:
    """Hourly sell rate that earns the margin target on the loaded rate."""
    denom = 1 - clamp_pct(gross_margin_percent) / 100
    if denom <= 0:
        return 0.0
    return loaded_labor_rate / denom


def compute_tech_cost_breakdown(
    company_settings: CompanySettings,
    job_type: Optional[JobType] = None,
) -> TechCostBreakdown:
    """
    Full capacity/overhead breakdown plus required-revenue figures.

    ``job_type`` is the company default job type for company-wide numbers, or
    the estimate/assembly's effective job type for tech views. Without one,
    the configured fallback efficiency and margin are used.
    """
    settings = get_settings()
    if job_type is not None:
        efficiency = to_num(job_type.efficiency_percent, settings.default_efficiency_percent)
        gross_margin = clamp_pct(job_type.gross_margin_percent)
    else:
        efficiency = settings.default_efficiency_percent
        gross_margin = clamp_pct(settings.default_gross_margin_percent)

    overhead_month = monthly_overhead(company_settings)
    overhead_year = overhead_month * 12

    workdays_year = max(
        0.0,
        company_settings.workdays_per_week * 52
        - company_settings.vacation_days_per_year
        - company_settings.sick_days_per_year,
    )
    technicians = max(0.0, company_settings.technicians)
    total_hours = workdays_year * company_settings.work_hours_per_day * technicians
    effective_hours = total_hours * max(0.0, efficiency) / 100

    overhead_per_hour = safe_div(overhead_year, effective_hours)
    avg_wage = average_wage(company_settings.technician_wages)
    # Paid hours over billable hours: inefficiency raises the wage cost of each billable hour.
    wage_cost_per_hour = safe_div(avg_wage * total_hours, effective_hours)
    loaded_rate = overhead_per_hour + wage_cost_per_hour
    billable_per_month = effective_hours / 12

    if company_settings.net_profit_goal_mode == NetProfitGoalMode.PERCENT:
        net_profit_value = company_settings.net_profit_goal_percent_of_revenue
    else:
        net_profit_value = company_settings.net_profit_goal_amount_monthly

    revenue = solve_required_revenue(
        gross_margin_percent=gross_margin,
        net_profit_mode=company_settings.net_profit_goal_mode,
        net_profit_value=net_profit_value,
        wage_cost_per_billable_hour=wage_cost_per_hour,
        overhead_per_hour=overhead_per_hour,
        billable_hours_per_month=billable_per_month,
    )

    logger.debug(
        f"Tech cost: effective_hours={effective_hours:.1f} "
        f"overhead/h={overhead_per_hour:.2f} loaded={loaded_rate:.2f}"
    )

    return TechCostBreakdown(
        efficiency_percent=efficiency,
        gross_margin_target_percent=gross_margin,
        overhead_monthly=overhead_month,
        overhead_annual=overhead_year,
        workdays_per_year=workdays_year,
        total_hours_year=total_hours,
        effective_hours_year=effective_hours,
        billable_hours_per_month=billable_per_month,
        avg_tech_wage=avg_wage,
        overhead_per_hour=overhead_per_hour,
        wage_cost_per_billable_hour=wage_cost_per_hour,
        loaded_labor_rate=loaded_rate,
        labor_sell_rate=labor_sell_rate(loaded_rate, gross_margin),
        **revenue.model_dump(),
    )
