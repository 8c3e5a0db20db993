"""
Data schemas for the estimating engine.

Catalogue entities (company settings, job types, materials, assemblies,
estimates, admin rules) are read-only inputs during a pricing pass.
Result schemas are produced by the pricing engine and rule evaluator.

Numeric inputs come from half-edited forms, so every number is a
"draft" number: blanks and junk coerce to a default instead of failing.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field, model_validator

from field_estimator.utils.numbers import labor_minutes_from_parts, to_num

from .enums import (
    BillingMode,
    EstimateStatus,
    ExpenseFrequency,
    LibraryType,
    MaterialMarkupMode,
    NetProfitGoalMode,
    RuleMetric,
    RuleOperator,
    RuleScope,
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _optional_num(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    n = to_num(value, float("nan"))
    return None if n != n else n


def _draft_int(value: Any) -> int:
    return int(to_num(value))


def _enum_or(default: Enum) -> Callable[[Any], Any]:
    """Case-insensitive enum coercion; blanks and unknown values fall back to ``default``."""
    enum_cls = type(default)

    def coerce(value: Any) -> Any:
        if isinstance(value, enum_cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for member in enum_cls:
                if member.value == key:
                    return member
        return default

    return coerce


def _billing_mode(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in ("flat_rate", "flat-rate"):
        return BillingMode.FLAT
    return _enum_or(BillingMode.FLAT)(value)


DraftFloat = Annotated[float, BeforeValidator(to_num)]
DraftInt = Annotated[int, BeforeValidator(_draft_int)]
OptionalDraftFloat = Annotated[Optional[float], BeforeValidator(_optional_num)]
# Efficiency is a divisor: a blank field means "no adjustment", i.e. 100%.
EfficiencyPercent = Annotated[float, BeforeValidator(lambda v: to_num(v, 100.0))]


# ── Company / Admin ──────────────────────────────────────


class MarkupTier(BaseModel):
    """Markup applied to unit costs inside [min, max] (inclusive)."""
    min: DraftFloat = 0.0
    max: DraftFloat = 0.0
    markup_percent: DraftFloat = 0.0


class TechnicianWage(BaseModel):
    name: str = ""
    hourly_rate: DraftFloat = 0.0


class ExpenseItem(BaseModel):
    name: str = ""
    amount: DraftFloat = 0.0
    frequency: Annotated[
        ExpenseFrequency, BeforeValidator(_enum_or(ExpenseFrequency.MONTHLY))
    ] = ExpenseFrequency.MONTHLY


class CompanySettings(BaseModel):
    """Company-wide capacity, overhead and pricing parameters."""
    id: str = Field(default_factory=_new_id)
    company_id: str = ""

    # ── Capacity ─────────────────────────────────────────
    technicians: DraftFloat = 0.0
    workdays_per_week: DraftFloat = 0.0
    work_hours_per_day: DraftFloat = 0.0
    vacation_days_per_year: DraftFloat = 0.0
    sick_days_per_year: DraftFloat = 0.0
    jobs_per_tech_per_day: DraftFloat = 0.0

    # ── Expenses ─────────────────────────────────────────
    business_apply_itemized: bool = False
    business_expenses_lump_sum_monthly: DraftFloat = 0.0
    business_expenses_itemized: list[ExpenseItem] = []
    personal_apply_itemized: bool = False
    personal_expenses_lump_sum_monthly: DraftFloat = 0.0
    personal_expenses_itemized: list[ExpenseItem] = []

    # ── Wages ────────────────────────────────────────────
    technician_wages: list[TechnicianWage] = Field(default_factory=lambda: [TechnicianWage()])

    # ── Profit goals ─────────────────────────────────────
    net_profit_goal_mode: Annotated[
        NetProfitGoalMode, BeforeValidator(_enum_or(NetProfitGoalMode.PERCENT))
    ] = NetProfitGoalMode.PERCENT
    net_profit_goal_percent_of_revenue: DraftFloat = 0.0
    net_profit_goal_amount_monthly: DraftFloat = 0.0

    # ── Pricing knobs ────────────────────────────────────
    material_markup_tiers: list[MarkupTier] = []
    material_purchase_tax_percent: DraftFloat = 0.0
    misc_material_percent: DraftFloat = 0.0
    allow_misc_with_customer_materials: bool = False
    discount_percent_default: DraftFloat = 0.0
    max_discount_percent: Annotated[float, BeforeValidator(lambda v: to_num(v, 100.0))] = 100.0
    processing_fee_percent: DraftFloat = 0.0
    min_billable_labor_minutes_per_job: DraftFloat = 0.0
    estimate_validity_days: DraftInt = 30
    starting_estimate_number: DraftInt = 1000


# ── Job types / Rules ────────────────────────────────────


class JobType(BaseModel):
    """Margin/efficiency targets for a class of work."""
    id: str = Field(default_factory=_new_id)
    company_id: Optional[str] = None
    name: str = ""
    enabled: bool = True
    is_default: bool = False
    billing_mode: Annotated[BillingMode, BeforeValidator(_billing_mode)] = BillingMode.FLAT
    gross_margin_percent: DraftFloat = 70.0
    efficiency_percent: EfficiencyPercent = 100.0
    allow_discounts: bool = True

    # Hourly mode only: where material markup comes from
    material_markup_mode: Annotated[
        MaterialMarkupMode, BeforeValidator(_enum_or(MaterialMarkupMode.COMPANY_DEFAULT))
    ] = MaterialMarkupMode.COMPANY_DEFAULT
    material_markup_percent: DraftFloat = 0.0
    material_markup_tiers: list[MarkupTier] = []


class RuleCondition(BaseModel):
    """One ``metric <operator> threshold`` test."""
    metric: RuleMetric
    operator: RuleOperator = RuleOperator.GTE
    threshold: DraftFloat = 0.0


class AdminRule(BaseModel):
    """
    Normalized admin rule. Legacy shapes are converted by
    ``persistence.normalize.normalize_admin_rule`` before reaching here.
    All conditions must hold; a rule without conditions never matches.
    """
    id: str = Field(default_factory=_new_id)
    company_id: Optional[str] = None
    name: str = ""
    enabled: bool = True
    scope: Annotated[RuleScope, BeforeValidator(_enum_or(RuleScope.BOTH))] = RuleScope.BOTH
    priority: DraftInt = 0
    conditions: list[RuleCondition] = []
    job_type_id: Optional[str] = None


# ── Materials ────────────────────────────────────────────


class Material(BaseModel):
    id: str = Field(default_factory=_new_id)
    company_id: Optional[str] = None
    folder_id: Optional[str] = None
    library_type: LibraryType = LibraryType.COMPANY

    name: str = ""
    sku: Optional[str] = None
    description: Optional[str] = None

    base_cost: DraftFloat = 0.0
    custom_cost: OptionalDraftFloat = None
    use_custom_cost: bool = False
    taxable: bool = True
    job_type_id: Optional[str] = None

    labor_hours: OptionalDraftFloat = None  # editor convenience, folded into labor_minutes
    labor_minutes: DraftFloat = 0.0

    @model_validator(mode="after")
    def _fold_labor_hours(self) -> "Material":
        if self.labor_hours is not None:
            self.labor_minutes = labor_minutes_from_parts(self.labor_hours, self.labor_minutes)
            self.labor_hours = None
        return self


# ── Line items ───────────────────────────────────────────


class LineItemBase(BaseModel):
    """
    Fields shared by every line kind.

    ``group_id`` marks an assembly line that heads a group of expanded
    children; children point at it through ``parent_group_id`` and keep a
    per-unit ``quantity_factor`` so parent quantity changes rescale them.
    """
    id: str = Field(default_factory=_new_id)
    name: str = ""
    quantity: DraftFloat = 1.0
    group_id: Optional[str] = None
    parent_group_id: Optional[str] = None
    quantity_factor: OptionalDraftFloat = None
    sort_order: DraftInt = 0


class MaterialLine(LineItemBase):
    type: Literal["material"] = "material"
    material_id: str = ""
    material_cost_override: OptionalDraftFloat = None


class BlankMaterialLine(LineItemBase):
    """Ad-hoc material typed straight into an assembly or estimate."""
    type: Literal["blank_material"] = "blank_material"
    unit_cost: DraftFloat = 0.0
    taxable: bool = True
    labor_minutes: DraftFloat = 0.0


class LaborLine(LineItemBase):
    type: Literal["labor"] = "labor"
    description: str = ""
    labor_minutes: DraftFloat = 0.0


class AssemblyLine(LineItemBase):
    type: Literal["assembly"] = "assembly"
    assembly_id: str = ""


AssemblyItem = Annotated[
    Union[MaterialLine, BlankMaterialLine, LaborLine],
    Field(discriminator="type"),
]
EstimateItem = Annotated[
    Union[MaterialLine, BlankMaterialLine, LaborLine, AssemblyLine],
    Field(discriminator="type"),
]
LineItem = Union[MaterialLine, BlankMaterialLine, LaborLine, AssemblyLine]


# ── Assemblies ───────────────────────────────────────────


class Assembly(BaseModel):
    id: str = Field(default_factory=_new_id)
    company_id: Optional[str] = None
    folder_id: Optional[str] = None
    library_type: LibraryType = LibraryType.COMPANY

    name: str = ""
    description: Optional[str] = None
    items: list[AssemblyItem] = []

    job_type_id: Optional[str] = None
    use_admin_rules: bool = False
    job_type_locked_by_rule: bool = False
    customer_supplies_materials: bool = False


# ── Estimates ────────────────────────────────────────────


class EstimateOption(BaseModel):
    """
    An independent line-item set of an estimate (Good/Better/Best).
    ``None`` overrides inherit the estimate-level setting.
    """
    id: str = Field(default_factory=_new_id)
    option_name: str = ""
    sort_order: DraftInt = 0
    items: list[EstimateItem] = []

    job_type_id: Optional[str] = None
    use_admin_rules: Optional[bool] = None
    customer_supplies_materials: Optional[bool] = None
    apply_discount: Optional[bool] = None
    discount_percent: OptionalDraftFloat = None
    apply_processing_fees: Optional[bool] = None
    apply_misc_material: Optional[bool] = None


class Estimate(BaseModel):
    id: str = Field(default_factory=_new_id)
    company_id: str = ""
    number: DraftInt = 0
    name: str = ""
    customer_name: Optional[str] = None
    status: EstimateStatus = EstimateStatus.DRAFT

    items: list[EstimateItem] = []
    options: list[EstimateOption] = []
    active_option_id: Optional[str] = None

    job_type_id: Optional[str] = None
    use_admin_rules: bool = False
    job_type_locked_by_rule: bool = False

    customer_supplies_materials: bool = False
    apply_discount: bool = False
    discount_percent: OptionalDraftFloat = None  # None → company default
    apply_processing_fees: bool = False
    apply_misc_material: bool = True

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    valid_until: Optional[datetime] = None


# ── Snapshot ─────────────────────────────────────────────


class PricingSnapshot(BaseModel):
    """Read-only bundle of everything a pricing pass may look up."""
    company_settings: CompanySettings = Field(default_factory=CompanySettings)
    job_types: dict[str, JobType] = {}
    materials: dict[str, Material] = {}
    assemblies: dict[str, Assembly] = {}
    admin_rules: list[AdminRule] = []


# ── Results ──────────────────────────────────────────────


class MaterialCostBreakdown(BaseModel):
    """Per-unit material cost build-up."""
    base_cost: float = 0.0
    tax: float = 0.0
    markup_percent: float = 0.0
    markup: float = 0.0
    misc: float = 0.0
    total: float = 0.0


class LaborMinutes(BaseModel):
    baseline: float = 0.0  # "actual" minutes as entered
    expected: float = 0.0  # efficiency-adjusted, billable minutes


class RequiredRevenue(BaseModel):
    cogs_per_billable_hour: float = 0.0
    revenue_per_billable_hour_for_gross_margin: float = 0.0
    revenue_per_billable_hour_for_net_profit: float = 0.0
    required_revenue_per_billable_hour: float = 0.0
    revenue_goal_per_month: float = 0.0


class TechCostBreakdown(BaseModel):
    efficiency_percent: float = 100.0
    gross_margin_target_percent: float = 0.0

    overhead_monthly: float = 0.0
    overhead_annual: float = 0.0

    workdays_per_year: float = 0.0
    total_hours_year: float = 0.0
    effective_hours_year: float = 0.0
    billable_hours_per_month: float = 0.0

    avg_tech_wage: float = 0.0
    overhead_per_hour: float = 0.0
    wage_cost_per_billable_hour: float = 0.0
    loaded_labor_rate: float = 0.0
    labor_sell_rate: float = 0.0

    cogs_per_billable_hour: float = 0.0
    revenue_per_billable_hour_for_gross_margin: float = 0.0
    revenue_per_billable_hour_for_net_profit: float = 0.0
    required_revenue_per_billable_hour: float = 0.0
    revenue_goal_per_month: float = 0.0


class PricingLine(BaseModel):
    """One priced line; labor price is proportional and not rounded."""
    item_id: str = ""
    type: str = ""
    name: Optional[str] = None
    quantity: float = 0.0
    material_cost: float = 0.0
    material_price: float = 0.0
    misc_material: float = 0.0
    labor_minutes: float = 0.0
    labor_price: float = 0.0
    total_price: float = 0.0


class ExpectedMetrics(BaseModel):
    """Numbers an admin rule condition can test against."""
    expected_labor_minutes: float = 0.0
    expected_labor_hours: float = 0.0
    material_cost: float = 0.0
    line_item_count: int = 0
    any_line_item_qty: float = 0.0

    def get_metric(self, metric: RuleMetric | str) -> float:
        return float(getattr(self, RuleMetric(metric).value))


class AssemblyPricing(BaseModel):
    assembly_id: str = ""
    job_type_id: Optional[str] = None
    material_cost_total: float = 0.0
    material_price_total: float = 0.0
    misc_material_price: float = 0.0
    labor_minutes_actual: float = 0.0
    labor_minutes_expected: float = 0.0
    labor_minutes_total: float = 0.0
    labor_rate: float = 0.0
    labor_price_total: float = 0.0
    total_price: float = 0.0
    lines: list[PricingLine] = []
    metrics: ExpectedMetrics = Field(default_factory=ExpectedMetrics)


class EstimatePricing(BaseModel):
    estimate_id: str = ""
    option_id: Optional[str] = None
    job_type_id: Optional[str] = None

    material_cost: float = 0.0
    material_price: float = 0.0
    misc_material: float = 0.0

    labor_minutes_actual: float = 0.0
    labor_minutes_expected: float = 0.0
    labor_rate: float = 0.0
    labor_cost: float = 0.0
    labor_price: float = 0.0

    pre_discount_total: float = 0.0
    discount_percent: float = 0.0
    discount_amount: float = 0.0
    subtotal_before_processing: float = 0.0
    processing_fee: float = 0.0
    total: float = 0.0

    gross_margin_target_percent: float = 0.0
    gross_margin_expected_percent: float = 0.0

    lines: list[PricingLine] = []
    metrics: ExpectedMetrics = Field(default_factory=ExpectedMetrics)


class RuleApplication(BaseModel):
    """Outcome of one explicit "apply admin rules" action."""
    matched_rule_id: Optional[str] = None
    previous_job_type_id: Optional[str] = None
    job_type_id: Optional[str] = None
    changed: bool = False
