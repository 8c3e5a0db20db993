from enum import Enum

class BillingMode(str, Enum):
    FLAT = "flat"
    HOURLY = "hourly"

class MaterialMarkupMode(str, Enum):
    COMPANY_DEFAULT = "company_default"
    FIXED = "fixed"
    TIERED = "tiered"

class ExpenseFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BIANNUAL = "biannual"
    ANNUAL = "annual"

class NetProfitGoalMode(str, Enum):
    PERCENT = "percent"
    FIXED = "fixed"

class LibraryType(str, Enum):
    COMPANY = "company"
    APP = "app"

class EstimateStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    DECLINED = "declined"
    ARCHIVED = "archived"

class RuleScope(str, Enum):
    ESTIMATE = "estimate"
    ASSEMBLY = "assembly"
    BOTH = "both"

class RuleMetric(str, Enum):
    EXPECTED_LABOR_HOURS = "expected_labor_hours"
    EXPECTED_LABOR_MINUTES = "expected_labor_minutes"
    MATERIAL_COST = "material_cost"
    LINE_ITEM_COUNT = "line_item_count"
    ANY_LINE_ITEM_QTY = "any_line_item_qty"

class RuleOperator(str, Enum):
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    EQ = "=="
    NEQ = "!="
