"""Rules — admin job-type rules and company settings checks."""

from .admin_rules import AdminRuleEvaluator, compare, evaluate_admin_rules
from .settings_rules import CompanySettingsRules

__all__ = ["AdminRuleEvaluator", "compare", "evaluate_admin_rules", "CompanySettingsRules"]
