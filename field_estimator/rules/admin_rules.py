"""
Admin Rules — threshold policies that can override the job type of an
estimate or assembly.

Evaluated once per explicit "apply rules" action against the expected
metrics computed under the current job type. Rules arrive already
normalized (see ``persistence.normalize``).
"""

from __future__ import annotations

import logging
import operator as op
from typing import Callable, Optional, Sequence

from field_estimator.models.enums import RuleOperator, RuleScope
from field_estimator.models.schemas import AdminRule, ExpectedMetrics, RuleCondition

logger = logging.getLogger(__name__)

_OPERATORS: dict[RuleOperator, Callable[[float, float], bool]] = {
    RuleOperator.GT: op.gt,
    RuleOperator.GTE: op.ge,
    RuleOperator.LT: op.lt,
    RuleOperator.LTE: op.le,
    RuleOperator.EQ: op.eq,
    RuleOperator.NEQ: op.ne,
}


def compare(operator: RuleOperator | str, metric: float, threshold: float) -> bool:
    """``metric <operator> threshold``; unknown operators never match."""
    try:
        fn = _OPERATORS[RuleOperator(operator)]
    except ValueError:
        logger.debug(f"Unknown rule operator {operator!r}")
        return False
    return fn(metric, threshold)


class AdminRuleEvaluator:
    """Picks the first matching rule (lowest priority number) for a scope."""

    def __init__(self, rules: Sequence[AdminRule]):
        self._rules = list(rules)

    def candidates(self, scope: Optional[RuleScope | str] = None) -> list[AdminRule]:
        """
        Enabled rules for ``scope`` (``both`` always applies), priority ascending.
        Rules without a target job type can never change anything and are skipped.
        """
        wanted = RuleScope(scope) if scope is not None else None
        eligible = [
            r for r in self._rules
            if r.enabled and r.job_type_id
            and (wanted is None or r.scope in (wanted, RuleScope.BOTH))
        ]
        return sorted(eligible, key=lambda r: r.priority)

    @staticmethod
    def condition_holds(condition: RuleCondition, metrics: ExpectedMetrics) -> bool:
        return compare(condition.operator, metrics.get_metric(condition.metric), condition.threshold)

    def matches(self, rule: AdminRule, metrics: ExpectedMetrics) -> bool:
        if not rule.conditions:
            return False
        return all(self.condition_holds(c, metrics) for c in rule.conditions)

    def first_match(
        self,
        metrics: ExpectedMetrics,
        scope: Optional[RuleScope | str] = None,
    ) -> Optional[AdminRule]:
        for rule in self.candidates(scope):
            if self.matches(rule, metrics):
                logger.info(f"Admin rule '{rule.name or rule.id}' matched → job type {rule.job_type_id}")
                return rule
        logger.debug("No admin rule matched")
        return None


def evaluate_admin_rules(
    rules: Sequence[AdminRule],
    expected_metrics: ExpectedMetrics,
    scope: Optional[RuleScope | str] = None,
) -> Optional[str]:
    """Target job type id of the winning rule, or None (job type unchanged)."""
    rule = AdminRuleEvaluator(rules).first_match(expected_metrics, scope)
    return rule.job_type_id if rule else None
