"""
Record normalization at the repository boundary.

Admin rules have been stored in three shapes over time:

  legacy     {"min_expected_labor_minutes": 120, "min_material_cost": 500, ...}
  single     {"condition_type": "material_cost", "operator": ">=", "threshold": 500}
  current    {"conditions": [{"metric": ..., "operator": ..., "threshold": ...}]}

The single/current shapes may also be nested under ``definition_json``
(or ``definitionJson``). All of them become one ``AdminRule`` with a list
of AND-combined conditions; the evaluator only ever sees that form.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping

from field_estimator.models.enums import RuleMetric, RuleOperator
from field_estimator.models.schemas import AdminRule, CompanySettings, RuleCondition, TechnicianWage
from field_estimator.utils.numbers import to_num

logger = logging.getLogger(__name__)

LEGACY_THRESHOLDS: dict[str, RuleMetric] = {
    "min_expected_labor_minutes": RuleMetric.EXPECTED_LABOR_MINUTES,
    "min_material_cost": RuleMetric.MATERIAL_COST,
    "min_quantity": RuleMetric.ANY_LINE_ITEM_QTY,
}

_CAMEL_KEYS = {
    "companyId": "company_id",
    "jobTypeId": "job_type_id",
    "definitionJson": "definition_json",
    "conditionType": "condition_type",
}


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return math.isfinite(to_num(value, float("nan")))


def _condition(metric: Any, operator: Any, threshold: Any) -> RuleCondition | None:
    try:
        return RuleCondition(
            metric=RuleMetric(metric),
            operator=RuleOperator(operator or RuleOperator.GTE),
            threshold=threshold,
        )
    except ValueError as e:
        logger.warning(f"Dropping malformed rule condition ({metric!r} {operator!r} {threshold!r}): {e}")
        return None


def _conditions_from(source: Mapping[str, Any]) -> list[RuleCondition]:
    conditions: list[RuleCondition] = []

    for raw in source.get("conditions") or []:
        if not isinstance(raw, Mapping):
            continue
        metric = raw.get("metric", raw.get("condition_type", raw.get("conditionType")))
        cond = _condition(metric, raw.get("operator"), raw.get("threshold"))
        if cond is not None:
            conditions.append(cond)

    condition_type = source.get("condition_type")
    if condition_type and _present(source.get("threshold")):
        cond = _condition(condition_type, source.get("operator"), source.get("threshold"))
        if cond is not None:
            conditions.append(cond)

    for key, metric in LEGACY_THRESHOLDS.items():
        if _present(source.get(key)):
            conditions.append(RuleCondition(metric=metric, operator=RuleOperator.GTE, threshold=source[key]))

    return conditions


def normalize_admin_rule(raw: Mapping[str, Any] | AdminRule) -> AdminRule:
    """Convert any stored admin-rule shape into the normalized model."""
    if isinstance(raw, AdminRule):
        return raw

    data = {_CAMEL_KEYS.get(k, k): v for k, v in raw.items()}
    definition = data.pop("definition_json", None) or {}
    if isinstance(definition, Mapping):
        definition = {_CAMEL_KEYS.get(k, k): v for k, v in definition.items()}
    else:
        definition = {}

    conditions = _conditions_from(data) + _conditions_from(definition)

    fields = {
        k: v for k, v in data.items()
        if k in AdminRule.model_fields and k != "conditions" and v not in (None, "")
    }
    if "job_type_id" not in fields and definition.get("job_type_id"):
        fields["job_type_id"] = definition["job_type_id"]

    rule = AdminRule(**fields, conditions=conditions)
    if not conditions:
        logger.debug(f"Admin rule {rule.id} has no thresholds and will never match")
    return rule


def sync_technician_wages(company: CompanySettings) -> CompanySettings:
    """
    Keep one wage row per technician (fractional counts round up), never
    fewer than one. Extra rows are dropped from the end; new rows are blank.
    """
    wanted = max(1, math.ceil(max(0.0, company.technicians)))
    wages = list(company.technician_wages[:wanted])
    while len(wages) < wanted:
        wages.append(TechnicianWage(name=f"Technician {len(wages) + 1}"))
    if len(wages) == len(company.technician_wages):
        return company
    return company.model_copy(update={"technician_wages": wages})
