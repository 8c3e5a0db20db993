"""
Pricing Service — runs the pricing engine against a catalogue snapshot and
implements the explicit "apply admin rules" action.

Applying rules is a single pass: price under the current job type, evaluate
the rules once against those expected metrics, and if a rule picks a
different job type, re-price once with it. The result is stable until the
user triggers the action again.
"""

from __future__ import annotations

import logging
from typing import Optional

from field_estimator.models.enums import RuleScope
from field_estimator.models.schemas import (
    Assembly,
    AssemblyPricing,
    Estimate,
    EstimatePricing,
    PricingSnapshot,
    RuleApplication,
    TechCostBreakdown,
)
from field_estimator.pricing.assembly import compute_assembly_pricing
from field_estimator.pricing.estimate import (
    compute_estimate_pricing,
    compute_option_totals,
    estimate_for_option,
)
from field_estimator.pricing.lines import default_job_type, resolve_job_type
from field_estimator.pricing.tech_cost import compute_tech_cost_breakdown
from field_estimator.rules.admin_rules import AdminRuleEvaluator
from field_estimator.services.estimate_service import ensure_editable

logger = logging.getLogger(__name__)


class PricingService:
    """Prices assemblies/estimates from one read-only ``PricingSnapshot``."""

    def __init__(self, snapshot: PricingSnapshot):
        self.snapshot = snapshot
        self._rules = AdminRuleEvaluator(snapshot.admin_rules)

    # ── Plain pricing ────────────────────────────────────

    def tech_cost(self, job_type_id: Optional[str] = None) -> TechCostBreakdown:
        """Company-wide numbers use the default job type; pass an id for a tech view."""
        if job_type_id:
            job_type = resolve_job_type(job_type_id, self.snapshot.job_types)
        else:
            job_type = default_job_type(self.snapshot.job_types)
        return compute_tech_cost_breakdown(self.snapshot.company_settings, job_type)

    def price_assembly(self, assembly: Assembly, job_type_id: Optional[str] = None) -> AssemblyPricing:
        return compute_assembly_pricing(
            assembly,
            self.snapshot.materials,
            self.snapshot.job_types,
            self.snapshot.company_settings,
            job_type_id=job_type_id,
        )

    def price_estimate(
        self,
        estimate: Estimate,
        option_id: Optional[str] = None,
        job_type_id: Optional[str] = None,
    ) -> EstimatePricing:
        return compute_estimate_pricing(
            estimate,
            self.snapshot.materials,
            self.snapshot.assemblies,
            self.snapshot.job_types,
            self.snapshot.company_settings,
            option_id=option_id,
            job_type_id=job_type_id,
        )

    def option_totals(self, estimate: Estimate) -> dict[str, float]:
        return compute_option_totals(estimate, self.snapshot)

    # ── Admin rules ──────────────────────────────────────

    def _target_job_type(self, target_id: Optional[str], current_id: Optional[str]) -> Optional[str]:
        """Winning rule's job type, if it exists and differs from the current one."""
        if target_id is None or target_id == current_id:
            return None
        if target_id not in self.snapshot.job_types:
            logger.warning(f"Admin rule targets unknown job type {target_id}; keeping {current_id}")
            return None
        return target_id

    def apply_admin_rules_to_assembly(
        self,
        assembly: Assembly,
    ) -> tuple[Assembly, RuleApplication, AssemblyPricing]:
        """Evaluate assembly-scoped rules once and re-price if the job type changes."""
        pricing = self.price_assembly(assembly)
        current_id = pricing.job_type_id
        if not assembly.use_admin_rules:
            return assembly, RuleApplication(previous_job_type_id=current_id, job_type_id=current_id), pricing

        rule = self._rules.first_match(pricing.metrics, RuleScope.ASSEMBLY)
        target_id = self._target_job_type(rule.job_type_id if rule else None, current_id)
        application = RuleApplication(
            matched_rule_id=rule.id if rule else None,
            previous_job_type_id=current_id,
            job_type_id=target_id or current_id,
            changed=target_id is not None,
        )
        if target_id is None:
            return assembly, application, pricing

        updated = assembly.model_copy(update={"job_type_id": target_id, "job_type_locked_by_rule": True})
        logger.info(f"Assembly {assembly.id}: job type {current_id} → {target_id}")
        return updated, application, self.price_assembly(updated)

    def apply_admin_rules_to_estimate(
        self,
        estimate: Estimate,
        option_id: Optional[str] = None,
    ) -> tuple[Estimate, RuleApplication, EstimatePricing]:
        """
        Evaluate estimate-scoped rules once against the active (or given)
        option and re-price if the job type changes. With options, the new
        job type is written to that option; otherwise to the estimate.
        Approved estimates are locked and raise ``EstimateLockedError``.
        """
        ensure_editable(estimate)
        view = estimate_for_option(estimate, option_id)
        pricing = self.price_estimate(estimate, option_id=option_id)
        current_id = pricing.job_type_id
        if not view.use_admin_rules:
            return estimate, RuleApplication(previous_job_type_id=current_id, job_type_id=current_id), pricing

        rule = self._rules.first_match(pricing.metrics, RuleScope.ESTIMATE)
        target_id = self._target_job_type(rule.job_type_id if rule else None, current_id)
        application = RuleApplication(
            matched_rule_id=rule.id if rule else None,
            previous_job_type_id=current_id,
            job_type_id=target_id or current_id,
            changed=target_id is not None,
        )
        if target_id is None:
            return estimate, application, pricing

        if estimate.options:
            options = [
                o.model_copy(update={"job_type_id": target_id}) if o.id == view.active_option_id else o
                for o in estimate.options
            ]
            updated = estimate.model_copy(update={"options": options, "job_type_locked_by_rule": True})
        else:
            updated = estimate.model_copy(update={"job_type_id": target_id, "job_type_locked_by_rule": True})

        logger.info(f"Estimate {estimate.id}: job type {current_id} → {target_id}")
        return updated, application, self.price_estimate(updated, option_id=option_id)
