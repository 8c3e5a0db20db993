"""
Company Settings Rules — sanity checks on the admin-editable pricing setup.
Run on demand (settings screen / ``POST /api/settings/check``); the pricing
engine itself never refuses a draft.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Sequence

from field_estimator.models.schemas import CompanySettings, JobType, MarkupTier

logger = logging.getLogger(__name__)


class CompanySettingsRules:
    """Markup tier, wage table, discount and job type constraints."""

    def check_markup_tiers(self, tiers: Sequence[MarkupTier]) -> list[dict[str, Any]]:
        """
        Validate a markup tier table.
        Returns list of violations: {rule, detail, severity}.
        """
        violations: list[dict[str, Any]] = []

        for i, tier in enumerate(tiers, start=1):
            if tier.min > tier.max:
                violations.append({
                    "rule": "tier_range_inverted",
                    "detail": f"Tier {i}: min ${tier.min:,.2f} is above max ${tier.max:,.2f}",
                    "severity": "high",
                })
            if tier.markup_percent < 0:
                violations.append({
                    "rule": "negative_markup",
                    "detail": f"Tier {i}: markup {tier.markup_percent:.1f}% is negative",
                    "severity": "medium",
                })

        # ── Overlaps (ranges are inclusive on both ends) ──
        ordered = sorted(enumerate(tiers, start=1), key=lambda pair: pair[1].min)
        for (i, prev), (j, cur) in zip(ordered, ordered[1:]):
            if cur.min <= prev.max:
                violations.append({
                    "rule": "tier_overlap",
                    "detail": (
                        f"Tier {j} (${cur.min:,.2f}–${cur.max:,.2f}) overlaps "
                        f"tier {i} (${prev.min:,.2f}–${prev.max:,.2f})"
                    ),
                    "severity": "high",
                })

        return violations

    def check_wages(self, company: CompanySettings) -> list[dict[str, Any]]:
        violations: list[dict[str, Any]] = []
        expected_rows = max(1, math.ceil(max(0.0, company.technicians)))

        if len(company.technician_wages) != expected_rows:
            violations.append({
                "rule": "wage_rows_mismatch",
                "detail": (
                    f"{len(company.technician_wages)} wage rows for "
                    f"{company.technicians:g} technicians (expected {expected_rows})"
                ),
                "severity": "medium",
            })

        if company.technicians > 0 and not any(w.hourly_rate > 0 for w in company.technician_wages):
            violations.append({
                "rule": "no_wage_rates",
                "detail": "No technician has a positive hourly rate; labor cost will be 0",
                "severity": "high",
            })

        return violations

    def check_discounts(self, company: CompanySettings) -> list[dict[str, Any]]:
        violations: list[dict[str, Any]] = []
        if company.discount_percent_default > company.max_discount_percent:
            violations.append({
                "rule": "discount_exceeded",
                "detail": (
                    f"Default discount {company.discount_percent_default:.1f}% exceeds maximum "
                    f"{company.max_discount_percent:.1f}%"
                ),
                "severity": "medium",
            })
        return violations

    def check_job_types(self, job_types: Sequence[JobType]) -> list[dict[str, Any]]:
        violations: list[dict[str, Any]] = []

        defaults = [jt for jt in job_types if jt.is_default]
        if job_types and len(defaults) != 1:
            violations.append({
                "rule": "default_job_type",
                "detail": f"Expected exactly one default job type, found {len(defaults)}",
                "severity": "high",
            })

        for jt in job_types:
            label = jt.name or jt.id
            if jt.efficiency_percent <= 0:
                violations.append({
                    "rule": "efficiency_not_positive",
                    "detail": f"Job type '{label}': efficiency {jt.efficiency_percent:g}% is ignored",
                    "severity": "medium",
                })
            if jt.gross_margin_percent >= 100:
                violations.append({
                    "rule": "margin_unreachable",
                    "detail": f"Job type '{label}': gross margin {jt.gross_margin_percent:g}% prices labor at 0",
                    "severity": "high",
                })
            violations.extend(
                {**v, "detail": f"Job type '{label}': {v['detail']}"}
                for v in self.check_markup_tiers(jt.material_markup_tiers)
            )

        return violations

    def check_company_settings(
        self,
        company: CompanySettings,
        job_types: Sequence[JobType] = (),
    ) -> list[dict[str, Any]]:
        """All checks; an empty list means the setup is consistent."""
        violations = (
            self.check_markup_tiers(company.material_markup_tiers)
            + self.check_wages(company)
            + self.check_discounts(company)
            + self.check_job_types(job_types)
        )
        if violations:
            logger.info(f"Company settings check: {len(violations)} violation(s)")
        return violations
