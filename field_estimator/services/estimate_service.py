"""
Estimate Service — lifecycle, numbering and line editing for estimates.

Status flow:
    draft → sent → approved | declined
    declined → draft
    any status except approved → archived

Approved estimates are locked: no further edits or transitions.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from field_estimator.models.enums import EstimateStatus
from field_estimator.models.schemas import AssemblyLine, CompanySettings, Estimate, LineItem
from field_estimator.persistence.catalog_repository import CatalogRepository
from field_estimator.pricing.estimate import active_option
from field_estimator.pricing.line_items import expand_assembly, set_group_quantity

logger = logging.getLogger(__name__)


class EstimateLockedError(ValueError):
    """Raised when editing an approved estimate."""


class InvalidStatusTransition(ValueError):
    """Raised for a status change the lifecycle does not allow."""


ALLOWED_TRANSITIONS: dict[EstimateStatus, set[EstimateStatus]] = {
    EstimateStatus.DRAFT: {EstimateStatus.SENT, EstimateStatus.ARCHIVED},
    EstimateStatus.SENT: {EstimateStatus.APPROVED, EstimateStatus.DECLINED, EstimateStatus.ARCHIVED},
    EstimateStatus.DECLINED: {EstimateStatus.DRAFT, EstimateStatus.ARCHIVED},
    EstimateStatus.APPROVED: set(),
    EstimateStatus.ARCHIVED: set(),
}


def ensure_editable(estimate: Estimate) -> None:
    if estimate.status == EstimateStatus.APPROVED:
        raise EstimateLockedError(f"Estimate {estimate.number or estimate.id} is approved and locked")


def transition_status(estimate: Estimate, status: EstimateStatus | str) -> Estimate:
    """Return a copy of ``estimate`` in ``status``; setting the current status is a no-op."""
    target = EstimateStatus(status)
    current = estimate.status
    if target == current:
        return estimate
    if current == EstimateStatus.APPROVED:
        raise EstimateLockedError(f"Estimate {estimate.number or estimate.id} is approved and locked")
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(f"Cannot move estimate from {current.value} to {target.value}")
    logger.info(f"Estimate {estimate.id}: {current.value} → {target.value}")
    return estimate.model_copy(update={"status": target})


def next_estimate_number(existing: Iterable[Estimate], company_settings: CompanySettings) -> int:
    """One past the highest number in use, never below the company's starting number."""
    highest = max((e.number for e in existing), default=0)
    return max(company_settings.starting_estimate_number, highest + 1)


def valid_until(created_at: datetime, company_settings: CompanySettings) -> Optional[datetime]:
    """Expiry date of a quote; None when the company sets no validity window."""
    days = company_settings.estimate_validity_days
    if days <= 0:
        return None
    return created_at + timedelta(days=days)


def edit_line_items(
    estimate: Estimate,
    edit: Callable[[list[LineItem]], list[LineItem]],
    option_id: Optional[str] = None,
) -> Estimate:
    """
    Apply ``edit`` to the line list that gets priced: the given (or active)
    option's items when the estimate has options, else the estimate's own.
    """
    if not estimate.options:
        return estimate.model_copy(update={"items": edit(list(estimate.items))})

    target_id = option_id or active_option(estimate).id
    if not any(o.id == target_id for o in estimate.options):
        raise KeyError(f"Unknown option {target_id} on estimate {estimate.id}")
    options = [
        o.model_copy(update={"items": edit(list(o.items))}) if o.id == target_id else o
        for o in estimate.options
    ]
    return estimate.model_copy(update={"options": options})


class EstimateService:
    """Estimate editing on top of a ``CatalogRepository``."""

    def __init__(self, repository: CatalogRepository):
        self.repository = repository

    def _require(self, estimate_id: str) -> Estimate:
        estimate = self.repository.get_estimate(estimate_id)
        if estimate is None:
            raise KeyError(f"Unknown estimate: {estimate_id}")
        return estimate

    def create_estimate(self, data: Mapping[str, Any] | None = None) -> Estimate:
        """New draft with the next number, validity date and company default job type."""
        company = self.repository.get_company_settings()
        estimate = Estimate.model_validate(dict(data or {}))
        update: dict[str, Any] = {"status": EstimateStatus.DRAFT}
        if estimate.number <= 0:
            update["number"] = next_estimate_number(self.repository.list_estimates(), company)
        if estimate.valid_until is None:
            update["valid_until"] = valid_until(estimate.created_at, company)
        if estimate.job_type_id is None:
            default = next((jt for jt in self.repository.list_job_types() if jt.is_default), None)
            update["job_type_id"] = default.id if default else None
        saved = self.repository.upsert_estimate(estimate.model_copy(update=update))
        logger.info(f"Created estimate #{saved.number} ({saved.id})")
        return saved

    def update_estimate(self, estimate: Estimate) -> Estimate:
        ensure_editable(self._require(estimate.id))
        return self.repository.upsert_estimate(estimate)

    def set_status(self, estimate_id: str, status: EstimateStatus | str) -> Estimate:
        return self.repository.upsert_estimate(transition_status(self._require(estimate_id), status))

    def add_assembly(
        self,
        estimate_id: str,
        assembly_id: str,
        quantity: float = 1.0,
        option_id: Optional[str] = None,
    ) -> Estimate:
        """Append an assembly as an expanded group (head line plus scaled children)."""
        estimate = self._require(estimate_id)
        ensure_editable(estimate)
        assembly = self.repository.get_assembly(assembly_id)
        if assembly is None:
            raise KeyError(f"Unknown assembly: {assembly_id}")
        head = AssemblyLine(assembly_id=assembly.id, name=assembly.name, quantity=quantity)
        group = expand_assembly(head, assembly)
        return self.repository.upsert_estimate(
            edit_line_items(estimate, lambda items: items + group, option_id)
        )

    def set_group_quantity(
        self,
        estimate_id: str,
        group_id: str,
        quantity: float,
        option_id: Optional[str] = None,
    ) -> Estimate:
        estimate = self._require(estimate_id)
        ensure_editable(estimate)
        return self.repository.upsert_estimate(
            edit_line_items(estimate, lambda items: set_group_quantity(items, group_id, quantity), option_id)
        )

    def set_active_option(self, estimate_id: str, option_id: str) -> Estimate:
        estimate = self._require(estimate_id)
        ensure_editable(estimate)
        if not any(o.id == option_id for o in estimate.options):
            raise KeyError(f"Unknown option {option_id} on estimate {estimate_id}")
        return self.repository.upsert_estimate(estimate.model_copy(update={"active_option_id": option_id}))
