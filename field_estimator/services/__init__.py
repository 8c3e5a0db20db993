"""Services — PricingService, EstimateService and estimate lifecycle helpers."""

from field_estimator.services.pricing_service import PricingService
from field_estimator.services.estimate_service import (
    EstimateLockedError,
    EstimateService,
    InvalidStatusTransition,
    edit_line_items,
    ensure_editable,
    next_estimate_number,
    transition_status,
    valid_until,
)

__all__ = [
    "PricingService",
    "EstimateService",
    "EstimateLockedError",
    "InvalidStatusTransition",
    "edit_line_items",
    "ensure_editable",
    "next_estimate_number",
    "transition_status",
    "valid_until",
]
