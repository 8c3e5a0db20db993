"""
Field Estimator — Main Entry Point

Price the estimates of a JSON catalogue snapshot (CLI):
    python -m field_estimator path/to/snapshot.json [estimate_id]

Run as an API server:
    python -m field_estimator --serve
    # or: uvicorn field_estimator.api:app --reload --port 8000

Or import and run programmatically:
    from field_estimator.main import run
    results = run("path/to/snapshot.json")
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

from field_estimator.config import get_settings
from field_estimator.models.schemas import EstimatePricing
from field_estimator.persistence.catalog_repository import CatalogRepository
from field_estimator.services.pricing_service import PricingService
from field_estimator.utils.logger import setup_logging
from field_estimator.utils.numbers import split_labor_minutes


def load_repository(snapshot_path: str | Path) -> CatalogRepository:
    with open(snapshot_path, encoding="utf-8") as f:
        return CatalogRepository.from_dict(json.load(f))


def run(snapshot_path: str, estimate_id: Optional[str] = None) -> dict[str, EstimatePricing]:
    """Price every estimate in the snapshot (or just ``estimate_id``) and log a summary."""
    setup_logging(get_settings().log_level)
    logger = logging.getLogger(__name__)

    repo = load_repository(snapshot_path)
    service = PricingService(repo.snapshot())

    estimates = repo.list_estimates()
    if estimate_id is not None:
        estimates = [e for e in estimates if e.id == estimate_id]
        if not estimates:
            raise KeyError(f"Unknown estimate: {estimate_id}")

    results: dict[str, EstimatePricing] = {}
    for estimate in estimates:
        pricing = service.price_estimate(estimate)
        results[estimate.id] = pricing
        _print_summary(estimate.number, estimate.name, pricing, service.option_totals(estimate))

    logger.info(f"Priced {len(results)} estimate(s) from {snapshot_path}")
    return results


def _print_summary(number: int, name: str, pricing: EstimatePricing, option_totals: dict[str, float]) -> None:
    """Log a human-readable summary of one priced estimate."""
    logger = logging.getLogger(__name__)
    hours, minutes = split_labor_minutes(pricing.labor_minutes_expected)

    logger.info("-" * 60)
    logger.info(f"  Estimate #{number}  {name}")
    logger.info("-" * 60)
    logger.info(f"  Job Type:       {pricing.job_type_id or '(fallback)'}")
    logger.info(f"  Materials:      ${pricing.material_price:,.2f}  (cost ${pricing.material_cost:,.2f})")
    logger.info(f"  Labor:          {hours}h {minutes}m @ ${pricing.labor_rate:,.2f}/h = ${pricing.labor_price:,.2f}")
    if pricing.discount_amount:
        logger.info(
            f"  Advertised:     ${pricing.pre_discount_total:,.2f} "
            f"(−{pricing.discount_percent:g}% = ${pricing.discount_amount:,.2f})"
        )
    if pricing.processing_fee:
        logger.info(f"  Processing Fee: ${pricing.processing_fee:,.2f}")
    logger.info(f"  Total:          ${pricing.total:,.2f}")
    logger.info(
        f"  Gross Margin:   {pricing.gross_margin_expected_percent:.1f}% "
        f"(target {pricing.gross_margin_target_percent:.1f}%)"
    )
    for option_id, total in option_totals.items():
        marker = "*" if option_id == pricing.option_id else " "
        logger.info(f"   {marker} Option {option_id}: ${total:,.2f}")


def serve(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Start the FastAPI server."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)
    host = host or settings.api_host
    port = port or settings.api_port
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run("field_estimator.api:app", host=host, port=port, reload=settings.debug)


def main(argv: Optional[list[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if "--serve" in args:
        serve()
        return 0
    if not args:
        print("usage: python -m field_estimator <snapshot.json> [estimate_id] | --serve", file=sys.stderr)
        return 2
    run(args[0], args[1] if len(args) > 1 else None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
