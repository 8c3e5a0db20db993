"""Persistence — CatalogRepository and record normalization."""

from field_estimator.persistence.catalog_repository import CatalogRepository
from field_estimator.persistence.normalize import normalize_admin_rule, sync_technician_wages

__all__ = ["CatalogRepository", "normalize_admin_rule", "sync_technician_wages"]
