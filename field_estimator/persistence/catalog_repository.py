"""
Catalog Repository — in-memory store for the records a pricing pass reads.
Handles get/list/upsert/delete by id and normalizes records on the way in.

Owned by its caller (the API keeps one per process, the CLI builds one from
a JSON file); nothing in the pricing engine touches it directly.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, TypeVar

from pydantic import BaseModel

from field_estimator.models.schemas import (
    AdminRule,
    Assembly,
    CompanySettings,
    Estimate,
    JobType,
    Material,
    PricingSnapshot,
)
from field_estimator.persistence.normalize import normalize_admin_rule, sync_technician_wages

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_COLLECTIONS: dict[str, type[BaseModel]] = {
    "job_types": JobType,
    "materials": Material,
    "assemblies": Assembly,
    "estimates": Estimate,
    "admin_rules": AdminRule,
}


class CatalogRepository:
    """
    Save/load catalogue records. Returned models are copies, so callers
    can't mutate the store behind its back.
    """

    def __init__(self, company_settings: Optional[CompanySettings] = None):
        self._company_settings = sync_technician_wages(company_settings or CompanySettings())
        self._store: dict[str, dict[str, BaseModel]] = {name: {} for name in _COLLECTIONS}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CatalogRepository":
        """
        Build a repository from a JSON-style document. Collections may be
        lists of records or id-keyed objects.
        """
        repo = cls(CompanySettings.model_validate(data.get("company_settings") or {}))
        loaders = {
            "job_types": repo.upsert_job_type,
            "materials": repo.upsert_material,
            "assemblies": repo.upsert_assembly,
            "estimates": repo.upsert_estimate,
            "admin_rules": repo.upsert_admin_rule,
        }
        for name, upsert in loaders.items():
            records = data.get(name) or []
            if isinstance(records, Mapping):
                records = [{"id": key, **value} for key, value in records.items()]
            for record in records:
                upsert(record)
        logger.info(
            "Loaded catalogue: "
            + ", ".join(f"{len(repo._store[name])} {name}" for name in _COLLECTIONS)
        )
        return repo

    # ── Generic collection access ────────────────────────

    def _get(self, collection: str, record_id: str) -> Optional[BaseModel]:
        record = self._store[collection].get(record_id)
        return record.model_copy(deep=True) if record is not None else None

    def _list(self, collection: str) -> list[BaseModel]:
        return [r.model_copy(deep=True) for r in self._store[collection].values()]

    def _upsert(self, collection: str, record: BaseModel | Mapping[str, Any]) -> BaseModel:
        model_cls = _COLLECTIONS[collection]
        if not isinstance(record, model_cls):
            data = record.model_dump() if isinstance(record, BaseModel) else record
            record = model_cls.model_validate(data)
        created = record.id not in self._store[collection]
        self._store[collection][record.id] = record.model_copy(deep=True)
        logger.info(f"{'Created' if created else 'Updated'} {collection} record {record.id}")
        return record.model_copy(deep=True)

    def _delete(self, collection: str, record_id: str) -> None:
        if record_id not in self._store[collection]:
            raise KeyError(f"Unknown {collection} record: {record_id}")
        del self._store[collection][record_id]
        logger.info(f"Deleted {collection} record {record_id}")

    # ── Company settings ─────────────────────────────────

    def get_company_settings(self) -> CompanySettings:
        return self._company_settings.model_copy(deep=True)

    def save_company_settings(self, settings: CompanySettings | Mapping[str, Any]) -> CompanySettings:
        """Save settings, growing/shrinking the wage table to the technician count."""
        if not isinstance(settings, CompanySettings):
            settings = CompanySettings.model_validate(settings)
        self._company_settings = sync_technician_wages(settings)
        logger.info("Saved company settings")
        return self.get_company_settings()

    # ── Job types ────────────────────────────────────────

    def get_job_type(self, job_type_id: str) -> Optional[JobType]:
        return self._get("job_types", job_type_id)  # type: ignore[return-value]

    def list_job_types(self) -> list[JobType]:
        return self._list("job_types")  # type: ignore[return-value]

    def upsert_job_type(self, job_type: JobType | Mapping[str, Any]) -> JobType:
        """The first job type becomes the default; a new default demotes the old one."""
        saved: JobType = self._upsert("job_types", job_type)  # type: ignore[assignment]
        others = [jt for jt in self._store["job_types"].values() if jt.id != saved.id]
        if saved.is_default or not any(jt.is_default for jt in others):
            self.set_default_job_type(saved.id)
            saved = self.get_job_type(saved.id)  # type: ignore[assignment]
        return saved

    def delete_job_type(self, job_type_id: str) -> None:
        was_default = self._store["job_types"].get(job_type_id)
        self._delete("job_types", job_type_id)
        if was_default is not None and was_default.is_default and self._store["job_types"]:
            self.set_default_job_type(next(iter(self._store["job_types"])))

    def set_default_job_type(self, job_type_id: str) -> JobType:
        """Make ``job_type_id`` the company default; exactly one default remains."""
        job_types = self._store["job_types"]
        if job_type_id not in job_types:
            raise KeyError(f"Unknown job type: {job_type_id}")
        for jt_id, jt in list(job_types.items()):
            is_default = jt_id == job_type_id
            if jt.is_default != is_default:
                job_types[jt_id] = jt.model_copy(update={"is_default": is_default})
        logger.info(f"Default job type set to {job_type_id}")
        return self.get_job_type(job_type_id)  # type: ignore[return-value]

    # ── Materials ────────────────────────────────────────

    def get_material(self, material_id: str) -> Optional[Material]:
        return self._get("materials", material_id)  # type: ignore[return-value]

    def list_materials(self) -> list[Material]:
        return self._list("materials")  # type: ignore[return-value]

    def upsert_material(self, material: Material | Mapping[str, Any]) -> Material:
        return self._upsert("materials", material)  # type: ignore[return-value]

    def delete_material(self, material_id: str) -> None:
        self._delete("materials", material_id)

    # ── Assemblies ───────────────────────────────────────

    def get_assembly(self, assembly_id: str) -> Optional[Assembly]:
        return self._get("assemblies", assembly_id)  # type: ignore[return-value]

    def list_assemblies(self) -> list[Assembly]:
        return self._list("assemblies")  # type: ignore[return-value]

    def upsert_assembly(self, assembly: Assembly | Mapping[str, Any]) -> Assembly:
        return self._upsert("assemblies", assembly)  # type: ignore[return-value]

    def delete_assembly(self, assembly_id: str) -> None:
        self._delete("assemblies", assembly_id)

    # ── Estimates ────────────────────────────────────────

    def get_estimate(self, estimate_id: str) -> Optional[Estimate]:
        return self._get("estimates", estimate_id)  # type: ignore[return-value]

    def list_estimates(self) -> list[Estimate]:
        return self._list("estimates")  # type: ignore[return-value]

    def upsert_estimate(self, estimate: Estimate | Mapping[str, Any]) -> Estimate:
        return self._upsert("estimates", estimate)  # type: ignore[return-value]

    def delete_estimate(self, estimate_id: str) -> None:
        self._delete("estimates", estimate_id)

    # ── Admin rules ──────────────────────────────────────

    def get_admin_rule(self, rule_id: str) -> Optional[AdminRule]:
        return self._get("admin_rules", rule_id)  # type: ignore[return-value]

    def list_admin_rules(self) -> list[AdminRule]:
        """Rules ordered by priority (lowest number first)."""
        return sorted(self._list("admin_rules"), key=lambda r: r.priority)  # type: ignore[attr-defined]

    def upsert_admin_rule(self, rule: AdminRule | Mapping[str, Any]) -> AdminRule:
        """Accepts any stored rule shape; it is normalized before saving."""
        if not isinstance(rule, AdminRule):
            rule = normalize_admin_rule(rule)
        return self._upsert("admin_rules", rule)  # type: ignore[return-value]

    def delete_admin_rule(self, rule_id: str) -> None:
        self._delete("admin_rules", rule_id)

    # ── Snapshot ─────────────────────────────────────────

    def snapshot(self) -> PricingSnapshot:
        """Read-only copy of everything a pricing pass may look up."""
        return PricingSnapshot(
            company_settings=self.get_company_settings(),
            job_types={jt.id: jt for jt in self.list_job_types()},
            materials={m.id: m for m in self.list_materials()},
            assemblies={a.id: a for a in self.list_assemblies()},
            admin_rules=self.list_admin_rules(),
        )
