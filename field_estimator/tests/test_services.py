"""
Tests: Estimate lifecycle and the pricing service (admin rule application).

Run with:
    pytest field_estimator/tests/test_services.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from field_estimator.models.enums import EstimateStatus
from field_estimator.models.schemas import (
    AdminRule,
    Assembly,
    CompanySettings,
    Estimate,
    EstimateOption,
    JobType,
    LaborLine,
    Material,
    MaterialLine,
    PricingSnapshot,
)
from field_estimator.persistence.catalog_repository import CatalogRepository
from field_estimator.services.estimate_service import (
    EstimateLockedError,
    EstimateService,
    InvalidStatusTransition,
    next_estimate_number,
    transition_status,
    valid_until,
)
from field_estimator.services.pricing_service import PricingService

COMPANY = CompanySettings(
    technicians=1,
    workdays_per_week=5,
    work_hours_per_day=8,
    technician_wages=[{"name": "Tech", "hourly_rate": 50}],
)
JOB_TYPES = {
    "std": JobType(id="std", name="Standard", is_default=True, gross_margin_percent=50),
    "big": JobType(id="big", name="Large job", gross_margin_percent=75),
}
MATERIALS = {"m1": Material(id="m1", base_cost=10, labor_minutes=30)}
ASSEMBLY = Assembly(id="a1", name="Outlet install", items=[MaterialLine(material_id="m1"), LaborLine(labor_minutes=30)])


def _snapshot(rules):
    return PricingSnapshot(
        company_settings=COMPANY,
        job_types=JOB_TYPES,
        materials=MATERIALS,
        assemblies={"a1": ASSEMBLY},
        admin_rules=rules,
    )


BIG_MATERIAL_RULE = AdminRule(
    id="r1",
    name="Lots of material",
    scope="both",
    priority=1,
    job_type_id="big",
    conditions=[{"metric": "material_cost", "operator": ">=", "threshold": 30}],
)


class TestLifecycle:
    def test_happy_path(self):
        e = transition_status(Estimate(), "sent")
        e = transition_status(e, EstimateStatus.APPROVED)
        assert e.status == EstimateStatus.APPROVED

    def test_approved_is_locked(self):
        e = Estimate(status="approved")
        with pytest.raises(EstimateLockedError):
            transition_status(e, "archived")

    def test_draft_cannot_jump_to_approved(self):
        with pytest.raises(InvalidStatusTransition):
            transition_status(Estimate(), "approved")

    def test_declined_back_to_draft(self):
        e = transition_status(Estimate(status="declined"), "draft")
        assert e.status == EstimateStatus.DRAFT

    @pytest.mark.parametrize("status", ["draft", "sent", "declined"])
    def test_archive_from_any_open_status(self, status):
        assert transition_status(Estimate(status=status), "archived").status == EstimateStatus.ARCHIVED

    def test_same_status_is_noop(self):
        e = Estimate(status="sent")
        assert transition_status(e, "sent") is e

    def test_errors_are_value_errors(self):
        assert issubclass(EstimateLockedError, ValueError)
        assert issubclass(InvalidStatusTransition, ValueError)


class TestNumberingAndValidity:
    def test_first_number_is_starting_number(self):
        assert next_estimate_number([], CompanySettings(starting_estimate_number=1000)) == 1000

    def test_next_after_highest(self):
        existing = [Estimate(number=1000), Estimate(number=1004)]
        assert next_estimate_number(existing, CompanySettings(starting_estimate_number=1000)) == 1005

    def test_valid_until(self):
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert valid_until(created, CompanySettings(estimate_validity_days=30)) == created + timedelta(days=30)
        assert valid_until(created, CompanySettings(estimate_validity_days=0)) is None


class TestEstimateService:
    def _service(self):
        repo = CatalogRepository(COMPANY.model_copy(update={"starting_estimate_number": 500}))
        repo.upsert_job_type(JOB_TYPES["std"])
        repo.upsert_assembly(ASSEMBLY)
        return EstimateService(repo)

    def test_create_assigns_number_and_defaults(self):
        service = self._service()
        first = service.create_estimate({"name": "Kitchen"})
        second = service.create_estimate({"name": "Garage"})
        assert (first.number, second.number) == (500, 501)
        assert first.job_type_id == "std"
        assert first.valid_until is not None

    def test_add_assembly_then_rescale(self):
        service = self._service()
        estimate = service.create_estimate()
        estimate = service.add_assembly(estimate.id, "a1", quantity=2)
        head = estimate.items[0]
        assert [it.quantity for it in estimate.items[1:]] == [2, 2]
        estimate = service.set_group_quantity(estimate.id, head.group_id, 5)
        assert [it.quantity for it in estimate.items[1:]] == [5, 5]

    def test_approved_estimate_rejects_edits(self):
        service = self._service()
        estimate = service.create_estimate()
        service.set_status(estimate.id, "sent")
        service.set_status(estimate.id, "approved")
        with pytest.raises(EstimateLockedError):
            service.add_assembly(estimate.id, "a1")

    def test_unknown_estimate(self):
        with pytest.raises(KeyError):
            self._service().set_status("nope", "sent")

    def _service_with_options(self):
        repo = CatalogRepository(COMPANY)
        repo.upsert_job_type(JOB_TYPES["std"])
        repo.upsert_assembly(Assembly(id="a2", name="Rough-in", items=[LaborLine(labor_minutes=60)]))
        repo.upsert_estimate(Estimate(
            id="e1",
            options=[EstimateOption(id="good"), EstimateOption(id="best", sort_order=1)],
            active_option_id="best",
        ))
        return repo, EstimateService(repo)

    def test_add_assembly_lands_in_active_option(self):
        repo, service = self._service_with_options()
        estimate = service.add_assembly("e1", "a2", quantity=2)

        assert estimate.items == []
        assert estimate.options[0].items == []
        assert len(estimate.options[1].items) == 2
        pricing = PricingService(repo.snapshot()).price_estimate(estimate)
        assert pricing.option_id == "best"
        assert pricing.labor_minutes_actual == 120

    def test_rescale_group_inside_option(self):
        repo, service = self._service_with_options()
        estimate = service.add_assembly("e1", "a2", quantity=2, option_id="good")
        head = estimate.options[0].items[0]
        estimate = service.set_group_quantity("e1", head.group_id, 3, option_id="good")

        pricing = PricingService(repo.snapshot()).price_estimate(estimate, option_id="good")
        assert pricing.labor_minutes_actual == 180
        assert estimate.options[1].items == []

    def test_unknown_option(self):
        _, service = self._service_with_options()
        with pytest.raises(KeyError):
            service.add_assembly("e1", "a2", option_id="nope")


class TestApplyAdminRules:
    def test_rule_switches_job_type_and_reprices(self):
        service = PricingService(_snapshot([BIG_MATERIAL_RULE]))
        estimate = Estimate(items=[MaterialLine(material_id="m1", quantity=3)], use_admin_rules=True)
        before = service.price_estimate(estimate)

        updated, application, pricing = service.apply_admin_rules_to_estimate(estimate)

        assert application.changed is True
        assert application.matched_rule_id == "r1"
        assert application.previous_job_type_id == "std"
        assert updated.job_type_id == "big"
        assert updated.job_type_locked_by_rule is True
        assert pricing.job_type_id == "big"
        # $50 loaded rate at 75% margin sells for $200/h instead of $100/h
        assert pricing.labor_rate == pytest.approx(200)
        assert pricing.labor_price == pytest.approx(before.labor_price * 2)

    def test_approved_estimate_is_locked(self):
        service = PricingService(_snapshot([BIG_MATERIAL_RULE]))
        estimate = Estimate(
            status="approved",
            job_type_id="std",
            use_admin_rules=True,
            items=[MaterialLine(material_id="m1", quantity=3)],
        )
        with pytest.raises(EstimateLockedError):
            service.apply_admin_rules_to_estimate(estimate)

    def test_rules_off_is_noop(self):
        service = PricingService(_snapshot([BIG_MATERIAL_RULE]))
        estimate = Estimate(items=[MaterialLine(material_id="m1", quantity=3)])
        updated, application, _ = service.apply_admin_rules_to_estimate(estimate)
        assert updated is estimate
        assert application.changed is False

    def test_no_match_keeps_job_type(self):
        service = PricingService(_snapshot([BIG_MATERIAL_RULE]))
        estimate = Estimate(items=[MaterialLine(material_id="m1")], use_admin_rules=True)
        updated, application, pricing = service.apply_admin_rules_to_estimate(estimate)
        assert application.matched_rule_id is None
        assert pricing.job_type_id == "std"
        assert updated.job_type_locked_by_rule is False

    def test_unknown_target_job_type_is_ignored(self):
        rule = BIG_MATERIAL_RULE.model_copy(update={"job_type_id": "ghost"})
        service = PricingService(_snapshot([rule]))
        estimate = Estimate(items=[MaterialLine(material_id="m1", quantity=3)], use_admin_rules=True)
        _, application, pricing = service.apply_admin_rules_to_estimate(estimate)
        assert application.changed is False
        assert pricing.job_type_id == "std"

    def test_runs_once_per_call(self):
        # Under "big" the metrics would still match; a second pass must not be taken implicitly.
        service = PricingService(_snapshot([BIG_MATERIAL_RULE]))
        estimate = Estimate(items=[MaterialLine(material_id="m1", quantity=3)], use_admin_rules=True)
        updated, _, _ = service.apply_admin_rules_to_estimate(estimate)
        _, again, _ = service.apply_admin_rules_to_estimate(updated)
        assert again.changed is False
        assert again.job_type_id == "big"

    def test_option_receives_new_job_type(self):
        service = PricingService(_snapshot([BIG_MATERIAL_RULE]))
        estimate = Estimate(
            use_admin_rules=True,
            options=[
                EstimateOption(id="o1", items=[MaterialLine(material_id="m1")]),
                EstimateOption(id="o2", sort_order=1, items=[MaterialLine(material_id="m1", quantity=4)]),
            ],
            active_option_id="o2",
        )
        updated, application, pricing = service.apply_admin_rules_to_estimate(estimate)
        assert application.changed
        assert updated.options[1].job_type_id == "big"
        assert updated.options[0].job_type_id is None
        assert pricing.option_id == "o2"

    def test_assembly_scope(self):
        service = PricingService(_snapshot([BIG_MATERIAL_RULE.model_copy(update={"scope": "estimate"})]))
        assembly = ASSEMBLY.model_copy(update={
            "use_admin_rules": True,
            "items": [MaterialLine(material_id="m1", quantity=5)],
        })
        _, application, _ = service.apply_admin_rules_to_assembly(assembly)
        assert application.changed is False

    def test_assembly_rule_applies(self):
        service = PricingService(_snapshot([BIG_MATERIAL_RULE]))
        assembly = ASSEMBLY.model_copy(update={
            "use_admin_rules": True,
            "items": [MaterialLine(material_id="m1", quantity=5)],
        })
        updated, application, pricing = service.apply_admin_rules_to_assembly(assembly)
        assert application.changed
        assert updated.job_type_locked_by_rule
        assert pricing.job_type_id == "big"


class TestTechCostView:
    def test_company_view_uses_default_job_type(self):
        service = PricingService(_snapshot([]))
        assert service.tech_cost().gross_margin_target_percent == 50
        assert service.tech_cost("big").gross_margin_target_percent == 75
