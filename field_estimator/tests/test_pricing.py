"""
Tests: Assembly and estimate pricing engines.

Run with:
    pytest field_estimator/tests/test_pricing.py -v

Fixture economics: one technician, 2080 h/yr, $50/h wage, no overhead →
loaded rate $50/h; the default job type targets 50% margin → sell $100/h.
Material m1 costs $10 (+50% markup = $15) and takes 30 minutes.
"""

import pytest

from field_estimator.models.schemas import (
    Assembly,
    AssemblyLine,
    BlankMaterialLine,
    CompanySettings,
    Estimate,
    EstimateOption,
    JobType,
    LaborLine,
    Material,
    MaterialLine,
    PricingSnapshot,
)
from field_estimator.pricing.assembly import compute_assembly_pricing
from field_estimator.pricing.estimate import (
    active_option,
    advertised_subtotal,
    compute_estimate_pricing,
    compute_option_totals,
)
from field_estimator.pricing.line_items import expand_assembly

COMPANY = CompanySettings(
    technicians=1,
    workdays_per_week=5,
    work_hours_per_day=8,
    technician_wages=[{"name": "Tech", "hourly_rate": 50}],
    material_markup_tiers=[{"min": 0, "max": 1000, "markup_percent": 50}],
)
JOB_TYPES = {
    "jt": JobType(id="jt", name="Service", is_default=True, gross_margin_percent=50),
    "jt_hourly": JobType(id="jt_hourly", name="T&M", billing_mode="hourly", gross_margin_percent=50),
    "jt_nodisc": JobType(id="jt_nodisc", name="Warranty", gross_margin_percent=50, allow_discounts=False),
}
MATERIALS = {"m1": Material(id="m1", name="Outlet", base_cost=10, labor_minutes=30)}
ASSEMBLY = Assembly(
    id="a1",
    name="Outlet install",
    job_type_id="jt",
    items=[MaterialLine(material_id="m1", quantity=2), LaborLine(labor_minutes=60)],
)
ASSEMBLIES = {"a1": ASSEMBLY}


def _price(estimate, company=COMPANY, **kwargs):
    return compute_estimate_pricing(estimate, MATERIALS, ASSEMBLIES, JOB_TYPES, company, **kwargs)


def _basic_items():
    return [MaterialLine(material_id="m1", quantity=2), LaborLine(labor_minutes=60)]


class TestAssemblyPricing:
    def test_totals(self):
        p = compute_assembly_pricing(ASSEMBLY, MATERIALS, JOB_TYPES, COMPANY)
        assert p.job_type_id == "jt"
        assert p.material_cost_total == pytest.approx(20)
        assert p.material_price_total == pytest.approx(30)
        assert p.labor_minutes_actual == 120
        assert p.labor_minutes_expected == 120
        assert p.labor_rate == pytest.approx(100)
        assert p.labor_price_total == pytest.approx(200)
        assert p.total_price == pytest.approx(230)

    def test_labor_price_spread_by_minutes(self):
        p = compute_assembly_pricing(ASSEMBLY, MATERIALS, JOB_TYPES, COMPANY)
        material_line, labor_line = p.lines
        assert material_line.labor_price == pytest.approx(100)
        assert material_line.total_price == pytest.approx(130)
        assert labor_line.labor_price == pytest.approx(100)

    def test_efficiency_inflates_expected_minutes(self):
        job_types = {"slow": JobType(id="slow", gross_margin_percent=50, efficiency_percent=50)}
        p = compute_assembly_pricing(ASSEMBLY, MATERIALS, job_types, COMPANY, job_type_id="slow")
        assert p.labor_minutes_actual == 120
        assert p.labor_minutes_expected == 240

    def test_falls_back_to_configured_margin(self):
        p = compute_assembly_pricing(ASSEMBLY, MATERIALS, {}, COMPANY)
        assert p.job_type_id is None
        assert p.labor_rate == pytest.approx(50 / 0.3)

    def test_unknown_material_skipped(self):
        assembly = ASSEMBLY.model_copy(update={"items": [MaterialLine(material_id="gone"), *ASSEMBLY.items]})
        p = compute_assembly_pricing(assembly, MATERIALS, JOB_TYPES, COMPANY)
        assert p.total_price == pytest.approx(230)

    def test_customer_supplies_materials(self):
        assembly = ASSEMBLY.model_copy(update={"customer_supplies_materials": True})
        p = compute_assembly_pricing(assembly, MATERIALS, JOB_TYPES, COMPANY)
        assert p.material_cost_total == 0
        assert p.material_price_total == 0
        assert p.labor_price_total == pytest.approx(200)


class TestEstimateBasics:
    def test_net_total_without_discount_or_fees(self):
        p = _price(Estimate(items=_basic_items(), job_type_id="jt"))
        assert p.material_cost == pytest.approx(20)
        assert p.material_price == pytest.approx(30)
        assert p.labor_price == pytest.approx(200)
        assert p.labor_cost == pytest.approx(100)
        assert p.pre_discount_total == pytest.approx(230)
        assert p.discount_amount == 0
        assert p.total == pytest.approx(230)

    def test_default_job_type_when_none_selected(self):
        assert _price(Estimate(items=_basic_items())).job_type_id == "jt"

    def test_gross_margin(self):
        p = _price(Estimate(items=_basic_items(), job_type_id="jt"))
        assert p.gross_margin_target_percent == 50
        assert p.gross_margin_expected_percent == pytest.approx(110 / 230 * 100)

    def test_empty_estimate(self):
        p = _price(Estimate())
        assert p.total == 0
        assert p.gross_margin_expected_percent == 0

    def test_unknown_assembly_skipped(self):
        p = _price(Estimate(items=[AssemblyLine(assembly_id="nope"), MaterialLine(material_id="m1")]))
        assert len(p.lines) == 1
        assert p.total == pytest.approx(65)

    def test_metrics_for_rules(self):
        p = _price(Estimate(items=[MaterialLine(material_id="m1", quantity=4), LaborLine(labor_minutes=60)]))
        assert p.metrics.material_cost == pytest.approx(40)
        assert p.metrics.expected_labor_minutes == 180
        assert p.metrics.expected_labor_hours == pytest.approx(3)
        assert p.metrics.line_item_count == 2
        assert p.metrics.any_line_item_qty == 4


class TestDiscount:
    def _nine_hundred(self, **fields):
        company = COMPANY.model_copy(update={"material_markup_tiers": []})
        estimate = Estimate(items=[BlankMaterialLine(name="Panel", unit_cost=900, taxable=False)], **fields)
        return estimate, company

    def test_ten_percent_on_nine_hundred(self):
        estimate, company = self._nine_hundred(apply_discount=True, discount_percent=10)
        p = _price(estimate, company)
        assert p.pre_discount_total == pytest.approx(1000)
        assert p.discount_amount == pytest.approx(100)
        assert p.subtotal_before_processing == pytest.approx(900)
        assert p.total == pytest.approx(900)

    @pytest.mark.parametrize("pct", [0.5, 10, 33.3, 75, 99.9])
    def test_advertised_lands_on_net(self, pct):
        net = 1234.56
        assert advertised_subtotal(net, pct) * (1 - pct / 100) == pytest.approx(net)

    def test_toggle_off(self):
        estimate, company = self._nine_hundred(apply_discount=False, discount_percent=10)
        p = _price(estimate, company)
        assert p.pre_discount_total == pytest.approx(900)
        assert p.discount_percent == 0

    def test_job_type_disallows_discounts(self):
        estimate, company = self._nine_hundred(apply_discount=True, discount_percent=10, job_type_id="jt_nodisc")
        assert _price(estimate, company).discount_amount == 0

    def test_capped_at_company_maximum(self):
        estimate, company = self._nine_hundred(apply_discount=True, discount_percent=10)
        company = company.model_copy(update={"max_discount_percent": 5})
        p = _price(estimate, company)
        assert p.discount_percent == 5
        assert p.pre_discount_total == pytest.approx(900 / 0.95)

    def test_company_default_percent(self):
        estimate, company = self._nine_hundred(apply_discount=True)
        company = company.model_copy(update={"discount_percent_default": 20})
        assert _price(estimate, company).pre_discount_total == pytest.approx(1125)

    def test_hundred_percent_is_ignored(self):
        estimate, company = self._nine_hundred(apply_discount=True, discount_percent=100)
        assert _price(estimate, company).discount_amount == 0


class TestProcessingFee:
    def test_fee_on_net_without_discount(self):
        estimate = Estimate(
            items=[BlankMaterialLine(unit_cost=900, taxable=False)],
            apply_processing_fees=True,
        )
        company = COMPANY.model_copy(update={"material_markup_tiers": [], "processing_fee_percent": 3})
        p = _price(estimate, company)
        assert p.processing_fee == pytest.approx(27)
        assert p.total == pytest.approx(927)

    def test_fee_on_advertised_when_discounted(self):
        estimate = Estimate(
            items=[BlankMaterialLine(unit_cost=900, taxable=False)],
            apply_discount=True,
            discount_percent=10,
            apply_processing_fees=True,
        )
        company = COMPANY.model_copy(update={"material_markup_tiers": [], "processing_fee_percent": 3})
        p = _price(estimate, company)
        assert p.processing_fee == pytest.approx(30)
        assert p.total == pytest.approx(930)

    def test_fee_toggle_off(self):
        company = COMPANY.model_copy(update={"processing_fee_percent": 3})
        assert _price(Estimate(items=_basic_items()), company).processing_fee == 0


class TestMaterialsPolicy:
    def test_customer_supplies_keeps_labor(self):
        p = _price(Estimate(items=_basic_items(), customer_supplies_materials=True))
        assert p.material_cost == 0
        assert p.material_price == 0
        assert p.labor_price == pytest.approx(200)
        assert p.total == pytest.approx(200)

    def test_misc_toggle(self):
        company = COMPANY.model_copy(update={"misc_material_percent": 10})
        on = _price(Estimate(items=_basic_items()), company)
        off = _price(Estimate(items=_basic_items(), apply_misc_material=False), company)
        assert on.misc_material == pytest.approx(3)
        assert on.material_price == pytest.approx(33)
        assert off.misc_material == 0
        assert off.material_price == pytest.approx(30)

    def test_assembly_flag_applies_inside_estimate(self):
        assemblies = {"a1": ASSEMBLY.model_copy(update={"customer_supplies_materials": True})}
        estimate = Estimate(items=[AssemblyLine(assembly_id="a1")])
        p = compute_estimate_pricing(estimate, MATERIALS, assemblies, JOB_TYPES, COMPANY)
        assert p.material_price == 0
        assert p.labor_price == pytest.approx(200)


class TestMinimumBillable:
    def test_flat_job_type_gets_floor(self):
        company = COMPANY.model_copy(update={"min_billable_labor_minutes_per_job": 120})
        p = _price(Estimate(items=[MaterialLine(material_id="m1")], job_type_id="jt"), company)
        assert p.labor_minutes_actual == 30
        assert p.labor_minutes_expected == 120
        assert p.labor_price == pytest.approx(200)

    def test_hourly_job_type_has_no_floor(self):
        company = COMPANY.model_copy(update={"min_billable_labor_minutes_per_job": 120})
        p = _price(Estimate(items=[MaterialLine(material_id="m1")], job_type_id="jt_hourly"), company)
        assert p.labor_minutes_expected == 30


class TestGroupedAssemblies:
    def test_expanded_group_matches_assembly_line(self):
        line = AssemblyLine(assembly_id="a1", quantity=2)
        plain = _price(Estimate(items=[line]))
        expanded = _price(Estimate(items=expand_assembly(line, ASSEMBLY, group_id="g1")))
        assert plain.total == pytest.approx(460)
        assert expanded.total == pytest.approx(460)
        assert expanded.labor_minutes_actual == plain.labor_minutes_actual == 240


class TestOptions:
    def _estimate(self, **fields):
        return Estimate(
            options=[
                EstimateOption(id="o1", option_name="Good", sort_order=1, items=[MaterialLine(material_id="m1")]),
                EstimateOption(id="o2", option_name="Better", sort_order=0,
                               items=[MaterialLine(material_id="m1", quantity=2)]),
            ],
            **fields,
        )

    def test_active_falls_back_to_lowest_sort_order(self):
        assert active_option(self._estimate()).id == "o2"
        assert active_option(self._estimate(active_option_id="o1")).id == "o1"

    def test_prices_active_option(self):
        p = _price(self._estimate(active_option_id="o1"))
        assert p.option_id == "o1"
        assert p.total == pytest.approx(65)

    def test_explicit_option(self):
        assert _price(self._estimate(), option_id="o1").total == pytest.approx(65)

    def test_option_totals(self):
        snapshot = PricingSnapshot(
            company_settings=COMPANY, job_types=JOB_TYPES, materials=MATERIALS, assemblies=ASSEMBLIES,
        )
        totals = compute_option_totals(self._estimate(), snapshot)
        assert totals == pytest.approx({"o1": 65, "o2": 130})

    def test_option_overrides_toggles(self):
        estimate = self._estimate(active_option_id="o1")
        estimate.options[0].apply_discount = True
        estimate.options[0].discount_percent = 10
        p = _price(estimate)
        assert p.pre_discount_total == pytest.approx(65 / 0.9)
