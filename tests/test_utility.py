"""Tests for utility charge calculation and the utility statement lifecycle."""
from datetime import date
from decimal import Decimal

import pytest

from errors import NotFoundError, StateConflictError, ValidationError
from models import RatePlanType, UtilityRatePlan, UtilityRateSlab, UtilityStatement, UtilityType
from schemas.billing import UtilityStatementCreate, UtilityStatementUpdate
from services.utility_service import (
     UtilityService, calculate_amount_based, calculate_flat_rate, calculate_slabs, units_consumed,
)

ACTOR = "owner-1"
JAN = (date(2026, 1, 1), date(2026, 1, 31))


def make_slabs():
     return [
          UtilityRateSlab(slab_order=1, from_units=Decimal("0"), to_units=Decimal("100"),
                          rate_per_unit=Decimal("5.00"), fixed_charge=Decimal("50.00")),
          UtilityRateSlab(slab_order=2, from_units=Decimal("100"), to_units=Decimal("300"),
                          rate_per_unit=Decimal("7.50")),
          UtilityRateSlab(slab_order=3, from_units=Decimal("300"), to_units=None,
                          rate_per_unit=Decimal("10.00")),
     ]


# --- Fixtures ---

@pytest.fixture
def rate_plan(db):
     plan = UtilityRatePlan(
          org_id=1,
          utility_type=UtilityType.ELECTRICITY,
          name="Residential electricity",
          effective_from=date(2025, 1, 1),
          slabs=make_slabs(),
     )
     db.add(plan)
     db.flush()
     return plan


@pytest.fixture
def flat_plan(db):
     def _create(*slabs):
          plan = UtilityRatePlan(
               org_id=1,
               utility_type=UtilityType.WATER,
               name="Flat water",
               rate_type=RatePlanType.FLAT,
               effective_from=date(2025, 1, 1),
               slabs=list(slabs),
          )
          db.add(plan)
          db.flush()
          return plan
     return _create


@pytest.fixture
def meter_statement(db, clock, lease, rate_plan):
     def _create(previous="1200", current="1450"):
          return UtilityService.create_statement(db, UtilityStatementCreate(
               lease_id=lease.id,
               utility_type=UtilityType.ELECTRICITY,
               billing_period_start=JAN[0],
               billing_period_end=JAN[1],
               is_meter_based=True,
               rate_plan_id=rate_plan.id,
               previous_reading=Decimal(previous),
               current_reading=Decimal(current),
          ), ACTOR, clock)
     return _create


class TestCalculation:

     def test_units_consumed(self):
          assert units_consumed(Decimal("1200"), Decimal("1450")) == Decimal("250")

     def test_decreasing_meter_is_rejected(self):
          with pytest.raises(ValidationError, match="cannot be less than previous reading"):
               units_consumed(Decimal("1450"), Decimal("1200"))

     def test_slabs_across_two_tiers(self):
          result = calculate_slabs(Decimal("250"), make_slabs(), UtilityType.ELECTRICITY)

          # 100 x 5 + 50 fixed + 150 x 7.5
          assert result.total_amount == Decimal("1675.00")
          assert [slab.units_in_slab for slab in result.slabs] == [Decimal("100"), Decimal("150")]
          assert result.slabs[0].fixed_charge == Decimal("50.00")

     def test_unbounded_last_tier(self):
          result = calculate_slabs(Decimal("450"), make_slabs(), UtilityType.ELECTRICITY)

          assert result.total_amount == Decimal("3550.00")
          assert result.slabs[-1].to_units == Decimal("450")

     def test_zero_consumption_costs_nothing(self):
          result = calculate_slabs(Decimal("0"), make_slabs(), UtilityType.ELECTRICITY)

          assert result.total_amount == Decimal("0.00")
          assert result.slabs == []

     def test_slab_order_not_list_order(self):
          result = calculate_slabs(Decimal("250"), list(reversed(make_slabs())), UtilityType.ELECTRICITY)

          assert result.total_amount == Decimal("1675.00")

     def test_more_units_never_cost_less(self):
          slabs = make_slabs()
          amounts = [
               calculate_slabs(Decimal(units) / 4, slabs, UtilityType.ELECTRICITY).total_amount
               for units in range(0, 2000, 7)
          ]

          assert amounts == sorted(amounts)

     def test_no_slabs(self):
          with pytest.raises(ValidationError, match="no rate slabs"):
               calculate_slabs(Decimal("10"), [], UtilityType.WATER)

     def test_flat_rate(self):
          result = calculate_flat_rate(Decimal("120"), Decimal("6.5"), Decimal("30"), UtilityType.WATER)

          assert result.total_amount == Decimal("810.00")

     def test_amount_based_passes_bill_through(self):
          result = calculate_amount_based(Decimal("842.37"), UtilityType.GAS)

          assert result.total_amount == Decimal("842.37")
          assert not result.is_meter_based

     def test_amount_based_negative(self):
          with pytest.raises(ValidationError):
               calculate_amount_based(Decimal("-1"), UtilityType.GAS)


class TestRatePlan:

     def test_inactive_plan(self, db, rate_plan):
          rate_plan.is_active = False

          with pytest.raises(ValidationError, match="not active"):
               UtilityService.get_rate_plan(db, rate_plan.id, UtilityType.ELECTRICITY)

     def test_plan_for_other_utility(self, db, rate_plan):
          with pytest.raises(ValidationError, match="is for ELECTRICITY"):
               UtilityService.get_rate_plan(db, rate_plan.id, UtilityType.WATER)

     def test_missing_plan(self, db):
          with pytest.raises(NotFoundError):
               UtilityService.get_rate_plan(db, 999, UtilityType.ELECTRICITY)

     def test_flat_plan_charges_every_unit_at_one_rate(self, db, clock, lease, flat_plan):
          plan = flat_plan(UtilityRateSlab(
               slab_order=1, from_units=Decimal("0"), rate_per_unit=Decimal("6.5"), fixed_charge=Decimal("30"),
          ))

          statement = UtilityService.create_statement(db, UtilityStatementCreate(
               lease_id=lease.id,
               utility_type=UtilityType.WATER,
               billing_period_start=JAN[0],
               billing_period_end=JAN[1],
               is_meter_based=True,
               rate_plan_id=plan.id,
               previous_reading=Decimal("880"),
               current_reading=Decimal("1000"),
          ), ACTOR, clock)

          # 120 x 6.5 + 30 fixed
          assert statement.total_amount == Decimal("810.00")

     def test_flat_plan_needs_exactly_one_slab(self, db, flat_plan):
          plan = flat_plan(
               UtilityRateSlab(slab_order=1, from_units=Decimal("0"), to_units=Decimal("100"), rate_per_unit=Decimal("5")),
               UtilityRateSlab(slab_order=2, from_units=Decimal("100"), rate_per_unit=Decimal("7")),
          )

          with pytest.raises(ValidationError, match="exactly one rate slab"):
               UtilityService.get_rate_plan(db, plan.id, UtilityType.WATER)


class TestStatementLifecycle:

     def test_meter_statement_is_calculated(self, meter_statement):
          statement = meter_statement()

          assert statement.units_consumed == Decimal("250")
          assert statement.total_amount == Decimal("1675.00")
          assert statement.version == 1
          assert not statement.is_final

     def test_amount_based_statement(self, db, clock, lease):
          statement = UtilityService.create_statement(db, UtilityStatementCreate(
               lease_id=lease.id,
               utility_type=UtilityType.WATER,
               billing_period_start=JAN[0],
               billing_period_end=JAN[1],
               direct_bill_amount=Decimal("412.50"),
          ), ACTOR, clock)

          assert statement.total_amount == Decimal("412.50")
          assert statement.units_consumed is None

     def test_amount_with_fraction_of_a_cent_is_rejected(self, db, clock, lease):
          with pytest.raises(ValidationError, match="more than 2 decimal places"):
               UtilityService.create_statement(db, UtilityStatementCreate(
                    lease_id=lease.id,
                    utility_type=UtilityType.WATER,
                    billing_period_start=JAN[0],
                    billing_period_end=JAN[1],
                    direct_bill_amount=Decimal("10.005"),
               ), ACTOR, clock)

          assert db.query(UtilityStatement).count() == 0

     def test_reading_with_more_than_two_decimals_is_rejected(self, meter_statement):
          with pytest.raises(ValidationError, match="more than 2 decimal places"):
               meter_statement(current="1450.005")

     def test_meter_statement_needs_readings(self, db, clock, lease, rate_plan):
          with pytest.raises(ValidationError):
               UtilityService.create_statement(db, UtilityStatementCreate(
                    lease_id=lease.id,
                    utility_type=UtilityType.ELECTRICITY,
                    billing_period_start=JAN[0],
                    billing_period_end=JAN[1],
                    is_meter_based=True,
                    rate_plan_id=rate_plan.id,
               ), ACTOR, clock)

     def test_versions_increment_per_period(self, meter_statement):
          first = meter_statement()
          second = meter_statement(current="1500")

          assert (first.version, second.version) == (1, 2)

     def test_update_draft_recalculates(self, db, clock, meter_statement):
          statement = meter_statement()

          UtilityService.update_draft(db, statement.id, UtilityStatementUpdate(current_reading=Decimal("1300")), ACTOR, clock)

          assert statement.total_amount == Decimal("550.00")

     def test_finalize(self, db, clock, meter_statement):
          statement = meter_statement()

          UtilityService.finalize_statement(db, statement.id, ACTOR, clock)

          assert statement.is_final
          assert statement.finalized_at == clock.now()
          assert UtilityService.get_final_statement(db, *statement.period_key) is statement

     def test_second_final_for_period_is_rejected(self, db, clock, meter_statement):
          first = meter_statement()
          second = meter_statement(current="1500")
          UtilityService.finalize_statement(db, first.id, ACTOR, clock)

          with pytest.raises(StateConflictError, match="already exists"):
               UtilityService.finalize_statement(db, second.id, ACTOR, clock)

          assert not second.is_final

     def test_final_statement_is_read_only(self, db, clock, meter_statement):
          statement = meter_statement()
          UtilityService.finalize_statement(db, statement.id, ACTOR, clock)

          with pytest.raises(StateConflictError):
               UtilityService.update_draft(db, statement.id, UtilityStatementUpdate(notes="fix"), ACTOR, clock)

     def test_revision_supersedes_final(self, db, clock, meter_statement):
          original = meter_statement()
          UtilityService.finalize_statement(db, original.id, ACTOR, clock)

          revision = UtilityService.create_revision(
               db, original.id, ACTOR, clock, UtilityStatementUpdate(current_reading=Decimal("1300"))
          )
          assert revision.version == 2
          assert revision.supersedes_id == original.id
          assert original.is_final

          UtilityService.finalize_statement(db, revision.id, ACTOR, clock)

          assert revision.is_final
          assert not original.is_final
          assert original.superseded_at == clock.now()
          assert UtilityService.get_final_statement(db, *original.period_key) is revision

     def test_revision_of_draft_is_rejected(self, db, clock, meter_statement):
          statement = meter_statement()

          with pytest.raises(StateConflictError):
               UtilityService.create_revision(db, statement.id, ACTOR, clock)

     def test_unbilled_final_statements(self, db, clock, lease, meter_statement):
          draft = meter_statement()
          assert UtilityService.get_unbilled_final_statements(db, lease.id, *JAN) == []

          UtilityService.finalize_statement(db, draft.id, ACTOR, clock)

          assert UtilityService.get_unbilled_final_statements(db, lease.id, *JAN) == [draft]
          assert UtilityService.get_unbilled_final_statements(db, lease.id, date(2026, 2, 1), date(2026, 2, 28)) == []
