# services/utility_service.py
"""
Utility Service - utility charge calculation and the utility statement lifecycle.

Calculation methods:
- Amount-based: the total is the bill amount passed through unchanged
- Flat rate: units x rate + fixed charge
- Slab (progressive): units are allocated tier by tier over the rate plan's ordered slabs

Statement lifecycle: draft -> final. A final statement is read-only; corrections go
through a revision (a new draft with the next version number that supersedes it).
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence
from sqlalchemy.orm import Session

from database import load, load_versioned, flush_changes
from errors import ValidationError, StateConflictError
from models import Lease, RatePlanType, UtilityRatePlan, UtilityRateSlab, UtilityStatement, UtilityType
from schemas.billing import SlabCharge, UtilityCalculation, UtilityStatementCreate, UtilityStatementUpdate
from services.collaborators import Clock
from services.proration import round_money, has_cents_precision

logger = logging.getLogger(__name__)


def units_consumed(previous_reading: Decimal, current_reading: Decimal) -> Decimal:
     """Consumption between two meter readings. A decreasing meter is rejected."""
     units = Decimal(current_reading) - Decimal(previous_reading)
     if units < 0:
          raise ValidationError(
               f"Current reading ({current_reading}) cannot be less than previous reading ({previous_reading})"
          )
     return units


def calculate_amount_based(amount: Decimal, utility_type: UtilityType) -> UtilityCalculation:
     if amount is None or amount < 0:
          raise ValidationError("Amount cannot be negative")
     if not has_cents_precision(amount):
          raise ValidationError(f"Amount ({amount}) has more than 2 decimal places")
     return UtilityCalculation(
          utility_type=utility_type,
          is_meter_based=False,
          total_amount=Decimal(amount),
          description=f"{utility_type.value} - Direct billing",
     )


def calculate_flat_rate(
     units: Decimal,
     rate_per_unit: Decimal,
     fixed_charge: Decimal,
     utility_type: UtilityType,
) -> UtilityCalculation:
     """Meter-based charge at a single rate: units x rate + fixed charge."""
     errors = []
     if units < 0:
          errors.append("Units consumed cannot be negative")
     if rate_per_unit < 0:
          errors.append("Rate per unit cannot be negative")
     if fixed_charge < 0:
          errors.append("Fixed charge cannot be negative")
     if errors:
          raise ValidationError(errors[0], errors)

     consumption = Decimal(units) * Decimal(rate_per_unit)
     return UtilityCalculation(
          utility_type=utility_type,
          is_meter_based=True,
          units_consumed=units,
          total_amount=round_money(consumption + Decimal(fixed_charge)),
          description=f"{utility_type.value} - {units} units @ {rate_per_unit}/unit",
          slabs=[SlabCharge(
               from_units=Decimal("0"),
               to_units=units,
               units_in_slab=units,
               rate_per_unit=rate_per_unit,
               amount=round_money(consumption),
               fixed_charge=fixed_charge if fixed_charge > 0 else None,
          )],
     )


def calculate_slabs(
     units: Decimal,
     slabs: Sequence[UtilityRateSlab],
     utility_type: UtilityType,
) -> UtilityCalculation:
     """
     Progressive slab calculation.

     Slabs are consumed in slab_order; slab i takes min(remaining, to_units - from_units)
     units (all remaining units when to_units is None) at its rate, plus its fixed
     charge when it takes any units. Zero consumption costs nothing.
     """
     if units < 0:
          raise ValidationError("Units consumed cannot be negative")
     if not slabs:
          raise ValidationError("Rate plan has no rate slabs defined")

     remaining = Decimal(units)
     total = Decimal("0")
     breakdown = []
     for slab in sorted(slabs, key=lambda s: s.slab_order):
          if remaining <= 0:
               break
          from_units = Decimal(slab.from_units)
          if slab.to_units is None:
               in_slab = remaining
          else:
               in_slab = min(remaining, Decimal(slab.to_units) - from_units)
          if in_slab <= 0:
               continue

          rate = Decimal(slab.rate_per_unit)
          fixed = Decimal(slab.fixed_charge or 0)
          slab_amount = in_slab * rate
          total += slab_amount + fixed
          breakdown.append(SlabCharge(
               from_units=from_units,
               to_units=Decimal(slab.to_units) if slab.to_units is not None else from_units + in_slab,
               units_in_slab=in_slab,
               rate_per_unit=rate,
               amount=round_money(slab_amount),
               fixed_charge=fixed if fixed > 0 else None,
          ))
          remaining -= in_slab

     return UtilityCalculation(
          utility_type=utility_type,
          is_meter_based=True,
          units_consumed=units,
          total_amount=round_money(total),
          description=f"{utility_type.value} - {units} units (Slab-based)",
          slabs=breakdown,
     )


class UtilityService:
     """Service class for utility calculations and statements."""

     @staticmethod
     def get_rate_plan(db: Session, rate_plan_id: int, utility_type: UtilityType) -> UtilityRatePlan:
          """
          Load a rate plan usable for `utility_type`.

          Raises:
               NotFoundError: plan does not exist or is deleted
               ValidationError: plan is inactive, is for another utility, has no slabs,
                    or is a flat plan with more than one slab
          """
          plan = load(db, UtilityRatePlan, rate_plan_id)
          errors = []
          if not plan.is_active:
               errors.append(f"Utility rate plan {rate_plan_id} is not active")
          if plan.utility_type != utility_type:
               errors.append(
                    f"Utility rate plan {rate_plan_id} is for {plan.utility_type.value}, not {utility_type.value}"
               )
          if not plan.slabs:
               errors.append(f"Utility rate plan {rate_plan_id} has no rate slabs defined")
          elif plan.rate_type == RatePlanType.FLAT and len(plan.slabs) != 1:
               errors.append(f"Flat utility rate plan {rate_plan_id} must have exactly one rate slab")
          if errors:
               raise ValidationError(errors[0], errors)
          return plan

     @staticmethod
     def calculate_meter_based(
          db: Session,
          units: Decimal,
          rate_plan_id: int,
          utility_type: UtilityType,
     ) -> UtilityCalculation:
          plan = UtilityService.get_rate_plan(db, rate_plan_id, utility_type)
          if plan.rate_type == RatePlanType.FLAT:
               [slab] = plan.slabs
               return calculate_flat_rate(
                    units, Decimal(slab.rate_per_unit), Decimal(slab.fixed_charge or 0), utility_type
               )
          return calculate_slabs(units, plan.slabs, utility_type)

     @staticmethod
     def create_statement(db: Session, data: UtilityStatementCreate, actor: str, clock: Clock) -> UtilityStatement:
          """
          Record a draft statement and compute its total.

          The version number is one more than the highest version already recorded
          for the same lease, utility type and billing period.
          """
          load(db, Lease, data.lease_id)
          if data.billing_period_end < data.billing_period_start:
               raise ValidationError("Billing period end cannot be before start")

          statement = UtilityStatement(
               lease_id=data.lease_id,
               utility_type=data.utility_type,
               billing_period_start=data.billing_period_start,
               billing_period_end=data.billing_period_end,
               is_meter_based=data.is_meter_based,
               rate_plan_id=data.rate_plan_id,
               previous_reading=data.previous_reading,
               current_reading=data.current_reading,
               direct_bill_amount=data.direct_bill_amount,
               notes=data.notes,
               version=UtilityService._next_version(
                    db, data.lease_id, data.utility_type, data.billing_period_start, data.billing_period_end
               ),
               is_final=False,
               created_by=actor,
          )
          UtilityService._apply_calculation(db, statement)
          db.add(statement)
          flush_changes(db, "UtilityStatement")
          logger.info(
               "Created %s statement %s v%s for lease %s (%s..%s): %s",
               data.utility_type.value, statement.id, statement.version, data.lease_id,
               data.billing_period_start, data.billing_period_end, statement.total_amount,
          )
          return statement

     @staticmethod
     def update_draft(
          db: Session,
          statement_id: int,
          data: UtilityStatementUpdate,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> UtilityStatement:
          """Change a draft statement's inputs and recalculate it. Final statements are read-only."""
          statement = load_versioned(db, UtilityStatement, statement_id, expected_version)
          if statement.is_final:
               raise StateConflictError(
                    f"Utility statement {statement_id} is final; create a revision to change it"
               )
          for field, value in data.model_dump(exclude_unset=True).items():
               setattr(statement, field, value)
          UtilityService._apply_calculation(db, statement)
          flush_changes(db, "UtilityStatement", statement_id)
          return statement

     @staticmethod
     def create_revision(
          db: Session,
          statement_id: int,
          actor: str,
          clock: Clock,
          changes: Optional[UtilityStatementUpdate] = None,
     ) -> UtilityStatement:
          """
          Start a correction of a final statement: a new draft with the next version
          number that supersedes it. The original stays final until the revision is finalized.
          """
          original = load(db, UtilityStatement, statement_id)
          if not original.is_final:
               raise StateConflictError(f"Utility statement {statement_id} is a draft; edit it directly")
          if original.invoice_line_id is not None:
               raise StateConflictError(f"Utility statement {statement_id} has already been invoiced")

          revision = UtilityStatement(
               lease_id=original.lease_id,
               utility_type=original.utility_type,
               billing_period_start=original.billing_period_start,
               billing_period_end=original.billing_period_end,
               is_meter_based=original.is_meter_based,
               rate_plan_id=original.rate_plan_id,
               previous_reading=original.previous_reading,
               current_reading=original.current_reading,
               direct_bill_amount=original.direct_bill_amount,
               notes=original.notes,
               version=UtilityService._next_version(db, *original.period_key),
               is_final=False,
               supersedes_id=original.id,
               created_by=actor,
          )
          if changes is not None:
               for field, value in changes.model_dump(exclude_unset=True).items():
                    setattr(revision, field, value)
          UtilityService._apply_calculation(db, revision)
          db.add(revision)
          flush_changes(db, "UtilityStatement")
          logger.info("Created revision v%s (%s) of utility statement %s", revision.version, revision.id, statement_id)
          return revision

     @staticmethod
     def finalize_statement(
          db: Session,
          statement_id: int,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> UtilityStatement:
          """
          Mark a draft statement final.

          Rejected when another final statement exists for the same lease, utility
          type and period, unless that statement is the one this draft supersedes;
          in that case the old statement is retired in the same transaction.

          Raises:
               StateConflictError: already final, or a different final statement exists
               ConcurrencyError: expected_version does not match
          """
          statement = load_versioned(db, UtilityStatement, statement_id, expected_version)
          if statement.is_final:
               raise StateConflictError(f"Utility statement {statement_id} is already final")

          current_final = UtilityService.get_final_statement(db, *statement.period_key)
          if current_final is not None:
               if statement.supersedes_id != current_final.id:
                    logger.warning(
                         "Refused to finalize utility statement %s: statement %s is already final for the period",
                         statement_id, current_final.id,
                    )
                    raise StateConflictError(
                         f"A final {statement.utility_type.value} statement ({current_final.id}) already exists "
                         f"for lease {statement.lease_id} and period "
                         f"{statement.billing_period_start}..{statement.billing_period_end}"
                    )
               current_final.is_final = False
               current_final.superseded_at = clock.now()
               # The filtered unique index allows one final row per period at a time
               flush_changes(db, "UtilityStatement", current_final.id)

          statement.is_final = True
          statement.finalized_at = clock.now()
          statement.finalized_by = actor
          flush_changes(db, "UtilityStatement", statement_id)
          logger.info("Finalized utility statement %s (v%s)", statement_id, statement.version)
          return statement

     @staticmethod
     def get_final_statement(
          db: Session,
          lease_id: int,
          utility_type: UtilityType,
          period_start: date,
          period_end: date,
     ) -> Optional[UtilityStatement]:
          return (
               db.query(UtilityStatement)
               .filter(
                    UtilityStatement.lease_id == lease_id,
                    UtilityStatement.utility_type == utility_type,
                    UtilityStatement.billing_period_start == period_start,
                    UtilityStatement.billing_period_end == period_end,
                    UtilityStatement.is_final.is_(True),
                    UtilityStatement.is_deleted.is_(False),
               )
               .first()
          )

     @staticmethod
     def get_unbilled_final_statements(
          db: Session,
          lease_id: int,
          period_start: date,
          period_end: date,
     ) -> List[UtilityStatement]:
          """Final statements whose period ends inside the billing period and that are not yet invoiced."""
          return (
               db.query(UtilityStatement)
               .filter(
                    UtilityStatement.lease_id == lease_id,
                    UtilityStatement.is_final.is_(True),
                    UtilityStatement.is_deleted.is_(False),
                    UtilityStatement.invoice_line_id.is_(None),
                    UtilityStatement.billing_period_end >= period_start,
                    UtilityStatement.billing_period_end <= period_end,
               )
               .order_by(UtilityStatement.utility_type, UtilityStatement.id)
               .all()
          )

     @staticmethod
     def _next_version(db: Session, lease_id: int, utility_type: UtilityType, period_start: date, period_end: date) -> int:
          latest = (
               db.query(UtilityStatement.version)
               .filter(
                    UtilityStatement.lease_id == lease_id,
                    UtilityStatement.utility_type == utility_type,
                    UtilityStatement.billing_period_start == period_start,
                    UtilityStatement.billing_period_end == period_end,
               )
               .order_by(UtilityStatement.version.desc())
               .first()
          )
          return 1 if latest is None else latest[0] + 1

     @staticmethod
     def _apply_calculation(db: Session, statement: UtilityStatement) -> None:
          """Validate a statement's inputs and set units_consumed and total_amount."""
          if statement.is_meter_based:
               errors = []
               if statement.rate_plan_id is None:
                    errors.append("Rate plan is required for meter-based statements")
               if statement.previous_reading is None or statement.current_reading is None:
                    errors.append("Previous and current readings are required for meter-based statements")
               elif not (has_cents_precision(statement.previous_reading) and has_cents_precision(statement.current_reading)):
                    errors.append("Meter readings cannot have more than 2 decimal places")
               if errors:
                    raise ValidationError(errors[0], errors)
               units = units_consumed(statement.previous_reading, statement.current_reading)
               calculation = UtilityService.calculate_meter_based(db, units, statement.rate_plan_id, statement.utility_type)
               statement.units_consumed = units
          else:
               if statement.direct_bill_amount is None:
                    raise ValidationError("Direct bill amount is required for amount-based statements")
               calculation = calculate_amount_based(statement.direct_bill_amount, statement.utility_type)
               statement.units_consumed = None
          statement.total_amount = calculation.total_amount
