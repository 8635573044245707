# services/recurring_charge_service.py
"""
Recurring Charge Service - expands a lease's recurring charges into invoice line
candidates for a billing period, and maintains the charge definitions.

Charges are never deleted; deactivate_charge() clears is_active instead.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional
from sqlalchemy.orm import Session

import config
from database import load, load_versioned, flush_changes
from errors import ValidationError, NotFoundError
from models import Lease, ChargeType, RecurringCharge, BillingFrequency, ProrationMethod
from schemas.billing import ChargeLineCandidate, RecurringChargeCreate, RecurringChargeUpdate
from services.collaborators import Clock
from services.proration import calculate_proration, has_cents_precision

logger = logging.getLogger(__name__)

# Update fields that may be changed but never set to null
REQUIRED_CHARGE_FIELDS = ("description", "amount", "start_date", "is_active")


def resolve_proration_method(lease: Lease) -> ProrationMethod:
     """The lease's configured proration method, or the organization-wide default."""
     setting = lease.billing_setting
     if setting is not None and setting.proration_method is not None:
          return setting.proration_method
     return ProrationMethod(config.DEFAULT_PRORATION_METHOD)


def _months_between(start: date, later: date) -> int:
     return (later.year - start.year) * 12 + (later.month - start.month)


def is_due_in_period(charge: RecurringCharge, period_start: date, period_end: date) -> bool:
     """
     Frequency filter: whether `charge` is billed in the period starting at `period_start`.

     One-time charges fall in the single period containing their start date;
     quarterly and yearly charges fall in periods whose start month is a multiple
     of 3 or 12 months after the charge's start month.
     """
     match charge.frequency:
          case BillingFrequency.ONE_TIME:
               return period_start <= charge.start_date <= period_end
          case BillingFrequency.MONTHLY:
               return True
          case BillingFrequency.QUARTERLY:
               return _months_between(charge.start_date, period_start) % 3 == 0
          case BillingFrequency.YEARLY:
               return _months_between(charge.start_date, period_start) % 12 == 0
     raise ValidationError(f"Unknown billing frequency: {charge.frequency}")


def expand_charges(
     charges: Iterable[RecurringCharge],
     period_start: date,
     period_end: date,
     method: ProrationMethod = ProrationMethod.ACTUAL_DAYS_IN_MONTH,
) -> List[ChargeLineCandidate]:
     """
     Build line candidates for the charges billable in [period_start, period_end].

     Each candidate's period is the charge's active range within the billing period;
     the amount is prorated unless that range is the whole period.
     """
     if period_end < period_start:
          raise ValidationError("Billing period end cannot be before start")

     candidates = []
     for charge in charges:
          if not charge.is_active:
               continue
          if charge.start_date > period_end:
               continue
          if charge.end_date is not None and charge.end_date < period_start:
               continue
          if not is_due_in_period(charge, period_start, period_end):
               continue

          active_start = max(charge.start_date, period_start)
          active_end = min(charge.end_date or period_end, period_end)
          proration = calculate_proration(
               Decimal(charge.amount), period_start, period_end, active_start, active_end, method
          )
          candidates.append(ChargeLineCandidate(
               charge_id=charge.id,
               charge_type_id=charge.charge_type_id,
               description=charge.description,
               frequency=charge.frequency,
               period_start=active_start,
               period_end=active_end,
               full_amount=Decimal(charge.amount),
               amount=proration.amount,
               is_prorated=proration.is_prorated,
          ))
     return candidates


class RecurringChargeService:
     """Service class for recurring charge definitions and their expansion."""

     @staticmethod
     def get_line_candidates(
          db: Session,
          lease_id: int,
          period_start: date,
          period_end: date,
          method: Optional[ProrationMethod] = None,
     ) -> List[ChargeLineCandidate]:
          """
          Line candidates for one lease and billing period.

          Args:
               db: SQLAlchemy database session
               lease_id: Lease to bill
               period_start / period_end: Billing period, inclusive
               method: Proration convention; defaults to the lease's billing setting

          Returns:
               Unpersisted ChargeLineCandidate list, ordered by charge id
          """
          lease = load(db, Lease, lease_id)
          charges = (
               db.query(RecurringCharge)
               .filter(RecurringCharge.lease_id == lease_id, RecurringCharge.is_active.is_(True))
               .order_by(RecurringCharge.id)
               .all()
          )
          return expand_charges(charges, period_start, period_end, method or resolve_proration_method(lease))

     @staticmethod
     def create_charge(db: Session, data: RecurringChargeCreate, actor: str, clock: Clock) -> RecurringCharge:
          """
          Add a recurring charge to a lease.

          Raises:
               NotFoundError: lease or charge type does not exist
               ValidationError: amount <= 0, end date not after start date, inactive charge type
          """
          load(db, Lease, data.lease_id)
          charge_type = db.get(ChargeType, data.charge_type_id)
          if charge_type is None:
               raise NotFoundError("ChargeType", data.charge_type_id)

          errors = _charge_errors(data.amount, data.start_date, data.end_date)
          if not charge_type.is_active:
               errors.append(f"Charge type {charge_type.code} is not active")
          if errors:
               raise ValidationError(errors[0], errors)

          charge = RecurringCharge(
               lease_id=data.lease_id,
               charge_type_id=data.charge_type_id,
               description=data.description,
               amount=data.amount,
               frequency=data.frequency,
               start_date=data.start_date,
               end_date=data.end_date,
               is_active=True,
               notes=data.notes,
               created_by=actor,
          )
          db.add(charge)
          flush_changes(db, "RecurringCharge")
          logger.info("Created recurring charge %s on lease %s (%s %s)", charge.id, data.lease_id, data.frequency.value, data.amount)
          return charge

     @staticmethod
     def update_charge(
          db: Session,
          charge_id: int,
          data: RecurringChargeUpdate,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> RecurringCharge:
          """Apply the fields set on `data`; the result must still satisfy the charge invariants."""
          charge = load_versioned(db, RecurringCharge, charge_id, expected_version)
          changes = data.model_dump(exclude_unset=True)
          cleared = [f"{field} cannot be cleared" for field in REQUIRED_CHARGE_FIELDS if field in changes and changes[field] is None]
          if cleared:
               raise ValidationError(cleared[0], cleared)

          amount = changes.get("amount", charge.amount)
          start_date = changes.get("start_date", charge.start_date)
          end_date = changes.get("end_date", charge.end_date)
          errors = _charge_errors(amount, start_date, end_date)
          if errors:
               raise ValidationError(errors[0], errors)

          for field, value in changes.items():
               setattr(charge, field, value)
          charge.modified_at = clock.now()
          charge.modified_by = actor
          flush_changes(db, "RecurringCharge", charge_id)
          return charge

     @staticmethod
     def deactivate_charge(
          db: Session,
          charge_id: int,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> RecurringCharge:
          charge = load_versioned(db, RecurringCharge, charge_id, expected_version)
          if not charge.is_active:
               return charge
          charge.is_active = False
          charge.modified_at = clock.now()
          charge.modified_by = actor
          flush_changes(db, "RecurringCharge", charge_id)
          logger.info("Deactivated recurring charge %s", charge_id)
          return charge


def _charge_errors(amount: Optional[Decimal], start_date: date, end_date: Optional[date]) -> List[str]:
     errors = []
     if amount is None or amount <= 0:
          errors.append("Amount must be greater than zero")
     elif not has_cents_precision(amount):
          errors.append(f"Amount ({amount}) has more than 2 decimal places")
     if end_date is not None and end_date <= start_date:
          errors.append("End date must be after start date")
     return errors
