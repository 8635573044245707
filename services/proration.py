# services/proration.py
"""
Proration of a full-period amount over the days a charge is active within a billing period.

Both ends of every date range are inclusive. Results are rounded to the currency's
minor unit (2 places) with ROUND_HALF_EVEN, the rounding rule used everywhere in billing.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_EVEN

from errors import ValidationError
from models.lease import ProrationMethod

CENTS = Decimal("0.01")
THIRTY_DAY_BASE = 30


def round_money(value: Decimal) -> Decimal:
     """Round a monetary value to 2 decimal places, half to even."""
     return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_EVEN)


def has_cents_precision(value: Decimal) -> bool:
     """Whether `value` is representable with 2 fraction digits (5, 5.0 and 5.000 are; 5.001 is not)."""
     value = Decimal(value)
     return value == value.quantize(CENTS, rounding=ROUND_HALF_EVEN)


def days_inclusive(start: date, end: date) -> int:
     """Number of calendar days in [start, end]."""
     return (end - start).days + 1


@dataclass(frozen=True)
class ProrationResult:
     amount: Decimal
     active_days: int
     period_days: int
     is_prorated: bool


def period_days_for(method: ProrationMethod, period_start: date, period_end: date) -> int:
     """Denominator of the proration fraction for the given convention."""
     match method:
          case ProrationMethod.THIRTY_DAY_MONTH:
               return THIRTY_DAY_BASE
          case ProrationMethod.ACTUAL_DAYS_IN_MONTH:
               return days_inclusive(period_start, period_end)
     raise ValidationError(f"Unknown proration method: {method}")


def calculate_proration(
     amount: Decimal,
     period_start: date,
     period_end: date,
     active_start: date,
     active_end: date,
     method: ProrationMethod = ProrationMethod.ACTUAL_DAYS_IN_MONTH,
) -> ProrationResult:
     """
     Prorate `amount` for the active range inside the billing period.

     Args:
          amount: Full-period amount (>= 0)
          period_start / period_end: Billing period, inclusive
          active_start / active_end: Range the charge is active, inclusive, inside the period
          method: ACTUAL_DAYS_IN_MONTH divides by the period's calendar length,
               THIRTY_DAY_MONTH always divides by 30

     Returns:
          ProrationResult with the rounded amount and the day counts used

     Raises:
          ValidationError: negative amount, inverted ranges, or an active range
               that is not contained in the period
     """
     amount = Decimal(amount)
     errors = []
     if amount < 0:
          errors.append("Amount cannot be negative")
     if period_end < period_start:
          errors.append("Billing period end cannot be before start")
     if active_end < active_start:
          errors.append("Active range end cannot be before start")
     if errors:
          raise ValidationError(errors[0], errors)
     if active_start < period_start or active_end > period_end:
          raise ValidationError(
               f"Active range {active_start}..{active_end} is outside billing period {period_start}..{period_end}"
          )

     period_days = period_days_for(method, period_start, period_end)
     active_days = days_inclusive(active_start, active_end)

     if active_start == period_start and active_end == period_end:
          return ProrationResult(amount=amount, active_days=active_days, period_days=period_days, is_prorated=False)

     prorated = round_money(amount * Decimal(active_days) / Decimal(period_days))
     return ProrationResult(amount=prorated, active_days=active_days, period_days=period_days, is_prorated=True)


def prorate(
     amount: Decimal,
     period_start: date,
     period_end: date,
     active_start: date,
     active_end: date,
     method: ProrationMethod = ProrationMethod.ACTUAL_DAYS_IN_MONTH,
) -> Decimal:
     """Shorthand for calculate_proration(...).amount."""
     return calculate_proration(amount, period_start, period_end, active_start, active_end, method).amount
