# services/invoice_generation_service.py
"""
Invoice Generation Service - assembles a lease's Draft invoice for a billing period
from its recurring charges and its final, not yet invoiced utility statements.

Generation is idempotent: running it again for the same lease and period refreshes
the existing Draft instead of creating a second invoice. run_invoice_generation()
does this for every active lease of an organization.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import load, flush_changes
from errors import BillingError, NotFoundError, StateConflictError, ValidationError
from models import (
     Lease, LeaseStatus, ChargeType, ChargeTypeCode, Invoice, InvoiceStatus,
     ProrationMethod, UtilityType,
)
from schemas.billing import InvoiceLineCreate
from services.collaborators import Clock
from services.invoice_service import InvoiceService
from services.recurring_charge_service import RecurringChargeService, resolve_proration_method
from services.utility_service import UtilityService

logger = logging.getLogger(__name__)

SOURCE_RECURRING_CHARGE = "RECURRING_CHARGE"
SOURCE_UTILITY_STATEMENT = "UTILITY_STATEMENT"

UTILITY_CHARGE_CODES = {
     UtilityType.ELECTRICITY: ChargeTypeCode.ELECTRICITY,
     UtilityType.WATER: ChargeTypeCode.WATER,
     UtilityType.GAS: ChargeTypeCode.GAS,
}


class InvoiceRunStatus(str, enum.Enum):
     COMPLETED = "COMPLETED"
     COMPLETED_WITH_ERRORS = "COMPLETED_WITH_ERRORS"
     FAILED = "FAILED"


@dataclass
class GeneratedInvoice:
     invoice: Invoice
     was_updated: bool


@dataclass
class InvoiceRunResult:
     """Outcome of one invoice run over an organization's active leases."""
     org_id: int
     billing_period_start: date
     billing_period_end: date
     generated: List[int] = field(default_factory=list)  # invoice ids
     failed: Dict[int, str] = field(default_factory=dict)  # lease id -> error message
     skipped: List[int] = field(default_factory=list)  # lease ids with automatic generation off

     @property
     def status(self) -> InvoiceRunStatus:
          if not self.failed:
               return InvoiceRunStatus.COMPLETED
          if self.generated:
               return InvoiceRunStatus.COMPLETED_WITH_ERRORS
          return InvoiceRunStatus.FAILED


def find_charge_type(db: Session, org_id: int, code: str) -> ChargeType:
     """Active charge type by code, preferring the organization's own over the system one."""
     matches = (
          db.query(ChargeType)
          .filter(ChargeType.code == code, ChargeType.is_active.is_(True))
          .filter((ChargeType.org_id == org_id) | (ChargeType.org_id.is_(None)))
          .all()
     )
     if not matches:
          raise NotFoundError("ChargeType", code)
     return next((charge_type for charge_type in matches if charge_type.org_id == org_id), matches[0])


class InvoiceGenerationService:
     """Service class for building Draft invoices from billing sources."""

     @staticmethod
     def generate_invoice(
          db: Session,
          lease_id: int,
          billing_period_start: date,
          billing_period_end: date,
          actor: str,
          clock: Clock,
          method: Optional[ProrationMethod] = None,
     ) -> GeneratedInvoice:
          """
          Create or refresh the Draft invoice of a lease for a billing period.

          Args:
               db: SQLAlchemy database session
               lease_id: Lease to bill (must be Active)
               billing_period_start / billing_period_end: Billing period, inclusive
               actor: Acting user or job name
               clock: Source of the current time
               method: Proration convention; defaults to the lease's billing setting

          Returns:
               GeneratedInvoice with the Draft invoice and whether an existing draft was refreshed

          Raises:
               NotFoundError: lease, or a charge type needed for a utility line, is missing
               StateConflictError: lease is not Active, or the period is already invoiced
          """
          lease = load(db, Lease, lease_id)
          if lease.status != LeaseStatus.ACTIVE:
               raise StateConflictError(
                    f"Lease {lease_id} is not active (status {lease.status.value})",
                    current_status=lease.status,
               )
          method = method or resolve_proration_method(lease)

          invoice = InvoiceGenerationService._existing_invoice(db, lease_id, billing_period_start, billing_period_end)
          was_updated = invoice is not None
          if invoice is None:
               invoice = InvoiceService.create_draft(db, lease_id, billing_period_start, billing_period_end, actor, clock)
          else:
               InvoiceService.clear_lines(db, invoice)
               flush_changes(db, "Invoice", invoice.id)

          candidates = RecurringChargeService.get_line_candidates(
               db, lease_id, billing_period_start, billing_period_end, method
          )
          charge_types: Dict[int, ChargeType] = {}
          for candidate in candidates:
               charge_type = charge_types.get(candidate.charge_type_id)
               if charge_type is None:
                    charge_type = load(db, ChargeType, candidate.charge_type_id)
                    charge_types[candidate.charge_type_id] = charge_type
               description = candidate.description
               if candidate.is_prorated:
                    description = f"{description} ({candidate.period_start:%d %b} - {candidate.period_end:%d %b %Y}, prorated)"
               InvoiceService.add_line(db, invoice.id, InvoiceLineCreate(
                    charge_type_id=charge_type.id,
                    description=description,
                    quantity=Decimal("1"),
                    unit_price=candidate.amount,
                    is_taxable=charge_type.is_taxable,
                    tax_rate=charge_type.default_tax_rate if charge_type.is_taxable else Decimal("0"),
                    source_type=SOURCE_RECURRING_CHARGE,
                    source_id=candidate.charge_id,
               ), actor, clock)

          statements = UtilityService.get_unbilled_final_statements(
               db, lease_id, billing_period_start, billing_period_end
          )
          for statement in statements:
               charge_type = find_charge_type(db, lease.org_id, UTILITY_CHARGE_CODES[statement.utility_type])
               description = (
                    f"{statement.utility_type.value.title()} "
                    f"{statement.billing_period_start:%d %b} - {statement.billing_period_end:%d %b %Y}"
               )
               if statement.is_meter_based:
                    description = f"{description} ({statement.units_consumed} units)"
               line = InvoiceService.add_line(db, invoice.id, InvoiceLineCreate(
                    charge_type_id=charge_type.id,
                    description=description,
                    quantity=Decimal("1"),
                    unit_price=statement.total_amount,
                    is_taxable=charge_type.is_taxable,
                    tax_rate=charge_type.default_tax_rate if charge_type.is_taxable else Decimal("0"),
                    source_type=SOURCE_UTILITY_STATEMENT,
                    source_id=statement.id,
               ), actor, clock)
               statement.invoice_line_id = line.id
          flush_changes(db, "Invoice", invoice.id)

          logger.info(
               "%s invoice %s for lease %s (%s..%s): %d lines, total %s",
               "Refreshed" if was_updated else "Generated",
               invoice.invoice_number, lease_id, billing_period_start, billing_period_end,
               len(invoice.lines), invoice.total_amount,
          )
          return GeneratedInvoice(invoice=invoice, was_updated=was_updated)

     @staticmethod
     def run_invoice_generation(
          db: Session,
          org_id: int,
          billing_period_start: date,
          billing_period_end: date,
          actor: str,
          clock: Clock,
          method: Optional[ProrationMethod] = None,
     ) -> InvoiceRunResult:
          """
          Generate (or refresh) the Draft invoice of every Active lease of an organization
          for one billing period.

          Leases whose billing setting turns automatic generation off are skipped. Each
          lease is generated in its own savepoint; a lease that fails is logged, rolled
          back and reported in the result without stopping the run.

          This should be called by a scheduled job once per billing period.
          """
          if billing_period_end < billing_period_start:
               raise ValidationError("Billing period end cannot be before start")
          result = InvoiceRunResult(
               org_id=org_id,
               billing_period_start=billing_period_start,
               billing_period_end=billing_period_end,
          )
          leases = (
               db.query(Lease)
               .filter(Lease.org_id == org_id, Lease.status == LeaseStatus.ACTIVE, Lease.is_deleted.is_(False))
               .order_by(Lease.id)
               .all()
          )

          for lease in leases:
               setting = lease.billing_setting
               if setting is not None and not setting.generate_invoice_automatically:
                    result.skipped.append(lease.id)
                    continue
               try:
                    with db.begin_nested():
                         generated = InvoiceGenerationService.generate_invoice(
                              db, lease.id, billing_period_start, billing_period_end, actor, clock, method
                         )
               except (BillingError, SQLAlchemyError) as exc:
                    logger.error("Invoice run failed for lease %s: %s", lease.lease_number or lease.id, exc)
                    result.failed[lease.id] = str(exc)
               else:
                    result.generated.append(generated.invoice.id)

          logger.info(
               "Invoice run for org %s (%s..%s): %s, %d generated, %d failed, %d skipped",
               org_id, billing_period_start, billing_period_end, result.status.value,
               len(result.generated), len(result.failed), len(result.skipped),
          )
          return result

     @staticmethod
     def _existing_invoice(db: Session, lease_id: int, period_start: date, period_end: date) -> Optional[Invoice]:
          """The open invoice already covering this period, if any. Issued invoices are never regenerated."""
          existing = (
               db.query(Invoice)
               .filter(
                    Invoice.lease_id == lease_id,
                    Invoice.billing_period_start == period_start,
                    Invoice.billing_period_end == period_end,
                    Invoice.is_deleted.is_(False),
                    Invoice.status.notin_([InvoiceStatus.VOIDED, InvoiceStatus.CANCELLED]),
               )
               .order_by(Invoice.id)
               .first()
          )
          if existing is not None and existing.status != InvoiceStatus.DRAFT:
               raise StateConflictError(
                    f"Lease {lease_id} already has invoice {existing.invoice_number} "
                    f"({existing.status.value}) for {period_start}..{period_end}",
                    current_status=existing.status,
               )
          return existing
