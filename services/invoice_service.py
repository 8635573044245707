# services/invoice_service.py
"""
Invoice Service - Business logic layer for the invoice lifecycle.

Draft -> Issued -> {PartiallyPaid, Paid, Overdue}; Draft/Issued -> {Voided, Cancelled}.

The paid amount is always recomputed from Completed payments, never incremented,
so recalculate_balance() can be called any number of times for the same payment.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import FrozenSet, List, Optional
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from database import load, load_versioned, flush_changes, insert_unique
from errors import BillingError, ValidationError, StateConflictError
from models import Lease, Invoice, InvoiceLine, InvoiceStatus, Payment, PaymentStatus, UtilityStatement
from schemas.billing import InvoiceLineCreate
from services.collaborators import Clock, today
from services.proration import round_money, has_cents_precision

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = frozenset({InvoiceStatus.ISSUED, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.OVERDUE})

# Payments in these statuses no longer hold a claim on the invoice
CLOSED_PAYMENT_STATUSES = frozenset({PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.REJECTED})


def allowed_transitions(status: InvoiceStatus) -> FrozenSet[InvoiceStatus]:
     """Statuses an invoice in `status` may move to."""
     match status:
          case InvoiceStatus.DRAFT:
               return frozenset({InvoiceStatus.ISSUED, InvoiceStatus.VOIDED, InvoiceStatus.CANCELLED})
          case InvoiceStatus.ISSUED:
               return frozenset({
                    InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID, InvoiceStatus.OVERDUE,
                    InvoiceStatus.VOIDED, InvoiceStatus.CANCELLED,
               })
          case InvoiceStatus.PARTIALLY_PAID:
               return frozenset({InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.ISSUED})
          case InvoiceStatus.OVERDUE:
               return frozenset({InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID})
          case InvoiceStatus.PAID:
               # Only reachable through a refund
               return frozenset({InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.ISSUED, InvoiceStatus.OVERDUE})
          case InvoiceStatus.VOIDED | InvoiceStatus.CANCELLED:
               return frozenset()
     raise ValueError(f"Unknown invoice status: {status}")


def derive_status(invoice: Invoice, paid: Decimal, balance: Decimal, on: date) -> InvoiceStatus:
     """Status an invoice should hold for the given paid and balance amounts."""
     match invoice.status:
          case InvoiceStatus.DRAFT | InvoiceStatus.VOIDED | InvoiceStatus.CANCELLED:
               return invoice.status
          case InvoiceStatus.ISSUED | InvoiceStatus.PARTIALLY_PAID | InvoiceStatus.OVERDUE | InvoiceStatus.PAID:
               if balance <= 0:
                    return InvoiceStatus.PAID
               if paid > 0:
                    return InvoiceStatus.PARTIALLY_PAID
               if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID):
                    return InvoiceStatus.OVERDUE if invoice.due_date < on else InvoiceStatus.ISSUED
               return invoice.status
     raise ValueError(f"Unknown invoice status: {invoice.status}")


def payment_term_days(lease: Lease) -> int:
     setting = lease.billing_setting
     if setting is not None and setting.payment_term_days is not None:
          return setting.payment_term_days
     return config.PAYMENT_TERM_DAYS


def invoice_prefix(lease: Lease) -> str:
     setting = lease.billing_setting
     prefix = (setting.invoice_prefix or "").strip() if setting is not None else ""
     return prefix or config.INVOICE_PREFIX


@dataclass
class OverdueSweepResult:
     """Outcome of one overdue sweep over an organization."""
     org_id: int
     run_date: date
     updated: List[int] = field(default_factory=list)
     failed: List[int] = field(default_factory=list)

     @property
     def total(self) -> int:
          return len(self.updated) + len(self.failed)


class InvoiceNumberGenerator:
     """Invoice numbers of the form {PREFIX}-{YYYYMM}-{NNNNNN}, sequential per organization."""

     SEQUENCE_WIDTH = 6

     @staticmethod
     def next_sequence(db: Session, org_id: int) -> int:
          last = db.query(func.max(Invoice.sequence_number)).filter(Invoice.org_id == org_id).scalar()
          return (last or 0) + 1

     @staticmethod
     def format_number(sequence: int, invoice_date: date, prefix: Optional[str] = None) -> str:
          prefix = (prefix or "").strip() or config.INVOICE_PREFIX
          return f"{prefix}-{invoice_date:%Y%m}-{sequence:0{InvoiceNumberGenerator.SEQUENCE_WIDTH}d}"


class InvoiceService:
     """Service class for invoice-related business logic."""

     @staticmethod
     def create_draft(
          db: Session,
          lease_id: int,
          billing_period_start: date,
          billing_period_end: date,
          actor: str,
          clock: Clock,
          invoice_date: Optional[date] = None,
          notes: Optional[str] = None,
     ) -> Invoice:
          """
          Create an empty Draft invoice for a lease and billing period.

          Args:
               db: SQLAlchemy database session
               lease_id: ID of the lease
               billing_period_start / billing_period_end: Billing period, inclusive
               actor: Acting user, recorded as modified_by
               clock: Source of the current time
               invoice_date: Defaults to the end of the billing period

          Returns:
               Created Invoice object (flushed, not committed)

          Raises:
               NotFoundError: If the lease doesn't exist
               ValidationError: If the billing period is inverted
               ConcurrencyError: If another draft took the same invoice number first
          """
          if billing_period_end < billing_period_start:
               raise ValidationError("Billing period end cannot be before start")
          lease = load(db, Lease, lease_id)
          invoice_date = invoice_date or billing_period_end
          sequence = InvoiceNumberGenerator.next_sequence(db, lease.org_id)

          invoice = Invoice(
               org_id=lease.org_id,
               lease_id=lease.id,
               invoice_number=InvoiceNumberGenerator.format_number(sequence, invoice_date, invoice_prefix(lease)),
               sequence_number=sequence,
               invoice_date=invoice_date,
               due_date=invoice_date + timedelta(days=payment_term_days(lease)),
               billing_period_start=billing_period_start,
               billing_period_end=billing_period_end,
               status=InvoiceStatus.DRAFT,
               subtotal=Decimal("0.00"),
               tax_amount=Decimal("0.00"),
               total_amount=Decimal("0.00"),
               paid_amount=Decimal("0.00"),
               balance_amount=Decimal("0.00"),
               payment_instructions=lease.billing_setting.payment_instructions if lease.billing_setting else None,
               notes=notes,
               modified_at=clock.now(),
               modified_by=actor,
          )
          # Flush to get the ID without committing
          insert_unique(db, invoice, "Invoice", invoice.invoice_number)
          logger.info("Created draft invoice %s (%s) for lease %s", invoice.id, invoice.invoice_number, lease_id)
          return invoice

     @staticmethod
     def add_line(
          db: Session,
          invoice_id: int,
          data: InvoiceLineCreate,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> InvoiceLine:
          """
          Append a line to a Draft invoice and refresh its totals.

          amount = quantity x unit price; tax = amount x tax rate when the line is taxable.
          """
          invoice = load_versioned(db, Invoice, invoice_id, expected_version)
          InvoiceService._assert_draft(invoice, "add lines to")

          errors = []
          if data.quantity <= 0:
               errors.append("Quantity must be greater than zero")
          if data.unit_price < 0:
               errors.append("Unit price cannot be negative")
          elif not has_cents_precision(data.unit_price):
               errors.append(f"Unit price ({data.unit_price}) has more than 2 decimal places")
          if data.tax_rate < 0 or data.tax_rate > 1:
               errors.append("Tax rate must be between 0 and 1")
          if errors:
               raise ValidationError(errors[0], errors)

          amount = round_money(data.quantity * data.unit_price)
          tax_amount = round_money(amount * data.tax_rate) if data.is_taxable else Decimal("0.00")
          line = InvoiceLine(
               charge_type_id=data.charge_type_id,
               line_number=max((existing.line_number for existing in invoice.lines), default=0) + 1,
               description=data.description,
               quantity=data.quantity,
               unit_price=data.unit_price,
               amount=amount,
               is_taxable=data.is_taxable,
               tax_rate=data.tax_rate if data.is_taxable else Decimal("0"),
               tax_amount=tax_amount,
               total_amount=amount + tax_amount,
               source_type=data.source_type,
               source_id=data.source_id,
          )
          invoice.lines.append(line)
          InvoiceService._refresh_totals(invoice)
          invoice.modified_at = clock.now()
          invoice.modified_by = actor
          flush_changes(db, "Invoice", invoice_id)
          return line

     @staticmethod
     def remove_line(
          db: Session,
          invoice_id: int,
          line_id: int,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> Invoice:
          invoice = load_versioned(db, Invoice, invoice_id, expected_version)
          InvoiceService._assert_draft(invoice, "remove lines from")
          line = next((candidate for candidate in invoice.lines if candidate.id == line_id), None)
          if line is None:
               raise ValidationError(f"Line {line_id} is not on invoice {invoice_id}")

          InvoiceService._release_utility_statements(db, [line.id])
          invoice.lines.remove(line)
          InvoiceService._refresh_totals(invoice)
          invoice.modified_at = clock.now()
          invoice.modified_by = actor
          flush_changes(db, "Invoice", invoice_id)
          return invoice

     @staticmethod
     def clear_lines(db: Session, invoice: Invoice) -> None:
          """Drop every line of a Draft invoice (used when a draft is regenerated)."""
          InvoiceService._assert_draft(invoice, "clear")
          InvoiceService._release_utility_statements(db, [line.id for line in invoice.lines if line.id is not None])
          invoice.lines.clear()
          InvoiceService._refresh_totals(invoice)

     @staticmethod
     def issue_invoice(
          db: Session,
          invoice_id: int,
          actor: str,
          clock: Clock,
          due_date: Optional[date] = None,
          expected_version: Optional[int] = None,
     ) -> Invoice:
          """
          Issue a Draft invoice.

          Requires at least one line and a positive total. Sets the issue timestamp and
          the due date (invoice date + the lease's payment term days, unless given).

          Raises:
               StateConflictError: invoice is not a Draft
               ValidationError: no lines, total <= 0, or due date before invoice date
          """
          invoice = load_versioned(db, Invoice, invoice_id, expected_version)
          InvoiceService._assert_draft(invoice, "issue")
          InvoiceService._refresh_totals(invoice)

          if not invoice.lines:
               raise ValidationError("Invoice cannot be issued without line items")
          if invoice.total_amount <= 0:
               raise ValidationError("Invoice cannot be issued with zero or negative total amount")
          if due_date is None:
               due_date = invoice.invoice_date + timedelta(days=payment_term_days(invoice.lease))
          if due_date < invoice.invoice_date:
               raise ValidationError("Due date cannot be before invoice date")

          InvoiceService._set_status(invoice, InvoiceStatus.ISSUED)
          invoice.issued_at = clock.now()
          invoice.due_date = due_date
          invoice.modified_at = clock.now()
          invoice.modified_by = actor
          flush_changes(db, "Invoice", invoice_id)
          logger.info("Issued invoice %s (%s) total=%s due=%s", invoice_id, invoice.invoice_number, invoice.total_amount, due_date)
          return invoice

     @staticmethod
     def recalculate_balance(db: Session, invoice_id: int, actor: str, clock: Clock) -> Invoice:
          """
          Recompute paid_amount as the sum of Completed payments, balance as total - paid,
          and derive the status from them.

          Pending and PendingConfirmation payments do not count.
          """
          invoice = load(db, Invoice, invoice_id)
          completed = (
               db.query(Payment.amount)
               .filter(Payment.invoice_id == invoice.id, Payment.status == PaymentStatus.COMPLETED)
               .all()
          )
          paid = round_money(sum((Decimal(amount) for (amount,) in completed), Decimal("0")))
          balance = round_money(Decimal(invoice.total_amount) - paid)

          previous = invoice.status
          new_status = derive_status(invoice, paid, balance, today(clock))
          InvoiceService._set_status(invoice, new_status)
          invoice.paid_amount = paid
          invoice.balance_amount = balance
          if new_status == InvoiceStatus.PAID:
               invoice.paid_at = invoice.paid_at or clock.now()
          else:
               invoice.paid_at = None
          invoice.modified_at = clock.now()
          invoice.modified_by = actor
          flush_changes(db, "Invoice", invoice_id)

          if previous != new_status:
               logger.info("Invoice %s: %s -> %s (paid=%s, balance=%s)", invoice_id, previous.value, new_status.value, paid, balance)
          return invoice

     @staticmethod
     def assert_accepts_payments(invoice: Invoice) -> None:
          """
          Raises:
               StateConflictError: the invoice is not Issued, PartiallyPaid or Overdue
          """
          if invoice.status not in PAYABLE_STATUSES:
               raise StateConflictError(
                    f"Invoice {invoice.id} does not accept payments in status {invoice.status.value}",
                    current_status=invoice.status,
               )

     @staticmethod
     def mark_overdue(db: Session, invoice_id: int, clock: Clock, actor: str = "system") -> Invoice:
          invoice = load(db, Invoice, invoice_id)
          if not invoice.is_overdue(today(clock)):
               raise StateConflictError(
                    f"Invoice {invoice_id} is not overdue (status {invoice.status.value}, due {invoice.due_date}, "
                    f"balance {invoice.balance_amount})",
                    current_status=invoice.status,
               )
          InvoiceService._set_status(invoice, InvoiceStatus.OVERDUE)
          invoice.modified_at = clock.now()
          invoice.modified_by = actor
          flush_changes(db, "Invoice", invoice_id)
          return invoice

     @staticmethod
     def run_overdue_sweep(db: Session, org_id: int, clock: Clock, actor: str = "system") -> OverdueSweepResult:
          """
          Mark every Issued or PartiallyPaid invoice of an organization that is past its
          due date with a balance outstanding as Overdue.

          Each invoice is updated in its own savepoint; an invoice that fails is logged,
          rolled back and reported in the result without stopping the sweep.

          This should be called by a scheduled job daily.
          """
          run_date = today(clock)
          result = OverdueSweepResult(org_id=org_id, run_date=run_date)
          candidate_ids = [
               invoice_id for (invoice_id,) in (
                    db.query(Invoice.id)
                    .filter(
                         Invoice.org_id == org_id,
                         Invoice.is_deleted.is_(False),
                         Invoice.status.in_([InvoiceStatus.ISSUED, InvoiceStatus.PARTIALLY_PAID]),
                         Invoice.due_date < run_date,
                         Invoice.balance_amount > 0,
                    )
                    .order_by(Invoice.id)
                    .all()
               )
          ]

          for invoice_id in candidate_ids:
               try:
                    with db.begin_nested():
                         InvoiceService.mark_overdue(db, invoice_id, clock, actor)
               except (BillingError, SQLAlchemyError) as exc:
                    logger.error("Overdue sweep failed for invoice %s: %s", invoice_id, exc)
                    result.failed.append(invoice_id)
               else:
                    result.updated.append(invoice_id)

          logger.info(
               "Overdue sweep for org %s on %s: %d marked, %d failed",
               org_id, run_date, len(result.updated), len(result.failed),
          )
          return result

     @staticmethod
     def void_invoice(
          db: Session,
          invoice_id: int,
          reason: str,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> Invoice:
          return InvoiceService._close(db, invoice_id, InvoiceStatus.VOIDED, reason, actor, clock, expected_version)

     @staticmethod
     def cancel_invoice(
          db: Session,
          invoice_id: int,
          reason: str,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> Invoice:
          return InvoiceService._close(db, invoice_id, InvoiceStatus.CANCELLED, reason, actor, clock, expected_version)

     @staticmethod
     def _close(
          db: Session,
          invoice_id: int,
          target: InvoiceStatus,
          reason: str,
          actor: str,
          clock: Clock,
          expected_version: Optional[int],
     ) -> Invoice:
          """Void or cancel: Draft/Issued only, no live payments, reason required."""
          if not reason or not reason.strip():
               raise ValidationError(f"A reason is required to mark an invoice {target.value}")
          invoice = load_versioned(db, Invoice, invoice_id, expected_version)
          if invoice.status not in (InvoiceStatus.DRAFT, InvoiceStatus.ISSUED):
               raise StateConflictError(
                    f"Invoice {invoice_id} cannot be marked {target.value} from status {invoice.status.value}",
                    current_status=invoice.status,
               )
          live_payments = [
               payment_id for (payment_id,) in (
                    db.query(Payment.id)
                    .filter(Payment.invoice_id == invoice.id, Payment.status.notin_(list(CLOSED_PAYMENT_STATUSES)))
                    .all()
               )
          ]
          if live_payments:
               raise StateConflictError(
                    f"Invoice {invoice_id} has payments {live_payments}; it cannot be marked {target.value}",
                    current_status=invoice.status,
               )

          InvoiceService._release_utility_statements(db, [line.id for line in invoice.lines])
          InvoiceService._set_status(invoice, target)
          invoice.voided_at = clock.now()
          invoice.void_reason = reason.strip()
          invoice.modified_at = clock.now()
          invoice.modified_by = actor
          flush_changes(db, "Invoice", invoice_id)
          logger.info("Invoice %s marked %s by %s: %s", invoice_id, target.value, actor, invoice.void_reason)
          return invoice

     @staticmethod
     def _set_status(invoice: Invoice, new_status: InvoiceStatus) -> None:
          if invoice.status == new_status:
               return
          if new_status not in allowed_transitions(invoice.status):
               raise StateConflictError(
                    f"Invoice {invoice.id} cannot move from {invoice.status.value} to {new_status.value}",
                    current_status=invoice.status,
               )
          invoice.status = new_status

     @staticmethod
     def _assert_draft(invoice: Invoice, action: str) -> None:
          if invoice.status != InvoiceStatus.DRAFT:
               raise StateConflictError(
                    f"Cannot {action} invoice {invoice.id} in status {invoice.status.value}; only Draft invoices can be changed",
                    current_status=invoice.status,
               )

     @staticmethod
     def _refresh_totals(invoice: Invoice) -> None:
          invoice.subtotal = round_money(sum((Decimal(line.amount) for line in invoice.lines), Decimal("0")))
          invoice.tax_amount = round_money(sum((Decimal(line.tax_amount) for line in invoice.lines), Decimal("0")))
          invoice.total_amount = invoice.subtotal + invoice.tax_amount
          invoice.balance_amount = invoice.total_amount - Decimal(invoice.paid_amount or 0)

     @staticmethod
     def _release_utility_statements(db: Session, line_ids: List[int]) -> None:
          """Unlink utility statements billed on the given lines so they can be billed again."""
          if not line_ids:
               return
          statements = db.query(UtilityStatement).filter(UtilityStatement.invoice_line_id.in_(line_ids)).all()
          for statement in statements:
               statement.invoice_line_id = None
          if statements:
               # Unlink before the lines are deleted
               flush_changes(db, "UtilityStatement")
