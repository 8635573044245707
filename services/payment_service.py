# services/payment_service.py
"""
Payment Service - payment recording and the payment state machine.

Entry status at creation:
- CASH -> COMPLETED
- any other mode with a transaction reference -> COMPLETED
- ONLINE with only a gateway transaction id -> PENDING (settled later by the gateway callback)
- created from a confirmation request -> PENDING_CONFIRMATION

Every status change, creation included, appends a PaymentStatusHistory row in the
same unit of work. Reaching or leaving COMPLETED triggers invoice recalculation.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import FrozenSet, List, Optional
from sqlalchemy.orm import Session

from database import load, load_versioned, flush_changes
from errors import ValidationError, StateConflictError
from models import Invoice, Payment, PaymentMode, PaymentStatus, PaymentStatusHistory
from schemas.payment import PaymentCreate
from services.collaborators import Clock
from services.invoice_service import InvoiceService
from services.proration import has_cents_precision

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PENDING_CONFIRMATION})


def allowed_transitions(status: PaymentStatus) -> FrozenSet[PaymentStatus]:
     """Statuses a payment in `status` may move to."""
     match status:
          case PaymentStatus.PENDING:
               return frozenset({
                    PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.FAILED,
                    PaymentStatus.CANCELLED, PaymentStatus.REJECTED,
               })
          case PaymentStatus.PENDING_CONFIRMATION:
               return frozenset({PaymentStatus.COMPLETED, PaymentStatus.REJECTED, PaymentStatus.CANCELLED})
          case PaymentStatus.PROCESSING:
               return frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED})
          case PaymentStatus.COMPLETED:
               return frozenset({PaymentStatus.REFUNDED})
          case PaymentStatus.FAILED | PaymentStatus.CANCELLED | PaymentStatus.REFUNDED | PaymentStatus.REJECTED:
               return frozenset()
     raise ValueError(f"Unknown payment status: {status}")


def entry_status(mode: PaymentMode, transaction_reference: Optional[str], gateway_transaction_id: Optional[str]) -> PaymentStatus:
     """
     Initial status of a directly recorded payment.

     Raises:
          ValidationError: a non-cash payment without a transaction reference
               (an online payment may carry a gateway transaction id instead)
     """
     has_reference = bool(transaction_reference and transaction_reference.strip())
     has_gateway_id = bool(gateway_transaction_id and gateway_transaction_id.strip())
     match mode:
          case PaymentMode.CASH:
               return PaymentStatus.COMPLETED
          case PaymentMode.ONLINE if not has_reference and has_gateway_id:
               return PaymentStatus.PENDING
          case PaymentMode.ONLINE | PaymentMode.BANK_TRANSFER | PaymentMode.CHEQUE | PaymentMode.UPI | PaymentMode.OTHER:
               if not has_reference:
                    raise ValidationError(f"Transaction reference is required for {mode.value} payments")
               return PaymentStatus.COMPLETED
     raise ValidationError(f"Unknown payment mode: {mode}")


def check_amount(amount: Decimal, invoice: Invoice) -> None:
     """
     Raises:
          ValidationError: amount <= 0, more than 2 decimal places, or more than the
               invoice's remaining balance
     """
     if amount is None or amount <= 0:
          raise ValidationError("Payment amount must be greater than zero")
     if not has_cents_precision(amount):
          raise ValidationError(f"Payment amount ({amount}) has more than 2 decimal places")
     if amount > invoice.balance_amount:
          raise ValidationError(
               f"Payment amount ({amount}) exceeds invoice balance ({invoice.balance_amount})"
          )


class PaymentService:
     """Service class for payments."""

     @staticmethod
     def record_payment(db: Session, data: PaymentCreate, actor: str, clock: Clock) -> Payment:
          """
          Record a payment against an invoice.

          Args:
               db: SQLAlchemy database session
               data: Payment details
               actor: Owner/manager (or gateway integration) recording the payment
               clock: Source of the current time

          Returns:
               The Payment, in the status given by its entry rule

          Raises:
               NotFoundError: invoice does not exist
               StateConflictError: invoice is not Issued, PartiallyPaid or Overdue
               ValidationError: bad amount, or missing transaction reference
          """
          invoice = load(db, Invoice, data.invoice_id)
          InvoiceService.assert_accepts_payments(invoice)
          check_amount(data.amount, invoice)
          status = entry_status(data.mode, data.transaction_reference, data.gateway_transaction_id)

          payment = PaymentService._new_payment(
               db,
               invoice,
               status=status,
               actor=actor,
               clock=clock,
               mode=data.mode,
               amount=data.amount,
               payment_date=data.payment_date,
               transaction_reference=data.transaction_reference,
               gateway_transaction_id=data.gateway_transaction_id,
               gateway_name=data.gateway_name,
               payer_name=data.payer_name,
               notes=data.notes,
               payment_metadata=data.metadata,
          )
          logger.info(
               "Recorded %s payment %s of %s on invoice %s as %s",
               data.mode.value, payment.id, data.amount, invoice.id, status.value,
          )
          if status == PaymentStatus.COMPLETED:
               InvoiceService.recalculate_balance(db, invoice.id, actor, clock)
          return payment

     @staticmethod
     def create_pending_confirmation(
          db: Session,
          invoice: Invoice,
          amount: Decimal,
          payment_date: datetime,
          confirmation_request_id: int,
          actor: str,
          clock: Clock,
          transaction_reference: Optional[str] = None,
          notes: Optional[str] = None,
     ) -> Payment:
          """Payment materialized from a tenant's confirmation request, awaiting completion."""
          InvoiceService.assert_accepts_payments(invoice)
          check_amount(amount, invoice)
          return PaymentService._new_payment(
               db,
               invoice,
               status=PaymentStatus.PENDING_CONFIRMATION,
               actor=actor,
               clock=clock,
               mode=PaymentMode.OTHER,
               amount=amount,
               payment_date=payment_date,
               transaction_reference=transaction_reference,
               notes=notes,
               confirmation_request_id=confirmation_request_id,
          )

     @staticmethod
     def confirm_payment(
          db: Session,
          payment_id: int,
          actor: str,
          clock: Clock,
          note: Optional[str] = None,
          expected_version: Optional[int] = None,
     ) -> Payment:
          """
          Owner confirms a Pending or PendingConfirmation payment: it becomes Completed
          and the invoice is recalculated in the same transaction.

          The invoice must still accept payments and the amount must still fit its balance.
          """
          payment = load_versioned(db, Payment, payment_id, expected_version)
          PaymentService._assert_reviewable(payment, "confirmed")
          invoice = load(db, Invoice, payment.invoice_id)
          InvoiceService.assert_accepts_payments(invoice)
          check_amount(payment.amount, invoice)

          PaymentService._transition(db, payment, PaymentStatus.COMPLETED, actor, clock, note)
          InvoiceService.recalculate_balance(db, invoice.id, actor, clock)
          return payment

     @staticmethod
     def reject_payment(
          db: Session,
          payment_id: int,
          reason: str,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> Payment:
          """Owner rejects a Pending or PendingConfirmation payment. The invoice is not touched."""
          PaymentService._require_reason(reason, "reject")
          payment = load_versioned(db, Payment, payment_id, expected_version)
          PaymentService._assert_reviewable(payment, "rejected")
          PaymentService._transition(db, payment, PaymentStatus.REJECTED, actor, clock, reason)
          logger.warning("Payment %s rejected by %s: %s", payment_id, actor, reason)
          return payment

     @staticmethod
     def mark_processing(
          db: Session,
          payment_id: int,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> Payment:
          payment = load_versioned(db, Payment, payment_id, expected_version)
          PaymentService._transition(db, payment, PaymentStatus.PROCESSING, actor, clock)
          return payment

     @staticmethod
     def settle_payment(
          db: Session,
          payment_id: int,
          transaction_reference: str,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> Payment:
          """Gateway callback: a Pending or Processing payment cleared with `transaction_reference`."""
          PaymentService._require_reason(transaction_reference, "settle", what="transaction reference")
          payment = load_versioned(db, Payment, payment_id, expected_version)
          if payment.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
               raise StateConflictError(
                    f"Payment {payment_id} cannot be settled in status {payment.status.value}",
                    current_status=payment.status,
               )
          invoice = load(db, Invoice, payment.invoice_id)
          InvoiceService.assert_accepts_payments(invoice)
          check_amount(payment.amount, invoice)

          payment.transaction_reference = transaction_reference
          PaymentService._transition(db, payment, PaymentStatus.COMPLETED, actor, clock, f"Settled: {transaction_reference}")
          InvoiceService.recalculate_balance(db, invoice.id, actor, clock)
          return payment

     @staticmethod
     def fail_payment(
          db: Session,
          payment_id: int,
          reason: str,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> Payment:
          PaymentService._require_reason(reason, "fail")
          payment = load_versioned(db, Payment, payment_id, expected_version)
          PaymentService._transition(db, payment, PaymentStatus.FAILED, actor, clock, reason)
          logger.warning("Payment %s failed: %s", payment_id, reason)
          return payment

     @staticmethod
     def cancel_payment(
          db: Session,
          payment_id: int,
          reason: str,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> Payment:
          PaymentService._require_reason(reason, "cancel")
          payment = load_versioned(db, Payment, payment_id, expected_version)
          PaymentService._transition(db, payment, PaymentStatus.CANCELLED, actor, clock, reason)
          return payment

     @staticmethod
     def refund_payment(
          db: Session,
          payment_id: int,
          reason: str,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> Payment:
          """Completed -> Refunded; the invoice balance re-opens by the payment amount."""
          PaymentService._require_reason(reason, "refund")
          payment = load_versioned(db, Payment, payment_id, expected_version)
          PaymentService._transition(db, payment, PaymentStatus.REFUNDED, actor, clock, reason)
          InvoiceService.recalculate_balance(db, payment.invoice_id, actor, clock)
          logger.info("Payment %s of %s refunded: %s", payment_id, payment.amount, reason)
          return payment

     @staticmethod
     def get_payment_history(db: Session, payment_id: int) -> List[PaymentStatusHistory]:
          """Status history of a payment, oldest first."""
          load(db, Payment, payment_id)
          return (
               db.query(PaymentStatusHistory)
               .filter(PaymentStatusHistory.payment_id == payment_id)
               .order_by(PaymentStatusHistory.sequence)
               .all()
          )

     @staticmethod
     def _new_payment(db: Session, invoice: Invoice, status: PaymentStatus, actor: str, clock: Clock, **fields) -> Payment:
          now = clock.now()
          payment = Payment(
               invoice_id=invoice.id,
               lease_id=invoice.lease_id,
               status=status,
               received_by=actor,
               created_at=now,
               created_by=actor,
               **fields,
          )
          db.add(payment)
          PaymentService._append_history(payment, None, status, actor, now, "Payment recorded")
          flush_changes(db, "Payment")
          return payment

     @staticmethod
     def _transition(
          db: Session,
          payment: Payment,
          new_status: PaymentStatus,
          actor: str,
          clock: Clock,
          reason: Optional[str] = None,
     ) -> None:
          if new_status not in allowed_transitions(payment.status):
               raise StateConflictError(
                    f"Payment {payment.id} cannot move from {payment.status.value} to {new_status.value}",
                    current_status=payment.status,
               )
          now = clock.now()
          previous = payment.status
          payment.status = new_status
          payment.modified_at = now
          payment.modified_by = actor
          PaymentService._append_history(payment, previous, new_status, actor, now, reason)
          flush_changes(db, "Payment", payment.id)
          logger.info("Payment %s: %s -> %s by %s", payment.id, previous.value, new_status.value, actor)

     @staticmethod
     def _append_history(
          payment: Payment,
          from_status: Optional[PaymentStatus],
          to_status: PaymentStatus,
          actor: str,
          changed_at: datetime,
          reason: Optional[str],
     ) -> None:
          payment.status_history.append(PaymentStatusHistory(
               sequence=len(payment.status_history) + 1,
               from_status=from_status,
               to_status=to_status,
               changed_at=changed_at,
               changed_by=actor,
               reason=reason,
          ))

     @staticmethod
     def _assert_reviewable(payment: Payment, outcome: str) -> None:
          if payment.status not in REVIEWABLE_STATUSES:
               raise StateConflictError(
                    f"Payment {payment.id} cannot be {outcome} in status {payment.status.value}",
                    current_status=payment.status,
               )

     @staticmethod
     def _require_reason(value: Optional[str], action: str, what: str = "reason") -> None:
          if not value or not value.strip():
               raise ValidationError(f"A {what} is required to {action} a payment")
