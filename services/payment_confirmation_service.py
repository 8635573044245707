# services/payment_confirmation_service.py
"""
Payment Confirmation Service - tenant-submitted payment claims and their owner review.

PENDING -> CONFIRMED (creates exactly one Payment and completes it)
PENDING -> REJECTED (no Payment)
PENDING -> CANCELLED (withdrawn by the tenant before review)
"""
import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional
from sqlalchemy.orm import Session

from database import load, load_versioned, flush_changes
from errors import ValidationError, StateConflictError
from models import Invoice, PaymentConfirmationRequest, PaymentConfirmationStatus
from schemas.payment import PaymentConfirmationRequestCreate
from services.collaborators import Clock, ProofStorage
from services.invoice_service import InvoiceService
from services.payment_service import PaymentService, check_amount

logger = logging.getLogger(__name__)


@dataclass
class ProofUpload:
     """A proof-of-payment file supplied with a confirmation request."""
     stream: BinaryIO
     filename: str
     content_type: str = "application/octet-stream"


class PaymentConfirmationService:
     """Service class for payment confirmation requests."""

     @staticmethod
     def create_request(
          db: Session,
          data: PaymentConfirmationRequestCreate,
          actor: str,
          clock: Clock,
          proof: Optional[ProofUpload] = None,
          storage: Optional[ProofStorage] = None,
     ) -> PaymentConfirmationRequest:
          """
          Record a tenant's claim that an invoice was paid.

          The invoice must accept payments and the amount must fit its balance. A proof
          file, when given, is stored through `storage`; only the returned reference is kept.
          The invoice itself is not changed.

          Raises:
               NotFoundError: invoice does not exist
               StateConflictError: invoice does not accept payments
               ValidationError: bad amount, or a proof without a storage backend
          """
          invoice = load(db, Invoice, data.invoice_id)
          InvoiceService.assert_accepts_payments(invoice)
          check_amount(data.amount, invoice)

          proof_file_ref = None
          if proof is not None:
               if storage is None:
                    raise ValidationError("A proof file was supplied but no proof storage is configured")
               proof_file_ref = storage.store(proof.stream, proof.filename, proof.content_type)

          request = PaymentConfirmationRequest(
               invoice_id=invoice.id,
               lease_id=invoice.lease_id,
               amount=data.amount,
               payment_date=data.payment_date,
               receipt_number=data.receipt_number,
               notes=data.notes,
               proof_file_ref=proof_file_ref,
               status=PaymentConfirmationStatus.PENDING,
               created_at=clock.now(),
               created_by=actor,
          )
          db.add(request)
          flush_changes(db, "PaymentConfirmationRequest")
          logger.info(
               "Payment confirmation request %s for %s on invoice %s submitted by %s",
               request.id, data.amount, invoice.id, actor,
          )
          return request

     @staticmethod
     def confirm_request(
          db: Session,
          request_id: int,
          actor: str,
          clock: Clock,
          note: Optional[str] = None,
          expected_version: Optional[int] = None,
     ) -> PaymentConfirmationRequest:
          """
          Owner accepts the claim. One Payment is created (PendingConfirmation), completed,
          and the invoice recalculated, all in the caller's transaction.

          Raises:
               StateConflictError: request is not Pending, or the invoice no longer accepts payments
               ValidationError: amount no longer fits the invoice balance
          """
          request = load_versioned(db, PaymentConfirmationRequest, request_id, expected_version)
          PaymentConfirmationService._assert_pending(request, "confirmed")
          invoice = load(db, Invoice, request.invoice_id)

          payment = PaymentService.create_pending_confirmation(
               db,
               invoice,
               amount=request.amount,
               payment_date=request.payment_date,
               confirmation_request_id=request.id,
               actor=actor,
               clock=clock,
               transaction_reference=request.receipt_number,
               notes=request.notes,
          )
          request.status = PaymentConfirmationStatus.CONFIRMED
          request.reviewed_by = actor
          request.reviewed_at = clock.now()
          request.review_response = note
          request.payment_id = payment.id
          flush_changes(db, "PaymentConfirmationRequest", request_id)

          PaymentService.confirm_payment(db, payment.id, actor, clock, note=note)
          logger.info("Payment confirmation request %s confirmed by %s as payment %s", request_id, actor, payment.id)
          return request

     @staticmethod
     def reject_request(
          db: Session,
          request_id: int,
          reason: str,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> PaymentConfirmationRequest:
          if not reason or not reason.strip():
               raise ValidationError("A reason is required to reject a payment confirmation request")
          request = load_versioned(db, PaymentConfirmationRequest, request_id, expected_version)
          PaymentConfirmationService._assert_pending(request, "rejected")

          request.status = PaymentConfirmationStatus.REJECTED
          request.reviewed_by = actor
          request.reviewed_at = clock.now()
          request.review_response = reason
          flush_changes(db, "PaymentConfirmationRequest", request_id)
          logger.warning("Payment confirmation request %s rejected by %s: %s", request_id, actor, reason)
          return request

     @staticmethod
     def cancel_request(
          db: Session,
          request_id: int,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> PaymentConfirmationRequest:
          """Tenant withdraws a request that has not been reviewed yet."""
          request = load_versioned(db, PaymentConfirmationRequest, request_id, expected_version)
          PaymentConfirmationService._assert_pending(request, "cancelled")

          request.status = PaymentConfirmationStatus.CANCELLED
          request.reviewed_by = actor
          request.reviewed_at = clock.now()
          flush_changes(db, "PaymentConfirmationRequest", request_id)
          logger.info("Payment confirmation request %s cancelled by %s", request_id, actor)
          return request

     @staticmethod
     def _assert_pending(request: PaymentConfirmationRequest, outcome: str) -> None:
          match request.status:
               case PaymentConfirmationStatus.PENDING:
                    return
               case PaymentConfirmationStatus.CONFIRMED | PaymentConfirmationStatus.REJECTED | PaymentConfirmationStatus.CANCELLED:
                    raise StateConflictError(
                         f"Payment confirmation request {request.id} cannot be {outcome}; "
                         f"it is already {request.status.value}",
                         current_status=request.status,
                    )
          raise ValueError(f"Unknown confirmation request status: {request.status}")
