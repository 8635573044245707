"""Tests for tenant payment confirmation requests and their review."""
import io
from decimal import Decimal

import pytest
from sqlalchemy import update

from errors import ConcurrencyError, StateConflictError, ValidationError
from models import (
     Invoice, InvoiceStatus, Payment, PaymentConfirmationStatus, PaymentMode, PaymentStatus, PaymentStatusHistory,
)
from schemas.payment import PaymentConfirmationRequestCreate, PaymentCreate
from services.payment_confirmation_service import PaymentConfirmationService, ProofUpload
from services.payment_service import PaymentService

TENANT = "tenant-9"
OWNER = "owner-1"


class RecordingStorage:
     """In-memory ProofStorage that remembers what it was given."""

     def __init__(self):
          self.stored = []

     def store(self, stream, filename, content_type):
          self.stored.append((stream.read(), filename, content_type))
          return f"https://proofs.example/{len(self.stored)}/{filename}"


# --- Fixtures ---

@pytest.fixture
def submit(db, clock, issued_invoice):
     def _submit(amount="3000.00", proof=None, storage=None, **fields):
          return PaymentConfirmationService.create_request(db, PaymentConfirmationRequestCreate(
               invoice_id=issued_invoice.id,
               amount=Decimal(amount),
               payment_date=clock.now(),
               **fields,
          ), TENANT, clock, proof=proof, storage=storage)
     return _submit


class TestSubmit:

     def test_request_does_not_touch_invoice(self, issued_invoice, submit):
          request = submit(receipt_number="RCPT-1042")

          assert request.status == PaymentConfirmationStatus.PENDING
          assert request.created_by == TENANT
          assert request.lease_id == issued_invoice.lease_id
          assert issued_invoice.status == InvoiceStatus.ISSUED
          assert issued_invoice.balance_amount == Decimal("5000.00")

     @pytest.mark.parametrize("amount", ["0", "5000.01"])
     def test_amount_must_fit_balance(self, submit, amount):
          with pytest.raises(ValidationError):
               submit(amount=amount)

     def test_fraction_of_a_cent_is_rejected(self, submit):
          with pytest.raises(ValidationError, match="more than 2 decimal places"):
               submit(amount="0.004")

     def test_draft_invoice(self, db, clock, make_invoice, lease):
          draft = make_invoice(lease, issue=False)

          with pytest.raises(StateConflictError):
               PaymentConfirmationService.create_request(db, PaymentConfirmationRequestCreate(
                    invoice_id=draft.id, amount=Decimal("10"), payment_date=clock.now(),
               ), TENANT, clock)

     def test_proof_is_stored(self, submit):
          storage = RecordingStorage()
          proof = ProofUpload(io.BytesIO(b"%PDF-1.7"), "receipt.pdf", "application/pdf")

          request = submit(proof=proof, storage=storage)

          assert storage.stored == [(b"%PDF-1.7", "receipt.pdf", "application/pdf")]
          assert request.proof_file_ref == "https://proofs.example/1/receipt.pdf"

     def test_proof_without_storage(self, submit):
          with pytest.raises(ValidationError, match="no proof storage"):
               submit(proof=ProofUpload(io.BytesIO(b"x"), "receipt.jpg"))


class TestConfirm:

     def test_confirm_creates_completed_payment(self, db, clock, issued_invoice, submit):
          request = submit(receipt_number="RCPT-1042")

          PaymentConfirmationService.confirm_request(db, request.id, OWNER, clock, note="Cash received")

          assert request.status == PaymentConfirmationStatus.CONFIRMED
          assert request.reviewed_by == OWNER
          assert request.review_response == "Cash received"
          payment = db.get(Payment, request.payment_id)
          assert payment.status == PaymentStatus.COMPLETED
          assert payment.amount == Decimal("3000.00")
          assert payment.confirmation_request_id == request.id
          assert payment.transaction_reference == "RCPT-1042"
          assert issued_invoice.status == InvoiceStatus.PARTIALLY_PAID
          assert issued_invoice.balance_amount == Decimal("2000.00")

          history = PaymentService.get_payment_history(db, payment.id)
          assert [(h.from_status, h.to_status) for h in history] == [
               (None, PaymentStatus.PENDING_CONFIRMATION),
               (PaymentStatus.PENDING_CONFIRMATION, PaymentStatus.COMPLETED),
          ]

     def test_second_confirm_is_rejected(self, db, clock, submit):
          request = submit()
          PaymentConfirmationService.confirm_request(db, request.id, OWNER, clock)

          with pytest.raises(StateConflictError, match="already CONFIRMED"):
               PaymentConfirmationService.confirm_request(db, request.id, OWNER, clock)

          assert db.query(Payment).count() == 1

     def test_stale_version(self, db, clock, submit):
          request = submit()
          version = request.row_version
          PaymentConfirmationService.confirm_request(db, request.id, OWNER, clock, expected_version=version)

          with pytest.raises(ConcurrencyError):
               PaymentConfirmationService.confirm_request(db, request.id, OWNER, clock, expected_version=version)

     def test_invoice_paid_in_the_meantime(self, db, clock, issued_invoice, submit):
          request = submit()
          PaymentService.record_payment(db, PaymentCreate(
               invoice_id=issued_invoice.id, mode=PaymentMode.CASH, amount=Decimal("5000.00"), payment_date=clock.now(),
          ), OWNER, clock)

          with pytest.raises(StateConflictError):
               PaymentConfirmationService.confirm_request(db, request.id, OWNER, clock)

          assert request.status == PaymentConfirmationStatus.PENDING

     def test_amount_no_longer_fits(self, db, clock, issued_invoice, submit):
          request = submit(amount="3000.00")
          PaymentService.record_payment(db, PaymentCreate(
               invoice_id=issued_invoice.id, mode=PaymentMode.CASH, amount=Decimal("4000.00"), payment_date=clock.now(),
          ), OWNER, clock)

          with pytest.raises(ValidationError, match="exceeds invoice balance"):
               PaymentConfirmationService.confirm_request(db, request.id, OWNER, clock)

     def test_failed_confirm_leaves_nothing_behind(self, db, clock, issued_invoice, submit):
          request = submit()
          db.execute(
               update(Invoice)
               .where(Invoice.id == issued_invoice.id)
               .values(notes="Edited elsewhere", row_version=Invoice.row_version + 1),
               execution_options={"synchronize_session": False},
          )

          with pytest.raises(ConcurrencyError):
               with db.begin_nested():
                    PaymentConfirmationService.confirm_request(db, request.id, OWNER, clock)

          db.refresh(request)
          db.refresh(issued_invoice)
          assert request.status == PaymentConfirmationStatus.PENDING
          assert request.payment_id is None
          assert db.query(Payment).count() == 0
          assert db.query(PaymentStatusHistory).count() == 0
          assert issued_invoice.status == InvoiceStatus.ISSUED
          assert issued_invoice.balance_amount == Decimal("5000.00")
          assert issued_invoice.notes == "Edited elsewhere"


class TestRejectAndCancel:

     def test_reject(self, db, clock, issued_invoice, submit):
          request = submit()

          PaymentConfirmationService.reject_request(db, request.id, "No matching receipt", OWNER, clock)

          assert request.status == PaymentConfirmationStatus.REJECTED
          assert request.review_response == "No matching receipt"
          assert request.payment_id is None
          assert db.query(Payment).count() == 0
          assert issued_invoice.balance_amount == Decimal("5000.00")

     def test_reject_requires_reason(self, db, clock, submit):
          request = submit()

          with pytest.raises(ValidationError):
               PaymentConfirmationService.reject_request(db, request.id, "", OWNER, clock)

     def test_rejected_request_cannot_be_confirmed(self, db, clock, submit):
          request = submit()
          PaymentConfirmationService.reject_request(db, request.id, "Duplicate", OWNER, clock)

          with pytest.raises(StateConflictError):
               PaymentConfirmationService.confirm_request(db, request.id, OWNER, clock)

     def test_cancel(self, db, clock, submit):
          request = submit()

          PaymentConfirmationService.cancel_request(db, request.id, TENANT, clock)

          assert request.status == PaymentConfirmationStatus.CANCELLED
          with pytest.raises(StateConflictError):
               PaymentConfirmationService.reject_request(db, request.id, "Too late", OWNER, clock)
