# models/payment_confirmation_request.py
import enum
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from .base import Base


class PaymentConfirmationStatus(str, enum.Enum):
     """Review status of a tenant's payment claim. CONFIRMED and REJECTED are terminal."""
     PENDING = "PENDING"
     CONFIRMED = "CONFIRMED"
     REJECTED = "REJECTED"
     CANCELLED = "CANCELLED"


class PaymentConfirmationRequest(Base):
     """
     Tenant-submitted claim that an invoice was paid (e.g. cash handed over, bank deposit),
     awaiting owner review. Confirming it creates exactly one Payment.
     """
     __tablename__ = "payment_confirmation_requests"

     id = Column(Integer, primary_key=True, autoincrement=True)
     invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
     lease_id = Column(Integer, ForeignKey("leases.id"), nullable=False, index=True)

     amount = Column(Numeric(12, 2), nullable=False)
     payment_date = Column(DateTime(timezone=True), nullable=False)
     receipt_number = Column(String(100), nullable=True)
     notes = Column(String(2000), nullable=True)
     proof_file_ref = Column(String(500), nullable=True)

     status = Column(
          Enum(PaymentConfirmationStatus, name="payment_confirmation_status", create_constraint=True),
          default=PaymentConfirmationStatus.PENDING,
          nullable=False,
          index=True,
     )

     # Review
     reviewed_by = Column(String(100), nullable=True)
     reviewed_at = Column(DateTime(timezone=True), nullable=True)
     review_response = Column(String(2000), nullable=True)
     payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)

     row_version = Column(Integer, nullable=False)

     created_at = Column(DateTime(timezone=True), nullable=False)
     created_by = Column(String(100), nullable=False)

     invoice = relationship("Invoice")
     payment = relationship("Payment", foreign_keys=[payment_id])

     __table_args__ = (
          CheckConstraint("amount > 0", name="ck_payment_confirmation_requests_amount"),
     )
     __mapper_args__ = {"version_id_col": row_version}

     def __repr__(self):
          return f"<PaymentConfirmationRequest(id={self.id}, invoice_id={self.invoice_id}, status='{self.status.value}')>"
