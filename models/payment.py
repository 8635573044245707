# models/payment.py
"""
Payment model and its append-only status history (the audit trail).

History rows are only ever inserted; updates and deletes are rejected by mapper events.
"""
import enum
from sqlalchemy import (
     Column, Integer, String, Numeric, DateTime, ForeignKey, Enum, JSON, event,
     CheckConstraint, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship

from errors import StateConflictError
from .base import Base


class PaymentMode(str, enum.Enum):
     """How the money was paid."""
     CASH = "CASH"
     ONLINE = "ONLINE"
     BANK_TRANSFER = "BANK_TRANSFER"
     CHEQUE = "CHEQUE"
     UPI = "UPI"
     OTHER = "OTHER"


class PaymentStatus(str, enum.Enum):
     """Payment lifecycle status."""
     PENDING = "PENDING"
     PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
     PROCESSING = "PROCESSING"
     COMPLETED = "COMPLETED"
     FAILED = "FAILED"
     CANCELLED = "CANCELLED"
     REFUNDED = "REFUNDED"
     REJECTED = "REJECTED"


class Payment(Base):
     """A payment against an invoice. Only COMPLETED payments count towards the invoice's paid amount."""
     __tablename__ = "payments"

     id = Column(Integer, primary_key=True, autoincrement=True)
     invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
     lease_id = Column(Integer, ForeignKey("leases.id"), nullable=False, index=True)
     confirmation_request_id = Column(
          Integer,
          ForeignKey("payment_confirmation_requests.id", use_alter=True, name="fk_payments_confirmation_request_id"),
          nullable=True,
          unique=True,  # A confirmation request materializes at most one payment
     )

     mode = Column(Enum(PaymentMode, name="payment_mode", create_constraint=True), nullable=False)
     status = Column(Enum(PaymentStatus, name="payment_status", create_constraint=True), nullable=False, index=True)
     amount = Column(Numeric(12, 2), nullable=False)
     payment_date = Column(DateTime(timezone=True), nullable=False)

     transaction_reference = Column(String(200), nullable=True)
     gateway_transaction_id = Column(String(200), nullable=True)
     gateway_name = Column(String(100), nullable=True)
     payer_name = Column(String(200), nullable=True)
     received_by = Column(String(100), nullable=True)
     notes = Column(String(2000), nullable=True)
     payment_metadata = Column(JSON, nullable=True)

     row_version = Column(Integer, nullable=False)

     created_at = Column(DateTime(timezone=True), nullable=False)
     created_by = Column(String(100), nullable=True)
     modified_at = Column(DateTime(timezone=True), nullable=True)
     modified_by = Column(String(100), nullable=True)

     # Relationships
     invoice = relationship("Invoice", back_populates="payments")
     status_history = relationship(
          "PaymentStatusHistory",
          back_populates="payment",
          order_by="PaymentStatusHistory.sequence",
          cascade="save-update, merge",
     )

     __table_args__ = (
          CheckConstraint("amount > 0", name="ck_payments_amount"),
     )
     __mapper_args__ = {"version_id_col": row_version}

     def __repr__(self):
          return f"<Payment(id={self.id}, invoice_id={self.invoice_id}, amount={self.amount}, status='{self.status.value}')>"


class PaymentStatusHistory(Base):
     """
     Immutable audit entry written on every payment status change.
     from_status is NULL for the entry recorded when the payment is created.
     """
     __tablename__ = "payment_status_history"

     id = Column(Integer, primary_key=True, autoincrement=True)
     payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
     sequence = Column(Integer, nullable=False)
     from_status = Column(Enum(PaymentStatus, name="payment_history_from_status", create_constraint=True), nullable=True)
     to_status = Column(Enum(PaymentStatus, name="payment_history_to_status", create_constraint=True), nullable=False)
     changed_at = Column(DateTime(timezone=True), nullable=False)
     changed_by = Column(String(100), nullable=False)
     reason = Column(String(1000), nullable=True)
     recorded_at = Column(DateTime, server_default=func.now(), nullable=False)

     payment = relationship("Payment", back_populates="status_history")

     __table_args__ = (
          UniqueConstraint("payment_id", "sequence", name="uq_payment_status_history_sequence"),
     )

     def __repr__(self):
          from_value = self.from_status.value if self.from_status else None
          return f"<PaymentStatusHistory(payment_id={self.payment_id}, {from_value} -> {self.to_status.value})>"


@event.listens_for(PaymentStatusHistory, "before_update")
@event.listens_for(PaymentStatusHistory, "before_delete")
def _reject_history_change(mapper, connection, target):
     raise StateConflictError(
          f"Payment status history is append-only (payment {target.payment_id}, entry {target.sequence})"
     )
