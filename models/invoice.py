# models/invoice.py
import enum
from datetime import date
from decimal import Decimal
from sqlalchemy import (
     Column, Integer, String, Numeric, Date, DateTime, Boolean, Text, ForeignKey, Enum,
     CheckConstraint, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from .base import Base


class InvoiceStatus(str, enum.Enum):
     """Enumeration for invoice lifecycle status."""
     DRAFT = "DRAFT"
     ISSUED = "ISSUED"
     PARTIALLY_PAID = "PARTIALLY_PAID"
     PAID = "PAID"
     OVERDUE = "OVERDUE"
     VOIDED = "VOIDED"
     CANCELLED = "CANCELLED"


class Invoice(Base):
     """
     Invoice model - billing record for a lease and billing period.

     balance_amount is always total_amount minus the sum of Completed payments;
     paid_amount is recomputed from payments, never incremented in place.
     """
     __tablename__ = "invoices"

     id = Column(Integer, primary_key=True, autoincrement=True)
     org_id = Column(Integer, nullable=False, index=True)
     lease_id = Column(
          Integer,
          ForeignKey("leases.id", ondelete="CASCADE"),
          nullable=False,
          index=True
     )

     # Invoice details
     invoice_number = Column(String(50), nullable=False)
     sequence_number = Column(Integer, nullable=False)  # per-organization counter behind invoice_number
     invoice_date = Column(Date, nullable=False)
     due_date = Column(Date, nullable=False, index=True)
     billing_period_start = Column(Date, nullable=False)
     billing_period_end = Column(Date, nullable=False)
     status = Column(
          Enum(InvoiceStatus, name="invoice_status", create_constraint=True),
          default=InvoiceStatus.DRAFT,
          nullable=False,
          index=True
     )

     # Amounts
     subtotal = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
     tax_amount = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
     total_amount = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
     paid_amount = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
     balance_amount = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)

     payment_instructions = Column(Text, nullable=True)
     notes = Column(Text, nullable=True)

     # Lifecycle timestamps
     issued_at = Column(DateTime(timezone=True), nullable=True)
     paid_at = Column(DateTime(timezone=True), nullable=True)
     voided_at = Column(DateTime(timezone=True), nullable=True)
     void_reason = Column(String(500), nullable=True)

     is_deleted = Column(Boolean, default=False, nullable=False)
     row_version = Column(Integer, nullable=False)

     # Timestamps
     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     modified_at = Column(DateTime(timezone=True), nullable=True)
     modified_by = Column(String(100), nullable=True)

     # Relationships
     lease = relationship("Lease", back_populates="invoices")
     lines = relationship(
          "InvoiceLine",
          back_populates="invoice",
          order_by="InvoiceLine.line_number",
          cascade="all, delete-orphan",
     )
     payments = relationship("Payment", back_populates="invoice", order_by="Payment.id")

     __table_args__ = (
          UniqueConstraint("org_id", "invoice_number", name="uq_invoices_org_number"),
          UniqueConstraint("org_id", "sequence_number", name="uq_invoices_org_sequence"),
          CheckConstraint("billing_period_end >= billing_period_start", name="ck_invoices_period"),
     )
     __mapper_args__ = {"version_id_col": row_version}

     def __repr__(self):
          return f"<Invoice(id={self.id}, number='{self.invoice_number}', total={self.total_amount}, status='{self.status.value}')>"

     def is_overdue(self, today: date) -> bool:
          """Check if invoice is past due date with an outstanding balance."""
          return (
               self.status in (InvoiceStatus.ISSUED, InvoiceStatus.PARTIALLY_PAID)
               and self.due_date < today
               and self.balance_amount > 0
          )


class InvoiceLine(Base):
     """A single charge on an invoice (quantity x unit price, plus tax when taxable)."""
     __tablename__ = "invoice_lines"

     id = Column(Integer, primary_key=True, autoincrement=True)
     invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
     charge_type_id = Column(Integer, ForeignKey("charge_types.id"), nullable=False)
     line_number = Column(Integer, nullable=False)
     description = Column(String(500), nullable=False)

     quantity = Column(Numeric(12, 3), default=Decimal("1"), nullable=False)
     unit_price = Column(Numeric(12, 2), nullable=False)
     amount = Column(Numeric(12, 2), nullable=False)
     is_taxable = Column(Boolean, default=False, nullable=False)
     tax_rate = Column(Numeric(5, 4), default=Decimal("0"), nullable=False)
     tax_amount = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
     total_amount = Column(Numeric(12, 2), nullable=False)

     # Where the line came from, when generated
     source_type = Column(String(30), nullable=True)  # RECURRING_CHARGE, UTILITY_STATEMENT
     source_id = Column(Integer, nullable=True)

     invoice = relationship("Invoice", back_populates="lines")
     charge_type = relationship("ChargeType")

     __table_args__ = (
          CheckConstraint("quantity > 0", name="ck_invoice_lines_quantity"),
     )

     def __repr__(self):
          return f"<InvoiceLine(invoice_id={self.invoice_id}, #{self.line_number}, total={self.total_amount})>"
