# models/lease.py
import enum
from sqlalchemy import Column, Integer, String, SmallInteger, Date, Boolean, Text, DateTime, ForeignKey, Enum, CheckConstraint, func
from sqlalchemy.orm import relationship
from .base import Base


class LeaseStatus(str, enum.Enum):
     """Lease lifecycle status. Only ACTIVE leases are billed."""
     DRAFT = "DRAFT"
     ACTIVE = "ACTIVE"
     ENDED = "ENDED"
     TERMINATED = "TERMINATED"


class ProrationMethod(str, enum.Enum):
     """How partial billing periods are prorated."""
     ACTUAL_DAYS_IN_MONTH = "ACTUAL_DAYS_IN_MONTH"
     THIRTY_DAY_MONTH = "THIRTY_DAY_MONTH"


class Lease(Base):
     """
     Lease model - rental agreement for a unit within an organization.
     Billing data (recurring charges, utility statements, invoices) hangs off the lease.
     """
     __tablename__ = "leases"

     id = Column(Integer, primary_key=True, autoincrement=True)
     org_id = Column(Integer, nullable=False, index=True)
     unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
     lease_number = Column(String(50), nullable=True)
     status = Column(
          Enum(LeaseStatus, name="lease_status", create_constraint=True),
          default=LeaseStatus.DRAFT,
          nullable=False,
     )

     # Lease period
     start_date = Column(Date, nullable=False)
     end_date = Column(Date, nullable=True)

     is_deleted = Column(Boolean, default=False, nullable=False)
     row_version = Column(Integer, nullable=False)

     # Timestamps
     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     updated_at = Column(DateTime, onupdate=func.now(), nullable=True)

     # Relationships
     unit = relationship("Unit")
     billing_setting = relationship("LeaseBillingSetting", back_populates="lease", uselist=False)
     recurring_charges = relationship("RecurringCharge", back_populates="lease")
     invoices = relationship("Invoice", back_populates="lease")

     __mapper_args__ = {"version_id_col": row_version}

     def __repr__(self):
          return f"<Lease(id={self.id}, org_id={self.org_id}, status='{self.status.value}')>"


class LeaseBillingSetting(Base):
     """
     Per-lease billing configuration used when generating invoices.
     Leases without a row fall back to the defaults in config.py.
     """
     __tablename__ = "lease_billing_settings"

     id = Column(Integer, primary_key=True, autoincrement=True)
     lease_id = Column(Integer, ForeignKey("leases.id", ondelete="CASCADE"), nullable=False, unique=True)

     # 1-28 so that every month, February included, has the billing day
     billing_day = Column(SmallInteger, default=1, nullable=False)
     payment_term_days = Column(SmallInteger, default=0, nullable=False)
     generate_invoice_automatically = Column(Boolean, default=True, nullable=False)
     proration_method = Column(
          Enum(ProrationMethod, name="proration_method", create_constraint=True),
          default=ProrationMethod.ACTUAL_DAYS_IN_MONTH,
          nullable=False,
     )
     invoice_prefix = Column(String(20), nullable=True)
     payment_instructions = Column(Text, nullable=True)

     row_version = Column(Integer, nullable=False)

     lease = relationship("Lease", back_populates="billing_setting")

     __table_args__ = (
          CheckConstraint("billing_day BETWEEN 1 AND 28", name="ck_lease_billing_settings_billing_day"),
          CheckConstraint("payment_term_days >= 0", name="ck_lease_billing_settings_payment_term_days"),
     )
     __mapper_args__ = {"version_id_col": row_version}

     def __repr__(self):
          return f"<LeaseBillingSetting(lease_id={self.lease_id}, proration='{self.proration_method.value}')>"
