# models/recurring_charge.py
import enum
from sqlalchemy import Column, Integer, String, Numeric, Date, Boolean, DateTime, ForeignKey, Enum, CheckConstraint, func
from sqlalchemy.orm import relationship
from .base import Base


class BillingFrequency(str, enum.Enum):
     """How often a recurring charge is billed."""
     ONE_TIME = "ONE_TIME"
     MONTHLY = "MONTHLY"
     QUARTERLY = "QUARTERLY"
     YEARLY = "YEARLY"


class RecurringCharge(Base):
     """
     A lease-attached, periodically billed amount (rent, maintenance, parking...).

     Never physically deleted: deactivate with is_active = False instead.
     """
     __tablename__ = "recurring_charges"

     id = Column(Integer, primary_key=True, autoincrement=True)
     lease_id = Column(Integer, ForeignKey("leases.id", ondelete="CASCADE"), nullable=False, index=True)
     charge_type_id = Column(Integer, ForeignKey("charge_types.id"), nullable=False)

     description = Column(String(500), nullable=False)
     amount = Column(Numeric(12, 2), nullable=False)
     frequency = Column(
          Enum(BillingFrequency, name="billing_frequency", create_constraint=True),
          default=BillingFrequency.MONTHLY,
          nullable=False,
     )
     start_date = Column(Date, nullable=False)
     end_date = Column(Date, nullable=True)
     is_active = Column(Boolean, default=True, nullable=False)
     notes = Column(String(2000), nullable=True)

     row_version = Column(Integer, nullable=False)

     # Audit
     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     created_by = Column(String(100), nullable=True)
     modified_at = Column(DateTime(timezone=True), nullable=True)
     modified_by = Column(String(100), nullable=True)

     # Relationships
     lease = relationship("Lease", back_populates="recurring_charges")
     charge_type = relationship("ChargeType")

     __table_args__ = (
          CheckConstraint("amount > 0", name="ck_recurring_charges_amount"),
          CheckConstraint("end_date IS NULL OR end_date > start_date", name="ck_recurring_charges_dates"),
     )
     __mapper_args__ = {"version_id_col": row_version}

     def __repr__(self):
          return f"<RecurringCharge(id={self.id}, amount={self.amount}, frequency='{self.frequency.value}')>"
