# models/utility.py
"""
Utility billing models: slab or flat rate plans, and per-lease utility statements.
"""
import enum
from sqlalchemy import (
     Column, Integer, String, Numeric, Date, Boolean, DateTime, ForeignKey, Enum,
     CheckConstraint, Index, text, func,
)
from sqlalchemy.orm import relationship
from .base import Base


class UtilityType(str, enum.Enum):
     """Metered utility kinds."""
     ELECTRICITY = "ELECTRICITY"
     WATER = "WATER"
     GAS = "GAS"


class RatePlanType(str, enum.Enum):
     """How a rate plan prices metered consumption."""
     SLAB = "SLAB"  # progressive tiers
     FLAT = "FLAT"  # every unit at the single slab's rate


class UtilityRatePlan(Base):
     """
     Pricing for one utility type within an organization.

     SLAB plans charge progressively over their ordered slabs; FLAT plans have exactly
     one slab whose rate applies to every unit, plus its fixed charge.
     """
     __tablename__ = "utility_rate_plans"

     id = Column(Integer, primary_key=True, autoincrement=True)
     org_id = Column(Integer, nullable=False, index=True)
     utility_type = Column(Enum(UtilityType, name="utility_rate_plan_type", create_constraint=True), nullable=False)
     name = Column(String(100), nullable=False)
     rate_type = Column(
          Enum(RatePlanType, name="utility_rate_plan_rate_type", create_constraint=True),
          default=RatePlanType.SLAB,
          nullable=False,
     )
     effective_from = Column(Date, nullable=False)
     effective_to = Column(Date, nullable=True)
     is_active = Column(Boolean, default=True, nullable=False)

     is_deleted = Column(Boolean, default=False, nullable=False)
     row_version = Column(Integer, nullable=False)

     slabs = relationship(
          "UtilityRateSlab",
          back_populates="rate_plan",
          order_by="UtilityRateSlab.slab_order",
          cascade="all, delete-orphan",
     )

     __mapper_args__ = {"version_id_col": row_version}

     def __repr__(self):
          return f"<UtilityRatePlan(id={self.id}, name='{self.name}', type='{self.utility_type.value}')>"


class UtilityRateSlab(Base):
     """
     One tier of a rate plan. Units in [from_units, to_units) are charged rate_per_unit;
     to_units NULL means the tier is unbounded.
     """
     __tablename__ = "utility_rate_slabs"

     id = Column(Integer, primary_key=True, autoincrement=True)
     rate_plan_id = Column(Integer, ForeignKey("utility_rate_plans.id", ondelete="CASCADE"), nullable=False, index=True)
     slab_order = Column(Integer, nullable=False)
     from_units = Column(Numeric(12, 2), nullable=False)
     to_units = Column(Numeric(12, 2), nullable=True)
     rate_per_unit = Column(Numeric(12, 4), nullable=False)
     fixed_charge = Column(Numeric(12, 2), nullable=True)

     rate_plan = relationship("UtilityRatePlan", back_populates="slabs")

     __table_args__ = (
          CheckConstraint("to_units IS NULL OR to_units > from_units", name="ck_utility_rate_slabs_range"),
          CheckConstraint("rate_per_unit >= 0", name="ck_utility_rate_slabs_rate"),
     )

     def __repr__(self):
          return f"<UtilityRateSlab(order={self.slab_order}, {self.from_units}-{self.to_units} @ {self.rate_per_unit})>"


class UtilityStatement(Base):
     """
     Utility consumption/billing record for a lease and billing period.

     `version` is the statement revision number (1, 2, 3...) within
     (lease, utility type, period); `row_version` is the optimistic concurrency token.
     At most one statement per (lease, utility type, period) may be final.
     """
     __tablename__ = "utility_statements"

     id = Column(Integer, primary_key=True, autoincrement=True)
     lease_id = Column(Integer, ForeignKey("leases.id", ondelete="CASCADE"), nullable=False, index=True)
     utility_type = Column(Enum(UtilityType, name="utility_statement_type", create_constraint=True), nullable=False)
     billing_period_start = Column(Date, nullable=False)
     billing_period_end = Column(Date, nullable=False)

     is_meter_based = Column(Boolean, default=False, nullable=False)
     rate_plan_id = Column(Integer, ForeignKey("utility_rate_plans.id"), nullable=True)
     previous_reading = Column(Numeric(12, 2), nullable=True)
     current_reading = Column(Numeric(12, 2), nullable=True)
     units_consumed = Column(Numeric(12, 2), nullable=True)
     direct_bill_amount = Column(Numeric(12, 2), nullable=True)
     total_amount = Column(Numeric(12, 2), nullable=False)
     notes = Column(String(2000), nullable=True)

     version = Column(Integer, default=1, nullable=False)
     is_final = Column(Boolean, default=False, nullable=False)
     supersedes_id = Column(Integer, ForeignKey("utility_statements.id"), nullable=True)
     superseded_at = Column(DateTime(timezone=True), nullable=True)
     finalized_at = Column(DateTime(timezone=True), nullable=True)
     finalized_by = Column(String(100), nullable=True)

     # Set once the statement has been placed on an invoice
     invoice_line_id = Column(Integer, ForeignKey("invoice_lines.id"), nullable=True)

     is_deleted = Column(Boolean, default=False, nullable=False)
     row_version = Column(Integer, nullable=False)

     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     created_by = Column(String(100), nullable=True)

     lease = relationship("Lease")
     rate_plan = relationship("UtilityRatePlan")
     supersedes = relationship("UtilityStatement", remote_side=[id])

     __table_args__ = (
          CheckConstraint("billing_period_end >= billing_period_start", name="ck_utility_statements_period"),
          Index(
               "uq_utility_statements_final",
               "lease_id", "utility_type", "billing_period_start", "billing_period_end",
               unique=True,
               sqlite_where=text("is_final = 1"),
               mssql_where=text("is_final = 1"),
               postgresql_where=text("is_final"),
          ),
     )
     __mapper_args__ = {"version_id_col": row_version}

     def __repr__(self):
          return (
               f"<UtilityStatement(id={self.id}, lease_id={self.lease_id}, type='{self.utility_type.value}', "
               f"version={self.version}, final={self.is_final})>"
          )

     @property
     def period_key(self) -> tuple:
          """Identity of the billing slot this statement belongs to."""
          return (self.lease_id, self.utility_type, self.billing_period_start, self.billing_period_end)
