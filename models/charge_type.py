# models/charge_type.py
from sqlalchemy import Column, Integer, String, Numeric, Boolean, UniqueConstraint
from .base import Base


class ChargeTypeCode:
     """Codes of the system charge types seeded for every organization."""
     RENT = "RENT"
     MAINTENANCE = "MAINT"
     ELECTRICITY = "ELEC"
     WATER = "WATER"
     GAS = "GAS"
     LATE_FEE = "LATE_FEE"


class ChargeType(Base):
     """
     Charge type referenced by recurring charges and invoice lines (rent, maintenance, utilities...).
     System types have no org_id.
     """
     __tablename__ = "charge_types"

     id = Column(Integer, primary_key=True, autoincrement=True)
     org_id = Column(Integer, nullable=True, index=True)
     code = Column(String(20), nullable=False)
     name = Column(String(100), nullable=False)
     is_taxable = Column(Boolean, default=False, nullable=False)
     default_tax_rate = Column(Numeric(5, 4), default=0, nullable=False)
     is_active = Column(Boolean, default=True, nullable=False)

     __table_args__ = (
          UniqueConstraint("org_id", "code", name="uq_charge_types_org_code"),
     )

     def __repr__(self):
          return f"<ChargeType(id={self.id}, code='{self.code}')>"
