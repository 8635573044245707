# models/ownership_share.py
import enum
from sqlalchemy import Column, Integer, Numeric, Date, DateTime, String, ForeignKey, CheckConstraint, func
from sqlalchemy.orm import relationship
from .base import Base


class OwnershipParentType(str, enum.Enum):
     """What an ownership share set is attached to."""
     BUILDING = "BUILDING"
     UNIT = "UNIT"


class OwnershipShare(Base):
     """
     Percentage of a building or unit attributed to an owner.
     Exactly one of building_id / unit_id is set. The full set for a parent sums to 100.
     """
     __tablename__ = "ownership_shares"

     id = Column(Integer, primary_key=True, autoincrement=True)
     building_id = Column(Integer, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=True, index=True)
     unit_id = Column(Integer, ForeignKey("units.id"), nullable=True, index=True)
     owner_id = Column(Integer, ForeignKey("owners.id"), nullable=False, index=True)
     share_percent = Column(Numeric(5, 2), nullable=False)
     effective_from = Column(Date, nullable=False)

     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     created_by = Column(String(100), nullable=True)

     owner = relationship("Owner")

     __table_args__ = (
          CheckConstraint("share_percent > 0 AND share_percent <= 100", name="ck_ownership_shares_percent"),
          CheckConstraint(
               "(building_id IS NULL AND unit_id IS NOT NULL) OR (building_id IS NOT NULL AND unit_id IS NULL)",
               name="ck_ownership_shares_parent",
          ),
     )

     def __repr__(self):
          return f"<OwnershipShare(owner_id={self.owner_id}, share={self.share_percent}%)>"
