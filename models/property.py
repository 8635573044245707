# models/property.py
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from .base import Base


class Owner(Base):
     """
     Owner profile. Owners hold percentage shares of buildings and units.
     Soft-deleted owners cannot receive new shares.
     """
     __tablename__ = "owners"

     id = Column(Integer, primary_key=True, autoincrement=True)
     org_id = Column(Integer, nullable=False, index=True)
     display_name = Column(String(200), nullable=False)
     email = Column(String(255), nullable=True)
     is_deleted = Column(Boolean, default=False, nullable=False)

     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     def __repr__(self):
          return f"<Owner(id={self.id}, name='{self.display_name}')>"


class Building(Base):
     """
     Building model - represents a condo/apartment building.
     row_version guards the building's ownership-share set.
     """
     __tablename__ = "buildings"

     id = Column(Integer, primary_key=True, autoincrement=True)
     org_id = Column(Integer, nullable=False, index=True)
     name = Column(String(255), nullable=False)
     description = Column(Text, nullable=True)

     ownership_updated_at = Column(DateTime(timezone=True), nullable=True)
     ownership_updated_by = Column(String(100), nullable=True)
     is_deleted = Column(Boolean, default=False, nullable=False)
     row_version = Column(Integer, nullable=False)

     # Timestamps
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     # Relationships
     units = relationship("Unit", back_populates="building")
     ownership_shares = relationship(
          "OwnershipShare",
          primaryjoin="Building.id == OwnershipShare.building_id",
          cascade="all, delete-orphan",
          order_by="OwnershipShare.id",
     )

     __mapper_args__ = {"version_id_col": row_version}

     def __repr__(self):
          return f"<Building(id={self.id}, name='{self.name}')>"


class Unit(Base):
     """
     Unit model - individual unit within a building, optionally with its own ownership split.
     """
     __tablename__ = "units"

     id = Column(Integer, primary_key=True, autoincrement=True)
     building_id = Column(Integer, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False)
     unit_number = Column(String(50), nullable=False)

     ownership_updated_at = Column(DateTime(timezone=True), nullable=True)
     ownership_updated_by = Column(String(100), nullable=True)
     is_deleted = Column(Boolean, default=False, nullable=False)
     row_version = Column(Integer, nullable=False)

     # Relationships
     building = relationship("Building", back_populates="units")
     ownership_shares = relationship(
          "OwnershipShare",
          primaryjoin="Unit.id == OwnershipShare.unit_id",
          cascade="all, delete-orphan",
          order_by="OwnershipShare.id",
     )

     __mapper_args__ = {"version_id_col": row_version}

     def __repr__(self):
          return f"<Unit(id={self.id}, unit_number='{self.unit_number}')>"
