# schemas/billing.py
"""
Pydantic schemas for recurring charges, utility statements and charge line candidates.

Shapes only: business rules (positive amounts, date ordering, reading order) are
enforced by the services, which raise errors.ValidationError.
"""
from datetime import date
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from models.recurring_charge import BillingFrequency
from models.utility import UtilityType


class RecurringChargeCreate(BaseModel):
     """Schema for creating a recurring charge on a lease."""
     lease_id: int
     charge_type_id: int
     description: str = Field(..., min_length=1, max_length=500)
     amount: Decimal = Field(..., description="Full-period amount")
     frequency: BillingFrequency = BillingFrequency.MONTHLY
     start_date: date
     end_date: Optional[date] = None
     notes: Optional[str] = Field(None, max_length=2000)

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "lease_id": 1,
                    "charge_type_id": 2,
                    "description": "Monthly maintenance",
                    "amount": 1000.00,
                    "frequency": "MONTHLY",
                    "start_date": "2026-01-10",
               }
          }
     )


class RecurringChargeUpdate(BaseModel):
     """Schema for updating a recurring charge. Omitted fields are left unchanged."""
     description: Optional[str] = Field(None, min_length=1, max_length=500)
     amount: Optional[Decimal] = None
     start_date: Optional[date] = None
     end_date: Optional[date] = None
     is_active: Optional[bool] = None
     notes: Optional[str] = Field(None, max_length=2000)


class UtilityStatementCreate(BaseModel):
     """
     Schema for recording a utility statement.

     Meter-based statements need rate_plan_id, previous_reading and current_reading;
     amount-based statements need direct_bill_amount.
     """
     lease_id: int
     utility_type: UtilityType
     billing_period_start: date
     billing_period_end: date
     is_meter_based: bool = False
     rate_plan_id: Optional[int] = None
     previous_reading: Optional[Decimal] = None
     current_reading: Optional[Decimal] = None
     direct_bill_amount: Optional[Decimal] = None
     notes: Optional[str] = Field(None, max_length=2000)

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "lease_id": 1,
                    "utility_type": "ELECTRICITY",
                    "billing_period_start": "2026-01-01",
                    "billing_period_end": "2026-01-31",
                    "is_meter_based": True,
                    "rate_plan_id": 3,
                    "previous_reading": 1200,
                    "current_reading": 1450,
                    "notes": "January 2026 electricity bill - meter reading taken on 31st",
               }
          }
     )


class UtilityStatementUpdate(BaseModel):
     """Changes to a draft statement's readings or amount."""
     rate_plan_id: Optional[int] = None
     previous_reading: Optional[Decimal] = None
     current_reading: Optional[Decimal] = None
     direct_bill_amount: Optional[Decimal] = None
     notes: Optional[str] = Field(None, max_length=2000)


class SlabCharge(BaseModel):
     """One tier of a slab calculation breakdown."""
     from_units: Decimal
     to_units: Decimal
     units_in_slab: Decimal
     rate_per_unit: Decimal
     amount: Decimal
     fixed_charge: Optional[Decimal] = None


class UtilityCalculation(BaseModel):
     """Result of a utility amount calculation."""
     utility_type: UtilityType
     is_meter_based: bool
     units_consumed: Optional[Decimal] = None
     total_amount: Decimal
     description: str
     slabs: list[SlabCharge] = Field(default_factory=list)


class ChargeLineCandidate(BaseModel):
     """An invoice line proposed for a billing period, not yet persisted."""
     charge_id: int
     charge_type_id: int
     description: str
     frequency: BillingFrequency
     period_start: date
     period_end: date
     full_amount: Decimal
     amount: Decimal
     is_prorated: bool


class InvoiceLineCreate(BaseModel):
     """Schema for adding a line to a draft invoice."""
     charge_type_id: int
     description: str = Field(..., min_length=1, max_length=500)
     quantity: Decimal = Decimal("1")
     unit_price: Decimal
     is_taxable: bool = False
     tax_rate: Decimal = Decimal("0")
     source_type: Optional[str] = Field(None, max_length=30)
     source_id: Optional[int] = None
