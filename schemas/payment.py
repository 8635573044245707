# schemas/payment.py
"""
Pydantic schemas for recording payments and payment confirmation requests.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict

from models.payment import PaymentMode


class PaymentCreate(BaseModel):
     """Payment recorded by an owner/manager, or reported by a gateway."""

     invoice_id: int
     mode: PaymentMode
     amount: Decimal = Field(..., description="Amount paid (0 < amount <= remaining balance)")
     payment_date: datetime
     transaction_reference: Optional[str] = Field(None, max_length=200)
     gateway_transaction_id: Optional[str] = Field(None, max_length=200)
     gateway_name: Optional[str] = Field(None, max_length=100)
     payer_name: Optional[str] = Field(None, max_length=200)
     notes: Optional[str] = Field(None, max_length=2000)
     metadata: Optional[dict[str, Any]] = None

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "invoice_id": 1,
                    "mode": "BANK_TRANSFER",
                    "amount": 5000.00,
                    "payment_date": "2026-02-03T10:30:00Z",
                    "transaction_reference": "NEFT-88213",
                    "payer_name": "John Doe",
               }
          }
     )


class PaymentConfirmationRequestCreate(BaseModel):
     """Tenant's claim that they paid an invoice outside the system."""

     invoice_id: int
     amount: Decimal
     payment_date: datetime
     receipt_number: Optional[str] = Field(None, max_length=100)
     notes: Optional[str] = Field(None, max_length=2000)

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "invoice_id": 1,
                    "amount": 3000.00,
                    "payment_date": "2026-02-01T09:00:00Z",
                    "receipt_number": "RCPT-1042",
                    "notes": "Paid in cash to the building manager",
               }
          }
     )
