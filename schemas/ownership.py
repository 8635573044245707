# schemas/ownership.py
from datetime import date
from decimal import Decimal
from typing import List
from pydantic import BaseModel, ConfigDict


class OwnershipShareInput(BaseModel):
     """One proposed (owner, percentage) pair."""
     owner_id: int
     share_percent: Decimal


class SetOwnershipRequest(BaseModel):
     """Full replacement of a building's or unit's ownership set."""
     shares: List[OwnershipShareInput]
     effective_from: date

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "shares": [
                         {"owner_id": 1, "share_percent": 60.00},
                         {"owner_id": 2, "share_percent": 40.00},
                    ],
                    "effective_from": "2026-01-01",
               }
          }
     )
