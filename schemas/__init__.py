# schemas/__init__.py
from .billing import (
     RecurringChargeCreate,
     RecurringChargeUpdate,
     UtilityStatementCreate,
     UtilityStatementUpdate,
     UtilityCalculation,
     SlabCharge,
     ChargeLineCandidate,
     InvoiceLineCreate,
)
from .payment import PaymentCreate, PaymentConfirmationRequestCreate
from .ownership import OwnershipShareInput, SetOwnershipRequest

__all__ = [
     "RecurringChargeCreate",
     "RecurringChargeUpdate",
     "UtilityStatementCreate",
     "UtilityStatementUpdate",
     "UtilityCalculation",
     "SlabCharge",
     "ChargeLineCandidate",
     "InvoiceLineCreate",
     "PaymentCreate",
     "PaymentConfirmationRequestCreate",
     "OwnershipShareInput",
     "SetOwnershipRequest",
]
