# models/__init__.py
from .base import Base, VersionedRecord
from .lease import Lease, LeaseBillingSetting, LeaseStatus, ProrationMethod
from .charge_type import ChargeType, ChargeTypeCode
from .recurring_charge import RecurringCharge, BillingFrequency
from .utility import UtilityRatePlan, UtilityRateSlab, UtilityStatement, UtilityType, RatePlanType
from .invoice import Invoice, InvoiceLine, InvoiceStatus
from .payment import Payment, PaymentStatusHistory, PaymentMode, PaymentStatus
from .payment_confirmation_request import PaymentConfirmationRequest, PaymentConfirmationStatus
from .property import Owner, Building, Unit
from .ownership_share import OwnershipShare, OwnershipParentType

__all__ = [
     "Base",
     "VersionedRecord",
     "Lease",
     "LeaseBillingSetting",
     "LeaseStatus",
     "ProrationMethod",
     "ChargeType",
     "ChargeTypeCode",
     "RecurringCharge",
     "BillingFrequency",
     "UtilityRatePlan",
     "UtilityRateSlab",
     "UtilityStatement",
     "UtilityType",
     "RatePlanType",
     "Invoice",
     "InvoiceLine",
     "InvoiceStatus",
     "Payment",
     "PaymentStatusHistory",
     "PaymentMode",
     "PaymentStatus",
     "PaymentConfirmationRequest",
     "PaymentConfirmationStatus",
     "Owner",
     "Building",
     "Unit",
     "OwnershipShare",
     "OwnershipParentType",
]
