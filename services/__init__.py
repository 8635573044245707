# services/__init__.py
from .collaborators import Clock, SystemClock, ProofStorage
from .proration import calculate_proration, prorate, round_money, has_cents_precision, ProrationResult
from .recurring_charge_service import RecurringChargeService, expand_charges
from .utility_service import UtilityService, calculate_slabs, calculate_flat_rate, calculate_amount_based
from .invoice_service import InvoiceService, InvoiceNumberGenerator, OverdueSweepResult
from .invoice_generation_service import InvoiceGenerationService, GeneratedInvoice, InvoiceRunResult, InvoiceRunStatus
from .payment_service import PaymentService
from .payment_confirmation_service import PaymentConfirmationService, ProofUpload
from .ownership_service import OwnershipService

__all__ = [
     "Clock",
     "SystemClock",
     "ProofStorage",
     "calculate_proration",
     "prorate",
     "round_money",
     "has_cents_precision",
     "ProrationResult",
     "RecurringChargeService",
     "expand_charges",
     "UtilityService",
     "calculate_slabs",
     "calculate_flat_rate",
     "calculate_amount_based",
     "InvoiceService",
     "InvoiceNumberGenerator",
     "OverdueSweepResult",
     "InvoiceGenerationService",
     "GeneratedInvoice",
     "InvoiceRunResult",
     "InvoiceRunStatus",
     "PaymentService",
     "PaymentConfirmationService",
     "ProofUpload",
     "OwnershipService",
]
