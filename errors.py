# errors.py
"""
Error taxonomy for the billing engine.

Every failure raised by the services is one of four kinds:

- ValidationError: malformed or out-of-range input. Never retried.
- StateConflictError: the aggregate is in a status that does not allow the operation.
- ConcurrencyError: the version token did not match the stored one. Re-read and retry.
- NotFoundError: a referenced entity does not exist (or is soft-deleted).
"""
from typing import Any, Iterable, List, Optional


class BillingError(Exception):
     """Base class for all billing engine errors."""

     def __init__(self, message: str):
          super().__init__(message)
          self.message = message


class ValidationError(BillingError):
     """Input failed validation. `errors` lists every violation found."""

     def __init__(self, message: str, errors: Optional[Iterable[str]] = None):
          super().__init__(message)
          self.errors: List[str] = list(errors) if errors else [message]


class StateConflictError(BillingError):
     """Operation attempted against an aggregate in an incompatible status."""

     def __init__(self, message: str, current_status: Any = None):
          super().__init__(message)
          self.current_status = current_status


class ConcurrencyError(BillingError):
     """Version token mismatch; the caller must re-fetch and retry."""

     def __init__(self, entity: str, entity_id: Any, expected: Any = None, actual: Any = None):
          message = f"{entity} {entity_id} was modified by another process. Please retry."
          super().__init__(message)
          self.entity = entity
          self.entity_id = entity_id
          self.expected = expected
          self.actual = actual


class NotFoundError(BillingError):
     """A referenced lease, invoice, owner, rate plan, etc. does not exist."""

     def __init__(self, entity: str, entity_id: Any):
          super().__init__(f"{entity} with ID {entity_id} not found")
          self.entity = entity
          self.entity_id = entity_id
