# services/ownership_service.py
"""
Ownership Service - validation and full replacement of building/unit ownership shares.

Validation runs in order and stops at the first step that fails, reporting every
violation found by that step:
1. the share list is not empty
2. no owner appears twice
3. every percentage is > 0 and <= 100, with at most 2 decimal places
4. percentages sum to 100 within OWNERSHIP_SHARE_TOLERANCE
5. every owner exists and is not deleted
"""
import logging
from collections import Counter
from decimal import Decimal
from typing import List, Optional, Sequence, Union
from sqlalchemy.orm import Session

import config
from database import load, load_versioned, flush_changes
from errors import ValidationError
from models import Owner, Building, Unit, OwnershipShare, OwnershipParentType
from schemas.ownership import OwnershipShareInput, SetOwnershipRequest
from services.collaborators import Clock
from services.proration import has_cents_precision

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def share_set_errors(shares: Sequence[OwnershipShareInput], tolerance: Optional[Decimal] = None) -> List[str]:
     """Violations of the first failing structural rule (steps 1-4), or an empty list."""
     tolerance = config.OWNERSHIP_SHARE_TOLERANCE if tolerance is None else tolerance

     if not shares:
          return ["At least one ownership share is required"]

     counts = Counter(share.owner_id for share in shares)
     duplicates = [f"Owner {owner_id} appears {count} times" for owner_id, count in counts.items() if count > 1]
     if duplicates:
          return duplicates

     out_of_range = []
     for share in shares:
          if share.share_percent <= 0 or share.share_percent > HUNDRED:
               out_of_range.append(
                    f"Share for owner {share.owner_id} must be greater than zero and at most 100 (got {share.share_percent})"
               )
          elif not has_cents_precision(share.share_percent):
               out_of_range.append(
                    f"Share for owner {share.owner_id} has more than 2 decimal places (got {share.share_percent})"
               )
     if out_of_range:
          return out_of_range

     total = sum((Decimal(share.share_percent) for share in shares), Decimal("0"))
     if abs(total - HUNDRED) > tolerance:
          return [f"Ownership shares must sum to 100 (got {total})"]
     return []


class OwnershipService:
     """Service class for ownership share sets."""

     @staticmethod
     def validate_shares(db: Session, shares: Sequence[OwnershipShareInput]) -> None:
          """
          Raises:
               ValidationError: with every violation of the first failing rule in `errors`
          """
          errors = share_set_errors(shares)
          if not errors:
               owner_ids = [share.owner_id for share in shares]
               found = {
                    owner.id: owner
                    for owner in db.query(Owner).filter(Owner.id.in_(owner_ids)).all()
               }
               errors = [
                    f"Owner {owner_id} not found" if owner_id not in found else f"Owner {owner_id} is deleted"
                    for owner_id in owner_ids
                    if owner_id not in found or found[owner_id].is_deleted
               ]
          if errors:
               logger.warning("Rejected ownership shares: %s", "; ".join(errors))
               raise ValidationError(errors[0], errors)

     @staticmethod
     def set_ownership(
          db: Session,
          parent_type: OwnershipParentType,
          parent_id: int,
          request: SetOwnershipRequest,
          actor: str,
          clock: Clock,
          expected_version: Optional[int] = None,
     ) -> Union[Building, Unit]:
          """
          Replace the entire share set of a building or unit.

          Every share in `request` takes effect from request.effective_from.

          Old shares are removed and new ones inserted in the same transaction; the parent's
          row_version is bumped so concurrent replacements conflict.

          Raises:
               NotFoundError: parent does not exist
               ConcurrencyError: expected_version does not match the parent's version
               ValidationError: share set is invalid
          """
          model = OwnershipService._parent_model(parent_type)
          if expected_version is None:
               parent = load(db, model, parent_id)
          else:
               parent = load_versioned(db, model, parent_id, expected_version)
          OwnershipService.validate_shares(db, request.shares)

          parent.ownership_shares.clear()
          flush_changes(db, model.__name__, parent_id)
          for share in request.shares:
               parent.ownership_shares.append(OwnershipShare(
                    owner_id=share.owner_id,
                    share_percent=Decimal(share.share_percent),
                    effective_from=request.effective_from,
                    created_by=actor,
               ))
          parent.ownership_updated_at = clock.now()
          parent.ownership_updated_by = actor
          flush_changes(db, model.__name__, parent_id)
          logger.info(
               "Replaced ownership of %s %s with %d shares (effective %s)",
               parent_type.value.lower(), parent_id, len(request.shares), request.effective_from,
          )
          return parent

     @staticmethod
     def get_shares(db: Session, parent_type: OwnershipParentType, parent_id: int) -> List[OwnershipShare]:
          parent = load(db, OwnershipService._parent_model(parent_type), parent_id)
          return list(parent.ownership_shares)

     @staticmethod
     def _parent_model(parent_type: OwnershipParentType):
          match parent_type:
               case OwnershipParentType.BUILDING:
                    return Building
               case OwnershipParentType.UNIT:
                    return Unit
          raise ValidationError(f"Unknown ownership parent type: {parent_type}")
