# models/base.py
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
     """
     Base class for all SQLAlchemy models.
     Provides common configuration and mixins.
     """

     @declared_attr.directive
     def __tablename__(cls) -> str:
          """
          Automatically generate table name from class name.
          Example: RecurringCharge -> recurring_charges
          """
          import re
          name = re.sub(r'(?<!^)(?=[A-Z])', '_', cls.__name__).lower()
          # Pluralize (simple version)
          if name.endswith('y'):
               return name[:-1] + 'ies'
          elif name.endswith('s'):
               return name + 'es'
          return name + 's'


T = TypeVar("T")


@dataclass(frozen=True)
class VersionedRecord(Generic[T]):
     """
     An aggregate as read by a caller, together with the version token and
     soft-delete flag that were current at read time.

     Callers hand `version` back as `expected_version` on the next mutating call.
     """
     payload: T
     version: int
     is_deleted: bool = False

     @classmethod
     def of(cls, entity: T) -> "VersionedRecord[T]":
          return cls(
               payload=entity,
               version=entity.row_version,
               is_deleted=bool(getattr(entity, "is_deleted", False)),
          )
