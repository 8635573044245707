"""
Shared fixtures: an in-memory SQLite database per test, a fixed clock,
and builders for leases, charge types, invoices and owners.
"""
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from database import init_db
from models import (
     Lease, LeaseBillingSetting, LeaseStatus, ChargeType, ChargeTypeCode,
     Owner, Building, Unit,
)
from schemas.billing import InvoiceLineCreate
from services.invoice_service import InvoiceService

ACTOR = "owner-1"


class FixedClock:
     """Clock whose current time is set by the test."""

     def __init__(self, current: datetime):
          self.current = current

     def now(self) -> datetime:
          return self.current

     def set(self, year: int, month: int, day: int, hour: int = 9) -> None:
          self.current = datetime(year, month, day, hour, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
     engine = create_engine(
          "sqlite://",
          poolclass=StaticPool,
          connect_args={"check_same_thread": False},
     )

     # pysqlite's own BEGIN handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
     @event.listens_for(engine, "connect")
     def _disable_pysqlite_begin(dbapi_connection, connection_record):
          dbapi_connection.isolation_level = None

     @event.listens_for(engine, "begin")
     def _emit_begin(conn):
          conn.exec_driver_sql("BEGIN")

     init_db(engine)
     yield engine
     engine.dispose()


@pytest.fixture
def db(engine):
     session = Session(bind=engine, autoflush=False, expire_on_commit=False)
     yield session
     session.rollback()
     session.close()


@pytest.fixture
def clock():
     return FixedClock(datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def charge_types(db):
     """System charge types keyed by code."""
     seeded = {
          ChargeTypeCode.RENT: ChargeType(code=ChargeTypeCode.RENT, name="Rent"),
          ChargeTypeCode.MAINTENANCE: ChargeType(
               code=ChargeTypeCode.MAINTENANCE, name="Maintenance", is_taxable=True, default_tax_rate=Decimal("0.18")
          ),
          ChargeTypeCode.ELECTRICITY: ChargeType(code=ChargeTypeCode.ELECTRICITY, name="Electricity"),
          ChargeTypeCode.WATER: ChargeType(code=ChargeTypeCode.WATER, name="Water"),
          ChargeTypeCode.GAS: ChargeType(code=ChargeTypeCode.GAS, name="Gas"),
     }
     db.add_all(seeded.values())
     db.flush()
     return seeded


@pytest.fixture
def make_lease(db):
     def _make(org_id=1, status=LeaseStatus.ACTIVE, start_date=date(2026, 1, 1), **billing):
          lease = Lease(org_id=org_id, status=status, start_date=start_date, lease_number=f"L-{org_id}-{start_date:%Y%m%d}")
          db.add(lease)
          if billing:
               db.add(LeaseBillingSetting(lease=lease, **billing))
          db.flush()
          return lease
     return _make


@pytest.fixture
def lease(make_lease):
     return make_lease()


@pytest.fixture
def make_invoice(db, clock, charge_types):
     """Invoice for January 2026 with one rent line of `total`, issued unless issue=False."""
     def _make(lease, total=Decimal("5000.00"), issue=True, period=(date(2026, 1, 1), date(2026, 1, 31))):
          invoice = InvoiceService.create_draft(db, lease.id, period[0], period[1], ACTOR, clock)
          InvoiceService.add_line(db, invoice.id, InvoiceLineCreate(
               charge_type_id=charge_types[ChargeTypeCode.RENT].id,
               description="Rent",
               unit_price=total,
          ), ACTOR, clock)
          if issue:
               InvoiceService.issue_invoice(db, invoice.id, ACTOR, clock)
          return invoice
     return _make


@pytest.fixture
def issued_invoice(make_invoice, lease):
     return make_invoice(lease)


@pytest.fixture
def make_owner(db):
     def _make(name="Owner", org_id=1, is_deleted=False):
          owner = Owner(org_id=org_id, display_name=name, is_deleted=is_deleted)
          db.add(owner)
          db.flush()
          return owner
     return _make


@pytest.fixture
def building(db):
     building = Building(org_id=1, name="Palm Residency")
     db.add(building)
     db.flush()
     return building


@pytest.fixture
def unit(db, building):
     unit = Unit(building_id=building.id, unit_number="A-101")
     db.add(unit)
     db.flush()
     return unit
