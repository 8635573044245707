"""Tests for invoice numbering, the invoice lifecycle, the overdue sweep and invoice generation."""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

import config
from errors import ConcurrencyError, StateConflictError, ValidationError
from models import ChargeTypeCode, Invoice, InvoiceStatus, LeaseStatus, PaymentMode, UtilityType
from schemas.billing import InvoiceLineCreate, RecurringChargeCreate, UtilityStatementCreate
from schemas.payment import PaymentCreate
from services.invoice_generation_service import InvoiceGenerationService, InvoiceRunStatus, SOURCE_UTILITY_STATEMENT
from services.invoice_service import InvoiceNumberGenerator, InvoiceService, allowed_transitions
from services.payment_service import PaymentService
from services.recurring_charge_service import RecurringChargeService
from services.utility_service import UtilityService

ACTOR = "owner-1"
JAN = (date(2026, 1, 1), date(2026, 1, 31))


# --- Fixtures ---

@pytest.fixture
def pay(db, clock):
     def _pay(invoice, amount, mode=PaymentMode.CASH, **fields):
          return PaymentService.record_payment(db, PaymentCreate(
               invoice_id=invoice.id,
               mode=mode,
               amount=Decimal(amount),
               payment_date=clock.now(),
               **fields,
          ), ACTOR, clock)
     return _pay


@pytest.fixture
def draft(make_invoice, lease):
     return make_invoice(lease, total=Decimal("1000.00"), issue=False)


class TestDraft:

     def test_number_and_dates(self, draft):
          assert draft.status == InvoiceStatus.DRAFT
          assert draft.invoice_number == f"{config.INVOICE_PREFIX}-202601-000001"
          assert draft.invoice_date == JAN[1]
          assert draft.due_date == JAN[1] + timedelta(days=config.PAYMENT_TERM_DAYS)

     def test_numbers_are_sequential_per_org(self, db, clock, lease, make_lease, draft):
          second = InvoiceService.create_draft(db, lease.id, date(2026, 2, 1), date(2026, 2, 28), ACTOR, clock)
          other_org = make_lease(org_id=7)
          other = InvoiceService.create_draft(db, other_org.id, *JAN, ACTOR, clock)

          assert second.invoice_number == f"{config.INVOICE_PREFIX}-202602-000002"
          assert other.invoice_number.endswith("-000001")

     def test_lease_billing_setting_overrides(self, db, clock, make_lease):
          lease = make_lease(org_id=3, payment_term_days=10, invoice_prefix="PAL")

          invoice = InvoiceService.create_draft(db, lease.id, *JAN, ACTOR, clock)

          assert invoice.invoice_number == "PAL-202601-000001"
          assert invoice.due_date == date(2026, 2, 10)

     def test_blank_prefix_falls_back_to_default(self, db, clock, make_lease):
          lease = make_lease(org_id=4, invoice_prefix="  ")

          invoice = InvoiceService.create_draft(db, lease.id, *JAN, ACTOR, clock)

          assert invoice.invoice_number.startswith(f"{config.INVOICE_PREFIX}-")

     def test_taxable_line(self, db, clock, draft, charge_types):
          InvoiceService.add_line(db, draft.id, InvoiceLineCreate(
               charge_type_id=charge_types[ChargeTypeCode.MAINTENANCE].id,
               description="Maintenance",
               unit_price=Decimal("1000.00"),
               is_taxable=True,
               tax_rate=Decimal("0.18"),
          ), ACTOR, clock)

          assert draft.subtotal == Decimal("2000.00")
          assert draft.tax_amount == Decimal("180.00")
          assert draft.total_amount == Decimal("2180.00")
          assert draft.balance_amount == Decimal("2180.00")
          assert [line.line_number for line in draft.lines] == [1, 2]

     def test_line_validation(self, db, clock, draft, charge_types):
          with pytest.raises(ValidationError) as exc_info:
               InvoiceService.add_line(db, draft.id, InvoiceLineCreate(
                    charge_type_id=charge_types[ChargeTypeCode.RENT].id,
                    description="Bad",
                    quantity=Decimal("0"),
                    unit_price=Decimal("-1"),
                    tax_rate=Decimal("2"),
               ), ACTOR, clock)

          assert len(exc_info.value.errors) == 3

     def test_number_collision_is_a_concurrency_error(self, db, clock, lease, draft, monkeypatch):
          monkeypatch.setattr(InvoiceNumberGenerator, "next_sequence", staticmethod(lambda db, org_id: 1))

          with pytest.raises(ConcurrencyError):
               InvoiceService.create_draft(db, lease.id, date(2026, 2, 1), date(2026, 2, 28), ACTOR, clock)

          assert db.query(Invoice).count() == 1
          assert draft.sequence_number == 1

     def test_unit_price_with_fractional_cents_is_rejected(self, db, clock, draft, charge_types):
          with pytest.raises(ValidationError, match="more than 2 decimal places"):
               InvoiceService.add_line(db, draft.id, InvoiceLineCreate(
                    charge_type_id=charge_types[ChargeTypeCode.MAINTENANCE].id,
                    description="Maintenance",
                    unit_price=Decimal("10.005"),
               ), ACTOR, clock)

          assert len(draft.lines) == 1
          assert draft.total_amount == Decimal("1000.00")

     def test_remove_line(self, db, clock, draft):
          InvoiceService.remove_line(db, draft.id, draft.lines[0].id, ACTOR, clock)

          assert draft.lines == []
          assert draft.total_amount == Decimal("0.00")


class TestIssue:

     def test_issue(self, db, clock, draft):
          InvoiceService.issue_invoice(db, draft.id, ACTOR, clock)

          assert draft.status == InvoiceStatus.ISSUED
          assert draft.issued_at == clock.now()
          assert draft.balance_amount == Decimal("1000.00")

     def test_issue_without_lines(self, db, clock, lease):
          invoice = InvoiceService.create_draft(db, lease.id, *JAN, ACTOR, clock)

          with pytest.raises(ValidationError, match="without line items"):
               InvoiceService.issue_invoice(db, invoice.id, ACTOR, clock)

     def test_issue_with_zero_total(self, make_invoice, lease):
          with pytest.raises(ValidationError, match="zero or negative"):
               make_invoice(lease, total=Decimal("0"))

     def test_due_date_before_invoice_date(self, db, clock, draft):
          with pytest.raises(ValidationError):
               InvoiceService.issue_invoice(db, draft.id, ACTOR, clock, due_date=date(2026, 1, 1))

     def test_issued_invoice_is_frozen(self, db, clock, issued_invoice, charge_types):
          with pytest.raises(StateConflictError):
               InvoiceService.add_line(db, issued_invoice.id, InvoiceLineCreate(
                    charge_type_id=charge_types[ChargeTypeCode.RENT].id,
                    description="Late fee",
                    unit_price=Decimal("100"),
               ), ACTOR, clock)
          with pytest.raises(StateConflictError):
               InvoiceService.issue_invoice(db, issued_invoice.id, ACTOR, clock)

     def test_stale_expected_version(self, db, clock, draft):
          with pytest.raises(ConcurrencyError):
               InvoiceService.issue_invoice(db, draft.id, ACTOR, clock, expected_version=draft.row_version - 1)

     def test_concurrent_write_is_detected_on_flush(self, db, clock, draft):
          db.execute(
               update(Invoice).where(Invoice.id == draft.id).values(row_version=Invoice.row_version + 1),
               execution_options={"synchronize_session": False},
          )

          with pytest.raises(ConcurrencyError):
               InvoiceService.issue_invoice(db, draft.id, ACTOR, clock)


class TestCloseInvoice:

     def test_void_issued(self, db, clock, issued_invoice):
          InvoiceService.void_invoice(db, issued_invoice.id, "Issued twice", ACTOR, clock)

          assert issued_invoice.status == InvoiceStatus.VOIDED
          assert issued_invoice.void_reason == "Issued twice"
          assert issued_invoice.voided_at == clock.now()

     def test_cancel_draft(self, db, clock, draft):
          InvoiceService.cancel_invoice(db, draft.id, "Lease terminated", ACTOR, clock)

          assert draft.status == InvoiceStatus.CANCELLED

     def test_reason_required(self, db, clock, issued_invoice):
          with pytest.raises(ValidationError):
               InvoiceService.void_invoice(db, issued_invoice.id, "  ", ACTOR, clock)

     def test_paid_invoice_cannot_be_voided(self, db, clock, issued_invoice, pay):
          pay(issued_invoice, "5000.00")

          with pytest.raises(StateConflictError):
               InvoiceService.void_invoice(db, issued_invoice.id, "Mistake", ACTOR, clock)

     def test_pending_payment_blocks_void(self, db, clock, issued_invoice, pay):
          pay(issued_invoice, "5000.00", mode=PaymentMode.ONLINE, gateway_transaction_id="pay_123")

          with pytest.raises(StateConflictError, match="has payments"):
               InvoiceService.void_invoice(db, issued_invoice.id, "Mistake", ACTOR, clock)

     def test_voided_is_terminal(self, db, clock, issued_invoice):
          InvoiceService.void_invoice(db, issued_invoice.id, "Mistake", ACTOR, clock)

          with pytest.raises(StateConflictError):
               InvoiceService.cancel_invoice(db, issued_invoice.id, "Again", ACTOR, clock)


class TestBalance:

     def test_partial_then_full_payment(self, db, clock, issued_invoice, pay):
          pay(issued_invoice, "2000.00")
          assert issued_invoice.status == InvoiceStatus.PARTIALLY_PAID
          assert issued_invoice.balance_amount == Decimal("3000.00")

          pay(issued_invoice, "3000.00")
          assert issued_invoice.status == InvoiceStatus.PAID
          assert issued_invoice.balance_amount == Decimal("0.00")
          assert issued_invoice.paid_at == clock.now()

     def test_recalculate_is_idempotent(self, db, clock, issued_invoice, pay):
          pay(issued_invoice, "1250.00")

          for _ in range(3):
               InvoiceService.recalculate_balance(db, issued_invoice.id, ACTOR, clock)

          assert issued_invoice.paid_amount == Decimal("1250.00")
          assert issued_invoice.balance_amount == Decimal("3750.00")
          assert issued_invoice.balance_amount == issued_invoice.total_amount - issued_invoice.paid_amount

     def test_every_status_has_transitions_defined(self):
          for status in InvoiceStatus:
               assert isinstance(allowed_transitions(status), frozenset)
          assert allowed_transitions(InvoiceStatus.VOIDED) == frozenset()


class TestOverdueSweep:

     def test_marks_past_due_invoices(self, db, clock, lease, make_invoice, pay):
          unpaid = make_invoice(lease)
          partial = make_invoice(lease)
          paid = make_invoice(lease)
          draft = make_invoice(lease, issue=False)
          pay(partial, "1000.00")
          pay(paid, "5000.00")

          clock.set(2026, 2, 10)
          result = InvoiceService.run_overdue_sweep(db, lease.org_id, clock)

          assert result.updated == [unpaid.id, partial.id]
          assert result.failed == []
          assert unpaid.status == InvoiceStatus.OVERDUE
          assert partial.status == InvoiceStatus.OVERDUE
          assert paid.status == InvoiceStatus.PAID
          assert draft.status == InvoiceStatus.DRAFT

     def test_not_yet_due(self, db, clock, issued_invoice):
          result = InvoiceService.run_overdue_sweep(db, issued_invoice.org_id, clock)

          assert result.total == 0
          with pytest.raises(StateConflictError, match="not overdue"):
               InvoiceService.mark_overdue(db, issued_invoice.id, clock)

     def test_failure_does_not_stop_sweep(self, db, clock, lease, make_invoice, monkeypatch):
          first = make_invoice(lease)
          second = make_invoice(lease)
          mark_overdue = InvoiceService.mark_overdue

          def flaky(db, invoice_id, clock, actor="system"):
               if invoice_id == first.id:
                    raise StateConflictError("simulated failure")
               return mark_overdue(db, invoice_id, clock, actor)

          monkeypatch.setattr(InvoiceService, "mark_overdue", staticmethod(flaky))
          clock.set(2026, 3, 1)
          result = InvoiceService.run_overdue_sweep(db, lease.org_id, clock)

          assert result.failed == [first.id]
          assert result.updated == [second.id]
          assert first.status == InvoiceStatus.ISSUED
          assert second.status == InvoiceStatus.OVERDUE

     def test_overdue_invoice_can_still_be_paid(self, db, clock, issued_invoice, pay):
          clock.set(2026, 2, 10)
          InvoiceService.mark_overdue(db, issued_invoice.id, clock)

          pay(issued_invoice, "500.00")
          assert issued_invoice.status == InvoiceStatus.PARTIALLY_PAID

          pay(issued_invoice, "4500.00")
          assert issued_invoice.status == InvoiceStatus.PAID


class TestGeneration:

     @pytest.fixture
     def billable_lease(self, db, clock, lease, charge_types):
          RecurringChargeService.create_charge(db, RecurringChargeCreate(
               lease_id=lease.id,
               charge_type_id=charge_types[ChargeTypeCode.RENT].id,
               description="Rent",
               amount=Decimal("1000.00"),
               start_date=date(2026, 1, 10),
          ), ACTOR, clock)
          statement = UtilityService.create_statement(db, UtilityStatementCreate(
               lease_id=lease.id,
               utility_type=UtilityType.WATER,
               billing_period_start=JAN[0],
               billing_period_end=JAN[1],
               direct_bill_amount=Decimal("412.50"),
          ), ACTOR, clock)
          UtilityService.finalize_statement(db, statement.id, ACTOR, clock)
          return lease, statement

     def test_generate_draft(self, db, clock, billable_lease):
          lease, statement = billable_lease

          generated = InvoiceGenerationService.generate_invoice(db, lease.id, *JAN, ACTOR, clock)
          invoice = generated.invoice

          assert not generated.was_updated
          assert invoice.status == InvoiceStatus.DRAFT
          assert [line.amount for line in invoice.lines] == [Decimal("709.68"), Decimal("412.50")]
          assert "prorated" in invoice.lines[0].description
          assert invoice.total_amount == Decimal("1122.18")
          assert invoice.lines[1].source_type == SOURCE_UTILITY_STATEMENT
          assert statement.invoice_line_id == invoice.lines[1].id

     def test_regenerate_refreshes_same_draft(self, db, clock, billable_lease):
          lease, statement = billable_lease
          first = InvoiceGenerationService.generate_invoice(db, lease.id, *JAN, ACTOR, clock)

          second = InvoiceGenerationService.generate_invoice(db, lease.id, *JAN, ACTOR, clock)

          assert second.was_updated
          assert second.invoice.id == first.invoice.id
          assert len(second.invoice.lines) == 2
          assert statement.invoice_line_id == second.invoice.lines[1].id
          assert db.query(Invoice).filter(Invoice.lease_id == lease.id).count() == 1

     def test_issued_period_is_not_regenerated(self, db, clock, billable_lease):
          lease, _ = billable_lease
          generated = InvoiceGenerationService.generate_invoice(db, lease.id, *JAN, ACTOR, clock)
          InvoiceService.issue_invoice(db, generated.invoice.id, ACTOR, clock)

          with pytest.raises(StateConflictError, match="already has invoice"):
               InvoiceGenerationService.generate_invoice(db, lease.id, *JAN, ACTOR, clock)

     def test_voiding_releases_utility_statement(self, db, clock, billable_lease):
          lease, statement = billable_lease
          first = InvoiceGenerationService.generate_invoice(db, lease.id, *JAN, ACTOR, clock)
          InvoiceService.void_invoice(db, first.invoice.id, "Wrong readings", ACTOR, clock)
          assert statement.invoice_line_id is None

          second = InvoiceGenerationService.generate_invoice(db, lease.id, *JAN, ACTOR, clock)

          assert second.invoice.id != first.invoice.id
          assert statement.invoice_line_id == second.invoice.lines[1].id

     def test_inactive_lease(self, db, clock, make_lease):
          lease = make_lease(org_id=5, status=LeaseStatus.ENDED)

          with pytest.raises(StateConflictError, match="not active"):
               InvoiceGenerationService.generate_invoice(db, lease.id, *JAN, ACTOR, clock)

     def test_rent_change_mid_period_is_split(self, db, clock, lease, charge_types):
          for amount, start, end in (
               ("1000.00", date(2026, 1, 1), date(2026, 1, 15)),
               ("1200.00", date(2026, 1, 16), None),
          ):
               RecurringChargeService.create_charge(db, RecurringChargeCreate(
                    lease_id=lease.id,
                    charge_type_id=charge_types[ChargeTypeCode.RENT].id,
                    description="Rent",
                    amount=Decimal(amount),
                    start_date=start,
                    end_date=end,
               ), ACTOR, clock)

          invoice = InvoiceGenerationService.generate_invoice(db, lease.id, *JAN, ACTOR, clock).invoice

          assert [line.amount for line in invoice.lines] == [Decimal("483.87"), Decimal("619.35")]
          assert invoice.total_amount == Decimal("1103.22")


class TestInvoiceRun:

     @pytest.fixture
     def add_rent(self, db, clock, charge_types):
          def _add(lease, amount="1000.00"):
               return RecurringChargeService.create_charge(db, RecurringChargeCreate(
                    lease_id=lease.id,
                    charge_type_id=charge_types[ChargeTypeCode.RENT].id,
                    description="Rent",
                    amount=Decimal(amount),
                    start_date=JAN[0],
               ), ACTOR, clock)
          return _add

     def test_generates_every_active_lease(self, db, clock, lease, make_lease, add_rent):
          second = make_lease(start_date=date(2026, 1, 5))
          add_rent(lease)
          add_rent(second, "1500.00")

          result = InvoiceGenerationService.run_invoice_generation(db, lease.org_id, *JAN, ACTOR, clock)

          assert result.status == InvoiceRunStatus.COMPLETED
          invoices = [db.get(Invoice, invoice_id) for invoice_id in result.generated]
          assert [invoice.lease_id for invoice in invoices] == [lease.id, second.id]
          assert [invoice.total_amount for invoice in invoices] == [Decimal("1000.00"), Decimal("1500.00")]
          assert all(invoice.status == InvoiceStatus.DRAFT for invoice in invoices)

     def test_failed_lease_does_not_stop_run(self, db, clock, lease, make_lease, make_invoice, add_rent):
          issued = make_invoice(lease)
          second = make_lease(start_date=date(2026, 1, 5))
          add_rent(second)

          result = InvoiceGenerationService.run_invoice_generation(db, lease.org_id, *JAN, ACTOR, clock)

          assert result.status == InvoiceRunStatus.COMPLETED_WITH_ERRORS
          assert list(result.failed) == [lease.id]
          assert "already has invoice" in result.failed[lease.id]
          assert len(result.generated) == 1
          assert db.get(Invoice, result.generated[0]).lease_id == second.id
          assert issued.status == InvoiceStatus.ISSUED

     def test_every_lease_failing_fails_the_run(self, db, clock, lease, make_invoice):
          make_invoice(lease)

          result = InvoiceGenerationService.run_invoice_generation(db, lease.org_id, *JAN, ACTOR, clock)

          assert result.status == InvoiceRunStatus.FAILED
          assert result.generated == []

     def test_skips_manual_and_inactive_leases(self, db, clock, lease, make_lease, add_rent):
          manual = make_lease(start_date=date(2026, 1, 2), generate_invoice_automatically=False)
          ended = make_lease(start_date=date(2026, 1, 3), status=LeaseStatus.ENDED)
          other_org = make_lease(org_id=9)
          for each in (lease, manual, ended, other_org):
               add_rent(each)

          result = InvoiceGenerationService.run_invoice_generation(db, lease.org_id, *JAN, ACTOR, clock)

          assert result.skipped == [manual.id]
          assert [db.get(Invoice, invoice_id).lease_id for invoice_id in result.generated] == [lease.id]
          assert db.query(Invoice).filter(Invoice.lease_id.in_([manual.id, ended.id, other_org.id])).count() == 0

     def test_rerun_refreshes_drafts(self, db, clock, lease, add_rent):
          add_rent(lease)
          first = InvoiceGenerationService.run_invoice_generation(db, lease.org_id, *JAN, ACTOR, clock)

          second = InvoiceGenerationService.run_invoice_generation(db, lease.org_id, *JAN, ACTOR, clock)

          assert second.generated == first.generated
          assert db.query(Invoice).count() == 1

     def test_inverted_period(self, db, clock, lease):
          with pytest.raises(ValidationError):
               InvoiceGenerationService.run_invoice_generation(db, lease.org_id, JAN[1], JAN[0], ACTOR, clock)
