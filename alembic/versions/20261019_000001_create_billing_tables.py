"""Create billing tables

Revision ID: 20261019_000001
Revises: None
Create Date: 2026-10-19

This migration creates the property, lease, charge, utility, invoice, payment
and ownership tables used by the billing engine.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PAYMENT_STATUSES = (
    'PENDING', 'PENDING_CONFIRMATION', 'PROCESSING', 'COMPLETED',
    'FAILED', 'CANCELLED', 'REFUNDED', 'REJECTED',
)
UTILITY_TYPES = ('ELECTRICITY', 'WATER', 'GAS')


def upgrade() -> None:
    """Create the billing tables."""
    op.create_table(
        'owners',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('display_name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_owners_org_id', 'owners', ['org_id'])

    op.create_table(
        'buildings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('ownership_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ownership_updated_by', sa.String(length=100), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_buildings_org_id', 'buildings', ['org_id'])

    op.create_table(
        'units',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('building_id', sa.Integer(), nullable=False),
        sa.Column('unit_number', sa.String(length=50), nullable=False),
        sa.Column('ownership_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ownership_updated_by', sa.String(length=100), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['building_id'], ['buildings.id'], name='fk_units_building_id', ondelete='CASCADE'),
    )

    op.create_table(
        'ownership_shares',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('building_id', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('share_percent', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['building_id'], ['buildings.id'], name='fk_ownership_shares_building_id', ondelete='CASCADE'),
        # NO ACTION: SQL Server rejects a second cascade path from buildings through units
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], name='fk_ownership_shares_unit_id'),
        sa.ForeignKeyConstraint(['owner_id'], ['owners.id'], name='fk_ownership_shares_owner_id'),
        sa.CheckConstraint('share_percent > 0 AND share_percent <= 100', name='ck_ownership_shares_percent'),
        sa.CheckConstraint(
            '(building_id IS NULL AND unit_id IS NOT NULL) OR (building_id IS NOT NULL AND unit_id IS NULL)',
            name='ck_ownership_shares_parent',
        ),
    )
    op.create_index('ix_ownership_shares_building_id', 'ownership_shares', ['building_id'])
    op.create_index('ix_ownership_shares_unit_id', 'ownership_shares', ['unit_id'])
    op.create_index('ix_ownership_shares_owner_id', 'ownership_shares', ['owner_id'])

    op.create_table(
        'leases',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('lease_number', sa.String(length=50), nullable=True),
        sa.Column(
            'status',
            sa.Enum('DRAFT', 'ACTIVE', 'ENDED', 'TERMINATED', name='lease_status', create_constraint=True),
            nullable=False,
            server_default='DRAFT',
        ),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], name='fk_leases_unit_id'),
    )
    op.create_index('ix_leases_org_id', 'leases', ['org_id'])

    op.create_table(
        'lease_billing_settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lease_id', sa.Integer(), nullable=False),
        sa.Column('billing_day', sa.SmallInteger(), nullable=False, server_default='1'),
        sa.Column('payment_term_days', sa.SmallInteger(), nullable=False, server_default='0'),
        sa.Column('generate_invoice_automatically', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            'proration_method',
            sa.Enum('ACTUAL_DAYS_IN_MONTH', 'THIRTY_DAY_MONTH', name='proration_method', create_constraint=True),
            nullable=False,
            server_default='ACTUAL_DAYS_IN_MONTH',
        ),
        sa.Column('invoice_prefix', sa.String(length=20), nullable=True),
        sa.Column('payment_instructions', sa.Text(), nullable=True),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lease_id', name='uq_lease_billing_settings_lease_id'),
        sa.ForeignKeyConstraint(['lease_id'], ['leases.id'], name='fk_lease_billing_settings_lease_id', ondelete='CASCADE'),
        sa.CheckConstraint('billing_day BETWEEN 1 AND 28', name='ck_lease_billing_settings_billing_day'),
        sa.CheckConstraint('payment_term_days >= 0', name='ck_lease_billing_settings_payment_term_days'),
    )

    op.create_table(
        'charge_types',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_taxable', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('default_tax_rate', sa.Numeric(precision=5, scale=4), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'code', name='uq_charge_types_org_code'),
    )
    op.create_index('ix_charge_types_org_id', 'charge_types', ['org_id'])

    op.create_table(
        'recurring_charges',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lease_id', sa.Integer(), nullable=False),
        sa.Column('charge_type_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column(
            'frequency',
            sa.Enum('ONE_TIME', 'MONTHLY', 'QUARTERLY', 'YEARLY', name='billing_frequency', create_constraint=True),
            nullable=False,
            server_default='MONTHLY',
        ),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notes', sa.String(length=2000), nullable=True),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('modified_by', sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['lease_id'], ['leases.id'], name='fk_recurring_charges_lease_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['charge_type_id'], ['charge_types.id'], name='fk_recurring_charges_charge_type_id'),
        sa.CheckConstraint('amount > 0', name='ck_recurring_charges_amount'),
        sa.CheckConstraint('end_date IS NULL OR end_date > start_date', name='ck_recurring_charges_dates'),
    )
    op.create_index('ix_recurring_charges_lease_id', 'recurring_charges', ['lease_id'])

    op.create_table(
        'utility_rate_plans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column(
            'utility_type',
            sa.Enum(*UTILITY_TYPES, name='utility_rate_plan_type', create_constraint=True),
            nullable=False,
        ),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column(
            'rate_type',
            sa.Enum('SLAB', 'FLAT', name='utility_rate_plan_rate_type', create_constraint=True),
            nullable=False,
            server_default='SLAB',
        ),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_utility_rate_plans_org_id', 'utility_rate_plans', ['org_id'])

    op.create_table(
        'utility_rate_slabs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('rate_plan_id', sa.Integer(), nullable=False),
        sa.Column('slab_order', sa.Integer(), nullable=False),
        sa.Column('from_units', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('to_units', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('rate_per_unit', sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column('fixed_charge', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['rate_plan_id'], ['utility_rate_plans.id'], name='fk_utility_rate_slabs_rate_plan_id', ondelete='CASCADE'),
        sa.CheckConstraint('to_units IS NULL OR to_units > from_units', name='ck_utility_rate_slabs_range'),
        sa.CheckConstraint('rate_per_unit >= 0', name='ck_utility_rate_slabs_rate'),
    )
    op.create_index('ix_utility_rate_slabs_rate_plan_id', 'utility_rate_slabs', ['rate_plan_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('lease_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=50), nullable=False),
        sa.Column('sequence_number', sa.Integer(), nullable=False),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('billing_period_start', sa.Date(), nullable=False),
        sa.Column('billing_period_end', sa.Date(), nullable=False),
        sa.Column(
            'status',
            sa.Enum(
                'DRAFT', 'ISSUED', 'PARTIALLY_PAID', 'PAID', 'OVERDUE', 'VOIDED', 'CANCELLED',
                name='invoice_status', create_constraint=True,
            ),
            nullable=False,
            server_default='DRAFT',
        ),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('paid_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('balance_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('payment_instructions', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=500), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('modified_by', sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'invoice_number', name='uq_invoices_org_number'),
        sa.UniqueConstraint('org_id', 'sequence_number', name='uq_invoices_org_sequence'),
        sa.ForeignKeyConstraint(['lease_id'], ['leases.id'], name='fk_invoices_lease_id', ondelete='CASCADE'),
        sa.CheckConstraint('billing_period_end >= billing_period_start', name='ck_invoices_period'),
    )
    op.create_index('ix_invoices_org_id', 'invoices', ['org_id'])
    op.create_index('ix_invoices_lease_id', 'invoices', ['lease_id'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])

    op.create_table(
        'invoice_lines',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('charge_type_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=12, scale=3), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('is_taxable', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('tax_rate', sa.Numeric(precision=5, scale=4), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('source_type', sa.String(length=30), nullable=True),
        sa.Column('source_id', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], name='fk_invoice_lines_invoice_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['charge_type_id'], ['charge_types.id'], name='fk_invoice_lines_charge_type_id'),
        sa.CheckConstraint('quantity > 0', name='ck_invoice_lines_quantity'),
    )
    op.create_index('ix_invoice_lines_invoice_id', 'invoice_lines', ['invoice_id'])

    op.create_table(
        'utility_statements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lease_id', sa.Integer(), nullable=False),
        sa.Column(
            'utility_type',
            sa.Enum(*UTILITY_TYPES, name='utility_statement_type', create_constraint=True),
            nullable=False,
        ),
        sa.Column('billing_period_start', sa.Date(), nullable=False),
        sa.Column('billing_period_end', sa.Date(), nullable=False),
        sa.Column('is_meter_based', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rate_plan_id', sa.Integer(), nullable=True),
        sa.Column('previous_reading', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('current_reading', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('units_consumed', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('direct_bill_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('notes', sa.String(length=2000), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_final', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('supersedes_id', sa.Integer(), nullable=True),
        sa.Column('superseded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finalized_by', sa.String(length=100), nullable=True),
        sa.Column('invoice_line_id', sa.Integer(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['lease_id'], ['leases.id'], name='fk_utility_statements_lease_id', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['rate_plan_id'], ['utility_rate_plans.id'], name='fk_utility_statements_rate_plan_id'),
        sa.ForeignKeyConstraint(['supersedes_id'], ['utility_statements.id'], name='fk_utility_statements_supersedes_id'),
        # NO ACTION: the invoice line is already reachable by cascade through leases
        sa.ForeignKeyConstraint(['invoice_line_id'], ['invoice_lines.id'], name='fk_utility_statements_invoice_line_id'),
        sa.CheckConstraint('billing_period_end >= billing_period_start', name='ck_utility_statements_period'),
    )
    op.create_index('ix_utility_statements_lease_id', 'utility_statements', ['lease_id'])
    op.create_index(
        'uq_utility_statements_final',
        'utility_statements',
        ['lease_id', 'utility_type', 'billing_period_start', 'billing_period_end'],
        unique=True,
        sqlite_where=sa.text('is_final = 1'),
        mssql_where=sa.text('is_final = 1'),
        postgresql_where=sa.text('is_final'),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('lease_id', sa.Integer(), nullable=False),
        sa.Column('confirmation_request_id', sa.Integer(), nullable=True),
        sa.Column(
            'mode',
            sa.Enum('CASH', 'ONLINE', 'BANK_TRANSFER', 'CHEQUE', 'UPI', 'OTHER', name='payment_mode', create_constraint=True),
            nullable=False,
        ),
        sa.Column('status', sa.Enum(*PAYMENT_STATUSES, name='payment_status', create_constraint=True), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('transaction_reference', sa.String(length=200), nullable=True),
        sa.Column('gateway_transaction_id', sa.String(length=200), nullable=True),
        sa.Column('gateway_name', sa.String(length=100), nullable=True),
        sa.Column('payer_name', sa.String(length=200), nullable=True),
        sa.Column('received_by', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.String(length=2000), nullable=True),
        sa.Column('payment_metadata', sa.JSON(), nullable=True),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('modified_by', sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('confirmation_request_id', name='uq_payments_confirmation_request_id'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], name='fk_payments_invoice_id'),
        sa.ForeignKeyConstraint(['lease_id'], ['leases.id'], name='fk_payments_lease_id'),
        sa.CheckConstraint('amount > 0', name='ck_payments_amount'),
    )
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])
    op.create_index('ix_payments_lease_id', 'payments', ['lease_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table(
        'payment_status_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('payment_id', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column(
            'from_status',
            sa.Enum(*PAYMENT_STATUSES, name='payment_history_from_status', create_constraint=True),
            nullable=True,
        ),
        sa.Column(
            'to_status',
            sa.Enum(*PAYMENT_STATUSES, name='payment_history_to_status', create_constraint=True),
            nullable=False,
        ),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('changed_by', sa.String(length=100), nullable=False),
        sa.Column('reason', sa.String(length=1000), nullable=True),
        sa.Column('recorded_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_id', 'sequence', name='uq_payment_status_history_sequence'),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], name='fk_payment_status_history_payment_id'),
    )
    op.create_index('ix_payment_status_history_payment_id', 'payment_status_history', ['payment_id'])

    op.create_table(
        'payment_confirmation_requests',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('lease_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('receipt_number', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.String(length=2000), nullable=True),
        sa.Column('proof_file_ref', sa.String(length=500), nullable=True),
        sa.Column(
            'status',
            sa.Enum(
                'PENDING', 'CONFIRMED', 'REJECTED', 'CANCELLED',
                name='payment_confirmation_status', create_constraint=True,
            ),
            nullable=False,
            server_default='PENDING',
        ),
        sa.Column('reviewed_by', sa.String(length=100), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('review_response', sa.String(length=2000), nullable=True),
        sa.Column('payment_id', sa.Integer(), nullable=True),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], name='fk_payment_confirmation_requests_invoice_id'),
        sa.ForeignKeyConstraint(['lease_id'], ['leases.id'], name='fk_payment_confirmation_requests_lease_id'),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], name='fk_payment_confirmation_requests_payment_id'),
        sa.CheckConstraint('amount > 0', name='ck_payment_confirmation_requests_amount'),
    )
    op.create_index('ix_payment_confirmation_requests_invoice_id', 'payment_confirmation_requests', ['invoice_id'])
    op.create_index('ix_payment_confirmation_requests_lease_id', 'payment_confirmation_requests', ['lease_id'])
    op.create_index('ix_payment_confirmation_requests_status', 'payment_confirmation_requests', ['status'])

    # payments <-> payment_confirmation_requests reference each other
    op.create_foreign_key(
        'fk_payments_confirmation_request_id',
        'payments', 'payment_confirmation_requests',
        ['confirmation_request_id'], ['id'],
    )


def downgrade() -> None:
    """Drop the billing tables."""
    op.drop_constraint('fk_payments_confirmation_request_id', 'payments', type_='foreignkey')
    op.drop_table('payment_confirmation_requests')
    op.drop_table('payment_status_history')
    op.drop_table('payments')
    op.drop_index('uq_utility_statements_final', table_name='utility_statements')
    op.drop_table('utility_statements')
    op.drop_table('invoice_lines')
    op.drop_table('invoices')
    op.drop_table('utility_rate_slabs')
    op.drop_table('utility_rate_plans')
    op.drop_table('recurring_charges')
    op.drop_table('charge_types')
    op.drop_table('lease_billing_settings')
    op.drop_table('leases')
    op.drop_table('ownership_shares')
    op.drop_table('units')
    op.drop_table('buildings')
    op.drop_table('owners')
