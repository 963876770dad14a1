"""Initial leave schema: organizations, employees, leave policy, ledger, requests

Revision ID: 001_initial_leave_schema
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_leave_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACCRUAL_METHODS = ('MONTHLY', 'QUARTERLY', 'YEARLY', 'NONE')
LEAVE_CATEGORIES = ('PAID', 'UNPAID', 'SICK', 'CASUAL', 'PARENTAL', 'COMPENSATORY', 'OTHER')
LEAVE_STATUSES = ('PENDING', 'APPROVED', 'REJECTED', 'CANCELLED')
APPROVAL_ACTIONS = ('AUTO_APPROVE', 'APPROVE', 'REJECT', 'CANCEL')


def _timestamps():
    # SQL-standard CURRENT_TIMESTAMP works on SQLite and Postgres
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade() -> None:
    # Skip if tables already exist (e.g. DB created by app create_all())
    bind = op.get_bind()
    existing = sa.inspect(bind).get_table_names()
    if 'leave_types' in existing:
        return

    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('active_flag', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_organizations_id'), 'organizations', ['id'], unique=False)
    op.create_index(op.f('ix_organizations_name'), 'organizations', ['name'], unique=True)

    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'name', name='uq_departments_org_name'),
    )
    op.create_index(op.f('ix_departments_id'), 'departments', ['id'], unique=False)
    op.create_index(op.f('ix_departments_organization_id'), 'departments', ['organization_id'], unique=False)
    op.create_index(op.f('ix_departments_name'), 'departments', ['name'], unique=False)

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('emp_code', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='EMPLOYEE'),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('reporting_manager_id', sa.Integer(), nullable=True),
        sa.Column('password_hash', sa.String(), nullable=True),
        sa.Column('join_date', sa.Date(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['reporting_manager_id'], ['employees.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_employees_id'), 'employees', ['id'], unique=False)
    op.create_index(op.f('ix_employees_organization_id'), 'employees', ['organization_id'], unique=False)
    op.create_index(op.f('ix_employees_emp_code'), 'employees', ['emp_code'], unique=True)
    op.create_index(op.f('ix_employees_department_id'), 'employees', ['department_id'], unique=False)
    op.create_index('ix_employees_reporting_manager_id', 'employees', ['reporting_manager_id'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('meta_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['actor_id'], ['employees.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)
    op.create_index(op.f('ix_audit_logs_organization_id'), 'audit_logs', ['organization_id'], unique=False)

    op.create_table(
        'leave_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(length=16), nullable=True),
        sa.Column('icon', sa.String(length=64), nullable=True),
        sa.Column('category', sa.Enum(*LEAVE_CATEGORIES, name='leavecategory'), nullable=True),
        sa.Column('accrual_method', sa.Enum(*ACCRUAL_METHODS, name='accrualmethod'), nullable=False),
        sa.Column('accrual_rate', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('initial_balance', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('min_balance', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('max_balance', sa.Numeric(6, 2), nullable=True),
        sa.Column('allow_carry_forward', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('carry_forward_limit', sa.Numeric(6, 2), nullable=True),
        sa.Column('carry_forward_expiry_months', sa.Integer(), nullable=True),
        sa.Column('allow_encashment', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('encashment_rate', sa.Numeric(10, 2), nullable=True),
        sa.Column('requires_approval', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('approval_levels', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('auto_approve_for_days', sa.Numeric(6, 2), nullable=True),
        sa.Column('requires_documentation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('required_documents', sa.JSON(), nullable=False),
        sa.Column('min_service_months', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_advance_notice_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_consecutive_days', sa.Numeric(6, 2), nullable=True),
        sa.Column('blackout_dates', sa.JSON(), nullable=False),
        sa.Column('active_flag', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('delete_flag', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('accrual_rate >= 0', name='check_leave_types_accrual_rate_non_negative'),
        sa.CheckConstraint('approval_levels >= 1', name='check_leave_types_approval_levels_positive'),
    )
    op.create_index(op.f('ix_leave_types_id'), 'leave_types', ['id'], unique=False)
    op.create_index(op.f('ix_leave_types_organization_id'), 'leave_types', ['organization_id'], unique=False)
    op.create_index('ix_leave_types_org_code', 'leave_types', ['organization_id', 'code'], unique=False)

    op.create_table(
        'employee_leaves',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=False),
        sa.Column('balance', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('total_accrued', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('total_consumed', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('opened_on', sa.Date(), nullable=True),
        sa.Column('last_accrual_date', sa.Date(), nullable=True),
        sa.Column('next_accrual_date', sa.Date(), nullable=True),
        sa.Column('carry_forward_balance', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('carry_forward_expires_on', sa.Date(), nullable=True),
        sa.Column('last_rollover_year', sa.Integer(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('active_flag', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('delete_flag', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['leave_type_id'], ['leave_types.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('employee_id', 'leave_type_id', name='uq_employee_leaves_employee_type'),
    )
    op.create_index(op.f('ix_employee_leaves_id'), 'employee_leaves', ['id'], unique=False)
    op.create_index(op.f('ix_employee_leaves_organization_id'), 'employee_leaves', ['organization_id'], unique=False)
    op.create_index(op.f('ix_employee_leaves_employee_id'), 'employee_leaves', ['employee_id'], unique=False)
    op.create_index(op.f('ix_employee_leaves_leave_type_id'), 'employee_leaves', ['leave_type_id'], unique=False)

    op.create_table(
        'leave_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('total_days', sa.Numeric(6, 2), nullable=False),
        sa.Column('is_half_day', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.Enum(*LEAVE_STATUSES, name='leavestatus'), nullable=False),
        sa.Column('debited_days', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('approver_comments', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by_id', sa.Integer(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_by_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by_id', sa.Integer(), nullable=True),
        sa.Column('work_handover_to', sa.Integer(), nullable=True),
        sa.Column('handover_notes', sa.Text(), nullable=True),
        sa.Column('emergency_contact_name', sa.String(), nullable=True),
        sa.Column('emergency_contact_phone', sa.String(), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column('active_flag', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('delete_flag', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['leave_type_id'], ['leave_types.id']),
        sa.ForeignKeyConstraint(['approved_by_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['rejected_by_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['cancelled_by_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['work_handover_to'], ['employees.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('start_date <= end_date', name='check_start_date_le_end_date'),
    )
    op.create_index(op.f('ix_leave_requests_id'), 'leave_requests', ['id'], unique=False)
    op.create_index(op.f('ix_leave_requests_organization_id'), 'leave_requests', ['organization_id'], unique=False)
    op.create_index(op.f('ix_leave_requests_employee_id'), 'leave_requests', ['employee_id'], unique=False)
    op.create_index(op.f('ix_leave_requests_leave_type_id'), 'leave_requests', ['leave_type_id'], unique=False)
    op.create_index('ix_leave_requests_employee_dates', 'leave_requests', ['employee_id', 'start_date', 'end_date'], unique=False)

    op.create_table(
        'leave_approvals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('leave_request_id', sa.Integer(), nullable=False),
        sa.Column('action_by', sa.Integer(), nullable=True),
        sa.Column('action', sa.Enum(*APPROVAL_ACTIONS, name='approvalaction'), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('action_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['leave_request_id'], ['leave_requests.id']),
        sa.ForeignKeyConstraint(['action_by'], ['employees.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_leave_approvals_id'), 'leave_approvals', ['id'], unique=False)
    op.create_index(op.f('ix_leave_approvals_leave_request_id'), 'leave_approvals', ['leave_request_id'], unique=False)

    op.create_table(
        'leave_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ledger_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=False),
        sa.Column('leave_request_id', sa.Integer(), nullable=True),
        sa.Column('delta_days', sa.Numeric(6, 2), nullable=False),
        sa.Column('balance_after', sa.Numeric(6, 2), nullable=False),
        sa.Column('action', sa.String(length=30), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=128), nullable=True),
        sa.Column('action_by_employee_id', sa.Integer(), nullable=True),
        sa.Column('action_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['ledger_id'], ['employee_leaves.id']),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['leave_type_id'], ['leave_types.id']),
        sa.ForeignKeyConstraint(['leave_request_id'], ['leave_requests.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['action_by_employee_id'], ['employees.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
    )
    op.create_index(op.f('ix_leave_transactions_id'), 'leave_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_leave_transactions_ledger_id'), 'leave_transactions', ['ledger_id'], unique=False)
    op.create_index(op.f('ix_leave_transactions_employee_id'), 'leave_transactions', ['employee_id'], unique=False)
    op.create_index(op.f('ix_leave_transactions_leave_type_id'), 'leave_transactions', ['leave_type_id'], unique=False)
    op.create_index(op.f('ix_leave_transactions_leave_request_id'), 'leave_transactions', ['leave_request_id'], unique=False)


def downgrade() -> None:
    op.drop_table('leave_transactions')
    op.drop_table('leave_approvals')
    op.drop_table('leave_requests')
    op.drop_table('employee_leaves')
    op.drop_table('leave_types')
    op.drop_table('audit_logs')
    op.drop_table('employees')
    op.drop_table('departments')
    op.drop_table('organizations')
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for enum_name in ('approvalaction', 'leavestatus', 'accrualmethod', 'leavecategory'):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
