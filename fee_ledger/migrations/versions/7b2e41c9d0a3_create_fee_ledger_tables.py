"""Create fee ledger tables

Revision ID: 7b2e41c9d0a3
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7b2e41c9d0a3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns():
    return [
        sa.Column('created_on', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True, comment='Timestamp when this record was created'),
        sa.Column('updated_on', sa.DateTime(timezone=True), nullable=True, comment='Timestamp when this record was last updated'),
    ]


def _money(name, comment):
    return sa.Column(name, sa.Numeric(precision=10, scale=2), nullable=False, server_default='0.00', comment=comment)


def _status(name, comment, status_enum):
    return sa.Column(name, status_enum, nullable=False, server_default='PENDING', comment=comment)


def _balance_columns():
    """Columns shared by tuition and transport balances."""
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('enrollment_id', sa.Integer(), nullable=False),
        sa.Column('period_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('class_id', sa.Integer(), nullable=False),
        sa.Column('section_id', sa.Integer(), nullable=True),
        sa.Column('admission_no', sa.String(length=50), nullable=True),
        sa.Column('student_name', sa.String(length=150), nullable=True),
        _money('actual_fee', 'Fee before concession'),
        _money('concession_amount', 'Fixed discount on the actual fee'),
        _money('total_fee', 'actual_fee - concession_amount'),
        _money('overall_balance_fee', 'Sum of unpaid term balances'),
    ]


def _term_columns(number, status_enum):
    return [
        _money(f'term{number}_amount', f'Term {number} installment amount'),
        _money(f'term{number}_paid', f'Term {number} amount paid'),
        _money(f'term{number}_balance', f'Term {number} unpaid balance'),
        _status(f'term{number}_status', f'Term {number} derived status', status_enum),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    # Create paymentstatus enum
    payment_status_enum = sa.Enum('PENDING', 'PARTIAL', 'PAID', name='paymentstatus')
    payment_status_enum.create(op.get_bind(), checkfirst=True)

    # Enrollment read model
    op.create_table('student_enrollments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('period_id', sa.Integer(), nullable=False, comment='Academic year of the enrollment'),
        sa.Column('class_id', sa.Integer(), nullable=False),
        sa.Column('section_id', sa.Integer(), nullable=True),
        sa.Column('student_name', sa.String(length=150), nullable=False),
        sa.Column('admission_no', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('transport_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('route_id', sa.Integer(), nullable=True),
        sa.Column('slab_id', sa.Integer(), nullable=True),
        sa.Column('tuition_concession', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0.00'),
        sa.Column('transport_concession', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0.00'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_enrollments_scope', 'student_enrollments', ['branch_id', 'period_id', 'class_id', 'section_id'], unique=False)
    op.create_index(op.f('ix_student_enrollments_branch_id'), 'student_enrollments', ['branch_id'], unique=False)
    op.create_index(op.f('ix_student_enrollments_admission_no'), 'student_enrollments', ['admission_no'], unique=False)

    # Fee structure registry
    op.create_table('fee_structures',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('class_id', sa.Integer(), nullable=False),
        sa.Column('period_id', sa.Integer(), nullable=False),
        _money('book_fee', 'Book fee charged once per period'),
        _money('tuition_fee', 'Tuition fee before concession'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'class_id', 'period_id', name='uq_fee_structures_class_period'),
    )
    op.create_index(op.f('ix_fee_structures_branch_id'), 'fee_structures', ['branch_id'], unique=False)

    op.create_table('transport_fees',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('period_id', sa.Integer(), nullable=False),
        sa.Column('route_id', sa.Integer(), nullable=False),
        sa.Column('slab_id', sa.Integer(), nullable=False),
        _money('amount', 'Transport fee before concession'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'period_id', 'route_id', 'slab_id', name='uq_transport_fees_route_slab'),
    )
    op.create_index(op.f('ix_transport_fees_branch_id'), 'transport_fees', ['branch_id'], unique=False)

    # Balance records
    op.create_table('tuition_fee_balances',
        *_balance_columns(),
        _money('book_fee', 'Book fee from the class structure'),
        _money('book_paid', 'Amount paid towards the book fee'),
        _status('book_paid_status', 'Derived book fee status', payment_status_enum),
        *_term_columns(1, payment_status_enum),
        *_term_columns(2, payment_status_enum),
        *_term_columns(3, payment_status_enum),
        sa.Column('version_id', sa.Integer(), nullable=False, comment='Optimistic lock counter'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('enrollment_id', 'period_id', name='uq_tuition_balances_enrollment_period'),
    )
    op.create_index('idx_tuition_balances_scope', 'tuition_fee_balances', ['branch_id', 'period_id', 'class_id', 'section_id'], unique=False)
    op.create_index(op.f('ix_tuition_fee_balances_enrollment_id'), 'tuition_fee_balances', ['enrollment_id'], unique=False)
    op.create_index(op.f('ix_tuition_fee_balances_branch_id'), 'tuition_fee_balances', ['branch_id'], unique=False)
    op.create_index(op.f('ix_tuition_fee_balances_admission_no'), 'tuition_fee_balances', ['admission_no'], unique=False)

    op.create_table('transport_fee_balances',
        *_balance_columns(),
        sa.Column('route_id', sa.Integer(), nullable=True),
        sa.Column('slab_id', sa.Integer(), nullable=True),
        *_term_columns(1, payment_status_enum),
        *_term_columns(2, payment_status_enum),
        sa.Column('version_id', sa.Integer(), nullable=False, comment='Optimistic lock counter'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('enrollment_id', 'period_id', name='uq_transport_balances_enrollment_period'),
    )
    op.create_index('idx_transport_balances_scope', 'transport_fee_balances', ['branch_id', 'period_id', 'class_id', 'section_id'], unique=False)
    op.create_index(op.f('ix_transport_fee_balances_enrollment_id'), 'transport_fee_balances', ['enrollment_id'], unique=False)
    op.create_index(op.f('ix_transport_fee_balances_branch_id'), 'transport_fee_balances', ['branch_id'], unique=False)
    op.create_index(op.f('ix_transport_fee_balances_admission_no'), 'transport_fee_balances', ['admission_no'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    for table in ('transport_fee_balances', 'tuition_fee_balances'):
        op.drop_index(op.f(f'ix_{table}_admission_no'), table_name=table)
        op.drop_index(op.f(f'ix_{table}_branch_id'), table_name=table)
        op.drop_index(op.f(f'ix_{table}_enrollment_id'), table_name=table)
    op.drop_index('idx_transport_balances_scope', table_name='transport_fee_balances')
    op.drop_index('idx_tuition_balances_scope', table_name='tuition_fee_balances')
    op.drop_table('transport_fee_balances')
    op.drop_table('tuition_fee_balances')

    op.drop_index(op.f('ix_transport_fees_branch_id'), table_name='transport_fees')
    op.drop_table('transport_fees')
    op.drop_index(op.f('ix_fee_structures_branch_id'), table_name='fee_structures')
    op.drop_table('fee_structures')

    op.drop_index(op.f('ix_student_enrollments_admission_no'), table_name='student_enrollments')
    op.drop_index(op.f('ix_student_enrollments_branch_id'), table_name='student_enrollments')
    op.drop_index('idx_enrollments_scope', table_name='student_enrollments')
    op.drop_table('student_enrollments')

    # Drop enums
    payment_status_enum = sa.Enum('PENDING', 'PARTIAL', 'PAID', name='paymentstatus')
    payment_status_enum.drop(op.get_bind(), checkfirst=True)
