"""create directory and results tables

Revision ID: a3c1e7d2b9f0
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a3c1e7d2b9f0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'classes',
        sa.Column('class_id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('level', sa.String(length=32), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'subjects',
        sa.Column('subject_id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.UniqueConstraint('code'),
    )

    op.create_table(
        'students',
        sa.Column('student_id', sa.Integer(), primary_key=True),
        sa.Column('admission_number', sa.String(length=32), nullable=False),
        sa.Column('first_name', sa.String(length=64), nullable=False),
        sa.Column('last_name', sa.String(length=64), nullable=False),
        sa.Column('class_id_fk', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.UniqueConstraint('admission_number'),
    )

    op.create_table(
        'users',
        sa.Column('user_id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=True),
        sa.Column('first_name', sa.String(length=64), nullable=True),
        sa.Column('last_name', sa.String(length=64), nullable=True),
        sa.Column('student_id_fk', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['student_id_fk'], ['students.student_id']),
        sa.UniqueConstraint('username'),
    )

    op.create_table(
        'results',
        sa.Column('result_id', sa.Integer(), primary_key=True),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('class_id_fk', sa.Integer(), nullable=False),
        sa.Column('academic_year', sa.String(length=16), nullable=False),
        sa.Column('term', sa.String(length=16), nullable=False),
        sa.Column('total_score', sa.Float(), nullable=True),
        sa.Column('average_score', sa.Float(), nullable=True),
        sa.Column('overall_grade', sa.String(length=4), nullable=True),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('total_students', sa.Integer(), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('next_term_begins', sa.Date(), nullable=True),
        sa.Column('entered_by_fk', sa.Integer(), nullable=True),
        sa.Column('entered_at', sa.DateTime(), nullable=True),
        sa.Column('published', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['student_id_fk'], ['students.student_id']),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.ForeignKeyConstraint(['entered_by_fk'], ['users.user_id']),
        sa.UniqueConstraint(
            'student_id_fk',
            'academic_year',
            'term',
            name='uq_result_student_session_term',
        ),
    )
    op.create_index('ix_results_class_scope', 'results', ['class_id_fk', 'academic_year', 'term'])

    op.create_table(
        'subject_results',
        sa.Column('subject_result_id', sa.Integer(), primary_key=True),
        sa.Column('result_id_fk', sa.Integer(), nullable=False),
        sa.Column('subject_id_fk', sa.Integer(), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('ca1', sa.Float(), nullable=False),
        sa.Column('ca2', sa.Float(), nullable=False),
        sa.Column('exam', sa.Float(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('grade_letter', sa.String(length=4), nullable=True),
        sa.Column('subject_position', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['result_id_fk'], ['results.result_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subject_id_fk'], ['subjects.subject_id']),
        sa.UniqueConstraint('result_id_fk', 'subject_id_fk', name='uq_subject_result_line'),
    )


def downgrade():
    op.drop_table('subject_results')
    op.drop_index('ix_results_class_scope', table_name='results')
    op.drop_table('results')
    op.drop_table('users')
    op.drop_table('students')
    op.drop_table('subjects')
    op.drop_table('classes')
