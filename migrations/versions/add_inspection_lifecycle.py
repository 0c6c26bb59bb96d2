"""Add inspection lifecycle columns.

Revision ID: add_inspection_lifecycle
Revises: add_workflow_indexes
Create Date: 2026-03-16

"""

from alembic import op
import sqlalchemy as sa


revision = "add_inspection_lifecycle"
down_revision = "add_workflow_indexes"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("inspections", schema=None) as batch_op:
        batch_op.add_column(sa.Column("actual_start_time", sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column("actual_end_time", sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column("passed", sa.Boolean(), nullable=True))
        batch_op.add_column(sa.Column("pass_with_deficiencies", sa.Boolean(), nullable=True))
        batch_op.add_column(sa.Column("checklist_results", sa.JSON(), nullable=True))
        batch_op.add_column(sa.Column("fire_marshal_notes", sa.Text(), nullable=True))
        batch_op.add_column(sa.Column("internal_notes", sa.Text(), nullable=True))


def downgrade():
    with op.batch_alter_table("inspections", schema=None) as batch_op:
        batch_op.drop_column("internal_notes")
        batch_op.drop_column("fire_marshal_notes")
        batch_op.drop_column("checklist_results")
        batch_op.drop_column("pass_with_deficiencies")
        batch_op.drop_column("passed")
        batch_op.drop_column("actual_end_time")
        batch_op.drop_column("actual_start_time")
