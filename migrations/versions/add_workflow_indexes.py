"""Add indexes for frequently filtered workflow columns.

Revision ID: add_workflow_indexes
Revises: 5c1e7a9d0b21
Create Date: 2026-03-09

"""

from alembic import op
import sqlalchemy as sa


revision = "add_workflow_indexes"
down_revision = "5c1e7a9d0b21"
branch_labels = None
depends_on = None


def upgrade():
    # Leads - office list filters by status and source
    op.create_index("ix_leads_status", "leads", ["status"])
    op.create_index("ix_leads_email", "leads", ["email"])

    # Quotes - list filters by status
    op.create_index("ix_quotes_status", "quotes", ["status"])

    # Jobs - list filters + role-scoped technician views
    op.create_index("ix_jobs_status", "jobs", ["status"])
    op.create_index("ix_jobs_scheduled_date", "jobs", ["scheduled_date"])
    op.create_index("ix_jobs_customer_id", "jobs", ["customer_id"])
    op.create_index("ix_job_assignments_user_id", "job_assignments", ["user_id"])

    # Job events - activity log is read newest-first per job
    op.create_index(
        "ix_job_events_job_created", "job_events", ["job_id", "created_at"]
    )

    # Invoices / payments
    op.create_index("ix_invoices_status", "invoices", ["status"])
    op.create_index("ix_invoices_customer_id", "invoices", ["customer_id"])
    op.create_index("ix_payments_invoice_id", "payments", ["invoice_id"])
    op.create_index("ix_payments_quote_id", "payments", ["quote_id"])

    # Deficiencies - generate-quote filters by inspection
    op.create_index("ix_deficiencies_inspection_id", "deficiencies", ["inspection_id"])

    # Outbox - send-outbox scans pending rows oldest-first
    op.create_index(
        "ix_outbox_emails_status_created", "outbox_emails", ["status", "created_at"]
    )

    # Stripe events - queried by processed_at
    op.create_index("ix_stripe_events_processed_at", "stripe_events", ["processed_at"])


def downgrade():
    op.drop_index("ix_stripe_events_processed_at", table_name="stripe_events")
    op.drop_index("ix_outbox_emails_status_created", table_name="outbox_emails")
    op.drop_index("ix_deficiencies_inspection_id", table_name="deficiencies")
    op.drop_index("ix_payments_quote_id", table_name="payments")
    op.drop_index("ix_payments_invoice_id", table_name="payments")
    op.drop_index("ix_invoices_customer_id", table_name="invoices")
    op.drop_index("ix_invoices_status", table_name="invoices")
    op.drop_index("ix_job_events_job_created", table_name="job_events")
    op.drop_index("ix_job_assignments_user_id", table_name="job_assignments")
    op.drop_index("ix_jobs_customer_id", table_name="jobs")
    op.drop_index("ix_jobs_scheduled_date", table_name="jobs")
    op.drop_index("ix_jobs_status", table_name="jobs")
    op.drop_index("ix_quotes_status", table_name="quotes")
    op.drop_index("ix_leads_email", table_name="leads")
    op.drop_index("ix_leads_status", table_name="leads")
