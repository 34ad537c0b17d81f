"""add retry due-selection index

Revision ID: 0002_push_retry_hot_index
Revises: 0001_push
Create Date: 2026-10-19
"""

from alembic import op


revision = "0002_push_retry_hot_index"
down_revision = "0001_push"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_index(
        "ix_push_notification_retries_status_next_retry_at",
        "push_notification_retries",
        ["status", "next_retry_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_push_notification_retries_status_next_retry_at", table_name="push_notification_retries")
