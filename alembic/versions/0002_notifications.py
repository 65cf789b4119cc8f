"""notifications

Revision ID: 0002_notifications
Revises: 0001_init
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_notifications"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "notifications",
    sa.Column("id", sa.String(length=36), primary_key=True),
    sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("event_type", sa.String(), nullable=True),
    sa.Column("entity_type", sa.String(), nullable=True),
    sa.Column("entity_id", sa.String(length=36), nullable=True),
    sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
  op.drop_index("ix_notifications_user_id", table_name="notifications")
  op.drop_table("notifications")
