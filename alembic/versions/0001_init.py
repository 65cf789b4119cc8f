"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
  return sa.Column("id", sa.String(length=36), primary_key=True)


def _timestamps() -> list[sa.Column]:
  return [
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  ]


def upgrade() -> None:
  op.create_table(
    "users",
    _id(),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("avatar_url", sa.String(), nullable=True),
    *_timestamps(),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "organizations",
    _id(),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("slug", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

  op.create_table(
    "organization_members",
    _id(),
    sa.Column("organization_id", sa.String(length=36), sa.ForeignKey("organizations.id"), nullable=False),
    sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("role", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("organization_id", "user_id", name="ux_org_member_org_user"),
  )
  op.create_index("ix_organization_members_organization_id", "organization_members", ["organization_id"])
  op.create_index("ix_organization_members_user_id", "organization_members", ["user_id"])

  op.create_table(
    "projects",
    _id(),
    sa.Column("organization_id", sa.String(length=36), sa.ForeignKey("organizations.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("color", sa.String(), nullable=True),
    *_timestamps(),
  )
  op.create_index("ix_projects_organization_id", "projects", ["organization_id"])

  op.create_table(
    "boards",
    _id(),
    sa.Column("project_id", sa.String(length=36), sa.ForeignKey("projects.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    *_timestamps(),
  )
  op.create_index("ix_boards_project_id", "boards", ["project_id"])

  op.create_table(
    "columns",
    _id(),
    sa.Column("board_id", sa.String(length=36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("color", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    *_timestamps(),
  )
  op.create_index("ix_columns_board_id", "columns", ["board_id"])

  op.create_table(
    "tasks",
    _id(),
    sa.Column("column_id", sa.String(length=36), sa.ForeignKey("columns.id"), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("priority", sa.String(), nullable=False),
    sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("assignee_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("creator_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("parent_id", sa.String(length=36), sa.ForeignKey("tasks.id"), nullable=True),
    sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    *_timestamps(),
  )
  op.create_index("ix_tasks_column_id", "tasks", ["column_id"])
  op.create_index("ix_tasks_parent_id", "tasks", ["parent_id"])

  op.create_table(
    "tags",
    _id(),
    sa.Column("organization_id", sa.String(length=36), sa.ForeignKey("organizations.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("color", sa.String(), nullable=False),
    sa.UniqueConstraint("organization_id", "name", name="ux_tags_org_name"),
  )
  op.create_index("ix_tags_organization_id", "tags", ["organization_id"])

  op.create_table(
    "task_tags",
    _id(),
    sa.Column("task_id", sa.String(length=36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("tag_id", sa.String(length=36), sa.ForeignKey("tags.id"), nullable=False),
    sa.UniqueConstraint("task_id", "tag_id", name="ux_task_tags_task_tag"),
  )
  op.create_index("ix_task_tags_task_id", "task_tags", ["task_id"])
  op.create_index("ix_task_tags_tag_id", "task_tags", ["tag_id"])

  op.create_table(
    "comments",
    _id(),
    sa.Column("task_id", sa.String(length=36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("author_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("content", sa.Text(), nullable=False),
    *_timestamps(),
  )
  op.create_index("ix_comments_task_id", "comments", ["task_id"])

  op.create_table(
    "attachments",
    _id(),
    sa.Column("task_id", sa.String(length=36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("uploader_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("filename", sa.String(), nullable=False),
    sa.Column("mime", sa.String(), nullable=False),
    sa.Column("size_bytes", sa.Integer(), nullable=False),
    sa.Column("url", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_attachments_task_id", "attachments", ["task_id"])

  op.create_table(
    "activities",
    _id(),
    sa.Column("organization_id", sa.String(length=36), nullable=True),
    sa.Column("board_id", sa.String(length=36), nullable=True),
    sa.Column("task_id", sa.String(length=36), nullable=True),
    sa.Column("actor_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(length=36), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_activities_organization_id", "activities", ["organization_id"])
  op.create_index("ix_activities_board_id", "activities", ["board_id"])
  op.create_index("ix_activities_task_id", "activities", ["task_id"])


def downgrade() -> None:
  for table in [
    "activities",
    "attachments",
    "comments",
    "task_tags",
    "tags",
    "tasks",
    "columns",
    "boards",
    "projects",
    "organization_members",
    "organizations",
    "users",
  ]:
    op.drop_table(table)
