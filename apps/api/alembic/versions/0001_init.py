"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-01
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "monday_column_mappings",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("column_type", sa.String(), nullable=False),
    sa.Column("monday_column_id", sa.String(), nullable=False),
    sa.Column("board_id", sa.String(), nullable=True),
    sa.Column("workspace_id", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
  )
  op.create_index("ix_monday_column_mappings_column_type", "monday_column_mappings", ["column_type"])
  op.create_index("ix_monday_column_mappings_board_id", "monday_column_mappings", ["board_id"])
  op.execute(
    "CREATE UNIQUE INDEX ux_monday_column_mappings_scope ON monday_column_mappings "
    "(column_type, COALESCE(board_id, ''), COALESCE(workspace_id, ''))"
  )

  op.create_table(
    "monday_completed_boards",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("monday_board_id", sa.String(), nullable=False),
    sa.Column("board_name", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.UniqueConstraint("monday_board_id", name="uq_monday_completed_boards_board"),
  )

  for table in ("monday_leads_board", "flexi_design_completed_board"):
    op.create_table(
      table,
      sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
      sa.Column("monday_board_id", sa.String(), nullable=False),
      sa.Column("board_name", sa.String(), nullable=False),
      sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

  op.create_table(
    "monday_projects",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("monday_item_id", sa.String(), nullable=False),
    sa.Column("monday_board_id", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("client_name", sa.String(), nullable=True),
    sa.Column("agency", sa.String(), nullable=True),
    sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'active'")),
    sa.Column("quoted_hours", sa.Numeric(10, 2), nullable=True),
    sa.Column("quote_value", sa.Numeric(10, 2), nullable=True),
    sa.Column("completed_date", sa.Date(), nullable=True),
    sa.Column("due_date", sa.Date(), nullable=True),
    sa.Column("monday_data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.CheckConstraint("status IN ('active', 'archived', 'locked', 'lead')", name="ck_monday_projects_status"),
  )
  op.create_index("ix_monday_projects_monday_item_id", "monday_projects", ["monday_item_id"], unique=True)
  op.create_index("ix_monday_projects_monday_board_id", "monday_projects", ["monday_board_id"])

  op.create_table(
    "monday_tasks",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("monday_item_id", sa.String(), nullable=False),
    sa.Column(
      "project_id",
      postgresql.UUID(as_uuid=False),
      sa.ForeignKey("monday_projects.id", ondelete="CASCADE"),
      nullable=False,
    ),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("is_subtask", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("assigned_user_ids", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
    sa.Column("quoted_hours", sa.Numeric(10, 2), nullable=True),
    sa.Column("timeline_start", sa.Date(), nullable=True),
    sa.Column("timeline_end", sa.Date(), nullable=True),
    sa.Column("monday_data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
  )
  op.create_index("ix_monday_tasks_monday_item_id", "monday_tasks", ["monday_item_id"], unique=True)
  op.create_index("ix_monday_tasks_project_id", "monday_tasks", ["project_id"])

  op.create_table(
    "time_entries",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column(
      "project_id",
      postgresql.UUID(as_uuid=False),
      sa.ForeignKey("monday_projects.id", ondelete="RESTRICT"),
      nullable=False,
    ),
    sa.Column(
      "task_id",
      postgresql.UUID(as_uuid=False),
      sa.ForeignKey("monday_tasks.id", ondelete="RESTRICT"),
      nullable=True,
    ),
    sa.Column("date", sa.Date(), nullable=False),
    sa.Column("hours", sa.Numeric(6, 2), nullable=False),
    sa.Column("notes", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
  )
  op.create_index("ix_time_entries_user_id", "time_entries", ["user_id"])
  op.create_index("ix_time_entries_project_id", "time_entries", ["project_id"])
  op.create_index("ix_time_entries_task_id", "time_entries", ["task_id"])

  op.create_table(
    "monday_sync_settings",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("interval_minutes", sa.Integer(), nullable=False, server_default=sa.text("60")),
    sa.Column("avoid_deletion", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("next_sync_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("api_token_encrypted", sa.Text(), nullable=True),
    sa.Column("token_hint", sa.String(), nullable=False, server_default=sa.text("''")),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.CheckConstraint("interval_minutes BETWEEN 1 AND 1440", name="ck_monday_sync_settings_interval"),
  )

  op.create_table(
    "sync_runs",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("mode", sa.String(), nullable=False, server_default=sa.text("'quick'")),
    sa.Column("trigger", sa.String(), nullable=False, server_default=sa.text("'manual'")),
    sa.Column("avoid_deletion", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'running'")),
    sa.Column("projects_synced", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("archived", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("deleted", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("tasks_synced", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("tasks_deleted", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("tasks_retained", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("malformed_cells", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("log", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
    sa.Column("error_message", sa.Text(), nullable=True),
  )
  op.create_index("ix_sync_runs_started_at", "sync_runs", ["started_at"])

  op.create_table(
    "audit_events",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("actor", sa.String(), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
  )
  op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])


def downgrade() -> None:
  op.drop_index("ix_audit_events_event_type", table_name="audit_events")
  op.drop_table("audit_events")
  op.drop_index("ix_sync_runs_started_at", table_name="sync_runs")
  op.drop_table("sync_runs")
  op.drop_table("monday_sync_settings")
  op.drop_index("ix_time_entries_task_id", table_name="time_entries")
  op.drop_index("ix_time_entries_project_id", table_name="time_entries")
  op.drop_index("ix_time_entries_user_id", table_name="time_entries")
  op.drop_table("time_entries")
  op.drop_index("ix_monday_tasks_project_id", table_name="monday_tasks")
  op.drop_index("ix_monday_tasks_monday_item_id", table_name="monday_tasks")
  op.drop_table("monday_tasks")
  op.drop_index("ix_monday_projects_monday_board_id", table_name="monday_projects")
  op.drop_index("ix_monday_projects_monday_item_id", table_name="monday_projects")
  op.drop_table("monday_projects")
  op.drop_table("flexi_design_completed_board")
  op.drop_table("monday_leads_board")
  op.drop_table("monday_completed_boards")
  op.execute("DROP INDEX IF EXISTS ux_monday_column_mappings_scope")
  op.drop_index("ix_monday_column_mappings_board_id", table_name="monday_column_mappings")
  op.drop_index("ix_monday_column_mappings_column_type", table_name="monday_column_mappings")
  op.drop_table("monday_column_mappings")
