"""orchestration_core

Creates the orchestration engine tables:
  - directory_users                  — candidate assignees with capacity / skill signals
  - orchestration_tasks              — remediation / evidence / review work items
  - orchestration_task_dependencies  — blocks / triggers / informs edges
  - orchestration_task_activities    — assignment, status and progress log
  - orchestration_timelines          — compliance programs with derived health
  - orchestration_milestones         — dated checkpoints within a timeline

Tables created conditionally (IF NOT EXISTS semantics) so databases that
already received them via db.create_all() in development upgrade cleanly.

Revision ID: 7c1e4a9d2b30
Revises:
Create Date: 2026-10-19 09:12:44.318204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7c1e4a9d2b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Directory ─────────────────────────────────────────────────────────
    if "directory_users" not in existing:
        op.create_table(
            "directory_users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=True),
            sa.Column("last_name", sa.String(length=100), nullable=True),
            sa.Column("role", sa.String(length=50), nullable=True),
            sa.Column("skill_tags", sa.JSON(), nullable=True,
                      comment="Framework / control family tags"),
            sa.Column("weekly_capacity_hours", sa.Float(), nullable=False, server_default="40"),
            sa.Column("availability", sa.Float(), nullable=False, server_default="90",
                      comment="Share of the coming week the person is free (0–100)"),
            sa.Column("completion_rate", sa.Float(), nullable=True),
            sa.Column("quality_score", sa.Float(), nullable=True, comment="0–5 scale"),
            sa.Column("on_time_rate", sa.Float(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("organization_id", "email", name="uq_directory_user_org_email"),
        )
        op.create_index("ix_directory_users_organization_id", "directory_users", ["organization_id"])

    # ── Tasks ─────────────────────────────────────────────────────────────
    if "orchestration_tasks" not in existing:
        op.create_table(
            "orchestration_tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("task_type", sa.String(length=20), nullable=False,
                      server_default="remediation", comment="evidence | remediation | review"),
            sa.Column("framework", sa.String(length=100), nullable=True),
            sa.Column("control_id", sa.String(length=50), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=False,
                      server_default="medium", comment="critical | high | medium | low"),
            sa.Column("estimated_hours", sa.Float(), nullable=True),
            sa.Column("assigned_to", sa.Integer(), nullable=True, comment="FK → directory_users"),
            sa.Column("assigned_by", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft",
                      comment="draft | assigned | in_progress | review | completed | blocked"),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("tags", sa.JSON(), nullable=True),
            sa.Column("is_critical", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("bulk_operation_id", sa.String(length=40), nullable=True,
                      comment="Set when the task was produced by a bulk generation run"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["assigned_to"], ["directory_users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('draft','assigned','in_progress','review','completed','blocked')",
                name="ck_orch_task_status",
            ),
            sa.CheckConstraint("priority IN ('critical','high','medium','low')", name="ck_orch_task_priority"),
            sa.CheckConstraint("task_type IN ('evidence','remediation','review')", name="ck_orch_task_type"),
            sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_orch_task_progress"),
        )
        op.create_index("ix_orchestration_tasks_organization_id", "orchestration_tasks", ["organization_id"])
        op.create_index("ix_orchestration_tasks_framework", "orchestration_tasks", ["framework"])
        op.create_index("ix_orchestration_tasks_assigned_to", "orchestration_tasks", ["assigned_to"])
        op.create_index("ix_orchestration_tasks_bulk_operation_id", "orchestration_tasks", ["bulk_operation_id"])

    if "orchestration_task_dependencies" not in existing:
        op.create_table(
            "orchestration_task_dependencies",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("dependent_task_id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False, comment="The task being depended on"),
            sa.Column("dependency_type", sa.String(length=20), nullable=False,
                      server_default="blocks", comment="blocks | triggers | informs"),
            sa.Column("status", sa.String(length=20), nullable=False,
                      server_default="active", comment="active | resolved"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["dependent_task_id"], ["orchestration_tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["task_id"], ["orchestration_tasks.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("dependent_task_id", "task_id", name="uq_orch_task_dep"),
            sa.CheckConstraint("dependent_task_id != task_id", name="ck_orch_dep_no_self_loop"),
            sa.CheckConstraint("dependency_type IN ('blocks','triggers','informs')", name="ck_orch_dep_type"),
        )
        op.create_index(
            "ix_orchestration_task_dependencies_dependent_task_id",
            "orchestration_task_dependencies", ["dependent_task_id"],
        )
        op.create_index(
            "ix_orchestration_task_dependencies_task_id",
            "orchestration_task_dependencies", ["task_id"],
        )

    if "orchestration_task_activities" not in existing:
        op.create_table(
            "orchestration_task_activities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("actor", sa.String(length=100), nullable=True),
            sa.Column("update_type", sa.String(length=30), nullable=False,
                      comment="created | assignment | status_change | progress | dependency"),
            sa.Column("old_value", sa.String(length=200), nullable=True),
            sa.Column("new_value", sa.String(length=200), nullable=True),
            sa.Column("content", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["task_id"], ["orchestration_tasks.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_orchestration_task_activities_task_id",
            "orchestration_task_activities", ["task_id"],
        )

    # ── Timelines ─────────────────────────────────────────────────────────
    if "orchestration_timelines" not in existing:
        op.create_table(
            "orchestration_timelines",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("framework", sa.String(length=100), nullable=False, server_default="NIST CSF"),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("target_completion", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("current_progress", sa.Float(), nullable=False, server_default="0"),
            sa.Column("health_score", sa.Float(), nullable=False, server_default="100"),
            sa.Column("critical_path", sa.JSON(), nullable=True, comment="Task ids"),
            sa.Column("analytics", sa.JSON(), nullable=True),
            sa.Column("resource_allocation", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('draft','active','paused','completed','cancelled')",
                name="ck_orch_timeline_status",
            ),
            sa.CheckConstraint("start_date < target_completion", name="ck_orch_timeline_range"),
        )
        op.create_index(
            "ix_orchestration_timelines_organization_id",
            "orchestration_timelines", ["organization_id"],
        )

    if "orchestration_milestones" not in existing:
        op.create_table(
            "orchestration_milestones",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("timeline_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("milestone_type", sa.String(length=20), nullable=False,
                      server_default="framework", comment="framework | business | risk"),
            sa.Column("target_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending",
                      comment="pending | in_progress | completed | delayed | cancelled"),
            sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("depends_on_task_ids", sa.JSON(), nullable=True),
            sa.Column("depends_on_milestone_ids", sa.JSON(), nullable=True),
            sa.Column("success_criteria", sa.Text(), nullable=True),
            sa.Column("attendees", sa.JSON(), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["timeline_id"], ["orchestration_timelines.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('pending','in_progress','completed','delayed','cancelled')",
                name="ck_orch_milestone_status",
            ),
            sa.CheckConstraint(
                "milestone_type IN ('framework','business','risk')",
                name="ck_orch_milestone_type",
            ),
        )
        op.create_index(
            "ix_orchestration_milestones_timeline_id",
            "orchestration_milestones", ["timeline_id"],
        )


def downgrade():
    for table in (
        "orchestration_milestones",
        "orchestration_timelines",
        "orchestration_task_activities",
        "orchestration_task_dependencies",
        "orchestration_tasks",
        "directory_users",
    ):
        op.drop_table(table)
