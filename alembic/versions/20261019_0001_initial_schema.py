"""initial staffing schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


directory_role = postgresql.ENUM(
    "admin", "manager", "team_leader", "team_member", name="directory_role", create_type=False
)
assignment_role = postgresql.ENUM("member", "leader", name="assignment_role", create_type=False)


def upgrade() -> None:
    directory_role.create(op.get_bind(), checkfirst=True)
    assignment_role.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "people",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("role", directory_role, nullable=False, server_default="team_member"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("allocation_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_people_active_role", "people", ["is_active", "role"])

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "phases",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_phases_date_range"),
    )
    op.create_index("ix_phases_project_id", "phases", ["project_id"])

    op.create_table(
        "assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("phase_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("phases.id"), nullable=False),
        sa.Column("person_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("people.id"), nullable=False),
        sa.Column("role", assignment_role, nullable=False, server_default="member"),
        sa.Column("working_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "working_percentage >= 0 AND working_percentage <= 100",
            name="ck_assignments_working_percentage_range",
        ),
        sa.CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_assignments_date_range"),
        sa.CheckConstraint("version >= 1", name="ck_assignments_version_positive"),
        sa.UniqueConstraint("phase_id", "person_id", name="uq_assignments_phase_person"),
    )
    op.create_index("ix_assignments_person_active", "assignments", ["person_id", "is_active"])
    op.create_index("ix_assignments_phase_id", "assignments", ["phase_id"])


def downgrade() -> None:
    op.drop_index("ix_assignments_phase_id", table_name="assignments")
    op.drop_index("ix_assignments_person_active", table_name="assignments")
    op.drop_table("assignments")

    op.drop_index("ix_phases_project_id", table_name="phases")
    op.drop_table("phases")

    op.drop_table("projects")

    op.drop_index("ix_people_active_role", table_name="people")
    op.drop_table("people")

    assignment_role.drop(op.get_bind(), checkfirst=True)
    directory_role.drop(op.get_bind(), checkfirst=True)
