"""Create professional_profiles, projects and applications tables

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Initial schema for the application lifecycle engine.
How:   Portable column types (sa.Uuid, TIMESTAMP WITH TIME ZONE, NUMERIC);
       metadata is JSONB on PostgreSQL and JSON elsewhere.

Rollback: downgrade() drops all three tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "professional_profiles",
        sa.Column("professional_id", sa.Uuid(), nullable=False),
        sa.Column("experience_years", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "average_rating",
            sa.Numeric(3, 2),
            nullable=True,
            comment="Mean review rating 1 to 5; NULL until the first review",
        ),
        sa.Column(
            "completion_rate",
            sa.Numeric(5, 2),
            nullable=True,
            comment="Percentage of accepted projects completed",
        ),
        sa.PrimaryKeyConstraint("professional_id"),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("client_id", sa.Uuid(), nullable=False, comment="Owner of the project"),
        sa.Column("title", sa.String(200), nullable=False, server_default=sa.text("''")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("budget_max", sa.Numeric(10, 2), nullable=True),
        sa.Column("assigned_professional_id", sa.Uuid(), nullable=True),
        sa.Column("final_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("application_deadline", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("application_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_projects_client_id", "projects", ["client_id"])
    op.create_index(
        "idx_projects_assigned_professional_id", "projects", ["assigned_professional_id"]
    )

    op.create_table(
        "applications",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("professional_id", sa.Uuid(), nullable=False, comment="Author of the bid"),
        sa.Column("project_id", sa.Uuid(), nullable=False, comment="Project the bid targets"),
        sa.Column("cover_letter", sa.Text(), nullable=False, comment="50 to 2000 characters"),
        sa.Column("proposed_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("proposed_timeline", sa.Integer(), nullable=True, comment="Days"),
        sa.Column("availability_start", sa.Date(), nullable=True),
        sa.Column("relevant_experience", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'pending'"),
            comment="pending, under_review, accepted, rejected, withdrawn, expired",
        ),
        sa.Column(
            "priority_score",
            sa.Numeric(5, 2),
            nullable=False,
            server_default=sa.text("50"),
        ),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.Uuid(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("client_feedback", sa.Text(), nullable=True),
        sa.Column(
            "metadata",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "professional_id", "project_id", name="uq_applications_professional_project"
        ),
    )
    op.create_index(
        "idx_applications_project_status", "applications", ["project_id", "status"]
    )
    op.create_index("idx_applications_professional_id", "applications", ["professional_id"])
    # Listing order is priority_score DESC
    op.create_index(
        "idx_applications_priority_score",
        "applications",
        [sa.text("priority_score DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_applications_priority_score", table_name="applications")
    op.drop_index("idx_applications_professional_id", table_name="applications")
    op.drop_index("idx_applications_project_status", table_name="applications")
    op.drop_table("applications")
    op.drop_index("idx_projects_assigned_professional_id", table_name="projects")
    op.drop_index("idx_projects_client_id", table_name="projects")
    op.drop_table("projects")
    op.drop_table("professional_profiles")
