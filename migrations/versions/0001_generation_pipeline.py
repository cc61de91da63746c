"""Generation pipeline schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Generation jobs table
    op.create_table(
        "generation_jobs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("product_id", sa.UUID(), nullable=False),
        sa.Column("reference_set_id", sa.UUID(), nullable=True),
        sa.Column("job_type", sa.String(20), nullable=False, server_default="image"),
        sa.Column("final_prompt", sa.Text(), nullable=False),
        sa.Column("variation_count", sa.Integer(), nullable=False),
        sa.Column("resolution", sa.String(20), nullable=True),
        sa.Column("aspect_ratio", sa.String(20), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("generation_model", sa.String(100), nullable=True),
        sa.Column("generate_audio", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("completed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("claim_token", sa.String(64), nullable=True),
        sa.Column("claimed_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "completed_count + failed_count <= variation_count",
            name="ck_generation_jobs_accounted",
        ),
    )
    op.create_index("ix_generation_jobs_product_id", "generation_jobs", ["product_id"])
    op.create_index("ix_generation_jobs_status", "generation_jobs", ["status"])
    op.create_index(
        "ix_generation_jobs_status_created", "generation_jobs", ["status", "created_at"]
    )

    # Generated units table
    op.create_table(
        "generated_units",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("job_id", sa.UUID(), nullable=False),
        sa.Column("variation_index", sa.Integer(), nullable=False),
        sa.Column("media_type", sa.String(20), nullable=False, server_default="image"),
        sa.Column("storage_path", sa.String(1024), nullable=False),
        sa.Column("thumb_storage_path", sa.String(1024), nullable=True),
        sa.Column("preview_storage_path", sa.String(1024), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("approval_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["job_id"], ["generation_jobs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("job_id", "variation_index", name="uq_generated_unit_variation"),
    )
    op.create_index("ix_generated_units_job_id", "generated_units", ["job_id"])
    op.create_index("ix_generated_units_approval_status", "generated_units", ["approval_status"])

    # Reference images table
    op.create_table(
        "reference_images",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("reference_set_id", sa.UUID(), nullable=False),
        sa.Column("storage_path", sa.String(1024), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_reference_images_reference_set_id", "reference_images", ["reference_set_id"]
    )
    op.create_index("ix_reference_images_file_size", "reference_images", ["file_size"])


def downgrade() -> None:
    op.drop_table("reference_images")
    op.drop_table("generated_units")
    op.drop_table("generation_jobs")
