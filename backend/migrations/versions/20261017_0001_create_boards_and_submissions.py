from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "boards",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=320), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("allowed_emails", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("max_submissions_per_user", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("submission_frequency", sa.String(length=16), nullable=False, server_default="unlimited"),
        sa.Column("contest_type", sa.String(length=32), nullable=False, server_default="general"),
        sa.Column("contest_prompt", sa.Text(), nullable=True),
        sa.Column("judging_criteria", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("max_score", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("allow_image_submissions", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("max_image_size", sa.Integer(), nullable=False, server_default=str(5 * 1024 * 1024)),
        sa.Column(
            "allowed_image_types", postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'[\"image/jpeg\", \"image/png\", \"image/gif\"]'::jsonb"), nullable=False,
        ),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "submission_frequency IN ('daily','weekly','monthly','unlimited')", name="ck_boards_frequency"
        ),
        sa.CheckConstraint("max_submissions_per_user >= 0", name="ck_boards_max_submissions_nonneg"),
    )
    op.create_index("ix_boards_created_by", "boards", ["created_by"])

    op.create_table(
        "submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("board_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("boards.id"), nullable=False),
        sa.Column("owner_email", sa.String(length=320), nullable=False),
        sa.Column("kind", sa.String(length=8), nullable=False),
        sa.Column("submission_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=True),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("image_key", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("image_size", sa.Integer(), nullable=True),
        sa.Column("image_type", sa.String(length=64), nullable=True),
        sa.Column("image_metadata", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("risks", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("recommendations", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("scores", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("judge_response", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_processed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.CheckConstraint("kind IN ('text','image')", name="ck_submissions_kind"),
    )
    op.create_index("ix_submissions_board_id", "submissions", ["board_id"])
    op.create_index("ix_submissions_owner_email", "submissions", ["owner_email"])
    op.create_index(
        "ix_submissions_board_owner_date", "submissions", ["board_id", "owner_email", "submission_date"]
    )

def downgrade() -> None:
    op.drop_index("ix_submissions_board_owner_date", table_name="submissions")
    op.drop_index("ix_submissions_owner_email", table_name="submissions")
    op.drop_index("ix_submissions_board_id", table_name="submissions")
    op.drop_table("submissions")
    op.drop_index("ix_boards_created_by", table_name="boards")
    op.drop_table("boards")
