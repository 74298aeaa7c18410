"""create_submissions_and_mailing_list

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2026-10-19 10:12:41.318204

"""

from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2d7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

submission_status = sa.Enum("PENDING", "APPROVED", "REJECTED", name="submissionstatus")
relocation_status = sa.Enum(
    "NOT_REQUESTED", "PENDING", "DONE", "FAILED", "NOT_APPLICABLE", name="relocationstatus"
)
mailing_list_source = sa.Enum("USER_INFO", "SUBMISSION", name="mailinglistsource")


def upgrade() -> None:
    """Create submissions and mailing_list_entries tables."""
    op.create_table(
        "submissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("last_name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("email", sqlmodel.sql.sqltypes.AutoString(length=320), nullable=False),
        sa.Column("location", sqlmodel.sql.sqltypes.AutoString(length=500), nullable=True),
        sa.Column("description", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("is_own_recording", sa.Boolean(), nullable=False),
        sa.Column("recorder_name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column("want_credit", sa.Boolean(), nullable=False),
        sa.Column("credit_platform", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=True),
        sa.Column("credit_username", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column("payout_email", sqlmodel.sql.sqltypes.AutoString(length=320), nullable=True),
        sa.Column("agree_terms", sa.Boolean(), nullable=False),
        sa.Column("no_other_submission", sa.Boolean(), nullable=False),
        sa.Column("keep_in_touch", sa.Boolean(), nullable=False),
        sa.Column("namespace_path", sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=True),
        sa.Column("media_locator", sqlmodel.sql.sqltypes.AutoString(length=512), nullable=True),
        sa.Column("media_url", sqlmodel.sql.sqltypes.AutoString(length=2048), nullable=True),
        sa.Column("backup_file_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column(
            "backup_video_path", sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=True
        ),
        sa.Column("signature_path", sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=True),
        sa.Column(
            "signature_bucket_path", sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=True
        ),
        sa.Column("signature_url", sqlmodel.sql.sqltypes.AutoString(length=2048), nullable=True),
        sa.Column("status", submission_status, nullable=False),
        sa.Column("admin_notes", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("relocation_status", relocation_status, nullable=False),
        sa.Column(
            "approved_video_path", sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=True
        ),
        sa.Column(
            "relocation_error", sqlmodel.sql.sqltypes.AutoString(length=1000), nullable=True
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_submissions_email"), "submissions", ["email"], unique=False)
    op.create_index(op.f("ix_submissions_status"), "submissions", ["status"], unique=False)
    op.create_index(
        op.f("ix_submissions_submitted_at"), "submissions", ["submitted_at"], unique=False
    )

    op.create_table(
        "mailing_list_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("last_name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("email", sqlmodel.sql.sqltypes.AutoString(length=320), nullable=False),
        sa.Column("source", mailing_list_source, nullable=False),
        sa.Column("keep_in_touch", sa.Boolean(), nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_mailing_list_entries_email"), "mailing_list_entries", ["email"], unique=False
    )
    # Case-insensitive uniqueness: "A@x.com" and "a@x.com" are the same subscriber
    op.create_index(
        "uq_mailing_list_entries_email_lower",
        "mailing_list_entries",
        [sa.text("lower(email)")],
        unique=True,
    )


def downgrade() -> None:
    """Drop submissions and mailing_list_entries tables."""
    op.drop_index("uq_mailing_list_entries_email_lower", table_name="mailing_list_entries")
    op.drop_index(op.f("ix_mailing_list_entries_email"), table_name="mailing_list_entries")
    op.drop_table("mailing_list_entries")

    op.drop_index(op.f("ix_submissions_submitted_at"), table_name="submissions")
    op.drop_index(op.f("ix_submissions_status"), table_name="submissions")
    op.drop_index(op.f("ix_submissions_email"), table_name="submissions")
    op.drop_table("submissions")

    mailing_list_source.drop(op.get_bind(), checkfirst=True)
    relocation_status.drop(op.get_bind(), checkfirst=True)
    submission_status.drop(op.get_bind(), checkfirst=True)
