"""Create ai_settings table

Revision ID: 001
Revises: None
Create Date: 2025-01-15 00:00:00.000000+00:00

What:  Creates the `ai_settings` table, one row per user.
How:   Key maps are JSON objects keyed by provider discriminant.

Rollback: downgrade() drops the table, including all stored API keys.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "ai_settings",
        sa.Column("user_id", sa.String(128), nullable=False, comment="Owner of these settings"),
        sa.Column("selected_provider", sa.String(32), nullable=True),
        sa.Column("selected_model_id", sa.String(128), nullable=True),
        sa.Column("api_keys", sa.JSON(), nullable=True, comment="Text provider → API key"),
        sa.Column("image_use_text_settings", sa.Boolean(), nullable=True),
        sa.Column("image_provider", sa.String(32), nullable=True),
        sa.Column("image_api_keys", sa.JSON(), nullable=True, comment="Image provider → API key"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="Last write (UTC)",
        ),
        sa.PrimaryKeyConstraint("user_id"),
    )


def downgrade() -> None:
    op.drop_table("ai_settings")
