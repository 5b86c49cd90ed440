"""
Series + episodes tables.

- `series`: catalog parent.
- `episodes`: provisional/committed lifecycle, JSON language tracks,
  unique `(series_id, episode_number)`.
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic.
revision = "20260301_01_series_and_episodes"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "series",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_series"),
    )

    op.create_table(
        "episodes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("series_id", sa.Uuid(), nullable=False),
        sa.Column("episode_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'provisional'")),
        sa.Column("tracks", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_episodes"),
        sa.ForeignKeyConstraint(
            ["series_id"], ["series.id"], name="fk_episodes_series_id_series", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("series_id", "episode_number", name="uq_episodes_series_number"),
        sa.CheckConstraint("episode_number >= 1", name="ck_episodes_episode_number_positive"),
        sa.CheckConstraint("status IN ('provisional', 'committed')", name="ck_episodes_status_valid"),
    )
    op.create_index("ix_episodes_series_id", "episodes", ["series_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_episodes_series_id", table_name="episodes")
    op.drop_table("episodes")
    op.drop_table("series")
