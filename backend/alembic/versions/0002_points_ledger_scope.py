"""scope points ledger rows by series and index them for leaderboards.

Each step inspects the live table first, so the revision also applies cleanly
to databases whose ledger was already patched by ``init_db``.
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_points_ledger_scope"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def _ledger_columns() -> set[str]:
    inspector = sa.inspect(op.get_bind())
    return {column["name"] for column in inspector.get_columns("points_ledger")}


def _ledger_indexes() -> set[str]:
    inspector = sa.inspect(op.get_bind())
    return {index["name"] for index in inspector.get_indexes("points_ledger")}


def upgrade() -> None:
    columns = _ledger_columns()
    if "series_id" not in columns:
        op.add_column("points_ledger", sa.Column("series_id", sa.Integer(), nullable=True))
    if "match_id" not in columns:
        op.add_column("points_ledger", sa.Column("match_id", sa.Integer(), nullable=True))

    op.execute(
        sa.text(
            """
            UPDATE points_ledger
               SET series_id = (
                 SELECT m.series_id FROM matches m WHERE m.id = points_ledger.match_id
               )
             WHERE (series_id IS NULL OR series_id = '')
               AND match_id IS NOT NULL
               AND EXISTS (SELECT 1 FROM matches m WHERE m.id = points_ledger.match_id)
            """
        )
    )

    indexes = _ledger_indexes()
    if "idx_points_ledger_series_user" not in indexes:
        op.create_index("idx_points_ledger_series_user", "points_ledger", ["series_id", "user_id"], unique=False)
    if "idx_points_ledger_match" not in indexes:
        op.create_index("idx_points_ledger_match", "points_ledger", ["match_id"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_points_ledger_match", table_name="points_ledger")
    op.drop_index("idx_points_ledger_series_user", table_name="points_ledger")
    with op.batch_alter_table("points_ledger") as batch_op:
        batch_op.drop_column("series_id")
