"""Initial schema setup

Revision ID: 20261001
Revises: None
Create Date: 2026-10-01 00:00:00.000000

Creates the dulu schema and moves a version table created in public on the
first run into it. Safe to re-run: every statement is guarded.

"""
from alembic import op


# revision identifiers, used by Alembic.
revision = '20261001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute("CREATE SCHEMA IF NOT EXISTS dulu")

    op.execute("""
        DO $$
        BEGIN
            IF EXISTS (
                SELECT 1 FROM information_schema.tables
                WHERE table_schema = 'public' AND table_name = 'alembic_version'
            ) AND NOT EXISTS (
                SELECT 1 FROM information_schema.tables
                WHERE table_schema = 'dulu' AND table_name = 'alembic_version'
            ) THEN
                ALTER TABLE public.alembic_version SET SCHEMA dulu;
            END IF;
        END
        $$;
    """)


def downgrade():
    # Dropping the schema would destroy payment history; left in place on purpose
    pass
