from logging.config import fileConfig
from alembic import context
import logging
from dotenv import load_dotenv
import os
import sys
from sqlalchemy import create_engine
from sqlalchemy import pool
import sqlalchemy as sa

default_dotenv_path = '../.env'
dotenv_path = default_dotenv_path

default_db_owner: str = "postgres"
default_db_owner_password: str = ""
default_db_host: str = "localhost"
default_db_port: str = "5432"
default_db_name: str = "postgres"
default_db_sslmode: str = "require"

db_owner = default_db_owner
db_owner_password = default_db_owner_password
db_host = default_db_host
db_port = default_db_port
db_name = default_db_name
db_sslmode = default_db_sslmode

SCHEMA = "dulu"

# Use Alembic's x-arguments
for x_arg in context.get_x_argument(as_dictionary=False):
    print(f"x_arg = [{x_arg}]")
    if x_arg.lower().strip().startswith('db-owner='):
        db_owner = x_arg.split('=', 1)[1].strip()
    elif x_arg.lower().strip().startswith('db-owner-password='):
        db_owner_password = x_arg.split('=', 1)[1].strip()
    elif x_arg.lower().strip().startswith('db-host='):
        db_host = x_arg.split('=', 1)[1].strip()
    elif x_arg.lower().strip().startswith('db-port='):
        db_port = x_arg.split('=', 1)[1].strip()
    elif x_arg.lower().strip().startswith('db-name='):
        db_name = x_arg.split('=', 1)[1].strip()
    elif x_arg.lower().strip().startswith('db-sslmode='):
        db_sslmode = x_arg.split('=', 1)[1].strip()
    elif x_arg.lower().strip().startswith('dotenv-path='):
        dotenv_path = x_arg.split('=', 1)[1].strip()
    else:
        print(f"ERROR: Unrecognized Alembic -x argument: '{x_arg}' Valid arguments are: db-owner, db-owner-password, db-host, db-port, db-name, db-sslmode, dotenv-path", file=sys.stderr)
        sys.exit(1)

load_dotenv(dotenv_path=dotenv_path)

# Project root on the path so the models can be imported for autogenerate
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from database import Base  # noqa: E402
import models  # noqa: E402,F401

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

log = logging.getLogger('alembic.env')


def build_db_url() -> str:
    return f"postgresql+psycopg2://{db_owner}:{db_owner_password}@{db_host}:{db_port}/{db_name}"


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Emits SQL to the script output without connecting.
    """
    db_url = build_db_url()
    print(f"[alembic] offline db_url = [postgresql://{db_owner}:***@{db_host}:{db_port}/{db_name}]")
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_schemas=True,
        version_table_schema=SCHEMA,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = create_engine(
        build_db_url(),
        connect_args={"sslmode": db_sslmode},
        poolclass=pool.NullPool
    )

    # Check the schema with a separate connection to avoid transaction conflicts under pgbouncer
    with connectable.connect() as check_conn:
        schema_check = check_conn.execute(sa.text("""
            SELECT EXISTS(
                SELECT 1 FROM information_schema.schemata
                WHERE schema_name = :schema
            )
        """), {"schema": SCHEMA}).scalar()
        check_conn.commit()

    # The first migration creates the schema; until then the version table lives in public
    version_table_schema = SCHEMA if schema_check else None

    log.info(f"Schema check result: {schema_check}, using version_table_schema: {version_table_schema}")
    log.info(f"Connection URL: postgresql://{db_owner}:***@{db_host}:{db_port}/{db_name}")

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_schemas=True,
            version_table_schema=version_table_schema,
        )

        log.info("Starting migrations...")
        try:
            with context.begin_transaction():
                connection.execute(sa.text(f"SET LOCAL search_path TO {SCHEMA}, public"))
                context.run_migrations()
            log.info("Migrations completed successfully")
        except Exception as e:
            log.error(f"Migration failed with error: {e}", exc_info=True)
            raise


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
