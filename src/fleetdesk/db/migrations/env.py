# src/fleetdesk/db/migrations/env.py
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv

load_dotenv()

from fleetdesk.db.database import engine
import fleetdesk.models  # populate Base.metadata
from fleetdesk.db.database import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Same URL as the application
config.set_main_option("sqlalchemy.url", engine.url.render_as_string(hide_password=False))

target_metadata = Base.metadata


def include_object(object, name, type_, reflected, compare_to):
    """Skip Alembic's own table; never propose drops for objects the ORM doesn't know."""
    if type_ == "table" and name == "alembic_version":
        return False
    if reflected and compare_to is None:
        return False
    return True


def run_migrations_offline():
    context.configure(
        url=str(engine.url),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            include_object=include_object,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
