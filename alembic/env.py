from logging.config import fileConfig
from alembic import context
from sqlalchemy import engine_from_config, pool

from donations_api.config import _database_url

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

db_url = _database_url()
if db_url.startswith("postgresql://"):
    # psycopg2 is the only driver installed
    db_url = "postgresql+psycopg2://" + db_url[len("postgresql://"):]

config.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))

# migrations are raw SQL, there is no ORM metadata
target_metadata = None


def run_migrations_offline():
    url = config.get_main_option("sqlalchemy.url")
    context.configure(url=url, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
