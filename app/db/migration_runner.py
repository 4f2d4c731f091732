"""
Migration Runner - Runs Alembic migrations at application startup.

Applied from the lifespan when RUN_MIGRATIONS is enabled; otherwise the
schema is managed out of band with `alembic upgrade head`.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import Engine, create_engine
from structlog import get_logger

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

logger = get_logger(__name__)

# Path to alembic.ini relative to project root
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


@dataclass(frozen=True)
class MigrationStatus:
    """Current vs head revision."""

    current_revision: str | None
    head_revision: str | None

    @property
    def pending(self) -> bool:
        return self.current_revision != self.head_revision


def get_sync_database_url(url: str | None = None) -> str:
    """Get synchronous database URL for migrations.

    Alembic's command API uses synchronous connections, so asyncpg URLs
    are converted to psycopg2 URLs.
    """
    url = url or os.getenv("DATABASE_URL", "")
    return url.replace("+asyncpg", "+psycopg2")


def _get_current_revision(engine: Engine) -> str | None:
    with engine.connect() as conn:
        context = MigrationContext.configure(conn)
        return context.get_current_revision()


def _get_head_revision(alembic_cfg: Config) -> str | None:
    script = ScriptDirectory.from_config(alembic_cfg)
    return script.get_current_head()


def _alembic_config(sync_url: str) -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("sqlalchemy.url", sync_url.replace("%", "%%"))
    return alembic_cfg


def run_migrations(database_url: str | None = None) -> None:
    """
    Run pending Alembic migrations.

    Only runs migrations if there are pending ones.
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    sync_url = get_sync_database_url(database_url)
    try:
        alembic_cfg = _alembic_config(sync_url)
        engine = create_engine(sync_url)

        try:
            current = _get_current_revision(engine)
            head = _get_head_revision(alembic_cfg)

            if current == head:
                logger.info("database_schema_up_to_date", revision=current)
                return

            logger.info("database_migration_starting", from_revision=current, to_revision=head)
            command.upgrade(alembic_cfg, "head")
            logger.info(
                "database_migration_complete", revision=_get_current_revision(engine)
            )

        finally:
            engine.dispose()

    except Exception as e:
        logger.exception("database_migration_failed")
        raise RuntimeError(f"Database migration failed: {e}") from e


def check_migrations_status(database_url: str | None = None) -> MigrationStatus:
    """Check migration status without applying them."""
    sync_url = get_sync_database_url(database_url)
    alembic_cfg = _alembic_config(sync_url)
    engine = create_engine(sync_url)
    try:
        return MigrationStatus(
            current_revision=_get_current_revision(engine),
            head_revision=_get_head_revision(alembic_cfg),
        )
    finally:
        engine.dispose()
