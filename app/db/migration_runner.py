"""
Migration Runner - Runs Alembic migrations at application startup.

Enabled with RUN_MIGRATIONS_ON_STARTUP; otherwise run `alembic upgrade head`
from the deployment pipeline.
"""

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import Engine, create_engine
from structlog import get_logger

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from app.config import settings

logger = get_logger(__name__)

# Path to alembic.ini relative to project root
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


@dataclass(frozen=True)
class MigrationStatus:
    """Schema revision state."""

    current_revision: str | None
    head_revision: str

    @property
    def pending(self) -> bool:
        return self.current_revision != self.head_revision


def get_sync_database_url(url: str | None = None) -> str:
    """
    Synchronous database URL for migrations.

    Alembic's command API uses synchronous connections, so asyncpg URLs are
    converted to psycopg2 URLs.
    """
    return (url or settings.database_url).replace("asyncpg", "psycopg2")


def _alembic_config() -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("sqlalchemy.url", get_sync_database_url().replace("%", "%%"))
    return alembic_cfg


def _get_current_revision(engine: Engine) -> str | None:
    with engine.connect() as conn:
        context = MigrationContext.configure(conn)
        return context.get_current_revision()


def _get_head_revision(alembic_cfg: Config) -> str:
    script = ScriptDirectory.from_config(alembic_cfg)
    head = script.get_current_head()
    if head is None:
        raise RuntimeError("No migration scripts found")
    return head


def check_migrations_status() -> MigrationStatus:
    """Report current and head revisions without applying anything."""
    alembic_cfg = _alembic_config()
    engine = create_engine(get_sync_database_url())
    try:
        return MigrationStatus(
            current_revision=_get_current_revision(engine),
            head_revision=_get_head_revision(alembic_cfg),
        )
    finally:
        engine.dispose()


def run_migrations() -> None:
    """
    Run pending Alembic migrations.

    Only runs migrations if there are pending ones.

    Raises:
        RuntimeError: If a migration fails
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    try:
        status = check_migrations_status()
        if not status.pending:
            logger.info("database_schema_up_to_date", revision=status.current_revision)
            return

        logger.info(
            "running_migrations",
            from_revision=status.current_revision,
            to_revision=status.head_revision,
        )
        command.upgrade(_alembic_config(), "head")
        logger.info("migrations_complete", revision=check_migrations_status().current_revision)

    except Exception as e:
        logger.error("migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e
