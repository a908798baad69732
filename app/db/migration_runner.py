"""
Migration Runner - Runs Alembic migrations at application startup.

Enabled with RUN_MIGRATIONS_ON_STARTUP. Only pending migrations are applied.
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
    """Current vs head revision."""

    current_revision: str | None
    head_revision: str | None

    @property
    def pending(self) -> bool:
        return self.current_revision != self.head_revision


def get_sync_database_url(url: str | None = None) -> str:
    """
    Synchronous database URL for migrations.

    Alembic's command API uses synchronous connections, so asyncpg URLs are
    rewritten to psycopg2.
    """
    return (url or settings.database_url).replace("+asyncpg", "+psycopg2")


def _alembic_config(sync_url: str) -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("script_location", str(ALEMBIC_INI_PATH.parent / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", sync_url.replace("%", "%%"))
    # Logging is already configured by structlog; keep alembic.ini from replacing it
    alembic_cfg.attributes["configure_logger"] = False
    return alembic_cfg


def _get_current_revision(engine: Engine) -> str | None:
    with engine.connect() as conn:
        context = MigrationContext.configure(conn)
        return context.get_current_revision()


def _get_head_revision(alembic_cfg: Config) -> str | None:
    script = ScriptDirectory.from_config(alembic_cfg)
    return script.get_current_head()


def run_migrations() -> None:
    """
    Run pending Alembic migrations.

    Raises:
        RuntimeError: A migration failed
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    sync_url = get_sync_database_url()
    alembic_cfg = _alembic_config(sync_url)
    engine = create_engine(sync_url)

    try:
        current = _get_current_revision(engine)
        head = _get_head_revision(alembic_cfg)

        if current == head:
            logger.info("database_schema_up_to_date", revision=current)
            return

        logger.info("migrations_starting", current=current, head=head)
        command.upgrade(alembic_cfg, "head")
        logger.info("migrations_complete", revision=_get_current_revision(engine))

    except Exception as e:
        logger.error("migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e

    finally:
        engine.dispose()


def check_migrations_status() -> MigrationStatus:
    """Check migration status without applying anything."""
    sync_url = get_sync_database_url()
    engine = create_engine(sync_url)
    try:
        return MigrationStatus(
            current_revision=_get_current_revision(engine),
            head_revision=_get_head_revision(_alembic_config(sync_url)),
        )
    finally:
        engine.dispose()
