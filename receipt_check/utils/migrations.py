import logging
import os
import sys
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import text

logger = logging.getLogger(__name__)

# Shared by every app instance so only one of them upgrades the schema
ADVISORY_LOCK_KEY = 4212604

ALEMBIC_INI = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "alembic.ini")


def _alembic_config(url: Optional[str] = None):
    from alembic.config import Config

    cfg = Config(ALEMBIC_INI)
    if url:
        cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def _head_revision() -> str:
    from alembic.script import ScriptDirectory

    return ScriptDirectory.from_config(_alembic_config()).get_current_head() or "unknown"


def _applied_revision(engine) -> str:
    try:
        with engine.connect() as conn:
            row = conn.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).fetchone()
    except Exception as exc:
        logger.debug("Could not read alembic_version: %s", exc)
        return "unknown"
    return row[0] if row else "none"


def get_migration_state(engine) -> dict:
    current = _applied_revision(engine)
    head = _head_revision()
    return {
        "current_revision": current,
        "head_revision": head,
        "migration_pending": current != head,
    }


@contextmanager
def advisory_lock(engine, key: int = ADVISORY_LOCK_KEY):
    raw_conn = engine.raw_connection()
    cursor = raw_conn.cursor()
    try:
        cursor.execute("SELECT pg_advisory_lock(%s)", (key,))
        logger.info("Advisory lock %d acquired", key)
        yield
    finally:
        cursor.execute("SELECT pg_advisory_unlock(%s)", (key,))
        raw_conn.close()
        logger.info("Advisory lock %d released", key)


def run_migrations_if_enabled(engine) -> None:
    from alembic import command

    from ..config import get_settings

    if get_settings().run_migrations_on_startup.lower() != "true":
        logger.info("RUN_MIGRATIONS_ON_STARTUP is not enabled; skipping auto-migration")
        return

    if engine.dialect.name != "postgresql":
        logger.warning("Auto-migration needs PostgreSQL advisory locks; skipping on %s", engine.dialect.name)
        return

    try:
        with advisory_lock(engine):
            logger.info("Running alembic upgrade head")
            command.upgrade(_alembic_config(engine.url.render_as_string(hide_password=False)), "head")
            logger.info("Migrations complete at %s", _applied_revision(engine))
    except Exception as exc:
        logger.error("Migration failed: %s", exc)
        sys.exit(1)
