"""Destructive schema migration keyed on a stored fingerprint."""

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import MetaData, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import MigrationError
from .models import Base, MetaModel, SCHEMA_KEY, SCHEMA_VERSION, schema_fingerprint

logger = structlog.get_logger()


def stored_fingerprint(engine) -> Optional[str]:
    """Fingerprint recorded in the meta table, or None if absent or unreadable."""
    if not inspect(engine).has_table(MetaModel.__tablename__):
        return None
    try:
        with Session(engine) as session:
            return session.scalar(
                select(MetaModel.fingerprint).where(MetaModel.key == SCHEMA_KEY)
            )
    except SQLAlchemyError:
        # A meta table from some other layout counts as a mismatch
        return None


def apply_migrations(engine) -> bool:
    """Bring the database to the current schema.

    When the stored fingerprint is missing or differs from the expected one,
    every table is dropped and the schema recreated; there is no incremental
    evolution. Returns True when the store was rebuilt.
    """
    expected = schema_fingerprint()
    try:
        current = stored_fingerprint(engine)
        if current == expected:
            logger.debug("schema_current", version=SCHEMA_VERSION)
            return False

        logger.info("schema_migrating", stored=current, expected=expected)

        existing = MetaData()
        existing.reflect(bind=engine)
        existing.drop_all(bind=engine)

        Base.metadata.create_all(engine)
        with Session(engine) as session:
            session.add(MetaModel(
                key=SCHEMA_KEY,
                fingerprint=expected,
                version=SCHEMA_VERSION,
                migrated_at=datetime.now(timezone.utc).replace(tzinfo=None),
            ))
            session.commit()
    except SQLAlchemyError as e:
        logger.error("schema_migration_failed", error=str(e))
        raise MigrationError(f"schema migration failed: {e}") from e

    logger.info("schema_migrated", version=SCHEMA_VERSION, dropped=len(existing.tables))
    return True
