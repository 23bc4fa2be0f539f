from __future__ import annotations

from sqlalchemy import Engine

import basesplit.models  # noqa: F401
from basesplit.core.config import Settings, settings
from basesplit.core.logging import get_logger, log_event
from basesplit.core.models import Base

logger = get_logger(__name__)


def bootstrap(engine: Engine, *, config: Settings = settings) -> None:
    """Create tables directly for a dev SQLite database; elsewhere Alembic owns the schema."""
    if config.environment == "dev" and str(config.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)
        log_event(logger, "bootstrap.schema.created", database_url=config.database_url)
