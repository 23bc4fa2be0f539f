"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

# Bills first - ingestion markers reference them
from basesplit.modules.bills.models import Bill, LineItem  # noqa: F401

from basesplit.modules.identity.models import User  # noqa: F401
from basesplit.modules.ingestion.models import ProcessedEvent  # noqa: F401
