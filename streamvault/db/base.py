"""
StreamVault — SQLAlchemy Base registry
======================================

Import all ORM models so their tables are registered on `Base.metadata`
(Alembic autogeneration, `create_all`). Import-only; no runtime logic.
"""

from streamvault.db.base_class import Base
from streamvault.db.models.series import Series
from streamvault.db.models.episode import Episode

__all__ = ["Base", "Series", "Episode"]
