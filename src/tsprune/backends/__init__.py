"""Sample storage backends.

- memory: In-memory storage (for testing, no dependencies)
- database: SQL database storage through SQLAlchemy

Use ``create_store()`` to build the backend named by a configuration:

    >>> from tsprune.backends import create_store
    >>> store = create_store(config)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tsprune.base import ConfigurationError
from tsprune.backends.base import SampleStore
from tsprune.backends.memory import InMemorySampleStore

if TYPE_CHECKING:
    from tsprune.config import PruneConfig


def create_store(config: "PruneConfig") -> SampleStore:
    """Create the store configured by ``config.database_url``.

    ``memory://`` selects the in-memory backend; anything else is handed to
    SQLAlchemy.

    Raises:
        ConfigurationError: If no database is configured.
    """
    url = (config.database_url or "").strip()
    if not url:
        raise ConfigurationError("No database configured")
    if url == "memory://":
        return InMemorySampleStore()

    from tsprune.backends.database import DatabaseSampleStore

    return DatabaseSampleStore(url)


__all__ = [
    "SampleStore",
    "InMemorySampleStore",
    "create_store",
]
