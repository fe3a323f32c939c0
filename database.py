"""
Database bootstrap.
"""

import logging

from infrastructure.schema_manager import SchemaManager

logger = logging.getLogger("racebet.database")


class Database:
    """
    Ensures the SQLite schema exists at a path.

    Repositories open their own connections; this object only owns schema
    initialization so that constructing it is idempotent and cheap to repeat.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        SchemaManager(db_path).initialize()
