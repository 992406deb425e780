"""StudyWeave database layer."""

from studyweave.db.connection import Database
from studyweave.db.migrations import MIGRATIONS, run_migrations
from studyweave.db.repository import Repository
from studyweave.db.schema import initialize

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
]
