"""Database engine and repository for Grid Watch."""

from grid_watch.db.engine import close_db, init_db
from grid_watch.db.repository import Repository

__all__ = ["close_db", "init_db", "Repository"]
