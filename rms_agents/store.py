"""
Issue Store - SQLite Backend

Boundary implementation of the persistent issue store the agents talk to.
Supports create, find-by-id and optimistic-locking updates; the web/API
layer owns the rest of issue persistence.
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .exceptions import IssueNotFoundError, StoreError, VersionConflictError
from .utils.time import ensure_aware, utcnow

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "category", "priority", "stage")


@dataclass
class IssueRecord:
    """A persisted issue as seen by the agents."""
    id: str
    title: str
    description: str = ""
    category: Optional[str] = None
    priority: str = "medium"
    stage: str = "new"
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "stage": self.stage,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class IssueStore:
    """
    SQLite-based issue storage with optimistic locking.

    Example:
        store = IssueStore("/tmp/rms.db")
        store.create(IssueRecord(id="ISS-1", title="App crash"))

        issue = store.find_by_id("ISS-1")
        store.update("ISS-1", {"category": "bug"}, expected_version=issue.version)
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"IssueStore initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS issues (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    category TEXT,
                    priority TEXT NOT NULL,
                    stage TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    def create(self, issue: IssueRecord) -> IssueRecord:
        """
        Insert a new issue.

        Raises:
            StoreError: an issue with the same id exists
        """
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO issues (
                        id, title, description, category, priority, stage,
                        version, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    issue.id,
                    issue.title,
                    issue.description,
                    issue.category,
                    issue.priority,
                    issue.stage,
                    issue.version,
                    issue.created_at.isoformat(),
                    issue.updated_at.isoformat(),
                ))
        except sqlite3.IntegrityError as e:
            raise StoreError(f"Issue {issue.id} already exists") from e

        logger.debug(f"Created issue {issue.id}")
        return issue

    def find_by_id(self, issue_id: str) -> Optional[IssueRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM issues WHERE id = ?", (issue_id,)
            ).fetchone()

        return self._row_to_issue(row) if row else None

    def update(
        self,
        issue_id: str,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> IssueRecord:
        """
        Apply a partial update and bump the version.

        Args:
            issue_id: Issue ID
            patch: Field -> new value, limited to UPDATABLE_FIELDS
            expected_version: Version the caller read; None skips the check

        Raises:
            IssueNotFoundError: unknown issue id
            VersionConflictError: stored version differs from expected_version
            ValueError: patch touches a field that cannot be updated
        """
        unknown = set(patch) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        assignments = [f"{name} = ?" for name in patch]
        values = list(patch.values())
        assignments += ["version = version + 1", "updated_at = ?"]
        values.append(utcnow().isoformat())

        where = "WHERE id = ?"
        values.append(issue_id)
        if expected_version is not None:
            where += " AND version = ?"
            values.append(expected_version)

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE issues SET {', '.join(assignments)} {where}", values
            )
            if cursor.rowcount == 0:
                row = conn.execute(
                    "SELECT version FROM issues WHERE id = ?", (issue_id,)
                ).fetchone()
                if row is None:
                    raise IssueNotFoundError(issue_id)
                raise VersionConflictError(issue_id, expected_version, row["version"])

            row = conn.execute(
                "SELECT * FROM issues WHERE id = ?", (issue_id,)
            ).fetchone()

        updated = self._row_to_issue(row)
        logger.debug(f"Updated issue {issue_id} to version {updated.version}")
        return updated

    def delete(self, issue_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM issues WHERE id = ?", (issue_id,))
            return cursor.rowcount > 0

    def _row_to_issue(self, row: sqlite3.Row) -> IssueRecord:
        return IssueRecord(
            id=row["id"],
            title=row["title"],
            description=row["description"] or "",
            category=row["category"],
            priority=row["priority"],
            stage=row["stage"],
            version=row["version"],
            created_at=ensure_aware(row["created_at"]),
            updated_at=ensure_aware(row["updated_at"]),
        )
