"""PostgreSQL catalog store."""
import psycopg2
import psycopg2.errors
from psycopg2 import pool, sql
from contextlib import contextmanager
from typing import Optional, List
import logging

from bookscan.errors import DuplicateEntryError, StoreError
from bookscan.models import CatalogEntry
from bookscan.store import CatalogStore, check_changes

logger = logging.getLogger(__name__)

# Ordered (version, statements). Applied versions are recorded in schema_migrations.
MIGRATIONS = [
    (1, [
        """
        CREATE TABLE IF NOT EXISTS catalog_entries (
            id VARCHAR(36) PRIMARY KEY,
            title TEXT NOT NULL,
            authors TEXT NOT NULL,
            isbn VARCHAR(32),
            thumbnail_url TEXT,
            publisher TEXT,
            published_date VARCHAR(50),
            description TEXT,
            added_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_entries_isbn ON catalog_entries (isbn)",
    ]),
    (2, [
        "ALTER TABLE catalog_entries ADD COLUMN IF NOT EXISTS notes TEXT",
        "ALTER TABLE catalog_entries ADD COLUMN IF NOT EXISTS is_favorite BOOLEAN NOT NULL DEFAULT FALSE",
        "ALTER TABLE catalog_entries ADD COLUMN IF NOT EXISTS subjects TEXT[]",
    ]),
    (3, [
        # Closes the check-then-insert race across processes
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_entries_isbn
        ON catalog_entries (isbn) WHERE isbn IS NOT NULL
        """,
    ]),
]

COLUMNS = (
    "id", "title", "authors", "isbn", "thumbnail_url", "publisher",
    "published_date", "description", "subjects", "notes", "is_favorite", "added_at",
)

_SELECT = f"SELECT {', '.join(COLUMNS)} FROM catalog_entries"


def row_to_entry(row) -> CatalogEntry:
    values = dict(zip(COLUMNS, row))
    values["subjects"] = tuple(values["subjects"] or ())
    return CatalogEntry(**values)


class Database(CatalogStore):
    """PostgreSQL catalog store with connection pooling."""

    def __init__(
        self,
        connection_string: str,
        min_conn: int = 1,
        max_conn: int = 10,
        connection_pool=None
    ):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
            connection_pool: Existing pool to use instead of creating one
        """
        if connection_pool is not None:
            self.connection_pool = connection_pool
        else:
            try:
                self.connection_pool = psycopg2.pool.SimpleConnectionPool(
                    min_conn,
                    max_conn,
                    connection_string
                )
            except psycopg2.Error as e:
                raise StoreError(f"Failed to create connection pool: {e}") from e

        logger.info("Database connection pool created successfully")

    @contextmanager
    def _connection(self):
        try:
            conn = self.connection_pool.getconn()
        except psycopg2.Error as e:
            logger.error(f"Could not get a database connection: {e}")
            raise StoreError(f"Could not get a database connection: {e}") from e

        try:
            yield conn
        except psycopg2.errors.UniqueViolation:
            conn.rollback()
            raise
        except psycopg2.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        finally:
            self.connection_pool.putconn(conn)

    def applied_versions(self) -> List[int]:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS schema_migrations (
                        version INTEGER PRIMARY KEY,
                        applied_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                cur.execute("SELECT version FROM schema_migrations ORDER BY version")
                versions = [row[0] for row in cur.fetchall()]
                conn.commit()
                return versions

    def init_schema(self) -> List[int]:
        """
        Apply pending migrations in order, one transaction each.

        Returns:
            Versions applied by this call
        """
        applied = set(self.applied_versions())
        newly_applied = []

        for version, statements in MIGRATIONS:
            if version in applied:
                continue
            with self._connection() as conn:
                with conn.cursor() as cur:
                    for statement in statements:
                        cur.execute(statement)
                    cur.execute("INSERT INTO schema_migrations (version) VALUES (%s)", (version,))
                conn.commit()
            logger.info(f"Applied schema migration {version}")
            newly_applied.append(version)

        logger.info("Database schema initialized successfully")
        return newly_applied

    def get(self, entry_id: str) -> Optional[CatalogEntry]:
        """Get an entry by id."""
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"{_SELECT} WHERE id = %s", (entry_id,))
                row = cur.fetchone()
                return row_to_entry(row) if row else None

    def find_by_isbn(self, isbn: str) -> Optional[CatalogEntry]:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"{_SELECT} WHERE isbn = %s LIMIT 1", (isbn,))
                row = cur.fetchone()
                return row_to_entry(row) if row else None

    def list_entries(self) -> List[CatalogEntry]:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"{_SELECT} ORDER BY added_at ASC")
                return [row_to_entry(row) for row in cur.fetchall()]

    def count(self) -> int:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM catalog_entries")
                return cur.fetchone()[0]

    def insert(self, entry: CatalogEntry) -> CatalogEntry:
        """
        Insert a new entry.

        Raises:
            DuplicateEntryError: If the unique ISBN index rejects the row
            StoreError: For any other database failure
        """
        placeholders = ", ".join(["%s"] * len(COLUMNS))
        values = [getattr(entry, column) for column in COLUMNS]
        values[COLUMNS.index("subjects")] = list(entry.subjects)

        try:
            with self._connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"INSERT INTO catalog_entries ({', '.join(COLUMNS)}) VALUES ({placeholders})",
                        values
                    )
                conn.commit()
        except psycopg2.errors.UniqueViolation as e:
            logger.info(f"Rejected duplicate ISBN {entry.isbn}")
            raise DuplicateEntryError(entry.isbn) from e

        return entry

    def update(self, entry_id: str, **changes) -> Optional[CatalogEntry]:
        check_changes(changes)
        if not changes:
            return self.get(entry_id)

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(field)) for field in changes
        )
        query = sql.SQL("UPDATE catalog_entries SET {} WHERE id = %s RETURNING {}").format(
            assignments,
            sql.SQL(", ").join(sql.Identifier(column) for column in COLUMNS)
        )

        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, [*changes.values(), entry_id])
                row = cur.fetchone()
            conn.commit()
        return row_to_entry(row) if row else None

    def delete(self, entry_id: str) -> bool:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM catalog_entries WHERE id = %s", (entry_id,))
                deleted = cur.rowcount
            conn.commit()
        return deleted > 0

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")
