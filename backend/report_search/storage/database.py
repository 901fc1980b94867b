"""
Document store access for the report search service.

The search core only sees the DocumentStore interface; SqliteDocumentStore
is the shipped adapter (SQLite with an FTS5 trigram index over report text).
"""

import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence
import logging

from ..common.errors import TransientStoreError
from ..common.text_utils import TextNormalizer
from ..config.search_config import CONCURRENCY_CONFIG

logger = logging.getLogger('search')


class DocumentStore(ABC):
    """Port for the read-only document store."""

    @abstractmethod
    def execute(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """
        Run a parameterized query and return rows keyed by column name.

        Raises:
            TransientStoreError: On any store failure or timeout
        """
        pass

    def session(self):
        """Context in which several queries form one logical read."""
        return nullcontext()

    def close(self):
        pass


class Database:
    """Manages SQLite database connections and schema."""

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.connection: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        """
        Create and return a database connection.

        Returns:
            SQLite connection object
        """
        if self.connection is None:
            self.connection = sqlite3.connect(self.db_path, check_same_thread=False)
            self.connection.row_factory = sqlite3.Row
        return self.connection

    def initialize_schema(self):
        """Create all database tables and indexes."""
        conn = self.connect()
        cursor = conn.cursor()

        # Reports table; content_text is the markup-free copy the text index reads
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS reports (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                infoCode TEXT UNIQUE NOT NULL,
                title TEXT,
                publishDate TEXT,
                reportType TEXT,
                stockCode TEXT,
                stockName TEXT,
                industryCode TEXT,
                industryName TEXT,
                indvInduCode TEXT,
                indvInduName TEXT,
                orgCode TEXT,
                orgSName TEXT,
                author TEXT,
                "column" TEXT,
                market TEXT,
                attachPages INTEGER,
                attachSize INTEGER,
                pdfLink TEXT,
                content TEXT,
                content_text TEXT
            )
        """)

        # Full-text index; trigram tokens let 3+ character keywords match
        # inside unsegmented Chinese text
        cursor.execute("""
            CREATE VIRTUAL TABLE IF NOT EXISTS reports_fts USING fts5(
                content_text,
                content='reports',
                content_rowid='id',
                tokenize='trigram'
            )
        """)

        # Author -> report inverted index
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS report_author_index (
                author_id TEXT NOT NULL,
                report_id INTEGER NOT NULL,
                PRIMARY KEY (author_id, report_id),
                FOREIGN KEY (report_id) REFERENCES reports(id)
            )
        """)

        # Dynamic facet vocabularies: 'S' stocks, 'I' institutions
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS filter_options (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL CHECK (type IN ('I', 'S')),
                value TEXT NOT NULL,
                label TEXT NOT NULL,
                UNIQUE(type, value)
            )
        """)

        # Create indexes
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_publish_date ON reports(publishDate)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_report_type ON reports(reportType)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_stock_code ON reports(stockCode)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_industry_code ON reports(industryCode)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_indv_indu_code ON reports(indvInduCode)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_org_code ON reports(orgCode)")
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_column ON reports("column")')
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_market ON reports(market)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_attach_pages ON reports(attachPages)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_author_report ON report_author_index(report_id)")

        conn.commit()
        logger.info("Database schema initialized successfully")

    def close(self):
        """Close database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class SqliteDocumentStore(DocumentStore):
    """
    Thread-safe SQLite adapter with a per-statement deadline.

    One connection is shared behind a reentrant lock. Waiting for the lock
    and running a statement are each bounded by ``timeout_seconds``: a
    progress handler aborts a statement that outlives it. Both surface as
    TransientStoreError like every other sqlite3 failure.
    """

    PROGRESS_STEPS = 1000

    def __init__(
        self,
        db_path: str,
        timeout_seconds: float = CONCURRENCY_CONFIG['store_timeout_seconds']
    ):
        self.db_path = db_path
        self.timeout_seconds = timeout_seconds
        self.db_conn: Optional[sqlite3.Connection] = None
        self.rw_lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        """Create database connection."""
        with self.rw_lock:
            if self.db_conn is None:
                try:
                    self.db_conn = sqlite3.connect(
                        self.db_path,
                        check_same_thread=False,
                        timeout=self.timeout_seconds
                    )
                except sqlite3.Error as e:
                    raise TransientStoreError(f"Could not open database: {e}") from e
                self.db_conn.row_factory = sqlite3.Row
            return self.db_conn

    @contextmanager
    def _locked(self):
        """Hold the connection lock, waiting at most ``timeout_seconds`` for it."""
        if not self.rw_lock.acquire(timeout=self.timeout_seconds):
            raise TransientStoreError(
                f"Store busy: lock not acquired within {self.timeout_seconds}s"
            )
        try:
            yield
        finally:
            self.rw_lock.release()

    @contextmanager
    def session(self):
        with self._locked():
            yield self

    def execute(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._locked():
            conn = self.connect()
            deadline = time.monotonic() + self.timeout_seconds
            conn.set_progress_handler(
                lambda: 1 if time.monotonic() > deadline else 0,
                self.PROGRESS_STEPS
            )
            try:
                cursor = conn.execute(sql, list(params))
                return [dict(row) for row in cursor.fetchall()]
            except sqlite3.Error as e:
                if time.monotonic() > deadline:
                    raise TransientStoreError(
                        f"Query exceeded {self.timeout_seconds}s deadline"
                    ) from e
                raise TransientStoreError(f"Store query failed: {e}") from e
            finally:
                conn.set_progress_handler(None, 0)

    def close(self):
        """Close connections and cleanup."""
        with self.rw_lock:
            if self.db_conn:
                self.db_conn.close()
                self.db_conn = None


class ReportLoader:
    """Writes reports and keeps the derived indexes in step."""

    def __init__(self, db_connection: sqlite3.Connection, normalizer: Optional[TextNormalizer] = None):
        """
        Initialize report loader.

        Args:
            db_connection: SQLite database connection
            normalizer: Converts rich content to indexable plain text
        """
        self.db = db_connection
        self.normalizer = normalizer or TextNormalizer()

    def save_report(self, report: Dict[str, Any]) -> int:
        """
        Insert or replace a single report and its author index rows.

        Returns:
            Row id of the report
        """
        cursor = self.db.cursor()

        cursor.execute("""
            INSERT INTO reports (
                infoCode, title, publishDate, reportType, stockCode, stockName,
                industryCode, industryName, indvInduCode, indvInduName,
                orgCode, orgSName, author, "column", market, attachPages,
                attachSize, pdfLink, content, content_text
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(infoCode) DO UPDATE SET
                title = excluded.title,
                publishDate = excluded.publishDate,
                reportType = excluded.reportType,
                stockCode = excluded.stockCode,
                stockName = excluded.stockName,
                industryCode = excluded.industryCode,
                industryName = excluded.industryName,
                indvInduCode = excluded.indvInduCode,
                indvInduName = excluded.indvInduName,
                orgCode = excluded.orgCode,
                orgSName = excluded.orgSName,
                author = excluded.author,
                "column" = excluded."column",
                market = excluded.market,
                attachPages = excluded.attachPages,
                attachSize = excluded.attachSize,
                pdfLink = excluded.pdfLink,
                content = excluded.content,
                content_text = excluded.content_text
        """, (
            report['infoCode'],
            report.get('title'),
            report.get('publishDate'),
            report.get('reportType'),
            report.get('stockCode'),
            report.get('stockName'),
            report.get('industryCode'),
            report.get('industryName'),
            report.get('indvInduCode'),
            report.get('indvInduName'),
            report.get('orgCode'),
            report.get('orgSName'),
            report.get('author'),
            report.get('column'),
            report.get('market'),
            report.get('attachPages'),
            report.get('attachSize'),
            report.get('pdfLink'),
            report.get('content'),
            self.normalizer.to_plain_text(report.get('content') or '')
        ))

        cursor.execute("SELECT id FROM reports WHERE infoCode = ?", (report['infoCode'],))
        report_id = cursor.fetchone()[0]

        self._index_authors(report_id, report.get('author'))

        return report_id

    def save_reports_batch(self, reports: Iterable[Dict[str, Any]]) -> Dict[str, int]:
        """
        Save many reports, then rebuild the text index and facet vocabularies.

        Returns:
            Dictionary with statistics (saved, errors)
        """
        stats = {
            'saved': 0,
            'errors': 0
        }

        for report in reports:
            try:
                self.save_report(report)
                stats['saved'] += 1
            except (KeyError, sqlite3.Error) as e:
                logger.error(f"Error saving report {report.get('infoCode', 'unknown')}: {e}")
                stats['errors'] += 1

        self.rebuild_indexes()
        self.db.commit()

        logger.info(f"Batch save complete - Saved: {stats['saved']}, Errors: {stats['errors']}")
        return stats

    def rebuild_indexes(self) -> Dict[str, int]:
        """
        Rebuild every derived structure from the reports table.

        Returns:
            Row counts of the rebuilt structures
        """
        cursor = self.db.cursor()

        cursor.execute("INSERT INTO reports_fts(reports_fts) VALUES ('rebuild')")

        cursor.execute("DELETE FROM report_author_index")
        for row in cursor.execute("SELECT id, author FROM reports").fetchall():
            self._index_authors(row[0], row[1])

        self.refresh_filter_options()
        self.db.commit()

        counts = {}
        for table in ('reports', 'report_author_index', 'filter_options'):
            counts[table] = cursor.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

        logger.info(f"Indexes rebuilt: {counts}")
        return counts

    def refresh_filter_options(self):
        """Derive stock and institution vocabularies from the reports."""
        cursor = self.db.cursor()
        cursor.execute("DELETE FROM filter_options")
        cursor.execute("""
            INSERT INTO filter_options (type, value, label)
            SELECT 'S', stockCode, MAX(stockName)
            FROM reports
            WHERE stockCode IS NOT NULL AND stockCode != '' AND stockName IS NOT NULL
            GROUP BY stockCode
        """)
        cursor.execute("""
            INSERT INTO filter_options (type, value, label)
            SELECT 'I', orgCode, MAX(orgSName)
            FROM reports
            WHERE orgCode IS NOT NULL AND orgCode != '' AND orgSName IS NOT NULL
            GROUP BY orgCode
        """)

    def _index_authors(self, report_id: int, author: Optional[str]):
        cursor = self.db.cursor()
        cursor.execute("DELETE FROM report_author_index WHERE report_id = ?", (report_id,))

        if not author:
            return

        author_ids = {token.split('.', 1)[0].strip() for token in author.split(',')} - {''}
        cursor.executemany(
            "INSERT OR IGNORE INTO report_author_index (author_id, report_id) VALUES (?, ?)",
            [(author_id, report_id) for author_id in sorted(author_ids)]
        )


def init_database(db_path: str) -> Database:
    """
    Initialize database with schema.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Database instance
    """
    db = Database(db_path)
    db.initialize_schema()
    return db
