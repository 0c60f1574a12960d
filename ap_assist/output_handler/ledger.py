"""
Processing Ledger Module.

This module keeps a local SQLite record of every document the poller
has handled, so that a message delivered again (for example after a
restart before it was marked seen) is not uploaded twice.

Features:
    - Automatic schema creation
    - Duplicate detection on (message id, filename)
    - Flag and validation diagnostics per document
    - Statistics for the poller shutdown summary

Author: AP Automation Team
"""

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.helpers import ensure_directory
from ap_assist.utils.exceptions import LedgerError

# Initialize module logger
logger = get_logger(__name__)

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


@dataclass
class LedgerEntry:
    """One processed document as stored in the ledger."""
    message_id: str
    filename: str
    rule_name: str = ""
    status: str = STATUS_SUCCESS
    flagged: bool = False
    reason: str = ""
    primary_file_id: Optional[str] = None
    secondary_file_id: Optional[str] = None
    validation_attempts: int = 0
    transport_attempts: int = 0
    processed_at: Optional[str] = None


class ProcessingLedger:
    """
    Handles the local ledger of processed documents.

    Attributes:
        db_path: Path to the SQLite database file.
        table_name: Name of the ledger table.

    Example:
        >>> ledger = ProcessingLedger()
        >>> if not ledger.is_processed(message_id, filename):
        ...     ledger.record(LedgerEntry(message_id, filename, rule_name="example_credits"))
    """

    def __init__(self, db_path: Optional[str] = None) -> None:
        """
        Initialize the ledger.

        Args:
            db_path: Path to database file. If None, uses configuration.
        """
        if db_path:
            self.db_path = Path(db_path)
        else:
            output_dir = Path(get_config("paths.output_dir", "outputs"))
            db_name = get_config("output.ledger.name", "ap_assist_ledger.db")
            self.db_path = output_dir / db_name

        self.table_name = get_config("output.ledger.table_name", "processed_documents")

        ensure_directory(self.db_path.parent)
        self._create_tables()

        logger.info(f"ProcessingLedger initialized (db: {self.db_path})")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _create_tables(self) -> None:
        """Create the ledger table if it doesn't exist."""
        create_sql = f"""
        CREATE TABLE IF NOT EXISTS {self.table_name} (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            message_id TEXT NOT NULL,
            filename TEXT NOT NULL,
            rule_name TEXT,
            status TEXT,
            flagged INTEGER,
            reason TEXT,
            primary_file_id TEXT,
            secondary_file_id TEXT,
            validation_attempts INTEGER,
            transport_attempts INTEGER,
            processed_at TEXT,
            UNIQUE(message_id, filename) ON CONFLICT REPLACE
        )
        """

        try:
            conn = self._connect()
            try:
                conn.execute(create_sql)
                conn.execute(f"""
                    CREATE INDEX IF NOT EXISTS idx_{self.table_name}_status
                    ON {self.table_name} (status)
                """)
                conn.commit()
            finally:
                conn.close()

            logger.debug("Ledger tables created/verified")

        except sqlite3.Error as e:
            raise LedgerError("create tables", str(e)) from e

    def record(self, entry: LedgerEntry) -> None:
        """
        Insert or replace the ledger row of one document.

        Args:
            entry: LedgerEntry to store.

        Raises:
            LedgerError: If the write fails.
        """
        insert_sql = f"""
        INSERT INTO {self.table_name} (
            message_id, filename, rule_name, status, flagged, reason,
            primary_file_id, secondary_file_id, validation_attempts,
            transport_attempts, processed_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """

        values = (
            entry.message_id,
            entry.filename,
            entry.rule_name,
            entry.status,
            1 if entry.flagged else 0,
            entry.reason,
            entry.primary_file_id,
            entry.secondary_file_id,
            entry.validation_attempts,
            entry.transport_attempts,
            entry.processed_at or datetime.now().isoformat(),
        )

        try:
            conn = self._connect()
            try:
                conn.execute(insert_sql, values)
                conn.commit()
            finally:
                conn.close()

            logger.debug(f"Ledger: {entry.filename} ({entry.status})")

        except sqlite3.Error as e:
            raise LedgerError("record", str(e)) from e

    def is_processed(self, message_id: str, filename: str) -> bool:
        """
        Whether a document was already processed successfully.

        Failed documents are not counted, so a re-delivered message
        gets another chance.
        """
        query = f"""
        SELECT COUNT(*) FROM {self.table_name}
        WHERE message_id = ? AND filename = ? AND status = ?
        """

        try:
            conn = self._connect()
            try:
                count = conn.execute(query, (message_id, filename, STATUS_SUCCESS)).fetchone()[0]
            finally:
                conn.close()
            return count > 0

        except sqlite3.Error as e:
            raise LedgerError("is_processed", str(e)) from e

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get counts of processed, failed and flagged documents.

        Returns:
            Dictionary with ``total``, ``succeeded``, ``failed`` and ``flagged``.
        """
        query = f"""
        SELECT
            COUNT(*) AS total,
            SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS succeeded,
            SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS failed,
            SUM(CASE WHEN flagged = 1 THEN 1 ELSE 0 END) AS flagged
        FROM {self.table_name}
        """

        try:
            conn = self._connect()
            try:
                row = conn.execute(query, (STATUS_SUCCESS, STATUS_FAILED)).fetchone()
            finally:
                conn.close()
            return {key: row[key] or 0 for key in ("total", "succeeded", "failed", "flagged")}

        except sqlite3.Error as e:
            raise LedgerError("get_statistics", str(e)) from e
