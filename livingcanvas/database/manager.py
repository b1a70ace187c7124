"""
Database manager for Living Canvas.

This module records block runs and clarifications in DuckDB so any output on
a canvas can be traced back to the exact input, prompt and model that
produced it.
"""

import duckdb
import logging
import threading
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

RUN_COLUMNS = [
    "run_id", "document_ref", "node_id", "block_id", "input_text", "prompt",
    "model_name", "response", "success", "error_kind", "error_message",
    "execution_time_ms", "output_node_id", "started_at"
]


class DatabaseManager:
    """
    Manages the DuckDB run history ledger.
    """

    def __init__(self, db_path: str = "livingcanvas.db"):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the DuckDB database file
        """
        self.db_path = db_path
        self.connection = None
        # One connection is shared by every caller; statements run one at a time
        self._lock = threading.Lock()

    def connect(self):
        """Establish connection to the database."""
        self.connection = duckdb.connect(self.db_path)

    def disconnect(self):
        """Close the database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()

    def initialize_database(self):
        """
        Create all necessary tables if they don't exist.
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        self.connection.execute("CREATE SEQUENCE IF NOT EXISTS run_id_seq;")
        self.connection.execute("""
            CREATE TABLE IF NOT EXISTS block_runs (
                run_id BIGINT PRIMARY KEY DEFAULT nextval('run_id_seq'),
                document_ref VARCHAR NOT NULL,
                node_id VARCHAR,
                block_id VARCHAR NOT NULL,
                input_text TEXT NOT NULL,
                prompt TEXT,
                model_name VARCHAR,
                response TEXT,
                success BOOLEAN NOT NULL,
                error_kind VARCHAR,
                error_message TEXT,
                execution_time_ms INTEGER,
                output_node_id VARCHAR,
                started_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    def log_block_run(
        self,
        document_ref: str,
        block_id: str,
        input_text: str,
        node_id: Optional[str] = None,
        prompt: Optional[str] = None,
        model_name: Optional[str] = None,
        response: Optional[str] = None,
        success: bool = True,
        error_kind: Optional[str] = None,
        error_message: Optional[str] = None,
        execution_time_ms: Optional[int] = None,
        output_node_id: Optional[str] = None
    ) -> Optional[int]:
        """
        Record one block run or clarification.

        Returns:
            The new run id
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        with self._lock:
            result = self.connection.execute("""
                INSERT INTO block_runs (
                    document_ref, node_id, block_id, input_text, prompt, model_name,
                    response, success, error_kind, error_message, execution_time_ms,
                    output_node_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING run_id
            """, [
                str(document_ref), node_id, block_id, input_text, prompt, model_name,
                response, success, error_kind, error_message, execution_time_ms,
                output_node_id
            ]).fetchone()
        return result[0] if result else None

    def get_block_runs(
        self,
        node_id: Optional[str] = None,
        block_id: Optional[str] = None,
        document_ref: Optional[str] = None,
        success_only: bool = False,
        limit: Optional[int] = None
    ) -> List[Dict]:
        """
        Retrieve recorded runs, newest first.

        Args:
            node_id: Filter by canvas node (optional)
            block_id: Filter by block id (optional)
            document_ref: Filter by canvas document (optional)
            success_only: Only return successful runs
            limit: Limit number of results

        Returns:
            List of run records
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        query = f"SELECT {', '.join(RUN_COLUMNS)} FROM block_runs WHERE 1=1"
        params = []

        if node_id:
            query += " AND node_id = ?"
            params.append(node_id)

        if block_id:
            query += " AND block_id = ?"
            params.append(block_id)

        if document_ref:
            query += " AND document_ref = ?"
            params.append(str(document_ref))

        if success_only:
            query += " AND success = true"

        query += " ORDER BY run_id DESC"

        if limit:
            query += f" LIMIT {int(limit)}"

        with self._lock:
            results = self.connection.execute(query, params).fetchall()
        return [dict(zip(RUN_COLUMNS, row)) for row in results]

    def reproduce_block_run(self, run_id: int) -> Optional[Dict]:
        """
        Get all details needed to reproduce a specific run.

        Args:
            run_id: The ID of the run to reproduce

        Returns:
            Dictionary with all run details or None if not found
        """
        if not self.connection:
            raise RuntimeError("Database connection not established")

        with self._lock:
            result = self.connection.execute(
                f"SELECT {', '.join(RUN_COLUMNS)} FROM block_runs WHERE run_id = ?",
                [run_id]
            ).fetchone()

        if result:
            return dict(zip(RUN_COLUMNS, result))
        return None
