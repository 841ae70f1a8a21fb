"""
Database connection management
"""
import os
import sqlite3
from contextlib import contextmanager
from typing import Generator


class DatabaseConnection:
    # Durable key/value storage for the kiosk (carts, caches, refresh signals)

    def __init__(self, db_path: str = os.path.join("data", "kiosk.db")):
        # database file path; parent directory is created on demand
        self.db_path = db_path
        self.init_database()

    def init_database(self):
        # create the storage table if needed
        directory = os.path.dirname(self.db_path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
            CREATE TABLE IF NOT EXISTS Storage (
                storage_key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            ''')

            conn.commit()

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        # one short-lived connection per operation; safe across worker threads
        conn = sqlite3.connect(self.db_path, timeout=10)
        try:
            yield conn
        finally:
            conn.close()
