import sqlite3
import threading
from typing import Optional, Dict, List, Tuple


class StorageDB:
    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            # Rate ledger: append-only, ordered by insertion
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS checkpoints (
                    seq INTEGER PRIMARY KEY,
                    effective_at INTEGER NOT NULL,
                    rate TEXT NOT NULL
                )
            ''')
            # State table: Key-Value store for deposit records and flags
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            self.conn.commit()

    # --- Checkpoint Methods ---
    def append_checkpoint(self, seq: int, effective_at: int, rate: int):
        # Rates are stored as text, sqlite INTEGER overflows past 2**63
        with self._lock:
            self.cursor.execute(
                'INSERT INTO checkpoints (seq, effective_at, rate) VALUES (?, ?, ?)',
                (seq, effective_at, str(rate))
            )
            self.conn.commit()

    def get_checkpoints(self) -> List[Tuple[int, int]]:
        """Returns [(effective_at, rate), ...] in insertion order."""
        with self._lock:
            self.cursor.execute('SELECT effective_at, rate FROM checkpoints ORDER BY seq ASC')
            return [(row[0], int(row[1])) for row in self.cursor.fetchall()]

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
            self.conn.commit()

    def delete_state(self, key: str):
        with self._lock:
            self.cursor.execute('DELETE FROM state WHERE key = ?', (key,))
            self.conn.commit()

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        with self._lock:
            self.cursor.execute('SELECT key, value FROM state WHERE key LIKE ?', (f"{prefix}%",))
            return {row[0]: row[1] for row in self.cursor.fetchall()}

    def close(self):
        with self._lock:
            self.conn.close()
