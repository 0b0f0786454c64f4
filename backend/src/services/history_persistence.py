"""SQLite persistence for per-mode chat histories."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .database import DatabaseService
from .interfaces import IHistoryPersistence

logger = logging.getLogger(__name__)

# Mode keys written by earlier releases, mapped to their current name.
LEGACY_MODE_KEYS = {"GENERAL": "COPILOT", "WESCORE_COPILOT": "COPILOT", "AMAZON": "LISTING_COPY"}


class HistoryPersistenceError(Exception):
    """Raised when chat histories cannot be read or written."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SqliteHistoryPersistence(IHistoryPersistence):
    """Stores each mode's serialized log as one JSON row."""

    def __init__(self, db: Optional[DatabaseService] = None):
        self.db = db or DatabaseService()
        self.db.initialize()

    def save_history(self, histories: Dict[str, List[Dict[str, Any]]]) -> None:
        """Replace the stored log of every mode in ``histories`` in one transaction."""
        now = datetime.now(timezone.utc).isoformat(timespec="seconds")
        conn = self.db.connect()
        try:
            with conn:
                conn.executemany(
                    """
                    INSERT INTO chat_histories (mode, messages_json, updated)
                    VALUES (?, ?, ?)
                    ON CONFLICT(mode) DO UPDATE SET
                        messages_json = excluded.messages_json,
                        updated = excluded.updated
                    """,
                    [
                        (mode, json.dumps(messages, default=str), now)
                        for mode, messages in histories.items()
                    ],
                )
        except Exception as e:
            logger.error(f"Failed to save chat history: {e}")
            raise HistoryPersistenceError(f"Failed to save chat history: {str(e)}") from e
        finally:
            conn.close()

    def load_history(self) -> Dict[str, List[Dict[str, Any]]]:
        """Return every stored log keyed by mode name.

        Rows whose JSON is not a list are skipped. Legacy mode keys are
        renamed unless the current key is also present.
        """
        conn = self.db.connect()
        try:
            rows = conn.execute("SELECT mode, messages_json FROM chat_histories").fetchall()
        except Exception as e:
            logger.error(f"Failed to load chat history: {e}")
            raise HistoryPersistenceError(f"Failed to load chat history: {str(e)}") from e
        finally:
            conn.close()

        histories: Dict[str, List[Dict[str, Any]]] = {}
        for row in rows:
            try:
                messages = json.loads(row["messages_json"])
            except json.JSONDecodeError:
                logger.warning(f"Skipping unreadable chat history for mode {row['mode']}")
                continue
            if not isinstance(messages, list):
                logger.warning(f"Skipping malformed chat history for mode {row['mode']}")
                continue
            histories[row["mode"]] = messages

        for legacy, current in LEGACY_MODE_KEYS.items():
            if legacy in histories:
                messages = histories.pop(legacy)
                if current not in histories:
                    logger.info(f"Migrated chat history from legacy mode {legacy} to {current}")
                    histories[current] = messages
        return histories


__all__ = ["SqliteHistoryPersistence", "HistoryPersistenceError", "LEGACY_MODE_KEYS"]
