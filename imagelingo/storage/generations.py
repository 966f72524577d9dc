"""Persistent generation records using SQLite."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from threading import Lock
from typing import Any

from config import settings
from imagelingo.errors import InvalidTransitionError, StorageError
from imagelingo.schemas import Generation, GenerationStatus, GenerationType
from imagelingo.utils.logger import logger

UPDATABLE_FIELDS = {
    "status", "prompt", "output_image_id", "output_text", "error_message",
    "model_used", "tokens_used", "processing_ms",
}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class GenerationStore:
    """SQLite-backed store of generation records.

    Status transitions follow the generation lifecycle: once a record is
    completed or failed it never changes status again.
    """

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path or settings.database_path
        self._lock = Lock()
        # An in-memory database only lives as long as its connection
        self._memory_conn: sqlite3.Connection | None = None
        if self.db_path == ":memory:":
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._memory_conn.row_factory = sqlite3.Row
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            return self._memory_conn
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        with self._lock, self._connect() as conn:
            # Enable WAL mode for crash safety
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS generations (
                    id TEXT PRIMARY KEY,
                    project_id TEXT,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    prompt TEXT,
                    input_image_id TEXT,
                    output_image_id TEXT,
                    output_text TEXT,
                    source_language TEXT,
                    target_language TEXT,
                    error_message TEXT,
                    model_used TEXT,
                    tokens_used INTEGER,
                    processing_ms INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_generations_user ON generations (user_id, created_at)"
            )
            conn.commit()

    def create_generation(
        self,
        user_id: str,
        *,
        project_id: str | None = None,
        type: GenerationType = GenerationType.TRANSLATION,
        prompt: str | None = None,
        input_image_id: str | None = None,
        source_language: str | None = None,
        target_language: str | None = None,
        generation_id: str | None = None,
    ) -> Generation:
        """Create a new pending generation."""
        now = _utcnow()
        generation_id = generation_id or str(uuid.uuid4())
        try:
            with self._lock, self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO generations (
                        id, project_id, user_id, type, status, prompt, input_image_id,
                        source_language, target_language, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        generation_id, project_id, user_id, GenerationType(type).value,
                        GenerationStatus.PENDING.value, prompt, input_image_id,
                        source_language, target_language, now, now,
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise StorageError(
                f"Generation {generation_id} already exists",
                original_error=exc,
                context={"generation_id": generation_id},
            ) from exc

        logger.info(f"[Store] Created generation {generation_id} for user {user_id}")
        generation = self.get_generation(generation_id)
        if generation is None:
            raise StorageError(
                f"Generation {generation_id} vanished after insert",
                context={"generation_id": generation_id},
            )
        return generation

    def get_generation(self, generation_id: str) -> Generation | None:
        """Get a generation by ID."""
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM generations WHERE id = ?", (generation_id,)
            ).fetchone()
        return self._row_to_generation(row) if row else None

    def list_generations(self, user_id: str, limit: int = 50) -> list[Generation]:
        """Get a user's generations, most recent first."""
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM generations WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [self._row_to_generation(row) for row in rows]

    def update_generation(self, generation_id: str, **kwargs: Any) -> Generation | None:
        """Update whitelisted fields. Returns the updated record, None if missing.

        Raises:
            InvalidTransitionError: the record is terminal and the update
                would change its status.
        """
        updates: list[str] = []
        values: list[Any] = []
        new_status: GenerationStatus | None = None

        for k, v in kwargs.items():
            if k not in UPDATABLE_FIELDS:
                continue
            if k == "status" and v is not None:
                new_status = GenerationStatus(v)
                v = new_status.value
            updates.append(f"{k} = ?")
            values.append(v)

        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT status FROM generations WHERE id = ?", (generation_id,)
            ).fetchone()
            if row is None:
                return None

            current = GenerationStatus(row["status"])
            if current.is_terminal and new_status is not None and new_status != current:
                raise InvalidTransitionError(
                    f"Generation {generation_id} is already {current.value}",
                    context={"generation_id": generation_id, "requested": new_status.value},
                )

            if updates:
                updates.append("updated_at = ?")
                values.extend([_utcnow(), generation_id])
                conn.execute(
                    f"UPDATE generations SET {', '.join(updates)} WHERE id = ?",
                    values,
                )
                conn.commit()

        if new_status is not None and new_status != current:
            logger.info(
                f"[Store] Generation {generation_id}: {current.value} -> {new_status.value}"
            )
        return self.get_generation(generation_id)

    def delete_generation(self, generation_id: str) -> bool:
        """Delete a generation. Returns True if a row was removed."""
        with self._lock, self._connect() as conn:
            cursor = conn.execute("DELETE FROM generations WHERE id = ?", (generation_id,))
            conn.commit()
            return cursor.rowcount > 0

    def _row_to_generation(self, row: sqlite3.Row) -> Generation:
        """Convert DB row to Generation."""
        return Generation.model_validate(dict(row))
