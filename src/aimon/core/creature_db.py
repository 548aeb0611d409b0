"""SQLite store for generated creatures."""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Column order used by every SELECT in this module.
_COLUMNS = (
    "id",
    "name",
    "type",
    "powers",
    "characteristics",
    "image_url",
    "doodle_source",
    "like_count",
    "action_images",
)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM generated_aimon"


class CreatureDB:
    """Manage the ``generated_aimon`` table.

    Records are plain dictionaries so they can be cached and serialised
    as-is.  ``powers`` and ``action_images`` are stored as JSON text and
    decoded on the way out.

    Unlike a favourites table, failures here are not swallowed: the store is
    the source of truth, so errors propagate to the caller.
    """

    def __init__(self, db_path: Path):
        """Initialize the creature database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized creature database at {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS generated_aimon (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name VARCHAR(100) NOT NULL,
                    type VARCHAR(100),
                    powers TEXT,
                    characteristics TEXT,
                    image_url TEXT,
                    doodle_source TEXT,
                    like_count INTEGER NOT NULL DEFAULT 0,
                    action_images TEXT NOT NULL DEFAULT '{}'
                )
                """)
            conn.commit()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> dict[str, Any]:
        record = dict(row)
        record["powers"] = json.loads(record["powers"]) if record["powers"] else []
        record["action_images"] = (
            json.loads(record["action_images"]) if record["action_images"] else {}
        )
        return record

    def _fetch_one(self, conn: sqlite3.Connection, creature_id: int) -> dict[str, Any] | None:
        row = conn.execute(f"{_SELECT} WHERE id = ?", (creature_id,)).fetchone()
        return self._row_to_record(row) if row is not None else None

    def list_creatures(self) -> list[dict[str, Any]]:
        """Return every creature, newest first."""
        with self._connect() as conn:
            rows = conn.execute(f"{_SELECT} ORDER BY id DESC").fetchall()
        logger.debug(f"Listed {len(rows)} creatures")
        return [self._row_to_record(row) for row in rows]

    def get_by_id(self, creature_id: int) -> dict[str, Any] | None:
        """Return one creature, or None if the id is unknown."""
        with self._connect() as conn:
            return self._fetch_one(conn, creature_id)

    def insert(self, creature: dict[str, Any]) -> dict[str, Any]:
        """Insert a new creature and return it with its assigned id.

        Args:
            creature: Record without ``id``.  ``like_count`` and
                ``action_images`` default to 0 and ``{}``.

        Returns:
            The stored record as read back from the table.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO generated_aimon
                    (name, type, powers, characteristics, image_url, doodle_source,
                     like_count, action_images)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    creature["name"],
                    creature.get("type"),
                    json.dumps(creature.get("powers") or []),
                    creature.get("characteristics"),
                    creature.get("image_url"),
                    creature.get("doodle_source"),
                    int(creature.get("like_count") or 0),
                    json.dumps(creature.get("action_images") or {}),
                ),
            )
            conn.commit()
            saved = self._fetch_one(conn, cursor.lastrowid)

        logger.info(f"Inserted creature #{saved['id']} ({saved['name']})")
        return saved

    def like(self, creature_id: int) -> dict[str, Any] | None:
        """Increment the like count of a creature.

        Returns:
            The updated record, or None if the id is unknown.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE generated_aimon SET like_count = like_count + 1 WHERE id = ?",
                (creature_id,),
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
            return self._fetch_one(conn, creature_id)

    def set_action_image(
        self, creature_id: int, power_name: str, image_ref: str
    ) -> dict[str, Any] | None:
        """Attach (or replace) the action image stored for one power.

        Returns:
            The updated record, or None if the id is unknown.
        """
        with self._connect() as conn:
            current = self._fetch_one(conn, creature_id)
            if current is None:
                return None

            action_images = dict(current["action_images"])
            action_images[power_name] = image_ref
            conn.execute(
                "UPDATE generated_aimon SET action_images = ? WHERE id = ?",
                (json.dumps(action_images), creature_id),
            )
            conn.commit()
            return self._fetch_one(conn, creature_id)
